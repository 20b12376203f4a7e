# rotur/core/tasks.py
"""Long-running background loops started with the application."""
import asyncio
import logging
from typing import Callable

from starlette.concurrency import run_in_threadpool

logger = logging.getLogger("uvicorn.error")


async def periodic(name: str, interval: float, fn: Callable[[], object]) -> None:
    """
    Call the blocking `fn` every `interval` seconds in the threadpool.

    A failing iteration is logged and the loop carries on; cancellation stops it.
    """
    logger.info("[%s] started, interval %ss", name, interval)
    while True:
        await asyncio.sleep(interval)
        try:
            await run_in_threadpool(fn)
        except Exception:
            logger.exception("[%s] iteration failed", name)
