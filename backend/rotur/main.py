# rotur/main.py
import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from rotur.config import Settings, settings
from rotur.core.errors import RoturError
from rotur.core.notifications import Notifier
from rotur.core.store import Store
from rotur.core.tasks import periodic
from rotur.core.watcher import FileWatcher
from rotur.services import statuses
from rotur.services.keys import KeyService
from rotur.services.link import LinkCodes
from rotur.services.ofsf import OFSFStore
from rotur.services.standing import recover_due
from rotur.services.subscriptions import SubscriptionEngine

from rotur.api.v1.routers import admin, auth, groups, items, keys, link, marriage, ofsf, posts, social, status, users

logger = logging.getLogger("uvicorn.error")


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """
    Build the application and every component it owns.

    The store, notifier, file store, key service, subscription engine and
    link codes are created here and kept on `app.state`; routers reach them through the
    dependencies in `rotur.api.v1.deps`.

    Args:
        app_settings: Configuration to use; defaults to the process-wide settings
    """
    cfg = app_settings or settings
    app = FastAPI(title=cfg.APP_NAME)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    store = Store(cfg)
    notifier = Notifier(cfg.event_server_url, cfg.websocket_server_url, maxsize=cfg.notify_queue_size)
    key_service = KeyService(store, notifier, cache_ttl=cfg.key_ownership_cache_ttl, tax_rate_percent=cfg.tax_rate_percent)
    engine = SubscriptionEngine(
        store,
        notifier,
        interval=cfg.subscription_check_interval,
        tax_rate_percent=cfg.tax_rate_percent,
        on_change=key_service.cache.invalidate,
    )

    app.state.settings = cfg
    app.state.store = store
    app.state.notifier = notifier
    app.state.ofsf = OFSFStore(cfg.ofsf_root)
    app.state.keys = key_service
    app.state.engine = engine
    app.state.links = LinkCodes(ttl=cfg.link_code_ttl)
    app.state.tasks = []

    @app.exception_handler(RoturError)
    async def rotur_error_handler(request: Request, exc: RoturError):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.to_dict()})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # Keep the envelope for malformed bodies instead of FastAPI's default shape
        first = exc.errors()[0] if exc.errors() else {}
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{where}: {first.get('msg', 'invalid request')}" if where else first.get("msg", "invalid request")
        return JSONResponse(status_code=422, content={"success": False, "error": {"code": "BAD_REQUEST", "message": message}})

    @app.on_event("startup")
    async def on_startup():
        await run_in_threadpool(store.load_all)
        store.persister.start()
        notifier.start()
        if not cfg.run_background_tasks:
            return
        watcher = FileWatcher(store.users, interval=cfg.users_watch_interval)
        app.state.tasks = [
            asyncio.create_task(engine.run()),
            asyncio.create_task(watcher.run()),
            asyncio.create_task(periodic("standing", cfg.standing_check_interval, lambda: recover_due(store))),
            asyncio.create_task(periodic(
                "statuses", cfg.status_cleanup_interval, lambda: statuses.cleanup_expired(store, notifier=notifier)
            )),
        ]
        logger.info("[startup] %d background tasks running", len(app.state.tasks))

    @app.on_event("shutdown")
    async def on_shutdown():
        for task in app.state.tasks:
            task.cancel()
        await asyncio.gather(*app.state.tasks, return_exceptions=True)
        app.state.tasks = []
        # Final snapshots before the worker threads go away
        await run_in_threadpool(store.persister.stop)
        await run_in_threadpool(notifier.stop)

    # REST
    app.include_router(auth.router, prefix="/api/v1")
    app.include_router(users.router, prefix="/api/v1")
    app.include_router(social.router, prefix="/api/v1")
    app.include_router(marriage.router, prefix="/api/v1")
    app.include_router(status.router, prefix="/api/v1")
    app.include_router(posts.router, prefix="/api/v1")
    app.include_router(items.router, prefix="/api/v1")
    app.include_router(keys.router, prefix="/api/v1")
    app.include_router(ofsf.router, prefix="/api/v1")
    app.include_router(groups.router, prefix="/api/v1")
    app.include_router(link.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    return app


app = create_app()
