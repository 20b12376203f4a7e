# rotur/config.py
import os
import logging
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file

logger = logging.getLogger("uvicorn.error")


def _env_int(name: str, default: int) -> int:
    """Read an integer env var; bad values log a warning and fall back to the default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("[config] invalid %s=%r, using default %d", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("[config] invalid %s=%r, using default %s", name, raw, default)
        return default


class Settings(BaseModel):
    # General app settings
    APP_NAME: str = "rotur"
    env: str = os.getenv("ENV", "dev")

    # Host & Port settings
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = _env_int("PORT", 5602)

    CORS_ORIGINS: list[str] = ["*"]

    # Collection files (one canonical JSON document per collection)
    users_file_path: str = os.getenv("USERS_FILE_PATH", "./users.json")
    posts_file_path: str = os.getenv("LOCAL_POSTS_PATH", "./posts.json")
    followers_file_path: str = os.getenv("FOLLOWERS_FILE_PATH", "./clawusers.json")
    items_file_path: str = os.getenv("ITEMS_FILE_PATH", "./items.json")
    keys_file_path: str = os.getenv("KEYS_FILE_PATH", "./keys.json")
    systems_file_path: str = os.getenv("SYSTEMS_FILE_PATH", "./systems.json")
    events_history_path: str = os.getenv("EVENTS_HISTORY_PATH", "./events_history.json")
    groups_file_path: str = os.getenv("GROUPS_FILE_PATH", "./groups.json")
    daily_claims_file_path: str = os.getenv("DAILY_CLAIMS_FILE_PATH", "./rotur_daily.json")
    statuses_file_path: str = os.getenv("STATUSES_FILE_PATH", "./statuses.json")

    # Per-user file store root
    ofsf_root: str = os.getenv("OFSF_ROOT", "./rotur/files")

    # Background tasks
    subscription_check_interval: int = _env_int("SUBSCRIPTION_CHECK_INTERVAL", 3600)  # seconds
    standing_check_interval: int = _env_int("STANDING_CHECK_INTERVAL", 300)  # seconds
    status_cleanup_interval: int = _env_int("STATUS_CLEANUP_INTERVAL", 3600)  # seconds
    link_code_ttl: int = _env_int("LINK_CODE_TTL", 600)  # seconds
    key_ownership_cache_ttl: int = _env_int("KEY_OWNERSHIP_CACHE_TTL", 600)  # seconds
    users_watch_interval: float = _env_float("USERS_WATCH_INTERVAL", 0.5)  # seconds
    run_background_tasks: bool = os.getenv("RUN_BACKGROUND_TASKS", "true").lower() in ("true", "1", "yes")

    # Admin bearer token; empty disables admin endpoints
    admin_token: str = os.getenv("ADMIN_TOKEN", "")

    # Outbound notifications (empty URL disables the call)
    event_server_url: str = os.getenv("EVENT_SERVER_URL", "")
    websocket_server_url: str = os.getenv("WEBSOCKET_SERVER_URL", "")
    notify_queue_size: int = _env_int("NOTIFY_QUEUE_SIZE", 256)

    # Economy
    premium_post_key: str = os.getenv("PREMIUM_POST_KEY", "bd6249d2b87796a25c30b1f1722f784f")
    tax_rate_percent: int = _env_int("TAX_RATE_PERCENT", 10)

settings = Settings()  # Instantiate configuration
