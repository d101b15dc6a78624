import os
import logging
from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

logger = logging.getLogger(__name__)


def _get_float(name: str, default: float) -> float:
    """Positive float from the environment; ',' is accepted as decimal separator."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip().replace(",", "."))
    except ValueError:
        logger.warning("Invalid %s=%r, using default %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Non-positive %s=%r, using default %s", name, raw, default)
        return default
    return value


def _get_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning("Invalid %s=%r, using default %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Non-positive %s=%r, using default %s", name, raw, default)
        return default
    return value


def _get_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Bot token (required, checked by validate_config)
BOT_TOKEN = os.environ.get("BOT_TOKEN")

# Database path (default: SQLite file under data/)
DB_PATH = os.environ.get("DATABASE_PATH", "data/alerts.db")

# Logging level (default: INFO)
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Price polling
POLL_INTERVAL_SEC = _get_int("POLL_INTERVAL_SEC", 60)
MOVE_THRESHOLD_PERCENT = _get_float("MOVE_THRESHOLD_PERCENT", 1.0)
HTTP_TIMEOUT_SEC = _get_float("HTTP_TIMEOUT_SEC", 10.0)

# Sharp-change notifications
SHARP_CHANGE_PERCENT = _get_float("SHARP_CHANGE_PERCENT", 0.2)
SHARP_CHANGE_INTERVAL_MIN = _get_int("SHARP_CHANGE_INTERVAL_MIN", 15)
SHARP_CHANGE_COOLDOWN_MIN = _get_int("SHARP_CHANGE_COOLDOWN_MIN", 5)

# Retention of logged rows
TRIGGER_RETENTION_DAYS = _get_int("TRIGGER_RETENTION_DAYS", 90)
PRICE_HISTORY_ENABLED = _get_bool("PRICE_HISTORY_ENABLED", True)
PRICE_HISTORY_RETENTION_DAYS = _get_int("PRICE_HISTORY_RETENTION_DAYS", 7)


def validate_config():
    """Raise ValueError when settings required at startup are missing."""
    if not BOT_TOKEN:
        raise ValueError("BOT_TOKEN environment variable is required")
