# utils/compute_fromdate.py
import re
from datetime import datetime, timedelta, timezone

# Lookbacks shown by /p next to the current price
CHANGE_PERIODS = {
    "15m": timedelta(minutes=15),
    "1h": timedelta(hours=1),
    "4h": timedelta(hours=4),
    "24h": timedelta(hours=24),
}

# Width of the candle window used for historical lookups
CANDLE_WINDOW = timedelta(minutes=2)

_DURATION_RE = re.compile(r"^(\d+)([mhd])$")
_DURATION_UNITS = {"m": "minutes", "h": "hours", "d": "days"}


def utc_now() -> datetime:
    """Naive UTC now, matching what SQLite stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_millis(ts: datetime) -> int:
    """Unix milliseconds for a naive-UTC or aware datetime."""
    if ts.tzinfo is None:
        return int((ts - datetime(1970, 1, 1)).total_seconds() * 1000)
    return int(ts.timestamp() * 1000)


def compute_candle_window(ts: datetime, width: timedelta = CANDLE_WINDOW) -> tuple:
    """
    Compute the (start_ms, end_ms) window that ends at ts.

    Exchanges are asked for 1-minute candles inside this window and the
    latest close is taken as the price at ts.
    """
    end_ms = to_millis(ts)
    start_ms = end_ms - int(width.total_seconds() * 1000)
    return start_ms, end_ms


def parse_duration(raw: str) -> timedelta:
    """
    Parse "10m", "2h" or "3d" into a timedelta.

    Raises ValueError for anything else, including zero.
    """
    match = _DURATION_RE.match((raw or "").strip().lower())
    if not match:
        raise ValueError(f"Invalid duration '{raw}'. Use e.g. 10m, 2h or 3d")
    amount = int(match.group(1))
    if amount <= 0:
        raise ValueError("Duration must be positive")
    return timedelta(**{_DURATION_UNITS[match.group(2)]: amount})
