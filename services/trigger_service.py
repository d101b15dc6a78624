# services/trigger_service.py
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import func

from models.alert import Alert
from models.alert_trigger import AlertTrigger, TriggerType
from models.price_history import PriceHistory
from services.db_service import get_db
from utils.compute_fromdate import utc_now

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10
MAX_HISTORY_LIMIT = 50
# Lookback of the trigger counts shown by /stats
STATS_WINDOW_DAYS = 90


def build_trigger(symbol: str, price: float, chat_id: int, trigger_type: TriggerType,
                  alert_id: Optional[str] = None, user_id: Optional[int] = None,
                  username: Optional[str] = None) -> AlertTrigger:
    """Unsaved trigger row, for callers that commit it with other changes."""
    return AlertTrigger(
        alert_id=alert_id,
        symbol=symbol,
        trigger_price=float(price),
        chat_id=chat_id,
        user_id=user_id,
        username=username,
        trigger_type=trigger_type,
        triggered_at=utc_now(),
    )


def log_trigger(symbol: str, price: float, chat_id: int, trigger_type: TriggerType,
                alert_id: Optional[str] = None, user_id: Optional[int] = None,
                username: Optional[str] = None) -> AlertTrigger:
    """Append one row to the trigger log."""
    with get_db() as db:
        row = build_trigger(symbol, price, chat_id, trigger_type, alert_id, user_id, username)
        db.add(row)
        db.commit()
        return row


def get_trigger_history(chat_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> List[AlertTrigger]:
    """Newest-first trigger rows for a chat; limit is clamped to 1..MAX_HISTORY_LIMIT."""
    limit = max(1, min(int(limit), MAX_HISTORY_LIMIT))
    with get_db() as db:
        return (
            db.query(AlertTrigger)
            .filter(AlertTrigger.chat_id == chat_id)
            .order_by(AlertTrigger.triggered_at.desc(), AlertTrigger.id.desc())
            .limit(limit)
            .all()
        )


def purge_old_triggers(days: int) -> int:
    """Delete trigger rows older than days; returns the number removed."""
    cutoff = utc_now() - timedelta(days=days)
    with get_db() as db:
        removed = (
            db.query(AlertTrigger)
            .filter(AlertTrigger.triggered_at < cutoff)
            .delete(synchronize_session=False)
        )
        db.commit()
    if removed:
        logger.info("Purged %s trigger rows older than %s days", removed, days)
    return removed


def log_price(symbol: str, price: float):
    with get_db() as db:
        db.add(PriceHistory(symbol=symbol, price=float(price), timestamp=utc_now()))
        db.commit()


def purge_old_prices(days: int) -> int:
    cutoff = utc_now() - timedelta(days=days)
    with get_db() as db:
        removed = (
            db.query(PriceHistory)
            .filter(PriceHistory.timestamp < cutoff)
            .delete(synchronize_session=False)
        )
        db.commit()
    return removed


@dataclass
class SymbolAlertStats:
    symbol: str
    active_alerts: int = 0
    total_triggers: int = 0


def get_symbol_stats(user_id: int) -> List[SymbolAlertStats]:
    """
    Active alerts and recent triggers per symbol for one user, most
    active alerts first. Triggers count over the last STATS_WINDOW_DAYS.
    """
    cutoff = utc_now() - timedelta(days=STATS_WINDOW_DAYS)
    stats: Dict[str, SymbolAlertStats] = {}
    with get_db() as db:
        active = (
            db.query(Alert.symbol, func.count(Alert.id))
            .filter(Alert.user_id == user_id)
            .group_by(Alert.symbol)
            .all()
        )
        triggered = (
            db.query(AlertTrigger.symbol, func.count(AlertTrigger.id))
            .filter(AlertTrigger.user_id == user_id, AlertTrigger.triggered_at >= cutoff)
            .group_by(AlertTrigger.symbol)
            .all()
        )

    for symbol, count in active:
        stats.setdefault(symbol, SymbolAlertStats(symbol)).active_alerts = count
    for symbol, count in triggered:
        stats.setdefault(symbol, SymbolAlertStats(symbol)).total_triggers = count
    return sorted(stats.values(), key=lambda s: (-s.active_alerts, s.symbol))
