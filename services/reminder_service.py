# services/reminder_service.py
import logging
from datetime import timedelta
from typing import List

from models.reminder import Reminder
from services.db_service import get_db
from utils.compute_fromdate import utc_now
from utils.normalize_data import normalize_symbol

logger = logging.getLogger(__name__)


def add_reminder(chat_id: int, user_id: int, symbol: str, delay: timedelta,
                 text: str = None, username: str = None) -> Reminder:
    normalized_symbol = normalize_symbol(symbol)
    if not normalized_symbol:
        raise ValueError("Symbol is required")
    with get_db() as db:
        reminder = Reminder(
            chat_id=chat_id,
            user_id=user_id,
            username=username,
            symbol=normalized_symbol,
            text=(text or "").strip() or None,
            trigger_at=utc_now() + delay,
        )
        db.add(reminder)
        db.commit()
        db.refresh(reminder)
        return reminder


def get_pending_reminders() -> List[Reminder]:
    """Reminders not yet fired, soonest first (includes overdue ones)."""
    with get_db() as db:
        return db.query(Reminder).order_by(Reminder.trigger_at).all()


def delete_reminder(reminder_id: int) -> bool:
    with get_db() as db:
        removed = db.query(Reminder).filter_by(id=reminder_id).delete()
        db.commit()
        return removed > 0


def purge_expired_reminders(grace: timedelta = timedelta(minutes=1)) -> int:
    """Drop reminders whose time passed more than grace ago."""
    cutoff = utc_now() - grace
    with get_db() as db:
        removed = db.query(Reminder).filter(Reminder.trigger_at < cutoff).delete()
        db.commit()
    if removed:
        logger.info("Purged %s expired reminders", removed)
    return removed


def build_reminder_text(reminder) -> str:
    text = f"⏰ Look at chart {reminder.symbol}"
    if reminder.text:
        text += f", {reminder.text}"
    return text
