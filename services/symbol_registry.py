# services/symbol_registry.py
"""
Which symbols the monitor has to watch.

A symbol is monitored while at least one alert or one open call references
it. The set is re-read on every poll pass, so adding or removing the last
reference takes effect on the next pass.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, union

from models.alert import Alert
from models.call import Call, CallStatus
from services.db_service import get_db

logger = logging.getLogger(__name__)


def get_all_monitored_symbols() -> List[str]:
    """Distinct symbols of all alerts and open calls, sorted."""
    stmt = union(
        select(Alert.symbol),
        select(Call.symbol).where(Call.status == CallStatus.OPEN),
    )
    with get_db() as db:
        rows = db.execute(stmt).scalars().all()
    return sorted(set(rows))


def get_user_symbols(chat_id: int) -> List[str]:
    """Same union, restricted to one chat."""
    stmt = union(
        select(Alert.symbol).where(Alert.chat_id == chat_id),
        select(Call.symbol).where(Call.chat_id == chat_id, Call.status == CallStatus.OPEN),
    )
    with get_db() as db:
        rows = db.execute(stmt).scalars().all()
    return sorted(set(rows))


def get_symbol_chats(symbol: str) -> List[int]:
    """Chats owning an alert or an open call on symbol, without duplicates."""
    stmt = union(
        select(Alert.chat_id).where(Alert.symbol == symbol),
        select(Call.chat_id).where(Call.symbol == symbol, Call.status == CallStatus.OPEN),
    )
    with get_db() as db:
        rows = db.execute(stmt).scalars().all()
    return sorted(set(rows))


def has_subscribers(symbol: str) -> bool:
    return bool(get_symbol_chats(symbol))


def get_preferred_source(symbol: str) -> Tuple[Optional[str], Optional[str]]:
    """
    (exchange, market) to query first for symbol.

    The first alert with a resolved source wins, then the first open call.
    (None, None) when nothing is recorded.
    """
    with get_db() as db:
        alert = (
            db.query(Alert)
            .filter(Alert.symbol == symbol, Alert.exchange.isnot(None), Alert.market.isnot(None))
            .order_by(Alert.created_at, Alert.id)
            .first()
        )
        if alert:
            return alert.exchange, alert.market

        call = (
            db.query(Call)
            .filter(Call.symbol == symbol, Call.status == CallStatus.OPEN,
                    Call.exchange.isnot(None), Call.market.isnot(None))
            .order_by(Call.opened_at, Call.id)
            .first()
        )
        if call:
            return call.exchange, call.market
    return None, None
