# services/alert_service.py
import logging
from typing import List, Optional

from models.alert import Alert
from models.alert_trigger import TriggerType
from services.db_service import get_db, generate_short_id
from services.trigger_service import build_trigger
from utils.normalize_data import normalize_symbol

logger = logging.getLogger(__name__)


def _validate_targets(target_price: Optional[float], target_percent: Optional[float],
                      base_price: Optional[float]):
    if (target_price is None) == (target_percent is None):
        raise ValueError("Exactly one of target_price / target_percent must be set")
    if target_price is not None and target_price <= 0:
        raise ValueError("Target price must be positive")
    if target_percent is not None:
        if target_percent == 0:
            raise ValueError("Target percent must not be zero")
        if base_price is None or base_price <= 0:
            raise ValueError("A positive base price is required for percent alerts")


def create_alert(chat_id: int, user_id: int, symbol: str, target_price: float = None,
                 target_percent: float = None, base_price: float = None, username: str = None,
                 exchange: str = None, market: str = None) -> Alert:
    """
    Create a price or percent alert.

    Exactly one of target_price / target_percent is accepted. Percent alerts
    carry the base price they are measured from. Returns the saved Alert.
    """
    _validate_targets(target_price, target_percent, base_price)

    normalized_symbol = normalize_symbol(symbol)
    if not normalized_symbol:
        raise ValueError("Symbol is required")

    with get_db() as db:
        alert = Alert(
            id=generate_short_id(db, Alert),
            chat_id=chat_id,
            user_id=user_id,
            username=username,
            symbol=normalized_symbol,
            target_price=float(target_price) if target_price is not None else None,
            target_percent=float(target_percent) if target_percent is not None else None,
            base_price=float(base_price) if base_price is not None else None,
            exchange=exchange,
            market=market,
        )
        db.add(alert)
        db.commit()
        db.refresh(alert)
        logger.info("Alert %s created for chat %s on %s", alert.id, chat_id, normalized_symbol)
        return alert


def update_alert(alert_id: str, chat_id: int, **fields) -> Optional[Alert]:
    """
    Change target or source fields of an alert owned by chat_id.

    Returns the updated alert, or None when it does not exist for that chat.
    """
    allowed = {"target_price", "target_percent", "base_price", "exchange", "market"}
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    with get_db() as db:
        alert = db.query(Alert).filter_by(id=alert_id, chat_id=chat_id).first()
        if not alert:
            return None
        for key, value in fields.items():
            setattr(alert, key, value)
        _validate_targets(alert.target_price, alert.target_percent, alert.base_price)
        db.commit()
        db.refresh(alert)
        return alert


def list_alerts_by_chat(chat_id: int) -> List[Alert]:
    with get_db() as db:
        return (
            db.query(Alert)
            .filter_by(chat_id=chat_id)
            .order_by(Alert.created_at, Alert.id)
            .all()
        )


def get_alerts_by_symbol(symbol: str) -> List[Alert]:
    with get_db() as db:
        return (
            db.query(Alert)
            .filter_by(symbol=symbol)
            .order_by(Alert.created_at, Alert.id)
            .all()
        )


def delete_alert(chat_id: int, alert_id: str) -> bool:
    """Delete one alert of chat_id. Returns False if there was nothing to delete."""
    with get_db() as db:
        removed = db.query(Alert).filter_by(id=alert_id, chat_id=chat_id).delete()
        db.commit()
        return removed > 0


def delete_all_alerts(chat_id: int) -> int:
    with get_db() as db:
        removed = db.query(Alert).filter_by(chat_id=chat_id).delete()
        db.commit()
        return removed


def consume_alert(alert: Alert, price: float, trigger_type: TriggerType) -> bool:
    """
    Record that alert fired at price and delete it, in one transaction.

    Returns False when the alert no longer exists (already fired or deleted
    by its owner); nothing is written in that case. Store errors propagate
    and leave the alert in place.
    """
    with get_db() as db:
        current = db.query(Alert).filter_by(id=alert.id).first()
        if current is None:
            return False
        db.add(build_trigger(
            symbol=current.symbol,
            price=price,
            chat_id=current.chat_id,
            trigger_type=trigger_type,
            alert_id=current.id,
            user_id=current.user_id,
            username=current.username,
        ))
        db.delete(current)
        db.commit()
        return True
