# services/alert_checker.py
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from models.alert_trigger import TriggerType
from services.alert_service import get_alerts_by_symbol, consume_alert
from utils.normalize_data import format_price, format_change

logger = logging.getLogger(__name__)

# Absolute targets fire within this fraction of the target price
PRICE_TOLERANCE = 0.005


def is_price_target_hit(target_price: float, current_price: float) -> bool:
    return abs(current_price - target_price) <= target_price * PRICE_TOLERANCE


def percent_change(base_price: float, current_price: float) -> float:
    return (current_price - base_price) / base_price * 100


def is_percent_target_hit(target_percent: float, base_price: float, current_price: float) -> bool:
    """Directional: +5 fires at +5% or more, -5 at -5% or less."""
    if not base_price:
        return False
    change = percent_change(base_price, current_price)
    if target_percent > 0:
        return change >= target_percent
    return change <= target_percent


def evaluate_alert(alert, current_price: float) -> Optional[TriggerType]:
    """Which trigger kind alert fires with at current_price, or None."""
    if alert.target_price is not None and alert.target_price > 0:
        if is_price_target_hit(alert.target_price, current_price):
            return TriggerType.PRICE
        return None
    if alert.target_percent is not None:
        if is_percent_target_hit(alert.target_percent, alert.base_price, current_price):
            return TriggerType.PERCENT
    return None


def build_alert_message(alert, current_price: float, kind: TriggerType) -> str:
    if kind == TriggerType.PERCENT:
        change = percent_change(alert.base_price, current_price)
        arrow = "📈" if change >= 0 else "📉"
        return (
            f"{arrow} *Percent Alert Triggered!*\n"
            f"Symbol: `{alert.symbol}`\n"
            f"Target: {format_change(alert.target_percent)} from `{format_price(alert.base_price)}`\n"
            f"Current Price: `{format_price(current_price)}` ({format_change(change)})\n"
            f"Alert ID: `{alert.id}`"
        )
    return (
        f"📢 *Price Alert Triggered!*\n"
        f"Symbol: `{alert.symbol}`\n"
        f"Target: `{format_price(alert.target_price)}`\n"
        f"Current Price: `{format_price(current_price)}`\n"
        f"Alert ID: `{alert.id}`"
    )


async def check_alerts(symbol: str, current_price: float, notifier) -> List[str]:
    """
    Fire every alert on symbol whose condition holds at current_price.

    A fired alert is logged and deleted in one transaction before its owner
    is notified, so replaying the same price cannot notify twice. When the
    store fails the alert stays and is evaluated again next tick.

    Returns the ids of fired alerts.
    """
    try:
        alerts = get_alerts_by_symbol(symbol)
    except SQLAlchemyError:
        logger.exception("Failed to load alerts for %s", symbol)
        return []

    fired = []
    for alert in alerts:
        kind = evaluate_alert(alert, current_price)
        if kind is None:
            continue

        try:
            consumed = consume_alert(alert, current_price, kind)
        except SQLAlchemyError:
            logger.exception("Failed to record trigger for alert %s; will retry", alert.id)
            continue
        if not consumed:
            logger.info("Alert %s already gone, skipping notification", alert.id)
            continue

        logger.info("Alert %s (%s) fired for %s at %s", alert.id, kind.value, symbol, current_price)
        fired.append(alert.id)
        await notifier.send(alert.chat_id, build_alert_message(alert, current_price, kind))

    return fired
