# services/stop_loss.py
import logging
from typing import List

from sqlalchemy.exc import SQLAlchemyError

from models.alert_trigger import TriggerType
from models.call import CallDirection
from services.call_service import list_all_open_calls, close_call, CallNotFoundError, InvalidSizeError
from services.trigger_service import log_trigger
from utils.normalize_data import format_price, format_change

logger = logging.getLogger(__name__)


def is_stop_loss_breached(direction, stop_loss_price: float, current_price: float) -> bool:
    if not stop_loss_price or stop_loss_price <= 0:
        return False
    if direction == CallDirection.SHORT:
        return current_price >= stop_loss_price
    return current_price <= stop_loss_price


async def check_stop_losses(symbol: str, current_price: float, notifier) -> List[str]:
    """
    Close every open call on symbol whose stop-loss is breached.

    The whole remaining size is closed at current_price through the regular
    close path, so the deposit is settled the same way as a manual close.
    Owners are notified only for closes that succeeded; a failed close is
    retried on the next price.

    Returns the ids of closed calls.
    """
    try:
        calls = list_all_open_calls(symbol)
    except SQLAlchemyError:
        logger.exception("Failed to load open calls for %s", symbol)
        return []

    closed_ids = []
    for call in calls:
        if not is_stop_loss_breached(call.direction, call.stop_loss_price, current_price):
            continue

        try:
            closed = close_call(call.id, call.user_id, current_price)
        except (CallNotFoundError, InvalidSizeError) as exc:
            logger.info("Stop-loss close of %s skipped: %s", call.id, exc)
            continue
        except SQLAlchemyError:
            logger.exception("Stop-loss close of %s failed; will retry", call.id)
            continue

        closed_ids.append(call.id)
        try:
            log_trigger(symbol, current_price, call.chat_id, TriggerType.STOP_LOSS,
                        alert_id=call.id, user_id=call.user_id, username=call.username)
        except SQLAlchemyError:
            logger.exception("Failed to log stop-loss of %s", call.id)

        await notifier.send(
            call.chat_id,
            f"🛑 *Stop-loss hit*\n"
            f"Call `{call.id}` {call.direction.value.upper()} `{call.symbol}`\n"
            f"Entry: `{format_price(call.entry_price)}` | SL: `{format_price(call.stop_loss_price)}`\n"
            f"Closed at `{format_price(current_price)}` ({format_change(closed.pnl_percent)})",
        )
    return closed_ids
