# services/monitor_service.py
import logging

from sqlalchemy.exc import SQLAlchemyError

from config import PRICE_HISTORY_ENABLED
from services.alert_checker import check_alerts
from services.stop_loss import check_stop_losses
from services.symbol_registry import has_subscribers
from services.trigger_service import log_price

logger = logging.getLogger(__name__)


class MonitorService:
    """
    Everything that happens to one fetched price.

    The price is logged to the price history, then (while anyone still
    watches the symbol) alerts, the sharp-change detector and stop-losses
    are evaluated in that order. A failure in one step does not stop the
    next one.
    """

    def __init__(self, notifier, sharp_detector, log_prices: bool = PRICE_HISTORY_ENABLED,
                 subscribers_check=has_subscribers):
        self.notifier = notifier
        self.sharp_detector = sharp_detector
        self.log_prices = log_prices
        self.subscribers_check = subscribers_check

    async def handle_price(self, symbol: str, price: float):
        if self.log_prices:
            try:
                log_price(symbol, price)
            except SQLAlchemyError:
                logger.exception("Failed to log price of %s", symbol)

        try:
            if not self.subscribers_check(symbol):
                return
        except SQLAlchemyError:
            logger.exception("Failed to check watchers of %s", symbol)
            return

        try:
            await check_alerts(symbol, price, self.notifier)
        except Exception:
            logger.exception("Alert check failed for %s", symbol)

        try:
            await self.sharp_detector.check(symbol, price, self.notifier)
        except Exception:
            logger.exception("Sharp-change check failed for %s", symbol)

        try:
            await check_stop_losses(symbol, price, self.notifier)
        except Exception:
            logger.exception("Stop-loss check failed for %s", symbol)

    async def notable_move(self, symbol: str, previous: float, price: float, delta_pct: float):
        logger.info("%s moved %.2f%% (%s -> %s)", symbol, delta_pct, previous, price)
