# services/sharp_change.py
import asyncio
import functools
import logging
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from config import SHARP_CHANGE_PERCENT, SHARP_CHANGE_INTERVAL_MIN, SHARP_CHANGE_COOLDOWN_MIN
from models.alert_trigger import TriggerType
from services.exchange_service import PriceSourceError
from services.symbol_registry import get_preferred_source, get_symbol_chats
from services.trigger_service import log_trigger
from utils.compute_fromdate import utc_now
from utils.normalize_data import format_price, format_change

logger = logging.getLogger(__name__)


class SharpChangeDetector:
    """
    Notify everyone watching a symbol when it moves sharply.

    The move is measured against the price of the last sharp-change
    notification when that happened within the lookback window, otherwise
    against the historical price one lookback ago. After a notification the
    symbol is muted for the cooldown.
    """

    def __init__(self, gateway, threshold_pct: float = SHARP_CHANGE_PERCENT,
                 interval_min: int = SHARP_CHANGE_INTERVAL_MIN,
                 cooldown_min: int = SHARP_CHANGE_COOLDOWN_MIN,
                 now_fn=utc_now, source_resolver=get_preferred_source,
                 chats_resolver=get_symbol_chats):
        self.gateway = gateway
        self.threshold_pct = threshold_pct
        self.interval = timedelta(minutes=interval_min)
        self.cooldown = timedelta(minutes=cooldown_min)
        self.now_fn = now_fn
        self.source_resolver = source_resolver
        self.chats_resolver = chats_resolver
        # symbol -> (time, price) of the last notification
        self._last = {}

    def last_notification(self, symbol: str):
        return self._last.get(symbol)

    async def _baseline(self, symbol: str, now):
        last = self._last.get(symbol)
        if last and now - last[0] <= self.interval:
            return last[1]

        try:
            exchange, market = self.source_resolver(symbol)
        except SQLAlchemyError:
            logger.exception("Failed to resolve source for %s", symbol)
            exchange, market = None, None

        loop = asyncio.get_running_loop()
        call_hist = functools.partial(
            self.gateway.get_historical_price,
            symbol,
            now - self.interval,
            exchange,
            market,
        )
        try:
            return await loop.run_in_executor(None, call_hist)
        except PriceSourceError as exc:
            logger.info("No baseline for %s sharp-change check: %s", symbol, exc)
            return None

    async def check(self, symbol: str, current_price: float, notifier) -> bool:
        """Returns True when a sharp-change notification went out."""
        now = self.now_fn()
        base = await self._baseline(symbol, now)
        if not base:
            return False

        change = (current_price - base) / base * 100
        if abs(change) < self.threshold_pct:
            return False

        last = self._last.get(symbol)
        if last and now - last[0] < self.cooldown:
            logger.debug("Sharp change on %s muted by cooldown", symbol)
            return False

        try:
            chats = self.chats_resolver(symbol)
        except SQLAlchemyError:
            logger.exception("Failed to load watchers of %s", symbol)
            return False

        self._last[symbol] = (now, current_price)

        minutes = int(self.interval.total_seconds() // 60)
        arrow = "🚀" if change > 0 else "🔻"
        text = (
            f"{arrow} *Sharp move on {symbol}*\n"
            f"{format_change(change)} in ~{minutes}m\n"
            f"`{format_price(base)}` → `{format_price(current_price)}`"
        )
        logger.info("Sharp change on %s: %.2f%% (%s chats)", symbol, change, len(chats))

        for chat_id in chats:
            await notifier.send(chat_id, text)
            try:
                log_trigger(symbol, current_price, chat_id, TriggerType.SHARP_CHANGE)
            except SQLAlchemyError:
                logger.exception("Failed to log sharp change for chat %s", chat_id)
        return True
