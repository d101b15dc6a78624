# services/price_monitor.py
import asyncio
import functools
import logging
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from config import POLL_INTERVAL_SEC, MOVE_THRESHOLD_PERCENT
from services.exchange_service import PriceSourceError

logger = logging.getLogger(__name__)


class PriceMonitor:
    """
    Periodic price polling for every monitored symbol.

    Each pass asks symbol_provider for the symbols, fetches their prices
    (blocking HTTP runs in the default executor) and hands every fetched
    price to on_price. Moves of at least move_threshold_pct against the
    previous pass are additionally reported to on_notable_move.

    The last-seen prices live on the instance and survive restart().
    """

    def __init__(self, gateway, symbol_provider: Callable[[], List[str]], on_price,
                 interval: float = POLL_INTERVAL_SEC,
                 move_threshold_pct: float = MOVE_THRESHOLD_PERCENT,
                 on_notable_move=None, source_resolver=None):
        self.gateway = gateway
        self.symbol_provider = symbol_provider
        self.on_price = on_price
        self.interval = interval
        self.move_threshold_pct = move_threshold_pct
        self.on_notable_move = on_notable_move
        self.source_resolver = source_resolver
        self._last_prices: Dict[str, float] = {}
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._evaluating = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def get_cached_price(self, symbol: str) -> Optional[float]:
        return self._last_prices.get(symbol)

    async def _fetch(self, symbol: str) -> Optional[float]:
        exchange, market = None, None
        if self.source_resolver is not None:
            try:
                exchange, market = self.source_resolver(symbol)
            except SQLAlchemyError:
                logger.exception("Failed to resolve source for %s", symbol)

        loop = asyncio.get_running_loop()
        call_price = functools.partial(self.gateway.get_current_price, symbol, exchange, market)
        try:
            quote = await loop.run_in_executor(None, call_price)
        except PriceSourceError as exc:
            logger.warning("Skipping %s this pass: %s", symbol, exc)
            return None
        return quote.price

    def _prune(self, symbols):
        keep = set(symbols)
        for symbol in list(self._last_prices):
            if symbol not in keep:
                del self._last_prices[symbol]

    async def poll_once(self) -> Dict[str, float]:
        """One pass over all monitored symbols. Returns the prices fetched."""
        try:
            symbols = list(self.symbol_provider())
        except SQLAlchemyError:
            logger.exception("Failed to load monitored symbols")
            return {}

        if not symbols:
            self._prune(symbols)
            logger.debug("No symbols to monitor")
            return {}

        fetched = {}
        for symbol in symbols:
            if self._stop_requested():
                break
            price = await self._fetch(symbol)
            if price is None:
                continue
            fetched[symbol] = price

            # from here on alerts may be consumed, so stop() waits instead of cancelling
            self._evaluating = True
            try:
                await self._evaluate(symbol, price)
            finally:
                self._evaluating = False

        self._prune(symbols)
        return fetched

    async def _evaluate(self, symbol: str, price: float):
        previous = self._last_prices.get(symbol)
        self._last_prices[symbol] = price
        if previous:
            delta_pct = (price - previous) / previous * 100
            if abs(delta_pct) >= self.move_threshold_pct and self.on_notable_move is not None:
                try:
                    await self.on_notable_move(symbol, previous, price, delta_pct)
                except Exception:
                    logger.exception("Notable-move handler failed for %s", symbol)

        try:
            await self.on_price(symbol, price)
        except Exception:
            logger.exception("Price handler failed for %s", symbol)

    def _stop_requested(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    async def _run(self, stop_event: asyncio.Event):
        logger.info("Price monitor started (every %ss)", self.interval)
        while not stop_event.is_set():
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Poll pass failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    def _start_locked(self):
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(self._stop_event))

    async def _stop_locked(self):
        task, self._task = self._task, None
        if task is None:
            return
        self._stop_event.set()
        if not self._evaluating:
            # idle in a fetch or the interval sleep; nothing is lost by cancelling
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Price monitor stopped")

    async def start(self):
        async with self._lock:
            self._start_locked()

    async def stop(self):
        """Stop the loop. A symbol whose price is being evaluated is finished first."""
        async with self._lock:
            await self._stop_locked()

    async def restart(self):
        """Stop the running loop (if any) and start a fresh one that polls immediately."""
        async with self._lock:
            await self._stop_locked()
            self._start_locked()
