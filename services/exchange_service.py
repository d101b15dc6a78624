# services/exchange_service.py
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import requests

from config import HTTP_TIMEOUT_SEC
from utils.compute_fromdate import CHANGE_PERIODS, compute_candle_window, utc_now
from utils.normalize_data import normalize_candles

logger = logging.getLogger(__name__)

SPOT = "spot"
FUTURES = "futures"


class PriceSourceError(RuntimeError):
    """Raised when a source (or every source) cannot provide a price."""


@dataclass
class PriceQuote:
    price: float
    exchange: str
    market: str


@dataclass
class PriceInfo:
    symbol: str
    price: float
    exchange: str
    market: str
    changes: dict = field(default_factory=dict)  # "15m" -> percent


class ExchangeClient:
    """Base for the public REST market-data clients (no API keys needed)."""

    name = ""
    base_url = ""

    def __init__(self, timeout: float = HTTP_TIMEOUT_SEC):
        self.timeout = timeout

    def _request(self, path: str, params: dict) -> dict:
        """Internal request handler; returns the decoded JSON body or raises PriceSourceError."""
        url = f"{self.base_url}{path}"
        try:
            response = requests.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise PriceSourceError(f"[{self.name}] HTTP error for {url}: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise PriceSourceError(f"[{self.name}] non-json response from {url}") from exc

        if not isinstance(data, dict):
            raise PriceSourceError(f"[{self.name}] unexpected response from {url}")
        self._check_status(data)
        return data

    def _check_status(self, data: dict):
        raise NotImplementedError

    def _ticker_rows(self, symbol: str, market: str, filtered: bool) -> list:
        raise NotImplementedError

    def _candle_rows(self, symbol: str, market: str, start_ms: int, end_ms: int) -> list:
        raise NotImplementedError

    @staticmethod
    def _row_price(row: dict, market: str) -> Optional[float]:
        raise NotImplementedError

    def get_price(self, symbol: str, market: str = SPOT) -> float:
        """
        Latest price for symbol on this exchange.

        The symbol-filtered ticker endpoint is tried first; when it fails or
        does not contain the symbol the full ticker list is scanned.
        """
        last_exc = None
        for filtered in (True, False):
            try:
                rows = self._ticker_rows(symbol, market, filtered)
            except PriceSourceError as exc:
                last_exc = exc
                continue
            for row in rows:
                if str(row.get("symbol", "")).upper() != symbol.upper():
                    continue
                price = self._row_price(row, market)
                if price is not None and price > 0:
                    return price
        if last_exc:
            raise last_exc
        raise PriceSourceError(f"[{self.name}] no {market} ticker for {symbol}")

    def get_historical_price(self, symbol: str, ts: datetime, market: str = SPOT) -> float:
        """Close of the latest 1-minute candle inside the two minutes ending at ts."""
        start_ms, end_ms = compute_candle_window(ts)
        rows = self._candle_rows(symbol, market, start_ms, end_ms)
        try:
            df = normalize_candles(rows)
        except ValueError as exc:
            raise PriceSourceError(f"[{self.name}] bad candle payload for {symbol}: {exc}") from exc
        if df.empty:
            raise PriceSourceError(f"[{self.name}] no {market} candles for {symbol} at {ts}")
        return float(df["close"].iloc[-1])


def _to_float(value) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class BitgetClient(ExchangeClient):
    name = "Bitget"
    base_url = "https://api.bitget.com"
    PRODUCT_TYPE = "USDT-FUTURES"

    def _check_status(self, data: dict):
        if data.get("code") != "00000":
            raise PriceSourceError(f"[Bitget] API error {data.get('code')}: {data.get('msg')}")

    def _ticker_rows(self, symbol, market, filtered):
        if market == FUTURES:
            if filtered:
                path = "/api/v2/mix/market/ticker"
                params = {"productType": self.PRODUCT_TYPE, "symbol": symbol}
            else:
                path = "/api/v2/mix/market/tickers"
                params = {"productType": self.PRODUCT_TYPE}
        else:
            path = "/api/v2/spot/market/tickers"
            params = {"symbol": symbol} if filtered else {}
        data = self._request(path, params)
        rows = data.get("data") or []
        if isinstance(rows, dict):
            rows = [rows]
        return rows

    def _candle_rows(self, symbol, market, start_ms, end_ms):
        if market == FUTURES:
            path = "/api/v2/mix/market/candles"
            params = {
                "symbol": symbol,
                "productType": self.PRODUCT_TYPE,
                "granularity": "1m",
                "startTime": start_ms,
                "endTime": end_ms,
                "limit": 5,
            }
        else:
            path = "/api/v2/spot/market/candles"
            params = {
                "symbol": symbol,
                "granularity": "1min",
                "startTime": start_ms,
                "endTime": end_ms,
                "limit": 5,
            }
        data = self._request(path, params)
        return data.get("data") or []

    @staticmethod
    def _row_price(row, market):
        if market == FUTURES:
            mark = row.get("markPrice")
            if mark not in (None, "", "0"):
                return _to_float(mark)
        return _to_float(row.get("lastPr"))


class BybitClient(ExchangeClient):
    name = "Bybit"
    base_url = "https://api.bybit.com"

    @staticmethod
    def _category(market: str) -> str:
        return "linear" if market == FUTURES else "spot"

    def _check_status(self, data: dict):
        if data.get("retCode") != 0:
            raise PriceSourceError(f"[Bybit] API error {data.get('retCode')}: {data.get('retMsg')}")

    def _ticker_rows(self, symbol, market, filtered):
        params = {"category": self._category(market)}
        if filtered:
            params["symbol"] = symbol
        data = self._request("/v5/market/tickers", params)
        return (data.get("result") or {}).get("list") or []

    def _candle_rows(self, symbol, market, start_ms, end_ms):
        params = {
            "category": self._category(market),
            "symbol": symbol,
            "interval": "1",
            "start": start_ms,
            "end": end_ms,
            "limit": 5,
        }
        data = self._request("/v5/market/kline", params)
        return (data.get("result") or {}).get("list") or []

    @staticmethod
    def _row_price(row, market):
        if market == FUTURES:
            mark = row.get("markPrice")
            if mark not in (None, "", "0"):
                return _to_float(mark)
        return _to_float(row.get("lastPrice"))


class PriceGateway:
    """
    Redundant price lookup across exchanges and markets.

    Sources are tried in SOURCE_ORDER; a preferred (exchange, market) pair,
    when given, is moved to the front. Only when every source fails is
    PriceSourceError raised.
    """

    SOURCE_ORDER = [
        ("Bitget", SPOT),
        ("Bitget", FUTURES),
        ("Bybit", SPOT),
        ("Bybit", FUTURES),
    ]

    def __init__(self, clients: dict = None):
        if clients is None:
            clients = {"Bitget": BitgetClient(), "Bybit": BybitClient()}
        self.clients = clients

    def _ordered_sources(self, preferred_exchange=None, preferred_market=None) -> list:
        order = list(self.SOURCE_ORDER)
        if preferred_exchange and preferred_market:
            for source in order:
                if (source[0].lower() == preferred_exchange.lower()
                        and source[1] == preferred_market.lower()):
                    order.remove(source)
                    order.insert(0, source)
                    break
        return order

    def get_current_price(self, symbol: str, preferred_exchange: str = None,
                          preferred_market: str = None) -> PriceQuote:
        errors = []
        for exchange, market in self._ordered_sources(preferred_exchange, preferred_market):
            client = self.clients.get(exchange)
            if client is None:
                continue
            try:
                price = client.get_price(symbol, market)
                return PriceQuote(price=price, exchange=exchange, market=market)
            except PriceSourceError as exc:
                logger.debug("%s %s price failed for %s: %s", exchange, market, symbol, exc)
                errors.append(f"{exchange} {market}: {exc}")
        raise PriceSourceError(f"No price for {symbol} from any source ({'; '.join(errors)})")

    def get_historical_price(self, symbol: str, timestamp: datetime, preferred_exchange: str = None,
                             preferred_market: str = None) -> float:
        errors = []
        for exchange, market in self._ordered_sources(preferred_exchange, preferred_market):
            client = self.clients.get(exchange)
            if client is None:
                continue
            try:
                return client.get_historical_price(symbol, timestamp, market)
            except PriceSourceError as exc:
                logger.debug("%s %s history failed for %s: %s", exchange, market, symbol, exc)
                errors.append(f"{exchange} {market}: {exc}")
        raise PriceSourceError(f"No historical price for {symbol} at {timestamp} ({'; '.join(errors)})")

    def get_price_info(self, symbol: str, preferred_exchange: str = None,
                       preferred_market: str = None) -> PriceInfo:
        """
        Current quote plus percent changes over CHANGE_PERIODS.

        Historical lookups go to the source that served the current price;
        a failed lookup reads as a 0 change.
        """
        quote = self.get_current_price(symbol, preferred_exchange, preferred_market)
        now = utc_now()
        changes = {}
        for label, delta in CHANGE_PERIODS.items():
            try:
                past = self.get_historical_price(symbol, now - delta, quote.exchange, quote.market)
            except PriceSourceError:
                logger.info("No %s history for %s", label, symbol)
                changes[label] = 0.0
                continue
            changes[label] = (quote.price - past) / past * 100 if past else 0.0
        return PriceInfo(symbol=symbol, price=quote.price, exchange=quote.exchange,
                         market=quote.market, changes=changes)
