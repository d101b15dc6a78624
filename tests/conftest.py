# tests/conftest.py
import pytest
from telegram.error import TelegramError

from services.db_service import init_db
from services.exchange_service import PriceQuote, PriceSourceError


@pytest.fixture
def db():
    """Fresh in-memory database for each test."""
    engine = init_db("sqlite://")
    yield engine
    engine.dispose()


class DummyBot:
    """A tiny async-capable bot mock that records messages sent."""
    def __init__(self, fail=False):
        self.sent_messages = []
        self.fail = fail

    async def send_message(self, chat_id=None, text=None, **kwargs):
        if self.fail:
            raise TelegramError("chat not found")
        # Save message (chat_id, text) for assertions
        self.sent_messages.append((chat_id, text))


class FakeGateway:
    """
    Stand-in for PriceGateway.

    prices: symbol -> float or Exception; history: symbol -> float or Exception.
    Every call is recorded in .calls.
    """
    def __init__(self, prices=None, history=None, exchange="Bitget", market="spot"):
        self.prices = dict(prices or {})
        self.history = dict(history or {})
        self.exchange = exchange
        self.market = market
        self.calls = []

    def get_current_price(self, symbol, preferred_exchange=None, preferred_market=None):
        self.calls.append(("current", symbol, preferred_exchange, preferred_market))
        value = self.prices.get(symbol)
        if value is None:
            raise PriceSourceError(f"no price for {symbol}")
        if isinstance(value, Exception):
            raise value
        return PriceQuote(price=value, exchange=self.exchange, market=self.market)

    def get_historical_price(self, symbol, timestamp, preferred_exchange=None, preferred_market=None):
        self.calls.append(("history", symbol, timestamp, preferred_exchange, preferred_market))
        value = self.history.get(symbol)
        if value is None:
            raise PriceSourceError(f"no history for {symbol}")
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture
def bot():
    return DummyBot()


@pytest.fixture
def notifier(bot):
    from services.notifier import TelegramNotifier
    return TelegramNotifier(bot)
