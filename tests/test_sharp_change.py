# tests/test_sharp_change.py
import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

import services.sharp_change as sharp_change
from conftest import FakeGateway
from models.alert_trigger import TriggerType
from services.sharp_change import SharpChangeDetector

T0 = datetime(2024, 1, 1, 12, 0, 0)


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, minutes):
        self.now = self.now + timedelta(minutes=minutes)


@pytest.fixture
def log_mock(monkeypatch):
    mock = MagicMock()
    monkeypatch.setattr(sharp_change, "log_trigger", mock)
    return mock


def _detector(gateway, clock, chats=(1, 2)):
    return SharpChangeDetector(
        gateway,
        threshold_pct=0.2,
        interval_min=15,
        cooldown_min=5,
        now_fn=clock,
        source_resolver=lambda symbol: ("Bybit", "spot"),
        chats_resolver=lambda symbol: list(chats),
    )


@pytest.mark.asyncio
async def test_fires_against_historical_baseline(bot, notifier, log_mock):
    gateway = FakeGateway(history={"BTCUSDT": 100.0})
    clock = FakeClock(T0)
    detector = _detector(gateway, clock)

    assert not await detector.check("BTCUSDT", 100.1, notifier)
    assert await detector.check("BTCUSDT", 100.3, notifier)

    assert [cid for cid, _ in bot.sent_messages] == [1, 2]
    assert "Sharp move on BTCUSDT" in bot.sent_messages[0][1]
    assert log_mock.call_count == 2
    assert log_mock.call_args_list[0].args == ("BTCUSDT", 100.3, 1, TriggerType.SHARP_CHANGE)

    # historical price looked up one lookback ago, preferred source first
    _, symbol, ts, exchange, market = gateway.calls[0]
    assert ts == T0 - timedelta(minutes=15)
    assert (exchange, market) == ("Bybit", "spot")


@pytest.mark.asyncio
async def test_cooldown_then_rebased_on_last_notification(bot, notifier, log_mock):
    gateway = FakeGateway(history={"BTCUSDT": 100.0})
    clock = FakeClock(T0)
    detector = _detector(gateway, clock, chats=(1,))

    assert await detector.check("BTCUSDT", 100.3, notifier)

    # big move but still inside the cooldown
    clock.advance(2)
    assert not await detector.check("BTCUSDT", 101.0, notifier)

    # cooldown over; baseline is now 100.3, so 100.4 is not sharp
    clock.advance(4)
    assert not await detector.check("BTCUSDT", 100.4, notifier)

    clock.advance(1)
    assert await detector.check("BTCUSDT", 100.6, notifier)
    assert detector.last_notification("BTCUSDT") == (clock.now, 100.6)
    assert len(bot.sent_messages) == 2

    # no history lookups while the last notification is inside the lookback
    assert len([c for c in gateway.calls if c[0] == "history"]) == 1


@pytest.mark.asyncio
async def test_old_notification_falls_back_to_history(bot, notifier, log_mock):
    gateway = FakeGateway(history={"BTCUSDT": 100.0})
    clock = FakeClock(T0)
    detector = _detector(gateway, clock, chats=(1,))

    assert await detector.check("BTCUSDT", 100.3, notifier)
    clock.advance(30)
    # against 100.3 this would be a drop; against the 100.0 history it is flat
    assert not await detector.check("BTCUSDT", 100.05, notifier)
    assert len([c for c in gateway.calls if c[0] == "history"]) == 2


@pytest.mark.asyncio
async def test_missing_history_skips_check(bot, notifier, log_mock):
    detector = _detector(FakeGateway(), FakeClock(T0))

    assert not await detector.check("BTCUSDT", 500.0, notifier)
    assert bot.sent_messages == []
    log_mock.assert_not_called()


@pytest.mark.asyncio
async def test_negative_moves_fire_too(bot, notifier, log_mock):
    detector = _detector(FakeGateway(history={"ETHUSDT": 100.0}), FakeClock(T0), chats=(3,))

    assert await detector.check("ETHUSDT", 99.0, notifier)
    assert "-1.00%" in bot.sent_messages[0][1]


@pytest.mark.asyncio
async def test_watcher_lookup_failure_leaves_no_cooldown(bot, notifier, log_mock):
    gateway = FakeGateway(history={"BTCUSDT": 100.0})
    state = {"broken": True}

    def chats(symbol):
        if state["broken"]:
            raise OperationalError("SELECT", {}, Exception("locked"))
        return [1]

    detector = SharpChangeDetector(
        gateway, threshold_pct=0.2, interval_min=15, cooldown_min=5,
        now_fn=FakeClock(T0), source_resolver=lambda symbol: (None, None), chats_resolver=chats,
    )

    assert not await detector.check("BTCUSDT", 101.0, notifier)
    assert detector.last_notification("BTCUSDT") is None
    assert bot.sent_messages == []

    # the very next tick is not muted by a notification that never went out
    state["broken"] = False
    assert await detector.check("BTCUSDT", 101.0, notifier)
    assert [cid for cid, _ in bot.sent_messages] == [1]
