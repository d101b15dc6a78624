# tests/test_handlers.py
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from conftest import FakeGateway
from handlers import alert, history, price, remind, start
from handlers.alert import parse_alert_args
from handlers.calls import (
    parse_open_args,
    open_call_command,
    close_call_command,
    stop_loss_command,
    rush_command,
    my_calls_command,
    all_calls_command,
    call_stats_command,
    my_call_stats_command,
    my_trades_command,
)
from handlers.listalerts import delete_alert_command, clear_alerts_command, list_alerts_command
from models.call import CallDirection, CallStatus
from services.alert_service import create_alert, list_alerts_by_chat
from services.call_service import list_open_calls_by_user, get_call, open_call, close_call
from services.user_service import get_or_create_deposit


class DummyMessage:
    def __init__(self):
        self.replies = []

    async def reply_text(self, text, **kwargs):
        self.replies.append(text)


def _update(chat_id=1, user_id=7):
    return SimpleNamespace(
        message=DummyMessage(),
        effective_chat=SimpleNamespace(id=chat_id),
        effective_user=SimpleNamespace(id=user_id, username="trader"),
    )


def _context(args, gateway=None, monitor=None, job_queue=None):
    bot_data = {"gateway": gateway or FakeGateway()}
    if monitor is not None:
        bot_data["monitor"] = monitor
    return SimpleNamespace(args=args, bot_data=bot_data, job_queue=job_queue)


def _monitor():
    monitor = MagicMock()
    monitor.restart = AsyncMock()
    monitor.get_cached_price = MagicMock(return_value=None)
    return monitor


def test_parse_alert_args():
    assert parse_alert_args(["btc", "65000"]) == ("BTCUSDT", "price", 65000.0)
    assert parse_alert_args(["eth", "pct", "-5"]) == ("ETHUSDT", "percent", -5.0)
    assert parse_alert_args(["sol", "3%"]) == ("SOLUSDT", "percent", 3.0)
    for bad in (["btc"], ["btc", "abc"], ["btc", "pct", "0"], ["btc", "foo", "1"], ["btc", "-1"]):
        with pytest.raises(ValueError):
            parse_alert_args(bad)


def test_parse_open_args():
    assert parse_open_args(["btc"]) == ("BTCUSDT", CallDirection.LONG, 0.0, None)
    assert parse_open_args(["eth", "short", "10%", "sl", "3500"]) == (
        "ETHUSDT", CallDirection.SHORT, 10.0, 3500.0
    )
    with pytest.raises(ValueError):
        parse_open_args(["btc", "sl"])
    with pytest.raises(ValueError):
        parse_open_args([])


@pytest.mark.asyncio
async def test_add_price_alert_restarts_monitor(db):
    update = _update()
    monitor = _monitor()
    gateway = FakeGateway(prices={"BTCUSDT": 64000.0}, exchange="Bybit", market="futures")

    await alert.add_alert_command(update, _context(["btc", "65000"], gateway, monitor))

    alerts = list_alerts_by_chat(1)
    assert len(alerts) == 1
    assert alerts[0].target_price == 65000.0
    assert (alerts[0].exchange, alerts[0].market) == ("Bybit", "futures")
    assert "Alert saved" in update.message.replies[0]
    monitor.restart.assert_awaited_once()


@pytest.mark.asyncio
async def test_add_percent_alert_captures_base_price(db):
    update = _update()
    gateway = FakeGateway(prices={"ETHUSDT": 3000.0})

    await alert.add_alert_command(update, _context(["eth", "pct", "5"], gateway, _monitor()))

    saved = list_alerts_by_chat(1)[0]
    assert saved.target_percent == 5.0
    assert saved.base_price == 3000.0


@pytest.mark.asyncio
async def test_add_percent_alert_needs_a_price(db):
    update = _update()
    monitor = _monitor()

    await alert.add_alert_command(update, _context(["eth", "-5%"], FakeGateway(), monitor))

    assert list_alerts_by_chat(1) == []
    assert "Could not fetch price" in update.message.replies[0]
    monitor.restart.assert_not_awaited()


@pytest.mark.asyncio
async def test_add_with_bad_args_replies_usage(db):
    update = _update()
    await alert.add_alert_command(update, _context(["btc"]))
    assert "Usage" in update.message.replies[0]


@pytest.mark.asyncio
async def test_delete_and_clear_alerts(db):
    mine = create_alert(chat_id=1, user_id=7, symbol="btc", target_price=1)
    create_alert(chat_id=1, user_id=7, symbol="eth", target_price=2)
    monitor = _monitor()

    update = _update()
    await delete_alert_command(update, _context([mine.id.upper()], monitor=monitor))
    assert "deleted" in update.message.replies[0]
    assert len(list_alerts_by_chat(1)) == 1

    update = _update()
    await delete_alert_command(update, _context(["ffffffff"], monitor=monitor))
    assert "not found" in update.message.replies[0]

    update = _update()
    await list_alerts_command(update, _context([]))
    assert "ETHUSDT" in update.message.replies[0]

    update = _update()
    await clear_alerts_command(update, _context([], monitor=monitor))
    assert "Deleted 1" in update.message.replies[0]
    assert monitor.restart.await_count == 2


@pytest.mark.asyncio
async def test_open_partial_close_and_rush(db):
    gateway = FakeGateway(prices={"BTCUSDT": 100.0, "ETHUSDT": 10.0})
    monitor = _monitor()

    await open_call_command(_update(), _context(["btc", "long", "10"], gateway, monitor))
    await open_call_command(_update(), _context(["eth", "short"], gateway, monitor))
    calls = {c.symbol: c for c in list_open_calls_by_user(7)}
    assert set(calls) == {"BTCUSDT", "ETHUSDT"}
    assert monitor.restart.await_count == 2

    gateway.prices["BTCUSDT"] = 110.0
    update = _update()
    await close_call_command(update, _context([calls["BTCUSDT"].id, "40"], gateway, monitor))
    assert "Remaining size: 60%" in update.message.replies[0]
    assert get_or_create_deposit(7).current_deposit == pytest.approx(100.4)

    update = _update()
    await my_calls_command(update, _context([], gateway, monitor))
    assert "+10.00%" in update.message.replies[0]

    update = _update()
    await rush_command(update, _context([], gateway, monitor))
    assert list_open_calls_by_user(7) == []
    assert get_call(calls["ETHUSDT"].id).status == CallStatus.CLOSED


@pytest.mark.asyncio
async def test_close_foreign_call_is_rejected(db):
    gateway = FakeGateway(prices={"BTCUSDT": 100.0})
    await open_call_command(_update(user_id=7), _context(["btc"], gateway))
    call = list_open_calls_by_user(7)[0]

    update = _update(user_id=8)
    await close_call_command(update, _context([call.id], gateway))
    assert "not found" in update.message.replies[0]
    assert get_call(call.id).status == CallStatus.OPEN


@pytest.mark.asyncio
async def test_stop_loss_defaults_to_entry(db):
    gateway = FakeGateway(prices={"BTCUSDT": 100.0})
    await open_call_command(_update(), _context(["btc"], gateway))
    call = list_open_calls_by_user(7)[0]

    await stop_loss_command(_update(), _context([call.id]))
    assert get_call(call.id).stop_loss_price == 100.0

    await stop_loss_command(_update(), _context([call.id, "0"]))
    assert get_call(call.id).stop_loss_price is None


@pytest.mark.asyncio
async def test_price_command_shows_changes(db):
    gateway = MagicMock()
    gateway.get_price_info.return_value = SimpleNamespace(
        symbol="BTCUSDT", price=65000.0, exchange="Bitget", market="spot",
        changes={"15m": 0.5, "1h": -1.0, "4h": 0.0, "24h": 2.0},
    )
    update = _update()

    await price.price_command(update, _context(["btc"], gateway))

    text = update.message.replies[0]
    assert "BTCUSDT" in text and "65000" in text
    assert "1h: -1.00%" in text
    gateway.get_price_info.assert_called_once_with("BTCUSDT", None, None)


@pytest.mark.asyncio
async def test_history_and_remind_commands(db):
    update = _update()
    await history.history_command(update, _context([]))
    assert "No triggers" in update.message.replies[0]

    job_queue = MagicMock()
    update = _update()
    await remind.remind_command(update, _context(["btc", "2h", "check", "levels"], job_queue=job_queue))
    assert "Reminder set for BTCUSDT" in update.message.replies[0]
    assert job_queue.run_once.call_args.kwargs["data"]["text"] == "⏰ Look at chart BTCUSDT, check levels"

    update = _update()
    await remind.remind_command(update, _context(["btc", "soon"], job_queue=job_queue))
    assert "Invalid duration" in update.message.replies[0]


@pytest.mark.asyncio
async def test_all_calls_sorted_by_live_pnl(db):
    open_call(user_id=7, chat_id=1, symbol="btc", entry_price=100.0, username="trader")
    open_call(user_id=8, chat_id=1, symbol="eth", entry_price=10.0, direction=CallDirection.SHORT)
    open_call(user_id=9, chat_id=1, symbol="sol", entry_price=1.0)
    gateway = FakeGateway(prices={"BTCUSDT": 105.0, "ETHUSDT": 8.0})

    update = _update()
    await all_calls_command(update, _context([], gateway))

    text = update.message.replies[0]
    assert text.index("User_8 SHORT ETHUSDT") < text.index("@trader LONG BTCUSDT")
    assert "+20.00%" in text and "+5.00%" in text
    assert "SOLUSDT" not in text
    assert "1 call(s) hidden" in text


@pytest.mark.asyncio
async def test_call_stats_leaderboard_includes_open_only_users(db):
    win = open_call(user_id=7, chat_id=1, symbol="btc", entry_price=100.0, deposit_percent=10, username="trader")
    close_call(win.id, 7, 110.0)
    open_call(user_id=8, chat_id=1, symbol="eth", entry_price=10.0, deposit_percent=20, username="newbie")
    open_call(user_id=9, chat_id=1, symbol="eth", entry_price=10.0)
    gateway = FakeGateway(prices={"ETHUSDT": 11.0})

    update = _update()
    await call_stats_command(update, _context([], gateway))

    text = update.message.replies[0]
    assert text.index("@trader") < text.index("@newbie")
    assert "Total PnL: +10.00%" in text
    assert "Deposit: 101.00 (+1.00%)" in text
    assert "Open: 20% of deposit, +2.00% unrealized" in text
    assert "User_9" not in text


@pytest.mark.asyncio
async def test_call_stats_without_calls(db):
    update = _update()
    await call_stats_command(update, _context([]))
    assert "No calls" in update.message.replies[0]


@pytest.mark.asyncio
async def test_my_call_stats_and_trades(db):
    win = open_call(user_id=7, chat_id=1, symbol="btc", entry_price=100.0, deposit_percent=10)
    close_call(win.id, 7, 120.0)
    loss = open_call(user_id=7, chat_id=1, symbol="btc", entry_price=100.0, deposit_percent=10)
    close_call(loss.id, 7, 90.0)
    open_call(user_id=7, chat_id=1, symbol="eth", entry_price=10.0, deposit_percent=5)
    monitor = _monitor()
    monitor.get_cached_price = MagicMock(side_effect=lambda symbol: 9.0 if symbol == "ETHUSDT" else None)

    update = _update()
    await my_call_stats_command(update, _context([], FakeGateway(), monitor))
    text = update.message.replies[0]
    assert "Calls: 2 closed / 3 total, Winrate: 50.0%" in text
    assert "Best: +20.00%, Worst: -10.00%" in text
    assert "Open: 5% of deposit, -0.50% unrealized" in text

    update = _update()
    await my_trades_command(update, _context([]))
    text = update.message.replies[0]
    assert "BTCUSDT\nTrades: 2\nWinrate: 50.0%\nPnL: +10.00%" in text
    assert "ETHUSDT" not in text


@pytest.mark.asyncio
async def test_stats_and_chat_id(db):
    create_alert(chat_id=1, user_id=7, symbol="btc", target_price=1)
    create_alert(chat_id=1, user_id=7, symbol="eth", target_price=2)
    create_alert(chat_id=1, user_id=7, symbol="eth", target_price=3)

    update = _update()
    await history.stats_command(update, _context([]))
    text = update.message.replies[0]
    assert "1. ETHUSDT: 2 active alerts, 0 triggers" in text
    assert "Total active alerts: 3" in text
    assert "Symbols tracked: 2" in text

    update = _update(chat_id=-100, user_id=7)
    await start.chat_id_command(update, _context([]))
    assert update.message.replies[0] == "Chat ID: -100\nUser ID: 7\nUsername: trader"
