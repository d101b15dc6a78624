# tests/test_symbol_registry.py
from services.alert_service import create_alert, delete_alert, delete_all_alerts
from services.call_service import open_call, close_call
from services.symbol_registry import (
    get_all_monitored_symbols,
    get_user_symbols,
    get_symbol_chats,
    get_preferred_source,
    has_subscribers,
)


def test_union_of_alerts_and_open_calls_sorted(db):
    create_alert(chat_id=1, user_id=1, symbol="eth", target_price=3000)
    create_alert(chat_id=2, user_id=2, symbol="btc", target_price=60000)
    create_alert(chat_id=2, user_id=2, symbol="btc", target_percent=5, base_price=60000)
    open_call(user_id=1, chat_id=1, symbol="sol", entry_price=20)
    closed = open_call(user_id=1, chat_id=1, symbol="xrp", entry_price=1)
    close_call(closed.id, 1, 1.1)

    assert get_all_monitored_symbols() == ["BTCUSDT", "ETHUSDT", "SOLUSDT"]
    assert get_user_symbols(1) == ["ETHUSDT", "SOLUSDT"]
    assert get_user_symbols(2) == ["BTCUSDT"]


def test_symbol_disappears_with_last_reference(db):
    alert = create_alert(chat_id=1, user_id=1, symbol="ada", target_price=1)
    assert get_all_monitored_symbols() == ["ADAUSDT"]

    assert delete_alert(1, alert.id)
    assert get_all_monitored_symbols() == []
    assert not has_subscribers("ADAUSDT")


def test_delete_alert_only_for_owner(db):
    alert = create_alert(chat_id=1, user_id=1, symbol="ada", target_price=1)
    assert not delete_alert(2, alert.id)
    create_alert(chat_id=1, user_id=1, symbol="dot", target_price=5)
    assert delete_all_alerts(1) == 2
    assert get_all_monitored_symbols() == []


def test_symbol_chats_are_deduplicated(db):
    create_alert(chat_id=7, user_id=7, symbol="btc", target_price=1)
    create_alert(chat_id=7, user_id=7, symbol="btc", target_price=2)
    open_call(user_id=7, chat_id=7, symbol="btc", entry_price=10)
    open_call(user_id=8, chat_id=8, symbol="btc", entry_price=10)

    assert get_symbol_chats("BTCUSDT") == [7, 8]
    assert get_symbol_chats("ETHUSDT") == []


def test_preferred_source_alert_then_call(db):
    assert get_preferred_source("BTCUSDT") == (None, None)

    open_call(user_id=1, chat_id=1, symbol="btc", entry_price=10, exchange="Bybit", market="futures")
    assert get_preferred_source("BTCUSDT") == ("Bybit", "futures")

    create_alert(chat_id=1, user_id=1, symbol="btc", target_price=1)  # no source recorded
    create_alert(chat_id=1, user_id=1, symbol="btc", target_price=2, exchange="Bitget", market="spot")
    assert get_preferred_source("BTCUSDT") == ("Bitget", "spot")
