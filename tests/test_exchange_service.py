# tests/test_exchange_service.py
import pytest
import requests
from datetime import datetime
from unittest.mock import patch, MagicMock

from services.exchange_service import (
    BitgetClient,
    BybitClient,
    PriceGateway,
    PriceSourceError,
    SPOT,
    FUTURES,
)


def _resp(payload):
    mock_resp = MagicMock()
    mock_resp.json.return_value = payload
    mock_resp.raise_for_status.return_value = None
    return mock_resp


def _bitget(rows):
    return _resp({"code": "00000", "msg": "success", "data": rows})


def _bybit(rows):
    return _resp({"retCode": 0, "retMsg": "OK", "result": {"list": rows}})


def test_bitget_spot_price():
    with patch("services.exchange_service.requests.get", return_value=_bitget(
        [{"symbol": "BTCUSDT", "lastPr": "65000.5"}]
    )) as mock_get:
        price = BitgetClient().get_price("BTCUSDT", SPOT)

    assert price == 65000.5
    url = mock_get.call_args.args[0]
    assert url == "https://api.bitget.com/api/v2/spot/market/tickers"
    assert mock_get.call_args.kwargs["params"] == {"symbol": "BTCUSDT"}


def test_filtered_ticker_failure_falls_back_to_full_list():
    responses = [
        _resp({"code": "40034", "msg": "Parameter does not exist"}),
        _bitget([
            {"symbol": "ETHUSDT", "lastPr": "3000"},
            {"symbol": "BTCUSDT", "lastPr": "65000"},
        ]),
    ]
    with patch("services.exchange_service.requests.get", side_effect=responses) as mock_get:
        price = BitgetClient().get_price("btcusdt", SPOT)

    assert price == 65000.0
    assert mock_get.call_args_list[1].kwargs["params"] == {}


def test_futures_prefer_mark_price():
    with patch("services.exchange_service.requests.get", return_value=_bitget(
        [{"symbol": "BTCUSDT", "lastPr": "65000", "markPrice": "64990"}]
    )):
        assert BitgetClient().get_price("BTCUSDT", FUTURES) == 64990.0

    with patch("services.exchange_service.requests.get", return_value=_bybit(
        [{"symbol": "BTCUSDT", "lastPrice": "65000", "markPrice": "0"}]
    )) as mock_get:
        assert BybitClient().get_price("BTCUSDT", FUTURES) == 65000.0
    assert mock_get.call_args.kwargs["params"]["category"] == "linear"


def test_gateway_falls_back_in_fixed_order():
    def fake_get(url, params=None, timeout=None):
        if "bitget" in url:
            raise requests.ConnectionError("bitget down")
        return _bybit([{"symbol": "BTCUSDT", "lastPrice": "64000"}])

    with patch("services.exchange_service.requests.get", side_effect=fake_get) as mock_get:
        quote = PriceGateway().get_current_price("BTCUSDT")

    assert (quote.price, quote.exchange, quote.market) == (64000.0, "Bybit", "spot")
    urls = [c.args[0] for c in mock_get.call_args_list]
    # spot filtered + full, futures filtered + full, then Bybit spot
    assert urls[:4] == [
        "https://api.bitget.com/api/v2/spot/market/tickers",
        "https://api.bitget.com/api/v2/spot/market/tickers",
        "https://api.bitget.com/api/v2/mix/market/ticker",
        "https://api.bitget.com/api/v2/mix/market/tickers",
    ]
    assert urls[4] == "https://api.bybit.com/v5/market/tickers"


def test_gateway_tries_preferred_source_first():
    gateway = PriceGateway()
    assert gateway._ordered_sources("bybit", "futures") == [
        ("Bybit", FUTURES), ("Bitget", SPOT), ("Bitget", FUTURES), ("Bybit", SPOT),
    ]
    assert gateway._ordered_sources("Kraken", "spot") == PriceGateway.SOURCE_ORDER
    assert gateway._ordered_sources(None, None) == PriceGateway.SOURCE_ORDER

    with patch("services.exchange_service.requests.get", return_value=_bybit(
        [{"symbol": "BTCUSDT", "lastPrice": "1", "markPrice": "2"}]
    )) as mock_get:
        quote = gateway.get_current_price("BTCUSDT", "Bybit", "futures")
    assert (quote.price, quote.exchange, quote.market) == (2.0, "Bybit", "futures")
    assert mock_get.call_count == 1


def test_gateway_raises_when_every_source_fails():
    with patch("services.exchange_service.requests.get", side_effect=requests.Timeout("slow")):
        with pytest.raises(PriceSourceError):
            PriceGateway().get_current_price("BTCUSDT")


def test_historical_price_uses_latest_candle():
    # Bybit lists klines newest first
    rows = [
        ["1704110460000", "101", "102", "100", "101.5", "10"],
        ["1704110400000", "100", "101", "99", "100.5", "10"],
    ]
    ts = datetime(2024, 1, 1, 12, 1, 0)
    with patch("services.exchange_service.requests.get", return_value=_bybit(rows)) as mock_get:
        price = BybitClient().get_historical_price("BTCUSDT", ts, SPOT)

    assert price == 101.5
    params = mock_get.call_args.kwargs["params"]
    assert params["end"] - params["start"] == 120000
    assert params["interval"] == "1"


def test_historical_empty_window_falls_back():
    def fake_get(url, params=None, timeout=None):
        if "bitget" in url:
            return _bitget([])
        return _bybit([["1704110400000", "1", "1", "1", "42.0", "0"]])

    with patch("services.exchange_service.requests.get", side_effect=fake_get):
        price = PriceGateway().get_historical_price("BTCUSDT", datetime(2024, 1, 1, 12, 0))
    assert price == 42.0


class FakeClient:
    def __init__(self, price, history):
        self.price = price
        self.history = history

    def get_price(self, symbol, market=SPOT):
        return self.price

    def get_historical_price(self, symbol, ts, market=SPOT):
        if self.history is None:
            raise PriceSourceError("no candles")
        return self.history


def test_price_info_changes():
    gateway = PriceGateway(clients={"Bitget": FakeClient(110.0, 100.0)})
    info = gateway.get_price_info("BTCUSDT")

    assert info.price == 110.0
    assert (info.exchange, info.market) == ("Bitget", "spot")
    assert set(info.changes) == {"15m", "1h", "4h", "24h"}
    assert info.changes["1h"] == pytest.approx(10.0)


def test_price_info_missing_history_reads_zero():
    gateway = PriceGateway(clients={"Bybit": FakeClient(50.0, None)})
    info = gateway.get_price_info("ETHUSDT")

    assert info.exchange == "Bybit"
    assert info.changes == {"15m": 0.0, "1h": 0.0, "4h": 0.0, "24h": 0.0}
