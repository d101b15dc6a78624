# utils/normalize_data.py

import pandas as pd

# Quote currencies that make a ticker complete as typed
STABLE_QUOTES = ("USDT", "USDC", "BUSD", "USD", "DAI", "UST")


def normalize_symbol(symbol: str) -> str:
    """
    Normalize a user-typed ticker into an exchange symbol.
    - Removes spaces, slashes and dashes
    - Converts to uppercase
    - Appends USDT unless the ticker already ends in a stable quote

    Args:
        symbol (str): raw symbol like "btc", "eth/usdt", "sol usdc"

    Returns:
        str: normalized symbol (e.g., "BTCUSDT")
    """
    if not symbol:
        return ""
    s = symbol.replace(" ", "").replace("/", "").replace("-", "").upper()
    if not s:
        return ""
    if s.endswith(STABLE_QUOTES):
        return s
    return s + "USDT"


def parse_number(raw) -> float:
    """Parse a user number, accepting ',' as the decimal separator."""
    if raw is None:
        raise ValueError("Missing number")
    text = str(raw).strip().replace(",", ".")
    if text.endswith("%"):
        text = text[:-1]
    try:
        return float(text)
    except ValueError as exc:
        raise ValueError(f"Invalid number '{raw}'") from exc


def normalize_candles(rows) -> pd.DataFrame:
    """
    Normalize exchange kline rows into a Pandas DataFrame.

    Bitget and Bybit both return rows shaped like
    [timestamp_ms, open, high, low, close, ...] as strings; Bybit lists them
    newest first, Bitget oldest first.

    Returns:
        pd.DataFrame: columns ['datetime', 'open', 'high', 'low', 'close'],
        sorted oldest first, rows without a close dropped.
    """
    if not isinstance(rows, list):
        raise ValueError("Candle rows must be a list")

    parsed = [r for r in rows if isinstance(r, (list, tuple)) and len(r) >= 5]
    if not parsed:
        return pd.DataFrame(columns=["datetime", "open", "high", "low", "close"])

    df = pd.DataFrame({
        "datetime": pd.to_datetime(pd.to_numeric([r[0] for r in parsed], errors="coerce"), unit="ms", utc=True),
        "open": pd.to_numeric([r[1] for r in parsed], errors="coerce"),
        "high": pd.to_numeric([r[2] for r in parsed], errors="coerce"),
        "low": pd.to_numeric([r[3] for r in parsed], errors="coerce"),
        "close": pd.to_numeric([r[4] for r in parsed], errors="coerce"),
    })

    df.dropna(subset=["datetime", "close"], inplace=True)
    df.sort_values("datetime", inplace=True)
    df.reset_index(drop=True, inplace=True)

    return df


def format_price(price) -> str:
    """Shortest readable form of a price, never in exponent notation."""
    if price is None:
        return "N/A"
    value = float(price)
    text = repr(value)
    if "e" in text or "E" in text:
        text = f"{value:.12f}".rstrip("0").rstrip(".")
    if text.endswith(".0"):
        text = text[:-2]
    return text


def format_change(pct) -> str:
    """Signed percent with two decimals: +1.23%, -0.50%, 0.00%."""
    if pct is None or pct == 0:
        return "0.00%"
    if pct > 0:
        return f"+{pct:.2f}%"
    return f"{pct:.2f}%"
