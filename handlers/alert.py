# handlers/alert.py
import asyncio
import functools
import logging
from telegram.ext import CommandHandler, ContextTypes
from telegram import Update
from services.alert_service import create_alert
from services.exchange_service import PriceSourceError
from utils.normalize_data import normalize_symbol, parse_number, format_price, format_change

logger = logging.getLogger(__name__)

PRICE_MODES = ("price", "p")
PERCENT_MODES = ("pct", "percent", "%")

USAGE = (
    "Usage: /add TICKER [price|pct] VALUE\n"
    "Examples:\n"
    "  /add btc 65000       -> alert near 65000\n"
    "  /add eth pct 5       -> alert at +5% from now\n"
    "  /add sol -3%         -> alert at -3% from now"
)


async def restart_monitor(context):
    """Make the price monitor pick up a changed symbol set right away."""
    monitor = context.bot_data.get("monitor")
    if monitor is None:
        return
    try:
        await monitor.restart()
    except Exception:
        logger.exception("Failed to restart price monitor")


async def fetch_quote(context, symbol):
    """Current quote from the shared gateway, or None when every source fails."""
    gateway = context.bot_data["gateway"]
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, functools.partial(gateway.get_current_price, symbol))
    except PriceSourceError as e:
        logger.warning("Quote for %s failed: %s", symbol, e)
        return None


def parse_alert_args(args):
    """
    Split /add arguments into (symbol, kind, value).

    kind is "price" or "percent"; a trailing % on the value implies percent.
    Raises ValueError on bad input.
    """
    if len(args) < 2:
        raise ValueError(USAGE)

    symbol = normalize_symbol(args[0])
    if len(args) >= 3:
        mode = args[1].strip().lower()
        raw_value = args[2].strip()
        if mode in PRICE_MODES:
            kind = "price"
        elif mode in PERCENT_MODES:
            kind = "percent"
        else:
            raise ValueError(f"Unknown alert type '{args[1]}'.\n{USAGE}")
    else:
        raw_value = args[1].strip()
        kind = "percent" if raw_value.endswith("%") else "price"

    value = parse_number(raw_value)
    if kind == "price" and value <= 0:
        raise ValueError("Target price must be positive")
    if kind == "percent" and value == 0:
        raise ValueError("Target percent must not be zero")
    return symbol, kind, value


async def add_alert_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """
    /add TICKER [price|pct] VALUE

    Price alerts fire within 0.5% of the target; percent alerts fire once
    the move from the current price reaches VALUE in its direction.
    """
    try:
        symbol, kind, value = parse_alert_args(context.args or [])
    except ValueError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    quote = await fetch_quote(context, symbol)
    if quote is None and kind == "percent":
        await update.message.reply_text(f"❌ Could not fetch price for {symbol}, percent alert not created.")
        return

    user = update.effective_user
    try:
        alert = create_alert(
            chat_id=update.effective_chat.id,
            user_id=user.id,
            username=user.username,
            symbol=symbol,
            target_price=value if kind == "price" else None,
            target_percent=value if kind == "percent" else None,
            base_price=quote.price if (quote and kind == "percent") else None,
            exchange=quote.exchange if quote else None,
            market=quote.market if quote else None,
        )
    except ValueError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return
    except Exception as e:
        logger.exception("Failed to create alert")
        await update.message.reply_text(f"⚠️ Failed to create alert: {e}")
        return

    if kind == "percent":
        target = f"{format_change(alert.target_percent)} from `{format_price(alert.base_price)}`"
    else:
        target = f"`{format_price(alert.target_price)}`"
    lines = [f"✅ Alert saved: `{alert.symbol}` {target}", f"Alert ID: `{alert.id}`"]
    if quote:
        lines.append(f"Now: `{format_price(quote.price)}` ({quote.exchange} {quote.market})")
    else:
        lines.append("⚠️ Price is unavailable right now; the alert will be checked once it is.")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")

    await restart_monitor(context)


handler = CommandHandler("add", add_alert_command)
