# handlers/price.py
import asyncio
import functools
import logging
from telegram import Update
from telegram.ext import CommandHandler, ContextTypes
from services.exchange_service import PriceSourceError
from services.symbol_registry import get_user_symbols, get_preferred_source
from utils.normalize_data import normalize_symbol, format_price, format_change

logger = logging.getLogger(__name__)


async def price_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /p TICKER: price plus 15m/1h/4h/24h changes."""
    if not context.args:
        await update.message.reply_text("⚠️ Please provide a ticker, e.g., /p btc")
        return

    symbol = normalize_symbol(context.args[0])
    gateway = context.bot_data["gateway"]
    loop = asyncio.get_running_loop()

    try:
        exchange, market = get_preferred_source(symbol)
        info = await loop.run_in_executor(
            None, functools.partial(gateway.get_price_info, symbol, exchange, market)
        )
    except PriceSourceError:
        await update.message.reply_text(f"❌ Could not fetch price for '{symbol}'. Try again later.")
        return
    except Exception as e:
        logger.exception("Error in /p handler")
        await update.message.reply_text(f"⚠️ Error fetching price: {e}")
        return

    changes = "\n".join(f"{label}: {format_change(pct)}" for label, pct in info.changes.items())
    await update.message.reply_text(
        f"💹 {info.symbol}: `{format_price(info.price)}`\n"
        f"{changes}\n"
        f"_{info.exchange} {info.market}_",
        parse_mode="Markdown"
    )


async def all_prices_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /allp: current price of every symbol this chat watches."""
    symbols = get_user_symbols(update.effective_chat.id)
    if not symbols:
        await update.message.reply_text("📭 You are not watching any symbols.")
        return

    gateway = context.bot_data["gateway"]
    loop = asyncio.get_running_loop()
    lines = []
    for symbol in symbols:
        exchange, market = get_preferred_source(symbol)
        try:
            quote = await loop.run_in_executor(
                None, functools.partial(gateway.get_current_price, symbol, exchange, market)
            )
            lines.append(f"{symbol}: `{format_price(quote.price)}`")
        except PriceSourceError:
            lines.append(f"{symbol}: N/A")

    await update.message.reply_text("💹 Prices\n" + "\n".join(lines), parse_mode="Markdown")


handler = CommandHandler("p", price_command)
all_prices_handler = CommandHandler("allp", all_prices_command)
