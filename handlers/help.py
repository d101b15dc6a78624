from telegram import Update
from telegram.ext import CommandHandler, ContextTypes
from telegram.constants import ParseMode

async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handles the /help command."""
    await update.message.reply_text(
        "*📌 Available Commands*\n\n"

        "*💬 General*\n"
        "`/start` — Start the bot\n"
        "`/help` — Show this help message\n"
        "`/chatid` — Show chat and user ids\n\n"

        "*💲 Price*\n"
        "`/p <ticker>` — Current price with 15m / 1h / 4h / 24h change\n"
        "`/allp` — Prices of everything you watch\n"
        "_Example_: `/p btc`\n\n"

        "*🚨 Alerts*\n"
        "`/add <ticker> <price>` — Alert when price comes within 0.5% of the target\n"
        "`/add <ticker> pct <percent>` — Alert on a move from the current price\n"
        "_Examples_: `/add btc 65000`, `/add eth pct -5`, `/add sol 3%`\n"
        "`/alerts` — List alerts (with ❌ Delete buttons)\n"
        "`/del <id>` — Delete one alert\n"
        "`/clearallalerts` — Delete all your alerts\n"
        "`/history [n]` — Last triggered alerts (max 50)\n"
        "`/stats` — Active alerts and triggers per ticker\n\n"

        "*📝 Calls (paper trading)*\n"
        "`/ocall <ticker> [long|short] [deposit%] [sl <price>]` — Open a call at the current price\n"
        "`/ccall <id> [size%]` — Close a call fully or partially\n"
        "`/sl <id> [price]` — Set stop-loss (no price = entry, 0 = remove)\n"
        "`/mycalls` — Open calls with live P&L\n"
        "`/rush` — Close all open calls\n"
        "`/deposit [reset [amount]]` — Show or reset your deposit\n"
        "`/allcalls` — Everyone's open calls by live P&L\n"
        "`/callstats` — Leaderboard of the last 90 days\n"
        "`/mycallstats` — Your win rate, best and worst calls\n"
        "`/mytrades` — Your closed calls per ticker\n\n"

        "*⏰ Reminders*\n"
        "`/remind <ticker> <10m|2h|3d> [text]` — Remind me to look at a chart\n\n"

        "*📝 Quick tips*\n"
        "- Tickers are case-insensitive; `btc` means `BTCUSDT`.\n"
        "- Sharp moves on watched tickers are reported automatically.",
        parse_mode=ParseMode.MARKDOWN
    )

# Handler instance
handler = CommandHandler("help", help_command)
