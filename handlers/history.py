# handlers/history.py
from telegram import Update
from telegram.ext import CommandHandler, ContextTypes
from models.alert_trigger import TriggerType
from services.trigger_service import (
    get_trigger_history,
    get_symbol_stats,
    DEFAULT_HISTORY_LIMIT,
    MAX_HISTORY_LIMIT,
    STATS_WINDOW_DAYS,
)
from utils.normalize_data import format_price

_LABELS = {
    TriggerType.PRICE: "🎯 price",
    TriggerType.PERCENT: "📊 percent",
    TriggerType.SHARP_CHANGE: "⚡ sharp",
    TriggerType.STOP_LOSS: "🛑 stop-loss",
}


async def history_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/history [N] - last N triggers of this chat (default 10, max 50)."""
    limit = DEFAULT_HISTORY_LIMIT
    if context.args:
        try:
            limit = int(context.args[0])
        except ValueError:
            await update.message.reply_text(f"Usage: /history [1-{MAX_HISTORY_LIMIT}]")
            return

    rows = get_trigger_history(update.effective_chat.id, limit)
    if not rows:
        await update.message.reply_text("📭 No triggers yet.")
        return

    lines = []
    for row in rows:
        when = row.triggered_at.strftime("%Y-%m-%d %H:%M") if row.triggered_at else "?"
        label = _LABELS.get(row.trigger_type, str(row.trigger_type))
        ref = f" [{row.alert_id}]" if row.alert_id else ""
        lines.append(f"{when} {label} {row.symbol} @ {format_price(row.trigger_price)}{ref}")
    await update.message.reply_text("🕘 Trigger history (UTC)\n" + "\n".join(lines))


handler = CommandHandler("history", history_command)


async def stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/stats - active alerts and recent triggers per symbol."""
    rows = get_symbol_stats(update.effective_user.id)
    if not rows:
        await update.message.reply_text("📭 No alerts or triggers yet.")
        return

    lines = [
        f"{i}. {row.symbol}: {row.active_alerts} active alerts, {row.total_triggers} triggers"
        for i, row in enumerate(rows, 1)
    ]
    total_active = sum(row.active_alerts for row in rows)
    lines.append(f"\nTotal active alerts: {total_active}")
    lines.append(f"Symbols tracked: {len(rows)}")
    await update.message.reply_text(f"📊 Alert stats ({STATS_WINDOW_DAYS}d triggers)\n" + "\n".join(lines))


stats_handler = CommandHandler("stats", stats_command)
