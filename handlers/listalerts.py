# handlers/listalerts.py
import logging
from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import CommandHandler, CallbackQueryHandler, ContextTypes
from handlers.alert import restart_monitor
from services.alert_service import list_alerts_by_chat, delete_alert, delete_all_alerts
from utils.normalize_data import format_price, format_change

logger = logging.getLogger(__name__)


def _describe(alert):
    if alert.is_percent:
        return f"{alert.symbol} {format_change(alert.target_percent)} from {format_price(alert.base_price)}"
    return f"{alert.symbol} ≈ {format_price(alert.target_price)}"


def build_alerts_message_and_keyboard(alerts):
    """
    Given a list of Alert objects, return (text, InlineKeyboardMarkup).
    """
    if not alerts:
        return "📭 No active alerts.", None

    lines = []
    keyboard = []
    for alert in alerts:
        lines.append(f"[{alert.id}] {_describe(alert)}")

        # add a delete button per-alert
        keyboard.append([
            InlineKeyboardButton(
                text=f"❌ Delete {alert.id}",
                callback_data=f"delete_alert:{alert.id}"
            )
        ])

    text = "\n".join(lines)
    reply_markup = InlineKeyboardMarkup(keyboard) if keyboard else None
    return text, reply_markup


async def list_alerts_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    alerts = list_alerts_by_chat(update.effective_chat.id)
    text, reply_markup = build_alerts_message_and_keyboard(alerts)

    if reply_markup:
        await update.message.reply_text(text, reply_markup=reply_markup)
    else:
        await update.message.reply_text(text)


async def delete_alert_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/del ID"""
    if not context.args:
        await update.message.reply_text("Usage: /del ALERT_ID")
        return

    alert_id = context.args[0].strip().lower()
    if delete_alert(update.effective_chat.id, alert_id):
        await update.message.reply_text(f"🗑 Alert {alert_id} deleted.")
        await restart_monitor(context)
    else:
        await update.message.reply_text(f"⚠️ Alert {alert_id} not found.")


async def clear_alerts_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    removed = delete_all_alerts(update.effective_chat.id)
    await update.message.reply_text(f"🗑 Deleted {removed} alert(s).")
    if removed:
        await restart_monitor(context)


async def delete_alert_callback(update: Update, context: ContextTypes.DEFAULT_TYPE):
    query = update.callback_query
    await query.answer()  # acknowledge callback promptly

    alert_id = query.data.split(":", 1)[1]
    chat_id = query.message.chat.id if query.message else query.from_user.id

    deleted = delete_alert(chat_id, alert_id)
    if deleted:
        await restart_monitor(context)

    # re-render whatever is left
    remaining = list_alerts_by_chat(chat_id)
    text, keyboard = build_alerts_message_and_keyboard(remaining)
    if keyboard:
        await query.edit_message_text(text, reply_markup=keyboard)
    elif deleted:
        await query.edit_message_text("🗑 Deleted. 📭 No active alerts.")
    else:
        await query.edit_message_text("📭 No active alerts.")


# Handler instances (import these into your bot setup)
list_alerts_handler = CommandHandler("alerts", list_alerts_command)
delete_alert_cmd_handler = CommandHandler("del", delete_alert_command)
clear_alerts_handler = CommandHandler("clearallalerts", clear_alerts_command)
delete_alert_handler = CallbackQueryHandler(delete_alert_callback, pattern=r"^delete_alert:[0-9a-f]{8}$")
