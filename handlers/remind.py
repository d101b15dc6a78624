# handlers/remind.py
import logging
from telegram import Update
from telegram.ext import CommandHandler, ContextTypes
from services.reminder_service import add_reminder
from utils.compute_fromdate import parse_duration
from utils.jobs import schedule_reminder

logger = logging.getLogger(__name__)


async def remind_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/remind TICKER 10m|2h|3d [text]"""
    if not context.args or len(context.args) < 2:
        await update.message.reply_text("Usage: /remind TICKER 10m|2h|3d [text]")
        return

    try:
        delay = parse_duration(context.args[1])
    except ValueError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    user = update.effective_user
    text = " ".join(context.args[2:])
    try:
        reminder = add_reminder(
            chat_id=update.effective_chat.id,
            user_id=user.id,
            username=user.username,
            symbol=context.args[0],
            delay=delay,
            text=text,
        )
    except ValueError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    schedule_reminder(context.job_queue, reminder)
    await update.message.reply_text(
        f"⏰ Reminder set for {reminder.symbol} at {reminder.trigger_at:%Y-%m-%d %H:%M} UTC"
    )


handler = CommandHandler("remind", remind_command)
