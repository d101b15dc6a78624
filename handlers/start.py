from telegram import Update
from telegram.ext import CommandHandler, ContextTypes
from services.user_service import get_or_create_deposit


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handles the /start command."""
    get_or_create_deposit(update.effective_user.id)

    await update.message.reply_text(
        "👋 Hello! I watch crypto prices for you.\n\n"
        "Set alerts with /add, track paper trades with /ocall.\n"
        "Use /help to see what I can do."
    )


async def chat_id_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/chatid - ids to put in configs or bug reports."""
    user = update.effective_user
    await update.message.reply_text(
        f"Chat ID: {update.effective_chat.id}\n"
        f"User ID: {user.id}\n"
        f"Username: {user.username or '-'}"
    )


# Handler instance to register in bot.py
handler = CommandHandler("start", start_command)
chat_id_handler = CommandHandler("chatid", chat_id_command)
