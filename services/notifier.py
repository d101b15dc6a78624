# services/notifier.py
import logging

from telegram.constants import ParseMode
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Push messages to chats. Failures are logged, never retried."""

    def __init__(self, bot, parse_mode=ParseMode.MARKDOWN):
        self.bot = bot
        self.parse_mode = parse_mode

    async def send(self, chat_id: int, text: str) -> bool:
        try:
            await self.bot.send_message(chat_id=chat_id, text=text, parse_mode=self.parse_mode)
            return True
        except TelegramError:
            logger.exception("Failed to notify chat %s", chat_id)
            return False
