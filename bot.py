# bot.py

import logging
import sys
from telegram.ext import Application
import config
from config import LOG_LEVEL
from handlers import start, help, price, alert, history, remind
from handlers.listalerts import (
    list_alerts_handler,
    delete_alert_handler,
    delete_alert_cmd_handler,
    clear_alerts_handler,
)
from handlers.calls import (
    open_call_handler,
    close_call_handler,
    stop_loss_handler,
    my_calls_handler,
    rush_handler,
    deposit_handler,
    all_calls_handler,
    call_stats_handler,
    my_call_stats_handler,
    my_trades_handler,
)
from services.db_service import init_db
from services.exchange_service import PriceGateway
from services.monitor_service import MonitorService
from services.notifier import TelegramNotifier
from services.price_monitor import PriceMonitor
from services.sharp_change import SharpChangeDetector
from services.symbol_registry import get_all_monitored_symbols, get_preferred_source
from services.reminder_service import purge_expired_reminders
from utils.jobs import retention_job, purge_reminders_job, restore_reminders

# Setup logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=LOG_LEVEL
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


async def on_startup(application: Application):
    """Wire the monitoring engine once the bot is initialized and start polling prices."""
    gateway = PriceGateway()
    notifier = TelegramNotifier(application.bot)
    monitor_service = MonitorService(notifier, SharpChangeDetector(gateway))
    monitor = PriceMonitor(
        gateway,
        symbol_provider=get_all_monitored_symbols,
        on_price=monitor_service.handle_price,
        on_notable_move=monitor_service.notable_move,
        source_resolver=get_preferred_source,
    )

    application.bot_data["gateway"] = gateway
    application.bot_data["notifier"] = notifier
    application.bot_data["monitor"] = monitor

    purge_expired_reminders()
    restored = restore_reminders(application.job_queue)
    logger.info("Restored %s reminders", restored)

    await monitor.start()


async def on_shutdown(application: Application):
    monitor = application.bot_data.get("monitor")
    if monitor is not None:
        await monitor.stop()


def build_application(token: str) -> Application:
    application = (
        Application.builder()
        .token(token)
        .post_init(on_startup)
        .post_shutdown(on_shutdown)
        .build()
    )

    # Register handlers
    application.add_handler(start.handler)
    application.add_handler(start.chat_id_handler)
    application.add_handler(help.handler)
    application.add_handler(price.handler)
    application.add_handler(price.all_prices_handler)
    application.add_handler(alert.handler)
    application.add_handler(list_alerts_handler)
    application.add_handler(delete_alert_handler)
    application.add_handler(delete_alert_cmd_handler)
    application.add_handler(clear_alerts_handler)
    application.add_handler(history.handler)
    application.add_handler(history.stats_handler)
    application.add_handler(remind.handler)
    application.add_handler(open_call_handler)
    application.add_handler(close_call_handler)
    application.add_handler(stop_loss_handler)
    application.add_handler(my_calls_handler)
    application.add_handler(rush_handler)
    application.add_handler(deposit_handler)
    application.add_handler(all_calls_handler)
    application.add_handler(call_stats_handler)
    application.add_handler(my_call_stats_handler)
    application.add_handler(my_trades_handler)

    # Background jobs
    application.job_queue.run_repeating(retention_job, interval=24 * 60 * 60, first=60)
    application.job_queue.run_repeating(purge_reminders_job, interval=60, first=60)
    return application


def main():
    """Start the bot."""
    try:
        config.validate_config()
        init_db()  # Create tables if not exist
    except Exception:
        logger.exception("Startup failed")
        sys.exit(1)

    application = build_application(config.BOT_TOKEN)

    # Start polling
    logger.info("Bot is starting...")
    application.run_polling()

if __name__ == "__main__":
    main()
