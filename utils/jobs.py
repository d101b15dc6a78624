# utils/jobs.py
import asyncio
import functools
import logging

from config import TRIGGER_RETENTION_DAYS, PRICE_HISTORY_RETENTION_DAYS
from services.reminder_service import (
    get_pending_reminders,
    delete_reminder,
    purge_expired_reminders,
    build_reminder_text,
)
from services.trigger_service import purge_old_triggers, purge_old_prices
from utils.compute_fromdate import utc_now

logger = logging.getLogger(__name__)

REMINDER_JOB_PREFIX = "reminder:"


async def retention_job(context):
    """Daily job: drop trigger log and price history rows past retention."""
    loop = asyncio.get_running_loop()
    try:
        triggers = await loop.run_in_executor(None, functools.partial(purge_old_triggers, TRIGGER_RETENTION_DAYS))
        prices = await loop.run_in_executor(None, functools.partial(purge_old_prices, PRICE_HISTORY_RETENTION_DAYS))
        logger.info("Retention: removed %s triggers and %s price rows", triggers, prices)
    except Exception:
        logger.exception("Retention purge failed")


async def reminder_job(context):
    """One-shot job: deliver a reminder, then delete it."""
    data = context.job.data or {}
    reminder_id = data.get("id")
    try:
        await context.bot.send_message(chat_id=data.get("chat_id"), text=data.get("text"))
    except Exception:
        logger.exception("Failed to deliver reminder %s", reminder_id)
    try:
        delete_reminder(reminder_id)
    except Exception:
        logger.exception("Failed to delete reminder %s", reminder_id)


async def purge_reminders_job(context):
    """Every minute: drop reminders that were missed (e.g. bot was down)."""
    try:
        purge_expired_reminders()
    except Exception:
        logger.exception("Reminder purge failed")


def schedule_reminder(job_queue, reminder):
    """Queue a one-shot job for reminder; overdue reminders fire right away."""
    delay = max((reminder.trigger_at - utc_now()).total_seconds(), 0)
    return job_queue.run_once(
        reminder_job,
        when=delay,
        data={"id": reminder.id, "chat_id": reminder.chat_id, "text": build_reminder_text(reminder)},
        name=f"{REMINDER_JOB_PREFIX}{reminder.id}",
        chat_id=reminder.chat_id,
    )


def restore_reminders(job_queue) -> int:
    """Re-queue reminders stored before a restart."""
    count = 0
    for reminder in get_pending_reminders():
        schedule_reminder(job_queue, reminder)
        count += 1
    return count
