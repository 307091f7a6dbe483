"""
Payment Reminder Scheduler Service

Long-running process that fires payment reminder runs on the configured
cron schedule.

This worker uses ONLY:
- basecore (DB, settings, logging)
- payment_reminders (scheduler, services, transports)

Features:
- Schedule validated at startup (exactly one run per clock hour)
- At most one run in flight; missed runs are coalesced
- Graceful shutdown on SIGINT/SIGTERM: a run in progress finishes first
"""

import asyncio
import logging
import signal
import sys

from basecore.logging import setup_logging
from basecore.settings import get_settings

from payment_reminders.scheduler.driver import ReminderScheduler
from payment_reminders.service.errors import ScheduleConfigError

logger = logging.getLogger(__name__)

# Graceful shutdown
shutdown_requested = False


def signal_handler(signum, frame):
    global shutdown_requested
    logger.info(f"Received signal {signum}, requesting shutdown...")
    shutdown_requested = True


async def main_loop() -> int:
    """Start the scheduler and idle until a shutdown signal arrives."""
    settings = get_settings()
    scheduler = ReminderScheduler.from_settings(settings)

    try:
        started = scheduler.start()
    except ScheduleConfigError as e:
        logger.error(f"Invalid reminder schedule, not starting: {e}")
        await scheduler.transport.close()
        return 1

    if not started:
        logger.info("Payment reminders disabled; exiting")
        await scheduler.transport.close()
        return 0

    logger.info(
        f"Payment reminder scheduler running "
        f"(cron={settings.PAYMENT_REMINDER_CRON!r}, timezone={settings.REMINDER_TIMEZONE}, "
        f"provider={settings.WHATSAPP_PROVIDER})"
    )

    try:
        while not shutdown_requested:
            await asyncio.sleep(1)
    finally:
        await scheduler.stop()
        await scheduler.transport.close()

    logger.info("Payment reminder scheduler shutting down gracefully")
    return 0


def main():
    """Entry point."""
    setup_logging()
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    logger.info("Payment reminder scheduler starting...")
    sys.exit(asyncio.run(main_loop()))


if __name__ == "__main__":
    main()
