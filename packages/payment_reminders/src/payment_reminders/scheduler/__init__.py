"""
Payment Reminder Scheduler

Periodic driver for tenant reminder cycles.
"""

from payment_reminders.scheduler.driver import (
    ReminderScheduler,
    RunSummary,
    SchedulerConfig,
    validate_schedule,
)

__all__ = [
    "ReminderScheduler",
    "RunSummary",
    "SchedulerConfig",
    "validate_schedule",
]
