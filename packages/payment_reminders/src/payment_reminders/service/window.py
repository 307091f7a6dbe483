"""
Send Window Evaluation

Pure functions deciding whether a tenant's reminders may fire at a given
moment. Each call derives everything from `now`; nothing is remembered
between calls.

Hour granularity assumes the scheduler ticks exactly once per clock hour
(see scheduler.driver.validate_schedule).
"""

from dataclasses import dataclass
from datetime import datetime

from payment_reminders.contracts.policy import SchedulerPolicy
from payment_reminders.contracts.types import ReminderFrequency

SATURDAY = 5
SUNDAY = 6
MONDAY = 0


@dataclass(frozen=True)
class WindowDecision:
    """Outcome of a window check. `reason` is set when sending is vetoed."""

    allowed: bool
    reason: str | None = None


def is_within_send_hour(now: datetime, preferred_hour: int) -> bool:
    return now.hour == preferred_hour


def is_weekend(now: datetime) -> bool:
    return now.weekday() in (SATURDAY, SUNDAY)


def should_fire_for_frequency(
    frequency: ReminderFrequency | str,
    send_on_weekends: bool,
    now: datetime,
) -> bool:
    """
    Check the frequency rule for `now`.

    - daily: always
    - weekly: Mondays
    - monthly: the 1st; when weekends are excluded and the 1st falls on a
      weekend, the following Monday (the 3rd after a Saturday, the 2nd
      after a Sunday)
    """
    frequency = ReminderFrequency(frequency)

    if frequency is ReminderFrequency.DAILY:
        return True

    if frequency is ReminderFrequency.WEEKLY:
        return now.weekday() == MONDAY

    if now.day == 1:
        return send_on_weekends or not is_weekend(now)

    if send_on_weekends or now.weekday() != MONDAY:
        return False

    first_weekday = now.replace(day=1).weekday()
    if first_weekday == SATURDAY:
        return now.day == 3
    if first_weekday == SUNDAY:
        return now.day == 2
    return False


def evaluate_window(policy: SchedulerPolicy, now: datetime) -> WindowDecision:
    """Combine the send-hour, frequency and weekend rules for one tenant."""
    if not is_within_send_hour(now, policy.preferred_send_hour):
        return WindowDecision(
            allowed=False,
            reason=f"outside preferred send hour ({policy.preferred_send_hour}:00)",
        )

    if not should_fire_for_frequency(policy.reminder_frequency, policy.send_on_weekends, now):
        return WindowDecision(
            allowed=False,
            reason=f"not a {policy.reminder_frequency.value} send day",
        )

    # Monthly handles weekends itself through the next-Monday fallback
    if (
        policy.reminder_frequency is not ReminderFrequency.MONTHLY
        and not policy.send_on_weekends
        and is_weekend(now)
    ):
        return WindowDecision(allowed=False, reason="weekend sends disabled")

    return WindowDecision(allowed=True)
