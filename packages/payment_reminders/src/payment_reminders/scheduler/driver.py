"""
Reminder Scheduler Driver

Owns the periodic timer and runs one reminder cycle per active tenant on
every tick. There is no module-level scheduler: callers create a
ReminderScheduler and call start()/stop() explicitly.
"""

import asyncio
import logging
import time
from collections import Counter
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import sessionmaker

from basecore.db import session_scope
from basecore.settings import Settings

from payment_reminders.persistence.repo import ReminderRepository
from payment_reminders.providers.base import MessageTransport
from payment_reminders.service.errors import ScheduleConfigError
from payment_reminders.service.orchestrator import (
    CycleOutcome,
    TenantCycleOrchestrator,
    TenantCycleResult,
)
from payment_reminders.service.templates import TemplateCatalog

logger = logging.getLogger(__name__)

JOB_ID = "payment_reminders"

# A Monday with no DST transition in common zones
_CADENCE_REFERENCE = datetime(2024, 1, 1)
_HOURS_PER_WEEK = 7 * 24


@dataclass(frozen=True)
class SchedulerConfig:
    """Scheduler settings, read once at startup."""

    enabled: bool = True
    cron: str = "0 * * * *"
    timezone: str = "UTC"
    tenant_concurrency: int = 1
    transport_timeout: float = 30.0
    run_max_seconds: float = 45 * 60
    default_country_code: str = "91"

    @classmethod
    def from_settings(cls, settings: Settings) -> "SchedulerConfig":
        return cls(
            enabled=settings.PAYMENT_REMINDER_ENABLED,
            cron=settings.PAYMENT_REMINDER_CRON,
            timezone=settings.REMINDER_TIMEZONE,
            tenant_concurrency=settings.REMINDER_TENANT_CONCURRENCY,
            transport_timeout=settings.REMINDER_TRANSPORT_TIMEOUT_SECONDS,
            run_max_seconds=settings.REMINDER_RUN_MAX_SECONDS,
            default_country_code=settings.DEFAULT_COUNTRY_CODE,
        )


@dataclass
class RunSummary:
    """Aggregate counters for one run across all tenants."""

    tenants_processed: int = 0
    reminders_sent: int = 0
    failures: int = 0
    credit_exhausted_tenants: int = 0
    skipped_tenants: int = 0
    duration_seconds: float = 0.0
    timed_out: bool = False
    stopped: bool = False
    aborted: bool = False
    error: str | None = None
    tenants: list[TenantCycleResult] = field(default_factory=list)

    def add(self, result: TenantCycleResult) -> None:
        self.tenants.append(result)
        self.tenants_processed += 1
        self.reminders_sent += result.sent
        self.failures += result.failures
        if result.credit_exhausted:
            self.credit_exhausted_tenants += 1
        if result.outcome is CycleOutcome.SKIPPED:
            self.skipped_tenants += 1
        if result.timed_out:
            self.timed_out = True

    def to_dict(self, include_tenants: bool = False) -> dict[str, Any]:
        data = asdict(self)
        data.pop("tenants")
        if include_tenants:
            data["tenants"] = [t.to_dict() for t in self.tenants]
        return data


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ScheduleConfigError(f"Unknown timezone {name!r}: {e}")


def build_trigger(cron: str, timezone: str) -> CronTrigger:
    """Parse a 5-field crontab expression."""
    tz = resolve_timezone(timezone)
    try:
        return CronTrigger.from_crontab(cron, timezone=tz)
    except ValueError as e:
        raise ScheduleConfigError(f"Invalid cron expression {cron!r}: {e}")


def next_fire_times(trigger: CronTrigger, start: datetime, count: int) -> list[datetime]:
    """The next `count` fire times at or after `start`."""
    fire_times = []
    fire_time = trigger.get_next_fire_time(None, start)
    while fire_time is not None and len(fire_times) < count:
        fire_times.append(fire_time)
        fire_time = trigger.get_next_fire_time(fire_time, fire_time + timedelta(microseconds=1))
    return fire_times


def validate_schedule(cron: str, timezone: str = "UTC") -> CronTrigger:
    """
    Parse the cron expression and check it fires exactly once per clock hour.

    Tenants choose a send hour, and the window check matches on the hour, so
    a schedule that skips an hour never serves tenants preferring it, and one
    that fires twice in an hour sends duplicate reminders.

    Raises:
        ScheduleConfigError: on a malformed expression or a wrong cadence
    """
    trigger = build_trigger(cron, timezone)
    tz = trigger.timezone

    start = _CADENCE_REFERENCE.replace(tzinfo=tz)
    end = start + timedelta(days=7)

    fires_per_hour: Counter = Counter()
    for fire_time in next_fire_times(trigger, start, _HOURS_PER_WEEK * 61):
        if fire_time >= end:
            break
        local = fire_time.astimezone(tz)
        fires_per_hour[(local.date(), local.hour)] += 1

    duplicated = sorted(hour for hour, count in fires_per_hour.items() if count > 1)
    if duplicated:
        day, hour = duplicated[0]
        raise ScheduleConfigError(
            f"Schedule {cron!r} fires {fires_per_hour[duplicated[0]]} times in the hour "
            f"{day} {hour:02d}:00; it must fire exactly once per hour"
        )

    if len(fires_per_hour) != _HOURS_PER_WEEK:
        missing = _HOURS_PER_WEEK - len(fires_per_hour)
        raise ScheduleConfigError(
            f"Schedule {cron!r} does not fire in {missing} of the {_HOURS_PER_WEEK} hours of a week; "
            f"it must fire exactly once per hour"
        )

    return trigger


class ReminderScheduler:
    """
    Periodic payment reminder driver.

    Each run enumerates active tenants and processes them one cycle each,
    sequentially or with bounded parallelism. Every tenant cycle gets its
    own database session.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        transport: MessageTransport,
        config: SchedulerConfig,
        templates: TemplateCatalog,
        clock: Callable[[], datetime] | None = None,
    ):
        self.session_factory = session_factory
        self.transport = transport
        self.config = config
        self.templates = templates
        self.tz = resolve_timezone(config.timezone)
        self.clock = clock or (lambda: datetime.now(self.tz))
        self._scheduler: AsyncIOScheduler | None = None
        self._current_run: asyncio.Task | None = None
        self._stop_requested = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: MessageTransport | None = None,
        session_factory: sessionmaker | None = None,
    ) -> "ReminderScheduler":
        """Wire a scheduler from process settings."""
        from basecore.db import get_sessionmaker
        from payment_reminders.providers import get_transport

        return cls(
            session_factory=session_factory or get_sessionmaker(),
            transport=transport or get_transport(settings),
            config=SchedulerConfig.from_settings(settings),
            templates=TemplateCatalog.from_settings(settings),
        )

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> bool:
        """
        Validate the schedule and start the periodic timer.

        Must be called from within a running event loop.

        Returns:
            False when the feature flag is off, True once started

        Raises:
            ScheduleConfigError: invalid cron expression or cadence
        """
        if not self.config.enabled:
            logger.info("Payment reminder scheduler is disabled (PAYMENT_REMINDER_ENABLED=false)")
            return False

        if self.running:
            return True

        trigger = validate_schedule(self.config.cron, self.config.timezone)
        self._stop_requested = False

        self._scheduler = AsyncIOScheduler(timezone=self.tz)
        self._scheduler.add_job(
            self.run_once,
            trigger=trigger,
            id=JOB_ID,
            name="Send payment reminders",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()

        logger.info(
            f"Payment reminder scheduler started with schedule {self.config.cron!r}",
            extra={"cron": self.config.cron, "timezone": self.config.timezone},
        )
        return True

    async def stop(self) -> None:
        """
        Stop the periodic timer and wait for a run in progress to finish.

        The run completes the tenant cycles it has already started; tenants
        it has not reached yet are left for the next run.
        """
        if self._scheduler is not None:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Payment reminder scheduler stopped")

        run = self._current_run
        if run is not None and not run.done() and run is not asyncio.current_task():
            self._stop_requested = True
            logger.info("Waiting for the payment reminder run in progress to finish")
            await asyncio.wait([run])

    async def run_once(self) -> RunSummary:
        """Run one reminder cycle for every active tenant."""
        self._current_run = asyncio.current_task()
        try:
            return await self._run()
        finally:
            self._current_run = None

    async def _run(self) -> RunSummary:
        started = time.monotonic()
        deadline = started + self.config.run_max_seconds
        now = self.clock()
        summary = RunSummary()

        logger.info("Starting payment reminder run", extra={"run_at": now.isoformat()})

        try:
            with session_scope(self.session_factory) as db:
                tenant_ids = [tenant.id for tenant in ReminderRepository(db).list_active_tenants()]
        except Exception as e:
            logger.error("Payment reminder run aborted: could not list tenants", exc_info=True)
            summary.aborted = True
            summary.error = str(e)
            summary.duration_seconds = time.monotonic() - started
            return summary

        semaphore = asyncio.Semaphore(self.config.tenant_concurrency)

        async def process(tenant_id: str) -> TenantCycleResult | None:
            async with semaphore:
                if self._stop_requested or time.monotonic() >= deadline:
                    return None
                return await self._run_tenant(tenant_id, now, deadline)

        results = await asyncio.gather(*(process(tenant_id) for tenant_id in tenant_ids))

        for result in results:
            if result is None and self._stop_requested:
                summary.stopped = True
            elif result is None:
                summary.timed_out = True
            else:
                summary.add(result)

        summary.duration_seconds = time.monotonic() - started

        logger.info(
            f"Payment reminder run finished: {summary.reminders_sent} sent, "
            f"{summary.failures} failed across {summary.tenants_processed} tenants",
            extra=summary.to_dict(),
        )
        return summary

    async def _run_tenant(self, tenant_id: str, now: datetime, deadline: float) -> TenantCycleResult:
        """One tenant cycle in its own session. Errors are contained to the tenant."""
        try:
            with session_scope(self.session_factory) as db:
                orchestrator = TenantCycleOrchestrator(
                    db,
                    self.transport,
                    self.templates,
                    default_country_code=self.config.default_country_code,
                    transport_timeout=self.config.transport_timeout,
                )
                return await orchestrator.run_cycle(tenant_id, now, deadline)
        except Exception:
            logger.exception(
                f"Reminder cycle failed for tenant {tenant_id}",
                extra={"tenant_id": tenant_id},
            )
            return TenantCycleResult(tenant_id=tenant_id, outcome=CycleOutcome.ERROR, failed=1)
