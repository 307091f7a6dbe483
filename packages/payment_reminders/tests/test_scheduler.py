"""
Tests for the scheduler driver.
"""

import asyncio
from datetime import date, timedelta

import pytest

from basecore.settings import Settings
from payment_reminders.persistence.repo import ReminderRepository
from payment_reminders.providers.stub import StubWhatsAppTransport
from payment_reminders.scheduler import driver
from payment_reminders.scheduler.driver import (
    ReminderScheduler,
    SchedulerConfig,
    next_fire_times,
    validate_schedule,
)
from payment_reminders.service.errors import ScheduleConfigError
from payment_reminders.service.orchestrator import TenantCycleOrchestrator


class TestValidateSchedule:
    """The schedule must fire exactly once per clock hour."""

    @pytest.mark.parametrize("cron", ["0 * * * *", "30 * * * *", "5 0-23 * * *"])
    def test_hourly_schedules_accepted(self, cron):
        trigger = validate_schedule(cron, "UTC")
        assert trigger is not None

    def test_other_timezone(self):
        trigger = validate_schedule("0 * * * *", "Asia/Kolkata")
        assert str(trigger.timezone) == "Asia/Kolkata"

    def test_twice_an_hour_rejected(self):
        with pytest.raises(ScheduleConfigError, match="exactly once"):
            validate_schedule("*/30 * * * *", "UTC")

    def test_every_minute_rejected(self):
        with pytest.raises(ScheduleConfigError):
            validate_schedule("* * * * *", "UTC")

    def test_every_two_hours_rejected(self):
        with pytest.raises(ScheduleConfigError, match="does not fire"):
            validate_schedule("0 */2 * * *", "UTC")

    def test_daily_rejected(self):
        with pytest.raises(ScheduleConfigError):
            validate_schedule("0 9 * * *", "UTC")

    def test_weekdays_only_rejected(self):
        with pytest.raises(ScheduleConfigError):
            validate_schedule("0 * * * mon-fri", "UTC")

    @pytest.mark.parametrize("cron", ["not a cron", "0 * * *", "61 * * * *"])
    def test_malformed_cron(self, cron):
        with pytest.raises(ScheduleConfigError, match="Invalid cron"):
            validate_schedule(cron, "UTC")

    def test_unknown_timezone(self):
        with pytest.raises(ScheduleConfigError, match="timezone"):
            validate_schedule("0 * * * *", "Mars/Olympus_Mons")

    def test_next_fire_times(self, monday_9am):
        trigger = validate_schedule("0 * * * *", "UTC")
        fires = next_fire_times(trigger, monday_9am + timedelta(minutes=1), 3)
        assert [f.hour for f in fires] == [10, 11, 12]


class TestSchedulerConfig:
    def test_from_settings(self):
        settings = Settings(
            _env_file=None,
            PAYMENT_REMINDER_ENABLED=False,
            PAYMENT_REMINDER_CRON="15 * * * *",
            REMINDER_TIMEZONE="Asia/Kolkata",
            REMINDER_TENANT_CONCURRENCY=3,
        )
        config = SchedulerConfig.from_settings(settings)
        assert config.enabled is False
        assert config.cron == "15 * * * *"
        assert config.timezone == "Asia/Kolkata"
        assert config.tenant_concurrency == 3
        assert config.default_country_code == "91"

    def test_defaults(self):
        config = SchedulerConfig.from_settings(Settings(_env_file=None))
        assert config.enabled is True
        assert config.cron == "0 * * * *"


@pytest.fixture
def make_scheduler(session_factory, transport, templates, monday_9am):
    def build(**config):
        return ReminderScheduler(
            session_factory=session_factory,
            transport=transport,
            config=SchedulerConfig(**config),
            templates=templates,
            clock=lambda: monday_9am,
        )

    return build


class TestStartStop:
    def test_disabled_does_not_start(self, make_scheduler):
        scheduler = make_scheduler(enabled=False)
        assert scheduler.start() is False
        assert scheduler.running is False

    def test_invalid_cron_aborts_startup(self, make_scheduler):
        scheduler = make_scheduler(cron="*/20 * * * *")
        with pytest.raises(ScheduleConfigError):
            scheduler.start()
        assert scheduler.running is False

    def test_start_and_stop(self, make_scheduler):
        scheduler = make_scheduler()

        async def lifecycle():
            started = scheduler.start()
            job = scheduler._scheduler.get_job(driver.JOB_ID)
            running = scheduler.running
            await scheduler.stop()
            return started, running, job

        started, running, job = asyncio.run(lifecycle())

        assert started is True
        assert running is True
        assert job.max_instances == 1
        assert job.coalesce is True
        assert scheduler.running is False

    def test_stop_without_start(self, make_scheduler):
        asyncio.run(make_scheduler().stop())


class TestRunOnce:
    """Tests for one full run across tenants."""

    @pytest.fixture
    def tenants(self, seed):
        """Four tenants: one with work, one paused, one inactive, one disabled."""
        busy = seed.tenant(name="Busy", credit_balance=2)
        retailer = seed.retailer(busy)
        for n in range(3):
            seed.sales_invoice(busy, retailer, f"S-{n}", date(2024, 1, 1) + timedelta(days=n))

        paused = seed.tenant(name="Paused", scheduler_enabled=False)
        seed.sales_invoice(paused, seed.retailer(paused), "P-1", date(2024, 1, 1))

        inactive = seed.tenant(name="Inactive", is_active=False)
        seed.sales_invoice(inactive, seed.retailer(inactive), "I-1", date(2024, 1, 1))

        disabled = seed.tenant(name="Disabled", enabled=False)
        return {"busy": busy, "paused": paused, "inactive": inactive, "disabled": disabled}

    def test_summary_aggregates_tenants(self, make_scheduler, tenants, transport):
        summary = asyncio.run(make_scheduler().run_once())

        assert summary.aborted is False
        assert summary.timed_out is False
        assert summary.tenants_processed == 3
        assert summary.reminders_sent == 2
        assert summary.failures == 0
        assert summary.credit_exhausted_tenants == 1
        assert summary.skipped_tenants == 2
        assert summary.duration_seconds >= 0
        assert len(transport.sent_messages) == 2
        assert tenants["inactive"].id not in {t.tenant_id for t in summary.tenants}

    def test_bounded_parallelism_gives_same_totals(self, make_scheduler, tenants):
        summary = asyncio.run(make_scheduler(tenant_concurrency=3).run_once())

        assert summary.tenants_processed == 3
        assert summary.reminders_sent == 2
        assert summary.credit_exhausted_tenants == 1

    def test_tenant_error_is_isolated(self, make_scheduler, tenants, monkeypatch):
        original = TenantCycleOrchestrator.run_cycle
        broken_id = tenants["paused"].id

        async def flaky(self, tenant_id, now, deadline=None):
            if tenant_id == broken_id:
                raise RuntimeError("tenant data corrupt")
            return await original(self, tenant_id, now, deadline)

        monkeypatch.setattr(TenantCycleOrchestrator, "run_cycle", flaky)

        summary = asyncio.run(make_scheduler().run_once())

        assert summary.aborted is False
        assert summary.tenants_processed == 3
        assert summary.failures == 1
        assert summary.reminders_sent == 2

    def test_enumeration_failure_aborts_run(self, transport, templates, monday_9am):
        def unreachable():
            raise RuntimeError("database unreachable")

        scheduler = ReminderScheduler(
            session_factory=unreachable,
            transport=transport,
            config=SchedulerConfig(),
            templates=templates,
            clock=lambda: monday_9am,
        )

        summary = asyncio.run(scheduler.run_once())

        assert summary.aborted is True
        assert summary.error == "database unreachable"
        assert summary.tenants_processed == 0

    def test_run_deadline(self, make_scheduler, tenants, transport):
        summary = asyncio.run(make_scheduler(run_max_seconds=0).run_once())

        assert summary.timed_out is True
        assert summary.tenants_processed == 0
        assert transport.sent_messages == []

    def test_outside_hour_sends_nothing(self, session_factory, transport, templates, tenants, monday_9am):
        scheduler = ReminderScheduler(
            session_factory=session_factory,
            transport=transport,
            config=SchedulerConfig(),
            templates=templates,
            clock=lambda: monday_9am.replace(hour=10),
        )

        summary = asyncio.run(scheduler.run_once())

        assert summary.reminders_sent == 0
        assert summary.skipped_tenants == 3

    def test_summary_to_dict(self, make_scheduler, tenants):
        summary = asyncio.run(make_scheduler().run_once())

        data = summary.to_dict(include_tenants=True)
        assert data["reminders_sent"] == 2
        assert len(data["tenants"]) == 3
        assert "tenants" not in summary.to_dict()


class PausingTransport(StubWhatsAppTransport):
    """Stub transport that signals when a send starts and takes a moment to answer."""

    def __init__(self):
        super().__init__()
        self.in_flight = asyncio.Event()

    async def send_template(self, from_address, to, template_id, variables):
        self.in_flight.set()
        await asyncio.sleep(0.05)
        return await super().send_template(from_address, to, template_id, variables)


class TestShutdown:
    """Stopping the scheduler lets the run in progress finish cleanly."""

    def test_stop_waits_for_run_in_progress(self, seed, db, session_factory, templates, monday_9am):
        first = seed.tenant(name="Alpha")
        retailer = seed.retailer(first)
        seed.sales_invoice(first, retailer, "A-1", date(2024, 1, 1))
        seed.sales_invoice(first, retailer, "A-2", date(2024, 1, 2))
        second = seed.tenant(name="Beta")
        seed.sales_invoice(second, seed.retailer(second), "B-1", date(2024, 1, 1))

        async def run_then_stop():
            transport = PausingTransport()
            scheduler = ReminderScheduler(
                session_factory=session_factory,
                transport=transport,
                config=SchedulerConfig(),
                templates=templates,
                clock=lambda: monday_9am,
            )
            run = asyncio.ensure_future(scheduler.run_once())
            await transport.in_flight.wait()
            await scheduler.stop()
            assert run.done()
            return run.result(), transport

        summary, transport = asyncio.run(run_then_stop())

        assert summary.stopped is True
        assert summary.tenants_processed == 1
        assert summary.reminders_sent == 2
        assert len(transport.sent_messages) == 2

        repo = ReminderRepository(db)
        assert repo.count_messages_by_status(first.id) == {"sent": 2}
        assert repo.count_messages_by_status(second.id) == {}
