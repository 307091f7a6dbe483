"""
Tenant Cycle Orchestrator

Runs one reminder cycle for one tenant:
policy gates -> send window -> credit gate -> overdue selection ->
sequential dispatch (sales invoices, then purchase invoices).

Credit exhaustion stops the tenant immediately. Configuration errors end
the cycle as a skip. Any other per-invoice error is recorded and the next
invoice is attempted.
"""

import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from payment_reminders.persistence.repo import ReminderRepository
from payment_reminders.providers.base import MessageTransport
from payment_reminders.service.dispatch import DispatchPipeline
from payment_reminders.service.errors import (
    ConfigurationError,
    InsufficientCreditsError,
    TransportError,
    ValidationError,
)
from payment_reminders.service.selector import OverdueInvoiceSelector
from payment_reminders.service.templates import TemplateCatalog
from payment_reminders.service.window import evaluate_window

logger = logging.getLogger(__name__)


class CycleOutcome(str, Enum):
    """How a tenant cycle ended."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    CREDIT_EXHAUSTED = "credit_exhausted"
    TIMED_OUT = "timed_out"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


@dataclass
class TenantCycleResult:
    """Counters for one tenant cycle."""

    tenant_id: str
    outcome: CycleOutcome = CycleOutcome.COMPLETED
    skip_reason: str | None = None
    sent: int = 0
    failed: int = 0
    invalid: int = 0
    credit_exhausted: bool = False
    remaining: int = 0
    timed_out: bool = False

    @property
    def failures(self) -> int:
        return self.failed + self.invalid

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["outcome"] = str(self.outcome)
        return data


class TenantCycleOrchestrator:
    """Decides whether a tenant's reminders fire now, and sends them."""

    def __init__(
        self,
        db: Session,
        transport: MessageTransport,
        templates: TemplateCatalog,
        default_country_code: str = "91",
        transport_timeout: float = 30.0,
    ):
        self.db = db
        self.repo = ReminderRepository(db)
        self.selector = OverdueInvoiceSelector(db)
        self.pipeline = DispatchPipeline(
            db,
            transport,
            templates,
            default_country_code=default_country_code,
            transport_timeout=transport_timeout,
        )

    def _skip(self, result: TenantCycleResult, reason: str, level: int = logging.DEBUG) -> TenantCycleResult:
        result.outcome = CycleOutcome.SKIPPED
        result.skip_reason = reason
        logger.log(
            level,
            f"Skipping tenant {result.tenant_id}: {reason}",
            extra={"tenant_id": result.tenant_id, "skip_reason": reason},
        )
        return result

    async def run_cycle(
        self,
        tenant_id: str,
        now: datetime,
        deadline: float | None = None,
    ) -> TenantCycleResult:
        """
        Process one tenant.

        Args:
            tenant_id: Tenant to process
            now: Current time in the scheduler's timezone
            deadline: time.monotonic() value after which no further invoice is attempted

        Returns:
            TenantCycleResult with per-tenant counters
        """
        result = TenantCycleResult(tenant_id=tenant_id)
        policy = self.repo.get_policy(tenant_id)

        if not policy.enabled:
            return self._skip(result, "messaging disabled")

        if not policy.scheduler.enabled:
            return self._skip(result, "scheduler disabled")

        window = evaluate_window(policy.scheduler, now)
        if not window.allowed:
            return self._skip(result, window.reason)

        if policy.credit_balance <= 0:
            return self._skip(result, "no credits available", level=logging.INFO)

        if policy.is_low_credit:
            logger.warning(
                f"Tenant {tenant_id} is low on WhatsApp credits: {policy.credit_balance} "
                f"(threshold {policy.low_credit_threshold})",
                extra={
                    "tenant_id": tenant_id,
                    "credit_balance": policy.credit_balance,
                    "threshold": policy.low_credit_threshold,
                },
            )

        overdue = self.selector.select(tenant_id, now.date())
        invoices = overdue.in_dispatch_order()
        # The selector's reads are done; don't hold the read transaction open
        self.db.commit()

        logger.info(
            f"Processing {len(invoices)} overdue invoices for tenant {tenant_id}",
            extra={"tenant_id": tenant_id, "sales": len(overdue.sales), "purchase": len(overdue.purchase)},
        )

        # Index of the first invoice not handled when the loop stops early
        stopped_at = len(invoices)
        for index, invoice in enumerate(invoices):
            if deadline is not None and time.monotonic() >= deadline:
                result.timed_out = True
                result.outcome = CycleOutcome.TIMED_OUT
                stopped_at = index
                logger.warning(
                    f"Run deadline reached while processing tenant {tenant_id}",
                    extra={"tenant_id": tenant_id, "remaining": len(invoices) - index},
                )
                break

            try:
                dispatch = await self.pipeline.send_payment_reminder(invoice)

            except InsufficientCreditsError as e:
                result.credit_exhausted = True
                result.outcome = CycleOutcome.CREDIT_EXHAUSTED
                stopped_at = index
                logger.info(
                    f"Stopping tenant {tenant_id}: {e}",
                    extra={"tenant_id": tenant_id, "invoice_id": invoice.id},
                )
                break

            except ConfigurationError as e:
                self._skip(result, str(e), level=logging.WARNING)
                stopped_at = index
                break

            except ValidationError as e:
                result.invalid += 1
                logger.warning(
                    f"Skipping invoice {invoice.invoice_number}: {e}",
                    extra={"tenant_id": tenant_id, "invoice_id": invoice.id},
                )

            except TransportError as e:
                result.failed += 1
                if e.indicates_credit_exhaustion:
                    result.credit_exhausted = True
                    result.outcome = CycleOutcome.CREDIT_EXHAUSTED
                    stopped_at = index + 1
                    logger.warning(
                        f"Provider reports no funds, stopping tenant {tenant_id}: {e}",
                        extra={"tenant_id": tenant_id, "invoice_id": invoice.id},
                    )
                    break

            except Exception:
                self.db.rollback()
                result.failed += 1
                logger.exception(
                    f"Unexpected error sending reminder for invoice {invoice.invoice_number}",
                    extra={"tenant_id": tenant_id, "invoice_id": invoice.id},
                )

            else:
                result.sent += 1
                if dispatch.debit_refused:
                    result.credit_exhausted = True
                    result.outcome = CycleOutcome.CREDIT_EXHAUSTED
                    stopped_at = index + 1
                    break

        result.remaining = len(invoices) - stopped_at

        logger.info(
            f"Tenant {tenant_id} cycle {result.outcome}: {result.sent} sent, {result.failures} failed",
            extra=result.to_dict(),
        )
        return result
