"""
Credit Ledger

Prepaid WhatsApp credit checks, debits and top-ups for a tenant.

Debits and top-ups commit their own transaction: the balance update and
the ledger entry are written together or not at all.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from payment_reminders.contracts.types import MESSAGE_SENT_REFERENCE
from payment_reminders.persistence.models import WhatsAppCreditTransaction
from payment_reminders.persistence.repo import ReminderRepository
from payment_reminders.service.errors import InsufficientCreditsError, ReminderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreditCheck:
    """Result of an admission check. Never changes the balance."""

    allowed: bool
    current_balance: int
    low_credit_warning: bool
    threshold: int
    messaging_enabled: bool = True
    reason: str | None = None


@dataclass(frozen=True)
class CreditDebit:
    """Balance after a successful debit."""

    new_balance: int
    low_credit_warning: bool
    transaction_id: str


class CreditLedger:
    """Credit admission, debit and top-up for tenants."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ReminderRepository(db)

    def check_availability(self, tenant_id: str, credits_required: int = 1) -> CreditCheck:
        """
        Check whether the tenant can afford `credits_required` messages.

        Denied when messaging is disabled or the balance is short.
        """
        policy = self.repo.get_policy(tenant_id)

        if not policy.enabled:
            return CreditCheck(
                allowed=False,
                current_balance=policy.credit_balance,
                low_credit_warning=False,
                threshold=policy.low_credit_threshold,
                messaging_enabled=False,
                reason="WhatsApp messaging is not enabled for this tenant",
            )

        if policy.credit_balance < credits_required:
            return CreditCheck(
                allowed=False,
                current_balance=policy.credit_balance,
                low_credit_warning=True,
                threshold=policy.low_credit_threshold,
                reason=(
                    f"Insufficient WhatsApp credits: {policy.credit_balance} available, "
                    f"{credits_required} required"
                ),
            )

        return CreditCheck(
            allowed=True,
            current_balance=policy.credit_balance,
            low_credit_warning=policy.is_low_credit,
            threshold=policy.low_credit_threshold,
        )

    def debit(
        self,
        tenant_id: str,
        amount: int,
        reason: str = MESSAGE_SENT_REFERENCE,
        reference_id: str | None = None,
        notes: str | None = "WhatsApp message sent",
    ) -> CreditDebit:
        """
        Atomically deduct credits and record the usage entry.

        Raises:
            InsufficientCreditsError: if the balance does not cover `amount`
        """
        if amount <= 0:
            raise ReminderError(f"Debit amount must be positive, got {amount}", tenant_id)

        try:
            result = self.repo.debit_credits(tenant_id, amount, reason, reference_id, notes)
            if result is None:
                self.db.rollback()
                raise InsufficientCreditsError(
                    "Cannot deduct credits: insufficient balance",
                    tenant_id=tenant_id,
                    required=amount,
                )
            new_balance, threshold, entry = result
            self.db.commit()
        except InsufficientCreditsError:
            raise
        except Exception:
            self.db.rollback()
            raise

        low_credit_warning = new_balance <= threshold
        if low_credit_warning:
            logger.warning(
                f"Low credit warning for tenant {tenant_id}: balance is {new_balance}, threshold is {threshold}",
                extra={"tenant_id": tenant_id, "credit_balance": new_balance, "threshold": threshold},
            )

        return CreditDebit(
            new_balance=new_balance,
            low_credit_warning=low_credit_warning,
            transaction_id=entry.id,
        )

    def top_up(self, tenant_id: str, amount: int, notes: str | None = None) -> int:
        """
        Add purchased credits. Returns the new balance.

        Tenants without messaging settings get a (disabled) settings row first.
        """
        if amount <= 0:
            raise ReminderError(f"Top-up amount must be positive, got {amount}", tenant_id)

        try:
            if self.repo.get_settings_row(tenant_id) is None:
                self.repo.upsert_settings(tenant_id)
                self.db.flush()
            new_balance, _ = self.repo.add_credits(tenant_id, amount, notes)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Added {amount} WhatsApp credits for tenant {tenant_id}",
            extra={"tenant_id": tenant_id, "amount": amount, "credit_balance": new_balance},
        )
        return new_balance

    def history(self, tenant_id: str, limit: int = 50) -> list[WhatsAppCreditTransaction]:
        return self.repo.list_credit_transactions(tenant_id, limit=limit)

    def transaction_for_message(self, tenant_id: str, message_id: str) -> WhatsAppCreditTransaction | None:
        return self.repo.get_transaction_by_reference(tenant_id, MESSAGE_SENT_REFERENCE, message_id)
