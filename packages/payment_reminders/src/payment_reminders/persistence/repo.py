"""
Reminder Repository

Repository pattern for the reminder dispatcher's database operations.
Callers own the transaction: nothing in here commits.
"""

from datetime import date, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from payment_reminders.contracts.policy import SchedulerPolicy, TenantMessagingPolicy
from payment_reminders.contracts.types import (
    OPEN_INVOICE_STATUSES,
    CreditTransactionType,
    MessageStatus,
)
from payment_reminders.persistence.models import (
    PurchaseInvoice,
    Retailer,
    SalesInvoice,
    Tenant,
    TenantMessagingSettings,
    Vendor,
    WhatsAppCreditTransaction,
    WhatsAppMessage,
    utcnow,
)


class ReminderRepository:
    """Repository for reminder dispatcher database operations."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Tenants
    # =========================================================================

    def list_active_tenants(self) -> list[Tenant]:
        """All tenants flagged active, in a stable order."""
        return list(
            self.db.scalars(
                select(Tenant)
                .where(Tenant.is_active == True)  # noqa: E712
                .order_by(Tenant.name, Tenant.id)
            )
        )

    def get_tenant(self, tenant_id: str) -> Tenant | None:
        return self.db.get(Tenant, tenant_id)

    # =========================================================================
    # Messaging settings
    # =========================================================================

    def get_settings_row(self, tenant_id: str) -> TenantMessagingSettings | None:
        """Load the settings row, always refreshing from the database."""
        return self.db.scalars(
            select(TenantMessagingSettings)
            .where(TenantMessagingSettings.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        ).first()

    def get_policy(self, tenant_id: str) -> TenantMessagingPolicy:
        """
        Read the tenant's messaging policy.

        Tenants without a settings row get the defaults (messaging disabled).
        """
        row = self.get_settings_row(tenant_id)
        if row is None:
            return TenantMessagingPolicy(tenant_id=tenant_id)

        return TenantMessagingPolicy(
            tenant_id=tenant_id,
            enabled=row.enabled,
            credit_balance=row.credit_balance,
            low_credit_threshold=row.low_credit_threshold,
            scheduler=SchedulerPolicy(
                enabled=row.scheduler_enabled,
                preferred_send_hour=row.preferred_send_hour,
                reminder_frequency=row.reminder_frequency,
                send_on_weekends=row.send_on_weekends,
            ),
        )

    def upsert_settings(self, tenant_id: str, **values: Any) -> TenantMessagingSettings:
        """Create or update the settings row with the given column values."""
        row = self.get_settings_row(tenant_id)
        if row is None:
            row = TenantMessagingSettings(tenant_id=tenant_id)
            self.db.add(row)
        for key, value in values.items():
            setattr(row, key, value)
        return row

    # =========================================================================
    # Credits
    # =========================================================================

    def debit_credits(
        self,
        tenant_id: str,
        amount: int,
        reference_type: str,
        reference_id: str | None,
        notes: str | None = None,
    ) -> tuple[int, int, WhatsAppCreditTransaction] | None:
        """
        Atomically take `amount` credits from the tenant's balance.

        A single conditional UPDATE decrements the balance only if it covers
        the amount, so concurrent debits can never drive it negative.

        Returns:
            (new_balance, low_credit_threshold, ledger_entry), or None when the
            balance was insufficient (or the tenant has no settings row).
        """
        result = self.db.execute(
            update(TenantMessagingSettings)
            .where(
                TenantMessagingSettings.tenant_id == tenant_id,
                TenantMessagingSettings.credit_balance >= amount,
            )
            .values(
                credit_balance=TenantMessagingSettings.credit_balance - amount,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        new_balance, threshold = self.db.execute(
            select(
                TenantMessagingSettings.credit_balance,
                TenantMessagingSettings.low_credit_threshold,
            ).where(TenantMessagingSettings.tenant_id == tenant_id)
        ).one()

        entry = WhatsAppCreditTransaction(
            tenant_id=tenant_id,
            transaction_type=CreditTransactionType.USAGE.value,
            amount=-amount,
            balance_after=new_balance,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
        )
        self.db.add(entry)
        self.db.flush()
        return new_balance, threshold, entry

    def add_credits(
        self,
        tenant_id: str,
        amount: int,
        notes: str | None = None,
    ) -> tuple[int, WhatsAppCreditTransaction] | None:
        """Add credits to the balance. Returns None if the tenant has no settings row."""
        result = self.db.execute(
            update(TenantMessagingSettings)
            .where(TenantMessagingSettings.tenant_id == tenant_id)
            .values(
                credit_balance=TenantMessagingSettings.credit_balance + amount,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        new_balance = self.db.scalar(
            select(TenantMessagingSettings.credit_balance).where(
                TenantMessagingSettings.tenant_id == tenant_id
            )
        )
        entry = WhatsAppCreditTransaction(
            tenant_id=tenant_id,
            transaction_type=CreditTransactionType.TOPUP.value,
            amount=amount,
            balance_after=new_balance,
            reference_type="topup",
            notes=notes,
        )
        self.db.add(entry)
        self.db.flush()
        return new_balance, entry

    def list_credit_transactions(
        self,
        tenant_id: str,
        limit: int = 50,
    ) -> list[WhatsAppCreditTransaction]:
        """Most recent ledger entries first."""
        return list(
            self.db.scalars(
                select(WhatsAppCreditTransaction)
                .where(WhatsAppCreditTransaction.tenant_id == tenant_id)
                .order_by(WhatsAppCreditTransaction.created_at.desc())
                .limit(limit)
            )
        )

    def get_transaction_by_reference(
        self,
        tenant_id: str,
        reference_type: str,
        reference_id: str,
    ) -> WhatsAppCreditTransaction | None:
        return self.db.scalars(
            select(WhatsAppCreditTransaction).where(
                WhatsAppCreditTransaction.tenant_id == tenant_id,
                WhatsAppCreditTransaction.reference_type == reference_type,
                WhatsAppCreditTransaction.reference_id == reference_id,
            )
        ).first()

    # =========================================================================
    # Invoices
    # =========================================================================

    def get_overdue_sales_invoices(
        self,
        tenant_id: str,
        today: date,
    ) -> list[tuple[SalesInvoice, Retailer | None]]:
        """Open sales invoices dated before today with an outstanding amount, oldest first."""
        rows = self.db.execute(
            select(SalesInvoice, Retailer)
            .outerjoin(Retailer, Retailer.id == SalesInvoice.retailer_id)
            .where(
                SalesInvoice.tenant_id == tenant_id,
                SalesInvoice.status.in_(OPEN_INVOICE_STATUSES),
                SalesInvoice.invoice_date < today,
                SalesInvoice.udhaar_amount > 0,
            )
            .order_by(SalesInvoice.invoice_date, SalesInvoice.invoice_number)
        )
        return [(invoice, retailer) for invoice, retailer in rows]

    def get_overdue_purchase_invoices(
        self,
        tenant_id: str,
        today: date,
    ) -> list[tuple[PurchaseInvoice, Vendor | None]]:
        """Open purchase invoices dated before today with a balance due, oldest first."""
        rows = self.db.execute(
            select(PurchaseInvoice, Vendor)
            .outerjoin(Vendor, Vendor.id == PurchaseInvoice.vendor_id)
            .where(
                PurchaseInvoice.tenant_id == tenant_id,
                PurchaseInvoice.status.in_(OPEN_INVOICE_STATUSES),
                PurchaseInvoice.invoice_date < today,
                PurchaseInvoice.balance_amount > 0,
            )
            .order_by(PurchaseInvoice.invoice_date, PurchaseInvoice.invoice_number)
        )
        return [(invoice, vendor) for invoice, vendor in rows]

    def get_sales_invoice(
        self,
        tenant_id: str,
        invoice_id: str,
    ) -> tuple[SalesInvoice, Retailer | None] | None:
        row = self.db.execute(
            select(SalesInvoice, Retailer)
            .outerjoin(Retailer, Retailer.id == SalesInvoice.retailer_id)
            .where(SalesInvoice.tenant_id == tenant_id, SalesInvoice.id == invoice_id)
        ).first()
        return (row[0], row[1]) if row else None

    def get_purchase_invoice(
        self,
        tenant_id: str,
        invoice_id: str,
    ) -> tuple[PurchaseInvoice, Vendor | None] | None:
        row = self.db.execute(
            select(PurchaseInvoice, Vendor)
            .outerjoin(Vendor, Vendor.id == PurchaseInvoice.vendor_id)
            .where(PurchaseInvoice.tenant_id == tenant_id, PurchaseInvoice.id == invoice_id)
        ).first()
        return (row[0], row[1]) if row else None

    # =========================================================================
    # Message log
    # =========================================================================

    def create_message(
        self,
        tenant_id: str,
        recipient_type: str,
        recipient_id: str,
        recipient_phone: str,
        message_type: str,
        reference_type: str,
        reference_id: str,
        reference_number: str | None,
        template_id: str,
        template_variables: dict[str, str],
    ) -> WhatsAppMessage:
        """Create a new message attempt in PENDING state."""
        message = WhatsAppMessage(
            tenant_id=tenant_id,
            recipient_type=recipient_type,
            recipient_id=recipient_id,
            recipient_phone=recipient_phone,
            message_type=message_type,
            reference_type=reference_type,
            reference_id=reference_id,
            reference_number=reference_number,
            template_id=template_id,
            template_variables=template_variables,
            status=MessageStatus.PENDING.value,
        )
        self.db.add(message)
        self.db.flush()
        return message

    def mark_message_sent(
        self,
        message: WhatsAppMessage,
        provider_message_id: str,
        sent_at: datetime | None = None,
    ) -> None:
        message.status = MessageStatus.SENT.value
        message.provider_message_id = provider_message_id
        message.sent_at = sent_at or utcnow()

    def mark_message_failed(
        self,
        message: WhatsAppMessage,
        error_code: str | None,
        error_message: str | None,
    ) -> None:
        message.status = MessageStatus.FAILED.value
        message.error_code = error_code or "UNKNOWN"
        message.error_message = error_message or "Failed to send message"

    def get_message(self, tenant_id: str, message_id: str) -> WhatsAppMessage | None:
        return self.db.scalars(
            select(WhatsAppMessage).where(
                WhatsAppMessage.tenant_id == tenant_id,
                WhatsAppMessage.id == message_id,
            )
        ).first()

    def list_messages(
        self,
        tenant_id: str,
        status: str | None = None,
        message_type: str | None = None,
        recipient_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WhatsAppMessage]:
        """List message attempts for a tenant, newest first."""
        query = select(WhatsAppMessage).where(WhatsAppMessage.tenant_id == tenant_id)

        if status:
            query = query.where(WhatsAppMessage.status == status)
        if message_type:
            query = query.where(WhatsAppMessage.message_type == message_type)
        if recipient_type:
            query = query.where(WhatsAppMessage.recipient_type == recipient_type)

        return list(
            self.db.scalars(
                query.order_by(WhatsAppMessage.created_at.desc()).offset(offset).limit(limit)
            )
        )

    def get_messages_by_reference(
        self,
        tenant_id: str,
        reference_type: str,
        reference_id: str,
    ) -> list[WhatsAppMessage]:
        return list(
            self.db.scalars(
                select(WhatsAppMessage)
                .where(
                    WhatsAppMessage.tenant_id == tenant_id,
                    WhatsAppMessage.reference_type == reference_type,
                    WhatsAppMessage.reference_id == reference_id,
                )
                .order_by(WhatsAppMessage.created_at.desc())
            )
        )

    def count_messages_by_status(self, tenant_id: str | None = None) -> dict[str, int]:
        query = select(WhatsAppMessage.status, func.count()).group_by(WhatsAppMessage.status)
        if tenant_id:
            query = query.where(WhatsAppMessage.tenant_id == tenant_id)
        return {status: count for status, count in self.db.execute(query)}
