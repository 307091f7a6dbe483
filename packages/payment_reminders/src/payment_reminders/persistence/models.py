"""
Payment Reminder Database Models

Tables written by the reminder dispatcher:
- whatsapp_messages: one row per outbound message attempt (the message log)
- whatsapp_credit_transactions: immutable credit ledger entries
- tenant_messaging_settings: per-tenant policy and credit balance

Tables owned by the business app and only read here:
- tenants, retailers, vendors, sales_invoices, purchase_invoices
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

from payment_reminders.contracts.policy import (
    DEFAULT_LOW_CREDIT_THRESHOLD,
    DEFAULT_PREFERRED_SEND_HOUR,
)
from payment_reminders.contracts.types import MessageStatus, ReminderFrequency

ReminderBase = declarative_base()

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class ReminderModelMixin:
    """Common fields for tenant-scoped tables."""

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


# =============================================================================
# Business app tables (read-only here)
# =============================================================================


class Tenant(ReminderBase):
    """An isolated customer account."""

    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Retailer(ReminderBase, ReminderModelMixin):
    """Customer of a tenant; recipient of sales invoice reminders."""

    __tablename__ = "retailers"

    name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)


class Vendor(ReminderBase, ReminderModelMixin):
    """Supplier of a tenant; recipient of purchase invoice reminders."""

    __tablename__ = "vendors"

    name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)


class SalesInvoice(ReminderBase, ReminderModelMixin):
    """Invoice issued by the tenant to a retailer."""

    __tablename__ = "sales_invoices"

    retailer_id = Column(String(36), ForeignKey("retailers.id"), nullable=True)
    invoice_number = Column(String(64), nullable=False)
    invoice_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="Unpaid")
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)
    udhaar_amount = Column(Numeric(14, 2), nullable=False, default=0)  # outstanding credit

    __table_args__ = (
        Index("idx_sales_invoices_tenant_status_date", "tenant_id", "status", "invoice_date"),
    )


class PurchaseInvoice(ReminderBase, ReminderModelMixin):
    """Invoice received by the tenant from a vendor."""

    __tablename__ = "purchase_invoices"

    vendor_id = Column(String(36), ForeignKey("vendors.id"), nullable=True)
    invoice_number = Column(String(64), nullable=False)
    invoice_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="Unpaid")
    net_amount = Column(Numeric(14, 2), nullable=False, default=0)
    balance_amount = Column(Numeric(14, 2), nullable=False, default=0)

    __table_args__ = (
        Index("idx_purchase_invoices_tenant_status_date", "tenant_id", "status", "invoice_date"),
    )


# =============================================================================
# Reminder-owned tables
# =============================================================================


class TenantMessagingSettings(ReminderBase):
    """
    WhatsApp messaging policy and credit balance for a tenant.

    credit_balance is only ever changed through a conditional UPDATE, and the
    CHECK constraint rejects anything that would take it below zero.
    """

    __tablename__ = "tenant_messaging_settings"

    tenant_id = Column(String(36), ForeignKey("tenants.id"), primary_key=True)
    enabled = Column(Boolean, nullable=False, default=False)
    credit_balance = Column(Integer, nullable=False, default=0)
    low_credit_threshold = Column(Integer, nullable=False, default=DEFAULT_LOW_CREDIT_THRESHOLD)
    scheduler_enabled = Column(Boolean, nullable=False, default=True)
    preferred_send_hour = Column(Integer, nullable=False, default=DEFAULT_PREFERRED_SEND_HOUR)
    reminder_frequency = Column(String(10), nullable=False, default=ReminderFrequency.DAILY.value)
    send_on_weekends = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("credit_balance >= 0", name="ck_messaging_settings_balance_non_negative"),
        CheckConstraint("low_credit_threshold >= 0", name="ck_messaging_settings_threshold_non_negative"),
        CheckConstraint(
            "preferred_send_hour >= 0 AND preferred_send_hour <= 23",
            name="ck_messaging_settings_send_hour_range",
        ),
    )


class WhatsAppMessage(ReminderBase, ReminderModelMixin):
    """
    One outbound message attempt.

    Created PENDING before the provider is called, then moved to SENT or
    FAILED exactly once by the dispatcher.
    """

    __tablename__ = "whatsapp_messages"

    recipient_type = Column(String(10), nullable=False)  # vendor or retailer
    recipient_id = Column(String(36), nullable=False)
    recipient_phone = Column(String(40), nullable=False)  # whatsapp:+E164
    message_type = Column(String(30), nullable=False)
    reference_type = Column(String(30), nullable=False)
    reference_id = Column(String(36), nullable=False)
    reference_number = Column(String(64), nullable=True)
    template_id = Column(String(64), nullable=False)
    template_variables = Column(JSONType, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default=MessageStatus.PENDING.value)
    provider_message_id = Column(String(64), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    error_code = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)
    cost = Column(Numeric(10, 4), nullable=True)
    cost_currency = Column(String(3), nullable=True)

    __table_args__ = (
        Index("idx_whatsapp_messages_tenant_status", "tenant_id", "status"),
        Index("idx_whatsapp_messages_tenant_reference", "tenant_id", "reference_type", "reference_id"),
        Index("idx_whatsapp_messages_tenant_created", "tenant_id", "created_at"),
        Index("idx_whatsapp_messages_provider_id", "provider_message_id"),
    )


class WhatsAppCreditTransaction(ReminderBase):
    """Immutable credit ledger entry. Debits carry a negative amount."""

    __tablename__ = "whatsapp_credit_transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    transaction_type = Column(String(10), nullable=False)  # usage or topup
    amount = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    reference_type = Column(String(30), nullable=True)
    reference_id = Column(String(36), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_credit_transactions_tenant_created", "tenant_id", "created_at"),
        Index("idx_credit_transactions_reference", "reference_type", "reference_id"),
    )
