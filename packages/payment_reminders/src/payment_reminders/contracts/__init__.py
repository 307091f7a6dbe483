"""
Payment Reminder Contracts

Enumerations, tenant policy models and records exchanged between components.
"""

from payment_reminders.contracts.policy import SchedulerPolicy, TenantMessagingPolicy
from payment_reminders.contracts.records import (
    OverdueInvoice,
    OverdueInvoices,
    PaymentNotice,
    Recipient,
)
from payment_reminders.contracts.types import (
    InvoiceKind,
    InvoiceStatus,
    MessageStatus,
    MessageType,
    RecipientType,
    ReminderFrequency,
)

__all__ = [
    "SchedulerPolicy",
    "TenantMessagingPolicy",
    "OverdueInvoice",
    "OverdueInvoices",
    "PaymentNotice",
    "Recipient",
    "InvoiceKind",
    "InvoiceStatus",
    "MessageStatus",
    "MessageType",
    "RecipientType",
    "ReminderFrequency",
]
