"""
Payment Reminder Persistence

SQLAlchemy models and repository for the reminder dispatcher.
The message log and credit ledger are OWNED by this package; invoice,
tenant, retailer and vendor tables are read-only here.
"""

from payment_reminders.persistence.models import (
    ReminderBase,
    Tenant,
    TenantMessagingSettings,
    Retailer,
    Vendor,
    SalesInvoice,
    PurchaseInvoice,
    WhatsAppMessage,
    WhatsAppCreditTransaction,
)
from payment_reminders.persistence.repo import ReminderRepository

__all__ = [
    "ReminderBase",
    "Tenant",
    "TenantMessagingSettings",
    "Retailer",
    "Vendor",
    "SalesInvoice",
    "PurchaseInvoice",
    "WhatsAppMessage",
    "WhatsAppCreditTransaction",
    "ReminderRepository",
]
