"""
Reminder Types - Enumerations shared by persistence, services and CLI.
"""

from enum import Enum


class MessageType(str, Enum):
    """Kinds of outbound WhatsApp messages, each backed by one approved template."""

    SALES_INVOICE = "sales_invoice"
    PURCHASE_INVOICE = "purchase_invoice"
    PAYMENT_REMINDER = "payment_reminder"
    PAYMENT_NOTIFICATION = "payment_notification"

    def __str__(self) -> str:
        return self.value


class MessageStatus(str, Enum):
    """
    Status of a message attempt.

    The dispatcher only moves PENDING to SENT or FAILED. DELIVERED and READ
    are written by the provider status webhook.
    """

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class RecipientType(str, Enum):
    """Who receives the message."""

    RETAILER = "retailer"
    VENDOR = "vendor"

    def __str__(self) -> str:
        return self.value


class InvoiceKind(str, Enum):
    """Invoice families queried by the overdue selector."""

    SALES = "sales"
    PURCHASE = "purchase"

    @property
    def reference_type(self) -> str:
        return "SALES_INVOICE" if self is InvoiceKind.SALES else "PURCHASE_INVOICE"

    @property
    def recipient_type(self) -> RecipientType:
        return RecipientType.RETAILER if self is InvoiceKind.SALES else RecipientType.VENDOR

    def __str__(self) -> str:
        return self.value


class InvoiceStatus(str, Enum):
    """Invoice payment status as stored by the business app."""

    UNPAID = "Unpaid"
    PARTIALLY_PAID = "Partially Paid"
    PAID = "Paid"

    def __str__(self) -> str:
        return self.value


# Statuses that make an invoice eligible for a reminder
OPEN_INVOICE_STATUSES = (InvoiceStatus.UNPAID.value, InvoiceStatus.PARTIALLY_PAID.value)


class ReminderFrequency(str, Enum):
    """How often a tenant's reminders may fire."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    def __str__(self) -> str:
        return self.value


class CreditTransactionType(str, Enum):
    """Credit ledger entry kinds."""

    USAGE = "usage"
    TOPUP = "topup"

    def __str__(self) -> str:
        return self.value


# Reference type recorded on ledger entries for a sent message
MESSAGE_SENT_REFERENCE = "message_sent"
