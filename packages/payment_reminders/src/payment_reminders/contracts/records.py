"""
Reminder Records

Plain dataclasses passed between the selector, the dispatch pipeline and
the orchestrator. They carry no database session state.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from payment_reminders.contracts.types import InvoiceKind, RecipientType


@dataclass(frozen=True)
class Recipient:
    """Retailer (sales) or vendor (purchase) attached to an invoice."""

    recipient_type: RecipientType
    id: str
    name: str | None
    phone: str | None


@dataclass(frozen=True)
class OverdueInvoice:
    """
    An invoice eligible for a payment reminder.

    Sales invoices store the outstanding amount as `udhaar_amount` and
    purchase invoices as `balance_amount`; both map to `outstanding_amount`.
    """

    kind: InvoiceKind
    id: str
    tenant_id: str
    invoice_number: str
    invoice_date: date
    total_amount: Decimal
    outstanding_amount: Decimal
    recipient: Recipient | None


@dataclass
class OverdueInvoices:
    """Both overdue lists for a tenant, each ordered oldest first."""

    sales: list[OverdueInvoice] = field(default_factory=list)
    purchase: list[OverdueInvoice] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.sales) + len(self.purchase)

    def in_dispatch_order(self) -> list[OverdueInvoice]:
        """All sales invoices, then all purchase invoices."""
        return [*self.sales, *self.purchase]


@dataclass(frozen=True)
class PaymentNotice:
    """A recorded payment to confirm to the payer."""

    payment_id: str
    kind: InvoiceKind
    invoice_number: str
    amount: Decimal
    payment_date: date
    payment_mode: str | None
    recipient: Recipient
