"""
Overdue Invoice Selector

Reads the invoices eligible for a payment reminder: status Unpaid or
Partially Paid, a positive outstanding amount, and dated before today.
"""

import logging
from datetime import date

from sqlalchemy.orm import Session

from payment_reminders.contracts.records import OverdueInvoice, OverdueInvoices, Recipient
from payment_reminders.contracts.types import InvoiceKind, RecipientType
from payment_reminders.persistence.models import PurchaseInvoice, Retailer, SalesInvoice, Vendor
from payment_reminders.persistence.repo import ReminderRepository

logger = logging.getLogger(__name__)


def sales_to_overdue(invoice: SalesInvoice, retailer: Retailer | None) -> OverdueInvoice:
    recipient = None
    if retailer is not None:
        recipient = Recipient(RecipientType.RETAILER, retailer.id, retailer.name, retailer.phone)
    return OverdueInvoice(
        kind=InvoiceKind.SALES,
        id=invoice.id,
        tenant_id=invoice.tenant_id,
        invoice_number=invoice.invoice_number,
        invoice_date=invoice.invoice_date,
        total_amount=invoice.total_amount,
        outstanding_amount=invoice.udhaar_amount,
        recipient=recipient,
    )


def purchase_to_overdue(invoice: PurchaseInvoice, vendor: Vendor | None) -> OverdueInvoice:
    recipient = None
    if vendor is not None:
        recipient = Recipient(RecipientType.VENDOR, vendor.id, vendor.name, vendor.phone)
    return OverdueInvoice(
        kind=InvoiceKind.PURCHASE,
        id=invoice.id,
        tenant_id=invoice.tenant_id,
        invoice_number=invoice.invoice_number,
        invoice_date=invoice.invoice_date,
        total_amount=invoice.net_amount,
        outstanding_amount=invoice.balance_amount,
        recipient=recipient,
    )


class OverdueInvoiceSelector:
    """Selects a tenant's overdue sales and purchase invoices, oldest first."""

    def __init__(self, db: Session):
        self.repo = ReminderRepository(db)

    def select(self, tenant_id: str, today: date) -> OverdueInvoices:
        sales = [
            sales_to_overdue(invoice, retailer)
            for invoice, retailer in self.repo.get_overdue_sales_invoices(tenant_id, today)
        ]
        purchase = [
            purchase_to_overdue(invoice, vendor)
            for invoice, vendor in self.repo.get_overdue_purchase_invoices(tenant_id, today)
        ]

        logger.debug(
            f"Found {len(sales)} overdue sales and {len(purchase)} overdue purchase invoices",
            extra={"tenant_id": tenant_id, "sales": len(sales), "purchase": len(purchase)},
        )
        return OverdueInvoices(sales=sales, purchase=purchase)

    def get(self, tenant_id: str, kind: InvoiceKind, invoice_id: str) -> OverdueInvoice | None:
        """Load a single invoice by id, whatever its status."""
        if kind is InvoiceKind.SALES:
            row = self.repo.get_sales_invoice(tenant_id, invoice_id)
            return sales_to_overdue(*row) if row else None

        row = self.repo.get_purchase_invoice(tenant_id, invoice_id)
        return purchase_to_overdue(*row) if row else None
