"""
Template Catalog and Variables

Maps message types to approved template identifiers and builds the
string variables each template expects.
"""

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from basecore.settings import Settings

from payment_reminders.contracts.records import OverdueInvoice, PaymentNotice
from payment_reminders.contracts.types import MessageType, RecipientType
from payment_reminders.service.errors import TemplateNotConfiguredError

# Reminders assume payment is due a week after the invoice date
PAYMENT_DUE_DAYS = 7
MAX_NAME_LENGTH = 50


class TemplateCatalog:
    """Template identifiers keyed by message type."""

    def __init__(self, template_ids: dict[str, str]):
        self._template_ids = {str(k): v for k, v in template_ids.items()}

    @classmethod
    def from_settings(cls, settings: Settings) -> "TemplateCatalog":
        return cls(settings.template_ids)

    def has_template(self, message_type: MessageType | str) -> bool:
        return bool(self._template_ids.get(str(message_type)))

    def resolve(self, message_type: MessageType | str, tenant_id: str | None = None) -> str:
        """
        Get the template id for a message type.

        Raises:
            TemplateNotConfiguredError: if no template is configured
        """
        template_id = self._template_ids.get(str(message_type))
        if not template_id:
            raise TemplateNotConfiguredError(str(message_type), tenant_id=tenant_id)
        return template_id


# =============================================================================
# Formatting helpers
# =============================================================================


def format_currency(amount: Decimal | int | float | str | None) -> str:
    """Format an amount in rupees with Indian digit grouping (₹12,34,567.50)."""
    value = Decimal(str(amount or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    integer, fraction = f"{abs(value):.2f}".split(".")

    if len(integer) > 3:
        head, tail = integer[:-3], integer[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        integer = ",".join([*groups, tail])

    return f"{sign}₹{integer}.{fraction}"


def format_date(value: date) -> str:
    """05 Jan 2026"""
    return value.strftime("%d %b %Y")


def truncate_text(text: str, max_length: int = MAX_NAME_LENGTH) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def _recipient_name(invoice: OverdueInvoice, fallback: str) -> str:
    name = invoice.recipient.name if invoice.recipient else None
    return truncate_text(name or fallback)


# =============================================================================
# Variable builders
# =============================================================================


def build_sales_invoice_variables(invoice: OverdueInvoice) -> dict[str, str]:
    return {
        "retailerName": _recipient_name(invoice, "Customer"),
        "invoiceNumber": invoice.invoice_number or "",
        "invoiceDate": format_date(invoice.invoice_date),
        "totalAmount": format_currency(invoice.total_amount),
        "udhaaarAmount": format_currency(invoice.outstanding_amount),
    }


def build_purchase_invoice_variables(invoice: OverdueInvoice) -> dict[str, str]:
    return {
        "vendorName": _recipient_name(invoice, "Vendor"),
        "invoiceNumber": invoice.invoice_number or "",
        "invoiceDate": format_date(invoice.invoice_date),
        "netAmount": format_currency(invoice.total_amount),
        "balanceAmount": format_currency(invoice.outstanding_amount),
    }


def build_payment_reminder_variables(invoice: OverdueInvoice) -> dict[str, str]:
    """
    Variables for the payment reminder template.

    The amount key is spelled `udhaaarAmount` in the approved template for
    both retailers and vendors.
    """
    is_vendor = invoice.kind.recipient_type is RecipientType.VENDOR
    due_date = invoice.invoice_date + timedelta(days=PAYMENT_DUE_DAYS)
    return {
        "recipientName": _recipient_name(invoice, "Vendor" if is_vendor else "Customer"),
        "invoiceNumber": invoice.invoice_number or "",
        "udhaaarAmount": format_currency(invoice.outstanding_amount),
        "dueDate": format_date(due_date),
    }


def build_payment_notification_variables(notice: PaymentNotice) -> dict[str, str]:
    return {
        "recipientName": truncate_text(notice.recipient.name or "Customer"),
        "invoiceNumber": notice.invoice_number or "",
        "paymentAmount": format_currency(notice.amount),
        "paymentDate": format_date(notice.payment_date),
        "paymentMode": notice.payment_mode or "Cash",
    }
