"""
Dispatch Pipeline

Sends one templated WhatsApp message for one invoice or payment:
1. Validates the recipient phone
2. Checks the tenant's messaging switch and credit balance
3. Resolves the template for the message type
4. Records a pending attempt in the message log
5. Calls the transport (bounded by a timeout)
6. Marks the attempt sent or failed
7. Debits one credit after a successful send

Every attempt that reaches step 4 ends in exactly one of sent or failed,
including when the send is cancelled mid-flight.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from payment_reminders.contracts.records import OverdueInvoice, PaymentNotice, Recipient
from payment_reminders.contracts.types import (
    MESSAGE_SENT_REFERENCE,
    InvoiceKind,
    MessageStatus,
    MessageType,
)
from payment_reminders.persistence.repo import ReminderRepository
from payment_reminders.providers.base import MessageTransport, ProviderResponse
from payment_reminders.service.credits import CreditLedger
from payment_reminders.service.errors import (
    InsufficientCreditsError,
    InvalidPhoneError,
    MessagingDisabledError,
    TransportError,
    ValidationError,
)
from payment_reminders.service.phone import format_phone_for_whatsapp, is_valid_phone
from payment_reminders.service.templates import (
    TemplateCatalog,
    build_payment_notification_variables,
    build_payment_reminder_variables,
    build_purchase_invoice_variables,
    build_sales_invoice_variables,
)

logger = logging.getLogger(__name__)

PAYMENT_REFERENCE_TYPES = {
    InvoiceKind.SALES: "SALES_PAYMENT",
    InvoiceKind.PURCHASE: "PURCHASE_PAYMENT",
}


@dataclass
class DispatchResult:
    """Outcome of a successful send."""

    message_id: str
    provider_message_id: str
    status: MessageStatus = MessageStatus.SENT
    remaining_credits: int | None = None
    low_credit_warning: bool = False
    credit_debit_failed: bool = False
    debit_refused: bool = False
    debit_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "message_id": self.message_id,
            "provider_message_id": self.provider_message_id,
            "status": str(self.status),
            "remaining_credits": self.remaining_credits,
            "low_credit_warning": self.low_credit_warning,
            "credit_debit_failed": self.credit_debit_failed,
            "debit_error": self.debit_error,
        }


class DispatchPipeline:
    """
    Sends WhatsApp template messages for one tenant at a time.

    Raises the categorized errors from service.errors; the caller decides
    whether to continue with the next invoice.
    """

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
        self.credits = CreditLedger(db)
        self.transport = transport
        self.templates = templates
        self.default_country_code = default_country_code
        self.transport_timeout = transport_timeout

    async def send_message(
        self,
        tenant_id: str,
        recipient: Recipient | None,
        message_type: MessageType,
        variables: dict[str, str],
        reference_type: str,
        reference_id: str,
        reference_number: str | None = None,
    ) -> DispatchResult:
        """
        Core send path shared by every message type.

        Raises:
            ValidationError / InvalidPhoneError: recipient missing or phone unusable
            MessagingDisabledError: messaging is off for the tenant
            InsufficientCreditsError: balance cannot cover the send
            TemplateNotConfiguredError: no template for the message type
            TransportError: the provider call failed (attempt recorded as failed)
        """
        if recipient is None:
            raise ValidationError(
                f"Recipient information not found for {reference_type} {reference_number or reference_id}",
                tenant_id,
            )
        if not is_valid_phone(recipient.phone, self.default_country_code):
            raise InvalidPhoneError(recipient.phone, tenant_id)

        credit_check = self.credits.check_availability(tenant_id, 1)
        if not credit_check.allowed:
            if not credit_check.messaging_enabled:
                raise MessagingDisabledError(credit_check.reason, tenant_id)
            raise InsufficientCreditsError(
                credit_check.reason,
                tenant_id=tenant_id,
                current_balance=credit_check.current_balance,
            )

        to_address = format_phone_for_whatsapp(recipient.phone, self.default_country_code)
        template_id = self.templates.resolve(message_type, tenant_id)

        message = self.repo.create_message(
            tenant_id=tenant_id,
            recipient_type=str(recipient.recipient_type),
            recipient_id=recipient.id,
            recipient_phone=to_address,
            message_type=str(message_type),
            reference_type=reference_type,
            reference_id=reference_id,
            reference_number=reference_number,
            template_id=template_id,
            template_variables=variables,
        )
        self.db.commit()

        try:
            response = await self._call_transport(to_address, template_id, variables)
        except asyncio.CancelledError:
            self.repo.mark_message_failed(message, "CANCELLED", "Send cancelled before the provider answered")
            self.db.commit()
            logger.warning(
                "WhatsApp send cancelled in flight",
                extra={"tenant_id": tenant_id, "message_id": message.id, "reference_id": reference_id},
            )
            raise

        if not response.success:
            self.repo.mark_message_failed(message, response.error_code, response.error_message)
            self.db.commit()
            logger.warning(
                f"WhatsApp send failed: {response.error_message}",
                extra={
                    "tenant_id": tenant_id,
                    "message_id": message.id,
                    "reference_id": reference_id,
                    "error_code": response.error_code,
                },
            )
            raise TransportError(
                f"Failed to send WhatsApp message: {response.error_message}",
                tenant_id=tenant_id,
                error_code=response.error_code,
                message_id=message.id,
            )

        self.repo.mark_message_sent(message, response.message_id)
        self.db.commit()

        result = DispatchResult(message_id=message.id, provider_message_id=response.message_id)
        self._debit_for_message(tenant_id, message.id, result)

        logger.info(
            f"WhatsApp message sent: {response.message_id}. Credits remaining: {result.remaining_credits}",
            extra={
                "tenant_id": tenant_id,
                "message_id": message.id,
                "message_type": str(message_type),
                "reference_id": reference_id,
            },
        )
        return result

    async def _call_transport(
        self,
        to_address: str,
        template_id: str,
        variables: dict[str, str],
    ) -> ProviderResponse:
        """Invoke the transport, folding exceptions and timeouts into a failed response."""
        try:
            return await asyncio.wait_for(
                self.transport.send_template(
                    from_address=self.transport.from_address,
                    to=to_address,
                    template_id=template_id,
                    variables=variables,
                ),
                timeout=self.transport_timeout,
            )
        except asyncio.TimeoutError:
            return ProviderResponse(
                success=False,
                error_code="TIMEOUT",
                error_message=f"Transport call timed out after {self.transport_timeout}s",
            )
        except Exception as e:
            logger.exception("Transport raised while sending template")
            return ProviderResponse(
                success=False,
                error_code=getattr(e, "code", None) or "UNKNOWN",
                error_message=str(e) or "Failed to send message",
            )

    def _debit_for_message(self, tenant_id: str, message_id: str, result: DispatchResult) -> None:
        """Debit one credit for a sent message. Failures are recorded, never raised."""
        try:
            debit = self.credits.debit(
                tenant_id,
                1,
                reason=MESSAGE_SENT_REFERENCE,
                reference_id=message_id,
            )
        except InsufficientCreditsError as e:
            result.credit_debit_failed = True
            result.debit_refused = True
            result.debit_error = str(e)
            logger.error(
                f"Failed to deduct credits after successful send: {e}",
                extra={"tenant_id": tenant_id, "message_id": message_id},
            )
        except Exception as e:
            result.credit_debit_failed = True
            result.debit_error = str(e)
            logger.error(
                f"Failed to deduct credits after successful send: {e}",
                extra={"tenant_id": tenant_id, "message_id": message_id},
                exc_info=True,
            )
        else:
            result.remaining_credits = debit.new_balance
            result.low_credit_warning = debit.low_credit_warning

    # =========================================================================
    # Entry points
    # =========================================================================

    async def send_payment_reminder(self, invoice: OverdueInvoice) -> DispatchResult:
        """Remind the retailer or vendor about an outstanding invoice."""
        return await self.send_message(
            tenant_id=invoice.tenant_id,
            recipient=invoice.recipient,
            message_type=MessageType.PAYMENT_REMINDER,
            variables=build_payment_reminder_variables(invoice),
            reference_type=invoice.kind.reference_type,
            reference_id=invoice.id,
            reference_number=invoice.invoice_number,
        )

    async def send_invoice(self, invoice: OverdueInvoice) -> DispatchResult:
        """Send a sales invoice to its retailer or a purchase invoice to its vendor."""
        if invoice.kind is InvoiceKind.SALES:
            message_type = MessageType.SALES_INVOICE
            variables = build_sales_invoice_variables(invoice)
        else:
            message_type = MessageType.PURCHASE_INVOICE
            variables = build_purchase_invoice_variables(invoice)

        return await self.send_message(
            tenant_id=invoice.tenant_id,
            recipient=invoice.recipient,
            message_type=message_type,
            variables=variables,
            reference_type=invoice.kind.reference_type,
            reference_id=invoice.id,
            reference_number=invoice.invoice_number,
        )

    async def send_payment_notification(self, tenant_id: str, notice: PaymentNotice) -> DispatchResult:
        """Confirm a recorded payment to the payer."""
        return await self.send_message(
            tenant_id=tenant_id,
            recipient=notice.recipient,
            message_type=MessageType.PAYMENT_NOTIFICATION,
            variables=build_payment_notification_variables(notice),
            reference_type=PAYMENT_REFERENCE_TYPES[notice.kind],
            reference_id=notice.payment_id,
            reference_number=notice.invoice_number,
        )
