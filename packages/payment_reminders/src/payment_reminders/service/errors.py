"""
Reminder Errors

Exception hierarchy used by the dispatch pipeline, the tenant cycle
orchestrator and the scheduler driver. The orchestrator reacts to the
category (configuration, admission, validation, transport), not to
message strings.
"""

import re

from basecore.logging import mask_value

_CREDIT_EXHAUSTION_PATTERN = re.compile(r"insufficient\s+(funds|balance|credits?)", re.IGNORECASE)


class ReminderError(Exception):
    """Base class for reminder dispatcher errors."""

    def __init__(self, message: str, tenant_id: str | None = None):
        super().__init__(message)
        self.tenant_id = tenant_id


class ConfigurationError(ReminderError):
    """Tenant or process configuration prevents sending."""


class MessagingDisabledError(ConfigurationError):
    """WhatsApp messaging is not enabled for the tenant."""


class TemplateNotConfiguredError(ConfigurationError):
    """No template identifier is configured for the message type."""

    def __init__(self, message_type: str, tenant_id: str | None = None):
        super().__init__(f"Template not configured for message type: {message_type}", tenant_id)
        self.message_type = message_type


class InsufficientCreditsError(ReminderError):
    """The tenant's credit balance cannot cover the send."""

    def __init__(
        self,
        message: str = "Insufficient WhatsApp credits",
        tenant_id: str | None = None,
        current_balance: int | None = None,
        required: int = 1,
    ):
        super().__init__(message, tenant_id)
        self.current_balance = current_balance
        self.required = required


class ValidationError(ReminderError):
    """Recipient or invoice data cannot be used for a send."""


class InvalidPhoneError(ValidationError):
    """Recipient phone number is missing or malformed."""

    def __init__(self, phone: str | None, tenant_id: str | None = None):
        super().__init__(f"Invalid phone number: {mask_value(phone) if phone else 'not provided'}", tenant_id)
        self.phone = phone


class TransportError(ReminderError):
    """The provider rejected the message, or the call failed or timed out."""

    def __init__(
        self,
        message: str,
        tenant_id: str | None = None,
        error_code: str | None = None,
        message_id: str | None = None,
    ):
        super().__init__(message, tenant_id)
        self.error_code = error_code
        self.message_id = message_id

    @property
    def indicates_credit_exhaustion(self) -> bool:
        """True when the provider reports the account is out of funds or credits."""
        return bool(_CREDIT_EXHAUSTION_PATTERN.search(str(self)))


class ScheduleConfigError(ReminderError):
    """The reminder schedule is invalid; the scheduler must not start."""
