"""
Message Transports

Transport implementations for outbound WhatsApp templates.
Supports Twilio (production) and Stub (development).
"""

from basecore.settings import Settings

from payment_reminders.providers.base import (
    MessageTransport,
    ProviderError,
    ProviderResponse,
)


def get_transport(settings: Settings) -> MessageTransport:
    """Build the transport selected by WHATSAPP_PROVIDER."""
    if settings.WHATSAPP_PROVIDER == "twilio":
        from payment_reminders.providers.twilio import TwilioWhatsAppTransport

        return TwilioWhatsAppTransport(
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            whatsapp_from=settings.TWILIO_WHATSAPP_FROM,
            timeout=settings.REMINDER_TRANSPORT_TIMEOUT_SECONDS,
        )

    from payment_reminders.providers.stub import StubWhatsAppTransport

    return StubWhatsAppTransport()


__all__ = [
    "MessageTransport",
    "ProviderResponse",
    "ProviderError",
    "get_transport",
]
