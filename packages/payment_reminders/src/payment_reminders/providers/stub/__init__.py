"""Stub WhatsApp transport."""

from payment_reminders.providers.stub.client import StubWhatsAppTransport

__all__ = ["StubWhatsAppTransport"]
