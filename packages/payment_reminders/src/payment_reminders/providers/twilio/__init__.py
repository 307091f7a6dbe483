"""Twilio WhatsApp transport."""

from payment_reminders.providers.twilio.client import TwilioWhatsAppTransport

__all__ = ["TwilioWhatsAppTransport"]
