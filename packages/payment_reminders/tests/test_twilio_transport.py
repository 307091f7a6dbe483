"""
Tests for the Twilio WhatsApp transport.
"""

import asyncio
import base64
import json
from urllib.parse import parse_qs

import httpx
import pytest

from basecore.settings import Settings
from payment_reminders.providers import get_transport
from payment_reminders.providers.base import ProviderError
from payment_reminders.providers.stub import StubWhatsAppTransport
from payment_reminders.providers.twilio import TwilioWhatsAppTransport

ACCOUNT_SID = "AC" + "0123456789abcdef" * 2
AUTH_TOKEN = "test-auth-token"
FROM = "whatsapp:+14155238886"
TO = "whatsapp:+919876543210"
VARIABLES = {"recipientName": "Gupta Stores", "invoiceNumber": "INV-001"}


def make_transport(handler):
    return TwilioWhatsAppTransport(
        account_sid=ACCOUNT_SID,
        auth_token=AUTH_TOKEN,
        whatsapp_from=FROM,
        transport=httpx.MockTransport(handler),
    )


def send(transport):
    async def run():
        try:
            return await transport.send_template(FROM, TO, "HXreminder", VARIABLES)
        finally:
            await transport.close()

    return asyncio.run(run())


class TestTwilioSend:
    """Tests for the Messages resource call."""

    def test_success_wire_format(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["request"] = request
            return httpx.Response(201, json={"sid": "SM0123", "status": "queued"})

        response = send(make_transport(handler))

        assert response.success is True
        assert response.message_id == "SM0123"
        assert response.raw_response["status"] == "queued"

        request = captured["request"]
        assert request.method == "POST"
        assert str(request.url) == f"https://api.twilio.com/2010-04-01/Accounts/{ACCOUNT_SID}/Messages.json"

        expected_auth = base64.b64encode(f"{ACCOUNT_SID}:{AUTH_TOKEN}".encode()).decode()
        assert request.headers["Authorization"] == f"Basic {expected_auth}"

        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        assert form["From"] == FROM
        assert form["To"] == TO
        assert form["ContentSid"] == "HXreminder"
        assert json.loads(form["ContentVariables"]) == VARIABLES

    def test_api_error(self):
        def handler(request):
            return httpx.Response(400, json={"code": 21211, "message": "Invalid 'To' Phone Number"})

        response = send(make_transport(handler))

        assert response.success is False
        assert response.error_code == "21211"
        assert "Invalid 'To'" in response.error_message

    def test_server_error_without_json(self):
        def handler(request):
            return httpx.Response(503, text="Service Unavailable")

        response = send(make_transport(handler))

        assert response.success is False
        assert response.error_code == "503"

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        response = send(make_transport(handler))

        assert response.success is False
        assert response.error_code == "HTTP_ERROR"

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        response = send(make_transport(handler))

        assert response.success is False
        assert response.error_code == "TIMEOUT"

    def test_missing_sid(self):
        def handler(request):
            return httpx.Response(201, json={"status": "queued"})

        response = send(make_transport(handler))

        assert response.success is False
        assert response.error_code == "INVALID_RESPONSE"


class TestTwilioConfiguration:
    def test_invalid_account_sid(self):
        with pytest.raises(ProviderError) as exc_info:
            TwilioWhatsAppTransport(account_sid="XX123", auth_token=AUTH_TOKEN, whatsapp_from=FROM)
        assert exc_info.value.code == "INVALID_CREDENTIALS"

    def test_missing_credentials(self):
        with pytest.raises(ProviderError) as exc_info:
            TwilioWhatsAppTransport(account_sid="", auth_token="", whatsapp_from=FROM)
        assert exc_info.value.code == "NOT_CONFIGURED"

    def test_from_address_prefixed(self):
        transport = TwilioWhatsAppTransport(ACCOUNT_SID, AUTH_TOKEN, "+14155238886")
        assert transport.from_address == "whatsapp:+14155238886"


class TestGetTransport:
    def test_stub_by_default(self):
        assert isinstance(get_transport(Settings(_env_file=None)), StubWhatsAppTransport)

    def test_twilio(self):
        settings = Settings(
            _env_file=None,
            WHATSAPP_PROVIDER="twilio",
            TWILIO_ACCOUNT_SID=ACCOUNT_SID,
            TWILIO_AUTH_TOKEN=AUTH_TOKEN,
            REMINDER_TRANSPORT_TIMEOUT_SECONDS=5,
        )
        transport = get_transport(settings)
        assert isinstance(transport, TwilioWhatsAppTransport)
        assert transport.timeout == 5

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, WHATSAPP_PROVIDER="carrier-pigeon")
