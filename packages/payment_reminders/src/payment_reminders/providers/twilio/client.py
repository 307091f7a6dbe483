"""
Twilio WhatsApp Transport

Production transport for WhatsApp templates through the Twilio
Programmable Messaging REST API (Content API templates).
"""

import json
import logging
from typing import Any

import httpx

from payment_reminders.providers.base import (
    MessageTransport,
    ProviderError,
    ProviderResponse,
)

logger = logging.getLogger(__name__)

TWILIO_API_BASE_URL = "https://api.twilio.com/2010-04-01"


def validate_account_sid(account_sid: str) -> None:
    """Twilio account SIDs start with AC and are 34 characters long."""
    if not account_sid.startswith("AC") or len(account_sid) != 34:
        raise ProviderError(
            message='Invalid Twilio Account SID format. Should start with "AC" and be 34 characters long.',
            code="INVALID_CREDENTIALS",
        )


class TwilioWhatsAppTransport(MessageTransport):
    """
    Twilio provider for WhatsApp Business templates.

    Posts From/To/ContentSid/ContentVariables to the account's
    Messages resource using HTTP basic auth.
    """

    name = "twilio"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        whatsapp_from: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not account_sid or not auth_token or not whatsapp_from:
            raise ProviderError(
                message=(
                    "Twilio WhatsApp configuration is incomplete. Please ensure "
                    "TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN and TWILIO_WHATSAPP_FROM are set."
                ),
                code="NOT_CONFIGURED",
            )
        validate_account_sid(account_sid)

        self.account_sid = account_sid
        self.auth_token = auth_token
        self.whatsapp_from = whatsapp_from
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def from_address(self) -> str:
        if self.whatsapp_from.startswith("whatsapp:"):
            return self.whatsapp_from
        return f"whatsapp:{self.whatsapp_from}"

    @property
    def messages_url(self) -> str:
        return f"{TWILIO_API_BASE_URL}/Accounts/{self.account_sid}/Messages.json"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                auth=(self.account_sid, self.auth_token),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _post_message(self, form: dict[str, str]) -> dict[str, Any]:
        """POST to the Messages resource and return the parsed body."""
        client = await self._get_client()

        try:
            response = await client.post(self.messages_url, data=form)
        except httpx.TimeoutException as e:
            raise ProviderError(
                message=f"Twilio request timed out: {e}",
                code="TIMEOUT",
                retryable=True,
            )
        except httpx.RequestError as e:
            logger.error(f"HTTP request failed: {e}")
            raise ProviderError(
                message=f"HTTP request failed: {e}",
                code="HTTP_ERROR",
                retryable=True,
            )

        try:
            response_data = response.json()
        except ValueError:
            response_data = {"body": response.text}

        if response.status_code >= 400:
            raise ProviderError(
                message=response_data.get("message", f"HTTP {response.status_code}"),
                code=str(response_data.get("code", response.status_code)),
                details=response_data,
                retryable=response.status_code >= 500,
            )

        return response_data

    async def send_template(
        self,
        from_address: str,
        to: str,
        template_id: str,
        variables: dict[str, str],
    ) -> ProviderResponse:
        """Send a Content API template via Twilio."""
        form = {
            "From": from_address,
            "To": to,
            "ContentSid": template_id,
            "ContentVariables": json.dumps(variables),
        }

        try:
            response = await self._post_message(form)
            message_id = response.get("sid")
            if not message_id:
                raise ProviderError(
                    message="Twilio response did not include a message sid",
                    code="INVALID_RESPONSE",
                    details=response,
                )

            logger.info(
                f"Sent template message via Twilio",
                extra={"to": to, "template": template_id, "message_id": message_id},
            )

            return ProviderResponse(
                success=True,
                message_id=message_id,
                raw_response=response,
            )

        except ProviderError as e:
            logger.error(f"Failed to send template message: {e}")
            return ProviderResponse(
                success=False,
                error_code=e.code,
                error_message=str(e),
                raw_response=e.details,
            )
