"""
Stub WhatsApp Transport

Development transport that logs all sends without making real API calls.
Useful for local development and testing.
"""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from payment_reminders.providers.base import MessageTransport, ProviderResponse

logger = logging.getLogger(__name__)


class StubWhatsAppTransport(MessageTransport):
    """
    Stub transport for development and testing.

    - Logs all outbound messages
    - Generates fake message IDs
    - Can be told to fail for specific recipients
    """

    name = "stub"

    def __init__(
        self,
        whatsapp_from: str = "whatsapp:+14155238886",
        fail_for: dict[str, tuple[str, str]] | None = None,
    ):
        self.whatsapp_from = whatsapp_from
        # recipient address -> (error_code, error_message)
        self.fail_for = dict(fail_for or {})
        self.sent_messages: list[dict[str, Any]] = []

    @property
    def from_address(self) -> str:
        return self.whatsapp_from

    async def send_template(
        self,
        from_address: str,
        to: str,
        template_id: str,
        variables: dict[str, str],
    ) -> ProviderResponse:
        """Log and return success for template message."""
        if to in self.fail_for:
            error_code, error_message = self.fail_for[to]
            logger.info(
                f"[STUB] Simulating template failure",
                extra={"to": to, "template": template_id, "error_code": error_code},
            )
            return ProviderResponse(
                success=False,
                error_code=error_code,
                error_message=error_message,
            )

        message_id = f"SM{uuid4().hex}"

        self.sent_messages.append(
            {
                "from": from_address,
                "to": to,
                "template_id": template_id,
                "variables": dict(variables),
                "message_id": message_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )

        logger.info(
            f"[STUB] Sending template message",
            extra={"to": to, "template": template_id, "message_id": message_id},
        )

        return ProviderResponse(
            success=True,
            message_id=message_id,
            raw_response={"stub": True, "sid": message_id},
        )
