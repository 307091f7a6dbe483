"""
Message Transport Base

Abstract interface for outbound WhatsApp template providers.
Implementations: Twilio (production), Stub (development).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


class ProviderError(Exception):
    """Error from a messaging provider."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.retryable = retryable


@dataclass
class ProviderResponse:
    """
    Response from provider after sending a message.
    """

    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


class MessageTransport(ABC):
    """
    Abstract interface for sending approved WhatsApp templates.

    Implementations report provider failures through
    ProviderResponse(success=False) rather than raising.
    """

    name: str = "base"

    @property
    @abstractmethod
    def from_address(self) -> str:
        """Sender address in provider format (e.g. whatsapp:+14155238886)."""
        ...

    @abstractmethod
    async def send_template(
        self,
        from_address: str,
        to: str,
        template_id: str,
        variables: dict[str, str],
    ) -> ProviderResponse:
        """
        Send a template message.

        Args:
            from_address: Sender address (whatsapp:+E164)
            to: Recipient address (whatsapp:+E164)
            template_id: Approved template identifier (Twilio ContentSid)
            variables: Template variables, rendered as strings

        Returns:
            ProviderResponse with provider message ID if successful
        """
        ...

    async def close(self) -> None:
        """Release network resources."""
        return None
