"""
Channel transport interfaces.

A transport accepts one rendered message and reports success with the
provider message id, or failure with the provider error text.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class TransportResult:
    """Outcome of one send."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    provider: Optional[str] = None


class EmailTransport(ABC):
    """Transactional email sender."""

    @abstractmethod
    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        sender_name: str,
        sender_email: str,
    ) -> TransportResult:
        """
        Send one HTML email.

        Args:
            to: Recipient address
            subject: Rendered subject
            html: Rendered HTML body
            sender_name: Display name of the sender
            sender_email: Sender address (verified domain)

        Returns:
            TransportResult
        """
        pass


class WhatsAppTransport(ABC):
    """WhatsApp Business sender."""

    @abstractmethod
    async def send_template(
        self,
        phone: str,
        template_name: str,
        language: str,
        params: Optional[List[str]] = None,
    ) -> TransportResult:
        """
        Send an approved template.

        Args:
            phone: Recipient number (digits, country code included)
            template_name: Approved template name
            language: Template language code (it, en, pt_BR...)
            params: Ordered body parameters ({{1}}, {{2}}, ...)

        Returns:
            TransportResult
        """
        pass

    @abstractmethod
    async def send_text(self, phone: str, text: str) -> TransportResult:
        """
        Send free text (only delivered inside the 24h customer window).

        Returns:
            TransportResult
        """
        pass

    @staticmethod
    def format_phone(phone: str) -> str:
        """Digits only."""
        return "".join(filter(str.isdigit, phone or ""))
