"""
Channel transports.

Supports:
- Resend (transactional email)
- Meta Cloud API (WhatsApp Business)

Usage:
    from leadflow.services.transports import get_email_transport, get_whatsapp_transport

    result = await get_email_transport().send(to, subject, html, name, email)
    result = await get_whatsapp_transport(account).send_template(phone, name, "it", params)
"""

import logging
from typing import Dict, Optional

from leadflow.core.config import settings
from leadflow.core.exceptions import ConfigurationError
from leadflow.services.transports.base import (
    EmailTransport,
    TransportResult,
    WhatsAppTransport,
)
from leadflow.services.transports.meta_cloud import MetaCloudTransport
from leadflow.services.transports.resend import ResendEmailTransport

logger = logging.getLogger(__name__)

# One transport per sender phone number
_whatsapp_cache: Dict[str, WhatsAppTransport] = {}
_email_transport: Optional[EmailTransport] = None

__all__ = [
    "EmailTransport",
    "WhatsAppTransport",
    "TransportResult",
    "ResendEmailTransport",
    "MetaCloudTransport",
    "get_email_transport",
    "get_whatsapp_transport",
    "clear_transport_cache",
]


def get_email_transport() -> EmailTransport:
    """Shared Resend transport."""
    global _email_transport
    if _email_transport is None:
        _email_transport = ResendEmailTransport()
    return _email_transport


def get_whatsapp_transport(
    phone_number_id: Optional[str] = None,
    access_token: Optional[str] = None,
) -> WhatsAppTransport:
    """
    Transport for a sender account, falling back to the configured default.

    Raises:
        ConfigurationError: When neither the account nor the settings carry credentials
    """
    phone_number_id = phone_number_id or settings.META_PHONE_NUMBER_ID
    access_token = access_token or settings.META_ACCESS_TOKEN
    if not phone_number_id or not access_token:
        raise ConfigurationError("WhatsApp sender credentials not configured")

    transport = _whatsapp_cache.get(phone_number_id)
    if transport is None or getattr(transport, "access_token", None) != access_token:
        transport = MetaCloudTransport(phone_number_id, access_token)
        _whatsapp_cache[phone_number_id] = transport
        logger.debug(f"WhatsApp transport created for {phone_number_id}")
    return transport


def clear_transport_cache() -> None:
    """Drop cached transports (tests, credential rotation)."""
    global _email_transport
    _whatsapp_cache.clear()
    _email_transport = None
