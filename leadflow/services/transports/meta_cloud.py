"""
MetaCloudTransport - WhatsApp through the Meta Cloud API (Graph API).

Credentials are per sender account (phone_number_id, access_token); the
settings provide a default account.
"""

import logging
from typing import List, Optional

import httpx

from leadflow.core.config import settings
from leadflow.services.circuit_breaker import CircuitOpenError, circuit_whatsapp
from leadflow.services.http_client import get_http_client
from leadflow.services.transports.base import TransportResult, WhatsAppTransport

logger = logging.getLogger(__name__)

_GRAPH_API_BASE = "https://graph.facebook.com"


class MetaCloudTransport(WhatsAppTransport):
    """
    Graph API client for one business phone number.

    Usage:
        transport = MetaCloudTransport(phone_number_id, access_token)
        result = await transport.send_template("393331234567", "welcome", "it", ["Mario"])
    """

    def __init__(self, phone_number_id: str, access_token: str):
        self.phone_number_id = phone_number_id
        self.access_token = access_token
        self.api_version = settings.META_GRAPH_API_VERSION or "v18.0"
        self.base_url = f"{_GRAPH_API_BASE}/{self.api_version}"
        self.timeout = 30

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/{self.phone_number_id}/messages"

    @property
    def headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def _post_message(self, payload: dict) -> TransportResult:
        """
        POST a message payload under the WhatsApp circuit.

        Returns:
            TransportResult; never raises
        """
        async def _request() -> httpx.Response:
            client = await get_http_client()
            response = await client.post(
                self.messages_url,
                headers=self.headers,
                json=payload,
                timeout=self.timeout,
            )
            if response.status_code >= 500:
                response.raise_for_status()
            return response

        try:
            response = await circuit_whatsapp.call(_request)
        except CircuitOpenError as e:
            logger.warning(f"[MetaCloud] {e}")
            return TransportResult(success=False, error="whatsapp_circuit_open", provider="meta")
        except Exception as e:
            error_msg = self._extract_error(e)
            logger.warning(f"[MetaCloud] Error sending from {self.phone_number_id}: {error_msg}")
            return TransportResult(success=False, error=error_msg, provider="meta")

        if response.is_error:
            error_msg = self._error_from_response(response)
            logger.warning(f"[MetaCloud] Message rejected for {self.phone_number_id}: {error_msg}")
            return TransportResult(success=False, error=error_msg, provider="meta")

        data = response.json()
        message_id = None
        if data.get("messages"):
            message_id = data["messages"][0].get("id")
        return TransportResult(success=True, message_id=message_id, provider="meta")

    def _error_from_response(self, response: httpx.Response) -> str:
        try:
            error = response.json().get("error", {})
            code = error.get("code", "unknown")
            msg = error.get("message", response.text[:200])
            return f"meta_error_{code}: {msg}"
        except ValueError:
            return f"HTTP {response.status_code}: {response.text[:200]}"

    def _extract_error(self, exc: Exception) -> str:
        if isinstance(exc, httpx.HTTPStatusError):
            return self._error_from_response(exc.response)
        if isinstance(exc, httpx.TimeoutException):
            return "meta_timeout"
        if isinstance(exc, httpx.ConnectError):
            return "meta_connect_error"
        return str(exc) or exc.__class__.__name__

    async def send_text(self, phone: str, text: str) -> TransportResult:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": self.format_phone(phone),
            "type": "text",
            "text": {"preview_url": True, "body": text},
        }
        return await self._post_message(payload)

    async def send_template(
        self,
        phone: str,
        template_name: str,
        language: str,
        params: Optional[List[str]] = None,
    ) -> TransportResult:
        template_obj = {
            "name": template_name,
            "language": {"code": language or "it"},
        }
        if params:
            template_obj["components"] = [
                {
                    "type": "body",
                    "parameters": [{"type": "text", "text": p} for p in params],
                }
            ]

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": self.format_phone(phone),
            "type": "template",
            "template": template_obj,
        }
        return await self._post_message(payload)
