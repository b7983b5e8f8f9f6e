"""
ResendEmailTransport - email through the Resend HTTP API.

POST {RESEND_API_URL}/emails with {from, to, subject, html}.
"""

import logging
from typing import Optional

import httpx

from leadflow.core.config import settings
from leadflow.services.circuit_breaker import CircuitOpenError, circuit_email
from leadflow.services.http_client import get_http_client
from leadflow.services.transports.base import EmailTransport, TransportResult

logger = logging.getLogger(__name__)


class ResendEmailTransport(EmailTransport):
    """Resend API client."""

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.api_url = (api_url or settings.RESEND_API_URL).rstrip("/")
        self.timeout = 30

    @property
    def emails_url(self) -> str:
        return f"{self.api_url}/emails"

    @property
    def headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        sender_name: str,
        sender_email: str,
    ) -> TransportResult:
        if not self.api_key:
            return TransportResult(success=False, error="RESEND_API_KEY not configured", provider="resend")

        payload = {
            "from": f"{sender_name} <{sender_email}>",
            "to": [to],
            "subject": subject,
            "html": html,
        }

        async def _request() -> httpx.Response:
            client = await get_http_client()
            response = await client.post(
                self.emails_url,
                headers=self.headers,
                json=payload,
                timeout=self.timeout,
            )
            # 5xx counts against the circuit; 4xx is a rejected message
            if response.status_code >= 500:
                response.raise_for_status()
            return response

        try:
            response = await circuit_email.call(_request)
        except CircuitOpenError as e:
            logger.warning(f"[Resend] {e}")
            return TransportResult(success=False, error="email_circuit_open", provider="resend")
        except Exception as e:
            error_msg = self._extract_error(e)
            logger.warning(f"[Resend] Error sending to {to}: {error_msg}")
            return TransportResult(success=False, error=error_msg, provider="resend")

        if response.is_error:
            error_msg = self._error_from_response(response)
            logger.warning(f"[Resend] Rejected email to {to}: {error_msg}")
            return TransportResult(success=False, error=error_msg, provider="resend")

        data = response.json()
        return TransportResult(success=True, message_id=data.get("id"), provider="resend")

    def _error_from_response(self, response: httpx.Response) -> str:
        try:
            data = response.json()
            name = data.get("name", "error")
            msg = data.get("message", response.text[:200])
            return f"resend_{name}: {msg}"
        except ValueError:
            return f"HTTP {response.status_code}: {response.text[:200]}"

    def _extract_error(self, exc: Exception) -> str:
        if isinstance(exc, httpx.HTTPStatusError):
            return self._error_from_response(exc.response)
        if isinstance(exc, httpx.TimeoutException):
            return "resend_timeout"
        if isinstance(exc, httpx.ConnectError):
            return "resend_connect_error"
        return str(exc) or exc.__class__.__name__
