"""
Tests for ResendEmailTransport.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
import httpx

from leadflow.services.circuit_breaker import CircuitState, circuit_email
from leadflow.services.transports.resend import ResendEmailTransport
from tests.factories import make_mock_http_response


@pytest.fixture
def transport():
    return ResendEmailTransport(api_key="re_test_key", api_url="https://api.resend.test/")


@pytest.fixture
def mock_http_client():
    client = AsyncMock()
    with patch(
        "leadflow.services.transports.resend.get_http_client",
        AsyncMock(return_value=client),
    ):
        yield client


async def _send(transport):
    return await transport.send(
        to="mario@example.com",
        subject="Ciao Mario",
        html="<p>Ciao</p>",
        sender_name="Vesuviano Forni",
        sender_email="noreply@vesuviano.it",
    )


class TestResendSetup:

    def test_emails_url(self, transport):
        assert transport.emails_url == "https://api.resend.test/emails"

    def test_headers(self, transport):
        assert transport.headers["Authorization"] == "Bearer re_test_key"


class TestResendSend:
    """ResendEmailTransport.send."""

    @pytest.mark.asyncio
    async def test_success(self, transport, mock_http_client):
        mock_http_client.post.return_value = make_mock_http_response(200, {"id": "re_msg_1"})

        result = await _send(transport)

        assert result.success is True
        assert result.message_id == "re_msg_1"
        payload = mock_http_client.post.call_args.kwargs["json"]
        assert payload == {
            "from": "Vesuviano Forni <noreply@vesuviano.it>",
            "to": ["mario@example.com"],
            "subject": "Ciao Mario",
            "html": "<p>Ciao</p>",
        }

    @pytest.mark.asyncio
    async def test_rejected_message(self, transport, mock_http_client):
        mock_http_client.post.return_value = make_mock_http_response(
            422, {"name": "validation_error", "message": "Invalid `to` field"}
        )

        result = await _send(transport)

        assert result.success is False
        assert result.error == "resend_validation_error: Invalid `to` field"
        assert circuit_email.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_timeout(self, transport, mock_http_client):
        mock_http_client.post.side_effect = httpx.TimeoutException("timed out")

        result = await _send(transport)

        assert result.success is False
        assert result.error == "resend_timeout"
        assert circuit_email.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_server_error_counts_against_circuit(self, transport, mock_http_client):
        response = make_mock_http_response(503, {"name": "internal_server_error", "message": "down"})
        response.raise_for_status = MagicMock(
            side_effect=httpx.HTTPStatusError("503", request=MagicMock(), response=response)
        )
        mock_http_client.post.return_value = response

        result = await _send(transport)

        assert result.error == "resend_internal_server_error: down"
        assert circuit_email.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_open_circuit(self, transport, mock_http_client):
        circuit_email.state = CircuitState.OPEN
        circuit_email.last_failure = None

        result = await _send(transport)

        assert result.error == "email_circuit_open"
        mock_http_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_api_key(self, mock_http_client):
        transport = ResendEmailTransport(api_key="")

        result = await _send(transport)

        assert result.success is False
        assert result.error == "RESEND_API_KEY not configured"
        mock_http_client.post.assert_not_called()
