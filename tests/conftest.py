"""
Shared test fixtures.

Fixtures defined here are available to every test module. Mock factories
and row builders live in tests/factories.py.
"""

import pytest
from datetime import datetime, timezone

from leadflow.core.tasks import reset_task_failure_counts
from leadflow.services.circuit_breaker import circuit_email, circuit_whatsapp
from leadflow.services.transports import clear_transport_cache
from tests.factories import make_mock_http_response, make_mock_redis, make_settings
from tests.fakes import FakeSupabase


# =============================================================================
# MODULE STATE
# =============================================================================


@pytest.fixture(autouse=True)
def reset_providers():
    """Circuits, cached transports and task counters are module state."""
    circuit_email.reset()
    circuit_whatsapp.reset()
    clear_transport_cache()
    reset_task_failure_counts()
    yield
    circuit_email.reset()
    circuit_whatsapp.reset()
    clear_transport_cache()


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def fake_db():
    """Empty in-memory store."""
    return FakeSupabase()


@pytest.fixture
def now():
    """Fixed reference time."""
    return datetime(2024, 1, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def test_settings():
    """Settings with every behaviour switch at its default."""
    return make_settings()


@pytest.fixture
def mock_redis():
    return make_mock_redis()


@pytest.fixture
def mock_http_response_factory():
    """
    Factory for httpx.Response mocks.

    Usage:
        def test_something(mock_http_response_factory):
            response = mock_http_response_factory(200, {"id": "re_1"})
    """
    return make_mock_http_response
