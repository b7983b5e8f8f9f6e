"""
Circuit breaker for channel providers.
Stops hammering a provider that is down and lets it recover.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"        # normal, calls pass
    OPEN = "open"            # blocking calls
    HALF_OPEN = "half_open"  # probing recovery


class CircuitOpenError(Exception):
    """Raised when the circuit is open."""
    pass


@dataclass
class CircuitBreaker:
    """
    Circuit breaker for one provider.

    States:
    - CLOSED: every call passes
    - OPEN: too many consecutive failures, calls are rejected
    - HALF_OPEN: one probe call decides between CLOSED and OPEN
    """
    name: str
    failures_to_open: int = 5
    timeout_seconds: float = 30.0
    reset_seconds: int = 60

    state: CircuitState = field(default=CircuitState.CLOSED)
    consecutive_failures: int = field(default=0)
    last_failure: Optional[datetime] = field(default=None)
    last_success: Optional[datetime] = field(default=None)

    def _check_half_open(self):
        if self.state != CircuitState.OPEN or self.last_failure is None:
            return

        elapsed = datetime.now() - self.last_failure
        if elapsed.total_seconds() >= self.reset_seconds:
            logger.info(f"Circuit {self.name}: OPEN -> HALF_OPEN")
            self.state = CircuitState.HALF_OPEN

    def _record_success(self):
        self.consecutive_failures = 0
        self.last_success = datetime.now()

        if self.state == CircuitState.HALF_OPEN:
            logger.info(f"Circuit {self.name}: HALF_OPEN -> CLOSED (recovered)")
            self.state = CircuitState.CLOSED

    def _record_failure(self, error: Exception):
        self.consecutive_failures += 1
        self.last_failure = datetime.now()

        logger.warning(
            f"Circuit {self.name}: failure {self.consecutive_failures}/{self.failures_to_open} - {error!r}"
        )

        if self.state == CircuitState.HALF_OPEN:
            logger.info(f"Circuit {self.name}: HALF_OPEN -> OPEN (probe failed)")
            self.state = CircuitState.OPEN

        elif self.consecutive_failures >= self.failures_to_open:
            logger.warning(f"Circuit {self.name}: CLOSED -> OPEN (too many failures)")
            self.state = CircuitState.OPEN

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Run an async function under the breaker.

        Args:
            func: Coroutine function to call
            *args, **kwargs: Forwarded to func

        Returns:
            Whatever func returns

        Raises:
            CircuitOpenError: If the circuit is open
            asyncio.TimeoutError: If the call exceeds timeout_seconds
        """
        self._check_half_open()

        if self.state == CircuitState.OPEN:
            raise CircuitOpenError(f"Circuit {self.name} is open")

        try:
            result = await asyncio.wait_for(
                func(*args, **kwargs),
                timeout=self.timeout_seconds
            )
        except Exception as e:
            self._record_failure(e)
            raise

        self._record_success()
        return result

    def status(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "last_failure": self.last_failure.isoformat() if self.last_failure else None,
            "last_success": self.last_success.isoformat() if self.last_success else None,
        }

    def reset(self):
        """Force the circuit back to CLOSED."""
        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        logger.info(f"Circuit {self.name}: manual reset to CLOSED")


circuit_email = CircuitBreaker(
    name="email",
    failures_to_open=5,
    timeout_seconds=30.0,
    reset_seconds=60,
)

circuit_whatsapp = CircuitBreaker(
    name="whatsapp",
    failures_to_open=5,
    timeout_seconds=30.0,
    reset_seconds=15,
)


def get_circuits_status() -> dict:
    """Status of every provider circuit."""
    return {
        "email": circuit_email.status(),
        "whatsapp": circuit_whatsapp.status(),
    }
