"""
Health check routes.

- /health: liveness (200 while the app runs)
- /health/ready: readiness (Redis reachable)
- /health/circuits: provider circuit breakers
- /health/reply-queue: reply queue counters
"""
from fastapi import APIRouter, Request
import logging

from leadflow.core.tasks import get_task_failure_counts
from leadflow.core.timezone import iso_utc
from leadflow.services.circuit_breaker import get_circuits_status
from leadflow.services.redis import check_redis_connection

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check():
    """Liveness probe."""
    return {
        "status": "healthy",
        "timestamp": iso_utc(),
        "service": "leadflow",
    }


@router.get("/health/ready")
async def readiness_check():
    """Readiness: the pass lock store must answer."""
    redis_ok = await check_redis_connection()

    return {
        "status": "ready" if redis_ok else "degraded",
        "checks": {
            "redis": "ok" if redis_ok else "error",
        },
    }


@router.get("/health/circuits")
async def circuit_status():
    return {
        "circuits": get_circuits_status(),
        "timestamp": iso_utc(),
    }


@router.get("/health/reply-queue")
async def reply_queue_status(request: Request):
    queue = getattr(request.app.state, "reply_queue", None)
    return {
        "reply_queue": queue.stats() if queue is not None else None,
        "task_failures": get_task_failure_counts(),
        "timestamp": iso_utc(),
    }
