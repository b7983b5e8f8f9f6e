"""
Background tasks of the reply queue.

Failures are logged and counted per task name (exposed on
/health/reply-queue); they never propagate to the event loop.
"""
import asyncio
import logging
from typing import Any, Coroutine, Dict, Optional

logger = logging.getLogger(__name__)

_task_failures: Dict[str, int] = {}


async def _run_logged(coro: Coroutine, task_name: str) -> Any:
    try:
        return await coro
    except asyncio.CancelledError:
        logger.debug(f"Task cancelled: {task_name}")
        raise
    except Exception as e:
        _task_failures[task_name] = _task_failures.get(task_name, 0) + 1
        logger.error(
            f"Background task '{task_name}' failed: {e}",
            exc_info=True,
            extra={
                "task_name": task_name,
                "error_type": type(e).__name__,
                "total_failures": _task_failures[task_name],
            },
        )
        return None


def safe_create_task(coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
    """
    asyncio.create_task that logs and counts failures instead of raising.

    Usage:
        self._worker = safe_create_task(self._run(), name="reply_queue")
    """
    task_name = name or getattr(coro, "__qualname__", "unknown")
    return asyncio.create_task(_run_logged(coro, task_name), name=task_name)


def get_task_failure_counts() -> Dict[str, int]:
    return _task_failures.copy()


def reset_task_failure_counts() -> None:
    _task_failures.clear()
