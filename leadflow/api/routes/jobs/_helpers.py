"""
Helpers shared by the job routers.
"""

import functools
import logging
from typing import Any, Callable, Coroutine

from fastapi.responses import JSONResponse

from leadflow.core.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def job_endpoint(name: str):
    """
    Wrap a job handler in the usual try/except/JSONResponse.

    Client errors (ValidationError, NotFoundError) go on to the exception
    handlers; anything else becomes a 500 {"status": "error"} reply.

    Args:
        name: Job name for error logs

    Usage:
        @router.post("/my-job")
        @job_endpoint("my-job")
        async def job_my_job():
            return {"status": "ok", "message": "done"}
    """

    def decorator(
        func: Callable[..., Coroutine[Any, Any, dict | JSONResponse]],
    ) -> Callable[..., Coroutine[Any, Any, JSONResponse]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> JSONResponse:
            try:
                result = await func(*args, **kwargs)
                if isinstance(result, JSONResponse):
                    return result
                return JSONResponse(result)
            except (ValidationError, NotFoundError):
                raise
            except Exception as e:
                logger.error(f"Error in job {name}: {e}")
                return JSONResponse(
                    {"status": "error", "message": str(e)},
                    status_code=500,
                )

        return wrapper

    return decorator
