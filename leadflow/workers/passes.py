"""
Run one pass in-process, without the API.

    python -m leadflow.workers enroll email
    python -m leadflow.workers dispatch whatsapp
"""
import logging
from typing import Optional

from leadflow.core.distributed_lock import LockNotAcquiredError, pass_lock
from leadflow.services.automations.dispatcher import DueExecutionDispatcher
from leadflow.services.automations.enrollment import EnrollmentService
from leadflow.services.automations.types import Channel
from leadflow.services.http_client import close_http_client
from leadflow.services.supabase import get_supabase_client

logger = logging.getLogger(__name__)


async def run_pass(pass_name: str, channel: Channel) -> Optional[dict]:
    """
    Run the enrollment or dispatch pass of a channel under its lock.

    Returns:
        Pass counters, or None when another runner holds the lock
    """
    db = get_supabase_client()
    try:
        async with pass_lock(pass_name, channel.value):
            if pass_name == "enrollment":
                result = await EnrollmentService(db).run_enrollment_pass(channel)
            elif pass_name == "dispatch":
                result = await DueExecutionDispatcher(db).run_dispatch_pass(channel)
            else:
                raise ValueError(f"Unknown pass: {pass_name}")
    except LockNotAcquiredError:
        logger.info(f"{pass_name} pass for {channel.value} already running, skipped")
        return None
    finally:
        await close_http_client()

    logger.info(f"{pass_name} pass for {channel.value}: {result.to_dict()}")
    return result.to_dict()
