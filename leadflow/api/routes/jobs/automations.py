"""
Automation jobs: enrollment pass, dispatch pass, manual enrollment.

Each pass runs under a distributed lock per (pass, channel); when another
runner holds it the call returns {"status": "skipped"}.
"""

import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from leadflow.core.distributed_lock import LockNotAcquiredError, pass_lock
from leadflow.repositories.deps import get_db
from leadflow.services.automations.dispatcher import DueExecutionDispatcher
from leadflow.services.automations.enrollment import EnrollmentService
from leadflow.services.automations.types import Channel

from ._helpers import job_endpoint

router = APIRouter()
logger = logging.getLogger(__name__)


def get_enrollment_service(db: Any = Depends(get_db)) -> EnrollmentService:
    return EnrollmentService(db)


def get_dispatcher(db: Any = Depends(get_db)) -> DueExecutionDispatcher:
    return DueExecutionDispatcher(db)


def _channels(channel: Optional[Channel]) -> List[Channel]:
    return [channel] if channel else list(Channel)


@router.post("/process-enrollments")
@job_endpoint("process-enrollments")
async def job_process_enrollments(
    channel: Optional[Channel] = None,
    service: EnrollmentService = Depends(get_enrollment_service),
):
    """
    Enroll recent leads into matching campaigns.

    Schedule: */5 * * * *
    """
    results = {}
    for ch in _channels(channel):
        try:
            async with pass_lock("enrollment", ch.value):
                result = await service.run_enrollment_pass(ch)
            results[ch.value] = {"status": "ok", **result.to_dict()}
        except LockNotAcquiredError:
            logger.info(f"Enrollment pass for {ch.value} already running, skipped")
            results[ch.value] = {"status": "skipped", "message": "Pass already running"}

    return {"status": "ok", "channels": results}


@router.post("/dispatch-due-executions")
@job_endpoint("dispatch-due-executions")
async def job_dispatch_due_executions(
    channel: Optional[Channel] = None,
    batch_size: Optional[int] = None,
    dispatcher: DueExecutionDispatcher = Depends(get_dispatcher),
):
    """
    Send due executions.

    Schedule: * * * * *
    """
    results = {}
    for ch in _channels(channel):
        try:
            async with pass_lock("dispatch", ch.value):
                result = await dispatcher.run_dispatch_pass(ch, batch_size=batch_size)
            results[ch.value] = {"status": "ok", **result.to_dict()}
        except LockNotAcquiredError:
            logger.info(f"Dispatch pass for {ch.value} already running, skipped")
            results[ch.value] = {"status": "skipped", "message": "Pass already running"}

    return {"status": "ok", "channels": results}


class EnrollLeadsRequest(BaseModel):
    channel: Channel = Channel.EMAIL
    campaign_id: str
    lead_ids: List[str] = Field(min_length=1)


@router.post("/enroll-leads")
@job_endpoint("enroll-leads")
async def job_enroll_leads(
    request: EnrollLeadsRequest,
    service: EnrollmentService = Depends(get_enrollment_service),
):
    """Enroll explicit leads in one campaign, delays counted from now."""
    result = await service.enroll_leads(request.channel, request.campaign_id, request.lead_ids)
    return {
        "status": "ok",
        "message": f"Created {result.executions_created} executions for {len(request.lead_ids)} leads",
        **result.to_dict(),
    }
