"""
Job endpoints, called by the scheduler worker.
"""

from fastapi import APIRouter

from .automations import router as automations_router

router = APIRouter(prefix="/jobs", tags=["Jobs"])
router.include_router(automations_router)
