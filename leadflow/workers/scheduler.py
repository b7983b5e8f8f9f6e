"""
Scheduler for the automation passes.

Triggers the job endpoints on a cron-like cadence. The API does the work;
overlapping runs are prevented there by the pass locks.
"""
import asyncio
import logging
from datetime import datetime

import httpx

from leadflow.core.config import settings

logger = logging.getLogger(__name__)

LEADFLOW_API_URL = settings.LEADFLOW_API_URL

JOBS = [
    {
        "name": "process_enrollments_email",
        "endpoint": "/jobs/process-enrollments?channel=email",
        "schedule": "*/5 * * * *",  # every 5 minutes
    },
    {
        "name": "process_enrollments_whatsapp",
        "endpoint": "/jobs/process-enrollments?channel=whatsapp",
        "schedule": "*/5 * * * *",  # every 5 minutes
    },
    {
        "name": "dispatch_email",
        "endpoint": "/jobs/dispatch-due-executions?channel=email",
        "schedule": "* * * * *",  # every minute
    },
    {
        "name": "dispatch_whatsapp",
        "endpoint": "/jobs/dispatch-due-executions?channel=whatsapp",
        "schedule": "* * * * *",  # every minute
    },
]


def parse_cron(schedule: str) -> dict:
    """Parse a five-field cron expression."""
    parts = schedule.split()
    if len(parts) != 5:
        raise ValueError(f"Invalid cron: {schedule}")
    return {
        "minute": parts[0],
        "hour": parts[1],
        "day": parts[2],
        "month": parts[3],
        "weekday": parts[4],
    }


def matches_cron_field(field: str, value: int) -> bool:
    """Whether a value matches one cron field (*, */N, a,b,c or N)."""
    if field == "*":
        return True

    if field.startswith("*/"):
        interval = int(field[2:])
        return value % interval == 0

    if "," in field:
        return str(value) in field.split(",")

    return str(value) == field


def should_run(schedule: str, now: datetime) -> bool:
    """Whether a job with this schedule is due at `now` (minute resolution)."""
    try:
        cron = parse_cron(schedule)
    except ValueError as e:
        logger.error(f"Error parsing cron {schedule}: {e}")
        return False

    if not matches_cron_field(cron["minute"], now.minute):
        return False
    if not matches_cron_field(cron["hour"], now.hour):
        return False
    if not matches_cron_field(cron["day"], now.day):
        return False
    if not matches_cron_field(cron["month"], now.month):
        return False

    if cron["weekday"] != "*":
        # Python: 0=monday; cron: 0=sunday
        cron_weekday = (now.weekday() + 1) % 7
        if not matches_cron_field(cron["weekday"], cron_weekday):
            return False

    return True


async def execute_job(job: dict):
    """POST one job endpoint."""
    try:
        url = f"{LEADFLOW_API_URL}{job['endpoint']}"
        logger.info(f"Running job: {job['name']} -> {url}")

        async with httpx.AsyncClient(timeout=300.0) as client:
            response = await client.post(url)
            if response.status_code == 200:
                logger.info(f"Job {job['name']} done: {response.text[:300]}")
            else:
                logger.error(f"Job {job['name']} failed: {response.status_code} - {response.text}")
    except httpx.TimeoutException:
        logger.error(f"Timeout running job {job['name']}")
    except Exception as e:
        logger.error(f"Error running job {job['name']}: {e}", exc_info=True)


async def scheduler_loop():
    """Main loop: once per minute, run every due job."""
    logger.info("Scheduler started")
    logger.info(f"API URL: {LEADFLOW_API_URL}")
    logger.info(f"{len(JOBS)} jobs configured")

    last_minute = -1

    while True:
        try:
            now = datetime.now()

            if now.minute != last_minute:
                last_minute = now.minute

                for job in JOBS:
                    if should_run(job["schedule"], now):
                        await execute_job(job)

            await asyncio.sleep(1)

        except Exception as e:
            logger.error(f"Scheduler error: {e}", exc_info=True)
            await asyncio.sleep(10)
