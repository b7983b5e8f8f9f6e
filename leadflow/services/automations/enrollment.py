"""
Enrollment pass.

Reads recent leads, matches them against active "new lead" campaigns and
schedules the delay steps of every matched campaign the lead is not yet
enrolled in.

Flow:
    leads (recency window) -> campaigns -> matcher -> guard -> scheduler
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from leadflow.core.config import settings
from leadflow.core.exceptions import NotFoundError, ValidationError
from leadflow.core.timezone import utc_now
from leadflow.repositories.deps import ChannelRepositories, create_channel_repos
from leadflow.services.automations.matcher import match_campaigns
from leadflow.services.automations.scheduler import ScheduleOutcome, StepScheduler
from leadflow.services.automations.types import (
    Campaign,
    Channel,
    EnrollmentResult,
    Lead,
    Step,
)

logger = logging.getLogger(__name__)


class EnrollmentService:
    """Creates pending executions for leads entering campaigns."""

    def __init__(self, db_client: Any, config=None):
        self.db = db_client
        self.config = config or settings

    def _repos(self, channel: Channel) -> ChannelRepositories:
        return create_channel_repos(self.db, channel)

    async def run_enrollment_pass(
        self,
        channel: Channel,
        now: Optional[datetime] = None,
    ) -> EnrollmentResult:
        """
        Enroll the leads of the recency window into matching campaigns.

        Args:
            channel: Channel whose campaigns are evaluated
            now: Reference time (default: current UTC time)

        Returns:
            EnrollmentResult with aggregate counters

        Raises:
            DatabaseError: If the initial lead or campaign read fails
        """
        now = now or utc_now()
        repos = self._repos(channel)
        result = EnrollmentResult()

        logger.info(f"[enrollment:{channel.value}] Starting pass")

        # 1. Recent leads carrying the channel contact
        leads = await repos.leads.list_recent(
            channel,
            window_hours=self.config.ENROLLMENT_WINDOW_HOURS,
            limit=self.config.ENROLLMENT_LEAD_LIMIT,
            now=now,
        )
        if not leads:
            logger.info(f"[enrollment:{channel.value}] No recent leads")
            return result

        # 2. Active campaigns triggered by lead creation
        campaigns = await repos.campaigns.list_active_new_lead()
        if not campaigns:
            logger.info(f"[enrollment:{channel.value}] No active campaigns")
            result.leads_processed = len(leads)
            return result

        scheduler = StepScheduler(repos.executions)
        steps_cache: Dict[str, List[Step]] = {}

        # 3. Each lead independently; each matched pair independently
        for lead in leads:
            result.leads_processed += 1
            matched = match_campaigns(lead, campaigns)
            result.skipped_unmatched += len(campaigns) - len(matched)

            for campaign in matched:
                try:
                    await asyncio.wait_for(
                        self._enroll_pair(repos, scheduler, steps_cache, lead, campaign, None, result),
                        timeout=self.config.ITEM_TIMEOUT_SECONDS,
                    )
                except asyncio.TimeoutError:
                    logger.error(
                        f"[enrollment:{channel.value}] Timeout enrolling lead {lead.id} "
                        f"in campaign {campaign.id}"
                    )
                    result.errors += 1
                except Exception as e:
                    logger.error(
                        f"[enrollment:{channel.value}] Error enrolling lead {lead.id} "
                        f"in campaign {campaign.id}: {e}"
                    )
                    result.errors += 1

        logger.info(
            f"[enrollment:{channel.value}] {result.leads_processed} leads, "
            f"{result.executions_created} executions created "
            f"(enrolled={result.skipped_enrolled}, unmatched={result.skipped_unmatched}, "
            f"errors={result.errors})"
        )
        return result

    async def enroll_leads(
        self,
        channel: Channel,
        campaign_id: str,
        lead_ids: List[str],
        now: Optional[datetime] = None,
    ) -> EnrollmentResult:
        """
        Enroll explicit leads in one campaign, delays counted from now.

        Used for leads older than the recency window. Segment and activation
        filters are not applied; the enrollment guard is.

        Raises:
            ValidationError: Empty lead list, or campaign without active steps
            NotFoundError: Unknown campaign
        """
        if not lead_ids:
            raise ValidationError("lead_ids must not be empty")

        now = now or utc_now()
        repos = self._repos(channel)
        result = EnrollmentResult()

        campaign = await repos.campaigns.get_by_id(campaign_id)
        if campaign is None:
            raise NotFoundError("Campaign", campaign_id)

        steps = await repos.steps.list_active(campaign_id)
        if not steps:
            raise ValidationError(
                "No active steps found for campaign",
                details={"campaign_id": campaign_id},
            )

        leads = await repos.leads.get_many(lead_ids)
        scheduler = StepScheduler(repos.executions)
        steps_cache = {campaign.id: steps}

        logger.info(
            f"[enrollment:{channel.value}] Enrolling {len(lead_ids)} leads in campaign {campaign_id}"
        )

        for lead_id in lead_ids:
            lead = leads.get(lead_id)
            if lead is None:
                logger.warning(f"[enrollment:{channel.value}] Lead {lead_id} not found")
                result.errors += 1
                continue

            result.leads_processed += 1
            try:
                await asyncio.wait_for(
                    self._enroll_pair(repos, scheduler, steps_cache, lead, campaign, now, result),
                    timeout=self.config.ITEM_TIMEOUT_SECONDS,
                )
            except asyncio.TimeoutError:
                logger.error(f"[enrollment:{channel.value}] Timeout enrolling lead {lead_id}")
                result.errors += 1
            except Exception as e:
                logger.error(f"[enrollment:{channel.value}] Error enrolling lead {lead_id}: {e}")
                result.errors += 1

        logger.info(
            f"[enrollment:{channel.value}] Manual enrollment: "
            f"{result.executions_created} executions created"
        )
        return result

    async def _enroll_pair(
        self,
        repos: ChannelRepositories,
        scheduler: StepScheduler,
        steps_cache: Dict[str, List[Step]],
        lead: Lead,
        campaign: Campaign,
        origin: Optional[datetime],
        result: EnrollmentResult,
    ) -> None:
        # Guard: any execution for the pair means enrolled
        if await repos.executions.is_enrolled(lead.id, campaign.id):
            logger.debug(f"Lead {lead.id} already enrolled in campaign {campaign.id}")
            result.skipped_enrolled += 1
            return

        if campaign.id not in steps_cache:
            steps_cache[campaign.id] = await repos.steps.list_active(campaign.id)

        outcome: ScheduleOutcome = await scheduler.schedule(
            lead, campaign, steps_cache[campaign.id], origin=origin
        )
        result.executions_created += outcome.created
        result.errors += outcome.errors

        # Lost a race with another runner: the unique constraint caught it
        if outcome.created == 0 and outcome.already_scheduled:
            result.skipped_enrolled += 1
