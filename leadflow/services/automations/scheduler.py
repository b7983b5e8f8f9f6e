"""
Step scheduler.

Fire times are computed from immutable inputs only (lead creation time and
step configuration), so recomputing them always yields the same value.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from leadflow.core.timezone import to_utc
from leadflow.repositories.executions import ExecutionRepository
from leadflow.services.automations.types import Campaign, Lead, Step

logger = logging.getLogger(__name__)


def compute_scheduled_at(origin: datetime, step: Step) -> datetime:
    """
    origin + delay_days + delay_hours + delay_minutes, in UTC.

    Example:
        2024-01-01T00:00Z with (1 day, 2 hours) -> 2024-01-02T02:00Z
    """
    return to_utc(origin) + step.delay


@dataclass
class ScheduleOutcome:
    """Counters of one (lead, campaign) scheduling."""

    created: int = 0
    already_scheduled: int = 0
    skipped_conditional: int = 0
    errors: int = 0


class StepScheduler:
    """
    Writes one pending execution per active delay step.

    Conditional steps are left to the reply path.
    """

    def __init__(self, executions: ExecutionRepository):
        self.executions = executions

    async def schedule(
        self,
        lead: Lead,
        campaign: Campaign,
        steps: Iterable[Step],
        origin: Optional[datetime] = None,
    ) -> ScheduleOutcome:
        """
        Insert pending executions for a matched, not yet enrolled pair.

        Args:
            lead: Lead being enrolled
            campaign: Matched campaign
            steps: Campaign steps (inactive ones are ignored)
            origin: Base time of the delays (default: lead.created_at)

        Returns:
            ScheduleOutcome; a failed insert is counted, never raised
        """
        outcome = ScheduleOutcome()
        base = origin if origin is not None else lead.created_at

        for step in sorted(steps, key=lambda s: s.step_order):
            if not step.is_active:
                continue

            if step.is_conditional:
                logger.debug(f"Step {step.id} is conditional ({step.trigger_type}), skipped")
                outcome.skipped_conditional += 1
                continue

            scheduled_at = compute_scheduled_at(base, step)
            try:
                execution = await self.executions.insert_pending(
                    lead_id=lead.id,
                    campaign_id=campaign.id,
                    step_id=step.id,
                    scheduled_at=scheduled_at,
                )
            except Exception as e:
                logger.error(
                    f"Error scheduling step {step.id} for lead {lead.id}: {e}"
                )
                outcome.errors += 1
                continue

            if execution is None:
                outcome.already_scheduled += 1
                continue

            outcome.created += 1
            logger.info(
                f"Scheduled step {step.step_order} of '{campaign.name}' for lead {lead.id} "
                f"at {scheduled_at.isoformat()}"
            )

        return outcome
