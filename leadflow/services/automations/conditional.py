"""
Conditional step activator.

Runs on inbound replies, outside the enrollment pass. A conditional step
names the step whose reply fires it and, optionally, the button text that
must be replied. When it fires it is scheduled like a delay step whose
origin is the reply time.
"""

import logging
from typing import Any, List, Optional

from leadflow.core.config import settings
from leadflow.repositories.deps import ChannelRepositories, create_channel_repos
from leadflow.services.automations.scheduler import compute_scheduled_at
from leadflow.services.automations.types import (
    ActivationResult,
    Execution,
    ExecutionStatus,
    ReplyEvent,
    Step,
)

logger = logging.getLogger(__name__)


def reply_matches(trigger_text: Optional[str], payload: Optional[str]) -> bool:
    """
    Whether a reply fires a step.

    Empty trigger text accepts any reply; otherwise the payload must equal or
    contain it (trimmed, case-insensitive).
    """
    expected = (trigger_text or "").strip().lower()
    if not expected:
        return True
    received = (payload or "").strip().lower()
    return expected == received or expected in received


class ConditionalStepActivator:
    """
    Creates pending executions for steps gated on a reply.

    By default the prior step's execution may be in any state. With
    CONDITIONAL_REQUIRE_PRIOR_SENT the prior execution must be sent.
    """

    def __init__(self, db_client: Any, config=None):
        self.db = db_client
        self.config = config or settings

    async def handle_reply(self, event: ReplyEvent) -> ActivationResult:
        """
        Activate the conditional steps fired by a reply.

        Args:
            event: Reply of a lead (optionally naming the replied step)

        Returns:
            ActivationResult (created / skipped / errors)

        Raises:
            DatabaseError: If the lead's executions cannot be read
        """
        repos = create_channel_repos(self.db, event.channel)
        result = ActivationResult()

        priors = await self._prior_executions(repos, event)
        if not priors:
            logger.info(f"No prior executions for lead {event.lead_id}, reply ignored")
            return result

        seen_steps = set()
        for prior in priors:
            # Several executions of the same step lead to the same children
            if prior.step_id in seen_steps:
                continue
            seen_steps.add(prior.step_id)

            try:
                children = await repos.steps.list_reply_children(prior.step_id)
            except Exception as e:
                logger.error(f"Error loading reply steps of {prior.step_id}: {e}")
                result.errors += 1
                continue

            for step in children:
                await self._activate(repos, event, prior, step, result)

        logger.info(
            f"Reply of lead {event.lead_id}: {result.created} created, "
            f"{result.skipped} skipped, {result.errors} errors"
        )
        return result

    async def _prior_executions(self, repos: ChannelRepositories, event: ReplyEvent) -> List[Execution]:
        status = ExecutionStatus.SENT if self.config.CONDITIONAL_REQUIRE_PRIOR_SENT else None
        return await repos.executions.list_for_lead(
            event.lead_id,
            step_id=event.step_id,
            status=status,
        )

    async def _activate(
        self,
        repos: ChannelRepositories,
        event: ReplyEvent,
        prior: Execution,
        step: Step,
        result: ActivationResult,
    ) -> None:
        if not reply_matches(step.trigger_button_text, event.payload):
            logger.debug(
                f"Reply '{event.payload}' does not match trigger '{step.trigger_button_text}' "
                f"of step {step.id}"
            )
            result.skipped += 1
            return

        try:
            if await repos.executions.exists_for_step(event.lead_id, step.id):
                logger.info(f"Execution already exists for conditional step {step.id}")
                result.skipped += 1
                return

            scheduled_at = compute_scheduled_at(event.occurred_at, step)
            execution = await repos.executions.insert_pending(
                lead_id=event.lead_id,
                campaign_id=prior.campaign_id,
                step_id=step.id,
                scheduled_at=scheduled_at,
            )
        except Exception as e:
            logger.error(f"Error activating step {step.id} for lead {event.lead_id}: {e}")
            result.errors += 1
            return

        if execution is None:
            result.skipped += 1
            return

        result.created += 1
        logger.info(
            f"Conditional step {step.id} activated for lead {event.lead_id} "
            f"at {scheduled_at.isoformat()}"
        )
