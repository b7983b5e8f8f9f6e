"""
Campaign matcher.

Decides which active "new lead" campaigns a lead qualifies for.
"""
import logging
from typing import Iterable, List

from leadflow.services.automations.types import Campaign, Lead

logger = logging.getLogger(__name__)


def segment_matches(target_pipeline, lead_pipeline) -> bool:
    """No target means every segment; otherwise case-insensitive equality."""
    if not target_pipeline:
        return True
    if not lead_pipeline:
        return False
    return target_pipeline.lower() == lead_pipeline.lower()


def campaign_matches(lead: Lead, campaign: Campaign) -> bool:
    """
    True when the lead qualifies for the campaign.

    All must hold:
    - campaign is active
    - campaign has no target pipeline, or it equals the lead's (case-insensitive)
    - campaign has no activated_at, or the lead was created at/after it
    """
    if not campaign.is_active:
        return False

    if not segment_matches(campaign.target_pipeline, lead.pipeline):
        return False

    if campaign.activated_at is not None and lead.created_at < campaign.activated_at:
        return False

    return True


def match_campaigns(lead: Lead, campaigns: Iterable[Campaign]) -> List[Campaign]:
    """Subset of campaigns the lead qualifies for. Order carries no meaning."""
    matched = [c for c in campaigns if campaign_matches(lead, c)]
    logger.debug(f"Lead {lead.id}: {len(matched)} campaign(s) matched")
    return matched
