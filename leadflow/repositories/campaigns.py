"""
Campaign and step repositories.

Each channel has its own campaign and step tables; the repository is bound
to a channel at construction.
"""
import logging
from typing import Dict, List, Optional

from leadflow.services.automations.types import (
    CHANNEL_TABLES,
    NEW_LEAD_TRIGGERS,
    Campaign,
    Channel,
    Step,
    StepTrigger,
)

from .base import BaseRepository

logger = logging.getLogger(__name__)


class CampaignRepository(BaseRepository):
    """Campaigns of one channel."""

    def __init__(self, db_client, channel: Channel):
        super().__init__(db_client)
        self.channel = channel

    @property
    def table_name(self) -> str:
        return CHANNEL_TABLES[self.channel].campaigns

    async def list_active_new_lead(self) -> List[Campaign]:
        """
        Active campaigns triggered by lead creation.

        Raises:
            DatabaseError: If the read fails
        """
        query = (
            self.table()
            .select("*")
            .eq("is_active", True)
            .in_("trigger_type", list(NEW_LEAD_TRIGGERS))
        )
        rows = self._execute(query, "list active campaigns")
        return [Campaign.from_db_row(row, self.channel) for row in rows]

    async def get_by_id(self, campaign_id: str) -> Optional[Campaign]:
        rows = self._execute(
            self.table().select("*").eq("id", campaign_id).limit(1),
            f"get campaign {campaign_id}",
        )
        return Campaign.from_db_row(rows[0], self.channel) if rows else None

    async def get_many(self, campaign_ids: List[str]) -> Dict[str, Campaign]:
        if not campaign_ids:
            return {}

        rows = self._execute(
            self.table().select("*").in_("id", list(set(campaign_ids))),
            "get campaigns",
        )
        return {row["id"]: Campaign.from_db_row(row, self.channel) for row in rows}


class StepRepository(BaseRepository):
    """Steps of one channel."""

    def __init__(self, db_client, channel: Channel):
        super().__init__(db_client)
        self.channel = channel

    @property
    def table_name(self) -> str:
        return CHANNEL_TABLES[self.channel].steps

    async def list_active(self, campaign_id: str) -> List[Step]:
        """Active steps of a campaign, ordered by step_order."""
        query = (
            self.table()
            .select("*")
            .eq("campaign_id", campaign_id)
            .eq("is_active", True)
            .order("step_order")
        )
        rows = self._execute(query, f"list steps of campaign {campaign_id}")
        return [Step.from_db_row(row) for row in rows]

    async def get_many(self, step_ids: List[str]) -> Dict[str, Step]:
        if not step_ids:
            return {}

        rows = self._execute(
            self.table().select("*").in_("id", list(set(step_ids))),
            "get steps",
        )
        return {row["id"]: Step.from_db_row(row) for row in rows}

    async def list_reply_children(self, parent_step_id: str) -> List[Step]:
        """Active steps fired by a button reply to parent_step_id."""
        query = (
            self.table()
            .select("*")
            .eq("trigger_from_step_id", parent_step_id)
            .eq("trigger_type", StepTrigger.BUTTON_REPLY.value)
            .eq("is_active", True)
            .order("step_order")
        )
        rows = self._execute(query, f"list reply steps of {parent_step_id}")
        return [Step.from_db_row(row) for row in rows]
