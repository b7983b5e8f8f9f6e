"""
Lead repository (read-only).

Leads are owned by the CRM; the engine only reads them.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from leadflow.core.timezone import iso_utc
from leadflow.services.automations.types import Channel, Lead

from .base import BaseRepository

logger = logging.getLogger(__name__)

# Columns needed to match, schedule and render
LEAD_COLUMNS = (
    "id, email, phone, contact_name, company_name, pipeline, country, "
    "created_at, configurator_link, external_configurator_link"
)

CONTACT_COLUMN = {
    Channel.EMAIL: "email",
    Channel.WHATSAPP: "phone",
}


def normalize_phone(phone: str) -> str:
    """Digits only."""
    return "".join(filter(str.isdigit, phone or ""))


class LeadRepository(BaseRepository):
    """
    Reads leads for the enrollment pass and the inbound webhook.

    Usage:
        repo = LeadRepository(supabase)
        leads = await repo.list_recent(Channel.EMAIL, window_hours=24, limit=50, now=now)
    """

    @property
    def table_name(self) -> str:
        return "leads"

    async def list_recent(
        self,
        channel: Channel,
        window_hours: int,
        limit: int,
        now: datetime,
    ) -> List[Lead]:
        """
        Leads created within the recency window, newest first.

        Only leads carrying the channel contact field are returned.

        Raises:
            DatabaseError: If the read fails
        """
        since = now - timedelta(hours=window_hours)
        contact = CONTACT_COLUMN[channel]

        query = (
            self.table()
            .select(LEAD_COLUMNS)
            .gte("created_at", iso_utc(since))
            .not_.is_(contact, "null")
            .order("created_at", desc=True)
            .limit(limit)
        )
        rows = self._execute(query, "list recent leads")
        return [Lead.from_db_row(row) for row in rows]

    async def get_by_id(self, lead_id: str) -> Optional[Lead]:
        """Lead by id, or None."""
        rows = self._execute(
            self.table().select(LEAD_COLUMNS).eq("id", lead_id).limit(1),
            f"get lead {lead_id}",
        )
        return Lead.from_db_row(rows[0]) if rows else None

    async def get_many(self, lead_ids: List[str]) -> Dict[str, Lead]:
        """Leads by id, keyed by id. Unknown ids are simply absent."""
        if not lead_ids:
            return {}

        rows = self._execute(
            self.table().select(LEAD_COLUMNS).in_("id", list(set(lead_ids))),
            "get leads",
        )
        return {row["id"]: Lead.from_db_row(row) for row in rows}

    async def find_by_phone(self, phone: str) -> Optional[Lead]:
        """
        Lead matching a WhatsApp sender number.

        The CRM stores phones in free format (+39 333 123 4567, 0039-333...),
        so candidates are narrowed on the last 4 digits (separators allowed
        between them) and compared on digits only. The last 9 digits must
        match and an exact digit match is preferred.

        Args:
            phone: Number as sent by Meta (digits, country code included)

        Returns:
            Lead or None
        """
        digits = normalize_phone(phone)
        if not digits:
            return None

        tail = digits[-9:]
        rows = self._execute(
            self.table()
            .select(LEAD_COLUMNS)
            .ilike("phone", "%" + "%".join(digits[-4:]) + "%")
            .order("created_at", desc=True),
            "find lead by phone",
        )
        rows = [row for row in rows if normalize_phone(row.get("phone")).endswith(tail)]
        if not rows:
            logger.info(f"No lead found for phone ending in {tail}")
            return None

        for row in rows:
            if normalize_phone(row.get("phone")) == digits:
                return Lead.from_db_row(row)
        return Lead.from_db_row(rows[0])
