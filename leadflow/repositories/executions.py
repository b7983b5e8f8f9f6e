"""
Execution ledger.

One row per (lead, campaign, step). Rows are created pending and move once
to a terminal state; every state update is conditional on the row still
being pending, so a terminal row is never re-transitioned.
"""
import logging
from datetime import datetime
from typing import List, Optional

from leadflow.core.exceptions import DatabaseError
from leadflow.core.timezone import iso_utc
from leadflow.services.automations.types import (
    CHANNEL_TABLES,
    Channel,
    Execution,
    ExecutionStatus,
)

from .base import BaseRepository, is_unique_violation

logger = logging.getLogger(__name__)


class ExecutionRepository(BaseRepository):
    """
    Ledger of one channel.

    Usage:
        repo = ExecutionRepository(supabase, Channel.WHATSAPP)
        due = await repo.list_due(now, limit=50)
    """

    def __init__(self, db_client, channel: Channel):
        super().__init__(db_client)
        self.channel = channel

    @property
    def table_name(self) -> str:
        return CHANNEL_TABLES[self.channel].executions

    # Enrollment guard

    async def is_enrolled(self, lead_id: str, campaign_id: str) -> bool:
        """Any execution for the pair, whatever its state."""
        query = (
            self.table()
            .select("id")
            .eq("lead_id", lead_id)
            .eq("campaign_id", campaign_id)
            .limit(1)
        )
        return bool(self._execute(query, f"check enrollment {lead_id}/{campaign_id}"))

    async def exists_for_step(self, lead_id: str, step_id: str) -> bool:
        query = (
            self.table()
            .select("id")
            .eq("lead_id", lead_id)
            .eq("step_id", step_id)
            .limit(1)
        )
        return bool(self._execute(query, f"check step {lead_id}/{step_id}"))

    # Writes

    async def insert_pending(
        self,
        lead_id: str,
        campaign_id: str,
        step_id: str,
        scheduled_at: datetime,
    ) -> Optional[Execution]:
        """
        Insert a pending execution.

        Returns:
            The new execution, or None when one already exists for
            (lead, campaign, step) according to the unique constraint

        Raises:
            DatabaseError: Any other write failure
        """
        data = {
            "lead_id": lead_id,
            "campaign_id": campaign_id,
            "step_id": step_id,
            "status": ExecutionStatus.PENDING.value,
            "scheduled_at": iso_utc(scheduled_at),
        }
        try:
            rows = self._execute(self.table().insert(data), f"insert execution for step {step_id}")
        except DatabaseError as e:
            if is_unique_violation(e.original_error):
                logger.info(
                    f"Execution already exists for lead {lead_id}, step {step_id}"
                )
                return None
            raise

        if not rows:
            raise DatabaseError(f"Insert returned no row for step {step_id}")
        return Execution.from_db_row(rows[0])

    async def _transition(self, execution_id: str, status: ExecutionStatus, fields: dict) -> bool:
        data = {"status": status.value, **fields}
        query = (
            self.table()
            .update(data)
            .eq("id", execution_id)
            .eq("status", ExecutionStatus.PENDING.value)
        )
        rows = self._execute(query, f"mark {execution_id} {status.value}")
        if not rows:
            logger.warning(f"Execution {execution_id} was no longer pending, not marked {status.value}")
            return False
        return True

    async def mark_sent(
        self,
        execution_id: str,
        sent_at: datetime,
        provider_message_id: Optional[str] = None,
        extra: Optional[dict] = None,
    ) -> bool:
        """pending -> sent. False when the row was already terminal."""
        fields = {
            "sent_at": iso_utc(sent_at),
            "provider_message_id": provider_message_id,
            "error_message": None,
        }
        fields.update(extra or {})
        return await self._transition(execution_id, ExecutionStatus.SENT, fields)

    async def mark_failed(
        self,
        execution_id: str,
        error_message: str,
        completed_at: datetime,
        extra: Optional[dict] = None,
    ) -> bool:
        """pending -> failed. False when the row was already terminal."""
        fields = {
            "sent_at": iso_utc(completed_at),
            "error_message": error_message,
        }
        fields.update(extra or {})
        return await self._transition(execution_id, ExecutionStatus.FAILED, fields)

    async def mark_cancelled(self, execution_id: str, reason: str, completed_at: datetime) -> bool:
        """pending -> cancelled. False when the row was already terminal."""
        fields = {
            "sent_at": iso_utc(completed_at),
            "error_message": reason,
        }
        return await self._transition(execution_id, ExecutionStatus.CANCELLED, fields)

    # Reads

    async def list_due(
        self,
        now: datetime,
        limit: int,
        not_before: Optional[datetime] = None,
    ) -> List[Execution]:
        """
        Pending executions with scheduled_at <= now, oldest first.

        Args:
            now: Upper bound on scheduled_at
            limit: Batch size
            not_before: Optional lower bound, skips a stale backlog

        Raises:
            DatabaseError: If the read fails
        """
        query = (
            self.table()
            .select("*")
            .eq("status", ExecutionStatus.PENDING.value)
            .lte("scheduled_at", iso_utc(now))
        )
        if not_before is not None:
            query = query.gte("scheduled_at", iso_utc(not_before))

        query = query.order("scheduled_at").limit(limit)
        rows = self._execute(query, "list due executions")
        return [Execution.from_db_row(row) for row in rows]

    async def list_for_lead(
        self,
        lead_id: str,
        step_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> List[Execution]:
        """Executions of a lead, most recently scheduled first."""
        query = self.table().select("*").eq("lead_id", lead_id)
        if step_id:
            query = query.eq("step_id", step_id)
        if status is not None:
            query = query.eq("status", status.value)

        rows = self._execute(query.order("scheduled_at", desc=True), f"list executions of {lead_id}")
        return [Execution.from_db_row(row) for row in rows]

    async def get_by_provider_message_id(self, provider_message_id: str) -> Optional[Execution]:
        """Execution whose sent message carries this provider id (e.g. a wamid)."""
        if not provider_message_id:
            return None
        rows = self._execute(
            self.table().select("*").eq("provider_message_id", provider_message_id).limit(1),
            "get execution by provider message id",
        )
        return Execution.from_db_row(rows[0]) if rows else None
