"""
Base repository.

Every repository receives the database client by injection, so tests can
hand in an in-memory fake instead of the Supabase client.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any

from leadflow.core.exceptions import DatabaseError

logger = logging.getLogger(__name__)

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


def is_unique_violation(error: Exception) -> bool:
    """True when the store rejected a write because of a unique constraint."""
    code = getattr(error, "code", None)
    if code is None and isinstance(getattr(error, "args", None), tuple) and error.args:
        first = error.args[0]
        if isinstance(first, dict):
            code = first.get("code")
    return str(code) == UNIQUE_VIOLATION


class BaseRepository(ABC):
    """
    Common ground for repositories.

    Attributes:
        db: Database client (Supabase, fake, ...)
        table_name: Table backing the repository

    Example:
        class LeadRepository(BaseRepository):
            @property
            def table_name(self) -> str:
                return "leads"
    """

    def __init__(self, db_client: Any):
        self.db = db_client

    @property
    @abstractmethod
    def table_name(self) -> str:
        """Table name in the store."""
        pass

    def table(self):
        return self.db.table(self.table_name)

    def _execute(self, query, action: str):
        """
        Run a query builder, turning driver errors into DatabaseError.

        Args:
            query: Supabase query builder ready to execute
            action: Short description used in logs and the error message

        Returns:
            Rows returned by the store (never None)
        """
        try:
            response = query.execute()
        except Exception as e:
            logger.error(f"Error on {self.table_name} ({action}): {e}")
            raise DatabaseError(
                f"Error on {self.table_name}: {action}",
                details={"table": self.table_name},
                original_error=e,
            ) from e
        return response.data or []
