"""
WhatsApp templates and sender accounts.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .base import BaseRepository

logger = logging.getLogger(__name__)


@dataclass
class WhatsAppTemplate:
    """Approved Meta message template."""

    id: str
    name: str
    language: str
    status: str = "APPROVED"
    components: List[dict] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "WhatsAppTemplate":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            language=data.get("language", ""),
            status=data.get("status", "APPROVED"),
            components=list(data.get("components") or []),
        )

    @property
    def body_text(self) -> str:
        for component in self.components:
            if str(component.get("type", "")).upper() == "BODY":
                return component.get("text") or ""
        return ""


@dataclass
class WhatsAppAccount:
    """Business phone number used as sender."""

    id: str
    phone_number_id: Optional[str] = None
    access_token: Optional[str] = None
    display_phone_number: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "WhatsAppAccount":
        return cls(
            id=data.get("id", ""),
            phone_number_id=data.get("phone_number_id"),
            access_token=data.get("access_token"),
            display_phone_number=data.get("display_phone_number"),
        )


class TemplateRepository(BaseRepository):
    """Templates synced from Meta."""

    @property
    def table_name(self) -> str:
        return "whatsapp_templates"

    async def find_approved(self, name: str, language: str) -> Optional[WhatsAppTemplate]:
        query = (
            self.table()
            .select("*")
            .eq("name", name)
            .eq("language", language)
            .eq("status", "APPROVED")
            .limit(1)
        )
        rows = self._execute(query, f"find template {name}/{language}")
        return WhatsAppTemplate.from_dict(rows[0]) if rows else None


class AccountRepository(BaseRepository):
    """Sender accounts."""

    @property
    def table_name(self) -> str:
        return "whatsapp_accounts"

    async def get_by_id(self, account_id: str) -> Optional[WhatsAppAccount]:
        rows = self._execute(
            self.table().select("*").eq("id", account_id).limit(1),
            f"get account {account_id}",
        )
        return WhatsAppAccount.from_dict(rows[0]) if rows else None
