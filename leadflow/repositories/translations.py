"""
Email step translations and the country to language mapping.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from .base import BaseRepository

logger = logging.getLogger(__name__)


@dataclass
class StepTranslation:
    """Localized subject and body of an email step."""

    step_id: str
    language_code: str
    subject: Optional[str] = None
    html_content: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "StepTranslation":
        return cls(
            step_id=data.get("step_id", ""),
            language_code=data.get("language_code", ""),
            subject=data.get("subject"),
            html_content=data.get("html_content"),
        )


class StepTranslationRepository(BaseRepository):
    """Translations of email steps, one row per (step, language)."""

    @property
    def table_name(self) -> str:
        return "lead_automation_step_translations"

    async def find(self, step_id: str, language_code: str) -> Optional[StepTranslation]:
        query = (
            self.table()
            .select("step_id, language_code, subject, html_content")
            .eq("step_id", step_id)
            .eq("language_code", language_code)
            .limit(1)
        )
        rows = self._execute(query, f"find translation {step_id}/{language_code}")
        return StepTranslation.from_dict(rows[0]) if rows else None


class CountryLanguageRepository(BaseRepository):
    """Country name -> language code, maintained from the dashboard."""

    @property
    def table_name(self) -> str:
        return "country_language_mapping"

    async def language_for(self, country: str) -> Optional[str]:
        rows = self._execute(
            self.table().select("language_code").eq("country_name", country).limit(1),
            f"language for {country}",
        )
        return rows[0].get("language_code") if rows else None
