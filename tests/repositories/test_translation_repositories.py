"""
Tests for the email translation repositories.
"""
import pytest

from leadflow.core.exceptions import DatabaseError
from leadflow.repositories.translations import CountryLanguageRepository, StepTranslationRepository


class TestStepTranslationRepository:

    @pytest.mark.asyncio
    async def test_find_by_step_and_language(self, fake_db):
        fake_db.seed("lead_automation_step_translations", [
            {"step_id": "s1", "language_code": "it", "subject": "Ciao", "html_content": "<p>Ciao</p>"},
            {"step_id": "s1", "language_code": "es", "subject": "Hola", "html_content": "<p>Hola</p>"},
        ])

        translation = await StepTranslationRepository(fake_db).find("s1", "es")

        assert translation.subject == "Hola"
        assert translation.html_content == "<p>Hola</p>"

    @pytest.mark.asyncio
    async def test_missing(self, fake_db):
        assert await StepTranslationRepository(fake_db).find("s1", "de") is None

    @pytest.mark.asyncio
    async def test_read_failure(self, fake_db):
        fake_db.fail_when("lead_automation_step_translations", "select")

        with pytest.raises(DatabaseError):
            await StepTranslationRepository(fake_db).find("s1", "it")


class TestCountryLanguageRepository:

    @pytest.mark.asyncio
    async def test_mapped_country(self, fake_db):
        fake_db.seed("country_language_mapping", [{"country_name": "Svizzera", "language_code": "de"}])

        assert await CountryLanguageRepository(fake_db).language_for("Svizzera") == "de"

    @pytest.mark.asyncio
    async def test_unmapped_country(self, fake_db):
        assert await CountryLanguageRepository(fake_db).language_for("Atlantis") is None
