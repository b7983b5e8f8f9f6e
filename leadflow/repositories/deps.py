"""
Dependency injection for repositories.

Usage in endpoints:
    from leadflow.repositories.deps import get_db

    @router.post("/jobs/dispatch-due-executions")
    async def dispatch(channel: Channel, db=Depends(get_db)):
        repos = create_channel_repos(db, channel)

Usage in tests:
    app.dependency_overrides[get_db] = lambda: FakeSupabase()
"""
from dataclasses import dataclass
from typing import Any

from leadflow.services.automations.types import Channel
from leadflow.services.supabase import get_supabase_client

from .campaigns import CampaignRepository, StepRepository
from .executions import ExecutionRepository
from .leads import LeadRepository
from .translations import CountryLanguageRepository, StepTranslationRepository
from .whatsapp import AccountRepository, TemplateRepository


@dataclass
class ChannelRepositories:
    """Every repository a pass needs for one channel."""

    channel: Channel
    leads: LeadRepository
    campaigns: CampaignRepository
    steps: StepRepository
    executions: ExecutionRepository
    templates: TemplateRepository
    accounts: AccountRepository
    translations: StepTranslationRepository
    country_languages: CountryLanguageRepository


def get_db() -> Any:
    """Database client for FastAPI Depends."""
    return get_supabase_client()


def create_channel_repos(db_client: Any, channel: Channel) -> ChannelRepositories:
    """
    Build the repositories of one channel on top of a database client.

    Useful in tests:
        repos = create_channel_repos(FakeSupabase(), Channel.EMAIL)
    """
    return ChannelRepositories(
        channel=channel,
        leads=LeadRepository(db_client),
        campaigns=CampaignRepository(db_client, channel),
        steps=StepRepository(db_client, channel),
        executions=ExecutionRepository(db_client, channel),
        templates=TemplateRepository(db_client),
        accounts=AccountRepository(db_client),
        translations=StepTranslationRepository(db_client),
        country_languages=CountryLanguageRepository(db_client),
    )
