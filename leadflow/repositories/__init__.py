"""
Repositories: data access layer over the record store.

Repositories receive the database client by injection:

    from leadflow.repositories import create_channel_repos

    repos = create_channel_repos(get_supabase_client(), Channel.EMAIL)
    due = await repos.executions.list_due(now, limit=50)
"""

from .base import BaseRepository
from .campaigns import CampaignRepository, StepRepository
from .deps import ChannelRepositories, create_channel_repos, get_db
from .executions import ExecutionRepository
from .leads import LeadRepository
from .translations import CountryLanguageRepository, StepTranslationRepository
from .whatsapp import AccountRepository, TemplateRepository

__all__ = [
    "BaseRepository",
    "LeadRepository",
    "CampaignRepository",
    "StepRepository",
    "ExecutionRepository",
    "TemplateRepository",
    "AccountRepository",
    "StepTranslationRepository",
    "CountryLanguageRepository",
    "ChannelRepositories",
    "create_channel_repos",
    "get_db",
]
