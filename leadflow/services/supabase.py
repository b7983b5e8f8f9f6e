"""
Supabase client for the record store.
"""
import logging
from functools import lru_cache

from supabase import Client, create_client

from leadflow.core.config import settings
from leadflow.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase_client() -> Client:
    """
    Cached Supabase client.
    Uses the service key (full access, bypasses RLS).
    """
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_KEY:
        raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required")

    logger.info("Supabase client created")
    return create_client(
        settings.SUPABASE_URL,
        settings.SUPABASE_SERVICE_KEY
    )
