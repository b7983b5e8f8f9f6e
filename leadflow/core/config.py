"""
Application settings.
Loaded from environment variables and .env.
"""
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings read from .env"""

    # App
    APP_NAME: str = "leadflow"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_KEY: str = ""

    # Resend (email transport)
    RESEND_API_URL: str = "https://api.resend.com"
    RESEND_API_KEY: str = ""
    EMAIL_SENDER_NAME: str = "Vesuviano Forni"
    EMAIL_SENDER_ADDRESS: str = "noreply@abbattitorizapper.it"

    # Meta WhatsApp Cloud API
    META_GRAPH_API_VERSION: str = "v18.0"
    META_PHONE_NUMBER_ID: str = ""
    META_ACCESS_TOKEN: str = ""
    META_WEBHOOK_VERIFY_TOKEN: str = ""
    META_APP_SECRET: str = ""

    # Redis (locks between pass runners)
    REDIS_URL: str = "redis://localhost:6379/0"

    # API base url used by the scheduler worker
    LEADFLOW_API_URL: str = "http://localhost:8000"

    # Enrollment pass
    ENROLLMENT_WINDOW_HOURS: int = 24
    ENROLLMENT_LEAD_LIMIT: int = 50

    # Dispatch pass
    DISPATCH_BATCH_SIZE: int = 50
    DISPATCH_MAX_AGE_DAYS: int = 0  # 0 = no lower bound on scheduled_at
    ITEM_TIMEOUT_SECONDS: float = 30.0

    # Behaviour switches
    CANCEL_ON_CAMPAIGN_INACTIVE: bool = False
    CONDITIONAL_REQUIRE_PRIOR_SENT: bool = False

    # Local time used for the {{3}} date template parameter
    BUSINESS_TIMEZONE: str = "Europe/Rome"

    @property
    def is_production(self) -> bool:
        """True when ENVIRONMENT == 'production'."""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def whatsapp_configured(self) -> bool:
        """True when a default Meta sender is configured."""
        return bool(self.META_PHONE_NUMBER_ID and self.META_ACCESS_TOKEN)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # ignore unrelated .env keys


class ReplyQueueConfig:
    """
    Limits of the inbound reply queue.

    Webhook redeliveries must not activate the same conditional step twice
    while the first delivery is still being handled.
    """

    MAX_SIZE: int = 1000
    MAX_RETRIES: int = 3
    BACKOFF_BASE_SECONDS: float = 2.0
    BACKOFF_MAX_SECONDS: float = 60.0
    # Fingerprints of handled events kept to drop late redeliveries
    RECENT_KEYS: int = 5000


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


settings = get_settings()
