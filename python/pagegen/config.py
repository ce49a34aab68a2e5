"""Application settings loaded from environment variables.

Environment Configuration:
    PAGEGEN_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: PostgreSQL connection string (required)
    PAGEGEN_INTERNAL_SECRET: Internal API secret (required in staging/prod)

Redis / Celery Configuration:
    REDIS_URL: Redis connection string (required for worker)
    CELERY_BROKER_URL: Celery broker URL (defaults to REDIS_URL)
    CELERY_RESULT_BACKEND: Celery result backend URL (defaults to REDIS_URL)

Content Provider Configuration:
    OPENAI_API_KEY: Platform key for chat completions and image generation
    OPENAI_BASE_URL: API root (override for proxies and tests)
    OPENAI_MODEL: Default chat model for block generation

Generation Pipeline:
    GENERATION_RATE_LIMIT_SECONDS: Minimum gap between two generation jobs (default 30)
    MONTHLY_BUDGET: Monthly spend cap in USD, 0 disables the cap
    ENABLE_COST_TRACKING / BUDGET_ALERT_THRESHOLD_PERCENT
    ENABLE_AUTO_IMAGE_ASSIGNMENT / USE_AI_ALT_TEXT / AI_ALT_TEXT_FALLBACK / DEFAULT_IMAGE_ID
    ENABLE_LINK_IMAGE_GENERATION: Generate related-link images after a job (default off)

Business Profile (substituted into prompt templates):
    BUSINESS_NAME, BUSINESS_TYPE, BUSINESS_DESCRIPTION, BUSINESS_ADDRESS, SERVICE_AREA,
    BUSINESS_PHONE, BUSINESS_EMAIL, BUSINESS_URL, YEARS_IN_BUSINESS,
    BUSINESS_USPS, BUSINESS_CERTIFICATIONS (newline or comma separated)
"""

from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application configuration.

    Settings are loaded from environment variables.
    Validation rules:
    - DATABASE_URL is always required
    - OPENAI_API_KEY and PAGEGEN_INTERNAL_SECRET are required in staging and prod only
    - GENERATION_RATE_LIMIT_SECONDS must be positive
    """

    pagegen_env: Environment = Field(default=Environment.LOCAL, alias="PAGEGEN_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]
    pagegen_internal_secret: str | None = Field(default=None, alias="PAGEGEN_INTERNAL_SECRET")

    # Redis / Celery settings
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    celery_broker_url: str | None = Field(default=None, alias="CELERY_BROKER_URL")
    celery_result_backend: str | None = Field(default=None, alias="CELERY_RESULT_BACKEND")

    # Content provider
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    openai_model: str = Field(default="gpt-4-turbo-preview", alias="OPENAI_MODEL")
    openai_timeout_s: int = Field(default=60, alias="OPENAI_TIMEOUT_S")

    # Queue and rate limiting
    generation_rate_limit_seconds: int = Field(default=30, alias="GENERATION_RATE_LIMIT_SECONDS")
    bulk_concurrent_limit: int = Field(default=3, alias="BULK_CONCURRENT_LIMIT")

    # Cost tracking
    enable_cost_tracking: bool = Field(default=True, alias="ENABLE_COST_TRACKING")
    monthly_budget: float = Field(default=0.0, alias="MONTHLY_BUDGET")
    budget_alert_threshold_percent: int = Field(default=80, alias="BUDGET_ALERT_THRESHOLD_PERCENT")

    # Image assignment
    enable_auto_image_assignment: bool = Field(default=True, alias="ENABLE_AUTO_IMAGE_ASSIGNMENT")
    use_ai_alt_text: bool = Field(default=False, alias="USE_AI_ALT_TEXT")
    ai_alt_text_fallback: bool = Field(default=True, alias="AI_ALT_TEXT_FALLBACK")
    default_image_id: int | None = Field(default=None, alias="DEFAULT_IMAGE_ID")
    # Background AI images for related links after a queued job completes (billed per image)
    enable_link_image_generation: bool = Field(
        default=False, alias="ENABLE_LINK_IMAGE_GENERATION"
    )

    # Business profile
    business_name: str = Field(default="", alias="BUSINESS_NAME")
    business_type: str = Field(default="", alias="BUSINESS_TYPE")
    business_description: str = Field(default="", alias="BUSINESS_DESCRIPTION")
    business_address: str = Field(default="", alias="BUSINESS_ADDRESS")
    service_area: str = Field(default="", alias="SERVICE_AREA")
    business_phone: str = Field(default="", alias="BUSINESS_PHONE")
    business_email: str = Field(default="", alias="BUSINESS_EMAIL")
    business_url: str = Field(default="", alias="BUSINESS_URL")
    years_in_business: str = Field(default="", alias="YEARS_IN_BUSINESS")
    business_usps: str = Field(default="", alias="BUSINESS_USPS")
    business_certifications: str = Field(default="", alias="BUSINESS_CERTIFICATIONS")

    # Custom prompt templates (JSON file: {block_type: {"system": ..., "user": ...}})
    prompt_templates_path: str | None = Field(default=None, alias="PROMPT_TEMPLATES_PATH")

    # Public site root used for canonical URLs and related links
    site_url: str = Field(default="http://localhost:3000", alias="SITE_URL")

    # Supabase Storage settings (generated images)
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_service_key: str | None = Field(default=None, alias="SUPABASE_SERVICE_KEY")
    storage_bucket: str = Field(default="generated-images", alias="STORAGE_BUCKET")
    max_image_bytes: int = Field(default=20 * 1024 * 1024, alias="MAX_IMAGE_BYTES")  # 20 MB

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure required settings are set for deployed environments."""
        if self.generation_rate_limit_seconds <= 0:
            raise ValueError("GENERATION_RATE_LIMIT_SECONDS must be a positive number of seconds")

        if self.pagegen_env in (Environment.STAGING, Environment.PROD):
            missing = []
            if not self.openai_api_key:
                missing.append("OPENAI_API_KEY")
            if not self.pagegen_internal_secret:
                missing.append("PAGEGEN_INTERNAL_SECRET")
            if missing:
                raise ValueError(
                    f"Missing required settings for PAGEGEN_ENV={self.pagegen_env.value}: "
                    f"{', '.join(missing)}"
                )

        return self

    @property
    def requires_internal_header(self) -> bool:
        """Whether requests must include the internal secret header."""
        return self.pagegen_env in (Environment.STAGING, Environment.PROD)

    @property
    def usp_list(self) -> list[str]:
        """Parse newline- or comma-separated USPs into a list."""
        return _split_list(self.business_usps)

    @property
    def certification_list(self) -> list[str]:
        """Parse newline- or comma-separated certifications into a list."""
        return _split_list(self.business_certifications)

    @property
    def effective_celery_broker_url(self) -> str | None:
        """Return Celery broker URL, falling back to REDIS_URL if not set."""
        return self.celery_broker_url or self.redis_url

    @property
    def effective_celery_result_backend(self) -> str | None:
        """Return Celery result backend URL, falling back to REDIS_URL if not set."""
        return self.celery_result_backend or self.redis_url


def _split_list(raw: str) -> list[str]:
    separator = "\n" if "\n" in raw else ","
    return [item.strip() for item in raw.split(separator) if item.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
