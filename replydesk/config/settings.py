"""
Application Settings.

Centralized configuration using Pydantic Settings with environment variable loading.
All settings are validated at startup - missing required values will raise an error.

Production Mode:
    When app_env="production", additional validations apply:
    - cron_secret must be set
    - debug must be False
    - cors_allowed_origins cannot be ["*"]
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Supabase
    # -------------------------------------------------------------------------
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_key: SecretStr = Field(..., description="Supabase service role key")

    # -------------------------------------------------------------------------
    # Google Business Profile
    # -------------------------------------------------------------------------
    google_client_id: str | None = Field(
        default=None, description="OAuth client id used to refresh tenant tokens"
    )
    google_client_secret: SecretStr | None = Field(
        default=None, description="OAuth client secret used to refresh tenant tokens"
    )
    google_token_url: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="OAuth token endpoint",
    )
    gbp_api_base_url: str = Field(
        default="https://mybusiness.googleapis.com/v4",
        description="Business Profile reviews API base URL",
    )
    gbp_page_size: int = Field(default=50, description="Reviews requested per page")
    gbp_timeout_seconds: float = Field(default=30.0, description="HTTP timeout per request")
    gbp_max_retries: int = Field(
        default=4,
        ge=1,
        description="Total attempts for throttled or unavailable upstream calls",
    )
    gbp_initial_backoff_seconds: float = Field(
        default=1.0, description="First backoff delay; doubles per attempt"
    )
    gbp_max_backoff_seconds: float = Field(
        default=32.0, description="Ceiling for any single backoff delay, Retry-After included"
    )

    # -------------------------------------------------------------------------
    # Language Model
    # -------------------------------------------------------------------------
    llm_provider: Literal["openai", "anthropic"] = Field(
        default="openai", description="Provider used to draft replies"
    )
    openai_api_key: SecretStr | None = Field(default=None, description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI chat model")
    anthropic_api_key: SecretStr | None = Field(
        default=None, description="Anthropic API key for Claude"
    )
    anthropic_model: str = Field(
        default="claude-3-5-haiku-latest", description="Anthropic model"
    )
    llm_temperature: float = Field(default=0.7, description="Sampling temperature for drafts")
    llm_max_tokens: int = Field(default=300, description="Completion token ceiling for drafts")
    llm_input_price_per_1k: float = Field(
        default=0.00015, description="USD per 1K input tokens"
    )
    llm_output_price_per_1k: float = Field(
        default=0.0006, description="USD per 1K output tokens"
    )
    semantic_sentiment_enabled: bool = Field(
        default=False,
        description="Reclassify newly synced reviews with the language model",
    )

    # -------------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------------
    cron_secret: SecretStr | None = Field(
        default=None, description="Bearer secret required by the cron endpoints"
    )
    sync_delay_seconds: float = Field(
        default=1.0, description="Pause between businesses during a sync run"
    )
    digest_delay_seconds: float = Field(
        default=0.5, description="Pause between recipients during a digest run"
    )
    scheduler_enabled: bool = Field(
        default=False, description="Run sync and digest from an in-process scheduler"
    )
    sync_cron: str = Field(default="0 */6 * * *", description="Crontab for review sync")
    digest_cron: str = Field(default="0 9 * * *", description="Crontab for digests")
    work_queue_size: int = Field(default=1000, description="Pending background jobs limit")
    work_queue_workers: int = Field(default=2, description="Background job workers")

    # -------------------------------------------------------------------------
    # SendGrid (Email Delivery)
    # -------------------------------------------------------------------------
    sendgrid_api_key: SecretStr | None = Field(
        default=None, description="SendGrid API key. Emails are logged when unset."
    )
    from_email: str = Field(
        default="notifications@replydesk.app",
        description="Sender email address for outgoing emails",
    )
    from_name: str = Field(
        default="ReplyDesk",
        description="Sender display name for outgoing emails",
    )
    app_base_url: str = Field(
        default="http://localhost:3000",
        description="Dashboard URL used for links in emails",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    api_host: str = Field(default="0.0.0.0", description="Bind address")
    api_port: int = Field(default=8000, description="Bind port")

    # -------------------------------------------------------------------------
    # CORS Settings
    # -------------------------------------------------------------------------
    cors_allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="Allowed CORS origins. Use ['*'] for development only.",
    )
    cors_allow_credentials: bool = Field(
        default=True,
        description="Allow credentials in CORS requests",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate that production settings are secure."""
        if self.app_env == "production":
            errors = []

            if not self.cron_secret:
                errors.append("cron_secret must be set in production")

            if self.debug:
                errors.append("debug must be False in production")

            if "*" in self.cors_allowed_origins:
                errors.append("cors_allowed_origins cannot contain '*' in production")

            if errors:
                raise ValueError(
                    f"Production configuration errors: {'; '.join(errors)}"
                )

        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Call get_settings.cache_clear() to reload settings if needed.
    """
    return Settings()
