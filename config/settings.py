"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )

    # ===================
    # TMS WEBHOOK
    # ===================
    tms_webhook_secret: Optional[str] = Field(
        None,
        description="Shared secret expected in x-tms-signature / x-tms-key"
    )

    # ===================
    # CARGOES FLOW
    # ===================
    cargoes_flow_api_url: str = Field(
        default="https://connect.cargoes.com/flow/api/public_tracking/v1",
        description="Cargoes Flow public tracking API base URL"
    )
    cargoes_flow_api_key: Optional[str] = Field(
        None,
        description="Value for the X-DPW-ApiKey header"
    )
    cargoes_flow_org_token: Optional[str] = Field(
        None,
        description="Value for the X-DPW-Org-Token header"
    )
    cargoes_flow_timeout_seconds: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Timeout for outbound Cargoes Flow requests"
    )

    # ===================
    # RISK ASSESSMENT
    # ===================
    risk_scheduler_enabled: bool = Field(
        default=True,
        description="Run the risk assessment batch on a timer"
    )
    risk_assessment_interval_minutes: int = Field(
        default=15,
        ge=1,
        le=1440,
        description="Minutes between risk assessment runs"
    )
    risk_assessment_page_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Mirror shipments assessed per page"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def cargoes_flow_configured(self) -> bool:
        """Check if Cargoes Flow credentials are present."""
        return bool(self.cargoes_flow_api_key and self.cargoes_flow_org_token)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
