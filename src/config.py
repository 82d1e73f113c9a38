"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
See .env.example for required variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ==========================================================================
    # API Keys
    # ==========================================================================
    openai_api_key: SecretStr | None = Field(
        default=None, description="API key for the real-time speech service"
    )
    groq_api_key: SecretStr | None = Field(
        default=None, description="Groq API key for session evaluations"
    )

    # ==========================================================================
    # Security
    # ==========================================================================
    jwt_secret: SecretStr | None = Field(
        default=None, description="HS256 secret used to verify bearer tokens"
    )
    jwt_verify: bool = Field(
        default=True, description="Verify bearer token signatures (disable only in dev)"
    )
    jwt_audience: str | None = Field(default=None, description="Expected token audience")

    # ==========================================================================
    # Database
    # ==========================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/mentorvoice.db",
        description="SQLAlchemy async database URL",
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    environment: Literal["development", "test", "production"] = Field(
        default="development", description="Deployment environment"
    )

    # ==========================================================================
    # Real-time Voice
    # ==========================================================================
    realtime_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the real-time speech API",
    )
    realtime_model: str = Field(
        default="gpt-4o-realtime-preview",
        description="Model requested for voice sessions",
    )
    realtime_transcription_model: str = Field(
        default="whisper-1",
        description="Model used to transcribe the user's audio",
    )
    realtime_timeout_seconds: float = Field(
        default=30.0, gt=0, description="HTTP timeout for broker requests"
    )

    # ==========================================================================
    # Evaluations
    # ==========================================================================
    evaluation_model: str = Field(
        default="llama-3.3-70b-versatile",
        description="Groq model used to evaluate finished sessions",
    )
    evaluation_max_tokens: int = Field(default=4096, ge=256)
    evaluation_temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    # ==========================================================================
    # Subscriptions
    # ==========================================================================
    free_tier_session_limit: int = Field(
        default=3,
        ge=0,
        description="Sessions a non-pro user may hold before the gate closes",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    # ==========================================================================
    # Derived Properties
    # ==========================================================================
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Use dependency injection in FastAPI:
        settings: Settings = Depends(get_settings)
    """
    return Settings()
