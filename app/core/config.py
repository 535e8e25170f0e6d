"""Configuration management for the chat orchestration engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Provider configuration
    ANTHROPIC_API_KEY: str = Field(default="", description="Anthropic API key")

    # Environment
    CHAT_ENGINE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Models
    CHAT_MODEL: str = Field(
        default="claude-sonnet-4-5-20250929", description="Model for the main streamed answer"
    )
    CLASSIFIER_MODEL: str = Field(
        default="claude-haiku-4-5-20251001", description="Model for AI intent classification"
    )
    PLANNER_MODEL: str = Field(
        default="claude-haiku-4-5-20251001", description="Model for research planning"
    )
    SUMMARY_MODEL: str = Field(
        default="claude-haiku-4-5-20251001", description="Model for mid-term summaries"
    )
    QUALITY_CHECK_MODEL: str = Field(
        default="claude-haiku-4-5-20251001", description="Model for research answer review"
    )
    QUALITY_CHECK_ENABLED: bool = Field(
        default=True, description="Run a background quality check after research answers"
    )

    # Retry policy
    GENERATION_MAX_ATTEMPTS: int = Field(
        default=3, ge=1, description="Attempts for the generation call"
    )
    PLANNER_MAX_ATTEMPTS: int = Field(
        default=2, ge=1, description="Attempts for the research plan call"
    )
    RETRY_BASE_DELAY: float = Field(default=1.0, description="Base backoff delay in seconds")

    # Memory tiers (client side)
    SHORT_TERM_TURNS: int = Field(default=20, description="User+assistant pairs kept verbatim")
    SUMMARY_THRESHOLD: int = Field(default=20, description="User turns before summarizing")
    SUMMARY_REFRESH_TURNS: int = Field(
        default=10, description="User turns between summary regenerations"
    )

    # HTTP
    CORS_ALLOW_ORIGINS: str = Field(
        default="*", description="Comma-separated origins allowed to call the API"
    )

    # Client
    CHAT_API_URL: str = Field(
        default="http://localhost:8000/v1", description="Base URL the client session talks to"
    )
    STORE_PATH: str = Field(
        default="chat_store.json", description="Path of the client-side document store"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If environment variables have invalid values
    """
    return Settings()
