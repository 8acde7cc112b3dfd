"""Configuration management for the Weave context engine."""

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

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # OpenAI configuration (optional: without it the vector and keyword tiers are unavailable)
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")

    # Environment
    CONTEXT_ENGINE_ENV: str = Field(
        default="dev", description="Environment: dev, staging, prod, test"
    )

    # Embedding configuration
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(
        default=384, description="Embedding vector dimension (matches vector(384) columns)"
    )
    KEYWORD_MODEL: str = Field(
        default="gpt-4o-mini", description="Model used for salient keyword extraction"
    )

    # Aggregation defaults
    CONTEXT_MAX_TOKENS: int = Field(default=5000, description="Default context token budget")
    CONTEXT_MAX_ITEMS_PER_CATEGORY: int = Field(
        default=8, description="Default max items emitted per category"
    )
    CONTEXT_FETCH_TIMEOUT_SECONDS: float = Field(
        default=8.0, description="Deadline for the concurrent source fetch"
    )
    DEDUP_WINDOW_DAYS: int = Field(
        default=30, description="Look-back window for the deduplication ledger"
    )
    MIN_INSIGHT_CHARS: int = Field(
        default=30, description="Minimum insight body length kept by the compactor"
    )
    MAX_QUERY_CHARS: int = Field(
        default=2000, description="Cap on identity text fed to relevance search"
    )
    HISTORICAL_POOL_SIZE: int = Field(
        default=500, description="Insights pulled when ranking by relevance"
    )
    RELEVANCE_APPLY_DECAY: bool = Field(
        default=False, description="Multiply vector similarity by age/access decay"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
