"""Configuration management for the Coach Retrieval Engine."""

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

    # OpenAI configuration (required)
    OPENAI_API_KEY: str = Field(..., description="OpenAI API key")

    # Environment
    RETRIEVAL_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Embedding configuration
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")
    EMBEDDING_TIMEOUT_SECONDS: float = Field(
        default=10.0, ge=5.0, le=15.0, description="Per-call embedding timeout"
    )
    EMBEDDING_MAX_RETRIES: int = Field(
        default=1, ge=0, le=1, description="Retries after a transient embedding failure"
    )

    # Search configuration
    SEARCH_DEFAULT_THRESHOLD: float = Field(
        default=0.3, ge=0.0, le=1.0, description="Default minimum cosine similarity"
    )
    SEARCH_DEFAULT_LIMIT: int = Field(default=10, description="Default number of results")
    SEARCH_MAX_LIMIT: int = Field(default=50, description="Maximum number of results")
    SEARCH_CANDIDATE_MULTIPLIER: int = Field(
        default=2, ge=1, description="Store candidates fetched per requested result"
    )
    STORE_MAX_RETRIES: int = Field(
        default=1, ge=0, le=1, description="Retries after a transient store failure"
    )
    MAX_QUERY_CHARS: int = Field(default=4_000, description="Max search query characters")

    # Client timeline
    TIMELINE_DEFAULT_LIMIT: int = Field(default=50, description="Default timeline entries")
    TIMELINE_MAX_LIMIT: int = Field(default=100, description="Maximum timeline entries")
    TIMELINE_SUMMARY_CHARS: int = Field(
        default=300, ge=1, description="Characters of raw content shown per entry"
    )

    # Ingestion limits
    MAX_CONTENT_CHARS: int = Field(
        default=500_000, description="Max raw content characters per data item"
    )

    # Credential configuration
    API_KEY_ENVIRONMENT: str = Field(
        default="live", pattern="^(live|test)$", description="Key environment tag"
    )
    API_KEY_PREFIX_LENGTH: int = Field(
        default=16, ge=12, le=24, description="Stored non-secret key prefix length"
    )
    API_KEY_HASH_ITERATIONS: int = Field(
        default=120_000, ge=1_000, description="PBKDF2 rounds for key hashing"
    )

    # Audit configuration
    AUDIT_WORKERS: int = Field(default=2, ge=1, description="Audit writer threads")


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
