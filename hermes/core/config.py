"""Configuration management for Hermes."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # Sandboxed environments may not expose .env; variables are set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # OpenAI configuration (required)
    OPENAI_API_KEY: str = Field(..., description="OpenAI or Azure OpenAI API key")

    # Azure OpenAI (optional; plain OpenAI is used when the endpoint is unset)
    AZURE_OPENAI_ENDPOINT: str | None = Field(
        default=None, description="Azure OpenAI endpoint URL"
    )
    AZURE_OPENAI_API_VERSION: str = Field(
        default="2024-06-01", description="Azure OpenAI API version"
    )

    # Environment
    HERMES_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Embedding configuration
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="Embedding model or Azure deployment name"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")

    # Conversation history store (in-memory when unset)
    SUPABASE_URL: str | None = Field(default=None, description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str | None = Field(
        default=None, description="Supabase service role key"
    )
    CONVERSATION_MESSAGES_TABLE: str = Field(
        default="conversation_messages", description="Table holding conversation history"
    )

    # Conversation context selection
    CONTEXT_ENABLE_SEMANTIC_FILTERING: bool = Field(
        default=True, description="Use embedding relevance; time-based window when false"
    )
    CONTEXT_MAX_CONTEXT_TURNS: int = Field(
        default=10, description="Hard cap on messages forwarded to the model"
    )
    CONTEXT_MIN_RECENT_TURNS: int = Field(
        default=1, description="Trailing messages always kept"
    )
    CONTEXT_RELEVANCE_THRESHOLD: float = Field(
        default=0.70, description="Minimum cosine similarity for older messages"
    )
    CONTEXT_ENABLE_QUERY_DEDUPLICATION: bool = Field(
        default=True, description="Collapse repeated user questions"
    )
    CONTEXT_QUERY_DUPLICATION_THRESHOLD: float = Field(
        default=0.95, description="Minimum similarity for two questions to count as duplicates"
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
