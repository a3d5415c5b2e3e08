"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables or a local .env file.
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Sia Feedback"
    APP_ENV: str = "development"
    DEBUG: bool = False

    # CORS - stored as comma-separated string to avoid pydantic-settings JSON parsing issues
    CORS_ORIGINS: str = "http://localhost:5173"

    # Document store
    # "memory" keeps everything in-process (development and tests),
    # "cosmos" uses Azure Cosmos DB.
    STORE_BACKEND: str = "memory"
    AZURE_COSMOS_ENDPOINT: str | None = None
    AZURE_COSMOS_CONNECTION_STRING: str | None = None  # For local emulator only
    AZURE_COSMOS_DATABASE: str = "sia-feedback"
    AZURE_COSMOS_DISABLE_SSL: bool = False

    # Store behaviour
    STORE_READ_RETRIES: int = 3  # Reads are retried, writes never are
    STORE_RETRY_BACKOFF_SECONDS: float = 0.2  # Doubles on each attempt
    STORE_WRITE_TIMEOUT_SECONDS: float = 10.0  # Past this a write is ambiguous
    SUBSCRIPTION_POLL_SECONDS: float = 2.0  # Cosmos live-feed polling interval

    # Likes
    LIKE_MAX_ATTEMPTS: int = 5  # ETag conflicts tolerated per toggle

    # Summarizer (OpenAI-compatible chat completions endpoint)
    SUMMARIZER_API_URL: str = "https://api.deepseek.com/v1/chat/completions"
    SUMMARIZER_API_KEY: str | None = None
    SUMMARIZER_MODEL: str = "deepseek-chat"
    SUMMARIZER_TIMEOUT_SECONDS: float = 30.0
    SENTIMENT_TIMEOUT_SECONDS: float = 5.0  # Submissions wait on this before they are stored
    SUMMARIZER_MAX_ITEMS: int = 20  # Most recent texts sent per summary
    SUMMARIZER_MAX_ITEM_CHARS: int = 500

    # Analysis cache fingerprint: "count" (cheap, misses edits) or "content" (hash of inputs)
    ANALYSIS_FINGERPRINT: str = "count"

    # Self-service "my responses" lookup by a volunteered email.
    # Outside the anonymity guarantee, so it is off unless explicitly enabled.
    ALLOW_DISPLAY_EMAIL: bool = False

    @field_validator("STORE_BACKEND")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        """Only the known store backends are accepted."""
        v = v.strip().lower()
        if v not in {"memory", "cosmos"}:
            raise ValueError("STORE_BACKEND must be 'memory' or 'cosmos'")
        return v

    @field_validator("ANALYSIS_FINGERPRINT")
    @classmethod
    def validate_fingerprint(cls, v: str) -> str:
        """Only the known fingerprint strategies are accepted."""
        v = v.strip().lower()
        if v not in {"count", "content"}:
            raise ValueError("ANALYSIS_FINGERPRINT must be 'count' or 'content'")
        return v

    @property
    def is_summarizer_configured(self) -> bool:
        """Check whether an API key for the summarizer is present."""
        return bool(self.SUMMARIZER_API_KEY and self.SUMMARIZER_API_KEY != "your_api_key")

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        import json

        try:
            return json.loads(self.CORS_ORIGINS)
        except json.JSONDecodeError:
            return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
