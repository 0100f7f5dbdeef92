"""
Configuration management using Pydantic Settings.
All environment variables are loaded and validated here.
"""

from functools import lru_cache
from typing import List, Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ================================
    # Application Configuration
    # ================================
    APP_NAME: str = "WikiFAQ"
    APP_ENV: Literal["development", "staging", "production", "test"] = "development"
    DEBUG: bool = True

    # API Configuration
    API_V1_PREFIX: str = "/api/v1"
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:8000"

    @field_validator("ALLOWED_ORIGINS")
    @classmethod
    def parse_origins(cls, v: str) -> List[str]:
        """Parse comma-separated origins into list."""
        return [origin.strip() for origin in v.split(",")]

    # ================================
    # Database Configuration
    # ================================
    DATABASE_URL: str = Field(..., description="PostgreSQL connection string")
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # ================================
    # Redis Configuration
    # ================================
    REDIS_URL: str = "redis://redis:6379/0"

    # ================================
    # Anthropic Claude
    # ================================
    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-20241022"
    ANTHROPIC_MAX_TOKENS: int = 4096
    ANTHROPIC_TEMPERATURE: float = 0.3

    # ================================
    # Embedding Configuration
    # ================================
    EMBEDDING_MODEL: str = "BAAI/bge-large-en-v1.5"
    EMBEDDING_DIMENSION: int = 1024
    EMBEDDING_BATCH_SIZE: int = 32
    EMBEDDING_DEVICE: Literal["cpu", "cuda", "mps"] = "cpu"

    # ================================
    # Vector Database Configuration
    # ================================
    VECTOR_DB_TYPE: Literal["pgvector", "pinecone"] = "pinecone"
    VECTOR_UPSERT_BATCH_SIZE: int = 50
    VECTOR_QUERY_TOP_K: int = 1000

    # Pinecone
    PINECONE_API_KEY: Optional[str] = None
    PINECONE_INDEX_NAME: str = "faq-embeddings"
    PINECONE_NAMESPACE: str = ""

    # ================================
    # Wikipedia Client
    # ================================
    WIKIPEDIA_API_URL: str = "https://en.wikipedia.org/w/api.php"
    WIKIPEDIA_BASE_URL: str = "https://en.wikipedia.org"
    WIKIMEDIA_TOP_PAGES_URL: str = (
        "https://wikimedia.org/api/rest_v1/metrics/pageviews/top/en.wikipedia/all-access"
    )
    WIKIPEDIA_USER_AGENT: str = "WikiFAQ/0.1 (https://github.com/wikifaq; contact@wikifaq.org)"
    WIKIPEDIA_REQUEST_TIMEOUT: int = 30

    # ================================
    # Pipeline Configuration
    # ================================
    WORKER_CONCURRENCY: int = 50
    PIPELINE_BATCH_SIZE: int = 500
    WAVE_DELAY_SECONDS: float = 1.0
    WORKER_POLL_INTERVAL_SECONDS: int = 30
    CONTENT_TOKEN_BUDGET: int = 90_000
    LLM_RETRY_ATTEMPTS: int = 3
    LLM_CALL_TIMEOUT_SECONDS: float = 120.0
    CROSS_LINK_SEARCH_ENABLED: bool = False

    # Failed rows stay failed unless this is switched on
    QUEUE_AUTO_REQUEUE_FAILED: bool = False
    QUEUE_MAX_ATTEMPTS: int = 3

    # ================================
    # LLM Rate Limiting
    # ================================
    LLM_RATE_LIMIT_ENABLED: bool = False
    LLM_RATE_LIMIT_BACKEND: Literal["memory", "redis"] = "memory"
    LLM_RATE_LIMIT_REQUESTS: int = 50
    LLM_RATE_LIMIT_WINDOW_SECONDS: int = 60

    # ================================
    # Consistency Repair
    # ================================
    REPAIR_PAGE_SIZE: int = 1000
    REPAIR_FETCH_BATCH_SIZE: int = 100
    REPAIR_REINDEX_MISSING: bool = False
    REPAIR_CHECK_INTERVAL_MINUTES: int = 60

    # ================================
    # Celery Configuration
    # ================================
    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"
    CELERY_TASK_SERIALIZER: str = "json"
    CELERY_RESULT_SERIALIZER: str = "json"
    # Celery accept content as comma-separated string, we'll parse it
    CELERY_ACCEPT_CONTENT: str = "json"
    CELERY_TIMEZONE: str = "UTC"
    CELERY_ENABLE_UTC: bool = True

    @property
    def celery_accept_content_list(self) -> List[str]:
        """Parse CELERY_ACCEPT_CONTENT into a list."""
        return [item.strip() for item in self.CELERY_ACCEPT_CONTENT.split(",")]

    # ================================
    # Logging Configuration
    # ================================
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.APP_ENV == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.APP_ENV == "production"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance (loaded on first use)."""
    return Settings()
