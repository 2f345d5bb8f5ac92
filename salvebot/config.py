"""Typed settings configuration - single source of truth."""

from functools import lru_cache
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Storage
    storage_backend: Literal["memory", "sql"] = "memory"
    database_url: str | None = None
    blob_dir: str | None = None

    # Cache
    redis_url: str | None = None

    # CORS
    cors_origin: str = "*"

    # Logging
    log_level: str = "INFO"

    # OpenAI
    openai_api_key: SecretStr | None = None
    openai_chat_model: str = "gpt-4o"
    openai_utility_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536

    # Chunking
    chunk_size: int = 1000
    chunk_overlap: int = 200
    embedding_batch_size: int = 5

    # Retrieval
    retrieval_top_k: int = 10
    # 0 disables the length threshold: every question is rewritten
    hyde_min_query_chars: int = 0
    answer_confidence: float = 0.8

    # Uploads
    max_upload_bytes: int = 10 * 1024 * 1024
    allowed_media_types: list[str] = ["application/pdf", "text/plain", "text/markdown"]

    # Rate limiting (requests per minute)
    chat_requests_per_min: int = 60
    upload_requests_per_min: int = 10
    api_requests_per_min: int = 100

    # Analytics
    analytics_queue_size: int = 1000

    # Dev: seed a tenant and verified chatbot at startup
    seed_dev_data: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
