"""
Configuration and settings for the document portal backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.constants import DATA_SOURCE_FIREBASE


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service and worker."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Dify knowledge base / app API
    dify_api_endpoint: str = Field(default="https://api.dify.ai/v1")
    dify_api_key: Optional[str] = Field(default=None)
    # Chat/completion app key; the datasets key is used when unset.
    dify_app_api_key: Optional[str] = Field(default=None)
    dify_dataset_id: Optional[str] = Field(default=None)
    dify_user: str = Field(default="condo-docs")

    # LLM / Gemini
    gemini_api_key: Optional[str] = Field(default=None)
    gemini_ocr_model: str = Field(default="gemini-2.0-flash")
    ocr_render_scale: float = Field(default=1.5, gt=0)

    # Firebase
    firebase_service_account_key: Optional[str] = Field(default=None)
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_client_email: Optional[str] = Field(default=None)
    firebase_private_key: Optional[str] = Field(default=None)
    firebase_database_url: Optional[str] = Field(default=None)
    firebase_storage_bucket: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)
    default_data_source: str = Field(default=DATA_SOURCE_FIREBASE)
    require_auth: bool = Field(default=False)

    # Ingestion job records (any SQLAlchemy URL)
    database_url: Optional[str] = Field(default=None)

    # Queue (Redis)
    redis_url: Optional[str] = Field(default=None)
    redis_queue_key: str = Field(default="condo:ingest-jobs")

    @property
    def dify_app_key(self) -> Optional[str]:
        return self.dify_app_api_key or self.dify_api_key

    def missing_server_keys(self) -> list[str]:
        """Names of required server variables that are not set."""
        required = {
            "DIFY_API_KEY": self.dify_api_key,
            "DIFY_API_ENDPOINT": self.dify_api_endpoint,
            "GEMINI_API_KEY": self.gemini_api_key,
        }
        return [name for name, value in required.items() if not value]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
