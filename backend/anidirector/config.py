from __future__ import annotations
"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Ani-Director application settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "Ani-Director"
    DEBUG: bool = False
    USE_MOCK_API: bool = True

    # --- Storage (async SQLAlchemy URL) ---
    DATABASE_URL: str = "sqlite+aiosqlite:///anidirector.db"

    # --- OpenRouter (Story AI + Image Gen) ---
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_API_KEY: str = ""
    STORY_MODEL: str = "google/gemini-2.5-flash"
    IMAGE_MODEL: str = "google/gemini-2.5-flash-image"
    IMAGE_MODEL_PRO: str = "google/gemini-3-pro-image-preview"
    GENERATION_TIMEOUT: float = 180.0

    # --- Batch orchestration ---
    BATCH_INTER_CALL_DELAY: float = 1.0
    GENERATION_RETRY_DELAY: float = 2.0
    MAX_REFERENCE_IMAGES: int = 3

    # --- Backup ---
    BACKUP_VERSION: str = "1.0"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
