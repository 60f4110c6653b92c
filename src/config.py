"""
config.py

Runtime settings for the Construction Site Operations Dashboard API.

Values come from environment variables, optionally loaded from a ``.env``
file at the repository root.  Access them through ``get_settings()`` so the
file is parsed once per process.

    GEMINI_API_KEY=...        enables the AI assistant endpoints
    SEED_DEMO_DATA=false      start with an empty store
    LOG_LEVEL=DEBUG
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

env_path = Path(__file__).resolve().parent.parent / ".env"

if env_path.exists():
    load_dotenv(dotenv_path=env_path)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Application settings."""

    APP_NAME: str = "Construction Site Operations Dashboard API"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    HOST: str = "127.0.0.1"
    PORT: int = 8000
    CORS_ORIGINS: List[str] = ["*"]

    SEED_DEMO_DATA: bool = True

    # Completion service
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-1.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    COMPLETION_TIMEOUT: float = 30.0

    model_config = SettingsConfigDict(
        env_file=str(env_path),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("PORT")
    @classmethod
    def validate_port(cls, port: int) -> int:
        if not 1 <= port <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return port

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, level: str) -> str:
        level = level.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {level}")
        return level

    @field_validator("COMPLETION_TIMEOUT")
    @classmethod
    def validate_timeout(cls, timeout: float) -> float:
        if timeout <= 0:
            raise ValueError("COMPLETION_TIMEOUT must be positive")
        return timeout


@lru_cache
def get_settings() -> Settings:
    return Settings()


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure the root logger once at startup."""
    settings = settings or get_settings()
    level = logging.DEBUG if settings.DEBUG else getattr(logging, settings.LOG_LEVEL)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logger.debug("Logging configured at %s", logging.getLevelName(level))
