"""
Application settings and logging for AnimalMart.

Settings are read once from the environment (or a local .env file). JWT_SECRET
has no default, so a process started without it fails immediately.
"""
import logging
import sys
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger("animalmart")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "animalmart"

    JWT_SECRET: str
    JWT_ALG: str = "HS256"
    TOKEN_EXPIRE_MIN: int = 60 * 24 * 7

    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024
    MAX_UPLOAD_FILES: int = 5

    LOGIN_RATE_LIMIT_WINDOW_SEC: int = 60 * 15
    LOGIN_RATE_LIMIT_MAX_ATTEMPTS: int = 20

    PORT: int = 8000

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


def setup_logging(level: Optional[str] = None):
    """Configures the application logger."""
    log.setLevel(level or settings.LOG_LEVEL)
    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - [%(levelname)-7s] - %(message)s"
        ))
        log.addHandler(handler)
    log.info("Logging configured (%s)", settings.ENVIRONMENT)
