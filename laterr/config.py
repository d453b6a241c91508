"""Configuration settings for the laterr local data layer."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .utils import get_laterr_home


class Settings(BaseSettings):
    """Application settings loaded from environment (LATERR_*)."""

    model_config = SettingsConfigDict(
        env_prefix="LATERR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra env vars not in model
    )

    # Where the database image, session slot and stored files live
    data_dir: Path = Field(default_factory=get_laterr_home)

    # JWT
    # Generated once and kept in the local store when unset
    jwt_secret_key: str | None = None
    jwt_algorithm: str = "HS256"
    session_expire_minutes: int = 60 * 24 * 7  # 1 week

    # Password hashing cost
    bcrypt_rounds: int = 10

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
