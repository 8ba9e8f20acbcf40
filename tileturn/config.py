"""Service settings, read from the environment (prefix TILETURN_) or .env."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TILETURN_", env_file=".env", case_sensitive=False,
    )

    # Observability
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"

    # Persistence
    store: Literal["memory", "sqlite"] = "memory"
    db_path: str = "tileturn.sqlite3"

    # Game defaults
    default_edition: str = "English_Scrabble"
    default_dictionary: Optional[str] = None
    dictionary_dir: Optional[str] = None

    # Games idle for longer than this are timed out
    stale_game_days: int = 14
    # Interval between 'tick' broadcasts
    tick_seconds: float = 1.0

    cors_origins: list[str] = ["*"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
