"""Application configuration using pydantic-settings."""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str
    db_echo: bool = Field(default=False, validation_alias="DB_ECHO")

    # Diff tracking - mirrors the site-level "enable diffs" switch and per-page limit
    enable_diffs: bool = Field(default=True, validation_alias="ENABLE_DIFFS")
    diffs_per_page: int = Field(default=10, ge=1, validation_alias="DIFFS_PER_PAGE")

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured database is SQLite (no connection pool sizing)."""
        return self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
