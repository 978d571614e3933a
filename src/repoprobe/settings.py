"""Application settings and scan limits."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="REPOPROBE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Scan limits - the checkout is untrusted
    max_file_size: int = 512 * 1024
    max_walk_depth: int = 8
    max_walk_files: int = 5000

    # Wall-clock budget for one analysis run, in seconds
    time_budget: float = 60.0
    max_workers: int = 8


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
