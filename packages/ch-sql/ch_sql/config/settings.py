"""Application configuration loaded from the environment."""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """ch-sql settings loaded from ``CHSQL_*`` environment variables or ``.env``."""

    # Automatic time filter for raw SQL
    auto_time_filter_enabled: bool = False
    auto_time_filter_column: str = ""
    auto_time_filter_column_type: str = "DateTime"

    # Logging
    log_level: str = "WARNING"

    class Config:
        env_prefix = "CHSQL_"
        env_file = ".env"

    @property
    def auto_time_filter_configured(self) -> bool:
        """Check if time filter injection is enabled with a column to filter on."""
        return self.auto_time_filter_enabled and bool(self.auto_time_filter_column)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
