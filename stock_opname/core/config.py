from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "local"
    api_prefix: str = "/api"

    # Database (SQLite file by default, PostgreSQL in shared deployments)
    database_url: str = "sqlite:///./stocks.db"

    # Redis pub/sub relay; unset means single-process fan-out
    redis_url: str | None = None
    redis_channel: str = "stock_opname:events"

    # Bulk upserts stay silent unless this is switched on
    broadcast_bulk_updates: bool = False

    log_level: str = "INFO"

    # Pydantic v2 style config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance so the .env is parsed once.
    """
    return Settings()
