"""Application configuration."""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # CoinGecko API
    api_base_url: str = "https://api.coingecko.com/api/v3"
    api_key: str = ""  # demo key, sent as x-cg-demo-api-key when set
    request_timeout: float = 10.0
    calls_per_minute: int = 30  # public tier limit

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    use_redis: bool = True
    cache_prefix: str = "tracker:"

    # Cache policy (seconds)
    default_ttl: float = 30 * 60
    global_refresh: float = 5 * 60
    coins_refresh: float = 60
    details_refresh: float = 60
    chart_short_refresh: float = 60  # lookback <= 1 day
    chart_long_refresh: float = 30 * 60
    categories_refresh: float = 30 * 60

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
