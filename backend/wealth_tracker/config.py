from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings, loaded from environment variables and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = "sqlite:///./data/wealth.db"
    log_level: str = "INFO"
    debug: bool = False
    allowed_origins: str = "http://localhost:3000"

    # Reporting currency and equity listing conventions
    base_currency: str = "TRY"
    local_exchange_prefix: str = "BIST:"
    local_exchange_suffix: str = ".IS"
    foreign_exchange_prefix: str = "NASDAQ:"

    # Price polling
    price_cache_ttl_seconds: float = 25.0  # must stay below the refresh interval
    refresh_interval_seconds: int = 30
    http_timeout_seconds: float = 10.0
    usd_fallback_rate: Optional[float] = None
    metal_price_api_key: str = "demo"
    refresh_on_startup: bool = True

    news_max_articles: int = 8

    @property
    def allowed_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


settings = Settings()
