"""Pydantic Settings — loads configuration from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "extra": "ignore"}

    redis_url: str = "redis://localhost:6379"
    log_level: str = "INFO"

    scrape_batch_size: int = 5
    scrape_headless: bool = True
    scrape_navigation_timeout_ms: int = 30000
    scrape_settle_delay_ms: int = 2000
    scrape_page_timeout_seconds: float = 60.0
    scrape_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )

    media_page_limit: int = 20
    media_max_page_limit: int = 100


@lru_cache
def get_settings() -> Settings:
    return Settings()
