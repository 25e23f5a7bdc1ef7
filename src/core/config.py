from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    host: str = "0.0.0.0"
    port: int = 3001
    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"
    log_json: bool = False
    # Cache sizing mirrors the 512MB hosting tier the service was built for
    metrics_cache_key: str = "walrus-data"
    cache_ttl_seconds: int = 86400
    cache_max_entries: int = 50
    cache_max_memory_mb: int = 100
    cache_memory_check_interval_seconds: int = 300
    process_memory_high_water_mb: int = 400
    refresh_hour_utc: int = 0
    refresh_minute_utc: int = 0
    fetcher_backend: Literal["browser", "http"] = "browser"
    enabled_sources: list[str] = []  # empty = every registered source, in priority order
    fetch_timeout_ms: int = 45000
    fetch_retries: int = 3
    fetch_retry_backoff_seconds: float = 2.0
    content_settle_timeout_ms: int = 15000

settings = Settings()
