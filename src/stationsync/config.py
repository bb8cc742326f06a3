from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./stationsync.db"

    uex_api_base_url: str = "https://uexcorp.space/api/2.0"
    uex_timeout_seconds: float = 30.0
    uex_retry_attempts: int = 3  # default for newly created SyncConfig rows
    uex_backoff_base_ms: int = 1000
    uex_batch_size: int = 100
    uex_concurrent_categories: int = 3
    uex_rate_limit_pause_ms: int = 2000
    uex_endpoints_pause_ms: int = 1000

    sync_enabled: bool = True
    sync_hour: int = 2  # UTC
    lock_timeout_minutes: int = 30

    system_user_id: int = 1  # actor stamped on every synced record

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
