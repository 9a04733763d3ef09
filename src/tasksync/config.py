from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./tasksync.db"
    sync_remote_url: str = ""  # empty: outbox is drained by the local simulation transport
    sync_batch_size: int = 50
    sync_max_attempts: int = 3
    sync_timeout_seconds: float = 30.0
    sync_interval_seconds: int = 60  # 0 disables the background scheduler
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
