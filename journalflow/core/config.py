from typing import Dict

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    # App
    app_name: str = "journalflow"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./journalflow.db"
    database_echo: bool = False

    # Logging
    log_level: str = "INFO"
    log_dir: str = "./logs"
    file_logging: bool = False
    # Per-module overrides, e.g. LOG_LEVELS='{"journalflow.services.notifications": "DEBUG"}'
    log_levels: Dict[str, str] = {}

    # Workflow
    auto_skip_optional_steps: bool = True
    allow_duplicate_step_organizations: bool = False
    system_actor_id: str = "system"

    # Webhooks
    webhook_timeout: int = 30
    webhook_max_retries: int = 3

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
