"""
Inhouse tracking SDK configuration.
Defaults come from environment variables; the host's initialize() call wins.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # --- Endpoints ---
    server_url: str = "https://api.tryinhouse.com"
    fingerprint_url: str = ""  # empty = {server_url}/check-fingureprinting

    # --- Local storage ---
    database_url: str = "sqlite:///inhouse_tracking.db"
    failed_event_capacity: int = 100

    # --- Transport ---
    request_timeout_seconds: float = 30.0
    sdk_version: str = "1.0"

    # --- Session defaults ---
    debug: bool = False
    session_timeout_minutes: int = 30
    max_retry_attempts: int = 3

    model_config = {"env_prefix": "INHOUSE_", "env_file": ".env"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
