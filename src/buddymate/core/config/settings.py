"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """BuddyMate data layer configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Tool server
    # Loopback by default: the server has no auth layer.
    buddymate_host: str = "127.0.0.1"
    buddymate_port: int = 8010
    buddymate_log_level: str = "info"
    buddymate_allow_insecure_bind: bool = False

    app_version: str = "1.0.0"

    # Storage
    db_path: str = "~/.buddymate/store.db"

    # Secure namespace encryption (Fernet key). Empty = secure values stored as-is.
    encryption_key: str = ""

    # Privacy
    data_retention_days: int = 365
    max_crash_reports: int = 100

    # Sync
    sync_server_url: str = ""
    sync_max_retries: int = 3
    sync_backoff_base_seconds: float = 0.5
    sync_backoff_max_seconds: float = 30.0

    # Caller-side timeout for UI-facing loads
    load_timeout_seconds: float = 10.0


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
