"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """All configuration is loaded from ``WEARSYNC_*`` environment variables (or .env file).

    Per-vendor client policy (base URL, timeouts, circuit breaker) lives in
    vendors.yaml; only secrets and engine tunables live here.
    """

    # --- App ---
    app_name: str = "wearsync"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Sync engine ---
    sync_interval_minutes: int = 30
    token_refresh_buffer_seconds: int = 300
    max_concurrent_syncs: int = 5

    # --- Vendor credentials ---
    apple_health_client_id: str = ""
    apple_health_client_secret: str = ""
    fitbit_client_id: str = ""
    fitbit_client_secret: str = ""

    # --- Vendor client policy ---
    vendor_config_path: str | None = None  # defaults to the bundled vendors.yaml

    model_config = SettingsConfigDict(
        env_prefix="WEARSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
