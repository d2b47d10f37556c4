"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "HealthSync"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Database (embedded SQLite) ---
    db_path: str = "data/health_sync.db"
    db_busy_timeout_ms: int = 30_000

    # --- Sync ---
    max_batch_size: int = 1000
    # Configured but not enforced anywhere in the pipeline.
    sync_timeout_ms: int = 30_000
    advance_cursor_on_empty_batch: bool = True
    default_device_type: str = "wearos"

    # --- Connected-device tracking ---
    connection_idle_timeout_s: int = 3600
    connection_eviction_interval_s: int = 3600
    counter_reset_check_interval_s: int = 60

    # --- Wireless fallback ---
    bluetooth_enabled: bool = True
    bluetooth_platform: str = "unsupported"
    bluetooth_device_name: str = "GalaxyWatchSync"
    bluetooth_service_uuid: str = "12345678-1234-1234-1234-123456789abc"

    # --- Ingestion rules ---
    ingestion_rules_path: str | None = None  # defaults to the bundled YAML

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "HEALTHSYNC_",
    }

    @property
    def deletion_allowed(self) -> bool:
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    return Settings()
