"""Application settings and configuration management."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.config.constants import DEFAULT_RELAYS


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Upstream relays (comma-separated websocket URLs)
    NOSTR_RELAYS: str = ",".join(DEFAULT_RELAYS)
    RELAY_CONNECT_TIMEOUT_SECONDS: float = 10.0

    # HTTP server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    CORS_ORIGINS: str = "http://localhost:3000"

    # Archive / snapshot storage
    DATA_DIR: str = "data"
    STORAGE_KEY: str = "time-machine-media"
    MAX_STORED_PER_TYPE: int = 10000
    SNAPSHOT_MAX_PER_TYPE: int = 1000
    SNAPSHOT_SAVE_DELAY_SECONDS: float = 2.0  # 0 = write on every mutation

    # Time navigation
    DEFAULT_WINDOW_MINUTES: int = 60
    TIME_SLICE_MINUTES: int = 60
    HISTOGRAM_BUCKET_MINUTES: int = 60

    # Bulk fetch (initial load)
    BULK_FETCH_LOOKBACK_SECONDS: int = 7200  # 2 hours
    BULK_FETCH_LIMIT: int = 50
    BULK_FETCH_TIMEOUT_SECONDS: float = 15.0
    MAX_INIT_RETRIES: int = 5
    INIT_RETRY_BASE_DELAY_SECONDS: float = 10.0
    INIT_RETRY_MAX_DELAY_SECONDS: float = 60.0

    # Live subscription
    RECONNECT_DELAY_SECONDS: float = 5.0
    HEALTH_CHECK_INTERVAL_SECONDS: float = 30.0
    STALE_THRESHOLD_SECONDS: float = 180.0
    HEALTH_LOG_INTERVAL_SECONDS: float = 300.0
    PROFILE_LOOKUP_TIMEOUT_SECONDS: float = 5.0

    # Memory bounds
    MAX_EVENT_BUFFER: int = 200
    MAX_SEEN_EVENT_IDS: int = 1000
    PROFILE_CACHE_SIZE: int = 1000
    CATEGORY_CACHE_SIZE: int = 5000

    # Delivery
    FEED_DEFAULT_LIMIT: int = 20
    SSE_KEEPALIVE_SECONDS: float = 15.0
    SSE_CLIENT_QUEUE_SIZE: int = 100

    # Development Settings
    LOG_LEVEL: str = "INFO"

    @property
    def relay_urls(self) -> list[str]:
        """Relay URLs parsed from NOSTR_RELAYS, blanks dropped."""
        return [url.strip() for url in self.NOSTR_RELAYS.split(",") if url.strip()]

    @property
    def cors_origins(self) -> list[str]:
        """Allowed CORS origins parsed from CORS_ORIGINS."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def storage_prefix(self) -> Path:
        """Path prefix for snapshot files.

        The archive lives at ``<prefix>.json`` and the window settings at
        ``<prefix>-window.json``.
        """
        return Path(self.DATA_DIR) / self.STORAGE_KEY


# Global settings instance
settings = Settings()
