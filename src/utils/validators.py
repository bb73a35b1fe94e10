"""Input validation and configuration validation."""

from typing import List, Tuple
from pathlib import Path

from src.config.settings import settings

# Reconnect delays below this storm the relays when they drop us repeatedly
MIN_RECONNECT_DELAY_SECONDS = 5


class ConfigValidator:
    """Validate configuration on startup."""

    @staticmethod
    def validate_all() -> Tuple[bool, List[str]]:
        """
        Validate all configuration settings.

        Returns:
            (is_valid, error_messages)
        """
        errors = []

        # Validate relays
        if not settings.relay_urls:
            errors.append("NOSTR_RELAYS must list at least one relay")
        for url in settings.relay_urls:
            if not url.startswith(("ws://", "wss://")):
                errors.append(f"Relay URL must use ws:// or wss://: {url}")

        # Validate archive bounds
        if settings.MAX_STORED_PER_TYPE < 1:
            errors.append("MAX_STORED_PER_TYPE must be at least 1")

        if settings.SNAPSHOT_MAX_PER_TYPE < 1:
            errors.append("SNAPSHOT_MAX_PER_TYPE must be at least 1")
        elif settings.SNAPSHOT_MAX_PER_TYPE > settings.MAX_STORED_PER_TYPE:
            errors.append("SNAPSHOT_MAX_PER_TYPE cannot exceed MAX_STORED_PER_TYPE")

        # Validate windows
        if settings.DEFAULT_WINDOW_MINUTES < 1:
            errors.append("DEFAULT_WINDOW_MINUTES must be at least 1")

        if settings.TIME_SLICE_MINUTES < 1:
            errors.append("TIME_SLICE_MINUTES must be at least 1")

        if settings.HISTOGRAM_BUCKET_MINUTES < 1:
            errors.append("HISTOGRAM_BUCKET_MINUTES must be at least 1")

        # Validate pipeline timing
        if settings.RECONNECT_DELAY_SECONDS < MIN_RECONNECT_DELAY_SECONDS:
            errors.append(
                f"RECONNECT_DELAY_SECONDS must be at least {MIN_RECONNECT_DELAY_SECONDS}"
            )

        if settings.STALE_THRESHOLD_SECONDS <= settings.HEALTH_CHECK_INTERVAL_SECONDS:
            errors.append(
                "STALE_THRESHOLD_SECONDS must be greater than HEALTH_CHECK_INTERVAL_SECONDS"
            )

        if settings.MAX_INIT_RETRIES < 1:
            errors.append("MAX_INIT_RETRIES must be at least 1")

        if settings.INIT_RETRY_MAX_DELAY_SECONDS < settings.INIT_RETRY_BASE_DELAY_SECONDS:
            errors.append(
                "INIT_RETRY_MAX_DELAY_SECONDS cannot be less than INIT_RETRY_BASE_DELAY_SECONDS"
            )

        if settings.MAX_EVENT_BUFFER < 1 or settings.MAX_SEEN_EVENT_IDS < 2:
            errors.append("MAX_EVENT_BUFFER and MAX_SEEN_EVENT_IDS must be positive")

        # Validate paths; auto-create DATA_DIR for fresh deployments
        data_dir = Path(settings.DATA_DIR)
        if not data_dir.exists():
            try:
                data_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(
                    f"DATA_DIR does not exist and could not be created: "
                    f"{settings.DATA_DIR} ({e})"
                )

        is_valid = len(errors) == 0
        return is_valid, errors
