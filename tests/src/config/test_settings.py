"""Tests for Settings configuration model."""

from pathlib import Path

import pytest

from src.config.constants import DEFAULT_RELAYS
from src.config.settings import Settings


@pytest.mark.unit
class TestSettingsDefaults:
    """Tests for Settings default values via model field definitions."""

    def test_port_defaults_to_3000(self):
        assert Settings.model_fields["PORT"].default == 3000

    def test_relays_default_to_public_set(self):
        assert Settings.model_fields["NOSTR_RELAYS"].default == ",".join(DEFAULT_RELAYS)

    def test_max_stored_per_type_defaults_to_10000(self):
        assert Settings.model_fields["MAX_STORED_PER_TYPE"].default == 10000

    def test_snapshot_max_per_type_defaults_to_1000(self):
        assert Settings.model_fields["SNAPSHOT_MAX_PER_TYPE"].default == 1000

    def test_windows_default_to_one_hour(self):
        assert Settings.model_fields["DEFAULT_WINDOW_MINUTES"].default == 60
        assert Settings.model_fields["TIME_SLICE_MINUTES"].default == 60
        assert Settings.model_fields["HISTOGRAM_BUCKET_MINUTES"].default == 60

    def test_bulk_fetch_defaults(self):
        assert Settings.model_fields["BULK_FETCH_LOOKBACK_SECONDS"].default == 7200
        assert Settings.model_fields["BULK_FETCH_LIMIT"].default == 50
        assert Settings.model_fields["BULK_FETCH_TIMEOUT_SECONDS"].default == 15.0

    def test_retry_defaults(self):
        assert Settings.model_fields["MAX_INIT_RETRIES"].default == 5
        assert Settings.model_fields["INIT_RETRY_BASE_DELAY_SECONDS"].default == 10.0
        assert Settings.model_fields["INIT_RETRY_MAX_DELAY_SECONDS"].default == 60.0

    def test_stream_health_defaults(self):
        assert Settings.model_fields["RECONNECT_DELAY_SECONDS"].default == 5.0
        assert Settings.model_fields["HEALTH_CHECK_INTERVAL_SECONDS"].default == 30.0
        assert Settings.model_fields["STALE_THRESHOLD_SECONDS"].default == 180.0

    def test_memory_bounds(self):
        assert Settings.model_fields["MAX_EVENT_BUFFER"].default == 200
        assert Settings.model_fields["MAX_SEEN_EVENT_IDS"].default == 1000

    def test_log_level_defaults_to_info(self):
        assert Settings.model_fields["LOG_LEVEL"].default == "INFO"


@pytest.mark.unit
class TestSettingsProperties:
    """Tests for derived settings."""

    def test_relay_urls_drop_blanks(self):
        settings = Settings(NOSTR_RELAYS=" wss://a.example , ,wss://b.example")

        assert settings.relay_urls == ["wss://a.example", "wss://b.example"]

    def test_cors_origins_split(self):
        settings = Settings(CORS_ORIGINS="http://a.test,http://b.test")

        assert settings.cors_origins == ["http://a.test", "http://b.test"]

    def test_storage_prefix(self):
        settings = Settings(DATA_DIR="/var/lib/observatory", STORAGE_KEY="media")

        assert settings.storage_prefix == Path("/var/lib/observatory/media")
