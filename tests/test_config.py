"""
Tests for YAML configuration loading.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from openslots.config import AppConfig, SyncConfig
from openslots.domain.slot_calculator import StepPolicy


class TestAppConfig:
    """Validation of configuration values."""

    def test_defaults(self):
        config = AppConfig()

        assert config.default_timezone == "America/New_York"
        assert config.safety_buffer_minutes == 15
        assert config.default_days_ahead == 14
        assert config.slot_step_policy == StepPolicy.BUFFERED
        assert config.step_minutes is None
        assert config.default_services == ["consultation", "maintenance", "emergency", "follow-up"]
        assert config.sync.enabled is False

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValidationError, match="Unknown timezone"):
            AppConfig(default_timezone="Atlantis/Capital")

    def test_non_positive_step_rejected(self):
        with pytest.raises(ValidationError, match="step_minutes must be greater than zero"):
            AppConfig(step_minutes=0)

    def test_negative_buffer_rejected(self):
        with pytest.raises(ValidationError, match="must not be negative"):
            AppConfig(safety_buffer_minutes=-5)

    def test_log_level_normalised(self):
        assert AppConfig(log_level="debug").log_level == "DEBUG"

        with pytest.raises(ValidationError, match="Unknown log level"):
            AppConfig(log_level="chatty")


class TestSyncConfig:
    """Validation of the sync section."""

    def test_trailing_slash_stripped(self):
        assert SyncConfig(base_url="https://booking.example.com/").base_url == "https://booking.example.com"

    def test_non_http_url_rejected(self):
        with pytest.raises(ValidationError, match="base_url must start with"):
            SyncConfig(base_url="ftp://booking.example.com")

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError, match="timeout_seconds"):
            SyncConfig(timeout_seconds=0)


class TestLoadFromYaml:
    """Loading configuration files."""

    def test_load_full_file(self, tmp_path: Path):
        config_path = tmp_path / "openslots.yaml"
        config_path.write_text(
            "default_timezone: Europe/Berlin\n"
            "slot_step_policy: interval\n"
            "step_minutes: 20\n"
            "data_file: data/providers.json\n"
            "sync:\n"
            "  enabled: true\n"
            "  base_url: https://booking.example.com/\n"
            "  timeout_seconds: 3\n",
            encoding="utf-8",
        )

        config = AppConfig.load_from_yaml(config_path)

        assert config.default_timezone == "Europe/Berlin"
        assert config.slot_step_policy == StepPolicy.INTERVAL
        assert config.step_minutes == 20
        assert config.data_file == (tmp_path / "data" / "providers.json").resolve()
        assert config.sync.enabled is True
        assert config.sync.base_url == "https://booking.example.com"
        assert config.sync.timeout_seconds == 3

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            AppConfig.load_from_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path: Path):
        config_path = tmp_path / "openslots.yaml"
        config_path.write_text("sync: [unclosed\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid YAML"):
            AppConfig.load_from_yaml(config_path)

    def test_root_must_be_mapping(self, tmp_path: Path):
        config_path = tmp_path / "openslots.yaml"
        config_path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ValueError, match="mapping at the root level"):
            AppConfig.load_from_yaml(config_path)

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        config_path = tmp_path / "openslots.yaml"
        config_path.write_text("", encoding="utf-8")

        assert AppConfig.load_from_yaml(config_path) == AppConfig()

    def test_load_or_default_with_explicit_path(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            AppConfig.load_or_default(tmp_path / "nope.yaml")
