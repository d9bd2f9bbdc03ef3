"""Tests for settings and logging setup."""

import logging

import pytest

from casechart.core import logging as casechart_logging
from casechart.core.config import Settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self) -> None:
        """Test default settings."""
        config = Settings(_env_file=None)
        assert config.app_name == "Case Chart Core"
        assert config.reject_duplicate_diagnoses is True
        assert config.materialize_default_rows is True
        assert config.legacy_key_fallback is True
        assert config.strict_grades is True
        assert config.audit_enabled is True

    def test_environment_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test settings are read from CASECHART_ variables."""
        monkeypatch.setenv("CASECHART_REJECT_DUPLICATE_DIAGNOSES", "false")
        monkeypatch.setenv("CASECHART_LOG_LEVEL", "warning")
        config = Settings(_env_file=None)
        assert config.reject_duplicate_diagnoses is False
        assert config.effective_log_level == "WARNING"

    def test_debug_forces_debug_level(self) -> None:
        """Test debug mode overrides the log level."""
        config = Settings(_env_file=None, debug=True, log_level="ERROR")
        assert config.effective_log_level == "DEBUG"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_sets_root_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the root logger gets the requested level."""
        root = logging.getLogger()
        original = root.level
        monkeypatch.setattr(casechart_logging, "_configured", False)
        try:
            casechart_logging.configure_logging("warning")
            assert root.level == logging.WARNING
            casechart_logging.configure_logging("debug")
            assert root.level == logging.DEBUG
        finally:
            root.setLevel(original)
