"""Tests for configuration settings."""

from pathlib import Path

import pytest


def test_settings_loads_from_env():
    """Test that settings loads from environment variables."""
    # Import after env vars are set in conftest
    from visa_tracker.config.settings import get_settings

    # Clear the cache to force reload
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.spreadsheet_id == "test-spreadsheet"
    assert settings.sheets_access_token.get_secret_value() == "test-token"


def test_settings_has_defaults():
    """Test that settings has sensible defaults."""
    from visa_tracker.config.settings import get_settings

    get_settings.cache_clear()
    settings = get_settings()

    assert settings.sheets_api_url == "https://sheets.googleapis.com"
    assert settings.sheets_timeout == 30.0
    assert settings.sheets_max_retries == 3
    assert settings.task_table == "Daily Report"
    assert settings.read_row_limit == 1000
    assert settings.cache_path == Path(".visa_tracker/snapshot.json")
    assert "Dashboard" in settings.system_tables
    assert "Copy of ICDC" in settings.system_tables


def test_system_tables_from_json_env(monkeypatch):
    """Test that the system table list is read as JSON."""
    from visa_tracker.config.settings import FlatSettings

    monkeypatch.setenv("SYSTEM_TABLES", '["Archive", "Daily Report"]')
    settings = FlatSettings()

    assert settings.system_tables == ["Archive", "Daily Report"]


def test_token_is_required(monkeypatch):
    """Test that a missing access token is rejected."""
    from pydantic import ValidationError

    from visa_tracker.config.settings import FlatSettings

    monkeypatch.delenv("SHEETS_ACCESS_TOKEN")
    with pytest.raises(ValidationError):
        FlatSettings(_env_file=None)


def test_settings_are_cached():
    """Test that get_settings returns cached instance."""
    from visa_tracker.config.settings import get_settings

    get_settings.cache_clear()

    settings1 = get_settings()
    settings2 = get_settings()

    assert settings1 is settings2
