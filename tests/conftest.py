"""Pytest fixtures for Storyboard Factory tests."""

import logging

import pytest

import storyboard.settings._paths as settings_paths
from storyboard.memory.scene_quality import QualityConfig
from storyboard.settings import ENV_OVERRIDES, Settings
from storyboard.utils.logging_config import reset_logger_suppression


@pytest.fixture(autouse=True, scope="function")
def cleanup_production_log_handlers():
    """Remove file handlers pointing to the production log after each test.

    Tests that call setup_logging() with the default log file would
    otherwise leave handlers writing to output/logs/storyboard.log.
    """
    yield

    root_logger = logging.getLogger()
    production_log_name = "storyboard.log"

    handlers_to_remove = [
        handler
        for handler in root_logger.handlers
        if isinstance(handler, logging.FileHandler)
        and production_log_name in getattr(handler, "baseFilename", "")
    ]
    for handler in handlers_to_remove:
        handler.close()
        root_logger.removeHandler(handler)
    reset_logger_suppression()


@pytest.fixture(autouse=True)
def clear_settings_cache_per_test():
    """Clear Settings cache before each test to ensure isolation."""
    Settings.clear_cache()
    yield
    Settings.clear_cache()


@pytest.fixture(autouse=True)
def isolate_settings_file(tmp_path, monkeypatch):
    """Redirect SETTINGS_FILE to a temp directory.

    Without this, Settings.load() in tests would read and write the real
    storyboard/settings.json.
    """
    settings_file = tmp_path / "settings.json"
    monkeypatch.setattr(settings_paths, "SETTINGS_FILE", settings_file)
    yield settings_file


@pytest.fixture(autouse=True)
def clear_env_overrides(monkeypatch):
    """Ensure environment overrides from the developer's shell don't leak in."""
    for env_name in ENV_OVERRIDES:
        monkeypatch.delenv(env_name, raising=False)


@pytest.fixture
def quality_config() -> QualityConfig:
    """Default quality thresholds (0.95 / 0.90 / 0.7 / 0.7)."""
    return QualityConfig()
