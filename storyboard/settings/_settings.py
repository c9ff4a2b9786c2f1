"""Main Settings dataclass for Storyboard Factory.

Settings are stored in settings.json next to the package. Quality gate
thresholds and retry budgets can additionally be overridden from the
environment (see ``ENV_OVERRIDES``).
"""

from __future__ import annotations

import copy
import json
import logging
import os
import shutil
import tempfile
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, ClassVar

from storyboard.settings import _paths
from storyboard.settings import _validation as _validation_mod
from storyboard.settings._env import apply_env_overrides

# Configure module logger
logger = logging.getLogger(__name__)


def _merge_with_defaults(data: dict[str, Any], settings_cls: type[Settings]) -> bool:
    """Merge loaded JSON data with dataclass defaults.

    - Adds missing keys with their default values
    - Removes keys that no longer exist in the dataclass

    Modifies *data* in place.

    Returns:
        True if any changes were made, False otherwise.
    """
    default_dict = asdict(settings_cls())
    known_fields = {f.name for f in fields(settings_cls)}
    changed = False

    for key in list(data):
        if key not in known_fields:
            logger.info("Removing obsolete setting: %s", key)
            del data[key]
            changed = True

    for key in known_fields:
        if key not in data:
            logger.info("Adding new setting with default: %s", key)
            data[key] = default_dict[key]
            changed = True

    logger.debug("Merge summary: %d known fields, changed=%s", len(known_fields), changed)
    return changed


def _atomic_write_json(path: Path | str, data: dict[str, Any]) -> None:
    """Write JSON to *path* atomically via a temp file + rename."""
    path = Path(path)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError as cleanup_err:
            logger.warning("Failed to remove temp settings file %s: %s", tmp_path, cleanup_err)
        raise


def _backup_corrupt(path: Path) -> None:
    """Copy an unreadable settings file aside before it is replaced."""
    backup_path = path.with_suffix(".json.corrupt")
    try:
        shutil.copy(path, backup_path)
        logger.info("Backed up corrupted settings to %s", backup_path)
    except OSError as copy_err:
        logger.warning("Failed to backup corrupted settings: %s", copy_err)


def _read_settings_file(path: Path) -> dict[str, Any]:
    """Read the settings JSON, returning {} when it is missing or unusable."""
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error("Corrupted settings file (invalid JSON): %s", e)
        _backup_corrupt(path)
        return {}
    except OSError as e:
        logger.error("Cannot read settings file (may be locked or inaccessible): %s", e)
        return {}

    if not isinstance(data, dict):
        logger.error(
            "Corrupted settings file (expected JSON object, got %s)", type(data).__name__
        )
        _backup_corrupt(path)
        return {}
    return data


@dataclass
class Settings:
    """Application settings, stored as JSON."""

    # Logging
    log_level: str = "INFO"
    log_file: str | None = "default"

    # Ollama
    ollama_url: str = "http://localhost:11434"
    ollama_timeout: int = 120
    llm_model: str = "qwen3:8b"
    sanitizer_temperature: float = 0.7
    correction_temperature: float = 0.5
    json_repair_temperature: float = 0.1

    # Retry controller defaults for LLM and generation calls
    retry_max_retries: int = 3
    retry_initial_delay_ms: int = 1000
    retry_backoff_factor: float = 2.0
    retry_max_delay_ms: int | None = None

    # Scene quality gate
    quality_enabled: bool = True
    quality_accept_threshold: float = 0.95
    quality_minor_issue_threshold: float = 0.90
    quality_major_issue_threshold: float = 0.7
    quality_fail_threshold: float = 0.7
    quality_max_attempts: int = 3
    quality_attempt_delay_seconds: float = 3.0  # Pause between quality attempts
    quality_unavailable_policy: str = "retry"  # retry | accept | raise

    # Generation attempts per quality attempt when the safety filter rejects a prompt
    safety_retries: int = 2

    def save(self) -> None:
        """Save settings to JSON file."""
        self.validate()
        _atomic_write_json(_paths.SETTINGS_FILE, asdict(self))
        logger.info("Settings saved to %s", _paths.SETTINGS_FILE)

    def validate(self) -> bool:
        """Validate all settings fields. Delegates to _validation module.

        Returns:
            True if any settings were mutated during validation, False otherwise.

        Raises:
            ValueError: If any field contains an invalid value.
            InvalidConfigError: If the quality thresholds violate their constraints.
        """
        return _validation_mod.validate(self)

    # Class-level cache for settings (speeds up repeated load() calls)
    _cached_instance: ClassVar[Settings | None] = None

    @classmethod
    def load(cls, use_cache: bool = True) -> Settings:
        """Load settings from JSON file, or create defaults.

        New settings get default values and removed settings are cleaned up.
        Environment overrides are applied last and are not written back.

        Args:
            use_cache: If True, return cached instance if available. Set to False
                to force reload from disk (useful after save() or in tests).

        Returns:
            Settings instance.

        Raises:
            ValueError: If a stored setting has an invalid value or type.
            ConfigError: If an environment override cannot be parsed.
        """
        if use_cache and cls._cached_instance is not None:
            return cls._cached_instance

        path = _paths.SETTINGS_FILE
        data = _read_settings_file(path)
        loaded_from_file = bool(data)
        logger.info("Settings load: loaded_from_file=%s, keys_read=%d", loaded_from_file, len(data))

        original_data = copy.deepcopy(data)
        changed = _merge_with_defaults(data, cls)

        try:
            settings = cls(**data)
            # validate() first so it always runs
            changed = settings.validate() or changed
        except TypeError as e:
            raise ValueError(f"A setting has an invalid type: {e}") from e

        if changed:
            final_data = asdict(settings)
            for key, value in final_data.items():
                if original_data.get(key) != value:
                    logger.debug("Setting %s: %r -> %r", key, original_data.get(key), value)
            try:
                _atomic_write_json(path, final_data)
                logger.info("Settings updated during load, saved to %s", path)
            except OSError as write_err:
                logger.warning(
                    "Could not persist updated settings to disk: %s; "
                    "settings are loaded in memory only",
                    write_err,
                )

        settings = apply_env_overrides(settings)

        cls._cached_instance = settings
        return settings

    @classmethod
    def clear_cache(cls) -> None:
        """Clear the cached settings instance.

        Use this in tests that need to verify settings loading behavior,
        or after programmatically modifying settings files.
        """
        cls._cached_instance = None
