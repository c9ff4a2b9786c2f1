"""Environment overrides for Settings.

Deployments tune the quality gate without editing settings.json by
exporting e.g. ``ACCEPT_THRESHOLD=0.9``. Overrides are applied after the
file is loaded and are never written back to disk.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import fields, replace
from typing import TYPE_CHECKING, Any

from storyboard.settings._types import ENV_OVERRIDES
from storyboard.utils.exceptions import ConfigError

if TYPE_CHECKING:
    from storyboard.settings._settings import Settings

logger = logging.getLogger(__name__)


def _parse_value(env_name: str, raw: str, default: Any) -> Any:
    """Parse an environment string into the type of the field's default."""
    value = raw.strip()
    try:
        if isinstance(default, bool):
            lowered = value.lower()
            if lowered in ("1", "true", "yes", "on"):
                return True
            if lowered in ("0", "false", "no", "off"):
                return False
            raise ValueError(f"not a boolean: {raw!r}")
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
    except ValueError as e:
        raise ConfigError(f"Environment variable {env_name}={raw!r} is invalid: {e}") from e
    return value.upper() if env_name == "LOG_LEVEL" else value


def apply_env_overrides(settings: Settings, environ: Mapping[str, str] | None = None) -> Settings:
    """Return a copy of *settings* with environment overrides applied.

    Args:
        settings: Settings loaded from disk.
        environ: Environment to read; defaults to ``os.environ``.

    Returns:
        The same instance when nothing is overridden, otherwise a validated copy.

    Raises:
        ConfigError: If an override cannot be parsed.
        ValueError: If an overridden value fails settings validation.
    """
    env = os.environ if environ is None else environ
    defaults = {f.name: getattr(settings, f.name) for f in fields(settings)}

    updates: dict[str, Any] = {}
    for env_name, field_name in ENV_OVERRIDES.items():
        raw = env.get(env_name)
        if raw is None or not raw.strip():
            continue
        updates[field_name] = _parse_value(env_name, raw, defaults[field_name])
        logger.info("Setting %s overridden from %s: %r", field_name, env_name, updates[field_name])

    if not updates:
        return settings

    overridden = replace(settings, **updates)
    overridden.validate()
    return overridden
