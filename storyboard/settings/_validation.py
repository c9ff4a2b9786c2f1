"""Validation functions for Settings."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from storyboard.memory.scene_quality import QualityConfig
from storyboard.settings._types import LOG_LEVELS, UNAVAILABLE_POLICIES

if TYPE_CHECKING:
    from storyboard.settings._settings import Settings

logger = logging.getLogger(__name__)


def validate(settings: Settings) -> bool:
    """Validate all settings fields.

    Delegates to individual validation functions for each category of settings.

    Returns:
        True if any settings were mutated during validation, False otherwise.
        Callers can use this to decide whether to re-save the settings file.

    Raises:
        ValueError: If any field contains an invalid value.
        InvalidConfigError: If the quality thresholds violate their constraints.
    """
    _validate_log_level(settings)
    _validate_url(settings)
    _validate_llm(settings)
    _validate_retry(settings)
    changed = _validate_retry_ceiling(settings)
    _validate_quality(settings)
    return changed


def _validate_log_level(settings: Settings) -> None:
    """Validate log_level is a known logging level."""
    if settings.log_level not in LOG_LEVELS:
        raise ValueError(
            f"log_level must be one of {list(LOG_LEVELS.keys())}, got {settings.log_level}"
        )


def _validate_url(settings: Settings) -> None:
    """Validate URL format for ollama_url."""
    from urllib.parse import urlparse

    try:
        parsed = urlparse(settings.ollama_url)
        if parsed.scheme not in ("http", "https"):
            raise ValueError(f"Invalid URL scheme in ollama_url: {settings.ollama_url}")
        if not parsed.netloc:
            raise ValueError(f"Invalid URL (missing host) in ollama_url: {settings.ollama_url}")
    except (AttributeError, TypeError) as e:
        raise ValueError(f"Invalid ollama_url: {settings.ollama_url} - {e}") from e


def _validate_llm(settings: Settings) -> None:
    """Validate LLM model name, timeout and temperatures."""
    if not settings.llm_model or not settings.llm_model.strip():
        raise ValueError("llm_model must not be empty")

    if not 10 <= settings.ollama_timeout <= 3600:
        raise ValueError(
            f"ollama_timeout must be between 10 and 3600 seconds, got {settings.ollama_timeout}"
        )

    for name in ("sanitizer_temperature", "correction_temperature", "json_repair_temperature"):
        value = getattr(settings, name)
        if not 0.0 <= value <= 2.0:
            raise ValueError(f"{name} must be between 0.0 and 2.0, got {value}")


def _validate_retry(settings: Settings) -> None:
    """Validate retry controller defaults."""
    if not 0 <= settings.retry_max_retries <= 20:
        raise ValueError(
            f"retry_max_retries must be between 0 and 20, got {settings.retry_max_retries}"
        )

    if settings.retry_initial_delay_ms < 0:
        raise ValueError(
            f"retry_initial_delay_ms must be >= 0, got {settings.retry_initial_delay_ms}"
        )

    if not math.isfinite(settings.retry_backoff_factor) or settings.retry_backoff_factor < 1.0:
        raise ValueError(
            f"retry_backoff_factor must be a finite number >= 1.0, "
            f"got {settings.retry_backoff_factor}"
        )

    if settings.quality_attempt_delay_seconds < 0:
        raise ValueError(
            f"quality_attempt_delay_seconds must be >= 0, "
            f"got {settings.quality_attempt_delay_seconds}"
        )


def _validate_retry_ceiling(settings: Settings) -> bool:
    """Validate retry_max_delay_ms, raising it to the initial delay if below it.

    Returns:
        True if the ceiling was adjusted.
    """
    ceiling = settings.retry_max_delay_ms
    if ceiling is None:
        return False
    if ceiling < 0:
        raise ValueError(f"retry_max_delay_ms must be >= 0 or null, got {ceiling}")
    if ceiling < settings.retry_initial_delay_ms:
        logger.warning(
            "retry_max_delay_ms (%d) is below retry_initial_delay_ms (%d), raising it",
            ceiling,
            settings.retry_initial_delay_ms,
        )
        settings.retry_max_delay_ms = settings.retry_initial_delay_ms
        return True
    return False


def _validate_quality(settings: Settings) -> None:
    """Validate quality gate settings.

    Thresholds are checked by QualityConfig itself so settings and the
    gate enforce exactly the same constraints.
    """
    if settings.quality_unavailable_policy not in UNAVAILABLE_POLICIES:
        raise ValueError(
            f"quality_unavailable_policy must be one of {list(UNAVAILABLE_POLICIES)}, "
            f"got {settings.quality_unavailable_policy}"
        )

    if not 1 <= settings.quality_max_attempts <= 10:
        raise ValueError(
            f"quality_max_attempts must be between 1 and 10, got {settings.quality_max_attempts}"
        )

    if not 1 <= settings.safety_retries <= 10:
        raise ValueError(f"safety_retries must be between 1 and 10, got {settings.safety_retries}")

    QualityConfig.from_settings(settings)
