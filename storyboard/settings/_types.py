"""Shared constants and type aliases for settings."""

from typing import Literal

LOG_LEVELS: dict[str, str] = {
    "DEBUG": "Debug",
    "INFO": "Info",
    "WARNING": "Warning",
    "ERROR": "Error",
}

# What the quality loop does when a scene could not be evaluated at all
type UnavailablePolicy = Literal["retry", "accept", "raise"]
UNAVAILABLE_POLICIES: tuple[str, ...] = ("retry", "accept", "raise")

# Environment variable -> Settings field. Applied on load, never persisted.
ENV_OVERRIDES: dict[str, str] = {
    "ACCEPT_THRESHOLD": "quality_accept_threshold",
    "MINOR_ISSUE_THRESHOLD": "quality_minor_issue_threshold",
    "MAJOR_ISSUE_THRESHOLD": "quality_major_issue_threshold",
    "FAIL_THRESHOLD": "quality_fail_threshold",
    "MAX_RETRIES": "quality_max_attempts",
    "SAFETY_RETRIES": "safety_retries",
    "LOG_LEVEL": "log_level",
}
