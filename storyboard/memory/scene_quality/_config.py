"""Configuration model for the scene quality gate.

Contains QualityConfig: the ordered decision thresholds plus the attempt
budgets used by the quality retry loop.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from storyboard.utils.exceptions import InvalidConfigError

logger = logging.getLogger(__name__)

_THRESHOLD_FIELDS = (
    "accept_threshold",
    "minor_issue_threshold",
    "major_issue_threshold",
    "fail_threshold",
)


class QualityConfig(BaseModel):
    """Thresholds and budgets for gating generated scenes.

    Thresholds are evaluated in descending order, so the invariant
    ``accept >= minor_issue >= major_issue`` leaves no gap or overlap
    between decisions. Violations raise InvalidConfigError when the
    config is constructed.
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Whether generated scenes are evaluated")
    accept_threshold: float = Field(default=0.95, description="Score for ACCEPT")
    minor_issue_threshold: float = Field(default=0.90, description="Score for ACCEPT_WITH_NOTES")
    major_issue_threshold: float = Field(default=0.7, description="Score for REGENERATE_MINOR")
    fail_threshold: float = Field(
        default=0.7, description="Minimum score for admitting a below-accept best attempt"
    )
    max_attempts: int = Field(default=3, ge=1, le=10, description="Quality attempts per scene")
    safety_retries: int = Field(
        default=2,
        ge=1,
        le=10,
        description="Generation attempts per quality attempt, safety-filter retries included",
    )

    @field_validator(*_THRESHOLD_FIELDS, mode="before")
    @classmethod
    def check_threshold(cls, value: Any, info: ValidationInfo) -> float:
        """Coerce a threshold to float and require a finite value in [0, 1]."""
        name = info.field_name
        if isinstance(value, bool) or value is None:
            raise InvalidConfigError(f"{name} must be a number, got {value!r}", name)
        try:
            number = float(value)
        except (TypeError, ValueError) as e:
            raise InvalidConfigError(f"{name} must be a number, got {value!r}", name) from e
        if not math.isfinite(number):
            raise InvalidConfigError(f"{name} must be finite, got {number}", name)
        if not 0.0 <= number <= 1.0:
            raise InvalidConfigError(f"{name} must be between 0 and 1, got {number}", name)
        return number

    @model_validator(mode="after")
    def check_threshold_order(self) -> QualityConfig:
        """Require accept >= minor_issue >= major_issue."""
        if self.accept_threshold < self.minor_issue_threshold:
            raise InvalidConfigError(
                f"accept_threshold ({self.accept_threshold}) must be >= "
                f"minor_issue_threshold ({self.minor_issue_threshold})",
                "accept_threshold",
            )
        if self.minor_issue_threshold < self.major_issue_threshold:
            raise InvalidConfigError(
                f"minor_issue_threshold ({self.minor_issue_threshold}) must be >= "
                f"major_issue_threshold ({self.major_issue_threshold})",
                "minor_issue_threshold",
            )
        return self

    @classmethod
    def from_settings(cls, settings: Any) -> QualityConfig:
        """Build a QualityConfig from a Settings-like object.

        Args:
            settings: Object exposing quality_enabled, quality_accept_threshold,
                quality_minor_issue_threshold, quality_major_issue_threshold,
                quality_fail_threshold, quality_max_attempts and safety_retries.

        Returns:
            Configuration populated from the settings.

        Raises:
            InvalidConfigError: If the thresholds violate their constraints.
            AttributeError: If a required attribute is missing on the settings object.
        """
        logger.debug("Building QualityConfig from settings")
        config = cls(
            enabled=settings.quality_enabled,
            accept_threshold=settings.quality_accept_threshold,
            minor_issue_threshold=settings.quality_minor_issue_threshold,
            major_issue_threshold=settings.quality_major_issue_threshold,
            fail_threshold=settings.quality_fail_threshold,
            max_attempts=settings.quality_max_attempts,
            safety_retries=settings.safety_retries,
        )
        logger.debug(
            "QualityConfig created: enabled=%s, accept=%.2f, minor=%.2f, major=%.2f, fail=%.2f",
            config.enabled,
            config.accept_threshold,
            config.minor_issue_threshold,
            config.major_issue_threshold,
            config.fail_threshold,
        )
        return config
