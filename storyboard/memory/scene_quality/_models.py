"""Pydantic models for scene quality evaluation.

A judge rates a generated scene across weighted categories (a score set),
lists the issues it found and proposes prompt corrections. The gate turns
the score set into a single score and an overall rating.
"""

import logging
import math
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from storyboard.utils.exceptions import InvalidConfigError

logger = logging.getLogger(__name__)


class Rating(StrEnum):
    """Categorical rating the judge assigns to one score category."""

    PASS = "PASS"
    MINOR_ISSUES = "MINOR_ISSUES"
    MAJOR_ISSUES = "MAJOR_ISSUES"
    FAIL = "FAIL"


# Fixed numeric value of each rating used by the weighted mean
RATING_VALUES: dict[Rating, float] = {
    Rating.PASS: 1.0,
    Rating.MINOR_ISSUES: 0.7,
    Rating.MAJOR_ISSUES: 0.4,
    Rating.FAIL: 0.0,
}


class OverallRating(StrEnum):
    """Decision derived from a score, ordered from best to worst."""

    ACCEPT = "ACCEPT"
    ACCEPT_WITH_NOTES = "ACCEPT_WITH_NOTES"
    REGENERATE_MINOR = "REGENERATE_MINOR"
    REGENERATE_MAJOR = "REGENERATE_MAJOR"


# Categories the scene judge is asked to rate, with their default weights
DEFAULT_CATEGORY_WEIGHTS: dict[str, float] = {
    "narrativeFidelity": 0.30,
    "characterConsistency": 0.25,
    "technicalQuality": 0.20,
    "emotionalAuthenticity": 0.15,
    "continuity": 0.10,
}


class QualityScoreCategory(BaseModel):
    """One weighted category rating within a score set."""

    rating: Rating = Field(description="Judge's rating for this category")
    weight: float = Field(description="Relative weight in (0, 1]")
    details: str = Field(default="", description="Judge's explanation")

    @field_validator("weight", mode="after")
    @classmethod
    def check_weight(cls, value: float) -> float:
        """Reject non-finite weights and weights outside (0, 1]."""
        if not math.isfinite(value):
            raise InvalidConfigError(f"weight must be a finite number, got {value}", "weight")
        if not 0.0 < value <= 1.0:
            raise InvalidConfigError(f"weight must be in (0, 1], got {value}", "weight")
        return value


type ScoreSet = dict[str, QualityScoreCategory]


class _CamelModel(BaseModel):
    """Base for judge-response models that arrive with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QualityIssue(_CamelModel):
    """A problem the judge found in a generated scene."""

    category: str = Field(default="", description="narrative, character, technical, ...")
    severity: Literal["critical", "major", "minor"] = Field(default="minor")
    description: str = Field(default="")
    video_timestamp: str = Field(default="", description="Approximate time range, e.g. 0:02-0:04")
    suggested_fix: str = Field(default="")

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, value: Any) -> Any:
        """Lowercase severities such as 'Major'."""
        if isinstance(value, str):
            return value.strip().lower()
        return value


class PromptCorrection(_CamelModel):
    """A judge-proposed rewrite of one section of the generation prompt."""

    issue_type: str = Field(default="", description="What went wrong")
    original_prompt_section: str = Field(default="")
    corrected_prompt_section: str = Field(default="")
    reasoning: str = Field(default="")


class SceneEvaluation(_CamelModel):
    """Structured evaluation of one generated scene, as returned by the judge."""

    scores: dict[str, QualityScoreCategory] = Field(description="Score set keyed by category")
    issues: list[QualityIssue] = Field(default_factory=list)
    feedback: str = Field(default="", description="Overall summary from the judge")
    prompt_corrections: list[PromptCorrection] = Field(default_factory=list)
    rule_suggestion: str | None = Field(
        default=None, description="Optional global rule to prevent systemic issues"
    )

    @model_validator(mode="before")
    @classmethod
    def drop_null_lists(cls, data: Any) -> Any:
        """Treat null issues/promptCorrections as empty lists."""
        if isinstance(data, dict):
            for key in ("issues", "promptCorrections", "prompt_corrections"):
                if key in data and data[key] is None:
                    logger.debug("Judge returned null %s, using empty list", key)
                    data = {**data, key: []}
        return data

    def issue_counts(self) -> dict[str, int]:
        """Count issues by severity."""
        counts = {"critical": 0, "major": 0, "minor": 0}
        for issue in self.issues:
            counts[issue.severity] += 1
        return counts


class ScoredEvaluation(BaseModel):
    """A scene evaluation together with the gate's score and decision."""

    evaluation: SceneEvaluation
    score: float = Field(description="Weighted mean of the category ratings, in [0, 1]")
    overall: OverallRating

    @property
    def accepted(self) -> bool:
        """True when the gate accepted the scene outright."""
        return self.overall == OverallRating.ACCEPT


class EvaluationUnavailable(BaseModel):
    """Outcome when the evaluation itself could not be obtained.

    Kept distinct from every rating so "could not evaluate" is never read
    as "evaluation passed"; the caller decides what to do with it.
    """

    reason: str = Field(description="Why no evaluation is available")
    error_type: str | None = Field(default=None, description="Exception class name, if any")


type EvaluationOutcome = ScoredEvaluation | EvaluationUnavailable
