"""Weighted scoring and threshold classification for scene score sets.

The score is the weighted mean of the category rating values; the rating
is the first threshold (in descending order) that the score reaches.
Both functions are pure and safe to call concurrently.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from storyboard.memory.scene_quality._config import QualityConfig
from storyboard.memory.scene_quality._models import (
    RATING_VALUES,
    OverallRating,
    QualityScoreCategory,
    Rating,
    SceneEvaluation,
    ScoredEvaluation,
)
from storyboard.utils.exceptions import MalformedScoreSetError

logger = logging.getLogger(__name__)


def rating_value(rating: Any, category: str | None = None) -> float:
    """Map a rating to its numeric value.

    Args:
        rating: A Rating member or its string form.
        category: Category name, for the error message.

    Returns:
        The rating's fixed value (PASS=1.0, MINOR_ISSUES=0.7, MAJOR_ISSUES=0.4, FAIL=0.0).

    Raises:
        MalformedScoreSetError: If the rating is not exactly one of the known
            values (no case folding or whitespace trimming).
    """
    try:
        return RATING_VALUES[Rating(rating)]
    except ValueError as e:
        raise MalformedScoreSetError(
            f"Unknown rating {rating!r} for category {category or '?'}; "
            f"expected one of {[r.value for r in Rating]}",
            category=category,
            rating=rating,
        ) from e


def _as_category(
    name: str, entry: QualityScoreCategory | Mapping[str, Any]
) -> QualityScoreCategory:
    """Coerce a raw score-set entry into a QualityScoreCategory."""
    if isinstance(entry, QualityScoreCategory):
        return entry
    if not isinstance(entry, Mapping):
        raise MalformedScoreSetError(
            f"Category {name} must be a mapping, got {type(entry).__name__}", category=name
        )
    # Rating first, so an unknown rating always surfaces as MalformedScoreSetError
    rating_value(entry.get("rating"), name)
    try:
        return QualityScoreCategory.model_validate(dict(entry))
    except ValidationError as e:
        raise MalformedScoreSetError(f"Category {name} is malformed: {e}", category=name) from e


def score(scores: Mapping[str, QualityScoreCategory | Mapping[str, Any]]) -> float:
    """Compute the weighted mean score of a score set.

    ``sum(value(rating) * weight) / sum(weight)`` over every category.
    Weights need not sum to 1.

    Args:
        scores: Score set keyed by category name. Entries may be
            QualityScoreCategory models or raw mappings with rating/weight.

    Returns:
        Score in [0, 1].

    Raises:
        MalformedScoreSetError: If the set is empty or a rating is unknown.
        InvalidConfigError: If a raw entry's weight is non-finite or out of range.
    """
    if not scores:
        raise MalformedScoreSetError("Cannot score an empty score set")

    total_score = 0.0
    total_weight = 0.0
    for name, entry in scores.items():
        category = _as_category(name, entry)
        total_score += rating_value(category.rating, name) * category.weight
        total_weight += category.weight

    result = total_score / total_weight
    logger.debug(
        "Scored %d categories: weighted=%.4f, total_weight=%.4f, score=%.4f",
        len(scores),
        total_score,
        total_weight,
        result,
    )
    return result


def classify(score: float, config: QualityConfig) -> OverallRating:
    """Map a score to a decision using the config's thresholds.

    Args:
        score: Score in [0, 1].
        config: Thresholds to compare against, highest first.

    Returns:
        ACCEPT, ACCEPT_WITH_NOTES, REGENERATE_MINOR or REGENERATE_MAJOR.
    """
    if score >= config.accept_threshold:
        return OverallRating.ACCEPT
    if score >= config.minor_issue_threshold:
        return OverallRating.ACCEPT_WITH_NOTES
    if score >= config.major_issue_threshold:
        return OverallRating.REGENERATE_MINOR
    return OverallRating.REGENERATE_MAJOR


@dataclass(frozen=True)
class QualityGate:
    """Scores score sets and classifies them against one QualityConfig."""

    config: QualityConfig

    def score(self, scores: Mapping[str, QualityScoreCategory | Mapping[str, Any]]) -> float:
        """Weighted mean score; see :func:`score`."""
        return score(scores)

    def classify(self, value: float) -> OverallRating:
        """Decision for a score; see :func:`classify`."""
        return classify(value, self.config)

    def assess(
        self, scores: Mapping[str, QualityScoreCategory | Mapping[str, Any]]
    ) -> tuple[float, OverallRating]:
        """Score a score set and classify the result.

        Returns:
            Tuple of (score, overall_rating).
        """
        value = score(scores)
        rating = classify(value, self.config)
        logger.debug("Quality gate: score=%.3f -> %s", value, rating)
        return value, rating

    def evaluate(self, evaluation: SceneEvaluation) -> ScoredEvaluation:
        """Attach the gate's score and decision to a judge evaluation."""
        value, rating = self.assess(evaluation.scores)
        return ScoredEvaluation(evaluation=evaluation, score=value, overall=rating)
