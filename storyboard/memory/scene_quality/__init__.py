"""Quality models and scoring for generated scenes.

This package provides the quality gate used by the scene quality loop:
- _models: Rating, OverallRating, score-set and judge-response models
- _config: QualityConfig (ordered thresholds and attempt budgets)
- _scoring: score, classify and the QualityGate that bundles them
"""

from ._config import QualityConfig
from ._models import (
    DEFAULT_CATEGORY_WEIGHTS,
    RATING_VALUES,
    EvaluationOutcome,
    EvaluationUnavailable,
    OverallRating,
    PromptCorrection,
    QualityIssue,
    QualityScoreCategory,
    Rating,
    SceneEvaluation,
    ScoredEvaluation,
    ScoreSet,
)
from ._scoring import QualityGate, classify, rating_value, score

__all__ = [
    "DEFAULT_CATEGORY_WEIGHTS",
    "RATING_VALUES",
    "EvaluationOutcome",
    "EvaluationUnavailable",
    "OverallRating",
    "PromptCorrection",
    "QualityConfig",
    "QualityGate",
    "QualityIssue",
    "QualityScoreCategory",
    "Rating",
    "SceneEvaluation",
    "ScoreSet",
    "ScoredEvaluation",
    "classify",
    "rating_value",
    "score",
]
