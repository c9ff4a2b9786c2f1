"""Judge-response parsing and scene evaluation.

The judge (a multimodal model that watches the generated clip) is injected
as an async callable returning raw text. This module turns that text into a
scored, classified evaluation, or an explicit EvaluationUnavailable when the
judge could not be reached.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping

from pydantic import ValidationError

from storyboard.memory.scene_quality import (
    EvaluationOutcome,
    EvaluationUnavailable,
    QualityGate,
    SceneEvaluation,
    rating_value,
)
from storyboard.utils.exceptions import (
    JSONParseError,
    LLMError,
    RetryExhaustedError,
    summarize_llm_error,
)
from storyboard.utils.json_parser import extract_json

logger = logging.getLogger(__name__)

# (artifact, prompt, attempt) -> raw judge response
type JudgeFn[A] = Callable[[A, str, int], Awaitable[str]]
# (raw_text, parse_error) -> repaired text
type RepairFn = Callable[[str, str], Awaitable[str]]


def parse_evaluation(text: str) -> SceneEvaluation:
    """Parse a judge response into a SceneEvaluation.

    Args:
        text: Raw judge output; may wrap the JSON in code fences, think tags
            or prose.

    Returns:
        The validated evaluation.

    Raises:
        JSONParseError: If no JSON object can be extracted or it has the wrong shape.
        MalformedScoreSetError: If a category carries an unknown rating.
        InvalidConfigError: If a category weight is non-finite or out of range.
    """
    data = extract_json(text)
    if not isinstance(data, dict):
        raise JSONParseError(
            f"Expected a JSON object for the scene evaluation, got {type(data).__name__}",
            response_preview=text[:500],
            expected_type="SceneEvaluation",
        )

    # Unknown ratings are a score-set contract violation, not a JSON problem
    scores = data.get("scores")
    if isinstance(scores, Mapping):
        for name, entry in scores.items():
            if isinstance(entry, Mapping):
                rating_value(entry.get("rating"), name)

    try:
        return SceneEvaluation.model_validate(data)
    except ValidationError as e:
        raise JSONParseError(
            f"Scene evaluation has an invalid shape: {e.error_count()} error(s)",
            response_preview=text[:500],
            expected_type="SceneEvaluation",
        ) from e


class SceneEvaluator[A]:
    """Evaluates generated scenes with an injected judge and a QualityGate."""

    def __init__(self, judge: JudgeFn[A], gate: QualityGate, repair: RepairFn | None = None):
        """Create an evaluator.

        Args:
            judge: Async callable returning the judge's raw response.
            gate: Gate that scores and classifies the parsed score set.
            repair: Optional async callable that fixes malformed judge JSON;
                tried once per evaluation.
        """
        self.judge = judge
        self.gate = gate
        self.repair = repair

    async def evaluate(self, artifact: A, prompt: str, attempt: int = 1) -> EvaluationOutcome:
        """Judge, parse, score and classify one generated scene.

        Returns:
            A ScoredEvaluation, or EvaluationUnavailable if the judge (or the
            JSON repair) could not be reached.

        Raises:
            JSONParseError: If the response stays unparsable after repair.
            MalformedScoreSetError: If the score set cannot be scored.
        """
        try:
            raw = await self.judge(artifact, prompt, attempt)
        except (LLMError, RetryExhaustedError) as e:
            logger.error(
                "Quality evaluation unavailable (attempt %d): %s", attempt, summarize_llm_error(e)
            )
            return EvaluationUnavailable(reason=str(e), error_type=type(e).__name__)

        try:
            evaluation = parse_evaluation(raw)
        except JSONParseError as e:
            if self.repair is None:
                raise
            logger.warning("Judge returned malformed JSON (attempt %d), repairing", attempt)
            try:
                repaired = await self.repair(raw, str(e))
            except (LLMError, RetryExhaustedError) as repair_error:
                logger.error("JSON repair failed: %s", summarize_llm_error(repair_error))
                return EvaluationUnavailable(
                    reason=f"Judge JSON unparsable and repair failed: {repair_error}",
                    error_type=type(repair_error).__name__,
                )
            evaluation = parse_evaluation(repaired)

        scored = self.gate.evaluate(evaluation)
        _log_evaluation(attempt, scored.score, scored.overall, evaluation)
        return scored


def _log_evaluation(attempt: int, score: float, overall: str, evaluation: SceneEvaluation) -> None:
    logger.info("Attempt %d evaluated: %s (%.1f%%)", attempt, overall, score * 100)
    for category, entry in evaluation.scores.items():
        logger.debug("  %s: %s (weight %.2f)", category, entry.rating, entry.weight)
    counts = evaluation.issue_counts()
    if evaluation.issues:
        logger.info(
            "  Issues: %d critical, %d major, %d minor",
            counts["critical"],
            counts["major"],
            counts["minor"],
        )
