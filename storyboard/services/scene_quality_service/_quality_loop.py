"""Generate-evaluate-correct loop for a single scene.

Each attempt generates a scene from the current prompt, has it evaluated and
scored, and either returns it (ACCEPT) or rewrites the prompt from the
judge's corrections before trying again. The best-scoring attempt is kept so
a scene that never reaches ACCEPT can still be admitted if it clears
``fail_threshold``.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from storyboard.memory.scene_quality import (
    EvaluationOutcome,
    EvaluationUnavailable,
    OverallRating,
    QualityConfig,
    SceneEvaluation,
    ScoredEvaluation,
)
from storyboard.settings import UnavailablePolicy
from storyboard.utils.exceptions import (
    OperationCancelledError,
    SceneGenerationError,
    StoryboardError,
    summarize_llm_error,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AttemptRecord:
    """What happened on one quality attempt."""

    attempt: int
    prompt: str
    score: float | None = None
    overall: OverallRating | None = None
    error: str | None = None
    unavailable: bool = False


@dataclass
class QualityLoopResult[R]:
    """Outcome of the quality loop for one scene.

    Attributes:
        artifact: The returned generation result.
        attempts: Number of quality attempts made.
        score: Score of the returned artifact, or None if it was not evaluated.
        evaluation: Scored evaluation of the returned artifact, if any.
        prompt: Prompt that produced the returned artifact.
        warning: Set when the artifact is returned without an ACCEPT rating.
        history: One record per attempt.
    """

    artifact: R
    attempts: int
    score: float | None
    evaluation: ScoredEvaluation | None
    prompt: str
    warning: str | None = None
    history: list[AttemptRecord] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        """True when the returned artifact was rated ACCEPT."""
        return self.evaluation is not None and self.evaluation.accepted


@dataclass
class _Best[R]:
    artifact: R
    evaluation: ScoredEvaluation
    prompt: str


async def _pause(delay_s: float, cancel_event: asyncio.Event | None) -> None:
    """Wait between attempts, stopping early if cancelled."""
    if cancel_event is None:
        await asyncio.sleep(delay_s)
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay_s)
    except TimeoutError:
        return
    raise OperationCancelledError("Scene quality loop cancelled")


async def quality_retry_loop[R](
    *,
    generate: Callable[[str, int], Awaitable[R]],
    evaluate: Callable[[R, str, int], Awaitable[EvaluationOutcome]],
    correct: Callable[[str, SceneEvaluation], Awaitable[str]],
    prompt: str,
    config: QualityConfig,
    attempt_delay_s: float = 3.0,
    unavailable_policy: UnavailablePolicy = "retry",
    cancel_event: asyncio.Event | None = None,
) -> QualityLoopResult[R]:
    """Generate a scene until it is accepted or the attempt budget is spent.

    Args:
        generate: Generates a scene from (prompt, attempt).
        evaluate: Evaluates (artifact, prompt, attempt).
        correct: Rewrites the prompt from a below-accept evaluation.
        prompt: Prompt for the first attempt.
        config: Thresholds and attempt budget. When disabled, the scene is
            generated once and returned unevaluated.
        attempt_delay_s: Pause between attempts, in seconds.
        unavailable_policy: What to do when an evaluation is unavailable:
            ``retry`` the attempt, ``accept`` the artifact unevaluated, or
            ``raise`` SceneGenerationError.
        cancel_event: Stops the loop between attempts when set.

    Returns:
        The accepted attempt, or the best attempt with a warning when no
        attempt was accepted but the best scored at least ``fail_threshold``.

    Raises:
        SceneGenerationError: If no attempt is good enough, or an evaluation
            was unavailable under the ``raise`` policy.
        OperationCancelledError: If cancel_event was set.
    """
    if not config.enabled:
        logger.info("Quality checking disabled, generating once")
        artifact = await generate(prompt, 1)
        return QualityLoopResult(
            artifact=artifact,
            attempts=1,
            score=None,
            evaluation=None,
            prompt=prompt,
            history=[AttemptRecord(attempt=1, prompt=prompt)],
        )

    history: list[AttemptRecord] = []
    best: _Best[R] | None = None
    current_prompt = prompt
    attempt = 0

    for attempt in range(1, config.max_attempts + 1):
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError("Scene quality loop cancelled", attempts=attempt - 1)
        is_last = attempt >= config.max_attempts

        try:
            artifact = await generate(current_prompt, attempt)
            outcome = await evaluate(artifact, current_prompt, attempt)
        except OperationCancelledError:
            raise
        except StoryboardError as e:
            logger.error("Quality attempt %d failed: %s", attempt, summarize_llm_error(e))
            history.append(AttemptRecord(attempt=attempt, prompt=current_prompt, error=str(e)))
            if not is_last:
                await _pause(attempt_delay_s, cancel_event)
            continue

        if isinstance(outcome, EvaluationUnavailable):
            history.append(
                AttemptRecord(
                    attempt=attempt, prompt=current_prompt, error=outcome.reason, unavailable=True
                )
            )
            if unavailable_policy == "raise":
                raise SceneGenerationError(
                    f"Scene could not be evaluated on attempt {attempt}: {outcome.reason}",
                    attempts=attempt,
                    best_score=best.evaluation.score if best else None,
                )
            if unavailable_policy == "accept":
                warning = f"Scene returned unevaluated: {outcome.reason}"
                logger.warning("Scene returned unevaluated: %s", outcome.reason)
                return QualityLoopResult(
                    artifact=artifact,
                    attempts=attempt,
                    score=None,
                    evaluation=None,
                    prompt=current_prompt,
                    warning=warning,
                    history=history,
                )
            logger.warning("Evaluation unavailable on attempt %d, retrying", attempt)
            if not is_last:
                await _pause(attempt_delay_s, cancel_event)
            continue

        scored = outcome
        history.append(
            AttemptRecord(
                attempt=attempt,
                prompt=current_prompt,
                score=scored.score,
                overall=scored.overall,
            )
        )
        if best is None or scored.score > best.evaluation.score:
            best = _Best(artifact=artifact, evaluation=scored, prompt=current_prompt)

        logger.info(
            "Quality attempt %d/%d: %.1f%% (%s)",
            attempt,
            config.max_attempts,
            scored.score * 100,
            scored.overall,
        )

        if scored.accepted:
            logger.info("Quality acceptable (%.1f%%)", scored.score * 100)
            return QualityLoopResult(
                artifact=artifact,
                attempts=attempt,
                score=scored.score,
                evaluation=scored,
                prompt=current_prompt,
                history=history,
            )

        if is_last:
            break

        try:
            current_prompt = await correct(current_prompt, scored.evaluation)
        except OperationCancelledError:
            raise
        except StoryboardError as e:
            logger.warning(
                "Failed to apply prompt corrections, keeping previous prompt: %s",
                summarize_llm_error(e),
            )
        await _pause(attempt_delay_s, cancel_event)

    if (
        best is not None
        and best.evaluation.score > 0
        and best.evaluation.score >= config.fail_threshold
    ):
        warning = f"Quality below threshold after {attempt} attempts"
        logger.warning(
            "Using best attempt: %.1f%% (threshold: %.0f%%)",
            best.evaluation.score * 100,
            config.accept_threshold * 100,
        )
        return QualityLoopResult(
            artifact=best.artifact,
            attempts=attempt,
            score=best.evaluation.score,
            evaluation=best.evaluation,
            prompt=best.prompt,
            warning=warning,
            history=history,
        )

    best_score = best.evaluation.score if best else None
    logger.error(
        "No acceptable scene after %d attempts (best score: %s)",
        attempt,
        f"{best_score:.3f}" if best_score is not None else "none",
    )
    raise SceneGenerationError(
        f"Failed to generate acceptable scene after {attempt} attempts",
        attempts=attempt,
        best_score=best_score,
    )
