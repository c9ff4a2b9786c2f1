"""Scene Quality Service - generate, judge and correct video scenes.

Implements the per-scene quality loop:
- Generation runs through the retry controller, sanitizing the prompt after
  safety-filter rejections
- A judge evaluates each generated scene; the quality gate scores and
  classifies the evaluation
- Below-accept scenes are regenerated from a prompt rewritten with the
  judge's corrections
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from storyboard.memory.scene_quality import (
    EvaluationOutcome,
    QualityConfig,
    QualityGate,
    SceneEvaluation,
)
from storyboard.services.prompt_service import JsonRepairer, PromptCorrector, PromptSanitizer
from storyboard.services.scene_quality_service._evaluation import (
    JudgeFn,
    RepairFn,
    SceneEvaluator,
    parse_evaluation,
)
from storyboard.services.scene_quality_service._quality_loop import (
    AttemptRecord,
    QualityLoopResult,
    quality_retry_loop,
)
from storyboard.services.scene_quality_service._safety import (
    SanitizeFn,
    generate_with_safety_retry,
    safety_retry_hook,
)
from storyboard.settings import Settings
from storyboard.utils.logging_config import log_context, log_performance
from storyboard.utils.retry import RetryConfig, RetryController

logger = logging.getLogger(__name__)


class SceneQualityService:
    """Generates scenes that pass the quality gate.

    The generation backend and the judge are passed per call; the prompt
    services, gate and retry schedule are injected once.
    """

    def __init__(
        self,
        settings: Settings,
        sanitizer: PromptSanitizer,
        corrector: PromptCorrector,
        repairer: JsonRepairer | None = None,
        controller: RetryController | None = None,
    ):
        """Create the service.

        Args:
            settings: Supplies the quality thresholds, attempt delay and
                unavailable-evaluation policy.
            sanitizer: Rewrites prompts rejected by a safety filter.
            corrector: Applies the judge's prompt corrections.
            repairer: Repairs malformed judge JSON; omit to fail on it.
            controller: Retry controller for generation calls. Defaults to
                one built from the settings' retry schedule.
        """
        self.settings = settings
        self.config = QualityConfig.from_settings(settings)
        self.gate = QualityGate(self.config)
        self.sanitizer = sanitizer
        self.corrector = corrector
        self.repairer = repairer
        self.controller = controller or RetryController(
            RetryConfig.from_settings(settings), name="scene generation"
        )
        logger.debug(
            "SceneQualityService initialized: accept=%.2f, max_attempts=%d, safety_retries=%d",
            self.config.accept_threshold,
            self.config.max_attempts,
            self.config.safety_retries,
        )

    def evaluator[A](self, judge: JudgeFn[A]) -> SceneEvaluator[A]:
        """Build an evaluator for *judge* using this service's gate and repairer."""
        repair: RepairFn | None = self.repairer.repair if self.repairer else None
        return SceneEvaluator(judge, self.gate, repair)

    async def generate_scene[A](
        self,
        prompt: str,
        generate: Callable[[str], Awaitable[A]],
        judge: JudgeFn[A],
        *,
        scene_description: str = "",
        scene_id: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> QualityLoopResult[A]:
        """Generate one scene through the quality loop.

        Args:
            prompt: Initial generation prompt.
            generate: Async generation backend taking a prompt. A
                ContentPolicyError from it triggers prompt sanitizing.
            judge: Async judge returning the raw evaluation response for
                ``(artifact, prompt, attempt)``.
            scene_description: Context passed to the prompt corrector.
            scene_id: Correlation id for the scene's log lines.
            cancel_event: Stops the loop when set.

        Returns:
            The loop result; ``warning`` is set when no attempt was accepted.

        Raises:
            SceneGenerationError: If no acceptable scene could be produced.
            OperationCancelledError: If cancel_event was set.
        """
        evaluator = self.evaluator(judge)

        async def generate_attempt(current_prompt: str, attempt: int) -> A:
            return await generate_with_safety_retry(
                generate,
                current_prompt,
                sanitize=self.sanitizer.sanitize,
                config=self.config,
                controller=self.controller,
                label=f" (quality attempt {attempt})",
                cancel_event=cancel_event,
            )

        async def evaluate(artifact: A, current_prompt: str, attempt: int) -> EvaluationOutcome:
            return await evaluator.evaluate(artifact, current_prompt, attempt)

        async def correct(current_prompt: str, evaluation: SceneEvaluation) -> str:
            return await self.corrector.correct(current_prompt, evaluation, scene_description)

        with log_context(scene_id), log_performance(logger, "scene quality loop"):
            return await quality_retry_loop(
                generate=generate_attempt,
                evaluate=evaluate,
                correct=correct,
                prompt=prompt,
                config=self.config,
                attempt_delay_s=self.settings.quality_attempt_delay_seconds,
                unavailable_policy=self.settings.quality_unavailable_policy,
                cancel_event=cancel_event,
            )


__all__ = [
    "AttemptRecord",
    "JudgeFn",
    "QualityLoopResult",
    "RepairFn",
    "SanitizeFn",
    "SceneEvaluator",
    "SceneQualityService",
    "generate_with_safety_retry",
    "parse_evaluation",
    "quality_retry_loop",
    "safety_retry_hook",
]
