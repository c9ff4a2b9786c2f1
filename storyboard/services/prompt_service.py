"""Prompt rewriting services backed by the LLM.

- PromptSanitizer: rewrites a prompt that tripped a safety filter
- PromptCorrector: applies a quality judge's prompt corrections
- JsonRepairer: asks the LLM to fix a judge response that is not valid JSON
"""

import logging

import ollama

from storyboard.memory.scene_quality import PromptCorrection, SceneEvaluation
from storyboard.prompts import PromptRegistry
from storyboard.services.llm_client import generate_text
from storyboard.settings import Settings
from storyboard.utils.exceptions import LLMError, RetryExhaustedError, summarize_llm_error
from storyboard.utils.retry import RetryController

logger = logging.getLogger(__name__)

_REACTIVE_INSTRUCTIONS = (
    "Read the error message carefully to understand what triggered the safety filter. "
    "Revise the original_prompt so it will not trigger safety filters."
)
_PROACTIVE_INSTRUCTIONS = (
    "Review the prompt for potential violations of AI safety guidelines. Pay close "
    "attention to depictions of celebrities, real people, violence, or other sensitive content."
)


class _LLMPromptService:
    """Shared wiring for services that send one templated prompt to the LLM."""

    def __init__(
        self,
        settings: Settings,
        client: ollama.AsyncClient,
        registry: PromptRegistry | None = None,
        controller: RetryController | None = None,
    ):
        self.settings = settings
        self.client = client
        self.registry = registry or PromptRegistry()
        self.controller = controller

    async def _generate(self, prompt: str, temperature: float) -> str:
        async def call(request: str) -> str:
            return await generate_text(self.client, self.settings.llm_model, request, temperature)

        if self.controller is None:
            return await call(prompt)
        return await self.controller.execute(call, prompt)


class PromptSanitizer(_LLMPromptService):
    """Rewrites prompts so they avoid safety-filter triggers."""

    async def sanitize(self, prompt: str, error_message: str | None = None) -> str:
        """Rewrite *prompt* to avoid safety-filter triggers.

        Args:
            prompt: The prompt to rewrite.
            error_message: The filter's rejection message, if the prompt was
                rejected. Without it the prompt is reviewed proactively.

        Returns:
            The sanitized prompt, or the original prompt when the LLM returns
            nothing or cannot be reached.
        """
        if error_message:
            logger.warning("Safety filter triggered, sanitizing prompt (%d chars)", len(prompt))
        else:
            logger.info("Proactively sanitizing prompt (%d chars)", len(prompt))

        request = self.registry.render(
            "sanitize_prompt",
            instructions=_REACTIVE_INSTRUCTIONS if error_message else _PROACTIVE_INSTRUCTIONS,
            original_prompt=prompt,
            error_message=error_message,
        )
        try:
            sanitized = await self._generate(request, self.settings.sanitizer_temperature)
        except (LLMError, RetryExhaustedError) as e:
            logger.warning("Failed to sanitize prompt, using original: %s", summarize_llm_error(e))
            return prompt

        if not sanitized:
            logger.warning("Sanitizer returned an empty prompt, using original")
            return prompt
        logger.info("Prompt sanitized: %d -> %d chars", len(prompt), len(sanitized))
        return sanitized


def format_corrections(corrections: list[PromptCorrection]) -> str:
    """Render prompt corrections as a numbered list for the correction prompt."""
    lines: list[str] = []
    for i, correction in enumerate(corrections, start=1):
        lines.append(f"{i}. Issue: {correction.issue_type or 'unspecified'}")
        lines.append(f"   Original section: {correction.original_prompt_section}")
        lines.append(f"   Corrected section: {correction.corrected_prompt_section}")
        if correction.reasoning:
            lines.append(f"   Reasoning: {correction.reasoning}")
    return "\n".join(lines)


class PromptCorrector(_LLMPromptService):
    """Applies a judge's prompt corrections to the generation prompt."""

    async def correct(
        self, prompt: str, evaluation: SceneEvaluation, scene_description: str = ""
    ) -> str:
        """Rewrite *prompt* with the evaluation's prompt corrections applied.

        Args:
            prompt: The prompt used for the evaluated attempt.
            evaluation: Judge evaluation carrying prompt corrections.
            scene_description: Short description of the scene for context.

        Returns:
            The corrected prompt, or *prompt* unchanged if the evaluation
            proposes no corrections.

        Raises:
            LLMError: If the LLM call fails or returns nothing.
            RetryExhaustedError: If every retried LLM call failed.
        """
        corrections = evaluation.prompt_corrections
        if not corrections:
            logger.info("No prompt corrections proposed, retrying with the same prompt")
            return prompt

        logger.info("Applying %d prompt correction(s)", len(corrections))
        request = self.registry.render(
            "apply_corrections",
            original_prompt=prompt,
            scene_description=scene_description or "(not provided)",
            corrections=format_corrections(corrections),
        )
        corrected = await self._generate(request, self.settings.correction_temperature)
        if not corrected:
            raise LLMError("LLM returned an empty corrected prompt")

        logger.info("Prompt corrected: %d -> %d chars", len(prompt), len(corrected))
        return corrected


class JsonRepairer(_LLMPromptService):
    """Asks the LLM to fix malformed JSON from the quality judge."""

    async def repair(self, text: str, error: str) -> str:
        """Return the LLM's repaired version of *text*.

        Raises:
            LLMError: If the LLM call fails.
            RetryExhaustedError: If every retried LLM call failed.
        """
        logger.info("Attempting LLM repair of malformed JSON (%d chars)", len(text))
        request = self.registry.render("repair_json", broken_json=text, error=error)
        return await self._generate(request, self.settings.json_repair_temperature)
