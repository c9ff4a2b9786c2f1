"""Safety-filter retry around scene generation.

When the generation backend rejects a prompt (ContentPolicyError), the next
attempt runs with a sanitized prompt. Any other failure retries with the
prompt unchanged.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from storyboard.memory.scene_quality import QualityConfig
from storyboard.utils.exceptions import ContentPolicyError
from storyboard.utils.retry import KEEP, Replace, RetryController, RetryDecision, RetryHook

logger = logging.getLogger(__name__)

# (prompt, error_message) -> sanitized prompt
type SanitizeFn = Callable[[str, str | None], Awaitable[str]]


def safety_retry_hook(sanitize: SanitizeFn, label: str = "") -> RetryHook[str]:
    """Build an on_retry hook that sanitizes prompts rejected by a safety filter.

    Args:
        sanitize: Async callable returning a rewritten prompt.
        label: Suffix for log messages, e.g. " (quality attempt 2)".

    Returns:
        A hook returning ``Replace(sanitized)`` for ContentPolicyError and
        ``KEEP`` for every other error.
    """

    async def hook(error: Exception, attempt: int, prompt: str) -> RetryDecision[str]:
        if isinstance(error, ContentPolicyError):
            logger.warning("Safety error on generation attempt %d%s, sanitizing", attempt, label)
            return Replace(await sanitize(prompt, str(error)))
        return KEEP

    return hook


async def generate_with_safety_retry[R](
    generate: Callable[[str], Awaitable[R]],
    prompt: str,
    *,
    sanitize: SanitizeFn,
    config: QualityConfig,
    controller: RetryController | None = None,
    label: str = "",
    cancel_event: asyncio.Event | None = None,
) -> R:
    """Run *generate* with up to ``config.safety_retries`` attempts.

    Args:
        generate: Async generation call taking the prompt.
        prompt: Prompt for the first attempt.
        sanitize: Used to rewrite the prompt after a safety rejection.
        config: Supplies the attempt budget.
        controller: Retry controller supplying the backoff schedule.
        label: Suffix for log messages.
        cancel_event: Stops retrying when set.

    Returns:
        The first successful generation result.

    Raises:
        RetryExhaustedError: If every generation attempt failed.
        OperationCancelledError: If cancel_event was set.
    """
    controller = controller or RetryController(name="scene generation")
    return await controller.execute(
        generate,
        prompt,
        {"max_retries": config.safety_retries},
        safety_retry_hook(sanitize, label),
        cancel_event=cancel_event,
    )
