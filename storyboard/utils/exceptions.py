"""Centralized exception hierarchy for Storyboard Factory.

Exception Hierarchy:

    StoryboardError (base for all application errors)
    ├── LLMError (LLM/Ollama related errors)
    │   ├── LLMConnectionError (connection failures)
    │   └── ContentPolicyError (request rejected by a safety filter)
    ├── RetryExhaustedError (every attempt of a retried call failed)
    ├── OperationCancelledError (retry loop cancelled from outside)
    ├── ConfigError (configuration parsing/validation failures)
    │   └── InvalidConfigError (threshold or weight violates its constraints)
    ├── ValidationError (validation failures)
    │   └── MalformedScoreSetError (score set cannot be scored)
    ├── JSONParseError (JSON parsing failures)
    └── SceneGenerationError (no acceptable scene after all attempts)

Usage:
    from storyboard.utils.exceptions import RetryExhaustedError

    try:
        video = await controller.execute(generate, prompt)
    except RetryExhaustedError as e:
        logger.error("Generation failed after %d attempts", e.attempts)
"""

import logging

logger = logging.getLogger(__name__)


def summarize_llm_error(error: BaseException, max_length: int = 300) -> str:
    """Create a concise summary of an LLM-related exception for logging.

    Provider errors can carry whole response payloads in their message.
    This keeps log lines to the actionable part.

    Args:
        error: The exception to summarize.
        max_length: Maximum length of the summary string.

    Returns:
        A concise error summary suitable for log messages.
    """
    error_type = type(error).__name__
    msg = str(error)

    if len(msg) <= max_length:
        return f"{error_type}: {msg}" if msg else error_type

    # RetryExhaustedError carries its attempt count and the last underlying error
    attempts = getattr(error, "attempts", None)
    last_error = getattr(error, "last_error", None)

    if attempts is not None:
        parts = [f"{error_type}: {attempts} attempt(s) failed"]
        if last_error is not None:
            last_msg = str(last_error)
            if len(last_msg) > 150:
                last_msg = last_msg[:150] + "..."
            parts.append(f"last error: {last_msg}")
        return "; ".join(parts)

    return f"{error_type}: {msg[:max_length]}... [{len(msg) - max_length} chars truncated]"


class StoryboardError(Exception):
    """Base exception for all Storyboard Factory errors.

    All custom exceptions inherit from this class so callers can catch
    every application-specific error with a single except clause.
    """

    pass


class LLMError(StoryboardError):
    """Base exception for LLM-related errors."""

    pass


class LLMConnectionError(LLMError):
    """Raised when the LLM server cannot be reached or times out."""

    pass


class ContentPolicyError(LLMError):
    """Raised when a generation request is rejected by a safety filter.

    The message carries the provider's explanation (including any safety
    error codes) so a sanitizer can use it to rewrite the prompt.

    Attributes:
        codes: Provider safety error codes, if any were reported.
    """

    def __init__(self, message: str, codes: list[str] | None = None):
        """Initialize ContentPolicyError.

        Args:
            message: Provider message describing the rejection.
            codes: Safety error codes reported by the provider.
        """
        super().__init__(message)
        self.codes = codes or []


class RetryExhaustedError(StoryboardError):
    """Raised when every attempt of a retried call has failed.

    This is the single stable error kind surfaced by the retry controller,
    whatever the underlying failure was. The last underlying error is kept
    for diagnostics and is also chained as ``__cause__``.

    Attributes:
        attempts: Number of times the call was invoked (0 for a zero budget).
        last_error: The error raised by the final attempt, or None.
    """

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        last_error: BaseException | None = None,
    ):
        """Initialize RetryExhaustedError.

        Args:
            message: Human-readable error message.
            attempts: Number of invocations made before giving up.
            last_error: Error raised by the final invocation.
        """
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error
        logger.debug(
            "RetryExhaustedError initialized: attempts=%d, last_error=%s",
            attempts,
            type(last_error).__name__ if last_error is not None else None,
        )


class OperationCancelledError(StoryboardError):
    """Raised when a retry sequence is cancelled through its cancel event.

    Attributes:
        attempts: Number of invocations made before cancellation.
    """

    def __init__(self, message: str, attempts: int = 0):
        """Initialize OperationCancelledError.

        Args:
            message: Human-readable error message.
            attempts: Number of invocations made before cancellation.
        """
        super().__init__(message)
        self.attempts = attempts


class ConfigError(StoryboardError):
    """Raised when configuration parsing or validation fails.

    This covers settings files and environment overrides that cannot
    be loaded or parsed.
    """

    pass


class InvalidConfigError(ConfigError):
    """Raised when a threshold or weight violates its constraints.

    Surfaced at construction time: a non-finite number, a value outside
    its range, or thresholds that are not in descending order.

    Not a ValueError subclass, so pydantic validators let it propagate
    as-is instead of folding it into a pydantic ValidationError.

    Attributes:
        field_name: The offending field, if known.
    """

    def __init__(self, message: str, field_name: str | None = None):
        """Initialize InvalidConfigError.

        Args:
            message: Human-readable error message.
            field_name: Name of the offending field.
        """
        super().__init__(message)
        self.field_name = field_name


class ValidationError(StoryboardError):
    """Base exception for validation errors."""

    pass


class MalformedScoreSetError(ValidationError):
    """Raised when a score set cannot be scored.

    This is a data-contract violation by whoever produced the score set:
    an unknown rating value, or no categories at all.

    Attributes:
        category: The offending category name, if known.
        rating: The unrecognized rating value, if any.
    """

    def __init__(self, message: str, category: str | None = None, rating: object = None):
        """Initialize MalformedScoreSetError.

        Args:
            message: Human-readable error message.
            category: Name of the category that failed.
            rating: The rating value that was not recognized.
        """
        super().__init__(message)
        self.category = category
        self.rating = rating


class JSONParseError(StoryboardError):
    """Raised when JSON extraction or parsing fails.

    Attributes:
        response_preview: First 500 chars of the raw response for debugging.
        expected_type: The expected type (dict, list, or model class name).
    """

    def __init__(
        self,
        message: str,
        response_preview: str | None = None,
        expected_type: str | None = None,
    ):
        """Initialize JSONParseError with parsing context.

        Args:
            message: Human-readable error message describing the parse failure.
            response_preview: Preview of the raw response that failed to parse.
            expected_type: The expected JSON type or model class name.
        """
        super().__init__(message)
        self.response_preview = response_preview
        self.expected_type = expected_type


class SceneGenerationError(StoryboardError):
    """Raised when no usable scene could be produced after all attempts.

    Attributes:
        attempts: Number of quality attempts made.
        best_score: Best score seen across attempts, or None if nothing was scored.
    """

    def __init__(self, message: str, attempts: int = 0, best_score: float | None = None):
        """Initialize SceneGenerationError.

        Args:
            message: Human-readable error message.
            attempts: Number of quality attempts made.
            best_score: Best score seen, if any attempt was scored.
        """
        super().__init__(message)
        self.attempts = attempts
        self.best_score = best_score
