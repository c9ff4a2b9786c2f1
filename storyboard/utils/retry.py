"""Retry controller for async LLM and media-generation calls.

Wraps an arbitrary async unit of work with bounded retries, exponential
backoff, and an optional hook invoked between attempts that may replace the
parameters of the next attempt (e.g. to sanitize a prompt that tripped a
safety filter).

Each call to :meth:`RetryController.execute` owns its own attempt counter,
parameters and delay, so one controller can serve concurrent calls.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field

from storyboard.utils.exceptions import (
    OperationCancelledError,
    RetryExhaustedError,
    summarize_llm_error,
)

logger = logging.getLogger(__name__)


class RetryConfig(BaseModel):
    """Retry budget and backoff schedule for a retried call."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: int = Field(
        default=3, ge=0, description="Maximum number of invocations (0 means none)"
    )
    initial_delay_ms: int = Field(
        default=1000, ge=0, description="Delay before the second attempt, in milliseconds"
    )
    backoff_factor: float = Field(
        default=2.0,
        ge=1.0,
        allow_inf_nan=False,
        description="Multiplier applied to the delay after each retry",
    )
    max_delay_ms: int | None = Field(
        default=None, ge=0, description="Ceiling for a single delay (None = unbounded)"
    )

    def merged(self, overrides: RetryConfig | Mapping[str, Any] | None) -> RetryConfig:
        """Return a config with *overrides* applied over this one.

        Args:
            overrides: A full config (used as-is), a mapping of fields to
                override, or None to keep this config.

        Returns:
            The effective, validated configuration.
        """
        if overrides is None:
            return self
        if isinstance(overrides, RetryConfig):
            return overrides
        return RetryConfig.model_validate({**self.model_dump(), **dict(overrides)})

    def capped(self, delay_ms: float) -> float:
        """Apply the max_delay_ms ceiling to a delay."""
        if self.max_delay_ms is None:
            return delay_ms
        return min(delay_ms, float(self.max_delay_ms))

    @classmethod
    def from_settings(cls, settings: Any) -> RetryConfig:
        """Build a RetryConfig from a Settings-like object.

        Args:
            settings: Object exposing retry_max_retries, retry_initial_delay_ms,
                retry_backoff_factor and retry_max_delay_ms.

        Returns:
            RetryConfig populated from the settings.
        """
        return cls(
            max_retries=settings.retry_max_retries,
            initial_delay_ms=settings.retry_initial_delay_ms,
            backoff_factor=settings.retry_backoff_factor,
            max_delay_ms=settings.retry_max_delay_ms,
        )


@dataclass(frozen=True, slots=True)
class Replace[P]:
    """Hook outcome: use ``value`` verbatim as the next attempt's parameters."""

    value: P


class Keep:
    """Hook outcome: reuse the previous attempt's parameters unchanged."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "KEEP"


KEEP: Final = Keep()

type RetryDecision[P] = Replace[P] | Keep | None
type RetryHook[P] = Callable[[Exception, int, P], Awaitable[RetryDecision[P]]]


@dataclass(frozen=True, slots=True)
class Attempt[P]:
    """One attempt of a retried call.

    Attributes:
        number: 1-based attempt index.
        params: Parameters passed to the call on this attempt.
        delay_ms: Delay to wait before the next attempt if this one fails.
    """

    number: int
    params: P
    delay_ms: float

    def next(self, params: P, backoff_factor: float) -> Attempt[P]:
        """Create the following attempt with grown delay."""
        return Attempt(
            number=self.number + 1,
            params=params,
            delay_ms=self.delay_ms * backoff_factor,
        )


def _resolve_decision[P](decision: RetryDecision[P], current: P) -> P:
    """Turn a hook outcome into the next attempt's parameters."""
    if isinstance(decision, Replace):
        return decision.value
    if decision is None or isinstance(decision, Keep):
        return current
    raise TypeError(
        f"on_retry must return Replace(...), KEEP or None, got {type(decision).__name__}"
    )


@dataclass
class RetryController:
    """Runs async calls with bounded retries and exponential backoff.

    Construct once with the default schedule and inject it where calls are
    made; per-call overrides are merged over the defaults.

    Attributes:
        config: Default retry schedule.
        name: Label used in log messages.
    """

    config: RetryConfig = field(default_factory=RetryConfig)
    name: str = "call"

    async def execute[P, R](
        self,
        call: Callable[[P], Awaitable[R]],
        initial_params: P,
        config: RetryConfig | Mapping[str, Any] | None = None,
        on_retry: RetryHook[P] | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> R:
        """Invoke *call* until it succeeds or the retry budget is spent.

        Args:
            call: Async unit of work taking the current parameters.
            initial_params: Parameters for the first attempt.
            config: Overrides merged over this controller's config.
            on_retry: Hook awaited after a failed attempt (never after the last
                one) with ``(error, attempt_number, current_params)``. Return
                ``Replace(value)`` to change the next attempt's parameters,
                ``KEEP`` or None to reuse them. Exceptions it raises propagate.
            cancel_event: When set, the loop stops before the next attempt or
                during a backoff wait.

        Returns:
            The result of the first successful invocation.

        Raises:
            RetryExhaustedError: If every attempt failed, or max_retries is 0.
            OperationCancelledError: If cancel_event was set.
        """
        cfg = self.config.merged(config)

        if cfg.max_retries == 0:
            logger.warning("%s: retry budget is 0, call not attempted", self.name)
            raise RetryExhaustedError(
                f"{self.name} failed: a retry budget of 0 allows no attempts",
                attempts=0,
            )

        attempt: Attempt[P] = Attempt(
            number=1, params=initial_params, delay_ms=float(cfg.initial_delay_ms)
        )

        while True:
            _raise_if_cancelled(cancel_event, self.name, attempt.number - 1)
            try:
                result = await call(attempt.params)
            except Exception as e:
                if attempt.number >= cfg.max_retries:
                    logger.error(
                        "%s failed after %d attempt(s): %s",
                        self.name,
                        attempt.number,
                        summarize_llm_error(e),
                    )
                    raise RetryExhaustedError(
                        f"{self.name} failed after {attempt.number} attempt(s)",
                        attempts=attempt.number,
                        last_error=e,
                    ) from e

                next_params = attempt.params
                if on_retry is not None:
                    decision = await on_retry(e, attempt.number, attempt.params)
                    next_params = _resolve_decision(decision, attempt.params)
                    if isinstance(decision, Replace):
                        logger.debug(
                            "%s: on_retry replaced parameters after attempt %d",
                            self.name,
                            attempt.number,
                        )

                delay_ms = cfg.capped(attempt.delay_ms)
                logger.warning(
                    "%s attempt %d/%d failed (%s), retrying in %.0fms",
                    self.name,
                    attempt.number,
                    cfg.max_retries,
                    summarize_llm_error(e),
                    delay_ms,
                )
                await _wait(delay_ms, cancel_event, self.name, attempt.number)
                attempt = attempt.next(next_params, cfg.backoff_factor)
            else:
                if attempt.number > 1:
                    logger.info(
                        "%s succeeded on attempt %d/%d",
                        self.name,
                        attempt.number,
                        cfg.max_retries,
                    )
                return result


def _raise_if_cancelled(cancel_event: asyncio.Event | None, name: str, attempts: int) -> None:
    """Raise OperationCancelledError if the cancel event is set."""
    if cancel_event is not None and cancel_event.is_set():
        logger.info("%s cancelled after %d attempt(s)", name, attempts)
        raise OperationCancelledError(f"{name} cancelled", attempts=attempts)


async def _wait(
    delay_ms: float, cancel_event: asyncio.Event | None, name: str, attempts: int
) -> None:
    """Suspend for *delay_ms*, returning early with an error on cancellation."""
    delay_s = delay_ms / 1000
    if cancel_event is None:
        await asyncio.sleep(delay_s)
        return

    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay_s)
    except TimeoutError:
        return
    logger.info("%s cancelled during backoff after %d attempt(s)", name, attempts)
    raise OperationCancelledError(f"{name} cancelled", attempts=attempts)


async def retry_call[P, R](
    call: Callable[[P], Awaitable[R]],
    initial_params: P,
    config: RetryConfig | Mapping[str, Any] | None = None,
    on_retry: RetryHook[P] | None = None,
    *,
    cancel_event: asyncio.Event | None = None,
) -> R:
    """Run *call* through a default RetryController.

    Shorthand for ``RetryController().execute(...)``; see
    :meth:`RetryController.execute` for the semantics.
    """
    return await RetryController().execute(
        call, initial_params, config, on_retry, cancel_event=cancel_event
    )
