"""Logging configuration for Storyboard Factory.

Every record carries a correlation id (normally the scene id) so the
interleaved output of scenes generated concurrently can be told apart. The id
lives in a ContextVar, so each asyncio task sees its own value.
"""

import logging
import sys
import time
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_LOG_FILE = Path(__file__).parent.parent.parent / "output" / "logs" / "storyboard.log"

# Third-party loggers that are chatty at INFO/DEBUG
NOISY_LOGGERS = ("httpx", "httpcore", "ollama", "asyncio")

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(correlation_id)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_MAX_LOG_BYTES = 10 * 1024 * 1024
_LOG_BACKUPS = 5

_correlation_id: ContextVar[str | None] = ContextVar("storyboard_correlation_id", default=None)


def current_correlation_id() -> str | None:
    """Correlation id of the current task, if one is set."""
    return _correlation_id.get()


class ContextFilter(logging.Filter):
    """Stamp each record with the current task's correlation id ("-" if none)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _correlation_id.get() or "-"
        return True


class FlushingRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler that flushes after every record."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        self.flush()


def _suppress_noisy_loggers() -> None:
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def reset_logger_suppression() -> None:
    """Restore third-party loggers to inherit the root level."""
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)


def _resolve_log_path(log_file: str | None) -> Path | None:
    if log_file == "default":
        return DEFAULT_LOG_FILE
    return Path(log_file) if log_file else None


def setup_logging(level: str = "INFO", log_file: str | None = "default") -> None:
    """Configure root logging for the application.

    Replaces any existing root handlers with a stdout handler and, unless
    disabled, a rotating file handler (10MB per file, 5 backups).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_file: File path for logs. "default" uses output/logs/storyboard.log,
            None disables file logging.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    context_filter = ContextFilter()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    log_path = _resolve_log_path(log_file)
    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            FlushingRotatingFileHandler(
                log_path, maxBytes=_MAX_LOG_BYTES, backupCount=_LOG_BACKUPS, encoding="utf-8"
            )
        )

    # Filter goes on the handlers so records from child loggers get it too
    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root_logger.addHandler(handler)

    if log_path:
        root_logger.info("Logging to file: %s (max 10MB, %d backups)", log_path, _LOG_BACKUPS)
    _suppress_noisy_loggers()


def set_log_level(level: str) -> None:
    """Change the level of the root logger and all of its handlers.

    Raises:
        ValueError: If the level name is not a known logging level.
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level: {level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers:
        handler.setLevel(log_level)
    root_logger.debug("Log level set to %s", level.upper())


@contextmanager
def log_context(correlation_id: str | None = None) -> Generator[str]:
    """Set the correlation id for log records emitted inside the block.

    Args:
        correlation_id: Id to use, typically the scene id. A short random id
            is generated when omitted.

    Yields:
        The correlation id in effect.

    Example:
        with log_context("scene-3"):
            logger.info("Evaluating scene")  # [scene-3] in the log line
    """
    if correlation_id is None:
        correlation_id = uuid.uuid4().hex[:8]
    token = _correlation_id.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id.reset(token)


@contextmanager
def log_performance(logger: logging.Logger, operation: str) -> Generator[None]:
    """Log the start, duration and outcome of an operation.

    Example:
        with log_performance(logger, "scene quality loop"):
            ...
    """
    start_time = time.perf_counter()
    logger.info("%s: Starting", operation)
    try:
        yield
    except Exception as e:
        logger.error(
            "%s: Failed after %.2fs - %s", operation, time.perf_counter() - start_time, e
        )
        raise
    logger.info("%s: Completed in %.2fs", operation, time.perf_counter() - start_time)
