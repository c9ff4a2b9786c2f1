"""Tests for utils/logging_config.py."""

import asyncio
import logging

import pytest

from storyboard.utils.logging_config import (
    NOISY_LOGGERS,
    ContextFilter,
    FlushingRotatingFileHandler,
    _suppress_noisy_loggers,
    current_correlation_id,
    log_context,
    log_performance,
    reset_logger_suppression,
    set_log_level,
    setup_logging,
)


def make_record() -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg="Test message",
        args=(),
        exc_info=None,
    )


@pytest.fixture
def restore_root_logger():
    """Restore the root logger's handlers and level after a test."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield root_logger
    for handler in root_logger.handlers[:]:
        if handler not in handlers:
            root_logger.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root_logger.handlers:
            root_logger.addHandler(handler)
    root_logger.setLevel(level)


class TestContextFilter:
    """Tests for ContextFilter class."""

    def test_filter_with_correlation_id(self):
        """Test filter stamps the active correlation id."""
        record = make_record()
        with log_context("scene-3"):
            assert ContextFilter().filter(record) is True
        assert record.correlation_id == "scene-3"  # type: ignore[attr-defined]

    def test_filter_without_correlation_id(self):
        """Test filter uses dash when no correlation id is set."""
        record = make_record()

        assert ContextFilter().filter(record) is True
        assert record.correlation_id == "-"  # type: ignore[attr-defined]


class TestLogContext:
    """Tests for log_context."""

    def test_sets_and_restores_correlation_id(self):
        """Test the id is active inside the block and restored after."""
        with log_context("outer"):
            with log_context("scene-7") as cid:
                assert cid == "scene-7"
                assert current_correlation_id() == "scene-7"
            assert current_correlation_id() == "outer"
        assert current_correlation_id() is None

    def test_generates_id_when_missing(self):
        """Test an 8-character id is generated when none is given."""
        with log_context() as cid:
            assert len(cid) == 8
            assert current_correlation_id() == cid

    def test_restores_on_exception(self):
        """Test the previous id is restored when the block raises."""
        with pytest.raises(RuntimeError), log_context("boom"):
            raise RuntimeError("fail")
        assert current_correlation_id() is None

    @pytest.mark.asyncio
    async def test_concurrent_tasks_keep_their_own_id(self):
        """Test concurrent scenes do not overwrite each other's id."""

        async def scene(scene_id: str) -> str | None:
            with log_context(scene_id):
                await asyncio.sleep(0)
                return current_correlation_id()

        results = await asyncio.gather(scene("scene-1"), scene("scene-2"))

        assert results == ["scene-1", "scene-2"]


class TestLogPerformance:
    """Tests for log_performance."""

    def test_logs_start_and_completion(self, caplog):
        """Test start and completion messages are logged."""
        logger = logging.getLogger("test.performance")
        with caplog.at_level(logging.INFO, logger="test.performance"):
            with log_performance(logger, "scene quality loop"):
                pass
        messages = [r.getMessage() for r in caplog.records]
        assert "scene quality loop: Starting" in messages
        assert any(m.startswith("scene quality loop: Completed in") for m in messages)

    def test_logs_failure_and_reraises(self, caplog):
        """Test failures are logged and re-raised."""
        logger = logging.getLogger("test.performance")
        with caplog.at_level(logging.INFO, logger="test.performance"):
            with pytest.raises(ValueError), log_performance(logger, "op"):
                raise ValueError("bad")
        assert any("op: Failed after" in r.getMessage() for r in caplog.records)


class TestSetupLogging:
    """Tests for setup_logging and set_log_level."""

    def test_setup_without_file(self, restore_root_logger):
        """Test only a console handler is installed when file logging is off."""
        setup_logging("DEBUG", log_file=None)

        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1
        assert not isinstance(restore_root_logger.handlers[0], logging.FileHandler)

    def test_setup_with_file(self, restore_root_logger, tmp_path):
        """Test a flushing rotating file handler is added for a custom path."""
        log_file = tmp_path / "logs" / "test.log"
        setup_logging("INFO", log_file=str(log_file))

        file_handlers = [
            h for h in restore_root_logger.handlers if isinstance(h, FlushingRotatingFileHandler)
        ]
        assert len(file_handlers) == 1
        assert log_file.parent.exists()
        logging.getLogger("storyboard.test").info("hello file")
        assert "hello file" in log_file.read_text(encoding="utf-8")

    def test_setup_suppresses_noisy_loggers(self, restore_root_logger):
        """Test third-party loggers are raised to WARNING."""
        setup_logging("DEBUG", log_file=None)
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_set_log_level_updates_handlers(self, restore_root_logger):
        """Test set_log_level changes the root logger and its handlers."""
        setup_logging("INFO", log_file=None)
        set_log_level("warning")

        assert restore_root_logger.level == logging.WARNING
        assert all(h.level == logging.WARNING for h in restore_root_logger.handlers)

    def test_set_log_level_rejects_unknown(self):
        """Test an unknown level name raises ValueError."""
        with pytest.raises(ValueError, match="Unknown log level"):
            set_log_level("LOUD")


class TestLoggerSuppression:
    """Tests for noisy logger suppression."""

    def test_suppress_and_reset(self):
        """Test suppression can be undone."""
        _suppress_noisy_loggers()
        assert logging.getLogger("httpx").level == logging.WARNING

        reset_logger_suppression()
        assert logging.getLogger("httpx").level == logging.NOTSET
