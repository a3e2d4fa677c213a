"""Tests for idguard logging setup."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest
from rich.logging import RichHandler

from idguard.logging import ROOT_LOGGER_NAME, TRACE_LEVEL, init_logging


@pytest.fixture(autouse=True)
def _restore_logger() -> Iterator[None]:
    """Put the idguard logger back as it was."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


class TestTraceLevel:
    """Tests for the TRACE level registration."""

    def test_level_name(self) -> None:
        """TRACE is registered below DEBUG."""
        assert logging.getLevelName(TRACE_LEVEL) == "TRACE"
        assert TRACE_LEVEL < logging.DEBUG


class TestInitLogging:
    """Tests for init_logging()."""

    def test_rich_handler_by_default(self) -> None:
        """The default handler is a RichHandler."""
        logger = init_logging("DEBUG")

        assert logger.name == ROOT_LOGGER_NAME
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], RichHandler)
        assert logger.propagate is False

    def test_plain_handler(self) -> None:
        """rich=False installs a plain stream handler."""
        logger = init_logging("INFO", rich=False)

        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0], RichHandler)
        assert isinstance(logger.handlers[0], logging.StreamHandler)

    def test_trace_by_name(self) -> None:
        """TRACE is accepted as a level name."""
        logger = init_logging("trace")

        assert logger.level == TRACE_LEVEL
        assert logging.getLogger("idguard.http").isEnabledFor(TRACE_LEVEL)

    def test_numeric_level(self) -> None:
        """Numeric levels are used as is."""
        assert init_logging(logging.WARNING).level == logging.WARNING

    def test_repeated_init_does_not_duplicate(self) -> None:
        """Calling twice keeps a single handler."""
        init_logging("INFO")
        logger = init_logging("INFO")

        assert len(logger.handlers) == 1

    def test_unknown_level(self) -> None:
        """Unknown level names are rejected."""
        with pytest.raises(ValueError, match="Unknown log level"):
            init_logging("LOUD")
