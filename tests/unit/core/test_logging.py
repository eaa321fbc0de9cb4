# tests/unit/core/test_logging.py
"""Tests for diagnostic logging configuration."""

import logging
from collections.abc import Iterator

import pytest
import structlog

from lumberjack.core.logging import configure_logging


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    lumberjack_logger = logging.getLogger("lumberjack")
    saved = (list(lumberjack_logger.handlers), lumberjack_logger.level, lumberjack_logger.propagate)
    yield
    lumberjack_logger.handlers, lumberjack_logger.level, lumberjack_logger.propagate = saved
    structlog.reset_defaults()


def test_configures_only_lumberjack_namespace() -> None:
    root_handlers = list(logging.getLogger().handlers)

    configure_logging(level="debug")

    lumberjack_logger = logging.getLogger("lumberjack")
    assert lumberjack_logger.level == logging.DEBUG
    assert lumberjack_logger.propagate is False
    assert len(lumberjack_logger.handlers) == 1
    assert logging.getLogger().handlers == root_handlers


def test_noisy_loggers_held_at_warning() -> None:
    configure_logging(level="DEBUG")
    assert logging.getLogger("httpx").level == logging.WARNING


def test_json_output_renders_events(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(json_output=True, level="INFO")

    structlog.get_logger("lumberjack.test").info("Exported batch", count=3)

    err = capsys.readouterr().err
    assert '"event": "Exported batch"' in err
    assert '"count": 3' in err
