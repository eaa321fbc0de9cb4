# src/lumberjack/tracking/capture.py
"""Forward stdlib logging records into the client.

LoggingCapture installs a handler on a logger (the root logger by default)
at ``start()`` and removes exactly that handler at ``stop()``, leaving the
host's handlers untouched. Records from lumberjack itself and from the HTTP
stack used for export are never forwarded, so shipping telemetry cannot
feed back into more telemetry.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from lumberjack.contracts.enums import LogLevel

IGNORED_LOGGER_PREFIXES: tuple[str, ...] = ("lumberjack", "httpx", "httpcore", "hpack")


def level_for_record(levelno: int) -> LogLevel:
    if levelno >= logging.CRITICAL:
        return LogLevel.FATAL
    if levelno >= logging.ERROR:
        return LogLevel.ERROR
    if levelno >= logging.WARNING:
        return LogLevel.WARN
    if levelno >= logging.INFO:
        return LogLevel.INFO
    if levelno >= logging.DEBUG:
        return LogLevel.DEBUG
    return LogLevel.TRACE


class _ForwardingHandler(logging.Handler):
    def __init__(self, sink: Callable[[logging.LogRecord], None], level: int) -> None:
        super().__init__(level)
        self._sink = sink
        self._local = threading.local()

    def emit(self, record: logging.LogRecord) -> None:
        if record.name.startswith(IGNORED_LOGGER_PREFIXES):
            return
        # A sink that logs must not re-enter itself
        if getattr(self._local, "active", False):
            return
        self._local.active = True
        try:
            self._sink(record)
        except Exception:
            self.handleError(record)
        finally:
            self._local.active = False


class LoggingCapture:
    """Reversible logging interception adapter."""

    def __init__(
        self,
        sink: Callable[[logging.LogRecord], None],
        *,
        logger: logging.Logger | None = None,
        level: int = logging.NOTSET,
    ) -> None:
        self._logger = logger if logger is not None else logging.getLogger()
        self._handler = _ForwardingHandler(sink, level)
        self._active = False

    def start(self) -> None:
        if not self._active:
            self._logger.addHandler(self._handler)
            self._active = True

    def stop(self) -> None:
        if self._active:
            self._logger.removeHandler(self._handler)
            self._active = False

    @property
    def active(self) -> bool:
        return self._active
