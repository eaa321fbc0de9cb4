# src/lumberjack/tracking/errors.py
"""Error tracking: interception, sampling and deduplication.

ErrorTracker observes the Python runtime's error surfaces and turns each
observation into an ``error``-typed FrontendEvent:

    surface                                   ErrorType
    sys.excepthook (uncaught, main thread)    error
    threading.excepthook (uncaught, thread)   error
    asyncio loop exception handler            unhandledRejection
    track_resource_error()                    resourceError
    capture_exception() (manual)              error

Interception is reversible: ``start()`` stores the original hooks and
``stop()`` restores them. Original hooks are always chained, so the host's
own error reporting keeps working.

Each observation is kept with probability ``sample_rate``, drawn per event.
Kept errors are deduplicated on ``type:message:first stack line`` within a
30 second window.
"""

from __future__ import annotations

import asyncio
import random
import sys
import threading
import traceback
from collections.abc import Callable, Mapping
from types import TracebackType
from typing import Any

import structlog

from lumberjack.contracts.enums import ErrorType, FrontendEventType
from lumberjack.contracts.events import ErrorData, FrontendEvent
from lumberjack.core.clock import DEFAULT_CLOCK, Clock, epoch_millis

logger = structlog.get_logger(__name__)

_TRACEBACK_HEADER = "Traceback (most recent call last):"

AsyncioHandler = Callable[[asyncio.AbstractEventLoop, dict[str, Any]], object]


def error_from_exception(
    exc: BaseException,
    error_type: ErrorType = ErrorType.ERROR,
    extra: Mapping[str, Any] | None = None,
) -> ErrorData:
    """Normalize an exception into ErrorData.

    filename/lineno/colno come from the innermost traceback frame.
    """
    stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    filename: str | None = None
    lineno: int | None = None
    colno: int | None = None
    frames = traceback.extract_tb(exc.__traceback__)
    if frames:
        innermost = frames[-1]
        filename = innermost.filename
        lineno = innermost.lineno
        colno = innermost.colno
    return ErrorData(
        message=str(exc) or type(exc).__name__,
        type=error_type,
        stack=stack,
        filename=filename,
        lineno=lineno,
        colno=colno,
        extra=dict(extra or {}),
    )


def error_fingerprint(data: ErrorData) -> str:
    first_line = ""
    if data.stack:
        for line in data.stack.splitlines():
            if line.strip() and line != _TRACEBACK_HEADER:
                first_line = line.strip()
                break
    return f"{data.type.value}:{data.message}:{first_line}"


class ErrorTracker:
    """Observe, sample, deduplicate and forward errors.

    Thread Safety:
        Observations from threading.excepthook arrive on the failing thread.
        The dedupe cache is a dict updated with single assignments; the
        forwarded event is handed to ``on_error`` on that same thread.
    """

    DEDUPE_WINDOW_SECONDS = 30.0
    # Prune the dedupe cache once it holds more than this many fingerprints
    _CLEANUP_THRESHOLD = 100

    def __init__(
        self,
        on_error: Callable[[FrontendEvent], None],
        session_id: Callable[[], str | None],
        *,
        sample_rate: float = 1.0,
        clock: Clock | None = None,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._on_error = on_error
        self._session_id = session_id
        self._sample_rate = sample_rate
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._rng = rng

        self._recent: dict[str, float] = {}
        self._error_count = 0

        self._installed = False
        self._original_excepthook: Callable[..., Any] | None = None
        self._original_threading_excepthook: Callable[..., Any] | None = None
        self._loop_handlers: dict[asyncio.AbstractEventLoop, AsyncioHandler | None] = {}

    # =========================================================================
    # Core path
    # =========================================================================

    def track_error(self, data: ErrorData, *, sample: bool = True) -> bool:
        """Sample, deduplicate and forward one observation.

        Args:
            data: Normalized error
            sample: Apply sample_rate. Manual captures pass False.

        Returns:
            True if an event was forwarded.
        """
        if sample and self._rng() >= self._sample_rate:
            return False

        fingerprint = error_fingerprint(data)
        now = self._clock.monotonic()
        last_seen = self._recent.get(fingerprint)
        if last_seen is not None and now - last_seen < self.DEDUPE_WINDOW_SECONDS:
            return False

        self._recent[fingerprint] = now
        self._error_count += 1
        if len(self._recent) > self._CLEANUP_THRESHOLD:
            self._prune(now)

        self._on_error(
            FrontendEvent(
                type=FrontendEventType.ERROR,
                timestamp=epoch_millis(self._clock),
                session_id=self._session_id(),
                data=data,
            )
        )
        return True

    def _prune(self, now: float) -> None:
        horizon = self.DEDUPE_WINDOW_SECONDS * 2
        self._recent = {fp: seen for fp, seen in self._recent.items() if now - seen <= horizon}

    def capture_exception(
        self,
        exc: BaseException,
        *,
        error_type: ErrorType = ErrorType.ERROR,
        extra: Mapping[str, Any] | None = None,
        sample: bool = True,
    ) -> bool:
        return self.track_error(error_from_exception(exc, error_type, extra), sample=sample)

    def track_resource_error(self, kind: str, location: str | None = None) -> bool:
        """Record a failed load of an external resource (file, URL, asset)."""
        return self.track_error(
            ErrorData(
                message=f"Failed to load {kind} resource",
                type=ErrorType.RESOURCE_ERROR,
                filename=location,
            )
        )

    @property
    def error_count(self) -> int:
        """Errors forwarded so far."""
        return self._error_count

    # =========================================================================
    # Interception adapters
    # =========================================================================

    def start(self) -> None:
        """Install sys/threading hooks, and the asyncio handler if a loop is running."""
        if self._installed:
            return
        self._original_excepthook = sys.excepthook
        sys.excepthook = self._excepthook
        self._original_threading_excepthook = threading.excepthook
        threading.excepthook = self._threading_excepthook
        self._installed = True

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self.attach_loop(loop)

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Route a loop's unhandled task failures through the tracker."""
        if loop in self._loop_handlers:
            return
        self._loop_handlers[loop] = loop.get_exception_handler()
        loop.set_exception_handler(self._asyncio_handler)

    def stop(self) -> None:
        """Restore every hook replaced by start()/attach_loop()."""
        if self._installed:
            # Only restore if nobody has replaced our hooks since
            if sys.excepthook == self._excepthook:
                sys.excepthook = self._original_excepthook or sys.__excepthook__
            if threading.excepthook == self._threading_excepthook:
                threading.excepthook = self._original_threading_excepthook or threading.__excepthook__
            self._installed = False

        for loop, previous in self._loop_handlers.items():
            if not loop.is_closed() and loop.get_exception_handler() == self._asyncio_handler:
                loop.set_exception_handler(previous)
        self._loop_handlers.clear()

    @property
    def installed(self) -> bool:
        return self._installed

    def _observe(self, exc: BaseException, error_type: ErrorType) -> None:
        try:
            self.capture_exception(exc, error_type=error_type)
        except Exception as e:
            # The host's own hook must still run
            logger.warning("Failed to record uncaught error", error=str(e))

    def _excepthook(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        if not issubclass(exc_type, KeyboardInterrupt):
            self._observe(exc, ErrorType.ERROR)
        original = self._original_excepthook or sys.__excepthook__
        original(exc_type, exc, tb)

    def _threading_excepthook(self, args: threading.ExceptHookArgs) -> None:
        if args.exc_value is not None and not issubclass(args.exc_type, SystemExit):
            self._observe(args.exc_value, ErrorType.ERROR)
        original = self._original_threading_excepthook or threading.__excepthook__
        original(args)

    def _asyncio_handler(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        if isinstance(exc, BaseException):
            self._observe(exc, ErrorType.UNHANDLED_REJECTION)
        else:
            self.track_error(
                ErrorData(
                    message=str(context.get("message", "Unhandled asyncio error")),
                    type=ErrorType.UNHANDLED_REJECTION,
                )
            )
        previous = self._loop_handlers.get(loop)
        if previous is not None:
            previous(loop, context)
        else:
            loop.default_exception_handler(context)
