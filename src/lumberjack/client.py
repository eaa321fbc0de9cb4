# src/lumberjack/client.py
"""LumberjackClient: the orchestrator that owns the telemetry pipeline.

The client wires the leaf components together and exposes the producer API:

    application call
      -> enrich (ambient context, caller info, user, session)
      -> buffer (logs / objects / spans / events)
      -> flush (size, age, timer, manual, shutdown)
      -> wire format
      -> exporter

Every producer entry point (log, track, capture_error, register_one,
register_many, add_span) is exception-free: invalid input is dropped with a
debug diagnostic, and nothing is accepted once shutdown has begun. Only the
constructor raises, and only ConfigurationError.

Usage:
    settings = build_settings(project_name="checkout", api_key=key)
    client = LumberjackClient(settings)
    client.start()

    with client.traced("place-order"):
        client.info("Order placed", order_id=order.id)

    await client.shutdown()
"""

from __future__ import annotations

import asyncio
import atexit
import dataclasses
import logging
import random
import traceback
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

from lumberjack.context import (
    RESERVED_KEYS,
    SPAN_ID_KEY,
    TRACE_ID_KEY,
    TRACE_NAME_KEY,
    TraceContextStore,
    generate_span_id,
    generate_trace_id,
    trace_context,
)
from lumberjack.contracts.enums import FrontendEventType, LogLevel
from lumberjack.contracts.errors import ValidationRejection
from lumberjack.contracts.events import (
    CustomEventData,
    ExceptionInfo,
    FrontendEvent,
    LogEntry,
    RegisteredObject,
    UserContext,
)
from lumberjack.contracts.results import ExportResult
from lumberjack.contracts.wire import EnrichedLogEntry, EnrichedRegisteredObject, ExportMetadata
from lumberjack.core.caller import CallerInfo, get_caller_info
from lumberjack.core.canonical import json_safe
from lumberjack.core.clock import DEFAULT_CLOCK, Clock, epoch_millis
from lumberjack.core.config import LumberjackSettings
from lumberjack.core.logging import configure_logging
from lumberjack.gatekeeper import Gatekeeper, GatekeeperCheck
from lumberjack.registry import ObjectRegistry
from lumberjack.telemetry.buffer import EventBuffer
from lumberjack.telemetry.factory import create_exporter
from lumberjack.telemetry.protocols import ExporterProtocol
from lumberjack.telemetry.spans import build_span_request
from lumberjack.tracking.capture import LoggingCapture, level_for_record
from lumberjack.tracking.errors import ErrorTracker
from lumberjack.tracking.replay import ReplayRecorder
from lumberjack.tracking.session import FileSessionStore, Session, SessionManager, SessionStore

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan

logger = structlog.get_logger(__name__)

SDK_SOURCE = "lumberjack"
LOGGING_SOURCE = "logging"


def safe_properties(props: Mapping[str, Any], what: str) -> dict[str, Any]:
    """JSON-safe copy of caller-supplied properties.

    Raises:
        ValidationRejection: If a value cannot even be stringified.
    """
    try:
        return json_safe(dict(props))
    except Exception as e:
        raise ValidationRejection(f"{what} cannot be encoded: {type(e).__name__}: {e}") from e


def exception_info(exc: BaseException) -> ExceptionInfo:
    return ExceptionInfo(
        name=type(exc).__name__,
        message=str(exc),
        stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    )


class LumberjackClient:
    """Telemetry client.

    Args:
        settings: Validated settings (see core/config.py)
        exporter: Exporter instance; when None one is created from
            ``settings.exporter`` through the exporter registry
        exporter_plugins: Extra pluggy plugins offering exporters
        context: Ambient context store (defaults to the process-wide store)
        session_store: Session persistence; defaults to a FileSessionStore
            when ``settings.session_storage_path`` is set
        clock: Time source
        rng: Uniform [0, 1) source for error and replay sampling

    Raises:
        ConfigurationError: If the exporter cannot be created or configured.
    """

    def __init__(
        self,
        settings: LumberjackSettings,
        *,
        exporter: ExporterProtocol | None = None,
        exporter_plugins: Sequence[Any] = (),
        context: TraceContextStore | None = None,
        session_store: SessionStore | None = None,
        clock: Clock | None = None,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._settings = settings
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._context = context if context is not None else trace_context
        self._metadata = ExportMetadata(project_name=settings.project_name, commit_sha=settings.commit_sha)

        if exporter is None:
            exporter = create_exporter(settings.exporter, self._exporter_options(), exporter_plugins=exporter_plugins)
        self._exporter = exporter

        buffer_options: dict[str, Any] = {
            "max_size": settings.batch_size,
            "max_age": settings.batch_age_seconds,
            "flush_interval": settings.flush_interval_seconds,
            "clock": self._clock,
        }
        self._logs: EventBuffer[LogEntry] = EventBuffer("logs", self._export_logs, **buffer_options)
        self._objects: EventBuffer[RegisteredObject] = EventBuffer("objects", self._export_objects, **buffer_options)
        self._spans: EventBuffer[ReadableSpan] = EventBuffer("spans", self._export_spans, **buffer_options)
        self._events: EventBuffer[FrontendEvent] = EventBuffer("events", self._export_events, **buffer_options)

        if session_store is None and settings.session_storage_path is not None:
            session_store = FileSessionStore(settings.session_storage_path)
        self._sessions = SessionManager(
            enable_replay=settings.enable_session_replay,
            replay_sample_rate=settings.replay_sample_rate,
            inactivity_timeout=settings.session_inactivity_timeout_seconds,
            max_session_length=settings.max_session_length_seconds,
            store=session_store,
            clock=self._clock,
            rng=rng,
        )
        self._announced_session_id: str | None = None

        self._errors = ErrorTracker(
            self._enqueue_event,
            self._session_id_for_event,
            sample_rate=settings.error_sample_rate,
            clock=self._clock,
            rng=rng,
        )
        self._replay = ReplayRecorder(
            self._enqueue_event,
            self._current_session_id,
            settings.replay,
            on_activity=self._sessions.update_activity,
            clock=self._clock,
        )
        self._registry = ObjectRegistry(self._enqueue_object, self._context)
        self._gatekeeper = Gatekeeper(
            api_key=settings.api_key,
            endpoint=settings.gatekeeper_endpoint,
            service_token=settings.service_token,
            log_info=self.info,
            clock=self._clock,
        )
        self._capture = LoggingCapture(self._forward_record) if settings.capture_logging else None

        self._user: UserContext | None = None
        self._started = False
        self._shutting_down = False
        self._closed = False

    def _exporter_options(self) -> dict[str, Any]:
        return {
            "project_name": self._settings.project_name,
            "api_key": self._settings.api_key,
            "endpoint": self._settings.endpoint,
            **self._settings.exporter_options,
        }

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Install interception adapters, open a session and start timers.

        Timers only start when called inside a running event loop; in a plain
        synchronous program flushes happen at thresholds, on flush() and at
        shutdown (an atexit hook covers interpreter exit).
        """
        if self._started or self._shutting_down:
            return
        self._started = True
        if self._settings.debug:
            configure_logging(level="DEBUG")
        if self._settings.capture_unhandled:
            self._errors.start()
        if self._capture is not None:
            self._capture.start()
        self._ensure_session()
        for buffer in self._buffers():
            buffer.start()
        atexit.register(self._shutdown_at_exit)
        logger.debug("Lumberjack client started", project=self._settings.project_name, exporter=self._exporter.name)

    async def flush(self) -> dict[str, ExportResult]:
        """Flush every buffer once.

        Returns:
            Result per buffer name ("logs", "objects", "spans", "events").
        """
        if self._replay.recording:
            self._replay.flush()
        buffers = self._buffers()
        results = await asyncio.gather(*(buffer.flush() for buffer in buffers))
        return {buffer.name: result for buffer, result in zip(buffers, results, strict=True)}

    async def shutdown(self) -> None:
        """Stop timers, refuse new items, flush everything and release resources.

        Idempotent.
        """
        if self._shutting_down:
            return
        for buffer in self._buffers():
            await buffer.stop_timer()
        # A partial replay chunk is still accepted before the terminal flag
        self._replay.stop()
        self._shutting_down = True

        self._errors.stop()
        if self._capture is not None:
            self._capture.stop()
        for buffer in self._buffers():
            await buffer.shutdown()
        await self._exporter.shutdown()

        atexit.unregister(self._shutdown_at_exit)
        self._closed = True
        logger.debug("Lumberjack client shut down", dropped={b.name: b.dropped_count for b in self._buffers()})

    def _shutdown_at_exit(self) -> None:
        if self._shutting_down:
            return
        try:
            asyncio.run(self.shutdown())
        except RuntimeError as e:
            logger.warning("Could not flush telemetry at exit", error=str(e))

    def _buffers(self) -> list[EventBuffer[Any]]:
        return [self._logs, self._objects, self._spans, self._events]

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def settings(self) -> LumberjackSettings:
        return self._settings

    @property
    def exporter(self) -> ExporterProtocol:
        return self._exporter

    @property
    def context(self) -> TraceContextStore:
        return self._context

    # =========================================================================
    # Logs
    # =========================================================================

    def log(self, level: LogLevel | str, message: str, /, *, exc: BaseException | None = None, **props: Any) -> None:
        """Record a log entry. Never raises."""
        self._record_log(level, message, props, exc=exc, source=SDK_SOURCE, caller=None)

    def trace(self, message: str, /, **props: Any) -> None:
        self._record_log(LogLevel.TRACE, message, props)

    def debug(self, message: str, /, **props: Any) -> None:
        self._record_log(LogLevel.DEBUG, message, props)

    def info(self, message: str, /, **props: Any) -> None:
        self._record_log(LogLevel.INFO, message, props)

    def warn(self, message: str, /, **props: Any) -> None:
        self._record_log(LogLevel.WARN, message, props)

    def error(self, message: str, /, *, exc: BaseException | None = None, **props: Any) -> None:
        self._record_log(LogLevel.ERROR, message, props, exc=exc)

    def fatal(self, message: str, /, *, exc: BaseException | None = None, **props: Any) -> None:
        self._record_log(LogLevel.FATAL, message, props, exc=exc)

    def log_error(self, message: str, exc: BaseException, /, **props: Any) -> None:
        """Error-level entry carrying exception name, message and traceback."""
        self._record_log(LogLevel.ERROR, message, props, exc=exc)

    def _record_log(
        self,
        level: LogLevel | str,
        message: str,
        props: Mapping[str, Any],
        *,
        exc: BaseException | None = None,
        source: str = SDK_SOURCE,
        caller: CallerInfo | None = None,
    ) -> None:
        if self._shutting_down:
            return
        try:
            entry = self._build_entry(level, message, props, exc, source, caller)
            self._logs.add(entry)
        except ValidationRejection as e:
            logger.debug("Log entry rejected", reason=str(e))
        except Exception as e:
            logger.warning("Failed to record log entry", error=str(e))

    def _build_entry(
        self,
        level: LogLevel | str,
        message: str,
        props: Mapping[str, Any],
        exc: BaseException | None,
        source: str,
        caller: CallerInfo | None,
    ) -> LogEntry:
        try:
            level = LogLevel(level)
        except ValueError:
            raise ValidationRejection(f"Unknown log level {level!r}") from None
        if not isinstance(message, str):
            raise ValidationRejection(f"Log message must be a string, got {type(message).__name__}")

        ambient = self._context.snapshot()
        merged = {k: v for k, v in ambient.items() if k not in RESERVED_KEYS}
        merged.update(props)
        merged = safe_properties(merged, "Log properties")
        if caller is None:
            caller = get_caller_info()

        return LogEntry(
            message=message,
            level=level,
            timestamp=epoch_millis(self._clock),
            trace_id=ambient.get(TRACE_ID_KEY) or generate_trace_id(),
            span_id=ambient.get(SPAN_ID_KEY),
            source=source,
            file=caller.file,
            line=caller.line,
            function=caller.function,
            exception=exception_info(exc) if exc is not None else None,
            props=merged,
        )

    def _forward_record(self, record: logging.LogRecord) -> None:
        exc = record.exc_info[1] if record.exc_info else None
        self._record_log(
            level_for_record(record.levelno),
            record.getMessage(),
            {"logger": record.name},
            exc=exc,
            source=LOGGING_SOURCE,
            caller=CallerInfo(file=record.pathname, line=record.lineno, function=record.funcName),
        )

    # =========================================================================
    # Traces
    # =========================================================================

    def start_trace(self, name: str, /, **metadata: Any) -> str:
        """Begin a named trace in the current scope and log its start.

        Outside any scope the ids only apply to the start entry itself.

        Returns:
            The new trace id.
        """
        trace_id = generate_trace_id()
        ids = {TRACE_ID_KEY: trace_id, SPAN_ID_KEY: generate_span_id(), TRACE_NAME_KEY: name}
        props = {**metadata, "_traceStart": True, "traceName": name}
        bag = self._context.current()
        if bag is not None:
            bag.update(ids)
            self._record_log(LogLevel.INFO, f"Starting trace: {name}", props)
        else:
            with self._context.scope(ids):
                self._record_log(LogLevel.INFO, f"Starting trace: {name}", props)
        return trace_id

    def end_trace(self, success: bool = True, /, **metadata: Any) -> None:
        """Log the end of the current scope's trace and clear the scope."""
        name = self._context.get(TRACE_NAME_KEY)
        if name is None:
            return
        message = f"Completed trace: {name}" if success else f"Failed trace: {name}"
        props = {**metadata, "_traceEnd": True, "traceName": name, "success": success}
        self._record_log(LogLevel.INFO if success else LogLevel.ERROR, message, props)
        self._context.clear()

    @contextmanager
    def traced(self, name: str, /, **metadata: Any) -> Iterator[str]:
        """Run a block as a named trace in its own scope.

        Works in both synchronous and ``async def`` code. The trace is marked
        failed when the block raises.
        """
        with self._context.scope({}):
            trace_id = self.start_trace(name, **metadata)
            try:
                yield trace_id
            except BaseException:
                self.end_trace(False)
                raise
            self.end_trace(True)

    # =========================================================================
    # Objects and spans
    # =========================================================================

    def register_one(self, obj: Any) -> RegisteredObject | None:
        """Register one object carrying an ``id``. Never raises."""
        if self._shutting_down:
            return None
        try:
            return self._registry.register_one(obj)
        except Exception as e:
            logger.warning("Failed to register object", error=str(e))
            return None

    def register_many(self, objects: Mapping[str, Any]) -> list[RegisteredObject]:
        """Register ``{name: object}`` pairs. Never raises."""
        if self._shutting_down:
            return []
        try:
            return self._registry.register_many(objects)
        except Exception as e:
            logger.warning("Failed to register objects", error=str(e))
            return []

    def _enqueue_object(self, obj: RegisteredObject) -> None:
        self._objects.add(obj)

    def add_span(self, span: ReadableSpan) -> None:
        """Queue a finished span (called by LumberjackSpanProcessor)."""
        if self._shutting_down:
            return
        try:
            self._spans.add(span)
        except Exception as e:
            logger.warning("Failed to queue span", error=str(e))

    # =========================================================================
    # Frontend events, errors and sessions
    # =========================================================================

    def track(self, name: str, properties: Mapping[str, Any] | None = None, /, **extra: Any) -> None:
        """Record a custom event. Never raises."""
        if self._shutting_down:
            return
        try:
            if not isinstance(name, str) or not name:
                raise ValidationRejection("Event name must be a non-empty string")
            merged = safe_properties({**(properties or {}), **extra}, "Event properties")
            session = self._ensure_session()
            self._enqueue_event(
                FrontendEvent(
                    type=FrontendEventType.CUSTOM,
                    timestamp=epoch_millis(self._clock),
                    session_id=session.id,
                    data=CustomEventData(name=name, properties=merged),
                )
            )
        except ValidationRejection as e:
            logger.debug("Event rejected", reason=str(e))
        except Exception as e:
            logger.warning("Failed to track event", error=str(e))

    def capture_error(self, exc: BaseException, /, **context: Any) -> bool:
        """Record an error explicitly. Not sampled, but deduplicated.

        Returns:
            True if an error event was queued.
        """
        if self._shutting_down:
            return False
        try:
            return self._errors.capture_exception(exc, extra=safe_properties(context, "Error context"), sample=False)
        except ValidationRejection as e:
            logger.debug("Error capture rejected", reason=str(e))
            return False
        except Exception as e:
            logger.warning("Failed to capture error", error=str(e))
            return False

    def track_resource_error(self, kind: str, location: str | None = None) -> bool:
        if self._shutting_down:
            return False
        try:
            return self._errors.track_resource_error(kind, location)
        except Exception as e:
            logger.warning("Failed to track resource error", error=str(e))
            return False

    @property
    def error_tracker(self) -> ErrorTracker:
        return self._errors

    def _enqueue_event(self, event: FrontendEvent) -> None:
        if self._shutting_down:
            return
        if self._user is not None and event.user_id is None:
            event = dataclasses.replace(event, user_id=self._user.id, user_context=self._user)
        self._events.add(event)

    def _ensure_session(self) -> Session:
        session = self._sessions.get_or_create_session()
        if session.id != self._announced_session_id:
            self._announced_session_id = session.id
            self._on_new_session(session)
        return session

    def _on_new_session(self, session: Session) -> None:
        if session.has_replay:
            self._replay.start()
        elif self._replay.recording:
            self._replay.stop()
        self._enqueue_event(
            FrontendEvent(
                type=FrontendEventType.CUSTOM,
                timestamp=epoch_millis(self._clock),
                session_id=session.id,
                data=CustomEventData(name="session_started", properties={"hasReplay": session.has_replay}),
            )
        )

    def _session_id_for_event(self) -> str | None:
        return self._ensure_session().id

    def _current_session_id(self) -> str | None:
        session = self._sessions.get_current_session()
        return session.id if session is not None else None

    def get_session(self) -> Session | None:
        return self._sessions.get_current_session()

    def get_session_id(self) -> str | None:
        return self._current_session_id()

    def get_session_duration(self) -> float:
        return self._sessions.session_duration()

    def get_session_remaining_time(self) -> float:
        return self._sessions.session_remaining_time()

    def is_recording(self) -> bool:
        return self._replay.recording

    def record_replay_event(self, event: Mapping[str, Any]) -> None:
        """Entry point for an external session-recording engine."""
        if self._shutting_down:
            return
        try:
            self._replay.emit(safe_properties(event, "Replay event"))
        except ValidationRejection as e:
            logger.debug("Replay event rejected", reason=str(e))
        except Exception as e:
            logger.warning("Failed to record replay event", error=str(e))

    def set_user(self, user: UserContext | str, /, **attributes: Any) -> None:
        """Attach a user to subsequent frontend events.

        Accepts a UserContext, or an id plus ``email``/``name``/extra keyword
        attributes.
        """
        if isinstance(user, UserContext):
            self._user = dataclasses.replace(user, attributes=json_safe(dict(user.attributes)))
            return
        email = attributes.pop("email", None)
        name = attributes.pop("name", None)
        self._user = UserContext(id=user, email=email, name=name, attributes=json_safe(attributes))

    def get_user(self) -> UserContext | None:
        return self._user

    def clear_user(self) -> None:
        self._user = None

    # =========================================================================
    # Gatekeeper
    # =========================================================================

    async def check_gatekeeper(self, key: str) -> bool:
        return await self._gatekeeper.check(key)

    def gatekeeper(self, key: str) -> GatekeeperCheck:
        return self._gatekeeper.gatekeeper(key)

    def clear_gatekeeper_cache(self, key: str | None = None) -> None:
        self._gatekeeper.clear_cache(key)

    async def fetch_gatekeeper_schema(self) -> dict[str, Any] | None:
        return await self._gatekeeper.fetch_schema()

    # =========================================================================
    # Export callbacks
    # =========================================================================

    async def _export_logs(self, batch: Sequence[LogEntry]) -> ExportResult:
        return await self._exporter.export_logs([EnrichedLogEntry(entry, self._metadata) for entry in batch])

    async def _export_objects(self, batch: Sequence[RegisteredObject]) -> ExportResult:
        return await self._exporter.export_objects([EnrichedRegisteredObject(obj, self._metadata) for obj in batch])

    async def _export_spans(self, batch: Sequence[ReadableSpan]) -> ExportResult:
        return await self._exporter.export_spans(build_span_request(batch, self._metadata))

    async def _export_events(self, batch: Sequence[FrontendEvent]) -> ExportResult:
        session_id = self._current_session_id() or batch[0].session_id
        return await self._exporter.export_events(batch, session_id)
