# src/lumberjack/contracts/events.py
"""Telemetry items produced by the client.

These records are created by the orchestrator at call time and are treated
as immutable once buffered. Wire conversion lives in contracts/wire.py.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from lumberjack.contracts.enums import ErrorType, FrontendEventType, LogLevel


@dataclass(frozen=True, slots=True)
class ExceptionInfo:
    """Exception attached to a log entry.

    Attributes:
        name: Exception class name (e.g. "ValueError")
        message: str(exception)
        stack: Formatted traceback, if available
    """

    name: str
    message: str
    stack: str | None = None


@dataclass(frozen=True, slots=True)
class LogEntry:
    """A single log call, enriched with ambient context and caller info.

    Attributes:
        message: Log message
        level: Severity
        timestamp: Wall-clock time in epoch milliseconds
        trace_id: Ambient trace id (a fresh one when no scope is active)
        span_id: Ambient span id, if any
        source: Origin tag ("lumberjack" for direct calls, "logging" for
            captured stdlib records)
        file: Originating file path
        line: Originating line number
        function: Originating function name
        exception: Attached exception, if any
        props: Arbitrary properties, merged with ambient extra keys
    """

    message: str
    level: LogLevel
    timestamp: int
    trace_id: str | None = None
    span_id: str | None = None
    source: str | None = None
    file: str | None = None
    line: int | None = None
    function: str | None = None
    exception: ExceptionInfo | None = None
    props: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class RegisteredObject:
    """Snapshot of a domain object accepted by the object registry."""

    id: str
    name: str | None
    fields: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class UserContext:
    """Identity attached to frontend events after set_user()."""

    id: str
    email: str | None = None
    name: str | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id}
        if self.email is not None:
            data["email"] = self.email
        if self.name is not None:
            data["name"] = self.name
        data.update(self.attributes)
        return data


@dataclass(frozen=True, slots=True)
class ErrorData:
    """A normalized error observation.

    Attributes:
        message: Error message
        type: Surface the error was observed on
        stack: Formatted traceback
        filename: File of the innermost frame
        lineno: Line of the innermost frame
        colno: Column, when the surface reports one
        extra: Caller-supplied context for manual captures
    """

    message: str
    type: ErrorType = ErrorType.ERROR
    stack: str | None = None
    filename: str | None = None
    lineno: int | None = None
    colno: int | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ReplayData:
    """A chunk of session-recording events.

    Attributes:
        events: Recorder events, already privacy-filtered
        start_time: Timestamp (ms) of the first event in the chunk
        end_time: Timestamp (ms) of the last event in the chunk
    """

    events: tuple[Mapping[str, Any], ...]
    start_time: int
    end_time: int


@dataclass(frozen=True, slots=True)
class CustomEventData:
    """Payload of a track() call."""

    name: str
    properties: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class FrontendEvent:
    """A tracked user-facing action.

    The ``type`` discriminates ``data``: ERROR carries ErrorData,
    SESSION_REPLAY carries ReplayData and CUSTOM carries CustomEventData.
    """

    type: FrontendEventType
    timestamp: int
    session_id: str | None
    data: ErrorData | ReplayData | CustomEventData
    user_id: str | None = None
    user_context: UserContext | None = None
