# src/lumberjack/contracts/wire.py
"""Wire schema for the ingestion service.

Enriched items pair a buffered record with the export metadata the HTTP
exporter needs (project name, SDK version, commit sha). The exporter reads
the shared metadata from the first element of a batch and serializes the
remaining per-item fields with ``to_wire()``.

Log wire keys are deliberately terse:

    msg  message         ts   timestamp (ms)   tid  trace id
    lvl  level           fl   file             sid  span id
    src  source tag      ln   line             exv  exception message
    props properties     fn   function         ext  exception name
    tb   traceback
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from lumberjack.contracts.events import (
    CustomEventData,
    ErrorData,
    FrontendEvent,
    LogEntry,
    RegisteredObject,
    ReplayData,
)

SDK_VERSION = "2"

# Replay chunks with more events than this are sent with their events
# JSON-encoded and flagged compressed.
REPLAY_COMPRESSION_THRESHOLD = 50


@dataclass(frozen=True, slots=True)
class ExportMetadata:
    """Metadata shared by every item in an export request."""

    project_name: str
    sdk_version: str = SDK_VERSION
    commit_sha: str | None = None

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {
            "project_name": self.project_name,
            "sdk_version": self.sdk_version,
        }
        if self.commit_sha:
            wire["commit_sha"] = self.commit_sha
        return wire


@dataclass(frozen=True, slots=True)
class EnrichedLogEntry:
    entry: LogEntry
    metadata: ExportMetadata

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the compact LogWire shape, omitting absent fields."""
        entry = self.entry
        wire: dict[str, Any] = {
            "msg": entry.message,
            "lvl": entry.level.value,
            "ts": entry.timestamp,
        }
        optional: dict[str, Any] = {
            "fl": entry.file,
            "ln": entry.line,
            "fn": entry.function,
            "src": entry.source,
            "tid": entry.trace_id,
            "sid": entry.span_id,
        }
        if entry.exception is not None:
            optional["tb"] = entry.exception.stack
            optional["exv"] = entry.exception.message
            optional["ext"] = entry.exception.name
        if entry.props:
            optional["props"] = dict(entry.props)
        wire.update({k: v for k, v in optional.items() if v is not None})
        return wire


@dataclass(frozen=True, slots=True)
class EnrichedRegisteredObject:
    obj: RegisteredObject
    metadata: ExportMetadata

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"id": self.obj.id, "fields": dict(self.obj.fields)}
        if self.obj.name is not None:
            wire["name"] = self.obj.name
        return wire


@dataclass(frozen=True, slots=True)
class EnrichedSpanRequest:
    """OTLP-shaped span tree plus export metadata.

    Attributes:
        resource_spans: resourceSpans -> scopeSpans -> spans, already in
            OTLP JSON shape (see telemetry/spans.py)
        metadata: Shared export metadata
    """

    resource_spans: tuple[dict[str, Any], ...]
    metadata: ExportMetadata

    @property
    def span_count(self) -> int:
        return sum(len(scope["spans"]) for resource in self.resource_spans for scope in resource["scopeSpans"])

    def to_wire(self) -> dict[str, Any]:
        return {"resourceSpans": list(self.resource_spans), **self.metadata.to_wire()}


def _event_data_to_wire(data: ErrorData | ReplayData | CustomEventData) -> dict[str, Any]:
    if isinstance(data, ErrorData):
        wire: dict[str, Any] = {"message": data.message, "type": data.type.value}
        optional = {
            "stack": data.stack,
            "filename": data.filename,
            "lineno": data.lineno,
            "colno": data.colno,
        }
        wire.update({k: v for k, v in optional.items() if v is not None})
        wire.update(data.extra)
        return wire
    if isinstance(data, ReplayData):
        events = [dict(event) for event in data.events]
        if len(events) > REPLAY_COMPRESSION_THRESHOLD:
            return {
                "events": json.dumps(events, default=str),
                "startTime": data.start_time,
                "endTime": data.end_time,
                "compressed": True,
            }
        return {"events": events, "startTime": data.start_time, "endTime": data.end_time}
    return {"name": data.name, "properties": dict(data.properties)}


def frontend_event_to_wire(event: FrontendEvent) -> dict[str, Any]:
    """Serialize a FrontendEvent for the events endpoint."""
    wire: dict[str, Any] = {
        "type": event.type.value,
        "timestamp": event.timestamp,
        "data": _event_data_to_wire(event.data),
    }
    if event.session_id is not None:
        wire["sessionId"] = event.session_id
    if event.user_id is not None:
        wire["userId"] = event.user_id
    if event.user_context is not None:
        wire["userContext"] = event.user_context.to_dict()
    return wire


def frontend_events_body(events: list[FrontendEvent], session_id: str | None, project_name: str) -> dict[str, Any]:
    return {
        "project_name": project_name,
        "session_id": session_id,
        "events": [frontend_event_to_wire(event) for event in events],
    }


__all__ = [
    "REPLAY_COMPRESSION_THRESHOLD",
    "SDK_VERSION",
    "EnrichedLogEntry",
    "EnrichedRegisteredObject",
    "EnrichedSpanRequest",
    "ExportMetadata",
    "frontend_event_to_wire",
    "frontend_events_body",
]
