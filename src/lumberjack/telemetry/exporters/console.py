# src/lumberjack/telemetry/exporters/console.py
"""Console exporter.

Writes each exported item to stdout or stderr, one line per item, in JSON
or human-readable form. Used for local development and as the fallback the
HTTP exporter degrades to when no API key is configured.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TextIO

import structlog

from lumberjack.contracts.errors import ExporterConfigurationError, SerializationError
from lumberjack.contracts.results import ExportResult
from lumberjack.contracts.wire import frontend_event_to_wire

if TYPE_CHECKING:
    from lumberjack.contracts.events import FrontendEvent
    from lumberjack.contracts.wire import EnrichedLogEntry, EnrichedRegisteredObject, EnrichedSpanRequest

logger = structlog.get_logger(__name__)


_FORMATS = ("json", "pretty")
_OUTPUTS = ("stdout", "stderr")


def _format_millis(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp / 1000, tz=UTC).isoformat(timespec="milliseconds")


def _props_text(props: Mapping[str, Any]) -> str:
    try:
        return json.dumps(dict(props), default=str)
    except (TypeError, ValueError, RecursionError):
        return repr(props)


class ConsoleExporter:
    """Export telemetry to stdout/stderr.

    Configuration options:
        format: Output format - "json" (default) or "pretty"
        output: Output stream - "stdout" (default) or "stderr"

    Example configuration:
        exporter: console
        exporter_options:
          format: pretty
          output: stderr
    """

    _name = "console"

    def __init__(self) -> None:
        self._format = "json"
        self._output = "stdout"

    @property
    def name(self) -> str:
        return self._name

    def configure(self, config: dict[str, Any]) -> None:
        """Configure format and output stream.

        Raises:
            ExporterConfigurationError: If configuration values are invalid
        """
        self._format = self._choice(config, "format", _FORMATS)
        self._output = self._choice(config, "output", _OUTPUTS)

        logger.debug("Console exporter configured", format=self._format, output=self._output)

    def _choice(self, config: dict[str, Any], option: str, allowed: tuple[str, ...]) -> str:
        """Read a string option restricted to ``allowed``; the first entry is the default."""
        value = config.get(option, allowed[0])
        if not isinstance(value, str):
            raise ExporterConfigurationError(self._name, f"'{option}' must be a string, got {type(value).__name__}")
        if value not in allowed:
            raise ExporterConfigurationError(
                self._name, f"Invalid {option} '{value}'. Expected one of: {', '.join(allowed)}"
            )
        return value

    def _write(self, line: str) -> None:
        # Resolved per write so pytest's capsys and redirected streams are honoured
        stream: TextIO = sys.stdout if self._output == "stdout" else sys.stderr
        print(line, file=stream)

    def _encoding_failed(self, kind: str, error: Exception) -> ExportResult:
        logger.error("Failed to encode telemetry for the console", exporter=self._name, kind=kind, error=str(error))
        return ExportResult.failed(SerializationError(f"Failed to encode {kind}: {error}"), retryable=False)

    def _emit(self, kind: str, records: list[dict[str, Any]], pretty: list[str]) -> ExportResult:
        if self._format == "json":
            try:
                lines = [json.dumps({"kind": kind, **record}, default=str, allow_nan=False) for record in records]
            except (TypeError, ValueError, RecursionError) as e:
                return self._encoding_failed(kind, e)
        else:
            lines = pretty
        try:
            for line in lines:
                self._write(line)
        except Exception as e:
            logger.warning("Failed to write telemetry to console", exporter=self._name, kind=kind, error=str(e))
            return ExportResult.failed(e)
        return ExportResult.ok(len(records))

    async def export_logs(self, logs: Sequence[EnrichedLogEntry]) -> ExportResult:
        records = [log.to_wire() for log in logs]
        pretty = []
        for log in logs:
            entry = log.entry
            line = f"[{_format_millis(entry.timestamp)}] {entry.level.value.upper():<5} {entry.message}"
            if entry.props:
                line += f" {_props_text(entry.props)}"
            if entry.exception is not None:
                line += f"\n{entry.exception.stack or f'{entry.exception.name}: {entry.exception.message}'}"
            pretty.append(line)
        return self._emit("log", records, pretty)

    async def export_objects(self, objects: Sequence[EnrichedRegisteredObject]) -> ExportResult:
        records = [obj.to_wire() for obj in objects]
        pretty = [
            f"[object] {obj.obj.name or 'object'}#{obj.obj.id} {_props_text(obj.obj.fields)}"
            for obj in objects
        ]
        return self._emit("object", records, pretty)

    async def export_spans(self, request: EnrichedSpanRequest) -> ExportResult:
        records: list[dict[str, Any]] = []
        pretty: list[str] = []
        for resource in request.resource_spans:
            for scope in resource["scopeSpans"]:
                for span in scope["spans"]:
                    records.append(span)
                    duration_ms = (int(span["endTimeUnixNano"]) - int(span["startTimeUnixNano"])) / 1_000_000
                    pretty.append(f"[span] {span['name']} trace={span['traceId']} span={span['spanId']} {duration_ms:.1f}ms")
        return self._emit("span", records, pretty)

    async def export_events(self, events: Sequence[FrontendEvent], session_id: str | None) -> ExportResult:
        try:
            records = [frontend_event_to_wire(event) for event in events]
        except (TypeError, ValueError, RecursionError) as e:
            return self._encoding_failed("event", e)
        pretty = [f"[{_format_millis(event.timestamp)}] {event.type.value} session={session_id}" for event in events]
        return self._emit("event", records, pretty)

    async def shutdown(self) -> None:
        pass
