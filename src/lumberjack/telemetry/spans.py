# src/lumberjack/telemetry/spans.py
"""Convert finished OpenTelemetry spans into the OTLP JSON export tree.

    resourceSpans[] -> {resource, scopeSpans[] -> {scope, spans[]}}

Spans are grouped first by the resource's ``service.name`` (``"unknown"``
when absent), then by instrumentation scope, preserving first-seen order.
Trace and span ids are rendered as lowercase hex (32 and 16 characters),
times as integer nanoseconds. This module is pure data transformation.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from lumberjack.contracts.wire import EnrichedSpanRequest, ExportMetadata

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan

DEFAULT_SERVICE_NAME = "unknown"
DEFAULT_SCOPE_NAME = "lumberjack"
DEFAULT_SCOPE_VERSION = "1.0.0"


def convert_attribute_value(value: Any) -> dict[str, Any]:
    """Narrow an attribute value to one OTLP AnyValue variant.

    bool is tested before int because bool is an int subclass.
    """
    if isinstance(value, bool):
        return {"boolValue": value}
    if isinstance(value, int):
        return {"intValue": value}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    return {"stringValue": str(value)}


def convert_attributes(attributes: Mapping[str, Any] | None) -> list[dict[str, Any]]:
    if not attributes:
        return []
    return [{"key": key, "value": convert_attribute_value(value)} for key, value in attributes.items() if value is not None]


def _format_trace_id(trace_id: int) -> str:
    return format(trace_id, "032x")


def _format_span_id(span_id: int) -> str:
    return format(span_id, "016x")


def convert_span(span: ReadableSpan) -> dict[str, Any]:
    """Convert one span to an OTLP JSON span."""
    context = span.get_span_context()
    start = span.start_time or 0
    end = span.end_time if span.end_time is not None else start

    result: dict[str, Any] = {
        "traceId": _format_trace_id(context.trace_id),
        "spanId": _format_span_id(context.span_id),
        "name": span.name,
        "kind": span.kind.value,
        "startTimeUnixNano": start,
        "endTimeUnixNano": end,
        "attributes": convert_attributes(span.attributes),
        "events": [
            {
                "timeUnixNano": event.timestamp,
                "name": event.name,
                "attributes": convert_attributes(event.attributes),
            }
            for event in span.events
        ],
        "status": {"code": span.status.status_code.value},
    }
    if span.status.description:
        result["status"]["message"] = span.status.description
    if span.parent is not None:
        result["parentSpanId"] = _format_span_id(span.parent.span_id)
    return result


def _service_name(span: ReadableSpan) -> str:
    value = span.resource.attributes.get("service.name") if span.resource is not None else None
    return str(value) if value else DEFAULT_SERVICE_NAME


def _scope_key(span: ReadableSpan) -> tuple[str, str]:
    scope = span.instrumentation_scope
    if scope is None:
        return DEFAULT_SCOPE_NAME, DEFAULT_SCOPE_VERSION
    return scope.name or DEFAULT_SCOPE_NAME, scope.version or DEFAULT_SCOPE_VERSION


def convert_spans(spans: Iterable[ReadableSpan]) -> tuple[dict[str, Any], ...]:
    """Group and convert spans into resourceSpans."""
    grouped: dict[str, dict[tuple[str, str], list[dict[str, Any]]]] = {}
    for span in spans:
        scopes = grouped.setdefault(_service_name(span), {})
        scopes.setdefault(_scope_key(span), []).append(convert_span(span))

    return tuple(
        {
            "resource": {"attributes": [{"key": "service.name", "value": {"stringValue": service_name}}]},
            "scopeSpans": [
                {"scope": {"name": scope_name, "version": scope_version}, "spans": converted}
                for (scope_name, scope_version), converted in scopes.items()
            ],
        }
        for service_name, scopes in grouped.items()
    )


def build_span_request(spans: Sequence[ReadableSpan], metadata: ExportMetadata) -> EnrichedSpanRequest:
    return EnrichedSpanRequest(resource_spans=convert_spans(spans), metadata=metadata)
