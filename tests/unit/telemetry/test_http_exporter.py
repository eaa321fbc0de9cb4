# tests/unit/telemetry/test_http_exporter.py
"""Unit tests for HttpExporter.

Tests cover:
- Configuration validation
- Endpoint derivation from the logs endpoint
- Request bodies and headers for each data kind (mocked with respx)
- Failure handling (non-2xx, transport errors) without raising
- Batches that cannot be encoded fail without a request and are not retryable
- Console fallback when no API key is configured
"""

import json

import httpx
import pytest
import respx

from lumberjack.contracts.enums import FrontendEventType, LogLevel
from lumberjack.contracts.errors import ExporterConfigurationError, SerializationError, TransportError
from lumberjack.contracts.events import CustomEventData, FrontendEvent, LogEntry, RegisteredObject, UserContext
from lumberjack.contracts.wire import (
    EnrichedLogEntry,
    EnrichedRegisteredObject,
    EnrichedSpanRequest,
    ExportMetadata,
)
from lumberjack.telemetry.exporters.http import HttpExporter
from lumberjack.telemetry.protocols import ExporterProtocol

LOGS_URL = "https://ingest.example.com/logs/batch"

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def metadata() -> ExportMetadata:
    return ExportMetadata(project_name="checkout", commit_sha="abc123")


@pytest.fixture
def exporter() -> HttpExporter:
    exp = HttpExporter()
    exp.configure({"api_key": "secret", "endpoint": LOGS_URL, "project_name": "checkout"})
    return exp


def make_log(message: str, level: LogLevel = LogLevel.INFO, **props: object) -> LogEntry:
    return LogEntry(
        message=message,
        level=level,
        timestamp=1_700_000_000_000,
        trace_id="a" * 32,
        file="app.py",
        line=10,
        function="handler",
        source="lumberjack",
        props=props,
    )


# =============================================================================
# Configuration
# =============================================================================


class TestConfiguration:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(HttpExporter(), ExporterProtocol)
        assert HttpExporter().name == "http"

    def test_rejects_non_http_endpoint(self) -> None:
        with pytest.raises(ExporterConfigurationError, match="endpoint"):
            HttpExporter().configure({"api_key": "k", "endpoint": "ftp://example.com"})

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ExporterConfigurationError, match="timeout"):
            HttpExporter().configure({"api_key": "k", "timeout": 0})

    def test_rejects_non_string_headers(self) -> None:
        with pytest.raises(ExporterConfigurationError, match="headers"):
            HttpExporter().configure({"api_key": "k", "headers": {"X-Retry": 3}})

    def test_endpoints_derive_from_logs_endpoint(self, exporter: HttpExporter) -> None:
        assert exporter.logs_endpoint == LOGS_URL
        assert exporter.objects_endpoint == "https://ingest.example.com/objects/register"
        assert exporter.spans_endpoint == "https://ingest.example.com/spans/batch"
        assert exporter.events_endpoint == "https://ingest.example.com/rum/events"


# =============================================================================
# Logs
# =============================================================================


class TestExportLogs:
    @pytest.mark.asyncio
    @respx.mock
    async def test_one_request_carries_every_log(self, exporter: HttpExporter, metadata: ExportMetadata) -> None:
        route = respx.post(LOGS_URL).mock(return_value=httpx.Response(200))
        logs = [EnrichedLogEntry(make_log(f"message {i}", user_id=i), metadata) for i in range(3)]

        result = await exporter.export_logs(logs)

        assert result.success
        assert result.items_exported == 3
        assert route.call_count == 1

        request = route.calls.last.request
        body = json.loads(request.content)
        assert [log["msg"] for log in body["logs"]] == ["message 0", "message 1", "message 2"]
        assert body["logs"][0]["lvl"] == "info"
        assert body["logs"][0]["ts"] == 1_700_000_000_000
        assert body["logs"][0]["props"] == {"user_id": 0}
        assert body["project_name"] == "checkout"
        assert body["sdk_version"] == "2"
        assert body["commit_sha"] == "abc123"
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_2xx_returns_failed_result(self, exporter: HttpExporter, metadata: ExportMetadata) -> None:
        respx.post(LOGS_URL).mock(return_value=httpx.Response(503, text="maintenance"))

        result = await exporter.export_logs([EnrichedLogEntry(make_log("x"), metadata)])

        assert not result.success
        assert isinstance(result.error, TransportError)
        assert result.error.status_code == 503
        assert "Failed to send logs: 503" in str(result.error)
        assert "maintenance" in str(result.error)

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_returns_failed_result(self, exporter: HttpExporter, metadata: ExportMetadata) -> None:
        respx.post(LOGS_URL).mock(side_effect=httpx.ConnectError("refused"))

        result = await exporter.export_logs([EnrichedLogEntry(make_log("x"), metadata)])

        assert not result.success
        assert isinstance(result.error, TransportError)
        assert result.error.status_code is None
        assert result.retryable

    @pytest.mark.asyncio
    @respx.mock(assert_all_called=False)
    async def test_unencodable_props_fail_without_request(self, exporter: HttpExporter, metadata: ExportMetadata) -> None:
        route = respx.post(LOGS_URL).mock(return_value=httpx.Response(202))
        cyclic: dict[str, object] = {}
        cyclic["self"] = cyclic

        for props in ({"data": {(1, 2): 3}}, {"data": cyclic}):
            result = await exporter.export_logs([EnrichedLogEntry(make_log("x", **props), metadata)])

            assert not result.success
            assert not result.retryable
            assert isinstance(result.error, SerializationError)
            assert "Failed to encode logs" in str(result.error)
        assert not route.called

    @pytest.mark.asyncio
    @respx.mock(assert_all_called=False)
    async def test_non_finite_float_is_not_sent(self, exporter: HttpExporter, metadata: ExportMetadata) -> None:
        route = respx.post(LOGS_URL).mock(return_value=httpx.Response(202))

        result = await exporter.export_logs([EnrichedLogEntry(make_log("x", ratio=float("nan")), metadata)])

        assert not result.success
        assert not result.retryable
        assert not route.called

    @pytest.mark.asyncio
    async def test_empty_batch_sends_nothing(self, exporter: HttpExporter) -> None:
        result = await exporter.export_logs([])
        assert result.success
        assert result.items_exported == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_extra_headers_are_sent(self, metadata: ExportMetadata) -> None:
        exp = HttpExporter()
        exp.configure({"api_key": "k", "endpoint": LOGS_URL, "headers": {"X-Tenant": "acme"}})
        route = respx.post(LOGS_URL).mock(return_value=httpx.Response(202))

        await exp.export_logs([EnrichedLogEntry(make_log("x"), metadata)])

        assert route.calls.last.request.headers["X-Tenant"] == "acme"

    @pytest.mark.asyncio
    @respx.mock
    async def test_injected_client_is_used(self, metadata: ExportMetadata) -> None:
        route = respx.post(LOGS_URL).mock(return_value=httpx.Response(200))
        async with httpx.AsyncClient() as client:
            exp = HttpExporter(client=client)
            exp.configure({"api_key": "k", "endpoint": LOGS_URL})
            result = await exp.export_logs([EnrichedLogEntry(make_log("x"), metadata)])
            await exp.shutdown()
            assert not client.is_closed

        assert result.success
        assert route.called


# =============================================================================
# Objects, spans, events
# =============================================================================


class TestOtherKinds:
    @pytest.mark.asyncio
    @respx.mock
    async def test_objects_posted_to_register_endpoint(self, exporter: HttpExporter, metadata: ExportMetadata) -> None:
        route = respx.post("https://ingest.example.com/objects/register").mock(return_value=httpx.Response(200))
        obj = RegisteredObject(id="42", name="order", fields={"total": 9.5})

        result = await exporter.export_objects([EnrichedRegisteredObject(obj, metadata)])

        assert result.items_exported == 1
        body = json.loads(route.calls.last.request.content)
        assert body["objects"] == [{"id": "42", "name": "order", "fields": {"total": 9.5}}]
        assert body["project_name"] == "checkout"

    @pytest.mark.asyncio
    @respx.mock
    async def test_spans_posted_with_resource_spans(self, exporter: HttpExporter, metadata: ExportMetadata) -> None:
        route = respx.post("https://ingest.example.com/spans/batch").mock(return_value=httpx.Response(200))
        span = {"traceId": "a" * 32, "spanId": "b" * 16, "name": "GET /", "startTimeUnixNano": "1", "endTimeUnixNano": "2"}
        request = EnrichedSpanRequest(
            resource_spans=({"resource": {"attributes": []}, "scopeSpans": [{"scope": {}, "spans": [span, span]}]},),
            metadata=metadata,
        )

        result = await exporter.export_spans(request)

        assert result.items_exported == 2
        body = json.loads(route.calls.last.request.content)
        assert body["resourceSpans"][0]["scopeSpans"][0]["spans"][0]["name"] == "GET /"
        assert body["sdk_version"] == "2"

    @pytest.mark.asyncio
    @respx.mock
    async def test_events_posted_with_session_and_user(self, exporter: HttpExporter) -> None:
        route = respx.post("https://ingest.example.com/rum/events").mock(return_value=httpx.Response(200))
        event = FrontendEvent(
            type=FrontendEventType.CUSTOM,
            timestamp=1_700_000_000_000,
            session_id="session-1",
            data=CustomEventData(name="checkout_clicked", properties={"step": 2}),
            user_id="u-1",
            user_context=UserContext(id="u-1", email="a@example.com"),
        )

        result = await exporter.export_events([event], "session-1")

        assert result.success
        body = json.loads(route.calls.last.request.content)
        assert body["project_name"] == "checkout"
        assert body["session_id"] == "session-1"
        wire = body["events"][0]
        assert wire["type"] == "custom"
        assert wire["data"] == {"name": "checkout_clicked", "properties": {"step": 2}}
        assert wire["userId"] == "u-1"
        assert wire["userContext"] == {"id": "u-1", "email": "a@example.com"}


# =============================================================================
# Console fallback
# =============================================================================


class TestConsoleFallback:
    @pytest.mark.asyncio
    @respx.mock(assert_all_called=False)
    async def test_without_api_key_writes_to_console(
        self, metadata: ExportMetadata, capsys: pytest.CaptureFixture[str]
    ) -> None:
        route = respx.post(LOGS_URL).mock(return_value=httpx.Response(200))
        exp = HttpExporter()
        exp.configure({"endpoint": LOGS_URL})

        result = await exp.export_logs([EnrichedLogEntry(make_log("offline"), metadata)])

        assert result.success
        assert not route.called
        assert "offline" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_empty_api_key_is_treated_as_absent(
        self, metadata: ExportMetadata, capsys: pytest.CaptureFixture[str]
    ) -> None:
        exp = HttpExporter()
        exp.configure({"api_key": ""})

        result = await exp.export_objects([EnrichedRegisteredObject(RegisteredObject("1", "user", {}), metadata)])

        assert result.success
        assert "user#1" in capsys.readouterr().out
