# tests/unit/telemetry/test_console_exporter.py
"""Unit tests for ConsoleExporter.

Tests cover:
- Configuration validation (valid/invalid format and output values)
- JSON output, one line per item
- Pretty output with human-readable lines
- Error handling (export must not raise)
"""

import json
from io import StringIO
from unittest.mock import patch

import pytest

from lumberjack.contracts.enums import ErrorType, FrontendEventType, LogLevel
from lumberjack.contracts.errors import ExporterConfigurationError
from lumberjack.contracts.events import ErrorData, ExceptionInfo, FrontendEvent, LogEntry, RegisteredObject
from lumberjack.contracts.wire import EnrichedLogEntry, EnrichedRegisteredObject, ExportMetadata
from lumberjack.telemetry.exporters.console import ConsoleExporter
from lumberjack.telemetry.protocols import ExporterProtocol

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def metadata() -> ExportMetadata:
    return ExportMetadata(project_name="console-test")


@pytest.fixture
def json_exporter() -> ConsoleExporter:
    exp = ConsoleExporter()
    exp.configure({"format": "json", "output": "stdout"})
    return exp


@pytest.fixture
def pretty_exporter() -> ConsoleExporter:
    exp = ConsoleExporter()
    exp.configure({"format": "pretty", "output": "stdout"})
    return exp


def make_log(message: str = "hello", **kwargs: object) -> LogEntry:
    return LogEntry(message=message, level=LogLevel.WARN, timestamp=1_700_000_000_000, **kwargs)  # type: ignore[arg-type]


# =============================================================================
# Configuration
# =============================================================================


class TestConfiguration:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(ConsoleExporter(), ExporterProtocol)

    def test_defaults_accepted(self) -> None:
        ConsoleExporter().configure({})

    def test_invalid_format(self) -> None:
        with pytest.raises(ExporterConfigurationError, match="Invalid format 'xml'"):
            ConsoleExporter().configure({"format": "xml"})

    def test_invalid_output(self) -> None:
        with pytest.raises(ExporterConfigurationError, match="Invalid output 'file'"):
            ConsoleExporter().configure({"output": "file"})

    def test_non_string_format(self) -> None:
        with pytest.raises(ExporterConfigurationError, match="must be a string"):
            ConsoleExporter().configure({"format": 1})


# =============================================================================
# Output
# =============================================================================


class TestJsonOutput:
    @pytest.mark.asyncio
    async def test_one_json_line_per_log(
        self, json_exporter: ConsoleExporter, metadata: ExportMetadata, capsys: pytest.CaptureFixture[str]
    ) -> None:
        logs = [EnrichedLogEntry(make_log(f"m{i}"), metadata) for i in range(2)]

        result = await json_exporter.export_logs(logs)

        lines = capsys.readouterr().out.strip().splitlines()
        assert result.items_exported == 2
        assert [json.loads(line)["msg"] for line in lines] == ["m0", "m1"]
        assert json.loads(lines[0])["kind"] == "log"
        assert json.loads(lines[0])["lvl"] == "warn"

    @pytest.mark.asyncio
    async def test_stderr_output(self, metadata: ExportMetadata, capsys: pytest.CaptureFixture[str]) -> None:
        exp = ConsoleExporter()
        exp.configure({"output": "stderr"})

        await exp.export_objects([EnrichedRegisteredObject(RegisteredObject("7", "user", {"plan": "pro"}), metadata)])

        captured = capsys.readouterr()
        assert captured.out == ""
        assert json.loads(captured.err) == {"kind": "object", "id": "7", "name": "user", "fields": {"plan": "pro"}}

    @pytest.mark.asyncio
    async def test_error_events(self, json_exporter: ConsoleExporter, capsys: pytest.CaptureFixture[str]) -> None:
        event = FrontendEvent(
            type=FrontendEventType.ERROR,
            timestamp=1,
            session_id="s",
            data=ErrorData(message="boom", type=ErrorType.UNHANDLED_REJECTION),
        )

        await json_exporter.export_events([event], "s")

        record = json.loads(capsys.readouterr().out)
        assert record["type"] == "error"
        assert record["data"] == {"message": "boom", "type": "unhandledRejection"}


class TestPrettyOutput:
    @pytest.mark.asyncio
    async def test_log_line_includes_level_and_props(
        self, pretty_exporter: ConsoleExporter, metadata: ExportMetadata, capsys: pytest.CaptureFixture[str]
    ) -> None:
        await pretty_exporter.export_logs([EnrichedLogEntry(make_log("disk low", props={"free": 3}), metadata)])

        out = capsys.readouterr().out
        assert "WARN" in out
        assert "disk low" in out
        assert '{"free": 3}' in out

    @pytest.mark.asyncio
    async def test_log_with_exception_prints_stack(
        self, pretty_exporter: ConsoleExporter, metadata: ExportMetadata, capsys: pytest.CaptureFixture[str]
    ) -> None:
        exception = ExceptionInfo(name="ValueError", message="bad", stack="Traceback...\nValueError: bad")

        await pretty_exporter.export_logs([EnrichedLogEntry(make_log(exception=exception), metadata)])

        assert "ValueError: bad" in capsys.readouterr().out


class TestErrorHandling:
    @pytest.mark.asyncio
    async def test_write_failure_returns_failed_result(
        self, json_exporter: ConsoleExporter, metadata: ExportMetadata
    ) -> None:
        broken = StringIO()
        broken.close()
        with patch("sys.stdout", broken):
            result = await json_exporter.export_logs([EnrichedLogEntry(make_log(), metadata)])

        assert not result.success
        assert isinstance(result.error, ValueError)
