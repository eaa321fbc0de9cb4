"""Built-in exporters.

Available exporters:
- HttpExporter ("http"): the Lumberjack ingestion service
- ConsoleExporter ("console"): stdout/stderr for local development
- MockExporter ("mock"): in-memory recording for tests

Plugin registration:
    Exporters are registered via the lumberjack_get_exporters hook.
    BuiltinExportersPlugin registers all built-in exporters.
"""

from lumberjack.telemetry.exporters.console import ConsoleExporter
from lumberjack.telemetry.exporters.http import HttpExporter
from lumberjack.telemetry.hookspecs import hookimpl
from lumberjack.testing.mock_exporter import MockExporter


class BuiltinExportersPlugin:
    """Plugin that registers built-in exporters."""

    @hookimpl
    def lumberjack_get_exporters(self) -> list[type]:
        return [HttpExporter, ConsoleExporter, MockExporter]


__all__ = [
    "BuiltinExportersPlugin",
    "ConsoleExporter",
    "HttpExporter",
    "MockExporter",
]
