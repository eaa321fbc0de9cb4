# src/lumberjack/telemetry/hookspecs.py
"""pluggy hook specifications for exporters.

Exporters implement these hooks to register themselves with the client.
The exporter factory calls them when a client is built.

Usage (implementing an exporter plugin):
    from lumberjack.telemetry.hookspecs import hookimpl

    class MyExporterPlugin:
        @hookimpl
        def lumberjack_get_exporters(self):
            return [MyExporter]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from lumberjack.telemetry.protocols import ExporterProtocol

PROJECT_NAME = "lumberjack"

# Hook specification marker
hookspec = pluggy.HookspecMarker(PROJECT_NAME)

# Hook implementation marker (for exporter plugins to use)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class LumberjackExporterSpec:
    """Hook specifications for exporter plugins."""

    @hookspec
    def lumberjack_get_exporters(self) -> list[type["ExporterProtocol"]]:  # type: ignore[empty-body]
        """Return exporter classes (not instances) implementing ExporterProtocol."""
