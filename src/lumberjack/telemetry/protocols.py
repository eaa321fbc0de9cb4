# src/lumberjack/telemetry/protocols.py
"""Protocol definitions for exporters.

Exporters are the only components allowed to perform network I/O. The
buffers depend on this protocol alone, so HTTP, console, mock and custom
sinks are drop-in substitutes.
"""

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from lumberjack.contracts.events import FrontendEvent
    from lumberjack.contracts.results import ExportResult
    from lumberjack.contracts.wire import EnrichedLogEntry, EnrichedRegisteredObject, EnrichedSpanRequest


@runtime_checkable
class ExporterProtocol(Protocol):
    """Protocol for telemetry exporters.

    Lifecycle:
        1. Discovery: lumberjack_get_exporters hook returns exporter classes
        2. Instantiation: the factory creates an instance with no arguments
        3. Configuration: configure() called with exporter options
        4. Operation: export_*() called once per flushed batch
        5. Shutdown: shutdown() called after the final flush

    Error handling:
        - configure() MUST raise ExporterConfigurationError on invalid config
        - export_*() MUST NOT raise - return a failed ExportResult instead
        - shutdown() MUST be idempotent
    """

    @property
    def name(self) -> str:
        """Exporter name for configuration reference (``exporter: http``)."""
        ...

    def configure(self, config: dict[str, Any]) -> None:
        """Configure the exporter.

        The orchestrator always supplies ``project_name``, ``api_key`` and
        ``endpoint``; exporters ignore keys they do not use.

        Raises:
            ExporterConfigurationError: If configuration is invalid
        """
        ...

    async def export_logs(self, logs: "Sequence[EnrichedLogEntry]") -> "ExportResult":
        """Export one batch of log entries."""
        ...

    async def export_objects(self, objects: "Sequence[EnrichedRegisteredObject]") -> "ExportResult":
        """Export one batch of registered objects."""
        ...

    async def export_spans(self, request: "EnrichedSpanRequest") -> "ExportResult":
        """Export one OTLP-shaped span tree. items_exported counts spans."""
        ...

    async def export_events(self, events: "Sequence[FrontendEvent]", session_id: str | None) -> "ExportResult":
        """Export one batch of frontend events for a session."""
        ...

    async def shutdown(self) -> None:
        """Release any resources held by the exporter."""
        ...
