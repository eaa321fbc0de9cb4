"""Shared data types for the Lumberjack client.

Everything the buffers, exporters and orchestrator exchange is defined here
so that the leaf modules never import each other.
"""

from lumberjack.contracts.enums import ErrorType, FrontendEventType, LogLevel
from lumberjack.contracts.errors import (
    ConfigurationError,
    ExporterConfigurationError,
    LumberjackError,
    SerializationError,
    TransportError,
    ValidationRejection,
)
from lumberjack.contracts.events import (
    CustomEventData,
    ErrorData,
    ExceptionInfo,
    FrontendEvent,
    LogEntry,
    RegisteredObject,
    ReplayData,
    UserContext,
)
from lumberjack.contracts.results import ExportResult
from lumberjack.contracts.wire import (
    SDK_VERSION,
    EnrichedLogEntry,
    EnrichedRegisteredObject,
    EnrichedSpanRequest,
    ExportMetadata,
)

__all__ = [
    "SDK_VERSION",
    "ConfigurationError",
    "CustomEventData",
    "EnrichedLogEntry",
    "EnrichedRegisteredObject",
    "EnrichedSpanRequest",
    "ErrorData",
    "ErrorType",
    "ExceptionInfo",
    "ExportMetadata",
    "ExportResult",
    "ExporterConfigurationError",
    "FrontendEvent",
    "FrontendEventType",
    "LogEntry",
    "LogLevel",
    "LumberjackError",
    "RegisteredObject",
    "ReplayData",
    "SerializationError",
    "TransportError",
    "UserContext",
    "ValidationRejection",
]
