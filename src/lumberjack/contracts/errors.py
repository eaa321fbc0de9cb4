# src/lumberjack/contracts/errors.py
"""Exception taxonomy for the Lumberjack client.

Only ConfigurationError (and its exporter subclass) is ever raised to the
host application, and only while a client is being constructed. The other
types travel inside ExportResult values or are caught at the producer entry
points and logged.
"""


class LumberjackError(Exception):
    """Base class for all Lumberjack errors."""


class ConfigurationError(LumberjackError):
    """Raised synchronously at construction when settings are invalid."""


class ExporterConfigurationError(ConfigurationError):
    """Raised when an exporter rejects its configuration.

    This is raised during exporter setup (configure), NOT during export
    operations. Export operations must not raise - they return ExportResult.

    Attributes:
        exporter_name: Name of the exporter that failed
        message: Human-readable error description
    """

    def __init__(self, exporter_name: str, message: str) -> None:
        self.exporter_name = exporter_name
        self.message = message
        super().__init__(f"Exporter '{exporter_name}' failed: {message}")


class TransportError(LumberjackError):
    """Network or HTTP failure during export.

    Carried in ExportResult.error, never raised to the caller.

    Attributes:
        status_code: HTTP status when the server answered, None for
            connection-level failures.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ValidationRejection(LumberjackError):
    """Malformed log or object input.

    Raised internally and caught at the entry point; the item is dropped with
    a debug-level diagnostic.
    """


class SerializationError(LumberjackError):
    """A batch could not be encoded for the wire.

    Carried in a non-retryable ExportResult, never raised to the caller.
    """
