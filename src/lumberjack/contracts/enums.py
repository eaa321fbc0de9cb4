# src/lumberjack/contracts/enums.py
"""Enumerations shared across the client.

Values are the literal strings that appear on the wire, so
they can be serialized with ``.value`` directly.
"""

from enum import StrEnum


class LogLevel(StrEnum):
    """Severity of a log entry, lowest first."""

    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class FrontendEventType(StrEnum):
    """Discriminator for FrontendEvent.data."""

    ERROR = "error"
    SESSION_REPLAY = "session_replay"
    CUSTOM = "custom"


class ErrorType(StrEnum):
    """Surface an error was observed on.

    Uses the ingestion service's names: ``unhandledRejection`` covers
    asyncio task failures nobody awaited, ``resourceError`` covers failed
    loads of external resources.
    """

    ERROR = "error"
    UNHANDLED_REJECTION = "unhandledRejection"
    RESOURCE_ERROR = "resourceError"

