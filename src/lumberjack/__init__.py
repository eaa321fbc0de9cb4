"""
Lumberjack: telemetry client for logs, errors, events, objects and spans.

Collects telemetry from an instrumented application and ships it in batches
to the Lumberjack ingestion service (or any registered exporter).

Explicit handle:
    client = LumberjackClient(build_settings(project_name="checkout"))
    client.start()

Module registry (one client per process):
    import lumberjack

    lumberjack.init(project_name="checkout", api_key=key)
    lumberjack.info("Order placed", order_id=42)
    await lumberjack.shutdown()
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from lumberjack.client import LumberjackClient
from lumberjack.context import generate_span_id, generate_trace_id, trace_context
from lumberjack.contracts.enums import LogLevel
from lumberjack.contracts.events import RegisteredObject
from lumberjack.core.config import LumberjackSettings, build_settings
from lumberjack.telemetry.protocols import ExporterProtocol
from lumberjack.telemetry.span_processor import LumberjackSpanProcessor

__version__ = "0.1.0"

_client: LumberjackClient | None = None


def init(
    settings: LumberjackSettings | None = None,
    *,
    exporter: ExporterProtocol | None = None,
    **values: Any,
) -> LumberjackClient:
    """Create, start and register the process-wide client.

    Returns the existing client when one is already registered and open.

    Args:
        settings: Prebuilt settings; otherwise built from ``values``
        exporter: Optional exporter instance overriding ``settings.exporter``
        **values: LumberjackSettings fields

    Raises:
        ConfigurationError: If settings are invalid or the exporter cannot be
            configured.
    """
    global _client
    if _client is not None and not _client.closed:
        return _client
    if settings is None:
        settings = build_settings(**values)
    client = LumberjackClient(settings, exporter=exporter)
    client.start()
    _client = client
    return client


def get_instance() -> LumberjackClient | None:
    return _client


async def shutdown() -> None:
    """Shut down and unregister the process-wide client, if any."""
    global _client
    client, _client = _client, None
    if client is not None:
        await client.shutdown()


def log(level: LogLevel | str, message: str, /, **props: Any) -> None:
    if _client is not None:
        _client.log(level, message, **props)


def trace(message: str, /, **props: Any) -> None:
    if _client is not None:
        _client.trace(message, **props)


def debug(message: str, /, **props: Any) -> None:
    if _client is not None:
        _client.debug(message, **props)


def info(message: str, /, **props: Any) -> None:
    if _client is not None:
        _client.info(message, **props)


def warn(message: str, /, **props: Any) -> None:
    if _client is not None:
        _client.warn(message, **props)


def error(message: str, /, *, exc: BaseException | None = None, **props: Any) -> None:
    if _client is not None:
        _client.error(message, exc=exc, **props)


def fatal(message: str, /, *, exc: BaseException | None = None, **props: Any) -> None:
    if _client is not None:
        _client.fatal(message, exc=exc, **props)


def track(name: str, properties: Mapping[str, Any] | None = None, /, **extra: Any) -> None:
    if _client is not None:
        _client.track(name, properties, **extra)


def capture_error(exc: BaseException, /, **context: Any) -> bool:
    if _client is None:
        return False
    return _client.capture_error(exc, **context)


def register_one(obj: Any) -> RegisteredObject | None:
    if _client is None:
        return None
    return _client.register_one(obj)


def register_many(objects: Mapping[str, Any]) -> list[RegisteredObject]:
    if _client is None:
        return []
    return _client.register_many(objects)


__all__ = [
    "LogLevel",
    "LumberjackClient",
    "LumberjackSettings",
    "LumberjackSpanProcessor",
    "__version__",
    "build_settings",
    "capture_error",
    "debug",
    "error",
    "fatal",
    "generate_span_id",
    "generate_trace_id",
    "get_instance",
    "info",
    "init",
    "log",
    "register_many",
    "register_one",
    "shutdown",
    "trace",
    "trace_context",
    "track",
    "warn",
]
