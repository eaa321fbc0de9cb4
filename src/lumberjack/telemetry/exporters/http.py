# src/lumberjack/telemetry/exporters/http.py
"""HTTP exporter for the Lumberjack ingestion service.

One authenticated JSON POST per batch per endpoint:

    logs     POST {endpoint}                       {logs: [...], project_name, sdk_version, commit_sha?}
    objects  POST {base}/objects/register          {objects: [...], project_name, sdk_version, commit_sha?}
    spans    POST {base}/spans/batch               {resourceSpans: [...], project_name, sdk_version, commit_sha?}
    events   POST {base}/rum/events                {project_name, session_id, events: [...]}

where ``base`` is the configured logs endpoint with its ``/logs/batch``
suffix removed. Shared metadata is taken from the first element of each
batch.

Without an API key the exporter degrades to console output and reports
success. Non-2xx responses and httpx errors become a failed ExportResult
carrying a TransportError. A batch that cannot be encoded as strict JSON
(NaN is refused) becomes a non-retryable failure carrying a
SerializationError. Nothing is raised.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from lumberjack.contracts.errors import ExporterConfigurationError, SerializationError, TransportError
from lumberjack.contracts.results import ExportResult
from lumberjack.contracts.wire import frontend_events_body
from lumberjack.core.config import DEFAULT_ENDPOINT
from lumberjack.telemetry.exporters.console import ConsoleExporter

if TYPE_CHECKING:
    from lumberjack.contracts.events import FrontendEvent
    from lumberjack.contracts.wire import EnrichedLogEntry, EnrichedRegisteredObject, EnrichedSpanRequest

logger = structlog.get_logger(__name__)

_LOGS_SUFFIX = "/logs/batch"


class HttpExporter:
    """Export batches to the ingestion service over HTTPS.

    Configuration options:
        api_key: Bearer token. Absent or empty selects the console fallback.
        endpoint: Logs endpoint (default https://api.trylumberjack.com/logs/batch)
        project_name: Sent with frontend event batches
        headers: Extra request headers (dict of str -> str)
        timeout: Request timeout in seconds (default 10)

    A shared ``httpx.AsyncClient`` may be injected for connection reuse; by
    default each export opens a short-lived client, so batches flushed inline
    from synchronous code (each under its own event loop) never share a
    connection pool across loops.
    """

    _name = "http"

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client
        self._api_key: str | None = None
        self._endpoint = DEFAULT_ENDPOINT
        self._project_name: str | None = None
        self._headers: dict[str, str] = {}
        self._timeout = 10.0
        self._fallback = ConsoleExporter()
        self._fallback_announced = False

    @property
    def name(self) -> str:
        return self._name

    def configure(self, config: dict[str, Any]) -> None:
        """Configure credentials, endpoint and request options.

        Raises:
            ExporterConfigurationError: If configuration values are invalid
        """
        api_key = config.get("api_key")
        if api_key is not None and not isinstance(api_key, str):
            raise ExporterConfigurationError(self._name, f"'api_key' must be a string, got {type(api_key).__name__}")
        self._api_key = api_key or None

        endpoint = config.get("endpoint", DEFAULT_ENDPOINT)
        if not isinstance(endpoint, str) or not endpoint.startswith(("http://", "https://")):
            raise ExporterConfigurationError(self._name, f"'endpoint' must be an http(s) URL, got {endpoint!r}")
        self._endpoint = endpoint

        project_name = config.get("project_name")
        if project_name is not None and not isinstance(project_name, str):
            raise ExporterConfigurationError(self._name, "'project_name' must be a string")
        self._project_name = project_name

        headers = config.get("headers", {})
        if not isinstance(headers, dict) or not all(isinstance(k, str) and isinstance(v, str) for k, v in headers.items()):
            raise ExporterConfigurationError(self._name, "'headers' must be a mapping of strings to strings")
        self._headers = dict(headers)

        timeout = config.get("timeout", 10.0)
        if isinstance(timeout, bool) or not isinstance(timeout, int | float) or timeout <= 0:
            raise ExporterConfigurationError(self._name, f"'timeout' must be a positive number, got {timeout!r}")
        self._timeout = float(timeout)

        self._fallback.configure({"format": config.get("fallback_format", "pretty")})
        logger.debug(
            "HTTP exporter configured",
            endpoint=self._endpoint,
            has_api_key=self._api_key is not None,
            extra_headers=sorted(self._headers),
        )

    # =========================================================================
    # Endpoints
    # =========================================================================

    def _derive(self, suffix: str) -> str:
        base = self._endpoint.rstrip("/")
        base = base.removesuffix(_LOGS_SUFFIX)
        return f"{base}{suffix}"

    @property
    def logs_endpoint(self) -> str:
        return self._endpoint

    @property
    def objects_endpoint(self) -> str:
        return self._derive("/objects/register")

    @property
    def spans_endpoint(self) -> str:
        return self._derive("/spans/batch")

    @property
    def events_endpoint(self) -> str:
        return self._derive("/rum/events")

    # =========================================================================
    # Transport
    # =========================================================================

    def _request_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
            **self._headers,
        }

    async def _post(self, url: str, content: str, kind: str) -> None:
        """POST an encoded JSON body.

        Raises:
            TransportError: On httpx errors or a non-2xx response.
        """
        headers = self._request_headers()
        try:
            if self._client is not None:
                response = await self._client.post(url, content=content, headers=headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, content=content, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to send {kind}: {type(e).__name__}: {e}") from e

        if not response.is_success:
            raise TransportError(
                f"Failed to send {kind}: {response.status_code} {response.reason_phrase} - {response.text}",
                status_code=response.status_code,
            )

    def _announce_fallback(self) -> None:
        if not self._fallback_announced:
            logger.warning("No API key configured; telemetry is written to the console instead of being sent")
            self._fallback_announced = True

    async def _send(self, url: str, build_body: Callable[[], dict[str, Any]], kind: str, count: int) -> ExportResult:
        try:
            content = json.dumps(build_body(), default=str, allow_nan=False)
        except (TypeError, ValueError, RecursionError) as e:
            logger.error(f"Failed to encode {kind}", error=str(e), batch_size=count)
            return ExportResult.failed(SerializationError(f"Failed to encode {kind}: {e}"), retryable=False)
        try:
            await self._post(url, content, kind)
        except TransportError as e:
            return ExportResult.failed(e)
        return ExportResult.ok(count)

    # =========================================================================
    # ExporterProtocol
    # =========================================================================

    async def export_logs(self, logs: Sequence[EnrichedLogEntry]) -> ExportResult:
        if not logs:
            return ExportResult.ok(0)
        if self._api_key is None:
            self._announce_fallback()
            return await self._fallback.export_logs(logs)
        return await self._send(
            self.logs_endpoint,
            lambda: {"logs": [log.to_wire() for log in logs], **logs[0].metadata.to_wire()},
            "logs",
            len(logs),
        )

    async def export_objects(self, objects: Sequence[EnrichedRegisteredObject]) -> ExportResult:
        if not objects:
            return ExportResult.ok(0)
        if self._api_key is None:
            self._announce_fallback()
            return await self._fallback.export_objects(objects)
        return await self._send(
            self.objects_endpoint,
            lambda: {"objects": [obj.to_wire() for obj in objects], **objects[0].metadata.to_wire()},
            "objects",
            len(objects),
        )

    async def export_spans(self, request: EnrichedSpanRequest) -> ExportResult:
        span_count = request.span_count
        if span_count == 0:
            return ExportResult.ok(0)
        if self._api_key is None:
            self._announce_fallback()
            return await self._fallback.export_spans(request)
        return await self._send(self.spans_endpoint, request.to_wire, "spans", span_count)

    async def export_events(self, events: Sequence[FrontendEvent], session_id: str | None) -> ExportResult:
        if not events:
            return ExportResult.ok(0)
        if self._api_key is None:
            self._announce_fallback()
            return await self._fallback.export_events(events, session_id)
        return await self._send(
            self.events_endpoint,
            lambda: frontend_events_body(list(events), session_id, self._project_name or ""),
            "events",
            len(events),
        )

    async def shutdown(self) -> None:
        # An injected client is owned by the caller
        pass
