# src/lumberjack/gatekeeper.py
"""Remote boolean flags with a 60 second cache.

``check(key)`` serves a cached value while it is fresher than the TTL and
otherwise asks ``GET {endpoint}/{key}`` (response ``{"allowed": bool}``).
Every failure path (no API key, transport error, non-2xx, malformed body)
answers False and is not cached, so a recovered service is consulted on the
next call.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
import structlog

from lumberjack.core.clock import DEFAULT_CLOCK, Clock
from lumberjack.core.config import DEFAULT_GATEKEEPER_ENDPOINT

logger = structlog.get_logger(__name__)

CACHE_TTL_SECONDS = 60.0
DEFAULT_TYPES_PATH = Path(".lumberjack") / "gatekeeper-types.json"


@dataclass(frozen=True, slots=True)
class GatekeeperCacheEntry:
    value: bool
    timestamp: float


class Gatekeeper:
    """TTL-cached gatekeeper lookups.

    Args:
        api_key: Bearer token for checks
        endpoint: Gatekeeper base URL
        service_token: Bearer token for schema fetches
        types_path: JSON file listing known keys (``{"gatekeepers": [...]}``);
            unknown keys are warned about. Missing file disables the check.
        log_info: Receives expect_pass/expect_fail outcome messages
        client: Optional shared httpx.AsyncClient
        clock: Time source for the TTL
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        endpoint: str = DEFAULT_GATEKEEPER_ENDPOINT,
        service_token: str | None = None,
        types_path: Path | None = DEFAULT_TYPES_PATH,
        log_info: Callable[..., None] | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        clock: Clock | None = None,
    ) -> None:
        self._api_key = api_key
        self._endpoint = endpoint.rstrip("/")
        self._service_token = service_token
        self._log_info = log_info
        self._client = client
        self._timeout = timeout
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._cache: dict[str, GatekeeperCacheEntry] = {}
        self._known_keys = self._load_known_keys(types_path)

    @staticmethod
    def _load_known_keys(types_path: Path | None) -> frozenset[str] | None:
        if types_path is None or not types_path.exists():
            return None
        try:
            document = json.loads(types_path.read_text(encoding="utf-8"))
            return frozenset(str(key) for key in document["gatekeepers"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.debug("Could not load gatekeeper types", path=str(types_path), error=str(e))
            return None

    async def _get(self, url: str, token: str) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        if self._client is not None:
            return await self._client.get(url, headers=headers, timeout=self._timeout)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.get(url, headers=headers)

    async def check(self, key: str) -> bool:
        """Return whether the gatekeeper ``key`` is open. Fails closed."""
        if self._known_keys is not None and key not in self._known_keys:
            logger.warning("Unknown gatekeeper key", key=key, hint="Regenerate .lumberjack/gatekeeper-types.json")

        cached = self._cache.get(key)
        if cached is not None:
            age = self._clock.monotonic() - cached.timestamp
            if age < CACHE_TTL_SECONDS:
                return cached.value
            del self._cache[key]

        if not self._api_key:
            logger.error("No API key configured for gatekeeper check", key=key)
            return False

        try:
            response = await self._get(f"{self._endpoint}/{key}", self._api_key)
        except httpx.HTTPError as e:
            logger.error("Failed to check gatekeeper", key=key, error=str(e))
            return False
        if not response.is_success:
            logger.error("Gatekeeper check failed", key=key, status=response.status_code, reason=response.reason_phrase)
            return False
        try:
            allowed = response.json()["allowed"]
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Malformed gatekeeper response", key=key, error=str(e))
            return False
        if not isinstance(allowed, bool):
            logger.error("Malformed gatekeeper response", key=key, error=f"'allowed' is {type(allowed).__name__}")
            return False

        self._cache[key] = GatekeeperCacheEntry(value=allowed, timestamp=self._clock.monotonic())
        return allowed

    async def fetch_schema(self) -> dict[str, Any] | None:
        """Fetch the gatekeeper schema with the service token."""
        if not self._service_token:
            logger.error("No service token configured for fetching gatekeeper schema")
            return None
        try:
            response = await self._get(f"{self._endpoint}/schema", self._service_token)
        except httpx.HTTPError as e:
            logger.error("Failed to fetch gatekeeper schema", error=str(e))
            return None
        if not response.is_success:
            logger.error("Failed to fetch gatekeeper schema", status=response.status_code, reason=response.reason_phrase)
            return None
        try:
            schema = response.json()
        except ValueError as e:
            logger.error("Malformed gatekeeper schema", error=str(e))
            return None
        return schema if isinstance(schema, dict) else None

    def clear_cache(self, key: str | None = None) -> None:
        """Evict one entry, or the whole cache when key is None."""
        if key is None:
            self._cache.clear()
        else:
            self._cache.pop(key, None)

    def cached(self, key: str) -> GatekeeperCacheEntry | None:
        return self._cache.get(key)

    def gatekeeper(self, key: str) -> GatekeeperCheck:
        return GatekeeperCheck(self, key)

    def _report(self, message: str, **props: Any) -> None:
        if self._log_info is not None:
            self._log_info(message, **props)


class GatekeeperCheck:
    """Check a gatekeeper against an expected outcome and log the result."""

    def __init__(self, gatekeeper: Gatekeeper, key: str) -> None:
        self._gatekeeper = gatekeeper
        self._key = key

    async def expect_pass(self) -> bool:
        allowed = await self._gatekeeper.check(self._key)
        if allowed:
            self._gatekeeper._report(f"Gatekeeper '{self._key}' passed", gatekeeper=self._key, result="pass")
        else:
            self._gatekeeper._report(
                f"Gatekeeper '{self._key}' failed (expected pass)",
                gatekeeper=self._key,
                result="fail",
                expected="pass",
            )
        return allowed

    async def expect_fail(self) -> bool:
        allowed = await self._gatekeeper.check(self._key)
        if not allowed:
            self._gatekeeper._report(f"Gatekeeper '{self._key}' failed", gatekeeper=self._key, result="fail")
        else:
            self._gatekeeper._report(
                f"Gatekeeper '{self._key}' passed (expected fail)",
                gatekeeper=self._key,
                result="pass",
                expected="fail",
            )
        return allowed
