# tests/unit/test_gatekeeper.py
"""Tests for gatekeeper checks, caching and schema fetches."""

import json
from pathlib import Path
from typing import Any
from unittest.mock import patch

import httpx
import pytest
import respx

from lumberjack.core.clock import MockClock
from lumberjack.gatekeeper import Gatekeeper

ENDPOINT = "https://gk.example.com/gatekeeper"


def make_gatekeeper(clock: MockClock, **kwargs: Any) -> Gatekeeper:
    kwargs.setdefault("api_key", "secret")
    kwargs.setdefault("types_path", None)
    return Gatekeeper(endpoint=ENDPOINT, clock=clock, **kwargs)


class TestCheck:
    @pytest.mark.asyncio
    @respx.mock
    async def test_allowed_value_returned_and_cached(self, mock_clock: MockClock) -> None:
        route = respx.get(f"{ENDPOINT}/new-checkout").mock(return_value=httpx.Response(200, json={"allowed": True}))
        gatekeeper = make_gatekeeper(mock_clock)

        assert await gatekeeper.check("new-checkout") is True
        mock_clock.advance(59)
        assert await gatekeeper.check("new-checkout") is True

        assert route.call_count == 1
        assert route.calls.last.request.headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    @respx.mock
    async def test_cache_expires_after_ttl(self, mock_clock: MockClock) -> None:
        route = respx.get(f"{ENDPOINT}/flag").mock(
            side_effect=[httpx.Response(200, json={"allowed": True}), httpx.Response(200, json={"allowed": False})]
        )
        gatekeeper = make_gatekeeper(mock_clock)

        assert await gatekeeper.check("flag") is True
        mock_clock.advance(60)
        assert await gatekeeper.check("flag") is False
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_failures_answer_false_and_are_not_cached(self, mock_clock: MockClock) -> None:
        route = respx.get(f"{ENDPOINT}/flag").mock(
            side_effect=[httpx.Response(500), httpx.Response(200, json={"allowed": True})]
        )
        gatekeeper = make_gatekeeper(mock_clock)

        assert await gatekeeper.check("flag") is False
        assert gatekeeper.cached("flag") is None
        assert await gatekeeper.check("flag") is True
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_fails_closed(self, mock_clock: MockClock) -> None:
        respx.get(f"{ENDPOINT}/flag").mock(side_effect=httpx.ConnectTimeout("timeout"))
        assert await make_gatekeeper(mock_clock).check("flag") is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_body_fails_closed(self, mock_clock: MockClock) -> None:
        respx.get(f"{ENDPOINT}/flag").mock(return_value=httpx.Response(200, json={"allowed": "yes"}))
        assert await make_gatekeeper(mock_clock).check("flag") is False

    @pytest.mark.asyncio
    async def test_no_api_key_fails_closed(self, mock_clock: MockClock) -> None:
        with patch("lumberjack.gatekeeper.logger") as mock_logger:
            assert await make_gatekeeper(mock_clock, api_key=None).check("flag") is False
        mock_logger.error.assert_called_once()

    @pytest.mark.asyncio
    @respx.mock
    async def test_clear_cache(self, mock_clock: MockClock) -> None:
        route = respx.get(f"{ENDPOINT}/flag").mock(return_value=httpx.Response(200, json={"allowed": True}))
        gatekeeper = make_gatekeeper(mock_clock)

        await gatekeeper.check("flag")
        gatekeeper.clear_cache("flag")
        await gatekeeper.check("flag")
        gatekeeper.clear_cache()

        assert route.call_count == 2
        assert gatekeeper.cached("flag") is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_unknown_key_warned(self, mock_clock: MockClock, tmp_path: Path) -> None:
        types_path = tmp_path / "gatekeeper-types.json"
        types_path.write_text(json.dumps({"gatekeepers": ["known"]}))
        respx.get(f"{ENDPOINT}/mystery").mock(return_value=httpx.Response(200, json={"allowed": False}))

        with patch("lumberjack.gatekeeper.logger") as mock_logger:
            await make_gatekeeper(mock_clock, types_path=types_path).check("mystery")

        assert mock_logger.warning.call_args[0][0] == "Unknown gatekeeper key"


class TestExpectations:
    @pytest.mark.asyncio
    @respx.mock
    async def test_expect_pass_logs_outcome(self, mock_clock: MockClock) -> None:
        respx.get(f"{ENDPOINT}/flag").mock(return_value=httpx.Response(200, json={"allowed": False}))
        messages: list[tuple[str, dict[str, Any]]] = []
        gatekeeper = make_gatekeeper(mock_clock, log_info=lambda message, **props: messages.append((message, props)))

        allowed = await gatekeeper.gatekeeper("flag").expect_pass()

        assert allowed is False
        assert messages == [
            ("Gatekeeper 'flag' failed (expected pass)", {"gatekeeper": "flag", "result": "fail", "expected": "pass"})
        ]

    @pytest.mark.asyncio
    @respx.mock
    async def test_expect_fail_logs_outcome(self, mock_clock: MockClock) -> None:
        respx.get(f"{ENDPOINT}/flag").mock(return_value=httpx.Response(200, json={"allowed": False}))
        messages: list[str] = []
        gatekeeper = make_gatekeeper(mock_clock, log_info=lambda message, **props: messages.append(message))

        assert await gatekeeper.gatekeeper("flag").expect_fail() is False
        assert messages == ["Gatekeeper 'flag' failed"]


class TestSchema:
    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_schema_uses_service_token(self, mock_clock: MockClock) -> None:
        route = respx.get(f"{ENDPOINT}/schema").mock(
            return_value=httpx.Response(200, json={"gatekeepers": [{"key": "flag"}]})
        )
        gatekeeper = make_gatekeeper(mock_clock, service_token="svc")

        schema = await gatekeeper.fetch_schema()

        assert schema == {"gatekeepers": [{"key": "flag"}]}
        assert route.calls.last.request.headers["Authorization"] == "Bearer svc"

    @pytest.mark.asyncio
    async def test_fetch_schema_without_token(self, mock_clock: MockClock) -> None:
        assert await make_gatekeeper(mock_clock).fetch_schema() is None
