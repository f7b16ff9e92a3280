"""
Tests for Generation Client

Tests for prodassist/clients/generation_client.py
"""

import json

import httpx
import pytest

from prodassist.clients.generation_client import (
    GenerationClient,
    extract_error_message,
    parse_sse_line,
)
from prodassist.core.exceptions import GenerationCancelledError, GenerationEndpointError


def make_client(settings, handler) -> GenerationClient:
    return GenerationClient(settings, httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def sse_body(*events) -> bytes:
    lines = []
    for event in events:
        lines.append(event if isinstance(event, str) else f"data: {json.dumps(event)}")
        lines.append("")
    return "\n".join(lines).encode()


class TestExtractErrorMessage:
    """Tests for human-readable error messages."""

    def test_details_preferred(self):
        body = json.dumps({"details": "Model overloaded", "error": "Generation failed"})

        assert extract_error_message(500, body) == "Model overloaded"

    def test_error_field(self):
        assert extract_error_message(400, json.dumps({"error": "Missing casting"})) == "Missing casting"

    def test_raw_text(self):
        assert extract_error_message(502, "Bad Gateway") == "Bad Gateway"

    def test_generic_fallback(self):
        assert extract_error_message(503, "") == "Server error: 503"
        assert extract_error_message(500, json.dumps({"ok": False})) == "Server error: 500"
        assert extract_error_message(500, "{}", "Failed to generate budget") == "Failed to generate budget"
        assert extract_error_message(500, "  ", "Failed to generate budget") == "Server error: 500"


class TestParseSSELine:
    """Tests for server-sent event parsing."""

    def test_progress_event(self):
        event = parse_sse_line('data: {"type": "progress", "message": "Scouting"}')

        assert event.type == "progress"
        assert event.message == "Scouting"

    @pytest.mark.parametrize("line", ["", ": keepalive", "data: ", "data: {not json", 'data: {"message": "x"}', "data: []"])
    def test_ignored_lines(self, line):
        assert parse_sse_line(line) is None


class TestPostJson:
    """Tests for plain JSON endpoints."""

    @pytest.mark.asyncio
    async def test_success(self, settings):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"budget": {"total": 10}})

        client = make_client(settings, handler)
        result = await client.post_json("budget", {"arcIndex": 0})
        await client.aclose()

        assert result == {"budget": {"total": 10}}
        assert seen["url"] == "http://generation.test/api/generate/budget"
        assert seen["body"] == {"arcIndex": 0}

    @pytest.mark.asyncio
    async def test_error_status(self, settings):
        client = make_client(settings, lambda request: httpx.Response(500, json={"details": "Timed out upstream"}))

        with pytest.raises(GenerationEndpointError) as exc_info:
            await client.post_json("casting", {})

        assert exc_info.value.message == "Timed out upstream"
        assert exc_info.value.status_code == 500
        assert exc_info.value.endpoint == "casting"

    @pytest.mark.asyncio
    async def test_empty_error_body(self, settings):
        client = make_client(settings, lambda request: httpx.Response(500, content=b""))

        with pytest.raises(GenerationEndpointError) as exc_info:
            await client.post_json("casting", {})

        assert exc_info.value.message == "Server error: 500"
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_non_json_success_body(self, settings):
        client = make_client(settings, lambda request: httpx.Response(200, text="<html>maintenance</html>"))

        with pytest.raises(GenerationEndpointError) as exc_info:
            await client.post_json("schedule", {})

        assert exc_info.value.message == "<html>maintenance</html>"

    @pytest.mark.asyncio
    async def test_transport_error(self, settings):
        def handler(request):
            raise httpx.ConnectError("Connection refused")

        client = make_client(settings, handler)

        with pytest.raises(GenerationEndpointError) as exc_info:
            await client.post_json("equipment", {})

        assert "Connection refused" in exc_info.value.message


class TestStreamResult:
    """Tests for the streaming arc-locations endpoint."""

    @pytest.mark.asyncio
    async def test_complete_event(self, settings):
        body = sse_body(
            {"type": "progress", "message": "Grouping locations"},
            ": keepalive",
            "data: {broken",
            {"type": "progress", "message": "Finding venues"},
            {"type": "complete", "result": {"locationGroups": [{"id": "g1"}]}},
        )
        client = make_client(settings, lambda request: httpx.Response(200, content=body))
        messages = []

        result = await client.stream_result("arc-locations", {}, on_progress=lambda e: messages.append(e.message))

        assert result == {"locationGroups": [{"id": "g1"}]}
        assert messages == ["Grouping locations", "Finding venues"]

    @pytest.mark.asyncio
    async def test_complete_with_locations_key(self, settings):
        body = sse_body({"type": "complete", "locations": [{"id": "g1"}]})
        client = make_client(settings, lambda request: httpx.Response(200, content=body))

        assert await client.stream_result("arc-locations", {}) == [{"id": "g1"}]

    @pytest.mark.asyncio
    async def test_error_event(self, settings):
        body = sse_body({"type": "progress"}, {"type": "error", "error": "No scenes"})
        client = make_client(settings, lambda request: httpx.Response(200, content=body))

        with pytest.raises(GenerationEndpointError, match="No scenes"):
            await client.stream_result("arc-locations", {})

    @pytest.mark.asyncio
    async def test_stream_ends_without_result(self, settings):
        client = make_client(settings, lambda request: httpx.Response(200, content=sse_body({"type": "progress"})))

        with pytest.raises(GenerationEndpointError, match="without a result"):
            await client.stream_result("arc-locations", {})

    @pytest.mark.asyncio
    async def test_error_status(self, settings):
        client = make_client(settings, lambda request: httpx.Response(429, json={"error": "Slow down"}))

        with pytest.raises(GenerationEndpointError) as exc_info:
            await client.stream_result("arc-locations", {})

        assert exc_info.value.message == "Slow down"
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_cancelled(self, settings):
        """Test the stream is abandoned once cancellation is observed."""
        body = sse_body(
            {"type": "progress", "message": "one"},
            {"type": "progress", "message": "two"},
            {"type": "complete", "result": []},
        )
        client = make_client(settings, lambda request: httpx.Response(200, content=body))
        messages = []

        with pytest.raises(GenerationCancelledError):
            await client.stream_result(
                "arc-locations",
                {},
                on_progress=lambda e: messages.append(e.message),
                is_cancelled=lambda: len(messages) >= 1,
            )

        assert messages == ["one"]
