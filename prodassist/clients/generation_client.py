"""
Generation Client

HTTP client for the LLM-backed generation endpoints. Plain endpoints take a
JSON body and answer with JSON; the arc locations endpoint answers with a
server-sent event stream of {type: progress|complete|error} messages.
"""

import json
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Optional

import httpx

from prodassist.core.config import Settings, get_settings
from prodassist.core.exceptions import GenerationCancelledError, GenerationEndpointError
from prodassist.core.logging_config import get_logger

logger = get_logger("clients.generation")


@dataclass
class StreamEvent:
    """One parsed server-sent event."""
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> Optional[str]:
        return self.payload.get("message")


def extract_error_message(status_code: int, body: str, fallback: Optional[str] = None) -> str:
    """
    Human-readable message for a failed generation response.

    Prefers the server's "details" field, then "error". A body that is not
    JSON is used verbatim and an empty body gives "Server error: <status>".
    JSON without either field falls back to the given fallback, or to the
    same status message.
    """
    text = (body or "").strip()
    if not text:
        return f"Server error: {status_code}"
    try:
        data = json.loads(text)
    except ValueError:
        return text

    if isinstance(data, dict):
        message = data.get("details") or data.get("error")
        if message:
            return message if isinstance(message, str) else json.dumps(message)

    return fallback or f"Server error: {status_code}"


def parse_sse_line(line: str) -> Optional[StreamEvent]:
    """Parse a "data: {...}" line; anything else (or malformed JSON) yields None."""
    if not line.startswith("data:"):
        return None
    raw = line[len("data:"):].strip()
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        logger.debug(f"Ignoring malformed stream chunk: {raw[:80]}")
        return None
    if not isinstance(data, dict) or not data.get("type"):
        return None
    return StreamEvent(type=data["type"], payload=data)


class GenerationClient:
    """
    Client for generation endpoints.

    Errors of every kind (HTTP status, transport, malformed body) are raised
    as GenerationEndpointError carrying a human-readable message.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.settings = settings or get_settings()
        self._client = http_client or httpx.AsyncClient(timeout=self.settings.generation_timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def post_json(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON body to an endpoint and return the decoded JSON response."""
        url = self.settings.endpoint_url(endpoint)
        logger.info(f"Calling generation endpoint: {endpoint}")

        try:
            response = await self._client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise GenerationEndpointError(endpoint, str(e) or e.__class__.__name__)

        if response.is_error:
            message = extract_error_message(
                response.status_code, response.text, f"Failed to generate {endpoint}"
            )
            logger.error(f"Generation endpoint {endpoint} failed ({response.status_code}): {message}")
            raise GenerationEndpointError(endpoint, message, response.status_code)

        try:
            data = response.json()
        except ValueError:
            raise GenerationEndpointError(
                endpoint, response.text.strip() or "Empty response", response.status_code
            )

        if not isinstance(data, dict):
            raise GenerationEndpointError(endpoint, "Unexpected response shape", response.status_code)
        return data

    async def stream_events(self, endpoint: str, payload: Dict[str, Any]) -> AsyncIterator[StreamEvent]:
        """
        POST to a streaming endpoint and yield its events.

        Closing the generator (for example with aclosing) closes the
        underlying HTTP stream.
        """
        url = self.settings.endpoint_url(endpoint)
        logger.info(f"Opening generation stream: {endpoint}")

        try:
            async with self._client.stream("POST", url, json=payload) as response:
                if response.is_error:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    message = extract_error_message(
                        response.status_code, body, f"Failed to generate {endpoint}"
                    )
                    raise GenerationEndpointError(endpoint, message, response.status_code)

                async for line in response.aiter_lines():
                    event = parse_sse_line(line)
                    if event is not None:
                        yield event
        except httpx.HTTPError as e:
            raise GenerationEndpointError(endpoint, str(e) or e.__class__.__name__)

    async def stream_result(
        self,
        endpoint: str,
        payload: Dict[str, Any],
        on_progress: Optional[Callable[[StreamEvent], None]] = None,
        is_cancelled: Optional[Callable[[], bool]] = None
    ) -> Any:
        """
        Consume a generation stream and return the payload of its complete event.

        Raises GenerationEndpointError on an error event or when the stream ends
        without completing, and GenerationCancelledError when is_cancelled turns
        true mid-stream (the stream is closed at that point).
        """
        async with aclosing(self.stream_events(endpoint, payload)) as events:
            async for event in events:
                if is_cancelled and is_cancelled():
                    logger.info(f"Closing generation stream {endpoint} after cancellation")
                    raise GenerationCancelledError(endpoint)

                if event.type == "progress":
                    if on_progress:
                        on_progress(event)
                elif event.type == "complete":
                    result = event.payload.get("result")
                    if result is None:
                        result = event.payload.get("locations")
                    if result is not None:
                        return result
                elif event.type == "error":
                    message = (
                        event.payload.get("details")
                        or event.payload.get("error")
                        or event.payload.get("message")
                        or f"Failed to generate {endpoint}"
                    )
                    raise GenerationEndpointError(endpoint, str(message))

        raise GenerationEndpointError(endpoint, "Stream ended without a result")
