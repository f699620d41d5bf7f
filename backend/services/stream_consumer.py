import json
import logging
from typing import AsyncIterator, Callable, List

import httpx

from errors import UpstreamError
from services import sse

logger = logging.getLogger(__name__)

UNREADABLE_RESPONSE = "the response could not be read"


def relay_error_message(body: bytes, status: int) -> str:
    try:
        data = json.loads(body)
    except ValueError:
        data = {}
    error = data.get("error") if isinstance(data, dict) else None
    return str(error) if error else f"API request failed: {status}"


def completion_content(body: bytes) -> str:
    """Extracts ``choices[0].message.content`` from a non-streamed completion body."""
    data = json.loads(body)
    if not isinstance(data, dict):
        raise UpstreamError(500, UNREADABLE_RESPONSE)
    choices = data.get("choices") or [{}]
    if not isinstance(choices, list) or not isinstance(choices[0], dict):
        raise UpstreamError(500, UNREADABLE_RESPONSE)
    message = choices[0].get("message") or {}
    if not isinstance(message, dict):
        raise UpstreamError(500, UNREADABLE_RESPONSE)
    content = message.get("content")
    return content if isinstance(content, str) else ""


async def iter_deltas(response: httpx.Response, supports_streaming: bool = True) -> AsyncIterator[str]:
    """
    Yields the content deltas of one relay response, in arrival order.

    Stops at the ``[DONE]`` sentinel; anything after it is left unread. When the
    transport cannot stream, the whole body is read and treated as a single
    non-streamed completion.
    """
    if not response.is_success:
        body = await response.aread()
        message = relay_error_message(body, response.status_code)
        logger.error("Relay returned %s: %s", response.status_code, message)
        raise UpstreamError(response.status_code, message)

    if not supports_streaming:
        logger.info("Transport does not stream; reading the full response body")
        content = completion_content(await response.aread())
        if content:
            yield content
        return

    async for data in sse.iter_payloads(response.aiter_text()):
        if data == sse.DONE:
            logger.debug("Stream done signal received")
            return
        if data.get("error"):
            raise UpstreamError(500, str(data["error"]))
        content = data.get("content")
        if isinstance(content, str) and content:
            yield content


async def consume(
    response: httpx.Response,
    on_delta: Callable[[str], None],
    on_done: Callable[[], None],
    supports_streaming: bool = True,
) -> None:
    """Callback form of :func:`iter_deltas`. ``on_done`` runs once when the stream ends."""
    async for delta in iter_deltas(response, supports_streaming):
        on_delta(delta)
    on_done()


class RelayClient:
    """Sends the turn history to the relay and streams the reply deltas back."""

    def __init__(
        self,
        url: str,
        timeout: float = 60.0,
        supports_streaming: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.supports_streaming = supports_streaming
        self._transport = transport

    async def stream_reply(self, messages: List[dict]) -> AsyncIterator[str]:
        logger.info("Calling relay %s with %d messages", self.url, len(messages))
        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            async with client.stream("POST", self.url, json={"messages": messages}) as response:
                async for delta in iter_deltas(response, self.supports_streaming):
                    yield delta
