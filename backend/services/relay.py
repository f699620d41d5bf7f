import json
import logging
from typing import AsyncIterator, Dict, List

import httpx

from errors import UpstreamError
from services import sse
from settings import Settings, settings

logger = logging.getLogger(__name__)

STREAM_ERROR_MESSAGE = "Streaming response failed"


def build_headers(api_key: str) -> Dict[str, str]:
    # Accept keys that already carry the scheme
    clean_key = api_key.strip()
    auth_val = clean_key if clean_key.lower().startswith("bearer ") else f"Bearer {clean_key}"
    return {
        "Authorization": auth_val,
        "Content-Type": "application/json",
    }


def extract_delta_content(data: dict) -> str:
    """Returns ``choices[0].delta.content`` of one upstream chunk, or ``""``."""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


def upstream_error_message(body: bytes, status: int) -> str:
    try:
        data = json.loads(body)
    except ValueError:
        data = {}
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return f"API request failed: {status}"


class UpstreamStream:
    """An open, successful upstream response whose deltas are re-framed for the caller."""

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response):
        self._client = client
        self._response = response

    async def frames(self) -> AsyncIterator[str]:
        try:
            async for data in sse.iter_payloads(self._response.aiter_text()):
                if data == sse.DONE:
                    yield sse.DONE_FRAME
                    return
                content = extract_delta_content(data)
                if content:
                    yield sse.encode_frame({"content": content})
        except httpx.HTTPError as e:
            # Headers are already on the wire: report with a terminal frame instead
            logger.error("Upstream stream failed after streaming started: %r", e)
            yield sse.encode_frame({"error": STREAM_ERROR_MESSAGE})
        finally:
            await self.aclose()

    async def aclose(self):
        await self._response.aclose()
        await self._client.aclose()


class UpstreamRelay:
    """Opens exactly one streaming completion request per inbound chat request."""

    def __init__(self, config: Settings = settings, transport: httpx.AsyncBaseTransport | None = None):
        self._config = config
        self._transport = transport

    def build_payload(self, messages: List[dict]) -> dict:
        return {
            "model": self._config.get_model(),
            "messages": messages,
            "temperature": self._config.get_temperature(),
            "stream": True,
        }

    async def open(self, messages: List[dict]) -> UpstreamStream:
        """
        Sends the completion request and waits for the response status.

        Raises UpstreamError before anything is streamed when the model API
        cannot be reached or answers with a non-success status.
        """
        client = httpx.AsyncClient(transport=self._transport, timeout=self._config.get_request_timeout())
        request = client.build_request(
            "POST",
            self._config.get_api_url(),
            headers=build_headers(self._config.get_api_key()),
            json=self.build_payload(messages),
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            logger.error("Could not reach the model API at %s: %r", self._config.get_api_url(), e)
            raise UpstreamError(502, f"Could not reach the model API: {e}", status_code=502) from e

        if not response.is_success:
            try:
                body = await response.aread()
            except httpx.HTTPError:
                body = b""
            finally:
                await response.aclose()
                await client.aclose()
            message = upstream_error_message(body, response.status_code)
            logger.error("Model API returned %s: %s", response.status_code, message)
            raise UpstreamError(response.status_code, message)

        return UpstreamStream(client, response)
