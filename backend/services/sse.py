"""
Server-sent-events framing shared by both legs of the pipe
(model API -> relay, relay -> chat client).

A frame is a block of lines terminated by a blank line. Only ``data: `` lines
carry payload; the payload ``[DONE]`` ends the stream.
"""

import json
import logging
from typing import AsyncIterable, AsyncIterator, Iterator, List, Tuple, Union

from errors import ParseError

logger = logging.getLogger(__name__)

EVENT_DELIMITER = "\n\n"
DATA_PREFIX = "data: "
DONE = "[DONE]"
DONE_FRAME = f"{DATA_PREFIX}{DONE}{EVENT_DELIMITER}"


def feed(buffer: str, chunk: str) -> Tuple[List[str], str]:
    """
    Appends ``chunk`` to ``buffer`` and splits off every complete event.

    Returns ``(events, remainder)``. The remainder is the trailing, possibly
    incomplete segment and must be passed back in as ``buffer`` on the next call.
    """
    segments = (buffer + chunk).split(EVENT_DELIMITER)
    remainder = segments.pop()
    events = [event for event in segments if event.strip()]
    return events, remainder


def event_payloads(event: str) -> Iterator[str]:
    """Yields the trimmed payload of every ``data:`` line of one event."""
    for line in event.split("\n"):
        if line.startswith(DATA_PREFIX):
            yield line[len(DATA_PREFIX):].strip()


def decode_payload(payload: str) -> dict:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ParseError(payload, str(e)) from e
    if not isinstance(data, dict):
        raise ParseError(payload, "not a JSON object")
    return data


def encode_frame(data: dict) -> str:
    return f"{DATA_PREFIX}{json.dumps(data, ensure_ascii=False)}{EVENT_DELIMITER}"


async def iter_payloads(chunks: AsyncIterable[str]) -> AsyncIterator[Union[dict, str]]:
    """
    Runs :func:`feed` over a text stream and yields each decoded payload in order.

    When the ``[DONE]`` sentinel arrives, ``DONE`` is yielded once and iteration
    stops; nothing after it is read. Payloads that fail to decode are logged and
    skipped.
    """
    buffer = ""
    async for chunk in chunks:
        events, buffer = feed(buffer, chunk)
        for event in events:
            for payload in event_payloads(event):
                if payload == DONE:
                    yield DONE
                    return
                try:
                    data = decode_payload(payload)
                except ParseError as e:
                    logger.warning("Skipping SSE payload: %s", e.message)
                    continue
                yield data
    if buffer.strip():
        logger.debug("Discarding incomplete trailing SSE fragment (%d chars)", len(buffer))
