import json
import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../backend")))
from errors import ParseError
from services import sse

STREAM = (
    'data: {"choices": [{"delta": {"role": "assistant"}}]}\n\n'
    'data: {"choices": [{"delta": {"content": "Hello"}}]}\n\n'
    ': keep-alive comment\n\n'
    'event: message\ndata: {"choices": [{"delta": {"content": ", wörld 🌱"}}]}\n\n'
    'data: [DONE]\n\n'
)


def collect_payloads(chunks):
    """Runs feed() over the chunks and returns every payload up to and including [DONE]."""
    buffer = ""
    payloads = []
    for chunk in chunks:
        events, buffer = sse.feed(buffer, chunk)
        for event in events:
            for payload in sse.event_payloads(event):
                payloads.append(payload)
                if payload == sse.DONE:
                    return payloads
    return payloads


async def as_stream(chunks):
    for chunk in chunks:
        yield chunk


def test_feed_keeps_incomplete_tail():
    """A partial event is held back until its blank line arrives."""
    events, remainder = sse.feed("", 'data: {"content": "Hi"}\n\ndata: {"cont')
    assert events == ['data: {"content": "Hi"}']
    assert remainder == 'data: {"cont'

    events, remainder = sse.feed(remainder, 'ent": "!"}\n\n')
    assert events == ['data: {"content": "!"}']
    assert remainder == ""


def test_feed_is_pure():
    """Same buffer and chunk always give the same result."""
    first = sse.feed("data: a", "\n\ndata: b")
    second = sse.feed("data: a", "\n\ndata: b")
    assert first == second == (["data: a"], "data: b")


def test_feed_drops_blank_events():
    events, remainder = sse.feed("", "\n\n\n\ndata: x\n\n")
    assert events == ["data: x"]
    assert remainder == ""


def test_event_payloads_only_reads_data_lines():
    event = 'id: 7\nevent: message\ndata:   {"a": 1}  \nretry: 10'
    assert list(sse.event_payloads(event)) == ['{"a": 1}']


def test_chunking_invariance_every_split_point():
    """Reassembled payloads do not depend on where the stream is cut."""
    expected = collect_payloads([STREAM])
    assert len(expected) == 4
    for cut in range(len(STREAM) + 1):
        assert collect_payloads([STREAM[:cut], STREAM[cut:]]) == expected


def test_chunking_invariance_char_by_char_and_three_way():
    expected = collect_payloads([STREAM])
    assert collect_payloads(list(STREAM)) == expected
    for a in range(0, len(STREAM), 7):
        for b in range(a, len(STREAM), 11):
            assert collect_payloads([STREAM[:a], STREAM[a:b], STREAM[b:]]) == expected


def test_decode_payload_rejects_bad_json_and_non_objects():
    assert sse.decode_payload('{"content": "Hi"}') == {"content": "Hi"}
    with pytest.raises(ParseError):
        sse.decode_payload("{not json")
    with pytest.raises(ParseError):
        sse.decode_payload('["a", "list"]')


def test_encode_frame_keeps_text_verbatim():
    frame = sse.encode_frame({"content": "你好 🌱"})
    assert frame == 'data: {"content": "你好 🌱"}\n\n'
    assert sse.DONE_FRAME == "data: [DONE]\n\n"


@pytest.mark.asyncio
async def test_iter_payloads_stops_at_done():
    """Exactly one content event, then termination; nothing after [DONE] is read."""
    chunks = ['data: {"content":"Hi"}\n\ndata: [DONE]\n\n', 'data: {"content":"late"}\n\n']
    seen = [item async for item in sse.iter_payloads(as_stream(chunks))]
    assert seen == [{"content": "Hi"}, sse.DONE]


@pytest.mark.asyncio
async def test_iter_payloads_skips_malformed_payload(caplog):
    """One broken frame is logged and the stream carries on."""
    chunks = ['data: {"content": "a"}\n\ndata: {broken\n\n', 'data: {"content": "b"}\n\n']
    seen = [item async for item in sse.iter_payloads(as_stream(chunks))]
    assert seen == [{"content": "a"}, {"content": "b"}]
    assert "Skipping SSE payload" in caplog.text


@pytest.mark.asyncio
async def test_iter_payloads_discards_unterminated_tail():
    chunks = ['data: {"content": "a"}\n\n', 'data: {"content": "never finished"}']
    seen = [item async for item in sse.iter_payloads(as_stream(chunks))]
    assert seen == [{"content": "a"}]


@pytest.mark.asyncio
async def test_iter_payloads_matches_feed_for_any_split():
    expected = [json.loads(p) if p != sse.DONE else sse.DONE for p in collect_payloads([STREAM])]
    for cut in range(0, len(STREAM) + 1, 5):
        seen = [item async for item in sse.iter_payloads(as_stream([STREAM[:cut], STREAM[cut:]]))]
        assert seen == expected
