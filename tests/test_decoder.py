import asyncio
import json

from agent_transcript.decoder import FrameDecodeError, FrameDecoder, adecode_stream, decode_stream
from agent_transcript.models import (
    EndEvent,
    IterationStartEvent,
    ThoughtTokenEvent,
    UnknownEvent,
)


def _frame(payload: dict) -> bytes:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n".encode("utf-8")


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------

def test_single_frame_decodes_to_typed_event():
    events = list(decode_stream([_frame({"type": "thought_token", "token": "hi"})]))
    assert len(events) == 1
    assert isinstance(events[0], ThoughtTokenEvent)
    assert events[0].token == "hi"


def test_frame_split_at_any_two_boundaries_matches_unsplit():
    raw = _frame({"type": "observation", "observation": "1. **Cats** ok", "action_type": "web_search"})
    whole = list(decode_stream([raw]))
    assert len(whole) == 1

    for first in range(1, len(raw)):
        for second in range(first, len(raw)):
            split = list(decode_stream([raw[:first], raw[first:second], raw[second:]]))
            assert split == whole


def test_multibyte_character_split_across_chunks():
    raw = _frame({"type": "thought_token", "token": "café ☕"})
    cut = raw.index("☕".encode("utf-8")) + 1
    events = list(decode_stream([raw[:cut], raw[cut:]]))
    assert events[0].token == "café ☕"


def test_nothing_emitted_before_newline():
    decoder = FrameDecoder()
    assert decoder.feed(b'data: {"type": "end"}') == []
    events = decoder.feed(b"\n")
    assert len(events) == 1
    assert isinstance(events[0], EndEvent)


def test_non_data_lines_are_ignored():
    chunks = [b": keep-alive\n", b"event: message\n", b"\n", _frame({"type": "end"}), b"\n"]
    events = list(decode_stream(chunks))
    assert len(events) == 1
    assert isinstance(events[0], EndEvent)


def test_crlf_line_endings_are_tolerated():
    events = list(decode_stream([b'data: {"type": "iteration_start", "iteration": 2}\r\n']))
    assert isinstance(events[0], IterationStartEvent)
    assert events[0].iteration == 2


def test_unterminated_trailing_line_is_discarded_at_end_of_input():
    events = list(decode_stream([_frame({"type": "thought_token", "token": "a"}), b'data: {"type": "end"}']))
    assert len(events) == 1
    assert isinstance(events[0], ThoughtTokenEvent)


# ---------------------------------------------------------------------------
# Recoverable errors
# ---------------------------------------------------------------------------

def test_malformed_json_drops_one_frame_and_continues():
    errors: list[FrameDecodeError] = []
    chunks = [b"data: {broken json\n", _frame({"type": "end"})]

    events = list(decode_stream(chunks, on_error=errors.append))

    assert len(events) == 1
    assert isinstance(events[0], EndEvent)
    assert len(errors) == 1
    assert "malformed JSON" in errors[0].reason
    assert errors[0].line == "data: {broken json"


def test_non_object_payload_is_reported():
    errors: list[FrameDecodeError] = []
    events = list(decode_stream([b"data: [1, 2, 3]\n"], on_error=errors.append))
    assert events == []
    assert "not a JSON object" in errors[0].reason


def test_known_kind_with_bad_fields_is_dropped():
    errors: list[FrameDecodeError] = []
    chunks = [_frame({"type": "iteration_start", "iteration": "soon"}), _frame({"type": "end"})]

    events = list(decode_stream(chunks, on_error=errors.append))

    assert [type(event) for event in events] == [EndEvent]
    assert len(errors) == 1


def test_malformed_frame_without_callback_does_not_raise():
    events = list(decode_stream([b"data: nope\n", _frame({"type": "end"})]))
    assert len(events) == 1


# ---------------------------------------------------------------------------
# Forward compatibility
# ---------------------------------------------------------------------------

def test_unknown_kind_becomes_unknown_event():
    events = list(decode_stream([_frame({"type": "future_kind", "extra": 1})]))
    assert isinstance(events[0], UnknownEvent)
    assert events[0].kind == "future_kind"
    assert events[0].raw == {"type": "future_kind", "extra": 1}


def test_missing_type_becomes_unknown_event():
    events = list(decode_stream([_frame({"token": "orphan"})]))
    assert isinstance(events[0], UnknownEvent)
    assert events[0].kind == ""


def test_known_event_ignores_extra_fields():
    events = list(decode_stream([_frame({"type": "end", "brand_new_field": True, "session_id": "s1"})]))
    assert isinstance(events[0], EndEvent)
    assert events[0].session_id == "s1"


# ---------------------------------------------------------------------------
# Async source
# ---------------------------------------------------------------------------

def test_adecode_stream_matches_sync_decoding():
    raw = _frame({"type": "thought_token", "token": "a"}) + _frame({"type": "end"})

    async def chunks():
        for index in range(len(raw)):
            yield raw[index:index + 1]

    async def collect():
        return [event async for event in adecode_stream(chunks())]

    events = asyncio.run(collect())
    assert events == list(decode_stream([raw]))
    assert [event.type for event in events] == ["thought_token", "end"]
