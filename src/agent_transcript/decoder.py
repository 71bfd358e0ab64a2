# decoder.py
# Event frame decoder: raw SSE bytes -> typed StreamEvents.
#
# Frames are newline-delimited. Only lines carrying the "data: " prefix are
# significant; the rest of such a line is one JSON event object. A bad frame
# is reported and dropped, never fatal to the stream.

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable, Iterator

from agent_transcript.models import EventValidationError, StreamEvent, parse_event

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class FrameDecodeError(Exception):
    """A single frame could not be turned into an event. Reported, not raised."""

    def __init__(self, line: str, reason: str) -> None:
        super().__init__(f"Dropped frame ({reason}): {line!r}")
        self.line = line
        self.reason = reason


ErrorCallback = Callable[[FrameDecodeError], None]


# ---------------------------------------------------------------------------
# FrameDecoder
# ---------------------------------------------------------------------------


class FrameDecoder:
    """
    Incremental decoder. Feed byte chunks as they arrive; each call returns
    the events completed by that chunk, in order.

    A chunk may end mid-line or mid-character. Nothing is emitted for a line
    until its terminating newline has been seen.
    """

    def __init__(self, on_error: ErrorCallback | None = None) -> None:
        self._on_error = on_error
        self._text = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        self._buffer += self._text.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")

        events: list[StreamEvent] = []
        for line in lines:
            event = self._decode_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
        return events

    def close(self) -> None:
        """End of input. An unterminated trailing line is discarded."""
        self._buffer += self._text.decode(b"", final=True)
        if self._buffer.strip():
            logger.debug("Discarding unterminated trailing frame: %r", self._buffer)
        self._buffer = ""

    def _decode_line(self, line: str) -> StreamEvent | None:
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):]
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            self._report(FrameDecodeError(line, f"malformed JSON: {exc}"))
            return None

        if not isinstance(data, dict):
            self._report(FrameDecodeError(line, "payload is not a JSON object"))
            return None

        try:
            return parse_event(data)
        except EventValidationError as exc:
            self._report(FrameDecodeError(line, str(exc)))
            return None

    def _report(self, error: FrameDecodeError) -> None:
        logger.warning("%s", error)
        if self._on_error is not None:
            self._on_error(error)


# ---------------------------------------------------------------------------
# Stream helpers
# ---------------------------------------------------------------------------


def decode_stream(
    chunks: Iterable[bytes], on_error: ErrorCallback | None = None
) -> Iterator[StreamEvent]:
    """Lazily decode a synchronous byte source."""
    decoder = FrameDecoder(on_error)
    for chunk in chunks:
        yield from decoder.feed(chunk)
    decoder.close()


async def adecode_stream(
    chunks: AsyncIterable[bytes], on_error: ErrorCallback | None = None
) -> AsyncIterator[StreamEvent]:
    """Lazily decode an asynchronous byte source, e.g. an httpx response."""
    decoder = FrameDecoder(on_error)
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    decoder.close()
