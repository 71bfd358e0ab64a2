# reducer.py
# Transcript reducer: folds StreamEvents into an ordered, append-only
# transcript.
#
# Tokens accumulate in explicit buffers and only become entries at a flush
# boundary (the *_complete events, end, max_iterations). The flush helpers
# are pure module-level functions so every call site cleans text the same way.
#
# The reducer never raises on an event. Unknown kinds are ignored, and
# failures arrive as data (error entries), not exceptions.

import logging
import re
import time
from collections.abc import Callable, Iterable

from agent_transcript.models import (
    EntryKind,
    PendingAction,
    StreamEvent,
    TranscriptEntry,
    TranscriptSnapshot,
)

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "An error occurred"
DEFAULT_MAX_ITERATIONS_MESSAGE = "Maximum iterations reached"

_THOUGHT_LABEL_RE = re.compile(r"^thought:\s*", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Entry clock
# ---------------------------------------------------------------------------


class EntryClock:
    """
    Issues (id, timestamp) pairs for new entries.

    Timestamps never go backwards even if the wall clock does, and the
    sequence number keeps ids distinct when two entries share a tick.
    """

    def __init__(self, now: Callable[[], float] = time.time) -> None:
        self._now = now
        self._last = 0.0
        self._seq = 0

    def stamp(self, kind: EntryKind, iteration: int | None = None) -> tuple[str, float]:
        self._last = max(self._last, self._now())
        self._seq += 1
        cycle = "-" if iteration is None else str(iteration)
        return f"{kind.value}-{cycle}-{int(self._last * 1000)}-{self._seq}", self._last

    def entry(
        self,
        kind: EntryKind,
        content: str,
        iteration: int | None = None,
        action_kind: str | None = None,
    ) -> TranscriptEntry:
        entry_id, timestamp = self.stamp(kind, iteration)
        return TranscriptEntry(
            id=entry_id,
            kind=kind,
            content=content,
            timestamp=timestamp,
            iteration=iteration,
            action_kind=action_kind,
        )


# ---------------------------------------------------------------------------
# Flush helpers
# ---------------------------------------------------------------------------


def clean_thought(text: str) -> str:
    """Strip surrounding whitespace and a leading "Thought:" label."""
    return _THOUGHT_LABEL_RE.sub("", text.strip(), count=1).strip()


def flush_thought(buffer: str, iteration: int | None, clock: EntryClock) -> TranscriptEntry:
    return clock.entry(EntryKind.THOUGHT, clean_thought(buffer), iteration=iteration)


def flush_answer(buffer: str, clock: EntryClock) -> TranscriptEntry:
    return clock.entry(EntryKind.AGENT, buffer)


def flush_action(pending: PendingAction, iteration: int | None, clock: EntryClock) -> TranscriptEntry:
    return clock.entry(EntryKind.ACTION, pending.arg, iteration=iteration, action_kind=pending.kind)


# ---------------------------------------------------------------------------
# TranscriptReducer
# ---------------------------------------------------------------------------


class TranscriptReducer:
    """
    Owns one transcript and its in-progress accumulation state.

    Example:
        reducer = TranscriptReducer()
        for event in decode_stream(chunks):
            reducer.apply(event)
        snapshot = reducer.snapshot()
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = EntryClock(clock)
        self._entries: list[TranscriptEntry] = []
        self._thought_buffer = ""
        self._answer_buffer = ""
        self._pending_action: PendingAction | None = None
        self._is_streaming = False
        self._current_iteration: int | None = None
        self._error: str | None = None
        self._session_id: str | None = None
        self._conversation_id: str | None = None
        self._caller_query: str | None = None

        self._handlers: dict[str, Callable] = {
            "start": self._on_start,
            "iteration_start": self._on_iteration_start,
            "thought_token": self._on_thought_token,
            "thought_complete": self._on_thought_complete,
            "action": self._on_action,
            "observation": self._on_observation,
            "final_answer_token": self._on_final_answer_token,
            "final_answer_complete": self._on_final_answer_complete,
            "error": self._on_error,
            "end": self._on_end,
            "max_iterations": self._on_max_iterations,
        }

    # ------------------------------------------------------------------
    # Read access (copy-on-read)
    # ------------------------------------------------------------------

    @property
    def entries(self) -> list[TranscriptEntry]:
        return list(self._entries)

    @property
    def thought_buffer(self) -> str:
        return self._thought_buffer

    @property
    def answer_buffer(self) -> str:
        return self._answer_buffer

    @property
    def pending_action(self) -> PendingAction | None:
        return self._pending_action

    @property
    def is_streaming(self) -> bool:
        return self._is_streaming

    @property
    def current_iteration(self) -> int | None:
        return self._current_iteration

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def conversation_id(self) -> str | None:
        return self._conversation_id

    def snapshot(self) -> TranscriptSnapshot:
        return TranscriptSnapshot(
            entries=tuple(self._entries),
            thought_buffer=self._thought_buffer,
            answer_buffer=self._answer_buffer,
            pending_action=self._pending_action,
            is_streaming=self._is_streaming,
            current_iteration=self._current_iteration,
            error=self._error,
            session_id=self._session_id,
            conversation_id=self._conversation_id,
        )

    # ------------------------------------------------------------------
    # Caller-driven mutations
    # ------------------------------------------------------------------

    def add_user_message(self, text: str) -> TranscriptEntry:
        """Append the caller's query before the stream echoes it back."""
        entry = self._clock.entry(EntryKind.USER, text)
        self._entries.append(entry)
        self._caller_query = text
        return entry

    def load_history(self, entries: Iterable[TranscriptEntry]) -> None:
        """Replace the whole transcript with reconciled history."""
        self._entries = list(entries)
        self._reset_buffers()
        self._is_streaming = False
        self._current_iteration = None
        self._error = None
        self._caller_query = None

    def clear(self) -> None:
        self.load_history([])

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    def apply(self, event: StreamEvent) -> None:
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.debug("Ignoring unrecognised event kind %r", getattr(event, "kind", event.type))
            return
        handler(event)

    def _on_start(self, event) -> None:
        self._reset_buffers()
        self._is_streaming = True
        self._error = None
        if event.query and event.query != self._caller_query:
            self._append(self._clock.entry(EntryKind.USER, event.query))
        self._caller_query = None

    def _on_iteration_start(self, event) -> None:
        self._current_iteration = event.iteration

    def _on_thought_token(self, event) -> None:
        self._thought_buffer += event.token or ""

    def _on_thought_complete(self, event) -> None:
        self._flush_thought()

    def _on_action(self, event) -> None:
        self._pending_action = PendingAction(kind=event.action_type or "action", arg=event.input or "")
        self._append(flush_action(self._pending_action, self._current_iteration, self._clock))

    def _on_observation(self, event) -> None:
        if event.observation:
            action_kind = event.action_type
            if action_kind is None and self._pending_action is not None:
                action_kind = self._pending_action.kind
            self._append(
                self._clock.entry(
                    EntryKind.OBSERVATION,
                    event.observation,
                    iteration=self._current_iteration,
                    action_kind=action_kind,
                )
            )
        self._pending_action = None

    def _on_final_answer_token(self, event) -> None:
        self._answer_buffer += event.token or ""

    def _on_final_answer_complete(self, event) -> None:
        self._flush_answer()
        self._record_ids(event)
        self._finish()

    def _on_error(self, event) -> None:
        # In-flight buffers are left as they are; only end/max_iterations flush.
        self._error = event.message or DEFAULT_ERROR_MESSAGE
        self._append(self._clock.entry(EntryKind.ERROR, self._error))
        self._is_streaming = False

    def _on_end(self, event) -> None:
        self._flush_all()
        self._record_ids(event)
        self._finish()

    def _on_max_iterations(self, event) -> None:
        self._flush_all()
        self._record_ids(event)
        self._append(self._clock.entry(EntryKind.ERROR, event.message or DEFAULT_MAX_ITERATIONS_MESSAGE))
        self._finish()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _append(self, entry: TranscriptEntry) -> None:
        self._entries.append(entry)

    def _flush_thought(self) -> None:
        if self._thought_buffer:
            self._append(flush_thought(self._thought_buffer, self._current_iteration, self._clock))
            self._thought_buffer = ""

    def _flush_answer(self) -> None:
        if self._answer_buffer:
            self._append(flush_answer(self._answer_buffer, self._clock))
            self._answer_buffer = ""

    def _flush_all(self) -> None:
        self._flush_answer()
        self._flush_thought()
        if self._pending_action is not None:
            self._append(flush_action(self._pending_action, self._current_iteration, self._clock))
            self._pending_action = None

    def _record_ids(self, event) -> None:
        if event.session_id:
            self._session_id = event.session_id
        if event.conversation_id:
            self._conversation_id = event.conversation_id

    def _finish(self) -> None:
        self._is_streaming = False
        self._current_iteration = None

    def _reset_buffers(self) -> None:
        self._thought_buffer = ""
        self._answer_buffer = ""
        self._pending_action = None
