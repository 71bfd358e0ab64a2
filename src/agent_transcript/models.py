# models.py
# Data contracts for the transcript engine.
# No business logic lives here: schema, validation, and event parsing only.

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class EventValidationError(Exception):
    """Raised when a known event kind carries fields of the wrong shape."""


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------


class EntryKind(str, Enum):
    USER = "user"
    AGENT = "agent"
    THOUGHT = "thought"
    ACTION = "action"
    OBSERVATION = "observation"
    ERROR = "error"


class TranscriptEntry(BaseModel):
    """One immutable, renderable record of the conversation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique within a transcript.")
    kind: EntryKind
    content: str = ""
    timestamp: float = Field(..., description="Creation instant, epoch seconds.")
    iteration: int | None = Field(default=None, description="Reasoning cycle that produced it.")
    action_kind: str | None = Field(default=None, description="Tool name on action/observation.")


class PendingAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    arg: str = ""


class TranscriptSnapshot(BaseModel):
    """Read-only copy of everything a consumer may observe on a reducer."""

    model_config = ConfigDict(frozen=True)

    entries: tuple[TranscriptEntry, ...] = ()
    thought_buffer: str = ""
    answer_buffer: str = ""
    pending_action: PendingAction | None = None
    is_streaming: bool = False
    current_iteration: int | None = None
    error: str | None = None
    session_id: str | None = None
    conversation_id: str | None = None


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


class _WireEvent(BaseModel):
    """Optional fields any event on the wire may carry."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    message: str | None = None
    query: str | None = None
    iteration: int | None = None
    token: str | None = None
    action_type: str | None = None
    input: str | None = None
    observation: str | None = None
    answer: str | None = None
    iterations: int | None = None
    status: str | None = None
    actions_count: int | None = None
    session_id: str | None = None
    conversation_id: str | None = None


class StartEvent(_WireEvent):
    type: Literal["start"] = "start"


class IterationStartEvent(_WireEvent):
    type: Literal["iteration_start"] = "iteration_start"


class ThoughtTokenEvent(_WireEvent):
    type: Literal["thought_token"] = "thought_token"


class ThoughtCompleteEvent(_WireEvent):
    type: Literal["thought_complete"] = "thought_complete"


class ActionEvent(_WireEvent):
    type: Literal["action"] = "action"


class ObservationEvent(_WireEvent):
    type: Literal["observation"] = "observation"


class FinalAnswerTokenEvent(_WireEvent):
    type: Literal["final_answer_token"] = "final_answer_token"


class FinalAnswerCompleteEvent(_WireEvent):
    type: Literal["final_answer_complete"] = "final_answer_complete"


class ErrorEvent(_WireEvent):
    type: Literal["error"] = "error"


class EndEvent(_WireEvent):
    type: Literal["end"] = "end"


class MaxIterationsEvent(_WireEvent):
    type: Literal["max_iterations"] = "max_iterations"


class UnknownEvent(BaseModel):
    """Any event kind this consumer does not recognise. Always ignored."""

    model_config = ConfigDict(frozen=True)

    type: Literal["unknown"] = "unknown"
    kind: str = Field(..., description="The raw `type` value from the wire.")
    raw: dict[str, Any] = Field(default_factory=dict)


KnownEvent = Annotated[
    Union[
        StartEvent,
        IterationStartEvent,
        ThoughtTokenEvent,
        ThoughtCompleteEvent,
        ActionEvent,
        ObservationEvent,
        FinalAnswerTokenEvent,
        FinalAnswerCompleteEvent,
        ErrorEvent,
        EndEvent,
        MaxIterationsEvent,
    ],
    Field(discriminator="type"),
]

StreamEvent = Union[KnownEvent, UnknownEvent]

KNOWN_EVENT_TYPES = frozenset(
    {
        "start",
        "iteration_start",
        "thought_token",
        "thought_complete",
        "action",
        "observation",
        "final_answer_token",
        "final_answer_complete",
        "error",
        "end",
        "max_iterations",
    }
)

_known_event_adapter: TypeAdapter = TypeAdapter(KnownEvent)


def parse_event(data: dict[str, Any]) -> StreamEvent:
    """
    Map one decoded JSON object to a typed event.

    Unrecognised or missing `type` values become UnknownEvent.
    Raises EventValidationError when a known kind has malformed fields.
    """
    kind = data.get("type")
    if not isinstance(kind, str) or kind not in KNOWN_EVENT_TYPES:
        return UnknownEvent(kind=str(kind) if kind is not None else "", raw=dict(data))
    try:
        return _known_event_adapter.validate_python(data)
    except ValidationError as exc:
        raise EventValidationError(f"Invalid '{kind}' event: {exc}") from exc


# ---------------------------------------------------------------------------
# Structured content
# ---------------------------------------------------------------------------


class SearchResultRecord(BaseModel):
    index: int
    title: str
    description: str = ""
    url: str = ""


class SearchResultList(BaseModel):
    results: list[SearchResultRecord] = Field(..., min_length=1)


class InlineSpan(BaseModel):
    """A run of text, optionally emphasised or linked."""

    kind: Literal["text", "bold", "link", "url"]
    text: str
    url: str | None = None


class PlainContent(BaseModel):
    text: str
    spans: list[InlineSpan] = Field(default_factory=list)


class MarkdownBlock(BaseModel):
    kind: Literal["heading", "section", "paragraph", "list", "break"]
    level: int | None = None
    ordered: bool = False
    spans: list[InlineSpan] = Field(default_factory=list)
    items: list[list[InlineSpan]] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# REST payloads
# ---------------------------------------------------------------------------


class Identity(BaseModel):
    """The caller on whose behalf requests are made."""

    model_config = ConfigDict(frozen=True)

    user_id: str


class ChatRequest(BaseModel):
    query: str
    stream: bool = True
    max_iterations: int = 10
    session_id: str | None = None


class ActionTaken(BaseModel):
    type: str
    input: str = ""
    observation: str | None = None
    timestamp: str = ""


class PersistedExchange(BaseModel):
    """One completed query/response pair as stored by the server."""

    id: str
    query: str
    response: str = ""
    iterations: int | None = None
    status: str | None = None
    actions_taken: list[ActionTaken] = Field(default_factory=list)
    execution_time_ms: float | None = None
    created_at: datetime
    session_id: str | None = None


class SessionInfo(BaseModel):
    id: str
    title: str | None = None
    created_at: datetime
    updated_at: datetime
    conversation_count: int = 0
