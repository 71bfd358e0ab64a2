from datetime import datetime, timezone

from agent_transcript.history import expand_exchange, reconcile
from agent_transcript.models import (
    ActionTaken,
    EntryKind,
    PersistedExchange,
    StartEvent,
    ThoughtTokenEvent,
)
from agent_transcript.reducer import TranscriptReducer


def _exchange(exchange_id: str, created_at: str, *, actions=None, query=None, response=None) -> PersistedExchange:
    return PersistedExchange(
        id=exchange_id,
        query=query or f"query {exchange_id}",
        response=response or f"answer {exchange_id}",
        actions_taken=actions or [],
        created_at=created_at,
    )


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------

def test_exchange_expands_in_live_order():
    exchange = _exchange(
        "e1",
        "2024-05-01T10:00:00Z",
        actions=[
            ActionTaken(type="web_search", input="cats", observation="1. **Cats** ok\nhttps://c.example",
                        timestamp="2024-05-01T10:00:05Z"),
            ActionTaken(type="calculator", input="2+2", timestamp="2024-05-01T10:00:07Z"),
        ],
    )
    entries = expand_exchange(exchange)

    assert [entry.kind for entry in entries] == [
        EntryKind.USER,
        EntryKind.ACTION,
        EntryKind.OBSERVATION,
        EntryKind.ACTION,
        EntryKind.AGENT,
    ]
    assert entries[0].content == "query e1"
    assert entries[1].content == "cats"
    assert entries[1].action_kind == "web_search"
    assert entries[2].action_kind == "web_search"
    assert entries[3].action_kind == "calculator"
    assert entries[4].content == "answer e1"
    assert len({entry.id for entry in entries}) == len(entries)


def test_action_timestamp_used_when_it_parses():
    exchange = _exchange(
        "e1",
        "2024-05-01T10:00:00Z",
        actions=[
            ActionTaken(type="web_search", input="a", timestamp="2024-05-01T10:00:05Z"),
            ActionTaken(type="web_search", input="b", timestamp="not a date"),
        ],
    )
    created = datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc).timestamp()
    _, first, second, _ = expand_exchange(exchange)
    assert first.timestamp == created + 5
    assert second.timestamp == created


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

def test_reconcile_sorts_by_creation_time():
    later = _exchange("late", "2024-05-02T09:00:00Z")
    earlier = _exchange("early", "2024-05-01T09:00:00Z")

    entries = reconcile([later, earlier])

    assert [entry.id for entry in entries] == ["early-user", "early-agent", "late-user", "late-agent"]


def test_reconcile_ties_keep_input_order():
    first = _exchange("first", "2024-05-01T09:00:00Z")
    second = _exchange("second", "2024-05-01T09:00:00Z")

    assert [entry.id for entry in reconcile([first, second])][::2] == ["first-user", "second-user"]
    assert [entry.id for entry in reconcile([second, first])][::2] == ["second-user", "first-user"]


def test_reconcile_mixes_naive_and_aware_timestamps():
    naive = _exchange("naive", "2024-05-01T11:00:00")
    aware = _exchange("aware", "2024-05-01T10:00:00+00:00")
    assert [entry.id for entry in reconcile([naive, aware])][::2] == ["aware-user", "naive-user"]


def test_reconcile_empty():
    assert reconcile([]) == []


# ---------------------------------------------------------------------------
# Replacement
# ---------------------------------------------------------------------------

def test_loading_history_replaces_prior_transcript():
    reducer = TranscriptReducer()
    reducer.load_history(reconcile([_exchange("a1", "2024-05-01T09:00:00Z")]))
    reducer.apply(StartEvent(query="live follow-up"))
    reducer.apply(ThoughtTokenEvent(token="half"))

    reducer.load_history(reconcile([_exchange("b1", "2024-06-01T09:00:00Z")]))

    assert [entry.id for entry in reducer.entries] == ["b1-user", "b1-agent"]
    assert reducer.thought_buffer == ""
