# history.py
# History reconciler: persisted exchanges -> transcript entries.
#
# Produces the same entry shape the live reducer would have produced for each
# exchange, so a session loaded from the server and a follow-up live stream
# read as one transcript.

from collections.abc import Iterable
from datetime import datetime, timezone

from agent_transcript.models import EntryKind, PersistedExchange, TranscriptEntry


def _epoch(moment: datetime) -> float:
    """Naive timestamps from the server are taken to be UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


def _action_epoch(raw: str, fallback: float) -> float:
    try:
        return _epoch(datetime.fromisoformat(raw.replace("Z", "+00:00")))
    except ValueError:
        return fallback


def expand_exchange(exchange: PersistedExchange) -> list[TranscriptEntry]:
    """user -> (action, observation?)* -> agent, for one exchange."""
    created = _epoch(exchange.created_at)
    entries = [
        TranscriptEntry(
            id=f"{exchange.id}-user",
            kind=EntryKind.USER,
            content=exchange.query,
            timestamp=created,
        )
    ]

    for position, action in enumerate(exchange.actions_taken):
        stamp = _action_epoch(action.timestamp, created)
        entries.append(
            TranscriptEntry(
                id=f"{exchange.id}-action-{position}",
                kind=EntryKind.ACTION,
                content=action.input,
                timestamp=stamp,
                action_kind=action.type,
            )
        )
        if action.observation:
            entries.append(
                TranscriptEntry(
                    id=f"{exchange.id}-observation-{position}",
                    kind=EntryKind.OBSERVATION,
                    content=action.observation,
                    timestamp=stamp,
                    action_kind=action.type,
                )
            )

    entries.append(
        TranscriptEntry(
            id=f"{exchange.id}-agent",
            kind=EntryKind.AGENT,
            content=exchange.response,
            timestamp=created,
        )
    )
    return entries


def reconcile(exchanges: Iterable[PersistedExchange]) -> list[TranscriptEntry]:
    """
    Flatten persisted exchanges into one transcript, oldest first.

    Ties on created_at keep input order (sorted() is stable).
    """
    ordered = sorted(exchanges, key=lambda exchange: _epoch(exchange.created_at))
    entries: list[TranscriptEntry] = []
    for exchange in ordered:
        entries.extend(expand_exchange(exchange))
    return entries
