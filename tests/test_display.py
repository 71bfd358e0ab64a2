import httpx
import pytest
from rich.console import Console
from typer.testing import CliRunner

from agent_transcript import display, run
from agent_transcript.client import AgentClient
from agent_transcript.models import (
    EntryKind,
    PendingAction,
    SessionInfo,
    TranscriptEntry,
    TranscriptSnapshot,
)


@pytest.fixture
def recorded(monkeypatch) -> Console:
    console = Console(record=True, width=100, color_system=None)
    monkeypatch.setattr(display, "console", console)
    return console


def _entry(kind: EntryKind, content: str, **kwargs) -> TranscriptEntry:
    return TranscriptEntry(id=f"{kind.value}-1", kind=kind, content=content, timestamp=1.0, **kwargs)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def test_observation_search_results_render_as_cards(recorded):
    text = "1. **Cats** Are great.\nhttps://example.com/cats\n2. **Dogs** [Also] fine.\nURL: https://example.com/dogs"
    recorded.print(display.render_observation(text))
    output = recorded.export_text()
    assert "1. Cats" in output
    assert "2. Dogs" in output
    assert "[Also] fine." in output
    assert "https://example.com/dogs" in output


def test_plain_observation_keeps_text(recorded):
    recorded.print(display.render_observation("Nothing **structured** at https://x.io"))
    assert "Nothing structured at https://x.io" in recorded.export_text()


def test_every_entry_kind_renders(recorded):
    entries = [
        _entry(EntryKind.USER, "what about [brackets]?"),
        _entry(EntryKind.THOUGHT, "plan the search", iteration=1),
        _entry(EntryKind.ACTION, "cats", iteration=1, action_kind="web_search"),
        _entry(EntryKind.OBSERVATION, "found things", iteration=1, action_kind="web_search"),
        _entry(EntryKind.AGENT, "## Answer\n- **one**\n- two"),
        _entry(EntryKind.ERROR, "Maximum iterations reached"),
    ]
    display.print_entries(entries)
    output = recorded.export_text()

    assert "what about [brackets]?" in output
    assert "Thought #1" in output
    assert "web_search" in output
    assert "found things" in output
    assert "Answer" in output
    assert "• one" in output
    assert "Maximum iterations reached" in output


def test_snapshot_shows_in_progress_buffers(recorded):
    snapshot = TranscriptSnapshot(
        entries=(_entry(EntryKind.USER, "q"),),
        thought_buffer="half a thought",
        answer_buffer="half an answer",
        pending_action=PendingAction(kind="web_search", arg="cats"),
        is_streaming=True,
        session_id="s1",
    )
    display.print_snapshot(snapshot)
    output = recorded.export_text()
    assert "Thinking…" in output
    assert "half a thought" in output
    assert "Running" in output
    assert "web_search" in output
    assert "half an answer" in output
    assert "session s1" in output


def test_sessions_table(recorded):
    display.print_sessions(
        [
            SessionInfo(
                id="s1",
                title="Cats",
                created_at="2024-05-01T10:00:00Z",
                updated_at="2024-05-01T11:00:00Z",
                conversation_count=3,
            )
        ]
    )
    output = recorded.export_text()
    assert "s1" in output
    assert "Cats" in output
    assert "2024-05-01 11:00" in output


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

SSE_BODY = (
    b'data: {"type": "start", "query": "cats?"}\n'
    b'data: {"type": "thought_token", "token": "Thought: look it up"}\n'
    b'data: {"type": "thought_complete"}\n'
    b'data: {"type": "final_answer_token", "token": "Cats are great."}\n'
    b'data: {"type": "final_answer_complete", "session_id": "s7"}\n'
    b'data: {"type": "end", "session_id": "s7"}\n'
)


def test_chat_command_prints_transcript(recorded, monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=SSE_BODY)

    monkeypatch.setattr(
        run, "_client", lambda config: AgentClient(config.base_url, transport=httpx.MockTransport(handler))
    )

    result = CliRunner().invoke(run.app, ["chat", "cats?"])

    assert result.exit_code == 0
    output = recorded.export_text()
    assert "cats?" in output
    assert "look it up" in output
    assert "Cats are great." in output
    assert "session s7" in output


def test_sessions_command_reports_api_error(recorded, monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "Unauthorized"})

    monkeypatch.setattr(
        run, "_client", lambda config: AgentClient(config.base_url, transport=httpx.MockTransport(handler))
    )

    result = CliRunner().invoke(run.app, ["sessions"])

    assert result.exit_code == 1
    assert "Unauthorized" in recorded.export_text()
