# display.py
# All terminal output for agent transcripts.
#
# This module owns presentation entirely. The reducer and session never
# format strings; the CLI hands snapshots and entries to named functions here.
#
# Colour language:
#   cyan   : the user's query
#   green  : final answers
#   magenta: ReACT internals (Thought / Action / Observation)
#   yellow : in-progress buffers
#   red    : errors and halts

from rich import box
from rich.console import Console, Group, RenderableType
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.style import Style
from rich.table import Table
from rich.text import Text

from agent_transcript.formatting import extract, format_markdown
from agent_transcript.models import (
    EntryKind,
    InlineSpan,
    MarkdownBlock,
    SearchResultList,
    SessionInfo,
    TranscriptEntry,
    TranscriptSnapshot,
)

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


def _cycle(entry: TranscriptEntry) -> str:
    return f" #{entry.iteration}" if entry.iteration is not None else ""


# ---------------------------------------------------------------------------
# Inline and block content
# ---------------------------------------------------------------------------


def spans_to_text(spans: list[InlineSpan], base_style: str = "") -> Text:
    text = Text(style=base_style)
    for span in spans:
        if span.kind == "bold":
            text.append(span.text, style="bold")
        elif span.kind in ("link", "url"):
            text.append(span.text, style=Style(color="blue", underline=True, link=span.url))
        else:
            text.append(span.text)
    return text


def render_markdown(blocks: list[MarkdownBlock]) -> RenderableType:
    parts: list[RenderableType] = []
    for block in blocks:
        if block.kind == "heading":
            style = "bold underline" if block.level == 1 else "bold"
            parts.append(spans_to_text(block.spans, style))
        elif block.kind == "section":
            parts.append(spans_to_text(block.spans, "bold"))
        elif block.kind == "list":
            for number, item in enumerate(block.items, start=1):
                bullet = f"  {number}. " if block.ordered else "  • "
                parts.append(Text(bullet) + spans_to_text(item))
        elif block.kind == "break":
            parts.append(Text(""))
        else:
            parts.append(spans_to_text(block.spans))
    return Group(*parts)


def render_observation(content: str) -> RenderableType:
    """Search results become one card each; anything else is annotated text."""
    extracted = extract(content)
    if not isinstance(extracted, SearchResultList):
        return spans_to_text(extracted.spans, "dim white")

    cards: list[RenderableType] = []
    for result in extracted.results:
        body = Text()
        if result.description:
            body.append(result.description, style="dim white")
        if result.url:
            if result.description:
                body.append("\n")
            body.append(result.url, style=Style(color="blue", underline=True, link=result.url))
        cards.append(
            Panel(
                body,
                title=f"[bold white]{result.index}. {escape(result.title)}[/bold white]",
                title_align="left",
                border_style="magenta",
                padding=(0, 1),
            )
        )
    return Group(*cards)


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


def render_entry(entry: TranscriptEntry) -> RenderableType:
    if entry.kind == EntryKind.USER:
        return Panel(
            Text(entry.content, style="white"),
            title=_label("USER", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )

    if entry.kind == EntryKind.AGENT:
        return Panel(
            render_markdown(format_markdown(entry.content)),
            title=_label("ANSWER", "green"),
            border_style="green",
            padding=(1, 2),
        )

    if entry.kind == EntryKind.THOUGHT:
        return Text.assemble(
            ("  Thought", "magenta"),
            (f"{_cycle(entry)}  ", "dim magenta"),
            (_mono(entry.content, 200), "dim white"),
        )

    if entry.kind == EntryKind.ACTION:
        return Text.assemble(
            ("  Action", "magenta"),
            (f"{_cycle(entry)}   ", "dim magenta"),
            (entry.action_kind or "action", "bold white"),
            (f"  {_mono(entry.content, 140)}", "dim"),
        )

    if entry.kind == EntryKind.OBSERVATION:
        return Group(
            Text.assemble(("  Observe", "magenta"), (_cycle(entry), "dim magenta")),
            render_observation(entry.content),
        )

    return Panel(
        Text(entry.content, style="bold white"),
        title=_label("ERROR", "red"),
        border_style="red",
        padding=(0, 2),
    )


def print_entries(entries: list[TranscriptEntry] | tuple[TranscriptEntry, ...]) -> None:
    for entry in entries:
        console.print(render_entry(entry))


def print_snapshot(snapshot: TranscriptSnapshot) -> None:
    """Everything committed so far, plus whatever is still being typed."""
    console.print()
    console.print(Rule("[cyan]TRANSCRIPT[/cyan]", style="cyan"))
    print_entries(snapshot.entries)

    if snapshot.thought_buffer:
        console.print(f"  [yellow]Thinking…[/yellow]  [dim]{escape(_mono(snapshot.thought_buffer, 200))}[/dim]")
    if snapshot.pending_action is not None:
        console.print(
            f"  [yellow]Running[/yellow]  [bold white]{escape(snapshot.pending_action.kind)}[/bold white]"
            f"  [dim]{escape(_mono(snapshot.pending_action.arg))}[/dim]"
        )
    if snapshot.answer_buffer:
        console.print(f"  [yellow]Answering…[/yellow]  [white]{escape(snapshot.answer_buffer)}[/white]")
    if snapshot.session_id:
        console.print(f"[dim]session {snapshot.session_id}[/dim]")


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            Text(reason, style="bold white"),
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()


def print_sessions(sessions: list[SessionInfo]) -> None:
    if not sessions:
        console.print("[dim]No sessions yet.[/dim]")
        return

    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="cyan",
        show_header=True,
        header_style="bold cyan",
        padding=(0, 1),
    )
    table.add_column("ID", style="bold white")
    table.add_column("Title", style="white")
    table.add_column("Conversations", justify="right", width=14)
    table.add_column("Updated", style="dim white")

    for session in sessions:
        table.add_row(
            session.id,
            escape(session.title) if session.title else "[dim]untitled[/dim]",
            str(session.conversation_count),
            session.updated_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)
