# formatting.py
# Structured content extraction for agent-emitted text.
#
# Turns observation text into search-result records when it follows the
# "N. **Title** description / URL" convention, and annotates plain text with
# the minimal inline markdown the renderer supports (links, bold, bare URLs).
# Pure functions only. Nothing here knows about streaming state.

import re

from agent_transcript.models import (
    InlineSpan,
    MarkdownBlock,
    PlainContent,
    SearchResultList,
    SearchResultRecord,
)

_RESULT_RE = re.compile(r"^(\d+)\.\s+\*\*([^*]+)\*\*(.*)$")
_RESULT_URL_RE = re.compile(r"(?:URL:\s*)?(https?://\S+)", re.IGNORECASE)
_URL_LABEL_RE = re.compile(r"^URL:", re.IGNORECASE)

_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_URL_RE = re.compile(r"https?://[^\s)]+")

_BULLET_RE = re.compile(r"^[-*]\s+")
_NUMBERED_RE = re.compile(r"^\d+\.\s+")
_HEADING_RE = re.compile(r"^(#{1,3}) ")


# ---------------------------------------------------------------------------
# Search results
# ---------------------------------------------------------------------------


def extract(text: str) -> PlainContent | SearchResultList:
    """
    Parse enumerated search results out of `text`.

    A line "N. **Title** rest" opens a record. Following lines extend its
    description until one carries a URL, which closes it. A record still open
    at the end keeps an empty url. With no records at all the input comes
    back as annotated plain content.
    """
    results: list[SearchResultRecord] = []
    current: SearchResultRecord | None = None

    for line in text.split("\n"):
        opened = _RESULT_RE.match(line)
        if opened:
            if current is not None:
                results.append(current)
            current = SearchResultRecord(
                index=int(opened.group(1)),
                title=opened.group(2),
                description=opened.group(3).strip(),
            )
            continue

        if current is None:
            continue

        url = _RESULT_URL_RE.search(line)
        if url:
            current.url = url.group(1)
            results.append(current)
            current = None
            continue

        stripped = line.strip()
        if stripped and not _URL_LABEL_RE.match(stripped):
            current.description = f"{current.description} {stripped}" if current.description else stripped

    if current is not None:
        results.append(current)

    if results:
        return SearchResultList(results=results)
    return PlainContent(text=text, spans=annotate_inline(text))


# ---------------------------------------------------------------------------
# Inline emphasis
# ---------------------------------------------------------------------------


def _overlaps(start: int, end: int, accepted: list[tuple[int, int, InlineSpan]]) -> bool:
    return any(start < a_end and end > a_start for a_start, a_end, _ in accepted)


def annotate_inline(text: str) -> list[InlineSpan]:
    """
    Split `text` into alternating plain and annotated spans.

    Markdown links are taken first. A bold or bare-URL match that overlaps
    anything already accepted is dropped whole, so a link always beats a URL
    over the same characters.
    """
    if not text:
        return []

    accepted: list[tuple[int, int, InlineSpan]] = []

    for match in _LINK_RE.finditer(text):
        accepted.append(
            (match.start(), match.end(), InlineSpan(kind="link", text=match.group(1), url=match.group(2)))
        )

    for match in _BOLD_RE.finditer(text):
        if not _overlaps(match.start(), match.end(), accepted):
            accepted.append((match.start(), match.end(), InlineSpan(kind="bold", text=match.group(1))))

    for match in _URL_RE.finditer(text):
        if not _overlaps(match.start(), match.end(), accepted):
            accepted.append(
                (match.start(), match.end(), InlineSpan(kind="url", text=match.group(0), url=match.group(0)))
            )

    accepted.sort(key=lambda item: item[0])

    spans: list[InlineSpan] = []
    cursor = 0
    for start, end, span in accepted:
        if start > cursor:
            spans.append(InlineSpan(kind="text", text=text[cursor:start]))
        spans.append(span)
        cursor = end
    if cursor < len(text):
        spans.append(InlineSpan(kind="text", text=text[cursor:]))
    return spans


# ---------------------------------------------------------------------------
# Block markdown (agent answers)
# ---------------------------------------------------------------------------


def _is_section_header(line: str) -> bool:
    return (
        line.endswith(":")
        and not _BULLET_RE.match(line)
        and not _NUMBERED_RE.match(line)
        and 3 < len(line) < 100
    )


def format_markdown(text: str) -> list[MarkdownBlock]:
    """Split an answer into headings, section headers, lists and paragraphs."""
    blocks: list[MarkdownBlock] = []
    items: list[list[InlineSpan]] = []
    ordered = False

    def flush_list() -> None:
        nonlocal items
        if items:
            blocks.append(MarkdownBlock(kind="list", ordered=ordered, items=items))
            items = []

    for raw in text.split("\n"):
        line = raw.strip()

        heading = _HEADING_RE.match(line)
        if heading:
            flush_list()
            level = len(heading.group(1))
            blocks.append(
                MarkdownBlock(kind="heading", level=level, spans=annotate_inline(line[level + 1:]))
            )
        elif _is_section_header(line):
            flush_list()
            blocks.append(MarkdownBlock(kind="section", spans=annotate_inline(line)))
        elif _BULLET_RE.match(line) or _NUMBERED_RE.match(line):
            is_numbered = bool(_NUMBERED_RE.match(line))
            if items and ordered != is_numbered:
                flush_list()
            ordered = is_numbered
            pattern = _NUMBERED_RE if is_numbered else _BULLET_RE
            items.append(annotate_inline(pattern.sub("", line, count=1)))
        elif line:
            flush_list()
            blocks.append(MarkdownBlock(kind="paragraph", spans=annotate_inline(line)))
        else:
            flush_list()
            if blocks and blocks[-1].kind != "break":
                blocks.append(MarkdownBlock(kind="break"))

    flush_list()

    if not blocks:
        return [MarkdownBlock(kind="paragraph", spans=annotate_inline(text))]
    return blocks
