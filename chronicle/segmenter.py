"""
chronicle/segmenter.py -- Paragraph segmentation and extraction windows.

A scene document is split into paragraph units whose ``start_line`` is
expressed in terms of the *original* file, even after the leading metadata
block has been stripped.  Extraction windows are then built around entity
mentions so each stretch of prose is examined once per entity, no matter
how many times the entity is named inside it.

Usage::

    from chronicle.segmenter import segment_document, iter_windows

    paragraphs = segment_document(content)
    for window in iter_windows(paragraphs, radius=1, is_mention=pred):
        ...
"""

from __future__ import annotations

from typing import Callable, Iterator, NamedTuple

HEADER_DELIMITER = "---"

# Lines that are structure, not prose.  They are dropped and always close
# the paragraph in progress.
_STRUCTURAL_PREFIXES = ("#", "<!--", "-->")

_WINDOW_JOINER = "\n\n"


class Paragraph(NamedTuple):
    text: str
    start_line: int  # 1-based, in original-document lines


class Window(NamedTuple):
    start: int        # first paragraph index (inclusive)
    end: int          # last paragraph index (inclusive)
    text: str         # paragraphs joined by a blank line
    start_line: int   # original-document line of the first paragraph
    paragraphs: tuple[Paragraph, ...] = ()

    def line_at(self, index: int) -> int:
        """Original-document line of character *index* within ``text``.

        Paragraphs are joined with a single blank line, which may differ
        from the real gap between them, so the position is mapped back
        through the paragraph it falls in.
        """
        pos = 0
        for paragraph in self.paragraphs:
            end = pos + len(paragraph.text)
            if index <= end:
                return paragraph.start_line + paragraph.text.count("\n", 0, max(0, index - pos))
            pos = end + len(_WINDOW_JOINER)
        return self.start_line + self.text.count("\n", 0, index)


# ---------------------------------------------------------------------------
# Header stripping
# ---------------------------------------------------------------------------

def strip_header(content: str) -> tuple[str, int]:
    """Remove a leading ``---`` delimited metadata block.

    Returns
    -------
    tuple[str, int]
        ``(body, line_offset)`` where *line_offset* is the number of lines
        removed.  Content without a complete header is returned unchanged
        with an offset of 0.
    """
    if not content.startswith(HEADER_DELIMITER):
        return content, 0
    closing = content.find("\n" + HEADER_DELIMITER, len(HEADER_DELIMITER))
    if closing == -1:
        return content, 0
    body = content[closing + len(HEADER_DELIMITER) + 1:]
    # The remainder of the closing delimiter line belongs to the header.
    newline = body.find("\n")
    body = "" if newline == -1 else body[newline + 1:]
    offset = content.count("\n") - body.count("\n")
    return body, offset


def header_fields(content: str) -> dict[str, str]:
    """Flat ``key: value`` pairs from the leading metadata block.

    Nested or list values are not interpreted; quotes around a value are
    removed.
    """
    _, offset = strip_header(content)
    if not offset:
        return {}
    fields: dict[str, str] = {}
    for line in content.split("\n")[1:offset]:
        key, sep, value = line.partition(":")
        if not sep or not key.strip() or line[:1].isspace():
            continue
        fields[key.strip()] = value.strip().strip("\"'")
    return fields


# ---------------------------------------------------------------------------
# Paragraphs
# ---------------------------------------------------------------------------

def _is_structural(stripped: str) -> bool:
    return stripped.startswith(_STRUCTURAL_PREFIXES)


def split_paragraphs(body: str, line_offset: int = 0) -> list[Paragraph]:
    """Split *body* into paragraphs on blank and structural lines.

    Parameters
    ----------
    body : str
        Document text with any metadata header already removed.
    line_offset : int
        Number of lines removed from the top of the original document.

    Returns
    -------
    list[Paragraph]
        Paragraphs in document order.  Deterministic for identical input.
    """
    paragraphs: list[Paragraph] = []
    current: list[str] = []
    current_start = 0

    for idx, line in enumerate(body.split("\n")):
        stripped = line.strip()
        if not stripped or _is_structural(stripped):
            if current:
                paragraphs.append(Paragraph("\n".join(current), current_start + line_offset))
                current = []
            continue
        if not current:
            current_start = idx + 1
        current.append(line)

    if current:
        paragraphs.append(Paragraph("\n".join(current), current_start + line_offset))
    return paragraphs


def segment_document(content: str) -> list[Paragraph]:
    """Strip the metadata header from *content* and split it into paragraphs."""
    body, offset = strip_header(content)
    return split_paragraphs(body, offset)


# ---------------------------------------------------------------------------
# Extraction windows
# ---------------------------------------------------------------------------

def window_bounds(index: int, radius: int, count: int) -> tuple[int, int]:
    """Inclusive paragraph bounds ``[max(0, i-r), min(n-1, i+r)]``."""
    radius = max(0, radius)
    return max(0, index - radius), min(count - 1, index + radius)


def iter_windows(
    paragraphs: list[Paragraph],
    radius: int,
    is_mention: Callable[[str], bool],
) -> Iterator[Window]:
    """Yield one window per unvisited mention.

    Every paragraph inside a yielded window is marked visited, so a second
    mention inside the same window does not produce another pass.
    """
    visited: set[int] = set()
    count = len(paragraphs)

    for idx, paragraph in enumerate(paragraphs):
        if idx in visited or not is_mention(paragraph.text):
            continue
        start, end = window_bounds(idx, radius, count)
        visited.update(range(start, end + 1))
        members = tuple(paragraphs[start:end + 1])
        text = _WINDOW_JOINER.join(p.text for p in members)
        yield Window(start, end, text, members[0].start_line, members)
