"""
Tests for chronicle/segmenter.py -- header stripping, paragraphs, windows.
"""

from chronicle.segmenter import (
    Paragraph,
    header_fields,
    iter_windows,
    segment_document,
    split_paragraphs,
    strip_header,
    window_bounds,
)


class TestStripHeader:
    """Tests for strip_header()."""

    def test_header_removed_with_offset(self):
        body, offset = strip_header("---\ntitle: One\n---\nBody text")
        assert body == "Body text"
        assert offset == 3

    def test_no_header(self):
        assert strip_header("Just prose.") == ("Just prose.", 0)

    def test_unterminated_header_left_alone(self):
        content = "---\ntitle: One\nBody text"
        assert strip_header(content) == (content, 0)

    def test_header_fields(self):
        content = '---\ntitle: "One"\nchronicle-anchor: 12\n  nested: x\n---\nBody'
        assert header_fields(content) == {"title": "One", "chronicle-anchor": "12"}

    def test_header_fields_without_header(self):
        assert header_fields("Body") == {}


class TestSplitParagraphs:
    """Tests for split_paragraphs() and segment_document()."""

    def test_blank_lines_split(self):
        paragraphs = split_paragraphs("First line.\nStill first.\n\nSecond.")
        assert paragraphs == [
            Paragraph("First line.\nStill first.", 1),
            Paragraph("Second.", 4),
        ]

    def test_structural_lines_dropped_and_split(self):
        body = "# Chapter One\nOpening.\n<!-- note -->\nAfter the note.\n--> end"
        paragraphs = split_paragraphs(body)
        assert [p.text for p in paragraphs] == ["Opening.", "After the note."]
        assert [p.start_line for p in paragraphs] == [2, 4]

    def test_line_numbers_include_header(self):
        content = "---\ntitle: One\n---\nFirst.\n\nSecond."
        paragraphs = segment_document(content)
        assert [p.start_line for p in paragraphs] == [4, 6]

    def test_deterministic(self):
        content = "A.\n\nB.\n\n\nC."
        assert segment_document(content) == segment_document(content)

    def test_empty_document(self):
        assert segment_document("") == []


class TestWindows:
    """Tests for window_bounds() and iter_windows()."""

    def test_bounds_clamped(self):
        assert window_bounds(0, 1, 5) == (0, 1)
        assert window_bounds(4, 1, 5) == (3, 4)
        assert window_bounds(2, 2, 5) == (0, 4)

    def test_one_window_per_mention_cluster(self):
        paragraphs = [Paragraph(t, i + 1) for i, t in enumerate(
            ["Elena.", "Elena again.", "Nothing.", "Nothing.", "Nothing.", "Elena late."]
        )]
        windows = list(iter_windows(paragraphs, 1, lambda t: "Elena" in t))
        assert [(w.start, w.end) for w in windows] == [(0, 1), (4, 5)]

    def test_one_pass_per_window_not_per_mention(self):
        paragraphs = [Paragraph(f"Elena {i}.", i + 1) for i in range(7)]
        windows = list(iter_windows(paragraphs, 1, lambda t: "Elena" in t))
        # Mentions inside an earlier window never start a new one.
        assert [(w.start, w.end) for w in windows] == [(0, 1), (1, 3), (3, 5), (5, 6)]
        covered = {i for w in windows for i in range(w.start, w.end + 1)}
        assert covered == set(range(7))

    def test_window_text_joined_by_blank_line(self):
        paragraphs = [Paragraph("A Elena.", 1), Paragraph("B.", 3)]
        window = next(iter_windows(paragraphs, 1, lambda t: "Elena" in t))
        assert window.text == "A Elena.\n\nB."
        assert window.start_line == 1

    def test_line_at_maps_back_through_wide_gaps(self):
        # Paragraphs separated by several blank lines in the source.
        content = "Intro.\n\n\n\nElena walked.\nShe stopped."
        paragraphs = segment_document(content)
        window = next(iter_windows(paragraphs, 1, lambda t: "Elena" in t))
        assert window.line_at(window.text.index("Elena")) == 5
        assert window.line_at(window.text.index("She")) == 6
        assert window.line_at(0) == 1
