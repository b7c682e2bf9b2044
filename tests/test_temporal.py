"""
Tests for chronicle/temporal.py -- temporal marker classification.
"""

import pytest

from chronicle.temporal import TemporalExtractor


@pytest.fixture
def temporal():
    return TemporalExtractor()


def _pairs(markers):
    return [(m.type, m.text) for m in markers]


class TestExtract:
    """Tests for TemporalExtractor.extract()."""

    @pytest.mark.parametrize("text, marker_type, phrase", [
        ("Three days later, Elena returned.", "relative_forward", "Three days later"),
        ("The following morning was grey.", "relative_forward", "The following morning"),
        ("Two weeks earlier she had left.", "relative_backward", "Two weeks earlier"),
        ("She had seen him the night before.", "relative_backward", "the night before"),
        ("In 1887, the harbor froze.", "absolute", "In 1887"),
        ("They met on 3 March.", "absolute", "on 3 March"),
        ("They met on March 3rd, 1887.", "absolute", "on March 3rd, 1887"),
    ])
    def test_classification(self, temporal, text, marker_type, phrase):
        assert _pairs(temporal.extract(text)) == [(marker_type, phrase)]

    def test_contained_phrase_dropped(self, temporal):
        markers = temporal.extract("Later that morning she ate.")
        assert _pairs(markers) == [("same_day", "Later that morning")]

    def test_line_numbers_after_header(self, temporal):
        content = "---\ntitle: Two\n---\nIntro.\n\nThe next morning she woke."
        markers = temporal.extract(content)
        assert markers[0].line == 6
        assert markers[0].type == "relative_forward"

    def test_sorted_by_line_and_deduplicated(self, temporal):
        content = "In 1887 it began.\nThe next day came.\nThe next day came again."
        markers = temporal.extract(content)
        assert [(m.line, m.type) for m in markers] == [(1, "absolute"), (2, "relative_forward")]

    def test_header_ignored(self, temporal):
        assert temporal.extract("---\nnote: three days later\n---\nNothing.") == []

    def test_no_markers(self, temporal):
        assert temporal.extract("Elena walked.") == []


class TestSceneRecord:
    """Tests for TemporalExtractor.scene_record()."""

    def test_numeric_anchor(self, temporal):
        record = temporal.scene_record("s.md", "---\nchronicle-anchor: 12.5\n---\nText.")
        assert record.anchor == "12.5"
        assert record.resolved_position == 12.5

    def test_non_numeric_anchor(self, temporal):
        record = temporal.scene_record("s.md", "---\nchronicle-anchor: spring\n---\nText.")
        assert record.anchor == "spring"
        assert record.resolved_position is None

    def test_no_anchor(self, temporal):
        record = temporal.scene_record("s.md", "Three days later.")
        assert record.anchor is None
        assert len(record.markers) == 1
