"""
chronicle/temporal.py -- Temporal marker classification.

Finds phrases that place a scene in story time and labels them:

    relative_forward    "three days later", "the next morning"
    relative_backward   "two weeks earlier", "the night before"
    same_day            "later that morning", "that same evening"
    absolute            "in 1887", "on 3 March", "on March 3rd, 1887"

Only classification happens here; ordering scenes into a timeline is left to
the caller.  The metadata header is skipped the same way the segmenter skips
it, and reported line numbers refer to the original document.
"""

from __future__ import annotations

import logging
import re

from chronicle.models.base import SceneTemporalRecord, TemporalMarker
from chronicle.segmenter import header_fields, strip_header

logger = logging.getLogger(__name__)

ANCHOR_FIELD = "chronicle-anchor"

_NUMBER_WORDS = "one|two|three|four|five|six|seven|eight|nine|ten|eleven|twelve|a|an"
_UNIT = "day|days|week|weeks|month|months|year|years|hour|hours|night|nights"
_PERIOD = "morning|day|night|evening|afternoon|midday|week|month|year"
_MONTHS = (
    "January|February|March|April|May|June|July|August|September|"
    "October|November|December"
)
_ORDINAL = r"\d{1,2}(?:st|nd|rd|th)?"


def _compile(*patterns: str) -> list[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


MARKER_PATTERNS: dict[str, list[re.Pattern]] = {
    "relative_forward": _compile(
        rf"\b(?:\d+|{_NUMBER_WORDS})\s+(?:{_UNIT})\s+later\b",
        rf"\bthe\s+next\s+(?:{_PERIOD})\b",
        rf"\bthe\s+following\s+(?:{_PERIOD})\b",
    ),
    "relative_backward": _compile(
        rf"\b(?:\d+|{_NUMBER_WORDS})\s+(?:{_UNIT})\s+(?:earlier|before|ago)\b",
        rf"\bthe\s+previous\s+(?:{_PERIOD})\b",
        rf"\bthe\s+(?:{_PERIOD})\s+before\b",
    ),
    "same_day": _compile(
        rf"\blater\s+that\s+(?:{_PERIOD})\b",
        rf"\bthat\s+(?:same\s+)?(?:{_PERIOD})\b",
        rf"\bearlier\s+that\s+(?:{_PERIOD})\b",
    ),
    "absolute": _compile(
        r"\b(?:in|by|during|since|until)\s+(?:the\s+year\s+)?1\d{3}\b",
        r"\b(?:in|by|during|since|until)\s+(?:the\s+year\s+)?20\d{2}\b",
        rf"\bon\s+(?:the\s+)?{_ORDINAL}\s+(?:of\s+)?(?:{_MONTHS})\b(?:,?\s+\d{{4}})?",
        rf"\bon\s+(?:{_MONTHS})\s+{_ORDINAL}\b(?:,?\s+\d{{4}})?",
    ),
}


class TemporalExtractor:
    """Classify temporal markers in a scene document."""

    def extract(self, content: str) -> list[TemporalMarker]:
        """Return the markers in *content*, sorted by line.

        Markers are de-duplicated per (type, lower-cased text), keeping the
        first occurrence.  Within one type, a phrase contained in a longer
        match ("that morning" inside "later that morning") is dropped.
        """
        body, offset = strip_header(content)
        found: list[tuple[int, int, TemporalMarker]] = []

        for marker_type, compiled in MARKER_PATTERNS.items():
            spans = sorted(
                (m for pattern in compiled for m in pattern.finditer(body)),
                key=lambda m: (m.start(), -(m.end() - m.start())),
            )
            taken: list[tuple[int, int]] = []
            for match in spans:
                if any(match.start() < end and start < match.end() for start, end in taken):
                    continue
                taken.append(match.span())
                line = offset + body.count("\n", 0, match.start()) + 1
                found.append((line, match.start(), TemporalMarker(
                    type=marker_type, text=match.group(0), line=line,
                )))

        found.sort(key=lambda item: (item[0], item[1]))
        markers: list[TemporalMarker] = []
        seen: set[tuple[str, str]] = set()
        for _, _, marker in found:
            key = (marker.type, marker.text.lower())
            if key in seen:
                continue
            seen.add(key)
            markers.append(marker)
        return markers

    def scene_record(self, scene_path: str, content: str) -> SceneTemporalRecord:
        """Markers plus the optional numeric anchor from the header."""
        anchor = header_fields(content).get(ANCHOR_FIELD)
        position = None
        if anchor:
            try:
                position = float(anchor)
            except ValueError:
                logger.warning("Ignoring non-numeric %s %r in %s", ANCHOR_FIELD, anchor, scene_path)
        return SceneTemporalRecord(
            scene_path=scene_path,
            anchor=anchor or None,
            markers=self.extract(content),
            resolved_position=position,
        )
