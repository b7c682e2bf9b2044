"""
chronicle/extractor.py -- Tier 1 lexical fact extraction.

For every tracked character the extractor walks the mention windows of a
scene (see ``segmenter.iter_windows``) and runs the pattern library over each
window exactly once:

    physical attributes   five patterns in priority order; within a window
                          the first pattern to yield a category keeps it
    location              four movement patterns; only the match that comes
                          last in the prose is kept

The extractor is pure: it never touches storage and never raises on odd
prose.  Text that does not match simply produces no fact.

Usage::

    from chronicle.extractor import Tier1Extractor

    extractor = Tier1Extractor(window_radius=1)
    fact_map = extractor.extract(content, "scenes/ch01.md", entries)
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterator, Optional

from chronicle import patterns
from chronicle.models.base import LOCATION, ExtractedFact, RegistryEntry
from chronicle.resolver import mentions, resolve
from chronicle.segmenter import Paragraph, Window, iter_windows, segment_document
from chronicle.utils import now_iso, truncate_quote

logger = logging.getLogger(__name__)

# (category, value) pairs produced from a single regex match.
_Extraction = Callable[[re.Match], Optional[patterns.ResolvedAttribute]]


def _from_noun_is(match: re.Match) -> patterns.ResolvedAttribute | None:
    category = patterns.resolve_noun(match.group(1) or "")
    value = (match.group(2) or "").strip()
    if category and value:
        return patterns.ResolvedAttribute(category, value)
    return None


def _from_groups(match: re.Match) -> patterns.ResolvedAttribute | None:
    return patterns.resolve_groups(match.group(1) or "", match.group(2) or "")


def _from_compound(match: re.Match) -> patterns.ResolvedAttribute | None:
    value = (match.group(1) or "").strip()
    category = patterns.resolve_noun(patterns.normalise_stem(match.group(2) or ""))
    if category and value:
        return patterns.ResolvedAttribute(category, value)
    return None


def _from_appositive(match: re.Match) -> patterns.ResolvedAttribute | None:
    adjective = patterns.first_complexion(match.group(1) or "")
    if adjective:
        return patterns.ResolvedAttribute(patterns.COMPLEXION, adjective)
    return None


# Priority order, highest first.
_ATTRIBUTE_PATTERNS: list[tuple[Callable[[str], re.Pattern], _Extraction]] = [
    (patterns.noun_is, _from_noun_is),
    (patterns.possessive, _from_groups),
    (patterns.verb_attribute, _from_groups),
    (patterns.compound_adjective, _from_compound),
    (patterns.appositive, _from_appositive),
]


class Tier1Extractor:
    """Pattern-based extraction of physical attributes and locations.

    Parameters
    ----------
    window_radius : int
        Paragraphs on each side of a mention included in its window
        (the ``extraction_window`` setting, minimum 1).
    """

    def __init__(self, window_radius: int = 1) -> None:
        self.window_radius = max(1, int(window_radius))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def extract(
        self,
        content: str,
        scene_path: str,
        entries: list[RegistryEntry],
    ) -> dict[str, list[ExtractedFact]]:
        """Extract Tier 1 facts from one scene document.

        Parameters
        ----------
        content : str
            Full document text, metadata header included.
        scene_path : str
            Project-relative path recorded as each fact's source.
        entries : list[RegistryEntry]
            The registry snapshot for this run.

        Returns
        -------
        dict[str, list[ExtractedFact]]
            Canonical entity name -> facts, in registry order.  Characters
            that are mentioned but yield no fact map to an empty list;
            characters never mentioned are absent.
        """
        paragraphs = segment_document(content)
        locations = [e for e in entries if e.kind == "location" and not e.excluded]
        characters = [
            e for e in entries
            if e.kind == "character" and not e.excluded and e.in_scope(scene_path)
        ]
        logger.debug(
            "Extracting from %s: %d paragraphs, %d characters",
            scene_path, len(paragraphs), len(characters),
        )

        fact_map: dict[str, list[ExtractedFact]] = {}
        for entry in characters:
            mentioned = False
            facts: list[ExtractedFact] = []
            for window in self.windows_for(paragraphs, entry):
                mentioned = True
                facts.extend(self._extract_window(window, entry, locations, scene_path))
            if mentioned:
                fact_map[entry.name] = facts
                logger.debug(
                    "%s in %s: %s", entry.name, scene_path,
                    ", ".join(f"{f.attribute}={f.value!r}" for f in facts) or "no facts",
                )
        return fact_map

    def windows_for(self, paragraphs: list[Paragraph], entry: RegistryEntry) -> Iterator[Window]:
        """Mention windows of *entry* over *paragraphs*."""
        return iter_windows(paragraphs, self.window_radius, lambda text: mentions(text, entry))

    # ------------------------------------------------------------------
    # Per-window extraction
    # ------------------------------------------------------------------

    def _extract_window(
        self,
        window: Window,
        entry: RegistryEntry,
        locations: list[RegistryEntry],
        scene_path: str,
    ) -> list[ExtractedFact]:
        timestamp = now_iso()
        facts = self._physical_attributes(window, entry, scene_path, timestamp)
        location = self._location(window, entry, locations, scene_path, timestamp)
        if location is not None:
            facts.append(location)
        return facts

    def _physical_attributes(
        self,
        window: Window,
        entry: RegistryEntry,
        scene_path: str,
        timestamp: str,
    ) -> list[ExtractedFact]:
        entity_alt = patterns.entity_alternation(entry)
        seen: set[str] = set()
        facts: list[ExtractedFact] = []

        for build, interpret in _ATTRIBUTE_PATTERNS:
            for match in build(entity_alt).finditer(window.text):
                resolved = interpret(match)
                if resolved is None or resolved.category in seen:
                    continue
                seen.add(resolved.category)
                facts.append(self._fact(
                    resolved.category, resolved.value.strip(), match, window,
                    scene_path, timestamp,
                ))
        return facts

    def _location(
        self,
        window: Window,
        entry: RegistryEntry,
        locations: list[RegistryEntry],
        scene_path: str,
        timestamp: str,
    ) -> ExtractedFact | None:
        if not locations:
            return None

        character_alt = patterns.entity_alternation(entry)
        location_alt = patterns.location_alternation(locations)
        latest: tuple[re.Match, str] | None = None

        for location_pattern in patterns.location_patterns(character_alt, location_alt):
            for match in location_pattern.pattern.finditer(window.text):
                if resolve(match.group(1), [entry]) is None:
                    continue
                canonical = resolve(match.group(2), locations)
                if location_pattern.clears:
                    value = ""
                elif canonical is None:
                    continue
                else:
                    value = canonical
                if latest is None or match.start() >= latest[0].start():
                    latest = (match, value)

        if latest is None:
            return None
        match, value = latest
        return self._fact(LOCATION, value, match, window, scene_path, timestamp)

    @staticmethod
    def _fact(
        attribute: str,
        value: str,
        match: re.Match,
        window: Window,
        scene_path: str,
        timestamp: str,
    ) -> ExtractedFact:
        return ExtractedFact(
            attribute=attribute,
            value=value,
            source_scene=scene_path,
            source_line=window.line_at(match.start()),
            source_quote=truncate_quote(match.group(0)),
            extracted_by="tier1",
            extracted_at=timestamp,
        )
