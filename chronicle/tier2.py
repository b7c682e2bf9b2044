"""
chronicle/tier2.py -- Merge classifier output into a Tier 1 fact map.

Tier 1 owns the categories in ``patterns.TIER1_ATTRIBUTES``.  Once Tier 1
has produced a value for one of them in this scan, the classifier's value is
discarded.  Every other attribute is appended with provenance ``tier2``.
"""

from __future__ import annotations

import logging

from chronicle.llm_client import Tier2Result
from chronicle.models.base import ExtractedFact, RegistryEntry
from chronicle.patterns import TIER1_ATTRIBUTES
from chronicle.utils import now_iso, truncate_quote

logger = logging.getLogger(__name__)


def eligible_entities(entries: list[RegistryEntry]) -> list[RegistryEntry]:
    """Characters that may be sent to the classifier.

    Excluded entries and explicit opt-outs are skipped; an unset opt-in
    inherits the project default, which is "yes".
    """
    return [
        e for e in entries
        if e.kind == "character" and not e.excluded and e.llm_opt_in is not False
    ]


def merge_tier2(
    tier1_map: dict[str, list[ExtractedFact]],
    tier2: Tier2Result,
    scene: str,
) -> dict[str, list[ExtractedFact]]:
    """Return a new fact map with classifier facts appended.

    Parameters
    ----------
    tier1_map : dict[str, list[ExtractedFact]]
        Output of ``Tier1Extractor.extract``.  Not modified.
    tier2 : Tier2Result
        Parsed classifier reply.
    scene : str
        Source path stamped onto the new facts.

    Returns
    -------
    dict[str, list[ExtractedFact]]
        Tier 1 facts unchanged, followed by the accepted Tier 2 facts.
        Entities only the classifier reported are added at the end.
    """
    merged = {name: list(facts) for name, facts in tier1_map.items()}
    if tier2.is_empty:
        return merged

    timestamp = now_iso()
    added = 0
    for entity_name, attributes in tier2.facts.items():
        facts = merged.setdefault(entity_name, [])
        owned = {f.attribute for f in facts if f.attribute in TIER1_ATTRIBUTES}
        seen: set[str] = set()
        for attribute, item in attributes.items():
            if attribute in owned or attribute in seen:
                continue
            seen.add(attribute)
            facts.append(ExtractedFact(
                attribute=attribute,
                value=item.value.strip(),
                source_scene=scene,
                source_line=0,
                source_quote=truncate_quote(item.quote, ellipsis=False),
                extracted_by="tier2",
                extracted_at=timestamp,
            ))
            added += 1

    logger.debug("Merged %d Tier 2 fact(s) for %s", added, scene)
    return merged
