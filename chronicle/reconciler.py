"""
chronicle/reconciler.py -- Merge extracted facts into an entity record.

``reconcile`` is a pure function: it receives the stored record and a batch
of facts and returns the full new record together with the changes applied
and the contradictions found.  The caller decides whether to persist, based
on ``Reconciliation.dirty``.  Nothing here performs I/O, so the whole
read-merge-write cycle can run inside one serialization lane.

Rules, applied per fact in batch order:

    manual override   never changed; a differing, non-dismissed value is a
                      hard conflict against "(manual override)"
    location          "" clears; any difference is applied immediately
                      and never raises a conflict
    other attribute   first value establishes; a different value is a hard
                      conflict unless the writer dismissed that exact
                      (attribute, value, scene), in which case it updates
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from chronicle.models.base import (
    LOCATION,
    MANUAL_OVERRIDE_SCENE,
    MANUAL_OVERRIDE_SOURCE,
    AttributeChange,
    AttributeRow,
    ConflictRecord,
    DismissedConflict,
    EntityRecord,
    ExtractedFact,
)

logger = logging.getLogger(__name__)


@dataclass
class Reconciliation:
    """Result of reconciling one fact batch against one entity record."""
    record: EntityRecord
    changes: list[AttributeChange] = field(default_factory=list)
    conflicts: list[ConflictRecord] = field(default_factory=list)
    dirty: bool = False


def _conflict(
    record: EntityRecord,
    fact: ExtractedFact,
    prior_value: str,
    prior_scene: str,
) -> ConflictRecord:
    return ConflictRecord(
        type="hard",
        entity=record.name,
        attribute=fact.attribute,
        prior_value=prior_value,
        prior_scene=prior_scene,
        new_value=fact.value,
        new_scene=fact.source_scene,
        new_line=fact.source_line,
        status="active",
    )


def reconcile(
    record: EntityRecord,
    facts: list[ExtractedFact],
    scenes: list[str],
) -> Reconciliation:
    """Compute the new state of *record* after applying *facts*.

    Parameters
    ----------
    record : EntityRecord
        The currently stored record.  Not modified.
    facts : list[ExtractedFact]
        Facts for this entity, in the order they should be applied.
    scenes : list[str]
        Scenes the entity appeared in during this run.

    Returns
    -------
    Reconciliation
        ``dirty`` is False when persisting would not change anything, in
        which case the caller must not write.
    """
    updated = record.model_copy(deep=True)
    overrides = updated.manual_overrides
    changes: list[AttributeChange] = []
    conflicts: list[ConflictRecord] = []

    for fact in facts:
        if fact.attribute in overrides:
            override = overrides[fact.attribute]
            if (
                fact.value
                and fact.value != override
                and not updated.is_dismissed(fact.attribute, fact.value, fact.source_scene)
            ):
                conflicts.append(_conflict(updated, fact, override, MANUAL_OVERRIDE_SCENE))
            continue

        if fact.attribute == LOCATION:
            new_location = fact.value or None
            if new_location != updated.location:
                changes.append(AttributeChange(
                    attribute=LOCATION,
                    old_value=updated.location,
                    new_value=new_location,
                    source_quote=fact.source_quote,
                    source_line=fact.source_line,
                ))
                updated.location = new_location
            continue

        row = updated.row(fact.attribute)
        stored = row.value if row is not None else None
        if stored == fact.value:
            continue

        if stored is not None and not updated.is_dismissed(
            fact.attribute, fact.value, fact.source_scene
        ):
            conflicts.append(_conflict(updated, fact, stored, row.first_mentioned or "unknown"))
            continue

        changes.append(AttributeChange(
            attribute=fact.attribute,
            old_value=stored,
            new_value=fact.value,
            source_quote=fact.source_quote,
            source_line=fact.source_line,
        ))
        if row is not None:
            row.value = fact.value
            row.source = fact.source_quote
        else:
            updated.attributes.append(AttributeRow(
                attribute=fact.attribute,
                value=fact.value,
                first_mentioned=fact.source_scene,
                source=fact.source_quote,
            ))

    for scene in scenes:
        if scene and scene not in updated.appearances:
            updated.appearances.append(scene)

    for row in updated.attributes:
        if row.attribute in overrides:
            row.source = MANUAL_OVERRIDE_SOURCE

    # Changes that cancel out within one batch (entered, then left) leave
    # the stored record as it was.
    if updated.model_dump() == record.model_dump():
        return Reconciliation(record=record, changes=changes, conflicts=conflicts)

    logger.debug(
        "Reconciled %s: %d change(s), %d conflict(s)",
        record.name, len(changes), len(conflicts),
    )
    return Reconciliation(record=updated, changes=changes, conflicts=conflicts, dirty=True)


# ---------------------------------------------------------------------------
# Resolution helpers
# ---------------------------------------------------------------------------

def force_attribute(
    record: EntityRecord,
    attribute: str,
    value: str,
    scene: str,
) -> EntityRecord:
    """Overwrite *attribute* with an accepted value, bypassing conflict checks.

    Any manual override for the attribute is dropped so that the accepted
    value becomes authoritative.
    """
    updated = record.model_copy(deep=True)
    source = f"(accepted from {scene})"

    if attribute == LOCATION:
        updated.location = value or None
    else:
        row = updated.row(attribute)
        if row is not None:
            row.value = value
            row.source = source
        else:
            updated.attributes.append(AttributeRow(
                attribute=attribute, value=value, first_mentioned=scene, source=source,
            ))
    updated.manual_overrides.pop(attribute, None)
    return updated


def add_dismissal(record: EntityRecord, dismissed: DismissedConflict) -> tuple[EntityRecord, bool]:
    """Append a dismissal marker unless the same triple is already present.

    Returns
    -------
    tuple[EntityRecord, bool]
        The (possibly new) record and whether it changed.
    """
    if record.is_dismissed(dismissed.attribute, dismissed.value, dismissed.scene):
        return record, False
    updated = record.model_copy(deep=True)
    updated.dismissed_conflicts.append(dismissed)
    return updated, True
