"""
chronicle/conflict_store.py -- The project-wide conflict list.

The store owns no state in memory between calls: every operation loads the
list from the ``ConflictLog``, changes it and saves it back, all inside the
serializer lane reserved for the log.  Operations that also touch an entity
record (dismiss, accept) do that part on the entity's own lane, after the
log update has finished.

Merge rules per incoming conflict, keyed on ``(entity, attribute, new_scene)``:

    no record for the key          append as active
    an active record exists        refresh its new_value / new_line in place
    only dismissed records exist   no-op when one of them dismissed this very
                                   value, otherwise append a new active record
"""

from __future__ import annotations

import logging
from typing import Callable

from chronicle.models.base import ConflictRecord, DismissedConflict, EntityRecord
from chronicle.reconciler import add_dismissal, force_attribute
from chronicle.serializer import CONFLICT_LOG_KEY, UpdateSerializer, entity_key
from chronicle.storage import ConflictLog, EntityRecordStore
from chronicle.utils import today_iso

logger = logging.getLogger(__name__)

ACCEPT_NOTE = "Updated bible to new value"


class ConflictStore:
    """Merge, query and resolve hard conflicts.

    Parameters
    ----------
    log : ConflictLog
        Persistence for the conflict list.
    records : EntityRecordStore
        Entity records, for dismissal markers and accepted values.
    serializer : UpdateSerializer
        Shared lanes; the log uses ``CONFLICT_LOG_KEY``.
    """

    def __init__(
        self,
        log: ConflictLog,
        records: EntityRecordStore,
        serializer: UpdateSerializer,
    ):
        self._log = log
        self._records = records
        self._serializer = serializer

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def all(self) -> list[ConflictRecord]:
        return self._serializer.run(CONFLICT_LOG_KEY, self._log.load_all)

    def active(self) -> list[ConflictRecord]:
        return [c for c in self.all() if c.is_active]

    def for_scene(self, scene: str) -> list[ConflictRecord]:
        """Active conflicts raised by one document."""
        return [c for c in self.active() if c.new_scene == scene]

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def merge(self, incoming: list[ConflictRecord]) -> list[ConflictRecord]:
        """Fold *incoming* into the stored list.

        Returns
        -------
        list[ConflictRecord]
            The records appended as new active conflicts.  The log is only
            written when something changed.
        """
        if not incoming:
            return []
        return self._serializer.run(CONFLICT_LOG_KEY, self._merge_locked, list(incoming))

    def _merge_locked(self, incoming: list[ConflictRecord]) -> list[ConflictRecord]:
        stored = self._log.load_all()
        appended: list[ConflictRecord] = []
        changed = False

        for conflict in incoming:
            same_key = [c for c in stored if c.dedup_key == conflict.dedup_key]
            active = next((c for c in same_key if c.is_active), None)

            if active is not None:
                if (active.new_value, active.new_line) != (conflict.new_value, conflict.new_line):
                    active.new_value = conflict.new_value
                    active.new_line = conflict.new_line
                    changed = True
                continue

            if any(c.new_value == conflict.new_value for c in same_key):
                # The writer already dismissed exactly this value.
                continue

            fresh = conflict.model_copy(update={
                "status": "active", "dismissal_note": None, "dismissed_at": None,
            })
            stored.append(fresh)
            appended.append(fresh)
            changed = True

        if changed:
            self._log.save_all(stored)
            logger.info(
                "Conflict log updated: %d new, %d total active",
                len(appended), sum(1 for c in stored if c.is_active),
            )
        return appended

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def dismiss(self, conflict: ConflictRecord, note: str = "") -> int:
        """Mark the conflict as intentional.

        Every active record with the conflict's dedup key is dismissed and a
        ``DismissedConflict`` marker is written into the entity's record so
        later scans do not raise the same contradiction again.

        Returns
        -------
        int
            Number of log records dismissed.
        """
        today = today_iso()
        dismissed = self._serializer.run(
            CONFLICT_LOG_KEY, self._dismiss_locked, conflict.dedup_key, note, today,
        )
        marker = DismissedConflict(
            attribute=conflict.attribute,
            value=conflict.new_value,
            scene=conflict.new_scene,
            note=note or None,
            dismissed_at=today,
        )
        self._update_record(
            conflict.entity, lambda record: add_dismissal(record, marker),
        )
        logger.info(
            "Dismissed conflict %s.%s in %s (%d record(s))",
            conflict.entity, conflict.attribute, conflict.new_scene, dismissed,
        )
        return dismissed

    def _dismiss_locked(self, key: tuple[str, str, str], note: str, today: str) -> int:
        stored = self._log.load_all()
        count = 0
        for record in stored:
            if record.dedup_key == key and record.is_active:
                record.status = "dismissed"
                record.dismissal_note = note or None
                record.dismissed_at = today
                count += 1
        if count:
            self._log.save_all(stored)
        return count

    def accept_new_value(self, conflict: ConflictRecord) -> None:
        """Make the conflict's new value authoritative.

        Dismisses the conflict, then overwrites the stored attribute and
        removes any manual override for it.
        """
        self.dismiss(conflict, ACCEPT_NOTE)
        self._update_record(
            conflict.entity,
            lambda record: (
                force_attribute(record, conflict.attribute, conflict.new_value, conflict.new_scene),
                True,
            ),
        )
        logger.info(
            "Accepted %s.%s = %r from %s",
            conflict.entity, conflict.attribute, conflict.new_value, conflict.new_scene,
        )

    def _update_record(
        self,
        entity: str,
        change: Callable[[EntityRecord], tuple[EntityRecord, bool]],
    ) -> None:
        def apply() -> None:
            record = self._records.read(entity)
            if record is None:
                logger.warning("No record for '%s'; skipping record update", entity)
                return
            updated, dirty = change(record)
            if dirty:
                self._records.write(updated)

        self._serializer.run(entity_key(entity), apply)
