"""
chronicle/engine.py -- Scan entry points and conflict resolution actions.

``ChronicleEngine`` wires the pure pipeline (segmenter, extractor, Tier 2
merge, reconciler) to the JSON stores and the per-entity update lanes:

    scan_one(path)   one scene, e.g. after the writer saves it
    scan_all()       every scene, oldest-modified first, one reconciliation
                     per entity at the end

Per-unit failures (a document that cannot be read during a full scan, a
classifier outage, an entity record that cannot be written) are logged and
collected in ``ScanResult.failures``; the rest of the scan proceeds.
Configuration errors are raised before any work starts.

Usage::

    from chronicle.engine import ChronicleEngine

    with ChronicleEngine("/path/to/novel") as engine:
        result = engine.scan_one("scenes/ch01.md")
        for conflict in engine.active_conflicts():
            ...
"""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import Future

from chronicle.config import Settings, load_settings
from chronicle.conflict_store import ConflictStore
from chronicle.errors import ChronicleError, ClassifierUnavailableError, DocumentReadError
from chronicle.extractor import Tier1Extractor
from chronicle.llm_client import ClassifierClient
from chronicle.models.base import (
    LOCATION,
    ConflictRecord,
    EntityRecord,
    EntityScanResult,
    ExtractedFact,
    RegistryEntry,
    ScanResult,
    SceneTemporalRecord,
)
from chronicle.reconciler import Reconciliation, reconcile
from chronicle.registry import RegistryManager
from chronicle.segmenter import strip_header
from chronicle.serializer import UpdateSerializer, entity_key
from chronicle.storage import (
    SCENE_EXTENSION,
    ConflictLog,
    DocumentSource,
    EntityRecordStore,
)
from chronicle.temporal import TemporalExtractor
from chronicle.tier2 import eligible_entities, merge_tier2

logger = logging.getLogger(__name__)

FactMap = dict[str, list[ExtractedFact]]


def _under(path: str, folder: str) -> bool:
    folder = folder.rstrip("/")
    return bool(folder) and path.startswith(folder + "/")


class ChronicleEngine:
    """Continuity engine for one writing project.

    Parameters
    ----------
    project_root : str
        Root directory of the writing project.
    settings : Settings, optional
        Loaded from ``_chronicle/settings.json`` when omitted.
    classifier : ClassifierClient, optional
        Tier 2 client; built from *settings* when omitted.  Only used when
        ``settings.llm_enabled`` is true.
    """

    def __init__(
        self,
        project_root: str,
        settings: Settings | None = None,
        classifier: ClassifierClient | None = None,
    ):
        self.root = os.path.abspath(project_root)
        self.settings = settings if settings is not None else load_settings(self.root)

        self.documents = DocumentSource(self.root)
        self.registry = RegistryManager(self.root, self.settings.registry_path)
        self.records = EntityRecordStore(self.root, self.settings.bible_folder)
        self.serializer = UpdateSerializer()
        self.conflicts = ConflictStore(
            ConflictLog(self.documents.absolute(self.settings.conflict_log_path)),
            self.records,
            self.serializer,
        )
        self.extractor = Tier1Extractor(self.settings.extraction_window)
        self.classifier = classifier if classifier is not None else ClassifierClient(self.settings)
        self.temporal = TemporalExtractor()

    # ------------------------------------------------------------------
    # Scene filtering
    # ------------------------------------------------------------------

    def is_scene_file(self, path: str) -> bool:
        """Return True if *path* is a document the engine should scan.

        Only markdown files qualify, never anything in the bible folder or
        next to the registry, and, when scene folders are configured, only
        files inside one of them.
        """
        rel = self.documents.relative(path)
        if not rel.endswith(SCENE_EXTENSION) or rel.startswith("../"):
            return False
        if _under(rel, self.settings.bible_folder):
            return False
        if rel == self.settings.registry_path:
            return False
        if _under(rel, self.settings.registry_folder):
            return False
        if not self.settings.scene_folders:
            return True
        return any(_under(rel, folder) for folder in self.settings.scene_folders)

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    def scan_one(self, path: str) -> ScanResult:
        """Scan a single scene and apply its facts.

        Raises
        ------
        DocumentReadError
            If the document cannot be read.
        ClassifierConfigError
            If Tier 2 is enabled but misconfigured.
        """
        started = time.perf_counter()
        rel = self.documents.relative(path)
        if not self.is_scene_file(rel):
            logger.debug("Not a scene file, skipping: %s", rel)
            return ScanResult()

        self._check_classifier()
        content = self.documents.read(rel)
        entries = self.registry.load_entries()
        failures: list[str] = []

        fact_map = self._extract(content, rel, entries, failures)
        batches = [(name, facts, [rel]) for name, facts in fact_map.items()]
        result = self._apply_batches(batches, entries, failures)
        result.scanned_paths = [rel]
        result.duration_ms = int((time.perf_counter() - started) * 1000)

        logger.info(
            "Scanned %s: %d change(s), %d conflict(s) (%d new) in %d ms",
            rel, len(result.changes), len(result.conflicts),
            len(result.new_conflicts), result.duration_ms,
        )
        return result

    def scan_all(self) -> ScanResult:
        """Scan every scene document, oldest-modified first.

        Facts are accumulated across documents before anything is written:
        for ordinary attributes the first occurrence wins, for location the
        latest one does.

        Raises
        ------
        ClassifierConfigError
            If Tier 2 is enabled but misconfigured.
        """
        started = time.perf_counter()
        self._check_classifier()
        entries = self.registry.load_entries()
        failures: list[str] = []

        documents = sorted(
            (d for d in self.documents.list_documents() if self.is_scene_file(d.path)),
            key=lambda d: (d.mtime, d.path),
        )

        scanned: list[str] = []
        accumulated: dict[str, dict[str, ExtractedFact]] = {}
        appearances: dict[str, list[str]] = {}

        for document in documents:
            try:
                content = self.documents.read(document.path)
            except DocumentReadError as exc:
                logger.error("Skipping unreadable document: %s", exc)
                failures.append(f"{document.path}: {exc}")
                continue
            scanned.append(document.path)

            for name, facts in self._extract(content, document.path, entries, failures).items():
                scenes = appearances.setdefault(name, [])
                if document.path not in scenes:
                    scenes.append(document.path)
                by_attribute = accumulated.setdefault(name, {})
                for fact in facts:
                    if fact.attribute == LOCATION or fact.attribute not in by_attribute:
                        by_attribute[fact.attribute] = fact

        batches = [
            (name, list(accumulated[name].values()), appearances[name])
            for name in accumulated
        ]
        result = self._apply_batches(batches, entries, failures)
        result.scanned_paths = scanned
        result.duration_ms = int((time.perf_counter() - started) * 1000)

        logger.info(
            "Full scan of %d document(s): %d change(s), %d new conflict(s), "
            "%d failure(s) in %d ms",
            len(scanned), len(result.changes), len(result.new_conflicts),
            len(result.failures), result.duration_ms,
        )
        return result

    # ------------------------------------------------------------------
    # Conflict actions
    # ------------------------------------------------------------------

    def active_conflicts(self) -> list[ConflictRecord]:
        return self.conflicts.active()

    def find_conflict(self, entity: str, attribute: str, scene: str) -> ConflictRecord | None:
        """Active conflict for (entity, attribute, scene); entity and
        attribute are matched case-insensitively."""
        scene = self.documents.relative(scene)
        for conflict in self.conflicts.active():
            if (
                conflict.entity.lower() == entity.lower()
                and conflict.attribute.lower() == attribute.lower()
                and conflict.new_scene == scene
            ):
                return conflict
        return None

    def dismiss_conflict(self, conflict: ConflictRecord, note: str = "") -> None:
        self.conflicts.dismiss(conflict, note)

    def accept_new_value(self, conflict: ConflictRecord) -> None:
        self.conflicts.accept_new_value(conflict)

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    def scan_temporal(self, path: str) -> SceneTemporalRecord:
        """Temporal markers and anchor of one document.

        Raises
        ------
        DocumentReadError
            If the document cannot be read.
        """
        rel = self.documents.relative(path)
        return self.temporal.scene_record(rel, self.documents.read(rel))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self.serializer.close()

    def __enter__(self) -> ChronicleEngine:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _check_classifier(self) -> None:
        if self.settings.llm_enabled:
            self.classifier.validate_config()

    def _extract(
        self,
        content: str,
        scene: str,
        entries: list[RegistryEntry],
        failures: list[str],
    ) -> FactMap:
        fact_map = self.extractor.extract(content, scene, entries)
        if not self.settings.llm_enabled:
            return fact_map

        entities = [e for e in eligible_entities(entries) if e.in_scope(scene)]
        if not entities:
            return fact_map
        body, _ = strip_header(content)
        try:
            reply = self.classifier.extract(body, entities)
        except ClassifierUnavailableError as exc:
            logger.error("Tier 2 classification failed for %s: %s", scene, exc)
            failures.append(f"{scene}: {exc}")
            return fact_map
        return merge_tier2(fact_map, reply, scene)

    def _reconcile_entity(
        self,
        entry: RegistryEntry,
        facts: list[ExtractedFact],
        scenes: list[str],
    ) -> Reconciliation:
        """Read-merge-write for one entity.  Runs on the entity's lane."""
        record = self.records.read(entry.name, entry) or EntityRecord.for_entry(entry)
        outcome = reconcile(record, facts, scenes)
        if outcome.dirty:
            self.records.write(outcome.record)
        return outcome

    def _apply_batches(
        self,
        batches: list[tuple[str, list[ExtractedFact], list[str]]],
        entries: list[RegistryEntry],
        failures: list[str],
    ) -> ScanResult:
        by_name = {entry.name: entry for entry in entries}
        pending: list[tuple[RegistryEntry, list[str], Future]] = []
        for name, facts, scenes in batches:
            entry = by_name.get(name)
            if entry is None:
                continue
            future = self.serializer.submit(
                entity_key(name), self._reconcile_entity, entry, facts, scenes,
            )
            pending.append((entry, scenes, future))

        result = ScanResult()
        detected: list[ConflictRecord] = []
        for entry, scenes, future in pending:
            try:
                outcome = future.result()
            except Exception as exc:  # one entity never sinks the batch
                logger.exception("Could not update record for '%s'", entry.name)
                failures.append(f"{entry.name}: {exc}")
                continue

            result.appearances[entry.name] = list(scenes)
            if outcome.dirty:
                result.writes += 1
            detected.extend(outcome.conflicts)
            if outcome.changes or outcome.conflicts:
                result.entities.append(EntityScanResult(
                    entity_name=entry.name,
                    changes=outcome.changes,
                    appearances=list(scenes),
                    conflicts=outcome.conflicts,
                    written=outcome.dirty,
                ))

        result.conflicts = detected
        try:
            result.new_conflicts = self.conflicts.merge(detected)
        except ChronicleError as exc:
            logger.exception("Could not update the conflict log")
            failures.append(f"conflict log: {exc}")
        result.failures = failures
        return result
