"""
chronicle/storage.py -- JSON-file persistence collaborators.

    EntityRecordStore   one JSON file per entity under the bible folder
    ConflictLog         the project-wide conflict list
    DocumentSource      scene documents (read-only)

All writes go through ``utils.safe_write_json`` (temp file + ``os.replace``)
so a record on disk is always either the old or the new version.  The
stores do no locking of their own; callers serialize access per key through
``UpdateSerializer``.

Paths handed to and returned from ``DocumentSource`` are project-relative
and use forward slashes on every platform.
"""

from __future__ import annotations

import logging
import os
from typing import NamedTuple

from pydantic import ValidationError

from chronicle.errors import DocumentReadError, RecordReadError, RecordWriteError
from chronicle.models.base import ConflictRecord, EntityRecord, RegistryEntry
from chronicle.models.validators import coerce_conflict_list, coerce_entity_record
from chronicle.utils import read_json_strict, safe_write_json, sanitise_filename

logger = logging.getLogger(__name__)

CONFLICT_LOG_VERSION = 1
SCENE_EXTENSION = ".md"


def _to_posix(path: str) -> str:
    return path.replace(os.sep, "/")


# ---------------------------------------------------------------------------
# Entity records
# ---------------------------------------------------------------------------

class EntityRecordStore:
    """Reads and writes per-entity records.

    Parameters
    ----------
    project_root : str
        Root directory of the writing project.
    bible_folder : str
        Project-relative folder holding the record files.
    """

    def __init__(self, project_root: str, bible_folder: str):
        self.root = os.path.abspath(project_root)
        self.folder = os.path.join(self.root, *bible_folder.split("/"))

    def path_for(self, name: str) -> str:
        return os.path.join(self.folder, sanitise_filename(name) + ".json")

    def read(self, name: str, entry: RegistryEntry | None = None) -> EntityRecord | None:
        """Load the record for *name*, or ``None`` if none exists yet.

        Parameters
        ----------
        name : str
            Canonical entity name.
        entry : RegistryEntry, optional
            Registry entry for the entity.  When omitted (the entity has
            left the registry) identity is taken from the stored record.

        Raises
        ------
        RecordReadError
            If the file exists but cannot be read.
        """
        path = self.path_for(name)
        try:
            raw = read_json_strict(path)
        except OSError as exc:
            raise RecordReadError(f"Cannot read entity record {path}: {exc}") from exc
        if raw is None:
            if os.path.exists(path):
                # Corrupt JSON: recover as an empty record rather than "missing".
                return EntityRecord.for_entry(entry or RegistryEntry(name=name))
            return None
        return coerce_entity_record(raw, entry or self._identity_from(name, raw))

    def write(self, record: EntityRecord) -> None:
        """Atomically persist *record*.

        Raises
        ------
        RecordWriteError
            If the file cannot be written.
        """
        path = self.path_for(record.name)
        try:
            safe_write_json(path, record.model_dump(mode="json"))
        except OSError as exc:
            raise RecordWriteError(f"Cannot write entity record {path}: {exc}") from exc
        logger.debug("Wrote entity record %s", path)

    @staticmethod
    def _identity_from(name: str, raw: object) -> RegistryEntry:
        if isinstance(raw, dict):
            try:
                return RegistryEntry.model_validate({
                    "name": name,
                    "kind": raw.get("kind", "character"),
                    "aliases": raw.get("aliases", []),
                })
            except ValidationError:
                pass
        return RegistryEntry(name=name)


# ---------------------------------------------------------------------------
# Conflict log
# ---------------------------------------------------------------------------

class ConflictLog:
    """Persists the full conflict list as one JSON document."""

    def __init__(self, path: str):
        self.path = path

    def load_all(self) -> list[ConflictRecord]:
        """Return every stored conflict; malformed entries are skipped.

        Raises
        ------
        RecordReadError
            If the file exists but cannot be read.
        """
        try:
            raw = read_json_strict(self.path)
        except OSError as exc:
            raise RecordReadError(f"Cannot read conflict log {self.path}: {exc}") from exc
        return coerce_conflict_list(raw)

    def save_all(self, conflicts: list[ConflictRecord]) -> None:
        """Atomically replace the stored list.

        Raises
        ------
        RecordWriteError
            If the file cannot be written.
        """
        data = {
            "version": CONFLICT_LOG_VERSION,
            "conflicts": [c.model_dump(mode="json") for c in conflicts],
        }
        try:
            safe_write_json(self.path, data)
        except OSError as exc:
            raise RecordWriteError(f"Cannot write conflict log {self.path}: {exc}") from exc
        logger.debug("Wrote %d conflict(s) to %s", len(conflicts), self.path)


# ---------------------------------------------------------------------------
# Scene documents
# ---------------------------------------------------------------------------

class DocumentInfo(NamedTuple):
    path: str     # project-relative, forward slashes
    mtime: float


class DocumentSource:
    """Read access to the project's text documents."""

    def __init__(self, project_root: str):
        self.root = os.path.abspath(project_root)

    def absolute(self, path: str) -> str:
        return os.path.join(self.root, *path.split("/"))

    def relative(self, path: str) -> str:
        """Project-relative form of *path* (absolute or already relative)."""
        if os.path.isabs(path):
            path = os.path.relpath(path, self.root)
        return _to_posix(os.path.normpath(path))

    def read(self, path: str) -> str:
        """Return the text of the document at project-relative *path*.

        Raises
        ------
        DocumentReadError
            If the document cannot be read or decoded.
        """
        try:
            with open(self.absolute(path), "r", encoding="utf-8") as fh:
                return fh.read()
        except (OSError, UnicodeDecodeError) as exc:
            raise DocumentReadError(f"Cannot read document {path}: {exc}") from exc

    def list_documents(self) -> list[DocumentInfo]:
        """Every markdown document under the root, skipping hidden folders."""
        documents: list[DocumentInfo] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for filename in sorted(filenames):
                if not filename.endswith(SCENE_EXTENSION):
                    continue
                full = os.path.join(dirpath, filename)
                try:
                    mtime = os.path.getmtime(full)
                except OSError as exc:
                    logger.warning("Skipping %s: %s", full, exc)
                    continue
                documents.append(DocumentInfo(self.relative(full), mtime))
        return documents
