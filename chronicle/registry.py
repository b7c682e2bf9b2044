"""
chronicle/registry.py -- Registry snapshot loader.

The registry is the list of entities the engine is allowed to track.  It is
stored as JSON, either a bare list of entry objects or ``{"entities": [...]}``.
Each scan takes one snapshot via ``load_entries`` and uses it throughout.
"""

from __future__ import annotations

import logging
import os

from pydantic import ValidationError

from chronicle.models.base import RegistryEntry
from chronicle.utils import safe_read_json, safe_write_json

logger = logging.getLogger(__name__)


class RegistryManager:
    """Reads (and appends to) the project's entity registry.

    Parameters
    ----------
    project_root : str
        Root directory of the writing project.
    registry_path : str
        Project-relative path of the registry JSON file.
    """

    def __init__(self, project_root: str, registry_path: str):
        self.path = os.path.join(os.path.abspath(project_root), *registry_path.split("/"))

    def _raw_entries(self) -> list:
        raw = safe_read_json(self.path, default=None)
        if raw is None:
            if os.path.exists(self.path):
                logger.warning("Registry %s could not be parsed; treating it as empty", self.path)
            return []
        if isinstance(raw, dict):
            raw = raw.get("entities", [])
        if not isinstance(raw, list):
            logger.warning("Registry %s is not a list of entities; treating it as empty", self.path)
            return []
        return raw

    def load_entries(self) -> list[RegistryEntry]:
        """Return the registry snapshot.

        Entries are deduplicated by name, case-insensitively; the first
        occurrence wins.  Malformed entries are skipped with a warning.
        """
        entries: list[RegistryEntry] = []
        seen: set[str] = set()
        for idx, item in enumerate(self._raw_entries()):
            try:
                entry = RegistryEntry.model_validate(item)
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed registry entry #%d in %s: %s",
                    idx, self.path, exc.errors()[0].get("msg", exc),
                )
                continue
            if entry.key in seen:
                logger.debug("Ignoring duplicate registry entry '%s'", entry.name)
                continue
            seen.add(entry.key)
            entries.append(entry)
        return entries

    def add_entry(self, entry: RegistryEntry) -> None:
        """Append *entry* to the registry file.

        Existing entries are preserved as stored.

        Raises
        ------
        ValueError
            If an entity with the same name (case-insensitive) exists.
        """
        if any(e.key == entry.key for e in self.load_entries()):
            raise ValueError(f"'{entry.name}' is already in the registry")
        raw = self._raw_entries()
        raw.append(entry.model_dump(mode="json", exclude_defaults=True))
        safe_write_json(self.path, {"entities": raw})
        logger.info("Registered %s '%s'", entry.kind, entry.name)
