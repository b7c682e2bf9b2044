"""
chronicle/models/base.py -- Core data model for the continuity engine.

Every structure that crosses a module boundary is a Pydantic v2 model:

    RegistryEntry      An entity the engine is allowed to track (read-only input).
    ExtractedFact      One attribute/value observation with provenance (immutable).
    EntityRecord       The persisted per-entity bible record.
    ConflictRecord     A contradiction between an established and a new value.
    ScanResult         What a scan entry point returns to its caller.

Persisted models use snake_case keys; ``RegistryEntry`` also accepts the
camelCase spellings (``type``, ``sceneFolder``, ``llmOptIn``) that a registry
exported from the editor plugin carries.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from chronicle.utils import now_iso, today_iso

EntityKind = Literal["character", "location", "object", "faction"]
Provenance = Literal["tier1", "tier2", "manual"]

LOCATION = "location"
MANUAL_OVERRIDE_SCENE = "(manual override)"
MANUAL_OVERRIDE_SOURCE = "(manual override)"
RECORD_VERSION = 1


# ------------------------------------------------------------------
# Registry
# ------------------------------------------------------------------

class RegistryEntry(BaseModel):
    """An entity registered for tracking.

    The identity key is the lower-cased canonical name (``entry.key``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    aliases: list[str] = Field(default_factory=list)
    kind: EntityKind = Field(
        default="character", validation_alias=AliasChoices("kind", "type"),
    )
    scene_folder: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("scene_folder", "sceneFolder"),
    )
    excluded: bool = False
    llm_opt_in: Optional[bool] = Field(
        default=None, validation_alias=AliasChoices("llm_opt_in", "llmOptIn"),
    )

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("entity name must not be blank")
        return value

    @field_validator("aliases")
    @classmethod
    def _clean_aliases(cls, value: list[str]) -> list[str]:
        cleaned: list[str] = []
        for alias in value:
            alias = alias.strip()
            if alias and alias not in cleaned:
                cleaned.append(alias)
        return cleaned

    @property
    def key(self) -> str:
        return self.name.lower()

    @property
    def terms(self) -> list[str]:
        """Canonical name followed by every alias."""
        return [self.name, *self.aliases]

    def in_scope(self, scene_path: str) -> bool:
        """Return True if *scene_path* may be scanned for this entity."""
        if not self.scene_folder:
            return True
        folder = self.scene_folder.strip().rstrip("/")
        return not folder or scene_path.startswith(folder + "/")


# ------------------------------------------------------------------
# Facts
# ------------------------------------------------------------------

class ExtractedFact(BaseModel):
    """One observation about an entity.

    ``value == ""`` means "cleared" (only produced for ``location``), which
    is distinct from the attribute being absent from a batch.
    """

    model_config = ConfigDict(frozen=True)

    attribute: str
    value: str
    source_scene: str
    source_line: int = 0
    source_quote: str = ""
    extracted_by: Provenance = "tier1"
    extracted_at: str = Field(default_factory=now_iso)


class AttributeChange(BaseModel):
    """A change applied to an entity record by reconciliation.

    ``old_value`` is ``None`` on first establishment; ``new_value`` is
    ``None`` when a location was cleared.
    """

    attribute: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    source_quote: str = ""
    source_line: int = 0


# ------------------------------------------------------------------
# Persisted entity record
# ------------------------------------------------------------------

class AttributeRow(BaseModel):
    attribute: str
    value: str
    first_mentioned: str = ""
    source: str = ""


class DismissedConflict(BaseModel):
    """A contradiction the writer accepted as intentional."""

    attribute: str
    value: str
    scene: str
    note: Optional[str] = None
    dismissed_at: str = Field(default_factory=today_iso)

    def matches(self, attribute: str, value: str, scene: str) -> bool:
        return (
            self.attribute == attribute
            and self.value == value
            and self.scene == scene
        )


class EntityRecord(BaseModel):
    """Per-entity bible record persisted by the record store.

    Invariant: an attribute listed in ``manual_overrides`` is never altered
    by extraction.  Only an explicit accept-new-value action removes it.
    """

    name: str
    kind: EntityKind = "character"
    aliases: list[str] = Field(default_factory=list)
    attributes: list[AttributeRow] = Field(default_factory=list)
    appearances: list[str] = Field(default_factory=list)
    location: Optional[str] = None
    manual_overrides: dict[str, str] = Field(default_factory=dict)
    dismissed_conflicts: list[DismissedConflict] = Field(default_factory=list)
    version: int = RECORD_VERSION

    @classmethod
    def for_entry(cls, entry: RegistryEntry) -> EntityRecord:
        """Return an empty record for a registry entry."""
        return cls(name=entry.name, kind=entry.kind, aliases=list(entry.aliases))

    def row(self, attribute: str) -> AttributeRow | None:
        for row in self.attributes:
            if row.attribute == attribute:
                return row
        return None

    def is_dismissed(self, attribute: str, value: str, scene: str) -> bool:
        return any(d.matches(attribute, value, scene) for d in self.dismissed_conflicts)

    def effective_attributes(self) -> dict[str, str]:
        """Attribute values as displayed: manual overrides win."""
        result: dict[str, str] = {}
        for row in self.attributes:
            result[row.attribute] = self.manual_overrides.get(row.attribute, row.value)
        for attribute, value in self.manual_overrides.items():
            result.setdefault(attribute, value)
        if LOCATION not in self.manual_overrides and self.location:
            result[LOCATION] = self.location
        return result


# ------------------------------------------------------------------
# Conflicts
# ------------------------------------------------------------------

class ConflictRecord(BaseModel):
    """A contradiction between an established value and a new one.

    Dedup key is ``(entity, attribute, new_scene)``.
    """

    type: Literal["hard", "soft"] = "hard"
    entity: str
    attribute: str
    prior_value: str
    prior_scene: str
    new_value: str
    new_scene: str
    new_line: int = 0
    status: Literal["active", "dismissed"] = "active"
    dismissal_note: Optional[str] = None
    dismissed_at: Optional[str] = None

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.entity, self.attribute, self.new_scene)

    @property
    def is_active(self) -> bool:
        return self.status == "active"


# ------------------------------------------------------------------
# Scan results
# ------------------------------------------------------------------

class EntityScanResult(BaseModel):
    entity_name: str
    changes: list[AttributeChange] = Field(default_factory=list)
    appearances: list[str] = Field(default_factory=list)
    conflicts: list[ConflictRecord] = Field(default_factory=list)
    written: bool = False


class ScanResult(BaseModel):
    """Outcome of ``scan_one`` / ``scan_all``.

    ``entities`` only lists entities with changes or conflicts;
    ``conflicts`` holds every contradiction detected by this scan while
    ``new_conflicts`` holds the ones the conflict store had not seen yet.
    ``failures`` collects per-document / per-entity errors that did not
    abort the scan.
    """

    scanned_paths: list[str] = Field(default_factory=list)
    entities: list[EntityScanResult] = Field(default_factory=list)
    conflicts: list[ConflictRecord] = Field(default_factory=list)
    new_conflicts: list[ConflictRecord] = Field(default_factory=list)
    appearances: dict[str, list[str]] = Field(default_factory=dict)
    writes: int = 0
    failures: list[str] = Field(default_factory=list)
    duration_ms: int = 0

    @property
    def changes(self) -> list[AttributeChange]:
        return [change for entity in self.entities for change in entity.changes]


# ------------------------------------------------------------------
# Temporal markers
# ------------------------------------------------------------------

class TemporalMarker(BaseModel):
    type: Literal["relative_forward", "relative_backward", "absolute", "same_day"]
    text: str
    line: int


class SceneTemporalRecord(BaseModel):
    scene_path: str
    anchor: Optional[str] = None
    markers: list[TemporalMarker] = Field(default_factory=list)
    resolved_position: Optional[float] = None
