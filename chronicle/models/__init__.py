"""
chronicle/models/ -- Pydantic v2 models for the Chronicle continuity engine.

Submodules:
    base        Registry entries, facts, entity records, conflicts, scan results.
    validators  JSON Schema shape checks that recover malformed persisted data.
"""

from chronicle.models.base import (
    AttributeChange,
    AttributeRow,
    ConflictRecord,
    DismissedConflict,
    EntityRecord,
    EntityScanResult,
    ExtractedFact,
    RegistryEntry,
    ScanResult,
    SceneTemporalRecord,
    TemporalMarker,
)

__all__ = [
    "AttributeChange",
    "AttributeRow",
    "ConflictRecord",
    "DismissedConflict",
    "EntityRecord",
    "EntityScanResult",
    "ExtractedFact",
    "RegistryEntry",
    "ScanResult",
    "SceneTemporalRecord",
    "TemporalMarker",
]
