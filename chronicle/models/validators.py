"""
chronicle/models/validators.py -- Shape checks for persisted data.

Entity records and the conflict log live in JSON files that a writer may
edit by hand (manual overrides are entered that way).  Before the engine
turns such data into models it validates it against the JSON Schemas below.
Malformed data is never fatal: each top-level section of an entity record is
checked on its own, a broken section is replaced by its default and the
rest of the record is kept, so one bad hand edit does not wipe out the
writer's manual overrides.

Usage::

    from chronicle.models.validators import coerce_entity_record

    record = coerce_entity_record(raw_json, entry)
"""

from __future__ import annotations

import logging
from typing import Any

import jsonschema
from pydantic import ValidationError

from chronicle.models.base import (
    ConflictRecord,
    EntityRecord,
    RegistryEntry,
)

logger = logging.getLogger(__name__)

_STRING = {"type": "string"}
_NULLABLE_STRING = {"type": ["string", "null"]}

ATTRIBUTE_ROW_SCHEMA = {
    "type": "object",
    "required": ["attribute", "value"],
    "properties": {
        "attribute": _STRING,
        "value": _STRING,
        "first_mentioned": _STRING,
        "source": _STRING,
    },
}

DISMISSED_CONFLICT_SCHEMA = {
    "type": "object",
    "required": ["attribute", "value", "scene"],
    "properties": {
        "attribute": _STRING,
        "value": _STRING,
        "scene": _STRING,
        "note": _NULLABLE_STRING,
        "dismissed_at": _STRING,
    },
}

ENTITY_RECORD_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "name": _STRING,
        "kind": {"enum": ["character", "location", "object", "faction"]},
        "aliases": {"type": "array", "items": _STRING},
        "attributes": {"type": "array", "items": ATTRIBUTE_ROW_SCHEMA},
        "appearances": {"type": "array", "items": _STRING},
        "location": _NULLABLE_STRING,
        "manual_overrides": {
            "type": "object",
            "additionalProperties": _STRING,
        },
        "dismissed_conflicts": {"type": "array", "items": DISMISSED_CONFLICT_SCHEMA},
        "version": {"type": "integer", "minimum": 1},
    },
}

CONFLICT_RECORD_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": [
        "entity", "attribute", "prior_value", "prior_scene",
        "new_value", "new_scene",
    ],
    "properties": {
        "type": {"enum": ["hard", "soft"]},
        "entity": _STRING,
        "attribute": _STRING,
        "prior_value": _STRING,
        "prior_scene": _STRING,
        "new_value": _STRING,
        "new_scene": _STRING,
        "new_line": {"type": "integer"},
        "status": {"enum": ["active", "dismissed"]},
        "dismissal_note": _NULLABLE_STRING,
        "dismissed_at": _NULLABLE_STRING,
    },
}


# ------------------------------------------------------------------
# Error formatting
# ------------------------------------------------------------------

def humanize_error(error: jsonschema.ValidationError) -> str:
    """Convert a ``jsonschema.ValidationError`` into plain English."""
    path = " -> ".join(str(p) for p in error.absolute_path) if error.absolute_path else "(root)"
    msg = error.message
    if error.validator == "required":
        return f"Missing required field at {path}: {msg}"
    if error.validator == "type":
        return f"Wrong data type at '{path}': {msg}"
    if error.validator == "enum":
        return f"Invalid value at '{path}': {msg}"
    return f"Issue at '{path}': {msg}"


def validate_entity_record(data: Any) -> list[str]:
    """Return human-readable problems with a raw entity record (empty if valid)."""
    validator = jsonschema.Draft202012Validator(ENTITY_RECORD_SCHEMA)
    return [humanize_error(err) for err in validator.iter_errors(data)]


def validate_conflict_record(data: Any) -> list[str]:
    """Return human-readable problems with a raw conflict record (empty if valid)."""
    validator = jsonschema.Draft202012Validator(CONFLICT_RECORD_SCHEMA)
    return [humanize_error(err) for err in validator.iter_errors(data)]


# ------------------------------------------------------------------
# Recovery
# ------------------------------------------------------------------

def coerce_entity_record(raw: Any, entry: RegistryEntry) -> EntityRecord:
    """Build an ``EntityRecord`` from raw JSON, salvaging what is valid.

    Parameters
    ----------
    raw : object
        Parsed JSON, or ``None`` when no record exists yet.
    entry : RegistryEntry
        The registry entry the record belongs to.  Supplies the name, kind
        and aliases when the stored values are missing or broken.

    Returns
    -------
    EntityRecord
        Never raises; unusable sections fall back to their defaults.
    """
    record = EntityRecord.for_entry(entry)
    if raw is None:
        return record
    if not isinstance(raw, dict):
        logger.warning(
            "Entity record for '%s' is not a JSON object; starting from an empty record",
            entry.name,
        )
        return record

    salvaged: dict[str, Any] = record.model_dump()
    properties = ENTITY_RECORD_SCHEMA["properties"]
    for key, sub_schema in properties.items():
        if key not in raw:
            continue
        errors = list(jsonschema.Draft202012Validator(sub_schema).iter_errors(raw[key]))
        if errors:
            logger.warning(
                "Dropping malformed '%s' section of entity record '%s': %s",
                key, entry.name, humanize_error(errors[0]),
            )
            continue
        salvaged[key] = raw[key]

    # Registry snapshot is authoritative for identity.
    salvaged["name"] = entry.name
    salvaged["kind"] = entry.kind
    salvaged["aliases"] = list(entry.aliases)

    try:
        return EntityRecord.model_validate(salvaged)
    except ValidationError as exc:
        logger.warning(
            "Entity record for '%s' could not be loaded (%s); starting from an empty record",
            entry.name, exc.error_count(),
        )
        return record


def coerce_conflict_list(raw: Any) -> list[ConflictRecord]:
    """Build the conflict list from raw JSON, skipping malformed items.

    Accepts either a bare list or ``{"conflicts": [...]}``.
    """
    if isinstance(raw, dict):
        raw = raw.get("conflicts", [])
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning("Conflict log is not a list; treating it as empty")
        return []

    conflicts: list[ConflictRecord] = []
    for idx, item in enumerate(raw):
        problems = validate_conflict_record(item)
        if problems:
            logger.warning("Skipping malformed conflict #%d: %s", idx, problems[0])
            continue
        conflicts.append(ConflictRecord.model_validate(item))
    return conflicts
