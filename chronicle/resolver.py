"""
chronicle/resolver.py -- Map surface tokens back to canonical entity names.

Two matching rules are used in different places:

    resolve()            Tier 1 captures.  Case-insensitive, whitespace
                         trimmed, and one leading "the " article ignored on
                         both sides, so "the Vault" resolves to "The Vault".
    match_entity_name()  Classifier reply keys.  Plain case-insensitive
                         comparison against names and aliases.
"""

from __future__ import annotations

import re
from typing import Iterable

from chronicle.models.base import RegistryEntry

_ARTICLE = "the "


def _normalise(token: str) -> str:
    lower = token.lower().strip()
    if lower.startswith(_ARTICLE):
        lower = lower[len(_ARTICLE):].strip()
    return lower


def resolve(token: str, candidates: Iterable[RegistryEntry]) -> str | None:
    """Return the canonical name whose name or alias matches *token*.

    Parameters
    ----------
    token : str
        Text captured by a pattern, e.g. ``"the Vault"`` or ``"ELLIE"``.
    candidates : iterable of RegistryEntry
        Entries to search, in priority order.

    Returns
    -------
    str or None
        The first matching entry's canonical name, or ``None``.
    """
    wanted = _normalise(token)
    if not wanted:
        return None
    for entry in candidates:
        if any(_normalise(term) == wanted for term in entry.terms):
            return entry.name
    return None


def match_entity_name(key: str, candidates: Iterable[RegistryEntry]) -> str | None:
    """Case-insensitive name/alias lookup for keys returned by the classifier."""
    wanted = key.lower().strip()
    for entry in candidates:
        if entry.name.lower() == wanted:
            return entry.name
        if any(alias.lower() == wanted for alias in entry.aliases):
            return entry.name
    return None


def mentions(text: str, entry: RegistryEntry) -> bool:
    """Return True if *text* contains the entry's name or any alias as a
    whole word (case-insensitive)."""
    return any(
        re.search(rf"(?<!\w){re.escape(term)}(?!\w)", text, re.IGNORECASE)
        for term in entry.terms if term
    )
