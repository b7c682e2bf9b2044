"""
chronicle/patterns.py -- Tier 1 pattern library and attribute dictionary.

Pure module: every function is stateless and maps registry entries (or raw
capture groups) to compiled patterns or attribute categories.  Nothing in
here touches storage or raises on odd prose; a pattern that cannot be
resolved simply yields ``None``.

Pattern priority (highest first), as applied by the extractor:

    1. noun_is             "Elena's hair was copper"
    2. possessive          "Elena's copper hair"
    3. verb_attribute      "Elena had copper hair"
    4. compound_adjective  "copper-haired Elena"
    5. appositive          "Elena, pale and tired,"

Location patterns come in four directional flavours (entered, arrived at,
was in, left); only "left" clears the stored location.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from chronicle.models.base import LOCATION, RegistryEntry

# ---------------------------------------------------------------------------
# Attribute dictionary
# ---------------------------------------------------------------------------

# Category -> noun headwords.  A found noun matches a category when it equals
# or starts with one of the headwords, so plurals and declined forms match.
ATTRIBUTE_NOUN_DICT: dict[str, list[str]] = {
    "hair": [
        "hair", "locks", "mane", "braid", "braids", "curl", "curls",
        "tress", "tresses", "strand", "strands",
    ],
    "eyes": ["eye", "eyes", "gaze", "stare", "irises", "iris"],
    "height": ["height", "stature"],
    "build": ["build", "frame", "figure", "physique", "body", "shoulder"],
    "age": ["age", "years"],
    "voice": ["voice", "tone", "timbre", "accent"],
}

# Adjectives that map to "complexion" inside an appositive clause.
COMPLEXION_ADJECTIVES: list[str] = [
    "pale", "pallid", "ashen", "sallow", "ruddy", "flushed",
    "tanned", "dark", "fair", "olive", "freckled",
]

COMPLEXION = "complexion"

# Categories owned by Tier 1.  Tier 2 never overrides these once Tier 1 has
# produced a value for them in the same scan.
TIER1_ATTRIBUTES: frozenset[str] = frozenset(
    [*ATTRIBUTE_NOUN_DICT.keys(), COMPLEXION, LOCATION]
)

_NEVER_MATCHES = r"(?!x)x"

# Straight or typographic apostrophe.
_POSSESSIVE = r"['’]s"

_ATTR_VERBS = (
    r"had|has|have|wore|wears|sport(?:ed|s)?|bor(?:e|ed)|boast(?:ed|s)?|"
    r"possess(?:ed|es)?|reveal(?:ed|s)?|show(?:ed|n|s)?|display(?:ed|s)?"
)

_BE_VERBS = r"is|are|was|were|became|become|turned|remained|stay(?:ed|s)?"

_ENTER_VERBS = r"entered|stepped into|walked into|came into|moved into"
_ARRIVE_VERBS = r"arrived at|arrived in|reached|came to"
_PRESENT_VERBS = r"(?:was|were|stood|sat|remained|waited|stayed)\s+(?:in|at|inside|within)"
_LEAVE_VERBS = (
    r"left|departed|exited|fled|escaped from|slipped out of|rushed out of"
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _alternation(names: list[str]) -> str:
    """Escaped alternation, longest first so prefixes do not shadow.

    Whole words only: "Ana" does not match inside "Diana".  Lookarounds
    rather than ``\\b`` so names ending in punctuation ("Dr.") still match.
    """
    ordered = sorted({n for n in names if n}, key=lambda n: (-len(n), n))
    if not ordered:
        return f"(?:{_NEVER_MATCHES})"
    return r"(?<!\w)(?:" + "|".join(re.escape(n) for n in ordered) + r")(?!\w)"


def entity_alternation(entry: RegistryEntry) -> str:
    """Regex alternation for an entity's name and aliases.

    e.g. ``(?<!\\w)(?:the\\ Archivist|Elena|Ellie)(?!\\w)``
    """
    return _alternation(entry.terms)


def location_alternation(location_entries: list[RegistryEntry]) -> str:
    """Regex alternation for every registered location name and alias."""
    names: list[str] = []
    for entry in location_entries:
        names.extend(entry.terms)
    return _alternation(names)


def resolve_noun(noun: str) -> str | None:
    """Return the attribute category for *noun*, or ``None``.

    Matches when the lower-cased noun equals or starts with a headword, so
    "eyes" and "eyelashes" both resolve to ``eyes``.
    """
    lower = noun.lower().strip()
    if not lower:
        return None
    for category, headwords in ATTRIBUTE_NOUN_DICT.items():
        if any(lower == h or lower.startswith(h) for h in headwords):
            return category
    return None


def normalise_stem(stem: str) -> str:
    """Strip compound-adjective suffixes: "haired" -> "hair", "eyed" -> "eye".

    Both "-ed" and "-d" removal are tried so the stem keeps a silent "e"
    ("voiced" -> "voice"); the first candidate naming a category wins.
    """
    stem = stem.lower()
    if stem.endswith("ed"):
        candidates = [stem[:-2], stem[:-1]]
    elif stem.endswith("en"):
        candidates = [stem[:-2]]
    else:
        return stem
    for candidate in candidates:
        if resolve_noun(candidate):
            return candidate
    return candidates[0]


class ResolvedAttribute(NamedTuple):
    category: str
    value: str


def resolve_groups(first: str, second: str) -> ResolvedAttribute | None:
    """Decide where the value/noun boundary lies in a two-group match.

    The possessive and verb patterns capture ``(value phrase) (noun)``, but
    when the sentence runs on past the noun the regex swallows the noun
    into the value phrase: "Elena's copper hair caught the light" gives
    ``first="copper hair"``, ``second="caught"``.

    Resolution order:
        1. *second* is a known noun -> value is *first*.
        2. otherwise the last word of *first* is the noun and the
           remaining words are the value.
        3. neither -> ``None``.
    """
    first = first.strip()
    second = second.strip()

    category = resolve_noun(second)
    if category and first:
        return ResolvedAttribute(category, first)

    words = first.split()
    if len(words) > 1:
        category = resolve_noun(words[-1])
        if category:
            return ResolvedAttribute(category, " ".join(words[:-1]))
    return None


def first_complexion(clause: str) -> str | None:
    """Return the first complexion adjective in an appositive clause."""
    for token in re.split(r"\W+", clause.lower()):
        if token in COMPLEXION_ADJECTIVES:
            return token
    return None


# ---------------------------------------------------------------------------
# Physical attribute patterns
# ---------------------------------------------------------------------------

def noun_is(entity_alt: str) -> re.Pattern:
    """Possessive noun + copula + value: "Elena's eyes were brown".

    Group 1: noun.  Group 2: value (one or two words).
    """
    return re.compile(
        rf"{entity_alt}{_POSSESSIVE}\s+(\w+)\s+(?:{_BE_VERBS})\s+([\w-]+(?:\s+[\w-]+)?)",
        re.IGNORECASE,
    )


def possessive(entity_alt: str) -> re.Pattern:
    """Possessive + adjective + noun: "Elena's copper hair".

    Group 1: adjective phrase.  Group 2: noun.
    """
    return re.compile(
        rf"{entity_alt}{_POSSESSIVE}\s+([\w-]+(?:\s+[\w-]+)?)\s+(\w+)",
        re.IGNORECASE,
    )


def verb_attribute(entity_alt: str) -> re.Pattern:
    """Subject + verb + [article] + adjective + noun: "Elena had copper hair".

    Group 1: adjective phrase.  Group 2: noun.
    """
    return re.compile(
        rf"{entity_alt}\s+(?:{_ATTR_VERBS})\s+(?:a\s+|an\s+|the\s+)?"
        rf"([\w-]+(?:\s+[\w-]+)?)\s+(\w+)",
        re.IGNORECASE,
    )


def compound_adjective(entity_alt: str) -> re.Pattern:
    """Compound adjective before the name: "copper-haired Elena".

    Group 1: value ("copper").  Group 2: noun stem ("haired").
    The value is the single word bound to the hyphen, so "She saw the
    copper-haired Elena" yields "copper" rather than the whole lead-in.
    """
    return re.compile(
        rf"\b(\w+)-(\w+(?:ed|en))\s+{entity_alt}",
        re.IGNORECASE,
    )


def appositive(entity_alt: str) -> re.Pattern:
    """Appositive clause after the name: "Elena, pale and tired,".

    Group 1: clause text.
    """
    return re.compile(
        rf"{entity_alt},\s+([^,.(]{{3,60}}?)(?:,|\.)",
        re.IGNORECASE,
    )


# ---------------------------------------------------------------------------
# Location patterns
# ---------------------------------------------------------------------------

class LocationPattern(NamedTuple):
    pattern: re.Pattern
    clears: bool  # True for "left" verbs: the entity is no longer there


def location_patterns(character_alt: str, location_alt: str) -> list[LocationPattern]:
    """Build the four movement patterns for a character + locations pair.

    Group 1: character token.  Group 2: location token.
    """
    def build(verbs: str) -> re.Pattern:
        return re.compile(
            rf"({character_alt})\s+(?:{verbs})\s+(?:the\s+)?({location_alt})",
            re.IGNORECASE,
        )

    return [
        LocationPattern(build(_ENTER_VERBS), clears=False),
        LocationPattern(build(_ARRIVE_VERBS), clears=False),
        LocationPattern(build(_PRESENT_VERBS), clears=False),
        LocationPattern(build(_LEAVE_VERBS), clears=True),
    ]
