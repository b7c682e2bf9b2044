"""
Tests for chronicle/patterns.py -- attribute dictionary and regex builders.

Covers:
    - Noun -> category resolution (exact and prefix matches)
    - Compound-adjective stem normalisation
    - Value/noun disambiguation for run-on captures
    - Alternation building (escaping, longest first, never-match)
    - Each physical attribute pattern on a representative sentence
    - Location patterns and the "left" clearing flag
"""

import re

import pytest

from chronicle import patterns
from chronicle.models.base import RegistryEntry


@pytest.fixture
def elena():
    return RegistryEntry(name="Elena", aliases=["Ellie"])


@pytest.fixture
def elena_alt(elena):
    return patterns.entity_alternation(elena)


# ---------------------------------------------------------------------------
# Dictionary lookups
# ---------------------------------------------------------------------------

class TestResolveNoun:
    """Tests for resolve_noun()."""

    @pytest.mark.parametrize("noun, category", [
        ("hair", "hair"),
        ("Locks", "hair"),
        ("eyes", "eyes"),
        ("eyelashes", "eyes"),
        ("shoulders", "build"),
        ("voice", "voice"),
        ("stature", "height"),
    ])
    def test_known_nouns(self, noun, category):
        assert patterns.resolve_noun(noun) == category

    def test_unknown_noun(self):
        assert patterns.resolve_noun("sword") is None

    def test_blank_noun(self):
        assert patterns.resolve_noun("  ") is None


class TestNormaliseStem:
    """Tests for normalise_stem()."""

    @pytest.mark.parametrize("stem, expected", [
        ("haired", "hair"),
        ("Eyed", "eye"),
        ("voiced", "voice"),
        ("framed", "frame"),
        ("shouldered", "shoulder"),
    ])
    def test_suffixes_stripped_to_a_known_noun(self, stem, expected):
        assert patterns.normalise_stem(stem) == expected

    def test_unknown_ed_word_falls_back_to_ed_strip(self):
        assert patterns.normalise_stem("painted") == "paint"

    def test_no_suffix_unchanged(self):
        assert patterns.normalise_stem("hair") == "hair"


class TestResolveGroups:
    """Tests for resolve_groups() -- the noun/value boundary."""

    def test_second_group_is_noun(self):
        assert patterns.resolve_groups("copper", "hair") == ("hair", "copper")

    def test_noun_swallowed_into_first_group(self):
        # "Elena's copper hair caught the light"
        assert patterns.resolve_groups("copper hair", "caught") == ("hair", "copper")

    def test_no_noun_anywhere(self):
        assert patterns.resolve_groups("quick smile", "today") is None

    def test_single_word_first_group_without_noun(self):
        assert patterns.resolve_groups("hair", "caught") is None


class TestFirstComplexion:
    """Tests for first_complexion()."""

    def test_first_adjective_wins(self):
        assert patterns.first_complexion("pale and flushed") == "pale"

    def test_no_complexion(self):
        assert patterns.first_complexion("tired but determined") is None


# ---------------------------------------------------------------------------
# Alternations
# ---------------------------------------------------------------------------

class TestAlternations:
    """Tests for entity_alternation() and location_alternation()."""

    def test_longest_first(self):
        entry = RegistryEntry(name="Ana", aliases=["Anastasia"])
        alt = patterns.entity_alternation(entry)
        assert alt.index("Anastasia") < alt.index("|Ana")

    def test_special_characters_escaped(self):
        entry = RegistryEntry(name="Dr. Reyes")
        alt = patterns.entity_alternation(entry)
        assert re.fullmatch(alt, "Dr. Reyes")
        assert not re.fullmatch(alt, "DrX Reyes")

    def test_empty_locations_never_match(self):
        alt = patterns.location_alternation([])
        assert re.search(alt, "the Vault and anything else") is None

    def test_name_inside_longer_word_ignored(self):
        alt = patterns.entity_alternation(RegistryEntry(name="Ana"))
        assert re.search(alt, "Diana's eyes were blue.") is None
        assert re.search(alt, "Ana's eyes were blue.").group(0) == "Ana"
        assert patterns.noun_is(alt).search("Diana's eyes were blue.") is None

    def test_location_alternation_includes_aliases(self):
        vault = RegistryEntry(name="The Vault", aliases=["Vault"], kind="location")
        alt = patterns.location_alternation([vault])
        assert re.fullmatch(alt, "Vault")
        assert re.fullmatch(alt, "The Vault")


# ---------------------------------------------------------------------------
# Physical attribute patterns
# ---------------------------------------------------------------------------

class TestAttributePatterns:
    """Each builder matches its canonical sentence shape."""

    def test_noun_is(self, elena_alt):
        match = patterns.noun_is(elena_alt).search("Elena's eyes were brown.")
        assert match.group(1) == "eyes"
        assert match.group(2) == "brown"

    def test_noun_is_typographic_apostrophe(self, elena_alt):
        match = patterns.noun_is(elena_alt).search("Elena’s hair was copper.")
        assert match is not None
        assert match.group(2) == "copper"

    def test_possessive(self, elena_alt):
        match = patterns.possessive(elena_alt).search("Elena's copper hair.")
        assert (match.group(1), match.group(2)) == ("copper", "hair")

    def test_possessive_run_on(self, elena_alt):
        match = patterns.possessive(elena_alt).search("Elena's copper hair caught the light.")
        assert (match.group(1), match.group(2)) == ("copper hair", "caught")

    def test_verb_attribute(self, elena_alt):
        match = patterns.verb_attribute(elena_alt).search("Ellie had green eyes.")
        assert (match.group(1), match.group(2)) == ("green", "eyes")

    def test_verb_attribute_skips_article(self, elena_alt):
        match = patterns.verb_attribute(elena_alt).search("Elena had a slender frame.")
        assert (match.group(1), match.group(2)) == ("slender", "frame")

    def test_compound_adjective(self, elena_alt):
        match = patterns.compound_adjective(elena_alt).search(
            "She saw the copper-haired Elena by the door."
        )
        assert match.group(1) == "copper"
        assert match.group(2) == "haired"

    def test_appositive(self, elena_alt):
        match = patterns.appositive(elena_alt).search("Elena, pale and tired, sat down.")
        assert match.group(1) == "pale and tired"

    def test_patterns_are_case_insensitive(self, elena_alt):
        assert patterns.noun_is(elena_alt).search("ELENA'S EYES WERE BROWN")


# ---------------------------------------------------------------------------
# Location patterns
# ---------------------------------------------------------------------------

class TestLocationPatterns:
    """Tests for location_patterns()."""

    @pytest.fixture
    def built(self, elena_alt):
        vault = RegistryEntry(name="The Vault", aliases=["Vault"], kind="location")
        return patterns.location_patterns(elena_alt, patterns.location_alternation([vault]))

    def test_four_patterns_only_left_clears(self, built):
        assert len(built) == 4
        assert [p.clears for p in built] == [False, False, False, True]

    @pytest.mark.parametrize("sentence, index", [
        ("Elena entered the Vault.", 0),
        ("Elena arrived at the Vault.", 1),
        ("Elena was in the Vault.", 2),
        ("Elena left the Vault.", 3),
    ])
    def test_each_direction(self, built, sentence, index):
        match = built[index].pattern.search(sentence)
        assert match is not None
        assert match.group(1) == "Elena"
        assert match.group(2) == "Vault"

    def test_unregistered_location_does_not_match(self, built):
        assert all(p.pattern.search("Elena entered the kitchen.") is None for p in built)
