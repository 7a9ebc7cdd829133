"""Tests for taxonomy normalization and alias pattern compilation."""

import pytest

from resume_intel.taxonomy import (
    SEED_TAXONOMY,
    SkillTaxonomyEntry,
    alias_to_pattern,
    entry_patterns,
    normalize_entry,
    normalize_taxonomy,
    occurrence_pattern,
    taxonomy_version,
    validate_taxonomy,
)


def test_normalize_entry_merges_locale_aliases_and_defaults():
    entry = normalize_entry({"slug": "Excel", "aliases": ["MS Excel"], "localeAliases": ["ایکسل"]})
    assert entry.slug == "excel"
    assert entry.aliases == ("MS Excel", "ایکسل")
    assert entry.kind == "skill"
    assert entry.weight == 1.0


def test_normalize_entry_accepts_snake_case_locale_aliases():
    entry = normalize_entry({"slug": "excel", "locale_aliases": ["ایکسل"], "kind": "Tool", "weight": 2})
    assert entry.aliases == ("ایکسل",)
    assert entry.kind == "tool"
    assert entry.weight == 2.0


def test_normalize_entry_drops_duplicate_aliases_case_insensitively():
    entry = normalize_entry({"slug": "python", "aliases": ["Python", "python3", "PYTHON3"]})
    assert entry.aliases == ("python3",)
    assert entry.surface_forms == ("python", "python3")


def test_normalize_entry_without_slug_raises():
    with pytest.raises(ValueError):
        normalize_entry({"aliases": ["x"]})


def test_normalize_taxonomy_keeps_first_duplicate_slug():
    entries = normalize_taxonomy([
        {"slug": "python", "weight": 1.0},
        {"slug": "PYTHON", "weight": 3.0},
        {"slug": "docker"},
    ])
    assert [e.slug for e in entries] == ["python", "docker"]
    assert entries[0].weight == 1.0


def test_normalize_taxonomy_passes_entries_through():
    entry = SkillTaxonomyEntry(slug="rust", aliases=())
    assert normalize_taxonomy([entry]) == [entry]


def test_symbolic_aliases_match_as_whole_tokens():
    assert alias_to_pattern("C++").search("Strong C++ and Python")
    assert alias_to_pattern("c#").search("Built services in C#.")
    assert not alias_to_pattern("C++").search("Expert in C and Python")


def test_short_alias_does_not_match_inside_words():
    pattern = alias_to_pattern("go")
    assert not pattern.search("good communication")
    assert pattern.search("Languages: Go, Rust")


def test_alias_dots_are_literal_and_spaces_flexible():
    assert alias_to_pattern("node.js").search("Node.js APIs")
    assert not alias_to_pattern("node.js").search("nodexjs")
    assert alias_to_pattern("spring boot").search("Spring   Boot microservices")


def test_occurrence_pattern_counts_overlapping_aliases_once():
    pattern = occurrence_pattern(("react", "react.js"))
    assert len(pattern.findall("React.js frontends, React Native and react")) == 3


def test_entry_patterns_cover_every_surface_form():
    entry = normalize_entry({"slug": "cpp", "aliases": ["c++"]})
    assert [alias for alias, _ in entry_patterns(entry)] == ["cpp", "c++"]


def test_taxonomy_version_is_stable_and_content_sensitive():
    entries = normalize_taxonomy(SEED_TAXONOMY)
    assert taxonomy_version(entries) == taxonomy_version(normalize_taxonomy(SEED_TAXONOMY))

    changed = entries[:-1] + [SkillTaxonomyEntry(slug="communication", aliases=(), kind="soft", weight=0.9)]
    assert taxonomy_version(changed) != taxonomy_version(entries)


def test_validate_taxonomy():
    assert validate_taxonomy(normalize_taxonomy(SEED_TAXONOMY))
    assert not validate_taxonomy([SkillTaxonomyEntry(slug="x", aliases=(), weight=-1.0)])
