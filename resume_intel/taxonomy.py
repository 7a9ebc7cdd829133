"""
Skill Taxonomy for Resume Intel

This module defines the taxonomy record type the parser and the ranking
engine share, normalizes raw taxonomy rows coming from the external store,
and compiles alias surface forms into the regexes used for matching.

The taxonomy itself is owned outside the pipeline. ``SEED_TAXONOMY`` is only
used to initialise an empty local store.

Example:
    >>> entry = normalize_entry({"slug": "CPP", "aliases": ["C++"], "kind": "skill"})
    >>> bool(alias_to_pattern("C++").search("Strong C++ and Python"))
    True
    >>> bool(alias_to_pattern("go").search("good communication"))
    False
"""

import hashlib
import json
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Iterable, List, Pattern, Tuple

logger = logging.getLogger(__name__)

DEFAULT_KIND = "skill"
DEFAULT_WEIGHT = 1.0


@dataclass(frozen=True)
class SkillTaxonomyEntry:
    """One canonical skill/tool/cert concept and its alias surface forms."""
    slug: str
    aliases: Tuple[str, ...]
    kind: str = DEFAULT_KIND
    weight: float = DEFAULT_WEIGHT

    @property
    def surface_forms(self) -> Tuple[str, ...]:
        """Slug followed by every alias, deduplicated case-insensitively."""
        return _unique_ci((self.slug,) + self.aliases)

    def to_dict(self) -> Dict:
        return {
            "slug": self.slug,
            "aliases": list(self.aliases),
            "kind": self.kind,
            "weight": self.weight,
        }


# ============================================================================
# SEED TAXONOMY (used only to initialise an empty store)
# ============================================================================

SEED_TAXONOMY = [
    # Languages
    {"slug": "python", "aliases": ["python3", "py"], "kind": "skill"},
    {"slug": "javascript", "aliases": ["js", "es6", "ecmascript"], "kind": "skill"},
    {"slug": "typescript", "aliases": ["ts"], "kind": "skill"},
    {"slug": "java", "aliases": [], "kind": "skill"},
    {"slug": "cpp", "aliases": ["c++"], "kind": "skill"},
    {"slug": "csharp", "aliases": ["c#"], "kind": "skill"},
    {"slug": "golang", "aliases": ["go"], "kind": "skill"},
    {"slug": "sql", "aliases": [], "kind": "skill"},

    # Frameworks
    {"slug": "react", "aliases": ["react.js", "reactjs"], "kind": "skill"},
    {"slug": "nodejs", "aliases": ["node.js", "node"], "kind": "skill"},
    {"slug": "django", "aliases": [], "kind": "skill"},
    {"slug": "flask", "aliases": [], "kind": "skill"},
    {"slug": "spring-boot", "aliases": ["spring boot", "springboot"], "kind": "skill"},
    {"slug": "dotnet", "aliases": [".net", "asp.net"], "kind": "skill"},

    # Data & ML
    {"slug": "machine-learning", "aliases": ["machine learning", "ml"], "kind": "skill"},
    {"slug": "pandas", "aliases": [], "kind": "tool"},
    {"slug": "pytorch", "aliases": [], "kind": "tool"},
    {"slug": "tensorflow", "aliases": [], "kind": "tool"},

    # Databases
    {"slug": "postgresql", "aliases": ["postgres"], "kind": "tool"},
    {"slug": "mysql", "aliases": ["mariadb"], "kind": "tool"},
    {"slug": "mongodb", "aliases": ["mongo"], "kind": "tool"},
    {"slug": "redis", "aliases": [], "kind": "tool"},

    # DevOps & cloud
    {"slug": "docker", "aliases": [], "kind": "tool"},
    {"slug": "kubernetes", "aliases": ["k8s"], "kind": "platform"},
    {"slug": "aws", "aliases": ["amazon web services"], "kind": "platform"},
    {"slug": "azure", "aliases": ["microsoft azure"], "kind": "platform"},
    {"slug": "gcp", "aliases": ["google cloud"], "kind": "platform"},
    {"slug": "terraform", "aliases": [], "kind": "tool"},
    {"slug": "git", "aliases": ["github", "gitlab"], "kind": "tool"},
    {"slug": "ci-cd", "aliases": ["ci/cd", "continuous integration"], "kind": "tool"},

    # Certifications
    {"slug": "aws-certified", "aliases": ["aws certified", "aws solutions architect"],
     "kind": "cert", "weight": 1.5},
    {"slug": "pmp", "aliases": ["project management professional"], "kind": "cert", "weight": 1.2},
    {"slug": "cka", "aliases": ["certified kubernetes administrator"], "kind": "cert", "weight": 1.2},

    # Soft skills
    {"slug": "leadership", "aliases": ["team lead", "mentoring"], "kind": "soft", "weight": 0.5},
    {"slug": "communication", "aliases": ["communication skills"], "kind": "soft", "weight": 0.5},
]


# ============================================================================
# NORMALIZATION
# ============================================================================

def _unique_ci(values: Iterable[str]) -> Tuple[str, ...]:
    """Deduplicate strings case-insensitively, keeping first-seen order."""
    seen = set()
    out = []
    for value in values:
        key = value.lower()
        if value and key not in seen:
            seen.add(key)
            out.append(value)
    return tuple(out)


def normalize_entry(row: Dict) -> SkillTaxonomyEntry:
    """
    Turn one raw taxonomy row into a ``SkillTaxonomyEntry``.

    Locale aliases (``localeAliases`` or ``locale_aliases``) are merged into
    the alias list; their origin is not retained.

    Args:
        row: Mapping with ``slug`` and optional ``aliases``, ``kind``,
             ``weight`` and locale alias keys

    Returns:
        SkillTaxonomyEntry with a lowercased slug

    Raises:
        ValueError: If the row has no slug
    """
    slug = str(row.get("slug") or "").strip().lower()
    if not slug:
        raise ValueError(f"Taxonomy row without slug: {row!r}")

    aliases = [str(a).strip() for a in (row.get("aliases") or [])]
    locale_aliases = row.get("localeAliases") or row.get("locale_aliases") or []
    aliases.extend(str(a).strip() for a in locale_aliases)

    weight = row.get("weight")
    if isinstance(weight, bool) or not isinstance(weight, (int, float)):
        weight = DEFAULT_WEIGHT

    return SkillTaxonomyEntry(
        slug=slug,
        aliases=_unique_ci(a for a in aliases if a and a.lower() != slug),
        kind=str(row.get("kind") or DEFAULT_KIND).lower(),
        weight=float(weight),
    )


def normalize_taxonomy(rows: Iterable[Dict]) -> List[SkillTaxonomyEntry]:
    """
    Normalize raw taxonomy rows, keeping the first row for a duplicated slug.

    Args:
        rows: Raw taxonomy rows

    Returns:
        list[SkillTaxonomyEntry] in input order
    """
    entries = []
    seen = set()
    for row in rows:
        if isinstance(row, SkillTaxonomyEntry):
            entry = row
        else:
            entry = normalize_entry(row)
        if entry.slug in seen:
            logger.warning(f"Duplicate taxonomy slug '{entry.slug}' ignored")
            continue
        seen.add(entry.slug)
        entries.append(entry)
    return entries


def taxonomy_version(entries: Iterable[SkillTaxonomyEntry]) -> str:
    """
    Content hash of a taxonomy snapshot.

    Two snapshots with the same entries in the same order share a version,
    which makes it usable as a cache key for compiled patterns.
    """
    payload = json.dumps([e.to_dict() for e in entries], sort_keys=True)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:12]


# ============================================================================
# ALIAS → REGEX
# ============================================================================

def _alias_body(alias: str) -> str:
    escaped = re.escape(alias.strip())
    # Escaped whitespace matches any whitespace run ("spring  boot")
    return re.sub(r"(?:\\\s)+", r"\\s+", escaped)


def _alias_source(alias: str) -> str:
    body = _alias_body(alias)
    if re.search(r"[A-Za-z0-9]", alias):
        # Guards instead of \b so aliases ending in symbols ("C++", "C#") still match
        return rf"(?<!\w){body}(?!\w)"
    return body


@lru_cache(maxsize=4096)
def alias_to_pattern(alias: str) -> Pattern:
    """
    Compile one alias into a case-insensitive search pattern.

    Aliases containing letters or digits are guarded so they only match as
    whole tokens ("go" does not match "good"). Purely symbolic aliases are
    matched as escaped literals.

    Args:
        alias: Surface form, e.g. "Python", "C++", "node.js"

    Returns:
        Compiled regex pattern
    """
    return re.compile(_alias_source(alias), re.IGNORECASE)


@lru_cache(maxsize=2048)
def occurrence_pattern(surface_forms: Tuple[str, ...]) -> Pattern:
    """
    One alternation over all surface forms of an entry, longest first.

    Used to count raw occurrences without double counting overlapping
    aliases ("react" inside "react.js").
    """
    ordered = sorted(surface_forms, key=lambda a: (-len(a), a.lower()))
    return re.compile("|".join(f"(?:{_alias_source(a)})" for a in ordered), re.IGNORECASE)


def entry_patterns(entry: SkillTaxonomyEntry) -> List[Tuple[str, Pattern]]:
    """Return ``(alias, pattern)`` pairs for every surface form of an entry."""
    return [(alias, alias_to_pattern(alias)) for alias in entry.surface_forms]


def validate_taxonomy(entries: Iterable[SkillTaxonomyEntry]) -> bool:
    """
    Validate a normalized taxonomy for consistency.

    Checks:
    - Slugs are unique
    - Weights are non-negative
    - Every entry has at least one surface form

    Returns:
        True if valid, False otherwise
    """
    slugs = set()
    for entry in entries:
        if entry.slug in slugs or entry.weight < 0 or not entry.surface_forms:
            return False
        slugs.add(entry.slug)
    return True


__all__ = [
    "SkillTaxonomyEntry",
    "SEED_TAXONOMY",
    "normalize_entry",
    "normalize_taxonomy",
    "taxonomy_version",
    "alias_to_pattern",
    "occurrence_pattern",
    "entry_patterns",
    "validate_taxonomy",
]
