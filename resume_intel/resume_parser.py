"""
Resume Parser Module

Turns resume plain text into an explainable feature snapshot using regex
heuristics and taxonomy alias matching. No model is loaded and nothing is
cached between calls except compiled alias patterns.

Extracted features:
    - contact details and profile links (LinkedIn / portfolio presence)
    - sections keyed by header (experience, education, skills, ...)
    - structure quality (bullet usage, standard header coverage)
    - taxonomy skill mentions and a keyword-stuffing ratio
    - impact signals (numbers, percents, currency, achievement verbs)
    - timeline and education hints (years, months, GPA, degrees)
    - a language hint for English / Urdu resumes

Functions:
    - parse_resume(text, taxonomy) → ParsedResume
    - split_sections(lines) → dict[str, str]
    - ParsedResume.to_dict() / ParsedResume.from_dict()
"""

import logging
import re
from dataclasses import dataclass
from functools import reduce
from typing import Dict, Iterable, List, Optional, Tuple

from resume_intel.taxonomy import (
    SkillTaxonomyEntry,
    entry_patterns,
    normalize_taxonomy,
    occurrence_pattern,
    taxonomy_version,
)

logger = logging.getLogger(__name__)

# Bump when extraction logic changes so stored snapshots can be re-parsed
PARSER_VERSION = "prs.v2.3.0"

SKILL_CONFIDENCE = 0.7
MAX_LINKS = 30

# ============================================================================
# PATTERNS
# ============================================================================

# Contact & presence
EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
PHONE_RE = re.compile(r"\+?\d[\d \-()]{7,}\d")
# "2014 - 2018" style ranges look like phone numbers
YEAR_RANGE_RE = re.compile(r"^(?:19|20)\d{2}\s*-?\s*(?:19|20)\d{2}$")
URL_RE = re.compile(
    r"(?:https?://|www\.)[^\s)<>\]]+"
    r"|\b(?:[a-z0-9-]+\.)*(?:linkedin\.com|github\.com|github\.io|behance\.net|"
    r"dribbble\.com|about\.me|notion\.site)/[^\s)<>\]]*",
    re.IGNORECASE,
)
LINKEDIN_RE = re.compile(r"linkedin\.com", re.IGNORECASE)
PORTFOLIO_RE = re.compile(r"behance|dribbble|portfolio|github\.io|notion\.site|about\.me", re.IGNORECASE)

# Structure
BULLET_RE = re.compile(r"^\s*(?:[•\-*▪◦●■‣–]|\d+[.)])")

# Impact / achievement
IMPACT_VERBS = [
    "led", "managed", "owned", "improved", "increased", "reduced", "optimized", "generated",
    "designed", "created", "executed", "implemented", "launched", "delivered", "grew", "achieved",
    "automated", "refactored", "migrated", "shipped", "accelerated", "streamlined", "scaled", "hardened",
]
NUMBER_RE = re.compile(r"\b\d+(?:\.\d+)?%?\b")
PERCENT_RE = re.compile(r"\b\d+(?:\.\d+)?%")
CURRENCY_RE = re.compile(r"(?:\$|\bRs\.?|\bPKR)\s?\d[\d,]*", re.IGNORECASE)
VERB_RE = re.compile(r"\b(?:" + "|".join(IMPACT_VERBS) + r")\b", re.IGNORECASE)

# Timeline & education
YEAR_RE = re.compile(r"\b(?:19|20)\d{2}\b")
MONTH_RE = re.compile(
    r"\b(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?|"
    r"sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\b",
    re.IGNORECASE,
)
GPA_RE = re.compile(r"\bC?GPA[:\s]*(\d\.\d{1,2})\b", re.IGNORECASE)
GPA_100_RE = re.compile(r"\bC?GPA[:\s]*(\d{1,3}(?:\.\d{1,2})?)\s*/\s*100\b", re.IGNORECASE)
# Case-sensitive: "be", "me" and "ms" are ordinary words in lowercase
DEGREE_RE = re.compile(
    r"\b(B\.?S[Cc]?|B\.?E|B\.?A|M\.?S[Cc]?|M\.?Eng|M\.?E|M\.?B\.?A|Ph\.?D|PHD|M\.?Phil|"
    r"B\.?B\.?A|B\.?Com|M\.?Com|BSCS|MSCS|BCS)\b\.?"
)

# Language hint
URDU_ARABIC_RE = re.compile(r"[\u0600-\u06FF]")
LATIN_RE = re.compile(r"[A-Za-z]")

# ============================================================================
# SECTION HEADERS
# ============================================================================

HEADER_TERMS = [
    "work experience", "professional experience", "employment history", "work history",
    "experience", "employment", "work",
    "academic background", "education", "academics",
    "personal projects", "course projects", "projects", "project",
    "technical skills", "key skills", "core skills", "skills", "skill",
    "certifications & trainings", "certifications", "certification", "licenses", "license", "training",
    "professional summary", "summary", "profile", "objective",
    "publications", "publication", "patents", "patent", "awards", "award",
    "honors", "honor", "achievements", "achievement",
    "volunteer experience", "volunteering", "leadership",
    "activities", "extracurricular", "interests",
    "research", "teaching", "presentations", "presentation",
]

# A header is the whole line, the header word followed by a separator and inline content,
# or a compound title ("Education & Training", "Summary of Qualifications")
HEADER_RE = re.compile(
    r"^(?P<header>" + "|".join(re.escape(t).replace(r"\ ", r"\s+") for t in HEADER_TERMS) + r")"
    r"\s*(?:$"
    r"|[:\-—–|]\s*(?P<rest>.*)$"
    r"|(?:&|/|\(|\band\b|\bof\b)[A-Za-z&/(),' ]{0,40}:?\s*$)",
    re.IGNORECASE,
)

_PHRASE_KEYS = {
    "work experience": "experience",
    "professional experience": "experience",
    "employment history": "experience",
    "work history": "experience",
    "professional summary": "summary",
    "academic background": "education",
    "volunteer experience": "volunteering",
}

_LEADING_WORD_KEYS = {
    "work": "experience",
    "employment": "experience",
    "academic": "education",
    "academics": "education",
    "personal": "projects",
    "course": "projects",
    "project": "projects",
    "technical": "skills",
    "key": "skills",
    "core": "skills",
    "skill": "skills",
    "certification": "certifications",
    "license": "certifications",
    "licenses": "certifications",
    "training": "certifications",
    "profile": "summary",
    "objective": "summary",
    "publication": "publications",
    "patent": "patents",
    "award": "awards",
    "honor": "honors",
    "achievement": "achievements",
    "volunteer": "volunteering",
    "presentation": "presentations",
}

STANDARD_HEADERS = ("experience", "education", "skills", "projects", "certifications", "summary")
DEFAULT_SECTION = "body"


# ============================================================================
# DATA TYPES
# ============================================================================

@dataclass(frozen=True)
class ContactInfo:
    email: Optional[str] = None
    phone: Optional[str] = None
    links: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SkillMention:
    slug: str
    alias: str
    confidence: float
    kind: Optional[str] = None
    weight: Optional[float] = None


@dataclass(frozen=True)
class ImpactSignals:
    numbers: int = 0
    percents: int = 0
    currency: int = 0
    verbs: int = 0


@dataclass(frozen=True)
class ParsedResume:
    """Explainable feature snapshot of one resume text under one taxonomy."""
    contact: ContactInfo
    has_linkedin: bool
    has_portfolio: bool
    sections: Dict[str, str]
    skills: Tuple[SkillMention, ...]
    bullets_ratio: float
    has_standard_headers: float
    keyword_stuffing_ratio: float
    impact: ImpactSignals
    date_spans: int
    earliest_year: Optional[int]
    latest_year: Optional[int]
    gpa: Optional[float]
    degrees: Tuple[str, ...]
    lang_hint: str
    word_count: int
    version: str = PARSER_VERSION
    # Content hash of the taxonomy snapshot the skills were matched against
    taxonomy_version: str = ""

    @property
    def matched_slugs(self) -> List[str]:
        return [s.slug for s in self.skills]

    def to_dict(self) -> Dict:
        """Serialise to the camelCase JSON shape that is persisted as parsedJson."""
        return {
            "contact": {
                "email": self.contact.email,
                "phone": self.contact.phone,
                "links": list(self.contact.links),
            },
            "hasLinkedIn": self.has_linkedin,
            "hasPortfolio": self.has_portfolio,
            "sections": dict(self.sections),
            "skills": [
                {
                    "slug": s.slug,
                    "alias": s.alias,
                    "confidence": s.confidence,
                    "kind": s.kind,
                    "weight": s.weight,
                }
                for s in self.skills
            ],
            "bulletsRatio": self.bullets_ratio,
            "hasStandardHeaders": self.has_standard_headers,
            "keywordStuffingRatio": self.keyword_stuffing_ratio,
            "impactSignals": {
                "numbers": self.impact.numbers,
                "percents": self.impact.percents,
                "currency": self.impact.currency,
                "verbs": self.impact.verbs,
            },
            "dateSpans": self.date_spans,
            "earliestYear": self.earliest_year,
            "latestYear": self.latest_year,
            "gpa": self.gpa,
            "degrees": list(self.degrees),
            "langHint": self.lang_hint,
            "wordCount": self.word_count,
            "version": self.version,
            "taxonomyVersion": self.taxonomy_version,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ParsedResume":
        """Rebuild a snapshot from its persisted JSON form (missing keys get defaults)."""
        contact = data.get("contact") or {}
        impact = data.get("impactSignals") or {}
        return cls(
            contact=ContactInfo(
                email=contact.get("email"),
                phone=contact.get("phone"),
                links=tuple(contact.get("links") or ()),
            ),
            has_linkedin=bool(data.get("hasLinkedIn")),
            has_portfolio=bool(data.get("hasPortfolio")),
            sections=dict(data.get("sections") or {}),
            skills=tuple(
                SkillMention(
                    slug=str(s.get("slug", "")),
                    alias=str(s.get("alias", "")),
                    confidence=float(s.get("confidence", SKILL_CONFIDENCE)),
                    kind=s.get("kind"),
                    weight=s.get("weight"),
                )
                for s in data.get("skills") or ()
            ),
            bullets_ratio=float(data.get("bulletsRatio", 0.0)),
            has_standard_headers=float(data.get("hasStandardHeaders", 0.0)),
            keyword_stuffing_ratio=float(data.get("keywordStuffingRatio", 0.0)),
            impact=ImpactSignals(
                numbers=int(impact.get("numbers", 0)),
                percents=int(impact.get("percents", 0)),
                currency=int(impact.get("currency", 0)),
                verbs=int(impact.get("verbs", 0)),
            ),
            date_spans=int(data.get("dateSpans", 0)),
            earliest_year=data.get("earliestYear"),
            latest_year=data.get("latestYear"),
            gpa=data.get("gpa"),
            degrees=tuple(data.get("degrees") or ()),
            lang_hint=data.get("langHint") or "en",
            word_count=int(data.get("wordCount", 0)),
            version=data.get("version") or PARSER_VERSION,
            taxonomy_version=data.get("taxonomyVersion") or "",
        )


# ============================================================================
# HELPERS
# ============================================================================

def _normalize_input(text: str) -> str:
    """Normalize horizontal whitespace; keep newlines for sectioning."""
    text = str(text or "").replace("\r", "").replace("\u00a0", " ")
    return re.sub(r"[ \t]+", " ", text)


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for value in values:
        key = value.lower()
        if key not in seen:
            seen.add(key)
            out.append(value)
    return out


def normalize_phone(raw: Optional[str]) -> Optional[str]:
    """
    Normalize a phone match to digits with an optional leading plus.

    Args:
        raw: Phone-like substring, e.g. "+92 (300) 123-4567"

    Returns:
        str: e.g. "+923001234567", or None when fewer than 8 digits remain
    """
    if not raw:
        return None
    digits = re.sub(r"\D", "", raw)
    if len(digits) < 8:
        return None
    return ("+" if raw.strip().startswith("+") else "") + digits


def normalize_gpa(text: str) -> Optional[float]:
    """
    Find a GPA and express it on a 0-4 scale.

    A 0-4.0 value is used as-is. An "X/100" value is divided by 25, which is
    a rough approximation rather than an official conversion.

    Example:
        >>> normalize_gpa("CGPA: 3.62")
        3.62
        >>> normalize_gpa("GPA 80/100")
        3.2
    """
    match = GPA_RE.search(text)
    if match:
        value = float(match.group(1))
        if 0 <= value <= 4.0:
            return value

    match = GPA_100_RE.search(text)
    if match:
        value = float(match.group(1))
        if 0 <= value <= 100:
            return round(value / 25, 2)

    return None


def language_hint(text: str) -> str:
    """Rough script-based hint: "en", "ur" or "mixed"."""
    if not URDU_ARABIC_RE.search(text):
        return "en"
    return "mixed" if LATIN_RE.search(text) else "ur"


def _section_key(header: str) -> str:
    phrase = " ".join(header.lower().split())
    if phrase in _PHRASE_KEYS:
        return _PHRASE_KEYS[phrase]
    leading = phrase.split(" ")[0]
    return _LEADING_WORD_KEYS.get(leading, leading)


def _section_step(state: Tuple[str, Dict[str, List[str]]], line: str) -> Tuple[str, Dict[str, List[str]]]:
    current, buffers = state
    match = HEADER_RE.match(line.strip())
    if match:
        key = _section_key(match.group("header"))
        buffers.setdefault(key, [])
        rest = (match.group("rest") or "").strip()
        if rest:
            buffers[key].append(rest)
        return key, buffers

    buffers[current].append(line)
    return current, buffers


def split_sections(lines: List[str]) -> Dict[str, str]:
    """
    Group lines under the most recent header.

    A single left-to-right fold over ``(current_key, buffers)``: a header line
    switches the current key, every other line is appended to the current
    buffer. Lines before the first header land in "body".

    Example:
        >>> split_sections(["Jane Doe", "Skills: Python, Docker", "Education", "BS CS"])
        {'body': 'Jane Doe', 'skills': 'Python, Docker', 'education': 'BS CS'}
    """
    _, buffers = reduce(_section_step, lines, (DEFAULT_SECTION, {DEFAULT_SECTION: []}))
    return {key: "\n".join(chunk).strip() for key, chunk in buffers.items()}


def _match_skills(text: str, taxonomy: List[SkillTaxonomyEntry]) -> Tuple[List[SkillMention], int]:
    """Existence-match every taxonomy entry; also return the max repeat count of any matched slug."""
    mentions = []
    max_repeats = 0

    for entry in taxonomy:
        for _alias, pattern in entry_patterns(entry):
            hit = pattern.search(text)
            if hit:
                mentions.append(SkillMention(
                    slug=entry.slug,
                    alias=hit.group(0),
                    confidence=SKILL_CONFIDENCE,
                    kind=entry.kind,
                    weight=entry.weight,
                ))
                repeats = len(occurrence_pattern(entry.surface_forms).findall(text))
                max_repeats = max(max_repeats, repeats)
                break

    return mentions, max_repeats


def stuffing_ratio(max_repeats: int) -> float:
    """Linear ramp: 0 at three or fewer repeats, 1 at thirteen or more."""
    return min(1.0, max(0.0, (max_repeats - 3) / 10))


# ============================================================================
# PARSER
# ============================================================================

def parse_resume(text: str, taxonomy: Iterable) -> ParsedResume:
    """
    Parse resume text into an explainable ``ParsedResume`` snapshot.

    Pure and deterministic: the same text and taxonomy always produce an
    identical snapshot.

    Args:
        text: Plain resume text (output of the text extractor)
        taxonomy: ``SkillTaxonomyEntry`` objects or raw taxonomy rows

    Returns:
        ParsedResume

    Example:
        >>> parsed = parse_resume(
        ...     "Jane Doe\\nSkills: Python, Docker\\n- Led a team of 5",
        ...     [{"slug": "python", "aliases": []}, {"slug": "docker", "aliases": []}],
        ... )
        >>> parsed.matched_slugs
        ['python', 'docker']
    """
    raw = _normalize_input(text)
    lines = raw.split("\n")
    entries = normalize_taxonomy(taxonomy)

    # ========== Contact & presence ==========
    email_match = EMAIL_RE.search(raw)
    phone_match = next((m for m in PHONE_RE.finditer(raw) if not YEAR_RANGE_RE.match(m.group(0))), None)
    links = _unique(m.group(0).rstrip(".,;:") for m in URL_RE.finditer(raw))[:MAX_LINKS]
    contact = ContactInfo(
        email=email_match.group(0) if email_match else None,
        phone=normalize_phone(phone_match.group(0) if phone_match else None),
        links=tuple(links),
    )

    # ========== Sections & structure ==========
    sections = split_sections(lines)

    content_lines = [line for line in lines if line.strip()]
    bullet_lines = sum(1 for line in content_lines if BULLET_RE.match(line))
    bullets_ratio = bullet_lines / len(content_lines) if content_lines else 0.0

    found_headers = sum(1 for h in STANDARD_HEADERS if h in sections)
    has_standard_headers = found_headers / len(STANDARD_HEADERS)

    # ========== Skills & anti-stuffing ==========
    skills, max_repeats = _match_skills(raw, entries)

    # ========== Impact ==========
    impact = ImpactSignals(
        numbers=len(NUMBER_RE.findall(raw)),
        percents=len(PERCENT_RE.findall(raw)),
        currency=len(CURRENCY_RE.findall(raw)),
        verbs=len(VERB_RE.findall(raw)),
    )

    # ========== Timeline & education ==========
    years = sorted(int(y) for y in YEAR_RE.findall(raw))
    months = MONTH_RE.findall(raw)
    degrees = _unique(d.replace(".", "").upper() for d in DEGREE_RE.findall(raw))

    parsed = ParsedResume(
        contact=contact,
        has_linkedin=any(LINKEDIN_RE.search(link) for link in links),
        has_portfolio=any(PORTFOLIO_RE.search(link) for link in links),
        sections=sections,
        skills=tuple(skills),
        bullets_ratio=min(1.0, bullets_ratio),
        has_standard_headers=has_standard_headers,
        keyword_stuffing_ratio=stuffing_ratio(max_repeats),
        impact=impact,
        date_spans=len(months) + len(years),
        earliest_year=years[0] if years else None,
        latest_year=years[-1] if years else None,
        gpa=normalize_gpa(raw),
        degrees=tuple(degrees),
        lang_hint=language_hint(raw),
        word_count=len(raw.split()),
        taxonomy_version=taxonomy_version(entries),
    )

    logger.debug(
        f"Parsed resume: {len(skills)} skills, sections={sorted(sections)}, "
        f"stuffing={parsed.keyword_stuffing_ratio:.2f}"
    )
    return parsed


__all__ = [
    "PARSER_VERSION",
    "ParsedResume",
    "ContactInfo",
    "SkillMention",
    "ImpactSignals",
    "parse_resume",
    "split_sections",
    "normalize_phone",
    "normalize_gpa",
    "language_hint",
    "stuffing_ratio",
]
