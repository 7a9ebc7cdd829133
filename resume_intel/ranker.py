"""
Candidate Ranking Module
========================

Ranks a job's resume pool with an explainable composite score:

  Score = 0.35 × skill coverage      (taxonomy-weighted required skills)
        + 0.20 × text similarity     (Jaccard, JD tokens vs section-weighted resume tokens)
        + 0.20 × format score        (persisted ATS format score)
        + 0.15 × impact score        (numbers, percents, currency, achievement verbs)
        + 0.05 × cert bonus
        + 0.05 × tool bonus
        + 0.00 × soft-skill bonus
        + presence bonus             (+0.05 LinkedIn, +0.05 portfolio)

clamped to [0, 1.1]. Weights come from ``config.RANKING_WEIGHTS`` and can be
overridden per call through ``RankOptions.weights``.

By default the pool is reduced to the newest resume per candidate before
scoring. Results are sorted by score descending (stable for ties) and capped.

Functions:
  - rank_resumes(job, taxonomy, pool, options) → list[RankingResult]
  - dedup_latest_per_candidate(pool) → list[PoolResume]
  - get_ranking_summary(results) → dict with distribution
"""

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Dict, Iterable, List, Optional, Set, Union

from spacy.lang.en.stop_words import STOP_WORDS

import config
from resume_intel.taxonomy import SkillTaxonomyEntry, normalize_taxonomy

logger = logging.getLogger(__name__)

# Job-ad boilerplate on top of spaCy's English stop words
DOMAIN_STOP_WORDS = {
    "the", "and", "for", "with", "that", "this", "are", "you", "our", "your", "will", "have",
    "has", "from", "into", "more", "than", "such", "about", "able", "skills", "skill",
    "experience", "preferred", "required", "to", "of", "a", "in", "on", "by", "as", "be", "is",
    "or", "an", "at", "it", "we", "they", "their", "them", "who", "what", "how",
}
STOP_WORDS_ALL = frozenset(DOMAIN_STOP_WORDS | set(STOP_WORDS))

# Token repetition per section; unlisted sections count once
SECTION_REPEATS = {"experience": 3, "skills": 2, "summary": 1}

CERT_UNIT, TOOL_UNIT, SOFT_UNIT = 0.5, 0.25, 0.1
MAX_SCORE = 1.1

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


# ============================================================================
# DATA TYPES
# ============================================================================

@dataclass(frozen=True)
class JobPosting:
    id: str
    description_text: str = ""
    required_skill_slugs: tuple = ()
    title: str = ""

    @classmethod
    def from_dict(cls, data: Dict) -> "JobPosting":
        description = (
            data.get("descriptionText")
            or data.get("description_text")
            or data.get("description_md")
            or ""
        )
        required = (
            data.get("requiredSkillSlugs")
            or data.get("required_skill_slugs")
            or data.get("skills_required")
            or []
        )
        return cls(
            id=str(data.get("id", "")),
            description_text=str(description),
            required_skill_slugs=tuple(str(s) for s in required),
            title=str(data.get("title") or ""),
        )


@dataclass
class PoolResume:
    """One stored resume row joined with its application's candidate id."""
    resume_id: str
    application_id: str
    candidate_id: Optional[str]
    created_at: Union[str, datetime, None]
    raw_text: str
    parsed: Union[Dict, str, None]
    format_score: float = 0.0

    @classmethod
    def from_record(cls, record: Dict, candidate_id: Optional[str] = None) -> "PoolResume":
        return cls(
            resume_id=str(record.get("resumeId", "")),
            application_id=str(record.get("applicationId", "")),
            candidate_id=candidate_id,
            created_at=record.get("createdAt"),
            raw_text=record.get("rawText") or "",
            parsed=record.get("parsedJson"),
            format_score=float(record.get("formatScore") or 0.0),
        )

    @property
    def dedup_key(self) -> str:
        return str(self.candidate_id) if self.candidate_id else f"app-{self.application_id}"


@dataclass
class RankOptions:
    resume_id: Optional[str] = None
    candidate_id: Optional[str] = None
    include_all: bool = False
    limit: int = config.RANK_LIMIT
    weights: Optional[Dict[str, float]] = None

    @property
    def dedupe(self) -> bool:
        return not self.include_all and not self.resume_id


@dataclass
class RankingResult:
    resume_id: str
    application_id: str
    candidate_id: Optional[str]
    created_at: Union[str, datetime, None]
    score: float
    breakdown: Dict
    matched_skills: List[Dict] = field(default_factory=list)
    top_job_terms: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        created = self.created_at.isoformat() if isinstance(self.created_at, datetime) else self.created_at
        return {
            "resumeId": self.resume_id,
            "applicationId": self.application_id,
            "candidateId": self.candidate_id,
            "createdAt": created,
            "score": self.score,
            "breakdown": dict(self.breakdown),
            "matchedSkills": list(self.matched_skills),
            "topJobTerms": list(self.top_job_terms),
        }


@dataclass(frozen=True)
class _JobContext:
    job_terms: List[str]
    job_token_set: frozenset
    required: List[str]
    entries: Dict[str, SkillTaxonomyEntry]
    weights: Dict[str, float]


# ============================================================================
# TEXT SIMILARITY
# ============================================================================

def tokenize(text: str) -> List[str]:
    """
    Lowercase, split on non-word characters, drop stop words and 1-char tokens.

    Example:
        >>> tokenize("Senior Python developer with Docker experience")
        ['senior', 'python', 'developer', 'docker']
    """
    return [t for t in re.split(r"\W+", str(text or "").lower()) if len(t) > 1 and t not in STOP_WORDS_ALL]


def jaccard(a: Set[str], b: Set[str]) -> float:
    """|a ∩ b| / |a ∪ b|; 0.0 when both sets are empty."""
    if not a and not b:
        return 0.0
    inter = len(a & b)
    return inter / (len(a) + len(b) - inter or 1)


def section_weighted_tokens(sections: Dict[str, str]) -> List[str]:
    """Token bag with experience tokens ×3, skills ×2, everything else ×1."""
    bag = []
    for name, text in (sections or {}).items():
        tokens = tokenize(text)
        bag.extend(tokens * SECTION_REPEATS.get(name, 1))
    return bag


# ============================================================================
# SIGNALS
# ============================================================================

def _as_object(value) -> Dict:
    if not value:
        return {}
    if isinstance(value, dict):
        return value
    try:
        loaded = json.loads(str(value))
    except ValueError:
        logger.warning("Stored parsedJson is not valid JSON; ranking with empty features")
        return {}
    return loaded if isinstance(loaded, dict) else {}


def impact_score(parsed: Dict) -> float:
    """min(1, (numbers + percents + currency + min(verbs, 12)) / 20)."""
    signals = parsed.get("impactSignals") or {}
    numbers = float(signals.get("numbers") or 0)
    percents = float(signals.get("percents") or 0)
    currency = float(signals.get("currency") or 0)
    verbs = min(float(signals.get("verbs") or 0), 12)
    return min(1.0, (numbers + percents + currency + verbs) / 20)


def kind_bonuses(found: Iterable[Dict]) -> Dict[str, float]:
    """
    Normalized cert / tool / soft-skill bonuses, counting each slug once.

    Args:
        found: Skill dicts with ``slug`` and optional ``kind`` / ``weight``

    Returns:
        dict: {"cert", "tool", "soft"}, each in [0, 1]
    """
    cert = tool = soft = 0.0
    seen = set()
    for skill in found:
        slug = str(skill.get("slug") or "").lower()
        if slug in seen:
            continue
        seen.add(slug)

        kind = str(skill.get("kind") or "skill").lower()
        weight = skill.get("weight")
        weight = float(weight) if isinstance(weight, (int, float)) and not isinstance(weight, bool) else 1.0

        if kind == "cert":
            cert += CERT_UNIT * weight
        elif kind in ("tool", "platform"):
            tool += TOOL_UNIT * weight
        elif kind == "soft":
            soft += SOFT_UNIT * weight

    return {
        "cert": min(1.0, cert / 2),
        "tool": min(1.0, tool / 2),
        "soft": min(1.0, soft / 0.3),
    }


def _coverage(raw_lower: str, parsed: Dict, ctx: _JobContext):
    parser_slugs = {str(s.get("slug") or "").lower() for s in parsed.get("skills") or []}

    total_weight = 0.0
    matched_weight = 0.0
    matched = []
    for slug in ctx.required:
        entry = ctx.entries.get(slug)
        weight = entry.weight if entry else 1.0
        total_weight += weight

        alias = None
        if slug in parser_slugs:
            alias = slug
        elif entry:
            alias = next((a.lower() for a in entry.surface_forms if a.lower() in raw_lower), None)

        if alias:
            matched_weight += weight
            matched.append({
                "slug": slug,
                "alias": alias,
                "kind": entry.kind if entry else None,
                "weight": weight,
            })

    coverage = matched_weight / total_weight if total_weight else 0.0
    return coverage, matched


def _timestamp(value) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not value:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable createdAt {value!r}; treating as oldest")
        return _EPOCH
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


# ============================================================================
# RANKING
# ============================================================================

def dedup_latest_per_candidate(pool: List[PoolResume]) -> List[PoolResume]:
    """
    Keep the newest resume per candidate.

    The pool is re-sorted newest-first here rather than trusting caller
    order; the sort is stable so equal timestamps keep their input order.
    Rows without a candidate id are keyed by ``app-<application_id>``.
    """
    newest_first = sorted(pool, key=lambda r: _timestamp(r.created_at), reverse=True)
    latest = {}
    for row in newest_first:
        latest.setdefault(row.dedup_key, row)
    return list(latest.values())


def score_resume(resume: PoolResume, ctx: _JobContext) -> RankingResult:
    """Score one resume against a prepared job context."""
    raw = resume.raw_text or ""
    parsed = _as_object(resume.parsed)
    sections = parsed.get("sections") or {"body": raw}
    w = ctx.weights

    coverage, matched = _coverage(raw.lower(), parsed, ctx)
    similarity = jaccard(set(ctx.job_token_set), set(section_weighted_tokens(sections)))
    format_score = float(resume.format_score or 0.0)
    impact = impact_score(parsed)
    bonuses = kind_bonuses(matched + list(parsed.get("skills") or []))
    presence = (0.05 if parsed.get("hasLinkedIn") else 0.0) + (0.05 if parsed.get("hasPortfolio") else 0.0)

    score = (
        w["skill_coverage"] * coverage
        + w["text_similarity"] * similarity
        + w["format"] * format_score
        + w["impact"] * impact
        + w["cert"] * bonuses["cert"]
        + w["tool"] * bonuses["tool"]
        + w["soft"] * bonuses["soft"]
        + presence
    )

    return RankingResult(
        resume_id=resume.resume_id,
        application_id=resume.application_id,
        candidate_id=resume.candidate_id,
        created_at=resume.created_at,
        score=max(0.0, min(MAX_SCORE, score)),
        breakdown={
            "skillCoverage": coverage,
            "textSimilarity": similarity,
            "formatScore": format_score,
            "impactScore": impact,
            "certBonus": bonuses["cert"],
            "toolBonus": bonuses["tool"],
            "softSkillBonus": bonuses["soft"],
            "presenceBonus": presence,
            "matchedSkillsCount": len(matched),
            "requiredSkillsTotal": len(ctx.required),
        },
        matched_skills=matched,
        top_job_terms=ctx.job_terms[:config.TOP_JOB_TERMS],
    )


def _build_context(job: JobPosting, taxonomy: Iterable, weights: Optional[Dict[str, float]]) -> _JobContext:
    entries = {e.slug: e for e in normalize_taxonomy(taxonomy)}
    job_terms = list(dict.fromkeys(tokenize(job.description_text)))
    required = list(dict.fromkeys(s.strip().lower() for s in job.required_skill_slugs if s and s.strip()))

    merged = dict(config.RANKING_WEIGHTS)
    if weights:
        merged.update({k: float(v) for k, v in weights.items() if k in merged})

    return _JobContext(
        job_terms=job_terms,
        job_token_set=frozenset(job_terms),
        required=required,
        entries=entries,
        weights=merged,
    )


def rank_resumes(
    job: JobPosting,
    taxonomy: Iterable,
    pool: List[PoolResume],
    options: Optional[RankOptions] = None,
) -> List[RankingResult]:
    """
    Rank a resume pool against a job.

    Args:
        job: Job description and required skill slugs
        taxonomy: Taxonomy entries (or raw rows) used for alias/kind/weight lookups
        pool: Stored resumes joined with candidate ids
        options: Filters, dedup switch, result cap and weight overrides

    Returns:
        list[RankingResult]: Score descending, at most ``options.limit`` rows.
                             Empty list for an empty pool.

    Example:
        >>> job = JobPosting(id="j1", description_text="Python backend engineer",
        ...                  required_skill_slugs=("python",))
        >>> results = rank_resumes(job, SEED_TAXONOMY, pool)
        >>> results[0].breakdown["skillCoverage"]
        1.0
    """
    options = options or RankOptions()

    candidates = list(pool)
    if options.resume_id:
        candidates = [r for r in candidates if r.resume_id == str(options.resume_id)]
    if options.candidate_id:
        candidates = [r for r in candidates if str(r.candidate_id) == str(options.candidate_id)]

    if options.dedupe:
        before = len(candidates)
        candidates = dedup_latest_per_candidate(candidates)
        logger.info(f"Dedup kept {len(candidates)} of {before} resumes (latest per candidate)")

    if not candidates:
        logger.info(f"No resumes to rank for job {job.id}")
        return []

    ctx = _build_context(job, taxonomy, options.weights)
    scorer = partial(score_resume, ctx=ctx)

    if len(candidates) == 1 or config.RANK_WORKERS <= 1:
        results = [scorer(r) for r in candidates]
    else:
        # executor.map yields in input order, so the stable sort below stays deterministic
        with ThreadPoolExecutor(max_workers=config.RANK_WORKERS) as executor:
            results = list(executor.map(scorer, candidates))

    ranked = sorted(results, key=lambda r: -r.score)[:options.limit]
    logger.info(f"Ranked {len(ranked)} resume(s) for job {job.id}")
    return ranked


def get_ranking_summary(results: List[RankingResult]) -> Dict:
    """
    Summary statistics for a ranked list.

    Distribution buckets:
      - "strong": score >= 0.75
      - "moderate": 0.5 <= score < 0.75
      - "weak": 0.25 <= score < 0.5
      - "poor": score < 0.25

    Returns:
        {
            "total_resumes": int,
            "top_resume_id": str or None,
            "average_score": float (4 decimals),
            "score_distribution": {"strong", "moderate", "weak", "poor"}
        }
    """
    scores = [r.score for r in results]
    distribution = {
        "strong": sum(1 for s in scores if s >= 0.75),
        "moderate": sum(1 for s in scores if 0.5 <= s < 0.75),
        "weak": sum(1 for s in scores if 0.25 <= s < 0.5),
        "poor": sum(1 for s in scores if s < 0.25),
    }
    return {
        "total_resumes": len(results),
        "top_resume_id": results[0].resume_id if results else None,
        "average_score": round(sum(scores) / len(scores), 4) if scores else 0.0,
        "score_distribution": distribution,
    }


__all__ = [
    "JobPosting",
    "PoolResume",
    "RankOptions",
    "RankingResult",
    "tokenize",
    "jaccard",
    "section_weighted_tokens",
    "impact_score",
    "kind_bonuses",
    "dedup_latest_per_candidate",
    "score_resume",
    "rank_resumes",
    "get_ranking_summary",
]
