"""
ATS Format Scoring Module
=========================

Scores how machine-readable a parsed resume is. This is a format-quality
score, not a measure of candidate fit:

  Format Score = 0.18 × contact present (email or phone)
               + 0.18 × standard header coverage
               + 0.18 × bullet usage in band
               + 0.36 × (1 − 0.5 × keyword stuffing ratio)
               + 0.10 × timeline richness

The weights live in ``config.FORMAT_WEIGHTS`` and can be overridden per call.

Functions:
  - ats_format_score(parsed, weights=None) → float (0-1)
  - format_score_breakdown(parsed, weights=None) → dict
"""

import logging
from typing import Dict, Optional, Union

import config
from resume_intel.resume_parser import ParsedResume

logger = logging.getLogger(__name__)

BULLETS_BAND = (0.10, 0.70)


def _as_parsed(parsed: Union[ParsedResume, Dict]) -> ParsedResume:
    if isinstance(parsed, ParsedResume):
        return parsed
    return ParsedResume.from_dict(parsed)


def _resolve_weights(weights: Optional[Dict[str, float]]) -> Dict[str, float]:
    merged = dict(config.FORMAT_WEIGHTS)
    if weights:
        merged.update({k: float(v) for k, v in weights.items() if k in merged})
    return merged


def bullets_in_band(ratio: float) -> float:
    """1.0 when bullets are used moderately, 0.5 for none or wall-to-wall bullets."""
    low, high = BULLETS_BAND
    return 1.0 if low <= ratio <= high else 0.5


def timeline_richness(date_spans: int) -> float:
    """
    Reward resumes that date their history.

    Returns:
        float: 1.0 for more than 3 date tokens, 0.8 for 1-3, 0.6 for none
    """
    if date_spans > 3:
        return 1.0
    if date_spans > 0:
        return 0.8
    return 0.6


def format_score_breakdown(
    parsed: Union[ParsedResume, Dict],
    weights: Optional[Dict[str, float]] = None,
) -> Dict:
    """
    Per-term contributions to the format score.

    Args:
        parsed: ParsedResume or its persisted dict form
        weights: Optional overrides for keys of ``config.FORMAT_WEIGHTS``

    Returns:
        dict: Term name → {"value", "weight", "contribution"}, plus "total"

    Example:
        >>> breakdown = format_score_breakdown(parsed)
        >>> breakdown["stuffing"]["value"]
        1.0
    """
    parsed = _as_parsed(parsed)
    w = _resolve_weights(weights)

    values = {
        "contact": 1.0 if (parsed.contact.email or parsed.contact.phone) else 0.0,
        "headers": parsed.has_standard_headers,
        "bullets": bullets_in_band(parsed.bullets_ratio),
        "stuffing": 1.0 - 0.5 * parsed.keyword_stuffing_ratio,
        "timeline": timeline_richness(parsed.date_spans),
    }

    breakdown = {
        name: {
            "value": value,
            "weight": w[name],
            "contribution": w[name] * value,
        }
        for name, value in values.items()
    }
    total = sum(term["contribution"] for term in breakdown.values())
    breakdown["total"] = max(0.0, min(1.0, total))
    return breakdown


def ats_format_score(
    parsed: Union[ParsedResume, Dict],
    weights: Optional[Dict[str, float]] = None,
) -> float:
    """
    Calculate the ATS format score (0-1).

    Args:
        parsed: ParsedResume or its persisted dict form
        weights: Optional overrides for keys of ``config.FORMAT_WEIGHTS``

    Returns:
        float: Weighted sum of the five format terms, clamped to [0, 1]
    """
    score = format_score_breakdown(parsed, weights)["total"]
    logger.debug(f"ATS format score: {score:.3f}")
    return score


__all__ = [
    "ats_format_score",
    "format_score_breakdown",
    "bullets_in_band",
    "timeline_richness",
]
