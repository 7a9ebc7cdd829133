"""
CSV Export Module
=================

Renders a job ranking as CSV for download. Generated in memory; nothing is
written to disk.

Functions:
  - format_skills_for_csv(matched_skills) → "python; docker"
  - get_csv_as_string(ranked) → CSV string
"""

import csv
import logging
from io import StringIO
from typing import Dict, List

logger = logging.getLogger(__name__)

FIELDNAMES = [
    "Rank",
    "Resume ID",
    "Application ID",
    "Candidate ID",
    "Created At",
    "Score",
    "Skill Coverage",
    "Text Similarity",
    "Format Score",
    "Impact Score",
    "Matched Skills",
    "Top Job Terms",
]

# Leading characters spreadsheet apps treat as a formula
_FORMULA_PREFIXES = ("=", "+", "-", "@")


def _cell(value) -> str:
    text = "" if value is None else str(value)
    if text.startswith(_FORMULA_PREFIXES):
        return "'" + text
    return text


def format_skills_for_csv(matched_skills: List[Dict]) -> str:
    """
    Join matched skill slugs with "; " (commas would need quoting).

    Example:
        >>> format_skills_for_csv([{"slug": "python"}, {"slug": "docker"}])
        'python; docker'
    """
    return "; ".join(str(s.get("slug", "")) for s in matched_skills or [] if s.get("slug"))


def get_csv_as_string(ranked: List[Dict]) -> str:
    """
    Generate ranking CSV content.

    Args:
        ranked: ``RankingResult.to_dict()`` rows in rank order

    Returns:
        str: CSV with a header row; header only when ``ranked`` is empty
    """
    output = StringIO()
    writer = csv.DictWriter(output, fieldnames=FIELDNAMES)
    writer.writeheader()

    for position, row in enumerate(ranked, start=1):
        breakdown = row.get("breakdown") or {}
        writer.writerow({
            "Rank": position,
            "Resume ID": _cell(row.get("resumeId")),
            "Application ID": _cell(row.get("applicationId")),
            "Candidate ID": _cell(row.get("candidateId")),
            "Created At": _cell(row.get("createdAt")),
            "Score": round(float(row.get("score", 0.0)), 4),
            "Skill Coverage": round(float(breakdown.get("skillCoverage", 0.0)), 4),
            "Text Similarity": round(float(breakdown.get("textSimilarity", 0.0)), 4),
            "Format Score": round(float(breakdown.get("formatScore", 0.0)), 4),
            "Impact Score": round(float(breakdown.get("impactScore", 0.0)), 4),
            "Matched Skills": _cell(format_skills_for_csv(row.get("matchedSkills"))),
            "Top Job Terms": _cell(" ".join(row.get("topJobTerms") or [])),
        })

    logger.debug(f"Generated ranking CSV with {len(ranked)} rows")
    return output.getvalue()


__all__ = ["get_csv_as_string", "format_skills_for_csv", "FIELDNAMES"]
