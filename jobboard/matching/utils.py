"""Helpers for presenting match results and criteria to downstream consumers."""

from typing import Dict, List, Tuple

from jobboard.domain.models import Criteria

from .models import MatchResult

_CRITERIA_LABELS = {
    "functional_areas": "Functional areas",
    "industry": "Industry",
    "role": "Role",
    "skills": "Skills",
    "categories": "Categories",
    "location": "Location",
    "salary_range": "Salary",
    "job_type": "Job type",
    "experience": "Experience",
    "keywords": "Keywords",
    "education_levels": "Education",
}


def build_rationale_dict(match_result: MatchResult) -> Dict:
    """Build a lightweight, JSON-safe summary of a match result for logs.

    Returns:
        Dict with is_match, matched/failed/skipped dimensions, matched keywords and summary
    """
    return {
        "is_match": match_result.is_match,
        "matched_dimensions": list(match_result.matched_dimensions),
        "failed_dimensions": list(match_result.failed_dimensions),
        "skipped_dimensions": list(match_result.skipped_dimensions),
        "matched_keywords": list(match_result.matched_keywords),
        "summary": match_result.summary,
    }


def _format_salary(criteria: Criteria) -> str:
    bounds = criteria.salary_range
    if bounds.max is None:
        return f"from ₹{bounds.min:,}"
    return f"₹{bounds.min:,} - ₹{bounds.max:,}"


def describe_criteria(criteria: Criteria) -> List[Tuple[str, str]]:
    """Render the active criteria dimensions as (label, value) pairs for emails.

    Example:
        >>> describe_criteria(Criteria(skills=["CNC"], location={"city": "Chennai"}))
        [('Skills', 'CNC'), ('Location', 'Chennai')]
    """
    rows: List[Tuple[str, str]] = []
    for dimension in criteria.active_dimensions():
        value = getattr(criteria, dimension)
        if dimension == "location":
            text = value.city
        elif dimension == "salary_range":
            text = _format_salary(criteria)
        elif isinstance(value, list):
            text = ", ".join(value)
        else:
            text = str(value)
        rows.append((_CRITERIA_LABELS[dimension], text))
    return rows
