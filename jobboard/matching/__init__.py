"""Criteria matching for job alerts and resume alerts.

This module provides:
- CriteriaMatcher / matches: evaluate a job post or profile against alert criteria
- MatchResult: which dimensions passed, failed or were skipped
- MatchableSubject: common projection of job posts and candidate profiles
- MatchScorer: weighted 0-100 score for resume alerts
- parse_salary: salary band parsing used by the salary dimension
"""

from .engine import CriteriaMatcher, matches, to_matchable
from .models import MatchableSubject, MatchResult
from .salary import NEGOTIABLE_SALARY, is_negotiable, parse_salary
from .scoring import DEFAULT_WEIGHTS, MatchScorer
from .utils import build_rationale_dict, describe_criteria

__all__ = [
    "CriteriaMatcher",
    "matches",
    "to_matchable",
    "MatchResult",
    "MatchableSubject",
    "MatchScorer",
    "DEFAULT_WEIGHTS",
    "NEGOTIABLE_SALARY",
    "is_negotiable",
    "parse_salary",
    "build_rationale_dict",
    "describe_criteria",
]
