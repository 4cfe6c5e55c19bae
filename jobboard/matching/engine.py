"""Criteria matcher for job alerts and resume alerts.

Each criteria dimension is evaluated independently and only when active; the
subject matches when every active dimension passes. Criteria with no active
dimension match every subject. No-match is a normal result and never raises.
"""

import logging
from typing import Callable, Dict, Optional, Union

from jobboard.domain.exceptions import ValidationError
from jobboard.domain.models import CRITERIA_DIMENSIONS, CandidateProfile, Criteria, JobPost

from .models import MatchableSubject, MatchResult
from .salary import is_negotiable, parse_salary

logger = logging.getLogger(__name__)

Subject = Union[JobPost, CandidateProfile, MatchableSubject]

# None means the dimension was skipped
DimensionCheck = Callable[[MatchableSubject, Criteria], Optional[bool]]


def to_matchable(subject: Subject) -> MatchableSubject:
    """Project a job post or candidate profile onto the matcher's field set.

    Raises:
        ValidationError: If the subject is of an unsupported type
    """
    if isinstance(subject, MatchableSubject):
        return subject
    if isinstance(subject, JobPost):
        return MatchableSubject.from_job(subject)
    if isinstance(subject, CandidateProfile):
        return MatchableSubject.from_profile(subject)
    raise ValidationError(f"Cannot match criteria against {type(subject).__name__}")


def _any_shared(wanted, available) -> bool:
    available_set = set(available)
    return any(item in available_set for item in wanted)


def _check_functional_areas(subject: MatchableSubject, criteria: Criteria) -> bool:
    return _any_shared(criteria.functional_areas, subject.functional_areas)


def _check_industry(subject: MatchableSubject, criteria: Criteria) -> bool:
    return subject.industry == criteria.industry


def _check_role(subject: MatchableSubject, criteria: Criteria) -> bool:
    return subject.role == criteria.role


def _check_skills(subject: MatchableSubject, criteria: Criteria) -> bool:
    return _any_shared(criteria.skills, subject.skills)


def _check_categories(subject: MatchableSubject, criteria: Criteria) -> bool:
    return _any_shared(criteria.categories, subject.specialisms)


def _check_location(subject: MatchableSubject, criteria: Criteria) -> bool:
    # Case-sensitive: "chennai" does not match "Chennai"
    return subject.city == criteria.location.city


def _check_salary_range(subject: MatchableSubject, criteria: Criteria) -> Optional[bool]:
    if is_negotiable(subject.offered_salary):
        return None
    salary = parse_salary(subject.offered_salary)
    bounds = criteria.salary_range
    if salary < bounds.min:
        return False
    return bounds.max is None or salary <= bounds.max


def _check_job_type(subject: MatchableSubject, criteria: Criteria) -> bool:
    return subject.job_type == criteria.job_type


def _check_experience(subject: MatchableSubject, criteria: Criteria) -> bool:
    return subject.experience == criteria.experience


def _matched_keywords(subject: MatchableSubject, criteria: Criteria):
    haystack = f"{subject.title} {subject.text}".lower()
    return [keyword for keyword in criteria.keywords if keyword.lower() in haystack]


def _check_keywords(subject: MatchableSubject, criteria: Criteria) -> bool:
    return bool(_matched_keywords(subject, criteria))


def _check_education_levels(subject: MatchableSubject, criteria: Criteria) -> bool:
    if subject.education_level is None:
        return False
    return subject.education_level in criteria.education_levels


_CHECKS: Dict[str, DimensionCheck] = {
    "functional_areas": _check_functional_areas,
    "industry": _check_industry,
    "role": _check_role,
    "skills": _check_skills,
    "categories": _check_categories,
    "location": _check_location,
    "salary_range": _check_salary_range,
    "job_type": _check_job_type,
    "experience": _check_experience,
    "keywords": _check_keywords,
    "education_levels": _check_education_levels,
}


class CriteriaMatcher:
    """Evaluates subjects against alert criteria.

    Stateless; one instance can be shared across threads.
    """

    def __init__(self, logger_instance: Optional[logging.Logger] = None):
        self.logger = logger_instance or logger

    def evaluate(self, subject: Subject, criteria: Criteria) -> MatchResult:
        """Evaluate every active dimension and report which passed and failed.

        All active dimensions are evaluated, even after a failure, so the
        result lists every reason a subject was rejected.

        Raises:
            ValidationError: If the subject cannot be projected
        """
        matchable = to_matchable(subject)
        result = MatchResult(is_match=True)

        for dimension in CRITERIA_DIMENSIONS:
            if not criteria.is_active(dimension):
                continue

            outcome = _CHECKS[dimension](matchable, criteria)
            if outcome is None:
                result.skipped_dimensions.append(dimension)
            elif outcome:
                result.matched_dimensions.append(dimension)
            else:
                result.failed_dimensions.append(dimension)

        result.is_match = not result.failed_dimensions

        if "keywords" in result.matched_dimensions:
            result.matched_keywords = _matched_keywords(matchable, criteria)

        self.logger.debug(
            "Criteria evaluated",
            extra={
                "event": "matching.evaluated",
                "subject_id": matchable.subject_id,
                "is_match": result.is_match,
                "failed_dimensions": result.failed_dimensions,
            },
        )
        return result

    def matches(self, subject: Subject, criteria: Criteria) -> bool:
        return self.evaluate(subject, criteria).is_match


_default_matcher = CriteriaMatcher()


def matches(subject: Subject, criteria: Criteria) -> bool:
    """Pure boolean entry point: True iff ``subject`` satisfies ``criteria``.

    Example:
        >>> matches(job, Criteria(location={"city": "Coimbatore"}))
        True
    """
    return _default_matcher.matches(subject, criteria)
