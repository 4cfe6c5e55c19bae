"""Match score for resume alerts.

The score tells an employer how closely a candidate profile fits a resume
alert, on a 0-100 scale shown in the notification email. Dimensions that the
criteria do not constrain are left out of both the numerator and the
denominator, so a profile is only scored on what the employer asked for.
"""

from typing import Dict, Iterable, Mapping, Optional

from jobboard.domain.models import CandidateProfile, Criteria

DEFAULT_WEIGHTS: Dict[str, float] = {
    "skills": 35.0,
    "categories": 25.0,
    "location": 15.0,
    "experience": 15.0,
    "education": 10.0,
}


def _overlap_ratio(wanted: Iterable[str], available: Iterable[str]) -> float:
    wanted_set = set(wanted)
    if not wanted_set:
        return 0.0
    return len(wanted_set & set(available)) / len(wanted_set)


class MatchScorer:
    """Weighted, normalised match score between a profile and resume alert criteria.

    Skills and categories earn partial credit for the share of requested
    values the profile has; location, experience and education are all or
    nothing. Adding a dimension the profile fully satisfies never lowers the
    score.
    """

    def __init__(self, weights: Optional[Mapping[str, float]] = None):
        merged = dict(DEFAULT_WEIGHTS)
        if weights:
            unknown = set(weights) - set(DEFAULT_WEIGHTS)
            if unknown:
                raise ValueError(f"Unknown score dimensions: {sorted(unknown)}")
            merged.update({k: float(v) for k, v in weights.items()})
        if any(v < 0 for v in merged.values()):
            raise ValueError("Score weights must be non-negative")
        self.weights = merged

    def credits(self, profile: CandidateProfile, criteria: Criteria) -> Dict[str, float]:
        """Per-dimension credit in [0, 1] for the dimensions the criteria constrain."""
        credits: Dict[str, float] = {}

        if criteria.is_active("skills"):
            credits["skills"] = _overlap_ratio(criteria.skills, profile.skills)

        wanted_categories = list(criteria.functional_areas or []) + list(criteria.categories or [])
        if wanted_categories:
            credits["categories"] = _overlap_ratio(
                wanted_categories, list(profile.functional_areas) + list(profile.categories)
            )

        if criteria.is_active("location"):
            credits["location"] = 1.0 if profile.location.city == criteria.location.city else 0.0

        if criteria.is_active("experience"):
            credits["experience"] = 1.0 if profile.experience == criteria.experience else 0.0

        if criteria.is_active("education_levels"):
            credits["education"] = (
                1.0 if profile.education_level in criteria.education_levels else 0.0
            )

        return credits

    def score(self, profile: CandidateProfile, criteria: Criteria) -> float:
        """Score ``profile`` against ``criteria``, rounded to one decimal.

        Returns 100.0 when the criteria constrain no scored dimension.

        Example:
            >>> MatchScorer().score(profile, Criteria(skills=["python", "sql"]))
            50.0
        """
        credits = self.credits(profile, criteria)
        total_weight = sum(self.weights[name] for name in credits)
        if total_weight <= 0:
            return 100.0

        earned = sum(self.weights[name] * credit for name, credit in credits.items())
        return round(100.0 * earned / total_weight, 1)
