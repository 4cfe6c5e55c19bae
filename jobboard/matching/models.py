"""Data models for the criteria matcher.

MatchableSubject is the common projection of job posts and candidate profiles
so that one evaluator serves both job alerts and resume alerts.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from jobboard.domain.models import AlertKind, CandidateProfile, JobPost


@dataclass(frozen=True)
class MatchableSubject:
    """Fields criteria are evaluated against.

    Attributes:
        kind: Alert kind this subject feeds (job alerts see jobs, resume alerts see profiles)
        subject_id: Identifier of the job post or profile
        title: Title used for keyword search
        text: Body text used for keyword search
        specialisms: Free-text category list searched by ``categories`` criteria
        offered_salary: Free-form salary band
        education_level: Qualification of the job or education level of the candidate
    """

    kind: AlertKind
    subject_id: Optional[str]
    title: str
    text: str
    functional_areas: Tuple[str, ...] = ()
    industry: Optional[str] = None
    role: Optional[str] = None
    skills: Tuple[str, ...] = ()
    specialisms: Tuple[str, ...] = ()
    city: Optional[str] = None
    offered_salary: Optional[str] = None
    job_type: Optional[str] = None
    experience: Optional[str] = None
    education_level: Optional[str] = None

    @classmethod
    def from_job(cls, job: JobPost) -> "MatchableSubject":
        return cls(
            kind=AlertKind.JOB,
            subject_id=job.id,
            title=job.title,
            text=job.description,
            functional_areas=tuple(job.functional_areas),
            industry=job.industry,
            role=job.role,
            skills=tuple(job.skills),
            specialisms=tuple(job.specialisms),
            city=job.location.city,
            offered_salary=job.offered_salary,
            job_type=job.job_type,
            experience=job.experience,
            education_level=job.qualification,
        )

    @classmethod
    def from_profile(cls, profile: CandidateProfile) -> "MatchableSubject":
        return cls(
            kind=AlertKind.RESUME,
            subject_id=profile.id,
            title=profile.headline,
            text=profile.summary,
            functional_areas=tuple(profile.functional_areas),
            industry=profile.industry,
            role=profile.role,
            skills=tuple(profile.skills),
            specialisms=tuple(profile.categories),
            city=profile.location.city,
            offered_salary=profile.expected_salary,
            job_type=profile.preferred_job_type,
            experience=profile.experience,
            education_level=profile.education_level,
        )


@dataclass
class MatchResult:
    """Result of evaluating a subject against one alert's criteria.

    Attributes:
        is_match: True if every active dimension passed
        matched_dimensions: Active dimensions that passed, in evaluation order
        failed_dimensions: Active dimensions that failed, in evaluation order
        skipped_dimensions: Active dimensions not evaluated (negotiable salary)
        matched_keywords: Keywords found in the subject text
    """

    is_match: bool
    matched_dimensions: List[str] = field(default_factory=list)
    failed_dimensions: List[str] = field(default_factory=list)
    skipped_dimensions: List[str] = field(default_factory=list)
    matched_keywords: List[str] = field(default_factory=list)

    @property
    def is_catch_all(self) -> bool:
        """True if the criteria had no active dimension and matched by default."""
        return self.is_match and not (self.matched_dimensions or self.skipped_dimensions)

    @property
    def summary(self) -> str:
        if self.is_match and not self.matched_dimensions:
            return "Matches all postings"
        if self.is_match:
            return "Matched on " + ", ".join(d.replace("_", " ") for d in self.matched_dimensions)
        return "Failed on " + ", ".join(d.replace("_", " ") for d in self.failed_dimensions)
