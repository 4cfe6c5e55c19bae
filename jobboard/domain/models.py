"""Core domain models for the job board core.

This module defines the data structures shared by the access layer, the
matching engine and the alert dispatcher:
- Principal: authenticated actor with role and HR-admin assignment set
- JobPost / CandidateProfile: subjects of authorization and alert matching
- Criteria: optional, independently evaluated alert filter
- AlertSubscription: job alert (candidate) or resume alert (employer)
- Account: contact details used to resolve alert recipients

External payloads use camelCase keys (``employerIds``, ``salaryRange``); every
model accepts both the camelCase alias and the snake_case field name.
"""

from datetime import datetime
from enum import Enum
from typing import Any, FrozenSet, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from jobboard.utils.timestamps import ensure_utc

from .exceptions import ValidationError


class Role(str, Enum):
    """Closed set of principal roles."""

    CANDIDATE = "candidate"
    EMPLOYER = "employer"
    HR_ADMIN = "hr-admin"
    SUPERADMIN = "superadmin"


# Roles permitted to act on job postings
EMPLOYER_LIKE_ROLES: FrozenSet[Role] = frozenset({Role.EMPLOYER, Role.HR_ADMIN, Role.SUPERADMIN})

# Roles that override identity checks on self-service resources
ADMIN_OVERRIDE_ROLES: FrozenSet[Role] = frozenset({Role.HR_ADMIN, Role.SUPERADMIN})


def _strip_or_none(value: Any) -> Any:
    """Strip string values and collapse blank strings to None."""
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class Principal(BaseModel):
    """Authenticated actor making a request.

    Constructed per request by the external authentication collaborator and
    never persisted by the core. ``employer_ids`` is the HR-admin assignment
    set and must be empty for every other role.
    """

    id: str = Field(..., min_length=1, description="Account id of the actor")
    role: Role = Field(..., description="One of candidate, employer, hr-admin, superadmin")
    employer_ids: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Employer accounts an HR-admin may act for",
    )

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        """Accept non-string identifiers (e.g. ObjectId-like values)."""
        if v is None:
            return v
        return str(v).strip()

    @field_validator("employer_ids", mode="before")
    @classmethod
    def coerce_employer_ids(cls, v: Any) -> Any:
        """Accept any iterable of identifiers and store them as strings."""
        if v is None:
            return frozenset()
        if isinstance(v, (str, bytes)):
            raise ValueError("employerIds must be a list of identifiers, not a string")
        return frozenset(str(item).strip() for item in v if str(item).strip())

    @model_validator(mode="after")
    def validate_assignment_set(self):
        """Only HR-admins carry an assignment set."""
        if self.employer_ids and self.role != Role.HR_ADMIN:
            raise ValueError(
                f"employerIds is only valid for role 'hr-admin', got role '{self.role.value}'"
            )
        return self

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "Principal":
        """Build a principal from authentication claims.

        Raises:
            ValidationError: If the claims are malformed (unknown role, missing id)
        """
        try:
            return cls.model_validate(dict(claims))
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(loc) for loc in err['loc']) or 'principal'}: {err['msg']}"
                for err in e.errors()
            )
            raise ValidationError(f"Invalid principal: {problems}") from e

    @property
    def is_employer_like(self) -> bool:
        return self.role in EMPLOYER_LIKE_ROLES


class Location(BaseModel):
    """Location of a job post or candidate. City comparisons are case-sensitive."""

    city: Optional[str] = None
    country: Optional[str] = None

    @field_validator("city", "country", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return _strip_or_none(v)


class JobStatus(str, Enum):
    """Job post lifecycle states."""

    DRAFT = "Draft"
    PUBLISHED = "Published"
    CLOSED = "Closed"


class JobPost(BaseModel):
    """Job posting as seen by the authorization and matching layers.

    ``employer`` is the owning account; ``posted_by`` is the account that
    created the posting and defaults to the employer when not supplied.
    """

    id: Optional[str] = Field(None, description="Persistence identifier")
    employer: str = Field(..., min_length=1, description="Owning employer account id")
    posted_by: Optional[str] = Field(None, description="Account that created the posting")
    company_name: Optional[str] = Field(None, description="Display name of the company")
    status: JobStatus = Field(JobStatus.PUBLISHED, description="Lifecycle state")
    title: str = Field(..., description="Job title")
    description: str = Field(..., description="Full job description")
    functional_areas: List[str] = Field(default_factory=list)
    industry: Optional[str] = None
    role: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    specialisms: List[str] = Field(
        default_factory=list, description="Legacy free-text categories"
    )
    location: Location = Field(default_factory=Location)
    offered_salary: Optional[str] = Field(
        None, description="Free-form salary band in lakhs, e.g. '₹5-10 LPA' or 'Negotiable'"
    )
    job_type: Optional[str] = None
    experience: Optional[str] = None
    qualification: Optional[str] = None
    positions_total: int = Field(1, ge=0)
    applicant_count: int = Field(0, ge=0)
    created_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("title", "description")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Strip whitespace from required text fields."""
        if not v or not v.strip():
            raise ValueError("Field cannot be empty or whitespace-only")
        return v.strip()

    @field_validator(
        "industry", "role", "company_name", "offered_salary", "job_type", "experience",
        "qualification", mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return _strip_or_none(v)

    @field_validator("created_at")
    @classmethod
    def ensure_created_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @model_validator(mode="after")
    def default_posted_by(self):
        """Fall back to the employer as poster, as older postings carry no poster."""
        if not self.posted_by:
            self.posted_by = self.employer
        return self

    @property
    def positions_remaining(self) -> int:
        return max(self.positions_total - self.applicant_count, 0)


class CandidateProfile(BaseModel):
    """Candidate profile, the subject of resume alerts."""

    id: Optional[str] = None
    candidate: str = Field(..., min_length=1, description="Owning candidate account id")
    full_name: str = Field(..., min_length=1)
    headline: str = Field("", description="Current or desired job title")
    summary: str = ""
    skills: List[str] = Field(default_factory=list)
    functional_areas: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    industry: Optional[str] = None
    role: Optional[str] = None
    location: Location = Field(default_factory=Location)
    experience: Optional[str] = None
    education_level: Optional[str] = None
    expected_salary: Optional[str] = None
    preferred_job_type: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator(
        "industry", "role", "experience", "education_level", "expected_salary",
        "preferred_job_type", mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return _strip_or_none(v)

    @field_validator("created_at")
    @classmethod
    def ensure_created_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class SalaryRange(BaseModel):
    """Absolute salary bounds (rupees per annum). ``max`` of None means unbounded."""

    min: int = Field(0, ge=0)
    max: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def validate_bounds(self):
        if self.max is not None and self.max < self.min:
            raise ValueError(f"salaryRange.max ({self.max}) is below salaryRange.min ({self.min})")
        return self


class CriteriaLocation(BaseModel):
    city: Optional[str] = None

    @field_validator("city", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return _strip_or_none(v)


# Evaluation order of criteria dimensions
CRITERIA_DIMENSIONS = (
    "functional_areas",
    "industry",
    "role",
    "skills",
    "categories",
    "location",
    "salary_range",
    "job_type",
    "experience",
    "keywords",
    "education_levels",
)

_LIST_DIMENSIONS = ("functional_areas", "skills", "categories", "keywords", "education_levels")


class Criteria(BaseModel):
    """Structured alert filter.

    Every field is optional. ``None`` means the dimension is absent; an empty
    list is kept as an empty list but, like an absent field, places no
    constraint. Neither is ever treated as "match nothing".
    """

    functional_areas: Optional[List[str]] = None
    industry: Optional[str] = None
    role: Optional[str] = None
    skills: Optional[List[str]] = None
    categories: Optional[List[str]] = None
    location: Optional[CriteriaLocation] = None
    salary_range: Optional[SalaryRange] = None
    job_type: Optional[str] = None
    experience: Optional[str] = None
    keywords: Optional[List[str]] = None
    education_levels: Optional[List[str]] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    @field_validator("industry", "role", "job_type", "experience", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return _strip_or_none(v)

    @field_validator(*_LIST_DIMENSIONS, mode="before")
    @classmethod
    def clean_list(cls, v: Any) -> Any:
        """Strip entries and drop blank ones, keeping None distinct from []."""
        if v is None:
            return None
        if isinstance(v, (str, bytes)) or not hasattr(v, "__iter__"):
            raise ValueError("Expected a list of values")
        cleaned = []
        for item in v:
            text = str(item).strip()
            if text:
                cleaned.append(text)
        return cleaned

    def is_active(self, dimension: str) -> bool:
        """Whether a dimension constrains matching."""
        value = getattr(self, dimension)
        if value is None:
            return False
        if dimension == "location":
            return value.city is not None
        if isinstance(value, list):
            return len(value) > 0
        return True

    def active_dimensions(self) -> List[str]:
        return [name for name in CRITERIA_DIMENSIONS if self.is_active(name)]


class AlertKind(str, Enum):
    """Job alerts notify candidates; resume alerts notify employers."""

    JOB = "job"
    RESUME = "resume"


class AlertFrequency(str, Enum):
    INSTANT = "Instant"
    DAILY = "Daily"
    WEEKLY = "Weekly"


class AlertStats(BaseModel):
    """Delivery counters, mutated only after a confirmed send."""

    emails_sent: int = Field(0, ge=0)
    total_matches: int = Field(0, ge=0)
    last_match: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("last_match")
    @classmethod
    def ensure_last_match_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class AlertSubscription(BaseModel):
    """Job alert or resume alert subscription."""

    id: Optional[str] = None
    kind: AlertKind
    owner: str = Field(..., min_length=1, description="Candidate or employer account id")
    title: str = Field("", description="Owner-facing alert name")
    criteria: Criteria = Field(default_factory=Criteria)
    frequency: AlertFrequency = AlertFrequency.INSTANT
    is_active: bool = True
    stats: AlertStats = Field(default_factory=AlertStats)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Account(BaseModel):
    """Account contact details used to resolve notification recipients."""

    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    email: str = Field(..., min_length=3, description="Login email")
    contact_email: Optional[str] = Field(None, description="Preferred contact address")
    is_system_generated_email: bool = Field(
        False, description="Login email was generated for a confidential account"
    )
    role: Role = Role.CANDIDATE
    is_active: bool = True

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("contact_email", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return _strip_or_none(v)

    def contact_address(self) -> Optional[str]:
        """Resolve the address alerts should be sent to, or None if there is none."""
        if not self.is_active:
            return None
        if self.contact_email:
            return self.contact_email
        if self.is_system_generated_email:
            return None
        return self.email
