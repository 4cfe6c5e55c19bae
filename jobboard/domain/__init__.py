"""Domain models for the job board core."""

from .events import (
    DeliveryStatus,
    DomainEvent,
    EventType,
    JobPublished,
    OutboxRecord,
    OutboxStatus,
    ProfileCreated,
    ProfileUpdated,
    event_from_record,
)
from .exceptions import JobBoardError, NotFound, PermissionDenied, ValidationError
from .lifecycle import fires_publication, status_after_positions_change
from .models import (
    ADMIN_OVERRIDE_ROLES,
    CRITERIA_DIMENSIONS,
    EMPLOYER_LIKE_ROLES,
    Account,
    AlertFrequency,
    AlertKind,
    AlertStats,
    AlertSubscription,
    CandidateProfile,
    Criteria,
    CriteriaLocation,
    JobPost,
    JobStatus,
    Location,
    Principal,
    Role,
    SalaryRange,
)

__all__ = [
    "Role",
    "Principal",
    "EMPLOYER_LIKE_ROLES",
    "ADMIN_OVERRIDE_ROLES",
    "Location",
    "JobStatus",
    "JobPost",
    "CandidateProfile",
    "SalaryRange",
    "CriteriaLocation",
    "Criteria",
    "CRITERIA_DIMENSIONS",
    "AlertKind",
    "AlertFrequency",
    "AlertStats",
    "AlertSubscription",
    "Account",
    "DomainEvent",
    "EventType",
    "JobPublished",
    "ProfileCreated",
    "ProfileUpdated",
    "DeliveryStatus",
    "OutboxRecord",
    "OutboxStatus",
    "event_from_record",
    "fires_publication",
    "status_after_positions_change",
    "JobBoardError",
    "PermissionDenied",
    "NotFound",
    "ValidationError",
]
