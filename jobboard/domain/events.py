"""Domain events emitted by committed writes.

A JobPublished event is emitted when a job post first becomes Published, a
ProfileCreated event when a candidate profile is created and a ProfileUpdated
event when one is edited. All are written to the outbox in the writing
transaction and handed to the dispatcher after commit.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel, Field, field_validator

from jobboard.utils.timestamps import ensure_utc, utc_now

from .models import AlertKind


def _new_event_id() -> str:
    return uuid.uuid4().hex


class EventType(str, Enum):
    JOB_PUBLISHED = "job.published"
    PROFILE_CREATED = "profile.created"
    PROFILE_UPDATED = "profile.updated"


class DomainEvent(BaseModel):
    """Base class for post-commit events."""

    event_type: ClassVar[EventType]
    alert_kind: ClassVar[AlertKind]

    event_id: str = Field(default_factory=_new_event_id, description="Unique event id")
    occurred_at: datetime = Field(default_factory=utc_now, description="When the write committed (UTC)")

    @field_validator("occurred_at")
    @classmethod
    def ensure_occurred_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def subject_id(self) -> str:
        raise NotImplementedError


class JobPublished(DomainEvent):
    """A job post transitioned into Published for the first time."""

    event_type: ClassVar[EventType] = EventType.JOB_PUBLISHED
    alert_kind: ClassVar[AlertKind] = AlertKind.JOB

    job_id: str = Field(..., min_length=1)

    @property
    def subject_id(self) -> str:
        return self.job_id


class ProfileCreated(DomainEvent):
    """A candidate profile was created."""

    event_type: ClassVar[EventType] = EventType.PROFILE_CREATED
    alert_kind: ClassVar[AlertKind] = AlertKind.RESUME

    profile_id: str = Field(..., min_length=1)

    @property
    def subject_id(self) -> str:
        return self.profile_id


class ProfileUpdated(DomainEvent):
    """A candidate profile was edited. Each edit is a new triggering event."""

    event_type: ClassVar[EventType] = EventType.PROFILE_UPDATED
    alert_kind: ClassVar[AlertKind] = AlertKind.RESUME

    profile_id: str = Field(..., min_length=1)

    @property
    def subject_id(self) -> str:
        return self.profile_id


def event_from_record(event_id: str, event_type: str, subject_id: str, occurred_at: datetime) -> DomainEvent:
    """Rebuild a domain event from its outbox columns.

    Raises:
        ValueError: If the event type is unknown
    """
    kind = EventType(event_type)
    if kind == EventType.JOB_PUBLISHED:
        return JobPublished(event_id=event_id, job_id=subject_id, occurred_at=occurred_at)
    if kind == EventType.PROFILE_UPDATED:
        return ProfileUpdated(event_id=event_id, profile_id=subject_id, occurred_at=occurred_at)
    return ProfileCreated(event_id=event_id, profile_id=subject_id, occurred_at=occurred_at)


class OutboxStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DISPATCHED = "dispatched"
    FAILED = "failed"


class DeliveryStatus(str, Enum):
    """State of one (alert, subject, event) row in the delivery ledger."""

    SENDING = "sending"
    DELIVERED = "delivered"


class OutboxRecord(BaseModel):
    """Outbox row as seen by the relay."""

    event_id: str
    event_type: EventType
    subject_id: str
    status: OutboxStatus = OutboxStatus.PENDING
    attempts: int = Field(0, ge=0)
    last_error: Optional[str] = None
    created_at: datetime
    dispatched_at: Optional[datetime] = None

    def to_event(self) -> DomainEvent:
        return event_from_record(
            self.event_id, self.event_type.value, self.subject_id, self.created_at
        )
