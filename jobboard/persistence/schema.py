"""Database schema definition and ORM models.

ORM rows convert to and from the pydantic domain models; repositories only
ever hand domain models to callers. Timestamps are stored as ISO 8601 strings
with a ``Z`` suffix and list-valued fields as JSON arrays.
"""

import logging
import uuid

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from jobboard.domain.models import (
    Account,
    AlertStats,
    AlertSubscription,
    CandidateProfile,
    Criteria,
    JobPost,
    Location,
)
from jobboard.utils.timestamps import from_storage, to_storage, utc_now

logger = logging.getLogger(__name__)

Base = declarative_base()


def new_id() -> str:
    """Generate a new opaque record identifier."""
    return uuid.uuid4().hex


class AccountModel(Base):
    """ORM model for the accounts table (recipient contact details)."""

    __tablename__ = "accounts"

    id = Column(String(64), primary_key=True, nullable=False)
    name = Column(String(255), nullable=True)
    email = Column(String(320), nullable=False, unique=True)
    contact_email = Column(String(320), nullable=True)
    is_system_generated_email = Column(Boolean, nullable=False, default=False)
    role = Column(String(20), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    def to_domain(self) -> Account:
        return Account(
            id=self.id,
            name=self.name,
            email=self.email,
            contact_email=self.contact_email,
            is_system_generated_email=self.is_system_generated_email,
            role=self.role,
            is_active=self.is_active,
        )

    @classmethod
    def from_domain(cls, account: Account) -> "AccountModel":
        return cls(
            id=account.id,
            name=account.name,
            email=account.email,
            contact_email=account.contact_email,
            is_system_generated_email=account.is_system_generated_email,
            role=account.role.value,
            is_active=account.is_active,
        )


class JobPostModel(Base):
    """ORM model for the job_posts table."""

    __tablename__ = "job_posts"

    id = Column(String(64), primary_key=True, nullable=False)

    # Ownership
    employer = Column(String(64), nullable=False)
    posted_by = Column(String(64), nullable=False)
    company_name = Column(String(255), nullable=True)

    status = Column(String(20), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)

    # Matchable attributes
    functional_areas = Column(JSON, nullable=False, default=list)
    industry = Column(String(255), nullable=True)
    role = Column(String(255), nullable=True)
    skills = Column(JSON, nullable=False, default=list)
    specialisms = Column(JSON, nullable=False, default=list)
    city = Column(String(255), nullable=True)
    country = Column(String(255), nullable=True)
    offered_salary = Column(String(100), nullable=True)
    job_type = Column(String(100), nullable=True)
    experience = Column(String(100), nullable=True)
    qualification = Column(String(255), nullable=True)

    positions_total = Column(Integer, nullable=False, default=1)
    applicant_count = Column(Integer, nullable=False, default=0)

    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_job_posts_employer", "employer"),
        Index("idx_job_posts_status", "status"),
    )

    def to_domain(self) -> JobPost:
        return JobPost(
            id=self.id,
            employer=self.employer,
            posted_by=self.posted_by,
            company_name=self.company_name,
            status=self.status,
            title=self.title,
            description=self.description,
            functional_areas=list(self.functional_areas or []),
            industry=self.industry,
            role=self.role,
            skills=list(self.skills or []),
            specialisms=list(self.specialisms or []),
            location=Location(city=self.city, country=self.country),
            offered_salary=self.offered_salary,
            job_type=self.job_type,
            experience=self.experience,
            qualification=self.qualification,
            positions_total=self.positions_total,
            applicant_count=self.applicant_count,
            created_at=from_storage(self.created_at),
        )

    def apply(self, job: JobPost) -> None:
        """Copy mutable fields from a domain job onto this row."""
        self.company_name = job.company_name
        self.status = job.status.value
        self.title = job.title
        self.description = job.description
        self.functional_areas = list(job.functional_areas)
        self.industry = job.industry
        self.role = job.role
        self.skills = list(job.skills)
        self.specialisms = list(job.specialisms)
        self.city = job.location.city
        self.country = job.location.country
        self.offered_salary = job.offered_salary
        self.job_type = job.job_type
        self.experience = job.experience
        self.qualification = job.qualification
        self.positions_total = job.positions_total
        self.applicant_count = job.applicant_count
        self.updated_at = to_storage(utc_now())

    @classmethod
    def from_domain(cls, job: JobPost) -> "JobPostModel":
        now = to_storage(utc_now())
        row = cls(
            id=job.id or new_id(),
            employer=job.employer,
            posted_by=job.posted_by or job.employer,
            created_at=to_storage(job.created_at) or now,
        )
        row.apply(job)
        return row


class CandidateProfileModel(Base):
    """ORM model for the candidate_profiles table."""

    __tablename__ = "candidate_profiles"

    id = Column(String(64), primary_key=True, nullable=False)
    candidate = Column(String(64), nullable=False, unique=True)
    full_name = Column(String(255), nullable=False)
    headline = Column(Text, nullable=False, default="")
    summary = Column(Text, nullable=False, default="")
    skills = Column(JSON, nullable=False, default=list)
    functional_areas = Column(JSON, nullable=False, default=list)
    categories = Column(JSON, nullable=False, default=list)
    industry = Column(String(255), nullable=True)
    role = Column(String(255), nullable=True)
    city = Column(String(255), nullable=True)
    country = Column(String(255), nullable=True)
    experience = Column(String(100), nullable=True)
    education_level = Column(String(255), nullable=True)
    expected_salary = Column(String(100), nullable=True)
    preferred_job_type = Column(String(100), nullable=True)
    created_at = Column(String(50), nullable=False)

    def to_domain(self) -> CandidateProfile:
        return CandidateProfile(
            id=self.id,
            candidate=self.candidate,
            full_name=self.full_name,
            headline=self.headline or "",
            summary=self.summary or "",
            skills=list(self.skills or []),
            functional_areas=list(self.functional_areas or []),
            categories=list(self.categories or []),
            industry=self.industry,
            role=self.role,
            location=Location(city=self.city, country=self.country),
            experience=self.experience,
            education_level=self.education_level,
            expected_salary=self.expected_salary,
            preferred_job_type=self.preferred_job_type,
            created_at=from_storage(self.created_at),
        )

    def apply(self, profile: CandidateProfile) -> None:
        """Copy editable fields from a domain profile onto this row."""
        self.full_name = profile.full_name
        self.headline = profile.headline
        self.summary = profile.summary
        self.skills = list(profile.skills)
        self.functional_areas = list(profile.functional_areas)
        self.categories = list(profile.categories)
        self.industry = profile.industry
        self.role = profile.role
        self.city = profile.location.city
        self.country = profile.location.country
        self.experience = profile.experience
        self.education_level = profile.education_level
        self.expected_salary = profile.expected_salary
        self.preferred_job_type = profile.preferred_job_type

    @classmethod
    def from_domain(cls, profile: CandidateProfile) -> "CandidateProfileModel":
        return cls(
            id=profile.id or new_id(),
            candidate=profile.candidate,
            full_name=profile.full_name,
            headline=profile.headline,
            summary=profile.summary,
            skills=list(profile.skills),
            functional_areas=list(profile.functional_areas),
            categories=list(profile.categories),
            industry=profile.industry,
            role=profile.role,
            city=profile.location.city,
            country=profile.location.country,
            experience=profile.experience,
            education_level=profile.education_level,
            expected_salary=profile.expected_salary,
            preferred_job_type=profile.preferred_job_type,
            created_at=to_storage(profile.created_at) or to_storage(utc_now()),
        )


class AlertSubscriptionModel(Base):
    """ORM model for the alert_subscriptions table.

    ``criteria`` holds the camelCase JSON document; it is validated when the
    row is converted back to a domain model.
    """

    __tablename__ = "alert_subscriptions"

    id = Column(String(64), primary_key=True, nullable=False)
    kind = Column(String(10), nullable=False)
    owner = Column(String(64), nullable=False)
    title = Column(String(255), nullable=False, default="")
    criteria = Column(JSON, nullable=False, default=dict)
    frequency = Column(String(10), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # Delivery statistics
    emails_sent = Column(Integer, nullable=False, default=0)
    total_matches = Column(Integer, nullable=False, default=0)
    last_match = Column(String(50), nullable=True)

    created_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_alert_subscriptions_active", "kind", "frequency", "is_active"),
        Index("idx_alert_subscriptions_owner", "owner"),
    )

    def to_domain(self) -> AlertSubscription:
        """Convert to a domain model.

        Raises:
            pydantic.ValidationError: If the stored criteria document is malformed
        """
        return AlertSubscription(
            id=self.id,
            kind=self.kind,
            owner=self.owner,
            title=self.title or "",
            criteria=Criteria.model_validate(self.criteria or {}),
            frequency=self.frequency,
            is_active=self.is_active,
            stats=AlertStats(
                emails_sent=self.emails_sent,
                total_matches=self.total_matches,
                last_match=from_storage(self.last_match),
            ),
        )

    @classmethod
    def from_domain(cls, subscription: AlertSubscription) -> "AlertSubscriptionModel":
        return cls(
            id=subscription.id or new_id(),
            kind=subscription.kind.value,
            owner=subscription.owner,
            title=subscription.title,
            criteria=subscription.criteria.model_dump(by_alias=True, exclude_none=True),
            frequency=subscription.frequency.value,
            is_active=subscription.is_active,
            emails_sent=subscription.stats.emails_sent,
            total_matches=subscription.stats.total_matches,
            last_match=to_storage(subscription.stats.last_match),
            created_at=to_storage(utc_now()),
        )


class AlertDeliveryModel(Base):
    """ORM model for the alert_deliveries table.

    One row per (alert, subject, event). The row is written as "sending" before
    the gateway is called and turns "delivered" once the send is confirmed; a
    failed send deletes it. A retried event that finds a row does not call the
    gateway again.
    """

    __tablename__ = "alert_deliveries"

    alert_id = Column(
        String(64),
        ForeignKey("alert_subscriptions.id", ondelete="CASCADE"),
        primary_key=True,
        nullable=False,
    )
    subject_id = Column(String(64), primary_key=True, nullable=False)
    event_id = Column(String(64), primary_key=True, nullable=False)
    recipient = Column(String(320), nullable=False)
    status = Column(String(20), nullable=False, default="sending")
    reserved_at = Column(String(50), nullable=False)
    delivered_at = Column(String(50), nullable=True)

    __table_args__ = (Index("idx_alert_deliveries_delivered_at", "delivered_at"),)


class OutboxEventModel(Base):
    """ORM model for the outbox_events table.

    Rows are inserted in the same transaction as the write that caused them
    and move pending -> processing -> dispatched (or failed after the last
    attempt).
    """

    __tablename__ = "outbox_events"

    id = Column(String(64), primary_key=True, nullable=False)
    event_type = Column(String(50), nullable=False)
    subject_id = Column(String(64), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)
    dispatched_at = Column(String(50), nullable=True)

    __table_args__ = (Index("idx_outbox_events_status", "status", "created_at"),)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
