"""Data access layer (repositories) for persistence operations.

Repositories wrap a caller-owned session, never commit, and return domain
models rather than ORM rows. SQLAlchemy errors are wrapped in
PersistenceError (or DataIntegrityError for constraint violations).
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from jobboard.access.policy import JobScope
from jobboard.domain.events import DeliveryStatus, DomainEvent, OutboxRecord, OutboxStatus
from jobboard.domain.models import (
    Account,
    AlertFrequency,
    AlertKind,
    AlertSubscription,
    CandidateProfile,
    JobPost,
)
from jobboard.utils.timestamps import from_storage, to_storage, utc_now

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import (
    AccountModel,
    AlertDeliveryModel,
    AlertSubscriptionModel,
    CandidateProfileModel,
    JobPostModel,
    OutboxEventModel,
)

logger = logging.getLogger(__name__)


class AccountRepository:
    """Repository for account contact details."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, account_id: str) -> Optional[Account]:
        """Retrieve an account by id, or None if it does not exist.

        Raises:
            PersistenceError: If a database error occurs
        """
        try:
            row = self.session.get(AccountModel, account_id)
            return row.to_domain() if row is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving account {account_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve account: {e}") from e

    def add(self, account: Account) -> Account:
        """Insert a new account.

        Raises:
            DataIntegrityError: If the id or email is already taken
            PersistenceError: If a database error occurs
        """
        try:
            row = AccountModel.from_domain(account)
            self.session.add(row)
            self.session.flush()
            return row.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error adding account {account.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to add account due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding account {account.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add account: {e}") from e


class JobPostRepository:
    """Repository for job post operations.

    Listing goes through a JobScope so that the SQL filter is the same rule
    the authorization engine applies in memory.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, job_id: str) -> Optional[JobPost]:
        """Retrieve a job post by id, or None if it does not exist.

        Raises:
            PersistenceError: If a database error occurs
        """
        try:
            row = self.session.get(JobPostModel, job_id)
            return row.to_domain() if row is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving job post {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve job post: {e}") from e

    def add(self, job: JobPost) -> JobPost:
        """Insert a new job post, assigning an id if it has none.

        Raises:
            DataIntegrityError: If the id is already taken
            PersistenceError: If a database error occurs
        """
        try:
            row = JobPostModel.from_domain(job)
            self.session.add(row)
            self.session.flush()
            return row.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error adding job post {job.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to add job post due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding job post {job.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add job post: {e}") from e

    def save(self, job: JobPost) -> JobPost:
        """Persist the mutable fields of an existing job post.

        Ownership fields (employer, posted_by) are never rewritten.

        Raises:
            RecordNotFoundError: If the job post does not exist
            PersistenceError: If a database error occurs
        """
        try:
            row = self.session.get(JobPostModel, job.id)
            if row is None:
                raise RecordNotFoundError(f"Job post {job.id} not found")
            row.apply(job)
            self.session.flush()
            return row.to_domain()
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error saving job post {job.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save job post: {e}") from e

    def delete(self, job_id: str) -> bool:
        """Delete a job post. Returns False if it did not exist."""
        try:
            result = self.session.execute(delete(JobPostModel).where(JobPostModel.id == job_id))
            self.session.flush()
            return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Error deleting job post {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete job post: {e}") from e

    def list_for_scope(self, scope: JobScope, status: Optional[str] = None) -> List[JobPost]:
        """List job posts visible under ``scope``, newest first.

        Args:
            scope: Visibility filter from scope_query_for_principal()
            status: Optional status filter (Draft, Published, Closed)

        Raises:
            PersistenceError: If a database error occurs
        """
        try:
            stmt = select(JobPostModel).where(scope.to_clause(JobPostModel.employer))
            if status is not None:
                stmt = stmt.where(JobPostModel.status == status)
            stmt = stmt.order_by(JobPostModel.created_at.desc(), JobPostModel.id)
            rows = self.session.execute(stmt).scalars().all()
            return [row.to_domain() for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Error listing job posts for scope {scope.kind.value}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list job posts: {e}") from e


class CandidateProfileRepository:
    """Repository for candidate profile operations."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, profile_id: str) -> Optional[CandidateProfile]:
        try:
            row = self.session.get(CandidateProfileModel, profile_id)
            return row.to_domain() if row is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving profile {profile_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve profile: {e}") from e

    def add(self, profile: CandidateProfile) -> CandidateProfile:
        """Insert a new profile.

        Raises:
            DataIntegrityError: If the candidate already has a profile
            PersistenceError: If a database error occurs
        """
        try:
            row = CandidateProfileModel.from_domain(profile)
            self.session.add(row)
            self.session.flush()
            return row.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error adding profile for {profile.candidate}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to add profile due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding profile for {profile.candidate}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add profile: {e}") from e

    def save(self, profile: CandidateProfile) -> CandidateProfile:
        """Persist the editable fields of an existing profile.

        The owning candidate and creation time are never rewritten.

        Raises:
            RecordNotFoundError: If the profile does not exist
            PersistenceError: If a database error occurs
        """
        try:
            row = self.session.get(CandidateProfileModel, profile.id)
            if row is None:
                raise RecordNotFoundError(f"Profile {profile.id} not found")
            row.apply(profile)
            self.session.flush()
            return row.to_domain()
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error saving profile {profile.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save profile: {e}") from e

    def delete(self, profile_id: str) -> bool:
        try:
            result = self.session.execute(
                delete(CandidateProfileModel).where(CandidateProfileModel.id == profile_id)
            )
            self.session.flush()
            return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Error deleting profile {profile_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete profile: {e}") from e


class AlertSubscriptionRepository:
    """Repository for job alert and resume alert subscriptions."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, subscription: AlertSubscription) -> AlertSubscription:
        try:
            row = AlertSubscriptionModel.from_domain(subscription)
            self.session.add(row)
            self.session.flush()
            return row.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error adding alert {subscription.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to add alert due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding alert {subscription.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add alert: {e}") from e

    def get(self, alert_id: str) -> Optional[AlertSubscription]:
        try:
            row = self.session.get(AlertSubscriptionModel, alert_id)
            return row.to_domain() if row is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving alert {alert_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve alert: {e}") from e

    def load_active(
        self, kind: AlertKind, frequency: AlertFrequency = AlertFrequency.INSTANT
    ) -> Tuple[List[AlertSubscription], List[str]]:
        """Load active subscriptions of one kind and frequency.

        Rows whose stored criteria no longer validate are not returned as
        subscriptions; their ids are returned separately so the caller can
        report them.

        Returns:
            Tuple of (valid subscriptions, ids of rows with invalid criteria)

        Raises:
            PersistenceError: If a database error occurs
        """
        try:
            stmt = (
                select(AlertSubscriptionModel)
                .where(
                    AlertSubscriptionModel.kind == kind.value,
                    AlertSubscriptionModel.frequency == frequency.value,
                    AlertSubscriptionModel.is_active.is_(True),
                )
                .order_by(AlertSubscriptionModel.created_at, AlertSubscriptionModel.id)
            )
            rows = self.session.execute(stmt).scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Error loading active {kind.value} alerts: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load alerts: {e}") from e

        subscriptions: List[AlertSubscription] = []
        invalid_ids: List[str] = []
        for row in rows:
            try:
                subscriptions.append(row.to_domain())
            except PydanticValidationError as e:
                logger.warning(
                    f"Skipping alert {row.id} with invalid stored criteria: {e.error_count()} error(s)",
                    extra={"event": "alerts.invalid_criteria", "alert_id": row.id},
                )
                invalid_ids.append(row.id)

        return subscriptions, invalid_ids

    def record_delivery(self, alert_id: str, matched_at: datetime) -> None:
        """Atomically bump emails_sent and total_matches and set last_match.

        The increment runs in SQL so concurrent dispatchers never lose an update.

        Raises:
            RecordNotFoundError: If the alert no longer exists
            PersistenceError: If a database error occurs
        """
        try:
            stmt = (
                update(AlertSubscriptionModel)
                .where(AlertSubscriptionModel.id == alert_id)
                .values(
                    emails_sent=AlertSubscriptionModel.emails_sent + 1,
                    total_matches=AlertSubscriptionModel.total_matches + 1,
                    last_match=to_storage(matched_at),
                )
            )
            result = self.session.execute(stmt)
            self.session.flush()

            if result.rowcount == 0:
                raise RecordNotFoundError(f"Alert {alert_id} not found")

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating stats for alert {alert_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update alert stats: {e}") from e


class AlertDeliveryRepository:
    """Dedupe ledger of sends per (alert, subject, event).

    A row is reserved (status sending) before the gateway is called, confirmed
    (delivered) after a successful send and released after a failed one.
    """

    def __init__(self, session: Session):
        self.session = session

    def status_of(self, alert_id: str, subject_id: str, event_id: str) -> Optional[DeliveryStatus]:
        """Return the ledger status, or None if nothing was sent or reserved."""
        try:
            row = self.session.get(AlertDeliveryModel, _delivery_key(alert_id, subject_id, event_id))
            return DeliveryStatus(row.status) if row is not None else None
        except SQLAlchemyError as e:
            logger.error(
                f"Error checking delivery for alert {alert_id}, subject {subject_id}: {e}",
                exc_info=True,
            )
            raise PersistenceError(f"Failed to check delivery: {e}") from e

    def has_been_delivered(self, alert_id: str, subject_id: str, event_id: str) -> bool:
        return self.status_of(alert_id, subject_id, event_id) == DeliveryStatus.DELIVERED

    def reserve(
        self, alert_id: str, subject_id: str, event_id: str, recipient: str, reserved_at: datetime
    ) -> bool:
        """Write a sending row before the gateway is called.

        Returns:
            True if the row was written, False if one already existed

        Raises:
            DataIntegrityError: If a concurrent dispatcher inserted the row first
            PersistenceError: If a database error occurs
        """
        key = _delivery_key(alert_id, subject_id, event_id)
        try:
            if self.session.get(AlertDeliveryModel, key) is not None:
                logger.debug(f"Delivery already reserved for alert {alert_id}, subject {subject_id}")
                return False

            self.session.add(
                AlertDeliveryModel(
                    **key,
                    recipient=recipient,
                    status=DeliveryStatus.SENDING.value,
                    reserved_at=to_storage(reserved_at),
                )
            )
            self.session.flush()
            return True

        except IntegrityError as e:
            logger.error(f"Integrity error reserving delivery for alert {alert_id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to reserve delivery: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error reserving delivery for alert {alert_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to reserve delivery: {e}") from e

    def confirm(self, alert_id: str, subject_id: str, event_id: str, delivered_at: datetime) -> None:
        """Mark a reserved row delivered.

        Raises:
            RecordNotFoundError: If no row was reserved
            PersistenceError: If a database error occurs
        """
        try:
            result = self.session.execute(
                update(AlertDeliveryModel)
                .where(
                    and_(
                        AlertDeliveryModel.alert_id == alert_id,
                        AlertDeliveryModel.subject_id == subject_id,
                        AlertDeliveryModel.event_id == event_id,
                    )
                )
                .values(status=DeliveryStatus.DELIVERED.value, delivered_at=to_storage(delivered_at))
            )
            self.session.flush()
            if result.rowcount == 0:
                raise RecordNotFoundError(f"No delivery reserved for alert {alert_id}, subject {subject_id}")
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error confirming delivery for alert {alert_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to confirm delivery: {e}") from e

    def release(self, alert_id: str, subject_id: str, event_id: str) -> bool:
        """Delete a sending row so a later attempt may send again.

        Delivered rows are never released. Returns True if a row was deleted.
        """
        try:
            result = self.session.execute(
                delete(AlertDeliveryModel).where(
                    and_(
                        AlertDeliveryModel.alert_id == alert_id,
                        AlertDeliveryModel.subject_id == subject_id,
                        AlertDeliveryModel.event_id == event_id,
                        AlertDeliveryModel.status == DeliveryStatus.SENDING.value,
                    )
                )
            )
            self.session.flush()
            return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Error releasing delivery for alert {alert_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to release delivery: {e}") from e


def _delivery_key(alert_id: str, subject_id: str, event_id: str) -> dict:
    return {"alert_id": alert_id, "subject_id": subject_id, "event_id": event_id}


class OutboxRepository:
    """Transactional outbox of post-commit events."""

    def __init__(self, session: Session):
        self.session = session

    def enqueue(self, event: DomainEvent) -> OutboxRecord:
        """Insert a pending outbox row in the caller's transaction."""
        now = to_storage(utc_now())
        row = OutboxEventModel(
            id=event.event_id,
            event_type=event.event_type.value,
            subject_id=event.subject_id,
            status=OutboxStatus.PENDING.value,
            attempts=0,
            created_at=to_storage(event.occurred_at),
            updated_at=now,
        )
        try:
            self.session.add(row)
            self.session.flush()
            return self._to_record(row)
        except IntegrityError as e:
            logger.error(f"Integrity error enqueuing event {event.event_id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to enqueue event: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error enqueuing event {event.event_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to enqueue event: {e}") from e

    def get(self, event_id: str) -> Optional[OutboxRecord]:
        try:
            row = self.session.get(OutboxEventModel, event_id)
            return self._to_record(row) if row is not None else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to retrieve event: {e}") from e

    def claim(self, event_id: str) -> Optional[OutboxRecord]:
        """Move an event from pending to processing.

        Compare-and-set on the status column: of several concurrent claimers
        exactly one gets the record, the others get None.
        """
        try:
            stmt = (
                update(OutboxEventModel)
                .where(
                    and_(
                        OutboxEventModel.id == event_id,
                        OutboxEventModel.status == OutboxStatus.PENDING.value,
                    )
                )
                .values(
                    status=OutboxStatus.PROCESSING.value,
                    attempts=OutboxEventModel.attempts + 1,
                    updated_at=to_storage(utc_now()),
                )
            )
            result = self.session.execute(stmt)
            self.session.flush()
            if result.rowcount == 0:
                return None

            row = self.session.get(OutboxEventModel, event_id, populate_existing=True)
            return self._to_record(row)

        except SQLAlchemyError as e:
            logger.error(f"Error claiming event {event_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to claim event: {e}") from e

    def mark_dispatched(self, event_id: str) -> None:
        now = to_storage(utc_now())
        self._set_status(
            event_id, status=OutboxStatus.DISPATCHED.value, last_error=None,
            dispatched_at=now, updated_at=now,
        )

    def mark_failed(self, event_id: str, error: str, give_up: bool) -> None:
        """Record a failed attempt.

        The event goes back to pending for another attempt, or to failed when
        ``give_up`` is set.
        """
        status = OutboxStatus.FAILED if give_up else OutboxStatus.PENDING
        self._set_status(
            event_id, status=status.value, last_error=error[:2000],
            updated_at=to_storage(utc_now()),
        )

    def list_pending(self, limit: int) -> List[OutboxRecord]:
        """Oldest pending events first."""
        try:
            stmt = (
                select(OutboxEventModel)
                .where(OutboxEventModel.status == OutboxStatus.PENDING.value)
                .order_by(OutboxEventModel.created_at, OutboxEventModel.id)
                .limit(limit)
            )
            return [self._to_record(row) for row in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing pending events: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list pending events: {e}") from e

    def requeue_processing(self) -> int:
        """Return events left in processing by a stopped relay to pending.

        Only safe to call while no other relay is running. Returns the number
        of events requeued.
        """
        try:
            result = self.session.execute(
                update(OutboxEventModel)
                .where(OutboxEventModel.status == OutboxStatus.PROCESSING.value)
                .values(status=OutboxStatus.PENDING.value, updated_at=to_storage(utc_now()))
            )
            self.session.flush()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error requeuing processing events: {e}", exc_info=True)
            raise PersistenceError(f"Failed to requeue events: {e}") from e

    def _set_status(self, event_id: str, **values) -> None:
        try:
            result = self.session.execute(
                update(OutboxEventModel).where(OutboxEventModel.id == event_id).values(**values)
            )
            self.session.flush()
            if result.rowcount == 0:
                raise RecordNotFoundError(f"Outbox event {event_id} not found")
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating event {event_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update event: {e}") from e

    @staticmethod
    def _to_record(row: OutboxEventModel) -> OutboxRecord:
        return OutboxRecord(
            event_id=row.id,
            event_type=row.event_type,
            subject_id=row.subject_id,
            status=row.status,
            attempts=row.attempts,
            last_error=row.last_error,
            created_at=from_storage(row.created_at),
            dispatched_at=from_storage(row.dispatched_at),
        )
