"""Job post write service.

Every write authorizes through the access layer, commits the job change
together with any outbox row, and only then publishes the event. The
outcome of alert dispatch never changes the outcome of the write.
"""

from contextlib import AbstractContextManager
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from jobboard.access.guards import ensure_can_manage_job, ensure_employer_like
from jobboard.access.policy import scope_query_for_principal
from jobboard.domain.events import JobPublished
from jobboard.domain.exceptions import ValidationError
from jobboard.domain.lifecycle import fires_publication, status_after_positions_change
from jobboard.domain.models import JobPost, JobStatus, Principal
from jobboard.events.bus import EventBus
from jobboard.logging import get_logger
from jobboard.logging.context import log_context
from jobboard.persistence import get_session
from jobboard.persistence.repositories import JobPostRepository, OutboxRepository

from .common import as_validation_error, publish_committed

logger = get_logger(__name__, component="jobs")

# Ownership and identity never change after creation
IMMUTABLE_FIELDS = frozenset({"id", "employer", "posted_by"})

# Only changed through update_positions() or the application flow
MANAGED_FIELDS = frozenset({"positions_total", "applicant_count", "created_at"})

_FIELD_NAMES: Dict[str, str] = {
    **{name: name for name in JobPost.model_fields},
    **{to_camel(name): name for name in JobPost.model_fields},
}


class JobPostService:
    """Create, update, delete and list job posts on behalf of a principal."""

    def __init__(
        self,
        session_factory: Callable[[], AbstractContextManager] = get_session,
        bus: Optional[EventBus] = None,
    ):
        self.session_factory = session_factory
        self.bus = bus

    def create_job_post(self, principal: Principal, job: JobPost) -> JobPost:
        """Create a job post owned by ``job.employer``.

        The creating principal is recorded as the poster. Publishing on
        creation fires alert dispatch.

        Raises:
            PermissionDenied: If the principal is not employer-like or may not
                manage jobs of that employer
        """
        ensure_employer_like(principal)
        job = job.model_copy(update={"id": None, "posted_by": principal.id})
        ensure_can_manage_job(job, principal)

        event = None
        with log_context(principal_id=principal.id):
            with self.session_factory() as session:
                saved = JobPostRepository(session).add(job)
                if fires_publication(None, saved.status):
                    event = JobPublished(job_id=saved.id)
                    OutboxRepository(session).enqueue(event)

            logger.info(
                f"Job post created: {saved.title}",
                extra={
                    "event": "job.created",
                    "job_id": saved.id,
                    "employer": saved.employer,
                    "status": saved.status.value,
                },
            )
            publish_committed(self.bus, event, logger)
        return saved

    def update_job_post(self, principal: Principal, job_id: str, changes: Mapping[str, Any]) -> JobPost:
        """Apply ``changes`` (snake_case or camelCase keys) to a job post.

        Raises:
            NotFound: If the job does not exist
            PermissionDenied: If the principal may not manage the job
            ValidationError: If a change is unknown, touches an immutable or
                managed field, or leaves the post invalid
        """
        event = None
        with log_context(principal_id=principal.id if principal else None, job_id=job_id):
            with self.session_factory() as session:
                repo = JobPostRepository(session)
                current = ensure_can_manage_job(repo.get(job_id), principal, job_id=job_id)
                updated = self._apply_changes(current, changes)
                saved = repo.save(updated)

                if fires_publication(current.status, saved.status):
                    event = JobPublished(job_id=saved.id)
                    OutboxRepository(session).enqueue(event)

            logger.info(
                "Job post updated",
                extra={
                    "event": "job.updated",
                    "changed_fields": sorted(_FIELD_NAMES[k] for k in changes),
                    "previous_status": current.status.value,
                    "status": saved.status.value,
                    "publishes": event is not None,
                },
            )
            publish_committed(self.bus, event, logger)
        return saved

    def update_positions(self, principal: Principal, job_id: str, total: int) -> JobPost:
        """Change the number of open positions and close or reopen the post.

        Reopening a closed post never fires alert dispatch.

        Raises:
            NotFound: If the job does not exist
            PermissionDenied: If the principal may not manage the job
            ValidationError: If ``total`` is below the number of applicants
        """
        with log_context(principal_id=principal.id if principal else None, job_id=job_id):
            with self.session_factory() as session:
                repo = JobPostRepository(session)
                current = ensure_can_manage_job(repo.get(job_id), principal, job_id=job_id)

                if total < 0:
                    raise ValidationError("Total positions cannot be negative")
                if total < current.applicant_count:
                    raise ValidationError(
                        f"Total positions ({total}) cannot be less than the number of "
                        f"applicants ({current.applicant_count})"
                    )

                status = status_after_positions_change(current.status, total - current.applicant_count)
                saved = repo.save(current.model_copy(update={"positions_total": total, "status": status}))

            logger.info(
                f"Positions updated to {total}",
                extra={
                    "event": "job.positions_updated",
                    "positions_total": total,
                    "positions_remaining": saved.positions_remaining,
                    "previous_status": current.status.value,
                    "status": saved.status.value,
                },
            )
        return saved

    def delete_job_post(self, principal: Principal, job_id: str) -> None:
        """
        Raises:
            NotFound: If the job does not exist
            PermissionDenied: If the principal may not manage the job
        """
        with log_context(principal_id=principal.id if principal else None, job_id=job_id):
            with self.session_factory() as session:
                repo = JobPostRepository(session)
                ensure_can_manage_job(repo.get(job_id), principal, job_id=job_id)
                repo.delete(job_id)
            logger.info("Job post deleted", extra={"event": "job.deleted"})

    def get_job_post(self, principal: Principal, job_id: str) -> JobPost:
        """Fetch a job post the principal may manage."""
        with self.session_factory() as session:
            job = JobPostRepository(session).get(job_id)
        return ensure_can_manage_job(job, principal, job_id=job_id)

    def list_job_posts(self, principal: Principal, status: Optional[JobStatus] = None) -> List[JobPost]:
        """List the job posts the principal may manage, newest first."""
        scope = scope_query_for_principal(principal)
        if scope.is_empty:
            return []
        with self.session_factory() as session:
            return JobPostRepository(session).list_for_scope(
                scope, status=status.value if status is not None else None
            )

    @staticmethod
    def _apply_changes(current: JobPost, changes: Mapping[str, Any]) -> JobPost:
        data = current.model_dump()
        for key, value in changes.items():
            name = _FIELD_NAMES.get(key)
            if name is None:
                raise ValidationError(f"Unknown job post field: {key}")
            if name in IMMUTABLE_FIELDS:
                if value != data[name]:
                    raise ValidationError(f"Field '{key}' cannot be changed")
                continue
            if name in MANAGED_FIELDS:
                raise ValidationError(f"Field '{key}' cannot be changed through a job update")
            data[name] = value

        try:
            return JobPost.model_validate(data)
        except PydanticValidationError as e:
            raise as_validation_error(e, "job post") from e
