"""Guard helpers that turn authorization decisions into typed errors."""

from typing import Optional

from jobboard.domain.exceptions import NotFound, PermissionDenied
from jobboard.domain.models import JobPost, Principal
from jobboard.logging import get_logger

from .policy import can_access_own_resource, can_manage_job

logger = get_logger(__name__, component="access")


def _deny(action: str, principal: Optional[Principal], **fields) -> PermissionDenied:
    logger.warning(
        "Access denied",
        extra={
            "event": "access.denied",
            "action": action,
            "principal_id": getattr(principal, "id", None),
            "principal_role": getattr(principal, "role", None),
            **fields,
        },
    )
    return PermissionDenied()


def ensure_can_manage_job(
    job: Optional[JobPost],
    principal: Optional[Principal],
    job_id: Optional[str] = None,
) -> JobPost:
    """Return ``job`` if ``principal`` may manage it.

    Raises:
        NotFound: If the job does not exist (checked before permission)
        PermissionDenied: If the principal may not manage the job
    """
    if job is None:
        raise NotFound("JobPost", job_id or "<unknown>")
    if not can_manage_job(job, principal):
        raise _deny("manage_job", principal, job_id=job.id or job_id)
    return job


def ensure_employer_like(principal: Optional[Principal]) -> Principal:
    """Raise PermissionDenied unless the principal is employer, hr-admin or superadmin."""
    if principal is None or not principal.is_employer_like:
        raise _deny("employer_action", principal)
    return principal


def ensure_can_access_own_resource(
    owner_id: Optional[str],
    principal: Optional[Principal],
    resource: str = "resource",
    resource_id: Optional[str] = None,
) -> None:
    """Raise PermissionDenied unless the self-service rule allows access."""
    if not can_access_own_resource(owner_id, principal):
        raise _deny("own_resource", principal, resource=resource, resource_id=resource_id)
