"""Role-based authorization rules for job posts and self-service resources.

can_manage_job() and scope_query_for_principal() are two renderings of the
same rule: for every job and principal,
``can_manage_job(job, p) == scope_query_for_principal(p).matches(job)``.
Both fail closed for anything outside the four known roles.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Optional

from sqlalchemy import false, true

from jobboard.domain.models import ADMIN_OVERRIDE_ROLES, JobPost, Principal, Role


class ScopeKind(str, Enum):
    """Shape of a job visibility filter."""

    ALL = "all"
    EMPLOYER_IN = "employer_in"
    NONE = "none"


@dataclass(frozen=True)
class JobScope:
    """Declarative job visibility filter.

    Attributes:
        kind: ALL (unrestricted), EMPLOYER_IN (owning employer in ``employer_ids``)
            or NONE (matches nothing)
        employer_ids: Owning employer ids for EMPLOYER_IN scopes
    """

    kind: ScopeKind
    employer_ids: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def unrestricted(cls) -> "JobScope":
        return cls(ScopeKind.ALL)

    @classmethod
    def nothing(cls) -> "JobScope":
        return cls(ScopeKind.NONE)

    @classmethod
    def employers(cls, employer_ids) -> "JobScope":
        """Scope to jobs owned by any of ``employer_ids``. An empty set matches nothing."""
        return cls(ScopeKind.EMPLOYER_IN, frozenset(str(e) for e in employer_ids))

    def matches(self, job: Optional[JobPost]) -> bool:
        """Evaluate the filter against a single in-memory job."""
        if job is None:
            return False
        if self.kind == ScopeKind.ALL:
            return True
        if self.kind == ScopeKind.EMPLOYER_IN:
            return job.employer in self.employer_ids
        return False

    def to_clause(self, employer_column: Any):
        """Render the filter as a SQLAlchemy WHERE clause on the owner column.

        Example:
            >>> select(JobPostORM).where(scope.to_clause(JobPostORM.employer))
        """
        if self.kind == ScopeKind.ALL:
            return true()
        if self.kind == ScopeKind.EMPLOYER_IN and self.employer_ids:
            return employer_column.in_(sorted(self.employer_ids))
        return false()

    @property
    def is_empty(self) -> bool:
        """True if the scope can never match a job."""
        return self.kind == ScopeKind.NONE or (
            self.kind == ScopeKind.EMPLOYER_IN and not self.employer_ids
        )


def _role_of(principal: Optional[Principal]) -> Optional[Role]:
    """Return the principal's role, or None if it is missing or outside the closed set."""
    if principal is None:
        return None
    role = getattr(principal, "role", None)
    if isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError:
        return None


def can_manage_job(job: Optional[JobPost], principal: Optional[Principal]) -> bool:
    """Decide whether ``principal`` may update or delete ``job``.

    - superadmin: always
    - employer: only jobs it owns
    - hr-admin: jobs whose owning employer is in its assignment set
    - candidate, unknown role, missing job or principal: never

    The poster of a job (``posted_by``) is never consulted.
    """
    if job is None:
        return False

    role = _role_of(principal)
    if role == Role.SUPERADMIN:
        return True
    if role == Role.EMPLOYER:
        return job.employer == principal.id
    if role == Role.HR_ADMIN:
        return job.employer in (principal.employer_ids or frozenset())
    return False


def scope_query_for_principal(principal: Optional[Principal]) -> JobScope:
    """Build the job listing filter for ``principal``."""
    role = _role_of(principal)
    if role == Role.SUPERADMIN:
        return JobScope.unrestricted()
    if role == Role.EMPLOYER:
        return JobScope.employers({principal.id})
    if role == Role.HR_ADMIN:
        return JobScope.employers(principal.employer_ids or frozenset())
    return JobScope.nothing()


def can_access_own_resource(owner_id: Optional[str], principal: Optional[Principal]) -> bool:
    """Self-service rule for candidate profiles and resume alerts.

    Allowed for the owner themself or for an admin-override role. The HR-admin
    assignment set does not apply here.
    """
    role = _role_of(principal)
    if role is None:
        return False
    if role in ADMIN_OVERRIDE_ROLES:
        return True
    return owner_id is not None and str(owner_id) == principal.id
