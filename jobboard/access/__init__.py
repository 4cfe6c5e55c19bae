"""Authorization engine: who may manage which job posts and self-service resources.

This module provides:
- can_manage_job: single-job permission decision
- scope_query_for_principal: listing filter with in-memory and SQL renderings
- can_access_own_resource: identity-or-admin rule for profiles and resume alerts
- ensure_* guards raising NotFound / PermissionDenied
"""

from .guards import ensure_can_access_own_resource, ensure_can_manage_job, ensure_employer_like
from .policy import (
    JobScope,
    ScopeKind,
    can_access_own_resource,
    can_manage_job,
    scope_query_for_principal,
)

__all__ = [
    "can_manage_job",
    "scope_query_for_principal",
    "can_access_own_resource",
    "JobScope",
    "ScopeKind",
    "ensure_can_manage_job",
    "ensure_employer_like",
    "ensure_can_access_own_resource",
]
