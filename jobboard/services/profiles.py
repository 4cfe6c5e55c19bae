"""Candidate profile write service (self-service resources)."""

from contextlib import AbstractContextManager
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from jobboard.access.guards import ensure_can_access_own_resource
from jobboard.domain.events import ProfileCreated, ProfileUpdated
from jobboard.domain.exceptions import NotFound, ValidationError
from jobboard.domain.models import CandidateProfile, Principal
from jobboard.events.bus import EventBus
from jobboard.logging import get_logger
from jobboard.logging.context import log_context
from jobboard.persistence import get_session
from jobboard.persistence.repositories import CandidateProfileRepository, OutboxRepository

from .common import as_validation_error, publish_committed

logger = get_logger(__name__, component="profiles")

# The owning candidate and creation time never change
IMMUTABLE_FIELDS = frozenset({"id", "candidate", "created_at"})

_FIELD_NAMES: Dict[str, str] = {
    **{name: name for name in CandidateProfile.model_fields},
    **{to_camel(name): name for name in CandidateProfile.model_fields},
}


class CandidateProfileService:
    """Create, edit and delete candidate profiles.

    A candidate manages their own profile; hr-admins and superadmins may act
    on any profile.
    """

    def __init__(
        self,
        session_factory: Callable[[], AbstractContextManager] = get_session,
        bus: Optional[EventBus] = None,
    ):
        self.session_factory = session_factory
        self.bus = bus

    def create_profile(self, principal: Principal, profile: CandidateProfile) -> CandidateProfile:
        """Create a profile and fire resume alert dispatch for it.

        Raises:
            PermissionDenied: If the principal is neither the candidate nor an admin
            DataIntegrityError: If the candidate already has a profile
        """
        ensure_can_access_own_resource(
            profile.candidate, principal, resource="CandidateProfile", resource_id=profile.id
        )

        with log_context(principal_id=principal.id):
            with self.session_factory() as session:
                saved = CandidateProfileRepository(session).add(profile)
                event = ProfileCreated(profile_id=saved.id)
                OutboxRepository(session).enqueue(event)

            logger.info(
                "Candidate profile created",
                extra={"event": "profile.created", "profile_id": saved.id, "candidate": saved.candidate},
            )
            publish_committed(self.bus, event, logger)
        return saved

    def update_profile(self, principal: Principal, profile_id: str, changes: Mapping[str, Any]) -> CandidateProfile:
        """Edit a profile and fire resume alert dispatch for the new version.

        Each effective edit is its own event, so an employer whose alert
        already matched the previous version hears about the edited profile
        once more. An edit that changes nothing fires nothing.

        Raises:
            NotFound: If the profile does not exist
            PermissionDenied: If the principal is neither the candidate nor an admin
            ValidationError: If a change is unknown, touches an immutable field,
                or leaves the profile invalid
        """
        event = None
        with log_context(principal_id=principal.id if principal else None, profile_id=profile_id):
            with self.session_factory() as session:
                repo = CandidateProfileRepository(session)
                current = repo.get(profile_id)
                if current is None:
                    raise NotFound("CandidateProfile", profile_id)
                ensure_can_access_own_resource(
                    current.candidate, principal, resource="CandidateProfile", resource_id=profile_id
                )
                updated = self._apply_changes(current, changes)
                if updated == current:
                    saved = current
                else:
                    saved = repo.save(updated)
                    event = ProfileUpdated(profile_id=saved.id)
                    OutboxRepository(session).enqueue(event)

            logger.info(
                "Candidate profile updated",
                extra={
                    "event": "profile.updated",
                    "changed_fields": sorted(_FIELD_NAMES[k] for k in changes),
                    "notifies": event is not None,
                },
            )
            publish_committed(self.bus, event, logger)
        return saved

    def get_profile(self, principal: Principal, profile_id: str) -> CandidateProfile:
        with self.session_factory() as session:
            profile = CandidateProfileRepository(session).get(profile_id)
        if profile is None:
            raise NotFound("CandidateProfile", profile_id)
        ensure_can_access_own_resource(
            profile.candidate, principal, resource="CandidateProfile", resource_id=profile_id
        )
        return profile

    def delete_profile(self, principal: Principal, profile_id: str) -> None:
        """
        Raises:
            NotFound: If the profile does not exist
            PermissionDenied: If the principal is neither the candidate nor an admin
        """
        with self.session_factory() as session:
            repo = CandidateProfileRepository(session)
            profile = repo.get(profile_id)
            if profile is None:
                raise NotFound("CandidateProfile", profile_id)
            ensure_can_access_own_resource(
                profile.candidate, principal, resource="CandidateProfile", resource_id=profile_id
            )
            repo.delete(profile_id)

        logger.info(
            "Candidate profile deleted",
            extra={"event": "profile.deleted", "profile_id": profile_id},
        )

    @staticmethod
    def _apply_changes(current: CandidateProfile, changes: Mapping[str, Any]) -> CandidateProfile:
        data = current.model_dump()
        for key, value in changes.items():
            name = _FIELD_NAMES.get(key)
            if name is None:
                raise ValidationError(f"Unknown profile field: {key}")
            if name in IMMUTABLE_FIELDS:
                if value != data[name]:
                    raise ValidationError(f"Field '{key}' cannot be changed")
                continue
            data[name] = value

        try:
            return CandidateProfile.model_validate(data)
        except PydanticValidationError as e:
            raise as_validation_error(e, "candidate profile") from e
