"""
Authorization Gate: who may invoke which transition on which record.

Rules are role based, with organization membership deciding scope for
organization actors. Every denial names one of three reasons so callers
can tell "your role can't do this" apart from "this isn't routed to you"
and "this isn't yours".
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from ..core.config import get_settings
from ..models import Case, Referral, Registration, UserRole
from .errors import DENIAL_ERRORS, NotAuthorizedError, NotOwnerError, WrongOrganizationError
from .states import (
    EntityType,
    OrganizationTarget,
    Transition,
    WorkflowEntity,
    assigned_target,
    entity_type_of,
)

logger = logging.getLogger(__name__)

ORGANIZATION_ROLES = frozenset({UserRole.ORGANIZATION, UserRole.MANAGER})
EDITOR_ROLES = frozenset({UserRole.ADMIN, UserRole.CASE_WORKER})


@dataclass(frozen=True)
class Actor:
    """The authenticated principal invoking a workflow operation."""

    user_id: UUID
    role: UserRole
    organization_id: UUID | None = None

    @property
    def is_organization_actor(self) -> bool:
        return self.role in ORGANIZATION_ROLES


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: str | None = None

    @classmethod
    def allow(cls) -> "AuthorizationDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "AuthorizationDecision":
        return cls(allowed=False, reason=reason)


ALLOW = AuthorizationDecision.allow()


class AuthorizationGate:
    """Single point of truth for transition permissions."""

    def __init__(self, central_authority_roles: Iterable[str] | None = None):
        if central_authority_roles is None:
            central_authority_roles = get_settings().central_authority_roles
        self._central_roles = frozenset(UserRole(r) for r in central_authority_roles)

    def is_central_authority(self, actor: Actor) -> bool:
        return actor.role in self._central_roles

    def can_transition(
        self,
        actor: Actor,
        entity: WorkflowEntity,
        transition: Transition,
    ) -> AuthorizationDecision:
        """Decide whether ``actor`` may apply ``transition`` to ``entity``."""
        if transition is Transition.CREATE:
            return ALLOW
        if transition in (Transition.EDIT, Transition.DELETE):
            return self._owner_or_editor(actor, entity)

        entity_type = entity_type_of(entity)
        if entity_type is EntityType.REFERRAL:
            return self._referral_rule(actor, entity, transition)
        return self._approvable_rule(actor, entity, transition)

    def require(
        self,
        actor: Actor,
        entity: WorkflowEntity,
        transition: Transition,
    ) -> None:
        """Raise the typed denial error if the transition is not allowed."""
        decision = self.can_transition(actor, entity, transition)
        if not decision.allowed:
            self._deny(actor, entity, transition.value, decision)

    def require_view(self, actor: Actor, entity: WorkflowEntity) -> None:
        decision = self.can_view(actor, entity)
        if not decision.allowed:
            self._deny(actor, entity, "view", decision)

    @staticmethod
    def _deny(
        actor: Actor,
        entity: WorkflowEntity,
        operation: str,
        decision: AuthorizationDecision,
    ) -> None:
        entity_name = entity_type_of(entity).value
        logger.warning(
            f"Denied {operation} on {entity_name} {entity.id} "
            f"for user {actor.user_id} ({actor.role.value}): {decision.reason}"
        )
        error_cls = DENIAL_ERRORS.get(decision.reason, NotAuthorizedError)
        raise error_cls(f"{operation} not permitted on {entity_name} {entity.id}")

    def can_view(self, actor: Actor, entity: WorkflowEntity) -> AuthorizationDecision:
        """Read access: the list scope, applied to a single record."""
        if self.is_central_authority(actor) or actor.role in EDITOR_ROLES:
            return ALLOW
        if entity.created_by == actor.user_id:
            return ALLOW
        if actor.is_organization_actor:
            if isinstance(entity, Referral):
                if actor.organization_id is not None and entity.assigned_organization_id == actor.organization_id:
                    return ALLOW
            elif self._in_scope(actor, entity):
                return ALLOW
            return AuthorizationDecision.deny(WrongOrganizationError.code)
        return AuthorizationDecision.deny(NotOwnerError.code)

    def list_scope(self, actor: Actor) -> dict:
        """Filter overrides restricting a listing to what ``actor`` may see."""
        if self.is_central_authority(actor) or actor.role in EDITOR_ROLES:
            return {}
        if actor.is_organization_actor and actor.organization_id is not None:
            return {"organization_id": actor.organization_id}
        return {"created_by": actor.user_id}

    # =========================================================================
    # RULES
    # =========================================================================

    def _owner_or_editor(self, actor: Actor, entity: WorkflowEntity) -> AuthorizationDecision:
        if entity.created_by == actor.user_id or actor.role in EDITOR_ROLES:
            return ALLOW
        return AuthorizationDecision.deny(NotOwnerError.code)

    def _approvable_rule(
        self,
        actor: Actor,
        entity: Case | Registration,
        transition: Transition,
    ) -> AuthorizationDecision:
        if transition in (Transition.APPROVE, Transition.REJECT, Transition.ASSIGN):
            if self.is_central_authority(actor):
                return ALLOW
            if actor.role is UserRole.ORGANIZATION:
                if self._in_scope(actor, entity):
                    return ALLOW
                return AuthorizationDecision.deny(WrongOrganizationError.code)
            return AuthorizationDecision.deny(NotAuthorizedError.code)

        if transition is Transition.ADVANCE_STATUS:
            if self.is_central_authority(actor):
                return ALLOW
            if actor.is_organization_actor:
                if self._in_scope(actor, entity):
                    return ALLOW
                return AuthorizationDecision.deny(WrongOrganizationError.code)
            return self._owner_or_editor(actor, entity)

        return AuthorizationDecision.deny(NotAuthorizedError.code)

    def _referral_rule(
        self,
        actor: Actor,
        referral: Referral,
        transition: Transition,
    ) -> AuthorizationDecision:
        if transition is Transition.ASSIGN:
            if self.is_central_authority(actor):
                return ALLOW
            return AuthorizationDecision.deny(NotAuthorizedError.code)

        if transition in (Transition.ACCEPT, Transition.DECLINE, Transition.COMPLETE):
            if transition is Transition.COMPLETE and self.is_central_authority(actor):
                return ALLOW
            if not actor.is_organization_actor:
                return AuthorizationDecision.deny(NotAuthorizedError.code)
            if (
                actor.organization_id is None
                or referral.assigned_organization_id != actor.organization_id
            ):
                return AuthorizationDecision.deny(WrongOrganizationError.code)
            return ALLOW

        return AuthorizationDecision.deny(NotAuthorizedError.code)

    @staticmethod
    def _in_scope(actor: Actor, entity: Case | Registration) -> bool:
        """Organization scope: records it owns or that are assigned to it."""
        if actor.organization_id is None:
            return False
        if entity.organization_id == actor.organization_id:
            return True
        return assigned_target(entity) == OrganizationTarget(actor.organization_id)
