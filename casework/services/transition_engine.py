"""
Transition Engine: the workflow state machine.

Every transition follows the same path:
1. Load the pre-image from the entity store
2. Ask the Authorization Gate
3. Validate the payload (mandatory reasons, editable fields)
4. Check the transition is legal from the current lifecycle state
5. Compute the complete patch
6. Write it with one conditional UPDATE keyed by (id, version)
7. Append an activity log entry in the same transaction

Nothing is written until step 6, so a failed transition leaves the row
exactly as it was. Approve and accept are idempotent: replaying them on a
record already in the end state succeeds without re-stamping it, including
when the caller sent a stale version or lost a race to a concurrent request.
"""

import logging
import secrets
import string
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings, get_settings
from ..models import Case, CaseStatus, Priority, Referral, Registration
from ..models.base import utcnow
from ..schemas.base import PaginationParams
from .activity import ActivityLogger
from .assignment_router import AssignmentRouter
from .authorization import Actor, AuthorizationGate
from .entity_store import EntityFilters, EntityStore
from .errors import (
    ConflictError,
    EntityClosedError,
    InvalidStateTransitionError,
    ValidationFailedError,
)
from .states import (
    ADVANCE_SOURCES,
    ADVANCE_TARGETS,
    ENTITY_MODELS,
    AssignmentTarget,
    CaseState,
    EntityType,
    LifecycleState,
    ReferralState,
    RegistrationState,
    Transition,
    WorkflowEntity,
    entity_type_of,
    is_terminal,
    legacy_fields,
    state_of,
)

logger = logging.getLogger(__name__)

# A plan inspects the pre-image and returns the patch to write, or None
# when the record already satisfies the request.
Plan = Callable[[Any], dict[str, Any] | None]

APPROVED_STATES: dict[EntityType, LifecycleState] = {
    EntityType.CASE: CaseState.APPROVED,
    EntityType.REGISTRATION: RegistrationState.APPROVED,
}
REJECTED_STATES: dict[EntityType, LifecycleState] = {
    EntityType.CASE: CaseState.REJECTED,
    EntityType.REGISTRATION: RegistrationState.REJECTED,
}
AWAITING_APPROVAL = frozenset({CaseState.AWAITING_APPROVAL, RegistrationState.AWAITING_APPROVAL})

EDITABLE_FIELDS: dict[EntityType, frozenset[str]] = {
    EntityType.CASE: frozenset({"title", "description", "category", "priority"}),
    EntityType.REGISTRATION: frozenset(
        {"full_name", "phone", "category", "description", "household_size"}
    ),
    EntityType.REFERRAL: frozenset(
        {"client_name", "category", "priority", "reason", "notes", "case_id"}
    ),
}
REQUIRED_TEXT_FIELDS = frozenset({"title", "full_name", "reason"})

REFERENCE_PREFIXES: dict[EntityType, str] = {
    EntityType.CASE: "CASE",
    EntityType.REGISTRATION: "REG",
    EntityType.REFERRAL: "REF",
}


def generate_reference(prefix: str) -> str:
    """Human-readable record number, e.g. ``CASE-1718000000000-4KQ2Z``."""
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(5))
    return f"{prefix}-{millis}-{suffix}"


def require_reason(reason: str | None, field: str = "reason") -> str:
    if reason is None or not reason.strip():
        raise ValidationFailedError(f"A non-blank {field} is required", detail=field)
    return reason.strip()


def is_already_approved(entity: Case | Registration) -> bool:
    """Approved and still open, including cases advanced to in_progress."""
    return not is_terminal(entity) and state_of(entity) not in AWAITING_APPROVAL


def is_already_accepted(referral: Referral) -> bool:
    return state_of(referral) is ReferralState.ACCEPTED


# =============================================================================
# INPUTS
# =============================================================================


@dataclass
class CreateCaseInput:
    title: str
    description: str | None = None
    category: str | None = None
    priority: Priority = Priority.MEDIUM
    organization_id: UUID | None = None


@dataclass
class CreateRegistrationInput:
    full_name: str
    phone: str | None = None
    category: str | None = None
    description: str | None = None
    household_size: int | None = None
    organization_id: UUID | None = None


@dataclass
class CreateReferralInput:
    reason: str
    client_name: str | None = None
    category: str | None = None
    priority: Priority = Priority.MEDIUM
    case_id: UUID | None = None
    notes: str | None = None
    referred_from: str = "Internal"


# =============================================================================
# TRANSITION ENGINE
# =============================================================================


class TransitionEngine:
    """Applies workflow transitions to cases, registrations and referrals."""

    def __init__(
        self,
        session: AsyncSession,
        gate: AuthorizationGate | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._settings = settings or get_settings()
        self._gate = gate or AuthorizationGate(self._settings.central_authority_roles)
        self._store = EntityStore(session)
        self._router = AssignmentRouter(session)
        self._activity = ActivityLogger(session)
        self._clock = clock

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_case(self, actor: Actor, input: CreateCaseInput) -> Case:
        case = Case(
            case_number=generate_reference(REFERENCE_PREFIXES[EntityType.CASE]),
            title=require_reason(input.title, "title"),
            description=input.description,
            category=input.category,
            priority=input.priority,
            organization_id=input.organization_id or actor.organization_id,
            created_by=actor.user_id,
            **legacy_fields(CaseState.AWAITING_APPROVAL),
        )
        return await self._create(actor, case, {"case_number": case.case_number})

    async def create_registration(
        self,
        actor: Actor,
        input: CreateRegistrationInput,
    ) -> Registration:
        registration = Registration(
            registration_number=generate_reference(REFERENCE_PREFIXES[EntityType.REGISTRATION]),
            full_name=require_reason(input.full_name, "full_name"),
            phone=input.phone,
            category=input.category,
            description=input.description,
            household_size=input.household_size,
            organization_id=input.organization_id or actor.organization_id,
            created_by=actor.user_id,
            **legacy_fields(RegistrationState.AWAITING_APPROVAL),
        )
        return await self._create(
            actor, registration, {"registration_number": registration.registration_number}
        )

    async def create_referral(self, actor: Actor, input: CreateReferralInput) -> Referral:
        referral = Referral(
            referral_number=generate_reference(REFERENCE_PREFIXES[EntityType.REFERRAL]),
            reason=require_reason(input.reason),
            client_name=input.client_name,
            category=input.category,
            priority=input.priority,
            case_id=input.case_id,
            notes=input.notes,
            referred_from=input.referred_from or "Internal",
            created_by=actor.user_id,
            **legacy_fields(ReferralState.UNASSIGNED),
        )
        return await self._create(actor, referral, {"referral_number": referral.referral_number})

    # =========================================================================
    # CASE / REGISTRATION APPROVAL
    # =========================================================================

    async def approve(
        self,
        actor: Actor,
        entity_type: EntityType,
        entity_id: UUID,
        expected_version: int | None = None,
    ) -> Case | Registration:
        """Approve a pending case or registration (idempotent)."""
        approved = APPROVED_STATES[entity_type]

        def plan(entity):
            if is_terminal(entity):
                raise EntityClosedError(f"{entity_type.value} {entity.id} is closed")
            if is_already_approved(entity):
                return None
            return {
                **legacy_fields(approved),
                "approved_by": actor.user_id,
                "approved_at": self._clock(),
                "rejection_reason": None,
            }

        return await self._apply(
            actor,
            entity_type,
            entity_id,
            Transition.APPROVE,
            plan,
            expected_version,
            is_replay=is_already_approved,
        )

    async def reject(
        self,
        actor: Actor,
        entity_type: EntityType,
        entity_id: UUID,
        reason: str,
        expected_version: int | None = None,
    ) -> Case | Registration:
        """Reject a pending case or registration with a mandatory reason."""
        rejected = REJECTED_STATES[entity_type]

        def plan(entity):
            clean_reason = require_reason(reason)
            if is_terminal(entity):
                raise EntityClosedError(f"{entity_type.value} {entity.id} is closed")
            state = state_of(entity)
            if state not in AWAITING_APPROVAL:
                raise InvalidStateTransitionError(
                    f"Cannot reject {entity_type.value} {entity.id} in state {state.value}"
                )
            return {
                **legacy_fields(rejected),
                "approved_by": actor.user_id,
                "approved_at": self._clock(),
                "rejection_reason": clean_reason,
            }

        return await self._apply(
            actor, entity_type, entity_id, Transition.REJECT, plan, expected_version,
            details={"reason": reason},
        )

    async def advance_status(
        self,
        actor: Actor,
        case_id: UUID,
        new_status: CaseStatus | str,
        expected_version: int | None = None,
    ) -> Case:
        """Move an approved case to in_progress or closed."""

        def plan(case):
            state = state_of(case)
            if is_terminal(case):
                raise EntityClosedError(f"case {case.id} is closed")
            try:
                target = ADVANCE_TARGETS[CaseStatus(new_status)]
            except (KeyError, ValueError):
                raise InvalidStateTransitionError(
                    f"Cannot advance case to status {new_status!r}"
                )
            if state not in ADVANCE_SOURCES:
                raise InvalidStateTransitionError(
                    f"Cannot advance case {case.id} from state {state.value}"
                )
            if target is state:
                return None
            return legacy_fields(target)

        return await self._apply(
            actor, EntityType.CASE, case_id, Transition.ADVANCE_STATUS, plan, expected_version,
            details={"new_status": str(getattr(new_status, "value", new_status))},
        )

    async def assign(
        self,
        actor: Actor,
        entity_type: EntityType,
        entity_id: UUID,
        target: AssignmentTarget,
        expected_version: int | None = None,
    ) -> Case | Registration:
        """Route a case or registration to a user or organization.

        Status and approval status are untouched.
        """
        if entity_type is EntityType.REFERRAL:
            raise InvalidStateTransitionError("Referrals are assigned with assign_referral")

        entity = await self._store.get(ENTITY_MODELS[entity_type], entity_id)
        self._gate.require(actor, entity, Transition.ASSIGN)
        if is_terminal(entity):
            raise EntityClosedError(f"{entity_type.value} {entity_id} is closed")
        assignee_name = await self._router.validate_assignee(target)

        def plan(current):
            if is_terminal(current):
                raise EntityClosedError(f"{entity_type.value} {entity_id} is closed")
            return {
                "assigned_to": str(target.target_id),
                "assigned_to_type": target.assignee_type,
                "assigned_at": self._clock(),
            }

        return await self._apply(
            actor, entity_type, entity_id, Transition.ASSIGN, plan, expected_version,
            details={
                "assigned_to": str(target.target_id),
                "assigned_to_type": target.assignee_type.value,
                "assignee_name": assignee_name,
            },
            preloaded=entity,
        )

    # =========================================================================
    # REFERRAL ROUTING
    # =========================================================================

    async def assign_referral(
        self,
        actor: Actor,
        referral_id: UUID,
        organization_id: UUID,
        expected_version: int | None = None,
    ) -> Referral:
        """Route (or re-route after a decline) a referral to an organization."""
        referral = await self._store.get(Referral, referral_id)
        self._gate.require(actor, referral, Transition.ASSIGN)
        organization = await self._router.validate_target(organization_id)

        def plan(current):
            state = state_of(current)
            if state not in (ReferralState.UNASSIGNED, ReferralState.AWAITING_RESPONSE) and not (
                state is ReferralState.DECLINED and current.can_be_reassigned
            ):
                raise InvalidStateTransitionError(
                    f"Cannot assign referral {current.id} in state {state.value}"
                )
            if (
                state is ReferralState.DECLINED
                and not self._settings.allow_reassign_to_declining_org
                and current.declined_by_organization_id == organization_id
            ):
                raise InvalidStateTransitionError(
                    "Referral cannot be routed back to the organization that declined it",
                    detail="same_organization",
                )
            return {
                **legacy_fields(ReferralState.AWAITING_RESPONSE),
                "assigned_organization_id": organization.id,
                "referred_to": organization.display_name,
                "assigned_by": actor.user_id,
                "assigned_at": self._clock(),
            }

        return await self._apply(
            actor, EntityType.REFERRAL, referral_id, Transition.ASSIGN, plan, expected_version,
            details={
                "organization_id": str(organization.id),
                "organization_name": organization.display_name,
                "previous_organization_id": (
                    str(referral.assigned_organization_id)
                    if referral.assigned_organization_id else None
                ),
            },
            preloaded=referral,
        )

    async def accept_referral(
        self,
        actor: Actor,
        referral_id: UUID,
        expected_version: int | None = None,
    ) -> Referral:
        """Assigned organization accepts the referral (idempotent)."""

        def plan(referral):
            if is_already_accepted(referral):
                return None
            state = state_of(referral)
            if state is not ReferralState.AWAITING_RESPONSE:
                raise InvalidStateTransitionError(
                    f"Cannot accept referral {referral.id} in state {state.value}"
                )
            return {
                **legacy_fields(ReferralState.ACCEPTED),
                "approved_by": actor.user_id,
                "approved_at": self._clock(),
            }

        return await self._apply(
            actor, EntityType.REFERRAL, referral_id, Transition.ACCEPT, plan, expected_version,
            is_replay=is_already_accepted,
        )

    async def decline_referral(
        self,
        actor: Actor,
        referral_id: UUID,
        reason: str,
        expected_version: int | None = None,
    ) -> Referral:
        """Assigned organization declines; the referral becomes reassignable."""

        def plan(referral):
            clean_reason = require_reason(reason)
            state = state_of(referral)
            if state is not ReferralState.AWAITING_RESPONSE:
                raise InvalidStateTransitionError(
                    f"Cannot decline referral {referral.id} in state {state.value}"
                )
            return {
                **legacy_fields(ReferralState.DECLINED),
                "decline_reason": clean_reason,
                "rejection_reason": clean_reason,
                "declined_by_organization_id": referral.assigned_organization_id,
                "approved_by": actor.user_id,
                "approved_at": self._clock(),
            }

        return await self._apply(
            actor, EntityType.REFERRAL, referral_id, Transition.DECLINE, plan, expected_version,
            details={"reason": reason},
        )

    async def complete_referral(
        self,
        actor: Actor,
        referral_id: UUID,
        expected_version: int | None = None,
    ) -> Referral:
        """Mark an accepted referral as completed."""

        def plan(referral):
            state = state_of(referral)
            if state is ReferralState.COMPLETED:
                raise EntityClosedError(f"referral {referral.id} is completed")
            if state is not ReferralState.ACCEPTED:
                raise InvalidStateTransitionError(
                    f"Cannot complete referral {referral.id} in state {state.value}"
                )
            return legacy_fields(ReferralState.COMPLETED)

        return await self._apply(
            actor, EntityType.REFERRAL, referral_id, Transition.COMPLETE, plan, expected_version,
        )

    # =========================================================================
    # EDIT / DELETE
    # =========================================================================

    async def edit(
        self,
        actor: Actor,
        entity_type: EntityType,
        entity_id: UUID,
        changes: dict[str, Any],
        expected_version: int | None = None,
    ) -> WorkflowEntity:
        """Update descriptive fields; status fields are never editable."""
        allowed = EDITABLE_FIELDS[entity_type]

        def plan(entity):
            unknown = set(changes) - allowed
            if unknown:
                raise ValidationFailedError(
                    f"Fields not editable: {sorted(unknown)}", detail=sorted(unknown)[0]
                )
            for field in REQUIRED_TEXT_FIELDS.intersection(changes):
                require_reason(changes[field], field)
            if is_terminal(entity):
                raise EntityClosedError(f"{entity_type.value} {entity.id} is closed")
            patch = {k: v for k, v in changes.items() if getattr(entity, k) != v}
            return patch or None

        return await self._apply(
            actor, entity_type, entity_id, Transition.EDIT, plan, expected_version,
            details={"fields": sorted(changes)},
        )

    async def delete(
        self,
        actor: Actor,
        entity_type: EntityType,
        entity_id: UUID,
        expected_version: int | None = None,
    ) -> None:
        model = ENTITY_MODELS[entity_type]
        entity = await self._store.get(model, entity_id)
        self._gate.require(actor, entity, Transition.DELETE)
        self._check_expected_version(entity, expected_version)

        await self._store.delete(model, entity_id, entity.version)
        await self._activity.record(
            actor=actor,
            action=Transition.DELETE.value,
            resource_type=entity_type.value,
            resource_id=entity_id,
        )
        logger.info(f"Deleted {entity_type.value} {entity_id} by {actor.user_id}")

    # =========================================================================
    # READS
    # =========================================================================

    async def get(self, actor: Actor, entity_type: EntityType, entity_id: UUID) -> WorkflowEntity:
        entity = await self._store.get(ENTITY_MODELS[entity_type], entity_id)
        self._gate.require_view(actor, entity)
        return entity

    async def list(
        self,
        actor: Actor,
        entity_type: EntityType,
        filters: EntityFilters | None = None,
        pagination: PaginationParams | None = None,
    ) -> tuple[Sequence[WorkflowEntity], int]:
        """List what ``actor`` may see; the actor's scope overrides filters."""
        filters = filters or EntityFilters()
        for key, value in self._gate.list_scope(actor).items():
            setattr(filters, key, value)
        return await self._store.list(ENTITY_MODELS[entity_type], filters, pagination)

    async def list_reassignable(
        self,
        actor: Actor,
        pagination: PaginationParams | None = None,
    ) -> tuple[Sequence[Referral], int]:
        """Declined referrals waiting to be routed again."""
        filters = EntityFilters(
            status=legacy_fields(ReferralState.DECLINED)["status"],
            can_be_reassigned=True,
        )
        return await self.list(actor, EntityType.REFERRAL, filters, pagination)

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    async def _create(
        self,
        actor: Actor,
        entity: WorkflowEntity,
        details: dict[str, Any],
    ) -> WorkflowEntity:
        self._gate.require(actor, entity, Transition.CREATE)
        await self._store.create(entity)
        entity_type = entity_type_of(entity)
        await self._activity.record(
            actor=actor,
            action=Transition.CREATE.value,
            resource_type=entity_type.value,
            resource_id=entity.id,
            details=details,
        )
        logger.info(f"Created {entity_type.value} {entity.id} by {actor.user_id}")
        return entity

    async def _apply(
        self,
        actor: Actor,
        entity_type: EntityType,
        entity_id: UUID,
        transition: Transition,
        plan: Plan,
        expected_version: int | None,
        is_replay: Callable[[Any], bool] | None = None,
        details: dict[str, Any] | None = None,
        preloaded: WorkflowEntity | None = None,
    ) -> WorkflowEntity:
        """Run one transition end to end; see the module docstring.

        ``is_replay`` marks idempotent transitions: a record it accepts is
        returned unchanged instead of raising a version conflict, whether
        the stale version came from the client or from a lost race.
        """
        model = ENTITY_MODELS[entity_type]
        if preloaded is None:
            entity = await self._store.get(model, entity_id)
            self._gate.require(actor, entity, transition)
        else:
            entity = preloaded
        if (
            is_replay is not None
            and expected_version is not None
            and entity.version != expected_version
            and is_replay(entity)
        ):
            logger.info(
                f"{transition.value} on {entity_type.value} {entity_id} replayed "
                f"at v{expected_version}; already in state {state_of(entity).value}"
            )
            return entity
        self._check_expected_version(entity, expected_version)

        previous_state = state_of(entity)
        patch = plan(entity)
        if patch is None:
            logger.info(
                f"{transition.value} on {entity_type.value} {entity_id} is a no-op "
                f"in state {previous_state.value}"
            )
            return entity

        try:
            updated = await self._store.update(model, entity_id, patch, entity.version)
        except ConflictError:
            if is_replay is None:
                raise
            current = await self._store.get(model, entity_id)
            if not is_replay(current):
                raise
            self._gate.require(actor, current, transition)
            logger.info(
                f"{transition.value} on {entity_type.value} {entity_id} lost a race "
                f"to a write that already satisfies it; returning current state"
            )
            return current

        await self._activity.record(
            actor=actor,
            action=transition.value,
            resource_type=entity_type.value,
            resource_id=entity_id,
            details={
                "from_state": previous_state.value,
                "to_state": state_of(updated).value,
                **(details or {}),
            },
        )
        logger.info(
            f"{transition.value} on {entity_type.value} {entity_id} by {actor.user_id}: "
            f"{previous_state.value} -> {state_of(updated).value} (v{updated.version})"
        )
        return updated

    @staticmethod
    def _check_expected_version(entity: WorkflowEntity, expected_version: int | None) -> None:
        if expected_version is not None and entity.version != expected_version:
            raise ConflictError(
                f"Version mismatch: expected v{expected_version}, "
                f"but current is v{entity.version}. "
                "The record was modified by another user."
            )
