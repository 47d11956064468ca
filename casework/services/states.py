"""
Lifecycle states for workflow entities.

Each entity type exposes two persisted fields, ``status`` and
``approval_status``, which dashboards and reports read directly. The
workflow itself reasons about exactly one lifecycle state per entity:
``state_of()`` derives it from a loaded row and ``legacy_fields()`` turns a
target state back into the full set of persisted fields. Transitions only
ever write through ``legacy_fields()``, so the two columns cannot drift.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union
from uuid import UUID

from ..models import (
    ApprovalStatus,
    AssigneeType,
    Case,
    CaseStatus,
    Referral,
    ReferralStatus,
    Registration,
    RegistrationStatus,
)

WorkflowEntity = Union[Case, Registration, Referral]


# =============================================================================
# TRANSITIONS
# =============================================================================


class Transition(str, Enum):
    CREATE = "create"
    APPROVE = "approve"
    REJECT = "reject"
    ADVANCE_STATUS = "advance_status"
    ASSIGN = "assign"
    ACCEPT = "accept"
    DECLINE = "decline"
    COMPLETE = "complete"
    EDIT = "edit"
    DELETE = "delete"


class EntityType(str, Enum):
    CASE = "case"
    REGISTRATION = "registration"
    REFERRAL = "referral"


ENTITY_MODELS: dict[EntityType, type] = {
    EntityType.CASE: Case,
    EntityType.REGISTRATION: Registration,
    EntityType.REFERRAL: Referral,
}


def entity_type_of(entity: WorkflowEntity) -> EntityType:
    if isinstance(entity, Case):
        return EntityType.CASE
    if isinstance(entity, Registration):
        return EntityType.REGISTRATION
    if isinstance(entity, Referral):
        return EntityType.REFERRAL
    raise TypeError(f"Not a workflow entity: {type(entity).__name__}")


# =============================================================================
# LIFECYCLE STATES
# =============================================================================


class CaseState(str, Enum):
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"
    REJECTED = "rejected"


class RegistrationState(str, Enum):
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReferralState(str, Enum):
    UNASSIGNED = "unassigned"
    AWAITING_RESPONSE = "awaiting_response"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    COMPLETED = "completed"


LifecycleState = Union[CaseState, RegistrationState, ReferralState]

_CASE_FIELDS: dict[CaseState, tuple[CaseStatus, ApprovalStatus]] = {
    CaseState.AWAITING_APPROVAL: (CaseStatus.OPEN, ApprovalStatus.PENDING),
    CaseState.APPROVED: (CaseStatus.APPROVED, ApprovalStatus.APPROVED),
    CaseState.IN_PROGRESS: (CaseStatus.IN_PROGRESS, ApprovalStatus.APPROVED),
    CaseState.CLOSED: (CaseStatus.CLOSED, ApprovalStatus.APPROVED),
    CaseState.REJECTED: (CaseStatus.CLOSED, ApprovalStatus.REJECTED),
}

_REGISTRATION_FIELDS: dict[RegistrationState, tuple[RegistrationStatus, ApprovalStatus]] = {
    RegistrationState.AWAITING_APPROVAL: (RegistrationStatus.PENDING, ApprovalStatus.PENDING),
    RegistrationState.APPROVED: (RegistrationStatus.APPROVED, ApprovalStatus.APPROVED),
    RegistrationState.REJECTED: (RegistrationStatus.REJECTED, ApprovalStatus.REJECTED),
}

_REFERRAL_FIELDS: dict[ReferralState, ReferralStatus] = {
    ReferralState.UNASSIGNED: ReferralStatus.PENDING,
    ReferralState.AWAITING_RESPONSE: ReferralStatus.PENDING,
    ReferralState.ACCEPTED: ReferralStatus.ACCEPTED,
    ReferralState.DECLINED: ReferralStatus.REJECTED,
    ReferralState.COMPLETED: ReferralStatus.COMPLETED,
}

TERMINAL_STATES: frozenset = frozenset({
    CaseState.CLOSED,
    CaseState.REJECTED,
    RegistrationState.REJECTED,
    ReferralState.COMPLETED,
})


def case_state(case: Case) -> CaseState:
    """Derive the lifecycle state of a case from its persisted fields."""
    if case.approval_status == ApprovalStatus.REJECTED:
        return CaseState.REJECTED
    if case.status == CaseStatus.CLOSED:
        return CaseState.CLOSED
    if case.approval_status == ApprovalStatus.PENDING:
        return CaseState.AWAITING_APPROVAL
    if case.status == CaseStatus.IN_PROGRESS:
        return CaseState.IN_PROGRESS
    return CaseState.APPROVED


def registration_state(registration: Registration) -> RegistrationState:
    if registration.approval_status == ApprovalStatus.REJECTED:
        return RegistrationState.REJECTED
    if registration.approval_status == ApprovalStatus.APPROVED:
        return RegistrationState.APPROVED
    return RegistrationState.AWAITING_APPROVAL


def referral_state(referral: Referral) -> ReferralState:
    if referral.status == ReferralStatus.ACCEPTED:
        return ReferralState.ACCEPTED
    if referral.status == ReferralStatus.REJECTED:
        return ReferralState.DECLINED
    if referral.status == ReferralStatus.COMPLETED:
        return ReferralState.COMPLETED
    if referral.assigned_organization_id is None:
        return ReferralState.UNASSIGNED
    return ReferralState.AWAITING_RESPONSE


def state_of(entity: WorkflowEntity) -> LifecycleState:
    """Lifecycle state of any workflow entity."""
    entity_type = entity_type_of(entity)
    if entity_type is EntityType.CASE:
        return case_state(entity)
    if entity_type is EntityType.REGISTRATION:
        return registration_state(entity)
    return referral_state(entity)


def is_terminal(entity: WorkflowEntity) -> bool:
    return state_of(entity) in TERMINAL_STATES


def legacy_fields(state: LifecycleState) -> dict[str, Any]:
    """Persisted status fields for a target lifecycle state."""
    if isinstance(state, CaseState):
        status, approval_status = _CASE_FIELDS[state]
        return {"status": status, "approval_status": approval_status}
    if isinstance(state, RegistrationState):
        status, approval_status = _REGISTRATION_FIELDS[state]
        return {"status": status, "approval_status": approval_status}
    status = _REFERRAL_FIELDS[state]
    return {
        "status": status,
        "approval_status": status,
        "can_be_reassigned": state is ReferralState.DECLINED,
    }


# Case status requested through advance_status -> target state
ADVANCE_TARGETS: dict[CaseStatus, CaseState] = {
    CaseStatus.IN_PROGRESS: CaseState.IN_PROGRESS,
    CaseStatus.CLOSED: CaseState.CLOSED,
}
ADVANCE_SOURCES: frozenset = frozenset({CaseState.APPROVED, CaseState.IN_PROGRESS})


# =============================================================================
# ASSIGNMENT TARGETS
# =============================================================================


@dataclass(frozen=True)
class UserTarget:
    """Assignment to an individual user."""
    user_id: UUID

    @property
    def assignee_type(self) -> AssigneeType:
        return AssigneeType.USER

    @property
    def target_id(self) -> UUID:
        return self.user_id


@dataclass(frozen=True)
class OrganizationTarget:
    """Assignment to a service-provider organization."""
    organization_id: UUID

    @property
    def assignee_type(self) -> AssigneeType:
        return AssigneeType.ORGANIZATION

    @property
    def target_id(self) -> UUID:
        return self.organization_id


AssignmentTarget = Union[UserTarget, OrganizationTarget]


def make_target(target_type: AssigneeType | str, target_id: UUID) -> AssignmentTarget:
    """Resolve a (type, id) pair into a tagged assignment target."""
    if AssigneeType(target_type) is AssigneeType.ORGANIZATION:
        return OrganizationTarget(organization_id=target_id)
    return UserTarget(user_id=target_id)


def assigned_target(entity: Case | Registration) -> AssignmentTarget | None:
    """Read back the stored assignment of a case or registration."""
    if not entity.assigned_to or entity.assigned_to_type is None:
        return None
    return make_target(entity.assigned_to_type, UUID(entity.assigned_to))
