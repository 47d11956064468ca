"""Workflow services for Casework."""

from .activity import ActivityLogger
from .assignment_router import AssignmentRouter
from .authorization import Actor, AuthorizationDecision, AuthorizationGate
from .counters import DashboardCounters, DashboardStats
from .entity_store import EntityFilters, EntityStore
from .errors import (
    ConflictError,
    EntityClosedError,
    EntityNotFoundError,
    InvalidStateTransitionError,
    NotAuthorizedError,
    NotOwnerError,
    OrganizationInactiveError,
    ValidationFailedError,
    WorkflowError,
    WrongOrganizationError,
)
from .organizations import CreateOrganizationInput, OrganizationDirectory
from .states import (
    CaseState,
    EntityType,
    OrganizationTarget,
    ReferralState,
    RegistrationState,
    Transition,
    UserTarget,
    legacy_fields,
    state_of,
)
from .transition_engine import (
    CreateCaseInput,
    CreateReferralInput,
    CreateRegistrationInput,
    TransitionEngine,
)

__all__ = [
    # Authorization
    "Actor",
    "AuthorizationDecision",
    "AuthorizationGate",
    # Store & router
    "EntityFilters",
    "EntityStore",
    "AssignmentRouter",
    "OrganizationDirectory",
    "CreateOrganizationInput",
    # Transition Engine (primary)
    "TransitionEngine",
    "CreateCaseInput",
    "CreateRegistrationInput",
    "CreateReferralInput",
    # States
    "CaseState",
    "RegistrationState",
    "ReferralState",
    "EntityType",
    "Transition",
    "UserTarget",
    "OrganizationTarget",
    "legacy_fields",
    "state_of",
    # Read side
    "ActivityLogger",
    "DashboardCounters",
    "DashboardStats",
    # Errors
    "WorkflowError",
    "NotAuthorizedError",
    "WrongOrganizationError",
    "NotOwnerError",
    "InvalidStateTransitionError",
    "EntityClosedError",
    "ValidationFailedError",
    "OrganizationInactiveError",
    "EntityNotFoundError",
    "ConflictError",
]
