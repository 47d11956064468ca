"""Typed workflow errors.

Every error carries a stable ``code`` that callers switch on; the message
is for developers only. All of these are recoverable by the caller.
"""


class WorkflowError(Exception):
    """Base exception for workflow operations."""

    code = "workflow_error"

    def __init__(self, message: str = "", detail: str | None = None):
        super().__init__(message or self.code)
        self.detail = detail


class NotAuthorizedError(WorkflowError):
    """Actor's role does not permit the transition."""

    code = "not_authorized"


class WrongOrganizationError(WorkflowError):
    """Organization actor acting on a record routed elsewhere."""

    code = "wrong_organization"


class NotOwnerError(WorkflowError):
    """Actor neither created the record nor holds an editing role."""

    code = "not_owner"


class InvalidStateTransitionError(WorkflowError):
    """Transition not allowed from the record's current state."""

    code = "invalid_state_transition"


class EntityClosedError(InvalidStateTransitionError):
    """Record is in a terminal state and accepts no further transitions."""

    def __init__(self, message: str = ""):
        super().__init__(message or "Entity is closed", detail="entity_closed")


class ValidationFailedError(WorkflowError):
    """A mandatory payload field is missing or blank."""

    code = "validation_failed"


class OrganizationInactiveError(WorkflowError):
    """Assignment target organization is not active."""

    code = "organization_inactive"


class EntityNotFoundError(WorkflowError):
    """Entity id does not resolve."""

    code = "not_found"


class ConflictError(WorkflowError):
    """A concurrent write committed first; re-read and retry."""

    code = "conflict"


DENIAL_ERRORS: dict[str, type[WorkflowError]] = {
    NotAuthorizedError.code: NotAuthorizedError,
    WrongOrganizationError.code: WrongOrganizationError,
    NotOwnerError.code: NotOwnerError,
}
