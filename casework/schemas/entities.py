"""Pydantic schemas for Case, Registration and Referral entities."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from ..models import (
    ApprovalStatus,
    AssigneeType,
    CaseStatus,
    Priority,
    ReferralStatus,
    RegistrationStatus,
)
from .base import CaseworkBaseModel, TimestampMixin


class VersionedRequest(CaseworkBaseModel):
    """Optional optimistic-concurrency token echoed back by clients."""

    expected_version: int | None = Field(
        default=None,
        ge=1,
        description="Version the client last read; the write fails with 409 if it moved on",
    )


# =============================================================================
# CASE SCHEMAS
# =============================================================================


class CaseCreate(CaseworkBaseModel):
    """Schema for opening a new case."""

    title: str = Field(..., max_length=255)
    description: str | None = None
    category: str | None = Field(default=None, max_length=100)
    priority: Priority = Priority.MEDIUM
    organization_id: UUID | None = Field(
        default=None,
        description="Owning organization; defaults to the creator's organization",
    )


class CaseUpdate(VersionedRequest):
    """Editable case fields. Status fields change only through transitions."""

    title: str | None = Field(default=None, max_length=255)
    description: str | None = None
    category: str | None = Field(default=None, max_length=100)
    priority: Priority | None = None


class CaseResponse(TimestampMixin, CaseworkBaseModel):
    """Full case response."""

    id: UUID
    case_number: str
    title: str
    description: str | None = None
    category: str | None = None
    priority: Priority
    status: CaseStatus
    approval_status: ApprovalStatus
    assigned_to: str | None = None
    assigned_to_type: AssigneeType | None = None
    assigned_at: datetime | None = None
    organization_id: UUID | None = None
    created_by: UUID
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    version: int


# =============================================================================
# REGISTRATION SCHEMAS
# =============================================================================


class RegistrationCreate(CaseworkBaseModel):
    """Schema for a new beneficiary registration."""

    full_name: str = Field(..., max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    category: str | None = Field(default=None, max_length=100)
    description: str | None = None
    household_size: int | None = Field(default=None, ge=1)
    organization_id: UUID | None = None


class RegistrationUpdate(VersionedRequest):
    full_name: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    category: str | None = Field(default=None, max_length=100)
    description: str | None = None
    household_size: int | None = Field(default=None, ge=1)


class RegistrationResponse(TimestampMixin, CaseworkBaseModel):
    """Full registration response."""

    id: UUID
    registration_number: str
    full_name: str
    phone: str | None = None
    category: str | None = None
    description: str | None = None
    household_size: int | None = None
    status: RegistrationStatus
    approval_status: ApprovalStatus
    assigned_to: str | None = None
    assigned_to_type: AssigneeType | None = None
    assigned_at: datetime | None = None
    organization_id: UUID | None = None
    created_by: UUID
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    version: int


# =============================================================================
# REFERRAL SCHEMAS
# =============================================================================


class ReferralCreate(CaseworkBaseModel):
    """Schema for raising a referral (routed later by a central authority)."""

    reason: str
    client_name: str | None = Field(default=None, max_length=255)
    category: str | None = Field(default=None, max_length=100)
    priority: Priority = Priority.MEDIUM
    case_id: UUID | None = None
    notes: str | None = None
    referred_from: str = Field(default="Internal", max_length=255)


class ReferralUpdate(VersionedRequest):
    reason: str | None = None
    client_name: str | None = Field(default=None, max_length=255)
    category: str | None = Field(default=None, max_length=100)
    priority: Priority | None = None
    case_id: UUID | None = None
    notes: str | None = None


class ReferralResponse(TimestampMixin, CaseworkBaseModel):
    """Full referral response, including routing history fields."""

    id: UUID
    referral_number: str
    case_id: UUID | None = None
    client_name: str | None = None
    category: str | None = None
    priority: Priority
    reason: str
    notes: str | None = None
    referred_from: str | None = None
    status: ReferralStatus
    approval_status: ReferralStatus
    assigned_organization_id: UUID | None = None
    referred_to: str | None = None
    assigned_by: UUID | None = None
    assigned_at: datetime | None = None
    can_be_reassigned: bool
    decline_reason: str | None = None
    rejection_reason: str | None = None
    declined_by_organization_id: UUID | None = None
    created_by: UUID
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    version: int


# =============================================================================
# TRANSITION REQUESTS
# =============================================================================


class ReasonRequest(VersionedRequest):
    """Body for reject and decline; a blank reason is refused by the workflow."""

    reason: str = ""


class AssignRequest(VersionedRequest):
    """Assign a case or registration to a user or an organization."""

    assigned_to: UUID
    assigned_to_type: AssigneeType


class AdvanceStatusRequest(VersionedRequest):
    status: CaseStatus


class ReferralAssignRequest(VersionedRequest):
    organization_id: UUID
