"""Pydantic schemas for Organizations, dashboard stats and activity."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import EmailStr, Field, field_validator

from .base import CaseworkBaseModel


# =============================================================================
# ORGANIZATION SCHEMAS
# =============================================================================


class OrganizationCreate(CaseworkBaseModel):
    """Register a new service-provider organization."""

    name: str = Field(..., max_length=255)
    organization_type: str | None = Field(default=None, max_length=100)
    contact_email: EmailStr | None = None
    sectors_provided: list[str] = Field(default_factory=list, max_length=50)
    locations_covered: list[str] = Field(default_factory=list, max_length=50)
    is_active: bool = True

    @field_validator("sectors_provided", "locations_covered")
    @classmethod
    def strip_tags(cls, v: list[str]) -> list[str]:
        return [tag.strip() for tag in v if tag.strip()]


class OrganizationResponse(CaseworkBaseModel):
    """Full organization response."""

    id: UUID
    slug: str
    name: str
    organization_type: str | None = None
    contact_email: str | None = None
    is_active: bool
    sectors_provided: list[str] = Field(default_factory=list)
    locations_covered: list[str] = Field(default_factory=list)
    created_at: datetime


class ActivationRequest(CaseworkBaseModel):
    is_active: bool


# =============================================================================
# DASHBOARD & ACTIVITY SCHEMAS
# =============================================================================


class DashboardStatsResponse(CaseworkBaseModel):
    """Dashboard counters; scoped to the caller unless central authority."""

    total_cases: int
    total_registrations: int
    total_referrals: int
    open_cases: int = Field(..., description="Cases with status open, approved or in_progress")
    urgent_cases: int
    pending_referrals: int
    reassignable_referrals: int
    cases_by_status: dict[str, int]
    cases_by_approval_status: dict[str, int]
    registrations_by_status: dict[str, int]
    registrations_by_approval_status: dict[str, int]
    referrals_by_status: dict[str, int]
    referrals_by_approval_status: dict[str, int]


class ActivityLogResponse(CaseworkBaseModel):
    id: UUID
    user_id: UUID | None = None
    action: str
    resource_type: str
    resource_id: UUID | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
