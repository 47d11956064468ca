"""Casework API Schemas.

Schemas are organized by domain:
- base: Common types, pagination, errors
- entities: Cases, Registrations, Referrals and transition requests
- organizations: Organizations, dashboard stats, activity
"""

from .base import (
    # Base classes
    CaseworkBaseModel,
    TimestampMixin,
    # Pagination
    PaginatedResponse,
    PaginationParams,
    # Errors
    ErrorDetail,
    ErrorResponse,
)
from .entities import (
    AdvanceStatusRequest,
    AssignRequest,
    CaseCreate,
    CaseResponse,
    CaseUpdate,
    ReasonRequest,
    ReferralAssignRequest,
    ReferralCreate,
    ReferralResponse,
    ReferralUpdate,
    RegistrationCreate,
    RegistrationResponse,
    RegistrationUpdate,
    VersionedRequest,
)
from .organizations import (
    ActivationRequest,
    ActivityLogResponse,
    DashboardStatsResponse,
    OrganizationCreate,
    OrganizationResponse,
)

__all__ = [
    # Base
    "CaseworkBaseModel",
    "TimestampMixin",
    "PaginatedResponse",
    "PaginationParams",
    "ErrorDetail",
    "ErrorResponse",
    # Entities
    "CaseCreate",
    "CaseUpdate",
    "CaseResponse",
    "RegistrationCreate",
    "RegistrationUpdate",
    "RegistrationResponse",
    "ReferralCreate",
    "ReferralUpdate",
    "ReferralResponse",
    # Transition requests
    "VersionedRequest",
    "ReasonRequest",
    "AssignRequest",
    "AdvanceStatusRequest",
    "ReferralAssignRequest",
    # Organizations, dashboard, activity
    "OrganizationCreate",
    "OrganizationResponse",
    "ActivationRequest",
    "DashboardStatsResponse",
    "ActivityLogResponse",
]
