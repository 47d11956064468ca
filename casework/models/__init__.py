"""SQLAlchemy ORM Models for Casework."""

from .base import Base, TimestampMixin, UUIDMixin, VersionedMixin
from .models import (
    # Enums
    ApprovalStatus,
    AssigneeType,
    CaseStatus,
    Priority,
    ReferralStatus,
    RegistrationStatus,
    UserRole,
    # Directory
    Organization,
    User,
    # Workflow entities
    Case,
    Referral,
    Registration,
    # Activity
    ActivityLog,
)

__all__ = [
    # Base
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "VersionedMixin",
    # Enums
    "ApprovalStatus",
    "AssigneeType",
    "CaseStatus",
    "Priority",
    "ReferralStatus",
    "RegistrationStatus",
    "UserRole",
    # Directory
    "Organization",
    "User",
    # Workflow entities
    "Case",
    "Referral",
    "Registration",
    # Activity
    "ActivityLog",
]
