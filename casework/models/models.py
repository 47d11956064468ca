"""SQLAlchemy ORM Models for the casework workflow.

Persisted column names and enum literals are read directly by dashboards
and reports, so they are kept stable even where the workflow itself
reasons in terms of a single lifecycle state (see services/states.py).
"""

from datetime import datetime
from enum import Enum as PyEnum
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDMixin, VersionedMixin, utcnow

# JSONB on PostgreSQL, plain JSON elsewhere
TagList = JSON().with_variant(JSONB(), "postgresql")


def _enum(enum_cls: type[PyEnum], name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda x: [e.value for e in x])


# =============================================================================
# ENUMS
# =============================================================================


class UserRole(str, PyEnum):
    ADMIN = "admin"
    STATE_ADMIN = "state_admin"
    CASE_WORKER = "case_worker"
    FIELD_OFFICER = "field_officer"
    VIEWER = "viewer"
    ORGANIZATION = "organization"
    MANAGER = "manager"


class Priority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class CaseStatus(str, PyEnum):
    OPEN = "open"
    PENDING = "pending"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"


class ApprovalStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RegistrationStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReferralStatus(str, PyEnum):
    """Used for both Referral.status and its mirrored approval_status."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"


class AssigneeType(str, PyEnum):
    USER = "user"
    ORGANIZATION = "organization"


# =============================================================================
# ORGANIZATION & USER MODELS
# =============================================================================


class Organization(Base, UUIDMixin, TimestampMixin):
    """Service-provider organization (assignment target)."""

    __tablename__ = "organizations"

    slug: Mapped[str] = mapped_column(String(63), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    organization_type: Mapped[str | None] = mapped_column(String(100))
    contact_email: Mapped[str | None] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sectors_provided: Mapped[list[str]] = mapped_column(TagList, default=list)
    locations_covered: Mapped[list[str]] = mapped_column(TagList, default=list)
    created_by: Mapped[UUID | None] = mapped_column()

    __table_args__ = (
        Index("idx_organizations_active", "is_active"),
    )

    @property
    def display_name(self) -> str:
        return self.name


class User(Base, UUIDMixin, TimestampMixin):
    """Application user; the identity behind every workflow actor."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        _enum(UserRole, "user_role"), default=UserRole.VIEWER, nullable=False
    )
    organization_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("organizations.id")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("idx_users_organization", "organization_id"),
    )


# =============================================================================
# WORKFLOW ENTITIES
# =============================================================================


class Case(Base, UUIDMixin, TimestampMixin, VersionedMixin):
    """A case raised for a beneficiary, approved by a central authority."""

    __tablename__ = "cases"

    case_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(String(100))
    priority: Mapped[Priority] = mapped_column(
        _enum(Priority, "priority"), default=Priority.MEDIUM, nullable=False
    )
    status: Mapped[CaseStatus] = mapped_column(
        _enum(CaseStatus, "case_status"), default=CaseStatus.OPEN, nullable=False
    )
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        _enum(ApprovalStatus, "approval_status"),
        default=ApprovalStatus.PENDING,
        nullable=False,
    )

    # Assignment (user id or organization id, tagged by assigned_to_type)
    assigned_to: Mapped[str | None] = mapped_column(String(255))
    assigned_to_type: Mapped[AssigneeType | None] = mapped_column(
        _enum(AssigneeType, "assignee_type")
    )
    assigned_at: Mapped[datetime | None] = mapped_column()

    organization_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("organizations.id"),
        comment="Owning organization scope",
    )
    created_by: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    approved_by: Mapped[UUID | None] = mapped_column(ForeignKey("users.id"))
    approved_at: Mapped[datetime | None] = mapped_column()
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        Index("idx_cases_status", "status"),
        Index("idx_cases_approval_status", "approval_status"),
        Index("idx_cases_created_by", "created_by"),
        Index("idx_cases_priority", "priority"),
    )


class Registration(Base, UUIDMixin, TimestampMixin, VersionedMixin):
    """A beneficiary registration; parallel lifecycle to Case without closure."""

    __tablename__ = "registrations"

    registration_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50))
    category: Mapped[str | None] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text)
    household_size: Mapped[int | None] = mapped_column()
    status: Mapped[RegistrationStatus] = mapped_column(
        _enum(RegistrationStatus, "registration_status"),
        default=RegistrationStatus.PENDING,
        nullable=False,
    )
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        _enum(ApprovalStatus, "approval_status"),
        default=ApprovalStatus.PENDING,
        nullable=False,
    )

    assigned_to: Mapped[str | None] = mapped_column(String(255))
    assigned_to_type: Mapped[AssigneeType | None] = mapped_column(
        _enum(AssigneeType, "assignee_type")
    )
    assigned_at: Mapped[datetime | None] = mapped_column()

    organization_id: Mapped[UUID | None] = mapped_column(ForeignKey("organizations.id"))
    created_by: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    approved_by: Mapped[UUID | None] = mapped_column(ForeignKey("users.id"))
    approved_at: Mapped[datetime | None] = mapped_column()
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        Index("idx_registrations_status", "status"),
        Index("idx_registrations_created_by", "created_by"),
    )


class Referral(Base, UUIDMixin, TimestampMixin, VersionedMixin):
    """A referral routed by a central authority to a service provider."""

    __tablename__ = "referrals"

    referral_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    case_id: Mapped[UUID | None] = mapped_column(ForeignKey("cases.id"))
    client_name: Mapped[str | None] = mapped_column(String(255))
    category: Mapped[str | None] = mapped_column(String(100))
    priority: Mapped[Priority] = mapped_column(
        _enum(Priority, "priority"), default=Priority.MEDIUM, nullable=False
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    referred_from: Mapped[str] = mapped_column(String(255), default="Internal")

    status: Mapped[ReferralStatus] = mapped_column(
        _enum(ReferralStatus, "referral_status"),
        default=ReferralStatus.PENDING,
        nullable=False,
    )
    approval_status: Mapped[ReferralStatus] = mapped_column(
        _enum(ReferralStatus, "referral_status"),
        default=ReferralStatus.PENDING,
        nullable=False,
    )

    # Routing
    assigned_organization_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("organizations.id")
    )
    referred_to: Mapped[str | None] = mapped_column(
        String(255), comment="Display name of the assigned organization"
    )
    assigned_by: Mapped[UUID | None] = mapped_column(ForeignKey("users.id"))
    assigned_at: Mapped[datetime | None] = mapped_column()
    can_be_reassigned: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    decline_reason: Mapped[str | None] = mapped_column(Text)
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    declined_by_organization_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("organizations.id")
    )

    created_by: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    approved_by: Mapped[UUID | None] = mapped_column(ForeignKey("users.id"))
    approved_at: Mapped[datetime | None] = mapped_column()

    __table_args__ = (
        Index("idx_referrals_status", "status"),
        Index("idx_referrals_assigned_org", "assigned_organization_id"),
        Index("idx_referrals_created_by", "created_by"),
    )


# =============================================================================
# ACTIVITY LOG
# =============================================================================


class ActivityLog(Base, UUIDMixin):
    """Append-only record of committed workflow actions."""

    __tablename__ = "activity_logs"

    user_id: Mapped[UUID | None] = mapped_column(ForeignKey("users.id"))
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[UUID | None] = mapped_column()
    details: Mapped[dict] = mapped_column(TagList, default=dict)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_activity_logs_user", "user_id"),
        Index("idx_activity_logs_created_at", "created_at"),
    )
