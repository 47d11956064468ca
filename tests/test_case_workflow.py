"""
Tests for the Transition Engine on cases and registrations.

These tests verify:
1. APPROVE: pending -> approved, idempotent without re-stamping
2. REJECT: mandatory reason, rejected cases are closed
3. ADVANCE: approved -> in_progress -> closed, closed is terminal
4. ASSIGN: routing to users and organizations leaves status untouched
5. EDIT/DELETE: ownership rules and optimistic locking
"""

from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from casework.models import (
    ActivityLog,
    ApprovalStatus,
    AssigneeType,
    CaseStatus,
    Priority,
    RegistrationStatus,
)
from casework.services.errors import (
    ConflictError,
    EntityClosedError,
    EntityNotFoundError,
    InvalidStateTransitionError,
    NotAuthorizedError,
    NotOwnerError,
    OrganizationInactiveError,
    ValidationFailedError,
    WrongOrganizationError,
)
from casework.services.states import EntityType, OrganizationTarget, UserTarget
from casework.services.transition_engine import (
    CreateCaseInput,
    CreateRegistrationInput,
    TransitionEngine,
    generate_reference,
)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def engine(session: AsyncSession) -> TransitionEngine:
    return TransitionEngine(session)


@pytest.fixture
async def case(engine, field_officer, directory):
    return await engine.create_case(
        field_officer,
        CreateCaseInput(
            title="Shelter support for displaced household",
            category="Shelter",
            priority=Priority.HIGH,
            organization_id=directory.org_a.id,
        ),
    )


@pytest.fixture
async def registration(engine, field_officer):
    return await engine.create_registration(
        field_officer,
        CreateRegistrationInput(full_name="Amina Bello", household_size=5),
    )


# =============================================================================
# TEST: CREATE
# =============================================================================


class TestCreate:
    async def test_case_starts_open_and_pending(self, case, field_officer):
        assert case.status == CaseStatus.OPEN
        assert case.approval_status == ApprovalStatus.PENDING
        assert case.created_by == field_officer.user_id
        assert case.version == 1
        assert case.case_number.startswith("CASE-")

    async def test_blank_title_is_rejected(self, engine, field_officer):
        with pytest.raises(ValidationFailedError):
            await engine.create_case(field_officer, CreateCaseInput(title="   "))

    async def test_case_defaults_to_creator_organization(self, engine, org_a_actor):
        case = await engine.create_case(org_a_actor, CreateCaseInput(title="Walk-in"))
        assert case.organization_id == org_a_actor.organization_id

    async def test_registration_starts_pending(self, registration):
        assert registration.status == RegistrationStatus.PENDING
        assert registration.approval_status == ApprovalStatus.PENDING
        assert registration.registration_number.startswith("REG-")

    def test_reference_format(self):
        reference = generate_reference("CASE")
        prefix, millis, suffix = reference.split("-")
        assert prefix == "CASE"
        assert millis.isdigit() and len(millis) >= 13
        assert len(suffix) == 5
        assert suffix.isalnum() and suffix == suffix.upper()


# =============================================================================
# TEST: APPROVE
# =============================================================================


class TestApprove:
    async def test_approve_stamps_approver(self, engine, case, admin):
        approved = await engine.approve(admin, EntityType.CASE, case.id)

        assert approved.status == CaseStatus.APPROVED
        assert approved.approval_status == ApprovalStatus.APPROVED
        assert approved.approved_by == admin.user_id
        assert approved.approved_at is not None
        assert approved.rejection_reason is None
        assert approved.version == 2

    async def test_approve_is_idempotent(self, engine, case, admin, state_admin):
        first = await engine.approve(admin, EntityType.CASE, case.id)
        stamped_at = first.approved_at

        second = await engine.approve(state_admin, EntityType.CASE, case.id)

        assert second.approval_status == ApprovalStatus.APPROVED
        assert second.approved_by == admin.user_id
        assert second.approved_at == stamped_at
        assert second.version == 2

    async def test_organization_in_scope_may_approve(self, engine, case, org_a_actor):
        approved = await engine.approve(org_a_actor, EntityType.CASE, case.id)
        assert approved.approved_by == org_a_actor.user_id

    async def test_organization_out_of_scope_is_denied(self, engine, case, org_b_actor):
        with pytest.raises(WrongOrganizationError):
            await engine.approve(org_b_actor, EntityType.CASE, case.id)

    async def test_case_worker_cannot_approve(self, engine, case, case_worker):
        with pytest.raises(NotAuthorizedError):
            await engine.approve(case_worker, EntityType.CASE, case.id)

    async def test_authorization_checked_before_state(self, engine, case, admin, case_worker):
        await engine.reject(admin, EntityType.CASE, case.id, "Duplicate")
        with pytest.raises(NotAuthorizedError):
            await engine.approve(case_worker, EntityType.CASE, case.id)

    async def test_approve_registration(self, engine, registration, admin):
        approved = await engine.approve(admin, EntityType.REGISTRATION, registration.id)
        assert approved.status == RegistrationStatus.APPROVED
        assert approved.approval_status == ApprovalStatus.APPROVED

    async def test_unknown_id_is_not_found(self, engine, admin):
        with pytest.raises(EntityNotFoundError):
            await engine.approve(admin, EntityType.CASE, uuid4())

    async def test_stale_expected_version_conflicts(self, engine, case, admin):
        await engine.edit(admin, EntityType.CASE, case.id, {"title": "Renamed"})
        with pytest.raises(ConflictError):
            await engine.approve(admin, EntityType.CASE, case.id, expected_version=1)

    async def test_retry_with_same_version_is_a_no_op(self, engine, case, admin):
        first = await engine.approve(admin, EntityType.CASE, case.id, expected_version=1)
        retried = await engine.approve(admin, EntityType.CASE, case.id, expected_version=1)

        assert retried.approval_status == ApprovalStatus.APPROVED
        assert retried.approved_at == first.approved_at
        assert retried.version == 2

    async def test_retry_after_advance_is_a_no_op(self, engine, case, admin):
        await engine.approve(admin, EntityType.CASE, case.id, expected_version=1)
        await engine.advance_status(admin, case.id, CaseStatus.IN_PROGRESS)

        retried = await engine.approve(admin, EntityType.CASE, case.id, expected_version=1)
        assert retried.status == CaseStatus.IN_PROGRESS
        assert retried.version == 3

    async def test_retry_of_registration_approval(self, engine, registration, admin):
        await engine.approve(admin, EntityType.REGISTRATION, registration.id, expected_version=1)
        retried = await engine.approve(
            admin, EntityType.REGISTRATION, registration.id, expected_version=1
        )
        assert retried.status == RegistrationStatus.APPROVED
        assert retried.version == 2

    async def test_retry_after_rejection_still_conflicts(self, engine, registration, admin):
        await engine.reject(admin, EntityType.REGISTRATION, registration.id, "Duplicate")
        with pytest.raises(ConflictError):
            await engine.approve(admin, EntityType.REGISTRATION, registration.id, expected_version=1)


# =============================================================================
# TEST: REJECT
# =============================================================================


class TestReject:
    async def test_reject_closes_case(self, engine, case, admin):
        rejected = await engine.reject(admin, EntityType.CASE, case.id, "  Not eligible  ")

        assert rejected.status == CaseStatus.CLOSED
        assert rejected.approval_status == ApprovalStatus.REJECTED
        assert rejected.rejection_reason == "Not eligible"
        assert rejected.approved_by == admin.user_id

    @pytest.mark.parametrize("reason", ["", "   ", None])
    async def test_reason_is_mandatory(self, engine, case, admin, reason):
        with pytest.raises(ValidationFailedError):
            await engine.reject(admin, EntityType.CASE, case.id, reason)

        unchanged = await engine.get(admin, EntityType.CASE, case.id)
        assert unchanged.approval_status == ApprovalStatus.PENDING
        assert unchanged.version == 1

    async def test_reject_registration_keeps_rejected_status(self, engine, registration, admin):
        rejected = await engine.reject(
            admin, EntityType.REGISTRATION, registration.id, "Incomplete documents"
        )
        assert rejected.status == RegistrationStatus.REJECTED
        assert rejected.approval_status == ApprovalStatus.REJECTED

    async def test_cannot_reject_approved_case(self, engine, case, admin):
        await engine.approve(admin, EntityType.CASE, case.id)
        with pytest.raises(InvalidStateTransitionError):
            await engine.reject(admin, EntityType.CASE, case.id, "Changed my mind")

    async def test_rejected_registration_cannot_be_approved(self, engine, registration, admin):
        await engine.reject(admin, EntityType.REGISTRATION, registration.id, "Duplicate")
        with pytest.raises(EntityClosedError):
            await engine.approve(admin, EntityType.REGISTRATION, registration.id)


# =============================================================================
# TEST: ADVANCE STATUS
# =============================================================================


class TestAdvanceStatus:
    async def test_full_lifecycle(self, engine, case, admin):
        await engine.approve(admin, EntityType.CASE, case.id)

        in_progress = await engine.advance_status(admin, case.id, CaseStatus.IN_PROGRESS)
        assert in_progress.status == CaseStatus.IN_PROGRESS
        assert in_progress.approval_status == ApprovalStatus.APPROVED

        closed = await engine.advance_status(admin, case.id, "closed")
        assert closed.status == CaseStatus.CLOSED
        assert closed.approval_status == ApprovalStatus.APPROVED

    async def test_pending_case_cannot_advance(self, engine, case, admin):
        with pytest.raises(InvalidStateTransitionError):
            await engine.advance_status(admin, case.id, CaseStatus.IN_PROGRESS)

    async def test_invalid_target_status(self, engine, case, admin):
        await engine.approve(admin, EntityType.CASE, case.id)
        with pytest.raises(InvalidStateTransitionError):
            await engine.advance_status(admin, case.id, CaseStatus.OPEN)

    @pytest.mark.parametrize("target", [CaseStatus.IN_PROGRESS, CaseStatus.CLOSED, CaseStatus.APPROVED])
    async def test_closed_case_is_terminal(self, engine, case, admin, target):
        await engine.approve(admin, EntityType.CASE, case.id)
        await engine.advance_status(admin, case.id, CaseStatus.CLOSED)

        with pytest.raises(EntityClosedError) as exc_info:
            await engine.advance_status(admin, case.id, target)

        assert exc_info.value.code == "invalid_state_transition"
        assert exc_info.value.detail == "entity_closed"

    async def test_closed_case_cannot_be_approved_or_assigned(self, engine, case, admin, directory):
        await engine.reject(admin, EntityType.CASE, case.id, "Out of scope")

        with pytest.raises(EntityClosedError):
            await engine.approve(admin, EntityType.CASE, case.id)
        with pytest.raises(EntityClosedError):
            await engine.assign(
                admin, EntityType.CASE, case.id, OrganizationTarget(directory.org_b.id)
            )

    async def test_assigned_organization_may_advance(self, engine, case, admin, directory, org_b_actor):
        await engine.approve(admin, EntityType.CASE, case.id)
        await engine.assign(admin, EntityType.CASE, case.id, OrganizationTarget(directory.org_b.id))

        updated = await engine.advance_status(org_b_actor, case.id, CaseStatus.IN_PROGRESS)
        assert updated.status == CaseStatus.IN_PROGRESS


# =============================================================================
# TEST: ASSIGN
# =============================================================================


class TestAssign:
    async def test_assign_to_organization(self, engine, case, admin, directory):
        assigned = await engine.assign(
            admin, EntityType.CASE, case.id, OrganizationTarget(directory.org_b.id)
        )

        assert assigned.assigned_to == str(directory.org_b.id)
        assert assigned.assigned_to_type == AssigneeType.ORGANIZATION
        assert assigned.assigned_at is not None
        assert assigned.status == CaseStatus.OPEN
        assert assigned.approval_status == ApprovalStatus.PENDING

    async def test_assign_to_user(self, engine, registration, admin, directory):
        case_worker = directory.users["case_worker"]
        assigned = await engine.assign(
            admin, EntityType.REGISTRATION, registration.id, UserTarget(case_worker.id)
        )
        assert assigned.assigned_to == str(case_worker.id)
        assert assigned.assigned_to_type == AssigneeType.USER

    async def test_inactive_organization_is_refused(self, engine, case, admin, directory):
        with pytest.raises(OrganizationInactiveError):
            await engine.assign(
                admin, EntityType.CASE, case.id, OrganizationTarget(directory.org_inactive.id)
            )

    async def test_assignment_brings_case_into_org_scope(self, engine, case, admin, directory, org_b_actor):
        await engine.assign(admin, EntityType.CASE, case.id, OrganizationTarget(directory.org_b.id))
        approved = await engine.approve(org_b_actor, EntityType.CASE, case.id)
        assert approved.approved_by == org_b_actor.user_id


# =============================================================================
# TEST: EDIT / DELETE
# =============================================================================


class TestEditDelete:
    async def test_creator_may_edit(self, engine, case, field_officer):
        edited = await engine.edit(
            field_officer, EntityType.CASE, case.id, {"title": "Updated", "priority": "urgent"}
        )
        assert edited.title == "Updated"
        assert edited.priority == Priority.URGENT
        assert edited.version == 2

    async def test_status_fields_are_not_editable(self, engine, case, admin):
        with pytest.raises(ValidationFailedError) as exc_info:
            await engine.edit(admin, EntityType.CASE, case.id, {"status": "closed"})
        assert exc_info.value.detail == "status"

    async def test_non_owner_cannot_edit(self, engine, case, state_admin):
        with pytest.raises(NotOwnerError):
            await engine.edit(state_admin, EntityType.CASE, case.id, {"title": "Nope"})

    async def test_edit_with_stale_version_conflicts(self, engine, case, case_worker):
        await engine.edit(case_worker, EntityType.CASE, case.id, {"title": "First"})
        with pytest.raises(ConflictError):
            await engine.edit(
                case_worker, EntityType.CASE, case.id, {"title": "Second"}, expected_version=1
            )

    async def test_delete(self, engine, case, case_worker):
        await engine.delete(case_worker, EntityType.CASE, case.id)
        with pytest.raises(EntityNotFoundError):
            await engine.get(case_worker, EntityType.CASE, case.id)


class TestActivityLog:
    async def test_transitions_are_logged(self, engine, session, case, admin):
        await engine.approve(admin, EntityType.CASE, case.id)
        await engine.approve(admin, EntityType.CASE, case.id)
        await session.flush()

        result = await session.execute(
            select(ActivityLog)
            .where(ActivityLog.resource_id == case.id)
            .order_by(ActivityLog.created_at)
        )
        actions = [entry.action for entry in result.scalars().all()]

        # The idempotent replay writes nothing
        assert sorted(actions) == ["approve", "create"]
