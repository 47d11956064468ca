"""
Tests for lifecycle state derivation.

The persisted status/approval_status pair must round-trip through a single
lifecycle state in both directions.
"""

from uuid import uuid4

import pytest

from casework.models import (
    ApprovalStatus,
    AssigneeType,
    Case,
    CaseStatus,
    Referral,
    ReferralStatus,
    Registration,
    RegistrationStatus,
)
from casework.services.states import (
    CaseState,
    OrganizationTarget,
    ReferralState,
    RegistrationState,
    UserTarget,
    assigned_target,
    is_terminal,
    legacy_fields,
    make_target,
    state_of,
)


class TestCaseState:
    @pytest.mark.parametrize("state", list(CaseState))
    def test_legacy_fields_derive_back_to_same_state(self, state):
        case = Case(**legacy_fields(state))
        assert state_of(case) is state

    def test_rejected_case_is_closed(self):
        fields = legacy_fields(CaseState.REJECTED)
        assert fields["status"] == CaseStatus.CLOSED
        assert fields["approval_status"] == ApprovalStatus.REJECTED

    def test_legacy_pending_status_is_awaiting_approval(self):
        """Rows written with status 'pending' by older clients still derive."""
        case = Case(status=CaseStatus.PENDING, approval_status=ApprovalStatus.PENDING)
        assert state_of(case) is CaseState.AWAITING_APPROVAL

    def test_terminal_states(self):
        assert is_terminal(Case(**legacy_fields(CaseState.CLOSED)))
        assert is_terminal(Case(**legacy_fields(CaseState.REJECTED)))
        assert not is_terminal(Case(**legacy_fields(CaseState.IN_PROGRESS)))


class TestRegistrationState:
    @pytest.mark.parametrize("state", list(RegistrationState))
    def test_legacy_fields_derive_back_to_same_state(self, state):
        registration = Registration(**legacy_fields(state))
        assert state_of(registration) is state

    def test_rejected_registration_keeps_rejected_status(self):
        fields = legacy_fields(RegistrationState.REJECTED)
        assert fields["status"] == RegistrationStatus.REJECTED


class TestReferralState:
    def test_pending_without_organization_is_unassigned(self):
        referral = Referral(**legacy_fields(ReferralState.UNASSIGNED))
        assert state_of(referral) is ReferralState.UNASSIGNED

    def test_pending_with_organization_awaits_response(self):
        referral = Referral(
            assigned_organization_id=uuid4(),
            **legacy_fields(ReferralState.AWAITING_RESPONSE),
        )
        assert state_of(referral) is ReferralState.AWAITING_RESPONSE

    def test_declined_is_reassignable(self):
        fields = legacy_fields(ReferralState.DECLINED)
        assert fields["status"] == ReferralStatus.REJECTED
        assert fields["approval_status"] == ReferralStatus.REJECTED
        assert fields["can_be_reassigned"] is True

    @pytest.mark.parametrize(
        "state",
        [ReferralState.AWAITING_RESPONSE, ReferralState.ACCEPTED, ReferralState.COMPLETED],
    )
    def test_only_declined_sets_reassignable(self, state):
        assert legacy_fields(state)["can_be_reassigned"] is False

    def test_completed_is_terminal(self):
        referral = Referral(
            assigned_organization_id=uuid4(),
            **legacy_fields(ReferralState.COMPLETED),
        )
        assert is_terminal(referral)


class TestAssignmentTargets:
    def test_make_target_resolves_tag(self):
        target_id = uuid4()
        assert make_target("organization", target_id) == OrganizationTarget(target_id)
        assert make_target(AssigneeType.USER, target_id) == UserTarget(target_id)

    def test_assigned_target_reads_back_persisted_pair(self):
        org_id = uuid4()
        case = Case(assigned_to=str(org_id), assigned_to_type=AssigneeType.ORGANIZATION)
        assert assigned_target(case) == OrganizationTarget(org_id)

    def test_unassigned_record_has_no_target(self):
        assert assigned_target(Case()) is None
