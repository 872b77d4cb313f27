"""Tests for the schedule approval WorkflowGuard."""
from __future__ import annotations

import pytest

from ops_authz.directory.users import InMemoryUserDirectory
from ops_authz.errors import (
    AccessDenied,
    InvalidTransition,
    RejectionReasonRequired,
    TransitionDenied,
    UserNotFound,
)
from ops_authz.matrix.loader import MatrixLoader
from ops_authz.matrix.store import InMemoryMatrixStore
from ops_authz.resolver.resolver import PermissionResolver
from ops_authz.templates.default_matrix import get_template
from ops_authz.workflow.guard import WorkflowGuard
from ops_authz.workflow.schedule import Schedule, ScheduleStatus, ScheduleTransition

ADMIN, LEADER, EMPLOYEE, OTHER_TEAM_EMPLOYEE = 1, 2, 3, 4


@pytest.fixture()
def guard() -> WorkflowGuard:
    document = MatrixLoader().load_from_yaml_string(get_template("default"))
    resolver = PermissionResolver(
        InMemoryUserDirectory(document.users),
        document.catalog,
        InMemoryMatrixStore(document.permissions),
    )
    return WorkflowGuard(resolver)


@pytest.fixture()
def schedule() -> Schedule:
    return Schedule(schedule_id=100, owner_user_id=EMPLOYEE, team_id=10)


def _approved(guard: WorkflowGuard, schedule: Schedule) -> Schedule:
    guard.submit(schedule, EMPLOYEE)
    return guard.approve(schedule, ADMIN)


# ---------------------------------------------------------------------------
# Schedule record
# ---------------------------------------------------------------------------


class TestSchedule:
    def test_defaults_to_draft(self, schedule: Schedule) -> None:
        assert schedule.status is ScheduleStatus.DRAFT
        assert schedule.history == []

    def test_context(self, schedule: Schedule) -> None:
        context = schedule.context()
        assert (context.owner_id, context.team_id) == (EMPLOYEE, 10)

    def test_to_dict(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        guard.submit(schedule, EMPLOYEE)
        data = schedule.to_dict()
        assert data["status"] == "pending_approval"
        assert data["history"][0]["transition"] == "submit"


# ---------------------------------------------------------------------------
# Submit
# ---------------------------------------------------------------------------


class TestSubmit:
    def test_owner_submits_own_draft(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        guard.submit(schedule, EMPLOYEE)
        assert schedule.status is ScheduleStatus.PENDING_APPROVAL

    def test_other_employee_cannot_submit(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        with pytest.raises(TransitionDenied):
            guard.submit(schedule, OTHER_TEAM_EMPLOYEE)
        assert schedule.status is ScheduleStatus.DRAFT
        assert schedule.history == []

    def test_team_leader_submits_for_team_member(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        guard.submit(schedule, LEADER)
        assert schedule.status is ScheduleStatus.PENDING_APPROVAL

    def test_team_leader_cannot_submit_for_other_team(self, guard: WorkflowGuard) -> None:
        schedule = Schedule(schedule_id=101, owner_user_id=OTHER_TEAM_EMPLOYEE, team_id=20)
        with pytest.raises(TransitionDenied):
            guard.submit(schedule, LEADER)

    def test_cannot_submit_pending(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        guard.submit(schedule, EMPLOYEE)
        with pytest.raises(InvalidTransition) as exc_info:
            guard.submit(schedule, EMPLOYEE)
        assert exc_info.value.current == "pending_approval"

    def test_cannot_submit_approved(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        _approved(guard, schedule)
        with pytest.raises(InvalidTransition):
            guard.submit(schedule, ADMIN)

    def test_unknown_actor(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        with pytest.raises(UserNotFound):
            guard.submit(schedule, 999)


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


class TestReview:
    def test_admin_approves(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        _approved(guard, schedule)
        assert schedule.status is ScheduleStatus.APPROVED
        assert schedule.reviewed_by == ADMIN
        assert schedule.reviewed_at is not None

    def test_approve_requires_grant(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        guard.submit(schedule, EMPLOYEE)
        with pytest.raises(TransitionDenied) as exc_info:
            guard.approve(schedule, LEADER)
        assert exc_info.value.decision.action == "approve"
        assert schedule.status is ScheduleStatus.PENDING_APPROVAL

    def test_transition_denied_is_access_denied(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        guard.submit(schedule, EMPLOYEE)
        with pytest.raises(AccessDenied):
            guard.reject(schedule, EMPLOYEE, "no")

    def test_cannot_approve_draft(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        with pytest.raises(InvalidTransition):
            guard.approve(schedule, ADMIN)

    def test_reject_with_reason(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        guard.submit(schedule, EMPLOYEE)
        guard.reject(schedule, ADMIN, "  Overlaps the holiday rota.  ")
        assert schedule.status is ScheduleStatus.REJECTED
        assert schedule.rejection_reason == "Overlaps the holiday rota."
        assert schedule.history[-1].reason == "Overlaps the holiday rota."

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reject_requires_reason(
        self, guard: WorkflowGuard, schedule: Schedule, reason: str | None
    ) -> None:
        guard.submit(schedule, EMPLOYEE)
        with pytest.raises(RejectionReasonRequired):
            guard.reject(schedule, ADMIN, reason)  # type: ignore[arg-type]
        assert schedule.status is ScheduleStatus.PENDING_APPROVAL


# ---------------------------------------------------------------------------
# Revision and resubmission
# ---------------------------------------------------------------------------


class TestRevision:
    def test_revise_then_resubmit(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        guard.submit(schedule, EMPLOYEE)
        guard.reject(schedule, ADMIN, "Missing shifts")
        guard.revise(schedule, EMPLOYEE)
        assert schedule.status is ScheduleStatus.DRAFT
        guard.submit(schedule, EMPLOYEE)
        assert schedule.status is ScheduleStatus.PENDING_APPROVAL
        assert schedule.rejection_reason is None

    def test_direct_resubmission_from_rejected(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        guard.submit(schedule, EMPLOYEE)
        guard.reject(schedule, ADMIN, "Missing shifts")
        guard.submit(schedule, EMPLOYEE)
        assert schedule.status is ScheduleStatus.PENDING_APPROVAL

    def test_revise_only_from_rejected(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        with pytest.raises(InvalidTransition):
            guard.revise(schedule, EMPLOYEE)

    def test_revise_requires_edit_grant(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        guard.submit(schedule, EMPLOYEE)
        guard.reject(schedule, ADMIN, "Missing shifts")
        with pytest.raises(TransitionDenied):
            guard.revise(schedule, OTHER_TEAM_EMPLOYEE)

    def test_history_records_every_transition(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        guard.submit(schedule, EMPLOYEE)
        guard.reject(schedule, ADMIN, "Missing shifts")
        guard.revise(schedule, EMPLOYEE)
        guard.submit(schedule, EMPLOYEE)
        guard.approve(schedule, ADMIN)
        assert [h.transition for h in schedule.history] == [
            ScheduleTransition.SUBMIT,
            ScheduleTransition.REJECT,
            ScheduleTransition.REVISE,
            ScheduleTransition.SUBMIT,
            ScheduleTransition.APPROVE,
        ]
        assert schedule.history[1].from_status is ScheduleStatus.PENDING_APPROVAL
        assert schedule.history[1].to_status is ScheduleStatus.REJECTED
        assert [h.actor_user_id for h in schedule.history] == [EMPLOYEE, ADMIN, EMPLOYEE, EMPLOYEE, ADMIN]


# ---------------------------------------------------------------------------
# Edit authorization
# ---------------------------------------------------------------------------


class TestEditAuthorization:
    def test_owner_may_update_draft(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        assert guard.authorize_update(schedule, EMPLOYEE)

    def test_owner_update_denied_after_approval(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        _approved(guard, schedule)
        decision = guard.authorize_update(schedule, EMPLOYEE)
        assert not decision
        assert "top-level" in decision.reason

    def test_team_leader_update_denied_after_approval(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        assert guard.authorize_update(schedule, LEADER)
        _approved(guard, schedule)
        assert not guard.authorize_update(schedule, LEADER)

    def test_admin_may_update_approved(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        _approved(guard, schedule)
        assert guard.authorize_update(schedule, ADMIN)

    def test_matrix_check_still_applies(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        assert not guard.authorize_update(schedule, OTHER_TEAM_EMPLOYEE)

    def test_admin_delete_approved_denied(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        _approved(guard, schedule)
        decision = guard.authorize_delete(schedule, ADMIN)
        assert not decision
        assert "cannot be deleted" in decision.reason

    def test_admin_may_delete_draft(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        assert guard.authorize_delete(schedule, ADMIN)

    def test_employee_delete_uses_matrix(self, guard: WorkflowGuard, schedule: Schedule) -> None:
        assert not guard.authorize_delete(schedule, EMPLOYEE)
