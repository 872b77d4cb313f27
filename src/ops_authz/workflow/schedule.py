"""Schedule records for the approval state machine.

A schedule moves ``draft -> pending_approval -> approved | rejected``.
A rejected schedule may be revised back to ``draft`` or resubmitted
directly; ``approved`` is terminal.  The state itself lives here; who may
move it is decided by :class:`~ops_authz.workflow.guard.WorkflowGuard`.

Example
-------
>>> schedule = Schedule(schedule_id=1, owner_user_id=7, team_id=3)
>>> schedule.status
<ScheduleStatus.DRAFT: 'draft'>
>>> schedule.context()
ResourceContext(owner_id=7, team_id=3)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ops_authz.resolver.scope import ResourceContext


class ScheduleStatus(str, Enum):
    """Lifecycle states for a schedule."""

    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class ScheduleTransition(str, Enum):
    """Named moves between :class:`ScheduleStatus` values."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    REVISE = "revise"


# Allowed source states per transition, and the state each one lands in.
TRANSITIONS: dict[ScheduleTransition, tuple[frozenset[ScheduleStatus], ScheduleStatus]] = {
    ScheduleTransition.SUBMIT: (
        frozenset({ScheduleStatus.DRAFT, ScheduleStatus.REJECTED}),
        ScheduleStatus.PENDING_APPROVAL,
    ),
    ScheduleTransition.APPROVE: (
        frozenset({ScheduleStatus.PENDING_APPROVAL}),
        ScheduleStatus.APPROVED,
    ),
    ScheduleTransition.REJECT: (
        frozenset({ScheduleStatus.PENDING_APPROVAL}),
        ScheduleStatus.REJECTED,
    ),
    ScheduleTransition.REVISE: (
        frozenset({ScheduleStatus.REJECTED}),
        ScheduleStatus.DRAFT,
    ),
}


@dataclass(frozen=True)
class ScheduleHistoryEntry:
    """One recorded transition of a schedule.

    Attributes
    ----------
    transition:
        The move that was made.
    from_status, to_status:
        Status before and after.
    actor_user_id:
        The user who made the move.
    timestamp:
        UTC time of the move.
    reason:
        Rejection reason, or ``None``.
    """

    transition: ScheduleTransition
    from_status: ScheduleStatus
    to_status: ScheduleStatus
    actor_user_id: int
    timestamp: datetime
    reason: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "transition": self.transition.value,
            "from_status": self.from_status.value,
            "to_status": self.to_status.value,
            "actor_user_id": self.actor_user_id,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
        }


@dataclass
class Schedule:
    """A work schedule subject to approval.

    Attributes
    ----------
    schedule_id:
        Caller-assigned identifier.
    owner_user_id:
        The user the schedule belongs to.
    team_id:
        The owner's team at creation time, if any.
    status:
        Current lifecycle status.
    reviewed_by:
        The user who approved or rejected the schedule last.
    reviewed_at:
        UTC time of the last review.
    rejection_reason:
        Reason given on the last rejection; cleared on resubmission.
    history:
        Every transition in the order it happened.
    """

    schedule_id: int
    owner_user_id: int
    team_id: int | None = None
    status: ScheduleStatus = ScheduleStatus.DRAFT
    reviewed_by: int | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    history: list[ScheduleHistoryEntry] = field(default_factory=list)

    def context(self) -> ResourceContext:
        """Return the ownership context checked against scoped permissions."""
        return ResourceContext(owner_id=self.owner_user_id, team_id=self.team_id)

    @property
    def is_locked(self) -> bool:
        """True once the schedule is approved."""
        return self.status is ScheduleStatus.APPROVED

    def to_dict(self) -> dict[str, object]:
        return {
            "schedule_id": self.schedule_id,
            "owner_user_id": self.owner_user_id,
            "team_id": self.team_id,
            "status": self.status.value,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "rejection_reason": self.rejection_reason,
            "history": [h.to_dict() for h in self.history],
        }
