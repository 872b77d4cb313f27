"""Schedule approval state machine gated by the permission resolver."""
from __future__ import annotations

from ops_authz.workflow.guard import WorkflowGuard
from ops_authz.workflow.schedule import (
    Schedule,
    ScheduleHistoryEntry,
    ScheduleStatus,
    ScheduleTransition,
)

__all__ = [
    "Schedule",
    "ScheduleHistoryEntry",
    "ScheduleStatus",
    "ScheduleTransition",
    "WorkflowGuard",
]
