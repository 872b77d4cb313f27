"""Permission-gated schedule approval transitions.

WorkflowGuard wraps the :class:`~ops_authz.resolver.resolver.PermissionResolver`
for schedules.  Every transition is a matrix check against the schedule's
ownership context, plus the state rules of the approval flow:

- ``submit`` needs a ``create`` or ``update`` grant on ``schedules``.
- ``approve`` and ``reject`` need the ``approve`` grant; ``reject`` also
  needs a non-empty reason.
- ``revise`` (rejected back to draft) needs the same grant as ``submit``.
- Updating an approved schedule needs the matrix ``update`` grant *and* a
  top-of-hierarchy role.
- Deleting an approved schedule is always denied.

Transitions raise on failure (:class:`~ops_authz.errors.InvalidTransition`,
:class:`~ops_authz.errors.TransitionDenied`); the ``authorize_*`` methods
return a :class:`Decision` like :meth:`PermissionResolver.check` does.

Example
-------
::

    guard = WorkflowGuard(resolver)
    schedule = Schedule(schedule_id=1, owner_user_id=7)
    guard.submit(schedule, actor_user_id=7)
    guard.approve(schedule, actor_user_id=1)
    assert not guard.authorize_update(schedule, actor_user_id=7)
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from ops_authz.errors import InvalidTransition, RejectionReasonRequired, TransitionDenied
from ops_authz.resolver.resolver import Decision, PermissionResolver
from ops_authz.workflow.schedule import (
    TRANSITIONS,
    Schedule,
    ScheduleHistoryEntry,
    ScheduleTransition,
)

logger = logging.getLogger(__name__)

SCHEDULES_RESOURCE = "schedules"


class WorkflowGuard:
    """Applies schedule transitions on behalf of an actor.

    Transitions mutate the given :class:`Schedule` in place and return it.
    An internal lock serializes transitions so two reviewers cannot both
    move the same pending schedule.

    Parameters
    ----------
    resolver:
        The permission resolver used for every check.
    resource:
        Catalog name of the schedules resource.  Default ``"schedules"``.
    """

    def __init__(self, resolver: PermissionResolver, resource: str = SCHEDULES_RESOURCE) -> None:
        self._resolver = resolver
        self._resource = resource
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(self, schedule: Schedule, actor_user_id: int) -> Schedule:
        """Move a draft (or rejected) schedule to ``pending_approval``.

        Raises
        ------
        InvalidTransition
            If the schedule is not ``draft`` or ``rejected``.
        TransitionDenied
            If the actor holds neither ``create`` nor ``update`` on the
            schedule's context.
        """
        with self._lock:
            self._assert_source(schedule, ScheduleTransition.SUBMIT)
            self._require_edit(schedule, actor_user_id)
            schedule.rejection_reason = None
            return self._move(schedule, ScheduleTransition.SUBMIT, actor_user_id)

    def approve(self, schedule: Schedule, actor_user_id: int) -> Schedule:
        """Approve a pending schedule.

        Raises
        ------
        InvalidTransition
            If the schedule is not ``pending_approval``.
        TransitionDenied
            If the actor lacks the ``approve`` grant.
        """
        with self._lock:
            self._assert_source(schedule, ScheduleTransition.APPROVE)
            self._require("approve", schedule, actor_user_id)
            schedule.reviewed_by = actor_user_id
            schedule.reviewed_at = datetime.now(tz=timezone.utc)
            return self._move(schedule, ScheduleTransition.APPROVE, actor_user_id)

    def reject(self, schedule: Schedule, actor_user_id: int, reason: str) -> Schedule:
        """Reject a pending schedule with a reason.

        Raises
        ------
        RejectionReasonRequired
            If ``reason`` is empty or whitespace.
        InvalidTransition
            If the schedule is not ``pending_approval``.
        TransitionDenied
            If the actor lacks the ``approve`` grant.
        """
        reason = (reason or "").strip()
        if not reason:
            raise RejectionReasonRequired(schedule.schedule_id)
        with self._lock:
            self._assert_source(schedule, ScheduleTransition.REJECT)
            self._require("approve", schedule, actor_user_id)
            schedule.reviewed_by = actor_user_id
            schedule.reviewed_at = datetime.now(tz=timezone.utc)
            schedule.rejection_reason = reason
            return self._move(schedule, ScheduleTransition.REJECT, actor_user_id, reason)

    def revise(self, schedule: Schedule, actor_user_id: int) -> Schedule:
        """Return a rejected schedule to ``draft`` for editing."""
        with self._lock:
            self._assert_source(schedule, ScheduleTransition.REVISE)
            self._require_edit(schedule, actor_user_id)
            return self._move(schedule, ScheduleTransition.REVISE, actor_user_id)

    # ------------------------------------------------------------------
    # Edit authorization
    # ------------------------------------------------------------------

    def authorize_update(self, schedule: Schedule, actor_user_id: int) -> Decision:
        """Decide whether the actor may edit the schedule's contents.

        The matrix ``update`` check always applies.  Once the schedule is
        approved the actor must also hold a top-of-hierarchy role.
        """
        decision = self._resolver.check(actor_user_id, "update", self._resource, schedule.context())
        if not decision:
            return decision
        if schedule.is_locked and not self._resolver.is_top_role(actor_user_id):
            return self._locked(decision, "Approved schedules can only be changed by a top-level role.")
        return decision

    def authorize_delete(self, schedule: Schedule, actor_user_id: int) -> Decision:
        """Decide whether the actor may delete the schedule.

        Approved schedules are never deletable, whatever the matrix says.
        """
        decision = self._resolver.check(actor_user_id, "delete", self._resource, schedule.context())
        if schedule.is_locked:
            return self._locked(decision, "Approved schedules cannot be deleted.")
        return decision

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _assert_source(schedule: Schedule, transition: ScheduleTransition) -> None:
        sources, _ = TRANSITIONS[transition]
        if schedule.status not in sources:
            raise InvalidTransition(schedule.schedule_id, schedule.status.value, transition.value)

    def _require(self, action: str, schedule: Schedule, actor_user_id: int) -> Decision:
        decision = self._resolver.check(actor_user_id, action, self._resource, schedule.context())
        if not decision:
            logger.warning(
                "Schedule %s: actor=%s denied %s (%s)",
                schedule.schedule_id,
                actor_user_id,
                action,
                decision.reason,
            )
            raise TransitionDenied(decision)
        return decision

    def _require_edit(self, schedule: Schedule, actor_user_id: int) -> Decision:
        context = schedule.context()
        create = self._resolver.check(actor_user_id, "create", self._resource, context)
        if create:
            return create
        update = self._resolver.check(actor_user_id, "update", self._resource, context)
        if update:
            return update
        logger.warning(
            "Schedule %s: actor=%s may neither create nor update (%s)",
            schedule.schedule_id,
            actor_user_id,
            update.reason,
        )
        raise TransitionDenied(update)

    @staticmethod
    def _move(
        schedule: Schedule,
        transition: ScheduleTransition,
        actor_user_id: int,
        reason: str | None = None,
    ) -> Schedule:
        _, target = TRANSITIONS[transition]
        previous = schedule.status
        schedule.status = target
        schedule.history.append(
            ScheduleHistoryEntry(
                transition=transition,
                from_status=previous,
                to_status=target,
                actor_user_id=actor_user_id,
                timestamp=datetime.now(tz=timezone.utc),
                reason=reason,
            )
        )
        logger.info(
            "Schedule %s: %s -> %s by actor=%s",
            schedule.schedule_id,
            previous.value,
            target.value,
            actor_user_id,
        )
        return schedule

    @staticmethod
    def _locked(decision: Decision, reason: str) -> Decision:
        logger.debug(
            "Schedule edit DENY: user=%s action=%s reason=%s",
            decision.user_id,
            decision.action,
            reason,
        )
        return Decision(
            allowed=False,
            scope=decision.scope,
            reason=reason,
            user_id=decision.user_id,
            resource=decision.resource,
            action=decision.action,
        )
