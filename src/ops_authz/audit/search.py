"""Audit trail query filters.

AuditFilter describes which matrix-mutation records a caller wants back:
by role, resource, action, acting user and time range.  Every supplied
criterion must match (AND semantics); ``None`` means "any".

Example
-------
>>> from datetime import datetime, timezone
>>> since = datetime(2026, 1, 1, tzinfo=timezone.utc)
>>> trail.query(AuditFilter(role_id=2, start=since))
[...]
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ops_authz.audit.trail import AuditEntry


@dataclass(frozen=True)
class AuditFilter:
    """Criteria for :meth:`AuditTrail.query`.

    Attributes
    ----------
    role_id, resource_id, action_id:
        Exact key components to match.
    actor_user_id:
        Exact acting user to match.
    start:
        Inclusive lower bound on the entry timestamp.
    end:
        Inclusive upper bound on the entry timestamp.
    limit:
        Return at most this many of the most recent matches.
    """

    role_id: int | None = None
    resource_id: int | None = None
    action_id: int | None = None
    actor_user_id: int | None = None
    start: datetime | None = None
    end: datetime | None = None
    limit: int | None = None

    def matches(self, entry: AuditEntry) -> bool:
        """Return True if ``entry`` satisfies every supplied criterion."""
        if self.role_id is not None and entry.role_id != self.role_id:
            return False
        if self.resource_id is not None and entry.resource_id != self.resource_id:
            return False
        if self.action_id is not None and entry.action_id != self.action_id:
            return False
        if self.actor_user_id is not None and entry.actor_user_id != self.actor_user_id:
            return False
        if self.start is not None or self.end is not None:
            ts = _aware(entry.timestamp)
            if self.start is not None and ts < _aware(self.start):
                return False
            if self.end is not None and ts > _aware(self.end):
                return False
        return True

    @classmethod
    def from_params(cls, params: dict[str, object]) -> AuditFilter:
        """Build a filter from loosely typed query parameters.

        Accepts ints or numeric strings for ids and ``limit``, and ISO-8601
        strings or datetimes for ``start``/``end``.  Missing or empty values
        are ignored.

        Raises
        ------
        ValueError
            If a value cannot be converted.
        """
        def _int(key: str) -> int | None:
            raw = params.get(key)
            if raw is None or raw == "":
                return None
            return int(raw)  # type: ignore[call-overload]

        def _dt(key: str) -> datetime | None:
            raw = params.get(key)
            if raw is None or raw == "":
                return None
            if isinstance(raw, datetime):
                return raw
            return datetime.fromisoformat(str(raw))

        return cls(
            role_id=_int("role_id"),
            resource_id=_int("resource_id"),
            action_id=_int("action_id"),
            actor_user_id=_int("actor_user_id"),
            start=_dt("start"),
            end=_dt("end"),
            limit=_int("limit"),
        )


def _aware(ts: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts
