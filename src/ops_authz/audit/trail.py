"""Audit trail of permission matrix mutations.

Every committed change to a matrix row produces exactly one
:class:`AuditEntry` carrying the row's value before and after the change.
Entries are append-only: no API here updates or deletes one.

A trail must never fail silently.  Backends raise
:class:`~ops_authz.errors.AuditWriteFailed` when they cannot persist, and
:meth:`AuditTrail.record_many` is all-or-nothing so a batch's entries are
either all recorded or none are.

Example
-------
>>> trail = InMemoryAuditTrail()
>>> entry = AuditEntry.create(actor_user_id=1, role_id=2, resource_id=3, action_id=4,
...                           previous=None, new_granted=True, new_scope=Scope.OWN)
>>> trail.record(entry)
>>> trail.count()
1
"""
from __future__ import annotations

import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone

from ops_authz.audit.search import AuditFilter
from ops_authz.matrix.models import Permission, Scope, parse_scope


@dataclass(frozen=True)
class AuditEntry:
    """One committed matrix row change.

    Attributes
    ----------
    entry_id:
        Unique identifier generated when the entry is created.
    actor_user_id:
        The user whose batch made the change.
    role_id, resource_id, action_id:
        Key of the changed row.
    previous_granted, previous_scope:
        The row before the change; both ``None`` if the row did not exist.
    new_granted, new_scope:
        The row after the change.
    timestamp:
        UTC commit time.
    """

    entry_id: str
    actor_user_id: int
    role_id: int
    resource_id: int
    action_id: int
    previous_granted: bool | None
    previous_scope: Scope | None
    new_granted: bool
    new_scope: Scope
    timestamp: datetime

    @classmethod
    def create(
        cls,
        actor_user_id: int,
        role_id: int,
        resource_id: int,
        action_id: int,
        previous: Permission | None,
        new_granted: bool,
        new_scope: Scope,
        timestamp: datetime | None = None,
    ) -> AuditEntry:
        """Build an entry with a fresh id; ``timestamp`` defaults to UTC now."""
        return cls(
            entry_id=str(uuid.uuid4()),
            actor_user_id=actor_user_id,
            role_id=role_id,
            resource_id=resource_id,
            action_id=action_id,
            previous_granted=previous.granted if previous is not None else None,
            previous_scope=previous.scope if previous is not None else None,
            new_granted=new_granted,
            new_scope=new_scope,
            timestamp=timestamp or datetime.now(tz=timezone.utc),
        )

    def to_dict(self) -> dict[str, object]:
        """Serialise this entry to a JSON-compatible dict."""
        return {
            "entry_id": self.entry_id,
            "actor_user_id": self.actor_user_id,
            "role_id": self.role_id,
            "resource_id": self.resource_id,
            "action_id": self.action_id,
            "previous_granted": self.previous_granted,
            "previous_scope": self.previous_scope.value if self.previous_scope else None,
            "new_granted": self.new_granted,
            "new_scope": self.new_scope.value,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> AuditEntry:
        """Reconstruct an entry from :meth:`to_dict` output.

        Raises
        ------
        KeyError
            If a required field is missing.
        ValueError
            If the timestamp or a scope cannot be parsed.
        """
        ts_raw = data["timestamp"]
        ts = datetime.fromisoformat(ts_raw) if isinstance(ts_raw, str) else ts_raw
        if not isinstance(ts, datetime):
            raise ValueError(f"Invalid audit timestamp {ts_raw!r}")
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        previous_scope = data.get("previous_scope")
        return cls(
            entry_id=str(data["entry_id"]),
            actor_user_id=int(data["actor_user_id"]),  # type: ignore[call-overload]
            role_id=int(data["role_id"]),  # type: ignore[call-overload]
            resource_id=int(data["resource_id"]),  # type: ignore[call-overload]
            action_id=int(data["action_id"]),  # type: ignore[call-overload]
            previous_granted=data.get("previous_granted"),  # type: ignore[arg-type]
            previous_scope=parse_scope(previous_scope) if previous_scope is not None else None,
            new_granted=bool(data["new_granted"]),
            new_scope=parse_scope(data["new_scope"]),
            timestamp=ts,
        )


class AuditTrail(ABC):
    """Append-only sink and query interface for :class:`AuditEntry` records."""

    def record(self, entry: AuditEntry) -> None:
        """Append a single entry.

        Raises
        ------
        AuditWriteFailed
            If the entry could not be persisted.
        """
        self.record_many([entry])

    @abstractmethod
    def record_many(self, entries: list[AuditEntry]) -> None:
        """Append ``entries`` atomically: all are recorded or none are.

        Raises
        ------
        AuditWriteFailed
            If the entries could not be persisted.
        """

    @abstractmethod
    def read_all(self) -> list[AuditEntry]:
        """Return every entry in append order."""

    def query(self, filters: AuditFilter | None = None) -> list[AuditEntry]:
        """Return entries matching ``filters`` in append order.

        When ``filters.limit`` is set, only the most recent ``limit``
        matches are returned.
        """
        filters = filters or AuditFilter()
        matches = [e for e in self.read_all() if filters.matches(e)]
        if filters.limit is not None:
            return matches[-filters.limit:] if filters.limit > 0 else []
        return matches

    def count(self) -> int:
        """Return the total number of entries."""
        return len(self.read_all())

    def last_n(self, n: int) -> list[AuditEntry]:
        """Return the ``n`` most recent entries."""
        return self.query(AuditFilter(limit=n))


class InMemoryAuditTrail(AuditTrail):
    """Process-local trail.  Thread-safe."""

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    def record_many(self, entries: list[AuditEntry]) -> None:
        with self._lock:
            self._entries.extend(entries)

    def read_all(self) -> list[AuditEntry]:
        with self._lock:
            return list(self._entries)

    def count(self) -> int:
        with self._lock:
            return len(self._entries)
