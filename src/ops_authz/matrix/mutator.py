"""Batched permission matrix mutation.

MatrixMutator applies a list of requested row changes in one store
transaction and records one audit entry per row that actually changed.

Two layers with different failure semantics:

- Validation is per item.  An update naming an unknown role, resource or
  action, or carrying a malformed scope, lands in ``failed`` and the rest
  of the batch proceeds.
- Storage is all-or-nothing.  If the store cannot prepare the commit, or
  the audit trail cannot record the entries, nothing in the batch is
  committed and the error propagates.  The audit write sits between
  ``prepare`` and ``commit``, and ``commit`` cannot fail, so every audit
  entry belongs to a committed row.

Within a batch, duplicate keys resolve last-write-wins: only the final
value is persisted and audited, and earlier duplicates are reported as
``superseded``.  An update equal to the current row is reported as
``unchanged`` and produces no audit entry.

The mutator protects itself: the actor must hold an ``all``-scoped
``settings``/``update`` grant, checked through the resolver on every call
while the store's writer lock is held.

Example
-------
::

    mutator = MatrixMutator(resolver, store, audit)
    result = mutator.apply_batch(actor_user_id=1, updates=[
        {"role_id": 2, "resource_id": 4, "action_id": 3, "granted": True, "scope": "own"},
    ])
    assert not result.failed
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ops_authz.audit.trail import AuditEntry, AuditTrail
from ops_authz.errors import AccessDenied, AuditWriteFailed, InvalidScope, UnknownReference
from ops_authz.matrix.models import Permission, PermissionKey, PermissionUpdate
from ops_authz.matrix.store import MatrixStore
from ops_authz.resolver.resolver import PermissionResolver
from ops_authz.resolver.scope import ResourceContext

logger = logging.getLogger(__name__)

SETTINGS_RESOURCE = "settings"
SETTINGS_ACTION = "update"


@dataclass(frozen=True)
class FailedUpdate:
    """A batch item rejected at validation.

    Attributes
    ----------
    update:
        The item as submitted (a :class:`PermissionUpdate` or the raw dict).
    reason:
        Error class name: ``"UnknownReference"``, ``"InvalidScope"`` or
        ``"InvalidUpdate"``.
    detail:
        Human-readable explanation.
    """

    update: PermissionUpdate | dict[str, object]
    reason: str
    detail: str


@dataclass
class BatchResult:
    """Outcome of :meth:`MatrixMutator.apply_batch`.

    Attributes
    ----------
    applied:
        Final updates that changed a row, in commit order.  One audit entry
        exists per item.
    unchanged:
        Final updates equal to the existing row.
    superseded:
        Valid items overridden by a later item with the same key.
    failed:
        Items rejected at validation.
    audit_entries:
        The entries recorded for ``applied``.
    version:
        Store version after the commit, or ``None`` if nothing committed.
    """

    applied: list[PermissionUpdate] = field(default_factory=list)
    unchanged: list[PermissionUpdate] = field(default_factory=list)
    superseded: list[PermissionUpdate] = field(default_factory=list)
    failed: list[FailedUpdate] = field(default_factory=list)
    audit_entries: list[AuditEntry] = field(default_factory=list)
    version: int | None = None

    @property
    def success(self) -> bool:
        """True when no item failed validation."""
        return not self.failed

    def summary(self) -> dict[str, object]:
        return {
            "applied": len(self.applied),
            "unchanged": len(self.unchanged),
            "superseded": len(self.superseded),
            "failed": len(self.failed),
            "version": self.version,
        }


class MatrixMutator:
    """The only writer of the permission matrix.

    Parameters
    ----------
    resolver:
        Used to authorize the actor and to reach the catalog.
    store:
        The matrix store to write.  Normally the resolver's own store.
    audit:
        Trail that receives one entry per changed row.
    """

    def __init__(
        self,
        resolver: PermissionResolver,
        store: MatrixStore,
        audit: AuditTrail,
    ) -> None:
        self._resolver = resolver
        self._catalog = resolver.catalog
        self._store = store
        self._audit = audit

    def apply_batch(
        self,
        actor_user_id: int,
        updates: list[PermissionUpdate | dict[str, object]],
    ) -> BatchResult:
        """Validate and commit a batch of matrix updates.

        Parameters
        ----------
        actor_user_id:
            The user submitting the batch.
        updates:
            :class:`PermissionUpdate` objects or plain dicts accepted by
            :meth:`PermissionUpdate.from_dict`.

        Returns
        -------
        BatchResult

        Raises
        ------
        UserNotFound
            If the actor is unknown.
        AccessDenied
            If the actor lacks an ``all``-scoped ``settings``/``update`` grant.
        StorageUnavailable
            If the store cannot commit; nothing is committed.
        AuditWriteFailed
            If the audit trail cannot record; nothing is committed.
        """
        with self._store.transaction() as txn:
            # Checked under the writer lock so a concurrent revocation is seen.
            decision = self._resolver.check(
                actor_user_id, SETTINGS_ACTION, SETTINGS_RESOURCE, ResourceContext()
            )
            if not decision:
                logger.warning(
                    "Matrix batch refused: actor=%s reason=%s", actor_user_id, decision.reason
                )
                raise AccessDenied(decision)

            result = BatchResult()
            final: dict[PermissionKey, PermissionUpdate] = {}
            for raw in updates:
                update = self._validate(raw, result)
                if update is None:
                    continue
                previous = final.pop(update.key, None)
                if previous is not None:
                    result.superseded.append(previous)
                final[update.key] = update

            changes: list[tuple[PermissionUpdate, Permission | None]] = []
            for update in final.values():
                current = txn.get(update.key)
                if current is not None and current == update.to_permission():
                    result.unchanged.append(update)
                    continue
                txn.put(update.to_permission())
                changes.append((update, current))

            if not changes:
                logger.info(
                    "Matrix batch by actor=%s made no changes (%s)", actor_user_id, result.summary()
                )
                return result

            txn.prepare()
            # Stamped inside the writer lock so audit order is commit order.
            committed_at = datetime.now(tz=timezone.utc)
            entries = [
                AuditEntry.create(
                    actor_user_id=actor_user_id,
                    role_id=update.role_id,
                    resource_id=update.resource_id,
                    action_id=update.action_id,
                    previous=current,
                    new_granted=update.granted,
                    new_scope=update.scope,
                    timestamp=committed_at,
                )
                for update, current in changes
            ]
            try:
                self._audit.record_many(entries)
            except AuditWriteFailed:
                raise
            except Exception as exc:
                raise AuditWriteFailed(f"Audit trail rejected {len(entries)} entries: {exc}") from exc
            result.version = txn.commit()

        result.applied = [update for update, _ in changes]
        result.audit_entries = entries
        logger.info(
            "Matrix batch committed by actor=%s: %s", actor_user_id, result.summary()
        )
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _validate(
        self,
        raw: PermissionUpdate | dict[str, object],
        result: BatchResult,
    ) -> PermissionUpdate | None:
        try:
            update = raw if isinstance(raw, PermissionUpdate) else PermissionUpdate.from_dict(raw)
            self._catalog.role(update.role_id)
            self._catalog.resource(update.resource_id)
            self._catalog.action(update.action_id)
        except UnknownReference as exc:
            result.failed.append(FailedUpdate(raw, "UnknownReference", str(exc)))
            return None
        except InvalidScope as exc:
            result.failed.append(FailedUpdate(raw, "InvalidScope", str(exc)))
            return None
        except (AttributeError, TypeError, ValueError) as exc:
            result.failed.append(FailedUpdate(raw, "InvalidUpdate", str(exc)))
            return None
        return update
