"""Permission resolver: the single read path for authorization decisions.

Every protected operation asks :meth:`PermissionResolver.check` whether a
user may perform an action on a resource; list endpoints ask
:meth:`PermissionResolver.filter_for` for a predicate instead.  Both go
through the same matrix lookup (:meth:`PermissionResolver._lookup`), so a
row a user could not ``check()`` individually never shows up in a list.

Resolution order for ``check``:

1. Resolve the user (``UserNotFound`` if absent).
2. Look up ``(role, resource, action)`` in the current matrix snapshot.
   No row, or a resource/action name the catalog does not know, is an
   implicit deny.
3. ``granted=False`` denies regardless of scope.
4. ``all`` allows.
5. ``own``/``team`` need a :class:`ResourceContext` (``MissingContext``
   otherwise) and are decided by :func:`scope_allows`.

Example
-------
::

    resolver = PermissionResolver(directory, catalog, store)
    decision = resolver.check(7, "update", "entries", ResourceContext(owner_id=7))
    if not decision:
        return forbidden(decision.reason)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from ops_authz.directory.catalog import Catalog
from ops_authz.directory.users import User, UserDirectory
from ops_authz.errors import MissingContext, UserNotFound
from ops_authz.matrix.models import Permission, PermissionKey, Scope, parse_scope
from ops_authz.matrix.store import MatrixSnapshot, MatrixStore
from ops_authz.resolver.scope import (
    ListFilter,
    ResourceContext,
    filter_for_scope,
    scope_allows,
)

logger = logging.getLogger(__name__)

CheckRequest = tuple[str, str] | tuple[str, str, ResourceContext | None]


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Decision:
    """Immutable outcome of a permission check.

    Attributes
    ----------
    allowed:
        Whether the action is permitted.
    scope:
        Scope of the granted row that was evaluated, or ``None`` when the
        role holds no granted row for the pair.
    reason:
        Human-readable explanation of the decision.
    user_id:
        The user the check was made for.
    resource:
        The resource name that was checked.
    action:
        The action name that was checked.
    """

    allowed: bool
    scope: Scope | None
    reason: str
    user_id: int
    resource: str
    action: str

    def __bool__(self) -> bool:
        """Return True if the action is allowed."""
        return self.allowed


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class PermissionResolver:
    """Answers "may user U do action A on resource R (against context C)?".

    The resolver holds no state of its own; every call reads the store's
    current snapshot once, so it is safe under any number of concurrent
    callers and sees matrix changes from one call to the next.

    Parameters
    ----------
    directory:
        Resolves user ids to :class:`User` records.
    catalog:
        Role, resource and action vocabulary.
    store:
        The permission matrix.
    """

    def __init__(self, directory: UserDirectory, catalog: Catalog, store: MatrixStore) -> None:
        self._directory = directory
        self._catalog = catalog
        self._store = store

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check(
        self,
        user_id: int,
        action: str,
        resource: str,
        context: ResourceContext | None = None,
    ) -> Decision:
        """Decide whether ``user_id`` may perform ``action`` on ``resource``.

        Parameters
        ----------
        user_id:
            The acting user.
        action:
            Action name, e.g. ``"update"``.
        resource:
            Resource name, e.g. ``"entries"``.
        context:
            Ownership of the specific object.  Required when the matching
            row is ``own`` or ``team`` scoped.

        Returns
        -------
        Decision

        Raises
        ------
        UserNotFound
            If the directory does not know ``user_id``.
        MissingContext
            If the row is ``own``/``team`` scoped and ``context`` is ``None``.
        InvalidScope
            If the stored row carries an unrecognised scope.
        """
        user = self._user(user_id)
        return self._decide(user, action, resource, context, self._store.snapshot())

    def filter_for(self, user_id: int, action: str, resource: str) -> ListFilter:
        """Return the list predicate for ``action`` on ``resource``.

        Uses the same lookup as :meth:`check`: no row, or a denied row,
        yields :meth:`ListFilter.forbidden`.

        Raises
        ------
        UserNotFound
            If the directory does not know ``user_id``.
        """
        user = self._user(user_id)
        row = self._lookup(user, action, resource, self._store.snapshot())
        if row is None or not row.granted:
            result = ListFilter.forbidden()
        else:
            result = filter_for_scope(parse_scope(row.scope), user)
        logger.debug(
            "List filter: user=%s action=%s resource=%s -> %s(%s)",
            user_id,
            action,
            resource,
            result.kind.value,
            result.value,
        )
        return result

    def check_many(self, user_id: int, requests: list[CheckRequest]) -> dict[str, Decision]:
        """Evaluate several checks for one user against a single snapshot.

        Parameters
        ----------
        requests:
            ``(resource, action)`` or ``(resource, action, context)`` tuples.

        Returns
        -------
        dict[str, Decision]
            Decisions keyed ``"resource:action"``.  A later request for the
            same pair replaces an earlier one.
        """
        user = self._user(user_id)
        snapshot = self._store.snapshot()
        results: dict[str, Decision] = {}
        for request in requests:
            resource, action = request[0], request[1]
            context = request[2] if len(request) > 2 else None  # type: ignore[misc]
            results[f"{resource}:{action}"] = self._decide(user, action, resource, context, snapshot)
        return results

    def effective_permissions(self, user_id: int) -> list[dict[str, str]]:
        """Return the granted ``(resource, action, scope)`` rows of the user's role."""
        user = self._user(user_id)
        granted: list[dict[str, str]] = []
        for row in self._store.snapshot().rows_for_role(user.role_id):
            if not row.granted:
                continue
            granted.append(
                {
                    "resource": self._catalog.resource(row.resource_id).name,
                    "action": self._catalog.action(row.action_id).name,
                    "scope": parse_scope(row.scope).value,
                }
            )
        return granted

    def accessible_resources(self, user_id: int, action: str) -> list[str]:
        """Return resource names the user's role holds a granted ``action`` row for."""
        return sorted(
            {p["resource"] for p in self.effective_permissions(user_id) if p["action"] == action}
        )

    def is_top_role(self, user_id: int) -> bool:
        """Return True if the user's role is at the top of the hierarchy."""
        return self._catalog.is_top_role(self._user(user_id).role_id)

    def has_hierarchy_level(self, user_id: int, level: int) -> bool:
        """Return True if the user's role level is at least ``level``."""
        role = self._catalog.role(self._user(user_id).role_id)
        return role.hierarchy_level >= level

    def user(self, user_id: int) -> User:
        """Return the directory record for ``user_id`` or raise :class:`UserNotFound`."""
        return self._user(user_id)

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def store(self) -> MatrixStore:
        return self._store

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _user(self, user_id: int) -> User:
        user = self._directory.get_user(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    def _lookup(
        self,
        user: User,
        action: str,
        resource: str,
        snapshot: MatrixSnapshot,
    ) -> Permission | None:
        resource_entry = self._catalog.resource_by_name(resource)
        action_entry = self._catalog.action_by_name(action)
        if resource_entry is None or action_entry is None:
            return None
        return snapshot.get(
            PermissionKey(user.role_id, resource_entry.resource_id, action_entry.action_id)
        )

    def _decide(
        self,
        user: User,
        action: str,
        resource: str,
        context: ResourceContext | None,
        snapshot: MatrixSnapshot,
    ) -> Decision:
        row = self._lookup(user, action, resource, snapshot)

        if row is None:
            return self._deny(user, action, resource, None, f"No permission for {resource}:{action}.")
        if not row.granted:
            return self._deny(user, action, resource, None, f"Permission {resource}:{action} is not granted.")

        scope = parse_scope(row.scope)
        if scope is Scope.ALL:
            return self._allow(user, action, resource, scope)

        if context is None:
            raise MissingContext(resource, action, scope.value)

        if scope_allows(scope, user, context):
            return self._allow(user, action, resource, scope)

        if scope is Scope.TEAM and user.team_id is None:
            reason = f"Permission {resource}:{action} is team-scoped and the user has no team."
        elif scope is Scope.TEAM:
            reason = f"Object belongs to team {context.team_id!r}, not the user's team."
        else:
            reason = f"Object is owned by {context.owner_id!r}, not the user."
        return self._deny(user, action, resource, scope, reason)

    @staticmethod
    def _allow(user: User, action: str, resource: str, scope: Scope) -> Decision:
        logger.debug(
            "Permission ALLOW: user=%s action=%s resource=%s scope=%s",
            user.user_id,
            action,
            resource,
            scope.value,
        )
        return Decision(
            allowed=True,
            scope=scope,
            reason=f"Granted {resource}:{action} with scope {scope.value!r}.",
            user_id=user.user_id,
            resource=resource,
            action=action,
        )

    @staticmethod
    def _deny(user: User, action: str, resource: str, scope: Scope | None, reason: str) -> Decision:
        logger.debug(
            "Permission DENY: user=%s action=%s resource=%s reason=%s",
            user.user_id,
            action,
            resource,
            reason,
        )
        return Decision(
            allowed=False,
            scope=scope,
            reason=reason,
            user_id=user.user_id,
            resource=resource,
            action=action,
        )
