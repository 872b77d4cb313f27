"""Scope evaluation shared by object checks and list filters.

Both :meth:`PermissionResolver.check` and :meth:`PermissionResolver.filter_for`
reduce a granted row's scope through this module: ``check`` asks
:func:`scope_allows` about one object, ``filter_for`` asks
:func:`filter_for_scope` for a predicate over many.  :class:`ListFilter`
evaluates with the same two comparisons ``scope_allows`` uses, so an object
passes the list filter exactly when a single-object check would allow it.

Example
-------
>>> user = User(user_id=7, role_id=2, team_id=3)
>>> scope_allows(Scope.TEAM, user, ResourceContext(owner_id=9, team_id=3))
True
>>> filter_for_scope(Scope.OWN, user)
ListFilter(kind=<FilterKind.OWNER_EQUALS: 'owner_equals'>, value=7)
"""
from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from ops_authz.directory.users import User
from ops_authz.errors import InvalidScope
from ops_authz.matrix.models import Scope, parse_scope

_T = TypeVar("_T")


@dataclass(frozen=True)
class ResourceContext:
    """Ownership metadata of the object being acted on.

    Attributes
    ----------
    owner_id:
        The user who owns the object, if any.
    team_id:
        The team of the owning user, if any.
    """

    owner_id: int | None = None
    team_id: int | None = None


class FilterKind(str, Enum):
    """Shape of a list-query predicate."""

    UNRESTRICTED = "unrestricted"
    OWNER_EQUALS = "owner_equals"
    TEAM_EQUALS = "team_equals"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class ListFilter:
    """Predicate a list endpoint applies to its query.

    Attributes
    ----------
    kind:
        The predicate shape.
    value:
        The user id for ``OWNER_EQUALS``, the team id for ``TEAM_EQUALS``,
        ``None`` otherwise.
    """

    kind: FilterKind
    value: int | None = None

    @classmethod
    def unrestricted(cls) -> ListFilter:
        return cls(FilterKind.UNRESTRICTED)

    @classmethod
    def owner_equals(cls, user_id: int) -> ListFilter:
        return cls(FilterKind.OWNER_EQUALS, user_id)

    @classmethod
    def team_equals(cls, team_id: int) -> ListFilter:
        return cls(FilterKind.TEAM_EQUALS, team_id)

    @classmethod
    def forbidden(cls) -> ListFilter:
        return cls(FilterKind.FORBIDDEN)

    @property
    def is_forbidden(self) -> bool:
        return self.kind is FilterKind.FORBIDDEN

    def matches(self, context: ResourceContext) -> bool:
        """Return True if an object with ``context`` passes this filter."""
        if self.kind is FilterKind.UNRESTRICTED:
            return True
        if self.kind is FilterKind.OWNER_EQUALS:
            return _owner_matches(self.value, context)
        if self.kind is FilterKind.TEAM_EQUALS:
            return _team_matches(self.value, context)
        return False

    def apply(
        self,
        items: Iterable[_T],
        context_of: Callable[[_T], ResourceContext],
    ) -> list[_T]:
        """Return the items whose context passes this filter, in order."""
        if self.kind is FilterKind.FORBIDDEN:
            return []
        return [item for item in items if self.matches(context_of(item))]

    def as_criteria(self) -> dict[str, int] | None:
        """Return equality criteria for a query builder.

        ``{}`` means no restriction; ``None`` means the query must return
        nothing and need not run at all.
        """
        if self.kind is FilterKind.UNRESTRICTED:
            return {}
        if self.kind is FilterKind.OWNER_EQUALS:
            return {"owner_id": self.value}  # type: ignore[dict-item]
        if self.kind is FilterKind.TEAM_EQUALS:
            return {"team_id": self.value}  # type: ignore[dict-item]
        return None


def scope_allows(scope: Scope, user: User, context: ResourceContext) -> bool:
    """Return True if a granted row with ``scope`` covers the object in ``context``.

    Raises
    ------
    InvalidScope
        If ``scope`` is not a :class:`Scope` member.
    """
    if scope is Scope.ALL:
        return True
    if scope is Scope.OWN:
        return _owner_matches(user.user_id, context)
    if scope is Scope.TEAM:
        return _team_matches(user.team_id, context)
    raise InvalidScope(scope)


def filter_for_scope(scope: Scope, user: User) -> ListFilter:
    """Return the list predicate equivalent to ``scope`` for ``user``.

    A ``team`` scope for a user without a team is ``forbidden``.
    """
    if scope is Scope.ALL:
        return ListFilter.unrestricted()
    if scope is Scope.OWN:
        return ListFilter.owner_equals(user.user_id)
    if scope is Scope.TEAM:
        if user.team_id is None:
            return ListFilter.forbidden()
        return ListFilter.team_equals(user.team_id)
    raise InvalidScope(scope)


def _owner_matches(user_id: int | None, context: ResourceContext) -> bool:
    return user_id is not None and context.owner_id == user_id


def _team_matches(team_id: int | None, context: ResourceContext) -> bool:
    # No team never matches, even against an object with no team.
    return team_id is not None and context.team_id == team_id


__all__ = [
    "FilterKind",
    "ListFilter",
    "ResourceContext",
    "filter_for_scope",
    "parse_scope",
    "scope_allows",
]
