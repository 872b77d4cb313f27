"""Role, resource and action catalog.

The catalog is the small, effectively immutable vocabulary the permission
matrix is written in.  It is looked up by name on the read path (route
handlers speak in ``"schedules"`` and ``"approve"``) and by id on the write
path (batch updates carry numeric ids).

Nothing here knows how many roles exist or what they are called; the
"top of the hierarchy" is whichever role carries the greatest
``hierarchy_level``.

Example
-------
>>> catalog = Catalog(
...     roles=[Role(1, "admin", 3), Role(2, "employee", 1)],
...     resources=[Resource(1, "schedules")],
...     actions=[Action(1, "read")],
... )
>>> catalog.role_by_name("admin").role_id
1
>>> catalog.is_top_role(1)
True
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Hashable, TypeVar

from ops_authz.errors import UnknownReference

_T = TypeVar("_T")
_K = TypeVar("_K", bound=Hashable)


@dataclass(frozen=True)
class Role:
    """A role in the hierarchy.  Higher ``hierarchy_level`` means more power."""

    role_id: int
    name: str
    hierarchy_level: int
    display_name: str = ""


@dataclass(frozen=True)
class Resource:
    """A protected noun such as ``"entries"`` or ``"settings"``."""

    resource_id: int
    name: str
    display_name: str = ""


@dataclass(frozen=True)
class Action:
    """A verb such as ``"read"`` or ``"approve"``."""

    action_id: int
    name: str
    display_name: str = ""


class Catalog:
    """Lookup tables for roles, resources and actions.

    Parameters
    ----------
    roles, resources, actions:
        Catalog entries.  Ids and names must each be unique per kind.

    Raises
    ------
    ValueError
        If an id or a name is declared twice for the same kind.
    """

    def __init__(
        self,
        roles: list[Role],
        resources: list[Resource],
        actions: list[Action],
    ) -> None:
        self._roles = _index("role", roles, lambda r: r.role_id)
        self._resources = _index("resource", resources, lambda r: r.resource_id)
        self._actions = _index("action", actions, lambda a: a.action_id)
        self._roles_by_name = _index("role", roles, lambda r: r.name)
        self._resources_by_name = _index("resource", resources, lambda r: r.name)
        self._actions_by_name = _index("action", actions, lambda a: a.name)

    # ------------------------------------------------------------------
    # By id
    # ------------------------------------------------------------------

    def role(self, role_id: int) -> Role:
        """Return the role with ``role_id`` or raise :class:`UnknownReference`."""
        try:
            return self._roles[role_id]
        except KeyError:
            raise UnknownReference("role", role_id) from None

    def resource(self, resource_id: int) -> Resource:
        """Return the resource with ``resource_id`` or raise :class:`UnknownReference`."""
        try:
            return self._resources[resource_id]
        except KeyError:
            raise UnknownReference("resource", resource_id) from None

    def action(self, action_id: int) -> Action:
        """Return the action with ``action_id`` or raise :class:`UnknownReference`."""
        try:
            return self._actions[action_id]
        except KeyError:
            raise UnknownReference("action", action_id) from None

    # ------------------------------------------------------------------
    # By name
    # ------------------------------------------------------------------

    def role_by_name(self, name: str) -> Role | None:
        return self._roles_by_name.get(name)

    def resource_by_name(self, name: str) -> Resource | None:
        return self._resources_by_name.get(name)

    def action_by_name(self, name: str) -> Action | None:
        return self._actions_by_name.get(name)

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    @property
    def top_level(self) -> int | None:
        """The greatest ``hierarchy_level`` in the catalog, or ``None`` if empty."""
        if not self._roles:
            return None
        return max(r.hierarchy_level for r in self._roles.values())

    def is_top_role(self, role_id: int) -> bool:
        """Return True if ``role_id`` sits at the top of the role hierarchy."""
        role = self._roles.get(role_id)
        return role is not None and role.hierarchy_level == self.top_level

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    @property
    def roles(self) -> list[Role]:
        """Roles ordered from the top of the hierarchy down."""
        return sorted(self._roles.values(), key=lambda r: (-r.hierarchy_level, r.role_id))

    @property
    def resources(self) -> list[Resource]:
        return sorted(self._resources.values(), key=lambda r: r.resource_id)

    @property
    def actions(self) -> list[Action]:
        return sorted(self._actions.values(), key=lambda a: a.action_id)

    def summary(self) -> dict[str, object]:
        """Return a plain dict summarising the catalog."""
        return {
            "roles": [r.name for r in self.roles],
            "resources": [r.name for r in self.resources],
            "actions": [a.name for a in self.actions],
            "top_level": self.top_level,
        }


def _index(kind: str, items: list[_T], key: Callable[[_T], _K]) -> dict[_K, _T]:
    index: dict[_K, _T] = {}
    for item in items:
        k = key(item)
        if k in index:
            raise ValueError(f"Duplicate {kind} {k!r} in catalog.")
        index[k] = item
    return index
