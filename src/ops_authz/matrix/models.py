"""Permission matrix row types.

A matrix row maps ``(role_id, resource_id, action_id)`` to
``(granted, scope)``.  The key is composite-unique: a matrix holds at most
one live row per key.

Example
-------
>>> row = Permission(role_id=1, resource_id=2, action_id=3, granted=True, scope=Scope.OWN)
>>> row.key
PermissionKey(role_id=1, resource_id=2, action_id=3)
>>> PermissionUpdate.from_dict({"role_id": 1, "resource_id": 2, "action_id": 3,
...                             "granted": True, "scope": "team"}).scope
<Scope.TEAM: 'team'>
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

from ops_authz.errors import InvalidScope


class Scope(str, Enum):
    """Qualifier narrowing a granted permission to a subset of objects."""

    OWN = "own"
    TEAM = "team"
    ALL = "all"


class PermissionKey(NamedTuple):
    """Composite identity of a matrix row."""

    role_id: int
    resource_id: int
    action_id: int


@dataclass(frozen=True)
class Permission:
    """One live row of the permission matrix.

    Attributes
    ----------
    role_id, resource_id, action_id:
        Catalog identifiers forming the composite key.
    granted:
        When ``False`` the row denies regardless of ``scope``.
    scope:
        Which objects a granted row covers.
    """

    role_id: int
    resource_id: int
    action_id: int
    granted: bool
    scope: Scope

    @property
    def key(self) -> PermissionKey:
        return PermissionKey(self.role_id, self.resource_id, self.action_id)

    def to_dict(self) -> dict[str, object]:
        return {
            "role_id": self.role_id,
            "resource_id": self.resource_id,
            "action_id": self.action_id,
            "granted": self.granted,
            "scope": self.scope.value,
        }


@dataclass(frozen=True)
class PermissionUpdate:
    """A requested change to one matrix row, as submitted in a batch.

    Shares its fields with :class:`Permission`; it is a separate type so a
    request is never mistaken for a committed row.
    """

    role_id: int
    resource_id: int
    action_id: int
    granted: bool
    scope: Scope

    @property
    def key(self) -> PermissionKey:
        return PermissionKey(self.role_id, self.resource_id, self.action_id)

    def to_permission(self) -> Permission:
        return Permission(
            role_id=self.role_id,
            resource_id=self.resource_id,
            action_id=self.action_id,
            granted=self.granted,
            scope=self.scope,
        )

    def to_dict(self) -> dict[str, object]:
        return self.to_permission().to_dict()

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> PermissionUpdate:
        """Build an update from a plain dictionary.

        Accepts both ``role_id`` and the short ``role`` spelling (likewise
        for resource and action).

        Raises
        ------
        InvalidScope
            If ``scope`` is not a recognised value.
        ValueError
            If an id is missing or not an integer, or ``granted`` is not a
            boolean.
        """
        role_id = _int_field(data, "role_id", "role")
        resource_id = _int_field(data, "resource_id", "resource")
        action_id = _int_field(data, "action_id", "action")

        granted = data.get("granted")
        if not isinstance(granted, bool):
            raise ValueError(f"'granted' must be a boolean; got {granted!r}.")

        return cls(
            role_id=role_id,
            resource_id=resource_id,
            action_id=action_id,
            granted=granted,
            scope=parse_scope(data.get("scope")),
        )


def parse_scope(raw: object) -> Scope:
    """Return the :class:`Scope` for ``raw`` or raise :class:`InvalidScope`."""
    if isinstance(raw, Scope):
        return raw
    try:
        return Scope(raw)
    except ValueError:
        raise InvalidScope(raw) from None


def _int_field(data: dict[str, object], name: str, alias: str) -> int:
    raw = data.get(name, data.get(alias))
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"'{name}' must be an integer; got {raw!r}.")
    return raw
