"""User directory seam.

The authorization core consumes users; it does not own them.  Any object
with a ``get_user(user_id)`` method returning a :class:`User` (or ``None``)
can serve as the directory, so the host application can plug in its own
user store.  :class:`InMemoryUserDirectory` is provided for tests, the CLI,
and small deployments.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class User:
    """A user as seen by the authorization core.

    Attributes
    ----------
    user_id:
        Unique user identifier.
    role_id:
        The single role the user holds.
    team_id:
        The user's team, or ``None`` for users without a team.
    """

    user_id: int
    role_id: int
    team_id: int | None = None


class UserDirectory(Protocol):
    """Anything that can resolve a user id to a :class:`User`."""

    def get_user(self, user_id: int) -> User | None:
        ...


class InMemoryUserDirectory:
    """Thread-safe dict-backed :class:`UserDirectory`.

    Parameters
    ----------
    users:
        Optional initial users.
    """

    def __init__(self, users: list[User] | None = None) -> None:
        self._users: dict[int, User] = {u.user_id: u for u in users or []}
        self._lock = threading.Lock()

    def get_user(self, user_id: int) -> User | None:
        with self._lock:
            return self._users.get(user_id)

    def put(self, user: User) -> None:
        """Insert or replace a user."""
        with self._lock:
            self._users[user.user_id] = user

    def remove(self, user_id: int) -> None:
        """Remove a user if present."""
        with self._lock:
            self._users.pop(user_id, None)

    @classmethod
    def from_records(cls, records: list[dict[str, object]]) -> InMemoryUserDirectory:
        """Build a directory from ``{"id", "role_id", "team_id"}`` dicts.

        Raises
        ------
        ValueError
            If a record lacks ``id`` or ``role_id``.
        """
        users: list[User] = []
        for index, record in enumerate(records):
            try:
                user_id = int(record["id"])  # type: ignore[arg-type]
                role_id = int(record["role_id"])  # type: ignore[arg-type]
            except (KeyError, TypeError, ValueError) as exc:
                raise ValueError(f"Invalid user record at index {index}: {exc}") from exc
            team_raw = record.get("team_id")
            team_id = int(team_raw) if team_raw is not None else None  # type: ignore[arg-type]
            users.append(User(user_id=user_id, role_id=role_id, team_id=team_id))
        return cls(users)

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)
