"""Error taxonomy for the authorization core.

A deny is never an exception on the read path: :meth:`PermissionResolver.check`
returns a falsy :class:`~ops_authz.resolver.resolver.Decision`.  Everything
raised from this module means either "the caller misused the API" or "the
system could not determine an answer", and callers must be able to tell
those apart from "you may not".

Example
-------
>>> from ops_authz.errors import UserNotFound
>>> try:
...     raise UserNotFound(42)
... except UserNotFound as exc:
...     exc.user_id
42
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ops_authz.resolver.resolver import Decision


class AuthzError(Exception):
    """Base class for every error raised by ops-authz."""


# ---------------------------------------------------------------------------
# Resolver errors
# ---------------------------------------------------------------------------


class UserNotFound(AuthzError):
    """Raised when the directory has no user with the given identifier.

    Attributes
    ----------
    user_id:
        The identifier that could not be resolved.
    """

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"No user found with id={user_id!r}.")


class MissingContext(AuthzError):
    """Raised when an ``own``/``team`` scoped check has no resource context.

    This is a caller bug, not a policy outcome: scoped permissions can only
    be evaluated against a concrete object.
    """

    def __init__(self, resource: str, action: str, scope: str) -> None:
        self.resource = resource
        self.action = action
        self.scope = scope
        super().__init__(
            f"Permission {resource}:{action} is {scope!r}-scoped and needs a "
            "ResourceContext; use filter_for() for listing or creation."
        )


class InvalidScope(AuthzError, ValueError):
    """Raised when a scope value is not one of ``own``, ``team``, ``all``."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(
            f"Invalid scope {value!r}; expected one of 'own', 'team', 'all'."
        )


# ---------------------------------------------------------------------------
# Mutation errors
# ---------------------------------------------------------------------------


class UnknownReference(AuthzError, LookupError):
    """Raised when a batch item references an unknown role, resource or action.

    Attributes
    ----------
    kind:
        ``"role"``, ``"resource"`` or ``"action"``.
    reference:
        The identifier that was not found in the catalog.
    """

    def __init__(self, kind: str, reference: object) -> None:
        self.kind = kind
        self.reference = reference
        super().__init__(f"Unknown {kind} id={reference!r}.")


class AuditWriteFailed(AuthzError):
    """Raised when the audit trail cannot persist entries.

    A mutation whose audit write fails must not be committed.
    """


class StorageUnavailable(AuthzError):
    """Raised when the matrix store cannot read or commit.

    Not retried internally; retrying is the caller's responsibility.
    """


class AccessDenied(AuthzError):
    """Raised by self-protecting operations when the actor lacks the grant.

    Attributes
    ----------
    decision:
        The deny :class:`Decision` that caused the refusal.
    """

    def __init__(self, decision: Decision) -> None:
        self.decision = decision
        super().__init__(
            f"User {decision.user_id} may not {decision.action} "
            f"{decision.resource}: {decision.reason}"
        )


# ---------------------------------------------------------------------------
# Workflow errors
# ---------------------------------------------------------------------------


class InvalidTransition(AuthzError, ValueError):
    """Raised when a schedule cannot move from its current status."""

    def __init__(self, schedule_id: object, current: str, transition: str) -> None:
        self.schedule_id = schedule_id
        self.current = current
        self.transition = transition
        super().__init__(
            f"Schedule {schedule_id!r} cannot {transition}: "
            f"current status is {current!r}."
        )


class TransitionDenied(AccessDenied):
    """Raised when the actor lacks the permission a transition requires."""


class RejectionReasonRequired(AuthzError, ValueError):
    """Raised when a schedule is rejected without a non-empty reason."""

    def __init__(self, schedule_id: object) -> None:
        self.schedule_id = schedule_id
        super().__init__(f"Rejecting schedule {schedule_id!r} requires a reason.")


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


class MatrixConfigError(AuthzError, ValueError):
    """Raised when a matrix YAML document is malformed or invalid.

    Attributes
    ----------
    config_path:
        The path to the file that caused the error, if known.
    """

    def __init__(self, message: str, config_path: str | None = None) -> None:
        self.config_path = config_path
        prefix = f"[{config_path}] " if config_path else ""
        super().__init__(f"{prefix}{message}")
