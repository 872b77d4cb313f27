"""Permission and scope resolution."""
from __future__ import annotations

from ops_authz.resolver.resolver import CheckRequest, Decision, PermissionResolver
from ops_authz.resolver.scope import (
    FilterKind,
    ListFilter,
    ResourceContext,
    filter_for_scope,
    scope_allows,
)

__all__ = [
    "CheckRequest",
    "Decision",
    "FilterKind",
    "ListFilter",
    "PermissionResolver",
    "ResourceContext",
    "filter_for_scope",
    "scope_allows",
]
