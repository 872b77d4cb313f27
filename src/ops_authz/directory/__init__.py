"""Catalog and user directory collaborators."""
from __future__ import annotations

from ops_authz.directory.catalog import Action, Catalog, Resource, Role
from ops_authz.directory.users import InMemoryUserDirectory, User, UserDirectory

__all__ = [
    "Action",
    "Catalog",
    "InMemoryUserDirectory",
    "Resource",
    "Role",
    "User",
    "UserDirectory",
]
