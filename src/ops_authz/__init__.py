"""ops-authz: role and scope based authorization core.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import ops_authz as authz
>>> authz.__version__
'0.1.0'
>>> engine = authz.AuthorizationEngine.default()
>>> bool(engine.check(3, "read", "schedules", authz.ResourceContext(owner_id=3)))
True
"""
from __future__ import annotations

__version__: str = "0.1.0"

from ops_authz.engine import AuthorizationEngine

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
from ops_authz.errors import (
    AccessDenied,
    AuditWriteFailed,
    AuthzError,
    InvalidScope,
    InvalidTransition,
    MatrixConfigError,
    MissingContext,
    RejectionReasonRequired,
    StorageUnavailable,
    TransitionDenied,
    UnknownReference,
    UserNotFound,
)

# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------
from ops_authz.directory.catalog import Action, Catalog, Resource, Role
from ops_authz.directory.users import InMemoryUserDirectory, User, UserDirectory

# ---------------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------------
from ops_authz.matrix.models import Permission, PermissionKey, PermissionUpdate, Scope
from ops_authz.matrix.store import FileMatrixStore, InMemoryMatrixStore, MatrixStore
from ops_authz.matrix.loader import MatrixDocument, MatrixLoader
from ops_authz.matrix.mutator import BatchResult, FailedUpdate, MatrixMutator

# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------
from ops_authz.resolver.resolver import Decision, PermissionResolver
from ops_authz.resolver.scope import FilterKind, ListFilter, ResourceContext

# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------
from ops_authz.audit.trail import AuditEntry, AuditTrail, InMemoryAuditTrail
from ops_authz.audit.logger import JsonlAuditTrail
from ops_authz.audit.search import AuditFilter

# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------
from ops_authz.workflow.guard import WorkflowGuard
from ops_authz.workflow.schedule import Schedule, ScheduleHistoryEntry, ScheduleStatus

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
from ops_authz.config import AuthzConfig, ConfigLoader

__all__ = [
    "__version__",
    "AccessDenied",
    "Action",
    "AuditEntry",
    "AuditFilter",
    "AuditTrail",
    "AuditWriteFailed",
    "AuthorizationEngine",
    "AuthzConfig",
    "AuthzError",
    "BatchResult",
    "Catalog",
    "ConfigLoader",
    "Decision",
    "FailedUpdate",
    "FileMatrixStore",
    "FilterKind",
    "InMemoryAuditTrail",
    "InMemoryMatrixStore",
    "InMemoryUserDirectory",
    "InvalidScope",
    "InvalidTransition",
    "JsonlAuditTrail",
    "ListFilter",
    "MatrixConfigError",
    "MatrixDocument",
    "MatrixLoader",
    "MatrixMutator",
    "MatrixStore",
    "MissingContext",
    "Permission",
    "PermissionKey",
    "PermissionResolver",
    "PermissionUpdate",
    "RejectionReasonRequired",
    "Resource",
    "ResourceContext",
    "Role",
    "Schedule",
    "ScheduleHistoryEntry",
    "ScheduleStatus",
    "Scope",
    "StorageUnavailable",
    "TransitionDenied",
    "UnknownReference",
    "User",
    "UserDirectory",
    "UserNotFound",
    "WorkflowGuard",
]
