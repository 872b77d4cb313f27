"""Permission matrix: row types, storage and YAML loading.

Import the batched mutator from :mod:`ops_authz.matrix.mutator`; it depends on
the resolver and audit packages, which import the row types defined here.
"""
from __future__ import annotations

from ops_authz.matrix.models import Permission, PermissionKey, PermissionUpdate, Scope, parse_scope
from ops_authz.matrix.store import (
    FileMatrixStore,
    InMemoryMatrixStore,
    MatrixSnapshot,
    MatrixStore,
    MatrixTransaction,
)
from ops_authz.matrix.loader import MatrixDocument, MatrixLoader

__all__ = [
    "FileMatrixStore",
    "InMemoryMatrixStore",
    "MatrixDocument",
    "MatrixLoader",
    "MatrixSnapshot",
    "MatrixStore",
    "MatrixTransaction",
    "Permission",
    "PermissionKey",
    "PermissionUpdate",
    "Scope",
    "parse_scope",
]
