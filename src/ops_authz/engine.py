"""AuthorizationEngine: one object wiring catalog, store, resolver, mutator,
audit trail and workflow guard together.

The engine is a convenience facade.  Every component is also usable on its
own; the engine just builds them consistently from an :class:`AuthzConfig`
or a matrix YAML document.

Example
-------
::

    from ops_authz import AuthorizationEngine
    engine = AuthorizationEngine.default()
    engine.check(3, "read", "schedules", ResourceContext(owner_id=3))
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import cast

from ops_authz.audit.logger import JsonlAuditTrail
from ops_authz.audit.search import AuditFilter
from ops_authz.audit.trail import AuditEntry, AuditTrail, InMemoryAuditTrail
from ops_authz.config import AuthzConfig
from ops_authz.directory.catalog import Catalog
from ops_authz.directory.users import InMemoryUserDirectory, UserDirectory
from ops_authz.matrix.loader import MatrixDocument, MatrixLoader
from ops_authz.matrix.models import PermissionUpdate
from ops_authz.matrix.mutator import BatchResult, MatrixMutator
from ops_authz.matrix.store import FileMatrixStore, InMemoryMatrixStore, MatrixStore
from ops_authz.resolver.resolver import Decision, PermissionResolver
from ops_authz.resolver.scope import ListFilter, ResourceContext
from ops_authz.templates.default_matrix import get_template
from ops_authz.workflow.guard import WorkflowGuard

logger = logging.getLogger(__name__)


class AuthorizationEngine:
    """Facade over the authorization core.

    Parameters
    ----------
    catalog:
        Role, resource and action vocabulary.
    directory:
        User lookup.
    store:
        The permission matrix.
    audit:
        Audit trail for matrix mutations.  Defaults to in-memory.
    schedules_resource:
        Catalog name the workflow guard checks against.
    """

    def __init__(
        self,
        catalog: Catalog,
        directory: UserDirectory,
        store: MatrixStore,
        audit: AuditTrail | None = None,
        schedules_resource: str = "schedules",
    ) -> None:
        self._catalog = catalog
        self._directory = directory
        self._store = store
        self._audit = audit if audit is not None else InMemoryAuditTrail()
        self._resolver = PermissionResolver(directory, catalog, store)
        self._mutator = MatrixMutator(self._resolver, store, self._audit)
        self._guard = WorkflowGuard(self._resolver, resource=schedules_resource)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_config(cls, config: AuthzConfig) -> AuthorizationEngine:
        """Build an engine from a validated configuration.

        The seed document comes from ``config.matrix.seed_path`` or, when
        unset, the bundled ``default`` template.  When
        ``config.matrix.store_path`` is set the matrix is persisted there
        and an existing file takes precedence over the seed's permissions.

        Raises
        ------
        FileNotFoundError
            If ``seed_path`` does not exist.
        MatrixConfigError
            If the seed or the stored matrix is invalid.
        StorageUnavailable
            If the stored matrix cannot be read.
        """
        loader = MatrixLoader(strict=config.matrix.strict)
        if config.matrix.seed_path is not None:
            document = loader.load(config.matrix.seed_path)
        else:
            document = loader.load_from_yaml_string(get_template("default"), config_path="<default>")

        store: MatrixStore
        if config.matrix.store_path is not None:
            store = FileMatrixStore(config.matrix.store_path, rows=document.permissions)
        else:
            store = InMemoryMatrixStore(document.permissions)

        audit: AuditTrail
        if config.audit.backend == "jsonl":
            audit = JsonlAuditTrail(config.audit.log_path)
        else:
            audit = InMemoryAuditTrail()

        logger.info(
            "Authorization engine ready: %d roles, %d matrix rows, audit=%s",
            len(document.catalog.roles),
            len(store.snapshot()),
            config.audit.backend,
        )
        return cls(
            catalog=document.catalog,
            directory=InMemoryUserDirectory(document.users),
            store=store,
            audit=audit,
            schedules_resource=config.workflow.resource,
        )

    @classmethod
    def from_document(cls, document: MatrixDocument, audit: AuditTrail | None = None) -> AuthorizationEngine:
        """Build an in-memory engine from a parsed matrix document."""
        return cls(
            catalog=document.catalog,
            directory=InMemoryUserDirectory(document.users),
            store=InMemoryMatrixStore(document.permissions),
            audit=audit,
        )

    @classmethod
    def from_yaml(cls, path: str | Path, audit: AuditTrail | None = None) -> AuthorizationEngine:
        """Build an in-memory engine from a matrix YAML file."""
        return cls.from_document(MatrixLoader().load(path), audit=audit)

    @classmethod
    def default(cls) -> AuthorizationEngine:
        """Build an in-memory engine from the bundled ``default`` seed."""
        return cls.from_config(AuthzConfig())

    # ------------------------------------------------------------------
    # Delegates
    # ------------------------------------------------------------------

    def check(
        self,
        user_id: int,
        action: str,
        resource: str,
        context: ResourceContext | None = None,
    ) -> Decision:
        """See :meth:`PermissionResolver.check`."""
        return self._resolver.check(user_id, action, resource, context)

    def filter_for(self, user_id: int, action: str, resource: str) -> ListFilter:
        """See :meth:`PermissionResolver.filter_for`."""
        return self._resolver.filter_for(user_id, action, resource)

    def apply_batch(
        self,
        actor_user_id: int,
        updates: list[PermissionUpdate | dict[str, object]],
    ) -> BatchResult:
        """See :meth:`MatrixMutator.apply_batch`."""
        return self._mutator.apply_batch(actor_user_id, updates)

    def query_audit(self, filters: AuditFilter | None = None) -> list[AuditEntry]:
        """See :meth:`AuditTrail.query`."""
        return self._audit.query(filters)

    def matrix_rows(self) -> list[dict[str, object]]:
        """Return every matrix row with catalog names resolved."""
        rows: list[dict[str, object]] = []
        for row in self._store.snapshot().rows():
            rows.append(
                {
                    "role": self._catalog.role(row.role_id).name,
                    "resource": self._catalog.resource(row.resource_id).name,
                    "action": self._catalog.action(row.action_id).name,
                    "granted": row.granted,
                    "scope": row.scope.value,
                    "role_id": row.role_id,
                    "resource_id": row.resource_id,
                    "action_id": row.action_id,
                }
            )
        return rows

    def statistics(self) -> dict[str, object]:
        """Return store statistics with role ids replaced by role names."""
        stats = self._store.statistics()
        by_role = cast("dict[int, int]", stats["granted_by_role"])
        stats["granted_by_role"] = {
            self._catalog.role(role_id).name: count for role_id, count in by_role.items()
        }
        return stats

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def directory(self) -> UserDirectory:
        return self._directory

    @property
    def store(self) -> MatrixStore:
        return self._store

    @property
    def audit(self) -> AuditTrail:
        return self._audit

    @property
    def resolver(self) -> PermissionResolver:
        return self._resolver

    @property
    def mutator(self) -> MatrixMutator:
        return self._mutator

    @property
    def guard(self) -> WorkflowGuard:
        return self._guard

    def __repr__(self) -> str:
        return f"AuthorizationEngine(roles={len(self._catalog.roles)}, rows={len(self._store.snapshot())})"
