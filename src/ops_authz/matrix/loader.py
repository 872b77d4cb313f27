"""YAML loader for catalog, matrix and directory seed documents.

MatrixLoader reads a single YAML document describing the role/resource/
action catalog, the initial permission matrix and, optionally, a set of
users.  Permission rows may reference catalog entries by name (the form
humans write) or by id (the form :class:`~ops_authz.matrix.store.FileMatrixStore`
persists).

Schema
------
::

    version: "1.0"
    roles:
      - {id: 1, name: admin, hierarchy_level: 3}
      - {id: 2, name: employee, hierarchy_level: 1}
    resources:
      - {id: 1, name: schedules}
    actions:
      - {id: 1, name: read}
      - {id: 2, name: update}
    permissions:
      - {role: admin, resource: schedules, action: read, scope: all}
      - {role: employee, resource: schedules, action: update, scope: own}
      - {role_id: 2, resource_id: 1, action_id: 1, scope: own, granted: false}
    users:
      - {id: 10, role: employee, team_id: 7}

``granted`` defaults to ``true``.

Example
-------
::

    loader = MatrixLoader()
    document = loader.load("/etc/ops-authz/rbac.yaml")
    store = InMemoryMatrixStore(document.permissions)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from ops_authz.directory.catalog import Action, Catalog, Resource, Role
from ops_authz.directory.users import User
from ops_authz.errors import MatrixConfigError
from ops_authz.matrix.models import Permission, PermissionKey, parse_scope

logger = logging.getLogger(__name__)

_SUPPORTED_VERSIONS: frozenset[str] = frozenset(["1.0", "1"])


@dataclass
class MatrixDocument:
    """Parsed contents of a matrix YAML document."""

    catalog: Catalog
    permissions: list[Permission] = field(default_factory=list)
    users: list[User] = field(default_factory=list)


class MatrixLoader:
    """Loads :class:`MatrixDocument` instances from YAML files, strings or dicts.

    Parameters
    ----------
    strict:
        When ``True``, unknown top-level keys are an error.  Default
        ``False`` (unknown keys are ignored).
    """

    _KNOWN_TOP_KEYS: frozenset[str] = frozenset(
        ["version", "roles", "resources", "actions", "permissions", "users", "metadata", "description"]
    )

    def __init__(self, strict: bool = False) -> None:
        self._strict = strict

    def load(self, config_path: str | Path) -> MatrixDocument:
        """Load a matrix document from a YAML file on disk.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        MatrixConfigError
            If the file cannot be parsed or is structurally invalid.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Matrix config not found: {config_path}")

        try:
            with config_path.open("r", encoding="utf-8") as fh:
                raw: dict[str, object] = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise MatrixConfigError(f"Failed to parse YAML: {exc}", str(config_path)) from exc

        return self._build(raw, config_path=str(config_path))

    def load_from_dict(
        self,
        config: dict[str, object],
        config_path: str | None = None,
    ) -> MatrixDocument:
        """Load a matrix document from an already-parsed dictionary."""
        return self._build(config, config_path=config_path)

    def load_from_yaml_string(
        self,
        yaml_string: str,
        config_path: str | None = None,
    ) -> MatrixDocument:
        """Load a matrix document from a YAML string."""
        try:
            raw: dict[str, object] = yaml.safe_load(yaml_string) or {}
        except yaml.YAMLError as exc:
            raise MatrixConfigError(f"Failed to parse YAML string: {exc}", config_path) from exc
        return self._build(raw, config_path=config_path)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _build(self, raw: dict[str, object], config_path: str | None) -> MatrixDocument:
        self._validate_structure(raw, config_path)

        version = str(raw.get("version", "1.0"))
        if version not in _SUPPORTED_VERSIONS:
            raise MatrixConfigError(
                f"Unsupported config version {version!r}. "
                f"Supported: {sorted(_SUPPORTED_VERSIONS)}.",
                config_path,
            )

        try:
            catalog = Catalog(
                roles=[
                    Role(
                        role_id=int(r["id"]),
                        name=str(r["name"]),
                        hierarchy_level=int(r.get("hierarchy_level", r.get("hierarchy", 0))),
                        display_name=str(r.get("display_name", "")),
                    )
                    for r in _section(raw, "roles")
                ],
                resources=[
                    Resource(int(r["id"]), str(r["name"]), str(r.get("display_name", "")))
                    for r in _section(raw, "resources")
                ],
                actions=[
                    Action(int(a["id"]), str(a["name"]), str(a.get("display_name", "")))
                    for a in _section(raw, "actions")
                ],
            )
        except (LookupError, TypeError, ValueError) as exc:
            raise MatrixConfigError(f"Invalid catalog: {exc}", config_path) from exc

        permissions: list[Permission] = []
        seen: dict[PermissionKey, int] = {}
        for index, item in enumerate(_section(raw, "permissions")):
            try:
                permission = self._build_permission(item, catalog)
            except (LookupError, TypeError, ValueError) as exc:
                raise MatrixConfigError(f"Error in permission at index {index}: {exc}", config_path) from exc
            if permission.key in seen:
                raise MatrixConfigError(
                    f"Permission at index {index} repeats the role/resource/action "
                    f"of index {seen[permission.key]}.",
                    config_path,
                )
            seen[permission.key] = index
            permissions.append(permission)

        users: list[User] = []
        for index, item in enumerate(_section(raw, "users")):
            try:
                role_id = _resolve_id(item, "role", catalog)
                team_raw = item.get("team_id")
                users.append(
                    User(
                        user_id=int(item["id"]),
                        role_id=role_id,
                        team_id=int(team_raw) if team_raw is not None else None,
                    )
                )
            except (LookupError, TypeError, ValueError) as exc:
                raise MatrixConfigError(f"Error in user at index {index}: {exc}", config_path) from exc

        logger.info(
            "Loaded matrix from %s: %d roles, %d resources, %d actions, %d permissions, %d users",
            config_path or "<dict>",
            len(catalog.roles),
            len(catalog.resources),
            len(catalog.actions),
            len(permissions),
            len(users),
        )
        return MatrixDocument(catalog=catalog, permissions=permissions, users=users)

    @staticmethod
    def _build_permission(item: dict[str, object], catalog: Catalog) -> Permission:
        granted = item.get("granted", True)
        if not isinstance(granted, bool):
            raise ValueError(f"'granted' must be a boolean; got {granted!r}")
        return Permission(
            role_id=_resolve_id(item, "role", catalog),
            resource_id=_resolve_id(item, "resource", catalog),
            action_id=_resolve_id(item, "action", catalog),
            granted=granted,
            scope=parse_scope(item.get("scope")),
        )

    def _validate_structure(self, raw: dict[str, object], config_path: str | None) -> None:
        if not isinstance(raw, dict):
            raise MatrixConfigError("Matrix config must be a YAML mapping (dict).", config_path)

        for key in ("roles", "resources", "actions", "permissions", "users"):
            if key in raw and not isinstance(raw[key], list):
                raise MatrixConfigError(f"Matrix config '{key}' must be a list.", config_path)

        if self._strict:
            unknown_keys = set(raw.keys()) - self._KNOWN_TOP_KEYS
            if unknown_keys:
                raise MatrixConfigError(
                    f"Unknown top-level keys: {sorted(unknown_keys)}. "
                    f"Known keys: {sorted(self._KNOWN_TOP_KEYS)}.",
                    config_path,
                )


def _section(raw: dict[str, object], key: str) -> list[dict[str, object]]:
    return list(raw.get(key) or [])  # type: ignore[call-overload]


def _resolve_id(item: dict[str, object], kind: str, catalog: Catalog) -> int:
    """Return the catalog id named by ``<kind>_id`` or ``<kind>`` in ``item``."""
    if f"{kind}_id" in item:
        ident = int(item[f"{kind}_id"])  # type: ignore[call-overload]
        getattr(catalog, kind)(ident)
        return ident

    name = item.get(kind)
    if isinstance(name, int) and not isinstance(name, bool):
        getattr(catalog, kind)(name)
        return name

    entry = getattr(catalog, f"{kind}_by_name")(str(name))
    if entry is None:
        raise ValueError(f"Unknown {kind} {name!r}")
    return int(getattr(entry, f"{kind}_id"))
