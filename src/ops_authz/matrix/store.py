"""Permission matrix storage.

The store holds the live matrix and is the only place rows change.  Two
rules govern it:

- Readers never lock.  :meth:`MatrixStore.snapshot` hands out an immutable
  view of the rows as of the last commit; a commit builds a new dict and
  swaps the reference, so a reader sees either the old or the new matrix,
  never half of a batch.
- Writers are serialized.  :meth:`MatrixStore.transaction` holds a
  re-entrant writer lock for its whole body, so two overlapping batches
  commit one after the other.

A transaction commits in two phases.  :meth:`MatrixTransaction.prepare`
does everything that can fail in storage and leaves it undoable (for
:class:`FileMatrixStore`, swapping in the new file while keeping a backup of
the old one); :meth:`MatrixTransaction.commit` cannot fail and only
publishes the new snapshot.  Callers that must pair a commit with
another write (the audit trail) do that write between the two phases.

Example
-------
>>> store = InMemoryMatrixStore()
>>> with store.transaction() as txn:
...     txn.put(Permission(1, 2, 3, granted=True, scope=Scope.ALL))
...     txn.prepare()
...     txn.commit()
>>> store.snapshot().get(PermissionKey(1, 2, 3)).scope
<Scope.ALL: 'all'>
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

import yaml

from ops_authz.errors import InvalidScope, MatrixConfigError, StorageUnavailable
from ops_authz.matrix.models import Permission, PermissionKey, Scope, parse_scope

logger = logging.getLogger(__name__)

_FILE_VERSION = "1.0"


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class MatrixSnapshot:
    """Immutable view of the matrix at one commit.

    Parameters
    ----------
    rows:
        Mapping of key to row.  The snapshot keeps a read-only proxy, so
        the caller must not mutate the dict afterwards.
    version:
        Monotonic commit counter of the store that produced the snapshot.
    """

    def __init__(self, rows: dict[PermissionKey, Permission], version: int) -> None:
        self._rows: Mapping[PermissionKey, Permission] = MappingProxyType(rows)
        self._version = version

    def get(self, key: PermissionKey) -> Permission | None:
        return self._rows.get(key)

    def rows(self) -> list[Permission]:
        """Return every row sorted by key."""
        return [self._rows[k] for k in sorted(self._rows)]

    def rows_for_role(self, role_id: int) -> list[Permission]:
        return [p for p in self.rows() if p.role_id == role_id]

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, key: object) -> bool:
        return key in self._rows


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------


class MatrixTransaction:
    """A staged set of row changes against one store.

    Obtained from :meth:`MatrixStore.transaction`; never constructed
    directly.  Changes are invisible to readers until :meth:`commit`.
    """

    def __init__(self, store: MatrixStore, base: dict[PermissionKey, Permission]) -> None:
        self._store = store
        self._base = base
        self._staged: dict[PermissionKey, Permission] = {}
        self._token: object = None
        self._prepared = False
        self._closed = False

    def get(self, key: PermissionKey) -> Permission | None:
        """Return the row for ``key`` including changes staged so far."""
        if key in self._staged:
            return self._staged[key]
        return self._base.get(key)

    def put(self, permission: Permission) -> None:
        """Stage ``permission`` as the new row for its key."""
        self._assert_open()
        if self._prepared:
            raise RuntimeError("Cannot stage changes after prepare().")
        self._staged[permission.key] = permission

    @property
    def staged(self) -> list[Permission]:
        return [self._staged[k] for k in sorted(self._staged)]

    def prepare(self) -> None:
        """Run the fallible storage work for this transaction.

        Raises
        ------
        StorageUnavailable
            If the backend cannot persist the new matrix.
        """
        self._assert_open()
        rows = {**self._base, **self._staged}
        self._token = self._store._prepare(rows)
        self._prepared = True

    def commit(self) -> int:
        """Publish the prepared changes and return the new store version."""
        self._assert_open()
        if not self._prepared:
            raise RuntimeError("commit() requires a successful prepare().")
        version = self._store._commit({**self._base, **self._staged}, self._token)
        self._closed = True
        return version

    def rollback(self) -> None:
        """Discard staged changes.  Safe to call more than once."""
        if self._closed:
            return
        if self._prepared:
            self._store._abort(self._token)
        self._staged.clear()
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def _assert_open(self) -> None:
        if self._closed:
            raise RuntimeError("Transaction is already closed.")


# ---------------------------------------------------------------------------
# Store base
# ---------------------------------------------------------------------------


class MatrixStore(ABC):
    """Base class for matrix stores.

    Subclasses implement the three persistence hooks; snapshot handling,
    locking and version counting live here.

    Parameters
    ----------
    rows:
        Initial rows.  A later row with the same key replaces an earlier one.
    """

    def __init__(self, rows: list[Permission] | None = None) -> None:
        initial: dict[PermissionKey, Permission] = {}
        for row in rows or []:
            initial[row.key] = row
        self._rows = initial
        self._version = 0
        self._snapshot = MatrixSnapshot(dict(initial), 0)
        self._write_lock = threading.RLock()

    def snapshot(self) -> MatrixSnapshot:
        """Return the matrix as of the last commit.  Never blocks."""
        return self._snapshot

    def get(self, key: PermissionKey) -> Permission | None:
        return self._snapshot.get(key)

    @contextmanager
    def transaction(self) -> Iterator[MatrixTransaction]:
        """Open a serialized write transaction.

        Anything not committed by the end of the ``with`` block is rolled
        back, including when the block exits through ``KeyboardInterrupt``
        or another ``BaseException``.
        """
        with self._write_lock:
            txn = MatrixTransaction(self, dict(self._rows))
            try:
                yield txn
            except BaseException:
                if not txn.closed:
                    logger.warning("Rolling back matrix transaction (store version %d)", self._version)
                txn.rollback()
                raise
            else:
                txn.rollback()

    def statistics(self) -> dict[str, object]:
        """Return row counts by grant, scope and role."""
        rows = self._snapshot.rows()
        by_scope: dict[str, int] = {s.value: 0 for s in Scope}
        by_role: dict[int, int] = {}
        granted = 0
        for row in rows:
            if not row.granted:
                continue
            granted += 1
            by_scope[row.scope.value] += 1
            by_role[row.role_id] = by_role.get(row.role_id, 0) + 1
        return {
            "total_rows": len(rows),
            "granted_rows": granted,
            "denied_rows": len(rows) - granted,
            "granted_by_scope": by_scope,
            "granted_by_role": by_role,
            "version": self._snapshot.version,
        }

    @property
    def version(self) -> int:
        return self._version

    # ------------------------------------------------------------------
    # Internal commit protocol
    # ------------------------------------------------------------------

    def _commit(self, rows: dict[PermissionKey, Permission], token: object) -> int:
        self._persist_commit(token)
        self._rows = rows
        self._version += 1
        self._snapshot = MatrixSnapshot(dict(rows), self._version)
        logger.debug("Matrix committed: version=%d rows=%d", self._version, len(rows))
        return self._version

    def _prepare(self, rows: dict[PermissionKey, Permission]) -> object:
        return self._persist_prepare(rows)

    def _abort(self, token: object) -> None:
        self._persist_abort(token)

    @abstractmethod
    def _persist_prepare(self, rows: dict[PermissionKey, Permission]) -> object:
        """Persist ``rows`` durably in a way ``_persist_abort`` can undo; return a token."""

    @abstractmethod
    def _persist_commit(self, token: object) -> None:
        """Release what ``_persist_prepare`` kept for undo.  Must not raise."""

    @abstractmethod
    def _persist_abort(self, token: object) -> None:
        """Restore the state from before ``_persist_prepare``."""


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class InMemoryMatrixStore(MatrixStore):
    """Process-local store; nothing outlives the interpreter."""

    def _persist_prepare(self, rows: dict[PermissionKey, Permission]) -> object:
        return None

    def _persist_commit(self, token: object) -> None:
        return None

    def _persist_abort(self, token: object) -> None:
        return None


@dataclass(frozen=True)
class _PreparedFile:
    """Undo information for a file swapped in by ``prepare``."""

    backup: Path | None


class FileMatrixStore(MatrixStore):
    """Store persisted as a YAML document.

    Every commit rewrites the whole file.  ``prepare`` writes and syncs a
    sibling temporary file, copies the current file aside and atomically
    replaces the target; ``abort`` moves the copy back, ``commit`` deletes
    it.  The matrix is small (roles x resources x actions), so whole-file
    rewrites are acceptable.

    Parameters
    ----------
    path:
        Location of the YAML file.  Loaded if it exists.
    rows:
        Initial rows used only when ``path`` does not exist yet.

    Raises
    ------
    StorageUnavailable
        If the file exists but cannot be read.
    MatrixConfigError
        If the file is not a valid matrix document.
    """

    def __init__(self, path: Path, rows: list[Permission] | None = None) -> None:
        self._path = Path(path)
        if self._path.exists():
            rows = _read_matrix_file(self._path)
            logger.info("Loaded %d matrix rows from %s", len(rows), self._path)
        super().__init__(rows)

    @property
    def path(self) -> Path:
        return self._path

    def _persist_prepare(self, rows: dict[PermissionKey, Permission]) -> object:
        document = {
            "version": _FILE_VERSION,
            "permissions": [rows[k].to_dict() for k in sorted(rows)],
        }
        tmp_path: Path | None = None
        backup: Path | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                yaml.safe_dump(document, fh, sort_keys=False)
                fh.flush()
                os.fsync(fh.fileno())
            if self._path.exists():
                fd, backup_name = tempfile.mkstemp(
                    prefix=f".{self._path.name}.", suffix=".bak", dir=self._path.parent
                )
                os.close(fd)
                backup = Path(backup_name)
                shutil.copy2(self._path, backup)
            os.replace(tmp_path, self._path)
        except OSError as exc:
            for leftover in (tmp_path, backup):
                if leftover is not None:
                    leftover.unlink(missing_ok=True)
            raise StorageUnavailable(f"Cannot write matrix to {self._path}: {exc}") from exc
        return _PreparedFile(backup=backup)

    def _persist_commit(self, token: object) -> None:
        prepared = _prepared(token)
        if prepared.backup is None:
            return
        try:
            prepared.backup.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove matrix backup %s: %s", prepared.backup, exc)

    def _persist_abort(self, token: object) -> None:
        prepared = _prepared(token)
        try:
            if prepared.backup is None:
                self._path.unlink(missing_ok=True)
            else:
                os.replace(prepared.backup, self._path)
        except OSError as exc:
            logger.error("Could not restore matrix file %s after rollback: %s", self._path, exc)


def _prepared(token: object) -> _PreparedFile:
    if not isinstance(token, _PreparedFile):
        raise TypeError(f"Expected a prepared file token; got {type(token).__name__}.")
    return token


def _read_matrix_file(path: Path) -> list[Permission]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except OSError as exc:
        raise StorageUnavailable(f"Cannot read matrix file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise MatrixConfigError(f"Failed to parse YAML: {exc}", str(path)) from exc

    if not isinstance(raw, dict) or not isinstance(raw.get("permissions", []), list):
        raise MatrixConfigError("Matrix file must be a mapping with a 'permissions' list.", str(path))

    rows: list[Permission] = []
    for index, item in enumerate(raw.get("permissions", [])):
        try:
            rows.append(
                Permission(
                    role_id=int(item["role_id"]),
                    resource_id=int(item["resource_id"]),
                    action_id=int(item["action_id"]),
                    granted=bool(item["granted"]),
                    scope=parse_scope(item["scope"]),
                )
            )
        except InvalidScope:
            # Surfaces as-is; a stored unknown scope is never read as a deny.
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise MatrixConfigError(f"Invalid permission at index {index}: {exc}", str(path)) from exc
    return rows
