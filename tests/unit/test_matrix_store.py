"""Tests for MatrixStore backends and transactions."""
from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from ops_authz.errors import InvalidScope, MatrixConfigError, StorageUnavailable
from ops_authz.matrix.models import Permission, PermissionKey, Scope
from ops_authz.matrix.store import FileMatrixStore, InMemoryMatrixStore


def _row(role: int = 1, resource: int = 2, action: int = 3, granted: bool = True, scope: Scope = Scope.OWN) -> Permission:
    return Permission(role, resource, action, granted, scope)


@pytest.fixture()
def store() -> InMemoryMatrixStore:
    return InMemoryMatrixStore([_row(), _row(action=4, scope=Scope.ALL)])


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class TestSnapshot:
    def test_initial_rows(self, store: InMemoryMatrixStore) -> None:
        assert len(store.snapshot()) == 2
        assert store.get(PermissionKey(1, 2, 3)) == _row()

    def test_later_duplicate_wins_on_init(self) -> None:
        store = InMemoryMatrixStore([_row(), _row(scope=Scope.TEAM)])
        assert store.get(PermissionKey(1, 2, 3)).scope is Scope.TEAM

    def test_snapshot_is_read_only(self, store: InMemoryMatrixStore) -> None:
        snapshot = store.snapshot()
        with pytest.raises(TypeError):
            snapshot._rows[PermissionKey(9, 9, 9)] = _row()  # type: ignore[index]

    def test_old_snapshot_unchanged_after_commit(self, store: InMemoryMatrixStore) -> None:
        before = store.snapshot()
        with store.transaction() as txn:
            txn.put(_row(scope=Scope.ALL))
            txn.prepare()
            txn.commit()
        assert before.get(PermissionKey(1, 2, 3)).scope is Scope.OWN
        assert store.snapshot().get(PermissionKey(1, 2, 3)).scope is Scope.ALL

    def test_rows_for_role(self, store: InMemoryMatrixStore) -> None:
        assert len(store.snapshot().rows_for_role(1)) == 2
        assert store.snapshot().rows_for_role(2) == []

    def test_contains(self, store: InMemoryMatrixStore) -> None:
        assert PermissionKey(1, 2, 3) in store.snapshot()


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TestTransaction:
    def test_commit_bumps_version(self, store: InMemoryMatrixStore) -> None:
        with store.transaction() as txn:
            txn.put(_row(role=5))
            txn.prepare()
            assert txn.commit() == 1
        assert store.version == 1
        assert store.snapshot().version == 1

    def test_staged_visible_in_transaction_only(self, store: InMemoryMatrixStore) -> None:
        with store.transaction() as txn:
            txn.put(_row(role=5))
            assert txn.get(PermissionKey(5, 2, 3)) is not None
            assert store.get(PermissionKey(5, 2, 3)) is None
        assert store.get(PermissionKey(5, 2, 3)) is None

    def test_uncommitted_block_rolls_back(self, store: InMemoryMatrixStore) -> None:
        with store.transaction() as txn:
            txn.put(_row(role=5))
            txn.prepare()
        assert store.get(PermissionKey(5, 2, 3)) is None
        assert store.version == 0

    def test_exception_rolls_back(self, store: InMemoryMatrixStore) -> None:
        with pytest.raises(RuntimeError, match="boom"):
            with store.transaction() as txn:
                txn.put(_row(role=5))
                txn.prepare()
                raise RuntimeError("boom")
        assert store.get(PermissionKey(5, 2, 3)) is None

    def test_keyboard_interrupt_rolls_back(self, store: InMemoryMatrixStore) -> None:
        with pytest.raises(KeyboardInterrupt):
            with store.transaction() as txn:
                txn.put(_row(role=5))
                raise KeyboardInterrupt
        assert store.get(PermissionKey(5, 2, 3)) is None

    def test_commit_requires_prepare(self, store: InMemoryMatrixStore) -> None:
        with store.transaction() as txn:
            txn.put(_row(role=5))
            with pytest.raises(RuntimeError, match="prepare"):
                txn.commit()

    def test_put_after_prepare_rejected(self, store: InMemoryMatrixStore) -> None:
        with store.transaction() as txn:
            txn.prepare()
            with pytest.raises(RuntimeError):
                txn.put(_row(role=5))

    def test_closed_after_commit(self, store: InMemoryMatrixStore) -> None:
        with store.transaction() as txn:
            txn.prepare()
            txn.commit()
            assert txn.closed
            with pytest.raises(RuntimeError, match="closed"):
                txn.put(_row(role=5))

    def test_rollback_idempotent(self, store: InMemoryMatrixStore) -> None:
        with store.transaction() as txn:
            txn.rollback()
            txn.rollback()
            assert txn.closed


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


class TestStatistics:
    def test_counts(self) -> None:
        store = InMemoryMatrixStore(
            [_row(), _row(action=4, scope=Scope.ALL), _row(role=2, granted=False)]
        )
        stats = store.statistics()
        assert stats["total_rows"] == 3
        assert stats["granted_rows"] == 2
        assert stats["denied_rows"] == 1
        assert stats["granted_by_scope"] == {"own": 1, "team": 0, "all": 1}
        assert stats["granted_by_role"] == {1: 2}
        assert stats["version"] == 0


# ---------------------------------------------------------------------------
# File backend
# ---------------------------------------------------------------------------


class TestFileMatrixStore:
    def test_seed_rows_used_when_file_missing(self, tmp_path: Path) -> None:
        store = FileMatrixStore(tmp_path / "matrix.yaml", rows=[_row()])
        assert len(store.snapshot()) == 1
        assert not (tmp_path / "matrix.yaml").exists()

    def test_commit_writes_file(self, tmp_path: Path) -> None:
        path = tmp_path / "matrix.yaml"
        store = FileMatrixStore(path, rows=[_row()])
        with store.transaction() as txn:
            txn.put(_row(scope=Scope.TEAM))
            txn.prepare()
            txn.commit()
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert data["version"] == "1.0"
        assert data["permissions"][0]["scope"] == "team"

    def test_reload_from_file_wins_over_seed(self, tmp_path: Path) -> None:
        path = tmp_path / "matrix.yaml"
        store = FileMatrixStore(path, rows=[_row()])
        with store.transaction() as txn:
            txn.put(_row(role=7, scope=Scope.ALL))
            txn.prepare()
            txn.commit()
        reloaded = FileMatrixStore(path, rows=[])
        assert reloaded.get(PermissionKey(7, 2, 3)).scope is Scope.ALL
        assert len(reloaded.snapshot()) == 2

    def test_rollback_leaves_no_temp_file(self, tmp_path: Path) -> None:
        path = tmp_path / "matrix.yaml"
        store = FileMatrixStore(path, rows=[_row()])
        with store.transaction() as txn:
            txn.put(_row(role=7))
            txn.prepare()
        assert list(tmp_path.iterdir()) == []

    def test_prepare_failure_raises_storage_unavailable(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        import ops_authz.matrix.store as store_module

        def _fail(*args: object, **kwargs: object) -> None:
            raise OSError("disk full")

        store = FileMatrixStore(tmp_path / "matrix.yaml", rows=[_row()])
        monkeypatch.setattr(store_module.tempfile, "mkstemp", _fail)
        with pytest.raises(StorageUnavailable, match="disk full"):
            with store.transaction() as txn:
                txn.put(_row(role=7))
                txn.prepare()
        assert store.get(PermissionKey(7, 2, 3)) is None

    def test_commit_leaves_no_backup(self, tmp_path: Path) -> None:
        path = tmp_path / "matrix.yaml"
        store = FileMatrixStore(path, rows=[_row()])
        for role in (7, 8):
            with store.transaction() as txn:
                txn.put(_row(role=role))
                txn.prepare()
                txn.commit()
        assert [p.name for p in tmp_path.iterdir()] == ["matrix.yaml"]

    def test_rollback_after_prepare_restores_previous_file(self, tmp_path: Path) -> None:
        path = tmp_path / "matrix.yaml"
        store = FileMatrixStore(path, rows=[_row()])
        with store.transaction() as txn:
            txn.put(_row(role=7))
            txn.prepare()
            txn.commit()
        before = path.read_text(encoding="utf-8")

        with store.transaction() as txn:
            txn.put(_row(role=8))
            txn.prepare()
            assert FileMatrixStore(path).get(PermissionKey(8, 2, 3)) is not None
        assert path.read_text(encoding="utf-8") == before
        assert [p.name for p in tmp_path.iterdir()] == ["matrix.yaml"]

    def test_replace_failure_keeps_file_and_cleans_up(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        import ops_authz.matrix.store as store_module

        path = tmp_path / "matrix.yaml"
        store = FileMatrixStore(path, rows=[_row()])
        with store.transaction() as txn:
            txn.put(_row(role=7))
            txn.prepare()
            txn.commit()
        before = path.read_text(encoding="utf-8")

        def _fail(*args: object, **kwargs: object) -> None:
            raise OSError("device busy")

        monkeypatch.setattr(store_module.os, "replace", _fail)
        with pytest.raises(StorageUnavailable, match="device busy"):
            with store.transaction() as txn:
                txn.put(_row(role=8))
                txn.prepare()
        assert path.read_text(encoding="utf-8") == before
        assert [p.name for p in tmp_path.iterdir()] == ["matrix.yaml"]
        assert store.get(PermissionKey(8, 2, 3)) is None

    def test_foreign_commit_token_rejected(self, tmp_path: Path) -> None:
        store = FileMatrixStore(tmp_path / "matrix.yaml", rows=[_row()])
        with pytest.raises(TypeError, match="prepared file token"):
            store._persist_commit(tmp_path / "other.tmp")

    def test_invalid_file_raises_config_error(self, tmp_path: Path) -> None:
        path = tmp_path / "matrix.yaml"
        path.write_text("permissions: [{role_id: 1}]\n", encoding="utf-8")
        with pytest.raises(MatrixConfigError, match="index 0"):
            FileMatrixStore(path)

    def test_unknown_stored_scope_surfaces(self, tmp_path: Path) -> None:
        path = tmp_path / "matrix.yaml"
        path.write_text(
            "permissions:\n  - {role_id: 1, resource_id: 2, action_id: 3, granted: true, scope: galaxy}\n",
            encoding="utf-8",
        )
        with pytest.raises(InvalidScope):
            FileMatrixStore(path)
