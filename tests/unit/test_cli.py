"""Tests for the ops-authz click CLI."""
from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from ops_authz.cli.main import cli
from ops_authz.matrix.models import PermissionKey, Scope
from ops_authz.matrix.store import FileMatrixStore


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def missing_config(tmp_path: Path) -> str:
    return str(tmp_path / "ops-authz.yaml")


@pytest.fixture()
def file_config(tmp_path: Path) -> str:
    path = tmp_path / "ops-authz.yaml"
    path.write_text(
        "matrix:\n"
        f"  store_path: '{tmp_path / 'matrix.yaml'}'\n"
        "audit:\n"
        "  backend: jsonl\n"
        f"  log_path: '{tmp_path / 'audit.jsonl'}'\n",
        encoding="utf-8",
    )
    return str(path)


@pytest.fixture()
def updates_file(tmp_path: Path) -> str:
    path = tmp_path / "updates.yaml"
    path.write_text(
        "- {role_id: 3, resource_id: 4, action_id: 4, granted: true, scope: own}\n",
        encoding="utf-8",
    )
    return str(path)


class TestVersion:
    def test_version_command(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert "ops-authz" in result.output


class TestCheck:
    def test_allowed_exits_zero(self, runner: CliRunner, missing_config: str) -> None:
        result = runner.invoke(cli, ["check", "1", "read", "schedules", "-c", missing_config])
        assert result.exit_code == 0
        assert "ALLOWED" in result.output

    def test_denied_exits_one(self, runner: CliRunner, missing_config: str) -> None:
        result = runner.invoke(
            cli, ["check", "3", "delete", "schedules", "--owner-id", "3", "-c", missing_config]
        )
        assert result.exit_code == 1
        assert "DENIED" in result.output

    def test_own_scope_with_context(self, runner: CliRunner, missing_config: str) -> None:
        result = runner.invoke(
            cli, ["check", "3", "update", "entries", "--owner-id", "3", "-c", missing_config]
        )
        assert result.exit_code == 0

    def test_missing_context_exits_two(self, runner: CliRunner, missing_config: str) -> None:
        result = runner.invoke(cli, ["check", "3", "read", "schedules", "-c", missing_config])
        assert result.exit_code == 2

    def test_unknown_user_exits_two(self, runner: CliRunner, missing_config: str) -> None:
        result = runner.invoke(cli, ["check", "999", "read", "schedules", "-c", missing_config])
        assert result.exit_code == 2


class TestFilter:
    def test_owner_filter(self, runner: CliRunner, missing_config: str) -> None:
        result = runner.invoke(cli, ["filter", "3", "read", "entries", "-c", missing_config])
        assert result.exit_code == 0
        assert "owner_equals" in result.output

    def test_forbidden_filter(self, runner: CliRunner, missing_config: str) -> None:
        result = runner.invoke(cli, ["filter", "3", "delete", "users", "-c", missing_config])
        assert "forbidden" in result.output


class TestMatrix:
    def test_show(self, runner: CliRunner, missing_config: str) -> None:
        result = runner.invoke(cli, ["matrix", "show", "--role", "employee", "-c", missing_config])
        assert result.exit_code == 0
        assert "entries" in result.output
        assert "admin" not in result.output

    def test_show_unknown_role(self, runner: CliRunner, missing_config: str) -> None:
        result = runner.invoke(cli, ["matrix", "show", "--role", "ghost", "-c", missing_config])
        assert "No matrix rows" in result.output

    def test_stats(self, runner: CliRunner, missing_config: str) -> None:
        result = runner.invoke(cli, ["matrix", "stats", "-c", missing_config])
        assert result.exit_code == 0
        assert "Total rows" in result.output

    def test_apply_persists_and_audits(
        self, runner: CliRunner, file_config: str, updates_file: str, tmp_path: Path
    ) -> None:
        result = runner.invoke(cli, ["matrix", "apply", "--actor", "1", "-f", updates_file, "-c", file_config])
        assert result.exit_code == 0, result.output
        stored = FileMatrixStore(tmp_path / "matrix.yaml")
        assert stored.get(PermissionKey(3, 4, 4)).scope is Scope.OWN

        shown = runner.invoke(cli, ["audit", "show", "-c", file_config])
        assert shown.exit_code == 0
        assert "Total audit records: 1" in shown.output

    def test_apply_refused_for_non_admin(
        self, runner: CliRunner, file_config: str, updates_file: str, tmp_path: Path
    ) -> None:
        result = runner.invoke(cli, ["matrix", "apply", "--actor", "3", "-f", updates_file, "-c", file_config])
        assert result.exit_code == 1
        assert not (tmp_path / "audit.jsonl").exists()

    def test_apply_with_failed_item_exits_one(
        self, runner: CliRunner, missing_config: str, tmp_path: Path
    ) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text(
            "updates:\n"
            "  - {role_id: 3, resource_id: 4, action_id: 4, granted: true, scope: own}\n"
            "  - {role_id: 42, resource_id: 4, action_id: 4, granted: true, scope: own}\n",
            encoding="utf-8",
        )
        result = runner.invoke(cli, ["matrix", "apply", "--actor", "1", "-f", str(path), "-c", missing_config])
        assert result.exit_code == 1
        assert "UnknownReference" in result.output

    def test_apply_rejects_non_list(self, runner: CliRunner, missing_config: str, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("just a string\n", encoding="utf-8")
        result = runner.invoke(cli, ["matrix", "apply", "--actor", "1", "-f", str(path), "-c", missing_config])
        assert result.exit_code == 2


class TestAudit:
    def test_show_empty(self, runner: CliRunner, file_config: str) -> None:
        result = runner.invoke(cli, ["audit", "show", "-c", file_config])
        assert result.exit_code == 0
        assert "No audit entries" in result.output

    def test_show_bad_since(self, runner: CliRunner, file_config: str) -> None:
        result = runner.invoke(cli, ["audit", "show", "--since", "yesterday", "-c", file_config])
        assert result.exit_code == 2


class TestTemplate:
    def test_lists_templates(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["template"])
        assert result.exit_code == 0
        assert "default" in result.output
        assert "minimal" in result.output

    def test_prints_template(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["template", "default"])
        assert result.exit_code == 0
        assert "team_leader" in result.output

    def test_writes_template(self, runner: CliRunner, tmp_path: Path) -> None:
        out = tmp_path / "seed.yaml"
        result = runner.invoke(cli, ["template", "minimal", "-o", str(out)])
        assert result.exit_code == 0
        assert out.read_text(encoding="utf-8").startswith("# Minimal")

    def test_unknown_template(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["template", "enterprise"])
        assert result.exit_code == 1
