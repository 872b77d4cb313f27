"""CLI entry point for ops-authz.

Invoked as::

    ops-authz [OPTIONS] COMMAND [ARGS]...

or during development::

    python -m ops_authz.cli.main

Commands
--------
- check            Check one permission for a user
- filter           Show the list filter a user gets for an action
- matrix show      Display the permission matrix
- matrix stats     Show matrix statistics
- matrix apply     Apply a batch of matrix updates from a YAML/JSON file
- audit show       Display recent audit entries
- template         Print or write a bundled matrix seed
- version          Show version information
"""
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
import yaml
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

_DEFAULT_CONFIG = Path("ops-authz.yaml")
_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _config_option(func):  # type: ignore[no-untyped-def]
    return click.option(
        "--config",
        "-c",
        "config_path",
        default=str(_DEFAULT_CONFIG),
        show_default=True,
        type=click.Path(),
        help="Path to ops-authz.yaml.",
    )(func)


def _load_config(config_path: str):  # type: ignore[no-untyped-def]
    from ops_authz.config import ConfigLoader

    loader = ConfigLoader()
    cfg_path = Path(config_path)
    config = loader.load(cfg_path) if cfg_path.exists() else loader.defaults()
    ctx = click.get_current_context(silent=True)
    if ctx is None or not (ctx.find_root().obj or {}).get("log_level"):
        config.logging.apply()
    return config


def _build_engine(config_path: str):  # type: ignore[no-untyped-def]
    from ops_authz.engine import AuthorizationEngine
    from ops_authz.errors import MatrixConfigError, StorageUnavailable

    config = _load_config(config_path)
    try:
        return AuthorizationEngine.from_config(config)
    except (FileNotFoundError, MatrixConfigError, StorageUnavailable) as exc:
        err_console.print(f"[red]Cannot load matrix:[/red] {exc}")
        sys.exit(2)


# ---------------------------------------------------------------------------
# Root command group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="ops-authz")
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Root log level; overrides the config file's logging section.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """ops-authz CLI: permission checks, matrix administration and audit tools."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level
    if log_level:
        logging.basicConfig(level=getattr(logging, log_level.upper()))


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from ops_authz import __version__

    console.print(
        Panel(
            f"[bold]ops-authz[/bold]  v[cyan]{__version__}[/cyan]\n"
            "Role and scope based authorization core.",
            title="Version",
            border_style="blue",
        )
    )


# ---------------------------------------------------------------------------
# check / filter
# ---------------------------------------------------------------------------


@cli.command(name="check")
@click.argument("user_id", type=int)
@click.argument("action")
@click.argument("resource")
@click.option("--owner-id", type=int, default=None, help="Owner of the object being checked.")
@click.option("--team-id", type=int, default=None, help="Team of the object being checked.")
@_config_option
def check_command(
    user_id: int,
    action: str,
    resource: str,
    owner_id: int | None,
    team_id: int | None,
    config_path: str,
) -> None:
    """Check whether USER_ID may perform ACTION on RESOURCE.

    Exits 0 when allowed, 1 when denied and 2 when the check cannot be
    evaluated.
    """
    from ops_authz.errors import MissingContext, UserNotFound
    from ops_authz.resolver.scope import ResourceContext

    engine = _build_engine(config_path)
    context = None
    if owner_id is not None or team_id is not None:
        context = ResourceContext(owner_id=owner_id, team_id=team_id)

    try:
        decision = engine.check(user_id, action, resource, context)
    except (MissingContext, UserNotFound) as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        sys.exit(2)

    status_str = "[green]ALLOWED[/green]" if decision else "[red]DENIED[/red]"
    console.print(Panel(status_str, title="Permission Check Result", border_style="blue"))
    console.print(f"  Scope: [cyan]{decision.scope.value if decision.scope else '-'}[/cyan]")
    console.print(f"  Reason: {decision.reason}")
    sys.exit(0 if decision else 1)


@cli.command(name="filter")
@click.argument("user_id", type=int)
@click.argument("action")
@click.argument("resource")
@_config_option
def filter_command(user_id: int, action: str, resource: str, config_path: str) -> None:
    """Show the list filter USER_ID gets for ACTION on RESOURCE."""
    from ops_authz.errors import UserNotFound

    engine = _build_engine(config_path)
    try:
        list_filter = engine.filter_for(user_id, action, resource)
    except UserNotFound as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        sys.exit(2)

    colour = "red" if list_filter.is_forbidden else "green"
    console.print(f"  Filter: [{colour}]{list_filter.kind.value}[/{colour}]")
    if list_filter.value is not None:
        console.print(f"  Value: [cyan]{list_filter.value}[/cyan]")
    console.print(f"  Criteria: {json.dumps(list_filter.as_criteria())}")


# ---------------------------------------------------------------------------
# matrix group
# ---------------------------------------------------------------------------


@cli.group(name="matrix")
def matrix_group() -> None:
    """Permission matrix commands."""


@matrix_group.command(name="show")
@click.option("--role", "role_name", default=None, help="Only show rows for this role name.")
@_config_option
def matrix_show_command(role_name: str | None, config_path: str) -> None:
    """Display the permission matrix."""
    engine = _build_engine(config_path)
    rows = engine.matrix_rows()
    if role_name is not None:
        rows = [r for r in rows if r["role"] == role_name]

    if not rows:
        console.print("[yellow]No matrix rows found.[/yellow]")
        return

    table = Table(title="Permission Matrix", box=box.SIMPLE)
    table.add_column("Role", style="cyan")
    table.add_column("Resource", style="magenta")
    table.add_column("Action")
    table.add_column("Granted")
    table.add_column("Scope", style="bold")
    for row in rows:
        granted = "[green]yes[/green]" if row["granted"] else "[red]no[/red]"
        table.add_row(str(row["role"]), str(row["resource"]), str(row["action"]), granted, str(row["scope"]))
    console.print(table)


@matrix_group.command(name="stats")
@_config_option
def matrix_stats_command(config_path: str) -> None:
    """Show permission matrix statistics."""
    engine = _build_engine(config_path)
    stats = engine.statistics()

    table = Table(title="Matrix Statistics", box=box.SIMPLE)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="bold")
    table.add_row("Total rows", str(stats["total_rows"]))
    table.add_row("Granted rows", str(stats["granted_rows"]))
    table.add_row("Denied rows", str(stats["denied_rows"]))
    table.add_row("Version", str(stats["version"]))
    for scope, count in dict(stats["granted_by_scope"]).items():  # type: ignore[call-overload]
        table.add_row(f"Granted ({scope})", str(count))
    for role, count in dict(stats["granted_by_role"]).items():  # type: ignore[call-overload]
        table.add_row(f"Role {role}", str(count))
    console.print(table)


@matrix_group.command(name="apply")
@click.option("--actor", "actor_user_id", required=True, type=int, help="User id submitting the batch.")
@click.option(
    "--file",
    "-f",
    "updates_file",
    required=True,
    type=click.Path(exists=True),
    help="YAML or JSON list of updates (role_id, resource_id, action_id, granted, scope).",
)
@_config_option
def matrix_apply_command(actor_user_id: int, updates_file: str, config_path: str) -> None:
    """Apply a batch of matrix updates.

    Exits 1 if the actor is refused or any item fails validation.
    """
    from ops_authz.errors import AccessDenied, AuditWriteFailed, StorageUnavailable, UserNotFound

    try:
        with Path(updates_file).open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or []
    except yaml.YAMLError as exc:
        err_console.print(f"[red]Invalid updates file:[/red] {exc}")
        sys.exit(2)
    if isinstance(raw, dict):
        raw = raw.get("updates", [])
    if not isinstance(raw, list):
        err_console.print("[red]Updates file must contain a list of updates.[/red]")
        sys.exit(2)

    engine = _build_engine(config_path)
    try:
        result = engine.apply_batch(actor_user_id, raw)
    except (AccessDenied, UserNotFound) as exc:
        err_console.print(f"[red]Refused:[/red] {exc}")
        sys.exit(1)
    except (AuditWriteFailed, StorageUnavailable) as exc:
        err_console.print(f"[red]Batch rolled back:[/red] {exc}")
        sys.exit(2)

    table = Table(title="Batch Result", box=box.SIMPLE)
    table.add_column("Outcome", style="cyan")
    table.add_column("Count", style="bold")
    for key, value in result.summary().items():
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)

    for failure in result.failed:
        console.print(f"  [red]{failure.reason}[/red]: {failure.detail}")
    sys.exit(0 if result.success else 1)


# ---------------------------------------------------------------------------
# audit group
# ---------------------------------------------------------------------------


@cli.group(name="audit")
def audit_group() -> None:
    """Audit trail commands."""


@audit_group.command(name="show")
@click.option("--last", "-n", default=20, show_default=True, type=int, help="Number of recent entries to show.")
@click.option("--role-id", type=int, default=None, help="Only entries for this role id.")
@click.option("--resource-id", type=int, default=None, help="Only entries for this resource id.")
@click.option("--actor", "actor_user_id", type=int, default=None, help="Only entries by this user id.")
@click.option("--since", default=None, help="ISO-8601 lower bound on the entry timestamp.")
@click.option("--until", default=None, help="ISO-8601 upper bound on the entry timestamp.")
@_config_option
def audit_show_command(
    last: int,
    role_id: int | None,
    resource_id: int | None,
    actor_user_id: int | None,
    since: str | None,
    until: str | None,
    config_path: str,
) -> None:
    """Show recent matrix audit entries from the JSONL audit log."""
    from ops_authz.audit.logger import JsonlAuditTrail
    from ops_authz.audit.search import AuditFilter

    config = _load_config(config_path)
    try:
        filters = AuditFilter.from_params(
            {
                "role_id": role_id,
                "resource_id": resource_id,
                "actor_user_id": actor_user_id,
                "start": since,
                "end": until,
                "limit": last,
            }
        )
    except ValueError as exc:
        err_console.print(f"[red]Invalid filter:[/red] {exc}")
        sys.exit(2)

    audit = JsonlAuditTrail(log_path=config.audit.log_path)
    entries = audit.query(filters)

    if not entries:
        console.print("[yellow]No audit entries found.[/yellow]")
        return

    table = Table(title=f"Last {last} Audit Entries", box=box.SIMPLE)
    table.add_column("Timestamp", style="dim", no_wrap=True)
    table.add_column("Actor", style="cyan")
    table.add_column("Key (role/resource/action)", style="magenta")
    table.add_column("Before")
    table.add_column("After")

    for entry in entries:
        ts = entry.timestamp.isoformat()[:19].replace("T", " ")
        before = (
            "-"
            if entry.previous_granted is None
            else f"{entry.previous_granted}/{entry.previous_scope.value if entry.previous_scope else '-'}"
        )
        after = f"{entry.new_granted}/{entry.new_scope.value}"
        key = f"{entry.role_id}/{entry.resource_id}/{entry.action_id}"
        table.add_row(ts, str(entry.actor_user_id), key, before, after)

    console.print(table)
    console.print(f"  Total audit records: [cyan]{audit.count()}[/cyan]")


# ---------------------------------------------------------------------------
# template
# ---------------------------------------------------------------------------


@cli.command(name="template")
@click.argument("name", required=False, default=None)
@click.option("--output", "-o", type=click.Path(), default=None, help="Write the seed to this file.")
def template_command(name: str | None, output: str | None) -> None:
    """Print or write a bundled matrix seed.  Without NAME, list the seeds."""
    from ops_authz.templates.default_matrix import get_template, list_templates, write_template

    if name is None:
        for template_name in list_templates():
            console.print(f"  [cyan]{template_name}[/cyan]")
        return

    try:
        if output is None:
            click.echo(get_template(name), nl=False)
            return
        written = write_template(name, Path(output))
    except KeyError as exc:
        err_console.print(f"[red]Error:[/red] {exc.args[0]}")
        sys.exit(1)
    console.print(f"[green]Wrote[/green] {name} seed to [bold]{written}[/bold]")


if __name__ == "__main__":
    cli()
