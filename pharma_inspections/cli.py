#!/usr/bin/env python3
"""
Command-line interface for the inspection core.

Administrative tools operating directly on a local datastore: schema
bootstrap, user management, inspection review, audit search and exports.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import click
import pandas as pd  # type: ignore[import-untyped]
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .audit_trail import AuditAction, AuditFilter, AuditTrail
from .catalog import GridCatalog, pending_criteria
from .config import get_config
from .inspections import InspectionLifecycle
from .models import CreateUserRequest, InspectionStatus, Role
from .reports import (
    aggregate_stats,
    export_csv,
    export_excel,
    export_json,
    progress_stats,
    status_label,
)
from .responses import ResponseLedger
from .storage import Database
from .users import UserDirectory

console = Console()

CLI_ACTOR = "cli"


def _database(ctx: click.Context) -> Database:
    """Datastore selected by --database, created on first use."""
    database = ctx.obj.get("database")
    if database is None:
        database = Database(ctx.obj.get("database_url"), config=get_config())
        database.initialize()
        ctx.obj["database"] = database
        ctx.call_on_close(database.close)
    return database


def _catalog() -> GridCatalog:
    config = get_config()
    if config.catalog_path:
        return GridCatalog.from_directory(config.catalog_path)
    return GridCatalog.builtin()


def _fail(message: str, error: Exception) -> None:
    console.print(f"[red]{message}: {getattr(error, 'message', error)}[/red]")
    sys.exit(1)


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.option(
    "--database",
    "database_url",
    envvar="INSPECTION_DATABASE_URL",
    help="SQLAlchemy URL of the datastore",
)
@click.pass_context
def cli(ctx: click.Context, database_url: Optional[str]) -> None:
    """Inspection Officine - pharmaceutical inspection records."""
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url
    if ctx.invoked_subcommand is None:
        console.print(
            Panel.fit(
                f"[bold blue]Inspection Officine[/bold blue] v{__version__}\n"
                "[dim]Pharmaceutical inspection records[/dim]\n\n"
                "Use [bold]inspections --help[/bold] to see available commands.",
                border_style="blue",
            )
        )


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the schema and the default administrator."""
    try:
        database = _database(ctx)
        AuditTrail(database).append(
            AuditAction.APP_START, actor_name=CLI_ACTOR, entity_type="system"
        )
        console.print(f"[green]✓[/green] Datastore ready at {database.url}")
    except Exception as e:
        _fail("Error initializing datastore", e)


@cli.group()
def config() -> None:
    """Inspect configuration."""
    pass


@config.command("show")
@click.option("--format", type=click.Choice(["table", "json", "yaml"]), default="table")
def config_show(format: str) -> None:
    """Display current configuration."""
    try:
        config_dict = get_config().to_dict()
        config_dict["default_admin_password"] = "********"

        if format == "json":
            console.print_json(data=config_dict)
        elif format == "yaml":
            import yaml  # type: ignore[import-untyped]

            console.print(yaml.dump(config_dict, default_flow_style=False))
        else:
            table = Table(title="Inspection Configuration", show_header=True)
            table.add_column("Setting", style="cyan")
            table.add_column("Value", style="green")

            categories = {
                "General": ["application_name", "environment", "catalog_path"],
                "Storage": ["database_url", "sqlite_wal"],
                "Authentication": [
                    "session_ttl_hours",
                    "password_scheme",
                    "password_rounds",
                    "default_admin_username",
                ],
                "Audit Trail": [
                    "audit_enabled",
                    "audit_default_limit",
                    "audit_max_limit",
                ],
            }

            for category, settings in categories.items():
                table.add_row(f"[bold]{category}[/bold]", "")
                for setting in settings:
                    value = config_dict.get(setting)
                    if value is None:
                        value = "[dim]Not configured[/dim]"
                    elif isinstance(value, bool):
                        value = "✓" if value else "✗"
                    table.add_row(f"  {setting}", str(value))

            console.print(table)

    except Exception as e:
        _fail("Error loading configuration", e)


@cli.group()
def user() -> None:
    """User account management."""
    pass


@user.command("create")
@click.argument("username")
@click.option("--full-name", required=True, help="Display name")
@click.option(
    "--role",
    type=click.Choice([role.value for role in Role]),
    default=Role.INSPECTOR.value,
    show_default=True,
)
@click.password_option(help="Initial password")
@click.pass_context
def user_create(
    ctx: click.Context, username: str, full_name: str, role: str, password: str
) -> None:
    """Create a user account."""
    try:
        database = _database(ctx)
        request = CreateUserRequest(
            username=username, full_name=full_name, role=Role(role), password=password
        )
        created = UserDirectory(database).create(request)
        AuditTrail(database).append(
            AuditAction.CREATE_USER,
            actor_name=CLI_ACTOR,
            entity_type="user",
            entity_id=created.id,
            details={"username": created.username, "role": created.role.value},
        )
        console.print(
            f"[green]✓[/green] Created {created.role.value} '{created.username}' "
            f"({created.id})"
        )
    except Exception as e:
        _fail("Error creating user", e)


@user.command("list")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
@click.pass_context
def user_list(ctx: click.Context, format: str) -> None:
    """List all user accounts."""
    try:
        users = UserDirectory(_database(ctx)).list()

        if format == "json":
            console.print_json(data=[u.model_dump(mode="json") for u in users])
            return

        table = Table(title=f"Users ({len(users)})")
        table.add_column("Username", style="cyan")
        table.add_column("Full name", style="green")
        table.add_column("Role", style="yellow")
        table.add_column("Active")
        table.add_column("Created", style="dim")
        for u in users:
            table.add_row(
                u.username,
                u.full_name,
                u.role.value,
                "[green]✓[/green]" if u.active else "[red]✗[/red]",
                u.created_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)
    except Exception as e:
        _fail("Error listing users", e)


@user.command("deactivate")
@click.argument("username")
@click.pass_context
def user_deactivate(ctx: click.Context, username: str) -> None:
    """Deactivate an account and revoke its sessions."""
    try:
        database = _database(ctx)
        directory = UserDirectory(database)
        target = directory.get_by_username(username)
        directory.deactivate(target.id)
        AuditTrail(database).append(
            AuditAction.DEACTIVATE_USER,
            actor_name=CLI_ACTOR,
            entity_type="user",
            entity_id=target.id,
        )
        console.print(f"[green]✓[/green] Deactivated '{username}'")
    except Exception as e:
        _fail("Error deactivating user", e)


@user.command("passwd")
@click.argument("username")
@click.password_option(help="New password")
@click.pass_context
def user_passwd(ctx: click.Context, username: str, password: str) -> None:
    """Reset a password; every session of the account is revoked."""
    try:
        if not 6 <= len(password) <= 100:
            raise click.BadParameter("password must be 6 to 100 characters")
        database = _database(ctx)
        directory = UserDirectory(database)
        target = directory.get_by_username(username)
        directory.change_password(target.id, password)
        AuditTrail(database).append(
            AuditAction.CHANGE_PASSWORD,
            actor_name=CLI_ACTOR,
            entity_type="user",
            entity_id=target.id,
        )
        console.print(f"[green]✓[/green] Password changed for '{username}'")
    except Exception as e:
        _fail("Error changing password", e)


@cli.group()
def inspection() -> None:
    """Inspection review."""
    pass


@inspection.command("list")
@click.option(
    "--status", type=click.Choice([s.value for s in InspectionStatus]), default=None
)
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
@click.pass_context
def inspection_list(ctx: click.Context, status: Optional[str], format: str) -> None:
    """List inspections, most recently updated first."""
    try:
        inspections = InspectionLifecycle(_database(ctx)).list(status_filter=status)

        if format == "json":
            console.print_json(data=[i.model_dump(mode="json") for i in inspections])
            return

        if not inspections:
            console.print("[yellow]No inspections found[/yellow]")
            return

        table = Table(title=f"Inspections ({len(inspections)})")
        table.add_column("ID", style="dim")
        table.add_column("Establishment", style="cyan")
        table.add_column("Grid")
        table.add_column("Date")
        table.add_column("Status", style="yellow")
        table.add_column("Progress", style="green")
        for item in inspections:
            stats = progress_stats(item.progress)
            table.add_row(
                item.id[:8],
                item.establishment,
                item.grid_id,
                item.date_inspection.isoformat() if item.date_inspection else "",
                status_label(item.status),
                f"{stats['answered']}/{stats['total_criteria']} "
                f"({stats['compliance_rate']}% conf.)",
            )
        console.print(table)

        summary = aggregate_stats(inspections)
        console.print(
            f"Average compliance: [bold]{summary['average_compliance_rate']}%[/bold]"
        )
    except Exception as e:
        _fail("Error listing inspections", e)


@inspection.command("show")
@click.argument("inspection_id")
@click.pass_context
def inspection_show(ctx: click.Context, inspection_id: str) -> None:
    """Show one inspection with its progress and unanswered criteria."""
    try:
        database = _database(ctx)
        item = InspectionLifecycle(database).get(inspection_id)
        responses = ResponseLedger(database).list(inspection_id)
        stats = progress_stats(item.progress)

        lines = [
            f"[bold]{item.establishment}[/bold] ({item.inspection_type})",
            f"Grid: {item.grid_id}    Date: {item.date_inspection or '-'}",
            f"Inspectors: {', '.join(item.inspectors)}",
            f"Status: [yellow]{status_label(item.status)}[/yellow]",
            f"Created by: {item.created_by_name or '-'}",
        ]
        if item.validated_at:
            lines.append(
                f"Validated by: {item.validated_by_name or '-'} "
                f"on {item.validated_at:%Y-%m-%d %H:%M}"
            )
        lines.append(
            f"Answered {stats['answered']}/{stats['total_criteria']}, "
            f"conforme {stats['conforme']}, non conforme {stats['non_conforme']}, "
            f"compliance {stats['compliance_rate']}%"
        )
        console.print(Panel("\n".join(lines), title=item.id, border_style="blue"))

        grid = _catalog().find(item.grid_id)
        if grid is not None:
            pending = pending_criteria(grid, responses)
            console.print(
                f"{len(pending)} of {grid.criteria_count} criteria left unanswered"
            )
            for criterion in pending:
                console.print(f"  [dim]{criterion.id:>3}[/dim] {criterion.reference}")
    except Exception as e:
        _fail("Error showing inspection", e)


@cli.group()
def audit() -> None:
    """Audit trail search."""
    pass


@audit.command("search")
@click.option("--user", help="Filter by acting user ID")
@click.option("--action", help="Filter by action label")
@click.option("--entity-type", help="Filter by entity type")
@click.option("--entity-id", help="Filter by entity ID")
@click.option("--start-date", type=click.DateTime(), help="Start date for search")
@click.option("--end-date", type=click.DateTime(), help="End date for search")
@click.option("--limit", type=int, default=None, help="Maximum results to return")
@click.option("--offset", type=int, default=0, help="Results to skip")
@click.option("--format", type=click.Choice(["table", "json", "csv"]), default="table")
@click.pass_context
def audit_search(
    ctx: click.Context,
    user: Optional[str],
    action: Optional[str],
    entity_type: Optional[str],
    entity_id: Optional[str],
    start_date: Optional[datetime],
    end_date: Optional[datetime],
    limit: Optional[int],
    offset: int,
    format: str,
) -> None:
    """Search audit trail entries, newest first."""
    try:
        if limit is None:
            limit = get_config().audit_default_limit
        audit_filter = AuditFilter(
            user_id=user,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            from_date=start_date,
            to_date=end_date,
            limit=limit,
            offset=offset,
        )
        trail = AuditTrail(_database(ctx))
        entries = trail.query(audit_filter)
        total = trail.count(audit_filter)

        if not entries:
            console.print("[yellow]No audit entries found matching criteria[/yellow]")
            return

        data = [entry.model_dump(mode="json") for entry in entries]
        if format == "json":
            console.print_json(data=data)
        elif format == "csv":
            print(pd.DataFrame(data).to_csv(index=False))
        else:
            table = Table(
                title=f"Audit Trail Entries (showing {len(entries)} of {total})"
            )
            table.add_column("Timestamp", style="cyan")
            table.add_column("User", style="green")
            table.add_column("Action", style="yellow")
            table.add_column("Entity", style="blue")

            for entry in entries:
                entity = entry.entity_type or ""
                if entry.entity_id:
                    entity = f"{entity}:{entry.entity_id}"
                table.add_row(
                    entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                    entry.username or entry.user_id or "system",
                    entry.action,
                    entity,
                )

            console.print(table)

    except Exception as e:
        _fail("Error searching audit trail", e)


@cli.command("export")
@click.option("--output", type=click.Path(), required=True, help="Output file path")
@click.option("--format", type=click.Choice(["json", "csv", "excel"]), default="csv")
@click.option(
    "--status", type=click.Choice([s.value for s in InspectionStatus]), default=None
)
@click.pass_context
def export(ctx: click.Context, output: str, format: str, status: Optional[str]) -> None:
    """Export inspections with their compliance statistics."""
    try:
        database = _database(ctx)
        inspections = InspectionLifecycle(database).list(status_filter=status)
        catalog = _catalog()
        output_path = Path(output)

        if format == "excel":
            export_excel(inspections, output_path, catalog)
        elif format == "json":
            ledger = ResponseLedger(database)
            responses: Dict[str, Any] = {
                item.id: ledger.list(item.id) for item in inspections
            }
            output_path.write_text(
                export_json(inspections, responses), encoding="utf-8"
            )
        else:
            export_csv(inspections, catalog, path=output_path)

        console.print(
            f"[green]✓ Exported {len(inspections)} inspection(s) to "
            f"{output_path}[/green]"
        )
    except Exception as e:
        _fail("Error exporting inspections", e)


if __name__ == "__main__":
    cli()
