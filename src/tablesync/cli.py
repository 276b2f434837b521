"""
Command-line interface for tablesync.
"""

import asyncio
import logging
import logging.handlers
import sys
from functools import wraps
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import IndexSpec, LoggingConfig, TableSpec, TableSyncConfig, TTLSpec
from .database.connection import DynamoDBConnection
from .exceptions import ConfigurationError, TableSyncError
from .schema.reconciler import (
    Compatibility,
    MigrationResult,
    MigrationStatus,
    SchemaReconciler,
    ValidationReport,
    ValidationStatus,
)


console = Console()

STATUS_STYLES = {
    ValidationStatus.IN_SYNC: "green",
    ValidationStatus.MISSING: "yellow",
    ValidationStatus.COMPATIBLE_DIFF: "yellow",
    ValidationStatus.INCOMPATIBLE_DIFF: "red",
    ValidationStatus.FETCH_ERROR: "red",
}


def handle_errors(func):
    """Decorator to handle errors gracefully in CLI commands."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except TableSyncError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            sys.exit(0)
        except Exception as e:
            console.print(f"[red]Unexpected error:[/red] {e}")
            if "--debug" in sys.argv:
                import traceback
                traceback.print_exc()
            sys.exit(1)
    return wrapper


def configure_logging(config: LoggingConfig, debug: bool = False) -> None:
    """Configure root logging from the logging section of the config."""
    level = logging.DEBUG if debug else getattr(logging, config.level)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        handlers.append(
            logging.handlers.RotatingFileHandler(
                config.file,
                maxBytes=config.max_size,
                backupCount=config.backup_count,
            )
        )
    logging.basicConfig(level=level, format=config.format, handlers=handlers, force=True)
    # botocore is noisy at DEBUG
    logging.getLogger("botocore").setLevel(max(level, logging.INFO))


def _load_config(ctx: click.Context, config: str, env: Optional[str]) -> TableSyncConfig:
    sync_config = TableSyncConfig.from_yaml(config, environment=env)
    sync_config.validate_config()
    configure_logging(sync_config.logging, ctx.obj.get("debug", False) or sync_config.debug)
    return sync_config


@click.group()
@click.version_option(__version__)
@click.option(
    "--debug", is_flag=True, help="Enable debug mode"
)
@click.pass_context
def main(ctx, debug):
    """tablesync: declarative schema reconciliation for DynamoDB tables."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@main.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default="tablesync.yaml",
    help="Output configuration file path",
)
@handle_errors
def init(output: str):
    """Initialize a new tablesync configuration file."""
    if Path(output).exists():
        if not click.confirm(f"Configuration file {output} already exists. Overwrite?"):
            return

    config = _create_default_config()
    config.to_yaml(output)
    console.print(f"[green]✓[/green] Configuration file created: {output}")
    console.print("\n[yellow]Next steps:[/yellow]")
    console.print("1. Describe your tables in the configuration file")
    console.print("2. Run: tablesync validate-config -c your-config.yaml")
    console.print("3. Run: tablesync validate -c your-config.yaml")
    console.print("4. Run: tablesync migrate -c your-config.yaml")


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)
@handle_errors
def validate_config(config: str):
    """Validate configuration file."""
    console.print(f"Validating configuration: {config}")

    try:
        sync_config = TableSyncConfig.from_yaml(config)
        sync_config.validate_config()

        console.print("[green]✓[/green] Configuration is valid")

        _display_config_summary(sync_config)

    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Configuration error: {e}")
        sys.exit(1)


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)
@click.option("--env", "-e", default=None, help="Deployment environment name")
@click.pass_context
@handle_errors
def validate(ctx, config: str, env: Optional[str]):
    """Compare declared tables with the live tables."""
    sync_config = _load_config(ctx, config, env)

    async def run_validate() -> ValidationReport:
        async with DynamoDBConnection(sync_config.aws) as connection:
            reconciler = SchemaReconciler(
                connection,
                sync_config.tables,
                environment=sync_config.environment,
                retry_config=sync_config.retry,
            )
            return await reconciler.validate()

    report = asyncio.run(run_validate())
    _display_validation_report(report)

    if not report.migratable:
        sys.exit(1)


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)
@click.option("--env", "-e", default=None, help="Deployment environment name")
@click.option("--yes", "-y", is_flag=True, help="Apply without asking for confirmation")
@click.pass_context
@handle_errors
def migrate(ctx, config: str, env: Optional[str], yes: bool):
    """Apply every change the service can perform in place."""
    sync_config = _load_config(ctx, config, env)

    async def run_migrate() -> int:
        async with DynamoDBConnection(sync_config.aws) as connection:
            reconciler = SchemaReconciler(
                connection,
                sync_config.tables,
                environment=sync_config.environment,
                retry_config=sync_config.retry,
            )
            report = await reconciler.validate()
            _display_validation_report(report)

            if report.verdict == Compatibility.IN_SYNC:
                console.print("\n[green]✓[/green] All tables are in sync")
                return 0

            planned = sum(len(r.actions) for r in report.results if r.can_migrate)
            if not yes and not click.confirm(f"\nApply {planned} action(s)?"):
                console.print("[yellow]Migration cancelled[/yellow]")
                return 0

            migrations = await reconciler.migrate(report.results)
            _display_migration_results(migrations)

            summary = reconciler.get_reconciliation_summary(report, migrations)
            console.print(
                f"\nApplied {summary['applied_actions']} action(s), "
                f"{summary['succeeded']} table(s) succeeded, "
                f"{len(summary['failed_tables'])} table(s) failed"
            )
            return 0 if not summary["failed_tables"] else 1

    exit_code = asyncio.run(run_migrate())
    sys.exit(exit_code)


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)
@click.pass_context
@handle_errors
def test_connection(ctx, config: str):
    """Test the DynamoDB connection."""
    console.print("[blue]Testing connection...[/blue]")

    sync_config = _load_config(ctx, config, None)

    async def run_connection_test():
        async with DynamoDBConnection(sync_config.aws) as connection:
            return await connection.health_check()

    health = asyncio.run(run_connection_test())
    if health.get("status") == "healthy":
        console.print(f"  ✅ [green]Connected[/green] ({health['endpoint']})")
        return

    console.print(f"  ❌ [red]Connection failed: {health.get('error', 'Unknown')}[/red]")
    sys.exit(1)


def _create_default_config() -> TableSyncConfig:
    """Create a default configuration with examples."""
    tables = [
        TableSpec(
            title="myapp",
            table_name="orders",
            primary_key="id",
            sort_key="created_at",
            sort_key_type="N",
            read_throughput=5,
            write_throughput=5,
            indexes=[
                IndexSpec(
                    index_name="by_customer",
                    primary_key="customer_id",
                    primary_key_type="S",
                    sort_key="created_at",
                    sort_key_type="N",
                    read_throughput=5,
                    write_throughput=5,
                    projection_fields=["status", "total"],
                ),
            ],
            ttl=TTLSpec(attribute_name="expires_at", enabled=True),
        ),
    ]

    return TableSyncConfig(environment="dev", tables=tables)


def _display_config_summary(config: TableSyncConfig):
    """Display a summary of the configuration."""
    console.print("\n[blue]Configuration Summary[/blue]")
    console.print(f"  Environment: {config.environment or '(none)'}")
    console.print(f"  Region: {config.aws.region or 'default'}")
    console.print(f"  Endpoint: {config.aws.endpoint_url or 'default'}")

    table_table = Table(title="Tables")
    table_table.add_column("Table", style="cyan")
    table_table.add_column("Keys", style="magenta")
    table_table.add_column("Throughput", style="green")
    table_table.add_column("Indexes", style="yellow")
    table_table.add_column("TTL", style="blue")

    for table in config.tables:
        keys = table.primary_key
        if table.sort_key:
            keys += f", {table.sort_key}"
        ttl = "-"
        if table.ttl:
            ttl = f"{table.ttl.attribute_name} ({'on' if table.ttl.enabled else 'off'})"
        table_table.add_row(
            table.table_name,
            keys,
            f"{table.read_throughput}/{table.write_throughput}",
            str(len(table.indexes) + len(table.local_indexes)),
            ttl,
        )

    console.print(table_table)


def _display_validation_report(report: ValidationReport):
    """Display per-table validation results and the verdict."""
    result_table = Table(title="Validation")
    result_table.add_column("Table", style="cyan")
    result_table.add_column("Status")
    result_table.add_column("Migratable")
    result_table.add_column("Diff", overflow="fold")

    for result in report.results:
        style = STATUS_STYLES[result.status]
        detail = result.diff.render("\n") if result.diff else ""
        if result.error is not None:
            detail = str(result.error)
        result_table.add_row(
            result.qualified_name,
            f"[{style}]{result.status.value}[/{style}]",
            "yes" if result.can_migrate else "[red]no[/red]",
            detail,
        )

    console.print(result_table)

    if report.verdict == Compatibility.IN_SYNC:
        console.print("[green]✓[/green] No differences")
    elif report.verdict == Compatibility.BACKWARD_COMPATIBLE:
        console.print(f"[yellow]![/yellow] {report.error}")
    else:
        console.print(f"[red]✗[/red] {report.error}")


def _display_migration_results(migrations: List[MigrationResult]):
    """Display per-table migration results."""
    migration_table = Table(title="Migration")
    migration_table.add_column("Table", style="cyan")
    migration_table.add_column("Status")
    migration_table.add_column("Applied", style="green")
    migration_table.add_column("Errors", overflow="fold")

    for migration in migrations:
        style = "green" if migration.status == MigrationStatus.SUCCEEDED else "red"
        migration_table.add_row(
            migration.qualified_name,
            f"[{style}]{migration.status.value}[/{style}]",
            str(len(migration.applied)),
            "\n".join(str(e) for e in migration.errors),
        )

    console.print(migration_table)


if __name__ == "__main__":
    main()
