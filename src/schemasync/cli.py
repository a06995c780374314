"""
Command-line interface for schemasync.
"""

import asyncio
import glob
import sys
from functools import wraps
from pathlib import Path
from typing import List

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import SchemaSyncConfig
from .exceptions import ConfigurationError, SchemaSyncError
from .gateway import LeanCloudGateway
from .logging_setup import setup_logging
from .schema.codec import load_schema_file, write_schema_file
from .schema.differences import (
    ClassPermissionsMismatch,
    ColumnMismatch,
    Conflict,
    Difference,
    MissingClass,
    MissingColumn,
)
from .schema.model import Action, ClassDefinition
from .schema.reconciler import ReconciliationResult, ReconciliationStatus, SchemaReconciler


console = Console()


def handle_errors(func):
    """Decorator to handle errors gracefully in CLI commands."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SchemaSyncError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            sys.exit(0)
        except Exception as e:
            console.print(f"[red]Unexpected error:[/red] {escape(str(e))}")
            if "--debug" in sys.argv:
                import traceback
                traceback.print_exc()
            sys.exit(1)
    return wrapper


@click.group()
@click.version_option(__version__)
@click.option("--console", "console_url", help="Console URL (or LEANCLOUD_CONSOLE_URL)")
@click.option("--app", "app_id", help="Application id (or LEANCLOUD_APP_ID)")
@click.option("--token", "access_token", help="Access token (or LEANCLOUD_ACCESS_TOKEN)")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file path",
)
@click.option("--debug", is_flag=True, help="Enable debug mode")
@click.pass_context
def main(ctx, console_url, app_id, access_token, config_path, debug):
    """schemasync: reconcile local class schemas with a LeanCloud app."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "console_url": console_url,
        "app_id": app_id,
        "access_token": access_token,
    }
    ctx.obj["config_path"] = config_path
    ctx.obj["debug"] = debug


def _load_config(ctx: click.Context) -> SchemaSyncConfig:
    """Load configuration and set up logging for a command."""
    config = SchemaSyncConfig.load(ctx.obj["config_path"], **ctx.obj["overrides"])
    setup_logging(config.logging, debug=ctx.obj["debug"])
    return config


def _expand_globs(patterns: List[str]) -> List[Path]:
    """Expand glob patterns into a sorted, de-duplicated list of files."""
    paths = set()
    for pattern in patterns:
        matches = glob.glob(pattern, recursive=True) or (
            [pattern] if Path(pattern).is_file() else []
        )
        paths.update(Path(m) for m in matches if Path(m).is_file())
    return sorted(paths)


def _schema_files(patterns: List[str], config: SchemaSyncConfig) -> List[Path]:
    """Schema files to push; internal classes are skipped unless allowed."""
    paths = _expand_globs(patterns)
    if not paths:
        raise ConfigurationError(f"No schema files match: {' '.join(patterns)}")

    allowed = set(config.reconcile.allowed_internal_classes)
    selected = []
    for path in paths:
        if path.stem.startswith("_") and path.stem not in allowed:
            console.print(f"[yellow]Skipping internal class file:[/yellow] {path}")
            continue
        selected.append(path)
    return selected


def _load_definitions(paths: List[Path]) -> List[ClassDefinition]:
    return [load_schema_file(path) for path in paths]


@main.command()
@click.argument("class_names", nargs=-1)
@click.option(
    "--dir",
    "-d",
    "directory",
    type=click.Path(),
    required=True,
    help="Directory to write schema files to",
)
@click.pass_context
@handle_errors
def pull(ctx, class_names, directory: str):
    """Pull remote class schemas into local files."""
    output_dir = Path(directory)
    if output_dir.exists() and not output_dir.is_dir():
        raise ConfigurationError(f"{output_dir} is not a directory")

    config = _load_config(ctx)
    gateway = LeanCloudGateway.from_config(config)

    async def run_pull() -> List[ClassDefinition]:
        async with gateway:
            reconciler = SchemaReconciler(gateway, config.reconcile)
            return await reconciler.pull(list(class_names) or None)

    definitions = asyncio.run(run_pull())

    output_dir.mkdir(parents=True, exist_ok=True)
    for definition in definitions:
        path = write_schema_file(definition, output_dir)
        console.print(f"[green]✓[/green] {definition.name} -> {path}")

    console.print(f"\nPulled {len(definitions)} class(es)")


@main.command()
@click.argument("globs", nargs=-1, required=True)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show the differences without changing anything",
)
@click.pass_context
@handle_errors
def push(ctx, globs, dry_run: bool):
    """Push local schema files to the remote store."""
    config = _load_config(ctx)
    definitions = _load_definitions(_schema_files(list(globs), config))
    if not definitions:
        console.print("[yellow]Nothing to push[/yellow]")
        return

    gateway = LeanCloudGateway.from_config(config)

    async def run_push() -> ReconciliationResult:
        async with gateway:
            reconciler = SchemaReconciler(gateway, config.reconcile)
            return await reconciler.push(definitions, dry_run=dry_run)

    result = asyncio.run(run_push())

    if result.status == ReconciliationStatus.CONFLICT:
        _display_conflicts(result.diff.conflicts)
        result.diff.raise_for_conflicts()

    if not result.diff.differences:
        console.print("[green]✓[/green] Remote schema is up to date")
        return

    _display_differences(result.diff.differences)

    if dry_run:
        console.print(
            f"\n[yellow]Dry run:[/yellow] {len(result.tasks)} task(s) not executed"
        )
        return

    console.print(
        f"\n{result.successful_tasks} task(s) succeeded, {result.failed_tasks} failed"
    )
    if result.failures:
        _display_failures(result)
        sys.exit(1)


@main.command()
@click.argument("globs", nargs=-1, required=True)
@handle_errors
def validate(globs):
    """Validate local schema files without contacting the remote store."""
    paths = _expand_globs(list(globs))
    if not paths:
        raise ConfigurationError(f"No schema files match: {' '.join(globs)}")

    for path in paths:
        definition = load_schema_file(path)
        console.print(
            f"[green]✓[/green] {path} ({definition.name}, "
            f"{len(definition.columns)} column(s))"
        )


@main.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default="schemasync.yaml",
    help="Output configuration file path",
)
@handle_errors
def init(output: str):
    """Initialize a new schemasync configuration file."""
    if Path(output).exists():
        if not click.confirm(f"Configuration file {output} already exists. Overwrite?"):
            return

    _create_default_config().to_yaml(output)
    console.print(f"[green]✓[/green] Configuration file created: {output}")
    console.print("\n[yellow]Next steps:[/yellow]")
    console.print("1. Export LEANCLOUD_CONSOLE_URL, LEANCLOUD_APP_ID and LEANCLOUD_ACCESS_TOKEN")
    console.print(f"2. Run: schemasync --config {output} pull --dir schema")
    console.print(f"3. Run: schemasync --config {output} push --dry-run 'schema/*.json'")


def _create_default_config() -> SchemaSyncConfig:
    """Create a default configuration with environment placeholders."""
    return SchemaSyncConfig(
        console_url="${LEANCLOUD_CONSOLE_URL}",
        app_id="${LEANCLOUD_APP_ID}",
        access_token="${LEANCLOUD_ACCESS_TOKEN}",
    )


def _difference_detail(difference: Difference) -> str:
    if isinstance(difference, MissingClass):
        return f"new {difference.definition.kind.value} class"
    if isinstance(difference, MissingColumn):
        return f"new {difference.column.type.value} column {difference.column.name}"
    if isinstance(difference, ClassPermissionsMismatch):
        changed = [
            action.value for action in Action
            if difference.current.get(action) != difference.expected.get(action)
        ]
        return f"permissions differ: {', '.join(changed)}"
    if isinstance(difference, ColumnMismatch):
        changes = ", ".join(
            f"{key}: {current!r} -> {expected!r}"
            for key, (current, expected) in difference.changed_attributes().items()
        )
        return f"{difference.column_name}: {changes}"
    return repr(difference)


def _display_differences(differences: List[Difference]):
    """Display the differences a push applies."""
    table = Table(title="Differences")
    table.add_column("Class", style="cyan")
    table.add_column("Difference", style="magenta")
    table.add_column("Detail", style="green")

    for difference in differences:
        table.add_row(
            difference.class_name,
            difference.difference_type.value,
            _difference_detail(difference),
        )

    console.print(table)


def _display_conflicts(conflicts: List[Conflict]):
    """Display conflicts that block a push."""
    table = Table(title="Conflicts (resolve manually)")
    table.add_column("Location", style="cyan")
    table.add_column("Conflict", style="red")
    table.add_column("Local", style="green")
    table.add_column("Remote", style="yellow")

    for conflict in conflicts:
        table.add_row(
            conflict.location,
            conflict.conflict_type.value,
            str(conflict.local),
            str(conflict.remote),
        )

    console.print(table)


def _display_failures(result: ReconciliationResult):
    """Display failed tasks with the remote error."""
    table = Table(title="Failed tasks")
    table.add_column("Class", style="cyan")
    table.add_column("Task", style="magenta")
    table.add_column("Error", style="red")

    for outcome in result.failures:
        description = outcome.task.describe()
        table.add_row(outcome.task.class_name, description["task"], outcome.error or "")

    console.print(table)


if __name__ == "__main__":
    main()
