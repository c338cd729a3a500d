"""Thin CLI wrapper for shared_builds.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
from pathlib import Path
from typing import Annotated

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from shared_builds import __version__
from shared_builds.builds.io import dump_definitions, load_definitions
from shared_builds.builds.service import decide_action
from shared_builds.config import configure_logging, get_settings, print_settings_json
from shared_builds.types import BuildStatus

app = typer.Typer(
    name="sharedbuilds",
    help="Shared Builds - deploy each shared image build once and keep it current",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"shared-builds version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Shared Builds - deploy each shared image build once and keep it current."""
    configure_logging(get_settings().log_level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings), soft_wrap=True)
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Cluster:[/bold]")
    console.print(f"  Build namespace:     {settings.build_namespace}")
    console.print()
    console.print("[bold]Build policy:[/bold]")
    console.print(f"  Force rebuild:       {settings.force_rebuild}")
    console.print(f"  Binary build:        {settings.binary_build}")
    console.print(f"  Max image age:       {settings.max_image_age_days} day(s)")
    console.print()
    console.print("[bold]Waiting:[/bold]")
    console.print(f"  Build timeout:       {settings.build_timeout} minute(s)")
    console.print(f"  Poll interval:       {settings.poll_interval} second(s)")
    console.print()
    console.print(f"  Log level:           {settings.log_level}")


@app.command()
def definitions(
    path: Annotated[
        Path,
        typer.Argument(help="YAML or JSON file with a 'builds' list"),
    ],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Validate a build definitions file and list its builds."""
    try:
        loaded = load_definitions(path)
    except FileNotFoundError:
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(code=1) from None
    except (ValueError, ValidationError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid definitions file {path}:[/red]\n{escape(str(e))}")
        raise typer.Exit(code=1) from None

    if json_output:
        output = dump_definitions(loaded)
        for entry, definition in zip(output, loaded):
            entry["fingerprint"] = definition.source_fingerprint()
        console.print(json.dumps(output, indent=2), soft_wrap=True)
        return

    if not loaded:
        console.print("[yellow]No builds defined[/yellow]")
        return

    console.print(f"[bold]Found {len(loaded)} build(s):[/bold]")
    console.print()
    for definition in loaded:
        console.print(f"  [green]{definition.name}[/green]")
        console.print(f"    Source: {definition.git_url}#{definition.git_ref}")
        if definition.context_dir:
            console.print(f"    Context: {definition.context_dir}")
        console.print(f"    Builder: {definition.builder_image}")
        console.print(f"    Strategy: {definition.strategy.value}")
        console.print(f"    Fingerprint: {definition.source_fingerprint()[:23]}")
        console.print()


@app.command()
def policy(
    force: Annotated[
        bool | None,
        typer.Option(
            "--force/--no-force",
            help="Override the configured force-rebuild flag",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show which action each build status leads to."""
    force_rebuild = get_settings().force_rebuild if force is None else force
    table = {
        status.value: decide_action(status, force_rebuild).value
        for status in BuildStatus
    }

    if json_output:
        console.print(
            json.dumps({"force_rebuild": force_rebuild, "actions": table}, indent=2),
            soft_wrap=True,
        )
        return

    rich_table = Table(title=f"Reconcile policy (force rebuild: {force_rebuild})")
    rich_table.add_column("Status")
    rich_table.add_column("Action")
    for status, action in table.items():
        rich_table.add_row(status, action)
    console.print(rich_table)


if __name__ == "__main__":
    app()
