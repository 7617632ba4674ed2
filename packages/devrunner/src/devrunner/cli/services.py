"""Services command: show what `run` would start, without starting it."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from devrunner.cli.run import resolve_environment
from devrunner.config import DEFAULT_CONFIG_PATH, build_specs, load_run_config, merge_environment, parse_assignments
from devrunner.errors import ConfigError


def services_command(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Run file (TOML)"),
    env_file: Path = typer.Option(
        None, "--env-file", "-e", help="Environment file of KEY=VALUE lines"
    ),
    env: Optional[list[str]] = typer.Option(
        None, "--env", help="Environment override KEY=VALUE (repeatable)"
    ),
    path: Optional[list[str]] = typer.Option(
        None, "--path", help="Binary override NAME=PATH (repeatable)"
    ),
) -> None:
    """List services in start order with their resolved binaries."""
    console = Console()
    try:
        run_config = load_run_config(config)
        session_env = resolve_environment(run_config, env_file, env or [])
        specs = build_specs(
            run_config,
            merge_environment(os.environ, session_env),
            parse_assignments(path or [], "--path"),
        )
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    table = Table(title="Services")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Name")
    table.add_column("Title", style="green")
    table.add_column("Binary")
    table.add_column("Args")
    table.add_column("Ready check")

    for index, (service, spec) in enumerate(zip(run_config.services, specs), start=1):
        binary = escape(spec.bin_path)
        if not os.access(spec.bin_path, os.X_OK):
            binary = f"{binary} [red](missing)[/red]"
        table.add_row(
            str(index),
            escape(service.name),
            escape(spec.title),
            binary,
            escape(" ".join(spec.args)) or "-",
            escape(spec.ready_check.name) if spec.ready_check is not None else "-",
        )

    console.print(table)
