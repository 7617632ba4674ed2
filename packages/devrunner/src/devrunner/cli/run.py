"""Run command: start every configured service and open the UI.

- Loads the run file, the environment file and command line overrides
- Builds one ProcessSpec per service, in start order
- Runs the Supervisor with the ViewController until the operator exits
- Exits 1 if any service failed to spawn during the session
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional, Sequence

import typer
from rich.console import Console
from rich.markup import escape

from devrunner.config import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_LOG_DIR,
    RunConfig,
    TUISettings,
    build_specs,
    environment_lines,
    load_environment_file,
    load_run_config,
    merge_environment,
    parse_assignments,
)
from devrunner.errors import ConfigError
from devrunner.logging import DEFAULT_LOG_FILE, configure_logging
from devrunner.process import CancelScope, ProcessSpec, StartFailure, Supervisor
from devrunner.tui import ProcessPane, StateStore, ViewController

logger = logging.getLogger(__name__)


def resolve_environment(
    config: RunConfig,
    env_file: Path | None,
    overrides: Sequence[str],
) -> dict[str, str]:
    """
    Session environment: the environment file with --env overrides on top.

    Raises:
        ConfigError: If the file cannot be read or an override is malformed
    """
    path = env_file if env_file is not None else config.environment_file
    from_file = load_environment_file(path) if path is not None else {}
    return merge_environment(from_file, parse_assignments(overrides, "--env"))


async def run_session(
    specs: Sequence[ProcessSpec],
    settings: TUISettings,
    environment: Sequence[str] = (),
    console: Console | None = None,
) -> list[StartFailure]:
    """
    Wire runners, panes and the controller together and run until exit.

    Args:
        specs: Services in start order
        settings: TUI start state and appearance
        environment: KEY=VALUE lines for the environment view
        console: Rich Console for the UI

    Returns:
        Spawn failures seen during the session
    """
    cancel = CancelScope()
    supervisor = Supervisor(specs, cancel, max_buffer_bytes=settings.max_buffer_bytes)
    state = StateStore(
        autoscroll=settings.auto_scroll,
        wrap=settings.wrap_lines,
        borderless=settings.borderless,
    )
    panes = [
        ProcessPane(
            runner,
            highlight_color=settings.highlight_color,
            border_color=settings.border_color,
            max_lines=settings.max_ui_log_lines,
        )
        for runner in supervisor.runners
    ]
    controller = ViewController(
        panes,
        state,
        cancel,
        environment=environment,
        console=console,
        refresh_per_second=settings.refresh_per_second,
        mouse=settings.mouse,
        border_color=settings.border_color,
    )
    return await supervisor.run(controller)


def run_command(
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
    export_logs: bool = typer.Option(
        False, "--export-logs", help="Also write each service's output to a file"
    ),
    log_dir: Path = typer.Option(DEFAULT_LOG_DIR, "--log-dir", help="Directory for exported logs"),
    log_level: str = typer.Option(
        "INFO", "--log-level", envvar="DEVRUNNER_LOG_LEVEL", help="DEBUG, INFO, WARN or ERROR"
    ),
    log_file: Path = typer.Option(DEFAULT_LOG_FILE, "--log-file", help="devrunner's own log file"),
) -> None:
    """
    Start every service in order and show their output.

    Runs until you quit the UI with q or Ctrl+C.
    """
    console = Console()
    configure_logging(log_level, log_file)

    try:
        run_config = load_run_config(config)
        session_env = resolve_environment(run_config, env_file, env or [])
        specs = build_specs(
            run_config,
            merge_environment(os.environ, session_env),
            parse_assignments(path or [], "--path"),
            log_dir if export_logs else None,
        )
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    logger.info("starting %d services from %s", len(specs), config)
    failures = asyncio.run(
        run_session(specs, run_config.tui, environment_lines(session_env), console=console)
    )

    if failures:
        for failure in failures:
            console.print(f"[red]Error:[/red] {escape(str(failure.error))}")
        raise typer.Exit(1)
    console.print("[green]devrunner shutdown complete[/green]")
