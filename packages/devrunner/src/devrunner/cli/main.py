"""devrunner CLI - run local node processes side by side in one terminal."""

import typer
from rich.console import Console

from devrunner import __version__
from devrunner.cli.run import run_command
from devrunner.cli.services import services_command

app = typer.Typer(
    name="devrunner",
    help="Run local node processes in dependency order with a terminal UI",
    no_args_is_help=True,
)

app.command("run")(run_command)
app.command("services")(services_command)


@app.command("version")
def version() -> None:
    """Print the devrunner version."""
    Console().print(f"devrunner {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
