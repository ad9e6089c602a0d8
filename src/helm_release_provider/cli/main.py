"""helm-provider: run handler steps and inspect identity tokens locally."""

from __future__ import annotations

import typer
from rich.console import Console

from helm_release_provider import __version__
from helm_release_provider.cli.commands import config, identity, invoke
from helm_release_provider.logging.config import configure_logging

app = typer.Typer(
    name="helm-provider",
    help="Drive Helm release handlers one step at a time.",
    add_completion=True,
)

console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"helm-provider version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log release events."),
    debug: bool = typer.Option(False, "--debug", help="Log helm commands and SDK traffic."),
) -> None:
    """Install, upgrade and remove Helm releases step by step."""
    configure_logging(verbose=verbose, debug=debug, json_output=False)


app.add_typer(identity.app, name="identity")
app.command()(invoke.invoke)
app.command(name="config")(config.show_config)


if __name__ == "__main__":
    app()
