"""Config command: show the configuration handlers would run with."""

from __future__ import annotations

import shutil

import structlog
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from helm_release_provider.config import ProviderConfig

console = Console()
logger = structlog.get_logger()


def show_config() -> None:
    """Show the provider configuration resolved from the environment."""
    try:
        config = ProviderConfig.from_env()
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1) from e

    table = Table(title="Helm Release Provider")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")

    helm = config.helm_binary or shutil.which("helm")
    table.add_row("Region", config.region)
    table.add_row("Kubeconfig", config.kubeconfig)
    table.add_row("Helm binary", helm or "[yellow]not found[/yellow]")
    table.add_row("Helm timeout", f"{config.helm_timeout}s")
    table.add_row("Callback delay", f"{config.callback_delay_seconds}s")
    table.add_row("Transient re-polls", str(config.max_transient_retries))
    table.add_row("Proxy prefix", config.proxy.name_prefix)
    table.add_row("Proxy role", config.proxy.role_arn or "[yellow]unset[/yellow]")
    console.print(table)

    logger.debug("config_shown", region=config.region, helm=helm)
