"""Identity token commands."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from helm_release_provider.exceptions import InvalidIdentityError
from helm_release_provider.services.release.identity import decode_identity, encode_identity

app = typer.Typer(help="Encode and decode release identity tokens.")
console = Console()


@app.command()
def encode(
    cluster_id: str = typer.Option("", "--cluster-id", help="Cluster identifier."),
    region: str = typer.Option(..., "--region", help="AWS region."),
    name: str = typer.Option(..., "--name", help="Release name."),
    namespace: str = typer.Option("default", "--namespace", "-n", help="Release namespace."),
) -> None:
    """Print the identity token for a release."""
    console.print(encode_identity(cluster_id, region, name, namespace), soft_wrap=True)


@app.command()
def decode(token: str = typer.Argument(..., help="Identity token.")) -> None:
    """Show the release identity carried by a token."""
    try:
        identity = decode_identity(token)
    except InvalidIdentityError as e:
        console.print(f"[red]Invalid identity token:[/red] {e.message}")
        raise typer.Exit(1) from e

    table = Table(title="Release Identity")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    table.add_row("ClusterID", identity.cluster_id)
    table.add_row("Region", identity.region)
    table.add_row("Name", identity.name)
    table.add_row("Namespace", identity.namespace)
    console.print(table)
