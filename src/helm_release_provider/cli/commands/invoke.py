"""Invoke command: run one handler step against a local request file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
import typer
from pydantic import ValidationError
from rich.console import Console

from helm_release_provider.handlers import HANDLERS, HandlerRequest

console = Console()
logger = structlog.get_logger()


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        console.print(f"[red]Cannot read {path}:[/red] {e}")
        raise typer.Exit(1) from e
    if not isinstance(data, dict):
        console.print(f"[red]{path} must contain a JSON object[/red]")
        raise typer.Exit(1)
    return data


def invoke(
    handler: str = typer.Argument(..., help="Handler to run: create, update, delete, read, list."),
    request_file: Path = typer.Argument(..., help="JSON file with the handler request."),
    context_file: Path | None = typer.Option(
        None,
        "--context",
        "-c",
        help="JSON file with the callback context returned by the previous step.",
    ),
) -> None:
    """Run one handler step and print the progress event as JSON."""
    fn = HANDLERS.get(handler)
    if fn is None:
        console.print(
            f"[red]Unknown handler {handler!r}.[/red] Choose from: {', '.join(HANDLERS)}"
        )
        raise typer.Exit(2)

    try:
        request = HandlerRequest.model_validate(_read_json(request_file))
    except ValidationError as e:
        console.print(f"[red]Invalid request:[/red] {e}")
        raise typer.Exit(1) from e
    context = _read_json(context_file) if context_file else None

    logger.info("Invoking handler", handler=handler, request=str(request_file))
    event = fn(request, context)
    console.print_json(json.dumps(event.to_dict()))

    if event.error_code:
        raise typer.Exit(1)
