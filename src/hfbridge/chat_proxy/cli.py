"""Typer CLI for running and inspecting the chat proxy."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from ..logging_utils import configure_logging
from .config import ProxyConfig
from .config_loader import (
    config_file_path,
    load_file_config,
    load_proxy_config,
    redacted,
    update_config_file,
    write_config,
)
from .models import ChatMessage
from .translator import Translator

app = typer.Typer(help="Hugging Face chat-completion proxy utilities")
console = Console()


@app.command("serve")
def cmd_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Listen port"),
    show_reasoning: Optional[bool] = typer.Option(
        None,
        "--show-reasoning/--hide-reasoning",
        help="Expose <think> reasoning spans to callers",
    ),
    log_level: str = typer.Option("INFO", "--log-level"),
):
    """Run the proxy under uvicorn."""
    import uvicorn

    from .app import create_app

    cfg = load_proxy_config()
    if host:
        cfg.host = host
    if port:
        cfg.port = port
    if show_reasoning is not None:
        cfg.show_reasoning = show_reasoning
    log_path = configure_logging("hfbridge", level=getattr(logging, log_level.upper(), logging.INFO))
    typer.echo(f"Logging to {log_path}")
    if not cfg.has_credentials:
        typer.secho(
            "HF_API_KEY is not set; chat requests will return configuration_error.",
            fg=typer.colors.YELLOW,
        )
    uvicorn.run(create_app(cfg), host=cfg.host, port=cfg.port, log_config=None)


@app.command("config")
def cmd_config():
    """Show the effective configuration (environment > file > defaults)."""
    cfg = load_proxy_config()
    table = Table(title=f"hfbridge configuration ({cfg.config_file_path})")
    table.add_column("Field")
    table.add_column("Value")
    for key, value in redacted(cfg).items():
        if key == "config_file_path":
            continue
        table.add_row(key, json.dumps(value))
    console.print(table)


@app.command("init-config")
def cmd_init_config(
    path: Optional[Path] = typer.Argument(None, help="Target TOML file"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
):
    """Write a configuration file populated with defaults."""
    target = path or config_file_path()
    if target.exists() and not force:
        typer.secho(f"{target} already exists (use --force)", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    written = write_config(ProxyConfig(), target)
    typer.echo(f"Wrote {written}")


@app.command("set-config")
def cmd_set_config(
    assignments: List[str] = typer.Argument(..., help="KEY=VALUE pairs"),
    path: Optional[Path] = typer.Option(None, "--file", help="Target TOML file"),
):
    """Persist settings to the configuration file and show the stored values."""
    updates = {}
    for item in assignments:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            typer.secho(f"Expected KEY=VALUE, got '{item}'", fg=typer.colors.RED)
            raise typer.Exit(code=2)
        updates[key.strip()] = value.strip()
    target = path or config_file_path()
    try:
        update_config_file(updates, target)
    except KeyError as exc:
        typer.secho(str(exc.args[0]), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    stored = load_file_config(target)
    for key in updates:
        typer.echo(f"{key} = {json.dumps(stored[key])}")


@app.command("prompt")
def cmd_prompt(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON chat request or message list"),
):
    """Render a chat request into the upstream prompt string."""
    data = json.loads(file.read_text(encoding="utf-8"))
    raw_messages = data.get("messages", []) if isinstance(data, dict) else data
    try:
        messages = [ChatMessage(**m) for m in raw_messages]
    except (TypeError, ValidationError) as exc:
        typer.secho(f"Invalid messages: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=2)
    typer.echo(Translator.build_prompt(messages))


if __name__ == "__main__":  # pragma: no cover
    app()
