"""Configuration management CLI commands."""

from __future__ import annotations

from pathlib import Path

import click
from rich.markup import escape

from spanner_cli.cli.utils import console
from spanner_cli.config import create_sample_config, load_config
from spanner_cli.exceptions import ConfigurationError


@click.group(name="config")
def config_group() -> None:
    """Configuration management."""
    pass


@config_group.command(name="validate")
@click.argument("config_file", type=click.Path(exists=True))
def validate_command(config_file: str) -> None:
    """Validate configuration file."""
    try:
        config = load_config(config_file)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration validation failed: {escape(exc.message)}[/red]")
        raise SystemExit(1) from exc

    console.print(f"[green]Configuration file '{escape(config_file)}' is valid[/green]")
    names = ", ".join(config.connections.keys()) or "none"
    console.print(f"Found {len(config.connections)} connection(s): {escape(names)}")
    if config.default_connection:
        console.print(f"Default connection: [cyan]{escape(config.default_connection)}[/cyan]")


@config_group.command(name="sample")
@click.argument("output_file", type=click.Path())
def sample_command(output_file: str) -> None:
    """Create sample configuration file."""
    output_path = Path(output_file)
    if output_path.exists():
        click.confirm(f"File '{output_file}' exists. Overwrite?", abort=True)

    try:
        create_sample_config(output_path)
    except OSError as exc:
        console.print(f"[red]Error creating sample configuration: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc

    console.print(f"[green]Sample configuration created: {escape(output_file)}[/green]")
    console.print("\n[yellow]Next steps:[/yellow]")
    console.print("1. Edit the connections to match your Spanner project, instance and database")
    console.print("2. Set required environment variables (e.g., GOOGLE_APPLICATION_CREDENTIALS)")
    console.print(f"3. Validate: [cyan]spanner-cli config validate {escape(output_file)}[/cyan]")
