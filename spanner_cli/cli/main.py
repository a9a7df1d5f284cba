"""Main CLI entry point for spanner-cli."""

from __future__ import annotations

import sys
from typing import Any, Dict, Optional, TextIO

import click
from pydantic import ValidationError
from rich.markup import escape

from spanner_cli import __version__
from spanner_cli.cli.commands import register_commands
from spanner_cli.cli.commands.configuration import config_group
from spanner_cli.cli.repl import CommandLine
from spanner_cli.cli.utils import configure_logging, console, error_console, print_exception
from spanner_cli.config import CliConfig, ConnectionConfig, EnvironmentSettings, OutputFormat, Priority, load_config
from spanner_cli.exceptions import ConfigurationError, SpannerCliError
from spanner_cli.session import Session


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.option("--project", "-p", envvar="SPANNER_PROJECT_ID", help="GCP project id")
@click.option("--instance", "-i", envvar="SPANNER_INSTANCE_ID", help="Cloud Spanner instance id")
@click.option("--database", "-d", envvar="SPANNER_DATABASE_ID", help="Cloud Spanner database id")
@click.option("--credential", help="Service account key file or JSON payload")
@click.option("--endpoint", help="Custom API endpoint")
@click.option("--role", help="Database role for fine-grained access control")
@click.option(
    "--priority",
    type=click.Choice([p.value for p in Priority], case_sensitive=False),
    help="Default request priority",
)
@click.option("--execute", "-e", help="Execute SQL statements and quit")
@click.option("--file", "-f", "sql_file", type=click.File("r"), help="Execute SQL statements from file and quit ('-' for stdin)")
@click.option("--table", "-t", is_flag=True, help="Use table output in batch mode")
@click.option("--output", "-o", type=click.Choice([f.value for f in OutputFormat]), help="Output format")
@click.option("--prompt", help="Interactive prompt (supports \\p \\i \\d \\t)")
@click.option("--history", help="History file for interactive mode")
@click.option("--config", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--connection", "-c", help="Connection name from the configuration file")
@click.option("--verbose", "-v", is_flag=True, help="Show verbose output and debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    version: bool,
    project: Optional[str],
    instance: Optional[str],
    database: Optional[str],
    credential: Optional[str],
    endpoint: Optional[str],
    role: Optional[str],
    priority: Optional[str],
    execute: Optional[str],
    sql_file: Optional[TextIO],
    table: bool,
    output: Optional[str],
    prompt: Optional[str],
    history: Optional[str],
    config: Optional[str],
    connection: Optional[str],
    verbose: bool,
) -> None:
    """spanner-cli - interactive SQL client for Cloud Spanner."""
    if version:
        console.print(f"spanner-cli v{__version__}")
        return

    if ctx.invoked_subcommand is not None:
        return

    env_settings = EnvironmentSettings()
    configure_logging("DEBUG" if verbose or env_settings.debug else env_settings.log_level)

    if execute is not None and sql_file is not None:
        error_console.print("[red]--execute and --file are mutually exclusive[/red]")
        raise SystemExit(1)

    try:
        cli_config = load_config(config, required=config is not None)
        connection_config = resolve_connection(
            cli_config,
            connection,
            project=project,
            instance=instance,
            database=database,
            credential=credential,
            endpoint=endpoint,
            role=role,
        )
    except ConfigurationError as exc:
        error_console.print(f"[red]Configuration Error: {escape(exc.message)}[/red]")
        raise SystemExit(1) from exc

    settings = cli_config.cli_settings
    batch_input = read_batch_input(execute, sql_file)

    if output:
        output_format: Optional[OutputFormat] = OutputFormat(output)
    elif table:
        output_format = OutputFormat.TABLE
    else:
        output_format = settings.output_format

    try:
        session = Session.from_config(
            connection_config,
            priority=Priority(priority.upper()) if priority else settings.priority,
            ddl_timeout=settings.ddl_timeout,
        )
    except SpannerCliError as exc:
        print_exception("Connection Error", exc, verbose)
        raise SystemExit(1) from exc

    with session:
        command_line = CommandLine(
            session,
            output_format=output_format,
            verbose=verbose or settings.verbose,
            prompt=prompt or settings.prompt,
            history_file=history or settings.history_file,
        )
        if batch_input is not None:
            exit_code = command_line.run_batch(batch_input)
        else:
            exit_code = command_line.run_interactive()

    if exit_code:
        raise SystemExit(exit_code)


def resolve_connection(
    cli_config: CliConfig,
    connection_name: Optional[str] = None,
    **overrides: Optional[str],
) -> ConnectionConfig:
    """Merge a configured connection with command-line overrides.

    Raises:
        ConfigurationError: If the connection is unknown or incomplete.
    """
    values: Dict[str, Any] = {}
    name = connection_name or cli_config.default_connection
    if name:
        if name not in cli_config.connections:
            raise ConfigurationError(f"Connection '{name}' not found in configuration")
        values.update(cli_config.connections[name].model_dump())

    values.update({key: value for key, value in overrides.items() if value})

    missing = [key for key in ("project", "instance", "database") if not values.get(key)]
    if missing:
        raise ConfigurationError(f"Missing parameters: {', '.join(missing)} (use --{missing[0]} or a configuration file)")

    try:
        return ConnectionConfig(**values)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid connection parameters: {exc}") from exc


def read_batch_input(execute: Optional[str], sql_file: Optional[TextIO]) -> Optional[str]:
    """Return the statements to run in batch mode, or None for interactive mode."""
    if execute is not None:
        return execute
    if sql_file is not None:
        return sql_file.read()
    if not sys.stdin.isatty():
        return click.get_text_stream("stdin").read()
    return None


COMMAND_REGISTRY = [
    config_group,
]

register_commands(cli, COMMAND_REGISTRY)


if __name__ == "__main__":
    cli()
