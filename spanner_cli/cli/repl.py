"""Interactive and batch statement loops."""

from __future__ import annotations

import logging
import os
from typing import List, Optional

import click
from rich.console import Console
from rich.markup import escape

from spanner_cli.cli.output import format_predicates, format_result, format_summary
from spanner_cli.cli.utils import console as default_console, error_console
from spanner_cli.config.models import OutputFormat
from spanner_cli.exceptions import SpannerCliError
from spanner_cli.result import Result
from spanner_cli.separator import InputStatement, separate_input
from spanner_cli.session import Session
from spanner_cli.statement import DropDatabaseStatement, ExitStatement, build_statement

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "spanner\\t> "
CONTINUATION_PROMPT = "      -> "


class CommandLine:
    """Reads statements, executes them on a session and prints the results."""

    def __init__(
        self,
        session: Session,
        output_format: Optional[OutputFormat] = None,
        verbose: bool = False,
        prompt: str = DEFAULT_PROMPT,
        history_file: Optional[str] = None,
        console: Optional[Console] = None,
    ) -> None:
        self.session = session
        self.output_format = output_format
        self.verbose = verbose
        self.prompt = prompt
        self.history_file = os.path.expanduser(history_file) if history_file else None
        self.console = console or default_console

    def expand_prompt(self) -> str:
        """Substitute ``\\p``, ``\\i``, ``\\d`` and ``\\t`` in the prompt."""
        if self.session.in_read_write_transaction():
            txn = "(rw txn)"
        elif self.session.in_read_only_transaction():
            txn = "(ro txn)"
        else:
            txn = ""
        return (
            self.prompt.replace("\\p", self.session.project_id)
            .replace("\\i", self.session.instance_id)
            .replace("\\d", self.session.database_id)
            .replace("\\t", txn)
        )

    def print_result(self, result: Result, output_format: OutputFormat, interactive: bool) -> None:
        if result.column_names:
            rendered = format_result(result, output_format)
            if isinstance(rendered, str):
                click.echo(rendered)
            else:
                self.console.print(rendered)
            predicates = format_predicates(result)
            if predicates:
                click.echo(predicates)

        if interactive or self.verbose:
            self.console.print(escape(format_summary(result, self.verbose)))
            if interactive:
                self.console.print()

    # Batch mode

    def run_batch(self, text: str) -> int:
        """Execute every statement in ``text``; stop at the first failure.

        Returns:
            Process exit code.
        """
        for piece in separate_input(text):
            try:
                statement = build_statement(piece.statement)
                if isinstance(statement, ExitStatement):
                    break
                result = statement.execute(self.session)
            except SpannerCliError as e:
                error_console.print(f"[red]ERROR: {escape(e.message)}[/red]")
                logger.debug(f"Batch statement failed: {piece.statement}")
                return 1

            output_format = OutputFormat.VERTICAL if piece.vertical else (self.output_format or OutputFormat.TAB)
            self.print_result(result, output_format, interactive=False)
        return 0

    # Interactive mode

    def read_statements(self) -> Optional[List[InputStatement]]:
        """Read lines until at least one statement is terminated.

        Returns:
            Terminated statements, or None at end of input.
        """
        lines: List[str] = []
        while True:
            prompt = self.expand_prompt() if not lines else CONTINUATION_PROMPT
            try:
                line = self.console.input(escape(prompt))
            except EOFError:
                return None

            if not lines and line.strip().lower() in ("exit", "quit", "\\q"):
                return [InputStatement("EXIT")]

            lines.append(line)
            pieces = separate_input("\n".join(lines))
            if not pieces:
                lines = []
                continue
            if pieces[-1].terminated:
                return pieces

    def run_interactive(self) -> int:
        self._load_history()
        self.console.print(
            f"Connected to [cyan]{escape(self.session.database_path)}[/cyan]. Type EXIT; or press Ctrl-D to quit.\n"
        )
        try:
            while True:
                try:
                    pieces = self.read_statements()
                except KeyboardInterrupt:
                    self.console.print()
                    continue
                if pieces is None:
                    break
                if not self._run_interactive_statements(pieces):
                    break
        finally:
            self._save_history()

        self.console.print("Bye")
        return 0

    def _run_interactive_statements(self, pieces: List[InputStatement]) -> bool:
        """Execute statements typed at the prompt; False means the session should end."""
        for piece in pieces:
            try:
                statement = build_statement(piece.statement)
                if isinstance(statement, ExitStatement):
                    return False
                if isinstance(statement, DropDatabaseStatement) and not click.confirm(
                    f"Database {statement.database_id!r} will be dropped.\nDo you want to continue?",
                    default=False,
                ):
                    continue
                result = statement.execute(self.session)
            except SpannerCliError as e:
                self.console.print(f"[red]ERROR: {escape(e.message)}[/red]\n")
                continue

            output_format = OutputFormat.VERTICAL if piece.vertical else (self.output_format or OutputFormat.TABLE)
            self.print_result(result, output_format, interactive=True)
        return True

    def _load_history(self) -> None:
        if not self.history_file:
            return
        try:
            import readline
        except ImportError:
            return
        if os.path.exists(self.history_file):
            try:
                readline.read_history_file(self.history_file)
            except OSError as e:
                logger.warning(f"Failed to read history file {self.history_file}: {e}")

    def _save_history(self) -> None:
        if not self.history_file:
            return
        try:
            import readline
        except ImportError:
            return
        try:
            readline.write_history_file(self.history_file)
        except OSError as e:
            logger.warning(f"Failed to write history file {self.history_file}: {e}")
