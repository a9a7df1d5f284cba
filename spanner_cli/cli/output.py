"""Rendering of statement results for the terminal."""

from __future__ import annotations

from typing import List, Optional, Union

from rich import box
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from spanner_cli.config.models import OutputFormat
from spanner_cli.formatting import format_timestamp
from spanner_cli.result import Result


def build_table(result: Result) -> Table:
    """Build a rich table with one column per result column."""
    table = Table(show_header=True, header_style="bold magenta", box=box.ASCII)
    for name in result.column_names:
        table.add_column(escape(name), overflow="fold")
    for row in result.rows:
        table.add_row(*[Text(value) for value in row.columns])
    return table


def format_vertical(result: Result) -> str:
    lines: List[str] = []
    width = max((len(name) for name in result.column_names), default=0)
    for i, row in enumerate(result.rows, start=1):
        lines.append(f"{'*' * 27} {i}. row {'*' * 27}")
        for name, value in zip(result.column_names, row.columns):
            lines.append(f"{name.rjust(width)}: {value}")
    return "\n".join(lines)


def format_tab(result: Result) -> str:
    lines = ["\t".join(result.column_names)]
    lines.extend("\t".join(row.columns) for row in result.rows)
    return "\n".join(lines)


def format_csv(result: Result) -> str:
    return result.to_dataframe().to_csv(index=False, lineterminator="\n").rstrip("\n")


def format_json(result: Result) -> str:
    return result.to_dataframe().to_json(orient="records", force_ascii=False)


def format_result(result: Result, output_format: OutputFormat) -> Union[Table, str]:
    """Render the rows of ``result``.

    Returns:
        A rich Table for TABLE output, otherwise plain text.
    """
    output_format = OutputFormat(output_format)
    if output_format == OutputFormat.TABLE:
        return build_table(result)
    if output_format == OutputFormat.VERTICAL:
        return format_vertical(result)
    if output_format == OutputFormat.CSV:
        return format_csv(result)
    if output_format == OutputFormat.JSON:
        return format_json(result)
    return format_tab(result)


def format_summary(result: Result, verbose: bool = False) -> str:
    """Status line shown after a statement, e.g. ``2 rows in set (0.05 sec)``."""
    elapsed = f"({result.stats.elapsed_time:.2f} sec)"
    count = result.stats.affected_rows

    if result.is_mutation:
        noun = "row" if count == 1 else "rows"
        lines = [f"Query OK, {count} {noun} affected {elapsed}"]
    elif result.is_empty:
        lines = [f"Empty set {elapsed}"]
    else:
        noun = "row" if count == 1 else "rows"
        lines = [f"{count} {noun} in set {elapsed}"]

    if verbose:
        if result.timestamp is not None:
            lines.append(f"timestamp:      {format_timestamp(result.timestamp)}")
        query_stats = result.stats.query_stats
        for key, label in (("cpu_time", "cpu time"), ("rows_scanned", "rows scanned"),
                           ("deleted_rows_scanned", "deleted rows scanned"), ("optimizer_version", "optimizer version"),
                           ("optimizer_statistics_package", "optimizer statistics")):
            if query_stats.get(key):
                lines.append(f"{label + ':':<15} {query_stats[key]}")
    return "\n".join(lines)


def format_predicates(result: Result) -> Optional[str]:
    if not result.predicates:
        return None
    return "\n".join(["Predicates(identified by ID):"] + [f" {p}" for p in result.predicates])
