"""spanner-cli: an interactive command-line SQL client for Cloud Spanner.

spanner-cli provides:
- Query, DML, partitioned DML and DDL execution
- Explicit read-write and read-only transactions
- SHOW / EXPLAIN / DESCRIBE helpers
- Table, vertical, tab, CSV and JSON output
- YAML-based connection profiles
"""

__version__ = "0.1.0"
__license__ = "MIT"

from spanner_cli.exceptions import (
    SpannerCliError,
    ConfigurationError,
    SessionError,
    StatementError,
    ExecutionError,
)
from spanner_cli.result import Result, Row, Stats
from spanner_cli.session import Session
from spanner_cli.statement import Statement, build_statement

__all__ = [
    "__version__",
    "SpannerCliError",
    "ConfigurationError",
    "SessionError",
    "StatementError",
    "ExecutionError",
    "Result",
    "Row",
    "Stats",
    "Session",
    "Statement",
    "build_statement",
]
