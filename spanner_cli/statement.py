"""Statement classification and execution.

``build_statement`` turns raw text into one of the statement classes below.
Each statement knows how to run itself against a :class:`Session` and returns
a :class:`Result` whose rows are already rendered as display strings.
"""

import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, List, Mapping, Optional, Pattern, Tuple

from google.cloud.spanner_v1 import ExecuteSqlRequest, param_types

from spanner_cli.config.models import Priority
from spanner_cli.exceptions import StatementError
from spanner_cli.formatting import format_type, format_value
from spanner_cli.query_plan import render_plan
from spanner_cli.result import Result, Row, Stats
from spanner_cli.session import Session, translate_errors

logger = logging.getLogger(__name__)

QueryMode = ExecuteSqlRequest.QueryMode


class Statement(ABC):
    """A parsed, executable statement."""

    @abstractmethod
    def execute(self, session: Session) -> Result:
        """Run the statement against ``session``."""


class _Timer:
    def __init__(self) -> None:
        self.start = time.time()

    def elapsed(self) -> float:
        return time.time() - self.start


def _struct_to_dict(value: Any) -> dict:
    if not value:
        return {}
    return dict(value.items()) if isinstance(value, Mapping) else {}


def _rows_from_query(rows: List[List[Any]], fields) -> Tuple[List[str], List[Row]]:
    column_names = [f.name for f in fields]
    rendered = [
        Row([format_value(value, f.type_) for value, f in zip(row, fields)])
        for row in rows
    ]
    return column_names, rendered


def _query_result(session: Session, sql: str, timer: _Timer, **kwargs: Any) -> Result:
    rows, fields, stats = session.run_query(sql, **kwargs)
    column_names, rendered = _rows_from_query(rows, fields)
    return Result(
        column_names=column_names,
        rows=rendered,
        stats=Stats(
            affected_rows=len(rendered),
            elapsed_time=timer.elapsed(),
            query_stats=_struct_to_dict(stats.query_stats) if stats is not None else {},
        ),
        is_mutation=False,
    )


def _mutation_result(timer: _Timer, affected_rows: int = 0, timestamp: Optional[datetime] = None) -> Result:
    return Result(
        column_names=[],
        rows=[],
        stats=Stats(affected_rows=affected_rows, elapsed_time=timer.elapsed()),
        is_mutation=True,
        timestamp=timestamp,
    )


def unquote_identifier(identifier: str) -> str:
    identifier = identifier.strip()
    if len(identifier) >= 2 and identifier[0] == "`" and identifier[-1] == "`":
        return identifier[1:-1]
    return identifier


def split_table_name(name: str) -> Tuple[str, str]:
    """Split ``schema.table`` into its parts; the default schema is empty."""
    parts = [unquote_identifier(p) for p in name.strip().split(".")]
    if len(parts) == 1:
        return "", parts[0]
    return ".".join(parts[:-1]), parts[-1]


def _is_dml(sql: str) -> bool:
    return bool(_DML_RE.match(sql.strip()))


# Query statements


@dataclass(frozen=True)
class SelectStatement(Statement):
    query: str

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        return _query_result(session, self.query, timer, query_mode=QueryMode.PROFILE)


@dataclass(frozen=True)
class ExplainStatement(Statement):
    """``EXPLAIN <query>``: show the plan without running the query."""
    query: str

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        _, _, stats = session.run_query(self.query, query_mode=QueryMode.PLAN, read_write=_is_dml(self.query))
        column_names, rows, predicates = render_plan(stats.query_plan if stats is not None else None)
        return Result(
            column_names=column_names,
            rows=[Row(r) for r in rows],
            stats=Stats(affected_rows=len(rows), elapsed_time=timer.elapsed()),
            predicates=predicates,
        )


@dataclass(frozen=True)
class ExplainAnalyzeStatement(Statement):
    """``EXPLAIN ANALYZE <query>``: run the query and show the profiled plan."""
    query: str

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        is_dml = _is_dml(self.query)
        rows, _, stats = session.run_query(self.query, query_mode=QueryMode.PROFILE, read_write=is_dml)
        column_names, plan_rows, predicates = render_plan(
            stats.query_plan if stats is not None else None, with_stats=True
        )
        if is_dml:
            affected_rows = stats.row_count_exact if stats is not None else 0
        else:
            affected_rows = len(rows)
        return Result(
            column_names=column_names,
            rows=[Row(r) for r in plan_rows],
            stats=Stats(
                affected_rows=affected_rows,
                elapsed_time=timer.elapsed(),
                query_stats=_struct_to_dict(stats.query_stats) if stats is not None else {},
            ),
            is_mutation=is_dml,
            predicates=predicates,
        )


@dataclass(frozen=True)
class DescribeStatement(Statement):
    """``DESCRIBE <query>``: list the result columns and their types."""
    query: str

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        _, fields, _ = session.run_query(self.query, query_mode=QueryMode.PLAN, read_write=_is_dml(self.query))
        rows = [Row([f.name, format_type(f.type_)]) for f in fields]
        return Result(
            column_names=["Column_Name", "Column_Type"],
            rows=rows,
            stats=Stats(affected_rows=len(rows), elapsed_time=timer.elapsed()),
        )


# Schema statements


@dataclass(frozen=True)
class CreateDatabaseStatement(Statement):
    create_statement: str

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        if session.in_transaction():
            raise StatementError("CREATE DATABASE is not allowed in a transaction")
        with translate_errors(self.create_statement):
            operation = session.admin_client.create_database(
                parent=session.instance_path,
                create_statement=self.create_statement,
            )
            session.wait_for_operation(operation, session.ddl_timeout, self.create_statement)
        return _mutation_result(timer)


@dataclass(frozen=True)
class DropDatabaseStatement(Statement):
    database_id: str

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        if session.in_transaction():
            raise StatementError("DROP DATABASE is not allowed in a transaction")
        with translate_errors():
            session.admin_client.drop_database(
                database=f"{session.instance_path}/databases/{self.database_id}"
            )
        logger.info(f"Dropped database {self.database_id}")
        return _mutation_result(timer)


@dataclass(frozen=True)
class DdlStatement(Statement):
    ddl: str

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        if session.in_transaction():
            raise StatementError("DDL statements are not allowed in a transaction")
        session.update_ddl([self.ddl])
        return _mutation_result(timer)


@dataclass(frozen=True)
class TruncateTableStatement(Statement):
    table: str

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        if session.in_transaction():
            raise StatementError("TRUNCATE TABLE is not allowed in a transaction")
        affected = session.run_partitioned_update(f"DELETE FROM `{unquote_identifier(self.table)}` WHERE true")
        return _mutation_result(timer, affected_rows=affected)


# SHOW statements


@dataclass(frozen=True)
class ShowDatabasesStatement(Statement):

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        with translate_errors():
            databases = list(session.admin_client.list_databases(parent=session.instance_path))
        rows = [Row([db.name.rsplit("/", 1)[-1]]) for db in databases]
        return Result(
            column_names=["Database"],
            rows=rows,
            stats=Stats(affected_rows=len(rows), elapsed_time=timer.elapsed()),
        )


@dataclass(frozen=True)
class ShowCreateTableStatement(Statement):
    table: str

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        schema, table = split_table_name(self.table)
        qualified = f"{schema}.{table}" if schema else table
        pattern = re.compile(
            r"^\s*CREATE\s+TABLE\s+`?" + re.escape(qualified).replace(r"\.", r"`?\.`?") + r"`?\s*\(",
            re.IGNORECASE,
        )

        with translate_errors():
            response = session.admin_client.get_database_ddl(database=session.database_path)

        rows = [Row([qualified, ddl]) for ddl in response.statements if pattern.match(ddl)]
        if not rows:
            raise StatementError(f"table {qualified!r} doesn't exist", statement=f"SHOW CREATE TABLE {self.table}")
        return Result(
            column_names=["Table", "Create Table"],
            rows=rows,
            stats=Stats(affected_rows=len(rows), elapsed_time=timer.elapsed()),
        )


@dataclass(frozen=True)
class ShowTablesStatement(Statement):
    schema: str = ""

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        alias = f"Tables_in_{session.database_id}"
        sql = (
            f"SELECT t.TABLE_NAME AS `{alias}` FROM INFORMATION_SCHEMA.TABLES AS t "
            "WHERE t.TABLE_CATALOG = '' AND t.TABLE_SCHEMA = @schema "
            "ORDER BY t.TABLE_NAME"
        )
        return _query_result(
            session,
            sql,
            timer,
            params={"schema": unquote_identifier(self.schema)},
            param_types={"schema": param_types.STRING},
        )


SHOW_COLUMNS_SQL = """SELECT
  C.COLUMN_NAME AS Field,
  C.SPANNER_TYPE AS Type,
  C.IS_NULLABLE AS `NULL`,
  IF(I.INDEX_TYPE = 'PRIMARY_KEY', 'PRI', '') AS Key,
  IC.COLUMN_ORDERING AS Key_Order,
  CONCAT(CO.OPTION_NAME, '=', CO.OPTION_VALUE) AS Options
FROM INFORMATION_SCHEMA.COLUMNS C
LEFT JOIN INFORMATION_SCHEMA.INDEX_COLUMNS IC
  ON IC.TABLE_SCHEMA = C.TABLE_SCHEMA AND IC.TABLE_NAME = C.TABLE_NAME
  AND IC.COLUMN_NAME = C.COLUMN_NAME AND IC.INDEX_NAME = 'PRIMARY_KEY'
LEFT JOIN INFORMATION_SCHEMA.INDEXES I
  ON I.TABLE_SCHEMA = IC.TABLE_SCHEMA AND I.TABLE_NAME = IC.TABLE_NAME
  AND I.INDEX_NAME = IC.INDEX_NAME
LEFT JOIN INFORMATION_SCHEMA.COLUMN_OPTIONS CO
  ON CO.TABLE_SCHEMA = C.TABLE_SCHEMA AND CO.TABLE_NAME = C.TABLE_NAME
  AND CO.COLUMN_NAME = C.COLUMN_NAME
WHERE LOWER(C.TABLE_SCHEMA) = LOWER(@table_schema) AND LOWER(C.TABLE_NAME) = LOWER(@table_name)
ORDER BY C.ORDINAL_POSITION ASC"""


SHOW_INDEX_SQL = """SELECT
  TABLE_NAME AS `Table`,
  PARENT_TABLE_NAME AS Parent_table,
  INDEX_NAME AS Index_name,
  INDEX_TYPE AS Index_type,
  IS_UNIQUE AS Is_unique,
  IS_NULL_FILTERED AS Is_null_filtered,
  INDEX_STATE AS Index_state
FROM INFORMATION_SCHEMA.INDEXES I
WHERE LOWER(I.TABLE_SCHEMA) = LOWER(@table_schema) AND LOWER(TABLE_NAME) = LOWER(@table_name)
ORDER BY INDEX_NAME"""


def _table_lookup(session: Session, sql: str, table: str, timer: _Timer, statement: str) -> Result:
    schema, name = split_table_name(table)
    result = _query_result(
        session,
        sql,
        timer,
        params={"table_schema": schema, "table_name": name},
        param_types={"table_schema": param_types.STRING, "table_name": param_types.STRING},
    )
    if result.is_empty:
        raise StatementError(f"table {table!r} doesn't exist", statement=statement)
    return result


@dataclass(frozen=True)
class ShowColumnsStatement(Statement):
    table: str

    def execute(self, session: Session) -> Result:
        return _table_lookup(session, SHOW_COLUMNS_SQL, self.table, _Timer(), f"SHOW COLUMNS FROM {self.table}")


@dataclass(frozen=True)
class ShowIndexStatement(Statement):
    table: str

    def execute(self, session: Session) -> Result:
        return _table_lookup(session, SHOW_INDEX_SQL, self.table, _Timer(), f"SHOW INDEX FROM {self.table}")


# DML


@dataclass(frozen=True)
class DmlStatement(Statement):
    dml: str

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        affected = session.run_update(self.dml)
        return _mutation_result(timer, affected_rows=affected)


@dataclass(frozen=True)
class PartitionedDmlStatement(Statement):
    dml: str

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        affected = session.run_partitioned_update(self.dml)
        return _mutation_result(timer, affected_rows=affected)


# Transactions and session control


@dataclass(frozen=True)
class BeginRwStatement(Statement):
    priority: Optional[Priority] = None
    tag: Optional[str] = None

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        session.begin_read_write_transaction(priority=self.priority, tag=self.tag)
        return _mutation_result(timer)


@dataclass(frozen=True)
class BeginRoStatement(Statement):
    staleness: Optional[timedelta] = None
    read_timestamp: Optional[datetime] = None
    priority: Optional[Priority] = None
    tag: Optional[str] = None

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        session.begin_read_only_transaction(
            staleness=self.staleness,
            read_timestamp=self.read_timestamp,
            priority=self.priority,
            tag=self.tag,
        )
        return _mutation_result(timer, timestamp=self.read_timestamp)


@dataclass(frozen=True)
class CommitStatement(Statement):

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        commit_timestamp = session.commit_read_write_transaction()
        return _mutation_result(timer, timestamp=commit_timestamp)


@dataclass(frozen=True)
class RollbackStatement(Statement):

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        session.rollback_read_write_transaction()
        return _mutation_result(timer)


@dataclass(frozen=True)
class CloseStatement(Statement):

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        session.close_read_only_transaction()
        return _mutation_result(timer)


@dataclass(frozen=True)
class UseStatement(Statement):
    database_id: str

    def execute(self, session: Session) -> Result:
        timer = _Timer()
        session.use_database(self.database_id)
        return _mutation_result(timer)


@dataclass(frozen=True)
class ExitStatement(Statement):

    def execute(self, session: Session) -> Result:
        return Result()


# Builder

_FLAGS = re.IGNORECASE | re.DOTALL

_DML_RE = re.compile(r"^(?:INSERT|UPDATE|DELETE)\s+.+$", _FLAGS)
_PRIORITY_RE = r"(?:\s+PRIORITY\s+(HIGH|MEDIUM|LOW))?"
_TAG_RE = r"(?:\s+TAG\s+(.+))?"


def _priority(value: Optional[str]) -> Optional[Priority]:
    return Priority(value.upper()) if value else None


def _parse_begin_ro(match: "re.Match") -> BeginRoStatement:
    bound, priority = match.group(1), _priority(match.group(2))
    tag = match.group(3).strip() if match.group(3) else None
    if not bound:
        return BeginRoStatement(priority=priority, tag=tag)
    if bound.isdigit():
        return BeginRoStatement(staleness=timedelta(seconds=int(bound)), priority=priority, tag=tag)
    try:
        read_timestamp = datetime.fromisoformat(bound.replace("Z", "+00:00").replace("z", "+00:00"))
    except ValueError as e:
        raise StatementError(f"invalid read timestamp or staleness: {bound}", statement=match.group(0)) from e
    return BeginRoStatement(read_timestamp=read_timestamp, priority=priority, tag=tag)


_STATEMENT_PATTERNS: List[Tuple[Pattern, Callable[["re.Match"], Statement]]] = [
    (re.compile(r"^(?:WITH|@\{.+?\}|SELECT|GRAPH)\s.+$", _FLAGS),
     lambda m: SelectStatement(m.group(0))),
    (re.compile(r"^CREATE\s+DATABASE\s.+$", _FLAGS),
     lambda m: CreateDatabaseStatement(m.group(0))),
    (re.compile(r"^DROP\s+DATABASE\s+(.+)$", _FLAGS),
     lambda m: DropDatabaseStatement(unquote_identifier(m.group(1)))),
    (re.compile(r"^(?:CREATE|ALTER|DROP|GRANT|REVOKE|RENAME)\s.+$", _FLAGS),
     lambda m: DdlStatement(m.group(0))),
    (re.compile(r"^TRUNCATE\s+TABLE\s+(.+)$", _FLAGS),
     lambda m: TruncateTableStatement(m.group(1).strip())),
    (re.compile(r"^SHOW\s+DATABASES$", _FLAGS),
     lambda m: ShowDatabasesStatement()),
    (re.compile(r"^SHOW\s+CREATE\s+TABLE\s+(.+)$", _FLAGS),
     lambda m: ShowCreateTableStatement(m.group(1).strip())),
    (re.compile(r"^SHOW\s+TABLES(?:\s+(.+))?$", _FLAGS),
     lambda m: ShowTablesStatement((m.group(1) or "").strip())),
    (re.compile(r"^SHOW\s+COLUMNS\s+FROM\s+(.+)$", _FLAGS),
     lambda m: ShowColumnsStatement(m.group(1).strip())),
    (re.compile(r"^SHOW\s+(?:INDEX|INDEXES|KEYS)\s+FROM\s+(.+)$", _FLAGS),
     lambda m: ShowIndexStatement(m.group(1).strip())),
    (re.compile(r"^EXPLAIN\s+ANALYZE\s+(.+)$", _FLAGS),
     lambda m: ExplainAnalyzeStatement(m.group(1))),
    (re.compile(r"^EXPLAIN\s+(.+)$", _FLAGS),
     lambda m: ExplainStatement(m.group(1))),
    (re.compile(r"^DESCRIBE\s+(.+)$", _FLAGS),
     lambda m: DescribeStatement(m.group(1))),
    (re.compile(r"^PARTITIONED\s+((?:UPDATE|DELETE)\s+.+)$", _FLAGS),
     lambda m: PartitionedDmlStatement(m.group(1))),
    (_DML_RE,
     lambda m: DmlStatement(m.group(0))),
    (re.compile(r"^BEGIN\s+RO(?:\s+(?!PRIORITY\b|TAG\b)([^\s]+))?" + _PRIORITY_RE + _TAG_RE + "$", _FLAGS),
     _parse_begin_ro),
    (re.compile(r"^BEGIN(?:\s+RW)?" + _PRIORITY_RE + _TAG_RE + "$", _FLAGS),
     lambda m: BeginRwStatement(priority=_priority(m.group(1)), tag=m.group(2).strip() if m.group(2) else None)),
    (re.compile(r"^COMMIT$", _FLAGS),
     lambda m: CommitStatement()),
    (re.compile(r"^ROLLBACK$", _FLAGS),
     lambda m: RollbackStatement()),
    (re.compile(r"^CLOSE$", _FLAGS),
     lambda m: CloseStatement()),
    (re.compile(r"^USE\s+([^\s]+)$", _FLAGS),
     lambda m: UseStatement(unquote_identifier(m.group(1)))),
    (re.compile(r"^EXIT$", _FLAGS),
     lambda m: ExitStatement()),
]


def build_statement(text: str) -> Statement:
    """Classify ``text`` and build the matching statement.

    Args:
        text: One statement, optionally followed by ``;``.

    Returns:
        Executable statement.

    Raises:
        StatementError: If the text does not match any supported statement.
    """
    trimmed = text.strip()
    if trimmed.endswith(";"):
        trimmed = trimmed[:-1].rstrip()
    if not trimmed:
        raise StatementError("empty statement", statement=text)

    for pattern, factory in _STATEMENT_PATTERNS:
        match = pattern.match(trimmed)
        if match:
            statement = factory(match)
            logger.debug(f"Built {type(statement).__name__}")
            return statement

    raise StatementError("invalid statement", statement=text)
