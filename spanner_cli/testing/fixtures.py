"""
Ephemeral table fixtures for tests against a live database.

A fixture creates a uniquely named table through the admin client, fills it
by applying DML templates, and drops it again on teardown. Every failure,
including a failed drop, raises FixtureError so that leaked schema state
surfaces as a failing test instead of being ignored.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Sequence, Tuple

from google.api_core import exceptions as api_exceptions

from spanner_cli.exceptions import DecodeError, ExecutionError, FixtureError
from spanner_cli.session import Session
from spanner_cli.testing.naming import TableIdCounter, generate_unique_table_id

logger = logging.getLogger(__name__)

TABLE_PLACEHOLDER = "[[TABLE]]"
DEFAULT_FIXTURE_TIMEOUT = 180

FIXTURE_TABLE_SCHEMA = """CREATE TABLE {table_id} (
  id INT64 NOT NULL,
  active BOOL NOT NULL
) PRIMARY KEY (id)"""


@dataclass(frozen=True)
class FixtureRow:
    """Typed row of the fixture table."""
    id: int
    active: bool


def decode_fixture_row(row: Sequence[Any]) -> FixtureRow:
    """Decode ``[id, active]`` into a FixtureRow.

    Raises:
        DecodeError: If the row does not have exactly an INT64 and a BOOL value.
    """
    if len(row) != 2:
        raise DecodeError(f"expected 2 columns, got {len(row)}")

    row_id, active = row
    if isinstance(row_id, bool) or not isinstance(row_id, int):
        raise DecodeError(f"column 'id' is not an integer: {row_id!r}")
    if not isinstance(active, bool):
        raise DecodeError(f"column 'active' is not a boolean: {active!r}")
    return FixtureRow(id=row_id, active=active)


class TableFixture:
    """Creates, populates and drops one ephemeral table."""

    def __init__(
        self,
        session: Session,
        counter: TableIdCounter,
        dmls: Sequence[str] = (),
        timeout: float = DEFAULT_FIXTURE_TIMEOUT,
        schema: str = FIXTURE_TABLE_SCHEMA,
    ) -> None:
        """
        Initialize table fixture.

        Args:
            session: Session bound to the target database
            counter: Counter used for unique table names
            dmls: DML templates; ``[[TABLE]]`` is replaced with the table name
            timeout: Seconds to wait for each schema operation
            schema: CREATE TABLE template with a ``{table_id}`` field
        """
        self.session = session
        self.dmls = list(dmls)
        self.timeout = timeout
        self.schema = schema
        self.table_id = generate_unique_table_id(counter)
        self._created = False

    def setup(self) -> str:
        """Create the table and apply the DML templates.

        Returns:
            Name of the created table.
        """
        self._apply_ddl(self.schema.format(table_id=self.table_id), "create table")
        self._created = True
        logger.info(f"Created fixture table {self.table_id}")

        try:
            for template in self.dmls:
                self._apply_dml(template.replace(TABLE_PLACEHOLDER, self.table_id))
        except FixtureError:
            try:
                self.teardown()
            except FixtureError as e:
                logger.error(f"Failed to drop fixture table {self.table_id} after setup error: {e.message}")
            raise

        return self.table_id

    def teardown(self) -> None:
        """Drop the table created by :meth:`setup`."""
        if not self._created:
            return
        self._apply_ddl(f"DROP TABLE {self.table_id}", "drop table")
        self._created = False
        logger.info(f"Dropped fixture table {self.table_id}")

    def _apply_ddl(self, ddl: str, action: str) -> None:
        try:
            operation = self.session.admin_client.update_database_ddl(
                database=self.session.database_path,
                statements=[ddl],
            )
            self.session.wait_for_operation(operation, self.timeout, ddl)
        except (api_exceptions.GoogleAPICallError, ExecutionError) as e:
            raise FixtureError(
                f"failed to {action}: err={e}",
                table_id=self.table_id,
                statement=ddl,
            ) from e

    def _apply_dml(self, dml: str) -> None:
        # One transaction per statement keeps failures attributable to a single DML.
        def _update(transaction) -> int:
            return transaction.execute_update(dml)

        try:
            affected = self.session.database.run_in_transaction(_update)
        except api_exceptions.GoogleAPICallError as e:
            raise FixtureError(
                f"failed to apply DML: dml={dml}, err={e}",
                table_id=self.table_id,
                statement=dml,
            ) from e
        logger.debug(f"Applied fixture DML to {self.table_id}: {affected} row(s)")

    def __enter__(self) -> str:
        return self.setup()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.teardown()


def setup_table(
    session: Session,
    counter: TableIdCounter,
    dmls: Sequence[str] = (),
    timeout: float = DEFAULT_FIXTURE_TIMEOUT,
) -> Tuple[str, Callable[[], None]]:
    """Create and populate a fixture table.

    Returns:
        Tuple of (table name, teardown callable that drops the table).
    """
    fixture = TableFixture(session, counter, dmls, timeout=timeout)
    table_id = fixture.setup()
    return table_id, fixture.teardown


def read_fixture_rows(session: Session, table_id: str) -> List[FixtureRow]:
    """Read the fixture table ordered by primary key in a single-use snapshot."""
    sql = f"SELECT id, active FROM {table_id} ORDER BY id ASC"
    with session.database.snapshot() as snapshot:
        return [decode_fixture_row(row) for row in snapshot.execute_sql(sql)]
