"""Helpers for testing against a live Spanner database."""

from spanner_cli.testing.fixtures import (
    DEFAULT_FIXTURE_TIMEOUT,
    FIXTURE_TABLE_SCHEMA,
    TABLE_PLACEHOLDER,
    FixtureRow,
    TableFixture,
    decode_fixture_row,
    read_fixture_rows,
    setup_table,
)
from spanner_cli.testing.naming import TableIdCounter, generate_unique_table_id

__all__ = [
    "DEFAULT_FIXTURE_TIMEOUT",
    "FIXTURE_TABLE_SCHEMA",
    "TABLE_PLACEHOLDER",
    "FixtureRow",
    "TableFixture",
    "decode_fixture_row",
    "read_fixture_rows",
    "setup_table",
    "TableIdCounter",
    "generate_unique_table_id",
]
