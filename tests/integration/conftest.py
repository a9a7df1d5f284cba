"""Fixtures for tests against a live Cloud Spanner database.

The suite only runs when all SPANNER_CLI_INTEGRATION_TEST_* variables are
set; see IntegrationTestSettings.
"""

from typing import Callable, List, Sequence

import pytest

from spanner_cli.config import IntegrationTestSettings
from spanner_cli.session import Session
from spanner_cli.testing import DEFAULT_FIXTURE_TIMEOUT, TableIdCounter, setup_table


@pytest.fixture(scope="session")
def integration_settings() -> IntegrationTestSettings:
    settings = IntegrationTestSettings()
    if not settings.is_complete:
        pytest.skip("SPANNER_CLI_INTEGRATION_TEST_* environment variables are not set")
    return settings


@pytest.fixture(scope="session")
def table_counter() -> TableIdCounter:
    return TableIdCounter()


@pytest.fixture
def session(integration_settings: IntegrationTestSettings) -> Session:
    session = Session.connect(
        integration_settings.project_id,
        integration_settings.instance_id,
        integration_settings.database_id,
        credential=integration_settings.credential,
        ddl_timeout=DEFAULT_FIXTURE_TIMEOUT,
    )
    with session:
        yield session


@pytest.fixture
def make_table(session: Session, table_counter: TableIdCounter) -> Callable[[Sequence[str]], str]:
    """Create fixture tables; every table is dropped when the test finishes.

    A failed drop raises FixtureError, which pytest reports as an error of the
    owning test.
    """
    teardowns: List[Callable[[], None]] = []

    def _make(dmls: Sequence[str] = ()) -> str:
        table_id, teardown = setup_table(session, table_counter, dmls)
        teardowns.append(teardown)
        return table_id

    yield _make

    for teardown in reversed(teardowns):
        teardown()
