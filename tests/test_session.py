"""Tests for the session wrapper around the Spanner client."""

import concurrent.futures
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, Mock, patch

import pytest
from google.api_core import exceptions as api_exceptions
from google.cloud.spanner_v1 import RequestOptions

from spanner_cli.config import ConnectionConfig, Priority
from spanner_cli.exceptions import ExecutionError, SessionError, StatementError
from spanner_cli.session import Session, load_credentials, translate_errors


class FakeResults(list):
    """Stand-in for StreamedResultSet: iterable rows plus fields and stats."""

    def __init__(self, rows, fields=(), stats=None):
        super().__init__(rows)
        self.fields = list(fields)
        self.stats = stats


@pytest.fixture
def client():
    client = MagicMock()
    client.instance.return_value.database.return_value.exists.return_value = True
    return client


@pytest.fixture
def session(client):
    return Session("my-project", "my-instance", "my-db", client)


class TestPaths:
    """Resource names."""

    def test_paths(self, session, client):
        assert session.instance_path == "projects/my-project/instances/my-instance"
        assert session.database_path == "projects/my-project/instances/my-instance/databases/my-db"
        client.instance.assert_called_once_with("my-instance")
        client.instance.return_value.database.assert_called_once_with("my-db", database_role=None)

    def test_use_database(self, session, client):
        session.use_database("other_db")
        assert session.database_id == "other_db"
        assert session.database_path.endswith("/databases/other_db")

    def test_use_unknown_database(self, session, client):
        client.instance.return_value.database.return_value.exists.return_value = False
        with pytest.raises(SessionError, match="unknown database"):
            session.use_database("missing")
        assert session.database_id == "my-db"


class TestQueries:
    """Query routing between snapshots and transactions."""

    def test_single_use_snapshot(self, session):
        snapshot = session.database.snapshot.return_value.__enter__.return_value
        snapshot.execute_sql.return_value = FakeResults([[1, True]], fields=["f"], stats="stats")

        rows, fields, stats = session.run_query("SELECT 1")

        assert rows == [[1, True]]
        assert fields == ["f"]
        assert stats == "stats"
        assert snapshot.execute_sql.call_args[0][0] == "SELECT 1"

    def test_read_write_query_outside_transaction(self, session):
        session.database.run_in_transaction.side_effect = lambda func: func(txn)
        txn = Mock()
        txn.execute_sql.return_value = FakeResults([])

        session.run_query("DELETE FROM t WHERE true", read_write=True)

        txn.execute_sql.assert_called_once()
        session.database.snapshot.assert_not_called()

    def test_query_in_read_write_transaction(self, session):
        session.begin_read_write_transaction(priority=Priority.LOW)
        txn = session.database.session.return_value.transaction.return_value
        txn.execute_sql.return_value = FakeResults([[1]])

        rows, _, _ = session.run_query("SELECT 1")

        assert rows == [[1]]
        options = txn.execute_sql.call_args[1]["request_options"]
        assert options.priority == RequestOptions.Priority.PRIORITY_LOW

    def test_query_in_read_only_transaction_carries_tag(self, session):
        session.begin_read_only_transaction(priority=Priority.MEDIUM, tag="nightly")
        snapshot = session.database.session.return_value.snapshot.return_value
        snapshot.execute_sql.return_value = FakeResults([[1]])

        session.run_query("SELECT 1")

        options = snapshot.execute_sql.call_args[1]["request_options"]
        assert options.request_tag == "nightly"
        assert options.priority == RequestOptions.Priority.PRIORITY_MEDIUM

    def test_dml_plan_refused_in_read_only_transaction(self, session):
        session.begin_read_only_transaction()
        with pytest.raises(StatementError, match="read-only transaction"):
            session.run_query("DELETE FROM t WHERE true", read_write=True)

    def test_api_errors_are_translated(self, session):
        snapshot = session.database.snapshot.return_value.__enter__.return_value
        snapshot.execute_sql.side_effect = api_exceptions.NotFound("Table not found: t")

        with pytest.raises(ExecutionError) as exc_info:
            session.run_query("SELECT * FROM t")
        assert exc_info.value.code == "NOT_FOUND"
        assert exc_info.value.sql == "SELECT * FROM t"
        assert "Table not found" in exc_info.value.message


class TestUpdates:
    """DML and partitioned DML."""

    def test_run_update_in_new_transaction(self, session):
        txn = Mock()
        txn.execute_update.return_value = 2
        session.database.run_in_transaction.side_effect = lambda func: func(txn)

        assert session.run_update("INSERT INTO t (id) VALUES (1), (2)") == 2
        assert txn.execute_update.call_args[0][0] == "INSERT INTO t (id) VALUES (1), (2)"

    def test_run_update_in_read_write_transaction(self, session):
        session.begin_read_write_transaction()
        txn = session.database.session.return_value.transaction.return_value
        txn.execute_update.return_value = 1

        assert session.run_update("DELETE FROM t WHERE id = 1") == 1
        session.database.run_in_transaction.assert_not_called()

    def test_run_update_refused_in_read_only_transaction(self, session):
        session.begin_read_only_transaction()
        with pytest.raises(StatementError):
            session.run_update("DELETE FROM t WHERE true")

    def test_partitioned_update(self, session):
        session.database.execute_partitioned_dml.return_value = 7
        assert session.run_partitioned_update("DELETE FROM t WHERE true") == 7

    def test_partitioned_update_refused_in_transaction(self, session):
        session.begin_read_write_transaction()
        with pytest.raises(StatementError, match="Partitioned DML"):
            session.run_partitioned_update("DELETE FROM t WHERE true")


class TestTransactions:
    """Explicit transaction lifecycle."""

    def test_commit(self, session):
        commit_ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
        session.begin_read_write_transaction(tag="app")
        pool_session = session.database.session.return_value
        txn = pool_session.transaction.return_value
        txn.commit.return_value = commit_ts

        assert session.in_read_write_transaction()
        assert txn.transaction_tag == "app"
        txn.begin.assert_called_once_with()
        assert session.commit_read_write_transaction() == commit_ts
        assert not session.in_transaction()
        pool_session.delete.assert_called_once_with()

    def test_failed_commit_ends_transaction(self, session):
        session.begin_read_write_transaction()
        txn = session.database.session.return_value.transaction.return_value
        txn.commit.side_effect = api_exceptions.Aborted("Transaction was aborted")

        with pytest.raises(ExecutionError, match="aborted"):
            session.commit_read_write_transaction()
        assert not session.in_transaction()

    def test_rollback(self, session):
        session.begin_read_write_transaction()
        txn = session.database.session.return_value.transaction.return_value
        session.rollback_read_write_transaction()
        txn.rollback.assert_called_once_with()
        assert not session.in_transaction()

    def test_commit_without_transaction(self, session):
        with pytest.raises(StatementError, match="not in a read-write transaction"):
            session.commit_read_write_transaction()

    def test_nested_begin_refused(self, session):
        session.begin_read_write_transaction()
        with pytest.raises(StatementError, match="in a transaction"):
            session.begin_read_only_transaction()

    def test_read_only_staleness(self, session):
        session.begin_read_only_transaction(staleness=timedelta(seconds=10))
        pool_session = session.database.session.return_value
        pool_session.snapshot.assert_called_once_with(multi_use=True, exact_staleness=timedelta(seconds=10))
        assert session.in_read_only_transaction()

        session.close_read_only_transaction()
        assert not session.in_transaction()
        pool_session.delete.assert_called_once_with()

    def test_close_rolls_back_pending_transaction(self, session):
        session.begin_read_write_transaction()
        txn = session.database.session.return_value.transaction.return_value
        with session:
            pass
        txn.rollback.assert_called_once_with()
        assert not session.in_transaction()


class TestSchemaOperations:
    """DDL through the admin client."""

    def test_update_ddl(self, session):
        operation = session.admin_client.update_database_ddl.return_value
        session.update_ddl(["CREATE TABLE t (id INT64) PRIMARY KEY (id)"], timeout=30)

        session.admin_client.update_database_ddl.assert_called_once_with(
            database=session.database_path,
            statements=["CREATE TABLE t (id INT64) PRIMARY KEY (id)"],
        )
        operation.result.assert_called_once_with(timeout=30)

    def test_update_ddl_uses_session_timeout(self, session):
        session.ddl_timeout = 45
        operation = session.admin_client.update_database_ddl.return_value
        session.update_ddl(["DROP TABLE t"])
        operation.result.assert_called_once_with(timeout=45)

    def test_update_ddl_timeout(self, session):
        operation = session.admin_client.update_database_ddl.return_value
        operation.result.side_effect = concurrent.futures.TimeoutError()

        with pytest.raises(ExecutionError) as exc_info:
            session.update_ddl(["DROP TABLE t"], timeout=1)
        assert exc_info.value.code == "DEADLINE_EXCEEDED"


class TestRequestOptions:
    """Priority mapping."""

    def test_session_default_priority(self, client):
        session = Session("p", "my-instance", "my-db", client, priority=Priority.HIGH)
        assert session.request_options().priority == RequestOptions.Priority.PRIORITY_HIGH

    def test_explicit_priority_wins(self, client):
        session = Session("p", "my-instance", "my-db", client, priority=Priority.HIGH)
        assert session.request_options(Priority.LOW).priority == RequestOptions.Priority.PRIORITY_LOW

    def test_request_tag(self, session):
        assert session.request_options(request_tag="report").request_tag == "report"


class TestConnect:
    """Client creation."""

    def test_connect(self, client):
        with patch("spanner_cli.session.spanner.Client", return_value=client) as client_cls:
            session = Session.connect("my-project", "my-instance", "my-db", endpoint="localhost:9010")
        assert session.database_id == "my-db"
        kwargs = client_cls.call_args[1]
        assert kwargs["project"] == "my-project"
        assert kwargs["credentials"] is None
        assert kwargs["client_options"].api_endpoint == "localhost:9010"

    def test_connect_unknown_database(self, client):
        client.instance.return_value.database.return_value.exists.return_value = False
        with patch("spanner_cli.session.spanner.Client", return_value=client):
            with pytest.raises(SessionError) as exc_info:
                Session.connect("my-project", "my-instance", "missing")
        assert exc_info.value.database_path.endswith("/databases/missing")

    def test_connect_api_error_becomes_session_error(self, client):
        client.instance.return_value.database.return_value.exists.side_effect = api_exceptions.PermissionDenied("denied")
        with patch("spanner_cli.session.spanner.Client", return_value=client):
            with pytest.raises(SessionError, match="denied") as exc_info:
                Session.connect("my-project", "my-instance", "my-db")
        assert isinstance(exc_info.value.__cause__, ExecutionError)
        assert exc_info.value.__cause__.code == "PERMISSION_DENIED"

    def test_from_config(self, client):
        config = ConnectionConfig(project="my-project", instance="my-instance", database="my-db", role="reader")
        with patch("spanner_cli.session.spanner.Client", return_value=client):
            session = Session.from_config(config, priority=Priority.MEDIUM)
        assert session.database_role == "reader"
        assert session.priority == Priority.MEDIUM


class TestCredentials:
    """Credential loading."""

    def test_default_credentials(self):
        assert load_credentials(None) is None
        assert load_credentials("") is None

    def test_missing_file(self, temp_dir):
        with pytest.raises(SessionError, match="Failed to read credential"):
            load_credentials(str(temp_dir / "absent.json"))

    def test_invalid_json(self):
        with pytest.raises(SessionError):
            load_credentials("{not json")

    def test_service_account_payload(self):
        payload = json.dumps({"type": "service_account", "client_email": "a@b"})
        with patch("spanner_cli.session.service_account.Credentials.from_service_account_info") as factory:
            credentials = load_credentials(payload)
        assert credentials is factory.return_value
        factory.assert_called_once_with({"type": "service_account", "client_email": "a@b"})

    def test_authorized_user_file(self, temp_dir):
        path = temp_dir / "user.json"
        path.write_text(json.dumps({"type": "authorized_user", "client_id": "x"}))
        with patch("spanner_cli.session.user_credentials.Credentials.from_authorized_user_info") as factory:
            load_credentials(str(path))
        factory.assert_called_once()


def test_translate_errors_passes_other_exceptions():
    with pytest.raises(ValueError):
        with translate_errors("SELECT 1"):
            raise ValueError("boom")


def test_translate_errors_retry_timeout():
    with pytest.raises(ExecutionError) as exc_info:
        with translate_errors("SELECT 1"):
            raise api_exceptions.RetryError("Deadline of 600.0s exceeded", cause=None)
    assert exc_info.value.code == "DEADLINE_EXCEEDED"
    assert exc_info.value.sql == "SELECT 1"
