"""Database session: data and schema clients bound to one Spanner database."""

import concurrent.futures
import json
import logging
import os
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, Generator, List, Optional, Tuple

from google.api_core import exceptions as api_exceptions
from google.api_core.client_options import ClientOptions
from google.auth import exceptions as auth_exceptions
from google.cloud import spanner
from google.cloud.spanner_v1 import RequestOptions, ResultSetStats, StructType
from google.oauth2 import credentials as user_credentials
from google.oauth2 import service_account

from spanner_cli.config.models import ConnectionConfig, Priority
from spanner_cli.exceptions import ExecutionError, SessionError, StatementError

logger = logging.getLogger(__name__)

DEFAULT_DDL_TIMEOUT = 600

_PRIORITIES = {
    Priority.HIGH: RequestOptions.Priority.PRIORITY_HIGH,
    Priority.MEDIUM: RequestOptions.Priority.PRIORITY_MEDIUM,
    Priority.LOW: RequestOptions.Priority.PRIORITY_LOW,
}


def load_credentials(credential: Optional[str]):
    """Build credentials from a key file path or an inline JSON payload.

    Args:
        credential: Path to a JSON key file, or the JSON document itself.
            ``None`` or empty means application default credentials.

    Returns:
        A google-auth credentials object, or None for default credentials.

    Raises:
        SessionError: If the credential cannot be parsed.
    """
    if not credential:
        return None

    try:
        if credential.lstrip().startswith("{"):
            info = json.loads(credential)
        else:
            with open(os.path.expanduser(credential), "r", encoding="utf-8") as file:
                info = json.load(file)
    except (OSError, ValueError) as e:
        raise SessionError(f"Failed to read credential: {e}") from e

    try:
        if info.get("type") == "authorized_user":
            return user_credentials.Credentials.from_authorized_user_info(info)
        return service_account.Credentials.from_service_account_info(info)
    except (KeyError, ValueError) as e:
        raise SessionError(f"Invalid credential: {e}") from e


@contextmanager
def translate_errors(sql: Optional[str] = None) -> Generator[None, None, None]:
    """Re-raise client library errors as ExecutionError."""
    try:
        yield
    except api_exceptions.GoogleAPICallError as e:
        code = getattr(e, "grpc_status_code", None)
        raise ExecutionError(
            e.message or str(e),
            sql=sql,
            code=code.name if code is not None else None,
        ) from e
    except api_exceptions.RetryError as e:
        raise ExecutionError(e.message or str(e), sql=sql, code="DEADLINE_EXCEEDED") from e


class Session:
    """A live connection to one database.

    Holds the data-plane ``Database`` and the schema-plane admin client, plus
    at most one explicit transaction: either a read-write transaction or a
    read-only snapshot.
    """

    def __init__(
        self,
        project_id: str,
        instance_id: str,
        database_id: str,
        client: spanner.Client,
        database_role: Optional[str] = None,
        priority: Optional[Priority] = None,
        ddl_timeout: float = DEFAULT_DDL_TIMEOUT,
    ) -> None:
        self.project_id = project_id
        self.instance_id = instance_id
        self.database_id = database_id
        self.database_role = database_role
        self.priority = priority
        self.ddl_timeout = ddl_timeout

        self.client = client
        self.instance = client.instance(instance_id)
        self.database = self.instance.database(database_id, database_role=database_role)
        self.admin_client = client.database_admin_api

        self._rw_session = None
        self._rw_txn = None
        self._rw_priority: Optional[Priority] = None
        self._ro_session = None
        self._ro_txn = None
        self._ro_priority: Optional[Priority] = None
        self._ro_tag: Optional[str] = None

    @classmethod
    def connect(
        cls,
        project_id: str,
        instance_id: str,
        database_id: str,
        credential: Optional[str] = None,
        endpoint: Optional[str] = None,
        database_role: Optional[str] = None,
        priority: Optional[Priority] = None,
        ddl_timeout: float = DEFAULT_DDL_TIMEOUT,
        check_exists: bool = True,
    ) -> "Session":
        """Create a client and bind a session to an existing database.

        Raises:
            SessionError: If credentials are invalid or the database does not exist.
        """
        credentials = load_credentials(credential)
        client_options = ClientOptions(api_endpoint=endpoint) if endpoint else None

        try:
            client = spanner.Client(
                project=project_id,
                credentials=credentials,
                client_options=client_options,
            )
        except auth_exceptions.GoogleAuthError as e:
            raise SessionError(f"Failed to create Spanner client: {e}") from e

        session = cls(
            project_id,
            instance_id,
            database_id,
            client,
            database_role=database_role,
            priority=priority,
            ddl_timeout=ddl_timeout,
        )
        if check_exists:
            session._check_database()
        logger.info(f"Connected to {session.database_path}")
        return session

    def _check_database(self) -> None:
        try:
            exists = self.database_exists()
        except ExecutionError as e:
            raise SessionError(
                f"Failed to connect to {self.database_path}: {e.message}",
                database_path=self.database_path,
            ) from e
        if not exists:
            raise SessionError(
                f"unknown database {self.database_id!r}",
                database_path=self.database_path,
            )

    @classmethod
    def from_config(cls, config: ConnectionConfig, **kwargs: Any) -> "Session":
        return cls.connect(
            config.project,
            config.instance,
            config.database,
            credential=config.credential,
            endpoint=config.endpoint,
            database_role=config.role,
            **kwargs,
        )

    @property
    def instance_path(self) -> str:
        return f"projects/{self.project_id}/instances/{self.instance_id}"

    @property
    def database_path(self) -> str:
        return f"{self.instance_path}/databases/{self.database_id}"

    def database_exists(self, database_id: Optional[str] = None) -> bool:
        database = self.database if database_id is None else self.instance.database(database_id)
        with translate_errors():
            return database.exists()

    def use_database(self, database_id: str) -> None:
        """Rebind the session to another database of the same instance."""
        if self.in_transaction():
            raise StatementError("USE is not allowed in a transaction")
        if not self.database_exists(database_id):
            raise SessionError(
                f"unknown database {database_id!r}",
                database_path=f"{self.instance_path}/databases/{database_id}",
            )
        self.database_id = database_id
        self.database = self.instance.database(database_id, database_role=self.database_role)
        logger.info(f"Switched to {self.database_path}")

    # Transactions

    def in_read_write_transaction(self) -> bool:
        return self._rw_txn is not None

    def in_read_only_transaction(self) -> bool:
        return self._ro_txn is not None

    def in_transaction(self) -> bool:
        return self.in_read_write_transaction() or self.in_read_only_transaction()

    def begin_read_write_transaction(
        self, priority: Optional[Priority] = None, tag: Optional[str] = None
    ) -> None:
        if self.in_transaction():
            raise StatementError("you're in a transaction; run COMMIT, ROLLBACK or CLOSE first")

        with translate_errors():
            pool_session = self.database.session()
            pool_session.create()
            txn = pool_session.transaction()
            if tag:
                txn.transaction_tag = tag
            txn.begin()

        self._rw_session = pool_session
        self._rw_txn = txn
        self._rw_priority = priority
        logger.debug("Began read-write transaction")

    def commit_read_write_transaction(self) -> Optional[datetime]:
        if not self.in_read_write_transaction():
            raise StatementError("you're not in a read-write transaction")

        try:
            with translate_errors():
                commit_timestamp = self._rw_txn.commit(
                    request_options=self.request_options(self._rw_priority)
                )
        finally:
            self._end_read_write_transaction()
        logger.debug(f"Committed read-write transaction at {commit_timestamp}")
        return commit_timestamp

    def rollback_read_write_transaction(self) -> None:
        if not self.in_read_write_transaction():
            raise StatementError("you're not in a read-write transaction")

        try:
            with translate_errors():
                self._rw_txn.rollback()
        finally:
            self._end_read_write_transaction()
        logger.debug("Rolled back read-write transaction")

    def _end_read_write_transaction(self) -> None:
        pool_session = self._rw_session
        self._rw_session = None
        self._rw_txn = None
        self._rw_priority = None
        if pool_session is not None:
            with translate_errors():
                pool_session.delete()

    def begin_read_only_transaction(
        self,
        staleness: Optional[timedelta] = None,
        read_timestamp: Optional[datetime] = None,
        priority: Optional[Priority] = None,
        tag: Optional[str] = None,
    ) -> None:
        if self.in_transaction():
            raise StatementError("you're in a transaction; run COMMIT, ROLLBACK or CLOSE first")

        snapshot_kwargs = {"multi_use": True}
        if staleness is not None:
            snapshot_kwargs["exact_staleness"] = staleness
        elif read_timestamp is not None:
            snapshot_kwargs["read_timestamp"] = read_timestamp

        with translate_errors():
            pool_session = self.database.session()
            pool_session.create()
            snapshot = pool_session.snapshot(**snapshot_kwargs)
            snapshot.begin()

        self._ro_session = pool_session
        self._ro_txn = snapshot
        self._ro_priority = priority
        self._ro_tag = tag
        logger.debug("Began read-only transaction")

    def close_read_only_transaction(self) -> None:
        if not self.in_read_only_transaction():
            raise StatementError("you're not in a read-only transaction")

        pool_session = self._ro_session
        self._ro_session = None
        self._ro_txn = None
        self._ro_priority = None
        self._ro_tag = None
        with translate_errors():
            pool_session.delete()
        logger.debug("Closed read-only transaction")

    def request_options(
        self, priority: Optional[Priority] = None, request_tag: Optional[str] = None
    ) -> RequestOptions:
        options = RequestOptions()
        effective = priority or self.priority
        if effective is not None:
            options.priority = _PRIORITIES[Priority(effective)]
        if request_tag:
            options.request_tag = request_tag
        return options

    # Statement execution

    def run_query(
        self,
        sql: str,
        query_mode: Any = None,
        params: Optional[Dict[str, Any]] = None,
        param_types: Optional[Dict[str, Any]] = None,
        read_write: bool = False,
    ) -> Tuple[List[List[Any]], List[StructType.Field], Optional[ResultSetStats]]:
        """Run a query in the current transaction, or a single-use snapshot.

        Args:
            sql: Query text.
            query_mode: ``ExecuteSqlRequest.QueryMode`` (NORMAL, PLAN or PROFILE).
            params: Query parameters.
            param_types: Spanner types of ``params``.
            read_write: Run outside an explicit transaction in a new read-write
                transaction instead of a snapshot. Needed to plan or profile DML.

        Returns:
            Tuple of (rows, field metadata, result set stats).
        """
        kwargs = {"query_mode": query_mode, "params": params, "param_types": param_types}

        with translate_errors(sql):
            if self._rw_txn is not None:
                results = self._rw_txn.execute_sql(
                    sql, request_options=self.request_options(self._rw_priority), **kwargs
                )
                return self._consume(results)
            if self._ro_txn is not None:
                if read_write:
                    raise StatementError("DML statements can not be executed in a read-only transaction")
                results = self._ro_txn.execute_sql(
                    sql, request_options=self.request_options(self._ro_priority, request_tag=self._ro_tag), **kwargs
                )
                return self._consume(results)
            if read_write:
                options = self.request_options()

                def _query(transaction):
                    return self._consume(transaction.execute_sql(sql, request_options=options, **kwargs))

                return self.database.run_in_transaction(_query)
            with self.database.snapshot() as snapshot:
                results = snapshot.execute_sql(sql, request_options=self.request_options(), **kwargs)
                return self._consume(results)

    @staticmethod
    def _consume(results) -> Tuple[List[List[Any]], List[StructType.Field], Optional[ResultSetStats]]:
        rows = [list(row) for row in results]
        return rows, list(results.fields), results.stats

    def run_update(self, sql: str) -> int:
        """Run a DML statement in the current read-write transaction or a new one.

        Returns:
            Number of affected rows.
        """
        if self.in_read_only_transaction():
            raise StatementError("DML statements can not be executed in a read-only transaction")

        with translate_errors(sql):
            if self._rw_txn is not None:
                return self._rw_txn.execute_update(
                    sql, request_options=self.request_options(self._rw_priority)
                )

            options = self.request_options()

            def _update(transaction) -> int:
                return transaction.execute_update(sql, request_options=options)

            return self.database.run_in_transaction(_update)

    def run_partitioned_update(self, sql: str) -> int:
        if self.in_transaction():
            raise StatementError("Partitioned DML statements can not be executed in a transaction")

        with translate_errors(sql):
            return self.database.execute_partitioned_dml(sql, request_options=self.request_options())

    def update_ddl(self, statements: List[str], timeout: Optional[float] = None) -> None:
        """Apply schema statements through the admin client and wait for completion.

        Raises:
            ExecutionError: If the operation fails or does not finish in time.
        """
        timeout = self.ddl_timeout if timeout is None else timeout
        logger.info(f"Applying {len(statements)} DDL statement(s) to {self.database_path}")

        with translate_errors("; ".join(statements)):
            operation = self.admin_client.update_database_ddl(
                database=self.database_path,
                statements=statements,
            )
            self.wait_for_operation(operation, timeout, "; ".join(statements))

    @staticmethod
    def wait_for_operation(operation, timeout: Optional[float], sql: Optional[str] = None):
        try:
            return operation.result(timeout=timeout)
        except concurrent.futures.TimeoutError as e:
            raise ExecutionError(
                f"schema operation did not complete within {timeout} seconds",
                sql=sql,
                code="DEADLINE_EXCEEDED",
            ) from e

    def close(self) -> None:
        """End any open transaction and release pooled sessions."""
        if self.in_read_write_transaction():
            try:
                self.rollback_read_write_transaction()
            except ExecutionError as e:
                logger.warning(f"Failed to roll back pending transaction on close: {e}")
        if self.in_read_only_transaction():
            try:
                self.close_read_only_transaction()
            except ExecutionError as e:
                logger.warning(f"Failed to close read-only transaction on close: {e}")
        logger.debug(f"Closed session for {self.database_path}")

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
