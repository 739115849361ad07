"""PostgreSQL Database Adapter.

Implements DatabasePort over a direct PostgreSQL connection for deployments
that run next to the database (batch jobs, on-premise installs) instead of
going through the hosted platform's HTTP API.

Security Impact:
    - All statements are parameterized; identifiers are validated before rendering
    - Connection credentials are managed via configuration and never logged
    - SSL connections supported for secure network communication
    - Row-level security still applies when the connecting role is subject to it

Architecture:
    - Implements DatabasePort (Hexagonal Architecture)
    - Connection pooling via psycopg2 ThreadedConnectionPool
    - Each call runs in its own transaction (commit on success, rollback on error)
"""

import logging
from typing import Any, Optional, Union

import psycopg2
from psycopg2 import pool
from psycopg2.extras import Json, RealDictCursor

from src.adapters.database.sql_builder import SQLBuilder, quote_identifier
from src.domain.ports import (
    DatabasePort,
    ErrorCode,
    ServiceResult,
    StorageError,
    TableQuery,
)
from src.infrastructure.config_manager import DatabaseConfig

logger = logging.getLogger(__name__)


def _adapt(value: Any) -> Any:
    if isinstance(value, dict):
        return Json(value)
    if isinstance(value, list) and any(isinstance(item, dict) for item in value):
        return Json(value)
    return value


class PostgreSQLAdapter(DatabasePort):
    """PostgreSQL implementation of DatabasePort.

    Parameters:
        db_config: DatabaseConfig with ``db_type='postgresql'``
        max_overflow: Extra connections allowed above ``pool_size``

    Example Usage:
        ```python
        from src.infrastructure.config_manager import get_database_config

        adapter = PostgreSQLAdapter(db_config=get_database_config())
        result = adapter.select(TableQuery("transfer_requests").eq("status", "pending"))
        ```
    """

    db_type = "postgresql"

    def __init__(self, db_config: DatabaseConfig, max_overflow: int = 10):
        if db_config.db_type != "postgresql":
            raise StorageError(
                f"DatabaseConfig type '{db_config.db_type}' does not match PostgreSQL adapter",
                operation="__init__"
            )

        if db_config.connection_string:
            self.connection_params = {"dsn": db_config.connection_string.get_secret_value()}
        else:
            if not all([db_config.host, db_config.database]):
                raise StorageError(
                    "PostgreSQL DatabaseConfig requires host and database",
                    operation="__init__"
                )
            self.connection_params = {
                "host": db_config.host,
                "port": db_config.port or 5432,
                "database": db_config.database,
                "user": db_config.username,
                "sslmode": db_config.ssl_mode or "prefer",
            }
            if db_config.password:
                self.connection_params["password"] = db_config.password.get_secret_value()

        self.pool_size = db_config.pool_size
        self.max_overflow = max_overflow
        self._connection_pool: Optional[pool.ThreadedConnectionPool] = None
        self._sql = SQLBuilder(placeholder="%s", adapt_value=_adapt)

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    def _get_connection_pool(self) -> pool.ThreadedConnectionPool:
        """Get or create the connection pool (created lazily on first use)."""
        if self._connection_pool is None:
            try:
                self._connection_pool = pool.ThreadedConnectionPool(
                    minconn=1,
                    maxconn=self.pool_size + self.max_overflow,
                    **self.connection_params
                )
                logger.info("Created PostgreSQL connection pool")
            except psycopg2.Error as e:
                raise StorageError(
                    f"Failed to create PostgreSQL connection pool: {str(e)}",
                    operation="connect",
                    details={"host": self.connection_params.get("host", "N/A")}
                )
        return self._connection_pool

    def _execute(self, operation: str, sql: str, params: list, fetch: str = "all") -> Any:
        """Run one statement in its own transaction.

        Parameters:
            fetch: ``all`` (list of dicts), ``one`` (single value) or ``rowcount``
        """
        connection_pool = self._get_connection_pool()
        conn = None
        try:
            conn = connection_pool.getconn()
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(sql, params)
                if fetch == "rowcount":
                    result = cursor.rowcount
                elif fetch == "one":
                    row = cursor.fetchone()
                    result = next(iter(row.values())) if row else None
                else:
                    result = [dict(row) for row in cursor.fetchall()]
            conn.commit()
            return result
        except psycopg2.Error as e:
            if conn is not None:
                conn.rollback()
            raise StorageError(
                f"PostgreSQL {operation} failed: {str(e).strip()}",
                operation=operation,
                details={"code": getattr(e, "pgcode", None)}
            )
        finally:
            if conn is not None:
                try:
                    connection_pool.putconn(conn)
                except psycopg2.Error as e:
                    logger.warning(f"Error returning connection to pool: {str(e)}")

    def _run(self, operation: str, sql: str, params: list, fetch: str = "all") -> ServiceResult[Any]:
        try:
            return ServiceResult.success_result(self._execute(operation, sql, params, fetch))
        except StorageError as e:
            logger.error(e.message)
            return ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, e.message, e.details)

    # ------------------------------------------------------------------
    # DatabasePort
    # ------------------------------------------------------------------

    def select(self, query: TableQuery) -> ServiceResult[list[dict]]:
        try:
            sql, params = self._sql.select(query)
        except StorageError as e:
            return ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, e.message)
        return self._run("select", sql, params)

    def select_one(self, query: TableQuery) -> ServiceResult[Optional[dict]]:
        result = self.select(query)
        if result.is_failure():
            return ServiceResult.from_failure(result)
        return ServiceResult.success_result(result.data[0] if result.data else None)

    def insert(self, table: str, rows: Union[dict, list[dict]]) -> ServiceResult[list[dict]]:
        rows = [rows] if isinstance(rows, dict) else list(rows)
        if not rows:
            return ServiceResult.success_result([])
        try:
            sql, params = self._sql.insert(table, rows)
        except StorageError as e:
            return ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, e.message)
        return self._run("insert", sql, params)

    def update(self, query: TableQuery, values: dict) -> ServiceResult[list[dict]]:
        try:
            sql, params = self._sql.update(query, values)
        except StorageError as e:
            return ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, e.message)
        return self._run("update", sql, params)

    def upsert(self, table: str, rows: Union[dict, list[dict]], on_conflict: str) -> ServiceResult[list[dict]]:
        rows = [rows] if isinstance(rows, dict) else list(rows)
        if not rows:
            return ServiceResult.success_result([])
        try:
            sql, params = self._sql.insert(table, rows, on_conflict=on_conflict)
        except StorageError as e:
            return ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, e.message)
        return self._run("upsert", sql, params)

    def delete(self, query: TableQuery) -> ServiceResult[int]:
        try:
            sql, params = self._sql.delete(query)
        except StorageError as e:
            return ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, e.message)
        return self._run("delete", sql, params, fetch="rowcount")

    def count(self, query: TableQuery) -> ServiceResult[int]:
        try:
            sql, params = self._sql.count(query)
        except StorageError as e:
            return ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, e.message)
        return self._run("count", sql, params, fetch="one")

    def rpc(self, function: str, params: Optional[dict] = None) -> ServiceResult[Any]:
        """Call a stored function with named arguments.

        Scalar functions return their value; set-returning functions return
        a list of row dicts.
        """
        params = params or {}
        try:
            name = quote_identifier(function)
            arguments = ", ".join(f"{quote_identifier(key)} => %s" for key in params)
        except StorageError as e:
            return ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, e.message)

        result = self._run("rpc", f"SELECT * FROM {name}({arguments})", [_adapt(v) for v in params.values()])
        if result.is_failure():
            return result
        rows = result.data
        if len(rows) == 1 and list(rows[0].keys()) == [function]:
            return ServiceResult.success_result(rows[0][function])
        return ServiceResult.success_result(rows)

    def ping(self) -> ServiceResult[bool]:
        try:
            return ServiceResult.success_result(self._execute("ping", "SELECT 1", [], fetch="one") == 1)
        except StorageError as e:
            return ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, e.message)

    def close(self) -> None:
        """Close all pooled connections."""
        if self._connection_pool is not None:
            self._connection_pool.closeall()
            self._connection_pool = None
            logger.info("Closed PostgreSQL connection pool")
