"""DuckDB Database Adapter.

Implements DatabasePort on an in-process DuckDB database for local and
offline work: demos, CLI dry runs and tests that need real SQL semantics.

Security Impact:
    - All statements are parameterized; identifiers are validated before rendering
    - Database path is validated to prevent writing into missing directories

Architecture:
    - Implements DatabasePort (Hexagonal Architecture)
    - Stored functions and serverless functions of the hosted platform are not
      available; ``rpc`` returns OPERATION_FAILED
    - ``initialize_schema`` creates the tables the services read and write
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Optional, Union

import duckdb

from src.adapters.database.schema import JSON_COLUMNS, SCHEMA_STATEMENTS
from src.adapters.database.sql_builder import SQLBuilder
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
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value


class DuckDBAdapter(DatabasePort):
    """DuckDB implementation of DatabasePort.

    Parameters:
        db_config: DatabaseConfig with ``db_type='duckdb'`` (preferred)
        db_path: Path to the database file, or ':memory:' (default)

    Example Usage:
        ```python
        adapter = DuckDBAdapter(db_path="data/careops.duckdb")
        adapter.initialize_schema()
        adapter.insert("hospital_units", {"id": unit_id, "unit_name": "4 West", "is_active": True})
        ```
    """

    db_type = "duckdb"

    def __init__(self, db_config: Optional[DatabaseConfig] = None, db_path: Optional[str] = None):
        if db_config:
            if db_config.db_type != "duckdb":
                raise StorageError(
                    f"DatabaseConfig type '{db_config.db_type}' does not match DuckDB adapter",
                    operation="__init__"
                )
            self.db_path = db_config.db_path or ":memory:"
        else:
            self.db_path = db_path or ":memory:"

        if self.db_path != ":memory:" and not Path(self.db_path).parent.exists():
            raise StorageError(
                f"Database directory does not exist: {Path(self.db_path).parent}",
                operation="__init__"
            )

        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.Lock()
        self._sql = SQLBuilder(placeholder="?", adapt_value=_adapt)

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create the DuckDB connection (created lazily, then reused)."""
        if self._connection is None:
            try:
                self._connection = duckdb.connect(self.db_path)
                logger.info(f"Connected to DuckDB database: {self.db_path}")
            except duckdb.Error as e:
                raise StorageError(f"Failed to connect to DuckDB: {str(e)}", operation="connect")
        return self._connection

    def initialize_schema(self) -> ServiceResult[int]:
        """Create all service tables (idempotent).

        Returns:
            ServiceResult[int]: Number of DDL statements executed
        """
        try:
            with self._lock:
                conn = self._get_connection()
                for statement in SCHEMA_STATEMENTS:
                    conn.execute(statement)
            logger.info("DuckDB schema initialized")
            return ServiceResult.success_result(len(SCHEMA_STATEMENTS))
        except (duckdb.Error, StorageError) as e:
            logger.error(f"DuckDB schema initialization failed: {str(e)}")
            return ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, f"Schema initialization failed: {str(e)}")

    @staticmethod
    def _decode(table: str, row: dict) -> dict:
        for column in JSON_COLUMNS.get(table, ()):
            value = row.get(column)
            if isinstance(value, str):
                try:
                    row[column] = json.loads(value)
                except ValueError:
                    pass
        return row

    def _execute(self, operation: str, table: str, sql: str, params: list) -> list[dict]:
        try:
            with self._lock:
                cursor = self._get_connection().execute(sql, params)
                if cursor.description is None:
                    return []
                names = [d[0] for d in cursor.description]
                rows = cursor.fetchall()
            return [self._decode(table, dict(zip(names, row))) for row in rows]
        except duckdb.Error as e:
            raise StorageError(f"DuckDB {operation} failed: {str(e)}", operation=operation, details={"table": table})

    def _run(self, operation: str, table: str, build) -> ServiceResult[list[dict]]:
        try:
            sql, params = build()
            return ServiceResult.success_result(self._execute(operation, table, sql, params))
        except StorageError as e:
            logger.error(e.message)
            return ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, e.message, e.details)

    # ------------------------------------------------------------------
    # DatabasePort
    # ------------------------------------------------------------------

    def select(self, query: TableQuery) -> ServiceResult[list[dict]]:
        return self._run("select", query.table, lambda: self._sql.select(query))

    def select_one(self, query: TableQuery) -> ServiceResult[Optional[dict]]:
        result = self.select(query)
        if result.is_failure():
            return ServiceResult.from_failure(result)
        return ServiceResult.success_result(result.data[0] if result.data else None)

    def insert(self, table: str, rows: Union[dict, list[dict]]) -> ServiceResult[list[dict]]:
        rows = [rows] if isinstance(rows, dict) else list(rows)
        if not rows:
            return ServiceResult.success_result([])
        return self._run("insert", table, lambda: self._sql.insert(table, rows))

    def update(self, query: TableQuery, values: dict) -> ServiceResult[list[dict]]:
        return self._run("update", query.table, lambda: self._sql.update(query, values))

    def upsert(self, table: str, rows: Union[dict, list[dict]], on_conflict: str) -> ServiceResult[list[dict]]:
        rows = [rows] if isinstance(rows, dict) else list(rows)
        if not rows:
            return ServiceResult.success_result([])
        return self._run("upsert", table, lambda: self._sql.insert(table, rows, on_conflict=on_conflict))

    def delete(self, query: TableQuery) -> ServiceResult[int]:
        counted = self.count(query)
        if counted.is_failure():
            return counted
        result = self._run("delete", query.table, lambda: self._sql.delete(query))
        if result.is_failure():
            return ServiceResult.from_failure(result)
        return ServiceResult.success_result(counted.data)

    def count(self, query: TableQuery) -> ServiceResult[int]:
        result = self._run("count", query.table, lambda: self._sql.count(query))
        if result.is_failure():
            return ServiceResult.from_failure(result)
        row = result.data[0] if result.data else {}
        return ServiceResult.success_result(int(next(iter(row.values()), 0)))

    def rpc(self, function: str, params: Optional[dict] = None) -> ServiceResult[Any]:
        return ServiceResult.failure_result(
            ErrorCode.OPERATION_FAILED,
            f"Stored function {function} is not available in the local DuckDB store",
        )

    def ping(self) -> ServiceResult[bool]:
        try:
            with self._lock:
                value = self._get_connection().execute("SELECT 1").fetchone()[0]
            return ServiceResult.success_result(value == 1)
        except (duckdb.Error, StorageError) as e:
            return ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, str(e))

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            logger.info("Closed DuckDB connection")
