"""SQL rendering for TableQuery.

Renders backend-neutral ``TableQuery`` objects into parameterized SQL for the
direct PostgreSQL and DuckDB adapters. Values are always bound as parameters;
identifiers are validated against a strict pattern before being rendered.

Security Impact:
    - No value is ever interpolated into SQL text
    - Table and column names must match ``^[A-Za-z_][A-Za-z0-9_]*$``
"""

import re
from typing import Any, Callable, Optional

from src.domain.ports import Filter, StorageError, TableQuery

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

_COMPARISONS = {
    "eq": "=",
    "neq": "<>",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "ilike": "ILIKE",
}


def quote_identifier(name: str) -> str:
    """Validate and double-quote a table or column name."""
    if not name or not _IDENTIFIER.match(name):
        raise StorageError(f"Invalid identifier: {name!r}", operation="render_sql")
    return f'"{name}"'


class SQLBuilder:
    """Builds (sql, params) pairs for one placeholder style.

    Parameters:
        placeholder: Bind marker for the driver (``%s`` for psycopg2, ``?`` for DuckDB)
        adapt_value: Optional hook converting Python values (dicts, lists) for the driver
    """

    def __init__(self, placeholder: str = "%s", adapt_value: Optional[Callable[[Any], Any]] = None):
        self.placeholder = placeholder
        self.adapt_value = adapt_value or (lambda value: value)

    # ------------------------------------------------------------------
    # Clauses
    # ------------------------------------------------------------------

    def _columns(self, columns: str) -> str:
        if not columns or columns.strip() == "*":
            return "*"
        return ", ".join(quote_identifier(c.strip()) for c in columns.split(","))

    def _predicate(self, item: Filter, params: list) -> str:
        column = quote_identifier(item.column)
        if item.operator in _COMPARISONS:
            if item.value is None and item.operator in ("eq", "neq"):
                return f"{column} IS {'NOT ' if item.operator == 'neq' else ''}NULL"
            params.append(self.adapt_value(item.value))
            return f"{column} {_COMPARISONS[item.operator]} {self.placeholder}"
        if item.operator in ("in", "not_in"):
            values = list(item.value or [])
            if not values:
                return "FALSE" if item.operator == "in" else "TRUE"
            params.extend(self.adapt_value(v) for v in values)
            markers = ", ".join([self.placeholder] * len(values))
            keyword = "IN" if item.operator == "in" else "NOT IN"
            return f"{column} {keyword} ({markers})"
        if item.operator == "is_null":
            return f"{column} IS NULL"
        if item.operator == "not_null":
            return f"{column} IS NOT NULL"
        raise StorageError(f"Unsupported filter operator: {item.operator}", operation="render_sql")

    def where(self, query: TableQuery, params: list) -> str:
        clauses = [self._predicate(f, params) for f in query.filters]
        for group in query.or_groups:
            alternatives = [self._predicate(f, params) for f in group]
            clauses.append("(" + " OR ".join(alternatives) + ")")
        return f" WHERE {' AND '.join(clauses)}" if clauses else ""

    def _tail(self, query: TableQuery, params: list) -> str:
        sql = ""
        if query.ordering:
            parts = [f"{quote_identifier(c)} {'ASC' if asc else 'DESC'}" for c, asc in query.ordering]
            sql += " ORDER BY " + ", ".join(parts)
        if query.limit_value is not None:
            sql += f" LIMIT {self.placeholder}"
            params.append(int(query.limit_value))
        if query.offset_value is not None:
            sql += f" OFFSET {self.placeholder}"
            params.append(int(query.offset_value))
        return sql

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def select(self, query: TableQuery) -> tuple[str, list]:
        params: list = []
        sql = f"SELECT {self._columns(query.columns)} FROM {quote_identifier(query.table)}"
        sql += self.where(query, params)
        sql += self._tail(query, params)
        return sql, params

    def count(self, query: TableQuery) -> tuple[str, list]:
        params: list = []
        sql = f"SELECT COUNT(*) FROM {quote_identifier(query.table)}" + self.where(query, params)
        return sql, params

    def insert(self, table: str, rows: list[dict], on_conflict: Optional[str] = None) -> tuple[str, list]:
        """Multi-row INSERT ... RETURNING *.

        Rows may have different keys; the column list is their union and
        missing values are bound as NULL.
        """
        columns: list[str] = []
        for row in rows:
            for name in row:
                if name not in columns:
                    columns.append(name)

        params: list = []
        row_sql = []
        for row in rows:
            params.extend(self.adapt_value(row.get(name)) for name in columns)
            row_sql.append("(" + ", ".join([self.placeholder] * len(columns)) + ")")

        column_sql = ", ".join(quote_identifier(c) for c in columns)
        sql = f"INSERT INTO {quote_identifier(table)} ({column_sql}) VALUES {', '.join(row_sql)}"

        if on_conflict:
            targets = [c.strip() for c in on_conflict.split(",") if c.strip()]
            target_sql = ", ".join(quote_identifier(c) for c in targets)
            updates = [c for c in columns if c not in targets]
            if updates:
                assignments = ", ".join(f"{quote_identifier(c)} = EXCLUDED.{quote_identifier(c)}" for c in updates)
                sql += f" ON CONFLICT ({target_sql}) DO UPDATE SET {assignments}"
            else:
                sql += f" ON CONFLICT ({target_sql}) DO NOTHING"

        return sql + " RETURNING *", params

    def update(self, query: TableQuery, values: dict) -> tuple[str, list]:
        if not values:
            raise StorageError("Update requires at least one column", operation="update")
        params: list = []
        assignments = []
        for name, value in values.items():
            assignments.append(f"{quote_identifier(name)} = {self.placeholder}")
            params.append(self.adapt_value(value))
        sql = f"UPDATE {quote_identifier(query.table)} SET {', '.join(assignments)}"
        sql += self.where(query, params)
        return sql + " RETURNING *", params

    def delete(self, query: TableQuery) -> tuple[str, list]:
        params: list = []
        sql = f"DELETE FROM {quote_identifier(query.table)}" + self.where(query, params)
        return sql, params
