"""Hosted Database REST Adapter.

Implements DatabasePort and FunctionsPort against the hosted Postgres
platform's HTTP API: PostgREST-style table endpoints under ``/rest/v1``,
stored functions under ``/rest/v1/rpc`` and serverless functions under
``/functions/v1``.

Security Impact:
    - Row-level security is enforced by the platform; the adapter never widens a query
    - The service key is sent as a header and never logged
    - Filter values are URL-encoded query parameters, never concatenated into SQL

Architecture:
    - Implements DatabasePort and FunctionsPort (Hexagonal Architecture)
    - One pooled ``httpx.Client`` per adapter instance
    - HTTP and transport errors are raised as StorageError internally and
      returned as DATABASE_ERROR / EXTERNAL_SERVICE_ERROR results
"""

import logging
from typing import Any, Optional, Union

import httpx

from src.domain.ports import (
    DatabasePort,
    ErrorCode,
    ExternalServiceError,
    Filter,
    FunctionsPort,
    ServiceResult,
    StorageError,
    TableQuery,
)
from src.infrastructure.config_manager import DatabaseConfig

logger = logging.getLogger(__name__)

_RESERVED = set(',()"\\:')


def _format_value(value: Any) -> str:
    """Render a filter value the way PostgREST expects it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value)
    if any(ch in _RESERVED for ch in text) or text != text.strip():
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def _render_filter(item: Filter) -> str:
    """Render ``operator.value`` (without the column) for one filter."""
    op = item.operator
    if op in ("eq", "neq") and item.value is None:
        return "is.null" if op == "eq" else "not.is.null"
    if op in ("eq", "neq", "gt", "gte", "lt", "lte"):
        return f"{op}.{_format_value(item.value)}"
    if op == "ilike":
        return "ilike." + _format_value(str(item.value).replace("%", "*"))
    if op == "in":
        return "in.(" + ",".join(_format_value(v) for v in item.value) + ")"
    if op == "not_in":
        return "not.in.(" + ",".join(_format_value(v) for v in item.value) + ")"
    if op == "is_null":
        return "is.null"
    if op == "not_null":
        return "not.is.null"
    raise StorageError(f"Unsupported filter operator: {op}", operation="render_query")


def build_query_params(query: TableQuery, include_select: bool = True, limit: Optional[int] = None) -> list[tuple[str, str]]:
    """Translate a TableQuery into PostgREST query parameters.

    A list of pairs is returned because the same column may carry several
    filters (e.g. a date range).
    """
    params: list[tuple[str, str]] = []
    if include_select:
        params.append(("select", query.columns or "*"))
    for item in query.filters:
        params.append((item.column, _render_filter(item)))
    for group in query.or_groups:
        alternatives = ",".join(f"{f.column}.{_render_filter(f)}" for f in group)
        params.append(("or", f"({alternatives})"))
    if query.ordering:
        params.append(("order", ",".join(f"{c}.{'asc' if asc else 'desc'}" for c, asc in query.ordering)))
    effective_limit = limit if limit is not None else query.limit_value
    if effective_limit is not None:
        params.append(("limit", str(effective_limit)))
    if query.offset_value is not None:
        params.append(("offset", str(query.offset_value)))
    return params


def parse_content_range(header: Optional[str]) -> int:
    """Total from a ``Content-Range`` header such as ``0-24/3573`` or ``*/0``."""
    if not header or "/" not in header:
        return 0
    total = header.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else 0


class HostedDatabaseAdapter(DatabasePort, FunctionsPort):
    """REST client for the hosted database platform.

    Parameters:
        db_config: DatabaseConfig with ``db_type='hosted'``, ``url`` and ``service_key``
        client: Optional pre-built httpx.Client (tests use ``httpx.MockTransport``)

    Example Usage:
        ```python
        from src.infrastructure.config_manager import get_database_config

        adapter = HostedDatabaseAdapter(get_database_config())
        result = adapter.select(TableQuery("hospital_units").eq("is_active", True).order("unit_name"))
        if result.is_success():
            units = result.data
        ```
    """

    db_type = "hosted"

    def __init__(self, db_config: DatabaseConfig, client: Optional[httpx.Client] = None):
        if db_config.db_type != "hosted":
            raise StorageError(
                f"DatabaseConfig type '{db_config.db_type}' does not match hosted adapter",
                operation="__init__"
            )
        if not db_config.url:
            raise StorageError("Hosted database requires a URL", operation="__init__")

        self.base_url = db_config.url
        headers = {"Content-Type": "application/json"}
        if db_config.service_key:
            key = db_config.service_key.get_secret_value()
            headers["apikey"] = key
            headers["Authorization"] = f"Bearer {key}"

        self._client = client or httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(db_config.timeout_seconds, connect=8.0),
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        params: Optional[list[tuple[str, str]]] = None,
        json: Any = None,
        headers: Optional[dict] = None,
    ) -> httpx.Response:
        try:
            response = self._client.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise StorageError(f"Hosted database request failed: {e}", operation=operation)

        if response.status_code >= 400:
            code = None
            message = response.text.strip() or f"HTTP {response.status_code}"
            try:
                payload = response.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict):
                code = payload.get("code")
                message = payload.get("message") or message
            raise StorageError(
                message,
                operation=operation,
                details={"code": code, "status_code": response.status_code},
            )
        return response

    @staticmethod
    def _rows(response: httpx.Response) -> list[dict]:
        if not response.content:
            return []
        payload = response.json()
        if isinstance(payload, list):
            return payload
        return [payload] if payload else []

    @staticmethod
    def _failure(e: StorageError) -> ServiceResult:
        logger.error(f"Hosted database {e.operation} failed: {e.message}")
        return ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, e.message, e.details)

    # ------------------------------------------------------------------
    # DatabasePort
    # ------------------------------------------------------------------

    def select(self, query: TableQuery) -> ServiceResult[list[dict]]:
        try:
            response = self._request("GET", f"/rest/v1/{query.table}", "select", params=build_query_params(query))
            return ServiceResult.success_result(self._rows(response))
        except StorageError as e:
            return self._failure(e)

    def select_one(self, query: TableQuery) -> ServiceResult[Optional[dict]]:
        try:
            response = self._request(
                "GET", f"/rest/v1/{query.table}", "select_one", params=build_query_params(query, limit=1)
            )
            rows = self._rows(response)
            return ServiceResult.success_result(rows[0] if rows else None)
        except StorageError as e:
            return self._failure(e)

    def insert(self, table: str, rows: Union[dict, list[dict]]) -> ServiceResult[list[dict]]:
        try:
            response = self._request(
                "POST",
                f"/rest/v1/{table}",
                "insert",
                json=rows,
                headers={"Prefer": "return=representation"},
            )
            return ServiceResult.success_result(self._rows(response))
        except StorageError as e:
            return self._failure(e)

    def update(self, query: TableQuery, values: dict) -> ServiceResult[list[dict]]:
        try:
            response = self._request(
                "PATCH",
                f"/rest/v1/{query.table}",
                "update",
                params=build_query_params(query, include_select=False),
                json=values,
                headers={"Prefer": "return=representation"},
            )
            return ServiceResult.success_result(self._rows(response))
        except StorageError as e:
            return self._failure(e)

    def upsert(self, table: str, rows: Union[dict, list[dict]], on_conflict: str) -> ServiceResult[list[dict]]:
        try:
            response = self._request(
                "POST",
                f"/rest/v1/{table}",
                "upsert",
                params=[("on_conflict", on_conflict)],
                json=rows,
                headers={"Prefer": "resolution=merge-duplicates,return=representation"},
            )
            return ServiceResult.success_result(self._rows(response))
        except StorageError as e:
            return self._failure(e)

    def delete(self, query: TableQuery) -> ServiceResult[int]:
        try:
            response = self._request(
                "DELETE",
                f"/rest/v1/{query.table}",
                "delete",
                params=build_query_params(query, include_select=False),
                headers={"Prefer": "return=representation"},
            )
            return ServiceResult.success_result(len(self._rows(response)))
        except StorageError as e:
            return self._failure(e)

    def count(self, query: TableQuery) -> ServiceResult[int]:
        try:
            response = self._request(
                "HEAD",
                f"/rest/v1/{query.table}",
                "count",
                params=build_query_params(query),
                headers={"Prefer": "count=exact"},
            )
            return ServiceResult.success_result(parse_content_range(response.headers.get("content-range")))
        except StorageError as e:
            return self._failure(e)

    def rpc(self, function: str, params: Optional[dict] = None) -> ServiceResult[Any]:
        try:
            response = self._request("POST", f"/rest/v1/rpc/{function}", "rpc", json=params or {})
            return ServiceResult.success_result(response.json() if response.content else None)
        except StorageError as e:
            return self._failure(e)

    def ping(self) -> ServiceResult[bool]:
        try:
            response = self._client.get("/rest/v1/")
            return ServiceResult.success_result(response.status_code < 500)
        except httpx.HTTPError as e:
            return ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, f"Hosted database unreachable: {e}")

    def close(self) -> None:
        self._client.close()
        logger.info("Closed hosted database client")

    # ------------------------------------------------------------------
    # FunctionsPort
    # ------------------------------------------------------------------

    def invoke(self, name: str, body: Optional[dict] = None) -> ServiceResult[Any]:
        """Invoke a serverless function; non-2xx responses are EXTERNAL_SERVICE_ERROR."""
        try:
            response = self._client.post(f"/functions/v1/{name}", json=body or {})
            if response.status_code >= 400:
                raise ExternalServiceError(
                    f"Function {name} returned {response.status_code}: {response.text.strip()[:200]}",
                    status_code=response.status_code,
                    source=name,
                )
            return ServiceResult.success_result(response.json() if response.content else None)
        except httpx.HTTPError as e:
            logger.error(f"Function {name} request failed: {e}")
            return ServiceResult.failure_result(ErrorCode.EXTERNAL_SERVICE_ERROR, f"Function {name} request failed")
        except ExternalServiceError as e:
            logger.error(e.message)
            return ServiceResult.failure_result(
                ErrorCode.EXTERNAL_SERVICE_ERROR, e.message, {"status_code": e.status_code}
            )
