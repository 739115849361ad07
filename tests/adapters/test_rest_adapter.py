"""Tests for the hosted database REST adapter using httpx.MockTransport."""

import json

import httpx
import pytest

from src.adapters.database.rest_adapter import HostedDatabaseAdapter, build_query_params, parse_content_range
from src.domain.ports import Filter, StorageError, TableQuery
from src.infrastructure.config_manager import DatabaseConfig

BASE_URL = "https://project.db.test"


class Recorder:
    """MockTransport handler that records requests and replies in order."""

    def __init__(self, *responses):
        self.requests: list[httpx.Request] = []
        self.responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.responses.pop(0) if self.responses else httpx.Response(200, json=[])
        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def make_adapter(recorder):
    client = httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(recorder))
    return HostedDatabaseAdapter(DatabaseConfig(url=BASE_URL, service_key="key"), client=client)


class TestQueryParams:
    def test_filters_render_as_postgrest(self):
        query = (
            TableQuery("transfer_requests", "id,status")
            .not_in("status", ["completed", "cancelled"])
            .gte("requested_at", "2026-03-01T00:00:00+00:00")
            .lte("requested_at", "2026-03-02")
            .eq("is_active", True)
            .eq("patient_id", None)
            .ilike("patient_name", "%smith%")
            .order("requested_at", ascending=False)
            .limit(25)
            .offset(50)
        )

        assert build_query_params(query) == [
            ("select", "id,status"),
            ("status", "not.in.(completed,cancelled)"),
            ("requested_at", 'gte."2026-03-01T00:00:00+00:00"'),
            ("requested_at", "lte.2026-03-02"),
            ("is_active", "eq.true"),
            ("patient_id", "is.null"),
            ("patient_name", "ilike.*smith*"),
            ("order", "requested_at.desc"),
            ("limit", "25"),
            ("offset", "50"),
        ]

    def test_or_group_and_reserved_characters(self):
        query = TableQuery("profiles").or_(
            Filter("first_name", "eq", "Smith, Jr."),
            Filter("last_name", "in", ["a", "b"]),
        )

        params = build_query_params(query, include_select=False, limit=1)

        assert params == [("or", '(first_name.eq."Smith, Jr.",last_name.in.(a,b))'), ("limit", "1")]

    def test_unsupported_operator(self):
        query = TableQuery("beds")
        query.filters.append(Filter("status", "regex", "x"))

        with pytest.raises(StorageError):
            build_query_params(query)

    @pytest.mark.parametrize("header, total", [("0-24/3573", 3573), ("*/0", 0), ("0-9/*", 0), (None, 0)])
    def test_parse_content_range(self, header, total):
        assert parse_content_range(header) == total


class TestTableOperations:
    def test_select(self):
        recorder = Recorder(httpx.Response(200, json=[{"id": "b1"}]))

        result = make_adapter(recorder).select(TableQuery("beds").eq("status", "available"))

        assert result.data == [{"id": "b1"}]
        assert recorder.last.method == "GET"
        assert recorder.last.url.path == "/rest/v1/beds"
        assert recorder.last.url.params.get("status") == "eq.available"

    def test_select_one_empty(self):
        recorder = Recorder(httpx.Response(200, json=[]))

        result = make_adapter(recorder).select_one(TableQuery("beds").eq("id", "missing"))

        assert result.data is None
        assert recorder.last.url.params.get("limit") == "1"

    def test_insert_returns_representation(self):
        recorder = Recorder(httpx.Response(201, json=[{"id": "n1", "title": "Hi"}]))

        result = make_adapter(recorder).insert("user_notifications", {"title": "Hi"})

        assert result.data == [{"id": "n1", "title": "Hi"}]
        assert recorder.last.headers["prefer"] == "return=representation"
        assert json.loads(recorder.last.content) == {"title": "Hi"}

    def test_update_without_select(self):
        recorder = Recorder(httpx.Response(200, json=[{"id": "b1", "status": "dirty"}]))

        make_adapter(recorder).update(TableQuery("beds").eq("id", "b1"), {"status": "dirty"})

        assert recorder.last.method == "PATCH"
        assert "select" not in recorder.last.url.params

    def test_upsert(self):
        recorder = Recorder(httpx.Response(201, json=[]))

        make_adapter(recorder).upsert("billing_code_cache", {"cache_key": "k"}, on_conflict="cache_key")

        assert recorder.last.url.params.get("on_conflict") == "cache_key"
        assert "resolution=merge-duplicates" in recorder.last.headers["prefer"]

    def test_delete_counts_rows(self):
        recorder = Recorder(httpx.Response(200, json=[{"id": "a"}, {"id": "b"}]))

        result = make_adapter(recorder).delete(TableQuery("user_notifications").lt("expires_at", "2026-03-01"))

        assert result.data == 2

    def test_count_reads_content_range(self):
        recorder = Recorder(httpx.Response(200, headers={"Content-Range": "0-0/42"}))

        result = make_adapter(recorder).count(TableQuery("beds"))

        assert result.data == 42
        assert recorder.last.method == "HEAD"
        assert recorder.last.headers["prefer"] == "count=exact"

    def test_rpc(self):
        recorder = Recorder(httpx.Response(200, json={"welfare_check_dispatcher_enabled": True}))

        result = make_adapter(recorder).rpc("get_ai_skill_config", {"p_tenant_id": "t-1"})

        assert result.data == {"welfare_check_dispatcher_enabled": True}
        assert recorder.last.url.path == "/rest/v1/rpc/get_ai_skill_config"

    def test_rpc_void(self):
        recorder = Recorder(httpx.Response(204))

        assert make_adapter(recorder).rpc("increment_billing_cache_hit").data is None


class TestFailures:
    def test_error_payload(self):
        recorder = Recorder(httpx.Response(409, json={"code": "23505", "message": "duplicate key value"}))

        result = make_adapter(recorder).insert("beds", {"id": "b1"})

        assert result.error_code == "DATABASE_ERROR"
        assert result.error.message == "duplicate key value"
        assert result.error.details == {"code": "23505", "status_code": 409}

    def test_transport_error(self):
        recorder = Recorder(httpx.ConnectError("connection refused"))

        result = make_adapter(recorder).select(TableQuery("beds"))

        assert result.error.message.startswith("Hosted database request failed")

    def test_ping(self):
        assert make_adapter(Recorder(httpx.Response(404))).ping().data is True
        assert make_adapter(Recorder(httpx.Response(503))).ping().data is False

    def test_wrong_config(self):
        with pytest.raises(StorageError, match="does not match hosted adapter"):
            HostedDatabaseAdapter(DatabaseConfig(db_type="duckdb"))
        with pytest.raises(StorageError, match="requires a URL"):
            HostedDatabaseAdapter(DatabaseConfig())


class TestFunctions:
    def test_invoke(self):
        recorder = Recorder(httpx.Response(200, json={"success": True, "sid": "SM1"}))

        result = make_adapter(recorder).invoke("send-sms", {"to": "+15555550100"})

        assert result.data == {"success": True, "sid": "SM1"}
        assert recorder.last.url.path == "/functions/v1/send-sms"

    def test_invoke_http_error(self):
        recorder = Recorder(httpx.Response(502, text="Bad gateway"))

        result = make_adapter(recorder).invoke("send-push-notification")

        assert result.error_code == "EXTERNAL_SERVICE_ERROR"
        assert result.error.message == "Function send-push-notification returned 502: Bad gateway"
        assert result.error.details == {"status_code": 502}
