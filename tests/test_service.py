"""Tests for the REST client, using httpx's mock transport."""

import json

import httpx
import pytest

from reflex_table_browser.errors import RemoteExecutionError
from reflex_table_browser.models import (
    FilterClause,
    FilterOperation,
    QueryDescriptor,
    SortClause,
    SortDirection,
)
from reflex_table_browser.service import HttpQueryService

BASE = "http://engine/api/v1"


def _service(handler) -> HttpQueryService:
    client = httpx.AsyncClient(base_url=BASE, transport=httpx.MockTransport(handler))
    return HttpQueryService(client=client)


class TestQuery:
    @pytest.mark.asyncio
    async def test_request_body_and_result(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.raw_path
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "data": [{"id": 1, "name": "a"}],
                    "totalElements": 1,
                    "totalPages": 1,
                    "currentPage": 0,
                    "pageSize": 50,
                    "implementation": "DuckDB",
                    "queryTimeMs": 3,
                },
            )

        descriptor = QueryDescriptor(
            filters=(FilterClause(column="age", operation=FilterOperation.GREATER_THAN, values=("30",)),),
            sorts=(SortClause(column="name", direction=SortDirection.DESC, priority=1),),
            search_term="x",
            page_size=50,
        )
        result = await _service(handler).execute_query("s 1", descriptor)

        assert seen["path"] == b"/api/v1/sessions/s%201/query"
        assert seen["body"] == {
            "sessionId": "s 1",
            "filters": [
                {
                    "column": "age",
                    "operation": "GREATER_THAN",
                    "values": ["30"],
                    "logicalOperator": "AND",
                }
            ],
            "sorts": [{"column": "name", "direction": "DESC", "priority": 1}],
            "searchTerm": "x",
            "page": 0,
            "pageSize": 50,
        }
        assert result.rows == ({"id": 1, "name": "a"},)
        assert result.implementation_label == "DuckDB"

    @pytest.mark.asyncio
    async def test_server_error_message(self):
        def handler(request):
            return httpx.Response(500, json={"error": "Table locked"})

        with pytest.raises(RemoteExecutionError) as exc_info:
            await _service(handler).execute_query("s", QueryDescriptor())
        assert exc_info.value.status_code == 500
        assert exc_info.value.display_message("fallback") == "Table locked"

    @pytest.mark.asyncio
    async def test_error_without_message_falls_back(self):
        def handler(request):
            return httpx.Response(502)

        with pytest.raises(RemoteExecutionError) as exc_info:
            await _service(handler).execute_query("s", QueryDescriptor())
        assert exc_info.value.display_message("fallback") == "fallback"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(RemoteExecutionError):
            await _service(handler).execute_query("s", QueryDescriptor())

    @pytest.mark.asyncio
    async def test_malformed_result(self):
        def handler(request):
            return httpx.Response(200, json={"totalElements": "many"})

        with pytest.raises(RemoteExecutionError):
            await _service(handler).execute_query("s", QueryDescriptor())


class TestOtherEndpoints:
    @pytest.mark.asyncio
    async def test_update_field(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.raw_path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True})

        await _service(handler).update_field("s", "42", "city", "Oslo")
        assert seen == {
            "method": "PUT",
            "path": b"/api/v1/sessions/s/record/42/field/city",
            "body": {"value": "Oslo"},
        }

    @pytest.mark.asyncio
    async def test_delete_returns_count(self):
        def handler(request):
            return httpx.Response(200, json={"deletedCount": 7})

        assert await _service(handler).delete_by_query("s", QueryDescriptor()) == 7

    @pytest.mark.asyncio
    async def test_schema_and_status(self):
        def handler(request):
            if request.url.path.endswith("/schema"):
                return httpx.Response(200, json=[{"name": "id", "type": "INTEGER"}, {"name": "city"}])
            return httpx.Response(200, json={"hasData": True, "implementation": "H2", "columnCount": 2})

        service = _service(handler)
        columns = await service.get_schema("s")
        status = await service.get_session_status("s")

        assert [c.name for c in columns] == ["id", "city"]
        assert columns[1].filterable
        assert status.has_data
        assert status.column_count == 2

    @pytest.mark.asyncio
    async def test_export_and_metrics(self):
        def handler(request):
            if request.url.path.endswith("/export"):
                return httpx.Response(
                    200,
                    json={"fileName": "t.arrow", "filePath": "/tmp/t.arrow", "format": "Arrow IPC"},
                )
            return httpx.Response(200, json={"rowCount": 10})

        service = _service(handler)
        info = await service.export_table("s")
        assert info.file_path == "/tmp/t.arrow"
        assert await service.get_metrics("s") == {"rowCount": 10}
