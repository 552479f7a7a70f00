"""Shared fixtures: a scriptable in-memory query service and sample data."""

import asyncio
from typing import Any

import pytest

from reflex_table_browser.errors import RemoteExecutionError
from reflex_table_browser.models import (
    ColumnSchema,
    ExportInfo,
    QueryDescriptor,
    QueryResult,
    SessionStatus,
)

SESSION = "test-session"


def make_rows(count: int) -> list[dict[str, Any]]:
    cities = ["Berlin", "Paris", "Madrid", "Rome"]
    return [
        {"id": i, "name": f"user{i:03d}", "age": 20 + i % 50, "city": cities[i % len(cities)]}
        for i in range(1, count + 1)
    ]


SCHEMA = [
    ColumnSchema(name="id", type="INTEGER"),
    ColumnSchema(name="name"),
    ColumnSchema(name="age", type="INTEGER"),
    ColumnSchema(name="city"),
    ColumnSchema(name="notes", sortable=False, filterable=False),
]


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run up to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeQueryService:
    """In-memory engine whose query responses can be held back and released.

    With ``hold_queries`` set, every ``execute_query`` call waits until
    the test calls :meth:`respond` or :meth:`fail` for it, which makes
    arrival order fully controllable.  Search matches any cell as a
    substring; filters and sorts are recorded but not applied.
    """

    def __init__(self, rows: list[dict[str, Any]] | None = None, columns=SCHEMA) -> None:
        self.rows = list(rows if rows is not None else make_rows(250))
        self.columns = list(columns)
        self.hold_queries = False
        self.queries: list[QueryDescriptor] = []
        self.pending: list[tuple[QueryDescriptor, asyncio.Future]] = []
        self.query_error: RemoteExecutionError | None = None
        self.update_error: RemoteExecutionError | None = None
        self.delete_error: RemoteExecutionError | None = None
        self.export_error: RemoteExecutionError | None = None
        self.metrics_error: RemoteExecutionError | None = None
        self.delete_limit: int | None = None
        self.updates: list[tuple[str, str, str, str]] = []

    # -- scripting --

    def respond(self, index: int) -> None:
        descriptor, future = self.pending[index]
        future.set_result(self.page(descriptor))

    def fail(self, index: int, error: RemoteExecutionError) -> None:
        self.pending[index][1].set_exception(error)

    def matching(self, descriptor: QueryDescriptor) -> list[dict[str, Any]]:
        term = descriptor.search_term.lower()
        if not term:
            return list(self.rows)
        return [r for r in self.rows if any(term in str(v).lower() for v in r.values())]

    def page(self, descriptor: QueryDescriptor) -> QueryResult:
        rows = self.matching(descriptor)
        start = descriptor.page * descriptor.page_size
        total = len(rows)
        return QueryResult(
            rows=tuple(rows[start:start + descriptor.page_size]),
            total_elements=total,
            total_pages=-(-total // descriptor.page_size),
            current_page=descriptor.page,
            page_size=descriptor.page_size,
            implementation_label="Fake",
            query_time_ms=1.5,
        )

    # -- QueryService --

    async def execute_query(self, session_id: str, descriptor: QueryDescriptor) -> QueryResult:
        self.queries.append(descriptor)
        if self.hold_queries:
            future = asyncio.get_running_loop().create_future()
            self.pending.append((descriptor, future))
            return await future
        if self.query_error is not None:
            raise self.query_error
        return self.page(descriptor)

    async def get_schema(self, session_id: str) -> list[ColumnSchema]:
        return list(self.columns)

    async def update_field(self, session_id: str, record_id: str, field_name: str, value: str) -> None:
        self.updates.append((session_id, record_id, field_name, value))
        if self.update_error is not None:
            raise self.update_error
        for row in self.rows:
            if str(row.get("id")) == record_id:
                row[field_name] = value
                return
        raise RemoteExecutionError(
            "Update failed", server_message="Record not found or update failed", status_code=404
        )

    async def delete_by_query(self, session_id: str, descriptor: QueryDescriptor) -> int:
        if self.delete_error is not None:
            raise self.delete_error
        doomed = self.matching(descriptor)
        if self.delete_limit is not None:
            doomed = doomed[: self.delete_limit]
        ids = {id(r) for r in doomed}
        self.rows = [r for r in self.rows if id(r) not in ids]
        return len(doomed)

    async def export_table(self, session_id: str) -> ExportInfo:
        if self.export_error is not None:
            raise self.export_error
        return ExportInfo(
            file_name="table_export_1.arrow",
            file_path="/tmp/table_export_1.arrow",
            format="Arrow IPC",
            implementation="Fake",
            message="Table exported successfully",
        )

    async def get_metrics(self, session_id: str) -> dict[str, Any]:
        if self.metrics_error is not None:
            raise self.metrics_error
        return {"implementation": "Fake", "rowCount": len(self.rows), "avgQueryTimeMs": 1.5}

    async def get_session_status(self, session_id: str) -> SessionStatus:
        return SessionStatus(
            has_data=bool(self.columns), implementation="Fake", column_count=len(self.columns)
        )

    async def health(self) -> dict[str, Any]:
        return {"status": "UP"}


@pytest.fixture
def service() -> FakeQueryService:
    return FakeQueryService()
