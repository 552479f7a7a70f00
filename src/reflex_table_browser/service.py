"""Contract with the remote query engine and its HTTP client.

The engine exposes one REST resource per session::

    POST   /sessions/{id}/query                         -> page of rows
    GET    /sessions/{id}/schema                        -> column list
    PUT    /sessions/{id}/record/{rid}/field/{name}     -> update one cell
    POST   /sessions/{id}/delete                        -> delete by query
    POST   /sessions/{id}/export                        -> export table
    GET    /sessions/{id}/metrics                       -> metrics mapping
    GET    /sessions/{id}/status                        -> has data?
    GET    /sessions/health                             -> liveness
"""

import logging
from typing import Any, Protocol, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as SchemaMismatch

from reflex_table_browser.errors import RemoteExecutionError
from reflex_table_browser.models import (
    ColumnSchema,
    ExportInfo,
    QueryDescriptor,
    QueryResult,
    SessionStatus,
)

logger = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)


class QueryService(Protocol):
    """Operations the browser needs from a query engine.

    Every method raises :class:`RemoteExecutionError` on failure.
    """

    async def execute_query(self, session_id: str, descriptor: QueryDescriptor) -> QueryResult: ...

    async def get_schema(self, session_id: str) -> list[ColumnSchema]: ...

    async def update_field(
        self, session_id: str, record_id: str, field_name: str, value: str
    ) -> None: ...

    async def delete_by_query(self, session_id: str, descriptor: QueryDescriptor) -> int: ...

    async def export_table(self, session_id: str) -> ExportInfo: ...

    async def get_metrics(self, session_id: str) -> dict[str, Any]: ...

    async def get_session_status(self, session_id: str) -> SessionStatus: ...

    async def health(self) -> dict[str, Any]: ...


def _server_message(response: httpx.Response) -> str | None:
    """Extract the human-readable message from an error response body."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text or None
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if value:
                return str(value)
    return None


def _parse(model: type[_M], body: Any, action: str) -> _M:
    try:
        return model.model_validate(body or {})
    except SchemaMismatch as exc:
        raise RemoteExecutionError(
            f"{action} returned an unexpected response",
            server_message=str(exc),
        ) from exc


class HttpQueryService:
    """:class:`QueryService` over the engine's REST API.

    Args:
        base_url: API root, e.g. ``http://localhost:8080/api/v1``.
        timeout: Per-request timeout in seconds.
        client: Optional pre-built ``httpx.AsyncClient`` (tests pass one
            with a mock transport).  When given, *base_url* and *timeout*
            are ignored and the caller owns the client.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080/api/v1",
        *,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpQueryService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        action: str,
        json: Any = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.warning("%s failed: %s %s: %s", action, method, path, exc)
            raise RemoteExecutionError(f"{action} failed", server_message=str(exc) or None) from exc

        if response.is_error:
            message = _server_message(response)
            logger.warning(
                "%s failed: %s %s -> %d %s", action, method, path, response.status_code, message
            )
            raise RemoteExecutionError(
                f"{action} failed",
                server_message=message,
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteExecutionError(f"{action} returned malformed JSON") from exc

    @staticmethod
    def _session_path(session_id: str, *parts: str) -> str:
        segments = [quote(session_id, safe=""), *(quote(p, safe="") for p in parts)]
        return "/sessions/" + "/".join(segments)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def execute_query(self, session_id: str, descriptor: QueryDescriptor) -> QueryResult:
        body = await self._request(
            "POST",
            self._session_path(session_id, "query"),
            action="Query",
            json=descriptor.to_request(session_id),
        )
        return _parse(QueryResult, body, "Query")

    async def get_schema(self, session_id: str) -> list[ColumnSchema]:
        body = await self._request(
            "GET", self._session_path(session_id, "schema"), action="Schema lookup"
        )
        return [_parse(ColumnSchema, col, "Schema lookup") for col in body or []]

    async def update_field(
        self, session_id: str, record_id: str, field_name: str, value: str
    ) -> None:
        await self._request(
            "PUT",
            self._session_path(session_id, "record", record_id, "field", field_name),
            action="Update",
            json={"value": value},
        )

    async def delete_by_query(self, session_id: str, descriptor: QueryDescriptor) -> int:
        body = await self._request(
            "POST",
            self._session_path(session_id, "delete"),
            action="Delete",
            json=descriptor.to_request(session_id),
        )
        return int((body or {}).get("deletedCount", 0))

    async def export_table(self, session_id: str) -> ExportInfo:
        body = await self._request(
            "POST", self._session_path(session_id, "export"), action="Export"
        )
        return _parse(ExportInfo, body, "Export")

    async def get_metrics(self, session_id: str) -> dict[str, Any]:
        body = await self._request(
            "GET", self._session_path(session_id, "metrics"), action="Metrics"
        )
        return dict(body or {})

    async def get_session_status(self, session_id: str) -> SessionStatus:
        body = await self._request(
            "GET", self._session_path(session_id, "status"), action="Status"
        )
        return _parse(SessionStatus, body, "Status")

    async def health(self) -> dict[str, Any]:
        body = await self._request("GET", "/sessions/health", action="Health check")
        return dict(body or {})
