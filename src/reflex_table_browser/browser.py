"""The browser's owned UI state: one descriptor, one result, one edit.

:class:`TableBrowser` wires the pieces together::

    UI event -> FilterBuilder / SortCycleManager / search / pagination
             -> QueryStateController.apply_update()
             -> RemoteQueryExecutor (applies the response if still current)
             -> Pagination (navigation bounds from the applied result)

It is an ordinary object, so it can be driven directly in tests without
any rendering environment; the Reflex state mixin in
:mod:`reflex_table_browser.table_grid` delegates to it.
"""

import logging
from collections.abc import Mapping
from typing import Any

from reflex_table_browser.cell_editor import InlineCellEditor
from reflex_table_browser.errors import RemoteExecutionError
from reflex_table_browser.executor import RemoteQueryExecutor
from reflex_table_browser.filters import FilterBuilder
from reflex_table_browser.models import (
    DEFAULT_PAGE_SIZE,
    ColumnSchema,
    ExportInfo,
    FilterOperation,
    LogicalOperator,
    QueryDescriptor,
    QueryResult,
    SessionStatus,
)
from reflex_table_browser.pagination import Pagination
from reflex_table_browser.query_state import QueryStateController
from reflex_table_browser.service import QueryService
from reflex_table_browser.sorting import SortCycleManager

logger = logging.getLogger(__name__)

DELETE_FAILED_MESSAGE = "Failed to delete records"
EXPORT_FAILED_MESSAGE = "Failed to export table"


class TableBrowser:
    """Coordinates query state, execution, pagination and inline editing.

    Args:
        service: The query engine.
        session_id: Engine session holding the table.
        page_size: Initial page size.
    """

    def __init__(
        self,
        service: QueryService,
        session_id: str = "default-session",
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.service = service
        self.session_id = session_id
        self.controller = QueryStateController(QueryDescriptor(page_size=page_size))
        self.executor = RemoteQueryExecutor(service, self.controller, session_id)
        self.editor = InlineCellEditor(service, session_id, refresh=self.refresh)
        self.columns: list[ColumnSchema] = []
        self.filter_builder = FilterBuilder()
        self.sort_manager = SortCycleManager()
        self.status: SessionStatus | None = None
        self.metrics: dict[str, Any] = {}
        self.message: str = ""
        self.executor.on_result(self._clamp_page)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def descriptor(self) -> QueryDescriptor:
        return self.controller.descriptor

    @property
    def result(self) -> QueryResult | None:
        return self.executor.last_result

    @property
    def error(self) -> RemoteExecutionError | None:
        return self.executor.error

    @property
    def pagination(self) -> Pagination | None:
        if self.result is None:
            return None
        return Pagination.from_result(self.result)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> bool:
        """Check the session has data, fetch its schema and the first page.

        Returns ``False`` (without querying) when the session is empty or
        unreachable; the reason is left in :attr:`message`.
        """
        try:
            self.status = await self.service.get_session_status(self.session_id)
        except RemoteExecutionError as exc:
            self.message = exc.display_message("Cannot reach the query engine")
            return False
        if not self.status.has_data:
            self.message = f"Session {self.session_id!r} has no data yet"
            return False

        await self.load_schema()
        await self.refresh()
        return True

    async def load_schema(self) -> None:
        try:
            columns = await self.service.get_schema(self.session_id)
        except RemoteExecutionError as exc:
            self.message = exc.display_message("Failed to load schema")
            return
        self.columns = columns
        self.filter_builder = FilterBuilder(columns)
        self.sort_manager = SortCycleManager(columns)
        logger.info("Schema loaded: %d columns", len(columns))

    async def refresh(self) -> QueryResult | None:
        """Re-fetch the current descriptor and wait for it."""
        self.executor.refresh()
        await self.executor.wait()
        return self.result

    async def retry(self) -> QueryResult | None:
        return await self.refresh()

    async def _apply(self, **changes: Any) -> QueryResult | None:
        self.controller.apply_update(**changes)
        await self.executor.wait()
        return self.result

    # ------------------------------------------------------------------
    # Query edits
    # ------------------------------------------------------------------

    async def toggle_sort(self, column: str) -> QueryResult | None:
        sorts = self.sort_manager.toggle(self.descriptor.sorts, column)
        if sorts == self.descriptor.sorts:
            return self.result
        return await self._apply(sorts=sorts)

    def can_add_filter(self, column: str, operation: FilterOperation, value: str = "") -> bool:
        return self.filter_builder.can_add(column, operation, value)

    async def add_filter(
        self,
        column: str,
        operation: FilterOperation,
        value: str = "",
        logical_operator: LogicalOperator = LogicalOperator.AND,
    ) -> bool:
        """Add a filter; returns ``False`` when the submission was rejected."""
        filters = self.filter_builder.add_filter(
            self.descriptor.filters, column, operation, value, logical_operator
        )
        if filters == self.descriptor.filters:
            return False
        await self._apply(filters=filters)
        return True

    async def remove_filter(self, index: int) -> QueryResult | None:
        filters = self.filter_builder.remove_filter(self.descriptor.filters, index)
        if filters == self.descriptor.filters:
            return self.result
        return await self._apply(filters=filters)

    async def clear_filters(self) -> QueryResult | None:
        return await self._apply(filters=self.filter_builder.clear_all())

    async def set_search(self, term: str) -> QueryResult | None:
        return await self._apply(search_term=term)

    async def set_page_size(self, page_size: int) -> QueryResult | None:
        return await self._apply(page_size=page_size)

    async def go_to_page(self, page: int) -> QueryResult | None:
        pagination = self.pagination
        if pagination is not None:
            page = pagination.clamp(page)
        if page == self.descriptor.page:
            return self.result
        return await self._apply(page=page)

    async def next_page(self) -> QueryResult | None:
        target = self.pagination.next_page() if self.pagination else None
        if target is None:
            return self.result
        return await self._apply(page=target)

    async def previous_page(self) -> QueryResult | None:
        target = self.pagination.previous_page() if self.pagination else None
        if target is None:
            return self.result
        return await self._apply(page=target)

    def _clamp_page(self, result: QueryResult) -> None:
        # A delete can shrink the result below the current page, or empty it.
        target = Pagination.from_result(result).clamp(result.current_page)
        if target != result.current_page:
            self.controller.apply_update(page=target)

    # ------------------------------------------------------------------
    # Inline editing
    # ------------------------------------------------------------------

    def start_edit(self, row: Mapping[str, Any], field_name: str) -> bool:
        return self.editor.start(row, field_name)

    def set_edit_value(self, value: str) -> None:
        self.editor.set_pending(value)

    def cancel_edit(self) -> None:
        self.editor.cancel()

    async def commit_edit(self) -> bool:
        return await self.editor.commit()

    async def blur_edit(self) -> bool:
        return await self.editor.blur()

    def dismiss_edit_error(self) -> None:
        self.editor.dismiss_error()

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    async def delete_matching(self) -> int | None:
        """Delete every row matching the current descriptor, then re-fetch.

        Returns the number of deleted rows, or ``None`` on failure (the
        failure is left in :attr:`message`).
        """
        try:
            deleted = await self.service.delete_by_query(self.session_id, self.descriptor)
        except RemoteExecutionError as exc:
            self.message = exc.display_message(DELETE_FAILED_MESSAGE)
            return None
        self.message = f"Deleted {deleted:,} record(s)"
        await self.refresh()
        return deleted

    async def export(self) -> ExportInfo | None:
        try:
            info = await self.service.export_table(self.session_id)
        except RemoteExecutionError as exc:
            self.message = exc.display_message(EXPORT_FAILED_MESSAGE)
            return None
        self.message = f"Exported to {info.file_path} ({info.format})"
        return info

    async def refresh_metrics(self) -> dict[str, Any]:
        """Poll the engine's metrics.  Failures keep the previous values."""
        try:
            self.metrics = await self.service.get_metrics(self.session_id)
        except RemoteExecutionError as exc:
            logger.debug("Metrics poll failed: %s", exc)
        return self.metrics

    def dismiss_message(self) -> None:
        self.message = ""
