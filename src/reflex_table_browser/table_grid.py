"""Reflex state mixin and UI helpers for browsing a remote table.

Users inherit from :class:`TableBrowserMixin` **and** ``rx.State``, run
:meth:`~TableBrowserMixin.load_table_browser` on page load, and render
with :func:`table_browser`.

``TableBrowserMixin`` is a Reflex **state mixin** (``mixin=True``): every
subclass gets its own independent set of ``tb_*`` reactive variables.

Typical usage::

    import reflex as rx
    from reflex_table_browser import TableBrowserMixin, table_browser

    class BrowserState(TableBrowserMixin, rx.State):
        pass

    def index():
        return table_browser(BrowserState)

    app = rx.App()
    app.add_page(
        index,
        on_load=[BrowserState.load_table_browser, BrowserState.poll_tb_metrics],
    )
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import reflex as rx

from reflex_table_browser.browser import TableBrowser
from reflex_table_browser.cell_editor import resolve_record_id
from reflex_table_browser.config import get_settings
from reflex_table_browser.filters import describe_filter
from reflex_table_browser.metrics import CATEGORY_TITLES, categorize_metrics
from reflex_table_browser.models import (
    DEFAULT_PAGE_SIZE,
    EditStatus,
    FilterOperation,
    LogicalOperator,
)
from reflex_table_browser.service import HttpQueryService, QueryService
from reflex_table_browser.sorting import sort_indicator

logger = logging.getLogger(__name__)

RECORD_KEY = "__record_id__"


# ---------------------------------------------------------------------------
# Module-level browser registry
# ---------------------------------------------------------------------------

ServiceFactory = Callable[[], QueryService]


def _default_service() -> QueryService:
    settings = get_settings()
    return HttpQueryService(settings.api_url, timeout=settings.request_timeout)


_service_factory: ServiceFactory = _default_service
_shared_service: QueryService | None = None
_browser_registry: dict[str, TableBrowser] = {}
_last_seen: dict[str, float] = {}


def configure_service(factory: ServiceFactory) -> None:
    """Use *factory* to build the query service (e.g. a local polars engine).

    Must be called before the first browser is created.
    """
    global _service_factory, _shared_service
    _service_factory = factory
    _shared_service = None
    _browser_registry.clear()
    logger.info("Query service factory set to %s", getattr(factory, "__name__", factory))


def _get_service() -> QueryService:
    global _shared_service
    if _shared_service is None:
        _shared_service = _service_factory()
    return _shared_service


def _get_browser(key: str) -> TableBrowser:
    """Return (or create) the browser for *key*.

    ``TableBrowser`` holds live objects (tasks, clients) that cannot be
    serialised into Reflex state, so it lives here keyed by state class
    and client token.
    """
    _last_seen[key] = time.monotonic()
    if key not in _browser_registry:
        settings = get_settings()
        _browser_registry[key] = TableBrowser(
            _get_service(),
            session_id=settings.session_id,
            page_size=settings.page_size,
        )
    return _browser_registry[key]


# One metrics poller per client: starting a poller supersedes the previous
# one.  A poller stops once its generation is stale, its browser is gone, or
# the client has sent no event for ``metrics_idle_timeout`` seconds.
_poll_generations: dict[str, int] = {}


def _start_polling(key: str) -> int:
    generation = _poll_generations.get(key, 0) + 1
    _poll_generations[key] = generation
    return generation


def _stop_polling(key: str) -> None:
    if key in _poll_generations:
        _poll_generations[key] += 1


def _polling_current(key: str, generation: int) -> bool:
    if key not in _browser_registry or _poll_generations.get(key) != generation:
        return False
    idle = time.monotonic() - _last_seen.get(key, 0.0)
    return idle < get_settings().metrics_idle_timeout


# ---------------------------------------------------------------------------
# TableBrowserMixin
# ---------------------------------------------------------------------------

class TableBrowserMixin(rx.State, mixin=True):
    """Reflex State mixin exposing a :class:`TableBrowser` to the frontend.

    All state variable names are prefixed with ``tb_`` to avoid
    collisions when composed with other state.  Handlers that talk to the
    engine are generators, so the loading flag reaches the frontend
    before the request is issued.
    """

    # -- Grid --
    tb_rows: list[dict[str, Any]] = []
    tb_columns: list[dict[str, Any]] = []
    tb_loading: bool = False
    tb_loaded: bool = False
    tb_stats: str = ""
    tb_error: str = ""
    tb_message: str = ""

    # -- Query controls --
    tb_search: str = ""
    tb_page_size: str = str(DEFAULT_PAGE_SIZE)
    tb_page_size_options: list[str] = []
    tb_range_label: str = ""
    tb_page_label: str = ""
    tb_has_next: bool = False
    tb_has_previous: bool = False

    # -- Filter form --
    tb_filters: list[dict[str, str]] = []
    tb_filter_columns: list[str] = []
    tb_filter_operations: list[str] = [op.value for op in FilterOperation]
    tb_new_filter_column: str = ""
    tb_new_filter_operation: str = FilterOperation.EQUALS.value
    tb_new_filter_value: str = ""
    tb_new_filter_logic: str = LogicalOperator.AND.value
    tb_can_add_filter: bool = False
    tb_filters_expanded: bool = False

    # -- Inline editing --
    tb_edit_record_id: str = ""
    tb_edit_field: str = ""
    tb_edit_value: str = ""
    tb_edit_status: str = EditStatus.IDLE.value
    tb_edit_message: str = ""

    # -- Metrics --
    tb_metrics: list[dict[str, str]] = []

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _tb_key(self) -> str:
        return f"{type(self).__name__}:{self.router.session.client_token}"

    def _tb_browser(self) -> TableBrowser:
        return _get_browser(self._tb_key())

    def _tb_sync(self, browser: TableBrowser) -> None:
        """Copy the browser's state into the reactive vars."""
        descriptor = browser.descriptor
        result = browser.result

        if browser.columns:
            names = [c.name for c in browser.columns]
            sortable = {c.name for c in browser.columns if c.sortable}
        elif result is not None and result.rows:
            names = list(result.rows[0].keys())
            sortable = set()
        else:
            names, sortable = [], set()
        self.tb_columns = [
            {
                "field": name,
                "header": name + sort_indicator(descriptor.sorts, name),
                "sortable": name in sortable,
            }
            for name in names
            if not name.startswith("_")
        ]

        if result is not None:
            self.tb_rows = [
                {**row, RECORD_KEY: resolve_record_id(row) or ""} for row in result.rows
            ]
            self.tb_stats = (
                f"Implementation: {result.implementation_label} | "
                f"Query Time: {result.query_time_ms}ms | "
                f"Total Rows: {result.total_elements:,}"
            )
        pagination = browser.pagination
        if pagination is not None:
            self.tb_range_label = pagination.summary
            self.tb_page_label = pagination.page_label
            self.tb_has_next = pagination.has_next
            self.tb_has_previous = pagination.has_previous

        self.tb_search = descriptor.search_term
        self.tb_page_size = str(descriptor.page_size)
        options = sorted({*get_settings().page_size_options, descriptor.page_size})
        self.tb_page_size_options = [str(n) for n in options]
        self.tb_filters = [
            {"index": str(i), "text": describe_filter(f)} for i, f in enumerate(descriptor.filters)
        ]
        self.tb_filter_columns = list(browser.filter_builder.available_columns)
        self.tb_error = browser.error.display_message("Error loading data") if browser.error else ""
        self.tb_message = browser.message

        session = browser.editor.session
        self.tb_edit_record_id = session.record_id if session else ""
        self.tb_edit_field = session.field_name if session else ""
        self.tb_edit_value = session.pending_value if session else ""
        self.tb_edit_status = browser.editor.status.value
        self.tb_edit_message = session.message if session else ""

        self._tb_update_can_add(browser)

    def _tb_update_can_add(self, browser: TableBrowser) -> None:
        self.tb_can_add_filter = browser.can_add_filter(
            self.tb_new_filter_column,
            FilterOperation(self.tb_new_filter_operation),
            self.tb_new_filter_value,
        )

    def _tb_sync_metrics(self, browser: TableBrowser) -> None:
        self.tb_metrics = [
            {**item, "category": CATEGORY_TITLES.get(category, category)}
            for category, items in categorize_metrics(browser.metrics).items()
            for item in items
        ]

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_table_browser(self):
        """Check the session, fetch the schema and the first page."""
        self.tb_loading = True
        yield

        browser = self._tb_browser()
        self.tb_loaded = await browser.load()
        self._tb_sync(browser)
        self.tb_loading = False

    async def handle_tb_retry(self):
        self.tb_loading = True
        yield
        browser = self._tb_browser()
        await browser.retry()
        self._tb_sync(browser)
        self.tb_loading = False

    @rx.event(background=True)
    async def poll_tb_metrics(self):
        """Refresh the metrics panel every ``metrics_poll_interval`` seconds.

        A later call for the same client replaces this poller, and
        :meth:`stop_tb_metrics` ends it.
        """
        interval = get_settings().metrics_poll_interval
        async with self:
            key = self._tb_key()
            browser = self._tb_browser()
        generation = _start_polling(key)
        logger.debug("Metrics poller %d started for %s", generation, key)
        while _polling_current(key, generation):
            await browser.refresh_metrics()
            if not _polling_current(key, generation):
                break
            async with self:
                self._tb_sync_metrics(browser)
            await asyncio.sleep(interval)
        logger.debug("Metrics poller %d stopped for %s", generation, key)

    def stop_tb_metrics(self) -> None:
        _stop_polling(self._tb_key())

    # ------------------------------------------------------------------
    # Sorting, search, pagination
    # ------------------------------------------------------------------

    async def handle_tb_sort(self, column: str):
        self.tb_loading = True
        yield
        browser = self._tb_browser()
        await browser.toggle_sort(column)
        self._tb_sync(browser)
        self.tb_loading = False

    async def handle_tb_search(self, term: str):
        self.tb_search = term
        self.tb_loading = True
        yield
        browser = self._tb_browser()
        await browser.set_search(term)
        self._tb_sync(browser)
        self.tb_loading = False

    async def handle_tb_page_size(self, value: str):
        self.tb_loading = True
        yield
        browser = self._tb_browser()
        await browser.set_page_size(int(value))
        self._tb_sync(browser)
        self.tb_loading = False

    async def handle_tb_next_page(self):
        if not self.tb_has_next:
            return
        self.tb_loading = True
        yield
        browser = self._tb_browser()
        await browser.next_page()
        self._tb_sync(browser)
        self.tb_loading = False

    async def handle_tb_previous_page(self):
        if not self.tb_has_previous:
            return
        self.tb_loading = True
        yield
        browser = self._tb_browser()
        await browser.previous_page()
        self._tb_sync(browser)
        self.tb_loading = False

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def toggle_tb_filters(self) -> None:
        self.tb_filters_expanded = not self.tb_filters_expanded

    def handle_tb_filter_column(self, column: str) -> None:
        self.tb_new_filter_column = column
        self._tb_update_can_add(self._tb_browser())

    def handle_tb_filter_operation(self, operation: str) -> None:
        self.tb_new_filter_operation = operation
        if not FilterOperation(operation).takes_value:
            self.tb_new_filter_value = ""
        self._tb_update_can_add(self._tb_browser())

    def handle_tb_filter_value(self, value: str) -> None:
        self.tb_new_filter_value = value
        self._tb_update_can_add(self._tb_browser())

    def handle_tb_filter_logic(self, logic: str) -> None:
        self.tb_new_filter_logic = logic

    async def handle_tb_add_filter(self):
        if not self.tb_can_add_filter:
            return
        self.tb_loading = True
        yield
        browser = self._tb_browser()
        added = await browser.add_filter(
            self.tb_new_filter_column,
            FilterOperation(self.tb_new_filter_operation),
            self.tb_new_filter_value,
            LogicalOperator(self.tb_new_filter_logic),
        )
        if added:
            self.tb_new_filter_column = ""
            self.tb_new_filter_operation = FilterOperation.EQUALS.value
            self.tb_new_filter_value = ""
            self.tb_new_filter_logic = LogicalOperator.AND.value
        self._tb_sync(browser)
        self.tb_loading = False

    async def handle_tb_remove_filter(self, index: str):
        self.tb_loading = True
        yield
        browser = self._tb_browser()
        await browser.remove_filter(int(index))
        self._tb_sync(browser)
        self.tb_loading = False

    async def handle_tb_clear_filters(self):
        self.tb_loading = True
        yield
        browser = self._tb_browser()
        await browser.clear_filters()
        self._tb_sync(browser)
        self.tb_loading = False

    # ------------------------------------------------------------------
    # Inline editing
    # ------------------------------------------------------------------

    def handle_tb_start_edit(self, row: dict[str, Any], field: str) -> None:
        browser = self._tb_browser()
        if not browser.start_edit(row, field):
            self.tb_message = "This row has no identifier and cannot be edited"
        self._tb_sync(browser)

    def handle_tb_edit_change(self, value: str) -> None:
        browser = self._tb_browser()
        browser.set_edit_value(value)
        self.tb_edit_value = value
        self.tb_edit_status = browser.editor.status.value
        self.tb_edit_message = ""

    async def handle_tb_edit_key(self, key: str):
        if key == "Enter":
            self.tb_edit_status = EditStatus.SAVING.value
            yield
            browser = self._tb_browser()
            await browser.commit_edit()
            self._tb_sync(browser)
        elif key == "Escape":
            browser = self._tb_browser()
            browser.cancel_edit()
            self._tb_sync(browser)

    async def handle_tb_blur_edit(self, _value: str = ""):
        browser = self._tb_browser()
        await browser.blur_edit()
        self._tb_sync(browser)

    def handle_tb_dismiss_edit_error(self) -> None:
        browser = self._tb_browser()
        browser.dismiss_edit_error()
        self._tb_sync(browser)

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    async def handle_tb_delete(self):
        self.tb_loading = True
        yield
        browser = self._tb_browser()
        await browser.delete_matching()
        self._tb_sync(browser)
        self.tb_loading = False

    async def handle_tb_export(self):
        self.tb_loading = True
        yield
        browser = self._tb_browser()
        await browser.export()
        self._tb_sync(browser)
        self.tb_loading = False

    def dismiss_tb_message(self) -> None:
        browser = self._tb_browser()
        browser.dismiss_message()
        self.tb_message = ""


# ---------------------------------------------------------------------------
# UI helpers
# ---------------------------------------------------------------------------

def table_browser_controls(state_cls: type) -> rx.Component:
    """Search box, page-size selector and the export / delete buttons."""
    return rx.hstack(
        rx.input(
            value=state_cls.tb_search,
            on_change=state_cls.handle_tb_search,
            placeholder="Search across all columns...",
            width="300px",
        ),
        rx.text("Page size", size="2"),
        rx.select(
            state_cls.tb_page_size_options,
            value=state_cls.tb_page_size,
            on_change=state_cls.handle_tb_page_size,
        ),
        rx.spacer(),
        rx.button("Export Table", on_click=state_cls.handle_tb_export, color_scheme="green"),
        rx.alert_dialog.root(
            rx.alert_dialog.trigger(rx.button("Delete Current Query", color_scheme="red")),
            rx.alert_dialog.content(
                rx.alert_dialog.title("Delete matching records"),
                rx.alert_dialog.description(
                    "Every record matching the current filters and search will be deleted."
                ),
                rx.hstack(
                    rx.alert_dialog.cancel(rx.button("Cancel", variant="soft")),
                    rx.alert_dialog.action(
                        rx.button("Delete", color_scheme="red", on_click=state_cls.handle_tb_delete)
                    ),
                    spacing="3",
                    justify="end",
                ),
            ),
        ),
        align="center",
        spacing="3",
        width="100%",
        margin_bottom="0.5em",
    )


def table_browser_filters(state_cls: type) -> rx.Component:
    """Collapsible panel with the active filters and the add-filter form."""
    active = rx.vstack(
        rx.foreach(
            state_cls.tb_filters,
            lambda f: rx.hstack(
                rx.text(f["text"], size="1"),
                rx.button(
                    "Remove",
                    size="1",
                    variant="outline",
                    on_click=state_cls.handle_tb_remove_filter(f["index"]),
                ),
                align="center",
            ),
        ),
        rx.cond(
            state_cls.tb_filters.length() > 0,  # type: ignore[union-attr]
            rx.button("Clear All Filters", size="1", on_click=state_cls.handle_tb_clear_filters),
        ),
        spacing="1",
    )
    form = rx.hstack(
        rx.select(
            state_cls.tb_filter_columns,
            value=state_cls.tb_new_filter_column,
            on_change=state_cls.handle_tb_filter_column,
            placeholder="Select column...",
        ),
        rx.select(
            state_cls.tb_filter_operations,
            value=state_cls.tb_new_filter_operation,
            on_change=state_cls.handle_tb_filter_operation,
        ),
        rx.input(
            value=state_cls.tb_new_filter_value,
            on_change=state_cls.handle_tb_filter_value,
            placeholder="Enter value...",
            disabled=(state_cls.tb_new_filter_operation == FilterOperation.IS_NULL.value)
            | (state_cls.tb_new_filter_operation == FilterOperation.IS_NOT_NULL.value),
        ),
        rx.select(
            [op.value for op in LogicalOperator],
            value=state_cls.tb_new_filter_logic,
            on_change=state_cls.handle_tb_filter_logic,
        ),
        rx.button(
            "Add Filter",
            on_click=state_cls.handle_tb_add_filter,
            disabled=~state_cls.tb_can_add_filter,
        ),
        align="end",
        spacing="2",
    )
    return rx.cond(
        state_cls.tb_filter_columns.length() > 0,  # type: ignore[union-attr]
        rx.box(
            rx.hstack(
                rx.button(
                    rx.cond(state_cls.tb_filters_expanded, "Hide Filters", "Show Filters"),
                    size="1",
                    on_click=state_cls.toggle_tb_filters,
                ),
                rx.cond(
                    state_cls.tb_filters.length() > 0,  # type: ignore[union-attr]
                    rx.text(
                        state_cls.tb_filters.length().to(str),  # type: ignore[union-attr]
                        " filter(s) active",
                        size="1",
                        color="var(--gray-9)",
                    ),
                ),
                align="center",
            ),
            rx.cond(state_cls.tb_filters_expanded, rx.vstack(active, form, spacing="3")),
            padding="0.5em",
            border="1px solid var(--gray-a5)",
            border_radius="4px",
            margin_bottom="1em",
        ),
    )


def _edit_cell(state_cls: type) -> rx.Component:
    return rx.vstack(
        rx.input(
            value=state_cls.tb_edit_value,
            on_change=state_cls.handle_tb_edit_change,
            on_key_down=state_cls.handle_tb_edit_key,
            on_blur=state_cls.handle_tb_blur_edit,
            disabled=state_cls.tb_edit_status == EditStatus.SAVING.value,
            auto_focus=True,
            size="1",
        ),
        rx.cond(
            state_cls.tb_edit_message != "",
            rx.text(state_cls.tb_edit_message, size="1", color="var(--red-11)"),
        ),
        spacing="1",
    )


def _row(state_cls: type, row: rx.Var) -> rx.Component:
    return rx.table.row(
        rx.foreach(
            state_cls.tb_columns,
            lambda col: rx.table.cell(
                rx.cond(
                    (state_cls.tb_edit_record_id == row[RECORD_KEY])
                    & (state_cls.tb_edit_field == col["field"]),
                    _edit_cell(state_cls),
                    rx.text(row[col["field"]].to(str), size="2"),
                ),
                on_double_click=state_cls.handle_tb_start_edit(row, col["field"]),
            ),
        ),
    )


def table_browser_pagination(state_cls: type) -> rx.Component:
    """Row range plus Previous / Next buttons."""
    return rx.hstack(
        rx.text(state_cls.tb_range_label, size="2"),
        rx.spacer(),
        rx.button(
            "Previous",
            on_click=state_cls.handle_tb_previous_page,
            disabled=~state_cls.tb_has_previous,
        ),
        rx.text(state_cls.tb_page_label, size="2"),
        rx.button(
            "Next",
            on_click=state_cls.handle_tb_next_page,
            disabled=~state_cls.tb_has_next,
        ),
        align="center",
        spacing="3",
        width="100%",
        margin_top="0.5em",
    )


def table_browser_metrics(state_cls: type) -> rx.Component:
    """Polled engine metrics, one card per metric."""
    return rx.cond(
        state_cls.tb_metrics.length() > 0,  # type: ignore[union-attr]
        rx.box(
            rx.heading("Performance Metrics", size="4", margin_bottom="0.5em"),
            rx.grid(
                rx.foreach(
                    state_cls.tb_metrics,
                    lambda m: rx.box(
                        rx.text(m["category"], size="1", color="var(--gray-9)"),
                        rx.text(rx.text.strong(m["label"], ": "), m["value"], size="2"),
                        padding="8px",
                        border="1px solid var(--gray-a5)",
                        border_radius="4px",
                    ),
                ),
                columns="4",
                spacing="2",
            ),
            margin_top="1em",
        ),
    )


def table_browser(state_cls: type, *, show_metrics: bool = True) -> rx.Component:
    """Return the complete browser bound to a :class:`TableBrowserMixin` state.

    Args:
        state_cls: The ``rx.State`` subclass that also inherits from
            :class:`TableBrowserMixin`.
        show_metrics: Show the polled metrics panel below the grid.

    Returns:
        A Reflex component.
    """
    error_banner = rx.cond(
        state_cls.tb_error != "",
        rx.callout.root(
            rx.callout.text("Error loading data: ", state_cls.tb_error),
            rx.button("Retry", size="1", on_click=state_cls.handle_tb_retry),
            color_scheme="red",
            margin_bottom="0.5em",
        ),
    )
    message_banner = rx.cond(
        state_cls.tb_message != "",
        rx.callout.root(
            rx.hstack(
                rx.callout.text(state_cls.tb_message),
                rx.spacer(),
                rx.button("Dismiss", size="1", variant="ghost", on_click=state_cls.dismiss_tb_message),
                width="100%",
            ),
            margin_bottom="0.5em",
        ),
    )
    edit_alert = rx.cond(
        state_cls.tb_edit_status == EditStatus.FAILED.value,
        rx.callout.root(
            rx.hstack(
                rx.callout.text("Update failed: ", state_cls.tb_edit_message),
                rx.spacer(),
                rx.button("OK", size="1", on_click=state_cls.handle_tb_dismiss_edit_error),
                width="100%",
            ),
            color_scheme="red",
            margin_bottom="0.5em",
        ),
    )
    grid = rx.table.root(
        rx.table.header(
            rx.table.row(
                rx.foreach(
                    state_cls.tb_columns,
                    lambda col: rx.table.column_header_cell(
                        col["header"],
                        on_click=state_cls.handle_tb_sort(col["field"]),
                        cursor="pointer",
                    ),
                ),
            ),
        ),
        rx.table.body(rx.foreach(state_cls.tb_rows, lambda row: _row(state_cls, row))),
        size="1",
        width="100%",
    )

    children = [
        table_browser_controls(state_cls),
        error_banner,
        message_banner,
        edit_alert,
        table_browser_filters(state_cls),
        rx.cond(
            state_cls.tb_stats != "",
            rx.text(state_cls.tb_stats, size="1", font_family="monospace", margin_bottom="0.5em"),
        ),
        rx.cond(
            state_cls.tb_rows.length() > 0,  # type: ignore[union-attr]
            rx.fragment(grid, table_browser_pagination(state_cls)),
            rx.text(
                rx.cond(state_cls.tb_loading, "Loading data...", "No data available"),
                color="var(--gray-9)",
            ),
        ),
    ]
    if show_metrics:
        children.append(table_browser_metrics(state_cls))
    return rx.box(*children, width="100%", on_unmount=state_cls.stop_tb_metrics)
