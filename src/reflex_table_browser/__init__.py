"""reflex-table-browser -- browse a table held by a remote query engine from Reflex.

The browser owns no data: every filter, sort, search and page change
becomes an immutable :class:`QueryDescriptor` that the remote engine
executes, and only the response for the current descriptor is shown.

Install the package and point it at an engine::

    pip install reflex-table-browser
    TABLE_BROWSER_API_URL=http://engine:8080/api/v1 reflex-table-browser browse

For development without an engine, ``browse --local data.parquet`` serves
a file through the in-process polars engine.
"""

from reflex_table_browser.browser import TableBrowser
from reflex_table_browser.cell_editor import InlineCellEditor, resolve_record_id, validate_edit_value
from reflex_table_browser.config import BrowserSettings, get_settings
from reflex_table_browser.errors import RemoteExecutionError, TableBrowserError, ValidationError
from reflex_table_browser.executor import RemoteQueryExecutor
from reflex_table_browser.filters import FilterBuilder, describe_filter
from reflex_table_browser.local_engine import LocalQueryService, scan_file
from reflex_table_browser.metrics import categorize_metrics, format_metric, metric_label
from reflex_table_browser.models import (
    CellEditSession,
    ColumnSchema,
    EditStatus,
    ExportInfo,
    FilterClause,
    FilterOperation,
    LogicalOperator,
    QueryDescriptor,
    QueryResult,
    SessionStatus,
    SortClause,
    SortDirection,
)
from reflex_table_browser.pagination import Pagination
from reflex_table_browser.query_state import QueryStateController
from reflex_table_browser.service import HttpQueryService, QueryService
from reflex_table_browser.sorting import SortCycleManager, sort_direction, sort_indicator, toggle_sort
from reflex_table_browser.table_grid import (
    TableBrowserMixin,
    configure_service,
    table_browser,
    table_browser_controls,
    table_browser_filters,
    table_browser_metrics,
    table_browser_pagination,
)
