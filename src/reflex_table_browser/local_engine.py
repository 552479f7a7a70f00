"""In-process query engine backed by polars.

:class:`LocalQueryService` implements the same :class:`QueryService`
contract as the remote engine, over polars DataFrames held in memory.
It lets the browser run without the remote engine (``reflex-table-browser
browse --local data.parquet``) and gives the test-suite a real engine to
talk to.  The browser itself never filters or sorts rows; it always goes
through a service.

Every query is built lazily: filter -> search -> count -> sort -> slice,
and only the requested page is collected.
"""

import logging
import math
import statistics
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import polars as pl

from reflex_table_browser.errors import RemoteExecutionError
from reflex_table_browser.models import (
    ColumnSchema,
    ExportInfo,
    FilterClause,
    FilterOperation,
    LogicalOperator,
    QueryDescriptor,
    QueryResult,
    SessionStatus,
    SortDirection,
)

logger = logging.getLogger(__name__)

IMPLEMENTATION_LABEL = "Polars"


# ---------------------------------------------------------------------------
# Schema helpers
# ---------------------------------------------------------------------------

def polars_dtype_to_column_type(dtype: pl.DataType) -> str:
    """Map a polars DataType to the engine's column type names."""
    if isinstance(dtype, pl.Boolean):
        return "BOOLEAN"
    if dtype.is_integer():
        return "INTEGER"
    if dtype.is_float() or isinstance(dtype, pl.Decimal):
        return "DOUBLE"
    if isinstance(dtype, pl.Date):
        return "DATE"
    if isinstance(dtype, pl.Datetime):
        return "TIMESTAMP"
    return "STRING"


def build_column_schema(schema: pl.Schema) -> list[ColumnSchema]:
    """Describe every column of *schema*; all columns are sortable,
    filterable, and string columns are searchable."""
    columns: list[ColumnSchema] = []
    for name, dtype in schema.items():
        col_type = polars_dtype_to_column_type(dtype)
        columns.append(
            ColumnSchema(
                name=name,
                type=col_type,
                sortable=True,
                filterable=True,
                searchable=col_type == "STRING",
            )
        )
    return columns


def _dataframe_to_dicts(df: pl.DataFrame) -> list[dict[str, Any]]:
    """Convert a DataFrame to JSON-safe dicts.

    Temporal columns become ISO-8601 strings, List columns comma-joined
    strings and Struct columns their string form.
    """
    exprs: list[pl.Expr] = []
    needs_cast = False
    for name, dtype in df.schema.items():
        if isinstance(dtype, (pl.Date, pl.Datetime, pl.Time, pl.Duration, pl.Struct)):
            exprs.append(pl.col(name).cast(pl.String))
            needs_cast = True
        elif isinstance(dtype, pl.List):
            exprs.append(pl.col(name).cast(pl.List(pl.String)).list.join(","))
            needs_cast = True
        else:
            exprs.append(pl.col(name))
    if not needs_cast:
        return df.to_dicts()
    return df.select(exprs).to_dicts()


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def _coerce_numeric(value: str) -> int | float | None:
    value = value.strip()
    if not value:
        return None
    for conv in (int, float):
        try:
            return conv(value)
        except ValueError:
            continue
    return None


def build_filter_expr(clause: FilterClause, schema: pl.Schema) -> pl.Expr:
    """Translate one filter clause into a polars predicate.

    String matching (contains / starts / ends) is case-insensitive.
    Comparisons are numeric when both the column and the value are
    numeric and fall back to string comparison otherwise.

    Raises:
        RemoteExecutionError: If the column does not exist.
    """
    if clause.column not in schema:
        raise RemoteExecutionError(
            "Query failed", server_message=f"Unknown column: {clause.column}", status_code=400
        )

    col = pl.col(clause.column)
    dtype = schema[clause.column]
    str_col = col.cast(pl.String)
    op = clause.operation

    if op == FilterOperation.IS_NULL:
        return col.is_null()
    if op == FilterOperation.IS_NOT_NULL:
        return col.is_not_null()

    values = list(clause.values)
    first = values[0]
    numbers = [_coerce_numeric(v) for v in values] if dtype.is_numeric() else []
    numeric = bool(numbers) and all(n is not None for n in numbers)
    target: Any = numbers[0] if numeric else first
    operand = col if numeric else str_col

    candidates = numbers if numeric else values
    if op == FilterOperation.EQUALS:
        return pl.any_horizontal([operand == v for v in candidates])
    if op == FilterOperation.NOT_EQUALS:
        return ~pl.any_horizontal([operand == v for v in candidates]) | col.is_null()
    if op == FilterOperation.CONTAINS:
        return str_col.str.to_lowercase().str.contains(first.lower(), literal=True)
    if op == FilterOperation.STARTS_WITH:
        return str_col.str.to_lowercase().str.starts_with(first.lower())
    if op == FilterOperation.ENDS_WITH:
        return str_col.str.to_lowercase().str.ends_with(first.lower())
    if op == FilterOperation.GREATER_THAN:
        return operand > target
    if op == FilterOperation.GREATER_THAN_OR_EQUAL:
        return operand >= target
    if op == FilterOperation.LESS_THAN:
        return operand < target
    if op == FilterOperation.LESS_THAN_OR_EQUAL:
        return operand <= target
    raise ValueError(f"Unhandled filter operation: {op!r}")


def combine_filters(clauses: tuple[FilterClause, ...], schema: pl.Schema) -> pl.Expr | None:
    """Fold clauses left to right, joining each with its own logical operator.

    The first clause's operator has nothing to join and is ignored.
    """
    combined: pl.Expr | None = None
    for clause in clauses:
        expr = build_filter_expr(clause, schema).fill_null(False)
        if combined is None:
            combined = expr
        elif clause.logical_operator == LogicalOperator.OR:
            combined = combined | expr
        else:
            combined = combined & expr
    return combined


def build_search_expr(term: str, columns: list[ColumnSchema]) -> pl.Expr | None:
    """Case-insensitive substring match across searchable columns."""
    term = term.strip().lower()
    searchable = [c.name for c in columns if c.searchable]
    if not term or not searchable:
        return None
    return pl.any_horizontal(
        [
            pl.col(name).cast(pl.String).str.to_lowercase().str.contains(term, literal=True)
            for name in searchable
        ]
    ).fill_null(False)


def build_predicate(
    descriptor: QueryDescriptor,
    schema: pl.Schema,
    columns: list[ColumnSchema],
) -> pl.Expr | None:
    """Filters and search term of *descriptor* as one predicate, or ``None``."""
    parts = [
        expr
        for expr in (
            combine_filters(descriptor.filters, schema),
            build_search_expr(descriptor.search_term, columns),
        )
        if expr is not None
    ]
    if not parts:
        return None
    return pl.all_horizontal(parts)


def apply_sorts(lf: pl.LazyFrame, descriptor: QueryDescriptor) -> pl.LazyFrame:
    """Sort by the descriptor's clauses, lowest priority number first."""
    if not descriptor.sorts:
        return lf
    ordered = sorted(descriptor.sorts, key=lambda s: s.priority)
    return lf.sort(
        by=[s.column for s in ordered],
        descending=[s.direction == SortDirection.DESC for s in ordered],
        nulls_last=False,
        maintain_order=True,
    )


def _parse_cell_value(value: str, dtype: pl.DataType) -> Any:
    if isinstance(dtype, pl.Boolean):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
        raise ValueError(f"not a boolean: {value!r}")
    if dtype.is_integer():
        return int(value)
    if dtype.is_float():
        return float(value)
    # Strict polars parsing raises on malformed input.
    if isinstance(dtype, pl.Date):
        return pl.Series([value.strip()]).str.to_date().item()
    if isinstance(dtype, pl.Datetime):
        return (
            pl.Series([value.strip()])
            .str.to_datetime(time_unit=dtype.time_unit, time_zone=dtype.time_zone)
            .item()
        )
    if isinstance(dtype, pl.Decimal):
        return pl.Series([value.strip()]).cast(dtype).item()
    return value


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

@dataclass
class _SessionTable:
    df: pl.DataFrame
    columns: list[ColumnSchema]
    query_times_ms: list[float] = field(default_factory=list)
    load_time_ms: float = 0.0


class LocalQueryService:
    """:class:`QueryService` over in-memory polars DataFrames.

    Args:
        id_column: Column that identifies records for field updates.
        export_dir: Directory that :meth:`export_table` writes into.
        export_format: ``"ipc"`` (Arrow IPC) or ``"csv"``.
    """

    def __init__(
        self,
        *,
        id_column: str = "id",
        export_dir: Path | str = ".",
        export_format: str = "ipc",
    ) -> None:
        if export_format not in ("ipc", "csv"):
            raise ValueError(f"Unsupported export format: {export_format!r}")
        self.id_column = id_column
        self.export_dir = Path(export_dir)
        self.export_format = export_format
        self._sessions: dict[str, _SessionTable] = {}

    def load(
        self,
        session_id: str,
        frame: pl.DataFrame | pl.LazyFrame,
        columns: list[ColumnSchema] | None = None,
    ) -> None:
        """Register *frame* as the table of *session_id* (replacing any previous one)."""
        t0 = time.perf_counter()
        df = frame.collect() if isinstance(frame, pl.LazyFrame) else frame
        self._sessions[session_id] = _SessionTable(
            df=df,
            columns=columns if columns is not None else build_column_schema(df.schema),
            load_time_ms=(time.perf_counter() - t0) * 1000,
        )
        logger.info("Loaded session %r: %d rows, %d columns", session_id, df.height, df.width)

    def _table(self, session_id: str, action: str) -> _SessionTable:
        table = self._sessions.get(session_id)
        if table is None:
            raise RemoteExecutionError(
                f"{action} failed", server_message=f"Unknown session: {session_id}", status_code=404
            )
        return table

    def _matching(self, table: _SessionTable, descriptor: QueryDescriptor) -> pl.LazyFrame:
        lf = table.df.lazy()
        predicate = build_predicate(descriptor, table.df.schema, table.columns)
        if predicate is not None:
            lf = lf.filter(predicate)
        return lf

    async def execute_query(self, session_id: str, descriptor: QueryDescriptor) -> QueryResult:
        table = self._table(session_id, "Query")
        t0 = time.perf_counter()
        try:
            lf = self._matching(table, descriptor)
            total = lf.select(pl.len()).collect().item()
            offset = descriptor.page * descriptor.page_size
            page_df = apply_sorts(lf, descriptor).slice(offset, descriptor.page_size).collect()
        except pl.exceptions.PolarsError as exc:
            raise RemoteExecutionError("Query failed", server_message=str(exc)) from exc

        elapsed_ms = (time.perf_counter() - t0) * 1000
        table.query_times_ms.append(elapsed_ms)
        return QueryResult(
            rows=tuple(_dataframe_to_dicts(page_df)),
            total_elements=total,
            total_pages=math.ceil(total / descriptor.page_size) if total else 0,
            current_page=descriptor.page,
            page_size=descriptor.page_size,
            implementation_label=IMPLEMENTATION_LABEL,
            query_time_ms=round(elapsed_ms, 2),
        )

    async def get_schema(self, session_id: str) -> list[ColumnSchema]:
        table = self._sessions.get(session_id)
        return list(table.columns) if table is not None else []

    async def update_field(
        self, session_id: str, record_id: str, field_name: str, value: str
    ) -> None:
        table = self._table(session_id, "Update")
        df = table.df
        if field_name not in df.schema or self.id_column not in df.schema:
            raise RemoteExecutionError(
                "Update failed", server_message="Record not found or update failed", status_code=404
            )

        match = pl.col(self.id_column).cast(pl.String) == record_id
        if df.select(match.any()).item() is not True:
            raise RemoteExecutionError(
                "Update failed", server_message="Record not found or update failed", status_code=404
            )

        dtype = df.schema[field_name]
        try:
            parsed = _parse_cell_value(value, dtype)
            updated = df.with_columns(
                pl.when(match)
                .then(pl.lit(parsed, dtype=dtype))
                .otherwise(pl.col(field_name))
                .alias(field_name)
            )
        except (ValueError, pl.exceptions.PolarsError) as exc:
            raise RemoteExecutionError(
                "Update failed",
                server_message=f"Invalid value for {field_name}: {exc}",
                status_code=400,
            ) from exc
        table.df = updated

    async def delete_by_query(self, session_id: str, descriptor: QueryDescriptor) -> int:
        table = self._table(session_id, "Delete")
        predicate = build_predicate(descriptor, table.df.schema, table.columns)
        before = table.df.height
        if predicate is None:
            table.df = table.df.clear()
        else:
            table.df = table.df.filter(~predicate.fill_null(False))
        deleted = before - table.df.height
        logger.info("Deleted %d rows from session %r", deleted, session_id)
        return deleted

    async def export_table(self, session_id: str) -> ExportInfo:
        table = self._table(session_id, "Export")
        ext = ".arrow" if self.export_format == "ipc" else ".csv"
        file_name = f"table_export_{int(time.time() * 1000)}{ext}"
        path = self.export_dir / file_name
        try:
            self.export_dir.mkdir(parents=True, exist_ok=True)
            if self.export_format == "ipc":
                table.df.write_ipc(path)
            else:
                table.df.write_csv(path)
        except OSError as exc:
            raise RemoteExecutionError("Export failed", server_message=str(exc)) from exc
        return ExportInfo(
            file_name=file_name,
            file_path=str(path),
            format="Arrow IPC" if self.export_format == "ipc" else "CSV",
            implementation=IMPLEMENTATION_LABEL,
            message="Table exported successfully",
        )

    async def get_metrics(self, session_id: str) -> dict[str, Any]:
        table = self._sessions.get(session_id)
        if table is None:
            return {}
        metrics: dict[str, Any] = {
            "implementation": IMPLEMENTATION_LABEL,
            "rowCount": table.df.height,
            "loadTimeMs": round(table.load_time_ms, 2),
            "estimatedSizeMB": round(table.df.estimated_size("mb"), 2),
        }
        times = table.query_times_ms
        if times:
            metrics.update(
                {
                    "totalQueries": len(times),
                    "avgQueryTimeMs": round(statistics.fmean(times), 2),
                    "stdDevQueryTimeMs": round(statistics.pstdev(times), 2),
                    "minQueryTimeMs": round(min(times), 2),
                    "maxQueryTimeMs": round(max(times), 2),
                }
            )
        return metrics

    async def get_session_status(self, session_id: str) -> SessionStatus:
        table = self._sessions.get(session_id)
        return SessionStatus(
            has_data=table is not None and bool(table.columns),
            implementation=IMPLEMENTATION_LABEL,
            column_count=len(table.columns) if table is not None else 0,
        )

    async def health(self) -> dict[str, Any]:
        return {
            "status": "UP",
            "implementation": IMPLEMENTATION_LABEL,
            "timestamp": int(time.time() * 1000),
        }


# ---------------------------------------------------------------------------
# File loading
# ---------------------------------------------------------------------------

def scan_file(path: Path | str) -> pl.LazyFrame:
    """Scan a tabular file into a LazyFrame, detecting the format from its extension.

    Supports ``.parquet``/``.pq``, ``.csv``, ``.tsv``, ``.json``,
    ``.ndjson``/``.jsonl`` and ``.ipc``/``.arrow``/``.feather``.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the extension is not recognised.
    """
    path = Path(path).resolve()
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    suffix = path.suffix.lower()
    if suffix in (".parquet", ".pq"):
        return pl.scan_parquet(path)
    if suffix == ".csv":
        return pl.scan_csv(path)
    if suffix == ".tsv":
        return pl.scan_csv(path, separator="\t")
    if suffix == ".json":
        return pl.read_json(path).lazy()
    if suffix in (".ndjson", ".jsonl"):
        return pl.scan_ndjson(path)
    if suffix in (".ipc", ".arrow", ".feather"):
        return pl.scan_ipc(path)
    raise ValueError(f"Unsupported file format: {suffix!r}")
