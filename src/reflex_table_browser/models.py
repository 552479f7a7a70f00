"""Immutable models for query descriptors, results and schema.

All models are frozen pydantic models.  Python attributes are snake_case;
the JSON form uses the camelCase keys spoken by the remote engine, so
``descriptor.model_dump(by_alias=True)`` is a valid request body.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_PAGE_SIZE: int = 100


class _Frozen(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class FilterOperation(str, Enum):
    """Comparison applied by a filter clause."""

    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    CONTAINS = "CONTAINS"
    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"
    GREATER_THAN = "GREATER_THAN"
    GREATER_THAN_OR_EQUAL = "GREATER_THAN_OR_EQUAL"
    LESS_THAN = "LESS_THAN"
    LESS_THAN_OR_EQUAL = "LESS_THAN_OR_EQUAL"
    IS_NULL = "IS_NULL"
    IS_NOT_NULL = "IS_NOT_NULL"

    @property
    def takes_value(self) -> bool:
        """``False`` for the null checks, which carry no values."""
        return self not in (FilterOperation.IS_NULL, FilterOperation.IS_NOT_NULL)

    @property
    def label(self) -> str:
        """Human-friendly name, e.g. ``"Greater Than or Equal"``."""
        return _OPERATION_LABELS[self]


_OPERATION_LABELS: dict[FilterOperation, str] = {
    FilterOperation.EQUALS: "Equals",
    FilterOperation.NOT_EQUALS: "Not Equals",
    FilterOperation.CONTAINS: "Contains",
    FilterOperation.STARTS_WITH: "Starts With",
    FilterOperation.ENDS_WITH: "Ends With",
    FilterOperation.GREATER_THAN: "Greater Than",
    FilterOperation.GREATER_THAN_OR_EQUAL: "Greater Than or Equal",
    FilterOperation.LESS_THAN: "Less Than",
    FilterOperation.LESS_THAN_OR_EQUAL: "Less Than or Equal",
    FilterOperation.IS_NULL: "Is Null",
    FilterOperation.IS_NOT_NULL: "Is Not Null",
}


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class EditStatus(str, Enum):
    """States of the inline cell editor."""

    IDLE = "Idle"
    EDITING = "Editing"
    SAVING = "Saving"
    FAILED = "Failed"


class FilterClause(_Frozen):
    """One filter condition.

    ``values`` is empty exactly when the operation is a null check.
    ``logical_operator`` joins this clause to the clauses before it.
    """

    column: str
    operation: FilterOperation
    values: tuple[str, ...] = ()
    logical_operator: LogicalOperator = LogicalOperator.AND

    @model_validator(mode="after")
    def _check_values(self) -> "FilterClause":
        if self.operation.takes_value and not self.values:
            raise ValueError(f"{self.operation.value} requires at least one value")
        if not self.operation.takes_value and self.values:
            raise ValueError(f"{self.operation.value} takes no values")
        return self


class SortClause(_Frozen):
    column: str
    direction: SortDirection = SortDirection.ASC
    priority: int = Field(ge=1)


class QueryDescriptor(_Frozen):
    """Snapshot of every query parameter sent to the remote engine.

    Descriptors compare by value; the executor relies on this to tell a
    current response from a stale one.
    """

    filters: tuple[FilterClause, ...] = ()
    sorts: tuple[SortClause, ...] = ()
    search_term: str = ""
    page: int = Field(default=0, ge=0)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)

    def to_request(self, session_id: str) -> dict[str, Any]:
        """Return the JSON body for the engine's query and delete endpoints."""
        return {
            "sessionId": session_id,
            **self.model_dump(mode="json", by_alias=True),
        }


class QueryResult(_Frozen):
    """One page of rows plus the totals reported by the engine."""

    rows: tuple[dict[str, Any], ...] = Field(default=(), alias="data")
    total_elements: int = Field(default=0, ge=0)
    total_pages: int = Field(default=0, ge=0)
    current_page: int = 0
    page_size: int = DEFAULT_PAGE_SIZE
    implementation_label: str = Field(default="", alias="implementation")
    query_time_ms: float = 0


class ColumnSchema(_Frozen):
    """Column metadata reported by the engine's schema endpoint."""

    name: str
    type: str = "STRING"
    sortable: bool = True
    filterable: bool = True
    searchable: bool = True
    width: int | None = None


class SessionStatus(_Frozen):
    has_data: bool = False
    implementation: str = ""
    column_count: int = 0


class ExportInfo(_Frozen):
    file_name: str
    file_path: str
    format: str
    implementation: str = ""
    message: str = ""


class CellEditSession(_Frozen):
    """The single in-progress cell edit.

    Sessions are replaced, never mutated; ``message`` carries the
    validation or server error shown next to the cell.
    """

    record_id: str
    field_name: str
    original_value: str
    pending_value: str
    status: EditStatus = EditStatus.EDITING
    message: str = ""
