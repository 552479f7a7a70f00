"""Filter clause validation and assembly."""

import logging
from collections.abc import Iterable, Sequence

from reflex_table_browser.models import (
    ColumnSchema,
    FilterClause,
    FilterOperation,
    LogicalOperator,
)

logger = logging.getLogger(__name__)


class FilterBuilder:
    """Builds the filter sequence of a query descriptor.

    Only columns the schema marks ``filterable`` may be filtered on.  An
    invalid submission is never an error: :meth:`rejection_reason` lets the
    UI disable the "Add Filter" action, and :meth:`add_filter` simply
    returns the filters unchanged.

    Args:
        columns: The table schema as reported by the engine.
    """

    def __init__(self, columns: Iterable[ColumnSchema] = ()) -> None:
        self.available_columns: tuple[str, ...] = tuple(
            c.name for c in columns if c.filterable
        )

    def rejection_reason(
        self,
        column: str,
        operation: FilterOperation,
        value: str = "",
    ) -> str | None:
        """Return why a filter cannot be added, or ``None`` if it can."""
        if not column:
            return "Select a column"
        if column not in self.available_columns:
            return f"Column {column!r} cannot be filtered"
        if operation.takes_value and not value:
            return "Enter a value"
        return None

    def can_add(
        self,
        column: str,
        operation: FilterOperation,
        value: str = "",
    ) -> bool:
        return self.rejection_reason(column, operation, value) is None

    def add_filter(
        self,
        filters: Sequence[FilterClause],
        column: str,
        operation: FilterOperation,
        value: str = "",
        logical_operator: LogicalOperator = LogicalOperator.AND,
    ) -> tuple[FilterClause, ...]:
        """Append a clause built from the filter form.

        Returns *filters* unchanged when the submission is rejected.
        Null checks ignore *value* and carry no values.
        """
        reason = self.rejection_reason(column, operation, value)
        if reason is not None:
            logger.debug("Filter rejected (%s): %s %s %r", reason, column, operation.value, value)
            return tuple(filters)

        clause = FilterClause(
            column=column,
            operation=operation,
            values=(value,) if operation.takes_value else (),
            logical_operator=logical_operator,
        )
        return (*filters, clause)

    @staticmethod
    def remove_filter(
        filters: Sequence[FilterClause],
        index: int,
    ) -> tuple[FilterClause, ...]:
        """Drop the clause at *index*; other clauses keep their order."""
        if not 0 <= index < len(filters):
            return tuple(filters)
        return tuple(f for i, f in enumerate(filters) if i != index)

    @staticmethod
    def clear_all() -> tuple[FilterClause, ...]:
        return ()


def describe_filter(clause: FilterClause) -> str:
    """One-line text for the active filter list, e.g. ``age greater than "30"``."""
    op_text = clause.operation.label.lower()
    if not clause.values:
        return f"{clause.column} {op_text}"
    values = ", ".join(f'"{v}"' for v in clause.values)
    return f"{clause.column} {op_text} {values}"
