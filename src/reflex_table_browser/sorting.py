"""Per-column sort cycling with cross-column priorities.

Clicking a column header cycles that column through
``unset -> ASC -> DESC -> unset`` without touching any other column.
Several columns can be sorted at once; ``priority`` decides precedence,
lowest number first.
"""

import logging
from collections.abc import Iterable, Sequence

from reflex_table_browser.models import ColumnSchema, SortClause, SortDirection

logger = logging.getLogger(__name__)


def toggle_sort(
    sorts: Sequence[SortClause],
    column: str,
) -> tuple[SortClause, ...]:
    """Advance *column* one step through its sort cycle.

    * unset -> ASC, appended with ``priority = len(sorts) + 1``
    * ASC -> DESC, in place with the same priority
    * DESC -> removed

    Priorities are compacted to ``1..n`` after a removal, keeping the
    remaining clauses in their existing order.  The engine orders by
    priority value, so the ordering stays derivable from priorities alone
    and a re-added column can never share a priority with another clause.

    Args:
        sorts: The current sort sequence, in priority order.
        column: The column whose header was clicked.

    Returns:
        A new sort sequence; *sorts* is not modified.
    """
    existing = next((s for s in sorts if s.column == column), None)

    if existing is None:
        return (
            *sorts,
            SortClause(column=column, direction=SortDirection.ASC, priority=len(sorts) + 1),
        )

    if existing.direction == SortDirection.ASC:
        return tuple(
            s.model_copy(update={"direction": SortDirection.DESC}) if s.column == column else s
            for s in sorts
        )

    remaining = [s for s in sorts if s.column != column]
    return _compact_priorities(remaining)


def _compact_priorities(sorts: Iterable[SortClause]) -> tuple[SortClause, ...]:
    ordered = sorted(sorts, key=lambda s: s.priority)
    return tuple(
        s if s.priority == i else s.model_copy(update={"priority": i})
        for i, s in enumerate(ordered, start=1)
    )


def sort_direction(sorts: Sequence[SortClause], column: str) -> SortDirection | None:
    """Return the direction *column* is sorted in, or ``None``."""
    for s in sorts:
        if s.column == column:
            return s.direction
    return None


def sort_indicator(sorts: Sequence[SortClause], column: str) -> str:
    """Header suffix for *column*: ``" ↑"``, ``" ↓"`` or ``""``."""
    direction = sort_direction(sorts, column)
    if direction == SortDirection.ASC:
        return " ↑"
    if direction == SortDirection.DESC:
        return " ↓"
    return ""


class SortCycleManager:
    """Sort cycling restricted to the columns the schema marks sortable."""

    def __init__(self, columns: Iterable[ColumnSchema] = ()) -> None:
        self.sortable_columns: tuple[str, ...] = tuple(c.name for c in columns if c.sortable)

    def can_sort(self, column: str) -> bool:
        return column in self.sortable_columns

    def toggle(self, sorts: Sequence[SortClause], column: str) -> tuple[SortClause, ...]:
        """Like :func:`toggle_sort`, but a no-op for unsortable columns."""
        if not self.can_sort(column):
            logger.debug("Ignoring sort toggle on unsortable column %r", column)
            return tuple(sorts)
        return toggle_sort(sorts, column)
