"""Page bounds derived from the totals the engine reports."""

import math

from reflex_table_browser.models import QueryResult


class Pagination:
    """Navigation bounds for one query result.

    ``next_page()`` and ``previous_page()`` return the page to request, or
    ``None`` when the move would leave ``[0, total_pages - 1]`` (the UI
    shows the button disabled).
    """

    def __init__(self, total_elements: int, page_size: int, current_page: int = 0) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.total_elements = max(total_elements, 0)
        self.page_size = page_size
        self.current_page = max(current_page, 0)

    @classmethod
    def from_result(cls, result: QueryResult) -> "Pagination":
        return cls(result.total_elements, result.page_size, result.current_page)

    @property
    def total_pages(self) -> int:
        if self.total_elements == 0:
            return 0
        return math.ceil(self.total_elements / self.page_size)

    @property
    def row_range(self) -> tuple[int, int]:
        """1-based ``(first, last)`` rows shown on the current page."""
        if self.total_elements == 0:
            return (0, 0)
        first = self.current_page * self.page_size + 1
        last = min((self.current_page + 1) * self.page_size, self.total_elements)
        return (first, last)

    @property
    def has_previous(self) -> bool:
        return self.current_page > 0

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages - 1

    def next_page(self) -> int | None:
        return self.current_page + 1 if self.has_next else None

    def previous_page(self) -> int | None:
        return self.current_page - 1 if self.has_previous else None

    def clamp(self, page: int) -> int:
        """Return the nearest valid page for *page*."""
        return min(max(page, 0), max(self.total_pages - 1, 0))

    @property
    def summary(self) -> str:
        first, last = self.row_range
        return f"Showing {first:,} to {last:,} of {self.total_elements:,} entries"

    @property
    def page_label(self) -> str:
        return f"Page {self.current_page + 1:,} of {self.total_pages:,}"
