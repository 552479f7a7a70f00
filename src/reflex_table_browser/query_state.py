"""Owner of the single authoritative query descriptor."""

import logging
from collections.abc import Callable
from typing import Any

from reflex_table_browser.models import QueryDescriptor

logger = logging.getLogger(__name__)

DescriptorListener = Callable[[QueryDescriptor], Any]

_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {"filters", "sorts", "search_term", "page", "page_size"}
)
# Changing any of these invalidates the current page position.
_PAGE_RESETTING_FIELDS: frozenset[str] = frozenset(
    {"filters", "sorts", "search_term", "page_size"}
)


class QueryStateController:
    """Holds the current :class:`QueryDescriptor` and merges partial updates.

    The descriptor is replaced wholesale on every update and never mutated,
    so every reader sees either the old or the new snapshot.  Subscribers
    (the remote executor) are notified with each new descriptor.

    Example::

        controller = QueryStateController()
        controller.subscribe(executor.issue)
        controller.apply_update(search_term="smith")   # page -> 0
        controller.apply_update(page=3)                # only page changes
    """

    def __init__(self, descriptor: QueryDescriptor | None = None) -> None:
        self._descriptor = descriptor or QueryDescriptor()
        self._listeners: list[DescriptorListener] = []

    @property
    def descriptor(self) -> QueryDescriptor:
        return self._descriptor

    def subscribe(self, listener: DescriptorListener) -> None:
        self._listeners.append(listener)

    def apply_update(self, **changes: Any) -> QueryDescriptor:
        """Merge *changes* into a new descriptor and notify subscribers.

        Touching ``filters``, ``sorts``, ``search_term`` or ``page_size``
        forces ``page`` back to 0, even if ``page`` is also given.  An
        update of ``page`` alone leaves every other field as it was.

        Raises:
            TypeError: If *changes* names a field that is not updatable.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise TypeError(f"Unknown descriptor field(s): {', '.join(sorted(unknown))}")

        merged = dict(changes)
        for key in ("filters", "sorts"):
            if key in merged:
                merged[key] = tuple(merged[key])
        if _PAGE_RESETTING_FIELDS & merged.keys():
            merged["page"] = 0

        self._descriptor = QueryDescriptor.model_validate(
            {**self._descriptor.model_dump(), **merged}
        )
        logger.debug("Descriptor updated (%s): %s", ", ".join(sorted(changes)), self._descriptor)
        self._notify()
        return self._descriptor

    def reset(self) -> QueryDescriptor:
        """Drop filters, sorts and search; keep the page size."""
        self._descriptor = QueryDescriptor(page_size=self._descriptor.page_size)
        self._notify()
        return self._descriptor

    def _notify(self) -> None:
        for listener in self._listeners:
            listener(self._descriptor)
