"""Issues descriptors to the remote engine and suppresses stale responses."""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from reflex_table_browser.errors import RemoteExecutionError
from reflex_table_browser.models import QueryDescriptor, QueryResult
from reflex_table_browser.query_state import QueryStateController
from reflex_table_browser.service import QueryService

logger = logging.getLogger(__name__)

ResultListener = Callable[[QueryResult], Any]


class RemoteQueryExecutor:
    """Runs queries for the controller's descriptors and applies only current results.

    Requests are never cancelled.  Instead each request is tagged with the
    descriptor it was issued for and a sequence number, and on arrival the
    result is applied only if

    * its descriptor equals the controller's current descriptor, and
    * no newer request has already been applied.

    The second rule matters when the same descriptor is re-fetched after
    an edit or delete: an older, slower response for the identical
    descriptor must not overwrite the fresher one.  Everything else is
    discarded silently.

    A failed query for the current descriptor keeps :attr:`last_result`
    on screen and records :attr:`error` so the UI can offer a retry.
    Issuing a new request clears :attr:`error`.

    Args:
        service: The remote engine.
        controller: Owner of the current descriptor.  The executor
            subscribes to it and issues every new descriptor.
        session_id: Engine session the queries run against.
    """

    def __init__(
        self,
        service: QueryService,
        controller: QueryStateController,
        session_id: str,
    ) -> None:
        self._service = service
        self._controller = controller
        self._session_id = session_id
        self._seq: int = 0
        self._applied_seq: int = 0
        self._tasks: set[asyncio.Task[QueryResult | None]] = set()
        self._latest: asyncio.Task[QueryResult | None] | None = None
        self._result_listeners: list[ResultListener] = []

        self.last_result: QueryResult | None = None
        self.last_descriptor: QueryDescriptor | None = None
        self.error: RemoteExecutionError | None = None

        controller.subscribe(self.issue)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def loading(self) -> bool:
        """``True`` while any request is in flight."""
        return bool(self._tasks)

    def on_result(self, listener: ResultListener) -> None:
        """Call *listener* with every result that gets applied."""
        self._result_listeners.append(listener)

    def issue(self, descriptor: QueryDescriptor) -> "asyncio.Task[QueryResult | None]":
        """Start executing *descriptor* in the background and return the task.

        Must be called from within a running event loop.
        """
        self._seq += 1
        self.error = None
        task = asyncio.get_running_loop().create_task(self._run(descriptor, self._seq))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._latest = task
        return task

    async def execute(self, descriptor: QueryDescriptor) -> QueryResult | None:
        """Execute *descriptor* and wait for it.

        Returns:
            The result if it was applied, ``None`` if it was stale or the
            query failed.
        """
        self._seq += 1
        self.error = None
        return await self._run(descriptor, self._seq)

    def refresh(self) -> "asyncio.Task[QueryResult | None]":
        """Re-issue the current descriptor (re-fetch and retry)."""
        return self.issue(self._controller.descriptor)

    async def wait(self) -> None:
        """Wait for the most recently issued request.

        Requests issued while waiting (e.g. a page clamp triggered by the
        result) are waited for too.  Older, superseded requests are not.
        """
        while self._latest is not None:
            task = self._latest
            await task
            if task is self._latest:
                return

    async def drain(self) -> None:
        """Wait until every in-flight request has completed."""
        while self._tasks:
            await asyncio.gather(*self._tasks)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _is_current(self, descriptor: QueryDescriptor, seq: int) -> bool:
        return descriptor == self._controller.descriptor and seq > self._applied_seq

    async def _run(self, descriptor: QueryDescriptor, seq: int) -> QueryResult | None:
        t0 = time.perf_counter()
        try:
            result = await self._service.execute_query(self._session_id, descriptor)
        except RemoteExecutionError as exc:
            if not self._is_current(descriptor, seq):
                logger.debug("Discarding failure of stale query #%d: %s", seq, exc)
                return None
            logger.warning("Query #%d failed: %s", seq, exc)
            self.error = exc
            return None

        elapsed_ms = (time.perf_counter() - t0) * 1000
        if not self._is_current(descriptor, seq):
            logger.debug("Discarding stale result of query #%d (%.1fms)", seq, elapsed_ms)
            return None

        self._applied_seq = seq
        self.last_result = result
        self.last_descriptor = descriptor
        self.error = None
        logger.info(
            "Query #%d applied: page=%d, rows=%d, total=%d, engine=%s (%.1fms)",
            seq,
            result.current_page,
            len(result.rows),
            result.total_elements,
            result.implementation_label,
            elapsed_ms,
        )
        for listener in self._result_listeners:
            listener(result)
        return result
