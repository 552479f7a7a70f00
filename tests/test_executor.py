"""Tests for stale-response suppression in the remote executor."""

import pytest

from reflex_table_browser.errors import RemoteExecutionError
from reflex_table_browser.executor import RemoteQueryExecutor
from reflex_table_browser.query_state import QueryStateController

from tests.conftest import SESSION, FakeQueryService, settle


def _executor(service: FakeQueryService) -> tuple[QueryStateController, RemoteQueryExecutor]:
    controller = QueryStateController()
    return controller, RemoteQueryExecutor(service, controller, SESSION)


class TestStaleSuppression:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("arrival", [(0, 1), (1, 0)])
    async def test_latest_descriptor_wins_in_any_arrival_order(self, service, arrival):
        service.hold_queries = True
        controller, executor = _executor(service)
        controller.apply_update(search_term="user001")
        d2 = controller.apply_update(search_term="user002")
        await settle()
        assert len(service.pending) == 2

        for index in arrival:
            service.respond(index)
            await settle()
        await executor.drain()

        assert executor.last_descriptor == d2
        assert executor.last_result.rows[0]["name"] == "user002"
        assert executor.error is None

    @pytest.mark.asyncio
    async def test_older_refetch_of_same_descriptor_discarded(self, service):
        service.hold_queries = True
        controller, executor = _executor(service)
        executor.refresh()
        executor.refresh()
        await settle()

        service.respond(1)
        await settle()
        first = executor.last_result
        service.rows = [{**r, "name": "changed"} for r in service.rows]
        service.respond(0)
        await executor.drain()

        assert executor.last_result is first
        assert first.rows[0]["name"] == "user001"

    @pytest.mark.asyncio
    async def test_stale_failure_ignored(self, service):
        service.hold_queries = True
        controller, executor = _executor(service)
        controller.apply_update(search_term="a")
        controller.apply_update(search_term="b")
        await settle()

        service.fail(0, RemoteExecutionError("Query failed", server_message="boom"))
        service.respond(1)
        await executor.drain()

        assert executor.error is None
        assert executor.last_descriptor.search_term == "b"

    @pytest.mark.asyncio
    async def test_wait_follows_latest_only(self, service):
        service.hold_queries = True
        controller, executor = _executor(service)
        controller.apply_update(search_term="slow")
        controller.apply_update(search_term="fast")
        await settle()

        service.respond(1)
        await executor.wait()

        assert executor.last_descriptor.search_term == "fast"
        assert executor.loading
        service.respond(0)
        await executor.drain()
        assert not executor.loading


class TestFailure:
    @pytest.mark.asyncio
    async def test_failure_keeps_last_result_and_sets_error(self, service):
        controller, executor = _executor(service)
        executor.refresh()
        await executor.wait()
        good = executor.last_result

        service.query_error = RemoteExecutionError("Query failed", server_message="Table locked")
        controller.apply_update(page=1)
        await executor.wait()

        assert executor.last_result is good
        assert executor.error is not None
        assert executor.error.display_message() == "Table locked"

    @pytest.mark.asyncio
    async def test_success_clears_error(self, service):
        controller, executor = _executor(service)
        service.query_error = RemoteExecutionError("Query failed")
        executor.refresh()
        await executor.wait()
        assert executor.error is not None

        service.query_error = None
        executor.refresh()
        await executor.wait()
        assert executor.error is None
        assert executor.last_result is not None


@pytest.mark.asyncio
async def test_execute_returns_applied_result(service):
    controller, executor = _executor(service)
    result = await executor.execute(controller.descriptor)
    assert result is executor.last_result
    assert result.total_elements == 250


@pytest.mark.asyncio
async def test_result_listeners_called(service):
    seen = []
    controller, executor = _executor(service)
    executor.on_result(seen.append)
    executor.refresh()
    await executor.wait()
    assert seen == [executor.last_result]


@pytest.mark.asyncio
async def test_new_request_clears_error_while_loading(service):
    controller, executor = _executor(service)
    service.query_error = RemoteExecutionError("Query failed")
    executor.refresh()
    await executor.wait()
    assert executor.error is not None

    service.query_error = None
    service.hold_queries = True
    controller.apply_update(search_term="user001")

    assert executor.error is None
    assert executor.loading
    await settle()
    service.respond(0)
    await executor.drain()
