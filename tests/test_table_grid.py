"""Tests for the browser registry behind the Reflex state mixin."""

from reflex_table_browser import table_grid

from tests.conftest import FakeQueryService


def test_configured_service_is_shared_per_client():
    service = FakeQueryService()
    table_grid.configure_service(lambda: service)
    try:
        first = table_grid._get_browser("State:client-a")
        again = table_grid._get_browser("State:client-a")
        other = table_grid._get_browser("State:client-b")

        assert first is again
        assert first is not other
        assert first.service is service
        assert other.service is service
    finally:
        table_grid.configure_service(table_grid._default_service)


def test_configure_service_drops_existing_browsers():
    table_grid.configure_service(FakeQueryService)
    try:
        before = table_grid._get_browser("State:client")
        table_grid.configure_service(FakeQueryService)
        assert table_grid._get_browser("State:client") is not before
    finally:
        table_grid.configure_service(table_grid._default_service)


class TestMetricsPollers:
    def setup_method(self):
        table_grid.configure_service(FakeQueryService)
        self.key = "State:client"
        table_grid._get_browser(self.key)

    def teardown_method(self):
        table_grid.configure_service(table_grid._default_service)

    def test_newer_poller_supersedes_older(self):
        first = table_grid._start_polling(self.key)
        second = table_grid._start_polling(self.key)

        assert not table_grid._polling_current(self.key, first)
        assert table_grid._polling_current(self.key, second)

    def test_stop_ends_current_poller(self):
        generation = table_grid._start_polling(self.key)
        table_grid._stop_polling(self.key)
        assert not table_grid._polling_current(self.key, generation)

    def test_poller_ends_when_browser_dropped(self):
        generation = table_grid._start_polling(self.key)
        table_grid.configure_service(FakeQueryService)
        assert not table_grid._polling_current(self.key, generation)

    def test_poller_ends_for_idle_client(self, monkeypatch):
        generation = table_grid._start_polling(self.key)
        timeout = table_grid.get_settings().metrics_idle_timeout
        monkeypatch.setitem(
            table_grid._last_seen, self.key, table_grid._last_seen[self.key] - timeout - 1
        )
        assert not table_grid._polling_current(self.key, generation)
