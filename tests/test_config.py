"""Tests for environment-driven settings."""

import pytest

from reflex_table_browser.config import BrowserSettings, get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults(monkeypatch):
    monkeypatch.delenv("TABLE_BROWSER_API_URL", raising=False)
    settings = BrowserSettings(_env_file=None)
    assert settings.api_url == "http://localhost:8080/api/v1"
    assert settings.page_size == 100


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("TABLE_BROWSER_API_URL", "http://engine:9000/api/v1")
    monkeypatch.setenv("TABLE_BROWSER_PAGE_SIZE", "50")
    monkeypatch.setenv("TABLE_BROWSER_PAGE_SIZE_OPTIONS", "[25, 50]")

    settings = get_settings()

    assert settings.api_url == "http://engine:9000/api/v1"
    assert settings.page_size == 50
    assert settings.page_size_options == [25, 50]
    assert get_settings() is settings
