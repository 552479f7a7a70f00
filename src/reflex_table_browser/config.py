"""Settings for connecting the browser to a query engine.

Values come from ``TABLE_BROWSER_*`` environment variables or a ``.env``
file, e.g.::

    TABLE_BROWSER_API_URL=http://engine:8080/api/v1
    TABLE_BROWSER_SESSION_ID=default-session
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from reflex_table_browser.models import DEFAULT_PAGE_SIZE


class BrowserSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TABLE_BROWSER_",
        env_file=".env",
        extra="ignore",
    )

    api_url: str = "http://localhost:8080/api/v1"
    session_id: str = "default-session"
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    page_size_options: list[int] = [50, 100, 200, 500]
    request_timeout: float = Field(default=30.0, gt=0)
    metrics_poll_interval: float = Field(default=5.0, gt=0)
    metrics_idle_timeout: float = Field(default=900.0, gt=0)
    log_level: str = "INFO"


@lru_cache
def get_settings() -> BrowserSettings:
    return BrowserSettings()
