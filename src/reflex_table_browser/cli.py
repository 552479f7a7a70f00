"""CLI for reflex-table-browser -- browse and query a remote table engine.

Usage::

    # Browse the default session of an engine
    reflex-table-browser browse --api-url http://engine:8080/api/v1

    # Browse a local file through the in-process polars engine
    reflex-table-browser browse --local data.parquet

    # Run one query and print the page as JSON
    reflex-table-browser query --filter "city:EQUALS:Berlin" --sort age:desc

    # Show the engine's performance metrics
    reflex-table-browser metrics

Connection defaults come from ``TABLE_BROWSER_*`` environment variables
(see :mod:`reflex_table_browser.config`).
"""

import asyncio
import json
import logging
import os
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Annotated, Optional

import typer

from reflex_table_browser.config import get_settings
from reflex_table_browser.errors import RemoteExecutionError
from reflex_table_browser.local_engine import LocalQueryService, scan_file
from reflex_table_browser.metrics import CATEGORY_TITLES, categorize_metrics
from reflex_table_browser.models import (
    FilterClause,
    FilterOperation,
    QueryDescriptor,
    SortClause,
    SortDirection,
)
from reflex_table_browser.service import HttpQueryService, QueryService

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="reflex-table-browser",
    help="Browse, filter, sort and edit a table held by a remote query engine.",
    no_args_is_help=True,
)


@app.callback()
def _configure(
    log_level: Annotated[
        Optional[str], typer.Option("--log-level", help="Logging level (default from settings)")
    ] = None,
) -> None:
    level = (log_level or get_settings().log_level).upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


# ---------------------------------------------------------------------------
# Option parsing
# ---------------------------------------------------------------------------

def parse_filter(text: str) -> FilterClause:
    """Parse ``column:OPERATION[:value]`` (values may contain ``:``)."""
    column, sep, rest = text.partition(":")
    if not sep or not column:
        raise typer.BadParameter(f"Expected column:OPERATION[:value], got {text!r}")
    op_name, _, value = rest.partition(":")
    try:
        operation = FilterOperation(op_name.upper())
    except ValueError:
        choices = ", ".join(op.value for op in FilterOperation)
        raise typer.BadParameter(f"Unknown operation {op_name!r}; choose from {choices}")
    values = (value,) if operation.takes_value and value else ()
    try:
        return FilterClause(column=column, operation=operation, values=values)
    except ValueError as exc:
        raise typer.BadParameter(str(exc))


def parse_sort(text: str, priority: int) -> SortClause:
    """Parse ``column[:asc|desc]``."""
    column, _, direction = text.partition(":")
    try:
        return SortClause(
            column=column,
            direction=SortDirection(direction.upper() or "ASC"),
            priority=priority,
        )
    except ValueError:
        raise typer.BadParameter(f"Expected column[:asc|desc], got {text!r}")


def _make_service(api_url: str | None, local: Path | None, session: str) -> QueryService:
    if local is not None:
        service = LocalQueryService()
        service.load(session, scan_file(local))
        return service
    settings = get_settings()
    return HttpQueryService(api_url or settings.api_url, timeout=settings.request_timeout)


async def _close(service: QueryService) -> None:
    if isinstance(service, HttpQueryService):
        await service.aclose()


# ---------------------------------------------------------------------------
# App template -- uses __PLACEHOLDER__ tokens for dynamic parts.
# ---------------------------------------------------------------------------

_APP_TEMPLATE = '''"""Auto-generated browser app for: __TITLE__"""

import reflex as rx

from reflex_table_browser import TableBrowserMixin, table_browser
__SERVICE_SETUP__

class BrowserState(TableBrowserMixin, rx.State):
    pass


def index() -> rx.Component:
    return rx.box(
        rx.heading("__TITLE__", size="6", margin_bottom="0.5em"),
        table_browser(BrowserState),
        padding="2em",
        max_width="1400px",
        margin="0 auto",
    )


app = rx.App()
app.add_page(index, on_load=[BrowserState.load_table_browser, BrowserState.poll_tb_metrics])
'''

_LOCAL_SETUP_TEMPLATE = '''
from reflex_table_browser import LocalQueryService, configure_service, get_settings, scan_file


def _local_service():
    service = LocalQueryService()
    service.load(get_settings().session_id, scan_file("__SAFE_PATH__"))
    return service


configure_service(_local_service)
'''


def _build_app_code(title: str, local: Path | None) -> str:
    """Generate the Reflex app module source code."""
    setup = ""
    if local is not None:
        # Escape backslashes and quotes for embedding in a Python string literal
        safe_path = str(local.resolve()).replace("\\", "\\\\").replace('"', '\\"')
        setup = _LOCAL_SETUP_TEMPLATE.replace("__SAFE_PATH__", safe_path)
    safe_title = title.replace("\\", "\\\\").replace('"', '\\"')
    return _APP_TEMPLATE.replace("__SERVICE_SETUP__", setup).replace("__TITLE__", safe_title)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def browse(
    api_url: Annotated[Optional[str], typer.Option("--api-url", "-u", help="Query engine base URL")] = None,
    session: Annotated[Optional[str], typer.Option("--session", "-s", help="Engine session id")] = None,
    local: Annotated[
        Optional[Path], typer.Option("--local", "-l", help="Serve this file with the in-process polars engine")
    ] = None,
    port: Annotated[int, typer.Option("--port", "-p", help="Port for the Reflex frontend")] = 3000,
    title: Annotated[Optional[str], typer.Option("--title", "-t", help="Page title")] = None,
) -> None:
    """Launch the table browser in a local Reflex app."""
    if local is not None:
        local = local.resolve()
        if not local.exists():
            typer.echo(f"Error: file not found: {local}", err=True)
            raise typer.Exit(code=1)

    settings = get_settings()
    api_url = api_url or settings.api_url
    session = session or settings.session_id
    if title is None:
        title = f"{local.name if local else session} -- Table Browser"

    # Settings reach the Reflex backend process through its environment.
    os.environ["TABLE_BROWSER_API_URL"] = api_url
    os.environ["TABLE_BROWSER_SESSION_ID"] = session

    tmp_dir = Path(tempfile.mkdtemp(prefix="table_browser_"))
    app_name = "browser_app"
    app_pkg = tmp_dir / app_name
    app_pkg.mkdir()
    (app_pkg / "__init__.py").write_text("")
    (app_pkg / f"{app_name}.py").write_text(_build_app_code(title, local))
    (tmp_dir / "rxconfig.py").write_text(
        f'import reflex as rx\nconfig = rx.Config(app_name="{app_name}", frontend_port={port})\n'
    )
    logger.debug("Generated Reflex app in %s", tmp_dir)

    source = f"local file {local}" if local else api_url
    typer.echo(f"Launching browser for: {source}")
    typer.echo(f"Session: {session} | Port: {port}")

    os.chdir(tmp_dir)

    # reflex's CLI calls sys.exit() on completion, so init runs in a subprocess.
    typer.echo("Initializing Reflex project...")
    subprocess.run([sys.executable, "-m", "reflex", "init"], cwd=str(tmp_dir), check=True)

    typer.echo("Starting browser...")
    os.execvp(sys.executable, [sys.executable, "-m", "reflex", "run"])


@app.command()
def query(
    filters: Annotated[
        Optional[list[str]],
        typer.Option("--filter", "-f", help="column:OPERATION[:value], repeatable, combined with AND"),
    ] = None,
    sorts: Annotated[
        Optional[list[str]], typer.Option("--sort", help="column[:asc|desc], repeatable, in priority order")
    ] = None,
    search: Annotated[str, typer.Option("--search", "-q", help="Search term across all columns")] = "",
    page: Annotated[int, typer.Option("--page", min=0, help="Zero-based page index")] = 0,
    page_size: Annotated[Optional[int], typer.Option("--page-size", min=1, help="Rows per page")] = None,
    api_url: Annotated[Optional[str], typer.Option("--api-url", "-u", help="Query engine base URL")] = None,
    session: Annotated[Optional[str], typer.Option("--session", "-s", help="Engine session id")] = None,
    local: Annotated[
        Optional[Path], typer.Option("--local", "-l", help="Query this file with the in-process polars engine")
    ] = None,
) -> None:
    """Run one query and print the resulting page as JSON."""
    settings = get_settings()
    session = session or settings.session_id
    descriptor = QueryDescriptor(
        filters=tuple(parse_filter(f) for f in filters or ()),
        sorts=tuple(parse_sort(s, i) for i, s in enumerate(sorts or (), start=1)),
        search_term=search,
        page=page,
        page_size=page_size or settings.page_size,
    )

    async def run() -> dict:
        service = _make_service(api_url, local, session)
        try:
            result = await service.execute_query(session, descriptor)
        finally:
            await _close(service)
        return result.model_dump(mode="json", by_alias=True)

    try:
        body = asyncio.run(run())
    except RemoteExecutionError as exc:
        typer.echo(f"Error: {exc.display_message('Query failed')}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(body, indent=2, default=str))


@app.command()
def metrics(
    api_url: Annotated[Optional[str], typer.Option("--api-url", "-u", help="Query engine base URL")] = None,
    session: Annotated[Optional[str], typer.Option("--session", "-s", help="Engine session id")] = None,
) -> None:
    """Print the engine's performance metrics, grouped by category."""
    session = session or get_settings().session_id

    async def run() -> dict:
        service = _make_service(api_url, None, session)
        try:
            return await service.get_metrics(session)
        finally:
            await _close(service)

    try:
        values = asyncio.run(run())
    except RemoteExecutionError as exc:
        typer.echo(f"Error: {exc.display_message('Failed to fetch metrics')}", err=True)
        raise typer.Exit(code=1)

    if not values:
        typer.echo("No metrics available")
        return
    for category, items in categorize_metrics(values).items():
        typer.echo(CATEGORY_TITLES.get(category, category))
        for item in items:
            typer.echo(f"  {item['label']}: {item['value']}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
