"""Entry-point for the Training Portal application."""

from __future__ import annotations

import logging
import threading
import time
import webbrowser
from enum import Enum
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from portal.bootstrap import initialize_app
from portal.logging_utils import build_handlers, configure_logging
from portal.services.dashboard import build_dashboard
from portal.services.errors import PortalError
from portal.services.storage import PortalRepository
from portal.ui.console import ConsoleUI
from portal.ui.modern import ModernUI
from portal.ui.overview import format_duration
from portal.web import create_app


LOGGER = logging.getLogger("training_portal.cli")


cli = typer.Typer(add_completion=False, help="Training Portal management commands")


def _prepare_logging(storage_root: Path) -> None:
    configure_logging(handlers=build_handlers(storage_root))


class UIStyle(str, Enum):
    MODERN = "modern"
    CONSOLE = "console"


style_option = typer.Option(
    UIStyle.MODERN,
    "--style",
    "-s",
    help="Select the overview presentation style.",
    show_default=True,
)


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the web server when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, host=DEFAULT_HOST, port=DEFAULT_PORT, root_path=None, open_browser=False)


def _normalize_root_path(root_path: Optional[str]) -> str:
    if root_path is None:
        return ""
    normalized = root_path.strip()
    if not normalized:
        return ""
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return normalized.rstrip("/")


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the web server"),
    port: int = typer.Option(DEFAULT_PORT, help="Port for the web server"),
    root_path: Optional[str] = typer.Option(
        None,
        help="Prefix the application expects when mounted behind a proxy",
        envvar="TRAINING_PORTAL_ROOT_PATH",
    ),
    open_browser: bool = typer.Option(
        False,
        "--open-browser",
        help="Open the interactive API documentation once the server is up",
    ),
) -> None:
    """Run the FastAPI application."""

    app_config = initialize_app()
    _prepare_logging(app_config.storage_root)

    repository = PortalRepository(app_config)
    normalized_root = _normalize_root_path(root_path)
    app = create_app(repository, config=app_config, root_path=normalized_root)

    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        root_path=normalized_root,
    )
    server = uvicorn.Server(server_config)
    app.state.server = server

    if open_browser:
        browser_host = host
        if not browser_host or browser_host in {"0.0.0.0", "::"}:
            browser_host = "127.0.0.1"
        url = f"http://{browser_host}:{port}{normalized_root}/docs"

        def _open_browser_later() -> None:
            time.sleep(1.0)
            if not webbrowser.open(url, new=2, autoraise=True):
                LOGGER.info("No browser available; API docs are served at %s", url)

        threading.Thread(target=_open_browser_later, daemon=True).start()

    server.run()


@cli.command()
def overview(
    style: UIStyle = style_option,
    user: Optional[int] = typer.Option(
        None,
        "--user",
        "-u",
        help="Only show what this user can see, with their progress.",
    ),
) -> None:
    """Render the category and module catalogue using the chosen UI style."""

    config = initialize_app()
    _prepare_logging(config.storage_root)

    repository = PortalRepository(config)
    if style is UIStyle.MODERN:
        ui = ModernUI(repository, user_id=user)
    else:
        ui = ConsoleUI(repository, user_id=user)
    try:
        ui.run()
    except PortalError as error:
        typer.echo(f"Overview failed: {error}")
        raise typer.Exit(code=1) from error


@cli.command()
def progress(
    user_id: int = typer.Argument(..., help="Identifier of the user"),
    module: Optional[int] = typer.Option(
        None,
        "--module",
        "-m",
        help="Restrict statistics to this module and its sub-modules.",
    ),
) -> None:
    """Print a user's dashboard statistics."""

    config = initialize_app()
    _prepare_logging(config.storage_root)

    repository = PortalRepository(config)
    try:
        dashboard = build_dashboard(repository, user_id, module_filter=module)
    except PortalError as error:
        typer.echo(f"Progress lookup failed: {error}")
        raise typer.Exit(code=1) from error

    overall = dashboard.overall
    typer.echo(f"Progress for {dashboard.user.name} <{dashboard.user.email}>")
    typer.echo(
        f"  Overall: {overall.stats.percentage}%"
        f" ({overall.stats.completed_count}/{overall.stats.video_count} completed,"
        f" {overall.stats.in_progress_count} in progress)"
    )
    typer.echo(f"  Watch time: {format_duration(overall.total_watch_time)}")
    for entry in dashboard.categories:
        typer.echo(f"  {entry.category.name}: {entry.stats.percentage}%")
        for item in entry.modules:
            typer.echo(f"    - {item.module.title}: {item.stats.percentage}%")
    if dashboard.continue_watching:
        typer.echo("  Continue watching:")
        for item in dashboard.continue_watching:
            typer.echo(f"    - {item.video.title} ({int(item.percentage)}%)")


if __name__ == "__main__":
    cli()
