"""
xcbridge command line.

Usage:
    xcbridge --help
    xcbridge --port 9090 --allowed-paths /Users/me/Projects
    XCBRIDGE_API_KEY=secret xcbridge --host 0.0.0.0
"""

import logging
import shlex
from typing import Optional

import typer
import uvicorn

from xcbridge.api import create_app
from xcbridge.settings import Settings, parse_paths

app = typer.Typer(
    name="xcbridge",
    help="Xcode bridge service for containerized iOS development",
    add_completion=False,
)

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
UVICORN_LEVELS = {"warn": "warning"}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


@app.command()
def serve(
    port: int = typer.Option(9090, "--port", "-p", envvar="XCBRIDGE_PORT"),
    host: str = typer.Option("127.0.0.1", "--host", "-H", envvar="XCBRIDGE_HOST"),
    api_key: Optional[str] = typer.Option(
        None, "--api-key", envvar="XCBRIDGE_API_KEY", help="Require X-API-Key."
    ),
    log_level: str = typer.Option("info", "--log-level", "-l", envvar="XCBRIDGE_LOG_LEVEL"),
    allowed_paths: Optional[str] = typer.Option(
        None,
        "--allowed-paths",
        envvar="XCBRIDGE_ALLOWED_PATHS",
        help="Comma-separated roots that project/workspace paths must live under.",
    ),
    xcodebuild: str = typer.Option(
        "xcodebuild", "--xcodebuild", envvar="XCBRIDGE_XCODEBUILD"
    ),
    max_completed_jobs: int = typer.Option(
        100, "--max-completed-jobs", envvar="XCBRIDGE_MAX_COMPLETED_JOBS"
    ),
) -> None:
    """Serve the xcbridge HTTP API."""
    configure_logging(log_level)
    settings = Settings(
        host=host,
        port=port,
        api_key=api_key or None,
        log_level=log_level,
        allowed_paths=parse_paths(allowed_paths),
        xcodebuild=tuple(shlex.split(xcodebuild)),
        max_completed_jobs=max_completed_jobs,
    )
    logging.getLogger(__name__).info("xcbridge listening on %s", settings.bind_address)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=UVICORN_LEVELS.get(log_level.lower(), log_level.lower()),
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
