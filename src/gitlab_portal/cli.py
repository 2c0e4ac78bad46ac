"""Command-line interface for GitLab Portal."""

from __future__ import annotations

import asyncio
import sys

import typer

from gitlab_portal import __version__
from gitlab_portal.config import Config, ConfigError, load_config
from gitlab_portal.logging_config import get_logger, setup_logging

app = typer.Typer(
    name="gitlab-portal",
    help="GitLab Portal - GitLab login, activity views and code snippets",
    add_completion=False,
)


def _version_text() -> str:
    return f"gitlab-portal version {__version__}\nPython {sys.version}"


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(_version_text())
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """GitLab Portal CLI."""


@app.command()
def serve(
    config_path: str | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file (JSON or YAML)",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level override (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    ),
    host: str | None = typer.Option(
        None,
        "--host",
        "-h",
        help="Host to bind to",
    ),
    port: int | None = typer.Option(
        None,
        "--port",
        "-p",
        help="Port to bind to",
    ),
    auth_scheme: str | None = typer.Option(
        None,
        "--auth-scheme",
        "-a",
        help="Login scheme (oauth or local)",
    ),
) -> None:
    """Run the web server."""
    cli_args: dict[str, str | int | None] = {}
    if log_level:
        cli_args["log_level"] = log_level
    if host:
        cli_args["host"] = host
    if port:
        cli_args["port"] = port
    if auth_scheme:
        cli_args["auth_scheme"] = auth_scheme

    try:
        config = load_config(path=config_path, cli_args=cli_args)

        setup_logging(config)
        logger = get_logger(__name__)

        logger.info(
            "Starting GitLab Portal (app: %s, env: %s, auth: %s)",
            config.app_name,
            config.environment.value,
            config.auth_scheme.value,
        )

        asyncio.run(_run_server(config))

    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        get_logger(__name__).info("Shutting down (keyboard interrupt)")
        raise typer.Exit(code=0) from None
    except Exception as e:
        typer.echo(f"Fatal error: {e}", err=True)
        raise typer.Exit(code=1) from None


async def _run_server(config: Config) -> None:
    from gitlab_portal.web import create_web_app, run_server

    web_app = create_web_app(config)

    get_logger(__name__).info("Server URL: http://%s:%d%s", config.host, config.port, config.base_url)

    await run_server(web_app, config.host, config.port)


@app.command()
def version() -> None:
    """Print version information."""
    typer.echo(_version_text())


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
