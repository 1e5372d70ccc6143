# src/kimo/cli.py
"""CLI for kimo.

Usage:
    # Aggregator, next to MySQL and the TCP proxy
    kimo server --dsn=mysql+pymysql://kimo:secret@db:3306/information_schema

    # Agent, on every client host
    kimo agent --port=3333

    # Inspect the effective configuration
    kimo show-config --config=kimo.yaml --format=json
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer
import uvicorn
import yaml
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from kimo import __version__
from kimo.core.config import KimoConfig, load_config
from kimo.core.logging import configure_logging, get_logger

app = typer.Typer(
    name="kimo",
    help="kimo: find the client process behind each MySQL session.",
    no_args_is_help=True,
)

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to YAML configuration file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"kimo version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from a .env file.

    Raises:
        typer.Exit: If an explicit env_file does not exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)


def _load_or_exit(config_file: Path | None, cli_overrides: dict[str, Any] | None = None) -> KimoConfig:
    try:
        return load_config(config_file=config_file, cli_overrides=cli_overrides)
    except FileNotFoundError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from e
    except (ValueError, yaml.YAMLError) as e:
        typer.secho(f"Configuration error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from e


def _logging_overrides(debug: bool, json_logs: bool) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if debug:
        overrides["debug"] = True
    if json_logs:
        overrides["json_logs"] = True
    return overrides


def _configure_logging(config: KimoConfig, role: str) -> None:
    configure_logging(role=role, json_output=config.json_logs, level="DEBUG" if config.debug else "INFO")


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    no_dotenv: Annotated[
        bool,
        typer.Option("--no-dotenv", help="Skip loading .env file."),
    ] = False,
    env_file: Annotated[
        Path | None,
        typer.Option("--env-file", help="Path to .env file (skips automatic search)."),
    ] = None,
) -> None:
    """kimo: find the client process behind each MySQL session."""
    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho(
            "Warning: --env-file ignored because --no-dotenv is set.",
            fg=typer.colors.YELLOW,
            err=True,
        )


@app.command()
def server(
    config_file: ConfigOption = None,
    host: Annotated[
        str | None,
        typer.Option("--host", "-h", help="Host address to bind to."),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-P", help="Port to listen on.", min=1, max=65535),
    ] = None,
    dsn: Annotated[
        str | None,
        typer.Option("--dsn", envvar="KIMO_DSN", help="SQLAlchemy URL of the MySQL server."),
    ] = None,
    tcpproxy_mgmt_address: Annotated[
        str | None,
        typer.Option("--tcpproxy-mgmt-address", help="host:port of the TCP proxy management listener."),
    ] = None,
    agent_port: Annotated[
        int | None,
        typer.Option("--agent-port", help="Port the agents listen on.", min=1, max=65535),
    ] = None,
    debug: Annotated[bool, typer.Option("--debug", help="Enable debug logging.")] = False,
    json_logs: Annotated[bool, typer.Option("--json-logs", help="Output structured JSON logs.")] = False,
) -> None:
    """Start the aggregator server.

    Configuration precedence (highest to lowest):
    1. Command-line flags (and KIMO_DSN)
    2. Config file (--config)
    3. Built-in defaults
    """
    server_overrides: dict[str, Any] = {}
    if host is not None:
        server_overrides["host"] = host
    if port is not None:
        server_overrides["port"] = port
    if dsn is not None:
        server_overrides["mysql"] = {"dsn": dsn}
    if tcpproxy_mgmt_address is not None:
        server_overrides["tcpproxy"] = {"mgmt_address": tcpproxy_mgmt_address}
    if agent_port is not None:
        server_overrides["agent"] = {"port": agent_port}

    cli_overrides = _logging_overrides(debug, json_logs)
    if server_overrides:
        cli_overrides["server"] = server_overrides

    config = _load_or_exit(config_file, cli_overrides)
    _configure_logging(config, "server")
    logger = get_logger(__name__)

    from kimo.server.app import KimoServer

    kimo_server = KimoServer(config.server)
    kimo_server.app.state.server = kimo_server

    typer.secho(
        f"Starting kimo server on {config.server.host}:{config.server.port}",
        fg=typer.colors.GREEN,
    )
    typer.echo(f"  TCP proxy: {config.server.tcpproxy.mgmt_address}")
    typer.echo(f"  Agent port: {config.server.agent.port}")
    typer.echo()

    try:
        uvicorn.run(
            kimo_server.app,
            host=config.server.host,
            port=config.server.port,
            log_level="debug" if config.debug else "info",
            log_config=None,
        )
    finally:
        kimo_server.close()
        logger.info("kimo server stopped")


@app.command()
def agent(
    config_file: ConfigOption = None,
    host: Annotated[
        str | None,
        typer.Option("--host", "-h", help="Host address to bind to."),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-P", help="Port to listen on.", min=1, max=65535),
    ] = None,
    debug: Annotated[bool, typer.Option("--debug", help="Enable debug logging.")] = False,
    json_logs: Annotated[bool, typer.Option("--json-logs", help="Output structured JSON logs.")] = False,
) -> None:
    """Start the per-host agent."""
    agent_overrides: dict[str, Any] = {}
    if host is not None:
        agent_overrides["host"] = host
    if port is not None:
        agent_overrides["port"] = port

    cli_overrides = _logging_overrides(debug, json_logs)
    if agent_overrides:
        cli_overrides["agent"] = agent_overrides

    config = _load_or_exit(config_file, cli_overrides)
    _configure_logging(config, "agent")

    from kimo.agent.server import create_app

    typer.secho(
        f"Starting kimo agent on {config.agent.host}:{config.agent.port}",
        fg=typer.colors.GREEN,
    )
    uvicorn.run(
        create_app(),
        host=config.agent.host,
        port=config.agent.port,
        log_level="debug" if config.debug else "info",
        log_config=None,
    )


def _masked_dsn(dsn: str) -> str:
    """Hide the password of a DSN; an unparseable DSN is hidden entirely."""
    try:
        return make_url(dsn).render_as_string(hide_password=True)
    except ArgumentError:
        return "***"


@app.command()
def show_config(
    config_file: ConfigOption = None,
    output_format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: json or yaml."),
    ] = "yaml",
) -> None:
    """Show the effective configuration."""
    if output_format not in ("yaml", "json"):
        typer.secho(f"Error: unknown format {output_format!r} (use yaml or json)", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    config = _load_or_exit(config_file)
    config_dict = config.model_dump()
    mysql = config_dict["server"]["mysql"]
    mysql["dsn"] = _masked_dsn(mysql["dsn"])

    if output_format == "json":
        typer.echo(json.dumps(config_dict, indent=2))
    else:
        typer.echo(yaml.safe_dump(config_dict, default_flow_style=False, sort_keys=False))


def main() -> None:
    """Entry point for the kimo CLI."""
    app()


if __name__ == "__main__":
    main()
