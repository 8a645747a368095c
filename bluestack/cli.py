"""
Bluestack Command-Line Interface

Provides commands to start the edge server and inspect its configuration.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import uvicorn
from pydantic import ValidationError

from bluestack import __version__
from bluestack.core.config_manager import BluestackConfig, ConfigManager
from bluestack.core.logging_config import log_with_context, setup_logging
from bluestack.core.runtime import build_registry, create_app
from bluestack.services.blob.exceptions import BlobStorageError


def _cli_overrides(
    host: Optional[str] = None,
    port: Optional[int] = None,
    data_dir: Optional[str] = None,
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
) -> Dict[str, Any]:
    """Nested override dictionary for the options that were given."""
    overrides: Dict[str, Any] = {}
    if host:
        overrides.setdefault("server", {})["host"] = host
    if port:
        overrides.setdefault("server", {})["port"] = port
    if data_dir:
        overrides["data_dir"] = data_dir
    if log_level:
        overrides.setdefault("logging", {})["level"] = log_level
    if log_format:
        overrides.setdefault("logging", {})["format"] = log_format
    return overrides


def _load_config(config: Optional[Path], overrides: Dict[str, Any]) -> BluestackConfig:
    try:
        return ConfigManager().load(
            config_file=str(config) if config else None,
            cli_overrides=overrides,
        )
    except (ValidationError, ValueError, FileNotFoundError) as e:
        click.echo(f"[ERROR] Invalid configuration: {e}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="bluestack")
@click.pass_context
def cli(ctx):
    """
    Bluestack - Local Azure-style Cloud Service Emulator

    Exposes a single edge HTTP port that routes requests to service
    emulators such as Blob Storage.
    """
    ctx.ensure_object(dict)


@cli.command()
@click.option("--host", help="Host to bind to (default: 0.0.0.0)")
@click.option("--port", type=int, help="Edge port (default: 4566, or EDGE_PORT)")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (YAML or JSON)",
)
@click.option("--data-dir", help="Base directory for service data (default: ./data, or DATA_DIR)")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level (default: INFO, or LOG_LEVEL)",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "text"], case_sensitive=False),
    help="Log output format",
)
def start(
    host: Optional[str],
    port: Optional[int],
    config: Optional[Path],
    data_dir: Optional[str],
    log_level: Optional[str],
    log_format: Optional[str],
):
    """
    Start the Bluestack edge server.

    Examples:
        bluestack start
        bluestack start --port 8080 --data-dir /tmp/bluestack
        bluestack start --config config.yaml --log-level DEBUG
    """
    cfg = _load_config(
        config,
        _cli_overrides(host, port, data_dir, log_level and log_level.upper(), log_format and log_format.lower()),
    )

    setup_logging(cfg.logging)
    logger = logging.getLogger("bluestack.cli")

    log_with_context(
        logger,
        logging.INFO,
        "starting bluestack",
        version=__version__,
        edge_port=cfg.server.port,
        data_dir=cfg.data_dir,
        log_level=cfg.logging.level,
        enabled_services=cfg.enabled_services,
    )

    try:
        registry = build_registry(cfg)
    except BlobStorageError as e:
        logger.error(f"Failed to initialize services: {e}")
        click.echo(f"[ERROR] Failed to initialize services: {e}", err=True)
        sys.exit(1)

    app = create_app(cfg, registry)

    # log_config=None leaves uvicorn records to the root handlers set up above
    try:
        uvicorn.run(
            app,
            host=cfg.server.host,
            port=cfg.server.port,
            log_level=cfg.logging.level.lower(),
            access_log=False,
            log_config=None,
        )
    except KeyboardInterrupt:
        click.echo("\nShutting down Bluestack...")


@cli.command()
def version():
    """Show Bluestack version."""
    click.echo(f"bluestack version {__version__}")


@cli.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (YAML or JSON)",
)
def config(config: Optional[Path]):
    """
    Show the effective configuration.

    Applies the config file and environment variables the same way
    'start' does and prints the result as JSON.
    """
    cfg = _load_config(config, {})
    click.echo(json.dumps(cfg.model_dump(mode="json"), indent=2))


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
