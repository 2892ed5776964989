#!/usr/bin/env python3
"""
PM2 Console

Command line entry points: the web dashboard server, plus one-shot commands
that print the process listing or a log tail.
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import anyio
import click

from .command.exceptions import ConsoleException
from .command.models import LogKind
from .config import DashboardConfig, load_config
from .service import DashboardService
from .web.web_manager import WebManager

logger = logging.getLogger(__name__)


def setup_logger(debug: bool = False) -> logging.Logger:
    """Setup the root logger: stderr, plus a file when LOG_FILE_PATH is set."""
    root = logging.getLogger("")

    # Remove existing handlers
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    level = logging.DEBUG if debug else logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - %(threadName)s - %(name)s:%(lineno)d - %(message)s"
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)

    log_file_path = os.getenv("LOG_FILE_PATH")
    if log_file_path:
        file_handler = logging.FileHandler(log_file_path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.setLevel(level)
    logger.debug(f"debug: {debug}")
    logger.debug(f"log_file_path: {log_file_path}")

    return logging.getLogger(__name__)


def _load(ctx: click.Context, **overrides) -> DashboardConfig:
    try:
        return load_config(
            config_file=ctx.obj.get("config_file"),
            env_file=ctx.obj.get("env_file"),
            **overrides,
        )
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e


@click.group()
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML config file (default: $PM2_CONSOLE_CONFIG_FILE)",
)
@click.option(
    "--env-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="dotenv file with PM2_CONSOLE_* variables",
)
@click.option("--debug", is_flag=True, default=False, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_file: Optional[Path], env_file: Optional[Path], debug: bool):
    """PM2 Console - process supervision dashboard."""
    setup_logger(debug)
    ctx.ensure_object(dict)
    ctx.obj.update(config_file=config_file, env_file=env_file, debug=debug)


@main.command("serve")
@click.option("--host", default=None, help="Host address for the web interface (default: 127.0.0.1)")
@click.option("--port", type=int, default=None, help="Port for the web interface (default: 3002)")
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="PM2 log directory (default: ~/.pm2/logs)",
)
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int], log_dir: Optional[Path]):
    """Start the web dashboard."""
    config = _load(ctx, host=host, port=port, log_dir=log_dir)
    logger.info("Log directory: %s", config.log_dir)
    logger.info("Supervisor command: %s", config.pm2_command)

    web_manager = WebManager(config)
    web_manager.initialize(DashboardService.from_config(config))
    try:
        web_manager.run(debug=ctx.obj["debug"])
    except KeyboardInterrupt:
        logger.info("Shutting down web interface...")
    finally:
        web_manager.shutdown()
    logger.info("Server exited")


@main.command("processes")
@click.pass_context
def processes(ctx: click.Context):
    """Print the supervisor's process list as JSON."""
    service = DashboardService.from_config(_load(ctx))
    try:
        records = anyio.run(service.list_processes)
    except ConsoleException as e:
        raise click.ClickException(e.message) from e
    click.echo(json.dumps([r.model_dump(mode="json") for r in records], indent=2))


@main.command("logs")
@click.argument("name")
@click.option(
    "--type",
    "log_type",
    type=click.Choice([k.value for k in LogKind]),
    default=LogKind.OUT.value,
    help="Which log to show (default: out)",
)
@click.option("--lines", type=click.IntRange(min=1), default=None, help="Number of trailing lines")
@click.option("--log-dir", type=click.Path(file_okay=False, path_type=Path), default=None)
@click.pass_context
def logs(ctx: click.Context, name: str, log_type: str, lines: Optional[int], log_dir: Optional[Path]):
    """Print the tail of a process log."""
    config = _load(ctx, log_dir=log_dir)
    service = DashboardService.from_config(config)
    log = anyio.run(service.read_log, name, LogKind(log_type), lines or config.default_log_lines)
    if not log.exists:
        click.echo(f"No {log_type} log found for {name} in {config.log_dir}", err=True)
        ctx.exit(1)
    click.echo(log.content, nl=False)


if __name__ == "__main__":
    main()
