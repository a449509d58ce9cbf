"""
Site Deployer — CLI Entry Point

Usage:
    deployer target create --file targets/editorial-dev.yaml
    deployer deploy editorial-dev
    python -m deployer.main health
"""

from __future__ import annotations

# Load .env file FIRST, before any other imports that might read env vars
from pathlib import Path
from dotenv import load_dotenv

_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

import click

from . import __version__
from .cli.deploy import deploy, push, reset, sync
from .cli.ops import health, serve
from .cli.targets import target
from .logging_config import setup_logging


@click.group()
@click.version_option(__version__, prog_name="deployer")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR (default: LOG_LEVEL)")
@click.option("--log-format", type=click.Choice(["text", "json"]), default=None, help="Log format (default: LOG_FORMAT)")
@click.pass_context
def cli(ctx: click.Context, log_level: str, log_format: str) -> None:
    """Site Deployer — Sync git mirrors and run deployment pipelines."""
    setup_logging(level=log_level, format_type=log_format)
    ctx.ensure_object(dict)
    ctx.obj.setdefault("root", Path.cwd())


cli.add_command(target)

cli.add_command(deploy)
cli.add_command(sync)
cli.add_command(push)
cli.add_command(reset)

cli.add_command(health)
cli.add_command(serve)


if __name__ == "__main__":
    cli()
