"""
Shared CLI helpers.
"""

from __future__ import annotations

import json
from typing import Any, Dict

import click

from ..exceptions import DeployerError
from ..service import DeploymentService


def get_service(ctx: click.Context) -> DeploymentService:
    """Build the service on first use so --help never touches the disk."""
    obj = ctx.ensure_object(dict)
    if "service" not in obj:
        obj["service"] = DeploymentService.from_env(obj.get("root"))
    return obj["service"]


def echo_json(data: Dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def fail(error: DeployerError, as_json: bool = False) -> None:
    """Report a deployer error and exit with status 1."""
    if as_json:
        echo_json(error.to_dict())
    else:
        click.secho(f"❌ {error.message}", fg="red", err=True)
        for detail in getattr(error, "errors", None) or []:
            click.echo(f"   - {detail}", err=True)
    raise SystemExit(1)
