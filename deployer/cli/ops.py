"""
CLI ops commands — health, serve.

Usage:
    deployer health [--json]
    deployer serve [--host HOST] [--port PORT]
"""

from __future__ import annotations

from typing import Optional

import click

from .helpers import echo_json, get_service


@click.command("health")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def health(ctx: click.Context, as_json: bool) -> None:
    """Check deployer health status."""
    from ..observability.health import HealthChecker, HealthStatus

    service = get_service(ctx)
    result = HealthChecker(service.settings, service.registry).check()

    if as_json:
        echo_json(result.to_dict())
        if result.status == HealthStatus.UNHEALTHY:
            raise SystemExit(1)
        return

    status_colors = {
        HealthStatus.HEALTHY: ("✅", "green"),
        HealthStatus.DEGRADED: ("⚠️", "yellow"),
        HealthStatus.UNHEALTHY: ("❌", "red"),
    }
    icon, color = status_colors.get(result.status, ("❓", "white"))

    click.echo()
    click.secho(f"{icon} Deployer Health: {result.status.value.upper()}", fg=color, bold=True)
    click.echo()

    click.echo("Components:")
    for component in result.components:
        c_icon, c_color = status_colors.get(component.status, ("❓", "white"))
        click.echo(f"  {c_icon} ", nl=False)
        click.secho(f"{component.name}", fg=c_color, bold=True, nl=False)
        click.echo(f": {component.message}")
        if component.latency_ms:
            click.echo(f"      Latency: {component.latency_ms:.1f}ms")

    click.echo()

    if result.status == HealthStatus.UNHEALTHY:
        raise SystemExit(1)


@click.command("serve")
@click.option("--host", default=None, help="Bind address (default: DEPLOYER_API_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: DEPLOYER_API_PORT)")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]) -> None:
    """Run the monitoring API."""
    from ..api.server import create_app
    from ..observability.health import HealthChecker

    service = get_service(ctx)
    host = host or service.settings.api_host
    port = port or service.settings.api_port

    app = create_app(HealthChecker(service.settings, service.registry))
    click.echo(f"Monitoring API on http://{host}:{port}/api/1/monitoring/status")
    app.run(host=host, port=port, debug=False, use_reloader=False)
