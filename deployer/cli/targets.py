"""
CLI target commands — create, list, show, delete.

Usage:
    deployer target create --file targets/editorial-dev.yaml
    deployer target create --env dev --site-name editorial --url https://...
    deployer target list [--json]
    deployer target show ID [--json]
    deployer target delete ID [--delete-mirror]
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from ..config.loader import dump_target, load_target_file
from ..exceptions import DeployerError
from ..targets.models import Target
from .helpers import echo_json, fail, get_service


@click.group("target")
def target() -> None:
    """Manage deployment targets."""


@target.command("create")
@click.option("--file", "file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Target YAML file")
@click.option("--id", "target_id", default=None, help="Target id (default: {site_name}-{env})")
@click.option("--env", default=None, help="Environment name")
@click.option("--site-name", default=None, help="Site name")
@click.option("--url", default=None, help="Remote repository URL")
@click.option("--branch", default=None, help="Branch to deploy")
@click.option("--local-path", default=None, help="Mirror path (default: repos dir / id)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def create_target(
    ctx: click.Context,
    file_path: Optional[Path],
    target_id: Optional[str],
    env: Optional[str],
    site_name: Optional[str],
    url: Optional[str],
    branch: Optional[str],
    local_path: Optional[str],
    as_json: bool,
) -> None:
    """Register a new target."""
    service = get_service(ctx)

    try:
        if file_path is not None:
            definition = load_target_file(file_path, repos_dir=service.settings.repos_dir)
            created = service.create_target(
                target_id or definition.id,
                definition.env,
                definition.site_name,
                definition.config,
            )
        else:
            if not (env and site_name and url):
                raise click.UsageError("Either --file or all of --env, --site-name and --url are required")
            config = {
                "local_repo_path": local_path,
                "remote_repo": {"url": url, "branch": branch},
                "deployment": {"pipeline": [{"name": "git-pull"}, {"name": "git-diff"}]},
            }
            created = service.create_target(target_id or Target.build_id(site_name, env), env, site_name, config)
    except DeployerError as e:
        fail(e, as_json)
        return

    if as_json:
        echo_json(dump_target(created))
        return
    click.secho(f"✅ Target created: {created.id}", fg="green")
    click.echo(f"   Mirror: {created.config.local_repo_path}")


@target.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_targets(ctx: click.Context, as_json: bool) -> None:
    """List registered targets."""
    targets = get_service(ctx).registry.list_targets()

    if as_json:
        echo_json({"targets": [t.identity() for t in targets]})
        return

    if not targets:
        click.echo("No targets registered")
        return

    click.echo()
    click.echo("🎯 Targets")
    click.echo()
    for t in targets:
        processors = ", ".join(p.name for p in t.config.deployment.pipeline) or "-"
        click.echo(f"  {t.id:<28} env={t.env:<10} site={t.site_name:<16} [{processors}]")
    click.echo()


@target.command("show")
@click.argument("target_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def show_target(ctx: click.Context, target_id: str, as_json: bool) -> None:
    """Show one target's configuration."""
    try:
        found = get_service(ctx).registry.get_target(target_id)
    except DeployerError as e:
        fail(e, as_json)
        return

    if as_json:
        echo_json(dump_target(found))
        return

    remote = found.config.remote_repo
    click.echo()
    click.secho(f"🎯 {found.id}", bold=True)
    click.echo(f"   env:       {found.env}")
    click.echo(f"   site:      {found.site_name}")
    click.echo(f"   remote:    {remote.url} ({remote.branch or 'default branch'})")
    click.echo(f"   mirror:    {found.config.local_repo_path}")
    click.echo("   pipeline:")
    for position, spec in enumerate(found.config.deployment.pipeline, start=1):
        click.echo(f"     {position}. {spec.name} {spec.params or ''}".rstrip())
    click.echo()


@target.command("delete")
@click.argument("target_id")
@click.option("--delete-mirror", is_flag=True, help="Also delete the local mirror")
@click.pass_context
def delete_target(ctx: click.Context, target_id: str, delete_mirror: bool) -> None:
    """Remove a target."""
    try:
        get_service(ctx).delete_target(target_id, delete_mirror=delete_mirror)
    except DeployerError as e:
        fail(e)
        return
    click.secho(f"✅ Target deleted: {target_id}", fg="green")
