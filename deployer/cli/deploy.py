"""
CLI deploy commands — deploy, sync, push, reset.

Usage:
    deployer deploy ID [--json]
    deployer deploy --all [--workers N]
    deployer sync ID [--rebase]
    deployer push ID [--remote NAME] [--all-branches]
    deployer reset ID COMMIT [--clean]
"""

from __future__ import annotations

import signal
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

import click

from ..concurrency import CancellationToken
from ..exceptions import DeployerError
from ..git.outcome import SyncOutcomeKind
from ..pipeline.pipeline import PipelineResult, PipelineStatus
from .helpers import echo_json, fail, get_service

STATUS_STYLE = {
    PipelineStatus.SUCCESS: ("✅", "green"),
    PipelineStatus.PARTIAL_FAILURE: ("⚠️", "yellow"),
    PipelineStatus.FATAL_FAILURE: ("❌", "red"),
    PipelineStatus.CANCELLED: ("⏹", "yellow"),
}

EXECUTION_ICONS = {
    "success": "✓",
    "skipped": "·",
    "recoverable_failure": "!",
    "fatal_failure": "✗",
    "not_run": "-",
}


@contextmanager
def _cancel_on_sigint(token: CancellationToken) -> Iterator[None]:
    """First Ctrl-C cancels the running deployment cooperatively."""

    def _handler(signum, frame):
        click.echo("\nCancelling…", err=True)
        token.cancel("interrupted")
        signal.signal(signal.SIGINT, signal.default_int_handler)

    previous = signal.getsignal(signal.SIGINT)
    signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _print_result(result: PipelineResult) -> None:
    icon, color = STATUS_STYLE.get(result.status, ("❓", "white"))
    click.echo()
    click.secho(f"{icon} {result.target_id}: {result.status.value.upper()}", fg=color, bold=True)
    click.echo(f"   Deployment: {result.deployment_id} ({result.duration_ms}ms)")
    if result.current_commit:
        previous = result.previous_commit[:12] if result.previous_commit else "none"
        click.echo(f"   Commit:     {previous} → {result.current_commit[:12]}")
    changes = result.change_set
    if changes:
        click.echo(
            f"   Changes:    +{len(changes.get('created', []))} "
            f"~{len(changes.get('updated', []))} -{len(changes.get('deleted', []))}"
        )
    for execution in result.executions:
        line = f"     {EXECUTION_ICONS.get(execution.status, '?')} {execution.processor}"
        if execution.error:
            line += f": {execution.error}"
        click.echo(line)


@click.command("deploy")
@click.argument("target_ids", nargs=-1)
@click.option("--all", "deploy_all", is_flag=True, help="Deploy every registered target")
@click.option("--workers", default=4, show_default=True, help="Parallel deployments with --all")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def deploy(ctx: click.Context, target_ids: Tuple[str, ...], deploy_all: bool, workers: int, as_json: bool) -> None:
    """Run the deployment pipeline of one or more targets."""
    if not target_ids and not deploy_all:
        raise click.UsageError("Give at least one target id or --all")

    service = get_service(ctx)
    token = CancellationToken()
    ids = None if deploy_all else list(target_ids)
    with _cancel_on_sigint(token):
        results, errors = service.deploy_all(ids, max_workers=workers, cancel_token=token)

    if as_json:
        echo_json({
            "results": {tid: r.to_dict() for tid, r in results.items()},
            "errors": {tid: e.to_dict() for tid, e in errors.items()},
        })
    else:
        for result in results.values():
            _print_result(result)
        for tid, error in errors.items():
            click.secho(f"❌ {tid}: {error.message}", fg="red", err=True)
        click.echo()

    if errors or any(not r.succeeded for r in results.values()):
        raise SystemExit(1)


@click.command("sync")
@click.argument("target_id")
@click.option("--rebase", is_flag=True, help="Rebase instead of merge")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def sync(ctx: click.Context, target_id: str, rebase: bool, as_json: bool) -> None:
    """Clone or pull a target's mirror without running its pipeline."""
    token = CancellationToken()
    try:
        with _cancel_on_sigint(token):
            outcome = get_service(ctx).sync(target_id, use_rebase=rebase, cancel_token=token)
    except DeployerError as e:
        fail(e, as_json)
        return

    if as_json:
        echo_json(outcome.to_dict())
    elif outcome.kind == SyncOutcomeKind.CONFLICT:
        click.secho(f"❌ Conflicts in {len(outcome.conflicts)} file(s):", fg="red")
        for path in outcome.conflicts:
            click.echo(f"   {path}")
    elif outcome.kind == SyncOutcomeKind.FAILED:
        click.secho(f"❌ Sync failed: {outcome.cause.message if outcome.cause else 'unknown error'}", fg="red")
    else:
        commit = outcome.commit_id[:12] if outcome.commit_id else "none"
        click.secho(f"✅ {target_id}: {outcome.kind.value} ({commit})", fg="green")

    if not outcome.ok:
        raise SystemExit(1)


@click.command("push")
@click.argument("target_id")
@click.option("--remote", default=None, help="Remote name or URL (default: target remote)")
@click.option("--all-branches", "push_all", is_flag=True, help="Push every local branch")
@click.pass_context
def push(ctx: click.Context, target_id: str, remote: Optional[str], push_all: bool) -> None:
    """Push a target's mirror to its remote."""
    try:
        result = get_service(ctx).push(target_id, remote=remote, push_all=push_all)
    except DeployerError as e:
        fail(e)
        return

    if result.up_to_date:
        click.echo(f"{result.remote}: already up to date")
    else:
        click.secho(f"✅ Pushed {', '.join(result.refs)} to {result.remote}", fg="green")


@click.command("reset")
@click.argument("target_id")
@click.argument("commit_id")
@click.option("--clean", is_flag=True, help="Also remove untracked files")
@click.confirmation_option(prompt="This discards all local changes in the mirror. Continue?")
@click.pass_context
def reset(ctx: click.Context, target_id: str, commit_id: str, clean: bool) -> None:
    """Hard reset a target's mirror to a commit."""
    try:
        head = get_service(ctx).reset(target_id, commit_id, clean=clean)
    except DeployerError as e:
        fail(e)
        return
    click.secho(f"✅ {target_id} reset to {head[:12]}", fg="green")
