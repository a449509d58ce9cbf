"""
Deployment Service — Entry point for deploying and syncing targets.

Ties the target registry, git synchronizer, pipeline factory and ledger
together. The CLI and the monitoring API both go through this class.

## Usage

    from deployer.service import DeploymentService

    service = DeploymentService.from_env()
    result = service.deploy("editorial-dev")
    if not result.succeeded:
        print(result.errors)

## Deploy flow

    registry.get_target → factory builds (cached) pipeline
      → synchronizer opens or clones the mirror
      → pipeline runs under the target lock → ledger entry
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

from .concurrency import CancellationToken, TargetLocks, target_locks
from .config.settings import DeployerSettings
from .exceptions import DeployerError, SyncError
from .git.auth import credentials_from_config
from .git.outcome import SyncOutcome, SyncOutcomeKind
from .git.sync import GitSynchronizer, PushResult
from .persistence.ledger import DeploymentLedger
from .pipeline.context import DeploymentContext
from .pipeline.factory import PipelineCache
from .pipeline.pipeline import PipelineResult
from .processors.registry import ProcessorRegistry, build_default_registry
from .reliability.retry import retry_transport
from .targets.models import Target
from .targets.registry import TargetRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class DeploymentService:
    """Deploys targets and runs one-off sync operations on their mirrors."""

    def __init__(
        self,
        settings: Optional[DeployerSettings] = None,
        registry: Optional[TargetRegistry] = None,
        processor_registry: Optional[ProcessorRegistry] = None,
        locks: Optional[TargetLocks] = None,
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
    ):
        self.settings = settings or DeployerSettings()
        self.locks = locks or target_locks
        self.registry = registry or TargetRegistry(
            targets_dir=self.settings.targets_dir,
            repos_dir=self.settings.repos_dir,
            persist=self.settings.persist_targets,
            locks=self.locks,
        )
        self.processor_registry = processor_registry or build_default_registry()
        self.pipelines = PipelineCache(self.processor_registry, locks=self.locks)
        self.ledger = DeploymentLedger(self.settings.ledger_path) if self.settings.ledger_path else None
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds

    @classmethod
    def from_env(cls, root: Optional[Path] = None) -> "DeploymentService":
        """Build the service from DEPLOYER_* settings and load targets from disk."""
        service = cls(DeployerSettings.from_env(root))
        service.registry.load_from_dir()
        return service

    # ─── Targets ────────────────────────────────────────────

    def create_target(self, id: str, env: str, site_name: str, config: Any) -> Target:
        return self.registry.create_target(id, env, site_name, config)

    def delete_target(self, target_id: str, delete_mirror: bool = False) -> Target:
        target = self.registry.delete_target(target_id, delete_mirror=delete_mirror)
        self.pipelines.invalidate(target_id)
        return target

    def synchronizer_for(self, target: Target) -> GitSynchronizer:
        timeout = target.config.git_timeout_seconds or self.settings.git_timeout_seconds
        return GitSynchronizer(
            target.local_mirror(),
            credentials=credentials_from_config(target.config.remote_repo.auth),
            target_id=target.id,
            timeout=timeout,
            locks=self.locks,
        )

    # ─── Deploy ─────────────────────────────────────────────

    def deploy(
        self,
        target_id: str,
        params: Optional[Dict[str, Any]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> PipelineResult:
        """
        Run the target's pipeline once.

        Raises:
            TargetNotFoundError: no such target
            ConfigError: the pipeline cannot be built (nothing is touched)
            SyncError: the mirror could not be opened or cloned
        """
        target = self.registry.get_target(target_id)
        pipeline = self.pipelines.get(target)
        sync = self.synchronizer_for(target)
        cancel_token = cancel_token or CancellationToken()

        fresh_clone = not sync.is_cloned()
        self._retry(lambda: sync.open_or_clone(cancel_token=cancel_token), cancel_token)

        context = DeploymentContext(target, sync, params=params, cancel_token=cancel_token)
        if fresh_clone:
            context.attributes["fresh_clone"] = True

        result = pipeline.execute(context)
        if self.ledger is not None:
            self.ledger.append("deployment", result.to_dict())
        return result

    def deploy_all(
        self,
        target_ids: Optional[Iterable[str]] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Tuple[Dict[str, PipelineResult], Dict[str, DeployerError]]:
        """
        Deploy several targets in parallel. Each target still runs under
        its own lock, so the same target is never deployed twice at once.

        Returns (results, errors) keyed by target id.
        """
        ids = list(target_ids) if target_ids is not None else [t.id for t in self.registry.list_targets()]
        results: Dict[str, PipelineResult] = {}
        errors: Dict[str, DeployerError] = {}
        if not ids:
            return results, errors

        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(ids))), thread_name_prefix="deploy") as pool:
            futures = {target_id: pool.submit(self.deploy, target_id, None, cancel_token) for target_id in ids}
            for target_id, future in futures.items():
                try:
                    results[target_id] = future.result()
                except DeployerError as e:
                    logger.error(f"Deployment failed: {e.message}", extra={"target_id": target_id})
                    errors[target_id] = e
                except Exception as e:
                    logger.exception(f"Deployment crashed: {type(e).__name__}: {e}", extra={"target_id": target_id})
                    errors[target_id] = DeployerError(f"Unexpected error: {type(e).__name__}: {e}", target_id)

        logger.info(f"Deployed {len(results)}/{len(ids)} target(s)")
        return results, errors

    # ─── Sync operations ────────────────────────────────────

    def sync(
        self,
        target_id: str,
        use_rebase: bool = False,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SyncOutcome:
        """Open or clone the mirror, then pull. Transport failures are retried."""
        target = self.registry.get_target(target_id)
        sync = self.synchronizer_for(target)
        self._retry(lambda: sync.open_or_clone(cancel_token=cancel_token), cancel_token)

        def _pull() -> SyncOutcome:
            outcome = sync.pull(use_rebase=use_rebase, cancel_token=cancel_token)
            if outcome.kind == SyncOutcomeKind.FAILED and outcome.cause is not None and outcome.cause.retryable:
                raise outcome.cause
            return outcome

        try:
            return self._retry(_pull, cancel_token)
        except SyncError as e:
            return SyncOutcome.failed(e, operation="pull")

    def push(
        self,
        target_id: str,
        remote: Optional[str] = None,
        push_all: bool = False,
        cancel_token: Optional[CancellationToken] = None,
    ) -> PushResult:
        target = self.registry.get_target(target_id)
        sync = self.synchronizer_for(target)
        return self._retry(lambda: sync.push(remote=remote, push_all=push_all, cancel_token=cancel_token), cancel_token)

    def reset(self, target_id: str, commit_id: str, clean: bool = False) -> str:
        """Hard reset the target's mirror. Returns the new HEAD."""
        target = self.registry.get_target(target_id)
        return self.synchronizer_for(target).reset(commit_id, clean=clean)

    def _retry(self, fn, cancel_token: Optional[CancellationToken]):
        return retry_transport(
            fn,
            max_attempts=self.max_attempts,
            backoff_seconds=self.backoff_seconds,
            cancel_token=cancel_token,
        )
