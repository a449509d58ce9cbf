"""
Git Pull Processor — Bring the target's mirror up to date.

Clones the mirror on first use, otherwise fetches and integrates the
upstream branch. A fresh clone (here or flagged by the caller in
``attributes["fresh_clone"]``) counts as a first deployment. Sets context.previous_commit / context.current_commit for
the stages that follow (git-diff in particular).

## Parameters

    use_rebase: replay local commits on upstream instead of merging
    on_conflict: "fail" (default) halts the pipeline with the conflicting
                 paths; "reset" accepts the remote state with a hard reset
"""

from __future__ import annotations

import logging
from typing import Literal

from ..exceptions import ProcessorFailure
from ..git.outcome import SyncOutcomeKind
from ..pipeline.context import DeploymentContext
from .base import Processor, ProcessorParams, ProcessorResult

logger = logging.getLogger(__name__)


class GitPullParams(ProcessorParams):
    use_rebase: bool = False
    on_conflict: Literal["fail", "reset"] = "fail"


class GitPullProcessor(Processor):
    name = "git-pull"
    params_model = GitPullParams

    def execute(self, context: DeploymentContext) -> ProcessorResult:
        sync = context.synchronizer
        if sync is None:
            raise ProcessorFailure("No synchronizer available for this target", processor=self.name)

        if not sync.is_cloned():
            sync.open_or_clone(cancel_token=context.cancel_token)
            context.attributes["fresh_clone"] = True

        if context.attributes.get("fresh_clone"):
            context.previous_commit = None
            context.current_commit = sync.head_commit()
            return ProcessorResult.ok(outcome="cloned", commit_id=context.current_commit)

        outcome = sync.pull(use_rebase=self.params.use_rebase, cancel_token=context.cancel_token)
        context.attributes["sync_outcome"] = outcome

        if outcome.kind == SyncOutcomeKind.CONFLICT:
            if self.params.on_conflict == "reset":
                upstream = sync.mirror.upstream_ref(sync.current_branch())
                logger.warning(
                    f"Conflicts in {len(outcome.conflicts)} file(s), accepting remote state ({upstream})",
                    extra=context.log_extra(self.label),
                )
                context.previous_commit = outcome.previous_commit_id
                context.current_commit = sync.reset(upstream)
                return ProcessorResult.ok(
                    outcome="reset_to_remote",
                    conflicts=outcome.conflicts,
                    commit_id=context.current_commit,
                )
            raise ProcessorFailure(
                f"Pull produced conflicts: {', '.join(outcome.conflicts)}",
                processor=self.name,
                target_id=context.target_id,
            )

        if outcome.kind == SyncOutcomeKind.FAILED:
            raise ProcessorFailure(
                f"Pull failed: {outcome.cause}",
                processor=self.name,
                target_id=context.target_id,
                cause=outcome.cause,
            )

        context.previous_commit = outcome.previous_commit_id
        context.current_commit = outcome.commit_id
        return ProcessorResult.ok(**outcome.to_dict())
