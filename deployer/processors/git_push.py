"""
Git Push Processor — Push the mirror's commits to a remote.

## Parameters

    remote: remote name or URL (default: the target's remote)
    push_all: push every local branch instead of only the configured one
"""

from __future__ import annotations

from typing import Optional

from ..exceptions import ProcessorFailure
from ..pipeline.context import DeploymentContext
from .base import Processor, ProcessorParams, ProcessorResult


class GitPushParams(ProcessorParams):
    remote: Optional[str] = None
    push_all: bool = False


class GitPushProcessor(Processor):
    name = "git-push"
    params_model = GitPushParams

    def execute(self, context: DeploymentContext) -> ProcessorResult:
        sync = context.synchronizer
        if sync is None:
            raise ProcessorFailure("No synchronizer available for this target", processor=self.name)

        result = sync.push(
            remote=self.params.remote,
            push_all=self.params.push_all,
            cancel_token=context.cancel_token,
        )
        return ProcessorResult.ok(remote=result.remote, refs=result.refs, up_to_date=result.up_to_date)
