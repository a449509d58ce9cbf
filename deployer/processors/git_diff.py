"""
Git Diff Processor — Compute the change set of this deployment.

Compares context.previous_commit with context.current_commit (HEAD when
unset). On a first deployment every tracked file counts as created.
"""

from __future__ import annotations

from ..exceptions import ProcessorFailure
from ..pipeline.context import ChangeSet, DeploymentContext
from .base import Processor, ProcessorResult


class GitDiffProcessor(Processor):
    name = "git-diff"

    def execute(self, context: DeploymentContext) -> ProcessorResult:
        sync = context.synchronizer
        if sync is None:
            raise ProcessorFailure("No synchronizer available for this target", processor=self.name)

        current = context.current_commit or sync.head_commit()
        context.current_commit = current

        if context.previous_commit is None:
            context.change_set = ChangeSet(created=sync.list_files(current))
        elif context.previous_commit == current:
            context.change_set = ChangeSet()
        else:
            context.change_set = ChangeSet.from_diff(sync.diff(context.previous_commit, current))

        change_set = context.change_set
        return ProcessorResult.ok(
            created=len(change_set.created),
            updated=len(change_set.updated),
            deleted=len(change_set.deleted),
        )
