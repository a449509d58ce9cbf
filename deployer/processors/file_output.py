"""
File Output Processor — Record the deployment in an NDJSON ledger.

## Parameters

    path: ledger file; relative paths resolve next to the mirror
    include_executions: also record the execution log so far
"""

from __future__ import annotations

from pathlib import Path

from ..persistence.ledger import DeploymentLedger
from ..pipeline.context import DeploymentContext
from .base import Processor, ProcessorParams, ProcessorResult


class FileOutputParams(ProcessorParams):
    path: str = "deployments.ndjson"
    include_executions: bool = True


class FileOutputProcessor(Processor):
    name = "file-output"
    params_model = FileOutputParams

    def execute(self, context: DeploymentContext) -> ProcessorResult:
        path = Path(self.params.path)
        if not path.is_absolute():
            path = context.target.local_repo_path.parent / path

        summary = context.summary()
        if not self.params.include_executions:
            summary.pop("executions", None)

        entry_id = DeploymentLedger(path).append("deployment_summary", summary)
        return ProcessorResult.ok(path=str(path), entry_id=entry_id)
