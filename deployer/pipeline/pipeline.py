"""
Deployment Pipeline — Ordered, immutable chain of processors.

Execution rules:
1. Processors run strictly in configured order; each sees the context as
   left by all earlier processors.
2. A recoverable failure is recorded in the execution log and the run
   continues (final status: partial_failure).
3. A fatal failure halts the run; remaining processors are recorded as
   not_run (final status: fatal_failure).
4. Cancellation is checked before each processor (final status: cancelled).
5. The whole run holds the target's lock, so no sync operation can touch
   the mirror mid-run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from ..concurrency import TargetLocks, target_locks
from ..exceptions import ProcessorFailure
from ..processors.base import FailureSeverity, Processor, ProcessorResult
from .context import DeploymentContext, ProcessorExecution, utc_now_iso

logger = logging.getLogger(__name__)


class PipelineStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FATAL_FAILURE = "fatal_failure"
    CANCELLED = "cancelled"


@dataclass
class PipelineResult:
    """Result of one pipeline run."""

    deployment_id: str
    target_id: str
    status: PipelineStatus
    started_at: str
    ended_at: Optional[str] = None
    duration_ms: int = 0
    executions: List[ProcessorExecution] = field(default_factory=list)
    change_set: Dict[str, List[str]] = field(default_factory=dict)
    previous_commit: Optional[str] = None
    current_commit: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == PipelineStatus.SUCCESS

    @property
    def errors(self) -> List[str]:
        return [f"{e.processor}: {e.error}" for e in self.executions if e.failed and e.error]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "target_id": self.target_id,
            "status": self.status.value,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "duration_ms": self.duration_ms,
            "previous_commit": self.previous_commit,
            "current_commit": self.current_commit,
            "change_set": self.change_set,
            "executions": [e.to_dict() for e in self.executions],
        }


class Pipeline:
    """
    Immutable sequence of processors bound to one target.

    Rebuilt (never mutated) when the target's configuration changes.
    """

    def __init__(
        self,
        target_id: str,
        processors: Sequence[Processor],
        config_fingerprint: Optional[str] = None,
        locks: Optional[TargetLocks] = None,
    ):
        self.target_id = target_id
        self._processors: Tuple[Processor, ...] = tuple(processors)
        self.config_fingerprint = config_fingerprint
        self._locks = locks or target_locks

    @property
    def processors(self) -> Tuple[Processor, ...]:
        return self._processors

    def __len__(self) -> int:
        return len(self._processors)

    def __iter__(self) -> Iterator[Processor]:
        return iter(self._processors)

    def execute(self, context: DeploymentContext) -> PipelineResult:
        """Run every processor in order against the context."""
        start_time = time.time()
        status = PipelineStatus.SUCCESS

        logger.info(
            f"{'═' * 50}\n"
            f"  Starting deployment {context.deployment_id}\n"
            f"  ├─ Target: {self.target_id}\n"
            f"  └─ Processors: {', '.join(p.label for p in self._processors)}\n"
            f"{'─' * 50}",
            extra=context.log_extra(),
        )

        with self._locks.hold(self.target_id):
            for index, processor in enumerate(self._processors):
                if context.cancel_token.cancelled:
                    logger.warning(
                        f"[pipeline] Cancelled before '{processor.label}': {context.cancel_token.reason}",
                        extra=context.log_extra(processor.label),
                    )
                    status = PipelineStatus.CANCELLED
                    self._record_not_run(context, self._processors[index:])
                    break

                execution = self._run_processor(processor, context)
                context.executions.append(execution)

                if execution.status == "fatal_failure":
                    status = PipelineStatus.FATAL_FAILURE
                    self._record_not_run(context, self._processors[index + 1:])
                    break
                if execution.status == "recoverable_failure":
                    status = PipelineStatus.PARTIAL_FAILURE

        ended_at = utc_now_iso()
        result = PipelineResult(
            deployment_id=context.deployment_id,
            target_id=self.target_id,
            status=status,
            started_at=context.started_at,
            ended_at=ended_at,
            duration_ms=int((time.time() - start_time) * 1000),
            executions=list(context.executions),
            change_set=context.change_set.to_dict(),
            previous_commit=context.previous_commit,
            current_commit=context.current_commit,
        )

        log = logger.info if status == PipelineStatus.SUCCESS else logger.warning
        log(
            f"Deployment {context.deployment_id} finished: {status.value} in {result.duration_ms}ms",
            extra=context.log_extra(),
        )
        return result

    def _run_processor(self, processor: Processor, context: DeploymentContext) -> ProcessorExecution:
        execution = ProcessorExecution(
            processor=processor.label,
            name=processor.name,
            status="success",
            started_at=utc_now_iso(),
        )
        extra = context.log_extra(processor.label)
        start = time.time()

        if processor.params.skip_if_no_changes and context.change_set.is_empty:
            logger.info(f"[pipeline] {processor.label}: skipped (no changes)", extra=extra)
            execution.status = "skipped"
            execution.details = {"skip_reason": "no_changes"}
            return execution

        logger.info(f"[pipeline] Running {processor.label}", extra=extra)

        try:
            result = processor.execute(context)
        except ProcessorFailure as e:
            recoverable = e.recoverable or processor.severity == FailureSeverity.RECOVERABLE
            execution.status = "recoverable_failure" if recoverable else "fatal_failure"
            execution.error = e.message
            execution.details = {"failure": e.to_dict()}
            log = logger.warning if recoverable else logger.error
            log(f"[pipeline] {processor.label} failed ({execution.status}): {e.message}", extra=extra)
        except Exception as e:
            recoverable = processor.severity == FailureSeverity.RECOVERABLE
            execution.status = "recoverable_failure" if recoverable else "fatal_failure"
            execution.error = f"{type(e).__name__}: {e}"
            logger.exception(f"[pipeline] {processor.label} raised ({execution.status})", extra=extra)
        else:
            self._apply_result(execution, result or ProcessorResult.ok())
            if execution.status == "recoverable_failure":
                logger.warning(f"[pipeline] {processor.label} reported failure: {execution.error}", extra=extra)

        execution.duration_ms = int((time.time() - start) * 1000)
        return execution

    @staticmethod
    def _apply_result(execution: ProcessorExecution, result: ProcessorResult) -> None:
        execution.details = dict(result.details)
        if result.status == "skipped":
            execution.status = "skipped"
        elif result.status == "failed":
            execution.status = "recoverable_failure"
            execution.error = result.error

    @staticmethod
    def _record_not_run(context: DeploymentContext, processors: Sequence[Processor]) -> None:
        for processor in processors:
            context.executions.append(
                ProcessorExecution(processor=processor.label, name=processor.name, status="not_run")
            )

    def __repr__(self) -> str:
        return f"<Pipeline {self.target_id}: {' → '.join(p.label for p in self._processors)}>"
