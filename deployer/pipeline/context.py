"""
Deployment Context — Per-run scratch state shared by all processors.

One context is created per pipeline execution, threaded through every
processor in order and discarded afterwards.

## Deployment ID Format

    D-{YYYYMMDD}T{HHMMSS}-{RANDOM}
    Example: D-20260204T221903-92929A
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from ..concurrency import CancellationToken

if TYPE_CHECKING:
    from ..git.sync import GitSynchronizer
    from ..targets.models import Target


def generate_deployment_id() -> str:
    """Generate a unique deployment ID."""
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    suffix = uuid4().hex[:6].upper()
    return f"D-{ts}-{suffix}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class ChangeSet:
    """Files changed in the mirror by this deployment."""

    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)

    @classmethod
    def from_diff(cls, changes: Iterable[Tuple[str, str]]) -> "ChangeSet":
        """Build from (status, path) pairs as produced by git diff --name-status."""
        change_set = cls()
        for status, path in changes:
            if status == "A":
                change_set.created.append(path)
            elif status == "D":
                change_set.deleted.append(path)
            else:
                change_set.updated.append(path)
        return change_set

    @property
    def is_empty(self) -> bool:
        return not (self.created or self.updated or self.deleted)

    @property
    def total(self) -> int:
        return len(self.created) + len(self.updated) + len(self.deleted)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created": list(self.created),
            "updated": list(self.updated),
            "deleted": list(self.deleted),
        }


@dataclass
class ProcessorExecution:
    """One entry of the per-run execution log."""

    processor: str          # label
    name: str               # registered processor name
    status: str             # success, skipped, recoverable_failure, fatal_failure, not_run
    started_at: Optional[str] = None
    duration_ms: int = 0
    details: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status in ("recoverable_failure", "fatal_failure")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processor": self.processor,
            "name": self.name,
            "status": self.status,
            "started_at": self.started_at,
            "duration_ms": self.duration_ms,
            "details": self.details,
            "error": self.error,
        }


class DeploymentContext:
    """
    Mutable state for a single pipeline run.

    Processors read and write:
    - previous_commit / current_commit: set by the sync stage
    - change_set: set by the diff stage, consumed by later stages
    - attributes: free-form values handed from one processor to the next
    """

    def __init__(
        self,
        target: "Target",
        synchronizer: Optional["GitSynchronizer"] = None,
        params: Optional[Dict[str, Any]] = None,
        cancel_token: Optional[CancellationToken] = None,
        deployment_id: Optional[str] = None,
    ):
        self.target = target
        self.synchronizer = synchronizer
        self.params: Dict[str, Any] = dict(params or {})
        self.cancel_token = cancel_token or CancellationToken()
        self.deployment_id = deployment_id or generate_deployment_id()
        self.started_at = utc_now_iso()

        self.previous_commit: Optional[str] = None
        self.current_commit: Optional[str] = None
        self.change_set = ChangeSet()
        self.attributes: Dict[str, Any] = {}
        self.executions: List[ProcessorExecution] = []

    @property
    def target_id(self) -> str:
        return self.target.id

    def log_extra(self, processor: Optional[str] = None) -> Dict[str, Optional[str]]:
        """Structured logging fields for this run."""
        return {
            "target_id": self.target.id,
            "deployment_id": self.deployment_id,
            "processor": processor,
        }

    def summary(self) -> Dict[str, Any]:
        """Snapshot used by processors that report on the deployment."""
        return {
            "target_id": self.target.id,
            "env": self.target.env,
            "site_name": self.target.site_name,
            "deployment_id": self.deployment_id,
            "started_at": self.started_at,
            "previous_commit": self.previous_commit,
            "current_commit": self.current_commit,
            "change_set": self.change_set.to_dict(),
            "executions": [e.to_dict() for e in self.executions],
            "params": self.params,
        }
