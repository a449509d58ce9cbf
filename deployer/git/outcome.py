"""
Sync Outcome — Result of integrating remote history into a mirror.

Produced fresh by every pull/merge/rebase call; never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..exceptions import SyncError, SyncErrorKind


class SyncOutcomeKind(str, Enum):
    UP_TO_DATE = "up_to_date"
    FAST_FORWARDED = "fast_forwarded"
    MERGED = "merged"
    REBASED = "rebased"
    CONFLICT = "conflict"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncOutcome:
    kind: SyncOutcomeKind
    commit_id: Optional[str] = None
    previous_commit_id: Optional[str] = None
    conflicts: List[str] = field(default_factory=list)
    cause: Optional[SyncError] = None
    operation: str = "pull"

    # --- constructors ---

    @classmethod
    def up_to_date(cls, commit_id: Optional[str], operation: str = "pull") -> "SyncOutcome":
        return cls(SyncOutcomeKind.UP_TO_DATE, commit_id, commit_id, operation=operation)

    @classmethod
    def fast_forwarded(cls, commit_id: str, previous: Optional[str], operation: str = "pull") -> "SyncOutcome":
        return cls(SyncOutcomeKind.FAST_FORWARDED, commit_id, previous, operation=operation)

    @classmethod
    def merged(cls, commit_id: str, previous: Optional[str], operation: str = "pull") -> "SyncOutcome":
        return cls(SyncOutcomeKind.MERGED, commit_id, previous, operation=operation)

    @classmethod
    def rebased(cls, commit_id: str, previous: Optional[str], operation: str = "pull") -> "SyncOutcome":
        return cls(SyncOutcomeKind.REBASED, commit_id, previous, operation=operation)

    @classmethod
    def conflict(cls, details: List[str], previous: Optional[str], operation: str = "pull") -> "SyncOutcome":
        return cls(
            SyncOutcomeKind.CONFLICT,
            commit_id=previous,
            previous_commit_id=previous,
            conflicts=list(details),
            operation=operation,
        )

    @classmethod
    def failed(cls, cause: SyncError, previous: Optional[str] = None, operation: str = "pull") -> "SyncOutcome":
        return cls(
            SyncOutcomeKind.FAILED,
            commit_id=previous,
            previous_commit_id=previous,
            cause=cause,
            operation=operation,
        )

    # --- queries ---

    @property
    def ok(self) -> bool:
        return self.kind not in (SyncOutcomeKind.CONFLICT, SyncOutcomeKind.FAILED)

    @property
    def changed(self) -> bool:
        """True when HEAD moved."""
        return self.ok and self.commit_id != self.previous_commit_id

    def raise_for_failure(self, target_id: Optional[str] = None) -> "SyncOutcome":
        """Convert conflict/failed outcomes into a SyncError, else return self."""
        if self.kind == SyncOutcomeKind.CONFLICT:
            raise SyncError(
                SyncErrorKind.CONFLICT,
                self.operation,
                f"{self.operation} produced conflicts in {len(self.conflicts)} file(s)",
                target_id=target_id,
                cause=", ".join(self.conflicts),
            )
        if self.kind == SyncOutcomeKind.FAILED and self.cause is not None:
            raise self.cause
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "operation": self.operation,
            "commit_id": self.commit_id,
            "previous_commit_id": self.previous_commit_id,
            "conflicts": self.conflicts,
            "cause": self.cause.to_dict() if self.cause else None,
        }
