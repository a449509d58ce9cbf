"""
Deployer Errors — Structured error taxonomy.

Every error carries enough context (target id, operation, cause) to be
logged or reported without re-deriving state.

## Taxonomy

- ConfigError: pipeline/target configuration problems (never retried)
- SyncError: git synchronization failures (TRANSPORT is retryable)
- TargetAlreadyExistsError: duplicate target id on creation
- TargetNotFoundError: lookup of an unknown target id
- ProcessorFailure: recoverable or fatal processor failure
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional


class DeployerError(Exception):
    """Base class for all deployer errors."""

    def __init__(self, message: str, target_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.target_id = target_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "target_id": self.target_id,
        }


# --- Configuration ---


class ConfigErrorKind(str, Enum):
    UNKNOWN_PROCESSOR = "unknown_processor"
    INVALID_PARAMETERS = "invalid_parameters"
    INVALID_TARGET = "invalid_target"


class ConfigError(DeployerError):
    """Raised while loading target config or building a pipeline."""

    def __init__(
        self,
        kind: ConfigErrorKind,
        message: str,
        target_id: Optional[str] = None,
        processor: Optional[str] = None,
        errors: Optional[List[Any]] = None,
    ):
        super().__init__(message, target_id)
        self.kind = kind
        self.processor = processor
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "kind": self.kind.value,
            "processor": self.processor,
            "errors": self.errors,
        })
        return data


# --- Synchronization ---


class SyncErrorKind(str, Enum):
    TRANSPORT = "transport"  # network, auth, timeout, rejected push
    CONFLICT = "conflict"    # unresolved merge/rebase conflicts
    IO = "io"                # local filesystem / local repository failure


class SyncError(DeployerError):
    """Raised when a git operation against a local mirror fails."""

    def __init__(
        self,
        kind: SyncErrorKind,
        operation: str,
        message: str,
        target_id: Optional[str] = None,
        cause: Optional[str] = None,
        cancelled: bool = False,
        timed_out: bool = False,
    ):
        super().__init__(message, target_id)
        self.kind = kind
        self.operation = operation
        self.cause = cause
        self.cancelled = cancelled
        self.timed_out = timed_out

    @property
    def retryable(self) -> bool:
        """Only transport failures are worth retrying (and never after a cancel)."""
        return self.kind == SyncErrorKind.TRANSPORT and not self.cancelled

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "kind": self.kind.value,
            "operation": self.operation,
            "cause": self.cause,
            "cancelled": self.cancelled,
            "timed_out": self.timed_out,
        })
        return data


# --- Targets ---


class TargetAlreadyExistsError(DeployerError):
    """
    A target was about to be created but one with the same id exists.

    Carries the identity of the *attempted* creation, not the existing
    target, so callers can report exactly what was rejected.
    """

    def __init__(self, id: str, env: str, site_name: str):
        super().__init__(f"Target '{id}' already exists", target_id=id)
        self.id = id
        self.env = env
        self.site_name = site_name

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"id": self.id, "env": self.env, "site_name": self.site_name})
        return data


class TargetNotFoundError(DeployerError):
    def __init__(self, target_id: str):
        super().__init__(f"Target '{target_id}' not found", target_id=target_id)


# --- Processors ---


class ProcessorFailure(DeployerError):
    """
    Raised by a processor to signal failure.

    recoverable=True records the error and lets the pipeline continue;
    recoverable=False halts the pipeline.
    """

    def __init__(
        self,
        message: str,
        recoverable: bool = False,
        processor: Optional[str] = None,
        target_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, target_id)
        self.recoverable = recoverable
        self.processor = processor
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "processor": self.processor,
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        })
        return data
