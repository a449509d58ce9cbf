"""
Processor Base Class — Interface for all pipeline processors.

A processor is one configurable stage of a deployment pipeline. It consumes
and may mutate the shared DeploymentContext.

## Signalling results

- return ProcessorResult.ok(...)       success
- return ProcessorResult.skipped(...)  nothing to do
- return ProcessorResult.failed(...)   per-item failure, pipeline continues
- raise ProcessorFailure(recoverable=True)   recorded, pipeline continues
- raise ProcessorFailure / any exception      fatal unless fail_on_error=false

## Common parameters

Every processor accepts, next to its own parameters:

    label: display name in logs and results (default: processor name)
    fail_on_error: false downgrades every failure to recoverable
    skip_if_no_changes: skip when the change set is empty
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, ClassVar, Dict, Literal, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from ..pipeline.context import DeploymentContext


class FailureSeverity(str, Enum):
    FATAL = "fatal"
    RECOVERABLE = "recoverable"


class ProcessorParams(BaseModel):
    """Parameters shared by every processor."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    label: Optional[str] = None
    fail_on_error: bool = True
    skip_if_no_changes: bool = False


class ProcessorResult(BaseModel):
    """What a processor reports back to the pipeline."""

    status: Literal["ok", "skipped", "failed"]
    details: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def ok(cls, **details: Any) -> "ProcessorResult":
        return cls(status="ok", details=details)

    @classmethod
    def skipped(cls, reason: str) -> "ProcessorResult":
        return cls(status="skipped", details={"skip_reason": reason})

    @classmethod
    def failed(cls, error: str, **details: Any) -> "ProcessorResult":
        return cls(status="failed", error=error, details=details)


class Processor(ABC):
    """
    Abstract base class for all processors.

    Subclasses set ``name`` and, when they take parameters, a
    ``params_model`` extending ProcessorParams.
    """

    name: ClassVar[str] = "processor"
    params_model: ClassVar[Type[ProcessorParams]] = ProcessorParams

    def __init__(self, params: Optional[ProcessorParams] = None):
        self.params = params if params is not None else self.params_model()

    @classmethod
    def from_params(cls, params: Optional[Mapping[str, Any]] = None) -> "Processor":
        """Validate a parameter block and build the processor."""
        return cls(cls.params_model(**dict(params or {})))

    @property
    def label(self) -> str:
        return self.params.label or self.name

    @property
    def severity(self) -> FailureSeverity:
        return FailureSeverity.FATAL if self.params.fail_on_error else FailureSeverity.RECOVERABLE

    @abstractmethod
    def execute(self, context: DeploymentContext) -> ProcessorResult:
        """Run this stage against the context."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.label}>"
