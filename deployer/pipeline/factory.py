"""
Pipeline Factory — Build a target's pipeline from its configuration.

Reads the ordered ``deployment.pipeline`` entries, resolves each name
against the processor registry and instantiates it with its own parameter
block. Either every entry resolves or no pipeline is built.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from pydantic import ValidationError

from ..concurrency import TargetLocks
from ..exceptions import ConfigError, ConfigErrorKind
from ..processors.base import Processor
from ..processors.registry import ProcessorRegistry
from ..targets.models import ProcessorSpec, Target
from .pipeline import Pipeline

logger = logging.getLogger(__name__)


def build_pipeline(
    target: Target,
    processor_registry: ProcessorRegistry,
    locks: Optional[TargetLocks] = None,
) -> Pipeline:
    """
    Build an immutable pipeline for a target.

    Raises:
        ConfigError(UNKNOWN_PROCESSOR): a name has no registered constructor
        ConfigError(INVALID_PARAMETERS): a processor rejected its parameters
        ConfigError(INVALID_TARGET): the pipeline is empty
    """
    specs: List[ProcessorSpec] = list(target.config.deployment.pipeline)
    if not specs:
        raise ConfigError(
            ConfigErrorKind.INVALID_TARGET,
            f"Target '{target.id}' has no processors configured",
            target.id,
        )

    processors: List[Processor] = []
    for position, spec in enumerate(specs, start=1):
        processors.append(_resolve(target.id, position, spec, processor_registry))

    pipeline = Pipeline(
        target.id,
        processors,
        config_fingerprint=target.config.fingerprint(),
        locks=locks,
    )
    logger.info(f"Built pipeline: {pipeline!r}", extra={"target_id": target.id})
    return pipeline


def _resolve(
    target_id: str,
    position: int,
    spec: ProcessorSpec,
    registry: ProcessorRegistry,
) -> Processor:
    constructor = registry.get(spec.name)
    if constructor is None:
        raise ConfigError(
            ConfigErrorKind.UNKNOWN_PROCESSOR,
            f"Unknown processor '{spec.name}' at position {position}. Available: {registry.names()}",
            target_id,
            processor=spec.name,
        )

    try:
        return constructor(dict(spec.params))
    except ValidationError as e:
        raise ConfigError(
            ConfigErrorKind.INVALID_PARAMETERS,
            f"Invalid parameters for processor '{spec.name}' at position {position}",
            target_id,
            processor=spec.name,
            errors=e.errors(include_url=False),
        ) from e
    except (TypeError, ValueError) as e:
        raise ConfigError(
            ConfigErrorKind.INVALID_PARAMETERS,
            f"Invalid parameters for processor '{spec.name}' at position {position}: {e}",
            target_id,
            processor=spec.name,
        ) from e


class PipelineCache:
    """
    One pipeline per target, rebuilt only when the target's config changes.
    """

    def __init__(self, processor_registry: ProcessorRegistry, locks: Optional[TargetLocks] = None):
        self.processor_registry = processor_registry
        self._locks = locks
        self._pipelines: Dict[str, Pipeline] = {}
        self._guard = threading.Lock()

    def get(self, target: Target) -> Pipeline:
        fingerprint = target.config.fingerprint()
        with self._guard:
            pipeline = self._pipelines.get(target.id)
            if pipeline is not None and pipeline.config_fingerprint == fingerprint:
                return pipeline

        if pipeline is not None:
            logger.info("Target configuration changed, rebuilding pipeline", extra={"target_id": target.id})

        pipeline = build_pipeline(target, self.processor_registry, locks=self._locks)
        with self._guard:
            self._pipelines[target.id] = pipeline
        return pipeline

    def invalidate(self, target_id: str) -> None:
        with self._guard:
            self._pipelines.pop(target_id, None)
