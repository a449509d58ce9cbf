"""
Processor Registry — Lookup processor constructors by name.

Maps a processor name (as used in target YAML) to a constructor taking the
entry's parameter block. Populated once at startup and consulted
synchronously by the pipeline factory.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, Union

from .base import Processor

logger = logging.getLogger(__name__)

ProcessorConstructor = Callable[[Mapping[str, Any]], Processor]


class ProcessorRegistry:
    """Registry of processor constructors keyed by name."""

    def __init__(self) -> None:
        self._constructors: Dict[str, ProcessorConstructor] = {}

    def register(
        self,
        processor: Union[Type[Processor], ProcessorConstructor],
        name: Optional[str] = None,
    ) -> None:
        """
        Register a Processor subclass (by its ``name``) or any constructor
        callable (``name`` required).
        """
        if isinstance(processor, type) and issubclass(processor, Processor):
            key = name or processor.name
            constructor: ProcessorConstructor = processor.from_params
        else:
            if not name:
                raise ValueError("A name is required when registering a constructor function")
            key = name
            constructor = processor

        if key in self._constructors:
            logger.warning(f"Replacing registered processor '{key}'")
        self._constructors[key] = constructor
        logger.debug(f"Registered processor: {key}")

    def get(self, name: str) -> Optional[ProcessorConstructor]:
        return self._constructors.get(name)

    def names(self) -> List[str]:
        return sorted(self._constructors)

    def __contains__(self, name: object) -> bool:
        return name in self._constructors


def build_default_registry() -> ProcessorRegistry:
    """Registry with all built-in processors."""
    from .command_line import CommandLineProcessor
    from .file_index import FileIndexProcessor
    from .file_output import FileOutputProcessor
    from .git_diff import GitDiffProcessor
    from .git_pull import GitPullProcessor
    from .git_push import GitPushProcessor
    from .http_method_call import HttpMethodCallProcessor

    registry = ProcessorRegistry()
    for processor in (
        GitPullProcessor,
        GitDiffProcessor,
        GitPushProcessor,
        FileIndexProcessor,
        CommandLineProcessor,
        HttpMethodCallProcessor,
        FileOutputProcessor,
    ):
        registry.register(processor)
    return registry
