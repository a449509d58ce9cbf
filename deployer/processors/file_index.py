"""
File Index Processor — Maintain a JSON index of deployed files.

Applies the change set to an index of ``{path: {sha256, size}}`` entries.
A first deployment (or a missing index) indexes every matching file in the
mirror. Files that cannot be read are reported as a per-item failure; the
rest of the index is still written.

## Parameters

    output: index file; a relative path resolves next to the mirror with the
            target id prefixed to its file name (index.json becomes
            <repos>/<target_id>-index.json)
    include: glob patterns a path must match to be indexed (default: all)
"""

from __future__ import annotations

import fnmatch
import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List

from pydantic import Field

from ..pipeline.context import DeploymentContext
from .base import Processor, ProcessorParams, ProcessorResult

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class FileIndexParams(ProcessorParams):
    output: str
    include: List[str] = Field(default_factory=lambda: ["*"])


def file_digest(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class FileIndexProcessor(Processor):
    name = "file-index"
    params_model = FileIndexParams

    def execute(self, context: DeploymentContext) -> ProcessorResult:
        root = context.target.local_repo_path
        output = self._output_path(root, context.target_id)
        index = self._load(output)

        if context.previous_commit is None or not output.exists():
            index = {}
            to_index = self._walk(root)
            removed: Iterable[str] = []
        else:
            change_set = context.change_set
            to_index = change_set.created + change_set.updated
            removed = change_set.deleted

        for path in removed:
            index.pop(path, None)

        errors: List[Dict[str, str]] = []
        indexed = 0
        for rel_path in to_index:
            if not self._included(rel_path):
                continue
            file_path = root / rel_path
            try:
                index[rel_path] = {"sha256": file_digest(file_path), "size": file_path.stat().st_size}
                indexed += 1
            except OSError as e:
                index.pop(rel_path, None)
                errors.append({"path": rel_path, "error": str(e)})
                logger.warning(f"Cannot index {rel_path}: {e}", extra=context.log_extra(self.label))

        self._write(output, index)
        context.attributes["file_index"] = str(output)

        details = {"output": str(output), "indexed": indexed, "total": len(index)}
        if errors:
            return ProcessorResult.failed(f"{len(errors)} file(s) could not be indexed", errors=errors, **details)
        return ProcessorResult.ok(**details)

    def _output_path(self, root: Path, target_id: str) -> Path:
        output = Path(self.params.output)
        if output.is_absolute():
            return output
        return root.parent / output.parent / f"{target_id}-{output.name}"

    def _included(self, rel_path: str) -> bool:
        return any(fnmatch.fnmatch(rel_path, pattern) for pattern in self.params.include)

    @staticmethod
    def _walk(root: Path) -> List[str]:
        paths = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [d for d in dirnames if d != ".git"]
            for filename in filenames:
                paths.append((Path(dirpath) / filename).relative_to(root).as_posix())
        return sorted(paths)

    @staticmethod
    def _load(output: Path) -> Dict[str, Any]:
        if not output.exists():
            return {}
        try:
            return json.loads(output.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Rebuilding unreadable index {output}: {e}")
            return {}

    @staticmethod
    def _write(output: Path, index: Dict[str, Any]) -> None:
        output.parent.mkdir(parents=True, exist_ok=True)
        tmp = output.with_suffix(output.suffix + ".tmp")
        tmp.write_text(json.dumps(index, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(output)
