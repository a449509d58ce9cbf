"""
Local Mirror — Descriptor of a target's on-disk working copy.

The mirror is bound one-to-one with a target's local repository path. It is
cloned on first use and re-opened afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

CORE_CONFIG_SECTION = "core"
BIG_FILE_THRESHOLD_CONFIG_PARAM = "bigFileThreshold"
COMPRESSION_CONFIG_PARAM = "compression"
FILE_MODE_CONFIG_PARAM = "fileMode"

BIG_FILE_THRESHOLD_DEFAULT = "20m"
COMPRESSION_DEFAULT = 0
FILE_MODE_DEFAULT = False

DEFAULT_REMOTE_NAME = "origin"


@dataclass(frozen=True)
class LocalMirror:
    """Where a mirror lives and what it tracks."""

    path: Path
    remote_url: str
    branch: Optional[str] = None
    remote_name: str = DEFAULT_REMOTE_NAME

    # Persisted into .git/config after cloning
    big_file_threshold: Optional[str] = None
    compression: Optional[int] = None
    file_mode: Optional[bool] = None

    # Identity used for merge commits and rebased commits
    committer_name: str = "Site Deployer"
    committer_email: str = "deployer@localhost"

    def tunables(self) -> Dict[str, str]:
        """The core.* settings to write, with defaults applied."""
        threshold = self.big_file_threshold or BIG_FILE_THRESHOLD_DEFAULT
        compression = COMPRESSION_DEFAULT if self.compression is None else self.compression
        file_mode = FILE_MODE_DEFAULT if self.file_mode is None else self.file_mode

        return {
            f"{CORE_CONFIG_SECTION}.{BIG_FILE_THRESHOLD_CONFIG_PARAM}": str(threshold),
            f"{CORE_CONFIG_SECTION}.{COMPRESSION_CONFIG_PARAM}": str(int(compression)),
            f"{CORE_CONFIG_SECTION}.{FILE_MODE_CONFIG_PARAM}": "true" if file_mode else "false",
        }

    def upstream_ref(self, branch: Optional[str] = None) -> str:
        """Remote-tracking ref for a branch, e.g. origin/main."""
        return f"{self.remote_name}/{branch or self.branch}"
