"""
Deployer Settings — Parse DEPLOYER_* environment variables.

Minimal config:
    DEPLOYER_TARGETS_DIR=targets
    DEPLOYER_REPOS_DIR=repos

Optional:
    DEPLOYER_GIT_TIMEOUT=300         # seconds per git operation
    DEPLOYER_LEDGER=logs/deployments.ndjson
    DEPLOYER_PERSIST_TARGETS=true    # write created targets to TARGETS_DIR
    DEPLOYER_API_HOST=127.0.0.1
    DEPLOYER_API_PORT=9191
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..git.runner import DEFAULT_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


@dataclass
class DeployerSettings:
    """Process-wide deployer settings."""

    targets_dir: Path = Path("targets")
    repos_dir: Path = Path("repos")
    git_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    ledger_path: Optional[Path] = Path("logs") / "deployments.ndjson"
    persist_targets: bool = True
    api_host: str = "127.0.0.1"
    api_port: int = 9191

    @classmethod
    def from_env(cls, root: Optional[Path] = None) -> "DeployerSettings":
        """Build settings from the environment, resolving paths against root."""
        root = Path(root) if root else Path.cwd()

        def _path(name: str, default: str) -> Path:
            path = Path(os.environ.get(name, default))
            return path if path.is_absolute() else root / path

        timeout = cls.git_timeout_seconds
        raw_timeout = os.environ.get("DEPLOYER_GIT_TIMEOUT")
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                logger.warning(f"DEPLOYER_GIT_TIMEOUT={raw_timeout!r} is not a number, using {timeout}s")

        port = cls.api_port
        raw_port = os.environ.get("DEPLOYER_API_PORT")
        if raw_port:
            try:
                port = int(raw_port)
            except ValueError:
                logger.warning(f"DEPLOYER_API_PORT={raw_port!r} is not a number, using {port}")

        ledger = os.environ.get("DEPLOYER_LEDGER", "logs/deployments.ndjson")

        return cls(
            targets_dir=_path("DEPLOYER_TARGETS_DIR", "targets"),
            repos_dir=_path("DEPLOYER_REPOS_DIR", "repos"),
            git_timeout_seconds=timeout,
            ledger_path=_path("DEPLOYER_LEDGER", ledger) if ledger else None,
            persist_targets=_env_bool("DEPLOYER_PERSIST_TARGETS", True),
            api_host=os.environ.get("DEPLOYER_API_HOST", cls.api_host),
            api_port=port,
        )
