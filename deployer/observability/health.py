"""
Health Check — Deployer health status for monitoring.

Provides a structured health check with component status.

## Usage

    from deployer.observability.health import HealthChecker

    checker = HealthChecker(settings, registry)
    status = checker.check()

    if status.healthy:
        print("All systems operational")
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config.settings import DeployerSettings
from ..targets.registry import TargetRegistry

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single component."""

    name: str
    status: HealthStatus
    message: str = ""
    latency_ms: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SystemHealth:
    """Overall deployer health status."""

    status: HealthStatus
    timestamp: str
    uptime_seconds: float
    components: List[ComponentHealth]

    @property
    def healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp,
            "uptime_seconds": self.uptime_seconds,
            "healthy": self.healthy,
            "components": [
                {
                    "name": c.name,
                    "status": c.status.value,
                    "message": c.message,
                    "latency_ms": c.latency_ms,
                    "details": c.details,
                }
                for c in self.components
            ],
        }


class HealthChecker:
    """
    Deployer health checker.

    Checks the git executable, the configured directories and every
    registered target's mirror, and provides an aggregate status.
    """

    def __init__(
        self,
        settings: Optional[DeployerSettings] = None,
        registry: Optional[TargetRegistry] = None,
    ):
        self.settings = settings or DeployerSettings()
        self.registry = registry
        self._start_time = time.time()

    def check(self) -> SystemHealth:
        """Run all health checks and return status."""
        components = [
            self._check_git(),
            self._check_directory("targets_dir", self.settings.targets_dir, HealthStatus.DEGRADED),
            self._check_directory("repos_dir", self.settings.repos_dir, HealthStatus.DEGRADED),
            self._check_mirrors(),
        ]

        statuses = [c.status for c in components]
        if HealthStatus.UNHEALTHY in statuses:
            overall = HealthStatus.UNHEALTHY
        elif HealthStatus.DEGRADED in statuses:
            overall = HealthStatus.DEGRADED
        else:
            overall = HealthStatus.HEALTHY

        return SystemHealth(
            status=overall,
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            uptime_seconds=time.time() - self._start_time,
            components=components,
        )

    def _check_git(self) -> ComponentHealth:
        """The git executable must be on PATH."""
        start = time.time()
        git = shutil.which("git")
        if git is None:
            return ComponentHealth(
                name="git",
                status=HealthStatus.UNHEALTHY,
                message="git executable not found on PATH",
            )
        try:
            result = subprocess.run([git, "--version"], capture_output=True, text=True, timeout=10)
        except (OSError, subprocess.TimeoutExpired) as e:
            return ComponentHealth(
                name="git",
                status=HealthStatus.UNHEALTHY,
                message=f"git --version failed: {e}",
            )
        return ComponentHealth(
            name="git",
            status=HealthStatus.HEALTHY if result.returncode == 0 else HealthStatus.UNHEALTHY,
            message=result.stdout.strip() or result.stderr.strip(),
            latency_ms=(time.time() - start) * 1000,
            details={"path": git},
        )

    @staticmethod
    def _check_directory(name: str, path: Path, missing: HealthStatus) -> ComponentHealth:
        if not path.exists():
            return ComponentHealth(name=name, status=missing, message=f"{path} not found")
        if not path.is_dir():
            return ComponentHealth(name=name, status=HealthStatus.UNHEALTHY, message=f"{path} is not a directory")
        return ComponentHealth(
            name=name,
            status=HealthStatus.HEALTHY,
            message=f"{path} accessible",
            details={"path": str(path)},
        )

    def _check_mirrors(self) -> ComponentHealth:
        """Targets whose mirror has not been cloned yet degrade the status."""
        if self.registry is None:
            return ComponentHealth(name="mirrors", status=HealthStatus.HEALTHY, message="No registry attached")

        targets = self.registry.list_targets()
        missing = []
        for target in targets:
            path = target.config.local_repo_path
            if not path or not (Path(path) / ".git").exists():
                missing.append(target.id)

        details = {"targets": len(targets), "missing": missing}
        if missing:
            return ComponentHealth(
                name="mirrors",
                status=HealthStatus.DEGRADED,
                message=f"{len(missing)} of {len(targets)} mirror(s) not cloned",
                details=details,
            )
        return ComponentHealth(
            name="mirrors",
            status=HealthStatus.HEALTHY,
            message=f"{len(targets)} mirror(s) present",
            details=details,
        )
