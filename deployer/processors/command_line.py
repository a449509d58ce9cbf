"""
Command Line Processor — Run a shell command inside the mirror.

The command runs with the mirror as working directory and receives the
deployment in its environment:

    DEPLOYER_TARGET_ID, DEPLOYER_DEPLOYMENT_ID, DEPLOYER_REPO_PATH,
    DEPLOYER_PREVIOUS_COMMIT, DEPLOYER_CURRENT_COMMIT,
    DEPLOYER_CHANGED_FILES (count)

## Parameters

    command: command line, split with shlex (no shell)
    timeout_seconds: kill the command after this long (default: 300)
    env: extra environment variables
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from typing import Dict

from pydantic import Field, field_validator

from ..exceptions import ProcessorFailure
from ..pipeline.context import DeploymentContext
from .base import Processor, ProcessorParams, ProcessorResult

logger = logging.getLogger(__name__)

OUTPUT_TAIL_CHARS = 2000


class CommandLineParams(ProcessorParams):
    command: str
    timeout_seconds: float = Field(default=300, gt=0)
    env: Dict[str, str] = Field(default_factory=dict)

    @field_validator("command")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not shlex.split(v):
            raise ValueError("command must not be empty")
        return v


class CommandLineProcessor(Processor):
    name = "command-line"
    params_model = CommandLineParams

    def execute(self, context: DeploymentContext) -> ProcessorResult:
        argv = shlex.split(self.params.command)
        cwd = context.target.local_repo_path
        logger.info(f"Running: {self.params.command}", extra=context.log_extra(self.label))

        try:
            result = subprocess.run(
                argv,
                cwd=cwd if cwd.is_dir() else None,
                env=self._environment(context),
                capture_output=True,
                text=True,
                timeout=self.params.timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            raise ProcessorFailure(
                f"Command timed out after {self.params.timeout_seconds}s",
                processor=self.name,
                target_id=context.target_id,
                cause=e,
            ) from e
        except OSError as e:
            raise ProcessorFailure(
                f"Command could not be started: {e}",
                processor=self.name,
                target_id=context.target_id,
                cause=e,
            ) from e

        stdout = result.stdout[-OUTPUT_TAIL_CHARS:]
        stderr = result.stderr[-OUTPUT_TAIL_CHARS:]
        if result.returncode != 0:
            raise ProcessorFailure(
                f"Command exited with {result.returncode}: {stderr.strip() or stdout.strip()}",
                processor=self.name,
                target_id=context.target_id,
            )
        return ProcessorResult.ok(returncode=result.returncode, stdout=stdout, stderr=stderr)

    def _environment(self, context: DeploymentContext) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(
            {
                "DEPLOYER_TARGET_ID": context.target_id,
                "DEPLOYER_DEPLOYMENT_ID": context.deployment_id,
                "DEPLOYER_REPO_PATH": str(context.target.local_repo_path),
                "DEPLOYER_PREVIOUS_COMMIT": context.previous_commit or "",
                "DEPLOYER_CURRENT_COMMIT": context.current_commit or "",
                "DEPLOYER_CHANGED_FILES": str(context.change_set.total),
            }
        )
        env.update(self.params.env)
        return env
