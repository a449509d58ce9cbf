"""
Git Runner — Execute git commands with timeouts and cancellation.

Every git invocation in the deployer goes through ``run_git``. The command is
described by a ``GitOperation`` so credential providers can adjust it
(extra ``-c`` config, environment) before it runs.

Secrets registered on the operation are masked in logs and captured output.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..concurrency import CancellationToken

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300
POLL_INTERVAL_SECONDS = 0.2
REDACTED = "***"


@dataclass
class GitOperation:
    """A git command being prepared for execution."""

    command: str                          # e.g. "clone", "fetch", "push"
    args: List[str] = field(default_factory=list)
    config: Dict[str, str] = field(default_factory=dict)  # passed as -c key=value
    env: Dict[str, str] = field(default_factory=dict)
    secrets: List[str] = field(default_factory=list)
    remote: bool = False                  # talks to a remote repository

    def argv(self) -> List[str]:
        cmd = ["git"]
        for key, value in self.config.items():
            cmd.extend(["-c", f"{key}={value}"])
        cmd.append(self.command)
        cmd.extend(self.args)
        return cmd

    def redact(self, text: str) -> str:
        for secret in self.secrets:
            if secret:
                text = text.replace(secret, REDACTED)
        return text

    def describe(self) -> str:
        """Command line safe for logs."""
        return self.redact(" ".join(self.argv()))


@dataclass
class GitResult:
    """Outcome of a single git process."""

    command: str
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.cancelled

    @property
    def output(self) -> str:
        """Best single-line-ish description of what git said."""
        return self.stderr.strip() or self.stdout.strip()


def run_git(
    operation: GitOperation,
    cwd: Path,
    timeout: Optional[float] = DEFAULT_TIMEOUT_SECONDS,
    cancel_token: Optional[CancellationToken] = None,
) -> GitResult:
    """
    Run a git operation in ``cwd`` and wait for it.

    The process is killed when ``timeout`` elapses or ``cancel_token`` is
    cancelled; the returned result is flagged accordingly. Never raises for
    a failing git command: callers decide how to classify the failure.
    """
    described = operation.describe()

    if cancel_token is not None and cancel_token.cancelled:
        logger.info(f"[git] Not starting '{described}': cancelled")
        return GitResult(command=described, returncode=-1, cancelled=True)

    env = os.environ.copy()
    env.setdefault("GIT_TERMINAL_PROMPT", "0")
    env.update(operation.env)

    logger.debug(f"[git] {described} (cwd={cwd})")

    try:
        proc = subprocess.Popen(
            operation.argv(),
            cwd=str(cwd),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
    except OSError as e:
        logger.error(f"[git] Could not start '{described}': {e}")
        return GitResult(command=described, returncode=127, stderr=str(e))

    deadline = time.monotonic() + timeout if timeout else None

    while True:
        wait: Optional[float] = None
        if deadline is not None:
            wait = max(deadline - time.monotonic(), 0)
        if cancel_token is not None:
            wait = POLL_INTERVAL_SECONDS if wait is None else min(wait, POLL_INTERVAL_SECONDS)

        try:
            stdout, stderr = proc.communicate(timeout=wait)
            break
        except subprocess.TimeoutExpired:
            if cancel_token is not None and cancel_token.cancelled:
                _kill(proc)
                logger.warning(f"[git] Cancelled '{described}'")
                return GitResult(command=described, returncode=-1, cancelled=True)
            if deadline is not None and time.monotonic() >= deadline:
                _kill(proc)
                logger.warning(f"[git] Timed out after {timeout}s: '{described}'")
                return GitResult(command=described, returncode=-1, timed_out=True)

    return GitResult(
        command=described,
        returncode=proc.returncode,
        stdout=operation.redact(stdout or ""),
        stderr=operation.redact(stderr or ""),
    )


def _kill(proc: subprocess.Popen) -> None:
    proc.kill()
    try:
        proc.communicate(timeout=5)
    except subprocess.TimeoutExpired:
        logger.error(f"[git] Process {proc.pid} did not exit after kill")
