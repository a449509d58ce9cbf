"""
Transport Retry — Re-run git operations that failed on the network.

Only ``SyncError.retryable`` errors (TRANSPORT, not cancelled) are retried;
conflicts, local IO errors and configuration errors surface immediately.

## Usage

    from deployer.reliability.retry import retry_transport

    retry_transport(lambda: sync.fetch(cancel_token=token), max_attempts=3)

Backoff doubles after every attempt: 2s, 4s, 8s, ...
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from ..concurrency import CancellationToken
from ..exceptions import SyncError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 2.0


def retry_transport(
    fn: Callable[[], T],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
    cancel_token: Optional[CancellationToken] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``fn`` until it succeeds or a non-retryable error occurs.

    Raises the last SyncError once ``max_attempts`` is exhausted. A
    cancel token stops waiting between attempts.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 1
    while True:
        try:
            return fn()
        except SyncError as e:
            if not e.retryable or attempt >= max_attempts:
                raise
            delay = backoff_seconds * (2 ** (attempt - 1))
            logger.warning(
                f"[retry] {e.operation} failed (attempt {attempt}/{max_attempts}), retrying in {delay:.1f}s: {e.message}",
                extra={"target_id": e.target_id, "operation": e.operation},
            )
            if cancel_token is not None:
                if cancel_token.wait(delay):
                    raise
            else:
                sleep(delay)
            attempt += 1
