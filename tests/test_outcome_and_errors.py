"""
Tests for sync outcomes, errors and concurrency primitives.
"""

from __future__ import annotations

import threading

import pytest

from deployer.concurrency import CancellationToken, TargetLocks
from deployer.exceptions import (
    ConfigError,
    ConfigErrorKind,
    ProcessorFailure,
    SyncError,
    SyncErrorKind,
    TargetAlreadyExistsError,
)
from deployer.git.mirror import LocalMirror
from deployer.git.outcome import SyncOutcome, SyncOutcomeKind


class TestSyncOutcome:

    def test_up_to_date_is_ok_and_unchanged(self):
        outcome = SyncOutcome.up_to_date("abc")

        assert outcome.ok
        assert not outcome.changed
        assert outcome.raise_for_failure() is outcome

    def test_fast_forward_changed(self):
        outcome = SyncOutcome.fast_forwarded("def", "abc")

        assert outcome.changed
        assert outcome.to_dict()["kind"] == "fast_forwarded"

    def test_failed_reraises_cause(self):
        cause = SyncError(SyncErrorKind.TRANSPORT, "fetch", "boom", target_id="t")
        outcome = SyncOutcome.failed(cause, "abc")

        assert not outcome.ok
        with pytest.raises(SyncError) as exc:
            outcome.raise_for_failure()
        assert exc.value is cause

    def test_conflict_becomes_conflict_error(self):
        outcome = SyncOutcome.conflict(["a.md", "b.md"], "abc", operation="merge")

        with pytest.raises(SyncError) as exc:
            outcome.raise_for_failure("site-dev")

        assert exc.value.kind == SyncErrorKind.CONFLICT
        assert exc.value.operation == "merge"
        assert exc.value.target_id == "site-dev"
        assert "a.md" in exc.value.cause
        assert not exc.value.retryable


class TestErrors:

    def test_sync_error_retryable_only_for_transport(self):
        assert SyncError(SyncErrorKind.TRANSPORT, "fetch", "x").retryable
        assert not SyncError(SyncErrorKind.IO, "reset", "x").retryable
        assert not SyncError(SyncErrorKind.TRANSPORT, "fetch", "x", cancelled=True).retryable

    def test_target_already_exists_carries_identity(self):
        error = TargetAlreadyExistsError("site-dev", "dev", "site")

        assert error.to_dict()["env"] == "dev"
        assert error.site_name == "site"

    def test_config_error_dict(self):
        error = ConfigError(ConfigErrorKind.UNKNOWN_PROCESSOR, "nope", "t", processor="x")

        data = error.to_dict()
        assert data["kind"] == "unknown_processor"
        assert data["processor"] == "x"

    def test_processor_failure_defaults_to_fatal(self):
        assert ProcessorFailure("x").recoverable is False


class TestLocalMirror:

    def test_tunables_defaults(self, tmp_path):
        mirror = LocalMirror(path=tmp_path, remote_url="u")

        assert mirror.tunables() == {
            "core.bigFileThreshold": "20m",
            "core.compression": "0",
            "core.fileMode": "false",
        }

    def test_upstream_ref(self, tmp_path):
        mirror = LocalMirror(path=tmp_path, remote_url="u", branch="main", remote_name="up")

        assert mirror.upstream_ref() == "up/main"
        assert mirror.upstream_ref("dev") == "up/dev"


class TestTargetLocks:

    def test_reentrant(self):
        locks = TargetLocks()
        with locks.hold("t"):
            with locks.hold("t"):
                pass

    def test_timeout_when_held_elsewhere(self):
        locks = TargetLocks()
        acquired = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold("t"):
                acquired.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        acquired.wait(5)
        try:
            with pytest.raises(TimeoutError):
                with locks.hold("t", timeout=0.05):
                    pass
            with locks.hold("other", timeout=0.05):
                pass
        finally:
            release.set()
            thread.join()


class TestCancellationToken:

    def test_cancel(self):
        token = CancellationToken()
        assert not token.cancelled

        token.cancel("shutdown")

        assert token.cancelled
        assert token.reason == "shutdown"
        assert token.wait(0) is True
