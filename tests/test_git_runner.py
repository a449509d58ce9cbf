"""
Tests for the git runner and credential providers.
"""

from __future__ import annotations

import base64
import subprocess
import time
from unittest.mock import MagicMock, patch

import pytest

from deployer.concurrency import CancellationToken
from deployer.git.auth import (
    AnonymousAuth,
    BasicAuth,
    SshKeyAuth,
    TokenAuth,
    credentials_from_config,
)
from deployer.git.runner import GitOperation, GitResult, run_git
from deployer.targets.models import AuthConfig


class TestGitOperation:

    def test_argv_places_config_before_command(self):
        op = GitOperation("fetch", ["origin"], config={"http.extraHeader": "X: 1"})

        assert op.argv() == ["git", "-c", "http.extraHeader=X: 1", "fetch", "origin"]

    def test_describe_redacts_secrets(self):
        op = GitOperation("clone", ["https://example.com/repo.git"], config={"http.extraHeader": "token s3cret"})
        op.secrets.append("s3cret")

        assert "s3cret" not in op.describe()
        assert "***" in op.describe()


class TestRunGit:

    def _proc(self, returncode=0, stdout="", stderr=""):
        proc = MagicMock()
        proc.returncode = returncode
        proc.communicate.return_value = (stdout, stderr)
        return proc

    def test_success(self, tmp_path):
        proc = self._proc(stdout="abc123\n")
        with patch("deployer.git.runner.subprocess.Popen", return_value=proc) as popen:
            result = run_git(GitOperation("rev-parse", ["HEAD"]), cwd=tmp_path)

        assert result.ok
        assert result.stdout == "abc123\n"
        assert popen.call_args[0][0] == ["git", "rev-parse", "HEAD"]
        assert popen.call_args[1]["env"]["GIT_TERMINAL_PROMPT"] == "0"

    def test_failure_output_is_redacted(self, tmp_path):
        proc = self._proc(returncode=128, stderr="fatal: auth failed for s3cret")
        op = GitOperation("fetch", ["origin"], secrets=["s3cret"], remote=True)
        with patch("deployer.git.runner.subprocess.Popen", return_value=proc):
            result = run_git(op, cwd=tmp_path)

        assert not result.ok
        assert result.returncode == 128
        assert result.output == "fatal: auth failed for ***"

    def test_timeout_kills_process(self, tmp_path):
        proc = MagicMock()

        def communicate(timeout=None):
            if proc.kill.called:
                return ("", "")
            time.sleep(timeout or 0)
            raise subprocess.TimeoutExpired("git", timeout)

        proc.communicate.side_effect = communicate
        with patch("deployer.git.runner.subprocess.Popen", return_value=proc):
            result = run_git(GitOperation("fetch", ["origin"]), cwd=tmp_path, timeout=0.01)

        assert result.timed_out
        assert not result.ok
        proc.kill.assert_called_once()

    def test_cancellation_kills_process(self, tmp_path):
        token = CancellationToken()
        proc = MagicMock()

        def communicate(timeout=None):
            if not proc.kill.called:
                token.cancel("stop")
                raise subprocess.TimeoutExpired("git", timeout)
            return ("", "")

        proc.communicate.side_effect = communicate
        with patch("deployer.git.runner.subprocess.Popen", return_value=proc):
            result = run_git(GitOperation("fetch", ["origin"]), cwd=tmp_path, timeout=None, cancel_token=token)

        assert result.cancelled
        proc.kill.assert_called_once()

    def test_already_cancelled_never_starts(self, tmp_path):
        token = CancellationToken()
        token.cancel()
        with patch("deployer.git.runner.subprocess.Popen") as popen:
            result = run_git(GitOperation("fetch"), cwd=tmp_path, cancel_token=token)

        assert result.cancelled
        popen.assert_not_called()

    def test_missing_executable(self, tmp_path):
        with patch("deployer.git.runner.subprocess.Popen", side_effect=FileNotFoundError("git")):
            result = run_git(GitOperation("status"), cwd=tmp_path)

        assert result.returncode == 127
        assert not result.ok


class TestGitResult:

    def test_output_prefers_stderr(self):
        assert GitResult("x", 1, stdout="out", stderr="err\n").output == "err"
        assert GitResult("x", 0, stdout="out\n").output == "out"


class TestCredentialProviders:

    def test_token_sets_basic_auth_header(self):
        op = GitOperation("fetch", remote=True)
        TokenAuth("tok123").configure(op)

        header = op.config["http.extraHeader"]
        encoded = header.split("Basic ")[1]
        assert base64.b64decode(encoded).decode() == "x-access-token:tok123"
        assert "tok123" in op.secrets
        assert op.env["GIT_TERMINAL_PROMPT"] == "0"

    def test_basic_auth(self):
        op = GitOperation("fetch", remote=True)
        BasicAuth("alice", "pw").configure(op)

        encoded = op.config["http.extraHeader"].split("Basic ")[1]
        assert base64.b64decode(encoded).decode() == "alice:pw"

    def test_ssh_key_sets_ssh_command(self):
        op = GitOperation("fetch", remote=True)
        SshKeyAuth("/keys/deploy key", strict_host_key_checking=False).configure(op)

        command = op.env["GIT_SSH_COMMAND"]
        assert "-i '/keys/deploy key'" in command
        assert "StrictHostKeyChecking=no" in command

    def test_anonymous_disables_prompt(self):
        op = GitOperation("fetch", remote=True)
        AnonymousAuth().configure(op)

        assert op.env == {"GIT_TERMINAL_PROMPT": "0"}
        assert op.config == {}


class TestCredentialsFromConfig:

    def test_none_when_no_auth(self):
        assert credentials_from_config(None) is None

    @pytest.mark.parametrize(
        "auth, expected",
        [
            ({"type": "none"}, AnonymousAuth),
            ({"type": "token", "token": "t"}, TokenAuth),
            ({"type": "basic", "username": "u", "password": "p"}, BasicAuth),
            ({"type": "ssh", "private_key_path": "/k"}, SshKeyAuth),
        ],
    )
    def test_maps_type_to_provider(self, auth, expected):
        assert type(credentials_from_config(AuthConfig(**auth))) is expected

    def test_token_username_override(self):
        provider = credentials_from_config(AuthConfig(type="token", token="t", username="oauth2"))
        assert provider.username == "oauth2"

    def test_missing_fields_rejected(self):
        with pytest.raises(ValueError):
            AuthConfig(type="basic", username="u")
