"""
Git Authentication — Pluggable credential providers.

A credential provider configures a remote ``GitOperation`` (clone, fetch,
pull, push) before it runs. The synchronizer never knows which scheme is
in use.

Schemes:
- none:  anonymous access
- token: HTTP(S) token sent as a basic-auth header
- basic: HTTP(S) username/password
- ssh:   private key file through GIT_SSH_COMMAND
"""

from __future__ import annotations

import base64
import logging
import shlex
from abc import ABC, abstractmethod
from typing import Any, Optional

from .runner import GitOperation

logger = logging.getLogger(__name__)


class CredentialProvider(ABC):
    """Configures authentication for a remote git operation."""

    @abstractmethod
    def configure(self, operation: GitOperation) -> None:
        pass


class AnonymousAuth(CredentialProvider):
    def configure(self, operation: GitOperation) -> None:
        # Never fall back to an interactive prompt
        operation.env["GIT_TERMINAL_PROMPT"] = "0"


class BasicAuth(CredentialProvider):
    """Username/password over HTTP(S)."""

    def __init__(self, username: str, password: str):
        self.username = username
        self.password = password

    def configure(self, operation: GitOperation) -> None:
        raw = f"{self.username}:{self.password}"
        encoded = base64.b64encode(raw.encode("utf-8")).decode("ascii")
        operation.config["http.extraHeader"] = f"Authorization: Basic {encoded}"
        operation.env["GIT_TERMINAL_PROMPT"] = "0"
        operation.secrets.extend([self.password, encoded])


class TokenAuth(BasicAuth):
    """Access token over HTTP(S) (GitHub/GitLab style)."""

    def __init__(self, token: str, username: str = "x-access-token"):
        super().__init__(username, token)


class SshKeyAuth(CredentialProvider):
    """Private key authentication for ssh:// and scp-style URLs."""

    def __init__(self, private_key_path: str, strict_host_key_checking: bool = True):
        self.private_key_path = private_key_path
        self.strict_host_key_checking = strict_host_key_checking

    def configure(self, operation: GitOperation) -> None:
        strict = "yes" if self.strict_host_key_checking else "no"
        operation.env["GIT_SSH_COMMAND"] = (
            f"ssh -i {shlex.quote(self.private_key_path)} "
            f"-o IdentitiesOnly=yes -o BatchMode=yes -o StrictHostKeyChecking={strict}"
        )


def credentials_from_config(auth: Any) -> Optional[CredentialProvider]:
    """
    Build a provider from a target's ``remote_repo.auth`` block.

    Returns None when no auth block is configured.
    """
    if auth is None:
        return None

    auth_type = auth.type
    if auth_type == "none":
        return AnonymousAuth()
    if auth_type == "token":
        return TokenAuth(auth.token, username=auth.username or "x-access-token")
    if auth_type == "basic":
        return BasicAuth(auth.username, auth.password)
    if auth_type == "ssh":
        return SshKeyAuth(
            auth.private_key_path,
            strict_host_key_checking=auth.strict_host_key_checking,
        )

    raise ValueError(f"Unknown git auth type '{auth_type}'")
