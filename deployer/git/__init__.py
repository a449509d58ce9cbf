"""
Git Integration — Drive the git executable against target mirrors.
"""

from .auth import (
    AnonymousAuth,
    BasicAuth,
    CredentialProvider,
    SshKeyAuth,
    TokenAuth,
    credentials_from_config,
)
from .mirror import LocalMirror
from .outcome import SyncOutcome, SyncOutcomeKind
from .sync import GitSynchronizer, PushResult

__all__ = [
    "AnonymousAuth",
    "BasicAuth",
    "CredentialProvider",
    "GitSynchronizer",
    "LocalMirror",
    "PushResult",
    "SshKeyAuth",
    "SyncOutcome",
    "SyncOutcomeKind",
    "TokenAuth",
    "credentials_from_config",
]
