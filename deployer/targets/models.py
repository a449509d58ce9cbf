"""
Target Models — Pydantic schemas for target configuration.

A target file (targets/<id>.yaml) defines:
- identity: env + site_name (id defaults to "{site_name}-{env}")
- remote_repo: where the content repository lives and how to authenticate
- git_config: core.* tunables written into the mirror after cloning
- deployment.pipeline: ordered processor chain
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..git.mirror import (
    BIG_FILE_THRESHOLD_DEFAULT,
    COMPRESSION_DEFAULT,
    DEFAULT_REMOTE_NAME,
    FILE_MODE_DEFAULT,
    LocalMirror,
)


# --- Remote repository ---


class AuthConfig(BaseModel):
    """Credentials for the remote repository."""

    type: Literal["none", "token", "basic", "ssh"] = "none"
    username: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    private_key_path: Optional[str] = None
    strict_host_key_checking: bool = True

    @model_validator(mode="after")
    def _check_required(self) -> "AuthConfig":
        required = {
            "token": ["token"],
            "basic": ["username", "password"],
            "ssh": ["private_key_path"],
        }.get(self.type, [])
        missing = [name for name in required if not getattr(self, name)]
        if missing:
            raise ValueError(f"auth type '{self.type}' requires: {', '.join(missing)}")
        return self


class RemoteRepoConfig(BaseModel):
    url: str
    branch: Optional[str] = None
    name: str = DEFAULT_REMOTE_NAME
    auth: Optional[AuthConfig] = None


class GitConfig(BaseModel):
    """core.* settings persisted into the mirror's .git/config."""

    big_file_threshold: str = BIG_FILE_THRESHOLD_DEFAULT
    compression: int = Field(default=COMPRESSION_DEFAULT, ge=0, le=9)
    file_mode: bool = FILE_MODE_DEFAULT


# --- Pipeline ---


class ProcessorSpec(BaseModel):
    """One pipeline entry: a processor name plus its parameter block."""

    model_config = ConfigDict(frozen=True)

    name: str
    params: Dict[str, Any] = Field(default_factory=dict)


class DeploymentConfig(BaseModel):
    pipeline: List[ProcessorSpec] = Field(default_factory=list)


# --- Target ---


class TargetConfig(BaseModel):
    """Everything about a target except its identity."""

    local_repo_path: Optional[str] = None
    remote_repo: RemoteRepoConfig
    git_config: GitConfig = Field(default_factory=GitConfig)
    git_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    deployment: DeploymentConfig = Field(default_factory=DeploymentConfig)

    def fingerprint(self) -> str:
        """Stable hash of the configuration, used to detect changes."""
        payload = json.dumps(self.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


class Target(BaseModel):
    """A registered deployment target. Identity fields never change."""

    model_config = ConfigDict(frozen=True)

    id: str
    env: str
    site_name: str
    config: TargetConfig
    created_at_iso: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )

    @staticmethod
    def build_id(site_name: str, env: str) -> str:
        return f"{site_name}-{env}"

    @property
    def local_repo_path(self) -> Path:
        if not self.config.local_repo_path:
            raise ValueError(f"Target '{self.id}' has no local_repo_path")
        return Path(self.config.local_repo_path)

    def local_mirror(self) -> LocalMirror:
        remote = self.config.remote_repo
        git_config = self.config.git_config
        return LocalMirror(
            path=self.local_repo_path,
            remote_url=remote.url,
            branch=remote.branch,
            remote_name=remote.name,
            big_file_threshold=git_config.big_file_threshold,
            compression=git_config.compression,
            file_mode=git_config.file_mode,
        )

    def identity(self) -> Dict[str, str]:
        return {"id": self.id, "env": self.env, "site_name": self.site_name}
