"""
Target Config Loader — Load and validate target YAML files.

File format (targets/<id>.yaml):

    target:
      env: dev
      site_name: editorial
      remote_repo:
        url: https://git.example.com/editorial.git
        branch: main
        auth: {type: token, token: "${GIT_TOKEN}"}
      deployment:
        pipeline:
          - name: git-pull
          - name: git-diff

``${VAR}`` placeholders in string values are expanded from the environment.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from ..exceptions import ConfigError, ConfigErrorKind
from ..targets.models import Target, TargetConfig

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")

IDENTITY_KEYS = ("id", "env", "site_name")


@dataclass
class TargetDefinition:
    """A parsed target file: identity plus validated config."""

    id: str
    env: str
    site_name: str
    config: TargetConfig


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return its contents."""
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def expand_placeholders(value: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} in strings."""
    if isinstance(value, str):
        def _sub(match: "re.Match[str]") -> str:
            name, default = match.group(1), match.group(2)
            resolved = os.environ.get(name)
            if resolved is None:
                if default is None:
                    logger.warning(f"Environment variable {name} is not set")
                    return ""
                return default
            return resolved
        return _PLACEHOLDER.sub(_sub, value)
    if isinstance(value, dict):
        return {k: expand_placeholders(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_placeholders(v) for v in value]
    return value


def parse_target(
    data: Dict[str, Any],
    target_id: Optional[str] = None,
    repos_dir: Optional[Path] = None,
) -> TargetDefinition:
    """
    Validate a target document.

    Args:
        data: Parsed YAML (with or without the top-level "target" key)
        target_id: Id to use when the document doesn't declare one
        repos_dir: Base directory for the mirror when local_repo_path is unset

    Raises:
        ConfigError(INVALID_TARGET): on missing identity or schema errors
    """
    body = data.get("target", data) if isinstance(data, dict) else None
    if not isinstance(body, dict):
        raise ConfigError(ConfigErrorKind.INVALID_TARGET, "Target document must be a mapping", target_id)

    body = expand_placeholders(dict(body))
    env = body.pop("env", None)
    site_name = body.pop("site_name", None)
    declared_id = body.pop("id", None)

    if not env or not site_name:
        raise ConfigError(
            ConfigErrorKind.INVALID_TARGET,
            "Target requires 'env' and 'site_name'",
            target_id or declared_id,
        )

    resolved_id = declared_id or target_id or Target.build_id(site_name, env)

    try:
        config = TargetConfig(**body)
    except ValidationError as e:
        raise ConfigError(
            ConfigErrorKind.INVALID_TARGET,
            f"Invalid configuration for target '{resolved_id}'",
            resolved_id,
            errors=e.errors(include_url=False),
        ) from e

    if not config.local_repo_path and repos_dir is not None:
        config = config.model_copy(update={"local_repo_path": str(Path(repos_dir) / resolved_id)})

    return TargetDefinition(id=resolved_id, env=str(env), site_name=str(site_name), config=config)


def load_target_file(path: Path, repos_dir: Optional[Path] = None) -> TargetDefinition:
    """Load targets/<id>.yaml; the file stem is the default target id."""
    try:
        data = load_yaml(path)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(
            ConfigErrorKind.INVALID_TARGET,
            f"Cannot read target file {path}: {e}",
            path.stem,
        ) from e
    return parse_target(data, target_id=path.stem, repos_dir=repos_dir)


def dump_target(target: Target) -> Dict[str, Any]:
    """Inverse of parse_target, for persisting created targets."""
    body: Dict[str, Any] = {key: getattr(target, key) for key in IDENTITY_KEYS}
    body.update(target.config.model_dump(mode="json", exclude_none=True))
    return {"target": body}


def save_target_file(target: Target, targets_dir: Path) -> Path:
    """Write a target to targets_dir/<id>.yaml (atomic rename)."""
    targets_dir.mkdir(parents=True, exist_ok=True)
    path = targets_dir / f"{target.id}.yaml"
    temp_path = path.with_suffix(".tmp")

    with temp_path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(dump_target(target), f, sort_keys=False)

    temp_path.replace(path)
    logger.debug(f"Target saved → {path}")
    return path
