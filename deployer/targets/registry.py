"""
Target Registry — Admit, look up and remove deployment targets.

Guarantees at most one live target per id. The uniqueness check and the
insert happen under one lock, so concurrent creations of the same id can
never both succeed.
"""

from __future__ import annotations

import logging
import shutil
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from ..concurrency import TargetLocks, target_locks
from ..config.loader import load_target_file, save_target_file
from ..exceptions import (
    ConfigError,
    ConfigErrorKind,
    DeployerError,
    TargetAlreadyExistsError,
    TargetNotFoundError,
)
from .models import Target, TargetConfig

logger = logging.getLogger(__name__)


class TargetRegistry:
    """
    In-memory registry of live targets.

    With a targets_dir and persist=True, created targets are also written
    as YAML and deleted targets removed, so the registry survives restarts
    via load_from_dir().
    """

    def __init__(
        self,
        targets_dir: Optional[Path] = None,
        repos_dir: Optional[Path] = None,
        persist: bool = False,
        locks: Optional[TargetLocks] = None,
    ):
        self.targets_dir = Path(targets_dir) if targets_dir else None
        self.repos_dir = Path(repos_dir) if repos_dir else None
        self.persist = persist and self.targets_dir is not None
        self._targets: Dict[str, Target] = {}
        self._lock = threading.Lock()
        self._locks = locks or target_locks

    def create_target(
        self,
        id: str,
        env: str,
        site_name: str,
        config: Union[TargetConfig, Mapping[str, Any]],
    ) -> Target:
        """
        Register a new target.

        Raises:
            TargetAlreadyExistsError: a live target already has this id. The
                error carries the identity of *this* attempt.
            ConfigError(INVALID_TARGET): config fails validation or no
                mirror path can be resolved
        """
        return self._create(id, env, site_name, config, persist=self.persist)

    def _create(
        self,
        id: str,
        env: str,
        site_name: str,
        config: Union[TargetConfig, Mapping[str, Any]],
        persist: bool,
    ) -> Target:
        target_config = self._validate_config(id, config)
        if not target_config.local_repo_path:
            if self.repos_dir is None:
                raise ConfigError(
                    ConfigErrorKind.INVALID_TARGET,
                    f"Target '{id}' has no local_repo_path and no repos directory is configured",
                    id,
                )
            target_config = target_config.model_copy(
                update={"local_repo_path": str(self.repos_dir / id)}
            )

        with self._lock:
            if id in self._targets:
                logger.warning(
                    f"Rejected duplicate target '{id}' (env={env}, site={site_name})",
                    extra={"target_id": id},
                )
                raise TargetAlreadyExistsError(id, env, site_name)

            target = Target(id=id, env=env, site_name=site_name, config=target_config)
            if persist:
                save_target_file(target, self.targets_dir)
            self._targets[id] = target

        logger.info(f"Target created: {id} (env={env}, site={site_name})", extra={"target_id": id})
        return target

    def get_target(self, target_id: str) -> Target:
        with self._lock:
            target = self._targets.get(target_id)
        if target is None:
            raise TargetNotFoundError(target_id)
        return target

    def has_target(self, target_id: str) -> bool:
        with self._lock:
            return target_id in self._targets

    def list_targets(self) -> List[Target]:
        with self._lock:
            return sorted(self._targets.values(), key=lambda t: t.id)

    def delete_target(self, target_id: str, delete_mirror: bool = False) -> Target:
        """Remove a target; optionally delete its local mirror too."""
        with self._lock:
            target = self._targets.pop(target_id, None)
            if target is None:
                raise TargetNotFoundError(target_id)
            if self.persist:
                (self.targets_dir / f"{target_id}.yaml").unlink(missing_ok=True)

        if delete_mirror and target.config.local_repo_path:
            with self._locks.hold(target_id):
                shutil.rmtree(target.local_repo_path, ignore_errors=True)
            logger.info(f"Deleted mirror {target.local_repo_path}", extra={"target_id": target_id})

        logger.info(f"Target deleted: {target_id}", extra={"target_id": target_id})
        return target

    def load_from_dir(self, targets_dir: Optional[Path] = None) -> List[Target]:
        """
        Register every targets/*.yaml file.

        Invalid files and duplicate ids are logged and skipped so one bad
        file doesn't keep the others from loading.
        """
        directory = Path(targets_dir) if targets_dir else self.targets_dir
        if directory is None or not directory.is_dir():
            logger.warning(f"Targets directory not found: {directory}")
            return []

        loaded: List[Target] = []
        for path in sorted(directory.glob("*.yaml")):
            try:
                definition = load_target_file(path, repos_dir=self.repos_dir)
                loaded.append(self._create(
                    definition.id,
                    definition.env,
                    definition.site_name,
                    definition.config,
                    persist=False,
                ))
            except TargetAlreadyExistsError as e:
                logger.warning(f"Skipping {path.name}: {e}")
            except DeployerError as e:
                logger.error(f"Skipping {path.name}: {e}")

        logger.info(f"Loaded {len(loaded)} target(s) from {directory}")
        return loaded

    @staticmethod
    def _validate_config(target_id: str, config: Union[TargetConfig, Mapping[str, Any]]) -> TargetConfig:
        if isinstance(config, TargetConfig):
            return config
        try:
            return TargetConfig(**dict(config))
        except ValidationError as e:
            raise ConfigError(
                ConfigErrorKind.INVALID_TARGET,
                f"Invalid configuration for target '{target_id}'",
                target_id,
                errors=e.errors(include_url=False),
            ) from e
