"""
Shared fixtures for deployer tests.

Synchronizer tests run the real git executable against throwaway
repositories under tmp_path:

    origin.git   bare repository standing in for the remote
    upstream/    a second clone used to push "remote" changes
    mirror/      the target's local mirror (cloned by the code under test)
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from deployer.concurrency import TargetLocks
from deployer.git.mirror import LocalMirror
from deployer.git.sync import GitSynchronizer
from deployer.targets.models import Target, TargetConfig

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")


def git(cwd: Path, *args: str) -> str:
    """Run git in cwd and return stdout; fails the test on a non-zero exit."""
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
    )
    assert result.returncode == 0, f"git {' '.join(args)} failed: {result.stderr}"
    return result.stdout.strip()


def commit_file(repo: Path, name: str, content: str, message: Optional[str] = None) -> str:
    """Write a file, commit it and return the new HEAD."""
    path = repo / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    git(repo, "add", name)
    git(repo, "commit", "-q", "-m", message or f"update {name}")
    return git(repo, "rev-parse", "HEAD")


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate git from the user's configuration and give commits an identity."""
    global_config = tmp_path / "gitconfig"
    global_config.write_text("", encoding="utf-8")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test Author")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "author@example.com")


@pytest.fixture
def origin(tmp_path: Path, git_env: None) -> Path:
    """Bare remote with one commit on main (README.md)."""
    bare = tmp_path / "origin.git"
    git(tmp_path, "init", "-q", "--bare", "-b", "main", str(bare))

    seed = tmp_path / "seed"
    git(tmp_path, "init", "-q", "-b", "main", str(seed))
    commit_file(seed, "README.md", "hello\n", "initial")
    commit_file(seed, "docs/index.md", "# Docs\n", "docs")
    git(seed, "remote", "add", "origin", str(bare))
    git(seed, "push", "-q", "origin", "main")
    shutil.rmtree(seed)
    return bare


@pytest.fixture
def upstream(tmp_path: Path, origin: Path) -> Path:
    """A working clone of origin for simulating pushes by others."""
    path = tmp_path / "upstream"
    git(tmp_path, "clone", "-q", str(origin), str(path))
    return path


@pytest.fixture
def mirror(tmp_path: Path, origin: Path) -> LocalMirror:
    return LocalMirror(path=tmp_path / "repos" / "mirror", remote_url=str(origin), branch="main")


@pytest.fixture
def locks() -> TargetLocks:
    return TargetLocks()


@pytest.fixture
def synchronizer(mirror: LocalMirror, locks: TargetLocks) -> GitSynchronizer:
    return GitSynchronizer(mirror, target_id="site-test", timeout=60, locks=locks)


def make_target(
    tmp_path: Path,
    pipeline: Optional[List[Dict[str, Any]]] = None,
    remote_url: str = "https://git.example.com/site.git",
    target_id: str = "site-dev",
    local_repo_path: Optional[Path] = None,
) -> Target:
    """A Target with the given pipeline entries ({name, params})."""
    config = TargetConfig(
        local_repo_path=str(local_repo_path or tmp_path / "repos" / target_id),
        remote_repo={"url": remote_url, "branch": "main"},
        deployment={"pipeline": pipeline or []},
    )
    site_name, _, env = target_id.rpartition("-")
    return Target(id=target_id, env=env or "dev", site_name=site_name or target_id, config=config)
