"""
Git Synchronizer — Keep a target's local mirror in sync with its remote.

Owns every interaction with the mirror: open-or-clone, fetch, pull (merge
or rebase), push, hard reset, explicit merge and explicit rebase.

## Guarantees

- Every operation holds the target's lock for its whole duration, so git
  commands and pipeline runs against one mirror never overlap.
- Every git process runs with a timeout and honours a cancellation token.
- Integration conflicts are reported as ``SyncOutcome.conflict``; they are
  never auto-resolved. The half-finished merge/rebase is aborted so the
  mirror stays on its pre-integration commit.
- Remote failures raise ``SyncError(TRANSPORT)``, local ones ``SyncError(IO)``.

## Usage

    sync = GitSynchronizer(mirror, credentials=TokenAuth(token), target_id="site-dev")
    sync.open_or_clone()
    outcome = sync.pull(use_rebase=False)
    if outcome.kind == SyncOutcomeKind.CONFLICT:
        sync.reset(outcome.previous_commit_id)
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..concurrency import CancellationToken, TargetLocks, target_locks
from ..exceptions import SyncError, SyncErrorKind
from .auth import CredentialProvider
from .mirror import LocalMirror
from .outcome import SyncOutcome
from .runner import DEFAULT_TIMEOUT_SECONDS, GitOperation, GitResult, run_git

logger = logging.getLogger(__name__)


@dataclass
class RefUpdate:
    """One line of ``git push --porcelain`` output."""

    flag: str          # "*" new, " " fast-forward, "+" forced, "-" deleted, "=" up to date, "!" rejected
    source: str
    destination: str
    summary: str = ""

    @property
    def rejected(self) -> bool:
        return self.flag == "!"


@dataclass
class PushResult:
    remote: str
    updates: List[RefUpdate] = field(default_factory=list)

    @property
    def refs(self) -> List[str]:
        """Remote refs the push touched or confirmed."""
        return [u.destination for u in self.updates if not u.rejected]

    @property
    def up_to_date(self) -> bool:
        return all(u.flag == "=" for u in self.updates)


def parse_push_porcelain(output: str) -> List[RefUpdate]:
    updates = []
    for line in output.splitlines():
        if len(line) < 3 or line[1] != "\t":
            continue
        parts = line[2:].split("\t")
        source, _, destination = parts[0].partition(":")
        summary = parts[1] if len(parts) > 1 else ""
        updates.append(RefUpdate(line[0], source, destination, summary))
    return updates


class GitSynchronizer:
    """Synchronizes one local mirror with its remote repository."""

    def __init__(
        self,
        mirror: LocalMirror,
        credentials: Optional[CredentialProvider] = None,
        target_id: Optional[str] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT_SECONDS,
        locks: Optional[TargetLocks] = None,
    ):
        self.mirror = mirror
        self.credentials = credentials
        self.target_id = target_id
        self.timeout = timeout
        self._locks = locks or target_locks

    @property
    def path(self) -> Path:
        return Path(self.mirror.path)

    @property
    def lock_key(self) -> str:
        return self.target_id or str(self.path.resolve())

    # ─── Open / Clone ───────────────────────────────────────

    def open_or_clone(self, cancel_token: Optional[CancellationToken] = None) -> LocalMirror:
        """
        Open the mirror if it already holds a repository, otherwise clone it.

        Safe to call repeatedly: an existing mirror is never re-cloned, but
        its core settings are written again on every open. A repository
        left without commits by an interrupted clone is discarded and
        cloned afresh. A failed clone removes whatever it created.
        """
        with self._locks.hold(self.lock_key):
            if self.is_repository():
                if self._head_or_none() is not None:
                    self._configure()
                    logger.debug(f"[git] Opened existing mirror at {self.path}", extra=self._extra("open"))
                    return self.mirror
                self._discard_incomplete_clone()

            if self.path.exists() and (not self.path.is_dir() or any(self.path.iterdir())):
                raise self._error(
                    SyncErrorKind.IO,
                    "clone",
                    f"{self.path} exists and is not a git repository",
                )

            existed = self.path.exists()
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise self._error(SyncErrorKind.IO, "clone", f"Cannot create {self.path.parent}", str(e))

            args = []
            if self.mirror.branch:
                args.extend(["--branch", self.mirror.branch])
            args.extend(["--origin", self.mirror.remote_name, self.mirror.remote_url, str(self.path)])

            logger.info(
                f"[git] Cloning {self.mirror.remote_url} ({self.mirror.branch or 'default branch'}) into {self.path}",
                extra=self._extra("clone"),
            )
            try:
                result = self._run(GitOperation("clone", args, remote=True), cwd=self.path.parent, cancel_token=cancel_token)
                self._require(result, "clone")
                self._configure()
            except SyncError:
                self._remove_partial_clone(existed)
                raise

            logger.info(f"[git] Clone complete: {self._short(self._head())}", extra=self._extra("clone"))
            return self.mirror

    def is_repository(self) -> bool:
        """True when the mirror path is the top level of a git work tree."""
        if not self.path.is_dir():
            return False
        result = self._run(GitOperation("rev-parse", ["--show-toplevel"]))
        if not result.ok:
            return False
        return Path(result.stdout.strip()).resolve() == self.path.resolve()

    def is_cloned(self) -> bool:
        """True when the mirror is a repository with a resolvable HEAD."""
        with self._locks.hold(self.lock_key):
            return self.is_repository() and self._head_or_none() is not None

    # ─── Remote operations ──────────────────────────────────

    def fetch(self, cancel_token: Optional[CancellationToken] = None) -> None:
        """Retrieve remote refs without touching the working tree."""
        with self._locks.hold(self.lock_key):
            self._fetch(cancel_token)

    def pull(self, use_rebase: bool = False, cancel_token: Optional[CancellationToken] = None) -> SyncOutcome:
        """
        Fetch, then integrate the upstream branch by merge or rebase.

        Never raises for git failures: transport errors come back as
        ``SyncOutcome.failed`` and conflicts as ``SyncOutcome.conflict``.
        """
        with self._locks.hold(self.lock_key):
            previous = self._head_or_none()
            try:
                self._fetch(cancel_token)
                branch = self._branch()
            except SyncError as e:
                return SyncOutcome.failed(e, previous, operation="pull")
            return self._integrate(self.mirror.upstream_ref(branch), use_rebase, "pull", cancel_token)

    def push(
        self,
        remote: Optional[str] = None,
        push_all: bool = False,
        cancel_token: Optional[CancellationToken] = None,
    ) -> PushResult:
        """
        Push local commits.

        push_all=True pushes every local branch, otherwise only the
        configured branch.
        """
        remote = remote or self.mirror.remote_name
        with self._locks.hold(self.lock_key):
            if push_all:
                args = ["--porcelain", "--all", remote]
            else:
                args = ["--porcelain", remote, self._branch()]

            logger.info(
                f"[git] Pushing {'all branches' if push_all else self._branch()} to {remote}",
                extra=self._extra("push"),
            )
            result = self._run(GitOperation("push", args, remote=True), cancel_token=cancel_token)
            updates = parse_push_porcelain(result.stdout)
            if not result.ok:
                rejected = [u.destination for u in updates if u.rejected]
                detail = f"rejected: {', '.join(rejected)}" if rejected else result.output
                raise self._error(
                    SyncErrorKind.TRANSPORT,
                    "push",
                    f"Push to {remote} failed",
                    detail,
                    result,
                )

            push_result = PushResult(remote=remote, updates=updates)
            if push_result.up_to_date:
                logger.info(f"[git] {remote}: already up to date", extra=self._extra("push"))
            else:
                logger.info(f"[git] Pushed {', '.join(push_result.refs)} to {remote}", extra=self._extra("push"))
            return push_result

    # ─── Local operations ───────────────────────────────────

    def reset(self, commit_id: str, clean: bool = False) -> str:
        """
        Hard reset the mirror to exactly ``commit_id``.

        Discards all working tree and index changes. With clean=True,
        untracked files are removed as well. Returns the new HEAD.
        """
        with self._locks.hold(self.lock_key):
            verify = self._run(GitOperation("rev-parse", ["--verify", "--quiet", f"{commit_id}^{{commit}}"]))
            if not verify.ok:
                raise self._error(SyncErrorKind.IO, "reset", f"Unknown commit '{commit_id}'", verify.output, verify)

            logger.warning(f"[git] Hard reset to {self._short(commit_id)}", extra=self._extra("reset"))
            self._require(self._run(GitOperation("reset", ["--hard", verify.stdout.strip()])), "reset")
            if clean:
                self._require(self._run(GitOperation("clean", ["-fd"])), "reset")
            return self._head()

    def merge(self, branch: Optional[str] = None, cancel_token: Optional[CancellationToken] = None) -> SyncOutcome:
        """Merge the remote-tracking ref of ``branch`` without fetching first."""
        with self._locks.hold(self.lock_key):
            try:
                upstream = self.mirror.upstream_ref(branch or self._branch())
            except SyncError as e:
                return SyncOutcome.failed(e, self._head_or_none(), operation="merge")
            return self._integrate(upstream, False, "merge", cancel_token)

    def rebase(self, branch: Optional[str] = None, cancel_token: Optional[CancellationToken] = None) -> SyncOutcome:
        """Rebase the current branch onto the remote-tracking ref of ``branch``."""
        with self._locks.hold(self.lock_key):
            try:
                upstream = self.mirror.upstream_ref(branch or self._branch())
            except SyncError as e:
                return SyncOutcome.failed(e, self._head_or_none(), operation="rebase")
            return self._integrate(upstream, True, "rebase", cancel_token)

    # ─── Queries ────────────────────────────────────────────

    def head_commit(self) -> str:
        with self._locks.hold(self.lock_key):
            return self._head()

    def current_branch(self) -> str:
        with self._locks.hold(self.lock_key):
            return self._branch()

    def read_config(self, key: str) -> Optional[str]:
        result = self._run(GitOperation("config", ["--get", key]))
        return result.stdout.strip() if result.ok else None

    def diff(self, from_commit: str, to_commit: str = "HEAD") -> List[Tuple[str, str]]:
        """Changed paths between two commits as (status, path) pairs."""
        with self._locks.hold(self.lock_key):
            result = self._run(GitOperation("diff", ["--name-status", "--no-renames", from_commit, to_commit]))
            self._require(result, "diff")
            changes = []
            for line in result.stdout.splitlines():
                status, _, path = line.partition("\t")
                if path:
                    changes.append((status.strip()[:1], path))
            return changes

    def list_files(self, commit: str = "HEAD") -> List[str]:
        """All tracked files at a commit."""
        with self._locks.hold(self.lock_key):
            result = self._run(GitOperation("ls-tree", ["-r", "--name-only", commit]))
            self._require(result, "list")
            return [line for line in result.stdout.splitlines() if line]

    # ─── Internals ──────────────────────────────────────────

    def _fetch(self, cancel_token: Optional[CancellationToken]) -> None:
        remote = self.mirror.remote_name
        logger.debug(f"[git] Fetching {remote}", extra=self._extra("fetch"))
        result = self._run(GitOperation("fetch", [remote], remote=True), cancel_token=cancel_token)
        self._require(result, "fetch")

    def _integrate(
        self,
        upstream: str,
        use_rebase: bool,
        operation: str,
        cancel_token: Optional[CancellationToken],
    ) -> SyncOutcome:
        previous = self._head_or_none()

        resolved = self._run(GitOperation("rev-parse", ["--verify", "--quiet", f"{upstream}^{{commit}}"]))
        if not resolved.ok:
            cause = self._error(SyncErrorKind.IO, operation, f"Cannot resolve {upstream}", resolved.output, resolved)
            return SyncOutcome.failed(cause, previous, operation=operation)
        upstream_commit = resolved.stdout.strip()

        if previous == upstream_commit or (previous and self._is_ancestor(upstream_commit, previous)):
            logger.debug(f"[git] {operation}: up to date with {upstream}", extra=self._extra(operation))
            return SyncOutcome.up_to_date(previous, operation=operation)

        if previous and self._is_ancestor(previous, upstream_commit):
            result = self._run(GitOperation("merge", ["--ff-only", upstream_commit]), cancel_token=cancel_token)
            if not result.ok:
                return SyncOutcome.failed(self._failure(operation, result, SyncErrorKind.IO), previous, operation=operation)
            head = self._head()
            logger.info(
                f"[git] {operation}: fast-forwarded {self._short(previous)} → {self._short(head)}",
                extra=self._extra(operation),
            )
            return SyncOutcome.fast_forwarded(head, previous, operation=operation)

        if use_rebase:
            op = GitOperation("rebase", [upstream_commit], config=self._identity())
            abort = GitOperation("rebase", ["--abort"])
        else:
            op = GitOperation("merge", ["--no-edit", upstream_commit], config=self._identity())
            abort = GitOperation("merge", ["--abort"])

        result = self._run(op, cancel_token=cancel_token)
        if not result.ok:
            conflicts = self._conflicted_paths()
            self._run(abort)
            if conflicts:
                logger.warning(
                    f"[git] {operation}: {len(conflicts)} conflicting file(s) against {upstream}, aborted",
                    extra=self._extra(operation),
                )
                return SyncOutcome.conflict(conflicts, previous, operation=operation)
            return SyncOutcome.failed(self._failure(operation, result, SyncErrorKind.IO), previous, operation=operation)

        head = self._head()
        if use_rebase:
            logger.info(f"[git] {operation}: rebased onto {upstream} → {self._short(head)}", extra=self._extra(operation))
            return SyncOutcome.rebased(head, previous, operation=operation)
        logger.info(f"[git] {operation}: merged {upstream} → {self._short(head)}", extra=self._extra(operation))
        return SyncOutcome.merged(head, previous, operation=operation)

    def _configure(self) -> None:
        for key, value in self.mirror.tunables().items():
            self._require(self._run(GitOperation("config", [key, value])), "configure")

    def _discard_incomplete_clone(self) -> None:
        """Drop a commit-less repository so it can be cloned again."""
        if any(child.name != ".git" for child in self.path.iterdir()):
            raise self._error(
                SyncErrorKind.IO,
                "open",
                f"{self.path} holds a repository without commits and other files",
            )
        logger.warning(f"[git] Discarding incomplete clone at {self.path}", extra=self._extra("open"))
        try:
            shutil.rmtree(self.path / ".git")
        except OSError as e:
            raise self._error(SyncErrorKind.IO, "open", f"Cannot remove incomplete clone at {self.path}", str(e))

    def _remove_partial_clone(self, keep_dir: bool) -> None:
        if not self.path.exists():
            return
        try:
            if keep_dir:
                for child in self.path.iterdir():
                    if child.is_dir() and not child.is_symlink():
                        shutil.rmtree(child)
                    else:
                        child.unlink()
            else:
                shutil.rmtree(self.path)
        except OSError as e:
            logger.error(f"[git] Could not remove partial clone at {self.path}: {e}", extra=self._extra("clone"))

    def _conflicted_paths(self) -> List[str]:
        result = self._run(GitOperation("diff", ["--name-only", "--diff-filter=U"]))
        if not result.ok:
            return []
        return [line for line in result.stdout.splitlines() if line]

    def _is_ancestor(self, ancestor: str, descendant: str) -> bool:
        return self._run(GitOperation("merge-base", ["--is-ancestor", ancestor, descendant])).returncode == 0

    def _head(self) -> str:
        result = self._run(GitOperation("rev-parse", ["HEAD"]))
        self._require(result, "rev-parse")
        return result.stdout.strip()

    def _head_or_none(self) -> Optional[str]:
        result = self._run(GitOperation("rev-parse", ["--verify", "--quiet", "HEAD"]))
        return result.stdout.strip() if result.ok else None

    def _branch(self) -> str:
        if self.mirror.branch:
            return self.mirror.branch
        result = self._run(GitOperation("symbolic-ref", ["--short", "HEAD"]))
        self._require(result, "symbolic-ref")
        return result.stdout.strip()

    def _identity(self) -> Dict[str, str]:
        return {
            "user.name": self.mirror.committer_name,
            "user.email": self.mirror.committer_email,
        }

    def _run(
        self,
        operation: GitOperation,
        cwd: Optional[Path] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> GitResult:
        if operation.remote and self.credentials is not None:
            self.credentials.configure(operation)
        return run_git(
            operation,
            cwd=cwd or self.path,
            timeout=self.timeout,
            cancel_token=cancel_token,
        )

    def _require(self, result: GitResult, operation: str) -> None:
        if not result.ok:
            raise self._failure(operation, result)

    def _failure(
        self,
        operation: str,
        result: GitResult,
        kind: Optional[SyncErrorKind] = None,
    ) -> SyncError:
        if kind is None:
            remote_ops = ("clone", "fetch", "pull", "push")
            kind = SyncErrorKind.TRANSPORT if operation in remote_ops else SyncErrorKind.IO
        if result.cancelled:
            message = f"git {operation} cancelled"
        elif result.timed_out:
            message = f"git {operation} timed out after {self.timeout}s"
        else:
            message = f"git {operation} failed (exit {result.returncode})"
        return self._error(kind, operation, message, result.output, result)

    def _error(
        self,
        kind: SyncErrorKind,
        operation: str,
        message: str,
        cause: Optional[str] = None,
        result: Optional[GitResult] = None,
    ) -> SyncError:
        logger.error(f"[git] {message}: {cause or ''}".rstrip(": "), extra=self._extra(operation))
        return SyncError(
            kind,
            operation,
            message,
            target_id=self.target_id,
            cause=cause,
            cancelled=bool(result and result.cancelled),
            timed_out=bool(result and result.timed_out),
        )

    def _extra(self, operation: str) -> Dict[str, Optional[str]]:
        return {"target_id": self.target_id, "operation": operation}

    @staticmethod
    def _short(commit_id: Optional[str]) -> str:
        return commit_id[:12] if commit_id else "none"
