"""Repository backend: the version-control capability the engine drives.

``RepositoryBackend`` is the boundary used by the registry, the decision
engine and the orchestrator. ``GitBackend`` implements it by running the
``git`` executable; tests substitute an in-memory backend.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Protocol

from .errors import BackendError

logger = logging.getLogger(__name__)


# =============================================================================
# Domain Models
# =============================================================================


class Relation(StrEnum):
    """Ancestry relation of a local branch to its upstream."""

    IDENTICAL = "identical"
    AHEAD = "ahead"
    BEHIND = "behind"
    DIVERGED = "diverged"

    @classmethod
    def from_counts(cls, ahead: int, behind: int) -> Relation:
        """Derive the relation from ``rev-list --left-right --count`` output."""
        if ahead and behind:
            return cls.DIVERGED
        if ahead:
            return cls.AHEAD
        if behind:
            return cls.BEHIND
        return cls.IDENTICAL


@dataclass(frozen=True)
class TrackingBranch:
    """A local branch with an upstream, as reported by the backend.

    ``is_head`` is true when the branch is checked out in any working tree
    of the repository; ``worktree`` is then that tree's path if it is not
    the repository's own.
    """

    name: str
    upstream: str
    remote: str
    local_commit: str
    upstream_commit: str
    is_head: bool
    relation: Relation
    ahead: int = 0
    behind: int = 0
    worktree: Path | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "upstream": self.upstream,
            "remote": self.remote,
            "local_commit": self.local_commit,
            "upstream_commit": self.upstream_commit,
            "is_head": self.is_head,
            "relation": self.relation.value,
            "ahead": self.ahead,
            "behind": self.behind,
            "worktree": str(self.worktree) if self.worktree else None,
        }


@dataclass(frozen=True)
class WorktreeStatus:
    """Counts of staged, modified and untracked files in a working tree."""

    staged: int = 0
    modified: int = 0
    untracked: int = 0

    @property
    def pristine(self) -> bool:
        return not (self.staged or self.modified or self.untracked)

    @classmethod
    def from_porcelain(cls, output: str) -> WorktreeStatus:
        """Count entries of ``git status --porcelain`` by their XY codes."""
        staged = modified = untracked = 0
        for line in output.splitlines():
            code = line[:2]
            if len(code) < 2:
                continue
            if code == "??":
                untracked += 1
                continue
            if code[0] not in " !":
                staged += 1
            if code[1] not in " !":
                modified += 1
        return cls(staged=staged, modified=modified, untracked=untracked)

    def to_dict(self) -> dict:
        return {
            "staged": self.staged,
            "modified": self.modified,
            "untracked": self.untracked,
        }


class RepositoryBackend(Protocol):
    """Operations the engine needs from a version-control backend.

    ``fetch`` and ``fast_forward`` report failure through their return
    value; the query methods raise ``BackendError``. ``is_worktree_pristine``
    and ``worktree_status`` accept the repository path or the path of one
    of its linked working trees.
    """

    def is_repository(self, path: Path) -> bool: ...

    def list_remotes(self, path: Path) -> list[str]: ...

    def fetch(self, path: Path, remote: str) -> tuple[bool, str]: ...

    def tracking_branches(self, path: Path) -> list[TrackingBranch]: ...

    def is_worktree_pristine(self, path: Path) -> bool: ...

    def worktree_status(self, path: Path) -> WorktreeStatus: ...

    def fast_forward(
        self, path: Path, branch: TrackingBranch, target_commit: str
    ) -> tuple[bool, str]: ...


# =============================================================================
# Git Backend
# =============================================================================

# Fields are NUL separated so branch names can never break parsing.
_BRANCH_FORMAT = "%00".join(
    [
        "%(refname)",
        "%(refname:short)",
        "%(objectname)",
        "%(upstream)",
        "%(upstream:short)",
        "%(upstream:remotename)",
        "%(worktreepath)",
    ]
)


class GitBackend:
    """Backend implemented on top of the ``git`` command line."""

    def __init__(self, git: str = "git", fetch_timeout: float | None = None):
        self.git = git
        self.fetch_timeout = fetch_timeout

    def _run(
        self, path: Path, *args: str, check: bool = True, timeout: float | None = None
    ) -> subprocess.CompletedProcess:
        """Run a git command in the repository at ``path``.

        Output is decoded as UTF-8 with undecodable bytes replaced, since
        ref names and remote messages are not guaranteed to be UTF-8.
        """
        logger.debug("git %s (in %s)", " ".join(args), path)
        return subprocess.run(
            [self.git, *args],
            cwd=path,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            check=check,
            timeout=timeout,
        )

    def _query(self, path: Path, *args: str) -> str:
        """Run a read-only git command, raising ``BackendError`` on failure."""
        try:
            result = self._run(path, *args, check=False)
        except OSError as e:
            raise BackendError(f"could not run git {args[0]}", cause=str(e), repo_path=path) from e
        if result.returncode != 0:
            raise BackendError(
                f"git {args[0]} failed",
                cause=result.stderr.strip(),
                repo_path=path,
            )
        return result.stdout

    def is_bare(self, path: Path) -> bool:
        return self._query(path, "rev-parse", "--is-bare-repository").strip() == "true"

    def is_repository(self, path: Path) -> bool:
        """Check that ``path`` is the top of a working tree or a bare repository."""
        try:
            bare = self._run(path, "rev-parse", "--is-bare-repository", check=False)
            if bare.returncode != 0:
                return False
            if bare.stdout.strip() == "true":
                result = self._run(path, "rev-parse", "--absolute-git-dir", check=False)
            else:
                result = self._run(path, "rev-parse", "--show-toplevel", check=False)
        except OSError:
            return False
        if result.returncode != 0:
            return False
        return Path(result.stdout.strip()).resolve() == path.resolve()

    def list_remotes(self, path: Path) -> list[str]:
        """Get configured remote names."""
        output = self._query(path, "remote")
        return [name.strip() for name in output.splitlines() if name.strip()]

    def fetch(self, path: Path, remote: str) -> tuple[bool, str]:
        """Fetch a single remote."""
        try:
            result = self._run(
                path, "fetch", "--prune", "--quiet", remote, check=False, timeout=self.fetch_timeout
            )
            if result.returncode != 0:
                return False, result.stderr.strip() or result.stdout.strip()
            return True, ""
        except Exception as e:
            return False, str(e)

    def tracking_branches(self, path: Path) -> list[TrackingBranch]:
        """Get local branches that have an existing upstream.

        A branch counts as checked out when any working tree of the
        repository has it as HEAD. The HEAD of a bare repository has no
        working tree and does not count.
        """
        bare = self.is_bare(path)
        own_path = path.resolve()
        output = self._query(path, "for-each-ref", f"--format={_BRANCH_FORMAT}", "refs/heads")
        branches = []
        for line in output.splitlines():
            fields = line.split("\0")
            if len(fields) != 7:
                continue
            _, name, local_commit, upstream_ref, upstream, remote, worktree_path = fields
            if not upstream_ref:
                continue
            upstream_commit = self._resolve(path, upstream_ref)
            if upstream_commit is None:
                # Upstream is configured but gone (e.g. pruned on the remote).
                continue

            worktree = Path(worktree_path).resolve() if worktree_path else None
            if bare and worktree == own_path:
                worktree = None
            is_head = worktree is not None
            if worktree == own_path:
                worktree = None

            ahead, behind = self._ahead_behind(path, local_commit, upstream_commit)
            branches.append(
                TrackingBranch(
                    name=name,
                    upstream=upstream,
                    remote=remote,
                    local_commit=local_commit,
                    upstream_commit=upstream_commit,
                    is_head=is_head,
                    relation=Relation.from_counts(ahead, behind),
                    ahead=ahead,
                    behind=behind,
                    worktree=worktree,
                )
            )
        return branches

    def _resolve(self, path: Path, ref: str) -> str | None:
        result = self._run(path, "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def _ahead_behind(self, path: Path, local: str, upstream: str) -> tuple[int, int]:
        """Get (ahead, behind) counts of ``local`` relative to ``upstream``."""
        if local == upstream:
            return 0, 0
        output = self._query(path, "rev-list", "--left-right", "--count", f"{local}...{upstream}")
        parts = output.split()
        if len(parts) != 2:
            raise BackendError("unexpected rev-list output", cause=output.strip(), repo_path=path)
        return int(parts[0]), int(parts[1])

    def worktree_status(self, path: Path) -> WorktreeStatus:
        """Count staged, modified and untracked files. A bare repository has none."""
        if self.is_bare(path):
            return WorktreeStatus()
        output = self._query(path, "status", "--porcelain", "--untracked-files=all")
        return WorktreeStatus.from_porcelain(output)

    def is_worktree_pristine(self, path: Path) -> bool:
        """Check for the absence of staged, modified and untracked files."""
        return self.worktree_status(path).pristine

    def is_ancestor(self, path: Path, ancestor: str, descendant: str) -> bool:
        result = self._run(path, "merge-base", "--is-ancestor", ancestor, descendant, check=False)
        return result.returncode == 0

    def fast_forward(
        self, path: Path, branch: TrackingBranch, target_commit: str
    ) -> tuple[bool, str]:
        """Move ``branch`` to ``target_commit`` if that is a fast-forward.

        A branch that is not checked out anywhere is moved with a
        compare-and-swap ``update-ref``. A checked-out branch goes through
        ``merge --ff-only`` inside the working tree that has it checked
        out, so that tree's index and files follow the ref.
        """
        try:
            if branch.local_commit == target_commit:
                return False, "branch is already at target commit"
            if not self.is_ancestor(path, branch.local_commit, target_commit):
                return False, f"{target_commit[:12]} is not a descendant of {branch.name}"
            if branch.is_head:
                worktree = branch.worktree or path
                head = self._run(worktree, "symbolic-ref", "--quiet", "HEAD", check=False)
                if head.stdout.strip() != f"refs/heads/{branch.name}":
                    return False, f"{branch.name} is no longer checked out in {worktree}"
                result = self._run(
                    worktree, "merge", "--ff-only", "--quiet", target_commit, check=False
                )
            else:
                result = self._run(
                    path,
                    "update-ref",
                    "-m",
                    f"mgit: fast-forward to {branch.upstream}",
                    f"refs/heads/{branch.name}",
                    target_commit,
                    branch.local_commit,
                    check=False,
                )
        except OSError as e:
            return False, str(e)
        if result.returncode != 0:
            return False, result.stderr.strip() or result.stdout.strip()
        logger.debug("fast-forwarded %s in %s to %s", branch.name, path, target_commit)
        return True, ""
