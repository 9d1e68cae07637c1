"""Classification of repositories, remotes and branches, and the report model."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from functools import reduce

from .backend import TrackingBranch, WorktreeStatus
from .decision import Action
from .registry import RepositoryEntry


class Color(StrEnum):
    """Classification color. Values double as rich style names.

    ``RED > YELLOW > GREEN > WHITE``. ``BLUE`` (fetch not started) and
    ``CYAN`` (fetch running) are progress states only and lose against
    every final color.
    """

    BLUE = "blue"
    CYAN = "cyan"
    WHITE = "white"
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @property
    def is_transient(self) -> bool:
        return self in (Color.BLUE, Color.CYAN)

    def __or__(self, other: Color) -> Color:
        """Combine two colors, keeping the more severe one."""
        if not isinstance(other, Color):
            return NotImplemented
        return self if self.rank >= other.rank else other

    @classmethod
    def worst(cls, colors: Iterable[Color]) -> Color:
        """Reduce colors to the most severe one; white when there are none."""
        return reduce(lambda a, b: a | b, colors, cls.WHITE)


_RANKS = {
    Color.BLUE: -2,
    Color.CYAN: -1,
    Color.WHITE: 0,
    Color.GREEN: 1,
    Color.YELLOW: 2,
    Color.RED: 3,
}

_ACTION_COLORS = {
    Action.NO_OP: Color.WHITE,
    Action.FAST_FORWARD: Color.GREEN,
    Action.SKIP_AHEAD: Color.YELLOW,
    Action.SKIP_DIVERGED: Color.RED,
    Action.SKIP_DIRTY: Color.RED,
}


# =============================================================================
# Outcomes
# =============================================================================


@dataclass
class BranchOutcome:
    """Decision taken for one tracking branch, and whether it was carried out."""

    branch: TrackingBranch
    action: Action
    applied: bool = False
    error: str = ""

    @property
    def failed(self) -> bool:
        return bool(self.error)

    @property
    def color(self) -> Color:
        if self.failed:
            return Color.RED
        return _ACTION_COLORS[self.action]

    @property
    def description(self) -> str:
        if self.failed:
            return f"fast-forward failed: {self.error}"
        if self.applied:
            if self.branch.behind:
                return f"fast-forwarded ({self.branch.behind} commits)"
            return "fast-forwarded"
        return self.action.label

    def to_dict(self) -> dict:
        return {
            "branch": self.branch.to_dict(),
            "action": self.action.value,
            "applied": self.applied,
            "error": self.error,
            "color": self.color.value,
        }


@dataclass
class RemoteReport:
    """Outcome for one remote of a repository.

    ``fetched`` is ``None`` when no fetch was attempted (status, or a run
    cancelled before the fetch started).
    """

    name: str
    fetched: bool | None = None
    error: str = ""
    branches: list[BranchOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def fetch_failed(self) -> bool:
        return self.fetched is False

    @property
    def color(self) -> Color:
        if self.fetch_failed or self.error:
            return Color.RED
        if self.cancelled:
            return Color.BLUE
        return Color.worst(b.color for b in self.branches)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "fetched": self.fetched,
            "error": self.error,
            "cancelled": self.cancelled,
            "color": self.color.value,
            "branches": [b.to_dict() for b in self.branches],
        }


@dataclass
class RepositoryReport:
    """Outcome for one repository across all its remotes.

    ``worktree`` is ``None`` until the working tree has been inspected.
    """

    entry: RepositoryEntry
    remotes: list[RemoteReport] = field(default_factory=list)
    worktree: WorktreeStatus | None = None
    error: str = ""

    @property
    def pristine(self) -> bool | None:
        if self.worktree is None:
            return None
        return self.worktree.pristine

    @property
    def color(self) -> Color:
        if self.error:
            return Color.RED
        finals = (r.color for r in self.remotes if not r.color.is_transient)
        return Color.worst(finals)

    @property
    def branches(self) -> list[BranchOutcome]:
        return [b for r in self.remotes for b in r.branches]

    def to_dict(self) -> dict:
        return {
            **self.entry.to_dict(),
            "color": self.color.value,
            "pristine": self.pristine,
            "worktree": self.worktree.to_dict() if self.worktree else None,
            "error": self.error,
            "remotes": [r.to_dict() for r in self.remotes],
        }


@dataclass
class ReportSection:
    """Repositories listed under one label (a tag, a group, or ``None`` for all)."""

    label: str | None
    repositories: list[RepositoryReport] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "repositories": [r.to_dict() for r in self.repositories],
        }


@dataclass
class ReportSummary:
    """Counts over the distinct repositories of a report."""

    total: int = 0
    white: int = 0
    green: int = 0
    yellow: int = 0
    red: int = 0
    fetch_failed: int = 0
    fast_forwarded: int = 0
    dirty: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_repositories(cls, repositories: Iterable[RepositoryReport]) -> ReportSummary:
        summary = cls()
        for repo in repositories:
            summary.total += 1
            color = repo.color
            setattr(summary, color.value, getattr(summary, color.value) + 1)
            summary.fetch_failed += sum(1 for r in repo.remotes if r.fetch_failed)
            summary.fast_forwarded += sum(1 for b in repo.branches if b.applied)
            if repo.pristine is False:
                summary.dirty += 1
        return summary


@dataclass
class Report:
    """Result of a ``status`` or ``pull`` run."""

    operation: str
    sections: list[ReportSection] = field(default_factory=list)

    @property
    def repositories(self) -> list[RepositoryReport]:
        """Distinct repository reports, sorted by name then path."""
        unique = {r.entry.path: r for s in self.sections for r in s.repositories}
        return sorted(unique.values(), key=lambda r: r.entry.sort_key)

    @property
    def summary(self) -> ReportSummary:
        return ReportSummary.from_repositories(self.repositories)

    def regroup(
        self, sections: Sequence[tuple[str | None, Sequence[RepositoryEntry]]]
    ) -> Report:
        """Lay the repository reports out under new sections.

        Entries missing from this report are left out; each section is
        sorted by name then path.
        """
        by_path = {r.entry.path: r for r in self.repositories}
        return Report(
            operation=self.operation,
            sections=[
                ReportSection(
                    label=label,
                    repositories=sorted(
                        (by_path[e.path] for e in entries if e.path in by_path),
                        key=lambda r: r.entry.sort_key,
                    ),
                )
                for label, entries in sections
            ],
        )

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "sections": [s.to_dict() for s in self.sections],
            "summary": self.summary.to_dict(),
        }

