"""Per-branch decision: leave a tracking branch alone or fast-forward it."""

from __future__ import annotations

from enum import StrEnum

from .backend import Relation, TrackingBranch


class Action(StrEnum):
    """What to do with a tracking branch."""

    NO_OP = "no_op"
    FAST_FORWARD = "fast_forward"
    SKIP_AHEAD = "skip_ahead"
    SKIP_DIVERGED = "skip_diverged"
    SKIP_DIRTY = "skip_dirty"

    @property
    def mutates(self) -> bool:
        return self is Action.FAST_FORWARD

    @property
    def label(self) -> str:
        """Short human description of the branch state behind the action."""
        return _LABELS[self]


_LABELS = {
    Action.NO_OP: "up to date",
    Action.FAST_FORWARD: "behind",
    Action.SKIP_AHEAD: "ahead",
    Action.SKIP_DIVERGED: "diverged",
    Action.SKIP_DIRTY: "behind, worktree dirty",
}


def decide(branch: TrackingBranch, worktree_is_pristine: bool) -> Action:
    """Decide what to do with ``branch``.

    Only a local branch strictly behind its upstream is ever moved, and the
    checked-out branch only when the working tree is pristine. Ahead and
    diverged branches are never touched.
    """
    if branch.local_commit == branch.upstream_commit:
        return Action.NO_OP

    match branch.relation:
        case Relation.IDENTICAL:
            # Commits differ but the backend says identical; do not guess.
            return Action.NO_OP
        case Relation.AHEAD:
            return Action.SKIP_AHEAD
        case Relation.DIVERGED:
            return Action.SKIP_DIVERGED
        case Relation.BEHIND:
            if branch.is_head and not worktree_is_pristine:
                return Action.SKIP_DIRTY
            return Action.FAST_FORWARD
        case _:
            raise ValueError(f"unknown branch relation: {branch.relation!r}")
