"""Tests for color precedence and the report model."""

from pathlib import Path

import pytest

from mgit.backend import Relation, TrackingBranch, WorktreeStatus
from mgit.decision import Action
from mgit.registry import RepositoryEntry
from mgit.report import (
    BranchOutcome,
    Color,
    RemoteReport,
    Report,
    ReportSection,
    ReportSummary,
    RepositoryReport,
)


def outcome(action: Action, **kwargs) -> BranchOutcome:
    branch = TrackingBranch(
        name="main",
        upstream="origin/main",
        remote="origin",
        local_commit="aaa",
        upstream_commit="bbb",
        is_head=True,
        relation=Relation.BEHIND,
        behind=2,
    )
    return BranchOutcome(branch, action, **kwargs)


def repo(name: str, *remotes: RemoteReport, **kwargs) -> RepositoryReport:
    entry = RepositoryEntry(path=Path("/src") / name, name=name)
    return RepositoryReport(entry=entry, remotes=list(remotes), **kwargs)


class TestColor:
    @pytest.mark.parametrize(
        "colors, expected",
        [
            ([Color.WHITE, Color.GREEN], Color.GREEN),
            ([Color.GREEN, Color.YELLOW, Color.WHITE], Color.YELLOW),
            ([Color.YELLOW, Color.RED, Color.GREEN], Color.RED),
            ([Color.BLUE, Color.WHITE], Color.WHITE),
            ([Color.CYAN, Color.BLUE], Color.CYAN),
            ([], Color.WHITE),
        ],
    )
    def test_worst(self, colors, expected):
        assert Color.worst(colors) is expected

    def test_combination_is_order_independent(self):
        for a in Color:
            for b in Color:
                assert a | b is b | a

    def test_transient(self):
        assert {c for c in Color if c.is_transient} == {Color.BLUE, Color.CYAN}


class TestBranchOutcome:
    def test_colors_follow_action(self):
        assert outcome(Action.NO_OP).color is Color.WHITE
        assert outcome(Action.FAST_FORWARD).color is Color.GREEN
        assert outcome(Action.SKIP_AHEAD).color is Color.YELLOW
        assert outcome(Action.SKIP_DIVERGED).color is Color.RED
        assert outcome(Action.SKIP_DIRTY).color is Color.RED

    def test_failure_is_red(self):
        failed = outcome(Action.FAST_FORWARD, error="cannot lock ref")
        assert failed.color is Color.RED
        assert failed.description == "fast-forward failed: cannot lock ref"

    def test_applied_description(self):
        assert outcome(Action.FAST_FORWARD, applied=True).description == "fast-forwarded (2 commits)"


class TestRepositoryReport:
    def test_fetch_failure_outranks_branches(self):
        remote = RemoteReport("origin", fetched=False, branches=[outcome(Action.FAST_FORWARD)])
        assert remote.color is Color.RED

    def test_transient_remotes_are_ignored(self):
        report = repo(
            "alpha",
            RemoteReport("origin", fetched=True, branches=[outcome(Action.SKIP_AHEAD)]),
            RemoteReport("mirror", cancelled=True),
        )
        assert report.color is Color.YELLOW

    def test_error_is_red(self):
        assert repo("alpha", error="git remote failed").color is Color.RED

    def test_no_remotes_is_white(self):
        assert repo("alpha").color is Color.WHITE


class TestReport:
    def test_repositories_are_distinct_and_sorted(self):
        alpha, beta = repo("alpha"), repo("beta")
        report = Report(
            "status",
            [ReportSection("x", [beta, alpha]), ReportSection("y", [alpha])],
        )
        assert [r.entry.name for r in report.repositories] == ["alpha", "beta"]
        assert report.summary.total == 2

    def test_regroup(self):
        alpha, beta, gamma = repo("alpha"), repo("beta"), repo("gamma")
        report = Report("pull", [ReportSection(None, [alpha, beta, gamma])])

        regrouped = report.regroup(
            [
                ("t", [gamma.entry, alpha.entry]),
                ("u", [beta.entry, RepositoryEntry(path=Path("/elsewhere"), name="zzz")]),
            ]
        )

        assert regrouped.operation == "pull"
        assert [(s.label, [r.entry.name for r in s.repositories]) for s in regrouped.sections] == [
            ("t", ["alpha", "gamma"]),
            ("u", ["beta"]),
        ]

    def test_summary(self):
        repositories = [
            repo("a"),
            repo(
                "b",
                RemoteReport(
                    "origin",
                    fetched=True,
                    branches=[outcome(Action.FAST_FORWARD, applied=True)],
                ),
            ),
            repo("c", RemoteReport("origin", fetched=False), worktree=WorktreeStatus(untracked=2)),
            repo("d", RemoteReport("origin", branches=[outcome(Action.SKIP_AHEAD)])),
        ]

        summary = ReportSummary.from_repositories(repositories)

        assert summary == ReportSummary(
            total=4, white=1, green=1, yellow=1, red=1, fetch_failed=1, fast_forwarded=1, dirty=1
        )

    def test_to_dict(self):
        report = Report("status", [ReportSection(None, [repo("alpha")])])

        data = report.to_dict()

        assert data["operation"] == "status"
        assert data["sections"][0]["label"] is None
        assert data["sections"][0]["repositories"][0]["color"] == "white"
        assert data["summary"]["total"] == 1

    def test_worktree_counts_in_dict(self):
        data = repo("alpha", worktree=WorktreeStatus(staged=1, modified=2)).to_dict()

        assert data["pristine"] is False
        assert data["worktree"] == {"staged": 1, "modified": 2, "untracked": 0}


class TestWorktreeStatus:
    def test_porcelain_codes(self):
        output = "\n".join(
            [
                "M  staged.txt",
                " M modified.txt",
                "MM both.txt",
                "A  added.txt",
                " D deleted.txt",
                "R  old.txt -> new.txt",
                "?? new/file.txt",
                "?? other.txt",
            ]
        )

        status = WorktreeStatus.from_porcelain(output)

        assert status == WorktreeStatus(staged=4, modified=3, untracked=2)
        assert not status.pristine

    def test_empty_output_is_pristine(self):
        assert WorktreeStatus.from_porcelain("").pristine
