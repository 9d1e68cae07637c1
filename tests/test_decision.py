"""Tests for the per-branch decision table."""

import pytest

from mgit.backend import Relation, TrackingBranch
from mgit.decision import Action, decide


def branch(relation: Relation, *, is_head: bool = False, same_commit: bool = False) -> TrackingBranch:
    return TrackingBranch(
        name="main",
        upstream="origin/main",
        remote="origin",
        local_commit="aaa",
        upstream_commit="aaa" if same_commit else "bbb",
        is_head=is_head,
        relation=relation,
    )


class TestDecide:
    def test_identical_commits_are_no_op(self):
        assert decide(branch(Relation.IDENTICAL, same_commit=True), True) is Action.NO_OP

    @pytest.mark.parametrize("relation", list(Relation))
    def test_same_commit_wins_over_reported_relation(self, relation):
        assert decide(branch(relation, same_commit=True, is_head=True), False) is Action.NO_OP

    @pytest.mark.parametrize("is_head", [True, False])
    @pytest.mark.parametrize("pristine", [True, False])
    def test_ahead_is_never_touched(self, is_head, pristine):
        assert decide(branch(Relation.AHEAD, is_head=is_head), pristine) is Action.SKIP_AHEAD

    @pytest.mark.parametrize("is_head", [True, False])
    @pytest.mark.parametrize("pristine", [True, False])
    def test_diverged_is_never_touched(self, is_head, pristine):
        assert decide(branch(Relation.DIVERGED, is_head=is_head), pristine) is Action.SKIP_DIVERGED

    def test_behind_head_with_dirty_tree_is_skipped(self):
        assert decide(branch(Relation.BEHIND, is_head=True), False) is Action.SKIP_DIRTY

    def test_behind_head_with_pristine_tree_fast_forwards(self):
        assert decide(branch(Relation.BEHIND, is_head=True), True) is Action.FAST_FORWARD

    @pytest.mark.parametrize("pristine", [True, False])
    def test_behind_non_head_fast_forwards_regardless_of_tree(self, pristine):
        assert decide(branch(Relation.BEHIND, is_head=False), pristine) is Action.FAST_FORWARD

    def test_inconsistent_identical_relation_is_no_op(self):
        assert decide(branch(Relation.IDENTICAL), True) is Action.NO_OP


class TestAction:
    def test_only_fast_forward_mutates(self):
        assert [a for a in Action if a.mutates] == [Action.FAST_FORWARD]

    def test_labels(self):
        assert Action.SKIP_AHEAD.label == "ahead"
        assert Action.SKIP_DIVERGED.label == "diverged"
        assert Action.SKIP_DIRTY.label.startswith("behind")
