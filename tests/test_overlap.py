"""
tests/test_overlap.py — Active Role-Holder Counting
====================================================

Both strategies must agree; the indexed one exists only for speed.
"""

from __future__ import annotations

import pytest

from conftest import make_member
from tally.engine.overlap import IndexedOverlap, NestedLoopOverlap, has_role

STRATEGIES = [NestedLoopOverlap(), IndexedOverlap()]


@pytest.mark.parametrize("strategy", STRATEGIES, ids=["nested", "indexed"])
class TestCountByRole:
    def test_counts_each_role(self, strategy):
        members = [
            make_member(1, 10, 20),
            make_member(2, 10),
            make_member(3, 30),
        ]
        assert strategy.count_by_role(members, [10, 20, 30, 40]) == {
            10: 2, 20: 1, 30: 1, 40: 0,
        }

    def test_no_members(self, strategy):
        assert strategy.count_by_role([], [10, 20]) == {10: 0, 20: 0}

    def test_no_roles(self, strategy):
        assert strategy.count_by_role([make_member(1, 10)], []) == {}


def test_has_role():
    member = make_member(1, 10, 20)
    assert has_role(member, 20)
    assert not has_role(member, 30)
