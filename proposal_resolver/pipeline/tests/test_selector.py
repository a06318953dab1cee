"""Unit tests for priority selection with stage diversity."""
import pytest

from ..selector import get_state_priority, select_top
from proposal_resolver.schemas.proposal import ProposalRecord, ProposalStage


def record(record_id, status, stage, canonical_status="unknown"):
    return ProposalRecord(
        id=record_id,
        title=record_id,
        status=status,
        canonical_status=canonical_status,
        stage=stage,
        url=f"https://example.test/{record_id}",
        type="test",
    )


FIRST = ProposalStage.FIRST_ROUND
SECOND = ProposalStage.SECOND_ROUND
FINAL = ProposalStage.FINAL


class TestStatePriority:

    @pytest.mark.parametrize("status,priority", [
        ("active", 1),
        ("Open", 1),
        ("voting", 1),
        ("created", 2),
        ("pending", 3),
        ("pending-execution", 3),
        ("queued", 3),
        ("executed", 4),
        ("passed", 4),
        ("closed", 5),
        ("expired", 5),
        ("defeated", 6),
        ("Quorum Not Reached", 6),
        ("cancelled", 6),
        ("something-else", 7),
        (None, 7),
    ])
    def test_priorities(self, status, priority):
        assert get_state_priority(status) == priority


class TestSelectTop:

    def test_mixed_stages_cap_two_per_stage(self):
        candidates = [
            record("a", "active", FIRST),
            record("b", "active", FIRST),
            record("c", "executed", FIRST),
            record("d", "active", FINAL),
            record("e", "defeated", FINAL),
        ]
        selected = select_top(candidates, 3)
        assert [r.id for r in selected] == ["a", "b", "d"]
        assert sum(1 for r in selected if r.stage == FIRST) <= 2

    def test_single_stage_allows_k(self):
        candidates = [record(str(i), "active", SECOND) for i in range(5)]
        selected = select_top(candidates, 3)
        assert [r.id for r in selected] == ["0", "1", "2"]

    def test_stable_order_for_equal_priority(self):
        candidates = [
            record("late", "closed", FINAL),
            record("first", "active", SECOND),
            record("second", "active", FINAL),
        ]
        assert [r.id for r in select_top(candidates, 3)] == ["first", "second", "late"]

    def test_cap_skips_then_fills_from_other_stage(self):
        candidates = [
            record("a", "active", FIRST),
            record("b", "active", FIRST),
            record("c", "active", FIRST),
            record("d", "closed", SECOND),
        ]
        assert [r.id for r in select_top(candidates, 3)] == ["a", "b", "d"]

    def test_canonical_status_preferred(self):
        candidates = [
            record("raw-closed", "closed", FINAL, canonical_status="passed"),
            record("expired", "expired", FINAL),
        ]
        assert [r.id for r in select_top(candidates, 1)] == ["raw-closed"]

    def test_fewer_candidates_than_k(self):
        assert [r.id for r in select_top([record("only", "active", FINAL)], 3)] == ["only"]

    def test_empty(self):
        assert select_top([], 3) == []
        assert select_top([record("x", "active", FINAL)], 0) == []
