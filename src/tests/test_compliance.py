"""
Tests for the compliance arithmetic.

Checkpoints, checks and ingredients are plain namespaces here; the module
only reads attributes.
"""

from types import SimpleNamespace

import pytest

from src.services import compliance


def cp(id, stage, required=True, order=0, code=None):
    return SimpleNamespace(
        id=id, code=code or f"CP{id}", name=f"Checkpoint {id}", stage=stage,
        required=required, display_order=order,
    )


def check(checkpoint_id, status):
    return SimpleNamespace(checkpoint_id=checkpoint_id, status=status)


def ing(target, actual, tolerance=5.0):
    return SimpleNamespace(target_amount=target, actual_amount=actual, tolerance_percentage=tolerance)


@pytest.fixture
def three_stage_checkpoints():
    """Two required checkpoints in each of preparation, mixing and drying."""
    return [
        cp(1, "preparation", order=1),
        cp(2, "preparation", order=2),
        cp(3, "mixing", order=1),
        cp(4, "mixing", order=2),
        cp(5, "drying", order=1),
        cp(6, "drying", order=2),
    ]


class TestRoundPercent:
    """Tests for half-up percentage rounding."""

    def test_half_rounds_up(self):
        assert compliance.round_percent(12.5) == 13
        assert compliance.round_percent(33.333) == 33
        assert compliance.round_percent(66.666) == 67

    def test_whole_numbers_unchanged(self):
        assert compliance.round_percent(0) == 0
        assert compliance.round_percent(100.0) == 100


class TestTolerance:
    """Tests for tolerance checks and tolerance compliance."""

    def test_unmeasured_is_none(self):
        assert compliance.is_in_tolerance(500, None, 5) is None

    def test_boundary_is_inclusive(self):
        assert compliance.is_in_tolerance(500, 525, 5) is True
        assert compliance.is_in_tolerance(500, 475, 5) is True
        assert compliance.is_in_tolerance(500, 526, 5) is False

    def test_zero_target_only_accepts_zero(self):
        assert compliance.is_in_tolerance(0, 0, 5) is True
        assert compliance.is_in_tolerance(0, 0.1, 5) is False

    def test_compliance_excludes_unmeasured(self):
        ingredients = [ing(500, 510), ing(500, 600), ing(1000, None), ing(200, 201)]
        # 2 of 3 measured lines are within tolerance
        assert compliance.tolerance_compliance_percent(ingredients) == 67

    def test_compliance_zero_when_nothing_measured(self):
        assert compliance.tolerance_compliance_percent([ing(500, None)]) == 0
        assert compliance.tolerance_compliance_percent([]) == 0


class TestStageProgress:
    """Tests for per-stage and overall progress."""

    def test_missing_check_is_pending(self, three_stage_checkpoints):
        progress = compliance.stage_progress(three_stage_checkpoints, [], "preparation")
        assert progress.total_required == 2
        assert progress.completed_required == 0
        assert progress.percentage == 0
        assert not progress.is_complete

    def test_empty_stage_is_complete(self, three_stage_checkpoints):
        progress = compliance.stage_progress(three_stage_checkpoints, [], "marination")
        assert progress.total_required == 0
        assert progress.percentage == 100
        assert progress.is_complete

    def test_optional_checkpoints_do_not_count(self):
        checkpoints = [cp(1, "mixing"), cp(2, "mixing", required=False)]
        progress = compliance.stage_progress(checkpoints, [check(1, "passed")], "mixing")
        assert progress.total_required == 1
        assert progress.is_complete

    def test_only_passed_counts(self):
        checkpoints = [cp(1, "mixing"), cp(2, "mixing"), cp(3, "mixing"), cp(4, "mixing")]
        checks = [
            check(1, "passed"),
            check(2, "conditional"),
            check(3, "skipped"),
            check(4, "failed"),
        ]
        progress = compliance.stage_progress(checkpoints, checks, "mixing")
        assert progress.completed_required == 1
        assert progress.percentage == 25

    def test_preparation_passed_moves_to_mixing(self, three_stage_checkpoints):
        """After the first stage passes the batch is in mixing at 33%."""
        checks = [check(1, "passed"), check(2, "passed")]
        progresses = compliance.all_stage_progress(three_stage_checkpoints, checks)

        assert compliance.current_stage(progresses) == "mixing"
        assert compliance.overall_percent(progresses) == 33
        assert not compliance.can_complete(progresses)

        by_stage = {p.stage: p for p in progresses}
        assert by_stage["preparation"].percentage == 100
        assert by_stage["mixing"].percentage == 0

    def test_all_passed_is_final_and_completable(self, three_stage_checkpoints):
        checks = [check(c.id, "passed") for c in three_stage_checkpoints]
        progresses = compliance.all_stage_progress(three_stage_checkpoints, checks)
        assert compliance.current_stage(progresses) == "final"
        assert compliance.overall_percent(progresses) == 100
        assert compliance.can_complete(progresses)

    def test_stage_order_is_production_order(self):
        progresses = compliance.all_stage_progress([], [])
        assert [p.stage for p in progresses] == [
            "preparation", "mixing", "marination", "drying", "packaging", "final",
        ]

    def test_nothing_required_is_complete(self):
        progresses = compliance.all_stage_progress([cp(1, "mixing", required=False)], [])
        assert compliance.overall_percent(progresses) == 100
        assert compliance.can_complete(progresses)
        assert compliance.current_stage(progresses) == "final"

    def test_to_dict(self):
        progress = compliance.StageProgress("mixing", 2, 1, 50)
        assert progress.to_dict() == {
            "stage": "mixing", "total_required": 2, "completed_required": 1, "percentage": 50,
        }


class TestCurrentCheckpoint:
    """Tests for picking the next checkpoint to work on."""

    def test_first_unpassed_required_by_display_order(self):
        checkpoints = [
            cp(10, "mixing", order=3),
            cp(11, "mixing", order=1),
            cp(12, "mixing", order=2),
        ]
        result = compliance.current_checkpoint("mixing", checkpoints, [check(11, "passed")])
        assert result.id == 12

    def test_required_before_optional(self):
        checkpoints = [cp(1, "mixing", required=False, order=1), cp(2, "mixing", order=2)]
        assert compliance.current_checkpoint("mixing", checkpoints, []).id == 2

    def test_falls_back_to_optional(self):
        checkpoints = [cp(1, "mixing", order=1), cp(2, "mixing", required=False, order=2)]
        result = compliance.current_checkpoint("mixing", checkpoints, [check(1, "passed")])
        assert result.id == 2

    def test_none_when_stage_clear(self):
        checkpoints = [cp(1, "mixing")]
        assert compliance.current_checkpoint("mixing", checkpoints, [check(1, "passed")]) is None


class TestPendingRequired:
    """Tests for listing outstanding required checkpoints."""

    def test_pending_in_stage_order(self, three_stage_checkpoints):
        checks = [check(1, "passed"), check(3, "failed")]
        pending = compliance.pending_required(three_stage_checkpoints, checks)
        assert [c.id for c in pending] == [2, 3, 4, 5, 6]

    def test_nothing_pending(self, three_stage_checkpoints):
        checks = [check(c.id, "passed") for c in three_stage_checkpoints]
        assert compliance.pending_required(three_stage_checkpoints, checks) == []
