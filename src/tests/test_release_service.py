"""
Tests for release gates and release decisions.
"""

from datetime import date

import pytest

from src.models import ProductTest, QADocument, QADocumentType
from src.services import lot_service, qa_service, release_service
from src.services.exceptions import (
    BatchNotFound,
    InvalidReleaseTransition,
    PermissionDenied,
    ReleaseGatesNotMet,
    ReleaseNotFound,
    ValidationError,
)
from src.services.identity import Actor


@pytest.fixture
def completed_batch(test_db, sample_batch, pass_required):
    """Sample batch with every required checkpoint passed and a pending release."""
    pass_required(sample_batch["id"])
    qa_service.complete_batch(sample_batch["id"])
    return sample_batch


class TestReleaseGates:
    """Tests for release gate evaluation."""

    def test_gates_for_fresh_batch(self, test_db, sample_batch, checkpoints):
        gates = release_service.evaluate_release_gates(sample_batch["id"])
        assert gates.all_qa_passed is False
        assert gates.all_tests_passed is True
        assert gates.all_docs_complete is True
        assert gates.ready is False
        assert gates.failing_gates() == ["all_qa_passed"]
        assert "PREP-SANITIZE" in gates.failed_checkpoints

    def test_product_tests_must_pass(self, test_db, completed_batch):
        session = test_db()
        session.add_all(
            [
                ProductTest(batch_id=completed_batch["id"], test_type="chemical",
                            test_name="Water activity", passed=True),
                ProductTest(batch_id=completed_batch["id"], test_type="microbiological",
                            test_name="Listeria", passed=None),
            ]
        )
        session.commit()

        gates = release_service.evaluate_release_gates(completed_batch["id"])
        assert gates.all_tests_passed is False
        assert gates.failed_tests == ["Listeria"]

    def test_required_documents(self, test_db, completed_batch):
        session = test_db()
        coa = QADocumentType(code="COA", name="Certificate of analysis", required_for_release=True)
        label = QADocumentType(code="LABEL", name="Label proof", required_for_release=False)
        session.add_all([coa, label])
        session.flush()
        session.add(
            QADocument(batch_id=completed_batch["id"], document_type_id=coa.id,
                       document_number="COA-1", status="pending")
        )
        session.commit()

        gates = release_service.evaluate_release_gates(completed_batch["id"])
        assert gates.all_docs_complete is False
        assert gates.missing_documents == ["COA"]

        document = session.query(QADocument).one()
        document.status = "approved"
        session.commit()
        assert release_service.evaluate_release_gates(completed_batch["id"]).all_docs_complete

    def test_recalled_lot_blocks(self, test_db, completed_batch, materials, add_lot):
        lot = add_lot(materials.salt, "TAINTED", 100.0, date(2024, 1, 10))
        salt = next(i for i in completed_batch["ingredients"] if i["ingredient_name"] == "Sea Salt")
        lot_service.allocate_lots(salt["id"], 50.0)
        lot_service.recall_lot(lot.id, "contamination")

        gates = release_service.evaluate_release_gates(completed_batch["id"])
        assert gates.all_qa_passed is True
        assert gates.ready is False
        assert gates.failing_gates() == ["recalled_lots"]
        assert gates.to_dict()["recalled_lots"][0]["lot_number"] == "TAINTED"

    def test_unknown_batch(self, test_db):
        with pytest.raises(BatchNotFound):
            release_service.evaluate_release_gates(999)


class TestApproveRelease:
    """Tests for approving releases."""

    def test_approve(self, test_db, completed_batch, manager):
        result = release_service.approve_release(completed_batch["id"], manager, notes="Looks good")
        assert result["release_status"] == "approved"
        assert result["approved_by"] == manager.id
        assert result["reviewed_by"] == manager.id
        assert result["notes"] == "Looks good"
        assert result["gates"]["ready"] is True

    def test_admin_may_approve(self, test_db, completed_batch):
        result = release_service.approve_release(completed_batch["id"], Actor("root", "admin"))
        assert result["release_status"] == "approved"

    def test_user_may_not_approve(self, test_db, completed_batch, operator):
        with pytest.raises(PermissionDenied) as exc_info:
            release_service.approve_release(completed_batch["id"], operator)
        assert exc_info.value.role == "user"
        assert release_service.get_release(completed_batch["id"])["release_status"] == "pending"

    def test_missing_actor_denied(self, test_db, completed_batch):
        with pytest.raises(PermissionDenied):
            release_service.approve_release(completed_batch["id"], None)

    def test_gates_rechecked_at_approval(self, test_db, completed_batch, checkpoints, manager):
        # A recheck after completion turns a pass into a failure
        qa_service.record_check(completed_batch["id"], checkpoints["DRY-AW"].id, "failed")

        with pytest.raises(ReleaseGatesNotMet) as exc_info:
            release_service.approve_release(completed_batch["id"], manager)

        assert exc_info.value.failing_gates == ["all_qa_passed"]
        assert exc_info.value.gates["failed_checkpoints"] == ["DRY-AW"]
        assert release_service.get_release(completed_batch["id"])["release_status"] == "pending"

    def test_no_release_before_completion(self, test_db, sample_batch, manager):
        with pytest.raises(ReleaseNotFound):
            release_service.approve_release(sample_batch["id"], manager)

    def test_unknown_batch(self, test_db, manager):
        with pytest.raises(BatchNotFound):
            release_service.approve_release(999, manager)

    def test_approved_cannot_be_approved_again(self, test_db, completed_batch, manager):
        release_service.approve_release(completed_batch["id"], manager)
        with pytest.raises(InvalidReleaseTransition) as exc_info:
            release_service.approve_release(completed_batch["id"], manager)
        assert exc_info.value.current_status == "approved"
        assert exc_info.value.target_status == "approved"


class TestRejectAndHold:
    """Tests for reject, hold and release hold."""

    def test_reject_requires_reason(self, test_db, completed_batch, manager):
        with pytest.raises(ValidationError):
            release_service.reject_release(completed_batch["id"], manager, "  ")

    def test_reject_is_terminal(self, test_db, completed_batch, manager):
        result = release_service.reject_release(completed_batch["id"], manager, "Off colour")
        assert result["release_status"] == "rejected"
        assert result["rejection_reason"] == "Off colour"

        with pytest.raises(InvalidReleaseTransition):
            release_service.approve_release(completed_batch["id"], manager)
        with pytest.raises(InvalidReleaseTransition):
            release_service.hold_release(completed_batch["id"], manager, "Second look")

    def test_hold_and_release_hold(self, test_db, completed_batch, manager):
        result = release_service.hold_release(completed_batch["id"], manager, "Lab retest")
        assert result["release_status"] == "hold"
        assert result["hold_reason"] == "Lab retest"

        with pytest.raises(InvalidReleaseTransition):
            release_service.approve_release(completed_batch["id"], manager)

        result = release_service.release_hold(completed_batch["id"], manager)
        assert result["release_status"] == "pending"

        result = release_service.approve_release(completed_batch["id"], manager)
        assert result["release_status"] == "approved"

    def test_release_hold_only_from_hold(self, test_db, completed_batch, manager):
        with pytest.raises(InvalidReleaseTransition):
            release_service.release_hold(completed_batch["id"], manager)

    def test_user_may_not_hold(self, test_db, completed_batch, operator):
        with pytest.raises(PermissionDenied):
            release_service.hold_release(completed_batch["id"], operator, "Lab retest")


class TestTransitionTable:
    """Tests for the release transition table."""

    def test_terminal_states(self):
        assert release_service.ALLOWED_TRANSITIONS["rejected"] == frozenset()
        assert release_service.ALLOWED_TRANSITIONS["recalled"] == frozenset()

    def test_recall_only_from_approved(self):
        sources = [
            status
            for status, targets in release_service.ALLOWED_TRANSITIONS.items()
            if "recalled" in targets
        ]
        assert sources == ["approved"]

    def test_mark_recalled_rejects_pending(self, test_db, completed_batch):
        from src.models import BatchRelease

        session = test_db()
        release = session.query(BatchRelease).one()
        with pytest.raises(InvalidReleaseTransition):
            release_service.mark_recalled(release, "contamination", session)
        session.rollback()


class TestGetRelease:
    """Tests for release lookup."""

    def test_get_release(self, test_db, completed_batch):
        release = release_service.get_release(completed_batch["id"])
        assert release["release_status"] == "pending"
        assert release["all_qa_passed"] is True

    def test_missing(self, test_db, sample_batch):
        with pytest.raises(ReleaseNotFound):
            release_service.get_release(sample_batch["id"])
        with pytest.raises(BatchNotFound):
            release_service.get_release(999)
