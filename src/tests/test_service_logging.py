"""Tests for service layer structured logging.

These tests verify that QA, allocation, recall and release operations emit
structured log entries with appropriate context information.
"""

import logging
from datetime import date

import pytest

from src.services import lot_service, qa_service, release_service
from src.services.exceptions import IncompleteQA, PermissionDenied
from src.services.logging_utils import get_service_logger, log_operation


class TestLoggingUtilities:
    """Tests for logging utility functions."""

    def test_get_service_logger_returns_logger(self):
        """get_service_logger returns a configured Logger instance."""
        logger = get_service_logger("test_module")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "batch_qa.services.test_module"

    def test_get_service_logger_extracts_module_name(self):
        """get_service_logger extracts module name from full path."""
        logger = get_service_logger("src.services.qa_service")
        assert logger.name == "batch_qa.services.qa_service"

    def test_log_operation_logs_at_info_level(self, caplog):
        """log_operation logs at INFO level by default."""
        logger = get_service_logger("test")

        with caplog.at_level(logging.INFO):
            log_operation(logger, operation="test_op", outcome="success", entity_id=123)

        assert "test_op: success" in caplog.text

    def test_log_operation_logs_at_custom_level(self, caplog):
        """log_operation respects custom log level."""
        logger = get_service_logger("test")

        with caplog.at_level(logging.DEBUG):
            log_operation(
                logger, operation="debug_op", outcome="debug_outcome", level=logging.DEBUG
            )

        assert "debug_op: debug_outcome" in caplog.text

    def test_log_operation_includes_extra_context(self, caplog):
        """log_operation includes extra context in log records."""
        logger = get_service_logger("test")

        with caplog.at_level(logging.INFO):
            log_operation(logger, operation="context_test", outcome="success", batch_id=42, lot_id=7)

        assert len(caplog.records) == 1
        record = caplog.records[0]
        assert record.operation == "context_test"
        assert record.outcome == "success"
        assert record.batch_id == 42
        assert record.lot_id == 7


class TestQALogging:
    """Tests for qa_service logging."""

    def test_record_check_logs_success(self, test_db, sample_batch, checkpoints, operator, caplog):
        """Recording a check logs the checkpoint code and actor."""
        with caplog.at_level(logging.INFO, logger="batch_qa.services"):
            qa_service.record_check(
                sample_batch["id"], checkpoints["MIX-PH"].id, "passed", actor=operator
            )

        records = [r for r in caplog.records if getattr(r, "operation", None) == "record_check"]
        assert len(records) == 1
        assert records[0].outcome == "success"
        assert records[0].checkpoint_code == "MIX-PH"
        assert records[0].checked_by == operator.id

    def test_complete_batch_logs_pending_checkpoints(self, test_db, sample_batch, checkpoints, caplog):
        """An incomplete batch logs a WARNING naming the pending checkpoints."""
        with caplog.at_level(logging.INFO, logger="batch_qa.services"):
            with pytest.raises(IncompleteQA):
                qa_service.complete_batch(sample_batch["id"])

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert warnings[0].outcome == "incomplete_qa"
        assert "PREP-SANITIZE" in warnings[0].pending_checkpoints


class TestLotLogging:
    """Tests for lot_service logging."""

    def test_allocation_shortfall_is_warning(self, test_db, sample_batch, materials, add_lot, caplog):
        """A partial allocation logs the shortfall at WARNING."""
        add_lot(materials.salt, "SMALL", 40.0, date(2024, 1, 10))
        salt = next(i for i in sample_batch["ingredients"] if i["ingredient_name"] == "Sea Salt")

        with caplog.at_level(logging.INFO, logger="batch_qa.services"):
            lot_service.allocate_lots(salt["id"], 100.0)

        record = next(r for r in caplog.records if getattr(r, "operation", None) == "allocate_lots")
        assert record.levelno == logging.WARNING
        assert record.outcome == "shortfall"
        assert record.shortfall == pytest.approx(60.0)

    def test_recall_logs_affected_batches(self, test_db, sample_batch, materials, add_lot, caplog):
        """A recall logs every batch reached through the allocation edges."""
        lot = add_lot(materials.salt, "TAINTED", 100.0, date(2024, 1, 10))
        salt = next(i for i in sample_batch["ingredients"] if i["ingredient_name"] == "Sea Salt")
        lot_service.allocate_lots(salt["id"], 10.0)

        with caplog.at_level(logging.INFO, logger="batch_qa.services"):
            lot_service.recall_lot(lot.id, "contamination")

        record = next(r for r in caplog.records if getattr(r, "operation", None) == "recall_lot")
        assert record.affected_batch_ids == [sample_batch["id"]]
        assert record.lot_number == "TAINTED"


class TestReleaseLogging:
    """Tests for release_service logging."""

    def test_permission_denied_is_logged(self, test_db, sample_batch, operator, caplog):
        """A refused release decision logs the actor and role."""
        with caplog.at_level(logging.INFO, logger="batch_qa.services"):
            with pytest.raises(PermissionDenied):
                release_service.approve_release(sample_batch["id"], operator)

        record = next(
            r for r in caplog.records if getattr(r, "outcome", None) == "permission_denied"
        )
        assert record.actor_id == operator.id
        assert record.role == "user"
