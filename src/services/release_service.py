"""
Batch release service - release gates and release status transitions.

This module provides:
- Release gate evaluation (QA, product tests, documents, recalled lots)
- Creation/refresh of the pending release when a batch completes
- Actor-driven transitions: approve, reject, hold, release hold
- The recall transition used by the lot recall cascade

Allowed transitions:
    pending  -> approved | rejected | hold
    hold     -> pending
    approved -> recalled   (recall cascade only)

Every other move raises InvalidReleaseTransition. Approval re-evaluates the
gates in the same transaction that flips the status, with the release row
locked, so a concurrent reviewer or recall cannot interleave.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from src.models import (
    Batch,
    BatchQACheck,
    BatchRelease,
    BatchStatus,
    LotAllocation,
    LotStatus,
    MaterialLot,
    ProductTest,
    QACheckpoint,
    QADocument,
    QADocumentType,
    ReleaseStatus,
)
from src.models.enums import DocumentStatus
from src.services import compliance
from src.services.database import session_scope
from src.services.exceptions import (
    BatchNotFound,
    InvalidReleaseTransition,
    PermissionDenied,
    ReleaseGatesNotMet,
    ReleaseNotFound,
    ValidationError,
)
from src.services.identity import Actor
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.constants import RELEASE_NUMBER_PREFIX
from src.utils.datetime_utils import utc_now
from src.utils.validators import sanitize_string

logger = get_service_logger(__name__)


ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    ReleaseStatus.PENDING.value: frozenset(
        {ReleaseStatus.APPROVED.value, ReleaseStatus.REJECTED.value, ReleaseStatus.HOLD.value}
    ),
    ReleaseStatus.HOLD.value: frozenset({ReleaseStatus.PENDING.value}),
    ReleaseStatus.APPROVED.value: frozenset({ReleaseStatus.RECALLED.value}),
    ReleaseStatus.REJECTED.value: frozenset(),
    ReleaseStatus.RECALLED.value: frozenset(),
}


@dataclass
class ReleaseGates:
    """
    Release gate evaluation for one batch.

    Attributes:
        all_qa_passed: Every active required checkpoint has a passed check
        all_tests_passed: Every recorded product test passed (vacuously true)
        all_docs_complete: Every required document type has an approved document
        recalled_lots: Recalled lots the batch consumed
        failed_checkpoints: Codes of required checkpoints not passed
        failed_tests: Names of tests not passed (failed or still outstanding)
        missing_documents: Codes of required document types without approval
    """

    all_qa_passed: bool
    all_tests_passed: bool
    all_docs_complete: bool
    recalled_lots: List[Dict[str, Any]] = field(default_factory=list)
    failed_checkpoints: List[str] = field(default_factory=list)
    failed_tests: List[str] = field(default_factory=list)
    missing_documents: List[str] = field(default_factory=list)

    @property
    def ready(self) -> bool:
        """True iff every gate holds and no consumed lot is recalled."""
        return (
            self.all_qa_passed
            and self.all_tests_passed
            and self.all_docs_complete
            and not self.recalled_lots
        )

    def failing_gates(self) -> List[str]:
        failing = []
        if not self.all_qa_passed:
            failing.append("all_qa_passed")
        if not self.all_tests_passed:
            failing.append("all_tests_passed")
        if not self.all_docs_complete:
            failing.append("all_docs_complete")
        if self.recalled_lots:
            failing.append("recalled_lots")
        return failing

    def to_dict(self) -> Dict[str, Any]:
        return {
            "all_qa_passed": self.all_qa_passed,
            "all_tests_passed": self.all_tests_passed,
            "all_docs_complete": self.all_docs_complete,
            "recalled_lots": list(self.recalled_lots),
            "failed_checkpoints": list(self.failed_checkpoints),
            "failed_tests": list(self.failed_tests),
            "missing_documents": list(self.missing_documents),
            "ready": self.ready,
        }


# ============================================================================
# Gate evaluation
# ============================================================================


def recalled_lots_for_batch(batch_id: int, session: Session) -> List[MaterialLot]:
    """Recalled lots reachable from a batch through its allocation edges."""
    return (
        session.query(MaterialLot)
        .join(LotAllocation, LotAllocation.lot_id == MaterialLot.id)
        .filter(LotAllocation.batch_id == batch_id)
        .filter(MaterialLot.status == LotStatus.RECALLED.value)
        .distinct()
        .order_by(MaterialLot.id)
        .all()
    )


def _evaluate_gates_impl(batch_id: int, session: Session) -> ReleaseGates:
    if session.get(Batch, batch_id) is None:
        raise BatchNotFound(batch_id)

    checkpoints = session.query(QACheckpoint).filter(QACheckpoint.active.is_(True)).all()
    checks = session.query(BatchQACheck).filter(BatchQACheck.batch_id == batch_id).all()
    failed_checkpoints = [cp.code for cp in compliance.pending_required(checkpoints, checks)]

    tests = (
        session.query(ProductTest)
        .filter(ProductTest.batch_id == batch_id)
        .order_by(ProductTest.id)
        .all()
    )
    failed_tests = [test.test_name for test in tests if test.passed is not True]

    required_types = (
        session.query(QADocumentType)
        .filter(QADocumentType.required_for_release.is_(True))
        .filter(QADocumentType.active.is_(True))
        .order_by(QADocumentType.code)
        .all()
    )
    approved_type_ids = {
        row.document_type_id
        for row in session.query(QADocument.document_type_id)
        .filter(QADocument.batch_id == batch_id)
        .filter(QADocument.status == DocumentStatus.APPROVED.value)
        .all()
    }
    missing_documents = [t.code for t in required_types if t.id not in approved_type_ids]

    recalled = [
        {
            "lot_id": lot.id,
            "lot_number": lot.lot_number,
            "recall_reason": lot.recall_reason,
        }
        for lot in recalled_lots_for_batch(batch_id, session)
    ]

    return ReleaseGates(
        all_qa_passed=not failed_checkpoints,
        all_tests_passed=not failed_tests,
        all_docs_complete=not missing_documents,
        recalled_lots=recalled,
        failed_checkpoints=failed_checkpoints,
        failed_tests=failed_tests,
        missing_documents=missing_documents,
    )


def evaluate_release_gates(batch_id: int, session: Optional[Session] = None) -> ReleaseGates:
    """
    Evaluate the release gates of a batch.

    Args:
        batch_id: Batch to evaluate
        session: Optional database session

    Returns:
        ReleaseGates

    Raises:
        BatchNotFound: If the batch doesn't exist
    """
    if session is not None:
        return _evaluate_gates_impl(batch_id, session)
    with session_scope() as sess:
        return _evaluate_gates_impl(batch_id, sess)


def _apply_gates(release: BatchRelease, gates: ReleaseGates) -> None:
    release.all_qa_passed = gates.all_qa_passed
    release.all_tests_passed = gates.all_tests_passed
    release.all_docs_complete = gates.all_docs_complete


def refresh_pending_release(batch: Batch, gates: ReleaseGates, session: Session) -> BatchRelease:
    """
    Create the batch's release as pending, or refresh the stored gates.

    Called by batch completion inside its transaction. An existing release
    keeps its status; only the gate flags are updated.
    """
    release = _locked_release(batch.id, session)
    if release is None:
        release = BatchRelease(
            batch_id=batch.id,
            release_number=f"{RELEASE_NUMBER_PREFIX}{batch.batch_code}",
            release_status=ReleaseStatus.PENDING.value,
        )
        session.add(release)
    _apply_gates(release, gates)
    session.flush()
    return release


# ============================================================================
# Transitions
# ============================================================================


def _locked_release(batch_id: int, session: Session) -> Optional[BatchRelease]:
    return (
        session.query(BatchRelease)
        .filter(BatchRelease.batch_id == batch_id)
        .with_for_update()
        .one_or_none()
    )


def _check_transition(release: BatchRelease, target: str) -> None:
    current = release.release_status
    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidReleaseTransition(release.batch_id, current, target)


def _require_decision_role(actor: Actor, operation: str) -> None:
    if actor is None or not actor.can_decide_release:
        log_operation(
            logger,
            operation,
            "permission_denied",
            level=logging.WARNING,
            actor_id=getattr(actor, "id", None),
            role=getattr(actor, "role", None),
        )
        raise PermissionDenied(
            getattr(actor, "id", None), getattr(actor, "role", None), operation.replace("_", " ")
        )


def _require_reason(reason: Optional[str], field_name: str) -> str:
    reason = sanitize_string(reason)
    if reason is None:
        raise ValidationError([f"{field_name}: This field is required"])
    return reason


def _transition(
    batch_id: int,
    target: str,
    actor: Actor,
    operation: str,
    session: Session,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    _require_decision_role(actor, operation)

    release = _locked_release(batch_id, session)
    if release is None:
        if session.get(Batch, batch_id) is None:
            raise BatchNotFound(batch_id)
        raise ReleaseNotFound(batch_id)
    previous = release.release_status
    _check_transition(release, target)

    now = utc_now()
    gates = None
    if target == ReleaseStatus.APPROVED.value:
        batch = session.get(Batch, batch_id)
        gates = _evaluate_gates_impl(batch_id, session)
        _apply_gates(release, gates)
        failing = gates.failing_gates()
        if batch.status != BatchStatus.COMPLETED.value:
            failing.insert(0, "batch_completed")
        if failing:
            session.flush()
            log_operation(
                logger,
                operation,
                "gates_not_met",
                level=logging.WARNING,
                batch_id=batch_id,
                failing_gates=failing,
            )
            raise ReleaseGatesNotMet(batch_id, failing, gates.to_dict())
        release.approved_by = actor.id
        release.approved_at = now
    elif target == ReleaseStatus.REJECTED.value:
        release.rejection_reason = reason
    elif target == ReleaseStatus.HOLD.value:
        release.hold_reason = reason

    release.release_status = target
    release.reviewed_by = actor.id
    release.reviewed_at = now
    if notes is not None:
        release.notes = sanitize_string(notes)
    session.flush()

    log_operation(
        logger,
        operation,
        "success",
        batch_id=batch_id,
        previous_status=previous,
        release_status=target,
        actor_id=actor.id,
    )
    result = release.to_dict()
    if gates is not None:
        result["gates"] = gates.to_dict()
    return result


def approve_release(
    batch_id: int, actor: Actor, notes: Optional[str] = None, session: Optional[Session] = None
) -> Dict[str, Any]:
    """
    Approve a pending release.

    Gates are re-evaluated in the same transaction; the batch must be
    completed and must not have consumed a recalled lot.

    Raises:
        PermissionDenied: If the actor is not a manager or admin
        ReleaseNotFound: If the batch has no release yet
        InvalidReleaseTransition: If the release is not pending
        ReleaseGatesNotMet: If any gate fails (failing gate names attached)
    """
    if session is not None:
        return _transition(
            batch_id, ReleaseStatus.APPROVED.value, actor, "approve_release", session, notes=notes
        )
    with session_scope() as sess:
        return _transition(
            batch_id, ReleaseStatus.APPROVED.value, actor, "approve_release", sess, notes=notes
        )


def reject_release(
    batch_id: int,
    actor: Actor,
    reason: str,
    notes: Optional[str] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Reject a pending release. The reason is mandatory."""
    reason = _require_reason(reason, "Rejection reason")
    if session is not None:
        return _transition(
            batch_id, ReleaseStatus.REJECTED.value, actor, "reject_release", session, reason, notes
        )
    with session_scope() as sess:
        return _transition(
            batch_id, ReleaseStatus.REJECTED.value, actor, "reject_release", sess, reason, notes
        )


def hold_release(
    batch_id: int,
    actor: Actor,
    reason: str,
    notes: Optional[str] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Put a pending release on hold. The reason is mandatory."""
    reason = _require_reason(reason, "Hold reason")
    if session is not None:
        return _transition(
            batch_id, ReleaseStatus.HOLD.value, actor, "hold_release", session, reason, notes
        )
    with session_scope() as sess:
        return _transition(
            batch_id, ReleaseStatus.HOLD.value, actor, "hold_release", sess, reason, notes
        )


def release_hold(
    batch_id: int, actor: Actor, notes: Optional[str] = None, session: Optional[Session] = None
) -> Dict[str, Any]:
    """Return a held release to pending."""
    if session is not None:
        return _transition(
            batch_id, ReleaseStatus.PENDING.value, actor, "release_hold", session, notes=notes
        )
    with session_scope() as sess:
        return _transition(
            batch_id, ReleaseStatus.PENDING.value, actor, "release_hold", sess, notes=notes
        )


def mark_recalled(release: BatchRelease, reason: str, session: Session) -> BatchRelease:
    """
    Move an approved release to recalled.

    Only the lot recall cascade calls this, inside its own transaction and
    with the release row locked. It is not an actor-facing transition.

    Raises:
        InvalidReleaseTransition: If the release is not approved
    """
    _check_transition(release, ReleaseStatus.RECALLED.value)
    release.release_status = ReleaseStatus.RECALLED.value
    release.recall_reason = reason
    release.recalled_at = utc_now()
    session.flush()
    log_operation(
        logger,
        "mark_recalled",
        "success",
        level=logging.WARNING,
        batch_id=release.batch_id,
        release_number=release.release_number,
    )
    return release


def get_release(batch_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Get a batch's release record.

    Raises:
        BatchNotFound: If the batch doesn't exist
        ReleaseNotFound: If the batch has no release yet
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        if sess.get(Batch, batch_id) is None:
            raise BatchNotFound(batch_id)
        release = sess.query(BatchRelease).filter(BatchRelease.batch_id == batch_id).one_or_none()
        if release is None:
            raise ReleaseNotFound(batch_id)
        return release.to_dict()

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)
