"""
QA service - checkpoint recording, batch progress and batch completion.

This module provides:
- Recording a checkpoint evaluation for a batch (upsert per batch/checkpoint)
- Batch progress, recomputed from checkpoints and checks on every call
- Batch completion with release gate evaluation in the same transaction
- Checkpoint configuration helpers

Recording a check is a single INSERT ... ON CONFLICT DO UPDATE keyed by
(batch_id, checkpoint_id). The update only applies when the incoming
checked_at is not older than the stored one, so of two concurrent
evaluations the later one wins regardless of commit order. Any status may
follow any other: a recheck may turn a pass into a failure.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from src.models import Batch, BatchQACheck, BatchStatus, CheckStatus, QACheckpoint, QAStage
from src.models.base import coerce_enum
from src.services import compliance, release_service
from src.services.database import session_scope, snapshot_scope
from src.services.exceptions import (
    BatchAlreadyCompleted,
    BatchNotFound,
    CheckpointNotFound,
    CollaboratorUnavailable,
    IncompleteQA,
    ValidationError,
)
from src.services.identity import actor_id
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.constants import MAX_NAME_LENGTH, MAX_NOTES_LENGTH, MEASUREMENT_FIELDS
from src.utils.datetime_utils import as_utc, utc_now
from src.utils.validators import (
    sanitize_string,
    validate_number,
    validate_required_string,
    validate_string_length,
)

logger = get_service_logger(__name__)


# ============================================================================
# Recording checks
# ============================================================================


def _dialect_insert(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise CollaboratorUnavailable(f"Upsert is not supported on '{dialect}'")


def _validate_check_input(
    status: Any,
    measurements: Optional[Dict],
    notes: Optional[str] = None,
    corrective_action: Optional[str] = None,
) -> Dict[str, Any]:
    errors: List[str] = []

    if status is None or (isinstance(status, str) and not status.strip()):
        errors.append("Status: This field is required")
        status_value = None
    else:
        try:
            status_value = coerce_enum(CheckStatus, status, "status")
        except ValueError as e:
            errors.append(str(e))
            status_value = None

    values = {}
    for key, value in (measurements or {}).items():
        if key not in MEASUREMENT_FIELDS:
            errors.append(f"Unknown measurement field '{key}'")
            continue
        if value is None:
            values[key] = None
            continue
        ok, msg = validate_number(value, key)
        if not ok:
            errors.append(msg)
            continue
        values[key] = float(value)

    for label, text in (("Notes", notes), ("Corrective action", corrective_action)):
        ok, msg = validate_string_length(text, MAX_NOTES_LENGTH, label)
        if not ok:
            errors.append(msg)

    if errors:
        raise ValidationError(errors)
    return {"status": status_value, **{f: values.get(f) for f in MEASUREMENT_FIELDS}}


def _record_check_impl(
    batch_id: int,
    checkpoint_id: int,
    fields: Dict[str, Any],
    session: Session,
) -> Dict[str, Any]:
    if session.get(Batch, batch_id) is None:
        raise BatchNotFound(batch_id)
    checkpoint = session.get(QACheckpoint, checkpoint_id)
    if checkpoint is None:
        raise CheckpointNotFound(checkpoint_id)

    table = BatchQACheck.__table__
    insert = _dialect_insert(session)
    stmt = insert(table).values(batch_id=batch_id, checkpoint_id=checkpoint_id, **fields)
    updated_columns = {name: stmt.excluded[name] for name in fields}
    updated_columns["updated_at"] = stmt.excluded.updated_at
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.batch_id, table.c.checkpoint_id],
        set_=updated_columns,
        where=table.c.checked_at <= stmt.excluded.checked_at,
    )
    session.execute(stmt)

    check = (
        session.query(BatchQACheck)
        .populate_existing()
        .filter(BatchQACheck.batch_id == batch_id)
        .filter(BatchQACheck.checkpoint_id == checkpoint_id)
        .one()
    )
    superseded = as_utc(check.checked_at) > fields["checked_at"]

    log_operation(
        logger,
        "record_check",
        "superseded" if superseded else "success",
        level=logging.INFO if not superseded else logging.WARNING,
        batch_id=batch_id,
        checkpoint_id=checkpoint_id,
        checkpoint_code=checkpoint.code,
        status=check.status,
        checked_by=check.checked_by,
    )
    result = check.to_dict()
    result["checkpoint_code"] = checkpoint.code
    result["stage"] = checkpoint.stage
    return result


def record_check(
    batch_id: int,
    checkpoint_id: int,
    status: str,
    measurements: Optional[Dict[str, float]] = None,
    actor=None,
    notes: Optional[str] = None,
    corrective_action: Optional[str] = None,
    recheck_required: bool = False,
    checked_at: Optional[datetime] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Record the evaluation of a checkpoint for a batch.

    Recording the same (batch, checkpoint) again updates the one stored
    check. A recording whose checked_at is older than the stored check's is
    ignored, and the stored (later) evaluation is returned.

    Args:
        batch_id: Batch evaluated
        checkpoint_id: Checkpoint evaluated
        status: pending | passed | failed | skipped | conditional
        measurements: Optional dict of temperature_c, humidity_percent,
            ph_level, water_activity
        actor: Evaluating actor, stored as checked_by
        notes: Optional notes
        corrective_action: Optional corrective action taken
        recheck_required: Flag the checkpoint for re-evaluation
        checked_at: Evaluation time (default: now)
        session: Optional database session

    Returns:
        The persisted check as a dict, with checkpoint_code and stage

    Raises:
        ValidationError: Missing or unknown status, unknown or non-numeric measurement,
            notes or corrective action over the length limit
        BatchNotFound: If the batch doesn't exist
        CheckpointNotFound: If the checkpoint doesn't exist

    Example:
        >>> record_check(batch_id, checkpoint_id, "passed",
        ...              {"temperature_c": 3.5}, actor=Actor("op-1"))
    """
    fields = _validate_check_input(status, measurements, notes, corrective_action)
    now = utc_now()
    fields.update(
        notes=sanitize_string(notes),
        corrective_action=sanitize_string(corrective_action),
        recheck_required=bool(recheck_required),
        checked_by=actor_id(actor),
        checked_at=as_utc(checked_at) if checked_at is not None else now,
    )

    if session is not None:
        return _record_check_impl(batch_id, checkpoint_id, fields, session)
    with session_scope() as sess:
        return _record_check_impl(batch_id, checkpoint_id, fields, sess)


def get_batch_checks(batch_id: int, session: Optional[Session] = None) -> List[Dict[str, Any]]:
    """
    All stored checks of a batch, including checks of deactivated checkpoints.

    Raises:
        BatchNotFound: If the batch doesn't exist
    """

    def _impl(sess: Session) -> List[Dict[str, Any]]:
        if sess.get(Batch, batch_id) is None:
            raise BatchNotFound(batch_id)
        checks = (
            sess.query(BatchQACheck)
            .join(QACheckpoint, BatchQACheck.checkpoint_id == QACheckpoint.id)
            .filter(BatchQACheck.batch_id == batch_id)
            .order_by(QACheckpoint.display_order, QACheckpoint.id)
            .all()
        )
        results = []
        for check in checks:
            data = check.to_dict()
            data["checkpoint_code"] = check.checkpoint.code
            data["stage"] = check.checkpoint.stage
            data["checkpoint_active"] = check.checkpoint.active
            results.append(data)
        return results

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


# ============================================================================
# Progress
# ============================================================================


def _active_checkpoints(session: Session) -> List[QACheckpoint]:
    return session.query(QACheckpoint).filter(QACheckpoint.active.is_(True)).all()


def _batch_checks(batch_id: int, session: Session) -> List[BatchQACheck]:
    return session.query(BatchQACheck).filter(BatchQACheck.batch_id == batch_id).all()


def _progress_impl(batch_id: int, session: Session) -> Dict[str, Any]:
    batch = session.get(Batch, batch_id)
    if batch is None:
        raise BatchNotFound(batch_id)

    checkpoints = _active_checkpoints(session)
    checks = _batch_checks(batch_id, session)
    progresses = compliance.all_stage_progress(checkpoints, checks)
    stage = compliance.current_stage(progresses)
    checkpoint = compliance.current_checkpoint(stage, checkpoints, checks)

    current = None
    if checkpoint is not None:
        statuses = compliance.check_status_map(checks)
        current = {
            "id": checkpoint.id,
            "code": checkpoint.code,
            "name": checkpoint.name,
            "stage": checkpoint.stage,
            "required": checkpoint.required,
            "status": statuses.get(checkpoint.id, CheckStatus.PENDING.value),
        }

    return {
        "batch_id": batch.id,
        "batch_code": batch.batch_code,
        "batch_status": batch.status,
        "current_stage": stage,
        "percent_complete": compliance.overall_percent(progresses),
        "stages": [progress.to_dict() for progress in progresses],
        "current_checkpoint": current,
        "can_complete": compliance.can_complete(progresses),
        "tolerance_compliance": compliance.tolerance_compliance_percent(batch.ingredients),
    }


def get_progress(batch_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Compute a batch's QA progress.

    Only active checkpoints count. Nothing is stored: every call recomputes
    from the current checkpoints and checks.

    Returns:
        Dict with batch_id, current_stage, percent_complete, stages (per-stage
        required totals), current_checkpoint (or None), can_complete and
        tolerance_compliance

    Raises:
        BatchNotFound: If the batch doesn't exist
    """
    if session is not None:
        return _progress_impl(batch_id, session)
    with session_scope() as sess:
        return _progress_impl(batch_id, sess)


# ============================================================================
# Completion
# ============================================================================


def _complete_batch_impl(batch_id: int, actor, session: Session) -> Dict[str, Any]:
    batch = session.query(Batch).filter(Batch.id == batch_id).with_for_update().one_or_none()
    if batch is None:
        raise BatchNotFound(batch_id)
    if batch.status == BatchStatus.COMPLETED.value:
        raise BatchAlreadyCompleted(batch_id)

    checkpoints = _active_checkpoints(session)
    checks = _batch_checks(batch_id, session)
    progresses = compliance.all_stage_progress(checkpoints, checks)
    if not compliance.can_complete(progresses):
        pending = [cp.code for cp in compliance.pending_required(checkpoints, checks)]
        log_operation(
            logger,
            "complete_batch",
            "incomplete_qa",
            level=logging.WARNING,
            batch_id=batch_id,
            pending_checkpoints=pending,
        )
        raise IncompleteQA(batch_id, pending)

    batch.status = BatchStatus.COMPLETED.value
    batch.completed_at = utc_now()
    batch.completed_by = actor_id(actor)
    session.flush()

    gates = release_service.evaluate_release_gates(batch_id, session=session)
    release = release_service.refresh_pending_release(batch, gates, session)

    log_operation(
        logger,
        "complete_batch",
        "success",
        batch_id=batch.id,
        batch_code=batch.batch_code,
        release_status=release.release_status,
        gates_ready=gates.ready,
        completed_by=batch.completed_by,
    )
    return {
        "success": True,
        "batch_id": batch.id,
        "batch_code": batch.batch_code,
        "status": batch.status,
        "release_status": release.release_status,
        "release_number": release.release_number,
        "gates": gates.to_dict(),
        "failed_checkpoints": gates.failed_checkpoints,
    }


def complete_batch(batch_id: int, actor=None, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Mark a batch completed and evaluate its release gates.

    Runs as one transaction reading one consistent snapshot, with the batch
    row locked: the completion check, the status change and the release
    gate evaluation all see the same checks.

    Args:
        batch_id: Batch to complete
        actor: Completing actor
        session: Optional database session (caller owns the transaction)

    Returns:
        Dict with success, batch_id, batch_code, status, release_status,
        release_number, gates and failed_checkpoints

    Raises:
        BatchNotFound: If the batch doesn't exist
        BatchAlreadyCompleted: If the batch is already completed
        IncompleteQA: If required checkpoints are not passed (codes attached)
    """
    if session is not None:
        return _complete_batch_impl(batch_id, actor, session)
    with snapshot_scope() as sess:
        return _complete_batch_impl(batch_id, actor, sess)


# ============================================================================
# Checkpoint configuration
# ============================================================================


def create_checkpoint(checkpoint_data: Dict, session: Optional[Session] = None) -> QACheckpoint:
    """
    Create a QA checkpoint.

    Args:
        checkpoint_data: Dictionary with:
            - code: str (unique)
            - name: str
            - stage: str (one of the QA stages)
            - required: bool (optional, default True)
            - display_order: int (optional, default 0)
            - description: str (optional)
            - active: bool (optional, default True)
        session: Optional database session

    Raises:
        ValidationError: If data validation fails
        ConflictingState: If the code already exists
    """
    errors = []
    for ok, msg in (
        validate_required_string(checkpoint_data.get("code"), "Code"),
        validate_required_string(checkpoint_data.get("name"), "Name"),
        validate_string_length(checkpoint_data.get("name"), MAX_NAME_LENGTH, "Name"),
    ):
        if not ok:
            errors.append(msg)
    try:
        stage = coerce_enum(QAStage, checkpoint_data.get("stage"), "stage")
        if stage is None:
            errors.append("Stage: This field is required")
    except ValueError as e:
        errors.append(str(e))
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> QACheckpoint:
        checkpoint = QACheckpoint(
            code=checkpoint_data["code"].strip(),
            name=checkpoint_data["name"].strip(),
            description=sanitize_string(checkpoint_data.get("description")),
            stage=stage,
            required=bool(checkpoint_data.get("required", True)),
            display_order=int(checkpoint_data.get("display_order", 0)),
            active=bool(checkpoint_data.get("active", True)),
        )
        sess.add(checkpoint)
        sess.flush()
        log_operation(
            logger, "create_checkpoint", "success", checkpoint_id=checkpoint.id, code=checkpoint.code
        )
        return checkpoint

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def list_checkpoints(
    active_only: bool = True,
    stage: Optional[str] = None,
    session: Optional[Session] = None,
) -> List[QACheckpoint]:
    """List checkpoints in stage and display order."""

    def _impl(sess: Session) -> List[QACheckpoint]:
        q = sess.query(QACheckpoint)
        if active_only:
            q = q.filter(QACheckpoint.active.is_(True))
        if stage:
            q = q.filter(QACheckpoint.stage == stage)
        checkpoints = q.all()
        stage_index = {s.value: i for i, s in enumerate(QAStage)}
        return sorted(
            checkpoints,
            key=lambda cp: (stage_index.get(cp.stage, len(stage_index)), cp.display_order, cp.id),
        )

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def set_checkpoint_active(
    checkpoint_id: int, active: bool, session: Optional[Session] = None
) -> QACheckpoint:
    """
    Activate or deactivate a checkpoint.

    Deactivated checkpoints drop out of progress and release gates; checks
    already recorded against them are kept.

    Raises:
        CheckpointNotFound: If the checkpoint doesn't exist
    """

    def _impl(sess: Session) -> QACheckpoint:
        checkpoint = sess.get(QACheckpoint, checkpoint_id)
        if checkpoint is None:
            raise CheckpointNotFound(checkpoint_id)
        checkpoint.active = bool(active)
        sess.flush()
        log_operation(
            logger,
            "set_checkpoint_active",
            "success",
            checkpoint_id=checkpoint.id,
            active=checkpoint.active,
        )
        return checkpoint

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)
