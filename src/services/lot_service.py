"""
Lot service - material lot receipt, FEFO allocation, recall cascade and
traceability queries.

Allocation draws from available lots of the ingredient's material in
first-expired-first-out order: earliest expiry first, lots without an expiry
date last, ties broken by received date and then id. Each draw is a single
conditional UPDATE that only succeeds while the lot still holds at least the
drawn quantity, so concurrent allocators can never push a balance below
zero; a draw that matches no row means the lot was taken by someone else and
the allocator moves on to the next lot. Every draw leaves an immutable
LotAllocation edge.

A recall walks those edges from the lot to every batch that consumed it and
moves approved releases to recalled. Unreleased batches keep their status;
the release gates block their approval while they hold a recalled lot.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from src.models import (
    Batch,
    BatchIngredient,
    BatchRelease,
    LotAllocation,
    LotRecall,
    LotRecallBatch,
    LotStatus,
    Material,
    MaterialLot,
    ReleaseStatus,
    Supplier,
)
from src.services import release_service
from src.services.database import session_scope
from src.services.exceptions import (
    BatchIngredientNotFound,
    BatchNotFound,
    LotNotFound,
    MaterialNotFound,
    ValidationError,
)
from src.services.identity import actor_id
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.constants import QUANTITY_EPSILON
from src.utils.datetime_utils import utc_now, utc_today
from src.utils.validators import sanitize_string, validate_lot_data, validate_positive_number

logger = get_service_logger(__name__)


# ============================================================================
# Receipt
# ============================================================================


def receive_lot(lot_data: Dict, actor=None, session: Optional[Session] = None) -> MaterialLot:
    """
    Record a received material lot.

    Args:
        lot_data: Dictionary with:
            - lot_number: str (unique)
            - material_id: int
            - quantity: float (> 0)
            - unit: str (optional, default "g")
            - supplier_id: int (optional)
            - supplier_lot_number: str (optional)
            - received_date: date (optional, default today)
            - expiry_date: date (optional)
        actor: Receiving actor (audit only)
        session: Optional database session

    Returns:
        The created MaterialLot, available with its full quantity as balance

    Raises:
        ValidationError: If data validation fails
        MaterialNotFound: If the material doesn't exist
        ConflictingState: If the lot number already exists
    """
    is_valid, errors = validate_lot_data(lot_data)
    if not is_valid:
        raise ValidationError(errors)

    def _impl(sess: Session) -> MaterialLot:
        if sess.get(Material, lot_data["material_id"]) is None:
            raise MaterialNotFound(lot_data["material_id"])

        quantity = float(lot_data["quantity"])
        lot = MaterialLot(
            lot_number=lot_data["lot_number"].strip(),
            supplier_lot_number=sanitize_string(lot_data.get("supplier_lot_number")),
            material_id=lot_data["material_id"],
            supplier_id=lot_data.get("supplier_id"),
            received_date=lot_data.get("received_date") or utc_today(),
            expiry_date=lot_data.get("expiry_date"),
            original_quantity=quantity,
            current_balance=quantity,
            unit=lot_data.get("unit", "g"),
            status=LotStatus.AVAILABLE.value,
        )
        sess.add(lot)
        sess.flush()
        log_operation(
            logger,
            "receive_lot",
            "success",
            lot_id=lot.id,
            lot_number=lot.lot_number,
            quantity=quantity,
            received_by=actor_id(actor),
        )
        return lot

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


# ============================================================================
# Allocation
# ============================================================================


def _fefo_candidates(material_id: int, session: Session) -> List[MaterialLot]:
    return (
        session.query(MaterialLot)
        .filter(MaterialLot.material_id == material_id)
        .filter(MaterialLot.status == LotStatus.AVAILABLE.value)
        .filter(MaterialLot.current_balance > QUANTITY_EPSILON)
        .order_by(
            MaterialLot.expiry_date.is_(None),
            MaterialLot.expiry_date.asc(),
            MaterialLot.received_date.asc(),
            MaterialLot.id.asc(),
        )
        .all()
    )


def _draw(lot: MaterialLot, quantity: float, session: Session) -> bool:
    """Atomically take quantity from a lot; False if the lot no longer holds it."""
    updated = (
        session.query(MaterialLot)
        .filter(MaterialLot.id == lot.id)
        .filter(MaterialLot.status == LotStatus.AVAILABLE.value)
        .filter(MaterialLot.current_balance >= quantity)
        .update(
            {MaterialLot.current_balance: MaterialLot.current_balance - quantity},
            synchronize_session=False,
        )
    )
    if updated == 0:
        session.refresh(lot)
        return False

    # Residue below epsilon counts as empty
    (
        session.query(MaterialLot)
        .filter(MaterialLot.id == lot.id)
        .filter(MaterialLot.status == LotStatus.AVAILABLE.value)
        .filter(MaterialLot.current_balance <= QUANTITY_EPSILON)
        .update(
            {MaterialLot.current_balance: 0.0, MaterialLot.status: LotStatus.DEPLETED.value},
            synchronize_session=False,
        )
    )
    session.refresh(lot)
    return True


def _allocate_impl(
    batch_ingredient_id: int,
    quantity_needed: Optional[float],
    actor,
    session: Session,
) -> Dict[str, Any]:
    ingredient = session.get(BatchIngredient, batch_ingredient_id)
    if ingredient is None:
        raise BatchIngredientNotFound(batch_ingredient_id)

    if quantity_needed is None:
        requested = max(ingredient.target_amount - ingredient.allocated_quantity, 0.0)
    else:
        ok, msg = validate_positive_number(quantity_needed, "Quantity needed")
        if not ok:
            raise ValidationError([msg])
        requested = float(quantity_needed)

    remaining = requested
    draws = []
    for lot in _fefo_candidates(ingredient.material_id, session):
        if remaining <= QUANTITY_EPSILON:
            break
        take = min(lot.current_balance, remaining)
        if not _draw(lot, take, session):
            log_operation(
                logger,
                "allocate_lots",
                "lot_contended",
                level=logging.DEBUG,
                lot_id=lot.id,
                batch_ingredient_id=batch_ingredient_id,
            )
            continue

        allocation = LotAllocation(
            batch_ingredient_id=ingredient.id,
            batch_id=ingredient.batch_id,
            lot_id=lot.id,
            quantity=take,
            allocated_by=actor_id(actor),
        )
        session.add(allocation)
        session.flush()
        remaining -= take
        draws.append(
            {
                "allocation_id": allocation.id,
                "lot_id": lot.id,
                "lot_number": lot.lot_number,
                "quantity": take,
                "unit": lot.unit,
                "expiry_date": lot.expiry_date.isoformat() if lot.expiry_date else None,
                "lot_balance": lot.current_balance,
                "lot_status": lot.status,
            }
        )

    allocated = requested - max(remaining, 0.0)
    shortfall = max(remaining, 0.0)
    if shortfall <= QUANTITY_EPSILON:
        shortfall = 0.0
    satisfied = shortfall == 0.0

    log_operation(
        logger,
        "allocate_lots",
        "success" if satisfied else "shortfall",
        level=logging.INFO if satisfied else logging.WARNING,
        batch_ingredient_id=batch_ingredient_id,
        batch_id=ingredient.batch_id,
        requested=requested,
        allocated=allocated,
        shortfall=shortfall,
        lot_count=len(draws),
    )
    return {
        "batch_ingredient_id": ingredient.id,
        "material_id": ingredient.material_id,
        "requested": requested,
        "allocated": allocated,
        "shortfall": shortfall,
        "satisfied": satisfied,
        "allocations": draws,
    }


def allocate_lots(
    batch_ingredient_id: int,
    quantity_needed: Optional[float] = None,
    actor=None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Allocate material lots to a batch ingredient, first-expired-first-out.

    Partial allocation is a successful result: whatever the available lots
    hold is allocated and the rest is reported as shortfall.

    Args:
        batch_ingredient_id: Batch ingredient whose demand is being filled
        quantity_needed: Quantity to allocate; defaults to the ingredient's
            target amount minus what is already allocated
        actor: Allocating actor (audit)
        session: Optional database session

    Returns:
        Dict with batch_ingredient_id, material_id, requested, allocated,
        shortfall, satisfied and allocations (one entry per lot drawn)

    Raises:
        BatchIngredientNotFound: If the ingredient doesn't exist
        ValidationError: If quantity_needed is given and not positive

    Example:
        >>> result = allocate_lots(ingredient.id, 150)
        >>> [(a["lot_number"], a["quantity"]) for a in result["allocations"]]
        [('LOT-A', 100.0), ('LOT-B', 50.0)]
    """
    if session is not None:
        return _allocate_impl(batch_ingredient_id, quantity_needed, actor, session)
    with session_scope() as sess:
        return _allocate_impl(batch_ingredient_id, quantity_needed, actor, sess)


# ============================================================================
# Recall cascade
# ============================================================================


def _recall_impl(lot_id: int, reason: str, notes: Optional[str], actor, session: Session) -> Dict:
    lot = (
        session.query(MaterialLot)
        .filter(MaterialLot.id == lot_id)
        .with_for_update()
        .one_or_none()
    )
    if lot is None:
        raise LotNotFound(lot_id)

    now = utc_now()
    initiated_by = actor_id(actor)
    repeated = lot.status == LotStatus.RECALLED.value

    lot.status = LotStatus.RECALLED.value
    lot.recall_reason = reason
    # A repeat recall without notes keeps the earlier ones
    if notes is not None:
        lot.recall_notes = notes
    lot.recalled_at = now
    lot.recalled_by = initiated_by

    recall = session.query(LotRecall).filter(LotRecall.lot_id == lot.id).one_or_none()
    if recall is None:
        recall = LotRecall(lot_id=lot.id)
        session.add(recall)
    recall.reason = reason
    if notes is not None:
        recall.notes = notes
    recall.initiated_by = initiated_by
    recall.initiated_at = now
    session.flush()

    batch_ids = [
        row.batch_id
        for row in session.query(LotAllocation.batch_id)
        .filter(LotAllocation.lot_id == lot.id)
        .distinct()
        .order_by(LotAllocation.batch_id)
        .all()
    ]
    linked = {
        link.batch_id: link
        for link in session.query(LotRecallBatch)
        .filter(LotRecallBatch.lot_recall_id == recall.id)
        .all()
    }

    affected = []
    for batch_id in batch_ids:
        batch = session.get(Batch, batch_id)
        release = (
            session.query(BatchRelease)
            .filter(BatchRelease.batch_id == batch_id)
            .with_for_update()
            .one_or_none()
        )
        previous = release.release_status if release is not None else None
        if previous == ReleaseStatus.APPROVED.value:
            release_service.mark_recalled(
                release, f"Lot {lot.lot_number} recalled: {reason}", session
            )

        if batch_id not in linked:
            session.add(
                LotRecallBatch(
                    lot_recall_id=recall.id,
                    batch_id=batch_id,
                    previous_release_status=previous,
                )
            )
        affected.append(
            {
                "batch_id": batch_id,
                "batch_code": batch.batch_code,
                "previous_release_status": previous,
                "release_status": release.release_status if release is not None else None,
            }
        )
    session.flush()

    log_operation(
        logger,
        "recall_lot",
        "repeated" if repeated else "success",
        level=logging.WARNING,
        lot_id=lot.id,
        lot_number=lot.lot_number,
        recall_id=recall.id,
        affected_batch_ids=batch_ids,
        initiated_by=initiated_by,
    )
    return {
        "lot": lot.to_dict(),
        "recall_id": recall.id,
        "affected_batches": affected,
    }


def recall_lot(
    lot_id: int,
    reason: str,
    notes: Optional[str] = None,
    actor=None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Recall a material lot and cascade to every batch that consumed it.

    The lot becomes recalled permanently. Every batch reached through the
    lot's allocation edges is linked to the recall record; approved releases
    among them move to recalled with the recall reason. Recalling an already
    recalled lot updates the recall record and walks the edges again.

    Args:
        lot_id: Lot to recall
        reason: Mandatory recall reason
        notes: Optional notes
        actor: Actor initiating the recall
        session: Optional database session

    Returns:
        Dict with the updated lot, recall_id and affected_batches
        (batch_id, batch_code, previous_release_status, release_status)

    Raises:
        ValidationError: If reason is empty
        LotNotFound: If the lot doesn't exist
    """
    reason = sanitize_string(reason)
    if reason is None:
        raise ValidationError(["Recall reason: This field is required"])
    notes = sanitize_string(notes)

    if session is not None:
        return _recall_impl(lot_id, reason, notes, actor, session)
    with session_scope() as sess:
        return _recall_impl(lot_id, reason, notes, actor, sess)


# ============================================================================
# Traceability
# ============================================================================


def get_batch_traceability(batch_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Every lot a batch consumed, edge by edge.

    Returns:
        Dict with batch_id, batch_code, allocations (lot, material, supplier,
        quantity and lot status per edge) and recalled_lots

    Raises:
        BatchNotFound: If the batch doesn't exist
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        batch = sess.get(Batch, batch_id)
        if batch is None:
            raise BatchNotFound(batch_id)

        rows = (
            sess.query(LotAllocation, BatchIngredient, MaterialLot, Material, Supplier)
            .join(BatchIngredient, LotAllocation.batch_ingredient_id == BatchIngredient.id)
            .join(MaterialLot, LotAllocation.lot_id == MaterialLot.id)
            .join(Material, MaterialLot.material_id == Material.id)
            .outerjoin(Supplier, MaterialLot.supplier_id == Supplier.id)
            .filter(LotAllocation.batch_id == batch_id)
            .order_by(BatchIngredient.sort_order, LotAllocation.id)
            .all()
        )
        allocations = []
        for allocation, ingredient, lot, material, supplier in rows:
            allocations.append(
                {
                    "allocation_id": allocation.id,
                    "batch_ingredient_id": ingredient.id,
                    "ingredient_name": ingredient.ingredient_name,
                    "quantity": allocation.quantity,
                    "unit": lot.unit,
                    "allocated_by": allocation.allocated_by,
                    "lot_id": lot.id,
                    "lot_number": lot.lot_number,
                    "supplier_lot_number": lot.supplier_lot_number,
                    "lot_status": lot.status,
                    "expiry_date": lot.expiry_date.isoformat() if lot.expiry_date else None,
                    "recall_reason": lot.recall_reason,
                    "material_id": material.id,
                    "material_name": material.name,
                    "supplier_id": supplier.id if supplier is not None else None,
                    "supplier_name": supplier.name if supplier is not None else None,
                }
            )
        return {
            "batch_id": batch.id,
            "batch_code": batch.batch_code,
            "allocations": allocations,
            "recalled_lots": _recalled_lot_dicts(batch.id, sess),
        }

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def get_lot_batches(
    lot_id: int,
    limit: Optional[int] = None,
    offset: int = 0,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """
    Every batch that consumed a lot, with the quantity drawn.

    Args:
        lot_id: Lot to trace forward
        limit: Maximum number of batches (None = all)
        offset: Number of batches to skip (for pagination)
        session: Optional database session

    Raises:
        LotNotFound: If the lot doesn't exist
    """

    def _impl(sess: Session) -> List[Dict[str, Any]]:
        if sess.get(MaterialLot, lot_id) is None:
            raise LotNotFound(lot_id)

        batch_ids = [
            row.batch_id
            for row in sess.query(LotAllocation.batch_id)
            .filter(LotAllocation.lot_id == lot_id)
            .distinct()
            .order_by(LotAllocation.batch_id)
            .offset(offset)
            .limit(limit)
            .all()
        ]
        results = []
        for batch_id in batch_ids:
            batch = sess.get(Batch, batch_id)
            quantity = sum(
                allocation.quantity
                for allocation in sess.query(LotAllocation)
                .filter(LotAllocation.lot_id == lot_id, LotAllocation.batch_id == batch_id)
                .all()
            )
            results.append(
                {
                    "batch_id": batch.id,
                    "batch_code": batch.batch_code,
                    "batch_status": batch.status,
                    "release_status": batch.release.release_status if batch.release else None,
                    "quantity": quantity,
                }
            )
        return results

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def _recalled_lot_dicts(batch_id: int, session: Session) -> List[Dict[str, Any]]:
    return [lot.to_dict() for lot in release_service.recalled_lots_for_batch(batch_id, session)]


def get_recalled_lots_for_batch(
    batch_id: int, session: Optional[Session] = None
) -> List[Dict[str, Any]]:
    """
    Recalled lots a batch consumed.

    Raises:
        BatchNotFound: If the batch doesn't exist
    """

    def _impl(sess: Session) -> List[Dict[str, Any]]:
        if sess.get(Batch, batch_id) is None:
            raise BatchNotFound(batch_id)
        return _recalled_lot_dicts(batch_id, sess)

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)
