"""
Lot recall models.

This module contains:
- LotRecall: One recall record per recalled lot (reason, notes, initiator)
- LotRecallBatch: Links a recall to every batch that consumed the lot
"""

from sqlalchemy import (
    Column,
    String,
    Integer,
    Text,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from src.utils.datetime_utils import utc_now


class LotRecall(BaseModel):
    """
    LotRecall model.

    Attributes:
        lot_id: Recalled lot (unique, a lot is recalled at most once)
        reason: Recall reason, inherited by recalled releases
        notes: Optional notes
        initiated_by: Actor id that initiated the recall
        initiated_at: When the recall was initiated
    """

    __tablename__ = "lot_recalls"

    lot_id = Column(Integer, ForeignKey("material_lots.id", ondelete="RESTRICT"), nullable=False)
    reason = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    initiated_by = Column(String(100), nullable=True)
    initiated_at = Column(DateTime, nullable=False, default=utc_now)

    lot = relationship("MaterialLot")
    affected_batches = relationship(
        "LotRecallBatch", back_populates="lot_recall", cascade="all, delete-orphan"
    )

    __table_args__ = (UniqueConstraint("lot_id", name="uq_lot_recall_lot"),)


class LotRecallBatch(BaseModel):
    """
    LotRecallBatch model linking a recall to an affected batch.

    Attributes:
        lot_recall_id: Owning recall
        batch_id: Batch that consumed the recalled lot
        previous_release_status: Release status before the recall (None if unreleased)
    """

    __tablename__ = "lot_recall_batches"

    lot_recall_id = Column(
        Integer, ForeignKey("lot_recalls.id", ondelete="CASCADE"), nullable=False
    )
    batch_id = Column(Integer, ForeignKey("batches.id", ondelete="RESTRICT"), nullable=False)
    previous_release_status = Column(String(20), nullable=True)

    lot_recall = relationship("LotRecall", back_populates="affected_batches")
    batch = relationship("Batch")

    __table_args__ = (
        UniqueConstraint("lot_recall_id", "batch_id", name="uq_lot_recall_batch"),
        Index("idx_lot_recall_batch_batch", "batch_id"),
    )
