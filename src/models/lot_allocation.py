"""
LotAllocation model: the traceability edge between batches and lots.

Each row records that a quantity of one material lot was drawn for one
batch ingredient. Rows are immutable once written; re-allocation adds rows.
The table is indexed from both ends so the recall cascade can walk
lot -> batches and traceability can walk batch -> lots.
"""

from sqlalchemy import (
    Column,
    String,
    Float,
    Integer,
    ForeignKey,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class LotAllocation(BaseModel):
    """
    LotAllocation model.

    Attributes:
        batch_ingredient_id: Batch ingredient the quantity was drawn for
        batch_id: Owning batch of the ingredient (denormalized for lookups)
        lot_id: Lot the quantity was drawn from
        quantity: Quantity drawn (> 0), in the lot's unit
        allocated_by: Actor id that triggered the allocation
    """

    __tablename__ = "lot_allocations"

    batch_ingredient_id = Column(
        Integer, ForeignKey("batch_ingredients.id", ondelete="RESTRICT"), nullable=False
    )
    batch_id = Column(Integer, ForeignKey("batches.id", ondelete="RESTRICT"), nullable=False)
    lot_id = Column(Integer, ForeignKey("material_lots.id", ondelete="RESTRICT"), nullable=False)
    quantity = Column(Float, nullable=False)
    allocated_by = Column(String(100), nullable=True)

    batch_ingredient = relationship("BatchIngredient", back_populates="allocations")
    batch = relationship("Batch")
    lot = relationship("MaterialLot", back_populates="allocations")

    __table_args__ = (
        Index("idx_lot_allocation_lot", "lot_id"),
        Index("idx_lot_allocation_batch", "batch_id"),
        Index("idx_lot_allocation_ingredient", "batch_ingredient_id"),
        CheckConstraint("quantity > 0", name="ck_lot_allocation_quantity_positive"),
    )

    def __repr__(self) -> str:
        """String representation of allocation."""
        return (
            f"LotAllocation(batch_ingredient_id={self.batch_ingredient_id}, "
            f"lot_id={self.lot_id}, quantity={self.quantity})"
        )
