"""
MaterialLot model for received material stock.

This model represents a received quantity of a material:
- Which material, from which supplier, under which lot number
- When it was received and when it expires (FEFO ordering)
- How much of it remains unallocated
- Whether it has been recalled

Balances are only ever decreased through a conditional UPDATE in
lot_service, never by read-modify-write on a loaded instance.
"""

from sqlalchemy import (
    Column,
    String,
    Float,
    Integer,
    Text,
    Date,
    DateTime,
    ForeignKey,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship, validates

from .base import BaseModel, coerce_enum
from .enums import LotStatus
from src.utils.datetime_utils import utc_today


class MaterialLot(BaseModel):
    """
    MaterialLot model.

    Attributes:
        lot_number: Internal lot number (unique)
        supplier_lot_number: Lot number printed by the supplier
        material_id: Material received
        supplier_id: Supplier that shipped the lot
        received_date: Date received
        expiry_date: Use-by date (None sorts last for allocation)
        original_quantity: Quantity received
        current_balance: Quantity not yet allocated (>= 0)
        unit: Unit of the quantities
        status: available | depleted | recalled
        recall_reason / recall_notes / recalled_at / recalled_by: Recall audit
    """

    __tablename__ = "material_lots"

    lot_number = Column(String(100), nullable=False, unique=True)
    supplier_lot_number = Column(String(100), nullable=True)
    material_id = Column(
        Integer, ForeignKey("materials.id", ondelete="RESTRICT"), nullable=False
    )
    supplier_id = Column(
        Integer, ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=True
    )

    received_date = Column(Date, nullable=False, default=utc_today)
    expiry_date = Column(Date, nullable=True)

    original_quantity = Column(Float, nullable=False)
    current_balance = Column(Float, nullable=False)
    unit = Column(String(20), nullable=False, default="g")

    status = Column(String(20), nullable=False, default=LotStatus.AVAILABLE.value)
    recall_reason = Column(Text, nullable=True)
    recall_notes = Column(Text, nullable=True)
    recalled_at = Column(DateTime, nullable=True)
    recalled_by = Column(String(100), nullable=True)

    material = relationship("Material", back_populates="lots")
    supplier = relationship("Supplier", back_populates="lots")
    allocations = relationship("LotAllocation", back_populates="lot")

    __table_args__ = (
        Index("idx_material_lot_fefo", "material_id", "status", "expiry_date", "received_date"),
        CheckConstraint("original_quantity > 0", name="ck_material_lot_original_positive"),
        CheckConstraint("current_balance >= 0", name="ck_material_lot_balance_non_negative"),
    )

    @validates("status")
    def _validate_status(self, key, value):
        return coerce_enum(LotStatus, value, key)

    @property
    def is_recalled(self) -> bool:
        """True once the lot has been recalled."""
        return self.status == LotStatus.RECALLED.value

    def __repr__(self) -> str:
        """String representation of lot."""
        return (
            f"MaterialLot(id={self.id}, lot_number='{self.lot_number}', "
            f"balance={self.current_balance} {self.unit}, status='{self.status}')"
        )
