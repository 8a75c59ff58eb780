"""
Supplier model for material suppliers.

Suppliers are referenced by material lots so a recall can be traced back
to the vendor that shipped the affected lot.
"""

from sqlalchemy import Column, String, Boolean, Text, Index
from sqlalchemy.orm import relationship

from .base import BaseModel


class Supplier(BaseModel):
    """
    Supplier model representing a material vendor.

    Attributes:
        name: Supplier name
        code: Optional short supplier code
        approved: Whether the supplier passed supplier approval
        notes: Optional notes (certifications, contacts)
        is_active: Soft delete flag (True = active, False = deactivated)

    Relationships:
        lots: Material lots received from this supplier
    """

    __tablename__ = "suppliers"

    name = Column(String(200), nullable=False)
    code = Column(String(50), nullable=True, unique=True)
    approved = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    lots = relationship("MaterialLot", back_populates="supplier")

    __table_args__ = (
        Index("idx_supplier_name", "name"),
        Index("idx_supplier_active", "is_active"),
    )

    def __repr__(self) -> str:
        """String representation of supplier."""
        return f"Supplier(id={self.id}, name='{self.name}', approved={self.approved})"
