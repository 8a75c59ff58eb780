"""
Material model for raw materials consumed by recipes.

A material is the catalogue entry (e.g. "Beef silverside", "Soy sauce");
physical stock of a material arrives as MaterialLot rows.
"""

from sqlalchemy import Column, String, Boolean, Text, Index
from sqlalchemy.orm import relationship

from .base import BaseModel


class Material(BaseModel):
    """
    Material model representing a raw material.

    Attributes:
        name: Display name (required)
        material_code: Optional short code printed on labels and lot sheets
        unit: Unit lots of this material are received and allocated in
        notes: Optional notes
        is_active: Soft delete flag

    Relationships:
        lots: Received lots of this material
    """

    __tablename__ = "materials"

    name = Column(String(200), nullable=False)
    material_code = Column(String(50), nullable=True, unique=True)
    unit = Column(String(20), nullable=False, default="g")
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    lots = relationship("MaterialLot", back_populates="material")

    __table_args__ = (Index("idx_material_name", "name"),)
