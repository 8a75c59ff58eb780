"""
Product model for the finished goods a batch produces.
"""

from sqlalchemy import Column, String, Boolean, Text
from sqlalchemy.orm import relationship

from .base import BaseModel


class Product(BaseModel):
    """
    Product model (e.g. "Original Beef Jerky 50g").

    Attributes:
        name: Product name
        code: Optional SKU / product code
        description: Optional description
        is_active: Soft delete flag
    """

    __tablename__ = "products"

    name = Column(String(200), nullable=False)
    code = Column(String(50), nullable=True, unique=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    batches = relationship("Batch", back_populates="product")
