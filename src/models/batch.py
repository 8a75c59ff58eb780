"""
Batch models for production runs.

This module contains:
- Batch: One production run of a recipe at a given input weight
- BatchIngredient: Per-batch snapshot of a scaled recipe line plus its
  measured actual amount

A batch's QA stage is never stored here; it is always recomputed from the
batch's QA checks (see services.compliance).
"""

from sqlalchemy import (
    Column,
    String,
    Float,
    Integer,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship, validates

from .base import BaseModel, coerce_enum
from .enums import BatchStatus, CureStatus, CureType


class Batch(BaseModel):
    """
    Batch model for one production run.

    Attributes:
        batch_code: Human-readable code, e.g. B20250301-002 (unique)
        recipe_id: Recipe the batch was scaled from
        product_id: Product the batch produces (optional)
        input_weight: Input weight, in the recipe's base_weight_unit
        scaling_factor: input_weight / recipe.base_weight (> 0)
        status: in_progress | completed
        created_by: Actor id that created the batch
        completed_by: Actor id that completed the batch
        completed_at: Completion timestamp
        notes: Optional notes
    """

    __tablename__ = "batches"

    batch_code = Column(String(50), nullable=False, unique=True)
    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="RESTRICT"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=True)

    input_weight = Column(Float, nullable=False)
    scaling_factor = Column(Float, nullable=False)

    status = Column(String(20), nullable=False, default=BatchStatus.IN_PROGRESS.value)
    created_by = Column(String(100), nullable=True)
    completed_by = Column(String(100), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    recipe = relationship("Recipe", back_populates="batches")
    product = relationship("Product", back_populates="batches")
    ingredients = relationship(
        "BatchIngredient",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="BatchIngredient.sort_order",
    )
    qa_checks = relationship(
        "BatchQACheck", back_populates="batch", cascade="all, delete-orphan"
    )
    release = relationship(
        "BatchRelease", back_populates="batch", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_batch_recipe", "recipe_id"),
        Index("idx_batch_status", "status"),
        CheckConstraint("input_weight > 0", name="ck_batch_input_weight_positive"),
        CheckConstraint("scaling_factor > 0", name="ck_batch_scaling_factor_positive"),
    )

    @validates("status")
    def _validate_status(self, key, value):
        return coerce_enum(BatchStatus, value, key)

    def __repr__(self) -> str:
        """String representation of batch."""
        return f"Batch(id={self.id}, batch_code='{self.batch_code}', status='{self.status}')"


class BatchIngredient(BaseModel):
    """
    Scaled ingredient snapshot for a batch.

    Attributes:
        batch_id: Owning batch
        material_id: Material to weigh
        ingredient_name: Material name at batch creation
        target_amount: recipe quantity x batch scaling factor (full precision)
        unit: Unit of target_amount and actual_amount
        tolerance_percentage: Allowed deviation of actual from target
        is_critical / is_cure / cure_type: Copied verbatim from the recipe line
        actual_amount: Measured amount, None until weighed
        in_tolerance: Derived from actual vs target, None until weighed
        measured_at / measured_by: Last measurement audit
        cure_required_grams / cure_ppm / cure_status: Cure line measurements
        sort_order: Recipe line order
    """

    __tablename__ = "batch_ingredients"

    batch_id = Column(Integer, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False)
    material_id = Column(
        Integer, ForeignKey("materials.id", ondelete="RESTRICT"), nullable=False
    )
    ingredient_name = Column(String(200), nullable=False)

    target_amount = Column(Float, nullable=False)
    unit = Column(String(20), nullable=False)
    tolerance_percentage = Column(Float, nullable=False)

    is_critical = Column(Boolean, nullable=False, default=False)
    is_cure = Column(Boolean, nullable=False, default=False)
    cure_type = Column(String(20), nullable=True)

    actual_amount = Column(Float, nullable=True)
    in_tolerance = Column(Boolean, nullable=True)
    measured_at = Column(DateTime, nullable=True)
    measured_by = Column(String(100), nullable=True)

    cure_required_grams = Column(Float, nullable=True)
    cure_ppm = Column(Float, nullable=True)
    cure_status = Column(String(10), nullable=True)

    sort_order = Column(Integer, nullable=False, default=0)

    batch = relationship("Batch", back_populates="ingredients")
    material = relationship("Material")
    allocations = relationship("LotAllocation", back_populates="batch_ingredient")

    __table_args__ = (
        Index("idx_batch_ingredient_batch", "batch_id"),
        Index("idx_batch_ingredient_material", "material_id"),
        CheckConstraint("target_amount >= 0", name="ck_batch_ingredient_target_non_negative"),
        CheckConstraint(
            "actual_amount IS NULL OR actual_amount >= 0",
            name="ck_batch_ingredient_actual_non_negative",
        ),
    )

    @validates("cure_type")
    def _validate_cure_type(self, key, value):
        return coerce_enum(CureType, value, key)

    @validates("cure_status")
    def _validate_cure_status(self, key, value):
        return coerce_enum(CureStatus, value, key)

    @property
    def allocated_quantity(self) -> float:
        """Total quantity allocated from lots so far."""
        return sum(allocation.quantity for allocation in self.allocations)

    def __repr__(self) -> str:
        """String representation of batch ingredient."""
        return (
            f"BatchIngredient(batch_id={self.batch_id}, "
            f"ingredient_name='{self.ingredient_name}', "
            f"target={self.target_amount} {self.unit})"
        )
