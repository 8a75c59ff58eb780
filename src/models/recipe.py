"""
Recipe models for production recipes.

This module contains:
- Recipe: Versioned recipe template with a base (input) weight and target yield
- RecipeIngredient: Ordered ingredient line with tolerance and cure metadata

Recipes are scaled to a batch by input weight; batches snapshot the scaled
quantities at creation, so later recipe edits never change existing batches.
"""

from sqlalchemy import (
    Column,
    String,
    Float,
    Integer,
    Text,
    Boolean,
    ForeignKey,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship, validates

from .base import BaseModel, coerce_enum
from .enums import CureType
from src.utils.constants import DEFAULT_TOLERANCE_PERCENTAGE


class Recipe(BaseModel):
    """
    Recipe model.

    Attributes:
        name: Recipe name (required)
        version: Recipe version number, incremented by authors on change
        base_weight: Input weight the ingredient quantities are written for (> 0)
        base_weight_unit: Unit of base_weight (batch input weights use the same unit)
        target_yield: Expected finished weight from base_weight of input
        notes: Additional notes
        is_archived: Whether the recipe is archived (soft delete)
    """

    __tablename__ = "recipes"

    name = Column(String(200), nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)
    base_weight = Column(Float, nullable=False)
    base_weight_unit = Column(String(20), nullable=False, default="kg")
    target_yield = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    is_archived = Column(Boolean, nullable=False, default=False)

    ingredients = relationship(
        "RecipeIngredient",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeIngredient.sort_order",
        lazy="selectin",
    )
    batches = relationship("Batch", back_populates="recipe")

    __table_args__ = (
        CheckConstraint("base_weight > 0", name="ck_recipe_base_weight_positive"),
        CheckConstraint("version >= 1", name="ck_recipe_version_positive"),
    )

    def __repr__(self) -> str:
        """String representation of recipe."""
        return f"Recipe(id={self.id}, name='{self.name}', v{self.version})"

    @property
    def cure_ingredient(self):
        """The recipe's cure line, or None."""
        for line in self.ingredients:
            if line.is_cure:
                return line
        return None


class RecipeIngredient(BaseModel):
    """
    Ingredient line of a recipe.

    Attributes:
        recipe_id: Foreign key to Recipe
        material_id: Foreign key to Material
        quantity: Amount needed for the recipe's base_weight
        unit: Unit of quantity
        tolerance_percentage: Allowed deviation of the measured actual from target
        is_critical: Critical ingredients are highlighted during weighing
        is_cure: Marks the curing-salt line (at most one per recipe)
        cure_type: Curing salt used when is_cure is set
        sort_order: Display order within the recipe
        notes: Optional preparation notes
    """

    __tablename__ = "recipe_ingredients"

    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False)
    material_id = Column(
        Integer, ForeignKey("materials.id", ondelete="RESTRICT"), nullable=False
    )

    quantity = Column(Float, nullable=False)
    unit = Column(String(20), nullable=False)
    tolerance_percentage = Column(Float, nullable=False, default=DEFAULT_TOLERANCE_PERCENTAGE)

    is_critical = Column(Boolean, nullable=False, default=False)
    is_cure = Column(Boolean, nullable=False, default=False)
    cure_type = Column(String(20), nullable=True)

    sort_order = Column(Integer, nullable=False, default=0)
    notes = Column(String(500), nullable=True)

    recipe = relationship("Recipe", back_populates="ingredients")
    material = relationship("Material", lazy="joined")

    __table_args__ = (
        Index("idx_recipe_ingredient_recipe", "recipe_id"),
        Index("idx_recipe_ingredient_material", "material_id"),
        CheckConstraint("quantity > 0", name="ck_recipe_ingredient_quantity_positive"),
        CheckConstraint(
            "tolerance_percentage >= 0", name="ck_recipe_ingredient_tolerance_non_negative"
        ),
    )

    @validates("cure_type")
    def _validate_cure_type(self, key, value):
        return coerce_enum(CureType, value, key)

    def __repr__(self) -> str:
        """String representation of recipe ingredient."""
        return (
            f"RecipeIngredient(recipe_id={self.recipe_id}, "
            f"material_id={self.material_id}, "
            f"quantity={self.quantity}, unit='{self.unit}')"
        )
