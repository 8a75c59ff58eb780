"""
Recipe service - recipe authoring and batch scaling.

This module provides:
- Recipe creation with validation (including the single-cure-line rule)
- Recipe lookup
- Scaling a recipe to a batch input weight

Scaling is a pure numeric transform: target amounts keep full float
precision and only presentation rounds them.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from src.models import Material, Recipe, RecipeIngredient
from src.services.database import session_scope
from src.services.exceptions import (
    InvalidRecipe,
    MaterialNotFound,
    RecipeNotFound,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.config import get_config
from src.utils.validators import sanitize_string, validate_positive_number, validate_recipe_data

logger = get_service_logger(__name__)


@dataclass
class ScaledIngredient:
    """One recipe line scaled to a batch."""

    material_id: int
    material_name: Optional[str]
    base_quantity: float
    target_amount: float
    unit: str
    tolerance_percentage: float
    is_critical: bool
    is_cure: bool
    cure_type: Optional[str]
    sort_order: int = 0


@dataclass
class ScaledRecipe:
    """A recipe scaled to an input weight."""

    recipe_id: Optional[int]
    recipe_name: str
    base_weight: float
    input_weight: float
    scaling_factor: float
    ingredients: List[ScaledIngredient] = field(default_factory=list)

    @property
    def cure_ingredient(self) -> Optional[ScaledIngredient]:
        for ingredient in self.ingredients:
            if ingredient.is_cure:
                return ingredient
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def scale_recipe(recipe: Any, input_weight: float) -> ScaledRecipe:
    """
    Scale a recipe to a batch input weight.

    scaling_factor = input_weight / recipe.base_weight, and every line's
    target_amount = quantity * scaling_factor. Units, tolerances and the
    critical/cure flags are copied unchanged.

    Args:
        recipe: Recipe (or any object with id, name, base_weight, ingredients)
        input_weight: Batch input weight, in the recipe's base weight unit

    Returns:
        ScaledRecipe

    Raises:
        InvalidRecipe: If the recipe's base weight is not positive
        ValidationError: If input_weight is not a positive number

    Example:
        >>> scaled = scale_recipe(recipe, 25.0)   # recipe base weight 10
        >>> scaled.scaling_factor
        2.5
    """
    base_weight = recipe.base_weight
    if base_weight is None or base_weight <= 0:
        raise InvalidRecipe(
            getattr(recipe, "id", None), ["Base weight: Must be a positive number"]
        )

    ok, msg = validate_positive_number(input_weight, "Input weight")
    if not ok:
        raise ValidationError([msg])

    input_weight = float(input_weight)
    factor = input_weight / base_weight

    lines = sorted(recipe.ingredients, key=lambda line: line.sort_order or 0)
    scaled_lines = []
    for line in lines:
        material = getattr(line, "material", None)
        scaled_lines.append(
            ScaledIngredient(
                material_id=line.material_id,
                material_name=material.name if material is not None else None,
                base_quantity=line.quantity,
                target_amount=line.quantity * factor,
                unit=line.unit,
                tolerance_percentage=line.tolerance_percentage,
                is_critical=bool(line.is_critical),
                is_cure=bool(line.is_cure),
                cure_type=line.cure_type,
                sort_order=line.sort_order or 0,
            )
        )

    return ScaledRecipe(
        recipe_id=getattr(recipe, "id", None),
        recipe_name=recipe.name,
        base_weight=base_weight,
        input_weight=input_weight,
        scaling_factor=factor,
        ingredients=scaled_lines,
    )


def scale_recipe_by_id(
    recipe_id: int, input_weight: float, session: Optional[Session] = None
) -> Dict[str, Any]:
    """
    Load a recipe and scale it to an input weight.

    Returns:
        ScaledRecipe as a dict (scaling_factor plus scaled ingredient lines)

    Raises:
        RecipeNotFound: If the recipe does not exist
        InvalidRecipe: If its base weight is not positive
        ValidationError: If input_weight is not positive
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        recipe = sess.get(Recipe, recipe_id)
        if recipe is None:
            raise RecipeNotFound(recipe_id)
        return scale_recipe(recipe, input_weight).to_dict()

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def create_recipe(recipe_data: Dict, session: Optional[Session] = None) -> Recipe:
    """
    Create a new recipe with its ingredient lines.

    Args:
        recipe_data: Dictionary with recipe fields:
            - name: str
            - base_weight: float (> 0)
            - base_weight_unit: str (optional, default "kg")
            - target_yield: float (optional)
            - version: int (optional, default 1)
            - notes: str (optional)
            - ingredients: list of dicts with material_id, quantity, unit,
              and optional tolerance_percentage, is_critical, is_cure,
              cure_type, notes
        session: Optional database session

    Returns:
        Created Recipe instance with ingredients loaded

    Raises:
        ValidationError: If data validation fails
        MaterialNotFound: If a line references an unknown material
    """
    is_valid, errors = validate_recipe_data(recipe_data)
    if not is_valid:
        log_operation(
            logger, "create_recipe", "validation_failed", level=logging.WARNING, errors=errors
        )
        raise ValidationError(errors)

    if session is not None:
        return _create_recipe_impl(recipe_data, session)
    with session_scope() as sess:
        return _create_recipe_impl(recipe_data, sess)


def _create_recipe_impl(recipe_data: Dict, session: Session) -> Recipe:
    default_tolerance = get_config().default_tolerance_percentage

    recipe = Recipe(
        name=recipe_data["name"].strip(),
        version=recipe_data.get("version", 1),
        base_weight=float(recipe_data["base_weight"]),
        base_weight_unit=recipe_data.get("base_weight_unit") or "kg",
        target_yield=recipe_data.get("target_yield"),
        notes=sanitize_string(recipe_data.get("notes")),
    )
    session.add(recipe)
    session.flush()

    for index, line in enumerate(recipe_data["ingredients"]):
        if session.get(Material, line["material_id"]) is None:
            raise MaterialNotFound(line["material_id"])

        tolerance = line.get("tolerance_percentage")
        session.add(
            RecipeIngredient(
                recipe_id=recipe.id,
                material_id=line["material_id"],
                quantity=float(line["quantity"]),
                unit=line["unit"],
                tolerance_percentage=default_tolerance if tolerance is None else tolerance,
                is_critical=bool(line.get("is_critical", False)),
                is_cure=bool(line.get("is_cure", False)),
                cure_type=line.get("cure_type") if line.get("is_cure") else None,
                sort_order=line.get("sort_order", index),
                notes=sanitize_string(line.get("notes")),
            )
        )

    session.flush()
    session.refresh(recipe)

    # Eagerly load relationships to avoid lazy loading issues
    for line in recipe.ingredients:
        _ = line.material

    log_operation(
        logger,
        "create_recipe",
        "success",
        recipe_id=recipe.id,
        ingredient_count=len(recipe.ingredients),
    )
    return recipe


def get_recipe(recipe_id: int, session: Optional[Session] = None) -> Recipe:
    """
    Retrieve a recipe with its ingredient lines.

    Raises:
        RecipeNotFound: If the recipe doesn't exist
    """

    def _impl(sess: Session) -> Recipe:
        recipe = sess.get(Recipe, recipe_id)
        if recipe is None:
            raise RecipeNotFound(recipe_id)
        for line in recipe.ingredients:
            _ = line.material
        return recipe

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)
