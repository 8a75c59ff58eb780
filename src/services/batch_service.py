"""
Batch service - batch creation and ingredient measurement.

This module provides:
- Batch creation: batch code, scaled recipe snapshot, automatic lot allocation
- Recording measured ingredient amounts (tolerance and cure ppm evaluation)
- Batch lookup

A batch snapshots its recipe at creation: later recipe edits never change
existing batch ingredient targets. Allocation shortfall does not stop a batch
from being created; the shortfall is reported and can be allocated later.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from src.models import Batch, BatchIngredient, BatchStatus, Product, Recipe
from src.services import compliance, cure_calculator, lot_service
from src.services.cure_calculator import CureSettings
from src.services.database import session_scope
from src.services.exceptions import (
    BatchIngredientNotFound,
    BatchNotFound,
    ProductNotFound,
    RecipeNotFound,
    ValidationError,
)
from src.services.identity import actor_id
from src.services.logging_utils import get_service_logger, log_operation
from src.services.recipe_service import scale_recipe
from src.utils.constants import BATCH_CODE_PREFIX, UNIT_BASE_FACTORS, WEIGHT_UNITS, VOLUME_UNITS
from src.utils.datetime_utils import utc_now
from src.utils.validators import sanitize_string, validate_positive_number

logger = get_service_logger(__name__)


def generate_batch_code(session: Session, day=None) -> str:
    """
    Next free batch code for a day, e.g. B20250301-003.

    Args:
        session: Database session
        day: Date to use (default: today, UTC)

    Returns:
        Batch code string
    """
    day = day or utc_now().date()
    prefix = f"{BATCH_CODE_PREFIX}{day.strftime('%Y%m%d')}-"
    codes = (
        session.query(Batch.batch_code).filter(Batch.batch_code.like(f"{prefix}%")).all()
    )
    highest = 0
    for (code,) in codes:
        suffix = code[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:03d}"


def _create_batch_impl(
    recipe_id: int,
    input_weight: float,
    actor,
    product_id: Optional[int],
    batch_code: Optional[str],
    notes: Optional[str],
    auto_allocate: bool,
    session: Session,
) -> Dict[str, Any]:
    recipe = session.get(Recipe, recipe_id)
    if recipe is None:
        raise RecipeNotFound(recipe_id)
    if product_id is not None and session.get(Product, product_id) is None:
        raise ProductNotFound(product_id)

    scaled = scale_recipe(recipe, input_weight)

    batch = Batch(
        batch_code=sanitize_string(batch_code) or generate_batch_code(session),
        recipe_id=recipe.id,
        product_id=product_id,
        input_weight=scaled.input_weight,
        scaling_factor=scaled.scaling_factor,
        status=BatchStatus.IN_PROGRESS.value,
        created_by=actor_id(actor),
        notes=sanitize_string(notes),
    )
    session.add(batch)
    session.flush()

    for line in scaled.ingredients:
        session.add(
            BatchIngredient(
                batch_id=batch.id,
                material_id=line.material_id,
                ingredient_name=line.material_name or f"Material {line.material_id}",
                target_amount=line.target_amount,
                unit=line.unit,
                tolerance_percentage=line.tolerance_percentage,
                is_critical=line.is_critical,
                is_cure=line.is_cure,
                cure_type=line.cure_type,
                sort_order=line.sort_order,
            )
        )
    session.flush()
    session.refresh(batch)

    allocations = []
    if auto_allocate:
        for ingredient in batch.ingredients:
            allocations.append(
                lot_service.allocate_lots(ingredient.id, actor=actor, session=session)
            )

    shortfalls = [a["batch_ingredient_id"] for a in allocations if not a["satisfied"]]
    log_operation(
        logger,
        "create_batch",
        "success" if not shortfalls else "allocation_shortfall",
        level=logging.INFO if not shortfalls else logging.WARNING,
        batch_id=batch.id,
        batch_code=batch.batch_code,
        recipe_id=recipe.id,
        scaling_factor=batch.scaling_factor,
        short_ingredient_ids=shortfalls,
    )

    result = batch.to_dict()
    result["ingredients"] = [ingredient.to_dict() for ingredient in batch.ingredients]
    result["allocations"] = allocations
    return result


def create_batch(
    recipe_id: int,
    input_weight: float,
    actor=None,
    product_id: Optional[int] = None,
    batch_code: Optional[str] = None,
    notes: Optional[str] = None,
    auto_allocate: bool = True,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Create a batch from a recipe scaled to an input weight.

    Args:
        recipe_id: Recipe to produce
        input_weight: Input weight in the recipe's base weight unit (> 0)
        actor: Creating actor (audit)
        product_id: Optional product produced
        batch_code: Optional explicit code; generated as B{YYYYMMDD}-{NNN} otherwise
        notes: Optional notes
        auto_allocate: Allocate lots to every ingredient (FEFO) after creation
        session: Optional database session

    Returns:
        Batch dict with 'ingredients' and per-ingredient 'allocations' results

    Raises:
        RecipeNotFound: If the recipe doesn't exist
        InvalidRecipe: If the recipe's base weight is not positive
        ValidationError: If input_weight is not positive
        ConflictingState: If the batch code is already taken
    """
    if session is not None:
        return _create_batch_impl(
            recipe_id, input_weight, actor, product_id, batch_code, notes, auto_allocate, session
        )
    with session_scope() as sess:
        return _create_batch_impl(
            recipe_id, input_weight, actor, product_id, batch_code, notes, auto_allocate, sess
        )


def _convert_amount(amount: float, from_unit: str, to_unit: str) -> float:
    """Convert within one unit family (g/kg, ml/L); other pairs are rejected."""
    if from_unit == to_unit:
        return amount
    for family in (WEIGHT_UNITS, VOLUME_UNITS):
        if from_unit in family and to_unit in family:
            return amount * UNIT_BASE_FACTORS[from_unit] / UNIT_BASE_FACTORS[to_unit]
    raise ValidationError([f"Unit: cannot convert '{from_unit}' to '{to_unit}'"])


def _record_actual_impl(
    batch_ingredient_id: int,
    actual_amount: float,
    unit: Optional[str],
    actor,
    session: Session,
) -> Dict[str, Any]:
    ingredient = session.get(BatchIngredient, batch_ingredient_id)
    if ingredient is None:
        raise BatchIngredientNotFound(batch_ingredient_id)

    actual = _convert_amount(float(actual_amount), unit or ingredient.unit, ingredient.unit)

    ingredient.actual_amount = actual
    ingredient.in_tolerance = compliance.is_in_tolerance(
        ingredient.target_amount, actual, ingredient.tolerance_percentage
    )
    ingredient.measured_at = utc_now()
    ingredient.measured_by = actor_id(actor)

    if ingredient.is_cure and ingredient.cure_type:
        batch = ingredient.batch
        settings = CureSettings.from_config()
        fallback = cure_calculator.to_grams(
            batch.input_weight, batch.recipe.base_weight_unit
        ) or 0.0
        base_mass = cure_calculator.base_mass_grams(batch.ingredients, fallback)
        actual_grams = cure_calculator.to_grams(actual, ingredient.unit)
        ingredient.cure_required_grams = cure_calculator.required_cure_grams(
            base_mass, ingredient.cure_type, settings.ppm_target
        )
        if actual_grams is not None and actual_grams > 0 and base_mass > 0:
            ppm = cure_calculator.cure_ppm(
                actual_grams, base_mass + actual_grams, ingredient.cure_type
            )
            ingredient.cure_ppm = ppm
            ingredient.cure_status = cure_calculator.cure_status(ppm, settings)
        else:
            ingredient.cure_ppm = None
            ingredient.cure_status = None

    session.flush()

    log_operation(
        logger,
        "record_ingredient_actual",
        "success" if ingredient.in_tolerance else "out_of_tolerance",
        level=logging.INFO if ingredient.in_tolerance else logging.WARNING,
        batch_id=ingredient.batch_id,
        batch_ingredient_id=ingredient.id,
        target_amount=ingredient.target_amount,
        actual_amount=actual,
        cure_status=ingredient.cure_status,
    )
    return ingredient.to_dict()


def record_ingredient_actual(
    batch_ingredient_id: int,
    actual_amount: float,
    unit: Optional[str] = None,
    actor=None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Record the measured amount of a batch ingredient.

    The amount may be given in another unit of the same family (e.g. kg for
    a gram line); it is stored in the line's unit. in_tolerance is derived
    from target and tolerance. For the cure line, the required cure grams,
    the resulting nitrite ppm and its LOW/OK/HIGH status are stored as well.

    Args:
        batch_ingredient_id: Ingredient line measured
        actual_amount: Measured amount (> 0)
        unit: Unit of actual_amount (default: the line's unit)
        actor: Measuring actor (audit)
        session: Optional database session

    Returns:
        Updated batch ingredient as a dict

    Raises:
        BatchIngredientNotFound: If the ingredient line doesn't exist
        ValidationError: If the amount is not positive or the unit is incompatible
    """
    ok, msg = validate_positive_number(actual_amount, "Actual amount")
    if not ok:
        raise ValidationError([msg])

    if session is not None:
        return _record_actual_impl(batch_ingredient_id, actual_amount, unit, actor, session)
    with session_scope() as sess:
        return _record_actual_impl(batch_ingredient_id, actual_amount, unit, actor, sess)


def get_batch(batch_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Get a batch with its ingredient lines and release status.

    Raises:
        BatchNotFound: If the batch doesn't exist
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        batch = sess.get(Batch, batch_id)
        if batch is None:
            raise BatchNotFound(batch_id)
        result = batch.to_dict()
        result["ingredients"] = [
            dict(ingredient.to_dict(), allocated_quantity=ingredient.allocated_quantity)
            for ingredient in batch.ingredients
        ]
        result["release_status"] = batch.release.release_status if batch.release else None
        result["tolerance_compliance"] = compliance.tolerance_compliance_percent(
            batch.ingredients
        )
        return result

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)
