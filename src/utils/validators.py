"""
Input validation functions for the Batch QA Tracker application.

This module provides validation functions for user input including:
- Numeric validation (positive, non-negative)
- String validation (required fields, length)
- Unit validation
- Recipe validation (including the single-cure-line rule)
- Material lot receipt validation

Field validators return a (is_valid, error_message) tuple; record validators
return (is_valid, errors) so every problem can be reported at once.
"""

import math
from datetime import date
from typing import Any, List, Optional, Tuple

from .constants import (
    ALL_UNITS,
    CURE_NITRITE_PERCENT,
    ERROR_INVALID_NON_NEGATIVE,
    ERROR_INVALID_NUMBER,
    ERROR_INVALID_POSITIVE,
    ERROR_INVALID_UNIT,
    ERROR_REQUIRED_FIELD,
    MAX_NAME_LENGTH,
)


def validate_required_string(value: Optional[str], field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a string field is not empty.

    Args:
        value: The string value to validate
        field_name: Name of the field for error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return False, f"{field_name}: {ERROR_REQUIRED_FIELD}"
    return True, ""


def validate_string_length(
    value: Optional[str], max_length: int, field_name: str = "Field"
) -> Tuple[bool, str]:
    """Validate that a string doesn't exceed maximum length."""
    if value and len(value) > max_length:
        return False, f"{field_name}: Must be {max_length} characters or less"
    return True, ""


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    # nan and inf parse as floats but are not quantities
    return number if math.isfinite(number) else None


def validate_number(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    """Validate that a value is a finite number (booleans excluded)."""
    if _to_number(value) is None:
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    return True, ""


def validate_positive_number(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a value is a number strictly greater than zero.

    Args:
        value: The value to validate
        field_name: Name of the field for error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    number = _to_number(value)
    if number is None:
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if number <= 0:
        return False, f"{field_name}: {ERROR_INVALID_POSITIVE}"
    return True, ""


def validate_non_negative_number(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    """Validate that a value is a number greater than or equal to zero."""
    number = _to_number(value)
    if number is None:
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if number < 0:
        return False, f"{field_name}: {ERROR_INVALID_NON_NEGATIVE}"
    return True, ""


def validate_unit(unit: Optional[str], field_name: str = "Unit") -> Tuple[bool, str]:
    """Validate that a unit is one of the supported units."""
    if unit not in ALL_UNITS:
        return False, f"{field_name}: {ERROR_INVALID_UNIT} '{unit}'"
    return True, ""


def validate_recipe_data(data: dict) -> Tuple[bool, List[str]]:  # noqa: C901
    """
    Validate recipe data before it is persisted.

    Checks name, positive base weight, at least one ingredient line with a
    material and a positive quantity, non-negative tolerances, and the cure
    rule: at most one line flagged is_cure, and that line must declare a
    known cure_type.

    Args:
        data: Recipe dict with 'name', 'base_weight', 'ingredients' (list of dicts)

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors: List[str] = []

    for ok, msg in (
        validate_required_string(data.get("name"), "Name"),
        validate_string_length(data.get("name"), MAX_NAME_LENGTH, "Name"),
        validate_positive_number(data.get("base_weight"), "Base weight"),
    ):
        if not ok:
            errors.append(msg)

    if data.get("base_weight_unit") is not None:
        ok, msg = validate_unit(data["base_weight_unit"], "Base weight unit")
        if not ok:
            errors.append(msg)

    ingredients = data.get("ingredients") or []
    if not ingredients:
        errors.append(f"Ingredients: {ERROR_REQUIRED_FIELD}")

    cure_lines = 0
    for index, line in enumerate(ingredients, start=1):
        label = f"Ingredient {index}"
        if line.get("material_id") is None:
            errors.append(f"{label} material: {ERROR_REQUIRED_FIELD}")

        ok, msg = validate_positive_number(line.get("quantity"), f"{label} quantity")
        if not ok:
            errors.append(msg)

        ok, msg = validate_unit(line.get("unit"), f"{label} unit")
        if not ok:
            errors.append(msg)

        if line.get("tolerance_percentage") is not None:
            ok, msg = validate_non_negative_number(
                line["tolerance_percentage"], f"{label} tolerance"
            )
            if not ok:
                errors.append(msg)

        if line.get("is_cure"):
            cure_lines += 1
            cure_type = line.get("cure_type")
            if not cure_type:
                errors.append(f"{label}: cure ingredient must declare a cure type")
            elif cure_type not in CURE_NITRITE_PERCENT:
                errors.append(f"{label}: unknown cure type '{cure_type}'")

    if cure_lines > 1:
        errors.append(f"Recipe may contain at most one cure ingredient (found {cure_lines})")

    return len(errors) == 0, errors


def validate_lot_data(data: dict) -> Tuple[bool, List[str]]:
    """
    Validate material lot receipt data.

    Args:
        data: Lot dict with 'lot_number', 'material_id', 'quantity', 'unit',
              optional 'received_date' and 'expiry_date'

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors: List[str] = []

    ok, msg = validate_required_string(data.get("lot_number"), "Lot number")
    if not ok:
        errors.append(msg)
    if data.get("material_id") is None:
        errors.append(f"Material: {ERROR_REQUIRED_FIELD}")

    ok, msg = validate_positive_number(data.get("quantity"), "Quantity")
    if not ok:
        errors.append(msg)

    ok, msg = validate_unit(data.get("unit", "g"), "Unit")
    if not ok:
        errors.append(msg)

    received = data.get("received_date")
    expiry = data.get("expiry_date")
    if isinstance(received, date) and isinstance(expiry, date) and expiry < received:
        errors.append("Expiry date: must not be before the received date")

    return len(errors) == 0, errors


def sanitize_string(value: Optional[str]) -> Optional[str]:
    """
    Strip a string and turn empty strings into None.

    Args:
        value: String to sanitize

    Returns:
        Stripped string or None
    """
    if value is None:
        return None
    value = value.strip()
    return value or None
