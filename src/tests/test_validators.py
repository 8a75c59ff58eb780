"""
Tests for input validation functions.

Tests cover the validation functions in the validators module including:
- String validation (required, length)
- Numeric validation (positive, non-negative)
- Unit validation
- Complete data validation (recipe, material lot)

Field validators return (is_valid, error_message); record validators return
(is_valid, errors).
"""

from datetime import date

import pytest

from src.utils import validators
from src.utils.constants import MAX_NAME_LENGTH


class TestStringValidation:
    """Test string validation functions."""

    def test_validate_required_string_valid(self):
        assert validators.validate_required_string("Test Value", "Test Field") == (True, "")

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_validate_required_string_missing(self, value):
        ok, msg = validators.validate_required_string(value, "Test Field")
        assert not ok
        assert "required" in msg.lower()
        assert msg.startswith("Test Field")

    def test_validate_string_length(self):
        assert validators.validate_string_length("A" * 10, 10, "Name")[0]
        ok, msg = validators.validate_string_length("A" * 11, 10, "Name")
        assert not ok
        assert "10 characters" in msg

    def test_sanitize_string(self):
        assert validators.sanitize_string("  salt ") == "salt"
        assert validators.sanitize_string("   ") is None
        assert validators.sanitize_string(None) is None


class TestNumericValidation:
    """Test numeric validation functions."""

    @pytest.mark.parametrize("value", [1, 0.5, "2.5"])
    def test_positive_valid(self, value):
        assert validators.validate_positive_number(value)[0]

    @pytest.mark.parametrize(
        "value", [0, -1, None, "abc", True, float("nan"), float("inf"), "nan", "inf"]
    )
    def test_positive_invalid(self, value):
        assert not validators.validate_positive_number(value)[0]

    @pytest.mark.parametrize("value", [float("nan"), float("-inf"), "-inf"])
    def test_non_negative_rejects_non_finite(self, value):
        assert not validators.validate_non_negative_number(value)[0]

    def test_validate_number(self):
        assert validators.validate_number("-3.5")[0]
        ok, msg = validators.validate_number(float("nan"), "ph_level")
        assert not ok
        assert msg.startswith("ph_level:")

    def test_non_negative_accepts_zero(self):
        assert validators.validate_non_negative_number(0)[0]
        assert not validators.validate_non_negative_number(-0.1)[0]

    def test_units(self):
        assert validators.validate_unit("kg")[0]
        assert not validators.validate_unit("lb")[0]


class TestRecipeValidation:
    """Test complete recipe validation."""

    def _valid(self, **overrides):
        data = {
            "name": "Biltong",
            "base_weight": 10,
            "ingredients": [{"material_id": 1, "quantity": 500, "unit": "g"}],
        }
        data.update(overrides)
        return data

    def test_valid(self):
        assert validators.validate_recipe_data(self._valid()) == (True, [])

    def test_name_too_long(self):
        ok, errors = validators.validate_recipe_data(self._valid(name="x" * (MAX_NAME_LENGTH + 1)))
        assert not ok
        assert len(errors) == 1

    def test_line_errors_are_numbered(self):
        ok, errors = validators.validate_recipe_data(
            self._valid(ingredients=[{"quantity": -1, "unit": "lb", "tolerance_percentage": -2}])
        )
        assert not ok
        assert all(error.startswith("Ingredient 1") for error in errors)
        assert len(errors) == 4

    def test_cure_line_rules(self):
        ok, errors = validators.validate_recipe_data(
            self._valid(
                ingredients=[
                    {"material_id": 1, "quantity": 20, "unit": "g", "is_cure": True},
                    {"material_id": 2, "quantity": 20, "unit": "g", "is_cure": True,
                     "cure_type": "prague1"},
                ]
            )
        )
        assert not ok
        assert "Ingredient 1: cure ingredient must declare a cure type" in errors
        assert any("at most one cure ingredient" in error for error in errors)


class TestLotValidation:
    """Test material lot validation."""

    def test_valid(self):
        data = {"lot_number": "L1", "material_id": 1, "quantity": 10}
        assert validators.validate_lot_data(data) == (True, [])

    def test_expiry_before_receipt(self):
        data = {
            "lot_number": "L1",
            "material_id": 1,
            "quantity": 10,
            "received_date": date(2024, 2, 1),
            "expiry_date": date(2024, 1, 1),
        }
        ok, errors = validators.validate_lot_data(data)
        assert not ok
        assert errors == ["Expiry date: must not be before the received date"]
