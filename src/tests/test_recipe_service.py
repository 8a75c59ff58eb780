"""
Tests for recipe creation and scaling.
"""

from types import SimpleNamespace

import pytest

from src.services import recipe_service
from src.services.exceptions import (
    InvalidRecipe,
    MaterialNotFound,
    RecipeNotFound,
    ValidationError,
)


def _line(material_id, quantity, unit="g", **kwargs):
    return SimpleNamespace(
        material_id=material_id,
        quantity=quantity,
        unit=unit,
        tolerance_percentage=kwargs.get("tolerance_percentage", 5.0),
        is_critical=kwargs.get("is_critical", False),
        is_cure=kwargs.get("is_cure", False),
        cure_type=kwargs.get("cure_type"),
        sort_order=kwargs.get("sort_order", 0),
    )


class TestScaleRecipe:
    """Tests for the pure scaling transform."""

    def test_scale_500g_line_to_25kg_input(self):
        """Base 10 kg, 500 g at 5%, scaled to 25 kg gives factor 2.5 and 1250 g."""
        recipe = SimpleNamespace(
            id=1, name="Biltong", base_weight=10.0,
            ingredients=[_line(7, 500.0, tolerance_percentage=5.0)],
        )

        scaled = recipe_service.scale_recipe(recipe, 25.0)

        assert scaled.scaling_factor == pytest.approx(2.5)
        assert len(scaled.ingredients) == 1
        line = scaled.ingredients[0]
        assert line.target_amount == pytest.approx(1250.0)
        assert line.unit == "g"
        assert line.tolerance_percentage == 5.0

    def test_flags_are_copied_and_lines_ordered(self):
        recipe = SimpleNamespace(
            id=1, name="Biltong", base_weight=4.0,
            ingredients=[
                _line(2, 8.0, is_cure=True, is_critical=True, cure_type="prague1", sort_order=2),
                _line(1, 4000.0, sort_order=1),
            ],
        )

        scaled = recipe_service.scale_recipe(recipe, 1.0)

        assert [line.material_id for line in scaled.ingredients] == [1, 2]
        cure = scaled.cure_ingredient
        assert cure.material_id == 2
        assert cure.is_critical is True
        assert cure.cure_type == "prague1"
        assert cure.target_amount == pytest.approx(2.0)

    def test_target_keeps_full_precision(self):
        recipe = SimpleNamespace(
            id=1, name="Biltong", base_weight=3.0, ingredients=[_line(1, 1.0)]
        )
        scaled = recipe_service.scale_recipe(recipe, 1.0)
        assert scaled.ingredients[0].target_amount == 1.0 / 3.0

    def test_zero_base_weight_is_invalid_recipe(self):
        recipe = SimpleNamespace(id=9, name="Broken", base_weight=0, ingredients=[])
        with pytest.raises(InvalidRecipe) as exc_info:
            recipe_service.scale_recipe(recipe, 25.0)
        assert exc_info.value.recipe_id == 9
        assert exc_info.value.kind == "validation_failed"

    def test_invalid_recipe_reported_before_bad_input(self):
        recipe = SimpleNamespace(id=9, name="Broken", base_weight=-1, ingredients=[])
        with pytest.raises(InvalidRecipe):
            recipe_service.scale_recipe(recipe, 0)

    @pytest.mark.parametrize(
        "input_weight", [0, -5, None, "abc", float("nan"), float("inf"), "nan", "inf"]
    )
    def test_invalid_input_weight_rejected(self, input_weight):
        recipe = SimpleNamespace(id=1, name="Biltong", base_weight=10.0, ingredients=[])
        with pytest.raises(ValidationError) as exc_info:
            recipe_service.scale_recipe(recipe, input_weight)
        assert not isinstance(exc_info.value, InvalidRecipe)

    def test_to_dict(self):
        recipe = SimpleNamespace(id=1, name="Biltong", base_weight=10.0, ingredients=[_line(1, 500.0)])
        data = recipe_service.scale_recipe(recipe, 20.0).to_dict()
        assert data["scaling_factor"] == 2.0
        assert data["ingredients"][0]["target_amount"] == 1000.0


class TestCreateRecipe:
    """Tests for recipe creation."""

    def test_create_recipe(self, test_db, sample_recipe, materials):
        assert sample_recipe.id is not None
        assert sample_recipe.base_weight == 10.0
        assert len(sample_recipe.ingredients) == 3
        cure_lines = [line for line in sample_recipe.ingredients if line.is_cure]
        assert len(cure_lines) == 1
        assert cure_lines[0].cure_type == "denkurit"

    def test_default_tolerance_from_config(self, test_db, materials, monkeypatch):
        monkeypatch.setenv("BATCH_QA_DEFAULT_TOLERANCE", "2.5")
        recipe = recipe_service.create_recipe(
            {
                "name": "Droewors",
                "base_weight": 5,
                "ingredients": [{"material_id": materials.beef.id, "quantity": 5000, "unit": "g"}],
            }
        )
        assert recipe.ingredients[0].tolerance_percentage == 2.5

    def test_two_cure_lines_rejected(self, test_db, materials):
        data = {
            "name": "Double cure",
            "base_weight": 10,
            "ingredients": [
                {"material_id": materials.cure.id, "quantity": 20, "unit": "g",
                 "is_cure": True, "cure_type": "denkurit"},
                {"material_id": materials.salt.id, "quantity": 20, "unit": "g",
                 "is_cure": True, "cure_type": "prague1"},
            ],
        }
        with pytest.raises(ValidationError) as exc_info:
            recipe_service.create_recipe(data)
        assert any("at most one cure" in error for error in exc_info.value.errors)

    def test_cure_line_needs_known_type(self, test_db, materials):
        data = {
            "name": "Unknown cure",
            "base_weight": 10,
            "ingredients": [
                {"material_id": materials.cure.id, "quantity": 20, "unit": "g",
                 "is_cure": True, "cure_type": "saltpetre"},
            ],
        }
        with pytest.raises(ValidationError):
            recipe_service.create_recipe(data)

    def test_missing_fields_collect_all_errors(self, test_db):
        with pytest.raises(ValidationError) as exc_info:
            recipe_service.create_recipe({"name": "", "base_weight": 0, "ingredients": []})
        assert len(exc_info.value.errors) >= 3

    def test_unknown_material(self, test_db):
        data = {
            "name": "Ghost",
            "base_weight": 1,
            "ingredients": [{"material_id": 999, "quantity": 1, "unit": "g"}],
        }
        with pytest.raises(MaterialNotFound):
            recipe_service.create_recipe(data)


class TestScaleRecipeById:
    """Tests for scaling stored recipes."""

    def test_scale_stored_recipe(self, test_db, sample_recipe):
        result = recipe_service.scale_recipe_by_id(sample_recipe.id, 25.0)
        assert result["scaling_factor"] == pytest.approx(2.5)
        targets = {line["material_name"]: line["target_amount"] for line in result["ingredients"]}
        assert targets["Sea Salt"] == pytest.approx(1250.0)
        assert targets["Beef Silverside"] == pytest.approx(25000.0)

    def test_unknown_recipe(self, test_db):
        with pytest.raises(RecipeNotFound):
            recipe_service.scale_recipe_by_id(404, 10.0)

    def test_get_recipe(self, test_db, sample_recipe):
        recipe = recipe_service.get_recipe(sample_recipe.id)
        assert recipe.name == "Classic Biltong"
        assert recipe.ingredients[0].material.name == "Beef Silverside"
