"""Cure (curing salt) concentration arithmetic.

Curing salts are a carrier salt with a small share of sodium nitrite. The
concentration that matters is parts per million of nitrite in the whole
batch mass, checked against a configured window (min/target/max ppm).

All masses are grams. Functions are pure; batch_service feeds them the
batch's measured cure amount and base mass.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from src.models.enums import CureStatus, CureType
from src.utils.config import get_config
from src.utils.constants import CURE_NITRITE_PERCENT, UNIT_BASE_FACTORS, WEIGHT_UNITS

PPM = 1_000_000


@dataclass
class CureSettings:
    """Acceptable cure concentration window, in ppm."""

    ppm_min: float
    ppm_target: float
    ppm_max: float

    @classmethod
    def from_config(cls) -> "CureSettings":
        config = get_config()
        return cls(
            ppm_min=config.cure_ppm_min,
            ppm_target=config.cure_ppm_target,
            ppm_max=config.cure_ppm_max,
        )


def nitrite_fraction(cure_type) -> float:
    """Nitrite share of a curing salt, as a fraction.

    Raises:
        ValueError: If cure_type is not a supported curing salt
    """
    key = CureType(cure_type).value
    return CURE_NITRITE_PERCENT[key] / 100.0


def to_grams(amount: float, unit: str) -> Optional[float]:
    """Convert a weight amount to grams; None for non-weight units."""
    if unit not in WEIGHT_UNITS:
        return None
    return amount * UNIT_BASE_FACTORS[unit]


def required_cure_grams(base_mass_grams: float, cure_type, target_ppm: float) -> float:
    """
    Grams of curing salt that bring base_mass_grams to target_ppm.

    The added salt is itself part of the final mass, hence
    required = t * m / (n - t) for target fraction t and nitrite fraction n.

    Returns:
        Required grams, 0 when the mass is not positive or the target is unreachable
    """
    if not _is_positive(base_mass_grams):
        return 0.0
    nitrite = nitrite_fraction(cure_type)
    target = target_ppm / PPM
    if nitrite <= target:
        return 0.0
    required = (target * base_mass_grams) / (nitrite - target)
    return required if _is_positive(required) else 0.0


def cure_ppm(cure_grams: float, total_mass_grams: float, cure_type) -> float:
    """Nitrite concentration, in ppm, of cure_grams of salt in total_mass_grams."""
    if not _is_positive(cure_grams) or not _is_positive(total_mass_grams):
        return 0.0
    return cure_grams * nitrite_fraction(cure_type) / total_mass_grams * PPM


def cure_status(ppm: float, settings: CureSettings) -> str:
    """LOW below the window minimum, HIGH above the maximum, else OK."""
    if ppm is None or not math.isfinite(ppm) or ppm < settings.ppm_min:
        return CureStatus.LOW.value
    if ppm > settings.ppm_max:
        return CureStatus.HIGH.value
    return CureStatus.OK.value


def base_mass_grams(ingredients: Iterable, fallback_grams: float) -> float:
    """
    Batch mass the cure is dosed against.

    Sums the target amounts of non-cure ingredients measured by weight; a
    recipe without weighed lines falls back to the batch input weight.
    """
    total = 0.0
    for ingredient in ingredients:
        if ingredient.is_cure:
            continue
        grams = to_grams(ingredient.target_amount, ingredient.unit)
        if grams is not None:
            total += grams
    return total if total > 0 else fallback_grams


def _is_positive(value) -> bool:
    return value is not None and math.isfinite(value) and value > 0
