"""
Constants for the Batch QA Tracker application.

This module defines all system-wide constants including:
- Application metadata
- QA stage ordering
- Unit types and conversion factors
- Cure (curing salt) options and ppm defaults
- Validation limits and error messages
"""

from typing import Dict, List

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Batch QA Tracker"
APP_VERSION = "0.1.0"
DATABASE_FILENAME = "batch_qa_tracker.db"
DATABASE_VERSION = "1.0"

# ============================================================================
# QA Stages
# ============================================================================

# Fixed production order; "final" doubles as the state after all stages clear
STAGE_ORDER: List[str] = [
    "preparation",
    "mixing",
    "marination",
    "drying",
    "packaging",
    "final",
]

FINAL_STAGE = "final"

# Measurement fields a QA check may carry
MEASUREMENT_FIELDS: List[str] = [
    "temperature_c",
    "humidity_percent",
    "ph_level",
    "water_activity",
]

# ============================================================================
# Units
# ============================================================================

WEIGHT_UNITS: List[str] = ["g", "kg"]
VOLUME_UNITS: List[str] = ["ml", "L"]
COUNT_UNITS: List[str] = ["units"]

ALL_UNITS: List[str] = WEIGHT_UNITS + VOLUME_UNITS + COUNT_UNITS

# Factor to the base unit of each unit family (g for weight, ml for volume)
UNIT_BASE_FACTORS: Dict[str, float] = {
    "g": 1.0,
    "kg": 1000.0,
    "ml": 1.0,
    "L": 1000.0,
    "units": 1.0,
}

# ============================================================================
# Tolerances and Quantities
# ============================================================================

DEFAULT_TOLERANCE_PERCENTAGE = 5.0

# Balances below this are treated as empty (floating-point residue)
QUANTITY_EPSILON = 0.001

MAX_NAME_LENGTH = 200
MAX_NOTES_LENGTH = 2000

# ============================================================================
# Cure
# ============================================================================

# Sodium nitrite content of each supported curing salt, in percent
CURE_NITRITE_PERCENT: Dict[str, float] = {
    "denkurit": 11.0,
    "prague1": 6.25,
}

DEFAULT_CURE_PPM_MIN = 110.0
DEFAULT_CURE_PPM_TARGET = 125.0
DEFAULT_CURE_PPM_MAX = 125.0

# ============================================================================
# Roles
# ============================================================================

# Roles allowed to decide a batch release
RELEASE_DECISION_ROLES: List[str] = ["manager", "admin"]

# ============================================================================
# Batch and Release Identifiers
# ============================================================================

BATCH_CODE_PREFIX = "B"
RELEASE_NUMBER_PREFIX = "REL-"

# ============================================================================
# Error Messages
# ============================================================================

ERROR_REQUIRED_FIELD = "This field is required"
ERROR_INVALID_NUMBER = "Must be a valid number"
ERROR_INVALID_POSITIVE = "Must be a positive number"
ERROR_INVALID_NON_NEGATIVE = "Must be zero or greater"
ERROR_INVALID_UNIT = "Invalid unit"
