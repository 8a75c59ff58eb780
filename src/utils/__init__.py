"""Utilities package for the Batch QA Tracker application."""

from .config import Config, get_config, reset_config
from .datetime_utils import as_utc, utc_now, utc_today

__all__ = [
    "Config",
    "get_config",
    "reset_config",
    "as_utc",
    "utc_now",
    "utc_today",
]
