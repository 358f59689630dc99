"""
Utility functions and helpers for lingstat.

This package provides configuration management, input validation
and exception handling.
"""

from .config import Config, Settings
from .validators import InputValidator
from .exceptions import (
    LingStatError,
    ValidationError,
    ProcessingError,
    DependencyError,
    ModelFitError,
)

__all__ = [
    "Config",
    "Settings",
    "InputValidator",
    "LingStatError",
    "ValidationError",
    "ProcessingError",
    "DependencyError",
    "ModelFitError",
]
