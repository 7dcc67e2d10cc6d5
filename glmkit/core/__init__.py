"""
Core infrastructure for glmkit.

This module provides shared abstractions and utilities used by the
regression package.

Key components:
    dataset: Named, typed columns with explicit missing values
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    compute: Timing and linear algebra primitives
"""

from glmkit.core.dataset import Dataset
from glmkit.core.result import Result
from glmkit.core.exceptions import (
    GLMKitError,
    ValidationError,
    DimensionError,
    MissingDataError,
    ColumnTypeError,
    UnsupportedCombinationError,
    NumericalError,
    SingularMatrixError,
    ConvergenceError,
    NonConvergenceError,
)

__all__ = [
    # Data
    "Dataset",
    # Result
    "Result",
    # Exceptions
    "GLMKitError",
    "ValidationError",
    "DimensionError",
    "MissingDataError",
    "ColumnTypeError",
    "UnsupportedCombinationError",
    "NumericalError",
    "SingularMatrixError",
    "ConvergenceError",
    "NonConvergenceError",
]
