"""
Exception hierarchy for glmkit.

All exceptions inherit from GLMKitError to allow catching any
library-specific error. Domain-specific exceptions should inherit from
the appropriate base class here.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Never catch and re-raise with less information
"""

from __future__ import annotations

from typing import Any


class GLMKitError(Exception):
    """Base exception for all glmkit errors."""
    pass


class ValidationError(GLMKitError):
    """
    Input validation failed.

    Raised when user-provided inputs fail validation checks.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions are incorrect or inconsistent.

    Raised when array shapes don't match expected dimensions, when
    multiple arrays have inconsistent shapes, or when too few complete
    rows remain for the number of model columns.
    """
    pass


class MissingDataError(ValidationError):
    """
    A referenced variable does not exist in the dataset.

    Attributes:
        variable: The name that could not be found
        available: Names that do exist, for the error message
    """

    def __init__(
        self,
        message: str,
        variable: str | None = None,
        available: tuple[str, ...] = (),
    ):
        super().__init__(message)
        self.variable = variable
        self.available = available


class ColumnTypeError(ValidationError):
    """
    A column's stored type does not match its declared use.

    Raised instead of silently coercing, e.g. when a string column is
    used as a numeric predictor without being declared categorical.

    Attributes:
        variable: Column name
        expected: Declared kind ('numeric' or 'categorical')
        actual: Stored kind
    """

    def __init__(
        self,
        message: str,
        variable: str | None = None,
        expected: str | None = None,
        actual: str | None = None,
    ):
        super().__init__(message)
        self.variable = variable
        self.expected = expected
        self.actual = actual


class UnsupportedCombinationError(ValidationError):
    """
    The requested (family, link) pair is not in the registry.

    Attributes:
        family: Requested family name
        link: Requested link name
        supported: The registered (family, link) pairs
    """

    def __init__(
        self,
        message: str,
        family: str | None = None,
        link: str | None = None,
        supported: tuple[tuple[str, str], ...] = (),
    ):
        super().__init__(message)
        self.family = family
        self.link = link
        self.supported = supported


class NumericalError(GLMKitError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class SingularMatrixError(NumericalError):
    """
    Matrix is singular or nearly singular.

    Raised when a matrix operation requires invertibility but the matrix
    is singular or numerically rank-deficient.

    Attributes:
        matrix_name: Name/description of the problematic matrix
        condition_number: Estimated condition number, if available
        rank: Numerical rank, if computed
        expected_rank: Expected rank (typically min(n, p))
    """

    def __init__(
        self,
        message: str,
        matrix_name: str | None = None,
        condition_number: float | None = None,
        rank: int | None = None,
        expected_rank: int | None = None
    ):
        super().__init__(message)
        self.matrix_name = matrix_name
        self.condition_number = condition_number
        self.rank = rank
        self.expected_rank = expected_rank


class ConvergenceError(GLMKitError):
    """
    Iterative algorithm failed to converge.

    Attributes:
        iterations: Number of iterations completed
        final_change: Final parameter or objective change
        reason: Why convergence failed (e.g., 'max_iterations', 'diverging')
        threshold: The convergence threshold that was not met
    """

    def __init__(
        self,
        message: str,
        iterations: int,
        final_change: float | None = None,
        reason: str | None = None,
        threshold: float | None = None
    ):
        super().__init__(message)
        self.iterations = iterations
        self.final_change = final_change
        self.reason = reason
        self.threshold = threshold


class NonConvergenceError(ConvergenceError):
    """
    IRLS exhausted its iteration cap without meeting the tolerance.

    The last fit is attached so the caller can inspect it and decide
    whether to accept the near-converged estimate.

    Attributes:
        result: The GLMSolution from the final iteration (converged=False)
    """

    def __init__(
        self,
        message: str,
        iterations: int,
        final_change: float | None = None,
        reason: str | None = None,
        threshold: float | None = None,
        result: Any = None,
    ):
        super().__init__(
            message,
            iterations=iterations,
            final_change=final_change,
            reason=reason,
            threshold=threshold,
        )
        self.result = result
