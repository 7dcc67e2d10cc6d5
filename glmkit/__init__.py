"""
glmkit: generalized linear models with robust inference.

Fits gaussian-identity, binomial-logit, binomial-log and poisson-log
models by IRLS on tabular data, with model-based, heteroskedasticity-
robust and cluster-robust covariance and a coefficient report with
optional exponentiation (odds, risk and rate ratios).

Submodules:
    core: Dataset, Result envelope, exceptions, validation, linear algebra
    regression: Formula, Design, family/link registry, IRLS, covariance, report
"""

__version__ = "0.1.0"

from glmkit import regression
from glmkit.core import (
    Dataset,
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
from glmkit.regression import (
    fit,
    covariance,
    report,
    critical_value_for,
    Formula,
    Term,
    Design,
    GLMSolution,
    CovarianceResult,
    CoefficientReport,
)

__all__ = [
    "__version__",
    "regression",
    "fit",
    "covariance",
    "report",
    "critical_value_for",
    "Dataset",
    "Formula",
    "Term",
    "Design",
    "GLMSolution",
    "CovarianceResult",
    "CoefficientReport",
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
