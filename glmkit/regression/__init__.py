"""
Generalized linear models.

Public API:
    fit(data, formula, family, link, ...) -> GLMSolution
    covariance(fit, robust, cluster, adjust=...) -> CovarianceResult
    report(fit, covariance, exponentiate=..., critical_value=...) -> CoefficientReport

The fit() function is the only entry point for estimation. It handles:
    - Family/link resolution
    - Formula parsing and design construction
    - IRLS
    - Result wrapping

Example:
    >>> from glmkit.regression import fit
    >>> result = fit(data, "y ~ x + arm", family='poisson', categorical=['arm'])
    >>> cov = result.covariance(robust=True)
    >>> print(result.report(cov, exponentiate=True).to_records())
"""

from glmkit.regression.formula import Formula, Term
from glmkit.regression.design import Design
from glmkit.regression.families import (
    FamilyLink,
    MU_EPSILON,
    SUPPORTED_PAIRS,
    resolve_family_link,
)
from glmkit.regression.control import GLMControl
from glmkit.regression.solution import GLMSolution, GLMParams
from glmkit.regression.covariance import CovarianceResult, covariance
from glmkit.regression.report import (
    CoefficientReport,
    CoefficientRow,
    DEFAULT_CRITICAL_VALUE,
    critical_value_for,
    report,
)
from glmkit.regression.solvers import build_design, fit

__all__ = [
    "fit",
    "build_design",
    "covariance",
    "report",
    "critical_value_for",
    "Formula",
    "Term",
    "Design",
    "FamilyLink",
    "resolve_family_link",
    "SUPPORTED_PAIRS",
    "MU_EPSILON",
    "GLMControl",
    "GLMSolution",
    "GLMParams",
    "CovarianceResult",
    "CoefficientReport",
    "CoefficientRow",
    "DEFAULT_CRITICAL_VALUE",
]
