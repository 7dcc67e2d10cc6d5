"""
Regression solution types.

Contains the parameter payload produced by the IRLS backend and the
user-facing solution wrapper.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TYPE_CHECKING
import numpy as np
from numpy.typing import ArrayLike, NDArray

from glmkit.core.result import Result

if TYPE_CHECKING:
    from glmkit.regression.design import Design
    from glmkit.regression.families import FamilyLink
    from glmkit.regression.covariance import CovarianceResult
    from glmkit.regression.report import CoefficientReport


@dataclass(frozen=True)
class GLMParams:
    """
    Parameter payload for a fitted GLM.

    This is the immutable data computed by the IRLS backend.
    """
    coefficients: NDArray[np.floating[Any]]
    fitted_values: NDArray[np.floating[Any]]
    linear_predictor: NDArray[np.floating[Any]]
    working_weights: NDArray[np.floating[Any]]
    residuals_working: NDArray[np.floating[Any]]
    residuals_deviance: NDArray[np.floating[Any]]
    residuals_pearson: NDArray[np.floating[Any]]
    residuals_response: NDArray[np.floating[Any]]
    deviance: float
    null_deviance: float
    aic: float
    dispersion: float
    rank: int
    df_residual: int
    df_null: int
    n_iter: int
    converged: bool
    family_name: str
    link_name: str


@dataclass
class GLMSolution:
    """
    User-facing GLM results (the Fit Result).

    Wraps the backend Result together with the Design it was fitted on
    and the family/link entry, so covariance estimators and the reporter
    need nothing else.
    """
    _result: Result[GLMParams]
    _design: 'Design'
    _family_link: 'FamilyLink'

    # === Estimates ===

    @property
    def coefficients(self) -> NDArray[np.floating[Any]]:
        return self._result.params.coefficients

    @property
    def term_names(self) -> tuple[str, ...]:
        return self._design.column_names

    @property
    def fitted_values(self) -> NDArray[np.floating[Any]]:
        """μ at convergence."""
        return self._result.params.fitted_values

    @property
    def linear_predictor(self) -> NDArray[np.floating[Any]]:
        """η = Xβ (+ offset) at convergence."""
        return self._result.params.linear_predictor

    @property
    def working_weights(self) -> NDArray[np.floating[Any]]:
        """W evaluated at the final μ, prior weights included."""
        return self._result.params.working_weights

    # === Residuals ===

    @property
    def residuals_response(self) -> NDArray[np.floating[Any]]:
        return self._result.params.residuals_response

    @property
    def residuals_working(self) -> NDArray[np.floating[Any]]:
        return self._result.params.residuals_working

    @property
    def residuals_pearson(self) -> NDArray[np.floating[Any]]:
        return self._result.params.residuals_pearson

    @property
    def residuals_deviance(self) -> NDArray[np.floating[Any]]:
        return self._result.params.residuals_deviance

    # === Fit statistics ===

    @property
    def deviance(self) -> float:
        return self._result.params.deviance

    @property
    def null_deviance(self) -> float:
        return self._result.params.null_deviance

    @property
    def aic(self) -> float:
        return self._result.params.aic

    @property
    def bic(self) -> float:
        """BIC = AIC - 2k + log(n)·k, k counting the gaussian dispersion."""
        k = self.rank + (0 if self._family_link.dispersion_is_fixed else 1)
        return self.aic + (np.log(self.n_obs) - 2.0) * k

    @property
    def dispersion(self) -> float:
        return self._result.params.dispersion

    @property
    def rank(self) -> int:
        return self._result.params.rank

    @property
    def df_residual(self) -> int:
        return self._result.params.df_residual

    @property
    def df_null(self) -> int:
        return self._result.params.df_null

    @property
    def n_obs(self) -> int:
        return self._design.n

    @property
    def n_dropped(self) -> int:
        return self._design.n_dropped

    # === Convergence ===

    @property
    def n_iter(self) -> int:
        return self._result.params.n_iter

    @property
    def converged(self) -> bool:
        return self._result.params.converged

    @property
    def history(self) -> list[dict[str, Any]]:
        """Per-iteration deviance, μ range and step halvings."""
        return list(self._result.info.get('history', []))

    # === Model identity ===

    @property
    def family_name(self) -> str:
        return self._result.params.family_name

    @property
    def link_name(self) -> str:
        return self._result.params.link_name

    @property
    def family_link(self) -> 'FamilyLink':
        return self._family_link

    @property
    def design(self) -> 'Design':
        return self._design

    # === Envelope ===

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    @property
    def timing(self) -> dict[str, float] | None:
        return self._result.timing

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    # === Inference shortcuts ===

    @property
    def standard_errors(self) -> NDArray[np.floating[Any]]:
        """Model-based standard errors, sqrt(diag(φ (X'WX)⁻¹))."""
        return self.covariance().standard_errors

    def covariance(
        self,
        robust: bool = False,
        cluster: str | ArrayLike | None = None,
        *,
        adjust: str = 'none',
    ) -> 'CovarianceResult':
        """See glmkit.regression.covariance.covariance."""
        from glmkit.regression.covariance import covariance
        return covariance(self, robust=robust, cluster=cluster, adjust=adjust)

    def report(
        self,
        covariance: 'CovarianceResult | None' = None,
        *,
        exponentiate: bool = False,
        critical_value: float | None = None,
    ) -> 'CoefficientReport':
        """See glmkit.regression.report.report."""
        from glmkit.regression.report import report
        return report(
            self,
            covariance,
            exponentiate=exponentiate,
            critical_value=critical_value,
        )

    def __repr__(self) -> str:
        return (
            f"GLMSolution(family={self.family_name!r}, link={self.link_name!r}, "
            f"n={self.n_obs}, p={len(self.coefficients)}, "
            f"deviance={self.deviance:.4f}, converged={self.converged})"
        )
