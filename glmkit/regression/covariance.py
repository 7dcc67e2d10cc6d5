"""
Covariance estimators for fitted GLMs.

Model-based:
    V = φ · (X'WX)⁻¹

Robust (sandwich):
    V = B · M · B,   B = (X'WX)⁻¹
    M = Σᵢ uᵢuᵢ'                                  (heteroskedasticity-robust)
    M = Σ_g (Σ_{i∈g} uᵢ)(Σ_{i∈g} uᵢ)'             (cluster-robust)
    uᵢ = Wᵢ·(yᵢ - μᵢ)·(dη/dμ)ᵢ·xᵢ

B comes from the R factor of √W·X at convergence as R⁻¹R⁻ᵀ; X'WX is
never inverted directly.

Small-sample adjustments ('hc1'):
    robust:   M · n/(n-p)
    cluster:  M · G/(G-1) · (n-1)/(n-p)

References:
    White, H. (1980). A heteroskedasticity-consistent covariance matrix
        estimator and a direct test for heteroskedasticity.
    Liang, K.-Y., & Zeger, S. L. (1986). Longitudinal data analysis using
        generalized linear models.
    Zou, G. (2004). A modified Poisson regression approach to prospective
        studies with binary data.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TYPE_CHECKING
import numpy as np
from numpy.typing import ArrayLike, NDArray

from glmkit.core.compute.linalg.qr import unscaled_covariance
from glmkit.core.exceptions import ValidationError

if TYPE_CHECKING:
    from glmkit.regression.solution import GLMSolution

KIND_MODEL = 'model'
KIND_ROBUST = 'robust'
KIND_CLUSTER = 'cluster'

ADJUSTMENTS = ('none', 'hc1')


@dataclass(frozen=True)
class CovarianceResult:
    """
    Estimated covariance of the coefficients.

    Attributes:
        matrix: p x p symmetric positive semi-definite covariance
        kind: 'model', 'robust' or 'cluster'
        adjustment: Small-sample adjustment applied ('none' or 'hc1')
        dispersion: φ used (model-based) or of the fit (robust kinds)
        n_clusters: Number of clusters, 0 unless kind == 'cluster'
        term_names: Coefficient names in design column order
        df_residual: Residual degrees of freedom of the fit
    """
    matrix: NDArray[np.floating[Any]]
    kind: str
    adjustment: str
    dispersion: float
    n_clusters: int
    term_names: tuple[str, ...]
    df_residual: int

    @property
    def standard_errors(self) -> NDArray[np.floating[Any]]:
        """sqrt(diag(V))."""
        return np.sqrt(np.maximum(np.diag(self.matrix), 0.0))

    @property
    def is_robust(self) -> bool:
        return self.kind != KIND_MODEL

    def __repr__(self) -> str:
        extra = f", n_clusters={self.n_clusters}" if self.kind == KIND_CLUSTER else ""
        return (
            f"CovarianceResult(kind={self.kind!r}, adjustment={self.adjustment!r}, "
            f"p={self.matrix.shape[0]}{extra})"
        )


def covariance(
    fit: 'GLMSolution',
    robust: bool = False,
    cluster: str | ArrayLike | None = None,
    *,
    adjust: str = 'none',
) -> CovarianceResult:
    """
    Covariance of the fitted coefficients.

    Args:
        fit: Fitted GLM
        robust: False for the model-based estimate, True for the sandwich
        cluster: Cluster identifiers (a column name of the fit's dataset or
                 an array aligned with the retained rows). Overrides any
                 cluster given to fit(). Requires robust=True.
        adjust: 'none' (HC0 / plain cluster sandwich) or 'hc1'

    Returns:
        CovarianceResult

    Raises:
        ValidationError: cluster given with robust=False, unknown adjust,
                         or fewer than two clusters
    """
    adjustment = _check_adjust(adjust)
    design = fit.design

    if not robust:
        if cluster is not None:
            raise ValidationError(
                "cluster was given with robust=False; cluster-robust "
                "covariance needs robust=True"
            )
        return _model_covariance(fit, adjustment)

    if cluster is not None:
        codes, n_clusters = design.encode_cluster(cluster)
    elif design.cluster is not None:
        codes, n_clusters = design.cluster, design.n_clusters
    else:
        return _sandwich(fit, None, 0, adjustment)

    if n_clusters < 2:
        raise ValidationError(
            f"cluster-robust covariance needs at least 2 clusters, got {n_clusters}"
        )
    return _sandwich(fit, codes, n_clusters, adjustment)


def bread(fit: 'GLMSolution') -> NDArray[np.floating[Any]]:
    """(X'WX)⁻¹ at convergence, from the stored R factor."""
    return unscaled_covariance(fit.info['R'])


def score_contributions(fit: 'GLMSolution') -> NDArray[np.floating[Any]]:
    """
    Per-observation score vectors uᵢ = Wᵢ·(yᵢ - μᵢ)·(dη/dμ)ᵢ·xᵢ, as rows.

    For the identity link this is Wᵢ·(yᵢ - μᵢ)·xᵢ.
    """
    design = fit.design
    mu = fit.fitted_values
    d_eta = fit.family_link.deta_dmu(mu)
    scale = fit.working_weights * (design.y - mu) * d_eta
    return design.X * scale[:, np.newaxis]


def _model_covariance(fit: 'GLMSolution', adjustment: str) -> CovarianceResult:
    cov = fit.dispersion * bread(fit)
    return CovarianceResult(
        matrix=cov,
        kind=KIND_MODEL,
        adjustment=adjustment,
        dispersion=fit.dispersion,
        n_clusters=0,
        term_names=fit.term_names,
        df_residual=fit.df_residual,
    )


def _sandwich(
    fit: 'GLMSolution',
    codes: NDArray[np.intp] | None,
    n_clusters: int,
    adjustment: str,
) -> CovarianceResult:
    B = bread(fit)
    U = score_contributions(fit)
    n, p = U.shape

    if codes is None:
        meat = U.T @ U
        if adjustment == 'hc1':
            meat *= n / (n - p)
        kind = KIND_ROBUST
    else:
        # Sum scores within cluster
        S = np.zeros((n_clusters, p), dtype=np.float64)
        for j in range(p):
            S[:, j] = np.bincount(codes, weights=U[:, j], minlength=n_clusters)
        meat = S.T @ S
        if adjustment == 'hc1':
            meat *= (n_clusters / (n_clusters - 1)) * ((n - 1) / (n - p))
        kind = KIND_CLUSTER

    cov = B @ meat @ B
    cov = (cov + cov.T) / 2.0

    return CovarianceResult(
        matrix=cov,
        kind=kind,
        adjustment=adjustment,
        dispersion=fit.dispersion,
        n_clusters=n_clusters,
        term_names=fit.term_names,
        df_residual=fit.df_residual,
    )


def _check_adjust(adjust: str) -> str:
    if not isinstance(adjust, str) or adjust.lower() not in ADJUSTMENTS:
        raise ValidationError(
            f"adjust must be one of {ADJUSTMENTS}, got {adjust!r}"
        )
    return adjust.lower()
