"""
CPU backend for Generalized Linear Models via IRLS.

Implements Iteratively Reweighted Least Squares (Fisher scoring). Each
IRLS iteration solves a weighted least squares problem via QR on the
transformed system √W·X, √W·z, so X'WX is never formed or inverted.

Algorithm:
    Initialize: μ⁰ = family_link.initialize(y), η⁰ = g(μ⁰),
                one WLS solve gives β⁰; an out-of-range β⁰ is halved
                toward the intercept-only fit (g(ȳ), 0, ..., 0)
    For iteration 1..max_iter:
        η = Xβ + offset,  μ = clamp(g⁻¹(η))
        dη/dμ = g'(μ)
        z = η - offset + (y - μ)·dη/dμ        # working response
        W = wt / (V(μ)·(dη/dμ)²)              # working weights
        Solve WLS: min_β || √W·z - √W·X·β ||²  via QR
        Halve the step while g⁻¹(η) leaves the valid range
        Check: |dev - dev_old| / (|dev| + 0.1) < tol
           or  max|Δβ| / (max|β_old| + 0.1) < tol
"""

import logging
from typing import Any
import numpy as np
from numpy.typing import NDArray

from glmkit.core.result import Result
from glmkit.core.compute.timing import Timer
from glmkit.core.compute.linalg.qr import qr_cpu, qr_solve
from glmkit.core.exceptions import SingularMatrixError
from glmkit.regression.control import GLMControl
from glmkit.regression.design import Design
from glmkit.regression.families import FamilyLink
from glmkit.regression.solution import GLMParams

logger = logging.getLogger(__name__)


class CPUIRLSBackend:
    """CPU backend using IRLS with QR inner solve.

    - Convergence: relative deviance change or relative coefficient change
    - Defaults: tol=1e-8, max_iter=25
    - Step halving when a step leaves the family's valid mean range
    - Working weights and the R factor recomputed at the final μ
    """

    @property
    def name(self) -> str:
        return 'cpu_irls'

    def solve(
        self,
        design: Design,
        family_link: FamilyLink,
        control: GLMControl | None = None,
    ) -> Result[GLMParams]:
        """Run IRLS to fit the GLM.

        Args:
            design: Design object with X, y, prior weights, offset
            family_link: Registry entry for the (family, link) pair
            control: Tolerance and iteration cap

        Returns:
            Result[GLMParams]. A fit that hit the iteration cap comes back
            with converged=False and a warning; fit() decides what to do.

        Raises:
            SingularMatrixError: If X'WX is rank-deficient at any step
        """
        control = control or GLMControl()
        timer = Timer()
        timer.start()

        fl = family_link
        X, y, wt = design.X, design.y, design.weights
        offset = design.offset_or_zero()
        n, p = design.n, design.p

        warnings_list: list[str] = []
        history: list[dict[str, Any]] = []

        # ------------------------------------------------------------------
        # Initialize μ, η, then β⁰ from one WLS solve
        # ------------------------------------------------------------------
        with timer.section('initialize'):
            mu = fl.initialize(y, wt)
            eta = fl.linkfun(mu)
            beta, _ = self._wls_step(X, y, wt, eta, offset, mu, fl)
            eta = X @ beta + offset
            mu_raw = fl.linkinv(eta)
            mu = fl.clamp(mu_raw)
            dev = fl.deviance(y, mu, wt)
            valid = fl.valid_mu(mu_raw)
            halvings = 0
            anchor = None if valid else self._anchor(design, fl)
            if anchor is not None:
                # β⁰ left the valid range: halve it toward the intercept-only fit
                beta, eta, mu_raw, dev, halvings = self._step(
                    X, y, wt, offset, fl, anchor, beta, True, control
                )
                if not fl.valid_mu(mu_raw):
                    beta = anchor
                    eta = X @ beta + offset
                    mu_raw = fl.linkinv(eta)
                    dev = fl.deviance(y, fl.clamp(mu_raw), wt)
                    halvings = control.max_step_halvings
                mu = fl.clamp(mu_raw)
                valid = fl.valid_mu(mu_raw)
            history.append(self._record(0, dev, mu, halvings))

        # ------------------------------------------------------------------
        # IRLS loop
        # ------------------------------------------------------------------
        converged = False
        change = float('inf')
        iteration = 0

        with timer.section('irls'):
            for iteration in range(1, control.max_iter + 1):
                beta_full, _ = self._wls_step(X, y, wt, eta, offset, mu, fl)
                beta_new, eta_new, mu_raw_new, dev_new, halvings = self._step(
                    X, y, wt, offset, fl, beta, beta_full, valid, control
                )
                mu_new = fl.clamp(mu_raw_new)

                dev_change = abs(dev_new - dev) / (abs(dev_new) + 0.1)
                coef_change = float(
                    np.max(np.abs(beta_new - beta)) / (np.max(np.abs(beta)) + 0.1)
                )
                change = dev_change

                history.append(self._record(iteration, dev_new, mu_new, halvings))
                logger.debug(
                    "IRLS %s iteration %d: deviance=%.10g change=%.3g halvings=%d",
                    fl.name, iteration, dev_new, dev_change, halvings,
                )

                beta, eta, mu, dev = beta_new, eta_new, mu_new, dev_new
                valid = fl.valid_mu(mu_raw_new)

                if dev_change < control.tol or (halvings == 0 and coef_change < control.tol):
                    converged = True
                    break

        if not converged:
            warnings_list.append(
                f"IRLS did not converge in {control.max_iter} iterations "
                f"(deviance={dev:.6f}, relative change={change:.3g})"
            )
        if fl.family == 'binomial' and not valid:
            warnings_list.append(
                "fitted probabilities reached the boundary of (0, 1) and were clamped"
            )

        # ------------------------------------------------------------------
        # Working weights and R factor at the final μ
        # ------------------------------------------------------------------
        w = fl.working_weights(mu, wt)
        qr_final = qr_cpu(X * np.sqrt(w)[:, np.newaxis])
        if qr_final.rank < p:
            raise SingularMatrixError(
                f"XtWX is rank-deficient at convergence: rank={qr_final.rank}, expected={p}.",
                matrix_name='XtWX',
                rank=qr_final.rank,
                expected_rank=p,
            )

        # ------------------------------------------------------------------
        # Null deviance
        # ------------------------------------------------------------------
        with timer.section('null_deviance'):
            null_deviance = self._null_deviance(design, fl, control)

        # ------------------------------------------------------------------
        # Dispersion
        # ------------------------------------------------------------------
        df_residual = n - p
        d_eta = fl.deta_dmu(mu)
        if fl.dispersion_is_fixed:
            dispersion = 1.0
        else:
            pearson_chi2 = float(np.sum(w * ((y - mu) * d_eta) ** 2))
            dispersion = pearson_chi2 / df_residual

        # ------------------------------------------------------------------
        # Residuals
        # ------------------------------------------------------------------
        with timer.section('residuals'):
            resid_response = y - mu
            resid_working = resid_response * d_eta
            resid_pearson = resid_response * np.sqrt(wt / fl.variance(mu))
            unit_dev = fl.unit_deviance(y, mu)
            resid_deviance = np.sign(resid_response) * np.sqrt(np.maximum(wt * unit_dev, 0.0))

        aic = fl.aic(y, mu, wt, p)

        timer.stop()

        params = GLMParams(
            coefficients=beta,
            fitted_values=mu,
            linear_predictor=eta,
            working_weights=w,
            residuals_working=resid_working,
            residuals_deviance=resid_deviance,
            residuals_pearson=resid_pearson,
            residuals_response=resid_response,
            deviance=dev,
            null_deviance=null_deviance,
            aic=aic,
            dispersion=dispersion,
            rank=qr_final.rank,
            df_residual=df_residual,
            df_null=n - (1 if design.has_intercept else 0),
            n_iter=iteration,
            converged=converged,
            family_name=fl.family,
            link_name=fl.link,
        )

        return Result(
            params=params,
            info={
                'method': 'irls_qr',
                'rank': qr_final.rank,
                'R': qr_final.R,
                'history': history,
                'tol': control.tol,
                'max_iter': control.max_iter,
                'final_change': change,
            },
            timing=timer.result(),
            backend_name=self.name,
            warnings=tuple(warnings_list),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _wls_step(
        X: NDArray, y: NDArray, wt: NDArray, eta: NDArray,
        offset: NDArray, mu: NDArray, fl: FamilyLink,
    ) -> tuple[NDArray, Any]:
        """One weighted least-squares solve of X'WXβ = X'Wz."""
        d_eta = fl.deta_dmu(mu)
        z = (eta - offset) + (y - mu) * d_eta
        w = wt / (fl.variance(mu) * d_eta ** 2)
        sqrt_w = np.sqrt(w)
        return qr_solve(X * sqrt_w[:, np.newaxis], z * sqrt_w, matrix_name='XtWX')

    @staticmethod
    def _step(
        X: NDArray, y: NDArray, wt: NDArray, offset: NDArray,
        fl: FamilyLink, beta_old: NDArray, beta_full: NDArray,
        old_valid: bool, control: GLMControl,
    ) -> tuple[NDArray, NDArray, NDArray, float, int]:
        """Take the full step, or halve it toward β_old while the new mean
        is outside the valid range or the deviance is not finite.

        Halving only starts from a valid β_old. If no halving lands in the
        valid range, the full (clamped) step is kept.
        """
        eta = X @ beta_full + offset
        mu_raw = fl.linkinv(eta)
        dev = fl.deviance(y, fl.clamp(mu_raw), wt)
        if not old_valid or (fl.valid_mu(mu_raw) and np.isfinite(dev)):
            return beta_full, eta, mu_raw, dev, 0

        beta = beta_full
        for halvings in range(1, control.max_step_halvings + 1):
            beta = (beta + beta_old) / 2.0
            eta_h = X @ beta + offset
            mu_h = fl.linkinv(eta_h)
            dev_h = fl.deviance(y, fl.clamp(mu_h), wt)
            if fl.valid_mu(mu_h) and np.isfinite(dev_h):
                return beta, eta_h, mu_h, dev_h, halvings

        return beta_full, eta, mu_raw, dev, 0

    @staticmethod
    def _anchor(design: Design, fl: FamilyLink) -> NDArray | None:
        """Intercept-only coefficients with a valid mean, or None.

        The intercept is g(ȳ_w), shifted down by the largest offset so that
        g⁻¹(intercept + offset) stays inside the range for the log link.
        """
        if not design.has_intercept:
            return None
        y, wt = design.y, design.weights
        ybar = float(np.sum(wt * y) / np.sum(wt))
        intercept = float(fl.linkfun(fl.clamp(np.array([ybar])))[0])
        offset = design.offset_or_zero()
        if design.offset is not None:
            intercept -= float(np.max(offset))
        beta = np.zeros(design.p, dtype=np.float64)
        beta[0] = intercept
        if not fl.valid_mu(fl.linkinv(design.X @ beta + offset)):
            return None
        return beta

    @staticmethod
    def _record(iteration: int, dev: float, mu: NDArray, halvings: int) -> dict[str, Any]:
        return {
            'iteration': iteration,
            'deviance': dev,
            'mu_min': float(np.min(mu)),
            'mu_max': float(np.max(mu)),
            'step_halvings': halvings,
        }

    def _null_deviance(
        self, design: Design, fl: FamilyLink, control: GLMControl,
    ) -> float:
        """Deviance of the intercept-only model (or the offset-only model
        when there is no intercept).

        Without an offset the intercept-only MLE is the weighted mean of y.
        With one, a small intercept-only IRLS is run.
        """
        y, wt = design.y, design.weights
        n = design.n

        if not design.has_intercept:
            return fl.deviance(y, fl.mean(design.offset_or_zero()), wt)

        if design.offset is None:
            ybar = float(np.sum(wt * y) / np.sum(wt))
            return fl.deviance(y, np.full(n, ybar), wt)

        offset = design.offset
        ones = np.ones((n, 1), dtype=np.float64)
        mu = fl.initialize(y, wt)
        eta = fl.linkfun(mu)
        dev_old = float('inf')
        dev = dev_old
        for _ in range(control.max_iter):
            beta, _ = self._wls_step(ones, y, wt, eta, offset, mu, fl)
            eta = ones @ beta + offset
            mu = fl.mean(eta)
            dev = fl.deviance(y, mu, wt)
            if abs(dev - dev_old) / (abs(dev) + 0.1) < control.tol:
                break
            dev_old = dev
        return dev
