"""
Coefficient report for fitted GLMs.

One row per coefficient, in design column order:
    statistic = β / SE
    p-value   = two-sided, N(0, 1) for binomial/poisson,
                t(df_residual) for gaussian (estimated dispersion)
    CI        = β ± c·SE
With exponentiate=True, exp(β) and exp of the CI bounds are added (odds
ratios, risk ratios, rate ratios). The SE is never exponentiated.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Iterator, TYPE_CHECKING
import numpy as np
from scipy import stats

from glmkit.core.exceptions import ValidationError

if TYPE_CHECKING:
    import pandas as pd
    from glmkit.regression.covariance import CovarianceResult
    from glmkit.regression.solution import GLMSolution

DEFAULT_CRITICAL_VALUE = 1.96


@dataclass(frozen=True)
class CoefficientRow:
    """One coefficient of the report."""
    term: str
    estimate: float
    std_error: float
    statistic: float
    p_value: float
    conf_low: float
    conf_high: float
    exp_estimate: float | None = None
    exp_conf_low: float | None = None
    exp_conf_high: float | None = None


@dataclass(frozen=True)
class CoefficientReport:
    """
    Ordered coefficient rows plus how they were computed.

    Attributes:
        rows: One CoefficientRow per design column
        statistic_name: 'z' or 't'
        critical_value: Multiplier used for the confidence intervals
        covariance_kind: 'model', 'robust' or 'cluster'
        df_residual: Residual degrees of freedom (t reference)
        exponentiated: Whether exp columns are filled
    """
    rows: tuple[CoefficientRow, ...]
    statistic_name: str
    critical_value: float
    covariance_kind: str
    df_residual: int
    exponentiated: bool

    def __iter__(self) -> Iterator[CoefficientRow]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def __getitem__(self, key: int | str) -> CoefficientRow:
        if isinstance(key, str):
            for row in self.rows:
                if row.term == key:
                    return row
            raise KeyError(
                f"No term {key!r} in report. Terms: {list(self.terms)}"
            )
        return self.rows[key]

    @property
    def terms(self) -> tuple[str, ...]:
        return tuple(row.term for row in self.rows)

    def to_records(self) -> list[dict[str, Any]]:
        """Rows as plain dicts; exp columns only when exponentiated."""
        records = []
        for row in self.rows:
            rec = asdict(row)
            if not self.exponentiated:
                for key in ('exp_estimate', 'exp_conf_low', 'exp_conf_high'):
                    rec.pop(key)
            records.append(rec)
        return records

    def to_dataframe(self) -> 'pd.DataFrame':
        """Rows as a pandas DataFrame indexed by term."""
        import pandas as pd
        return pd.DataFrame.from_records(self.to_records()).set_index('term')

    def __repr__(self) -> str:
        return (
            f"CoefficientReport(terms={list(self.terms)}, "
            f"statistic={self.statistic_name!r}, covariance={self.covariance_kind!r})"
        )


def critical_value_for(conf_level: float, df: int | None = None) -> float:
    """
    Two-sided critical value for a confidence level.

    Args:
        conf_level: Confidence level in (0, 1), e.g. 0.95
        df: Degrees of freedom for a t reference; None uses N(0, 1)
    """
    if not (0.0 < conf_level < 1.0):
        raise ValidationError(f"conf_level must be in (0, 1), got {conf_level}")
    q = 1.0 - (1.0 - conf_level) / 2.0
    if df is None:
        return float(stats.norm.ppf(q))
    if df < 1:
        raise ValidationError(f"df must be >= 1, got {df}")
    return float(stats.t.ppf(q, df))


def report(
    fit: 'GLMSolution',
    covariance: 'CovarianceResult | None' = None,
    *,
    exponentiate: bool = False,
    critical_value: float | None = DEFAULT_CRITICAL_VALUE,
) -> CoefficientReport:
    """
    Tabulate coefficients with standard errors, tests and intervals.

    Args:
        fit: Fitted GLM
        covariance: Covariance to take SEs from; default model-based
        exponentiate: Add exp(β) and exponentiated CI bounds
        critical_value: CI multiplier; None means DEFAULT_CRITICAL_VALUE

    Returns:
        CoefficientReport
    """
    if covariance is None:
        covariance = fit.covariance()
    if covariance.matrix.shape[0] != len(fit.coefficients):
        raise ValidationError(
            f"covariance is {covariance.matrix.shape[0]}x{covariance.matrix.shape[0]}, "
            f"fit has {len(fit.coefficients)} coefficients"
        )
    if critical_value is None:
        critical_value = DEFAULT_CRITICAL_VALUE
    if not (critical_value > 0):
        raise ValidationError(f"critical_value must be > 0, got {critical_value}")

    beta = fit.coefficients
    se = covariance.standard_errors
    with np.errstate(divide='ignore', invalid='ignore'):
        stat = beta / se

    use_t = not fit.family_link.dispersion_is_fixed
    if use_t:
        p_values = 2.0 * stats.t.sf(np.abs(stat), fit.df_residual)
    else:
        p_values = 2.0 * stats.norm.sf(np.abs(stat))

    lower = beta - critical_value * se
    upper = beta + critical_value * se

    rows = []
    for j, term in enumerate(fit.term_names):
        extra = {}
        if exponentiate:
            extra = dict(
                exp_estimate=float(np.exp(beta[j])),
                exp_conf_low=float(np.exp(lower[j])),
                exp_conf_high=float(np.exp(upper[j])),
            )
        rows.append(CoefficientRow(
            term=term,
            estimate=float(beta[j]),
            std_error=float(se[j]),
            statistic=float(stat[j]),
            p_value=float(p_values[j]),
            conf_low=float(lower[j]),
            conf_high=float(upper[j]),
            **extra,
        ))

    return CoefficientReport(
        rows=tuple(rows),
        statistic_name='t' if use_t else 'z',
        critical_value=float(critical_value),
        covariance_kind=covariance.kind,
        df_residual=fit.df_residual,
        exponentiated=exponentiate,
    )
