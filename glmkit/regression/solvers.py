"""
Solver dispatch for generalized linear models.

This module provides the fit() function (public API).
"""

from typing import Any, Iterable, Literal, Mapping
import warnings

from numpy.typing import ArrayLike

from glmkit.core.dataset import Dataset
from glmkit.core.exceptions import NonConvergenceError, ValidationError
from glmkit.regression.backends.cpu_glm import CPUIRLSBackend
from glmkit.regression.control import DEFAULT_MAX_ITER, DEFAULT_TOL, GLMControl
from glmkit.regression.design import Design
from glmkit.regression.families import FamilyLink, resolve_family_link
from glmkit.regression.formula import Formula
from glmkit.regression.solution import GLMSolution

NonConvergenceAction = Literal['raise', 'warn']

Categorical = Mapping[str, Any] | Iterable[str] | None


def fit(
    data: Any,
    formula: str | Formula | None,
    family: str | FamilyLink = 'gaussian',
    link: str | None = None,
    *,
    categorical: Categorical = None,
    weights: str | ArrayLike | None = None,
    cluster: str | ArrayLike | None = None,
    offset: str | ArrayLike | None = None,
    tol: float = DEFAULT_TOL,
    max_iter: int = DEFAULT_MAX_ITER,
    on_nonconvergence: NonConvergenceAction = 'raise',
) -> GLMSolution:
    """
    Fit a generalized linear model by IRLS.

    This is the primary public API. Family/link resolution, control
    validation and the design build all happen before the first iteration.

    Args:
        data: Dataset, column mapping, sequence of row mappings, pandas
              DataFrame, or a prebuilt Design (then formula must be None)
        formula: 'y ~ a + b + a:b' string or a Formula
        family: 'gaussian' ('normal'), 'binomial' or 'poisson'
        link: 'identity', 'logit' or 'log'; None = canonical link
        categorical: Variables to treat as factors, as a mapping of
                     name -> reference level or an iterable of names.
                     Overrides the Formula's own declarations.
        weights: Prior weights (column name or array), strictly positive
        cluster: Cluster identifiers used by covariance(robust=True)
        offset: Offset added to the linear predictor (column name or array)
        tol: Relative deviance change counted as converged
        max_iter: IRLS iteration cap
        on_nonconvergence: 'raise' (NonConvergenceError) or 'warn'
                           (RuntimeWarning, the fit is returned)

    Returns:
        GLMSolution

    Raises:
        UnsupportedCombinationError: Unknown family/link pair
        ValidationError: Invalid data, formula, control or response values
        SingularMatrixError: X or X'WX is rank-deficient
        NonConvergenceError: Iteration cap hit with on_nonconvergence='raise'

    Example:
        >>> from glmkit import fit
        >>> result = fit(data, "case ~ exposed", family='binomial', link='log')
        >>> result.report(exponentiate=True)['exposed'].exp_estimate
    """
    # === Eager validation ===
    family_link = resolve_family_link(family, link)
    control = GLMControl(tol=tol, max_iter=max_iter)
    if on_nonconvergence not in ('raise', 'warn'):
        raise ValidationError(
            f"on_nonconvergence must be 'raise' or 'warn', got {on_nonconvergence!r}"
        )

    # === Construct Design ===
    design = build_design(
        data,
        formula,
        categorical=categorical,
        weights=weights,
        cluster=cluster,
        offset=offset,
    )
    family_link.validate_response(design.y)

    # === Solve ===
    result = CPUIRLSBackend().solve(design, family_link, control)
    solution = GLMSolution(_result=result, _design=design, _family_link=family_link)

    if not solution.converged and on_nonconvergence == 'raise':
        raise NonConvergenceError(
            f"IRLS ({family_link.name}) did not converge in {control.max_iter} "
            f"iterations: relative deviance change "
            f"{result.info['final_change']:.3g} > tol {control.tol:g}",
            iterations=solution.n_iter,
            final_change=result.info['final_change'],
            reason='max_iterations',
            threshold=control.tol,
            result=solution,
        )

    for message in result.warnings:
        warnings.warn(message, RuntimeWarning, stacklevel=2)

    return solution


def build_design(
    data: Any,
    formula: str | Formula | None,
    *,
    categorical: Categorical = None,
    weights: str | ArrayLike | None = None,
    cluster: str | ArrayLike | None = None,
    offset: str | ArrayLike | None = None,
) -> Design:
    """
    Coerce data and formula into a validated Design.

    A Design passed as data is returned as is; formula and the
    weights/cluster/offset arguments must then be None.
    """
    if isinstance(data, Design):
        given = [name for name, value in (
            ('formula', formula), ('categorical', categorical), ('weights', weights),
            ('cluster', cluster), ('offset', offset),
        ) if value is not None]
        if given:
            raise ValidationError(
                f"data is a prebuilt Design; {given} must be None "
                f"(they are fixed when the Design is built)"
            )
        return data

    if formula is None:
        raise ValidationError("formula is required unless data is a Design")

    if isinstance(formula, str):
        model = Formula.parse(formula, categorical=categorical)
    elif isinstance(formula, Formula):
        model = formula
        if categorical is not None:
            model = Formula.build(
                formula.response,
                formula.terms,
                categorical=categorical,
                intercept=formula.intercept,
            )
    else:
        raise TypeError(f"formula must be str or Formula, got {type(formula).__name__}")

    source = Dataset.build(data)
    return Design.from_formula(
        source,
        model,
        weights=weights,
        cluster=cluster,
        offset=offset,
    )
