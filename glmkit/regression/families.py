"""
GLM family/link registry.

A closed table mapping each supported (family, link) pair to the plain
functions IRLS and the covariance estimators need:

    linkfun      g(μ) → η
    linkinv      g⁻¹(η) → μ (unclamped)
    variance     V(μ)
    deta_dmu     dη/dμ = g'(μ)
    unit_deviance, log-likelihood, starting values, response checks

Supported pairs:
    gaussian-identity   linear regression
    binomial-logit      logistic regression
    binomial-log        log-binomial regression (risk ratios)
    poisson-log         Poisson / modified-Poisson regression

All mean evaluations clamp μ into the open interior of its range,
(ε, 1-ε) for binomial and (ε, ∞) for poisson, with ε = MU_EPSILON, so
weights and logarithms stay finite.

References:
    McCullagh, P., & Nelder, J. A. (1989). Generalized Linear Models (2nd ed.)
    R Core Team. stats::family, stats::make.link
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable
import numpy as np
from numpy.typing import NDArray
from scipy.special import gammaln

from glmkit.core.exceptions import UnsupportedCombinationError, ValidationError

MU_EPSILON = 1e-8

# Keeps exp(η) finite in float64.
_ETA_MAX = 700.0

ArrayFn = Callable[[NDArray], NDArray]


# =====================================================================
# Link functions
# =====================================================================

def _identity_link(mu: NDArray) -> NDArray:
    return mu.copy()


def _identity_inv(eta: NDArray) -> NDArray:
    return eta.copy()


def _identity_deta(mu: NDArray) -> NDArray:
    return np.ones_like(mu)


def _logit_link(mu: NDArray) -> NDArray:
    mu = np.clip(mu, MU_EPSILON, 1 - MU_EPSILON)
    return np.log(mu / (1 - mu))


def _logit_inv(eta: NDArray) -> NDArray:
    eta = np.clip(eta, -_ETA_MAX, _ETA_MAX)
    return 1.0 / (1.0 + np.exp(-eta))


def _logit_deta(mu: NDArray) -> NDArray:
    return 1.0 / (mu * (1.0 - mu))


def _log_link(mu: NDArray) -> NDArray:
    return np.log(np.maximum(mu, MU_EPSILON))


def _log_inv(eta: NDArray) -> NDArray:
    return np.exp(np.minimum(eta, _ETA_MAX))


def _log_deta(mu: NDArray) -> NDArray:
    return 1.0 / mu


# =====================================================================
# Variance functions
# =====================================================================

def _gaussian_variance(mu: NDArray) -> NDArray:
    return np.ones_like(mu)


def _binomial_variance(mu: NDArray) -> NDArray:
    return mu * (1.0 - mu)


def _poisson_variance(mu: NDArray) -> NDArray:
    return mu.copy()


# =====================================================================
# Unit deviances and log-likelihoods
# =====================================================================

def _gaussian_unit_deviance(y: NDArray, mu: NDArray) -> NDArray:
    return (y - mu) ** 2


def _binomial_unit_deviance(y: NDArray, mu: NDArray) -> NDArray:
    # 0*log(0) = 0; np.where evaluates both branches
    with np.errstate(divide='ignore', invalid='ignore'):
        term1 = np.where(y > 0, y * np.log(y / mu), 0.0)
        term2 = np.where(y < 1, (1 - y) * np.log((1 - y) / (1 - mu)), 0.0)
    return 2.0 * (term1 + term2)


def _poisson_unit_deviance(y: NDArray, mu: NDArray) -> NDArray:
    with np.errstate(divide='ignore', invalid='ignore'):
        term = np.where(y > 0, y * np.log(y / mu), 0.0)
    return 2.0 * (term - (y - mu))


def _gaussian_loglik(y: NDArray, mu: NDArray, wt: NDArray, dispersion: float) -> float:
    n = float(np.sum(wt > 0))
    rss = float(np.sum(wt * (y - mu) ** 2))
    return -0.5 * (rss / dispersion + n * np.log(2 * np.pi * dispersion)
                   - float(np.sum(np.log(wt))))


def _binomial_loglik(y: NDArray, mu: NDArray, wt: NDArray, dispersion: float) -> float:
    return float(np.sum(wt * (y * np.log(mu) + (1 - y) * np.log(1 - mu))))


def _poisson_loglik(y: NDArray, mu: NDArray, wt: NDArray, dispersion: float) -> float:
    return float(np.sum(wt * (y * np.log(mu) - mu - gammaln(y + 1))))


# =====================================================================
# Response checks
# =====================================================================

def _any_response(y: NDArray) -> None:
    return None


def _binomial_response(y: NDArray) -> None:
    if np.any((y < 0) | (y > 1)):
        lo, hi = float(np.min(y)), float(np.max(y))
        raise ValidationError(
            f"binomial response must lie in [0, 1], got range [{lo}, {hi}]"
        )


def _poisson_response(y: NDArray) -> None:
    if np.any(y < 0):
        raise ValidationError(
            f"poisson response must be non-negative, got minimum {float(np.min(y))}"
        )


# =====================================================================
# Registry entry
# =====================================================================

@dataclass(frozen=True)
class FamilyLink:
    """
    One registered (family, link) pair and its functions.

    Construct through resolve_family_link(), not directly.
    """
    family: str
    link: str
    linkfun: ArrayFn
    linkinv: ArrayFn
    variance: ArrayFn
    deta_dmu: ArrayFn
    unit_deviance: Callable[[NDArray, NDArray], NDArray]
    loglik: Callable[[NDArray, NDArray, NDArray, float], float]
    check_response: Callable[[NDArray], None]
    mu_lower: float
    mu_upper: float
    dispersion_is_fixed: bool
    canonical: bool

    @property
    def name(self) -> str:
        return f"{self.family}-{self.link}"

    def clamp(self, mu: NDArray) -> NDArray:
        """Clamp μ into the numerically safe interior of its range."""
        return np.clip(mu, self.mu_lower, self.mu_upper)

    def mean(self, eta: NDArray) -> NDArray:
        """μ = g⁻¹(η), clamped."""
        return self.clamp(self.linkinv(eta))

    def valid_mu(self, mu_raw: NDArray) -> bool:
        """Whether an unclamped mean lies inside the family's open range."""
        if not np.all(np.isfinite(mu_raw)):
            return False
        if self.family == 'binomial':
            return bool(np.all((mu_raw > 0) & (mu_raw < 1)))
        if self.family == 'poisson':
            return bool(np.all(mu_raw > 0))
        return True

    def validate_response(self, y: NDArray) -> None:
        """Raise ValidationError if y is outside the family's support."""
        self.check_response(y)

    def working_weights(self, mu: NDArray, wt: NDArray) -> NDArray:
        """W = wt / (V(μ)·(dη/dμ)²)."""
        d = self.deta_dmu(mu)
        return wt / (self.variance(mu) * d ** 2)

    def initialize(self, y: NDArray, wt: NDArray) -> NDArray:
        """
        Starting means for IRLS.

        Gaussian starts at y. Binomial and poisson start halfway between
        y and its weighted mean, which keeps μ⁰ off the boundary.
        """
        if self.family == 'gaussian':
            return y.copy()
        ybar = float(np.sum(wt * y) / np.sum(wt))
        return self.clamp((y + ybar) / 2.0)

    def deviance(self, y: NDArray, mu: NDArray, wt: NDArray) -> float:
        """Total deviance Σ wt_i · d(y_i, μ_i)."""
        return float(np.sum(wt * self.unit_deviance(y, self.clamp(mu))))

    def log_likelihood(
        self, y: NDArray, mu: NDArray, wt: NDArray, dispersion: float
    ) -> float:
        return self.loglik(y, self.clamp(mu), wt, dispersion)

    def aic(self, y: NDArray, mu: NDArray, wt: NDArray, rank: int) -> float:
        """
        AIC = -2·loglik + 2·k.

        For gaussian the dispersion is counted as a parameter and the
        log-likelihood is evaluated at its MLE, deviance / n.
        """
        if self.family == 'gaussian':
            n = float(np.sum(wt > 0))
            sigma_mle_sq = self.deviance(y, mu, wt) / n
            ll = self.log_likelihood(y, mu, wt, sigma_mle_sq)
            return -2.0 * ll + 2.0 * (rank + 1)
        return -2.0 * self.log_likelihood(y, mu, wt, 1.0) + 2.0 * rank

    def __repr__(self) -> str:
        return f"FamilyLink({self.family!r}, {self.link!r})"


_LINKS: dict[str, tuple[ArrayFn, ArrayFn, ArrayFn]] = {
    'identity': (_identity_link, _identity_inv, _identity_deta),
    'logit': (_logit_link, _logit_inv, _logit_deta),
    'log': (_log_link, _log_inv, _log_deta),
}

_FAMILIES = {
    'gaussian': dict(
        variance=_gaussian_variance,
        unit_deviance=_gaussian_unit_deviance,
        loglik=_gaussian_loglik,
        check_response=_any_response,
        dispersion_is_fixed=False,
        canonical_link='identity',
    ),
    'binomial': dict(
        variance=_binomial_variance,
        unit_deviance=_binomial_unit_deviance,
        loglik=_binomial_loglik,
        check_response=_binomial_response,
        dispersion_is_fixed=True,
        canonical_link='logit',
    ),
    'poisson': dict(
        variance=_poisson_variance,
        unit_deviance=_poisson_unit_deviance,
        loglik=_poisson_loglik,
        check_response=_poisson_response,
        dispersion_is_fixed=True,
        canonical_link='log',
    ),
}

_MU_BOUNDS = {
    'gaussian': (-np.inf, np.inf),
    'binomial': (MU_EPSILON, 1.0 - MU_EPSILON),
    'poisson': (MU_EPSILON, np.inf),
}

SUPPORTED_PAIRS: tuple[tuple[str, str], ...] = (
    ('gaussian', 'identity'),
    ('binomial', 'logit'),
    ('binomial', 'log'),
    ('poisson', 'log'),
)

_ALIASES = {'normal': 'gaussian'}


def _make_entry(family: str, link: str) -> FamilyLink:
    fam = _FAMILIES[family]
    linkfun, linkinv, deta_dmu = _LINKS[link]
    lower, upper = _MU_BOUNDS[family]
    return FamilyLink(
        family=family,
        link=link,
        linkfun=linkfun,
        linkinv=linkinv,
        variance=fam['variance'],
        deta_dmu=deta_dmu,
        unit_deviance=fam['unit_deviance'],
        loglik=fam['loglik'],
        check_response=fam['check_response'],
        mu_lower=lower,
        mu_upper=upper,
        dispersion_is_fixed=fam['dispersion_is_fixed'],
        canonical=(link == fam['canonical_link']),
    )


REGISTRY: dict[tuple[str, str], FamilyLink] = {
    pair: _make_entry(*pair) for pair in SUPPORTED_PAIRS
}


def resolve_family_link(
    family: str | FamilyLink,
    link: str | None = None,
) -> FamilyLink:
    """
    Look up a (family, link) pair in the registry.

    Args:
        family: Family name ('gaussian', 'binomial', 'poisson'; 'normal'
                is accepted for gaussian), or a FamilyLink (passed through)
        link: Link name; None selects the family's canonical link

    Returns:
        The registered FamilyLink

    Raises:
        UnsupportedCombinationError: If the pair is not registered
        TypeError: If family is neither str nor FamilyLink
    """
    if isinstance(family, FamilyLink):
        if link is not None and link.lower() != family.link:
            raise UnsupportedCombinationError(
                f"link={link!r} conflicts with {family!r}",
                family=family.family,
                link=link,
                supported=SUPPORTED_PAIRS,
            )
        return family
    if not isinstance(family, str):
        raise TypeError(f"family must be str or FamilyLink, got {type(family).__name__}")

    fam = family.strip().lower()
    fam = _ALIASES.get(fam, fam)
    if link is None:
        if fam not in _FAMILIES:
            raise UnsupportedCombinationError(
                f"Unknown family: {family!r}. Supported pairs: {_format_pairs()}",
                family=family,
                supported=SUPPORTED_PAIRS,
            )
        lnk = _FAMILIES[fam]['canonical_link']
    else:
        lnk = link.strip().lower()

    entry = REGISTRY.get((fam, lnk))
    if entry is None:
        raise UnsupportedCombinationError(
            f"Unsupported family/link combination: ({family!r}, {link!r}). "
            f"Supported pairs: {_format_pairs()}",
            family=family,
            link=link,
            supported=SUPPORTED_PAIRS,
        )
    return entry


def _format_pairs() -> str:
    return ', '.join(f"{f}-{l}" for f, l in SUPPORTED_PAIRS)
