"""
pytest configuration and shared fixtures.
"""

import pytest
import numpy as np


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def gaussian_data(rng):
    """Linear model with two numeric predictors."""
    n = 100
    x1 = rng.standard_normal(n)
    x2 = rng.standard_normal(n)
    y = 1.0 + 2.0 * x1 - 0.5 * x2 + rng.standard_normal(n) * 0.3
    return {'y': y, 'x1': x1, 'x2': x2}


@pytest.fixture
def logistic_data():
    """Small binary outcome with a binary exposure (slope ≈ 2.77)."""
    return {
        'y': [1, 0, 1, 0, 1, 1, 0, 0, 1, 0],
        'x': [1, 1, 0, 0, 1, 1, 0, 0, 1, 0],
    }


@pytest.fixture
def risk_data():
    """2 of 5 exposed and 1 of 5 unexposed are cases: risk ratio 2."""
    return {
        'case': [1, 1, 0, 0, 0, 1, 0, 0, 0, 0],
        'exposed': [1, 1, 1, 1, 1, 0, 0, 0, 0, 0],
    }


@pytest.fixture
def homoskedastic_data():
    """Two groups whose residuals all have magnitude 1."""
    return {
        'y': [1.0, 3.0, 1.0, 3.0, 4.0, 6.0, 4.0, 6.0],
        'x': [0.0, 0.0, 0.0, 0.0, 1.0, 1.0, 1.0, 1.0],
    }


@pytest.fixture
def count_data(rng):
    """Poisson counts with exposure time and a three-level factor."""
    n = 1000
    x = rng.standard_normal(n)
    arm = rng.choice(['a', 'b', 'c'], size=n)
    t = rng.uniform(0.5, 2.0, size=n)
    effect = np.select([arm == 'b', arm == 'c'], [0.3, -0.4], 0.0)
    mu = t * np.exp(0.5 + 0.4 * x + effect)
    y = rng.poisson(mu).astype(float)
    return {'y': y, 'x': x, 'arm': list(arm), 't': t}


@pytest.fixture
def clustered_data(rng):
    """Gaussian outcome with unbalanced clusters and a shared cluster effect."""
    sizes = [1, 2, 3, 5, 8, 13, 4, 6, 2, 6]
    cluster = np.repeat(np.arange(len(sizes)), sizes)
    n = len(cluster)
    x = rng.standard_normal(n)
    u = rng.standard_normal(len(sizes))[cluster]
    y = 0.5 + 1.5 * x + u + rng.standard_normal(n) * 0.5
    return {'y': y, 'x': x, 'site': [f"s{c}" for c in cluster]}
