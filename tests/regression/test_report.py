"""
Coefficient report tests.
"""

import numpy as np
import pytest
from scipy import stats

from glmkit import fit
from glmkit.core.exceptions import ValidationError
from glmkit.regression.covariance import covariance
from glmkit.regression.report import (
    DEFAULT_CRITICAL_VALUE,
    critical_value_for,
    report,
)


@pytest.fixture
def risk_fit(risk_data):
    return fit(risk_data, "case ~ exposed", family='binomial', link='log')


class TestRows:

    def test_order_and_values(self, risk_fit):
        rep = report(risk_fit)
        assert rep.terms == ('(Intercept)', 'exposed')
        se = covariance(risk_fit).standard_errors
        row = rep['exposed']
        assert row.estimate == pytest.approx(risk_fit.coefficients[1])
        assert row.std_error == pytest.approx(se[1])
        assert row.statistic == pytest.approx(row.estimate / row.std_error)
        assert row.conf_low == pytest.approx(row.estimate - 1.96 * row.std_error)
        assert row.conf_high == pytest.approx(row.estimate + 1.96 * row.std_error)
        assert rep.critical_value == DEFAULT_CRITICAL_VALUE

    def test_z_reference_for_fixed_dispersion(self, risk_fit):
        rep = report(risk_fit)
        row = rep[1]
        assert rep.statistic_name == 'z'
        assert row.p_value == pytest.approx(2 * stats.norm.sf(abs(row.statistic)))

    def test_t_reference_for_gaussian(self, gaussian_data):
        result = fit(gaussian_data, "y ~ x1 + x2")
        rep = report(result)
        assert rep.statistic_name == 't'
        assert rep.df_residual == 97
        row = rep['x2']
        assert row.p_value == pytest.approx(2 * stats.t.sf(abs(row.statistic), 97))

    def test_iteration_and_len(self, risk_fit):
        rep = report(risk_fit)
        assert len(rep) == 2
        assert [row.term for row in rep] == ['(Intercept)', 'exposed']

    def test_unknown_term(self, risk_fit):
        with pytest.raises(KeyError, match="age"):
            report(risk_fit)['age']


class TestExponentiate:

    def test_risk_ratio(self, risk_fit):
        row = report(risk_fit, exponentiate=True)['exposed']
        assert row.exp_estimate == pytest.approx(2.0, abs=1e-3)
        assert row.exp_conf_low == pytest.approx(np.exp(row.conf_low))
        assert row.exp_conf_high == pytest.approx(np.exp(row.conf_high))

    def test_log_of_exp_roundtrips(self, risk_fit):
        for row in report(risk_fit, exponentiate=True):
            assert np.log(row.exp_estimate) == pytest.approx(row.estimate, abs=1e-9)
            assert np.log(row.exp_conf_low) == pytest.approx(row.conf_low, abs=1e-9)
            assert np.log(row.exp_conf_high) == pytest.approx(row.conf_high, abs=1e-9)

    def test_se_not_exponentiated(self, risk_fit):
        plain = report(risk_fit)['exposed']
        exp = report(risk_fit, exponentiate=True)['exposed']
        assert exp.std_error == plain.std_error

    def test_not_filled_by_default(self, risk_fit):
        row = report(risk_fit)['exposed']
        assert row.exp_estimate is None


class TestCovarianceChoice:

    def test_robust_covariance(self, risk_data):
        result = fit(risk_data, "case ~ exposed", family='poisson')
        cov = covariance(result, robust=True)
        rep = report(result, cov, exponentiate=True)
        assert rep.covariance_kind == 'robust'
        np.testing.assert_allclose([r.std_error for r in rep], np.sqrt([0.8, 1.1]), rtol=1e-6)

    def test_custom_critical_value(self, risk_fit):
        c = critical_value_for(0.90)
        row = report(risk_fit, critical_value=c)['exposed']
        assert row.conf_high - row.estimate == pytest.approx(c * row.std_error)

    def test_none_critical_value_is_default(self, risk_fit):
        assert report(risk_fit, critical_value=None).critical_value == 1.96

    def test_shortcut(self, risk_fit):
        a = risk_fit.report(exponentiate=True)
        b = report(risk_fit, exponentiate=True)
        assert a.to_records() == b.to_records()

    def test_mismatched_covariance(self, risk_fit, gaussian_data):
        other = covariance(fit(gaussian_data, "y ~ x1 + x2"))
        with pytest.raises(ValidationError):
            report(risk_fit, other)

    def test_bad_critical_value(self, risk_fit):
        with pytest.raises(ValidationError):
            report(risk_fit, critical_value=-1.0)


class TestCriticalValue:

    def test_normal(self):
        assert critical_value_for(0.95) == pytest.approx(1.959964, abs=1e-6)

    def test_t(self):
        assert critical_value_for(0.95, df=10) == pytest.approx(stats.t.ppf(0.975, 10))

    @pytest.mark.parametrize("level", [0.0, 1.0, 1.5])
    def test_bad_level(self, level):
        with pytest.raises(ValidationError):
            critical_value_for(level)


class TestExport:

    def test_records(self, risk_fit):
        records = report(risk_fit).to_records()
        assert records[0]['term'] == '(Intercept)'
        assert 'exp_estimate' not in records[0]
        records = report(risk_fit, exponentiate=True).to_records()
        assert records[1]['exp_estimate'] == pytest.approx(2.0, abs=1e-3)

    def test_dataframe(self, risk_fit):
        pytest.importorskip("pandas")
        df = report(risk_fit, exponentiate=True).to_dataframe()
        assert list(df.index) == ['(Intercept)', 'exposed']
        assert 'exp_conf_high' in df.columns
