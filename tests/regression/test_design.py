"""
Design matrix builder tests.

Tests name validation, column typing, complete-case filtering,
treatment coding, interactions, and the structural checks.
"""

import numpy as np
import pytest

from glmkit.core.dataset import Dataset
from glmkit.core.exceptions import (
    ColumnTypeError,
    DimensionError,
    MissingDataError,
    SingularMatrixError,
    ValidationError,
)
from glmkit.regression.design import INTERCEPT_NAME, Design, encode_groups
from glmkit.regression.formula import Formula


def _design(columns, formula, categorical=None, **kwargs):
    return Design.from_formula(
        Dataset.from_columns(columns),
        Formula.parse(formula, categorical=categorical),
        **kwargs,
    )


# =====================================================================
# Names and types
# =====================================================================

class TestValidation:

    def test_unknown_variable(self):
        with pytest.raises(MissingDataError) as exc_info:
            _design({'y': [1, 2, 3, 4], 'x': [1, 2, 3, 5]}, "y ~ x + z")
        assert exc_info.value.variable == 'z'
        assert 'x' in exc_info.value.available

    def test_unknown_weights_column(self):
        with pytest.raises(MissingDataError):
            _design({'y': [1, 2, 3, 4], 'x': [1, 2, 3, 5]}, "y ~ x", weights='w')

    def test_string_column_as_numeric(self):
        with pytest.raises(ColumnTypeError) as exc_info:
            _design({'y': [1, 2, 3, 4], 'arm': ['a', 'b', 'a', 'b']}, "y ~ arm")
        assert exc_info.value.variable == 'arm'
        assert exc_info.value.expected == 'numeric'
        assert exc_info.value.actual == 'categorical'

    def test_string_response(self):
        with pytest.raises(ColumnTypeError):
            _design({'y': ['a', 'b', 'a', 'b'], 'x': [1, 2, 3, 4]}, "y ~ x")

    def test_too_few_rows(self):
        # 3 rows, 2 columns: n <= p + 1
        with pytest.raises(DimensionError):
            _design({'y': [1.0, 2.0, 4.0], 'x': [1.0, 2.0, 3.0]}, "y ~ x")

    def test_too_few_rows_after_filtering(self):
        with pytest.raises(DimensionError):
            _design(
                {'y': [1.0, 2.0, 4.0, None, 5.0], 'x': [1.0, 2.0, 3.0, 4.0, None]},
                "y ~ x",
            )

    def test_all_rows_missing(self):
        with pytest.raises(DimensionError, match="No complete rows"):
            _design({'y': [None, 1.0], 'x': [1.0, None]}, "y ~ x")

    def test_rank_deficient(self):
        x = [1.0, 2.0, 3.0, 4.0, 5.0]
        with pytest.raises(SingularMatrixError) as exc_info:
            _design({'y': [1, 3, 2, 5, 4], 'x': x, 'x2': [2 * v for v in x]}, "y ~ x + x2")
        assert exc_info.value.matrix_name == 'X'

    def test_nonpositive_weights(self):
        with pytest.raises(ValidationError, match="non-positive"):
            _design(
                {'y': [1, 3, 2, 5, 4], 'x': [1, 2, 3, 4, 5]},
                "y ~ x",
                weights=[1.0, 1.0, 0.0, 1.0, 1.0],
            )

    def test_misaligned_external_array(self):
        with pytest.raises(DimensionError):
            _design({'y': [1, 3, 2, 5, 4], 'x': [1, 2, 3, 4, 5]}, "y ~ x", offset=[0.0, 1.0])


# =====================================================================
# Complete-case filtering
# =====================================================================

class TestCompleteCase:

    def test_scoped_to_referenced_variables(self, rng):
        n = 60
        cols = {name: rng.standard_normal(n) for name in ('y', 'a', 'b', 'unused')}
        for name, rate in (('y', 0.1), ('a', 0.15), ('b', 0.1), ('unused', 0.5)):
            cols[name][rng.random(n) < rate] = np.nan

        design = _design(cols, "y ~ a + b")

        complete = ~(np.isnan(cols['y']) | np.isnan(cols['a']) | np.isnan(cols['b']))
        np.testing.assert_array_equal(design.row_index, np.flatnonzero(complete))
        assert design.n == int(complete.sum())
        assert design.n_dropped == n - int(complete.sum())
        np.testing.assert_array_equal(design.y, cols['y'][complete])

    def test_weights_column_participates(self):
        design = _design(
            {'y': [1, 3, 2, 5, 4, 6], 'x': [1, 2, 3, 4, 5, 7], 'w': [1, 2, None, 1, 1, 1]},
            "y ~ x",
            weights='w',
        )
        assert design.n == 5
        np.testing.assert_array_equal(design.row_index, [0, 1, 3, 4, 5])
        np.testing.assert_array_equal(design.weights, [1, 2, 1, 1, 1])

    def test_missing_categorical_level(self):
        design = _design(
            {'y': [1, 3, 2, 5, 4, 6, 2], 'arm': ['a', 'b', None, 'a', 'b', 'a', 'b']},
            "y ~ arm",
            categorical=['arm'],
        )
        assert design.n == 6
        assert design.n_dropped == 1


# =====================================================================
# Categorical expansion and interactions
# =====================================================================

class TestEncoding:

    DATA = {
        'y': [1.0, 2.0, 3.0, 2.5, 4.0, 3.5, 5.0, 1.5],
        'x': [0.5, 1.0, 1.5, 2.0, 2.5, 3.0, 3.5, 4.0],
        'arm': ['c', 'a', 'b', 'a', 'c', 'b', 'c', 'a'],
        'dose': [10, 2, 5, 2, 10, 5, 10, 2],
        'flag': [True, False, True, False, True, False, True, False],
    }

    def test_treatment_coding(self):
        design = _design(self.DATA, "y ~ x + arm", categorical=['arm'])
        assert design.column_names == (INTERCEPT_NAME, 'x', 'arm[b]', 'arm[c]')
        np.testing.assert_array_equal(design.X[:, 2], [0, 0, 1, 0, 0, 1, 0, 0])
        np.testing.assert_array_equal(design.X[:, 3], [1, 0, 0, 0, 1, 0, 1, 0])
        assert design.term_slices['arm'] == slice(2, 4)

    def test_explicit_reference(self):
        design = _design(self.DATA, "y ~ arm", categorical={'arm': 'c'})
        assert design.column_names == (INTERCEPT_NAME, 'arm[a]', 'arm[b]')

    def test_numeric_levels_sorted_numerically(self):
        design = _design(self.DATA, "y ~ dose", categorical=['dose'])
        assert design.column_names == (INTERCEPT_NAME, 'dose[5]', 'dose[10]')

    def test_bool_reference(self):
        design = _design(self.DATA, "y ~ flag", categorical={'flag': True})
        assert design.column_names == (INTERCEPT_NAME, 'flag[0]')
        np.testing.assert_array_equal(design.X[:, 1], [0, 1, 0, 1, 0, 1, 0, 1])
        default = _design(self.DATA, "y ~ flag", categorical=['flag'])
        assert default.column_names == (INTERCEPT_NAME, 'flag[1]')

    def test_unobserved_reference(self):
        with pytest.raises(ValidationError, match="not observed"):
            _design(self.DATA, "y ~ arm", categorical={'arm': 'z'})

    def test_single_level(self):
        with pytest.raises(ValidationError, match="at least 2"):
            _design(
                {'y': [1, 2, 3, 4], 'g': ['a', 'a', 'a', 'a'], 'x': [1, 2, 3, 5]},
                "y ~ x + g",
                categorical=['g'],
            )

    def test_numeric_interaction(self):
        design = _design(self.DATA, "y ~ x + dose + x:dose")
        assert design.column_names[-1] == 'x:dose'
        np.testing.assert_allclose(
            design.X[:, -1], np.array(self.DATA['x']) * np.array(self.DATA['dose'])
        )

    def test_categorical_interaction(self):
        design = _design(self.DATA, "y ~ x + arm + arm:x", categorical=['arm'])
        assert design.column_names[-2:] == ('arm[b]:x', 'arm[c]:x')
        np.testing.assert_allclose(design.X[:, -2], design.X[:, 2] * design.X[:, 1])
        assert design.term_slices['arm:x'] == slice(4, 6)

    def test_no_intercept(self):
        design = _design(self.DATA, "y ~ x - 1")
        assert design.column_names == ('x',)
        assert not design.has_intercept


# =====================================================================
# from_arrays, offset and clusters
# =====================================================================

class TestFromArrays:

    def test_intercept_detection(self, rng):
        X = np.column_stack([np.ones(10), rng.standard_normal(10)])
        design = Design.from_arrays(X, rng.standard_normal(10))
        assert design.has_intercept
        assert design.column_names == (INTERCEPT_NAME, 'x1')
        np.testing.assert_array_equal(design.weights, np.ones(10))

    def test_no_intercept(self, rng):
        design = Design.from_arrays(rng.standard_normal((10, 2)), rng.standard_normal(10))
        assert not design.has_intercept
        assert design.column_names == ('x0', 'x1')

    def test_nan_rejected(self, rng):
        y = rng.standard_normal(10)
        y[3] = np.nan
        with pytest.raises(ValidationError, match="non-finite"):
            Design.from_arrays(rng.standard_normal((10, 2)), y)

    def test_column_names_length(self, rng):
        with pytest.raises(DimensionError):
            Design.from_arrays(rng.standard_normal((10, 2)), rng.standard_normal(10),
                               column_names=['a'])

    def test_offset_or_zero(self, rng):
        design = Design.from_arrays(rng.standard_normal((10, 2)), rng.standard_normal(10))
        np.testing.assert_array_equal(design.offset_or_zero(), np.zeros(10))
        off = np.arange(10.0)
        design = Design.from_arrays(rng.standard_normal((10, 2)), rng.standard_normal(10),
                                    offset=off)
        np.testing.assert_array_equal(design.offset_or_zero(), off)

    def test_identity_equality_and_hash(self, rng):
        X = rng.standard_normal((10, 2))
        y = rng.standard_normal(10)
        a = Design.from_arrays(X, y)
        b = Design.from_arrays(X, y)
        assert a == a
        assert a != b
        assert len({a, b, a}) == 2


class TestClusters:

    def test_encode_groups_first_appearance(self):
        codes, g = encode_groups(np.array(['b', 'a', 'b', 'c'], dtype=object))
        np.testing.assert_array_equal(codes, [0, 1, 0, 2])
        assert g == 3

    def test_cluster_column_filtered_with_rows(self):
        design = _design(
            {'y': [1, 3, 2, 5, 4, None], 'x': [1, 2, 3, 4, 5, 6],
             'site': ['s1', 's1', 's2', 's2', 's3', 's4']},
            "y ~ x",
            cluster='site',
        )
        assert design.n_clusters == 3
        np.testing.assert_array_equal(design.cluster, [0, 0, 1, 1, 2])

    def test_encode_cluster_by_name(self):
        design = _design(
            {'y': [1, 3, 2, 5, 4], 'x': [1, 2, 3, 4, 5], 'site': ['a', 'b', 'a', 'b', 'c']},
            "y ~ x",
        )
        codes, g = design.encode_cluster('site')
        np.testing.assert_array_equal(codes, [0, 1, 0, 1, 2])
        assert g == 3

    def test_encode_cluster_wrong_length(self):
        design = _design({'y': [1, 3, 2, 5, 4], 'x': [1, 2, 3, 4, 5]}, "y ~ x")
        with pytest.raises(DimensionError):
            design.encode_cluster([1, 2, 3])
