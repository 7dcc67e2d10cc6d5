"""
Regression Design.

Design wraps a Dataset and a Formula and builds the Observation Set the
solver works on: X (design matrix), y (response), prior weights, offset
and cluster codes. It knows it's building a regression; Dataset doesn't.

Like a furniture maker visiting the lumber yard: "I need these logs
for making chairs." The lumber yard just provides logs.

Row filtering is complete-case over exactly the variables the model
references (response, every term operand, and any weights/cluster/offset
column). Other columns in the dataset never drop a row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from numbers import Number
from typing import Any, Sequence
import numpy as np
from numpy.typing import ArrayLike, NDArray

from glmkit.core.dataset import Dataset, KIND_NUMERIC, is_missing
from glmkit.core.exceptions import (
    ColumnTypeError,
    DimensionError,
    MissingDataError,
    ValidationError,
)
from glmkit.core.validation import (
    check_array,
    check_1d,
    check_2d,
    check_column_rank,
    check_consistent_length,
    check_finite,
    check_positive,
    check_sufficient_rows,
)
from glmkit.regression.formula import Formula

INTERCEPT_NAME = '(Intercept)'


@dataclass(frozen=True, eq=False)
class Design:
    """
    Regression design matrix specification (the Observation Set).

    Immutable after construction. Compared and hashed by identity, since
    it holds arrays.

    Construction:
        Design.from_formula(ds, Formula.parse("y ~ x + arm"))
        Design.from_arrays(X, y)
    """
    _X: NDArray[np.floating[Any]]
    _y: NDArray[np.floating[Any]]
    _weights: NDArray[np.floating[Any]]
    _offset: NDArray[np.floating[Any]] | None
    _cluster: NDArray[np.intp] | None
    _n_clusters: int
    _n: int
    _p: int
    _column_names: tuple[str, ...]
    _term_slices: dict[str, slice]
    _row_index: NDArray[np.intp]
    _n_dropped: int
    _has_intercept: bool
    _formula: Formula | None = None
    _source: Dataset | None = field(default=None, repr=False)

    @classmethod
    def from_formula(
        cls,
        source: Dataset,
        formula: Formula,
        *,
        weights: str | ArrayLike | None = None,
        cluster: str | ArrayLike | None = None,
        offset: str | ArrayLike | None = None,
    ) -> Design:
        """
        Build a Design from a Dataset and a Formula.

        Args:
            source: The Dataset
            formula: Model specification
            weights: Prior weights, as a column name or an array aligned
                     with the dataset rows
            cluster: Cluster/subject identifiers, column name or array
            offset: Offset added to the linear predictor, column name or array

        Returns:
            Design ready for fitting

        Raises:
            MissingDataError: A referenced name is not in the dataset
            ColumnTypeError: A column's type doesn't match its declared use
            DimensionError: Too few complete rows, or misaligned arrays
            SingularMatrixError: X is rank-deficient
            ValidationError: Bad categorical reference, non-finite values,
                             non-positive weights
        """
        referenced = list(formula.variables)
        extras = {'weights': weights, 'cluster': cluster, 'offset': offset}
        for value in extras.values():
            if isinstance(value, str) and value not in referenced:
                referenced.append(value)

        unknown = [name for name in referenced if name not in source]
        if unknown:
            raise MissingDataError(
                f"Variables not found in dataset: {unknown}. "
                f"Available: {list(source.keys())}",
                variable=unknown[0],
                available=source.keys(),
            )

        _check_column_types(source, formula, extras)

        # === Complete-case mask over referenced variables only ===
        n_total = source.n_observations
        complete = np.ones(n_total, dtype=bool)
        for name in referenced:
            complete &= ~source.missing(name)

        resolved: dict[str, NDArray | None] = {}
        for role, value in extras.items():
            if value is None:
                resolved[role] = None
            elif isinstance(value, str):
                resolved[role] = source[value]
            else:
                arr = _external_column(value, role, n_total, numeric=(role != 'cluster'))
                resolved[role] = arr
                complete &= ~_missing_mask(arr)

        rows = np.flatnonzero(complete)
        n = len(rows)
        if n == 0:
            raise DimensionError(
                f"No complete rows for variables {referenced} "
                f"(all {n_total} rows have a missing value)"
            )

        # === Columns ===
        blocks: dict[str, tuple[NDArray, list[str]]] = {}
        for var in formula.predictor_variables:
            values = source[var][rows]
            if formula.is_categorical(var):
                blocks[var] = _encode_treatment(var, values, formula.categorical[var])
            else:
                blocks[var] = (values.astype(np.float64).reshape(-1, 1), [var])

        columns: list[NDArray] = []
        names: list[str] = []
        term_slices: dict[str, slice] = {}
        if formula.intercept:
            columns.append(np.ones((n, 1)))
            names.append(INTERCEPT_NAME)
            term_slices[INTERCEPT_NAME] = slice(0, 1)

        for term in formula.terms:
            mat, labels = blocks[term.variables[0]]
            for var in term.variables[1:]:
                mat, labels = _interact(mat, labels, *blocks[var])
            start = len(names)
            columns.append(mat)
            names.extend(labels)
            term_slices[term.name] = slice(start, len(names))

        X = np.hstack(columns)
        y = source[formula.response][rows].astype(np.float64)

        wt = resolved['weights']
        off = resolved['offset']
        clus = resolved['cluster']

        return cls._build(
            X,
            y,
            weights=None if wt is None else np.asarray(wt[rows], dtype=np.float64),
            offset=None if off is None else np.asarray(off[rows], dtype=np.float64),
            cluster=None if clus is None else clus[rows],
            column_names=tuple(names),
            term_slices=term_slices,
            row_index=rows,
            n_dropped=n_total - n,
            has_intercept=formula.intercept,
            formula=formula,
            source=source,
        )

    @classmethod
    def from_arrays(
        cls,
        X: ArrayLike,
        y: ArrayLike,
        *,
        weights: ArrayLike | None = None,
        cluster: ArrayLike | None = None,
        offset: ArrayLike | None = None,
        column_names: Sequence[str] | None = None,
    ) -> Design:
        """
        Build Design directly from arrays.

        No rows are dropped: missing values raise ValidationError. A
        leading column of ones is treated as the intercept.
        """
        X_arr = check_array(X, 'X')
        y_arr = check_array(y, 'y')
        if X_arr.ndim == 1:
            X_arr = X_arr.reshape(-1, 1)
        if y_arr.ndim == 2 and y_arr.shape[1] == 1:
            y_arr = y_arr.ravel()
        check_2d(X_arr, 'X')
        check_1d(y_arr, 'y')
        check_consistent_length(X_arr, y_arr, names=('X', 'y'))

        n, p = X_arr.shape
        has_intercept = n > 0 and bool(np.all(X_arr[:, 0] == 1.0))
        if column_names is None:
            names = [f"x{j}" for j in range(p)]
            if has_intercept:
                names[0] = INTERCEPT_NAME
        else:
            names = [str(c) for c in column_names]
            if len(names) != p:
                raise DimensionError(
                    f"column_names: expected {p} names, got {len(names)}"
                )

        wt = None if weights is None else check_array(weights, 'weights')
        off = None if offset is None else check_array(offset, 'offset')
        clus = None
        if cluster is not None:
            clus = np.asarray(cluster, dtype=object)
            if np.any(_missing_mask(clus)):
                raise ValidationError("cluster: contains missing values")

        return cls._build(
            X_arr,
            y_arr,
            weights=wt,
            offset=off,
            cluster=clus,
            column_names=tuple(names),
            term_slices={name: slice(j, j + 1) for j, name in enumerate(names)},
            row_index=np.arange(n, dtype=np.intp),
            n_dropped=0,
            has_intercept=has_intercept,
            formula=None,
            source=None,
        )

    @classmethod
    def _build(
        cls,
        X: NDArray,
        y: NDArray,
        *,
        weights: NDArray | None,
        offset: NDArray | None,
        cluster: NDArray | None,
        column_names: tuple[str, ...],
        term_slices: dict[str, slice],
        row_index: NDArray,
        n_dropped: int,
        has_intercept: bool,
        formula: Formula | None,
        source: Dataset | None,
    ) -> Design:
        """Internal builder with validation."""
        n, p = X.shape
        check_sufficient_rows(n, p, 'X')
        check_finite(X, 'X')
        check_finite(y, 'y')

        if weights is None:
            weights = np.ones(n, dtype=np.float64)
        check_1d(weights, 'weights')
        check_consistent_length(X, weights, names=('X', 'weights'))
        check_finite(weights, 'weights')
        check_positive(weights, 'weights')

        if offset is not None:
            check_1d(offset, 'offset')
            check_consistent_length(X, offset, names=('X', 'offset'))
            check_finite(offset, 'offset')

        codes, n_clusters = None, 0
        if cluster is not None:
            check_consistent_length(X, cluster, names=('X', 'cluster'))
            codes, n_clusters = encode_groups(cluster)

        check_column_rank(X, 'X')

        return cls(
            _X=X,
            _y=y,
            _weights=weights,
            _offset=offset,
            _cluster=codes,
            _n_clusters=n_clusters,
            _n=n,
            _p=p,
            _column_names=column_names,
            _term_slices=term_slices,
            _row_index=row_index,
            _n_dropped=n_dropped,
            _has_intercept=has_intercept,
            _formula=formula,
            _source=source,
        )

    # === Properties ===

    @property
    def X(self) -> NDArray[np.floating[Any]]:
        """Design matrix (n x p)."""
        return self._X

    @property
    def y(self) -> NDArray[np.floating[Any]]:
        """Response vector (n,)."""
        return self._y

    @property
    def weights(self) -> NDArray[np.floating[Any]]:
        """Prior weights (n,); ones when none were given."""
        return self._weights

    @property
    def offset(self) -> NDArray[np.floating[Any]] | None:
        return self._offset

    @property
    def cluster(self) -> NDArray[np.intp] | None:
        """Integer cluster codes (n,), in order of first appearance."""
        return self._cluster

    @property
    def n_clusters(self) -> int:
        return self._n_clusters

    @property
    def n(self) -> int:
        """Number of retained (complete) observations."""
        return self._n

    @property
    def p(self) -> int:
        """Number of design columns."""
        return self._p

    @property
    def n_dropped(self) -> int:
        """Rows removed by complete-case filtering."""
        return self._n_dropped

    @property
    def row_index(self) -> NDArray[np.intp]:
        """Positions of the retained rows in the source dataset."""
        return self._row_index

    @property
    def column_names(self) -> tuple[str, ...]:
        return self._column_names

    @property
    def term_slices(self) -> dict[str, slice]:
        """Term name -> its columns in X."""
        return dict(self._term_slices)

    @property
    def has_intercept(self) -> bool:
        return self._has_intercept

    @property
    def formula(self) -> Formula | None:
        return self._formula

    @property
    def source(self) -> Dataset | None:
        """Original Dataset, if available."""
        return self._source

    def offset_or_zero(self) -> NDArray[np.floating[Any]]:
        if self._offset is None:
            return np.zeros(self._n, dtype=np.float64)
        return self._offset

    def encode_cluster(self, cluster: str | ArrayLike) -> tuple[NDArray[np.intp], int]:
        """
        Cluster codes for the retained rows.

        Args:
            cluster: A column name of the source dataset, or an array
                     aligned with the retained rows

        Returns:
            (codes, n_clusters)
        """
        if isinstance(cluster, str):
            if self._source is None:
                raise ValidationError(
                    f"cluster={cluster!r} names a column, but this Design "
                    f"was not built from a Dataset"
                )
            values = self._source[cluster][self._row_index]
        else:
            values = np.asarray(cluster, dtype=object)
            if values.ndim != 1 or len(values) != self._n:
                raise DimensionError(
                    f"cluster: expected {self._n} values aligned with the "
                    f"retained rows, got shape {values.shape}"
                )
        if np.any(_missing_mask(values)):
            raise ValidationError("cluster: contains missing values in retained rows")
        return encode_groups(values)


def encode_groups(values: NDArray) -> tuple[NDArray[np.intp], int]:
    """Map group labels to 0..G-1 in order of first appearance."""
    mapping: dict[Any, int] = {}
    codes = np.empty(len(values), dtype=np.intp)
    for i, v in enumerate(values):
        key = v.item() if isinstance(v, np.generic) else v
        codes[i] = mapping.setdefault(key, len(mapping))
    return codes, len(mapping)


# === Helpers ===

def _check_column_types(
    source: Dataset,
    formula: Formula,
    extras: dict[str, Any],
) -> None:
    """Declared use vs stored kind; never coerce."""
    if source.kind(formula.response) != KIND_NUMERIC:
        raise ColumnTypeError(
            f"Response {formula.response!r} is a categorical column; "
            f"the response must be numeric",
            variable=formula.response,
            expected='numeric',
            actual=source.kind(formula.response),
        )
    for var in formula.predictor_variables:
        if formula.is_categorical(var):
            continue
        kind = source.kind(var)
        if kind != KIND_NUMERIC:
            raise ColumnTypeError(
                f"Variable {var!r} holds non-numeric values; declare it "
                f"categorical to expand it into indicator columns",
                variable=var,
                expected='numeric',
                actual=kind,
            )
    for role in ('weights', 'offset'):
        name = extras[role]
        if isinstance(name, str) and source.kind(name) != KIND_NUMERIC:
            raise ColumnTypeError(
                f"{role} column {name!r} must be numeric",
                variable=name,
                expected='numeric',
                actual=source.kind(name),
            )


def _external_column(value: ArrayLike, role: str, n: int, numeric: bool) -> NDArray:
    arr = np.asarray(value, dtype=np.float64 if numeric else object)
    if arr.ndim != 1 or len(arr) != n:
        raise DimensionError(
            f"{role}: expected {n} values aligned with the dataset rows, "
            f"got shape {arr.shape}"
        )
    return arr


def _missing_mask(values: NDArray) -> NDArray[np.bool_]:
    if values.dtype != object:
        return np.isnan(values)
    return np.fromiter((is_missing(v) for v in values), dtype=bool, count=len(values))


def level_label(value: Any) -> str:
    """Display label of a factor level; integral floats print as ints."""
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value)


def _sorted_levels(values: NDArray) -> list[Any]:
    unique: dict[str, Any] = {}
    for v in values:
        unique.setdefault(level_label(v), v)
    levels = list(unique.values())
    if all(isinstance(v, (Number, np.number)) for v in levels):
        return sorted(levels, key=float)
    return sorted(levels, key=level_label)


def _reference_label(reference: Any, labels: list[str]) -> str | None:
    """Label of a declared reference level among the observed labels.

    Bool columns are stored as 1.0/0.0, so a bool reference is also tried
    in that form.
    """
    candidates = [level_label(reference)]
    if isinstance(reference, (bool, np.bool_)):
        candidates.append(level_label(float(reference)))
    for label in candidates:
        if label in labels:
            return label
    return None


def _encode_treatment(
    var: str,
    values: NDArray,
    reference: Any,
) -> tuple[NDArray, list[str]]:
    """
    Treatment (dummy) coding for one factor.

    Levels come from the retained rows in increasing order; the reference
    level is dropped, leaving k-1 indicator columns named var[level].
    """
    levels = _sorted_levels(values)
    labels = [level_label(v) for v in levels]
    if len(labels) < 2:
        raise ValidationError(
            f"{var}: categorical variable needs at least 2 observed levels, "
            f"got {labels}"
        )

    if reference is None:
        ref_label = labels[0]
    else:
        ref_label = _reference_label(reference, labels)
        if ref_label is None:
            raise ValidationError(
                f"{var}: reference level {reference!r} not observed; "
                f"levels are {labels}"
            )

    row_labels = np.array([level_label(v) for v in values], dtype=object)
    contrasts = [lab for lab in labels if lab != ref_label]
    X = np.column_stack([(row_labels == lab).astype(np.float64) for lab in contrasts])
    return X, [f"{var}[{lab}]" for lab in contrasts]


def _interact(
    left: NDArray,
    left_names: list[str],
    right: NDArray,
    right_names: list[str],
) -> tuple[NDArray, list[str]]:
    """Elementwise products of every left column with every right column."""
    cols = []
    names = []
    for i, a in enumerate(left_names):
        for j, b in enumerate(right_names):
            cols.append(left[:, i] * right[:, j])
            names.append(f"{a}:{b}")
    return np.column_stack(cols), names
