"""
Named, typed dataset for glmkit.

Dataset is the "I have data" abstraction: named columns of equal length,
each either numeric or categorical, with missing values marked explicitly.
It doesn't know it's feeding a regression. The regression Design decides
which columns it needs and how to encode them.

Storage conventions:
    numeric columns:     float64 arrays, missing = NaN
    categorical columns: object arrays, missing = None

Usage:
    from glmkit import Dataset

    ds = Dataset.from_columns({'y': [1, 0, 1], 'arm': ['a', 'b', None]})
    ds = Dataset.from_records([{'y': 1, 'arm': 'a'}, {'y': 0}])
    ds = Dataset.from_dataframe(df)

    ds.keys()          # ('y', 'arm')
    ds.kind('arm')     # 'categorical'
    ds.missing('arm')  # array([False, False, True])
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from numbers import Number
from typing import Any, Iterable, Mapping, Sequence, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from glmkit.core.exceptions import DimensionError, MissingDataError, ValidationError

if TYPE_CHECKING:
    import pandas as pd


KIND_NUMERIC = 'numeric'
KIND_CATEGORICAL = 'categorical'


def is_missing(value: Any) -> bool:
    """True for None, float NaN, and pandas NA/NaT markers."""
    if value is None:
        return True
    if isinstance(value, float):
        return math.isnan(value)
    if isinstance(value, np.floating):
        return bool(np.isnan(value))
    # pandas.NA and pandas.NaT, without importing pandas
    return type(value).__name__ in ('NAType', 'NaTType')


def _is_number(value: Any) -> bool:
    return isinstance(value, (Number, np.number, np.bool_)) and not isinstance(value, complex)


@dataclass(frozen=True)
class Dataset:
    """
    Immutable collection of named columns.

    Construct via factory classmethods, not directly.
    """
    _columns: dict[str, NDArray]
    _kinds: dict[str, str]
    _n: int
    _metadata: dict[str, Any] = field(default_factory=dict)

    # === Column Access ===

    def keys(self) -> tuple[str, ...]:
        """Column names in insertion order."""
        return tuple(self._columns.keys())

    def __getitem__(self, key: str) -> NDArray:
        """
        Access a named column.

        Raises:
            MissingDataError: If the column does not exist
        """
        if key not in self._columns:
            raise MissingDataError(
                f"Dataset has no variable {key!r}. Available: {list(self.keys())}",
                variable=key,
                available=self.keys(),
            )
        return self._columns[key]

    def __contains__(self, key: object) -> bool:
        return key in self._columns

    def __len__(self) -> int:
        return self._n

    def kind(self, key: str) -> str:
        """'numeric' or 'categorical'."""
        self[key]  # raises MissingDataError for unknown names
        return self._kinds[key]

    def missing(self, key: str) -> NDArray[np.bool_]:
        """Boolean mask of missing values in one column."""
        col = self[key]
        if self._kinds[key] == KIND_NUMERIC:
            return np.isnan(col)
        return np.fromiter((v is None for v in col), dtype=bool, count=self._n)

    # === Properties ===

    @property
    def n_observations(self) -> int:
        """Number of rows."""
        return self._n

    @property
    def metadata(self) -> dict[str, Any]:
        return self._metadata.copy()

    # === Factory Methods ===

    @classmethod
    def from_columns(
        cls,
        columns: Mapping[str, Iterable[Any]] | None = None,
        **named_columns: Iterable[Any],
    ) -> Dataset:
        """
        Construct from a mapping of column name to values.

        Each column's kind is inferred from its non-missing values: all
        numbers (int, float, bool) make a numeric column, anything else
        makes a categorical column. Column kinds are never mixed.
        """
        merged: dict[str, Iterable[Any]] = dict(columns or {})
        merged.update(named_columns)
        if not merged:
            raise ValidationError("Dataset requires at least one column")

        storage: dict[str, NDArray] = {}
        kinds: dict[str, str] = {}
        n: int | None = None
        for name, values in merged.items():
            if not isinstance(name, str):
                raise ValidationError(f"column names must be str, got {type(name).__name__}")
            arr, kind = _coerce_column(values)
            if n is None:
                n = len(arr)
            elif len(arr) != n:
                raise DimensionError(
                    f"Inconsistent column lengths: {name!r} has {len(arr)}, expected {n}"
                )
            storage[name] = arr
            kinds[name] = kind

        return cls(
            _columns=storage,
            _kinds=kinds,
            _n=int(n or 0),
            _metadata={'source': 'columns'},
        )

    @classmethod
    def from_records(cls, rows: Sequence[Mapping[str, Any]]) -> Dataset:
        """
        Construct from a sequence of row mappings.

        A key absent from a row is read as a missing value for that row.
        """
        names: dict[str, None] = {}
        for row in rows:
            for key in row:
                names.setdefault(key, None)
        columns = {name: [row.get(name) for row in rows] for name in names}
        ds = cls.from_columns(columns)
        return cls(
            _columns=ds._columns,
            _kinds=ds._kinds,
            _n=len(rows),
            _metadata={'source': 'records'},
        )

    @classmethod
    def from_dataframe(cls, df: 'pd.DataFrame') -> Dataset:
        """Construct from a pandas DataFrame, keeping NA as missing."""
        from pandas.api.types import is_bool_dtype, is_numeric_dtype

        storage: dict[str, NDArray] = {}
        kinds: dict[str, str] = {}
        for col in df.columns:
            series = df[col]
            name = str(col)
            if is_numeric_dtype(series.dtype) or is_bool_dtype(series.dtype):
                storage[name] = series.to_numpy(dtype=np.float64, na_value=np.nan)
                kinds[name] = KIND_NUMERIC
            else:
                values = series.astype(object).where(series.notna(), None)
                arr, kind = _coerce_column(values.tolist())
                storage[name] = arr
                kinds[name] = kind

        return cls(
            _columns=storage,
            _kinds=kinds,
            _n=len(df),
            _metadata={'source': 'dataframe', 'columns': list(storage.keys())},
        )

    @classmethod
    def build(cls, data: Any) -> Dataset:
        """
        Convenience factory that dispatches to the appropriate from_* method.

        Examples:
            Dataset.build({'y': [...], 'x': [...]})   # from_columns
            Dataset.build([{'y': 1, 'x': 2}, ...])    # from_records
            Dataset.build(df)                         # from_dataframe
        """
        if isinstance(data, Dataset):
            return data
        if isinstance(data, Mapping):
            return cls.from_columns(data)
        if hasattr(data, 'columns') and hasattr(data, 'dtypes'):
            return cls.from_dataframe(data)
        if isinstance(data, Sequence) and not isinstance(data, (str, bytes)):
            if all(isinstance(row, Mapping) for row in data):
                return cls.from_records(data)
        raise ValidationError(
            f"Cannot build a Dataset from {type(data).__name__}; expected a "
            f"column mapping, a sequence of row mappings, or a DataFrame"
        )


def _coerce_column(values: Iterable[Any]) -> tuple[NDArray, str]:
    """Store a column as float64 (numeric) or object (categorical)."""
    if isinstance(values, np.ndarray) and values.dtype != object:
        if np.issubdtype(values.dtype, np.number) or values.dtype == np.bool_:
            if values.ndim != 1:
                raise DimensionError(f"columns must be 1D, got shape {values.shape}")
            return values.astype(np.float64), KIND_NUMERIC

    items = list(values)
    present = [v for v in items if not is_missing(v)]
    if all(_is_number(v) for v in present):
        arr = np.array(
            [np.nan if is_missing(v) else float(v) for v in items],
            dtype=np.float64,
        )
        return arr, KIND_NUMERIC

    arr = np.empty(len(items), dtype=object)
    for i, v in enumerate(items):
        arr[i] = None if is_missing(v) else v
    return arr, KIND_CATEGORICAL
