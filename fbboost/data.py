"""
Feature matrices with an explicit missing-value mask.
"""
from __future__ import annotations

from typing import Iterator, Optional, Sequence

import numpy as np
import scipy.sparse as sp


def _read_only(arr: np.ndarray) -> np.ndarray:
    view = arr.view()
    view.flags.writeable = False
    return view


class FeatureRow:
    """Read-only view of one observation.

    Args:
        values: Float vector of shape `(p,)`.
        missing: Boolean vector of shape `(p,)`; ``True`` marks an absent value.
    """

    __slots__ = ("_values", "_missing")

    def __init__(self, values: np.ndarray, missing: np.ndarray):
        if values.shape != missing.shape or values.ndim != 1:
            raise ValueError("values and missing must be one-dimensional arrays of the same shape.")
        self._values = _read_only(values)
        self._missing = _read_only(missing)

    @classmethod
    def from_values(
        cls,
        values: Sequence[float],
        missing: Optional[Sequence[bool]] = None,
        nan_is_missing: bool = True,
    ) -> "FeatureRow":
        """Build a row from plain values, deriving the mask from NaN unless given."""
        vals = np.asarray(values, dtype=np.float64).reshape(-1)
        if missing is None:
            mask = np.isnan(vals) if nan_is_missing else np.zeros(vals.shape, dtype=bool)
        else:
            mask = np.asarray(missing, dtype=bool).reshape(-1)
        return cls(vals, mask)

    def __len__(self) -> int:
        return self._values.shape[0]

    def __getitem__(self, j: int) -> float:
        return float(self._values[j])

    def is_missing(self, j: int) -> bool:
        return bool(self._missing[j])

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def missing(self) -> np.ndarray:
        return self._missing

    def __repr__(self) -> str:
        cells = ["NA" if m else repr(float(v)) for v, m in zip(self._values, self._missing)]
        return f"FeatureRow([{', '.join(cells)}])"


class FeatureMatrix:
    """Numeric design matrix paired with an explicit missing mask.

    The mask, not the numeric payload, decides whether a cell is absent, so a
    legitimate NaN-like encoding is never confused with a missing value unless
    the caller asks for that (see :meth:`from_array`).

    Args:
        values: Array-like of shape `(n, p)`.
        missing: Optional boolean array of shape `(n, p)`. Defaults to all
            present.
    """

    __slots__ = ("_values", "_missing")

    def __init__(self, values, missing=None):
        vals = np.asarray(values, dtype=np.float64)
        if vals.ndim != 2:
            raise ValueError(f"feature matrix must be two-dimensional, got shape {vals.shape}.")
        if missing is None:
            mask = np.zeros(vals.shape, dtype=bool)
        else:
            mask = np.asarray(missing, dtype=bool)
            if mask.shape != vals.shape:
                raise ValueError(
                    f"missing mask shape {mask.shape} does not match values shape {vals.shape}."
                )
        self._values = _read_only(vals)
        self._missing = _read_only(mask)

    @classmethod
    def from_array(cls, X, nan_is_missing: bool = True) -> "FeatureMatrix":
        """Coerce common array containers into a :class:`FeatureMatrix`.

        * :class:`FeatureMatrix` is returned unchanged.
        * :class:`numpy.ma.MaskedArray` uses its mask as the missing marker.
        * SciPy sparse matrices treat absent entries as missing, the same
          convention XGBoost applies to sparse input.
        * Anything else goes through :func:`numpy.asarray`; NaN cells are
          flagged missing when ``nan_is_missing`` is true.

        Args:
            X: Input container of shape `(n, p)`.
            nan_is_missing: Whether NaN payloads count as missing.

        Returns:
            The coerced matrix.
        """
        if isinstance(X, FeatureMatrix):
            return X
        if isinstance(X, np.ma.MaskedArray):
            vals = np.ma.getdata(X).astype(np.float64, copy=False)
            mask = np.ma.getmaskarray(X)
            if nan_is_missing:
                mask = mask | np.isnan(vals)
            return cls(vals, mask)
        if sp.issparse(X):
            coo = sp.coo_matrix(X)
            vals = np.zeros(coo.shape, dtype=np.float64)
            mask = np.ones(coo.shape, dtype=bool)
            vals[coo.row, coo.col] = coo.data
            mask[coo.row, coo.col] = False
            if nan_is_missing:
                mask |= np.isnan(vals)
            return cls(vals, mask)
        vals = np.asarray(X, dtype=np.float64)
        if vals.ndim == 1:
            # a single row; an empty sequence is zero rows, not one empty row
            vals = vals.reshape(1, -1) if vals.size else vals.reshape(0, 0)
        mask = np.isnan(vals) if nan_is_missing else None
        return cls(vals, mask)

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def missing(self) -> np.ndarray:
        return self._missing

    @property
    def shape(self):
        return self._values.shape

    @property
    def n_rows(self) -> int:
        return self._values.shape[0]

    @property
    def n_features(self) -> int:
        return self._values.shape[1]

    def __len__(self) -> int:
        return self.n_rows

    def row(self, i: int) -> FeatureRow:
        return FeatureRow(self._values[i], self._missing[i])

    def __iter__(self) -> Iterator[FeatureRow]:
        for i in range(self.n_rows):
            yield self.row(i)

    def take(self, start: int, stop: int) -> "FeatureMatrix":
        """Return rows `[start, stop)` as a view sharing the same buffers."""
        out = FeatureMatrix.__new__(FeatureMatrix)
        out._values = self._values[start:stop]
        out._missing = self._missing[start:stop]
        return out

    def __repr__(self) -> str:
        return f"FeatureMatrix(shape={self.shape}, missing={int(self._missing.sum())})"
