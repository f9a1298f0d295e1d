"""
Sparse one-hot leaf embedding returned by :func:`fbboost.embed`.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import scipy.sparse as sp

PathLike = Union[str, Path]


class EmbeddingResult:
    """Binary `(n_rows, total_leaves)` matrix with one set bit per (row, tree).

    The matrix is held in CSR form with sorted column indices; CSC is built on
    first request. The result keeps no reference to the ensemble or the input
    features.

    Args:
        matrix: CSR matrix holding the embedding.
        tree_cuts: Exclusive end column of each tree's block.
    """

    __slots__ = ("_csr", "_csc", "_tree_cuts")

    def __init__(self, matrix: sp.csr_matrix, tree_cuts: np.ndarray):
        cuts = np.array(tree_cuts, dtype=np.int64).reshape(-1)
        cuts.flags.writeable = False
        csr = sp.csr_matrix(matrix)
        csr.sort_indices()
        self._csr = csr
        self._csc: Optional[sp.csc_matrix] = None
        self._tree_cuts = cuts

    @classmethod
    def from_coordinates(
        cls,
        n_rows: int,
        total_leaves: int,
        tree_cuts: np.ndarray,
        rows: np.ndarray,
        cols: np.ndarray,
        dtype: Any = np.float64,
    ) -> "EmbeddingResult":
        """Assemble a validated result from a set-bit coordinate list.

        The coordinates may arrive in any order; they are sorted by
        `(row, col)` before the matrix is built.

        Raises:
            ValueError: If the coordinates or cuts break the one-hot layout.
        """
        rows = np.asarray(rows, dtype=np.int64).reshape(-1)
        cols = np.asarray(cols, dtype=np.int64).reshape(-1)
        cuts = np.asarray(tree_cuts, dtype=np.int64).reshape(-1)
        _check_cuts(cuts, int(total_leaves))
        if rows.shape != cols.shape:
            raise ValueError("row and column coordinate arrays differ in length.")
        order = np.lexsort((cols, rows))
        rows = rows[order]
        cols = cols[order]
        _check_one_hot(int(n_rows), cuts, rows, cols)
        data = np.ones(rows.shape[0], dtype=dtype)
        matrix = sp.csr_matrix((data, (rows, cols)), shape=(int(n_rows), int(total_leaves)))
        return cls(matrix, cuts)

    @property
    def n_rows(self) -> int:
        return self._csr.shape[0]

    @property
    def total_leaves(self) -> int:
        return self._csr.shape[1]

    @property
    def shape(self) -> Tuple[int, int]:
        return self._csr.shape

    @property
    def tree_cuts(self) -> np.ndarray:
        return self._tree_cuts

    @property
    def n_trees(self) -> int:
        return self._tree_cuts.shape[0]

    @property
    def nnz(self) -> int:
        return int(self._csr.nnz)

    def csr(self) -> sp.csr_matrix:
        """Row-major view, the usual design-matrix format for linear solvers."""
        return self._csr

    def csc(self) -> sp.csc_matrix:
        """Column-major form, built once and cached."""
        if self._csc is None:
            csc = self._csr.tocsc()
            csc.sort_indices()
            self._csc = csc
        return self._csc

    def coo(self) -> sp.coo_matrix:
        return self._csr.tocoo()

    def coordinates(self) -> Tuple[np.ndarray, np.ndarray]:
        """Set-bit `(row, col)` coordinates sorted by row, then column."""
        counts = np.diff(self._csr.indptr)
        rows = np.repeat(np.arange(self.n_rows, dtype=np.int64), counts)
        return rows, self._csr.indices.astype(np.int64)

    def tree_slices(self) -> List[slice]:
        starts = np.concatenate(([0], self._tree_cuts[:-1]))
        return [slice(int(a), int(b)) for a, b in zip(starts, self._tree_cuts)]

    def tree_block(self, i: int) -> sp.csr_matrix:
        """Columns belonging to tree `i` as an `(n_rows, leaf_count_i)` CSR matrix.

        Every row stores exactly one entry per tree in column order, so the
        entries of tree `i` sit at `indptr[r] + i`; only those `n_rows`
        entries are copied.
        """
        block = self.tree_slices()[i]
        pos = self._csr.indptr[:-1] + i
        indices = self._csr.indices[pos] - block.start
        data = self._csr.data[pos]
        indptr = np.arange(self.n_rows + 1, dtype=self._csr.indptr.dtype)
        return sp.csr_matrix((data, indices, indptr), shape=(self.n_rows, block.stop - block.start))

    def leaf_indices(self) -> np.ndarray:
        """Tree-local leaf ordinal reached by each row, shape `(n_rows, n_trees)`."""
        cols = self._csr.indices.astype(np.int64).reshape(self.n_rows, self.n_trees)
        starts = np.concatenate(([0], self._tree_cuts[:-1]))
        return cols - starts[np.newaxis, :]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_rows": self.n_rows,
            "total_leaves": self.total_leaves,
            "n_trees": self.n_trees,
            "tree_cuts": self._tree_cuts.tolist(),
            "nnz": self.nnz,
        }

    def save(self, path: PathLike) -> Path:
        """Write the embedding to a compressed ``.npz`` archive.

        The archive stores `n_rows`, `total_leaves`, `tree_cuts` and the
        sorted coordinate list, which is enough to rebuild the matrix exactly.
        """
        path = Path(path)
        if path.suffix != ".npz":
            path = path.with_suffix(".npz")
        rows, cols = self.coordinates()
        np.savez_compressed(
            path,
            n_rows=np.int64(self.n_rows),
            total_leaves=np.int64(self.total_leaves),
            tree_cuts=self._tree_cuts,
            row=rows,
            col=cols,
        )
        return path

    @classmethod
    def load(cls, path: PathLike, dtype: Any = np.float64) -> "EmbeddingResult":
        with np.load(Path(path)) as archive:
            return cls.from_coordinates(
                int(archive["n_rows"]),
                int(archive["total_leaves"]),
                archive["tree_cuts"],
                archive["row"],
                archive["col"],
                dtype=dtype,
            )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EmbeddingResult):
            return NotImplemented
        if self.shape != other.shape or not np.array_equal(self._tree_cuts, other._tree_cuts):
            return False
        a_rows, a_cols = self.coordinates()
        b_rows, b_cols = other.coordinates()
        return np.array_equal(a_rows, b_rows) and np.array_equal(a_cols, b_cols)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"EmbeddingResult(n_rows={self.n_rows}, total_leaves={self.total_leaves}, n_trees={self.n_trees})"


def _check_cuts(cuts: np.ndarray, total_leaves: int) -> None:
    if cuts.ndim != 1 or cuts.shape[0] == 0:
        raise ValueError("tree_cuts must be a non-empty one-dimensional array.")
    if cuts[0] < 1 or np.any(np.diff(cuts) < 1):
        raise ValueError("every tree must own at least one column; tree_cuts must increase.")
    if int(cuts[-1]) != total_leaves:
        raise ValueError(f"last tree cut {int(cuts[-1])} does not equal total_leaves {total_leaves}.")


def _check_one_hot(n_rows: int, cuts: np.ndarray, rows: np.ndarray, cols: np.ndarray) -> None:
    n_trees = cuts.shape[0]
    if rows.shape[0] != n_rows * n_trees:
        raise ValueError(f"expected {n_rows * n_trees} set bits, found {rows.shape[0]}.")
    if rows.size == 0:
        return
    if rows[0] < 0 or rows[-1] >= n_rows or cols.min() < 0 or cols.max() >= cuts[-1]:
        raise ValueError("set-bit coordinates fall outside the matrix.")
    expected_rows = np.repeat(np.arange(n_rows, dtype=np.int64), n_trees)
    tree_of_col = np.searchsorted(cuts, cols, side="right")
    expected_trees = np.tile(np.arange(n_trees, dtype=np.int64), n_rows)
    if not (np.array_equal(rows, expected_rows) and np.array_equal(tree_of_col, expected_trees)):
        raise ValueError("each row must have exactly one set bit in every tree block.")
