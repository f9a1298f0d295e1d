"""
Decision-tree-space embedding: route every row through every tree and one-hot
encode the leaves reached.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from typing import Any, List, Literal, Optional, Sequence, Tuple

import numpy as np

from ._parallel import run_parallel
from .data import FeatureMatrix
from .ensemble import Ensemble, build_ensemble
from .errors import EmptyInputError, RowWidthMismatchError
from .result import EmbeddingResult
from .tree import locate_many

logger = logging.getLogger(__name__)

Partition = Literal["rows", "trees", "both"]


@dataclass(frozen=True)
class EmbedConfig:
    """Execution options for :func:`embed`.

    Attributes:
        workers: Worker count; ``1`` runs in the calling thread and ``None``
            uses every available CPU.
        executor: ``"thread"`` or ``"process"`` pool for ``workers != 1``.
        partition: Split the work by row chunks, by tree, or by both.
        chunk_size: Rows per task when partitioning by rows.
        progress: Show a `tqdm` progress bar over tasks.
        dtype: Dtype of the stored ones in the sparse matrix.
    """

    workers: Optional[int] = 1
    executor: Literal["thread", "process"] = "thread"
    partition: Partition = "rows"
    chunk_size: int = 65536
    progress: bool = False
    dtype: Any = np.float64

    def __post_init__(self) -> None:
        if self.workers is not None and self.workers < 1:
            raise ValueError("workers must be a positive integer or None.")
        if self.executor not in ("thread", "process"):
            raise ValueError(f"unknown executor {self.executor!r}; use 'thread' or 'process'.")
        if self.partition not in ("rows", "trees", "both"):
            raise ValueError(f"unknown partition {self.partition!r}; use 'rows', 'trees' or 'both'.")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be positive.")


# (ensemble, row block, first row index, tree indices)
_Task = Tuple[Ensemble, FeatureMatrix, int, Tuple[int, ...]]


def _embed_block(task: _Task) -> Tuple[np.ndarray, np.ndarray]:
    """Set-bit coordinates for one block of rows against a subset of trees."""
    ensemble, block, row_start, tree_ids = task
    local_rows = np.arange(row_start, row_start + block.n_rows, dtype=np.int64)
    rows: List[np.ndarray] = []
    cols: List[np.ndarray] = []
    for i in tree_ids:
        ordinals = locate_many(ensemble[i], block)
        rows.append(local_rows)
        cols.append(ordinals + ensemble.leaf_offsets[i])
    return np.concatenate(rows), np.concatenate(cols)


def _plan(ensemble: Ensemble, matrix: FeatureMatrix, config: EmbedConfig) -> List[_Task]:
    n = matrix.n_rows
    all_trees = tuple(range(ensemble.n_trees))
    if config.partition == "trees":
        row_bounds = [(0, n)]
        tree_groups = [(i,) for i in all_trees]
    else:
        row_bounds = [(a, min(a + config.chunk_size, n)) for a in range(0, n, config.chunk_size)]
        tree_groups = [(i,) for i in all_trees] if config.partition == "both" else [all_trees]
    return [
        (ensemble, matrix.take(a, b), a, group)
        for a, b in row_bounds
        for group in tree_groups
    ]


def embed(
    ensemble: Ensemble,
    X: Any,
    config: Optional[EmbedConfig] = None,
    **overrides: Any,
) -> EmbeddingResult:
    """Embed a feature matrix into the leaf space of a tree ensemble.

    Row `r` gets a set bit at column `leaf_offsets[i] + locate(tree_i, r)`
    for every tree `i`, so the output has exactly `n_rows * n_trees` set
    bits. Workers return their own coordinate arrays; the final merge sorts
    them, so the result never depends on partitioning or completion order.

    Args:
        ensemble: The parsed tree ensemble.
        X: Feature matrix `(n, p)`; anything :meth:`FeatureMatrix.from_array`
            accepts.
        config: Execution options; keyword overrides are applied on top.

    Returns:
        The embedding and its tree cuts.

    Raises:
        EmptyInputError: If `X` has no rows.
        RowWidthMismatchError: If `X` is narrower than the largest split
            feature referenced by the ensemble.
    """
    config = replace(config or EmbedConfig(), **overrides)
    matrix = FeatureMatrix.from_array(X)
    if matrix.n_rows == 0:
        raise EmptyInputError("cannot embed a feature matrix with zero rows.")
    if ensemble.max_feature >= matrix.n_features:
        raise RowWidthMismatchError(ensemble.max_feature, matrix.n_features)

    tasks = _plan(ensemble, matrix, config)
    workers = config.workers if config.workers is not None else (os.cpu_count() or 1)
    logger.debug(
        "Embedding %d rows x %d trees (%d leaves) in %d %s-partitioned tasks on %d %s worker(s)",
        matrix.n_rows,
        ensemble.n_trees,
        ensemble.total_leaves,
        len(tasks),
        config.partition,
        workers,
        config.executor,
    )
    parts = run_parallel(
        _embed_block,
        tasks,
        desc="embed",
        workers=workers,
        executor=config.executor,
        progress=config.progress,
    )

    rows = np.concatenate([p[0] for p in parts])
    cols = np.concatenate([p[1] for p in parts])
    return EmbeddingResult.from_coordinates(
        matrix.n_rows,
        ensemble.total_leaves,
        ensemble.tree_cuts,
        rows,
        cols,
        dtype=config.dtype,
    )


def embed_booster(
    X: Any,
    model: Any,
    feature_names: Optional[Sequence[str]] = None,
    config: Optional[EmbedConfig] = None,
    **overrides: Any,
) -> EmbeddingResult:
    """Embed `X` given an ensemble in any supported form.

    Args:
        X: Feature matrix `(n, p)`.
        model: An :class:`Ensemble`, a sequence of per-tree node listings, or
            an XGBoost ``Booster`` / scikit-learn wrapper.
        feature_names: Names used to resolve string split features.
        config: Execution options for :func:`embed`.

    Returns:
        The embedding and its tree cuts.
    """
    if isinstance(model, Ensemble):
        ensemble = model
    elif hasattr(model, "get_dump") or hasattr(model, "get_booster"):
        from .xgb import booster_to_ensemble

        ensemble = booster_to_ensemble(model, feature_names=feature_names)
    else:
        ensemble = build_ensemble(model, feature_names=feature_names)
    return embed(ensemble, X, config=config, **overrides)
