"""
Ordered tree ensembles and their global leaf numbering.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Optional, Sequence, Tuple

import numpy as np

from .errors import EmptyEnsembleError
from .tree import Tree, parse_tree

logger = logging.getLogger(__name__)


class Ensemble:
    """Read-only sequence of trees with per-tree column offsets.

    Tree `i` owns embedding columns `[leaf_offsets[i], tree_cuts[i])`.

    Args:
        trees: Trees in ensemble order; this order fixes the column layout.

    Raises:
        EmptyEnsembleError: If no trees are given.
    """

    __slots__ = ("_trees", "_leaf_offsets", "_tree_cuts", "_max_feature")

    def __init__(self, trees: Iterable[Tree]):
        self._trees: Tuple[Tree, ...] = tuple(trees)
        if not self._trees:
            raise EmptyEnsembleError("an ensemble needs at least one tree.")
        for t in self._trees:
            if not isinstance(t, Tree):
                raise TypeError(f"expected Tree instances, got {type(t).__name__}.")
        counts = np.array([t.leaf_count for t in self._trees], dtype=np.int64)
        cuts = np.cumsum(counts)
        offsets = cuts - counts
        cuts.flags.writeable = False
        offsets.flags.writeable = False
        self._tree_cuts = cuts
        self._leaf_offsets = offsets
        self._max_feature = max(t.max_feature for t in self._trees)

    @property
    def trees(self) -> Tuple[Tree, ...]:
        return self._trees

    @property
    def n_trees(self) -> int:
        return len(self._trees)

    @property
    def leaf_offsets(self) -> np.ndarray:
        """First embedding column of each tree (prefix sums of leaf counts)."""
        return self._leaf_offsets

    @property
    def tree_cuts(self) -> np.ndarray:
        """Exclusive end column of each tree's block."""
        return self._tree_cuts

    @property
    def total_leaves(self) -> int:
        return int(self._tree_cuts[-1])

    @property
    def max_feature(self) -> int:
        return self._max_feature

    def __len__(self) -> int:
        return len(self._trees)

    def __iter__(self) -> Iterator[Tree]:
        return iter(self._trees)

    def __getitem__(self, i: int) -> Tree:
        return self._trees[i]

    def __repr__(self) -> str:
        return f"Ensemble(trees={self.n_trees}, total_leaves={self.total_leaves})"


def build_ensemble(
    dumps: Iterable[Any],
    feature_names: Optional[Sequence[str]] = None,
) -> Ensemble:
    """Parse per-tree node listings and assemble an :class:`Ensemble`.

    Args:
        dumps: One node listing per tree, in ensemble order.
        feature_names: Optional names used to resolve string split features.

    Returns:
        The assembled ensemble.

    Raises:
        EmptyEnsembleError: If `dumps` is empty.
        MalformedTreeError: If any listing fails validation; the error
            records the offending tree index.
    """
    dumps = list(dumps)
    if not dumps:
        raise EmptyEnsembleError("cannot build an ensemble from zero tree dumps.")
    trees = [parse_tree(d, feature_names=feature_names, tree_index=i) for i, d in enumerate(dumps)]
    ensemble = Ensemble(trees)
    logger.debug(
        "Built ensemble with %d trees, %d leaves, max split feature %d",
        ensemble.n_trees,
        ensemble.total_leaves,
        ensemble.max_feature,
    )
    return ensemble
