"""
Tree data structures, dump parsing and traversal helpers.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .data import FeatureMatrix, FeatureRow
from .errors import FeatureIndexOutOfRangeError, MalformedTreeError

_SPLIT_KEYS = ("split", "split_condition", "yes", "no", "missing", "missing_left")
_FEATURE_TOKEN = re.compile(r"^f(\d+)$")


@dataclass(frozen=True)
class LeafNode:
    """Terminal node; `leaf_ordinal` enumerates leaves depth-first, left first."""

    node_id: int
    leaf_ordinal: int


@dataclass(frozen=True)
class SplitNode:
    """Internal node routing `value < threshold` to `left`, otherwise `right`."""

    node_id: int
    feature: int
    threshold: float
    missing_left: bool
    left: int
    right: int


TreeNode = Union[LeafNode, SplitNode]


class Tree:
    """Immutable decision tree indexed by node id.

    Besides the node objects, the tree keeps a structure-of-arrays copy of
    itself in depth-first order (position 0 is the root) so that whole
    matrices can be routed with NumPy.

    Args:
        nodes: Node variants in depth-first order, root first.
    """

    __slots__ = (
        "_nodes",
        "_by_id",
        "_leaf_count",
        "_max_feature",
        "_feature",
        "_threshold",
        "_missing_left",
        "_left",
        "_right",
        "_leaf_ordinal",
        "_is_leaf",
    )

    def __init__(self, nodes: Sequence[TreeNode]):
        self._nodes: Tuple[TreeNode, ...] = tuple(nodes)
        self._by_id: Dict[int, TreeNode] = {n.node_id: n for n in self._nodes}
        position = {n.node_id: k for k, n in enumerate(self._nodes)}
        m = len(self._nodes)

        feature = np.full(m, -1, dtype=np.int64)
        threshold = np.full(m, np.nan, dtype=np.float64)
        missing_left = np.zeros(m, dtype=bool)
        left = np.full(m, -1, dtype=np.int64)
        right = np.full(m, -1, dtype=np.int64)
        leaf_ordinal = np.full(m, -1, dtype=np.int64)
        for k, node in enumerate(self._nodes):
            if isinstance(node, LeafNode):
                leaf_ordinal[k] = node.leaf_ordinal
            else:
                feature[k] = node.feature
                threshold[k] = node.threshold
                missing_left[k] = node.missing_left
                left[k] = position[node.left]
                right[k] = position[node.right]
        is_leaf = leaf_ordinal >= 0

        for arr in (feature, threshold, missing_left, left, right, leaf_ordinal, is_leaf):
            arr.flags.writeable = False
        self._feature = feature
        self._threshold = threshold
        self._missing_left = missing_left
        self._left = left
        self._right = right
        self._leaf_ordinal = leaf_ordinal
        self._is_leaf = is_leaf
        self._leaf_count = int(is_leaf.sum())
        self._max_feature = int(feature.max()) if m else -1

    @property
    def nodes(self) -> Tuple[TreeNode, ...]:
        return self._nodes

    @property
    def root(self) -> TreeNode:
        return self._nodes[0]

    @property
    def leaf_count(self) -> int:
        return self._leaf_count

    @property
    def max_feature(self) -> int:
        """Largest split feature index, ``-1`` for a single-leaf tree."""
        return self._max_feature

    @property
    def feature(self) -> np.ndarray:
        return self._feature

    @property
    def threshold(self) -> np.ndarray:
        return self._threshold

    @property
    def missing_left(self) -> np.ndarray:
        return self._missing_left

    @property
    def left(self) -> np.ndarray:
        return self._left

    @property
    def right(self) -> np.ndarray:
        return self._right

    @property
    def leaf_ordinal(self) -> np.ndarray:
        return self._leaf_ordinal

    @property
    def is_leaf(self) -> np.ndarray:
        return self._is_leaf

    def node(self, node_id: int) -> TreeNode:
        return self._by_id[node_id]

    def leaf_ordinal_of(self, node_id: int) -> int:
        """Map a trainer-side leaf node id to its leaf ordinal."""
        node = self._by_id[int(node_id)]
        if not isinstance(node, LeafNode):
            raise KeyError(f"node {node_id} is not a leaf")
        return node.leaf_ordinal

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"Tree(nodes={len(self._nodes)}, leaves={self._leaf_count})"


def _flatten(dump: Union[Mapping[str, Any], Iterable[Mapping[str, Any]]]) -> List[Mapping[str, Any]]:
    """Accept either a flat node listing or a nested root mapping with `children`."""
    if isinstance(dump, Mapping):
        roots: List[Mapping[str, Any]] = [dump]
    else:
        roots = list(dump)
    records: List[Mapping[str, Any]] = []
    stack = list(reversed(roots))
    while stack:
        rec = stack.pop()
        if not isinstance(rec, Mapping):
            raise MalformedTreeError(f"node records must be mappings, got {type(rec).__name__}")
        records.append(rec)
        children = rec.get("children")
        if children:
            stack.extend(reversed(list(children)))
    return records


def _as_node_id(value: Any, what: str, node_id: Optional[int] = None) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise MalformedTreeError(f"{what} must be an integer, got {value!r}", node_id=node_id)
    return int(value)


def _resolve_feature(split: Any, node_id: int, feature_names: Optional[Sequence[str]]) -> int:
    if isinstance(split, (int, np.integer)) and not isinstance(split, bool):
        feature = int(split)
    elif isinstance(split, str):
        if feature_names is not None and split in feature_names:
            feature = list(feature_names).index(split)
        else:
            match = _FEATURE_TOKEN.match(split)
            if match is None:
                raise MalformedTreeError(f"cannot resolve split feature {split!r}", node_id=node_id)
            feature = int(match.group(1))
    else:
        raise MalformedTreeError(f"invalid split feature {split!r}", node_id=node_id)
    if feature < 0:
        raise MalformedTreeError(f"negative split feature {feature}", node_id=node_id)
    return feature


def parse_tree(
    dump: Union[Mapping[str, Any], Iterable[Mapping[str, Any]]],
    feature_names: Optional[Sequence[str]] = None,
    tree_index: Optional[int] = None,
) -> Tree:
    """Validate a per-tree node listing and build a :class:`Tree`.

    Each record carries `nodeid` and either a `leaf` entry (its value is
    ignored) or the split fields `split`, `split_condition`, `yes`, `no` plus
    one of `missing_left` (bool) / `missing` (child id).

    Args:
        dump: Flat list of node records, or a nested XGBoost-style root mapping.
        feature_names: Optional names used to resolve string split features.
        tree_index: Position of the tree inside its ensemble, for error messages.

    Returns:
        The validated tree with leaf ordinals assigned depth-first, left first.

    Raises:
        MalformedTreeError: On dangling children, cycles, shared or unreachable
            nodes, mixed leaf/split fields, or a missing root.
    """
    try:
        return _parse_tree(dump, feature_names)
    except MalformedTreeError as exc:
        if tree_index is None:
            raise
        raise exc.with_tree_index(tree_index) from None


def _parse_tree(dump, feature_names) -> Tree:
    raw: Dict[int, Mapping[str, Any]] = {}
    for rec in _flatten(dump):
        if "nodeid" not in rec:
            raise MalformedTreeError("node record without 'nodeid'")
        node_id = _as_node_id(rec["nodeid"], "nodeid")
        if node_id in raw:
            raise MalformedTreeError("duplicate node id", node_id=node_id)
        raw[node_id] = rec
    if 0 not in raw:
        raise MalformedTreeError("root node 0 is missing")

    nodes: List[TreeNode] = []
    visited = set()
    n_leaves = 0
    stack = [0]
    while stack:
        node_id = stack.pop()
        if node_id in visited:
            raise MalformedTreeError("node reached twice (cycle or shared child)", node_id=node_id)
        visited.add(node_id)
        rec = raw[node_id]
        present = [k for k in _SPLIT_KEYS if k in rec]
        is_leaf = bool(rec["is_leaf"]) if "is_leaf" in rec else "leaf" in rec

        if is_leaf:
            if present:
                raise MalformedTreeError(f"leaf carries split fields {present}", node_id=node_id)
            nodes.append(LeafNode(node_id=node_id, leaf_ordinal=n_leaves))
            n_leaves += 1
            continue

        if "leaf" in rec:
            raise MalformedTreeError("split node carries a leaf value", node_id=node_id)
        for key in ("split", "split_condition", "yes", "no"):
            if key not in rec:
                raise MalformedTreeError(f"split node lacks '{key}'", node_id=node_id)
        left = _as_node_id(rec["yes"], "'yes'", node_id)
        right = _as_node_id(rec["no"], "'no'", node_id)
        if "missing_left" in rec:
            missing_left = bool(rec["missing_left"])
        elif "missing" in rec:
            missing = _as_node_id(rec["missing"], "'missing'", node_id)
            if missing not in (left, right):
                raise MalformedTreeError(f"missing child {missing} is neither 'yes' nor 'no'", node_id=node_id)
            missing_left = missing == left
        else:
            raise MalformedTreeError("split node lacks a missing direction", node_id=node_id)
        try:
            threshold = float(rec["split_condition"])
        except (TypeError, ValueError):
            raise MalformedTreeError(
                f"non-numeric split_condition {rec['split_condition']!r}", node_id=node_id
            ) from None
        if math.isnan(threshold):
            raise MalformedTreeError("split_condition is NaN", node_id=node_id)
        for child in (left, right):
            if child not in raw:
                raise MalformedTreeError(f"child {child} does not exist", node_id=node_id)

        nodes.append(
            SplitNode(
                node_id=node_id,
                feature=_resolve_feature(rec["split"], node_id, feature_names),
                threshold=threshold,
                missing_left=missing_left,
                left=left,
                right=right,
            )
        )
        # Push right first so the left subtree is numbered first.
        stack.append(right)
        stack.append(left)

    if len(visited) != len(raw):
        orphans = sorted(set(raw) - visited)
        raise MalformedTreeError(f"nodes unreachable from the root: {orphans}")
    return Tree(nodes)


def locate(tree: Tree, row: Union[FeatureRow, Sequence[float], np.ndarray]) -> int:
    """Route one row from the root to a leaf and return its leaf ordinal.

    Missing cells follow the split's missing direction; present cells go left
    when `value < threshold` and right otherwise, so a value equal to the
    threshold is routed right (XGBoost's convention).

    Args:
        tree: The tree to traverse.
        row: A :class:`FeatureRow`, or plain values where NaN marks missing.

    Returns:
        The tree-local leaf ordinal reached by the row.

    Raises:
        FeatureIndexOutOfRangeError: If a visited split references a column
            the row does not have.
    """
    if not isinstance(row, FeatureRow):
        row = FeatureRow.from_values(row)
    width = len(row)
    node = tree.root
    while True:
        if isinstance(node, LeafNode):
            return node.leaf_ordinal
        j = node.feature
        if j >= width:
            raise FeatureIndexOutOfRangeError(j, width)
        if row.is_missing(j):
            go_left = node.missing_left
        else:
            go_left = row[j] < node.threshold
        node = tree.node(node.left if go_left else node.right)


def locate_many(tree: Tree, X: Union[FeatureMatrix, np.ndarray]) -> np.ndarray:
    """Vectorized :func:`locate` returning leaf ordinals for every row.

    Rows advance one level per iteration; rows that already reached a leaf
    drop out of the active set.

    Args:
        tree: The tree used to route the rows.
        X: Feature matrix `(n, p)`.

    Returns:
        A NumPy array of shape `(n,)` with tree-local leaf ordinals.
    """
    matrix = FeatureMatrix.from_array(X)
    if tree.max_feature >= matrix.n_features:
        raise FeatureIndexOutOfRangeError(tree.max_feature, matrix.n_features)
    values = matrix.values
    missing = matrix.missing

    pos = np.zeros(matrix.n_rows, dtype=np.int64)
    active = np.arange(matrix.n_rows) if not tree.is_leaf[0] else np.empty(0, dtype=np.int64)
    while active.size:
        p = pos[active]
        f = tree.feature[p]
        go_left = np.where(
            missing[active, f],
            tree.missing_left[p],
            values[active, f] < tree.threshold[p],
        )
        nxt = np.where(go_left, tree.left[p], tree.right[p])
        pos[active] = nxt
        active = active[~tree.is_leaf[nxt]]
    return tree.leaf_ordinal[pos]
