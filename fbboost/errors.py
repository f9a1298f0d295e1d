"""
Exception taxonomy for ensemble parsing and leaf embedding.
"""
from __future__ import annotations

from typing import Optional


class FbboostError(ValueError):
    """Base class for every error raised by the embedding engine."""


class MalformedTreeError(FbboostError):
    """Structural corruption in a per-tree node listing.

    Args:
        message: Human readable description of the defect.
        tree_index: Position of the offending tree inside the ensemble, when
            known.
        node_id: Identifier of the offending node, when known.
    """

    def __init__(self, message: str, tree_index: Optional[int] = None, node_id: Optional[int] = None):
        self.reason = message
        self.tree_index = tree_index
        self.node_id = node_id
        prefix = ""
        if tree_index is not None:
            prefix += f"tree {tree_index}: "
        if node_id is not None:
            prefix += f"node {node_id}: "
        super().__init__(prefix + message)

    def with_tree_index(self, tree_index: int) -> "MalformedTreeError":
        """Return a copy of this error tagged with the tree position."""
        if self.tree_index is not None:
            return self
        return MalformedTreeError(self.reason, tree_index=tree_index, node_id=self.node_id)


class EmptyEnsembleError(FbboostError):
    """Raised when an ensemble would contain zero trees."""


class EmptyInputError(FbboostError):
    """Raised when the feature matrix handed to the embedder has zero rows."""


class FeatureIndexOutOfRangeError(FbboostError, IndexError):
    """A split references a feature column the row does not have.

    Attributes:
        feature: The split feature index that could not be resolved.
        n_features: Number of columns actually available.
    """

    def __init__(self, feature: int, n_features: int, message: Optional[str] = None):
        self.feature = int(feature)
        self.n_features = int(n_features)
        if message is None:
            message = f"split feature {self.feature} is out of range for a row with {self.n_features} columns"
        super().__init__(message)


class RowWidthMismatchError(FeatureIndexOutOfRangeError):
    """The feature matrix is narrower than the ensemble's feature space."""

    def __init__(self, feature: int, n_features: int):
        super().__init__(
            feature,
            n_features,
            f"ensemble splits on feature {int(feature)} but the feature matrix has only {int(n_features)} columns",
        )
