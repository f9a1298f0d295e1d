"""
Public API surface for the fbboost decision-tree-space embedding engine.
"""
from .data import FeatureMatrix, FeatureRow
from .embed import EmbedConfig, embed, embed_booster
from .ensemble import Ensemble, build_ensemble
from .errors import (
    EmptyEnsembleError,
    EmptyInputError,
    FbboostError,
    FeatureIndexOutOfRangeError,
    MalformedTreeError,
    RowWidthMismatchError,
)
from .result import EmbeddingResult
from .tree import LeafNode, SplitNode, Tree, locate, locate_many, parse_tree

__version__ = "0.1.0"

__all__ = [
    "EmbedConfig",
    "EmbeddingResult",
    "EmptyEnsembleError",
    "EmptyInputError",
    "Ensemble",
    "FbboostError",
    "FeatureIndexOutOfRangeError",
    "FeatureMatrix",
    "FeatureRow",
    "LeafNode",
    "MalformedTreeError",
    "RowWidthMismatchError",
    "SplitNode",
    "Tree",
    "build_ensemble",
    "embed",
    "embed_booster",
    "locate",
    "locate_many",
    "parse_tree",
]
