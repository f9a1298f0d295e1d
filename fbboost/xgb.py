"""
Adapter translating XGBoost model dumps into per-tree node listings.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np

from .ensemble import Ensemble, build_ensemble
from .errors import MalformedTreeError


def _as_booster(model: Any):
    if hasattr(model, "get_booster"):
        return model.get_booster()
    if hasattr(model, "get_dump"):
        return model
    raise TypeError(
        f"expected an xgboost Booster or XGBModel, got {type(model).__name__}. "
        "Install the optional dependency with `pip install fbboost[xgboost]`."
    )


def _flatten_json_tree(root: Mapping[str, Any]) -> List[Dict[str, Any]]:
    records: List[Dict[str, Any]] = []
    stack = [root]
    while stack:
        node = stack.pop()
        if "categories" in node:
            raise MalformedTreeError("categorical splits are not supported", node_id=node.get("nodeid"))
        rec = {k: v for k, v in node.items() if k != "children"}
        if "split_condition" in rec:
            # XGBoost compares in float32; snap the printed threshold back onto that grid.
            rec["split_condition"] = float(np.float32(rec["split_condition"]))
        records.append(rec)
        stack.extend(reversed(node.get("children", [])))
    return records


def dumps_from_json(dumps: Iterable[str]) -> List[List[Dict[str, Any]]]:
    """Parse ``get_dump(dump_format="json")`` strings into flat node listings."""
    out = []
    for i, text in enumerate(dumps):
        try:
            root = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedTreeError(f"invalid JSON dump: {exc}", tree_index=i) from None
        if not isinstance(root, Mapping):
            raise MalformedTreeError("JSON dump root must be an object", tree_index=i)
        try:
            out.append(_flatten_json_tree(root))
        except MalformedTreeError as exc:
            raise exc.with_tree_index(i) from None
    return out


def booster_to_dumps(model: Any) -> List[List[Dict[str, Any]]]:
    """Dump every tree of an XGBoost model as a flat node listing."""
    booster = _as_booster(model)
    return dumps_from_json(booster.get_dump(dump_format="json"))


def booster_to_ensemble(model: Any, feature_names: Optional[Sequence[str]] = None) -> Ensemble:
    """Build an :class:`Ensemble` from a trained XGBoost model.

    XGBoost casts every input value to float32 before comparing it with a
    split. Thresholds here are snapped to float32, but the embedder compares
    in float64, so a float64 value that only crosses a threshold after
    rounding is routed differently than XGBoost routes it. Cast the feature
    matrix with `X.astype(np.float32)` before embedding to reproduce
    XGBoost's routing exactly.

    Args:
        model: ``xgboost.Booster`` or a scikit-learn style ``XGBModel``.
        feature_names: Column names, defaulting to the booster's own
            ``feature_names`` when it was trained on named columns.

    Returns:
        The ensemble, trees in boosting order (and class order within a round
        for multi-class models).
    """
    booster = _as_booster(model)
    if feature_names is None:
        feature_names = getattr(booster, "feature_names", None)
    return build_ensemble(booster_to_dumps(booster), feature_names=feature_names)
