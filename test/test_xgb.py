import json

import numpy as np
import pytest

from fbboost import MalformedTreeError, build_ensemble, embed, embed_booster
from fbboost.xgb import booster_to_ensemble, dumps_from_json

TREE_JSON = json.dumps(
    {
        "nodeid": 0, "depth": 0, "split": "f1", "split_condition": 0.1, "yes": 1, "no": 2, "missing": 2,
        "children": [
            {
                "nodeid": 1, "depth": 1, "split": "f0", "split_condition": -0.5, "yes": 3, "no": 4, "missing": 3,
                "children": [{"nodeid": 3, "leaf": -0.2}, {"nodeid": 4, "leaf": 0.1}],
            },
            {"nodeid": 2, "leaf": 0.3},
        ],
    }
)


def test_json_dump_is_flattened_into_node_records():
    (records,) = dumps_from_json([TREE_JSON])
    assert [r["nodeid"] for r in records] == [0, 1, 3, 4, 2]
    assert all("children" not in r for r in records)
    # thresholds land on the float32 grid XGBoost compares on
    assert records[0]["split_condition"] == float(np.float32(0.1))


def test_json_dump_embeds_like_the_booster_routes():
    ensemble = build_ensemble(dumps_from_json([TREE_JSON, json.dumps({"nodeid": 0, "leaf": 0.5})]))
    X = np.array([[-1.0, 0.0], [0.0, 0.0], [0.0, 1.0], [np.nan, np.nan]], dtype=np.float32)
    result = embed(ensemble, X)
    np.testing.assert_array_equal(result.leaf_indices(), [[0, 0], [1, 0], [2, 0], [2, 0]])
    np.testing.assert_array_equal(result.tree_cuts, [3, 4])


def test_invalid_json_and_categorical_splits_are_rejected():
    with pytest.raises(MalformedTreeError) as info:
        dumps_from_json([TREE_JSON, "{not json"])
    assert info.value.tree_index == 1
    categorical = json.dumps(
        {"nodeid": 0, "split": "f0", "split_condition": 0, "categories": [1, 3], "yes": 1, "no": 2, "missing": 1}
    )
    with pytest.raises(MalformedTreeError, match="categorical"):
        dumps_from_json([categorical])


def test_non_booster_objects_are_rejected():
    with pytest.raises(TypeError):
        booster_to_ensemble(object())


def test_live_booster_matches_pred_leaf():
    xgb = pytest.importorskip("xgboost")
    rng = np.random.default_rng(0)
    X = rng.normal(size=(400, 4)).astype(np.float32)
    y = (X[:, 0] - 0.5 * X[:, 2] + rng.normal(scale=0.5, size=400) > 0).astype(np.float32)
    X[rng.random(X.shape) < 0.1] = np.nan
    dtrain = xgb.DMatrix(X, label=y)
    booster = xgb.train(
        {"objective": "binary:logistic", "max_depth": 3, "eta": 0.3, "tree_method": "hist", "seed": 0},
        dtrain,
        num_boost_round=10,
    )

    ensemble = booster_to_ensemble(booster)
    result = embed_booster(X, booster, workers=2)
    assert result.n_trees == ensemble.n_trees
    assert result.nnz == X.shape[0] * ensemble.n_trees

    node_ids = booster.predict(dtrain, pred_leaf=True).astype(np.int64).reshape(X.shape[0], -1)
    expected = np.array(
        [[ensemble[t].leaf_ordinal_of(node_ids[r, t]) for t in range(ensemble.n_trees)] for r in range(X.shape[0])]
    )
    np.testing.assert_array_equal(result.leaf_indices(), expected)


def test_float32_inputs_reproduce_xgboost_threshold_ties():
    ensemble = build_ensemble(dumps_from_json([TREE_JSON]))
    X = np.array([[0.0, 0.1]])
    # 0.1 in float64 sits just below the float32 threshold; XGBoost sees it equal
    np.testing.assert_array_equal(embed(ensemble, X).leaf_indices(), [[1]])
    np.testing.assert_array_equal(embed(ensemble, X.astype(np.float32)).leaf_indices(), [[2]])
