import numpy as np
import pytest
import scipy.sparse as sp

from fbboost import EmbeddingResult, build_ensemble, embed


def three_tree_result():
    dumps = [
        [
            {"nodeid": 0, "split": 0, "split_condition": 0.0, "yes": 1, "no": 2, "missing": 2},
            {"nodeid": 1, "leaf": 0.0},
            {"nodeid": 2, "leaf": 0.0},
        ],
        [{"nodeid": 0, "leaf": 0.0}],
        [
            {"nodeid": 0, "split": 1, "split_condition": 1.0, "yes": 1, "no": 2, "missing": 1},
            {"nodeid": 1, "split": 0, "split_condition": -1.0, "yes": 3, "no": 4, "missing": 4},
            {"nodeid": 2, "leaf": 0.0},
            {"nodeid": 3, "leaf": 0.0},
            {"nodeid": 4, "leaf": 0.0},
        ],
    ]
    X = np.array(
        [
            [-2.0, 0.0],
            [0.5, 0.0],
            [0.5, 3.0],
            [np.nan, np.nan],
        ]
    )
    return embed(build_ensemble(dumps), X)


def test_leaf_indices_and_tree_slices():
    result = three_tree_result()
    np.testing.assert_array_equal(
        result.leaf_indices(),
        [[0, 0, 0], [1, 0, 1], [1, 0, 2], [1, 0, 1]],
    )
    assert result.tree_slices() == [slice(0, 2), slice(2, 3), slice(3, 6)]
    assert result.shape == (4, 6)
    assert result.n_trees == 3


def test_tree_block_recovers_per_tree_columns():
    result = three_tree_result()
    block = result.tree_block(2)
    assert sp.issparse(block)
    assert block.shape == (4, 3)
    np.testing.assert_array_equal(block.toarray(), [[1, 0, 0], [0, 1, 0], [0, 0, 1], [0, 1, 0]])


def test_csr_and_csc_hold_the_same_matrix():
    result = three_tree_result()
    np.testing.assert_array_equal(result.csr().toarray(), result.csc().toarray())
    assert result.csc() is result.csc()
    np.testing.assert_array_equal(result.coo().toarray(), result.csr().toarray())


def test_save_and_load_are_bit_exact(tmp_path):
    result = three_tree_result()
    path = result.save(tmp_path / "embedding")
    assert path.suffix == ".npz"
    loaded = EmbeddingResult.load(path)
    assert loaded == result
    assert (loaded.csr() != result.csr()).nnz == 0
    np.testing.assert_array_equal(loaded.tree_cuts, result.tree_cuts)


def test_coordinate_order_does_not_matter():
    result = three_tree_result()
    rows, cols = result.coordinates()
    perm = np.random.default_rng(0).permutation(rows.shape[0])
    rebuilt = EmbeddingResult.from_coordinates(
        result.n_rows, result.total_leaves, result.tree_cuts, rows[perm], cols[perm]
    )
    assert rebuilt == result


def test_from_coordinates_rejects_broken_layouts():
    cuts = np.array([2, 3])
    with pytest.raises(ValueError, match="set bits"):
        EmbeddingResult.from_coordinates(1, 3, cuts, [0], [0])
    with pytest.raises(ValueError, match="exactly one set bit"):
        EmbeddingResult.from_coordinates(1, 3, cuts, [0, 0], [0, 1])
    with pytest.raises(ValueError, match="total_leaves"):
        EmbeddingResult.from_coordinates(1, 4, cuts, [0, 0], [0, 2])
    with pytest.raises(ValueError, match="increase"):
        EmbeddingResult.from_coordinates(1, 3, np.array([2, 2, 3]), [0, 0, 0], [0, 1, 2])


def test_to_dict_summary():
    summary = three_tree_result().to_dict()
    assert summary == {"n_rows": 4, "total_leaves": 6, "n_trees": 3, "tree_cuts": [2, 3, 6], "nnz": 12}


def test_tree_block_matches_column_slices_without_building_csc():
    result = three_tree_result()
    for i, block in enumerate(result.tree_slices()):
        np.testing.assert_array_equal(result.tree_block(i).toarray(), result.csr()[:, block].toarray())
    assert result._csc is None
