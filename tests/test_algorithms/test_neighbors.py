"""
Tests for approximate neighbor search.
"""

import numpy as np
import pytest

from curve_cluster.algorithms.curve_index import CurveIndexer
from curve_cluster.algorithms.neighbors import (
    brute_force_neighbors,
    find_neighbors,
    neighbor_recall,
    select_k_nearest,
    window_pairs,
)
from curve_cluster.exceptions import ConfigError


def test_window_pairs_unique_and_ordered():
    orders = [np.array([0, 1, 2, 3]), np.array([3, 2, 1, 0])]
    pairs = window_pairs(orders, 1, 4)
    np.testing.assert_array_equal(pairs, [[0, 1], [1, 2], [2, 3]])


def test_window_pairs_wide_window_covers_all():
    pairs = window_pairs([np.arange(5)], 10, 5)
    assert len(pairs) == 10


def test_line_neighbors_exact(line_points):
    """On a line with a wide window the result is the exact kNN."""
    order = np.arange(len(line_points))
    table = find_neighbors(line_points, [order], k=2, window=5)
    assert table.neighbors_of(1) == [(0, 1.0), (2, 1.0)]
    assert table.neighbors_of(4) == [(3, 1.0), (2, 9.0)]
    assert table.neighbors_of(5) == [(4, 19.0), (3, 20.0)]
    np.testing.assert_array_equal(table.counts, [2] * 6)


def test_ties_broken_by_ascending_id():
    X = np.array([[5], [4], [6], [3], [7]], dtype=np.int64)
    table = find_neighbors(X, [np.array([3, 1, 0, 2, 4])], k=2, window=4)
    # Positions 1 and 2 are both at distance 1 from position 0
    assert [j for j, _ in table.neighbors_of(0)] == [1, 2]


def test_short_lists_for_small_inputs():
    X = np.array([[0], [4]], dtype=np.int64)
    table = find_neighbors(X, [np.array([0, 1])], k=5, window=3)
    assert table.neighbors_of(0) == [(1, 4.0)]
    assert table.counts.tolist() == [1, 1]
    assert table.indices[0, 1] == -1
    assert np.isinf(table.distances[0, 1])


def test_single_point_has_no_neighbors():
    table = find_neighbors(np.array([[3, 3]]), [np.array([0])], k=3, window=2)
    assert table.neighbors_of(0) == []


def test_kth_distances(line_points):
    table = brute_force_neighbors(line_points, 2)
    np.testing.assert_allclose(table.kth_distances(1), [1, 1, 1, 1, 1, 19])
    np.testing.assert_allclose(table.kth_distances(2), [2, 1, 2, 8, 9, 20])
    with pytest.raises(ConfigError):
        table.kth_distances(3)


def test_density_counts_and_edges(line_points):
    table = brute_force_neighbors(line_points, 2)
    np.testing.assert_array_equal(table.density_counts(1.0), [1, 2, 1, 1, 1, 0])
    src, dst = table.edges_within(1.0)
    assert list(zip(src.tolist(), dst.tolist())) == [
        (0, 1), (1, 0), (1, 2), (2, 1), (3, 4), (4, 3)
    ]


def test_to_id_lists(line_points):
    table = brute_force_neighbors(line_points, 1)
    ids = np.array([10, 20, 30, 40, 50, 60])
    lists = table.to_id_lists(ids)
    assert lists[60] == [(50, 19.0)]


def test_select_k_nearest_orders_by_distance_then_target():
    src = np.array([0, 0, 0, 1])
    dst = np.array([3, 2, 1, 0])
    dist = np.array([2.0, 1.0, 1.0, 5.0])
    table = select_k_nearest(src, dst, dist, 4, 2)
    assert table.neighbors_of(0) == [(1, 1.0), (2, 1.0)]
    assert table.neighbors_of(3) == []


def test_custom_distance(line_points):
    def manhattan(A, B):
        return np.abs(A - B).sum(axis=1).astype(float)

    order = np.arange(len(line_points))
    table = find_neighbors(line_points, [order], k=1, window=2, distance=manhattan)
    assert table.neighbors_of(5) == [(4, 19.0)]


def test_parallel_distances_match(random_points):
    orders = CurveIndexer(3, seed=2).orderings(random_points)
    a = find_neighbors(random_points, orders, k=4, window=3)
    b = find_neighbors(random_points, orders, k=4, window=3, max_workers=4)
    np.testing.assert_array_equal(a.indices, b.indices)
    np.testing.assert_array_equal(a.distances, b.distances)


def test_validation(random_points):
    orders = [np.arange(len(random_points))]
    with pytest.raises(ConfigError, match="k must be >= 1"):
        find_neighbors(random_points, orders, k=0, window=3)
    with pytest.raises(ConfigError, match="window must be >= 1"):
        find_neighbors(random_points, orders, k=3, window=0)
    with pytest.raises(ConfigError, match="ordering"):
        find_neighbors(random_points, [], k=3, window=3)


# ------------------------------------------------------------------
# Recall against the exact reference
# ------------------------------------------------------------------


def test_recall_monotonic_in_permutations(random_points):
    """More permutations never lose a true neighbor already found."""
    k, window = 5, 3
    exact = brute_force_neighbors(random_points, k)
    recalls = []
    for p in (1, 2, 4, 8):
        orders = CurveIndexer(p, seed=7).orderings(random_points)
        found = find_neighbors(random_points, orders, k=k, window=window)
        recalls.append(neighbor_recall(found, exact))
    assert all(b >= a for a, b in zip(recalls, recalls[1:]))
    assert 0.0 < recalls[0] <= 1.0


def test_recall_monotonic_in_window(random_points):
    k = 5
    exact = brute_force_neighbors(random_points, k)
    orders = CurveIndexer(2, seed=3).orderings(random_points)
    recalls = [
        neighbor_recall(find_neighbors(random_points, orders, k=k, window=w), exact)
        for w in (1, 2, 4, 8, 16)
    ]
    assert all(b >= a for a, b in zip(recalls, recalls[1:]))


def test_full_window_is_exact(random_points):
    n = len(random_points)
    exact = brute_force_neighbors(random_points, 6)
    orders = CurveIndexer(1).orderings(random_points)
    found = find_neighbors(random_points, orders, k=6, window=n)
    assert neighbor_recall(found, exact) == 1.0
    np.testing.assert_array_equal(found.indices, exact.indices)


def test_neighbor_recall_shape_mismatch(random_points):
    with pytest.raises(ConfigError):
        neighbor_recall(
            brute_force_neighbors(random_points, 2), brute_force_neighbors(random_points, 3)
        )
