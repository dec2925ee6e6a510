"""
End-to-end tests for run / run_pipeline / compare.
"""

import numpy as np
import pytest

from curve_cluster import compare, run, run_pipeline
from curve_cluster.algorithms.cancellation import CancellationToken
from curve_cluster.algorithms.points import Point
from curve_cluster.config import ClusteringConfig
from curve_cluster.exceptions import (
    ClusteringCancelledError,
    ConfigError,
    DegenerateInputError,
    DimensionMismatchError,
    InvariantViolationError,
    NumericOverflowError,
)

# Wide enough that every blob point sees all 99 others in one ordering
BLOB_RUN = dict(k=24, permutations=2, window=100, seed=1)


def test_blobs_recovered_with_explicit_linkage(blobs, blob_gold):
    X, _ = blobs
    clustering = run(X, linkage_distance=100.0, **BLOB_RUN)
    assert clustering == blob_gold
    assert compare(clustering, blob_gold).fmeasure == pytest.approx(1.0)


def test_blobs_estimated_parameters_never_mix_blobs(blobs, blob_gold):
    """Estimated thresholds may split a blob but never join two."""
    X, _ = blobs
    clustering = run(X, **BLOB_RUN)
    assert compare(clustering, blob_gold).precision == pytest.approx(1.0)


def test_result_is_frozen(blobs):
    X, _ = blobs
    clustering = run(X, linkage_distance=100.0, **BLOB_RUN)
    assert clustering.frozen
    with pytest.raises(InvariantViolationError):
        clustering.add_to_new_cluster(10_000)


def test_point_ids_preserved(blobs):
    X, labels = blobs
    ids = [1000 + 7 * i for i in range(len(X))]
    points = [Point(pid, tuple(row)) for pid, row in zip(reversed(ids), X[::-1])]
    clustering = run(points, linkage_distance=100.0, **BLOB_RUN)
    assert clustering.point_ids() == ids
    assert clustering.cluster_count() == 4
    # Cluster ids are the smallest member id
    assert clustering.list_clusters() == [1000, 1000 + 7 * 25, 1000 + 7 * 50, 1000 + 7 * 75]


def test_run_pipeline_keeps_intermediates(blobs):
    X, _ = blobs
    cfg = ClusteringConfig(linkage_distance=100.0, **BLOB_RUN)
    result = run_pipeline(X, cfg)
    assert len(result.orderings) == 2
    assert result.bits_per_dimension == 10
    assert result.neighbors.k == 24
    assert result.linkage.linkage_distance == 100.0
    assert result.linkage.min_density_count == 12
    assert result.engine_stats.cluster_count == 4
    assert result.report.linkage_distance == 100.0
    np.testing.assert_array_equal(result.ids, np.arange(len(X)))


def test_parallel_run_matches_serial(blobs):
    X, _ = blobs
    serial = run(X, **BLOB_RUN)
    parallel = run(X, max_workers=4, **BLOB_RUN)
    assert serial == parallel


def test_deterministic(random_points):
    a = run(random_points, k=5, permutations=3, window=4, seed=9)
    b = run(random_points, k=5, permutations=3, window=4, seed=9)
    assert a == b
    assert a.list_clusters() == b.list_clusters()


def test_single_point():
    clustering = run([Point(42, (7, 7, 7))], k=3, permutations=2, window=2)
    assert clustering.list_clusters() == [42]


def test_empty_input():
    with pytest.raises(DegenerateInputError):
        run(np.empty((0, 3), dtype=np.int64), k=3, permutations=2, window=2)


def test_invalid_k():
    with pytest.raises(ConfigError, match="k must be >= 1"):
        run(np.array([[1, 2], [3, 4]]), k=0, permutations=2, window=2)


def test_mixed_dimensions():
    with pytest.raises(DimensionMismatchError):
        run([Point(1, (1, 2)), Point(2, (1,))], k=1, permutations=1, window=1)


def test_bit_depth_too_small(random_points):
    with pytest.raises(NumericOverflowError):
        run(random_points, k=3, permutations=1, window=2, bits_per_dimension=4)


def test_evenly_spaced_points_need_overrides():
    X = np.arange(10).reshape(-1, 1)
    with pytest.raises(DegenerateInputError):
        run(X, k=1, permutations=1, window=10)
    clustering = run(
        X, k=1, permutations=1, window=10, linkage_distance=1.0, density_threshold=0.0
    )
    assert clustering.cluster_count() == 1


def test_cancelled_token():
    token = CancellationToken()
    token.cancel()
    with pytest.raises(ClusteringCancelledError):
        run(np.array([[1, 2], [3, 4]]), k=1, permutations=1, window=1, cancel_token=token)


def test_plain_coordinate_lists(blobs, blob_gold):
    X, _ = blobs
    clustering = run(X.tolist(), linkage_distance=100.0, **BLOB_RUN)
    assert clustering == blob_gold
