"""
Tests for the single-link / density clustering engine.
"""

import numpy as np
import pytest

from curve_cluster.algorithms.cancellation import CancellationToken
from curve_cluster.algorithms.cluster_store import ClusterStore
from curve_cluster.algorithms.engine import (
    ClusteringEngine,
    UnionFind,
    cluster_neighbors,
)
from curve_cluster.algorithms.linkage import LinkageParameters
from curve_cluster.algorithms.neighbors import brute_force_neighbors
from curve_cluster.exceptions import ClusteringCancelledError, ConfigError


# ------------------------------------------------------------------
# UnionFind
# ------------------------------------------------------------------


def test_union_find_basic():
    uf = UnionFind(5)
    assert uf.set_count == 5
    assert uf.union(0, 1) is True
    assert uf.union(1, 0) is False
    assert uf.union(3, 4) is True
    assert uf.connected(0, 1)
    assert not uf.connected(1, 3)
    assert uf.set_count == 3


def test_union_find_tie_goes_to_smaller_root():
    uf = UnionFind(4)
    uf.union(3, 2)
    assert uf.find(3) == 2
    uf.union(1, 0)
    uf.union(2, 1)
    np.testing.assert_array_equal(uf.roots(), [0, 0, 0, 0])


def test_union_find_larger_set_wins():
    uf = UnionFind(4)
    uf.union(2, 3)
    uf.union(2, 1)
    uf.union(0, 1)
    assert uf.find(0) == 2


# ------------------------------------------------------------------
# Engine
# ------------------------------------------------------------------


def _groups(store):
    return sorted(sorted(members) for members in store.groups().values())


def test_linkage_only(line_points):
    """Linkage 1.5 joins the tight runs; density is disabled."""
    table = brute_force_neighbors(line_points, 2)
    params = LinkageParameters(linkage_distance=1.5, density_threshold=0.0, min_density_count=10)
    store = cluster_neighbors(table, params)
    assert _groups(store) == [[0, 1, 2], [3, 4], [5]]


def test_density_only(line_points):
    """Only point 1 has two neighbors within 1.5, so only it pulls others in."""
    table = brute_force_neighbors(line_points, 2)
    params = LinkageParameters(linkage_distance=0.0, density_threshold=1.5, min_density_count=2)
    store = cluster_neighbors(table, params)
    assert _groups(store) == [[0, 1, 2], [3], [4], [5]]


def test_density_chain_merges_transitively():
    """Core points on a chain pull the whole chain into one cluster."""
    X = np.arange(6).reshape(-1, 1)
    table = brute_force_neighbors(X, 2)
    params = LinkageParameters(linkage_distance=0.0, density_threshold=1.0, min_density_count=2)
    engine = ClusteringEngine(params)
    store = engine.cluster(table)
    assert store.cluster_count() == 1
    assert engine.stats.core_points == 4
    assert engine.stats.density_merges == 5


def test_zero_thresholds_leave_singletons(line_points):
    table = brute_force_neighbors(line_points, 2)
    store = cluster_neighbors(table, LinkageParameters(0.0, 0.0, 1))
    assert store.cluster_count() == 6


def test_cluster_ids_are_smallest_member_id(line_points):
    table = brute_force_neighbors(line_points, 2)
    ids = np.array([11, 12, 13, 20, 21, 40])
    store = cluster_neighbors(table, LinkageParameters(1.5, 0.0, 10), ids)
    assert store.list_clusters() == [11, 20, 40]
    assert store.members(11) == frozenset({11, 12, 13})


def test_cluster_count_monotone_in_linkage(random_points):
    table = brute_force_neighbors(random_points, 5)
    counts = [
        cluster_neighbors(table, LinkageParameters(l, 0.0, 10)).cluster_count()
        for l in (0, 20, 40, 60, 80, 120, 500)
    ]
    assert all(b <= a for a, b in zip(counts, counts[1:]))
    assert counts[0] == len(random_points)
    assert counts[-1] < counts[0]


def test_cluster_count_monotone_in_density_radius(random_points):
    """A wider density radius never undoes a density merge."""
    table = brute_force_neighbors(random_points, 6)
    counts = [
        cluster_neighbors(table, LinkageParameters(0.0, r, 3)).cluster_count()
        for r in (0, 30, 60, 90, 120, 200)
    ]
    assert all(b <= a for a, b in zip(counts, counts[1:]))
    assert counts[0] == len(random_points)
    assert counts[-1] < counts[0]


def test_cluster_count_monotone_in_min_density_count(random_points):
    """Fewer neighbors needed for a core point never undoes a density merge."""
    table = brute_force_neighbors(random_points, 6)
    counts = [
        cluster_neighbors(table, LinkageParameters(0.0, 90.0, m)).cluster_count()
        for m in (6, 5, 4, 3, 2, 1)
    ]
    assert all(b <= a for a, b in zip(counts, counts[1:]))


def test_larger_linkage_only_merges(random_points):
    """Every cluster at a small linkage sits inside one cluster at a larger one."""
    table = brute_force_neighbors(random_points, 4)
    fine = cluster_neighbors(table, LinkageParameters(40.0, 0.0, 10))
    coarse = cluster_neighbors(table, LinkageParameters(80.0, 0.0, 10))
    for members in fine.groups().values():
        assert len({coarse.cluster_of(m) for m in members}) == 1


def test_parallel_edges_match(random_points):
    table = brute_force_neighbors(random_points, 4)
    params = LinkageParameters(60.0, 50.0, 2)
    serial = ClusteringEngine(params).cluster(table)
    parallel = ClusteringEngine(params, max_workers=3, edge_chunk=7).cluster(table)
    assert serial == parallel
    assert serial.list_clusters() == parallel.list_clusters()


def test_result_is_a_cluster_store(line_points):
    store = cluster_neighbors(brute_force_neighbors(line_points, 1), LinkageParameters(1.0, 0.0, 5))
    assert isinstance(store, ClusterStore)
    store.check_invariants()


def test_engine_requires_parameters():
    with pytest.raises(ConfigError):
        ClusteringEngine(None)
    with pytest.raises(ConfigError):
        ClusteringEngine({"linkage_distance": 1.0})
    with pytest.raises(ConfigError):
        ClusteringEngine(LinkageParameters(1.0, 1.0, 1), max_workers=0)


def test_ids_length_mismatch(line_points):
    table = brute_force_neighbors(line_points, 1)
    with pytest.raises(ConfigError):
        cluster_neighbors(table, LinkageParameters(1.0, 0.0, 1), np.arange(3))


def test_cancellation_between_passes(line_points):
    token = CancellationToken()
    token.cancel("stopped")
    engine = ClusteringEngine(LinkageParameters(1.0, 1.0, 1), cancel_token=token)
    with pytest.raises(ClusteringCancelledError, match="linkage merge"):
        engine.cluster(brute_force_neighbors(line_points, 2))
