"""
Pytest configuration and shared fixtures.

This file is automatically discovered by pytest and provides fixtures
available to all test modules.
"""

import numpy as np
import pytest

from curve_cluster.algorithms.cluster_store import ClusterStore


def make_blobs(n_per_blob: int = 25, d: int = 8, seed: int = 42):
    """
    Four well-separated integer blobs.

    Blob centres are at least 1000 apart; members are within 25.5 of each
    other, so every point's 24 nearest neighbors are its blob mates.

    Returns:
        Tuple of (X, labels) with X of shape (4 * n_per_blob, d).
    """
    rng = np.random.default_rng(seed)
    half = d // 2
    centers = np.array(
        [
            [100] * d,
            [600] * d,
            [100] * half + [600] * (d - half),
            [600] * half + [100] * (d - half),
        ],
        dtype=np.int64,
    )
    X = np.vstack(
        [c + rng.integers(0, 10, size=(n_per_blob, d)) for c in centers]
    )
    labels = np.repeat(np.arange(len(centers)), n_per_blob)
    return X, labels


@pytest.fixture
def blobs():
    """(X, labels) for four separated blobs of 25 points in 8 dimensions."""
    return make_blobs()


@pytest.fixture
def blob_gold(blobs):
    """Gold-standard ClusterStore for the ``blobs`` fixture."""
    X, labels = blobs
    return ClusterStore.from_labels(np.arange(len(X)), labels)


@pytest.fixture
def random_points():
    """60 random points in 6 dimensions with coordinates in [0, 256)."""
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, size=(60, 6))


@pytest.fixture
def line_points():
    """Six points on a line: two tight groups, a pair and a loner."""
    return np.array([[0], [1], [2], [10], [11], [30]], dtype=np.int64)
