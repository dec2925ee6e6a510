"""
Approximate k-nearest-neighbor search over curve orderings.

Every pair of points that sit within ``window`` places of each other in any
ordering is a candidate pair; its true distance is computed once and offered
to both endpoints. Each point keeps its k closest candidates, ties broken by
ascending neighbor position (= ascending point id).

Recall of the true k nearest neighbors grows with the number of orderings
and the window width but is never guaranteed to be exact.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..exceptions import ConfigError
from ..utils.logging_config import get_logger
from .cancellation import CancellationToken, checkpoint
from .points import Array2D, DistanceFn, euclidean_rows, pairwise_distances

logger = get_logger(__name__)

# Upper bound on (pairs x dimensions) evaluated per distance call
_CHUNK_ELEMENTS = 1 << 22


@dataclass(frozen=True)
class NeighborTable:
    """
    Neighbor lists for N points, stored as padded (N, k) arrays.

    Row ``i`` holds the neighbors of position ``i`` in ascending distance.
    Missing entries (fewer than k candidates) are -1 in ``indices`` and +inf
    in ``distances``.
    """

    indices: np.ndarray
    distances: np.ndarray
    counts: np.ndarray

    @property
    def n_points(self) -> int:
        return self.indices.shape[0]

    @property
    def k(self) -> int:
        return self.indices.shape[1]

    def neighbors_of(self, pos: int) -> List[Tuple[int, float]]:
        """``(neighbor_position, distance)`` pairs for one point."""
        c = int(self.counts[pos])
        return [
            (int(j), float(d))
            for j, d in zip(self.indices[pos, :c], self.distances[pos, :c])
        ]

    def kth_distances(self, j: int) -> np.ndarray:
        """Distance to the j-th (1-based) neighbor of every point; NaN if absent."""
        if j < 1 or j > self.k:
            raise ConfigError(f"j must be in [1, {self.k}], got {j}")
        out = self.distances[:, j - 1].astype(np.float64)
        out[self.counts < j] = np.nan
        return out

    def first_distances(self) -> np.ndarray:
        """First-neighbor distance of every point that has at least one neighbor."""
        return self.distances[self.counts > 0, 0].astype(np.float64)

    def edges_within(self, radius: float) -> Tuple[np.ndarray, np.ndarray]:
        """
        All (source, target) entries whose distance is <= *radius*.

        Returned in ascending (source, rank) order.
        """
        mask = (self.indices >= 0) & (self.distances <= radius)
        src, rank = np.nonzero(mask)
        return src.astype(np.int64), self.indices[src, rank].astype(np.int64)

    def density_counts(self, radius: float) -> np.ndarray:
        """Number of listed neighbors within *radius* for every point."""
        return ((self.indices >= 0) & (self.distances <= radius)).sum(axis=1)

    def to_id_lists(self, ids: np.ndarray) -> Dict[int, List[Tuple[int, float]]]:
        """Neighbor lists keyed and valued by point id instead of position."""
        return {
            int(ids[i]): [(int(ids[j]), d) for j, d in self.neighbors_of(i)]
            for i in range(self.n_points)
        }


def _validate(k: int, window: int) -> None:
    if k < 1:
        raise ConfigError(f"k must be >= 1, got {k}")
    if window < 1:
        raise ConfigError(f"window must be >= 1, got {window}")


def window_pairs(orderings: Sequence[np.ndarray], window: int, n: int) -> np.ndarray:
    """
    Unique unordered candidate pairs from sliding windows over the orderings.

    Returns:
        (m, 2) int64 array of ``(lo, hi)`` positions with lo < hi, sorted.
    """
    keys = []
    for order in orderings:
        order = np.asarray(order, dtype=np.int64)
        for offset in range(1, min(window, n - 1) + 1):
            a = order[:-offset]
            b = order[offset:]
            keys.append(np.minimum(a, b) * n + np.maximum(a, b))
    if not keys:
        return np.empty((0, 2), dtype=np.int64)
    unique = np.unique(np.concatenate(keys))
    return np.stack([unique // n, unique % n], axis=1)


def _pair_distances(
    X: Array2D, pairs: np.ndarray, distance: DistanceFn, max_workers: int
) -> np.ndarray:
    """Distances for every candidate pair, evaluated in bounded chunks."""
    m = pairs.shape[0]
    chunk = max(1, _CHUNK_ELEMENTS // max(1, X.shape[1]))
    bounds = [(s, min(s + chunk, m)) for s in range(0, m, chunk)]

    def evaluate(bound: Tuple[int, int]) -> np.ndarray:
        s, e = bound
        return np.asarray(distance(X[pairs[s:e, 0]], X[pairs[s:e, 1]]), dtype=np.float64)

    if max_workers == 1 or len(bounds) <= 1:
        parts = [evaluate(b) for b in bounds]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            parts = list(pool.map(evaluate, bounds))
    return np.concatenate(parts) if parts else np.empty(0, dtype=np.float64)


def select_k_nearest(
    src: np.ndarray, dst: np.ndarray, dist: np.ndarray, n: int, k: int
) -> NeighborTable:
    """
    Keep the k best candidates per source, ordered by (distance, target).

    Args:
        src, dst, dist: Directed candidate entries (no duplicates)
        n: Number of points
        k: Neighbors to keep per point
    """
    order = np.lexsort((dst, dist, src))
    src, dst, dist = src[order], dst[order], dist[order]
    starts = np.searchsorted(src, np.arange(n))
    rank = np.arange(len(src)) - starts[src]
    keep = rank < k

    indices = np.full((n, k), -1, dtype=np.int64)
    distances = np.full((n, k), np.inf, dtype=np.float64)
    indices[src[keep], rank[keep]] = dst[keep]
    distances[src[keep], rank[keep]] = dist[keep]
    counts = np.bincount(src[keep], minlength=n).astype(np.int64)
    return NeighborTable(indices=indices, distances=distances, counts=counts)


def find_neighbors(
    X: Array2D,
    orderings: Sequence[np.ndarray],
    k: int,
    window: int,
    *,
    distance: Optional[DistanceFn] = None,
    max_workers: int = 1,
    cancel_token: Optional[CancellationToken] = None,
) -> NeighborTable:
    """
    Approximate k nearest neighbors from windows over curve orderings.

    Args:
        X: (N, D) coordinates in canonical (id) order
        orderings: One or more permutations of ``0..N-1``
        k: Neighbors to keep per point
        window: Points examined on each side of a point in every ordering
        distance: Row-wise metric ``(A, B) -> (m,)``; Euclidean by default
        max_workers: Threads used for distance evaluation
        cancel_token: Checked after candidate generation

    Returns:
        NeighborTable; points with fewer than k candidates get shorter lists.

    Raises:
        ConfigError: If k < 1, window < 1 or no orderings are given
    """
    _validate(k, window)
    if len(orderings) == 0:
        raise ConfigError("At least one ordering is required")
    n = X.shape[0]
    distance = distance or euclidean_rows

    pairs = window_pairs(orderings, window, n)
    checkpoint(cancel_token, "neighbor candidate generation")
    logger.info(
        "Evaluating %d candidate pairs (N=%d, P=%d, W=%d, k=%d)",
        pairs.shape[0], n, len(orderings), window, k,
    )
    dist = _pair_distances(X, pairs, distance, max_workers)

    src = np.concatenate([pairs[:, 0], pairs[:, 1]])
    dst = np.concatenate([pairs[:, 1], pairs[:, 0]])
    table = select_k_nearest(src, dst, np.concatenate([dist, dist]), n, k)
    short = int((table.counts < min(k, n - 1)).sum())
    if short:
        logger.debug("%d points found fewer than %d neighbors", short, k)
    return table


def brute_force_neighbors(
    X: Array2D, k: int, distance: Optional[DistanceFn] = None
) -> NeighborTable:
    """Exact k nearest neighbors (quadratic), with the same tie-break rule."""
    if k < 1:
        raise ConfigError(f"k must be >= 1, got {k}")
    n = X.shape[0]
    dist = pairwise_distances(X, distance)
    src, dst = np.nonzero(~np.eye(n, dtype=bool))
    return select_k_nearest(src.astype(np.int64), dst.astype(np.int64), dist[src, dst], n, k)


def neighbor_recall(found: NeighborTable, exact: NeighborTable) -> float:
    """
    Fraction of exact neighbor entries that also appear in *found*.

    Both tables must describe the same points with the same k.
    """
    if found.indices.shape != exact.indices.shape:
        raise ConfigError(
            f"Neighbor tables differ in shape: {found.indices.shape} vs {exact.indices.shape}"
        )
    total = int(exact.counts.sum())
    if total == 0:
        return 1.0
    hits = 0
    for i in range(exact.n_points):
        truth = exact.indices[i, : exact.counts[i]]
        got = found.indices[i, : found.counts[i]]
        hits += len(np.intersect1d(truth, got, assume_unique=True))
    return hits / total
