"""
Hybrid single-link / density clustering over approximate neighbor lists.

1. Every point starts as a singleton.
2. Linkage step: each listed neighbor within ``linkage_distance`` is merged
   with its point.
3. Density step: a point with at least ``min_density_count`` listed neighbors
   inside ``density_threshold`` is a core point and is merged with all of
   those neighbors, even ones beyond the linkage distance.
4. The density step repeats over a worklist of dirty core points until a
   pass changes nothing.

Singletons left over are valid clusters, not noise. Edge generation is
vectorised and may be spread over threads; the union-find merges always run
serially in ascending (point, neighbor) order.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from ..exceptions import ConfigError
from ..utils.logging_config import get_logger
from .cancellation import CancellationToken, checkpoint
from .cluster_store import ClusterStore
from .linkage import LinkageParameters
from .neighbors import NeighborTable

logger = get_logger(__name__)


class UnionFind:
    """
    Disjoint sets over ``0..n-1`` held in flat parent / size arrays.

    Path compression plus union by size; when sizes tie, the smaller root
    index becomes the parent so results do not depend on argument order.
    """

    def __init__(self, n: int):
        self.parent: List[int] = list(range(n))
        self.size: List[int] = [1] * n
        self.set_count = n

    def find(self, x: int) -> int:
        parent = self.parent
        root = x
        while parent[root] != root:
            root = parent[root]
        while parent[x] != root:
            parent[x], x = root, parent[x]
        return root

    def union(self, a: int, b: int) -> bool:
        """Join the sets of *a* and *b*. Returns True if they were separate."""
        ra = self.find(a)
        rb = self.find(b)
        if ra == rb:
            return False
        sa, sb = self.size[ra], self.size[rb]
        if sa < sb or (sa == sb and rb < ra):
            ra, rb = rb, ra
        self.parent[rb] = ra
        self.size[ra] = sa + sb
        self.set_count -= 1
        return True

    def connected(self, a: int, b: int) -> bool:
        return self.find(a) == self.find(b)

    def roots(self) -> np.ndarray:
        """Root of every element."""
        return np.array([self.find(i) for i in range(len(self.parent))], dtype=np.int64)


@dataclass
class EngineStats:
    """Counters from one engine run."""

    linkage_merges: int = 0
    density_merges: int = 0
    density_passes: int = 0
    core_points: int = 0
    cluster_count: int = 0


class ClusteringEngine:
    """
    Merges points into a flat partition.

    Args:
        params: Linkage distance, density radius and core-point count
        max_workers: Threads used for edge generation
        cancel_token: Checked between the linkage step and each density pass
        edge_chunk: Points per edge-generation chunk
    """

    def __init__(
        self,
        params: LinkageParameters,
        *,
        max_workers: int = 1,
        cancel_token: Optional[CancellationToken] = None,
        edge_chunk: int = 65_536,
    ):
        if params is None:
            raise ConfigError("LinkageParameters are required")
        if not isinstance(params, LinkageParameters):
            raise ConfigError(f"Expected LinkageParameters, got {type(params).__name__}")
        if max_workers < 1:
            raise ConfigError(f"max_workers must be >= 1, got {max_workers}")
        self.params = params
        self.max_workers = max_workers
        self.cancel_token = cancel_token
        self.edge_chunk = max(1, edge_chunk)
        self.stats = EngineStats()

    def _edges(self, table: NeighborTable, radius: float) -> Tuple[np.ndarray, np.ndarray]:
        """(source, target) entries within *radius*, in ascending source order."""
        n = table.n_points
        bounds = [(s, min(s + self.edge_chunk, n)) for s in range(0, n, self.edge_chunk)]

        def chunk_edges(bound: Tuple[int, int]) -> Tuple[np.ndarray, np.ndarray]:
            s, e = bound
            idx = table.indices[s:e]
            mask = (idx >= 0) & (table.distances[s:e] <= radius)
            rows, cols = np.nonzero(mask)
            return rows.astype(np.int64) + s, idx[rows, cols].astype(np.int64)

        if self.max_workers == 1 or len(bounds) <= 1:
            parts = [chunk_edges(b) for b in bounds]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                parts = list(pool.map(chunk_edges, bounds))
        if not parts:
            return np.empty(0, dtype=np.int64), np.empty(0, dtype=np.int64)
        return np.concatenate([p[0] for p in parts]), np.concatenate([p[1] for p in parts])

    def cluster(self, table: NeighborTable, ids: Optional[np.ndarray] = None) -> ClusterStore:
        """
        Cluster the points described by *table*.

        Args:
            table: Neighbor lists, rows in canonical (ascending id) order
            ids: Point id of each row; defaults to ``0..N-1``

        Returns:
            ClusterStore whose cluster ids are the smallest member point id

        Raises:
            ClusteringCancelledError: If the token is cancelled between passes
        """
        n = table.n_points
        if ids is None:
            ids = np.arange(n, dtype=np.int64)
        if len(ids) != n:
            raise ConfigError(f"Expected {n} point ids, got {len(ids)}")
        params = self.params
        stats = self.stats = EngineStats()
        uf = UnionFind(n)

        src, dst = self._edges(table, params.linkage_distance)
        for a, b in zip(src.tolist(), dst.tolist()):
            if uf.union(a, b):
                stats.linkage_merges += 1
        logger.debug("Linkage step: %d edges, %d merges", len(src), stats.linkage_merges)
        checkpoint(self.cancel_token, "linkage merge")

        core = table.density_counts(params.density_threshold) >= params.min_density_count
        stats.core_points = int(core.sum())
        dsrc, ddst = self._edges(table, params.density_threshold)
        keep = core[dsrc]
        dsrc, ddst = dsrc[keep], ddst[keep]
        starts = np.searchsorted(dsrc, np.arange(n + 1))
        targets = ddst.tolist()
        starts = starts.tolist()
        is_core = core.tolist()

        dirty = np.nonzero(core)[0].tolist()
        while dirty:
            checkpoint(self.cancel_token, f"density pass {stats.density_passes + 1}")
            stats.density_passes += 1
            revisit = set()
            for p in dirty:
                for q in targets[starts[p]:starts[p + 1]]:
                    if uf.union(p, q):
                        stats.density_merges += 1
                        if is_core[q] and q < p:
                            revisit.add(q)
            dirty = sorted(revisit)
            logger.debug(
                "Density pass %d: %d merges so far, %d points dirty",
                stats.density_passes, stats.density_merges, len(dirty),
            )

        store = ClusterStore()
        cluster_for_root = {}
        for pos, root in enumerate(uf.roots().tolist()):
            cid = cluster_for_root.get(root)
            if cid is None:
                cid = cluster_for_root[root] = int(ids[pos])
            store.add_point(cid, int(ids[pos]))
        store.check_invariants()
        stats.cluster_count = store.cluster_count()
        logger.info(
            "Clustered %d points into %d clusters (%d linkage merges, %d density merges, "
            "%d core points, %d density passes)",
            n, stats.cluster_count, stats.linkage_merges, stats.density_merges,
            stats.core_points, stats.density_passes,
        )
        return store


def cluster_neighbors(
    table: NeighborTable, params: LinkageParameters, ids: Optional[np.ndarray] = None
) -> ClusterStore:
    """Run a default :class:`ClusteringEngine` once."""
    return ClusteringEngine(params).cluster(table, ids)
