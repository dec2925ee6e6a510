"""
End-to-end clustering pipeline and evaluation entry points.

Provides ``run`` (points -> frozen clustering), ``run_pipeline`` (the same,
keeping every intermediate product for tuning) and ``compare`` (B-Cubed
against a gold standard). Both entry points are pure functions of their
arguments; nothing is retained between calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from ..config import ClusteringConfig
from ..utils.logging_config import get_logger
from .bcubed import BCubed
from .bcubed import compare as _bcubed_compare
from .cancellation import CancellationToken, checkpoint
from .cluster_store import ClusterStore
from .curve_index import CurveIndexer
from .engine import ClusteringEngine, EngineStats
from .linkage import (
    LinkageEstimator,
    LinkageParameters,
    LinkageReport,
    adjacent_distances,
    estimate_cluster_counts,
)
from .neighbors import NeighborTable, find_neighbors
from .points import DistanceFn, PointsIn, as_point_matrix

logger = get_logger(__name__)


@dataclass
class PipelineResult:
    """Clustering plus the intermediate products that produced it."""

    clustering: ClusterStore
    ids: np.ndarray
    bits_per_dimension: int
    orderings: List[np.ndarray]
    neighbors: NeighborTable
    linkage: LinkageParameters
    report: LinkageReport
    engine_stats: EngineStats


def run_pipeline(
    points: PointsIn,
    cfg: ClusteringConfig,
    *,
    distance: Optional[DistanceFn] = None,
    estimator: Optional[LinkageEstimator] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> PipelineResult:
    """
    Cluster *points* and keep every intermediate result.

    Pipeline:
    1. Validate and sort points by id
    2. Order them along ``cfg.permutations`` Hilbert-curve projections
    3. Collect approximate k nearest neighbors from windows of ``cfg.window``
    4. Estimate linkage parameters (explicit overrides in *cfg* win)
    5. Merge with the single-link / density engine

    Args:
        points: Sequence of Point or an (N, D) non-negative integer array
        cfg: Run parameters (validated on construction)
        distance: Row-wise metric; Euclidean by default
        estimator: Linkage estimator; a default one when omitted
        cancel_token: Checked between permutation passes and engine passes

    Returns:
        PipelineResult whose clustering is frozen

    Raises:
        DegenerateInputError: If there are no points, or parameters cannot
            be estimated from the neighbor distances
        DimensionMismatchError: If points differ in dimension count
        NumericOverflowError: If coordinates exceed the bit depth
        ClusteringCancelledError: If the token is cancelled
    """
    cfg.validate()
    ids, X = as_point_matrix(points)
    logger.info("Clustering %d points of dimension %d", X.shape[0], X.shape[1])

    indexer = CurveIndexer(
        cfg.permutations,
        cfg.bits_per_dimension,
        cfg.seed,
        max_workers=cfg.max_workers,
    )
    bits = indexer.resolve_bits(X)
    orderings = indexer.orderings(X, cancel_token)

    neighbors = find_neighbors(
        X,
        orderings,
        cfg.k,
        cfg.window,
        distance=distance,
        max_workers=cfg.max_workers,
        cancel_token=cancel_token,
    )

    if X.shape[0] == 1:
        # A lone point has no neighbors to estimate from; it is its own cluster
        linkage = LinkageParameters(
            linkage_distance=cfg.linkage_distance or 0.0,
            density_threshold=cfg.density_threshold or 0.0,
            min_density_count=cfg.min_density_count or 1,
        )
    else:
        linkage = (estimator or LinkageEstimator()).estimate(
            neighbors,
            linkage_distance=cfg.linkage_distance,
            density_threshold=cfg.density_threshold,
            min_density_count=cfg.min_density_count,
        )
    report = estimate_cluster_counts(
        adjacent_distances(X, orderings[0], distance), linkage.linkage_distance
    )
    logger.debug(
        "Curve pass estimate: %d large clusters, %d outlier clusters (%d points)",
        report.large_cluster_count, report.outlier_cluster_count, report.outlier_count,
    )
    checkpoint(cancel_token, "linkage estimation")

    engine = ClusteringEngine(linkage, max_workers=cfg.max_workers, cancel_token=cancel_token)
    clustering = engine.cluster(neighbors, ids).freeze()

    return PipelineResult(
        clustering=clustering,
        ids=ids,
        bits_per_dimension=bits,
        orderings=orderings,
        neighbors=neighbors,
        linkage=linkage,
        report=report,
        engine_stats=engine.stats,
    )


def run(
    points: PointsIn,
    k: int,
    permutations: int,
    window: int,
    seed: int = 0,
    *,
    linkage_distance: Optional[float] = None,
    density_threshold: Optional[float] = None,
    min_density_count: Optional[int] = None,
    bits_per_dimension: Optional[int] = None,
    distance: Optional[DistanceFn] = None,
    max_workers: int = 1,
    cancel_token: Optional[CancellationToken] = None,
) -> ClusterStore:
    """
    Cluster *points* and return the frozen clustering.

    See :func:`run_pipeline` for the stages and errors. Any of the three
    linkage parameters may be given to bypass estimation.

    Raises:
        ConfigError: If k, permutations, window or an override is invalid
    """
    cfg = ClusteringConfig(
        k=k,
        permutations=permutations,
        window=window,
        seed=seed,
        bits_per_dimension=bits_per_dimension,
        linkage_distance=linkage_distance,
        density_threshold=density_threshold,
        min_density_count=min_density_count,
        max_workers=max_workers,
    )
    return run_pipeline(points, cfg, distance=distance, cancel_token=cancel_token).clustering


def compare(candidate: ClusterStore, gold: ClusterStore, alpha: float = 0.5) -> BCubed:
    """B-Cubed Precision / Recall / F-measure of *candidate* against *gold*."""
    result = _bcubed_compare(candidate, gold, alpha)
    logger.debug(
        "B-Cubed: precision=%.4f recall=%.4f fmeasure=%.4f",
        result.precision, result.recall, result.fmeasure,
    )
    return result


def compare_with_config(
    candidate: ClusterStore, gold: ClusterStore, cfg: ClusteringConfig
) -> BCubed:
    """:func:`compare` weighted by ``cfg.alpha``."""
    cfg.validate()
    return compare(candidate, gold, cfg.alpha)
