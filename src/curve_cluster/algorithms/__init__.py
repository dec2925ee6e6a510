"""
Algorithm Core Library - curve-indexed approximate-neighbor clustering.

This module provides the clustering pipeline (curve orderings, approximate
neighbor search, linkage estimation, merge engine), the partition data
structure and B-Cubed evaluation. Designed for reuse and testing.
"""

from .points import Point, as_point_matrix, bits_required, euclidean_rows
from .cancellation import CancellationToken
from .curve_index import CurveIndexer, Permutation, make_permutations, hilbert_sort
from .neighbors import (
    NeighborTable,
    find_neighbors,
    brute_force_neighbors,
    neighbor_recall,
)
from .linkage import (
    LinkageEstimator,
    LinkageParameters,
    LinkageReport,
    estimate_linkage,
    estimate_cluster_counts,
)
from .cluster_store import ClusterStore, Clustering
from .engine import ClusteringEngine, EngineStats, UnionFind
from .bcubed import BCubed, compare_labels, bcubed_pairwise
from .pipeline import PipelineResult, run, run_pipeline, compare, compare_with_config

__all__ = [
    # Points
    "Point",
    "as_point_matrix",
    "bits_required",
    "euclidean_rows",
    "CancellationToken",
    # Curve index
    "CurveIndexer",
    "Permutation",
    "make_permutations",
    "hilbert_sort",
    # Neighbor search
    "NeighborTable",
    "find_neighbors",
    "brute_force_neighbors",
    "neighbor_recall",
    # Linkage
    "LinkageEstimator",
    "LinkageParameters",
    "LinkageReport",
    "estimate_linkage",
    "estimate_cluster_counts",
    # Clustering
    "ClusterStore",
    "Clustering",
    "ClusteringEngine",
    "EngineStats",
    "UnionFind",
    # Evaluation
    "BCubed",
    "compare_labels",
    "bcubed_pairwise",
    # Pipeline orchestration
    "PipelineResult",
    "run",
    "run_pipeline",
    "compare",
    "compare_with_config",
]
