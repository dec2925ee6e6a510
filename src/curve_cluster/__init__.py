"""
curve_cluster - Core Package

Flat clustering of high-dimensional integer point sets using Hilbert-curve
orderings to find approximate nearest neighbors in near-linear time.

This package provides:
- Algorithm layer: curve indexing, neighbor search, linkage estimation,
  clustering engine, partition store and B-Cubed evaluation
- Configuration from the environment
- Logging setup
"""

__version__ = "0.1.0"

from .algorithms import ClusterStore, Point, compare, compare_with_config, run, run_pipeline
from .exceptions import (
    CurveClusterError,
    ConfigError,
    DegenerateInputError,
    DimensionMismatchError,
    InvariantViolationError,
    NumericOverflowError,
    PartitionMismatchError,
    ClusteringCancelledError,
)

# Explicitly import subpackages to ensure they're discoverable
from . import algorithms
from . import utils

__all__ = [
    "ClusterStore",
    "Point",
    "compare",
    "compare_with_config",
    "run",
    "run_pipeline",
    "CurveClusterError",
    "ConfigError",
    "DegenerateInputError",
    "DimensionMismatchError",
    "InvariantViolationError",
    "NumericOverflowError",
    "PartitionMismatchError",
    "ClusteringCancelledError",
    "algorithms",
    "utils",
]
