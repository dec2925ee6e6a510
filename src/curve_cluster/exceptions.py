"""
Error kinds raised by the clustering core.

Configuration and input-shape problems are ``ValueError`` subclasses so that
callers catching ``ValueError`` keep working; internal consistency failures
are ``RuntimeError`` subclasses.
"""


class CurveClusterError(Exception):
    """Base class for every error raised by curve_cluster."""


class ConfigError(CurveClusterError, ValueError):
    """Invalid k, permutation count, window, alpha or bit depth."""


class NumericOverflowError(ConfigError):
    """Coordinate or index value not representable at the declared bit depth."""


class DimensionMismatchError(CurveClusterError, ValueError):
    """Points in the same run have differing (or unsupported) dimension counts."""


class DegenerateInputError(CurveClusterError, ValueError):
    """No points, or a distance distribution with nothing to estimate from."""


class PartitionMismatchError(CurveClusterError, ValueError):
    """Two clusterings being compared do not partition the same point ids."""


class InvariantViolationError(CurveClusterError, RuntimeError):
    """A ClusterStore mutation would break the partition invariant."""


class ClusteringCancelledError(CurveClusterError):
    """A long-running job observed its cancellation token."""
