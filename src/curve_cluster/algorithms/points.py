"""
Point representation, input validation and the distance primitive.

Points arrive either as a sequence of :class:`Point` or as an ``(N, D)``
integer array. Both are normalised to ``(ids, X)`` sorted by id, which is the
canonical order every other module works in: position ``i`` in any array is
the ``i``-th smallest point id.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence, Tuple, Union

import numpy as np

from ..exceptions import (
    ConfigError,
    DegenerateInputError,
    DimensionMismatchError,
    NumericOverflowError,
)

Array2D = np.ndarray
DistanceFn = Callable[[np.ndarray, np.ndarray], np.ndarray]

MAX_DIMENSIONS = 10_000
MAX_BITS_PER_DIMENSION = 62  # coordinates are held as int64


@dataclass(frozen=True)
class Point:
    """A point to be clustered: caller-assigned id plus integer coordinates."""

    id: int
    coordinates: Tuple[int, ...]

    def __post_init__(self):
        object.__setattr__(self, "coordinates", tuple(int(c) for c in self.coordinates))

    @property
    def dimensions(self) -> int:
        return len(self.coordinates)


PointsIn = Union[Sequence[Point], Sequence[Sequence[int]], np.ndarray]


def as_point_matrix(points: PointsIn) -> Tuple[np.ndarray, Array2D]:
    """
    Normalise input points to ``(ids, X)`` in ascending id order.

    Accepts:
    - np.ndarray of shape (N, D) -> ids are ``0..N-1``
    - sequence of :class:`Point` -> ids taken from the points
    - sequence of coordinate rows -> treated like an array, ids ``0..N-1``

    Args:
        points: Input points

    Returns:
        Tuple of:
        - ids: int64 array of shape (N,), strictly ascending
        - X: int64 array of shape (N, D), rows aligned with ids

    Raises:
        DegenerateInputError: If there are no points
        DimensionMismatchError: If dimension counts differ or exceed 10,000
        NumericOverflowError: If a coordinate is negative or not integral
        ConfigError: If two points share an id
    """
    if isinstance(points, np.ndarray):
        if points.ndim != 2:
            raise DimensionMismatchError(
                f"Point array must be 2-D (N, D); got shape {points.shape}"
            )
        if points.shape[0] == 0:
            raise DegenerateInputError("Cannot cluster an empty point set (N = 0)")
        ids = np.arange(points.shape[0], dtype=np.int64)
        X = _integral(points)
    else:
        points = list(points)
        if not points:
            raise DegenerateInputError("Cannot cluster an empty point set (N = 0)")
        if not all(isinstance(p, Point) for p in points):
            if any(isinstance(p, Point) for p in points):
                raise DimensionMismatchError(
                    "Pass either Point objects or coordinate rows, not a mix of both"
                )
            try:
                rows = np.asarray(points)
            except ValueError as e:
                raise DimensionMismatchError(
                    f"Coordinate rows must all have the same length: {e}"
                ) from e
            return as_point_matrix(rows)
        d = points[0].dimensions
        for p in points:
            if p.dimensions != d:
                raise DimensionMismatchError(
                    f"Point {p.id} has {p.dimensions} dimensions, expected {d}"
                )
        ids = np.array([p.id for p in points], dtype=np.int64)
        X = _integral(np.array([p.coordinates for p in points]).reshape(len(points), d))
        order = np.argsort(ids, kind="stable")
        ids = ids[order]
        X = X[order]
        dup = np.nonzero(ids[1:] == ids[:-1])[0]
        if len(dup):
            raise ConfigError(f"Duplicate point id {int(ids[dup[0]])}")

    n, d = X.shape
    if d < 1 or d > MAX_DIMENSIONS:
        raise DimensionMismatchError(
            f"Dimension count must be in [1, {MAX_DIMENSIONS}], got {d}"
        )
    if (X < 0).any():
        raise NumericOverflowError("Coordinates must be non-negative integers")
    return ids, X


def _integral(a: np.ndarray) -> Array2D:
    """Convert to int64, rejecting non-integral values."""
    a = np.asarray(a)
    if a.dtype.kind in "iu":
        if a.dtype.kind == "u" and a.size and int(a.max()) > np.iinfo(np.int64).max:
            raise NumericOverflowError("Coordinate exceeds the int64 range")
        return a.astype(np.int64, copy=False)
    if a.dtype.kind == "b":
        return a.astype(np.int64)
    if a.dtype.kind == "f":
        if not np.all(np.isfinite(a)) or not np.all(a == np.floor(a)):
            raise NumericOverflowError("Coordinates must be finite integral values")
        if a.size and float(np.abs(a).max()) >= 2.0 ** 63:
            raise NumericOverflowError("Coordinate exceeds the int64 range")
        return a.astype(np.int64)
    raise NumericOverflowError(f"Unsupported coordinate dtype: {a.dtype}")


def bits_required(X: Array2D) -> int:
    """Smallest bit depth B >= 1 with ``2**B`` greater than every coordinate."""
    max_coord = int(X.max()) if X.size else 0
    return max(1, max_coord.bit_length())


def check_bit_depth(X: Array2D, bits_per_dimension: int) -> None:
    """
    Verify that every coordinate fits in *bits_per_dimension* bits.

    Raises:
        ConfigError: If the depth is outside [1, 62]
        NumericOverflowError: If a coordinate is >= 2**bits_per_dimension
    """
    if bits_per_dimension < 1 or bits_per_dimension > MAX_BITS_PER_DIMENSION:
        raise ConfigError(
            f"bits_per_dimension must be in [1, {MAX_BITS_PER_DIMENSION}], "
            f"got {bits_per_dimension}"
        )
    needed = bits_required(X)
    if needed > bits_per_dimension:
        raise NumericOverflowError(
            f"bits_per_dimension ({bits_per_dimension}) cannot represent the "
            f"coordinate range; at least {needed} bits are required"
        )


def euclidean_rows(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    """Row-wise Euclidean distance between two (m, D) arrays."""
    diff = A.astype(np.float64) - B.astype(np.float64)
    return np.sqrt(np.einsum("md,md->m", diff, diff))


def pairwise_distances(X: Array2D, distance: DistanceFn | None = None) -> np.ndarray:
    """Full (N, N) distance matrix. Quadratic; for references and small inputs."""
    n = X.shape[0]
    distance = distance or euclidean_rows
    rows, cols = np.triu_indices(n, k=1)
    dist = np.zeros((n, n), dtype=np.float64)
    vals = np.asarray(distance(X[rows], X[cols]), dtype=np.float64)
    dist[rows, cols] = vals
    dist[cols, rows] = vals
    return dist
