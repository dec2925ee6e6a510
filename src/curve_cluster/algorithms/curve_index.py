"""
Space-filling-curve orderings of high-dimensional points.

Each :class:`Permutation` reorders (and optionally reflects) the axes before
the Hilbert index is computed, so different permutations expose different
neighbourhoods along the 1-D curve. The Hilbert transform itself comes from
the ``hilbertcurve`` library.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from hilbertcurve.hilbertcurve import HilbertCurve

from ..exceptions import ConfigError
from ..utils.logging_config import get_logger
from .cancellation import CancellationToken, checkpoint
from .points import Array2D, bits_required, check_bit_depth

logger = get_logger(__name__)

CurveIndexFn = Callable[[Array2D, int], Sequence[int]]


@dataclass(frozen=True)
class Permutation:
    """A fixed reordering of the axes plus a set of reflected axes."""

    axes: Tuple[int, ...]
    flips: Tuple[bool, ...]

    @property
    def is_identity(self) -> bool:
        return self.axes == tuple(range(len(self.axes))) and not any(self.flips)

    def apply(self, X: Array2D, bits_per_dimension: int) -> Array2D:
        """Reorder columns of *X* and reflect flipped axes within the B-bit range."""
        Y = X[:, list(self.axes)].copy()
        flipped = np.nonzero(np.asarray(self.flips, dtype=bool))[0]
        if len(flipped):
            top = (1 << bits_per_dimension) - 1
            Y[:, flipped] = top - Y[:, flipped]
        return Y


def make_permutations(
    dimensions: int, count: int, seed: int = 0, *, rotate: bool = True
) -> List[Permutation]:
    """
    Generate *count* permutations of *dimensions* axes.

    Permutation 0 is the identity. Permutation ``i`` is drawn from
    ``default_rng([seed, i])`` so it does not depend on *count*: the first P
    permutations are the same whether 2 or 20 are requested.

    Args:
        dimensions: Number of axes D
        count: Number of permutations P
        seed: Seed for the deterministic random source
        rotate: Also reflect a random subset of axes

    Raises:
        ConfigError: If count < 1 or dimensions < 1
    """
    if count < 1:
        raise ConfigError(f"permutations must be >= 1, got {count}")
    if dimensions < 1:
        raise ConfigError(f"dimensions must be >= 1, got {dimensions}")

    perms = [Permutation(tuple(range(dimensions)), (False,) * dimensions)]
    for i in range(1, count):
        rng = np.random.default_rng([seed, i])
        axes = tuple(int(a) for a in rng.permutation(dimensions))
        if rotate:
            flips = tuple(bool(f) for f in rng.random(dimensions) < 0.5)
        else:
            flips = (False,) * dimensions
        perms.append(Permutation(axes, flips))
    return perms


def hilbert_indices(X: Array2D, bits_per_dimension: int) -> List[int]:
    """Hilbert curve index of every row of *X* (arbitrary-precision ints)."""
    curve = HilbertCurve(bits_per_dimension, X.shape[1])
    return list(curve.distances_from_points(X.tolist()))


def order_by_index(indices: Sequence[int]) -> np.ndarray:
    """Positions sorted by curve index; equal indices keep ascending position."""
    return np.array(sorted(range(len(indices)), key=indices.__getitem__), dtype=np.int64)


class CurveIndexer:
    """
    Produces P independent curve orderings of a point set.

    Args:
        permutations: Number of permutations P (>= 1)
        bits_per_dimension: Bits per coordinate B; ``None`` picks the
            smallest depth that represents the data
        seed: Seed for permutation generation
        rotate: Reflect random axes in permutations after the first
        max_workers: Threads used to run permutation passes in parallel
        curve_index: ``(X, bits) -> indices`` override; defaults to Hilbert
    """

    def __init__(
        self,
        permutations: int,
        bits_per_dimension: Optional[int] = None,
        seed: int = 0,
        *,
        rotate: bool = True,
        max_workers: int = 1,
        curve_index: Optional[CurveIndexFn] = None,
    ):
        if permutations < 1:
            raise ConfigError(f"permutations must be >= 1, got {permutations}")
        if bits_per_dimension is not None and bits_per_dimension < 1:
            raise ConfigError(
                f"bits_per_dimension must be >= 1, got {bits_per_dimension}"
            )
        if max_workers < 1:
            raise ConfigError(f"max_workers must be >= 1, got {max_workers}")
        self.permutation_count = permutations
        self.bits_per_dimension = bits_per_dimension
        self.seed = seed
        self.rotate = rotate
        self.max_workers = max_workers
        self.curve_index = curve_index or hilbert_indices

    def resolve_bits(self, X: Array2D) -> int:
        """Bit depth for *X*, validated against the coordinate range."""
        bits = self.bits_per_dimension or bits_required(X)
        check_bit_depth(X, bits)
        return bits

    def orderings(
        self, X: Array2D, cancel_token: Optional[CancellationToken] = None
    ) -> List[np.ndarray]:
        """
        Sort point positions along each permutation's curve.

        Args:
            X: (N, D) non-negative integer coordinates
            cancel_token: Checked before every permutation pass

        Returns:
            List of P int64 arrays, each a permutation of ``0..N-1``

        Raises:
            NumericOverflowError: If B cannot represent the coordinates
            ClusteringCancelledError: If the token is cancelled
        """
        bits = self.resolve_bits(X)
        perms = make_permutations(X.shape[1], self.permutation_count, self.seed, rotate=self.rotate)
        logger.info(
            "Indexing %d points (D=%d, B=%d) along %d curve permutations",
            X.shape[0], X.shape[1], bits, len(perms),
        )

        def one_pass(numbered: Tuple[int, Permutation]) -> np.ndarray:
            i, perm = numbered
            checkpoint(cancel_token, f"curve permutation {i}")
            order = order_by_index(self.curve_index(perm.apply(X, bits), bits))
            logger.debug("Permutation %d ordered (identity=%s)", i, perm.is_identity)
            return order

        if self.max_workers == 1 or len(perms) == 1:
            orders = [one_pass(item) for item in enumerate(perms)]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                orders = list(pool.map(one_pass, enumerate(perms)))
        checkpoint(cancel_token, "curve indexing")
        return orders


def hilbert_sort(X: Array2D, bits_per_dimension: Optional[int] = None) -> np.ndarray:
    """Single ordering of *X* along the unpermuted Hilbert curve."""
    return CurveIndexer(1, bits_per_dimension).orderings(X)[0]
