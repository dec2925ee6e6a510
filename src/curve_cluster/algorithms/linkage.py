"""
Linkage-distance and density-threshold estimation.

The linkage distance is found by looking for the first sudden jump ("elbow")
in the sorted first-neighbor distances, the way a person would eyeball it on
a plot: pairs inside a cluster are close, pairs across clusters are far, and
few distances fall in between. When several indicators disagree the smaller
value wins; failing to merge is cheaper than merging what does not belong
together.

The density threshold is a quantile of each point's distance to its
``min_density_count``-th neighbor.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from ..exceptions import ConfigError, DegenerateInputError
from ..utils.logging_config import get_logger
from .neighbors import NeighborTable
from .points import Array2D, DistanceFn, euclidean_rows

logger = get_logger(__name__)


@dataclass(frozen=True)
class LinkageParameters:
    """Thresholds that drive the clustering engine."""

    linkage_distance: float
    density_threshold: float
    min_density_count: int

    def __post_init__(self):
        for name in ("linkage_distance", "density_threshold"):
            value = getattr(self, name)
            if value is None or not (value >= 0):  # rejects NaN too
                raise ConfigError(f"{name} must be a non-negative number, got {value}")
        if self.min_density_count is None or self.min_density_count < 1:
            raise ConfigError(
                f"min_density_count must be >= 1, got {self.min_density_count}"
            )


ESTIMATION_METHODS = ("sort", "binning")

# Geometric growth of successive bin tops, and the first bin's top as a
# fraction of the largest distance
BIN_GROWTH = 1.05
LOWEST_BIN_FRACTION = 1e-4


@dataclass
class DistanceBin:
    """A run of consecutive raw bins ``first..last`` covering ``[start, end)``."""

    first: int
    last: int
    start: float
    end: float
    count: int = 0
    lowest: float = math.inf
    highest: float = -math.inf

    def merge(self, higher: "DistanceBin") -> "DistanceBin":
        return DistanceBin(
            first=self.first,
            last=higher.last,
            start=self.start,
            end=higher.end,
            count=self.count + higher.count,
            lowest=min(self.lowest, higher.lowest),
            highest=max(self.highest, higher.highest),
        )

    def average_spread(self) -> float:
        """Mean gap between consecutive values; the bin width when it holds <= 1."""
        if self.count <= 1:
            return self.end - self.start
        return (self.highest - self.lowest) / (self.count - 1)

    def value_before_jump(self, values: np.ndarray, previous_highest: float) -> float:
        """Value just before the largest step in sorted *values*, counting the step in."""
        if self.count == 0:
            return self.start
        if self.count <= 2:
            return self.lowest
        series = np.concatenate([[previous_highest], values])
        return float(series[int(np.argmax(np.diff(series)))])


def make_bin_edges(
    top_of_lowest_bin: float,
    top_of_highest_bin: float,
    minimum_bin_width: float,
    multiplier: float = BIN_GROWTH,
) -> np.ndarray:
    """
    Edges of bins from zero up past *top_of_highest_bin*.

    Each bin top is the previous one times *multiplier* (at least 1.001),
    widened to *minimum_bin_width* where needed. Bin ``i`` is
    ``[edges[i], edges[i + 1])``.
    """
    if top_of_lowest_bin <= 0:
        raise ConfigError(f"top_of_lowest_bin must be > 0, got {top_of_lowest_bin}")
    multiplier = max(multiplier, 1.001)
    edges = [0.0, float(top_of_lowest_bin)]
    top = top_of_lowest_bin * multiplier
    while top < top_of_highest_bin:
        if top - edges[-1] < minimum_bin_width:
            top = edges[-1] + minimum_bin_width
        edges.append(top)
        top *= multiplier
    edges.append(top)
    return np.asarray(edges, dtype=np.float64)


def bin_stats(values: np.ndarray, raw: np.ndarray, edges: np.ndarray) -> List[DistanceBin]:
    """Count / lowest / highest of *values* per raw bin index, without sorting."""
    n_bins = len(edges) - 1
    counts = np.bincount(raw, minlength=n_bins)
    lowest = np.full(n_bins, np.inf)
    highest = np.full(n_bins, -np.inf)
    np.minimum.at(lowest, raw, values)
    np.maximum.at(highest, raw, values)
    return [
        DistanceBin(i, i, float(edges[i]), float(edges[i + 1]), int(counts[i]),
                    float(lowest[i]), float(highest[i]))
        for i in range(n_bins)
    ]


def consolidate_bins(bins: List[DistanceBin], minimum_size: int) -> List[DistanceBin]:
    """Merge each run of under-filled bins into the next until it holds *minimum_size*."""
    out: List[DistanceBin] = []
    held: Optional[DistanceBin] = None
    for b in bins:
        if held is not None:
            b = held.merge(b)
            held = None
        if b.count >= minimum_size:
            out.append(b)
        else:
            held = b
    if held is not None:
        out.append(held)
    return out


class _GrowthStats:
    """Tracks where a sorted distance series grows fastest."""

    def __init__(self):
        self.index_of_max_increase = 0
        self.index_of_max_ratio = 0
        self.index_of_max_both = 0
        self.max_increase = 0.0
        self.max_ratio = 0.0

    def accumulate(self, index: int, previous: float, value: float) -> None:
        if previous <= 0.0:
            return
        delta = value - previous
        ratio = value / previous
        both_high = True
        if delta > self.max_increase:
            self.max_increase = delta
            self.index_of_max_increase = index
        else:
            both_high = False
        if ratio > self.max_ratio:
            self.max_ratio = ratio
            self.index_of_max_ratio = index
        else:
            both_high = False
        if both_high:
            self.index_of_max_both = index

    def index_of_max_change(self, low: int, high: int) -> int:
        """Best guess index, conservative when the indicators disagree."""
        conservative = low + (high - low) * 3 // 4
        if self.index_of_max_both > high:
            return high
        if self.index_of_max_both > conservative:
            return self.index_of_max_both
        if self.index_of_max_ratio < conservative:
            return max(min(high, self.index_of_max_increase), low)
        if self.index_of_max_increase < conservative:
            return max(min(high, self.index_of_max_ratio), low)
        return min(high, self.index_of_max_increase, self.index_of_max_ratio)


class LinkageEstimator:
    """
    Derives :class:`LinkageParameters` from neighbor lists.

    Args:
        noise_skip_by: Compare each sorted distance with the one this many
            places (plus one) earlier, to keep noise from faking a jump
        minimum_cluster_count: Never pick an index closer than this to the
            top of the series; default ``max(10, sqrt(N)/2)`` capped at N/4
        lowest_index: Ignore jumps below this index; default N/2
        fallback_quantile: Quantile used when the series is too short
        density_quantile: Quantile of the m-th neighbor distances used as the
            density radius
        method: ``"sort"`` (exact elbow over the sorted series) or
            ``"binning"`` (linear-time, coarser; see :meth:`find_by_binning`)
    """

    def __init__(
        self,
        *,
        noise_skip_by: int = 5,
        minimum_cluster_count: Optional[int] = None,
        lowest_index: Optional[int] = None,
        fallback_quantile: float = 0.5,
        density_quantile: float = 0.5,
        method: str = "sort",
    ):
        if method not in ESTIMATION_METHODS:
            raise ConfigError(f"method must be one of {ESTIMATION_METHODS}, got {method!r}")
        if noise_skip_by < 0:
            raise ConfigError(f"noise_skip_by must be >= 0, got {noise_skip_by}")
        for name, q in (("fallback_quantile", fallback_quantile), ("density_quantile", density_quantile)):
            if not 0.0 <= q <= 1.0:
                raise ConfigError(f"{name} must be in [0, 1], got {q}")
        self.noise_skip_by = noise_skip_by
        self.minimum_cluster_count = minimum_cluster_count
        self.lowest_index = lowest_index
        self.fallback_quantile = fallback_quantile
        self.density_quantile = density_quantile
        self.method = method

    def find_linkage_distance(self, distances: np.ndarray) -> float:
        """
        Elbow of an unsorted distance series.

        With ``method="sort"`` the series is sorted and scanned between
        ``lowest_index`` and ``N - minimum_cluster_count`` for the index where
        it grows fastest. The returned value is the last distance before the
        largest single step near that index, so it stays on the "within
        cluster" side of the jump. ``method="binning"`` uses
        :meth:`find_by_binning` instead. Short series fall back to
        ``fallback_quantile``.

        Raises:
            DegenerateInputError: If the series is empty or constant
        """
        d = np.asarray(distances, dtype=np.float64).ravel()
        d = d[np.isfinite(d)]
        if len(d) == 0:
            raise DegenerateInputError("No neighbor distances to estimate a linkage distance from")
        if d.min() == d.max():
            raise DegenerateInputError(
                "All neighbor distances are identical; supply explicit linkage parameters"
            )
        if self.method == "binning":
            return self.find_by_binning(d)
        return self._find_by_sorting(np.sort(d))

    def _fallback(self, d: np.ndarray) -> float:
        value = float(np.quantile(d, self.fallback_quantile))
        logger.debug(
            "Distance series too short for elbow detection (m=%d); using q%.2f = %g",
            len(d), self.fallback_quantile, value,
        )
        return value

    def _find_by_sorting(self, d: np.ndarray) -> float:
        m = len(d)
        mcc = self.minimum_cluster_count
        if mcc is None:
            mcc = min(max(10, int(math.sqrt(m) / 2.0)), m // 4)
        low = m // 2 if self.lowest_index is None else self.lowest_index
        skip = self.noise_skip_by
        start = 1 + skip + low
        high = m - mcc

        if start >= high:
            return self._fallback(d)

        stats = _GrowthStats()
        for i in range(start, high):
            stats.accumulate(i, d[i - 1 - skip], d[i])
        index = min(stats.index_of_max_change(low, high), m - 1)
        # The skip-by comparison lands up to skip places past the jump; back
        # up to the last distance before the largest single step.
        lo = max(0, index - 1 - skip)
        steps = np.diff(d[lo:index + 1])
        if len(steps) and steps.max() > 0:
            value = float(d[lo + int(np.argmax(steps))])
        else:
            value = float(d[index])
        logger.debug("Elbow at index %d of %d: linkage distance %g", index, m, value)
        return value

    def find_by_binning(self, distances: np.ndarray) -> float:
        """
        Linear-time elbow search over logarithmically sized bins.

        Distances are bucketed into bins that widen by 5% each, sparse runs of
        bins are consolidated, and the bin whose average spread jumps the most
        is picked the same way the sorting method picks an index. Only that
        bin is sorted; the value before its largest step is returned.

        Faster than sorting the whole series but less exact.
        """
        d = np.asarray(distances, dtype=np.float64).ravel()
        d = d[np.isfinite(d)]
        m = len(d)
        minimum_size = max(5, self.noise_skip_by)
        if m < 2 * minimum_size:
            return self._fallback(d)

        top = float(d.max())
        lowest_top = top * LOWEST_BIN_FRACTION
        edges = make_bin_edges(lowest_top, top, lowest_top, BIN_GROWTH)
        raw = np.clip(np.searchsorted(edges, d, side="right") - 1, 0, len(edges) - 2)
        bins = consolidate_bins(bin_stats(d, raw, edges), minimum_size)

        low = m // 2 if self.lowest_index is None else self.lowest_index
        max_increase = max_ratio = 0.0
        index_of_max_increase = index_of_max_ratio = 0
        bin_of_max_increase = bin_of_max_ratio = 0
        cume = 0
        for i, b in enumerate(bins):
            spread = b.average_spread()
            previous_spread = bins[i - 1].average_spread() if i else 0.0
            if spread - previous_spread > max_increase:
                max_increase = spread - previous_spread
                index_of_max_increase = cume
                bin_of_max_increase = i
            if previous_spread > 0 and cume >= low:
                ratio = spread / previous_spread
                if ratio > max_ratio:
                    max_ratio = ratio
                    index_of_max_ratio = cume
                    bin_of_max_ratio = i
                    if cume > m // 2 and max_ratio > 5.0:
                        break
            cume += b.count

        # Agreeing indicators win; an early ratio peak is usually tiny values
        # looking large relative to each other, and late in the series only
        # the ratio still stands out.
        if index_of_max_increase == index_of_max_ratio or index_of_max_ratio < m // 2:
            chosen = bin_of_max_increase
        else:
            chosen = bin_of_max_ratio

        b = bins[chosen]
        if chosen and bins[chosen - 1].count:
            previous_highest = bins[chosen - 1].highest
        else:
            previous_highest = b.start
        values = np.sort(d[(raw >= b.first) & (raw <= b.last)])
        value = b.value_before_jump(values, previous_highest)
        logger.debug(
            "Binned elbow in bin %d of %d (%d values): linkage distance %g",
            chosen, len(bins), b.count, value,
        )
        return value

    def find_density_threshold(self, table: NeighborTable, min_density_count: int) -> float:
        """Quantile of every point's ``min_density_count``-th neighbor distance."""
        j = min(min_density_count, table.k)
        kth = table.kth_distances(j)
        kth = kth[np.isfinite(kth)]
        if len(kth) == 0:
            kth = table.first_distances()
        if len(kth) == 0:
            raise DegenerateInputError("No neighbor distances to estimate a density threshold from")
        return float(np.quantile(kth, self.density_quantile))

    def estimate(
        self,
        table: NeighborTable,
        *,
        linkage_distance: Optional[float] = None,
        density_threshold: Optional[float] = None,
        min_density_count: Optional[int] = None,
    ) -> LinkageParameters:
        """
        Estimate the parameters not supplied as overrides.

        Args:
            table: Neighbor lists of every point
            linkage_distance: Explicit linkage distance (skips estimation)
            density_threshold: Explicit density radius (skips estimation)
            min_density_count: Explicit core-point count; default ``ceil(k/2)``

        Returns:
            LinkageParameters

        Raises:
            DegenerateInputError: If a parameter must be estimated but all
                neighbor distances are identical (or there are none)
            ConfigError: If an override is negative
        """
        if min_density_count is None:
            min_density_count = max(1, math.ceil(table.k / 2))
        if linkage_distance is None or density_threshold is None:
            finite = table.distances[np.isfinite(table.distances)]
            if len(finite) == 0 or finite.min() == finite.max():
                raise DegenerateInputError(
                    "All neighbor distances are identical; supply explicit linkage parameters"
                )
        if linkage_distance is None:
            linkage_distance = self.find_linkage_distance(table.first_distances())
        if density_threshold is None:
            density_threshold = self.find_density_threshold(table, min_density_count)

        params = LinkageParameters(
            linkage_distance=float(linkage_distance),
            density_threshold=float(density_threshold),
            min_density_count=int(min_density_count),
        )
        logger.info(
            "Linkage parameters: distance=%g, density radius=%g, min density count=%d",
            params.linkage_distance, params.density_threshold, params.min_density_count,
        )
        return params


def estimate_linkage(table: NeighborTable, **overrides) -> LinkageParameters:
    """Estimate parameters with a default :class:`LinkageEstimator`."""
    return LinkageEstimator().estimate(table, **overrides)


# ------------------------------------------------------------------
# Rough cluster-count estimate along a curve ordering
# ------------------------------------------------------------------


@dataclass(frozen=True)
class LinkageReport:
    """
    Upper-bound cluster counts from one pass along a curve ordering.

    Runs of consecutive points whose adjacent distances stay within the
    linkage distance are counted as clusters; runs no larger than the
    outlier size count as outlier clusters. Experiment shows the large
    cluster count tends to be 1.5x to 3x the true number.
    """

    linkage_distance: float
    count_of_too_large_distances: int
    large_cluster_count: int
    outlier_cluster_count: int
    outlier_count: int


def adjacent_distances(
    X: Array2D, ordering: np.ndarray, distance: Optional[DistanceFn] = None
) -> np.ndarray:
    """Distances between consecutive points of *ordering* (length N-1)."""
    distance = distance or euclidean_rows
    ordering = np.asarray(ordering, dtype=np.int64)
    if len(ordering) < 2:
        return np.empty(0, dtype=np.float64)
    return np.asarray(distance(X[ordering[:-1]], X[ordering[1:]]), dtype=np.float64)


def estimate_cluster_counts(
    ordering_distances: np.ndarray, linkage_distance: float, outlier_cluster_size: int = 10
) -> LinkageReport:
    """
    Estimate how many clusters and outliers one curve pass would produce.

    Args:
        ordering_distances: Distances between consecutive points in curve
            order (not sorted by distance)
        linkage_distance: Largest distance that keeps two points together
        outlier_cluster_size: Runs of at most this many points are outliers
    """
    if linkage_distance < 0:
        raise ConfigError(f"linkage_distance must be >= 0, got {linkage_distance}")
    gaps = np.asarray(ordering_distances, dtype=np.float64)
    n = len(gaps) + 1
    breaks = np.nonzero(gaps > linkage_distance)[0] + 1
    sizes = np.diff(np.concatenate([[0], breaks, [n]]))
    outliers = sizes <= outlier_cluster_size
    return LinkageReport(
        linkage_distance=float(linkage_distance),
        count_of_too_large_distances=int(len(breaks)),
        large_cluster_count=int((~outliers).sum()),
        outlier_cluster_count=int(outliers.sum()),
        outlier_count=int(sizes[outliers].sum()),
    )
