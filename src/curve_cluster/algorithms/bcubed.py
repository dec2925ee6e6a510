"""
B-Cubed similarity between a candidate clustering and a gold standard.

B-Cubed (Bagga & Baldwin, 1998) scores homogeneity as Precision and
completeness as Recall, and combines them into an F-measure:

    1/F = alpha/P + (1 - alpha)/R

    P = 1/N * sum over candidate clusters c of
            (1/|c|) * #{(x, y) in c x c : x, y share a gold category}
    R = the same with the two clusterings swapped

Amigó et al. (2009) found B-Cubed to be the only common extrinsic measure
satisfying homogeneity, completeness, rag-bag and size-vs-quantity
constraints. The plain (not the unbalanced-data adjusted) form is used here.

The double sum over pairs is computed in one pass per cluster: counting how
often each gold category occurs and summing the squared counts gives the same
number, and the running sum only needs ``+ 2v + 1`` when a count goes from v
to v + 1.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, Sequence

import numpy as np

from ..exceptions import ConfigError, DegenerateInputError, PartitionMismatchError
from .cluster_store import ClusterStore


@dataclass(frozen=True)
class BCubed:
    """
    Result of one B-Cubed comparison.

    ``alpha`` weights the two components: 0.5 weighs them equally, 1.0 uses
    Precision only, 0.0 uses Recall only.
    """

    precision: float
    recall: float
    alpha: float = 0.5

    @property
    def is_defined(self) -> bool:
        """False when Precision or Recall is zero and the F-measure has no value."""
        return self.precision > 0.0 and self.recall > 0.0

    @property
    def fmeasure(self) -> float:
        """
        Weighted harmonic mean of Precision and Recall.

        Reported as 0.0 by convention when it is undefined (see
        :attr:`is_defined`).
        """
        if not self.is_defined:
            return 0.0
        return (self.precision * self.recall) / (
            self.alpha * self.recall + (1.0 - self.alpha) * self.precision
        )

    similarity = fmeasure

    def as_dict(self) -> Dict[str, float]:
        return {
            "precision": self.precision,
            "recall": self.recall,
            "fmeasure": self.fmeasure,
            "alpha": self.alpha,
        }


def _check_alpha(alpha: float) -> None:
    if not 0.0 <= alpha <= 1.0:
        raise ConfigError(f"alpha must be in [0, 1], got {alpha}")


def tally_squares(categories: Iterable[Hashable]) -> int:
    """
    Sum of squared occurrence counts of each category, in a single pass.

    Equivalent to counting the ordered pairs of items that share a category.
    """
    sum_of_squares = 0
    tallies: Dict[Hashable, int] = {}
    for category in categories:
        v = tallies.get(category, 0)
        sum_of_squares += 2 * v + 1
        tallies[category] = v + 1
    return sum_of_squares


def _check_same_points(a: ClusterStore, b: ClusterStore) -> None:
    if a.member_count() == 0 or b.member_count() == 0:
        raise DegenerateInputError("Cannot compare empty clusterings")
    if a.member_count() != b.member_count() or set(a.point_ids()) != set(b.point_ids()):
        raise PartitionMismatchError(
            f"Clusterings do not cover the same points "
            f"({a.member_count()} vs {b.member_count()} members)"
        )


def _precision(solution: ClusterStore, gold: ClusterStore) -> float:
    weighted_sum = 0.0
    for members in solution.groups().values():
        squares = tally_squares(gold.cluster_of(m) for m in members)
        weighted_sum += squares / len(members)
    return weighted_sum / solution.member_count()


def compare(candidate: ClusterStore, gold: ClusterStore, alpha: float = 0.5) -> BCubed:
    """
    B-Cubed Precision, Recall and F-measure of *candidate* against *gold*.

    Args:
        candidate: Clustering whose quality is assessed
        gold: Gold-standard clustering of the same points
        alpha: F-measure weight in [0, 1] (default 0.5)

    Returns:
        BCubed result

    Raises:
        ConfigError: If alpha is outside [0, 1]
        DegenerateInputError: If either clustering is empty
        PartitionMismatchError: If the clusterings cover different points
    """
    _check_alpha(alpha)
    _check_same_points(candidate, gold)
    return BCubed(
        precision=_precision(candidate, gold),
        # Recall is Precision with the roles swapped
        recall=_precision(gold, candidate),
        alpha=alpha,
    )


def compare_labels(
    labels_candidate: Sequence[Hashable], labels_gold: Sequence[Hashable], alpha: float = 0.5
) -> BCubed:
    """B-Cubed between two label arrays aligned by position."""
    labels_candidate = np.asarray(labels_candidate)
    labels_gold = np.asarray(labels_gold)
    if labels_candidate.shape != labels_gold.shape:
        raise PartitionMismatchError(
            f"Label arrays differ in shape: {labels_candidate.shape} vs {labels_gold.shape}"
        )
    ids = np.arange(len(labels_candidate))
    return compare(
        ClusterStore.from_labels(ids, labels_candidate),
        ClusterStore.from_labels(ids, labels_gold),
        alpha,
    )


def bcubed_pairwise(candidate: ClusterStore, gold: ClusterStore, alpha: float = 0.5) -> BCubed:
    """
    Quadratic reference: per-item precision/recall over every pair of items.

    Only for validating :func:`compare` on small inputs.
    """
    _check_alpha(alpha)
    _check_same_points(candidate, gold)
    points = candidate.point_ids()
    precision = recall = 0.0
    for x in points:
        same_c = same_g = both = 0
        for y in points:
            in_c = candidate.are_together(x, y)
            in_g = gold.are_together(x, y)
            same_c += in_c
            same_g += in_g
            both += in_c and in_g
        precision += both / same_c
        recall += both / same_g
    n = len(points)
    return BCubed(precision=precision / n, recall=recall / n, alpha=alpha)
