"""
Mutable flat partition of point ids into clusters.

Every public method leaves the store in a valid partition: each point id is in
exactly one live cluster and no live cluster is empty. Point ids are
integers; cluster ids are any hashable, sortable label ("A", 3, ...), and
only integer ids are handed out by :meth:`ClusterStore.add_to_new_cluster`.
The real point data lives elsewhere.

Merge policy: :meth:`ClusterStore.merge_clusters` always keeps the FIRST
cluster id and retires the second.

Not thread-safe; concurrent writers must go through a single owner.
"""

from __future__ import annotations

from typing import (
    Dict, Hashable, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Union,
)

import numpy as np

from ..exceptions import InvariantViolationError


class ClusterStore:
    """
    Partition of point ids into non-overlapping clusters.

    Args:
        first_cluster_id: First id handed out by :meth:`add_to_new_cluster`
    """

    def __init__(self, first_cluster_id: int = 0):
        self._member_to_cluster: Dict[int, int] = {}
        self._clusters: Dict[int, Set[int]] = {}
        self._next_id = first_cluster_id
        self._frozen = False

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    @classmethod
    def uncategorized(cls, point_ids: Iterable[int]) -> "ClusterStore":
        """Every point in its own singleton cluster."""
        store = cls()
        for pid in point_ids:
            store.add_to_new_cluster(pid)
        return store

    @classmethod
    def from_groups(
        cls, groups: Union[Mapping[Hashable, Iterable[int]], Iterable[Iterable[int]]]
    ) -> "ClusterStore":
        """
        Build from groups of point ids.

        A mapping keeps its keys as cluster ids; any other iterable of groups
        is numbered 0, 1, 2, ...
        """
        store = cls()
        items = groups.items() if isinstance(groups, Mapping) else enumerate(groups)
        for cid, members in items:
            for pid in members:
                store.add_point(cid, int(pid))
        return store

    @classmethod
    def from_labels(cls, point_ids: Sequence[int], labels: Sequence) -> "ClusterStore":
        """
        Build from parallel id / label sequences.

        Labels may be of any sortable type; cluster ids are their ranks in
        sorted label order.
        """
        point_ids = np.asarray(point_ids)
        labels = np.asarray(labels)
        if point_ids.shape != labels.shape:
            raise ValueError(
                f"point_ids and labels must have the same shape; got "
                f"{point_ids.shape} and {labels.shape}"
            )
        _, inverse = np.unique(labels, return_inverse=True)
        store = cls()
        for pid, cid in zip(point_ids.tolist(), inverse.ravel().tolist()):
            store.add_point(int(cid), int(pid))
        return store

    @classmethod
    def from_delimited_string(cls, text: str) -> "ClusterStore":
        """
        Parse ``"1,2,3;4,5,6;7"``: commas separate members, semicolons clusters.

        Clusters are numbered sequentially from 0. Handy for test fixtures.
        """
        groups = []
        for chunk in text.split(";"):
            chunk = chunk.strip()
            if not chunk:
                continue
            groups.append([int(m) for m in chunk.split(",")])
        return cls.from_groups(groups)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def cluster_of(self, point_id: int) -> int:
        """Cluster id holding *point_id*. Raises KeyError if it is not clustered."""
        try:
            return self._member_to_cluster[point_id]
        except KeyError:
            raise KeyError(f"Point {point_id} is not in the clustering") from None

    def size(self, cluster_id: int) -> int:
        return len(self._cluster(cluster_id))

    def members(self, cluster_id: int) -> frozenset:
        return frozenset(self._cluster(cluster_id))

    def list_clusters(self) -> List[int]:
        """Live cluster ids in ascending order."""
        return sorted(self._clusters)

    def groups(self) -> Dict[int, frozenset]:
        return {cid: frozenset(m) for cid, m in self._clusters.items()}

    def point_ids(self) -> List[int]:
        return sorted(self._member_to_cluster)

    def contains_point(self, point_id: int) -> bool:
        return point_id in self._member_to_cluster

    def contains_cluster(self, cluster_id: int) -> bool:
        return cluster_id in self._clusters

    def are_together(self, point_a: int, point_b: int) -> bool:
        """True when both points are clustered and share a cluster."""
        a = self._member_to_cluster.get(point_a)
        return a is not None and a == self._member_to_cluster.get(point_b)

    def cluster_count(self) -> int:
        return len(self._clusters)

    def member_count(self) -> int:
        return len(self._member_to_cluster)

    def cluster_sizes(self) -> List[int]:
        """Sizes of all clusters, largest first."""
        return sorted((len(m) for m in self._clusters.values()), reverse=True)

    def to_labels(self, point_ids: Optional[Sequence[int]] = None) -> np.ndarray:
        """Cluster id per point, for *point_ids* or every point in ascending id order."""
        if point_ids is None:
            point_ids = self.point_ids()
        return np.array([self.cluster_of(int(p)) for p in point_ids])

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_point(self, cluster_id: int, point_id: int) -> bool:
        """
        Put an unclustered point into *cluster_id*, creating the cluster if needed.

        Returns:
            True if the point was added, False if it was already in that cluster.

        Raises:
            InvariantViolationError: If the point already belongs to another cluster
        """
        self._check_mutable()
        current = self._member_to_cluster.get(point_id)
        if current is not None:
            if current == cluster_id:
                return False
            raise InvariantViolationError(
                f"Point {point_id} is already in cluster {current}; "
                f"use recategorize to move it to {cluster_id}"
            )
        self._clusters.setdefault(cluster_id, set()).add(point_id)
        self._member_to_cluster[point_id] = cluster_id
        if isinstance(cluster_id, int) and cluster_id >= self._next_id:
            self._next_id = cluster_id + 1
        return True

    def add_to_new_cluster(self, point_id: int) -> int:
        """Create a fresh singleton cluster for *point_id* and return its id."""
        self._check_mutable()
        while self._next_id in self._clusters:
            self._next_id += 1
        cluster_id = self._next_id
        self.add_point(cluster_id, point_id)
        return cluster_id

    def remove_point(self, point_id: int) -> bool:
        """
        Drop a point; its cluster is deleted if that leaves it empty.

        Returns:
            True if the point was removed, False if it was not clustered.
        """
        self._check_mutable()
        cluster_id = self._member_to_cluster.pop(point_id, None)
        if cluster_id is None:
            return False
        members = self._clusters[cluster_id]
        members.discard(point_id)
        if not members:
            del self._clusters[cluster_id]
        return True

    def merge_clusters(self, keep_id: int, retire_id: int) -> int:
        """
        Move every member of *retire_id* into *keep_id* and delete *retire_id*.

        Returns:
            *keep_id*

        Raises:
            KeyError: If either cluster does not exist
        """
        self._check_mutable()
        keep = self._cluster(keep_id)
        if keep_id == retire_id:
            return keep_id
        retire = self._cluster(retire_id)
        for pid in retire:
            self._member_to_cluster[pid] = keep_id
        keep.update(retire)
        del self._clusters[retire_id]
        return keep_id

    def merge_points(self, point_a: int, point_b: int) -> bool:
        """
        Put two points (and everything clustered with them) together.

        Unclustered points are added to the other's cluster, or to a new
        cluster when neither is clustered. The cluster of *point_a* survives.

        Returns:
            False if they were already together, True otherwise.
        """
        self._check_mutable()
        a = self._member_to_cluster.get(point_a)
        b = self._member_to_cluster.get(point_b)
        if a is not None and b is not None:
            if a == b:
                return False
            self.merge_clusters(a, b)
        elif a is not None:
            self.add_point(a, point_b)
        elif b is not None:
            self.add_point(b, point_a)
        else:
            cid = self.add_to_new_cluster(point_a)
            if point_b != point_a:
                self.add_point(cid, point_b)
        return True

    def recategorize(self, point_id: int, new_cluster_id: int) -> bool:
        """
        Move one point into an existing cluster, leaving its old mates behind.

        An unclustered point is simply added. The old cluster is deleted if
        the move empties it.

        Returns:
            True if a change was made, False if it was already there.

        Raises:
            KeyError: If *new_cluster_id* does not exist. Nothing is changed
                and False is never returned for this case.
        """
        self._check_mutable()
        target = self._cluster(new_cluster_id)
        current = self._member_to_cluster.get(point_id)
        if current == new_cluster_id:
            return False
        if current is not None:
            old = self._clusters[current]
            old.discard(point_id)
            if not old:
                del self._clusters[current]
        target.add(point_id)
        self._member_to_cluster[point_id] = new_cluster_id
        return True

    def freeze(self) -> "ClusterStore":
        """Reject further mutation. Returns self."""
        self._frozen = True
        return self

    def copy(self) -> "ClusterStore":
        """Mutable deep copy."""
        other = ClusterStore()
        other._member_to_cluster = dict(self._member_to_cluster)
        other._clusters = {cid: set(m) for cid, m in self._clusters.items()}
        other._next_id = self._next_id
        return other

    def check_invariants(self) -> None:
        """
        Verify the partition property.

        Raises:
            InvariantViolationError: Describing the first inconsistency found
        """
        seen = 0
        for cid, members in self._clusters.items():
            if not members:
                raise InvariantViolationError(f"Cluster {cid} is empty")
            for pid in members:
                if self._member_to_cluster.get(pid) != cid:
                    raise InvariantViolationError(
                        f"Point {pid} listed in cluster {cid} but indexed under "
                        f"{self._member_to_cluster.get(pid)}"
                    )
            seen += len(members)
        if seen != len(self._member_to_cluster):
            raise InvariantViolationError(
                f"{len(self._member_to_cluster)} points indexed but {seen} held in clusters"
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cluster(self, cluster_id: int) -> Set[int]:
        try:
            return self._clusters[cluster_id]
        except KeyError:
            raise KeyError(f"No cluster with id {cluster_id}") from None

    def _check_mutable(self) -> None:
        if self._frozen:
            raise InvariantViolationError("Clustering is frozen; mutate a copy() instead")

    def __len__(self) -> int:
        return len(self._member_to_cluster)

    def __contains__(self, point_id: object) -> bool:
        return point_id in self._member_to_cluster

    def __iter__(self) -> Iterator[int]:
        return iter(self.list_clusters())

    def __eq__(self, other: object) -> bool:
        """Equal when both hold the same partition, whatever the cluster ids."""
        if not isinstance(other, ClusterStore):
            return NotImplemented
        return set(map(frozenset, self._clusters.values())) == set(
            map(frozenset, other._clusters.values())
        )

    __hash__ = None

    def __repr__(self) -> str:
        lines = [f"Clustering {self.member_count()} members into {self.cluster_count()} clusters"]
        for cid in self.list_clusters():
            members = ",".join(str(m) for m in sorted(self._clusters[cid]))
            lines.append(f"  cluster {cid} ({len(self._clusters[cid])}): {members}")
        return "\n".join(lines)


Clustering = ClusterStore
