#!/usr/bin/env python3
"""
Complete-Linkage Distances and Closest-Pair Search

Implements the farthest-neighbor distance between two clusters and the search
for the globally closest pair of live clusters. Two search strategies share one
tie-break rule so they always agree:

- `scan_closest_pair` recomputes every pairwise cluster distance from scratch,
  optionally fanning the rows out over a multiprocessing pool.
- `LinkageCache` keeps a table of cluster distances and only refreshes the
  merged cluster's row after each merge.

Tie-break: pairs are visited in ascending (i, j) order with i < j and a pair
replaces the current best only when its distance is strictly smaller.

Version: 0.1.0
Date: 2026-10-18
Author: CloneForge developers
License: CC BY-NC 4.0
"""

from multiprocessing.pool import Pool
from typing import List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from .errors import AllocationFailure
from .partition import Partition

# Distance matrix shared with pool workers, set once by `init_scan_worker`
_WORKER_DISTANCES: Optional[np.ndarray] = None

# ======================================================================================
# Pairwise Cluster Distance
# ======================================================================================

class ClosestPair(NamedTuple):
    slot_a: int
    slot_b: int
    distance: float


def cluster_distance(
    members_a: Sequence[int],
    members_b: Sequence[int],
    distance_matrix: np.ndarray
) -> Optional[float]:
    """
    Complete-linkage (farthest-neighbor) distance between two clusters.

    Args:
        members_a: Entity indices of the lower-numbered cluster (indexes matrix columns)
        members_b: Entity indices of the higher-numbered cluster (indexes matrix rows)
        distance_matrix: Square (n, n) entity distance matrix

    Returns:
        Optional[float]: The largest distance between a member of each cluster,
        or None when either cluster is empty and no pair exists

    Examples:
        >>> dist = np.array([[0, 1, 4], [1, 0, 2], [4, 2, 0]], dtype=float)
        >>> cluster_distance([0], [1, 2], dist)
        4.0
        >>> cluster_distance([], [1], dist) is None
        True
    """
    if len(members_a) == 0 or len(members_b) == 0:
        return None
    # Higher-numbered cluster indexes the rows, as in an R column-major read
    return float(distance_matrix[np.ix_(members_b, members_a)].max())

# ======================================================================================
# Full Re-scan Strategy
# ======================================================================================

def _best_pair_in_rows(
    rows: Sequence[int],
    slots: Sequence[int],
    members: Sequence[Tuple[int, ...]],
    distance_matrix: np.ndarray
) -> Optional[ClosestPair]:
    """Closest pair whose first slot is at one of the positions in ``rows``."""
    best = None
    for pos in rows:
        for other in range(pos + 1, len(slots)):
            distance = cluster_distance(members[pos], members[other], distance_matrix)
            if distance is None:
                continue
            if best is None or distance < best.distance:
                best = ClosestPair(slots[pos], slots[other], distance)
    return best


def init_scan_worker(distance_matrix: np.ndarray) -> None:
    """Pool initializer: keep the distance matrix in the worker process."""
    global _WORKER_DISTANCES
    _WORKER_DISTANCES = distance_matrix


def _scan_worker(args: Tuple) -> Optional[ClosestPair]:
    rows, slots, members = args
    return _best_pair_in_rows(rows, slots, members, _WORKER_DISTANCES)


def _reduce_pairs(candidates: List[Optional[ClosestPair]]) -> Optional[ClosestPair]:
    """Combine per-chunk winners in ascending row order with strict-less replacement."""
    best = None
    for candidate in candidates:
        if candidate is None:
            continue
        if best is None or candidate.distance < best.distance:
            best = candidate
    return best


def scan_closest_pair(
    partition: Partition,
    distance_matrix: np.ndarray,
    pool: Optional[Pool] = None,
    n_chunks: int = 8
) -> Optional[ClosestPair]:
    """
    Find the closest pair of live clusters by recomputing every pair.

    Args:
        partition: Current cluster membership
        distance_matrix: Square (n, n) entity distance matrix
        pool: Optional multiprocessing pool started with `init_scan_worker`;
              rows are split into contiguous chunks and scored in parallel
        n_chunks: Number of contiguous row chunks handed to the pool

    Returns:
        Optional[ClosestPair]: Pair with the minimal complete-linkage distance
        (earliest in ascending (i, j) order among ties), or None when fewer
        than two live clusters remain

    Notes:
        - Cost is O(live pairs x member pairs), up to O(n^4) on singletons
        - Parallel and serial scans return identical pairs
    """
    slots = partition.live_slots()
    if len(slots) < 2:
        return None
    members = [partition.members(slot) for slot in slots]

    if pool is None:
        return _best_pair_in_rows(range(len(slots)), slots, members, distance_matrix)

    # Last slot has no pairs of its own
    chunks = [chunk.tolist() for chunk in np.array_split(np.arange(len(slots) - 1), n_chunks) if chunk.size]
    tasks = [(rows, slots, members) for rows in chunks]
    return _reduce_pairs(pool.map(_scan_worker, tasks))

# ======================================================================================
# Cached Strategy
# ======================================================================================

class LinkageCache:
    """
    Table of complete-linkage distances between live clusters.

    Entry (i, j) with i < j holds the distance between slots i and j measured
    with slot j's members as rows. After a merge only the winner's distances
    are recomputed and the loser is dropped, so each search is a single pass
    over the table instead of a full member-pair re-scan.

    Examples:
    ---------
    >>> dist = np.array([[0, 1, 3], [1, 0, 2], [3, 2, 0]], dtype=float)
    >>> partition = Partition.from_labels([1, 2, 3])
    >>> cache = LinkageCache(partition, dist)
    >>> cache.closest_pair()
    ClosestPair(slot_a=0, slot_b=1, distance=1.0)
    >>> partition.merge(0, 1)
    >>> cache.update(0, 1)
    >>> cache.closest_pair()
    ClosestPair(slot_a=0, slot_b=2, distance=3.0)
    """

    def __init__(self, partition: Partition, distance_matrix: np.ndarray):
        n = len(partition)
        try:
            self._table = np.full((n, n), np.inf)
            self._valid = np.zeros((n, n), dtype=bool)
        except MemoryError as e:
            raise AllocationFailure(f"Could not allocate a {n}x{n} linkage table.") from e
        self.partition = partition
        self.distance_matrix = distance_matrix

        slots = partition.live_slots()
        for pos, slot_a in enumerate(slots):
            for slot_b in slots[pos + 1:]:
                self._refresh(slot_a, slot_b)

    def _refresh(self, slot_a: int, slot_b: int) -> None:
        distance = cluster_distance(
            self.partition.members(slot_a),
            self.partition.members(slot_b),
            self.distance_matrix,
        )
        if distance is None:
            self._valid[slot_a, slot_b] = False
            self._table[slot_a, slot_b] = np.inf
        else:
            self._valid[slot_a, slot_b] = True
            self._table[slot_a, slot_b] = distance

    def closest_pair(self) -> Optional[ClosestPair]:
        """Minimal cached pair; row-major first minimum keeps the ascending (i, j) tie-break."""
        if not self._valid.any():
            return None
        masked = np.where(self._valid, self._table, np.inf)
        slot_a, slot_b = np.unravel_index(int(np.argmin(masked)), masked.shape)
        return ClosestPair(int(slot_a), int(slot_b), float(self._table[slot_a, slot_b]))

    def update(self, winner: int, loser: int) -> None:
        """
        Refresh the table after ``loser`` was merged into ``winner`` in the partition.
        """
        self._valid[loser, :] = False
        self._valid[:, loser] = False
        self._table[loser, :] = np.inf
        self._table[:, loser] = np.inf

        for other in self.partition.live_slots():
            if other == winner:
                continue
            self._refresh(min(winner, other), max(winner, other))
