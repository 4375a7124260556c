#!/usr/bin/env python3
"""
Cluster Partition Store

Owns cluster membership for the farthest-neighbor merge procedure. Every
entity lives in exactly one slot; slots are created once from an initial
1-based labeling, never removed and never recycled, so final labels can refer
to the original slot ids directly.

Version: 0.1.0
Date: 2026-10-18
Author: CloneForge developers
License: CC BY-NC 4.0
"""

from typing import List, Sequence, Tuple

import numpy as np

from .errors import AllocationFailure, InvalidLabel

# ======================================================================================
# Partition Store
# ======================================================================================

class Partition:
    """
    Slot-indexed cluster membership.

    A partition over n entities has n slots. Slot ``s`` holds the entities whose
    initial label was ``s + 1``; slots that receive no entities start empty.
    An emptied slot is inert: it never takes part in another scan or merge.

    Examples:
    ---------
    >>> partition = Partition.from_labels([1, 1, 3])
    >>> partition.n_clusters
    2
    >>> partition.merge(0, 2)
    >>> partition.members(0)
    (0, 1, 2)
    >>> partition.labels().tolist()
    [1, 1, 1]
    """

    def __init__(self, n: int):
        try:
            self._slots: List[List[int]] = [[] for _ in range(n)]
        except MemoryError as e:
            raise AllocationFailure(f"Could not allocate {n} cluster slots.") from e
        self.n_clusters = 0

    @classmethod
    def from_labels(cls, labels: Sequence[int]) -> 'Partition':
        """
        Build a partition from 1-based labels, placing entity i in slot labels[i] - 1.

        Args:
            labels: One positive integer label per entity, each in [1, n]

        Returns:
            Partition: New partition with ``n_clusters`` set to the number of
            distinct labels

        Raises:
            InvalidLabel: If any label falls outside [1, n]
            AllocationFailure: If slot storage cannot be allocated
        """
        n = len(labels)
        partition = cls(n)
        for entity, label in enumerate(labels):
            label = int(label)
            if label < 1 or label > n:
                raise InvalidLabel(f"Label {label} of entity {entity} is outside [1, {n}].")
            slot = partition._slots[label - 1]
            slot.append(entity)
            if len(slot) == 1:
                partition.n_clusters += 1
        return partition

    def __len__(self) -> int:
        return len(self._slots)

    def members(self, slot: int) -> Tuple[int, ...]:
        """Entity indices in ``slot``, in insertion order."""
        return tuple(self._slots[slot])

    def size(self, slot: int) -> int:
        return len(self._slots[slot])

    def is_empty(self, slot: int) -> bool:
        return not self._slots[slot]

    def live_slots(self) -> List[int]:
        """Ascending ids of all non-empty slots."""
        return [slot for slot, members in enumerate(self._slots) if members]

    def merge(self, winner: int, loser: int) -> None:
        """
        Move every member of ``loser`` to the end of ``winner`` and empty ``loser``.

        Args:
            winner: Slot that absorbs the other
            loser: Slot that is emptied and becomes permanently inert

        Raises:
            ValueError: If the slots are the same or either one is empty
        """
        if winner == loser:
            raise ValueError(f"Cannot merge slot {winner} with itself.")
        if self.is_empty(winner) or self.is_empty(loser):
            raise ValueError(f"Cannot merge empty slot ({winner}, {loser}).")
        self._slots[winner].extend(self._slots[loser])
        self._slots[loser] = []
        self.n_clusters -= 1

    def labels(self) -> np.ndarray:
        """
        Encode the partition as 1-based labels, one per entity.

        Label values are ``slot + 1``. Empty slots never appear, so the result
        may use a sparse subset of [1, n].
        """
        out = np.zeros(len(self._slots), dtype=int)
        for slot, members in enumerate(self._slots):
            if members:
                out[members] = slot + 1
        return out
