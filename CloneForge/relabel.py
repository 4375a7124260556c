#!/usr/bin/env python3
"""
Optional Label Post-processing

The merge procedure returns raw slot labels: 1-based, possibly sparse and in
no particular order. These helpers produce a cleaner labeling for reporting.
They are never applied by the clustering itself.

Version: 0.1.0
Date: 2026-10-18
Author: CloneForge developers
License: CC BY-NC 4.0
"""

from typing import Sequence

import numpy as np
import pandas as pd


def cluster_sizes(labels: Sequence[int]) -> pd.Series:
    """
    Number of entities carrying each label, indexed by label in ascending order.

    Examples:
        >>> cluster_sizes([4, 1, 4]).to_dict()
        {1: 1, 4: 2}
    """
    return pd.Series(np.asarray(labels)).value_counts().sort_index()


def compact_labels(
    labels: Sequence[int],
    order_by_size: bool = False
) -> np.ndarray:
    """
    Renumber surviving clusters onto a dense range 1..k.

    Args:
        labels: Cluster labels as returned by `farthest_neighbor`
        order_by_size: Number clusters from largest to smallest instead of by
                       ascending original label; equal sizes keep label order

    Returns:
        np.ndarray: Labels in [1, k] where k is the number of distinct clusters

    Examples:
        >>> compact_labels([1, 1, 4, 7]).tolist()
        [1, 1, 2, 3]
        >>> compact_labels([1, 4, 4, 7], order_by_size=True).tolist()
        [2, 1, 1, 3]
    """
    labels = np.asarray(labels)
    if labels.size == 0:
        return labels.astype(int)

    sizes = cluster_sizes(labels)
    if order_by_size:
        # Stable sort keeps ascending label order within equal sizes
        sizes = sizes.sort_values(ascending=False, kind='mergesort')

    mapping = pd.Series(np.arange(1, len(sizes) + 1), index=sizes.index)
    return mapping.loc[labels].to_numpy(dtype=int)
