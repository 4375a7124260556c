#!/usr/bin/env python3
"""
Input Preparation for Farthest-Neighbor Clustering

Utilities that turn caller-supplied distance structures and label vectors into
the validated numpy arrays the merge procedure consumes. Accepts square
matrices (numpy, nested lists or pandas DataFrames) as well as condensed
distance vectors produced by `scipy.spatial.distance.pdist`.

Version: 0.1.0
Date: 2026-10-18
Author: CloneForge developers
License: CC BY-NC 4.0
"""

import warnings
from multiprocessing import cpu_count
from typing import Any, Sequence, Union

import numpy as np
import pandas as pd
from scipy.spatial.distance import squareform

from .errors import InvalidDimensions, InvalidDistance, InvalidLabel

# ======================================================================================
# Performance and Multiprocessing Utilities
# ======================================================================================

def select_n_jobs(n_jobs: int, verbose: bool = False) -> int:
    """
    Determine the number of parallel jobs to use.

    Args:
        n_jobs: Number of jobs to run in parallel:
               - None or 0: Use single-core (serial execution)
               - -1: Use all available CPU cores
               - -2: Use all cores except one
               - Positive integer: Use specified number of cores
        verbose: Report the core usage decision

    Returns:
        int: Number of cores to use, never exceeding system capacity

    Examples:
        >>> select_n_jobs(0)
        1
        >>> select_n_jobs(-1) == cpu_count()
        True
    """
    total_cores = cpu_count()

    if n_jobs is None or n_jobs == 0:
        return 1

    if n_jobs < 0:
        jobs = max(1, total_cores + 1 + n_jobs)
        if verbose:
            if jobs < total_cores:
                print(f"Using {jobs} out of {total_cores} available CPU cores.")
            else:
                print(f"Using all {total_cores} CPU cores.")
        return jobs

    if n_jobs > total_cores:
        warnings.warn(
            f"n_jobs ({n_jobs}) exceeds available cores ({total_cores}). Using all cores instead."
        )
        return total_cores

    return n_jobs

# ======================================================================================
# Input Validation
# ======================================================================================

def prepare_distance_matrix(
    distance_matrix: Union[np.ndarray, pd.DataFrame, Sequence[Any]],
    verbose: bool = False
) -> np.ndarray:
    """
    Validate and normalise a distance matrix.

    Args:
        distance_matrix: Square (n, n) matrix, pandas DataFrame, or a 1-D
            condensed distance vector as returned by `pdist`.
        verbose: Enable detailed output

    Returns:
        np.ndarray: Read-only float64 array of shape (n, n)

    Raises:
        InvalidDimensions: If the input is not a square 2-D matrix (or a valid
            condensed vector)
        InvalidDistance: If any value is NaN, infinite or negative

    Notes:
        - The diagonal is never read by the clustering and is not checked
        - Asymmetric matrices are accepted with a warning; a pair of clusters
          is always measured with the higher-numbered cluster's members as rows
          (R column-major order)

    Examples:
        >>> from scipy.spatial.distance import pdist
        >>> points = np.array([[0.0], [1.0], [5.0]])
        >>> prepare_distance_matrix(pdist(points)).shape
        (3, 3)
    """
    if isinstance(distance_matrix, pd.DataFrame):
        distance_matrix = distance_matrix.values

    try:
        dist = np.array(distance_matrix, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidDimensions(f"Distance matrix could not be read as a numeric array: {e}") from e

    if dist.ndim == 1:
        try:
            dist = squareform(dist, checks=False)
        except ValueError as e:
            raise InvalidDimensions(f"Invalid condensed distance vector: {e}") from e
        if verbose:
            print(f" - Expanded condensed distances to a {dist.shape[0]}x{dist.shape[1]} matrix.")

    if dist.ndim != 2 or dist.shape[0] != dist.shape[1]:
        raise InvalidDimensions(f"Distance matrix must be square, got shape {dist.shape}.")

    # Only off-diagonal cells are ever compared
    off_diagonal = ~np.eye(dist.shape[0], dtype=bool)
    values = dist[off_diagonal]
    if not np.isfinite(values).all():
        raise InvalidDistance("Distance matrix contains NaN or infinite values.")
    if (values < 0).any():
        raise InvalidDistance("Distance matrix contains negative values.")

    if not np.array_equal(dist[off_diagonal], dist.T[off_diagonal]):
        warnings.warn("Distance matrix is not symmetric; higher-numbered clusters index the rows.")

    dist.setflags(write=False)
    return dist


def prepare_labels(initial_labels: Sequence[Any], n: int) -> np.ndarray:
    """
    Validate an initial 1-based cluster labeling against n entities.

    Raises:
        InvalidDimensions: If the number of labels differs from n
        InvalidLabel: If a label is not an integer in [1, n]
    """
    labels = np.asarray(initial_labels)
    if labels.ndim != 1 or labels.shape[0] != n:
        raise InvalidDimensions(
            f"Expected {n} labels to match the distance matrix, got shape {labels.shape}."
        )
    if n == 0:
        return labels.astype(int)

    if labels.dtype.kind not in 'iuf':
        raise InvalidLabel(f"Labels must be numeric, got dtype {labels.dtype}.")
    if labels.dtype.kind == 'f':
        if not np.isfinite(labels).all() or (labels != np.floor(labels)).any():
            raise InvalidLabel("Labels must be whole numbers.")

    labels = labels.astype(np.int64)
    bad = np.flatnonzero((labels < 1) | (labels > n))
    if bad.size > 0:
        raise InvalidLabel(
            f"Label {labels[bad[0]]} at position {bad[0]} is outside [1, {n}]."
        )
    return labels
