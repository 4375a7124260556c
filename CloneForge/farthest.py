#!/usr/bin/env python3
"""
Farthest-Neighbor Clustering of Pre-clustered Entities

Merges an existing partition of entities (for example multilocus genotypes
called by an upstream step) whenever two clusters are closer than a threshold
under complete linkage. Each iteration finds the globally closest pair of
clusters, merges it into the lower-numbered cluster, and repeats until no pair
is closer than the threshold or a single cluster remains.

Output labels are the 1-based ids of the surviving clusters. They are not
renumbered, so a result may skip values; see `relabel.compact_labels` for a
dense variant.

Version: 0.1.0
Date: 2026-10-18
Author: CloneForge developers
License: CC BY-NC 4.0
"""

import time
import warnings
from concurrent.futures import ProcessPoolExecutor, as_completed
from multiprocessing import Pool
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import silhouette_score
from tqdm import tqdm

from .linkage import ClosestPair, LinkageCache, init_scan_worker, scan_closest_pair
from .matrix import prepare_distance_matrix, prepare_labels, select_n_jobs
from .partition import Partition
from .relabel import compact_labels

# ======================================================================================
# Constants and Configuration
# ======================================================================================

STRATEGIES = {
    'rescan': 'Recompute every cluster pair after each merge',
    'cached': 'Keep a cluster distance table and refresh only the merged row',
}

DEFAULT_PARAMS = {
    'strategy': 'rescan',
    'n_jobs': 1,
    'compact': False,
    'order_by_size': False,
}


class MergeStep(NamedTuple):
    winner: int
    loser: int
    distance: float

# ======================================================================================
# Merge Controller
# ======================================================================================

def _prepare_threshold(threshold: float) -> float:
    threshold = float(threshold)
    if np.isnan(threshold):
        raise ValueError("Threshold must be a number, got NaN.")
    return threshold


def _check_strategy(strategy: str) -> None:
    if strategy not in STRATEGIES:
        raise ValueError(
            f"Strategy '{strategy}' not available. Available: {list(STRATEGIES.keys())}"
        )


def _merge_loop(
    partition: Partition,
    threshold: float,
    find_pair: Callable[[], Optional[ClosestPair]],
    on_merge: Optional[Callable[[int, int], None]],
    verbose: bool
) -> List[MergeStep]:
    history = []
    while partition.n_clusters > 1:
        pair = find_pair()
        if pair is None or not pair.distance < threshold:
            break
        winner, loser = min(pair.slot_a, pair.slot_b), max(pair.slot_a, pair.slot_b)
        partition.merge(winner, loser)
        if on_merge is not None:
            on_merge(winner, loser)
        history.append(MergeStep(winner, loser, pair.distance))
        if verbose:
            print(f" - Merged cluster {loser + 1} into {winner + 1} at distance {pair.distance:.4g}"
                  f" ({partition.n_clusters} clusters left)")
    return history


def run_merges(
    partition: Partition,
    distance_matrix: np.ndarray,
    threshold: float,
    strategy: str = 'rescan',
    n_jobs: int = 1,
    verbose: bool = False
) -> List[MergeStep]:
    """
    Merge clusters of ``partition`` in place until none are closer than ``threshold``.

    Args:
        partition: Cluster membership to update
        distance_matrix: Validated square (n, n) distance matrix
        threshold: Clusters merge only when their distance is strictly below this
        strategy: 'rescan' or 'cached' (see STRATEGIES); both give identical results
        n_jobs: Workers for the 'rescan' pair search (1 for serial, -1 for all cores)
        verbose: Print every merge

    Returns:
        List[MergeStep]: Merges in the order they happened, with 0-based slot ids

    Raises:
        ValueError: If strategy is unknown
    """
    _check_strategy(strategy)

    if strategy == 'cached':
        cache = LinkageCache(partition, distance_matrix)
        return _merge_loop(partition, threshold, cache.closest_pair, cache.update, verbose)

    num_workers = select_n_jobs(n_jobs, verbose=verbose)
    if num_workers > 1 and partition.n_clusters > 2:
        with Pool(
            processes=num_workers,
            initializer=init_scan_worker,
            initargs=(distance_matrix,)
        ) as pool:
            return _merge_loop(
                partition, threshold,
                lambda: scan_closest_pair(partition, distance_matrix, pool=pool, n_chunks=4 * num_workers),
                None, verbose
            )

    return _merge_loop(
        partition, threshold,
        lambda: scan_closest_pair(partition, distance_matrix),
        None, verbose
    )


def farthest_neighbor(
    distance_matrix: Any,
    initial_labels: Sequence[int],
    threshold: float,
    strategy: str = 'rescan',
    n_jobs: int = 1,
    verbose: bool = False
) -> np.ndarray:
    """
    Merge pre-clustered entities by complete linkage below a distance threshold.

    Args:
        distance_matrix: Symmetric (n, n) matrix of non-negative distances, a
            DataFrame, or a condensed vector from `pdist`; the diagonal is unused
        initial_labels: n positive integer labels in [1, n]
        threshold: Two clusters merge when their farthest pair is strictly closer
        strategy: 'rescan' (reference) or 'cached' (faster, identical output)
        n_jobs: Workers for the 'rescan' pair search
        verbose: Enable detailed output

    Returns:
        np.ndarray: Final 1-based labels, one per entity. Labels are ids of the
        surviving clusters and may be sparse (not renumbered to 1..k)

    Raises:
        InvalidDimensions: If the matrix is not square or does not match the labels
        InvalidLabel: If a label is outside [1, n]
        InvalidDistance: If the matrix holds NaN, infinite or negative values
        AllocationFailure: If bookkeeping memory cannot be allocated
        ValueError: If strategy is unknown or threshold is NaN

    Examples:
        >>> dist = np.array([[0, 1, 5, 5],
        ...                  [1, 0, 5, 5],
        ...                  [5, 5, 0, 1],
        ...                  [5, 5, 1, 0]], dtype=float)
        >>> farthest_neighbor(dist, [1, 2, 3, 4], threshold=2).tolist()
        [1, 1, 3, 3]
    """
    dist = prepare_distance_matrix(distance_matrix, verbose=verbose)
    labels = prepare_labels(initial_labels, dist.shape[0])
    threshold = _prepare_threshold(threshold)
    _check_strategy(strategy)

    partition = Partition.from_labels(labels)
    if verbose:
        print(f" - Starting with {partition.n_clusters} clusters over {len(partition)} entities"
              f" (threshold = {threshold}, strategy = {strategy}).")

    run_merges(partition, dist, threshold, strategy=strategy, n_jobs=n_jobs, verbose=verbose)
    return partition.labels()

# ==============================================================================
# Main Clustering Class
# ==============================================================================

class FarthestNeighborClustering:
    """
    Threshold-based farthest-neighbor merging of an existing clustering.

    Wraps `farthest_neighbor` with stored configuration, keeps the merge history
    of the last run, and offers quality assessment and strategy benchmarking.

    Examples:
    ---------
    >>> clusterer = FarthestNeighborClustering(threshold=0.5)
    >>> labels = clusterer.fit_predict(dist, initial_labels)
    >>> print(f"{clusterer.n_clusters_} clusters after {len(clusterer.merge_history_)} merges")

    >>> # Dense labels ordered from largest to smallest cluster
    >>> clusterer = FarthestNeighborClustering(
    ...     threshold=0.5,
    ...     strategy='cached',
    ...     compact=True,
    ...     order_by_size=True
    ... )
    >>> labels = clusterer.fit_predict(dist)
    """

    def __init__(
        self,
        threshold: float,
        strategy: str = 'rescan',
        n_jobs: int = 1,
        compact: bool = False,
        order_by_size: bool = False,
        verbose: bool = False,
    ):
        """
        Args:
            threshold: Merge threshold (strict less-than)
            strategy: Closest-pair search strategy, 'rescan' or 'cached'
            n_jobs: Workers for the 'rescan' search
            compact: Renumber final clusters onto 1..k
            order_by_size: With ``compact``, number clusters from largest to smallest
            verbose: Enable detailed output

        Raises:
            ValueError: If strategy is unknown or threshold is NaN
        """
        self.threshold = _prepare_threshold(threshold)
        self.strategy = strategy
        self.n_jobs = n_jobs
        self.compact = compact
        self.order_by_size = order_by_size
        self.verbose = verbose
        self._validate_strategy()

        self.labels_ = None
        self.merge_history_ = None
        self.n_clusters_ = None

    @classmethod
    def from_params(cls, threshold: float, params: Optional[Dict[str, Any]] = None) -> 'FarthestNeighborClustering':
        """Build from a parameter dict merged over DEFAULT_PARAMS."""
        merged = {**DEFAULT_PARAMS, **(params or {})}
        return cls(threshold=threshold, **merged)

    def _validate_strategy(self):
        if self.strategy not in STRATEGIES:
            raise ValueError(
                f"Strategy '{self.strategy}' not available. "
                f"Available: {list(STRATEGIES.keys())}"
            )

    def get_available_strategies(self) -> Dict[str, str]:
        return dict(STRATEGIES)

    def fit_predict(
        self,
        distance_matrix: Any,
        initial_labels: Optional[Sequence[int]] = None
    ) -> np.ndarray:
        """
        Run the merge procedure and return the final labels.

        Args:
            distance_matrix: Square distance matrix (or condensed vector)
            initial_labels: Starting 1-based labels; every entity starts in its
                            own cluster when omitted

        Returns:
            np.ndarray: Final labels, raw slot ids unless ``compact`` is set
        """
        dist = prepare_distance_matrix(distance_matrix, verbose=self.verbose)
        n = dist.shape[0]
        if initial_labels is None:
            initial_labels = np.arange(1, n + 1)
        labels = prepare_labels(initial_labels, n)

        partition = Partition.from_labels(labels)
        if self.verbose:
            print(f" - Starting with {partition.n_clusters} clusters over {n} entities.")

        self.merge_history_ = run_merges(
            partition, dist, self.threshold,
            strategy=self.strategy, n_jobs=self.n_jobs, verbose=self.verbose
        )
        self.n_clusters_ = partition.n_clusters

        result = partition.labels()
        if self.compact:
            result = compact_labels(result, order_by_size=self.order_by_size)
        self.labels_ = result
        return result

    def assess_quality(
        self,
        distance_matrix: Any,
        labels: Optional[Sequence[int]] = None
    ) -> float:
        """
        Silhouette score of a labeling on the precomputed distances.

        Args:
            distance_matrix: Distances the labels were computed from
            labels: Labels to assess (default: labels of the last fit)

        Returns:
            float: Silhouette score in [-1, 1], or NaN when the labeling has
            fewer than 2 or more than n - 1 clusters

        Raises:
            ValueError: If no labels are given and nothing has been fitted yet
        """
        if labels is None:
            labels = self.labels_
        if labels is None:
            raise ValueError("No labels to assess; call fit_predict first or pass labels.")

        dist = np.array(prepare_distance_matrix(distance_matrix))
        np.fill_diagonal(dist, 0.0)
        labels = np.asarray(labels)

        n_labels = len(np.unique(labels))
        if n_labels < 2 or n_labels > len(labels) - 1:
            return np.nan
        return float(silhouette_score(dist, labels, metric='precomputed'))

    def benchmark(
        self,
        distance_matrix: Any,
        initial_labels: Optional[Sequence[int]] = None,
        strategies: List[str] = None,
        n_repeats: int = 1
    ) -> pd.DataFrame:
        """
        Time each search strategy on the same input.

        Returns:
            pd.DataFrame: One row per strategy with columns
                          strategy, n_clusters, time_sec
        """
        if strategies is None:
            strategies = list(STRATEGIES.keys())

        results = []
        original_strategy = self.strategy
        try:
            for strategy in strategies:
                self.strategy = strategy
                self._validate_strategy()
                times = []
                for _ in range(n_repeats):
                    start_time = time.time()
                    self.fit_predict(distance_matrix, initial_labels)
                    times.append(time.time() - start_time)
                results.append({
                    'strategy': strategy,
                    'n_clusters': self.n_clusters_,
                    'time_sec': float(np.mean(times)),
                })
        finally:
            self.strategy = original_strategy

        return pd.DataFrame(results)

# ==============================================================================
# Batch Processing Utilities
# ==============================================================================

def _for_single_group(
    group: str,
    distance_matrix: Any,
    initial_labels: Optional[Sequence[int]],
    threshold: float,
    params: Dict[str, Any],
) -> Tuple[str, Optional[np.ndarray]]:
    """
    Cluster one group's distance matrix; failures are reported and map to None.
    """
    try:
        clusterer = FarthestNeighborClustering.from_params(threshold, params)
        return group, clusterer.fit_predict(distance_matrix, initial_labels)
    except (ValueError, MemoryError) as e:
        warnings.warn(f"Clustering failed for group '{group}': {e}")
        return group, None


def all_groups(
    dist_dict: Dict[str, Any],
    threshold: float,
    labels_dict: Optional[Dict[str, Sequence[int]]] = None,
    clustering_params: Optional[Dict[str, Any]] = None,
    verbose: bool = False,
    n_jobs: int = -1
) -> Dict[str, Optional[np.ndarray]]:
    """
    Run farthest-neighbor clustering independently on many groups.

    Typical use is one distance matrix per population, each clustered with the
    same threshold.

    Args:
        dist_dict: Mapping of group name to distance matrix
        threshold: Merge threshold shared by all groups
        labels_dict: Optional mapping of group name to initial labels; groups
                     without an entry start with every entity on its own
        clustering_params: Options merged over DEFAULT_PARAMS for every group
        verbose: Enable progress reporting
        n_jobs: Number of groups processed in parallel (-1 for all cores)

    Returns:
        Dict mapping group names to final labels (None where clustering failed)

    Examples:
        >>> results = all_groups({'pop1': dist1, 'pop2': dist2}, threshold=0.1, n_jobs=1)
        >>> df = process_results(results)
    """
    labels_dict = labels_dict or {}
    params = {**DEFAULT_PARAMS, **(clustering_params or {})}
    num_workers = select_n_jobs(n_jobs, verbose=verbose)

    if num_workers == 1:
        if verbose:
            print("Running in serial mode.")
        groups = tqdm(dist_dict.items(), total=len(dist_dict), desc="Clustering groups") if verbose else dist_dict.items()
        results = {}
        for group, distance_matrix in groups:
            _, labels = _for_single_group(
                group, distance_matrix, labels_dict.get(group), threshold, params
            )
            results[group] = labels
        return results

    # Groups already run in parallel; each one searches serially
    if select_n_jobs(params['n_jobs']) > 1:
        warnings.warn("Ignoring clustering_params['n_jobs'] while groups run in parallel.")
    params['n_jobs'] = 1

    results = {}
    with ProcessPoolExecutor(max_workers=num_workers) as executor:
        future_to_group = {
            executor.submit(
                _for_single_group,
                group, distance_matrix, labels_dict.get(group), threshold, params
            ): group
            for group, distance_matrix in dist_dict.items()
        }

        if verbose:
            print(f"Submitted {len(future_to_group)} clustering jobs to {num_workers} workers.")

        for future in as_completed(future_to_group):
            group, labels = future.result()
            results[group] = labels

    # Keep input order regardless of completion order
    return {group: results[group] for group in dist_dict}


def process_results(
    clustering_results: Dict[str, Optional[np.ndarray]],
    group_col: str = 'Group',
    sample_col: str = 'Sample',
    cluster_col: str = 'Cluster',
) -> pd.DataFrame:
    """
    Convert `all_groups` output to a tidy DataFrame.

    Args:
        clustering_results: Dictionary from all_groups()
        group_col: Column name for group identifiers
        sample_col: Column name for 1-based sample positions within a group
        cluster_col: Column name for cluster labels

    Returns:
        pd.DataFrame: One row per sample; failed groups are dropped

    Examples:
        >>> process_results({'pop1': np.array([1, 1, 3])})
          Group  Sample  Cluster
        0  pop1       1        1
        1  pop1       2        1
        2  pop1       3        3
    """
    frames = [
        pd.DataFrame({
            group_col: group,
            sample_col: np.arange(1, len(labels) + 1),
            cluster_col: np.asarray(labels, dtype=int),
        })
        for group, labels in clustering_results.items()
        if labels is not None
    ]
    if not frames:
        return pd.DataFrame(columns=[group_col, sample_col, cluster_col])
    return pd.concat(frames, ignore_index=True)
