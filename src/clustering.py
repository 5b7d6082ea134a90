"""
Clustering utilities for visitor segmentation on the t-SNE embedding.

This module handles:
1. Gaussian Mixture Models with BIC/AIC component selection (model-based)
2. DBSCAN clustering (density-based)
3. A single label-assignment entry point over both strategies
4. Degenerate outcome detection (all noise, single cluster)
5. Joining labels back onto the feature table by position
6. Clustering evaluation and cluster profiling

Label convention: clusters are numbered from 1 for both strategies and
0 is reserved for DBSCAN noise points.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.cluster import DBSCAN
from sklearn.metrics import silhouette_score, davies_bouldin_score, calinski_harabasz_score
from sklearn.mixture import GaussianMixture

from data_quality import ensure_not_empty
from embedding import EMBEDDING_COLUMNS


# =============================================================================
# CONSTANTS
# =============================================================================

NOISE_LABEL = 0

CLUSTER_COL = 'cluster'

SELECTION_CRITERIA = ('bic', 'aic')


class ClusteringStrategy(Enum):
    """Clustering algorithm chosen by the analyst."""

    MODEL_BASED = 'gmm'
    DENSITY_BASED = 'dbscan'

    @classmethod
    def from_name(cls, name) -> "ClusteringStrategy":
        if isinstance(name, cls):
            return name
        for strategy in cls:
            if str(name).lower() in (strategy.value, strategy.name.lower()):
                return strategy
        raise ValueError(f"Unknown clustering strategy: {name}")


@dataclass
class ClusteringResult:
    strategy: ClusteringStrategy
    labels: np.ndarray
    model: object
    summary: Dict = field(default_factory=dict)
    selection: Optional[pd.DataFrame] = None


def _as_points(points) -> np.ndarray:
    if isinstance(points, pd.DataFrame):
        return points.to_numpy(dtype=float)
    return np.asarray(points, dtype=float)


def _print_distribution(labels: np.ndarray) -> None:
    unique, counts = np.unique(labels, return_counts=True)
    print("  Cluster distribution:")
    for cluster, count in zip(unique, counts):
        pct = count / len(labels) * 100
        name = "Noise" if cluster == NOISE_LABEL else f"Cluster {cluster}"
        print(f"    {name}: {count:,} ({pct:.1f}%)")


# =============================================================================
# LABEL SUMMARY
# =============================================================================

def summarize_labels(labels: np.ndarray) -> Dict:
    """
    Summarize a label vector so degenerate outcomes are visible.

    A result is degenerate when fewer than two non-noise clusters were found
    (every point is noise, or everything landed in one cluster).
    """
    labels = np.asarray(labels)
    distinct = set(labels.tolist())
    n_clusters = len(distinct - {NOISE_LABEL})
    n_noise = int((labels == NOISE_LABEL).sum())

    return {
        'n_points': int(len(labels)),
        'n_distinct': len(distinct),
        'n_clusters': n_clusters,
        'n_noise': n_noise,
        'all_noise': len(labels) > 0 and n_noise == len(labels),
        'is_degenerate': n_clusters < 2,
    }


# =============================================================================
# GAUSSIAN MIXTURE MODELS
# =============================================================================

def _candidate_range(n_range: range, n_samples: int) -> range:
    candidates = range(max(n_range.start, 1), min(n_range.stop, n_samples + 1))
    if len(candidates) == 0:
        raise ValueError(
            f"No valid component counts in {n_range.start}..{n_range.stop - 1} "
            f"for {n_samples} points"
        )
    return candidates


def _fit_gmm(X: np.ndarray, n: int, random_state: int) -> GaussianMixture:
    gmm = GaussianMixture(
        n_components=n,
        random_state=random_state,
        n_init=5,
        max_iter=200,
    )
    return gmm.fit(X)


def find_optimal_gmm_components(
    points,
    n_range: range = range(1, 10),
    random_state: int = 42,
) -> pd.DataFrame:
    """
    Score GMM component counts using BIC/AIC.

    Candidates above the number of points are skipped.

    Args:
        points: 2D embedding (array or DataFrame)
        n_range: Range of component counts to try
        random_state: Random seed

    Returns:
        DataFrame with BIC/AIC for each n
    """
    X = _as_points(points)
    candidates = _candidate_range(n_range, len(X))

    print("📊 Finding optimal GMM components")

    results = {'n': [], 'bic': [], 'aic': []}

    for n in candidates:
        gmm = _fit_gmm(X, n, random_state)

        results['n'].append(n)
        results['bic'].append(gmm.bic(X))
        results['aic'].append(gmm.aic(X))

        print(f"  n={n}: BIC={results['bic'][-1]:.0f}, AIC={results['aic'][-1]:.0f}")

    return pd.DataFrame(results)


def perform_gmm(
    points,
    n_range: range = range(1, 10),
    criterion: str = 'bic',
    random_state: int = 42,
) -> Tuple[Optional[GaussianMixture], np.ndarray, pd.DataFrame]:
    """
    Fit a Gaussian mixture, choosing the component count by BIC or AIC.

    Args:
        points: 2D embedding (array or DataFrame)
        n_range: Candidate component counts
        criterion: 'bic' or 'aic' (lower is better)
        random_state: Random seed

    Returns:
        Tuple of (fitted GMM model, cluster labels 1..k, selection table)
    """
    if criterion not in SELECTION_CRITERIA:
        raise ValueError(f"Unknown criterion: {criterion}, expected one of {SELECTION_CRITERIA}")

    X = _as_points(points)
    ensure_not_empty(X, "GMM clustering")

    if len(X) == 1:
        # sklearn needs two samples to fit a mixture
        print("  ⚠ Single point, assigned to cluster 1 without fitting")
        return None, np.ones(1, dtype=int), pd.DataFrame(columns=['n', 'bic', 'aic'])

    selection = find_optimal_gmm_components(X, n_range, random_state)
    best_n = int(selection.loc[selection[criterion].idxmin(), 'n'])

    print(f"📊 Training GMM with n_components={best_n} (lowest {criterion.upper()})")

    gmm = _fit_gmm(X, best_n, random_state)
    labels = gmm.predict(X) + 1

    max_proba = gmm.predict_proba(X).max(axis=1)
    print(f"  Average assignment confidence: {max_proba.mean():.2f}")
    _print_distribution(labels)

    return gmm, labels, selection


# =============================================================================
# DBSCAN CLUSTERING
# =============================================================================

def perform_dbscan(
    points,
    eps: float,
    min_samples: int = 10,
) -> Tuple[DBSCAN, np.ndarray]:
    """
    Perform DBSCAN clustering.

    Args:
        points: 2D embedding (array or DataFrame)
        eps: Maximum distance between samples
        min_samples: Minimum samples in a neighborhood

    Returns:
        Tuple of (fitted DBSCAN model, cluster labels with 0 for noise)
    """
    if eps <= 0:
        raise ValueError(f"eps must be positive, got {eps}")
    if min_samples < 1:
        raise ValueError(f"min_samples must be >= 1, got {min_samples}")

    X = _as_points(points)
    ensure_not_empty(X, "DBSCAN clustering")

    print(f"📊 Training DBSCAN (eps={eps}, min_samples={min_samples})")

    dbscan = DBSCAN(eps=eps, min_samples=min_samples)
    # sklearn marks noise as -1 and numbers clusters from 0
    labels = dbscan.fit_predict(X) + 1

    n_clusters = len(set(labels.tolist()) - {NOISE_LABEL})
    n_noise = int((labels == NOISE_LABEL).sum())
    noise_pct = n_noise / len(labels) * 100

    print(f"  Clusters found: {n_clusters}")
    print(f"  Noise points: {n_noise:,} ({noise_pct:.1f}%)")
    _print_distribution(labels)

    return dbscan, labels


# =============================================================================
# STRATEGY DISPATCH
# =============================================================================

def assign_labels(
    points,
    strategy,
    n_range: range = range(1, 10),
    criterion: str = 'bic',
    random_state: int = 42,
    eps: float = 3.0,
    min_samples: int = 10,
) -> ClusteringResult:
    """
    Assign a cluster label to every embedded point.

    Model-based uses n_range/criterion/random_state, density-based uses
    eps/min_samples. Labels follow the input row order.

    Args:
        points: 2D embedding (array or DataFrame)
        strategy: ClusteringStrategy or its name ('gmm', 'dbscan')

    Returns:
        ClusteringResult with labels, fitted model and label summary
    """
    strategy = ClusteringStrategy.from_name(strategy)
    selection = None

    if strategy is ClusteringStrategy.MODEL_BASED:
        model, labels, selection = perform_gmm(points, n_range, criterion, random_state)
    else:
        model, labels = perform_dbscan(points, eps, min_samples)

    summary = summarize_labels(labels)
    if summary['all_noise']:
        print("  ⚠ Degenerate clustering: every point is noise")
    elif summary['is_degenerate']:
        print(f"  ⚠ Degenerate clustering: {summary['n_clusters']} cluster(s) found")

    return ClusteringResult(
        strategy=strategy,
        labels=labels,
        model=model,
        summary=summary,
        selection=selection,
    )


# =============================================================================
# JOIN
# =============================================================================

def join_clusters(
    features: pd.DataFrame,
    embedding: pd.DataFrame,
    labels: np.ndarray,
) -> pd.DataFrame:
    """
    Build the clustered visitor view by position.

    Row i of the result is row i of features, row i of embedding and
    labels[i]. Indexes are ignored.

    Raises:
        ValueError: if the three inputs differ in length
    """
    lengths = {'features': len(features), 'embedding': len(embedding), 'labels': len(labels)}
    if len(set(lengths.values())) != 1:
        raise ValueError(f"Cannot join clusters, row counts differ: {lengths}")

    embedding = pd.DataFrame(np.asarray(embedding), columns=EMBEDDING_COLUMNS)

    view = pd.concat(
        [features.reset_index(drop=True), embedding],
        axis=1,
    )
    view[CLUSTER_COL] = np.asarray(labels).astype(int)

    return view


# =============================================================================
# CLUSTERING EVALUATION
# =============================================================================

def evaluate_clustering(
    points,
    labels: np.ndarray,
    name: str,
) -> Dict:
    """
    Evaluate clustering quality with multiple metrics.

    Noise points are excluded before scoring.

    Args:
        points: 2D embedding (array or DataFrame)
        labels: Cluster labels
        name: Name of the clustering method

    Returns:
        Dictionary with evaluation metrics
    """
    X = _as_points(points)
    labels = np.asarray(labels)

    mask = labels != NOISE_LABEL
    X_eval = X[mask]
    labels_eval = labels[mask]
    n_noise = int((~mask).sum())

    n_clusters = len(set(labels_eval.tolist()))

    if n_clusters < 2 or n_clusters >= len(labels_eval):
        return {
            'name': name,
            'n_clusters': n_clusters,
            'n_noise': n_noise,
            'silhouette': np.nan,
            'davies_bouldin': np.nan,
            'calinski_harabasz': np.nan,
            'error': 'Less than 2 clusters' if n_clusters < 2 else 'One point per cluster',
        }

    return {
        'name': name,
        'n_clusters': n_clusters,
        'n_noise': n_noise,
        'silhouette': silhouette_score(X_eval, labels_eval),
        'davies_bouldin': davies_bouldin_score(X_eval, labels_eval),
        'calinski_harabasz': calinski_harabasz_score(X_eval, labels_eval),
    }


def compare_clustering_methods(
    points,
    labels_dict: Dict[str, np.ndarray],
) -> pd.DataFrame:
    """
    Compare multiple clustering outcomes on the same embedding.

    Args:
        points: 2D embedding (array or DataFrame)
        labels_dict: Dictionary mapping method names to labels

    Returns:
        DataFrame with comparison metrics
    """
    print("📊 Comparing clustering methods")

    results = [evaluate_clustering(points, labels, name) for name, labels in labels_dict.items()]
    comparison_df = pd.DataFrame(results)

    print("\n" + "=" * 60)
    print("CLUSTERING COMPARISON")
    print("=" * 60)
    print(comparison_df.to_string(index=False))

    return comparison_df


# =============================================================================
# CLUSTER PROFILING
# =============================================================================

def profile_clusters(
    df: pd.DataFrame,
    features: List[str],
    cluster_col: str = CLUSTER_COL,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Create detailed cluster profiles.

    Counts are over deduplicated feature rows, not original visitors.

    Args:
        df: Clustered visitor view
        features: Features to profile
        cluster_col: Column name containing cluster labels

    Returns:
        Tuple of (mean/median/std profiles, summary with count and pct)
    """
    print(f"📊 Profiling clusters by {cluster_col}")

    profiles = df.groupby(cluster_col)[features].agg(['mean', 'median', 'std']).round(2)

    cluster_sizes = df[cluster_col].value_counts().sort_index()

    summary = df.groupby(cluster_col)[features].mean().round(2)
    summary['count'] = cluster_sizes
    summary['pct'] = (cluster_sizes / len(df) * 100).round(1)

    print("\nCluster Summary:")
    print(summary.to_string())

    return profiles, summary
