"""
2D embedding of the visitor feature table with t-SNE.

This module handles:
1. Preparing the feature table (optional log transform, scaling)
2. Projecting every row to two dimensions with a fixed seed

The output keeps the input index so row i of the embedding is row i of the
feature table.
"""
import numpy as np
import pandas as pd
from typing import List, Optional

from sklearn.manifold import TSNE
from sklearn.preprocessing import StandardScaler

from data_quality import ensure_not_empty


# =============================================================================
# CONSTANTS
# =============================================================================

EMBEDDING_COLUMNS = ['tsne_1', 'tsne_2']

DEFAULT_PERPLEXITY = 30.0


# =============================================================================
# DATA PREPARATION
# =============================================================================

def prepare_embedding_input(
    features: pd.DataFrame,
    log_features: Optional[List[str]] = None,
    scale: bool = True,
) -> np.ndarray:
    """
    Prepare the feature table for t-SNE.

    Steps:
    1. Log transform skewed features (log1p)
    2. StandardScaler normalization

    Args:
        features: Cleaned numeric feature table
        log_features: Columns to log transform (default: none)
        scale: Standardize columns to zero mean / unit variance

    Returns:
        Float array with the same row order as features
    """
    X = features.astype(float).copy()

    for col in log_features or []:
        if col not in X.columns:
            raise ValueError(f"Unknown log feature: {col}")
        X[col] = np.log1p(X[col].clip(lower=0))

    X = X.to_numpy()
    if scale:
        # Constant columns scale to 0 rather than NaN
        X = StandardScaler().fit_transform(X)

    return X


def effective_perplexity(n_samples: int, perplexity: float = DEFAULT_PERPLEXITY) -> float:
    """Clamp perplexity so it stays below the number of samples."""
    return float(max(1.0, min(perplexity, (n_samples - 1) / 3)))


# =============================================================================
# T-SNE
# =============================================================================

def embed_tsne(
    features: pd.DataFrame,
    random_state: int = 42,
    perplexity: float = DEFAULT_PERPLEXITY,
    max_iter: int = 1000,
    scale: bool = True,
    log_features: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Project the feature table to 2D with t-SNE.

    Deterministic for a fixed random_state (PCA initialization).

    Args:
        features: Cleaned numeric feature table
        random_state: Random seed
        perplexity: Requested perplexity, clamped for small tables
        max_iter: Optimization iterations (sklearn minimum is 250)
        scale: Standardize features before embedding
        log_features: Columns to log transform before scaling

    Returns:
        DataFrame with tsne_1, tsne_2 and the same index as features
    """
    ensure_not_empty(features, "Embedding")

    n_samples = len(features)
    print(f"📊 Embedding {n_samples:,} rows with t-SNE (random_state={random_state})")

    X = prepare_embedding_input(features, log_features=log_features, scale=scale)

    if n_samples == 1:
        coords = np.zeros((1, 2))
        print("  ⚠ Single row, placed at the origin")
    else:
        perplexity = effective_perplexity(n_samples, perplexity)
        tsne = TSNE(
            n_components=2,
            perplexity=perplexity,
            learning_rate='auto',
            init='pca',
            max_iter=max_iter,
            random_state=random_state,
        )
        coords = tsne.fit_transform(X)
        print(f"  ✓ Perplexity: {perplexity:.1f}")
        print(f"  ✓ KL divergence: {tsne.kl_divergence_:.3f}")

    embedding = pd.DataFrame(coords, columns=EMBEDDING_COLUMNS, index=features.index)

    print(f"  ✓ Shape: {embedding.shape}")

    return embedding
