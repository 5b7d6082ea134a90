"""Tests for the t-SNE embedding step."""
import numpy as np
import pandas as pd
import pytest

from data_quality import EmptyFeatureTableError, clean_visitor_features
from embedding import EMBEDDING_COLUMNS, effective_perplexity, embed_tsne, prepare_embedding_input
from feature_engineering import create_visitor_features


@pytest.fixture()
def features(synthetic_hits):
    return clean_visitor_features(create_visitor_features(synthetic_hits))


class TestPrepareEmbeddingInput:
    """Tests for feature preparation."""

    def test_scaled_columns_standardized(self, features):
        """Test that non-constant columns get zero mean and unit variance."""
        X = prepare_embedding_input(features)

        assert X.shape == features.shape
        np.testing.assert_allclose(X.mean(axis=0), 0.0, atol=1e-9)

    def test_constant_column_is_finite(self, features):
        """Test that a constant column scales to zeros instead of NaN."""
        X = prepare_embedding_input(features.assign(constant=1.0))

        assert np.isfinite(X).all()

    def test_log_features_and_unknown_column(self, features):
        """Test log1p on selected columns and rejection of unknown ones."""
        X = prepare_embedding_input(features, log_features=['revenue'], scale=False)
        col = list(features.columns).index('revenue')

        np.testing.assert_allclose(X[:, col], np.log1p(features['revenue']))
        with pytest.raises(ValueError):
            prepare_embedding_input(features, log_features=['unknown'])


class TestEmbedTsne:
    """Tests for embed_tsne function."""

    def test_one_point_per_row_with_same_index(self, features):
        """Test output shape, columns and index correspondence."""
        shuffled = features.sample(frac=1.0, random_state=1)

        embedding = embed_tsne(shuffled, max_iter=250, perplexity=10.0)

        assert list(embedding.columns) == EMBEDDING_COLUMNS
        assert embedding.index.tolist() == shuffled.index.tolist()
        assert np.isfinite(embedding.to_numpy()).all()

    def test_deterministic_with_fixed_seed(self, features):
        """Test that the same seed reproduces the same embedding."""
        first = embed_tsne(features, random_state=7, max_iter=250, perplexity=10.0)
        second = embed_tsne(features, random_state=7, max_iter=250, perplexity=10.0)

        np.testing.assert_allclose(first.to_numpy(), second.to_numpy())

    def test_tiny_tables(self, features):
        """Test that two rows embed and a single row lands at the origin."""
        two = embed_tsne(features.iloc[:2], max_iter=250)
        one = embed_tsne(features.iloc[:1], max_iter=250)

        assert two.shape == (2, 2)
        assert one.to_numpy().tolist() == [[0.0, 0.0]]

    def test_empty_table_raises(self, features):
        """Test that an empty table is reported explicitly."""
        with pytest.raises(EmptyFeatureTableError):
            embed_tsne(features.iloc[0:0])

    def test_perplexity_clamped_below_sample_count(self):
        """Test perplexity clamping for small tables."""
        assert effective_perplexity(1000, 30.0) == 30.0
        assert effective_perplexity(31, 30.0) == 10.0
        assert effective_perplexity(2, 30.0) == 1.0
