"""Tests for schema validation and feature cleaning."""
import pandas as pd
import pandera as pa
import pytest

from data_quality import (
    EmptyFeatureTableError,
    clean_visitor_features,
    ensure_not_empty,
    validate_hit_data,
    validate_visitor_features,
)
from feature_engineering import create_visitor_features


class TestSchemaValidation:
    """Tests for Pandera schemas."""

    def test_valid_hits_pass(self, scenario_hits):
        """Test that well-formed hits validate."""
        validated = validate_hit_data(scenario_hits)

        assert len(validated) == len(scenario_hits)

    def test_visit_num_below_one_fails(self, scenario_hits):
        """Test that visit numbers must start at 1."""
        bad = scenario_hits.copy()
        bad.loc[0, 'visit_num'] = 0

        with pytest.raises(pa.errors.SchemaErrors):
            validate_hit_data(bad)

    def test_null_visitor_id_fails(self, scenario_hits):
        """Test that every hit must carry a visitor id."""
        bad = scenario_hits.copy()
        bad.loc[0, 'visitor_id'] = None

        with pytest.raises(pa.errors.SchemaErrors):
            validate_hit_data(bad)

    def test_visitor_aggregate_passes(self, synthetic_hits):
        """Test that aggregator output satisfies the visitor schema."""
        visitors = create_visitor_features(synthetic_hits)

        validated = validate_visitor_features(visitors)

        assert len(validated) == len(visitors)


class TestCleanVisitorFeatures:
    """Tests for clean_visitor_features function."""

    def test_scenario_bounce_dropped_and_duplicates_collapsed(self, scenario_hits):
        """Test the scenario: visitor a dropped, b and c collapse to one row."""
        visitors = create_visitor_features(scenario_hits)

        features = clean_visitor_features(visitors)

        assert len(features) == 1
        assert features['hits'].tolist() == [2]
        assert features['revenue'].tolist() == [0.0]

    def test_identity_column_dropped(self, synthetic_hits):
        """Test that visitor_id never reaches the feature table."""
        features = clean_visitor_features(create_visitor_features(synthetic_hits))

        assert 'visitor_id' not in features.columns

    def test_no_single_hit_rows(self):
        """Test that no output row has hits <= 1."""
        visitors = pd.DataFrame({
            'visitor_id': ['a', 'b', 'c', 'd'],
            'visits': [1, 1, 1, 2],
            'hits': [1, 2, 1, 5],
            'channels': [1, 1, 0, 2],
            'revenue': [10.0, 0.0, 0.0, 3.0],
        })

        features = clean_visitor_features(visitors)

        assert (features['hits'] > 1).all()
        assert len(features) == 2

    def test_row_count_bounded_by_distinct_vectors(self, synthetic_hits):
        """Test that output rows never exceed distinct multi-hit feature vectors."""
        visitors = create_visitor_features(synthetic_hits)
        multi_hit = visitors[visitors['hits'] > 1].drop(columns=['visitor_id'])

        features = clean_visitor_features(visitors)

        assert len(features) <= len(multi_hit.drop_duplicates())
        assert not features.duplicated().any()

    def test_idempotent(self, synthetic_hits):
        """Test that cleaning a cleaned table returns the same table."""
        features = clean_visitor_features(create_visitor_features(synthetic_hits))

        again = clean_visitor_features(features)

        pd.testing.assert_frame_equal(features, again)

    def test_index_reset_and_first_occurrence_kept(self):
        """Test that rows keep their order and the index is positional."""
        visitors = pd.DataFrame({
            'visitor_id': ['a', 'b', 'c', 'd'],
            'visits': [1, 2, 1, 2],
            'hits': [3, 4, 3, 4],
            'channels': [1, 1, 1, 1],
            'revenue': [5.0, 0.0, 5.0, 0.0],
        })

        features = clean_visitor_features(visitors)

        assert features.index.tolist() == [0, 1]
        assert features['hits'].tolist() == [3, 4]

    def test_all_bounces_yields_empty_table(self, scenario_hits):
        """Test that only single-hit visitors leave an empty table."""
        visitors = create_visitor_features(scenario_hits.iloc[[0]])

        features = clean_visitor_features(visitors)

        assert features.empty
        with pytest.raises(EmptyFeatureTableError):
            ensure_not_empty(features, "Cleaning")

    def test_empty_error_is_value_error(self):
        """Test that the empty state can be caught as ValueError."""
        with pytest.raises(ValueError):
            ensure_not_empty(pd.DataFrame(), "Embedding")
