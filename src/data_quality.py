"""
Data quality utilities for visitor clustering.

This module handles:
1. Schema validation of event records and visitor aggregates with Pandera
2. Cleaning visitor aggregates into the model feature table
   (bounce removal, de-identification, deduplication)
3. Surfacing empty feature tables as an explicit error

IMPORTANT: The cleaned table is positional. Its index is reset to 0..n-1 and
every later stage must keep that row order.
"""
import pandas as pd
import pandera as pa
from pandera import Column, Check
from typing import Dict, Optional

from data_loader import VISITOR_ID_COL, VISIT_NUM_COL, EVENT_LIST_COL, CHANNEL_COL
from feature_engineering import DEFAULT_EVENT_MARKERS


class EmptyFeatureTableError(ValueError):
    """Raised when a stage receives a feature table with no rows."""


# =============================================================================
# SCHEMA VALIDATION WITH PANDERA
# =============================================================================

def create_event_schema() -> pa.DataFrameSchema:
    """
    Create Pandera schema for hit-level event records.

    This validates:
    - visitor_id present on every hit
    - visit_num is an integer >= 1
    - event list and channel exist (nulls allowed)
    """
    schema = pa.DataFrameSchema(
        columns={
            VISITOR_ID_COL: Column(nullable=False),
            VISIT_NUM_COL: Column(int, Check.ge(1), nullable=False, coerce=True),
            EVENT_LIST_COL: Column(nullable=True),
            CHANNEL_COL: Column(nullable=True),
        },
        # Data feeds carry hundreds of extra columns
        strict=False,
    )

    return schema


def create_visitor_schema(event_markers: Optional[Dict[str, str]] = None) -> pa.DataFrameSchema:
    """Create Pandera schema for the visitor aggregate table."""
    if event_markers is None:
        event_markers = DEFAULT_EVENT_MARKERS

    counts = {name: Column(int, Check.ge(0), nullable=False) for name in event_markers}

    schema = pa.DataFrameSchema(
        columns={
            VISITOR_ID_COL: Column(nullable=False, unique=True),
            'visits': Column(int, Check.ge(1), nullable=False),
            'hits': Column(int, Check.ge(1), nullable=False),
            **counts,
            'channels': Column(int, Check.ge(0), nullable=False),
            'revenue': Column(float, nullable=False),
        },
        checks=Check(lambda df: df['visits'] <= df['hits'], error='visits <= hits'),
        strict=True,
    )

    return schema


def _validate(schema: pa.DataFrameSchema, df: pd.DataFrame, name: str) -> pd.DataFrame:
    try:
        validated = schema.validate(df, lazy=True)
        print(f"✓ {name} passed schema validation")
        return validated
    except pa.errors.SchemaErrors as e:
        print(f"✗ {name} failed schema validation:")
        print(f"  {e.failure_cases}")
        raise


def validate_hit_data(df: pd.DataFrame, name: str = "Hit data") -> pd.DataFrame:
    """
    Validate event records against the event schema.

    Args:
        df: Event record DataFrame
        name: Name for error messages

    Returns:
        Validated DataFrame (visit_num coerced to int), raises if invalid
    """
    return _validate(create_event_schema(), df, name)


def validate_visitor_features(
    df: pd.DataFrame,
    event_markers: Optional[Dict[str, str]] = None,
    name: str = "Visitor features",
) -> pd.DataFrame:
    """Validate the visitor aggregate table, raises if invalid."""
    return _validate(create_visitor_schema(event_markers), df, name)


# =============================================================================
# CLEANING
# =============================================================================

def ensure_not_empty(df: pd.DataFrame, stage: str) -> pd.DataFrame:
    """Raise EmptyFeatureTableError if df has no rows."""
    if len(df) == 0:
        raise EmptyFeatureTableError(f"{stage}: feature table is empty")
    return df


def clean_visitor_features(
    visitor_df: pd.DataFrame,
    min_hits: int = 2,
) -> pd.DataFrame:
    """
    Turn visitor aggregates into the numeric model feature table.

    Steps:
    1. Keep visitors with hits >= min_hits (drops single-hit bounces)
    2. Drop the visitor_id column
    3. Collapse identical feature rows to their first occurrence

    Running it on its own output returns the same table.

    Args:
        visitor_df: Visitor aggregate DataFrame
        min_hits: Minimum hits to keep a visitor (default 2, i.e. hits > 1)

    Returns:
        Deduplicated feature DataFrame with index 0..n-1
    """
    print(f"🔧 Cleaning visitor features (min_hits={min_hits})")

    kept = visitor_df[visitor_df['hits'] >= min_hits]
    n_bounces = len(visitor_df) - len(kept)

    features = kept.drop(columns=[VISITOR_ID_COL], errors='ignore')
    deduped = features.drop_duplicates(keep='first').reset_index(drop=True)
    n_duplicates = len(features) - len(deduped)

    print(f"  ✓ Removed {n_bounces:,} visitors with fewer than {min_hits} hits")
    print(f"  ✓ Collapsed {n_duplicates:,} duplicate feature rows")
    print(f"  ✓ Feature table: {len(deduped):,} rows × {deduped.shape[1]} cols")

    if deduped.empty:
        print("  ⚠ No visitors left after cleaning")

    return deduped
