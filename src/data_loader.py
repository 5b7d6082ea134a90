"""
Data loading utilities for clickstream hit data.

This module handles:
1. Loading hit-level exports (CSV, TSV, parquet)
2. Loading headerless data-feed exports with a separate column header file
3. Stitching the visitor identity from the high/low id pair
4. Selecting the canonical event record columns
"""
import csv

import pandas as pd
from pathlib import Path
from typing import Optional


# =============================================================================
# CONSTANTS
# =============================================================================

VISITOR_ID_COL = 'visitor_id'
VISIT_NUM_COL = 'visit_num'
EVENT_LIST_COL = 'post_event_list'
CHANNEL_COL = 'channel'

# Canonical event record schema, in output order
EVENT_RECORD_COLUMNS = [VISITOR_ID_COL, VISIT_NUM_COL, EVENT_LIST_COL, CHANNEL_COL]

# Data-feed columns that together identify a visitor
VISITOR_ID_PARTS = ['post_visid_high', 'post_visid_low']

# Columns that must stay strings on load (ids overflow int64, event lists start with ",")
STRING_COLUMNS = VISITOR_ID_PARTS + [VISITOR_ID_COL, EVENT_LIST_COL]


# =============================================================================
# DATA LOADING
# =============================================================================

def _string_dtypes(columns) -> dict:
    return {col: str for col in STRING_COLUMNS if col in columns}


def load_hit_data(
    data_path: str,
    column_map: Optional[dict] = None,
) -> pd.DataFrame:
    """
    Load a hit-level export into a DataFrame.

    Supports .csv, .tsv and .parquet files. Column names can be mapped onto
    the canonical names with column_map.

    Args:
        data_path: Path to the export file
        column_map: Optional {source_name: canonical_name} renames

    Returns:
        DataFrame with one row per hit

    Example:
        >>> hits = load_hit_data("data/raw/hits.csv")
        >>> hits.columns.tolist()
        ['visitor_id', 'visit_num', 'post_event_list', 'channel']
    """
    data_path = Path(data_path)
    if not data_path.exists():
        raise FileNotFoundError(f"Missing file: {data_path}")

    suffix = data_path.suffix.lower()
    if suffix == '.parquet':
        df = pd.read_parquet(data_path)
    elif suffix in ('.csv', '.tsv'):
        sep = '\t' if suffix == '.tsv' else ','
        header = pd.read_csv(data_path, sep=sep, nrows=0).columns
        df = pd.read_csv(data_path, sep=sep, dtype=_string_dtypes(header))
    else:
        raise ValueError(f"Unsupported file type: {data_path.suffix}")

    if column_map:
        df = df.rename(columns=column_map)

    print(f"✓ Loaded hits: {df.shape[0]:,} rows × {df.shape[1]} cols")

    return df


def load_data_feed(
    hit_data_path: str,
    column_headers_path: str,
) -> pd.DataFrame:
    """
    Load a headerless data-feed export (hit_data.tsv).

    The column names ship separately as a single tab-separated line in
    column_headers.tsv.

    Args:
        hit_data_path: Path to hit_data.tsv
        column_headers_path: Path to column_headers.tsv

    Returns:
        DataFrame with one row per hit and named columns
    """
    hit_data_path = Path(hit_data_path)
    column_headers_path = Path(column_headers_path)

    for path in (hit_data_path, column_headers_path):
        if not path.exists():
            raise FileNotFoundError(f"Missing file: {path}")

    with open(column_headers_path) as f:
        columns = f.readline().rstrip('\r\n').split('\t')

    df = pd.read_csv(
        hit_data_path,
        sep='\t',
        header=None,
        names=columns,
        dtype=_string_dtypes(columns),
        quoting=csv.QUOTE_NONE,  # quotes are literal in data feeds
    )

    print(f"✓ Loaded data feed: {df.shape[0]:,} rows × {df.shape[1]} cols")

    return df


# =============================================================================
# IDENTITY & COLUMN SELECTION
# =============================================================================

def stitch_visitor_id(df: pd.DataFrame) -> pd.DataFrame:
    """
    Build the visitor_id column from post_visid_high and post_visid_low.

    An existing visitor_id column is left untouched.
    """
    if VISITOR_ID_COL in df.columns:
        return df

    missing = [c for c in VISITOR_ID_PARTS if c not in df.columns]
    if missing:
        raise ValueError(f"Cannot build {VISITOR_ID_COL}, missing columns: {missing}")

    df = df.copy()
    high, low = (df[c].astype(str) for c in VISITOR_ID_PARTS)
    df[VISITOR_ID_COL] = high + '_' + low

    return df


def select_event_columns(
    df: pd.DataFrame,
    channel_column: Optional[str] = 'va_closer_id',
) -> pd.DataFrame:
    """
    Reduce a hit export to the canonical event record columns.

    Args:
        df: Raw hit DataFrame
        channel_column: Source column holding the channel label. Ignored when
            a 'channel' column is already present.

    Returns:
        DataFrame with visitor_id, visit_num, post_event_list, channel
    """
    df = stitch_visitor_id(df)

    if CHANNEL_COL not in df.columns:
        if channel_column and channel_column in df.columns:
            df = df.rename(columns={channel_column: CHANNEL_COL})
        else:
            print(f"  ⚠ No channel column '{channel_column}', distinct channels will be 0")
            df = df.assign(**{CHANNEL_COL: None})

    missing = [c for c in EVENT_RECORD_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Hit data is missing required columns: {missing}")

    return df[EVENT_RECORD_COLUMNS].reset_index(drop=True)


def get_data_summary(df: pd.DataFrame) -> dict:
    """Get a summary of the hit DataFrame for quick inspection."""
    return {
        "rows": len(df),
        "visitors": df[VISITOR_ID_COL].nunique() if VISITOR_ID_COL in df.columns else None,
        "memory_mb": df.memory_usage(deep=True).sum() / 1024**2,
        "missing_total": df.isnull().sum().sum(),
    }
