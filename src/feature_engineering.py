"""
Feature engineering for visitor-level clickstream aggregates.

This module handles:
1. Parsing delimited event lists into a structured event table
2. Per-hit event flags and revenue extraction
3. Visitor-level aggregation (visits, hits, event counts, channels, revenue)

Event lists look like ",1,12,200=49.90," where bare tokens are event codes and
"code=value" tokens carry a numeric payload.
"""
import numpy as np
import pandas as pd
from typing import Dict, List, Optional

from data_loader import VISITOR_ID_COL, VISIT_NUM_COL, EVENT_LIST_COL, CHANNEL_COL


# =============================================================================
# CONSTANTS
# =============================================================================

# Output column -> event code (standard commerce events)
DEFAULT_EVENT_MARKERS = {
    'purchases': '1',
    'product_views': '2',
    'cart_opens': '10',
    'checkouts': '11',
    'cart_adds': '12',
    'cart_removals': '13',
    'cart_views': '14',
}

# Custom event whose payload is the order revenue
DEFAULT_REVENUE_EVENT = '200'

# Columns produced by the aggregation itself; marker names may not reuse them
RESERVED_COLUMNS = {VISITOR_ID_COL, VISIT_NUM_COL, CHANNEL_COL, 'visits', 'hits', 'channels', 'revenue'}

EVENT_TABLE_COLUMNS = ['hit', 'event_code', 'event_value']


# =============================================================================
# EVENT PARSING
# =============================================================================

def parse_event_lists(event_lists: pd.Series) -> pd.DataFrame:
    """
    Parse delimited event lists into a long event table.

    One output row per token. 'hit' holds the index label of the source row,
    'event_code' the code as a string and 'event_value' the numeric payload
    (NaN when the token has no payload or the payload is not a finite number).

    Args:
        event_lists: Series of event list strings (nulls allowed)

    Returns:
        DataFrame with columns hit, event_code, event_value

    Example:
        >>> parse_event_lists(pd.Series([",1,200=50,"]))
           hit event_code  event_value
        0    0          1          NaN
        1    0        200         50.0
    """
    tokens = event_lists.fillna('').astype(str).str.split(',').explode().str.strip()
    tokens = tokens[tokens.notna() & (tokens != '')]

    if tokens.empty:
        return pd.DataFrame({
            'hit': pd.Series(dtype=event_lists.index.dtype),
            'event_code': pd.Series(dtype=object),
            'event_value': pd.Series(dtype=float),
        })

    parts = tokens.str.partition('=')
    payload = parts[2].where(parts[1] == '=')
    values = pd.to_numeric(payload, errors='coerce').astype(float)
    values = values.where(np.isfinite(values))

    events = pd.DataFrame({
        'hit': tokens.index,
        'event_code': parts[0].str.strip().to_numpy(),
        'event_value': values.to_numpy(),
    })

    return events.reset_index(drop=True)


def extract_revenue(events: pd.DataFrame, revenue_event: str = DEFAULT_REVENUE_EVENT) -> pd.Series:
    """Sum revenue payloads per hit; malformed payloads count as zero."""
    revenue = events.loc[events['event_code'] == str(revenue_event), ['hit', 'event_value']]
    return revenue['event_value'].fillna(0.0).groupby(revenue['hit']).sum()


def flag_events(
    events: pd.DataFrame,
    hit_index: pd.Index,
    event_markers: Dict[str, str],
) -> pd.DataFrame:
    """
    Build one 0/1 column per marker telling whether a hit carries that code.

    A code repeated inside one event list still counts once for the hit.
    """
    present = events[['hit', 'event_code']].drop_duplicates()

    flags = pd.DataFrame(index=hit_index)
    for name, code in event_markers.items():
        hits_with_code = present.loc[present['event_code'] == str(code), 'hit']
        flags[name] = hit_index.isin(hits_with_code).astype(int)

    return flags


# =============================================================================
# VISITOR AGGREGATION
# =============================================================================

def visitor_feature_columns(event_markers: Optional[Dict[str, str]] = None) -> List[str]:
    """Column order of the visitor aggregate table."""
    if event_markers is None:
        event_markers = DEFAULT_EVENT_MARKERS
    return [VISITOR_ID_COL, 'visits', 'hits', *event_markers, 'channels', 'revenue']


def create_visitor_features(
    hits_df: pd.DataFrame,
    event_markers: Optional[Dict[str, str]] = None,
    revenue_event: Optional[str] = None,
) -> pd.DataFrame:
    """
    Aggregate hit-level event records into one row per visitor.

    Output columns:
    - visits: distinct visit numbers
    - hits: number of rows
    - one column per event marker: number of hits containing that code
    - channels: distinct non-null channel labels
    - revenue: summed revenue payloads (0 when absent or malformed)

    Args:
        hits_df: Event records (visitor_id, visit_num, post_event_list, channel)
        event_markers: {column_name: event_code} (default: DEFAULT_EVENT_MARKERS)
        revenue_event: Event code carrying revenue (default: DEFAULT_REVENUE_EVENT)

    Returns:
        DataFrame with one row per visitor_id, sorted by visitor_id
    """
    if event_markers is None:
        event_markers = DEFAULT_EVENT_MARKERS
    if revenue_event is None:
        revenue_event = DEFAULT_REVENUE_EVENT

    clashes = RESERVED_COLUMNS.intersection(event_markers)
    if clashes:
        raise ValueError(f"Event marker names clash with aggregate columns: {sorted(clashes)}")

    print("📊 Creating visitor features")

    hits = hits_df[[VISITOR_ID_COL, VISIT_NUM_COL, EVENT_LIST_COL, CHANNEL_COL]].reset_index(drop=True)

    # Parse once per hit, then aggregate the structured table
    events = parse_event_lists(hits[EVENT_LIST_COL])
    per_hit = pd.concat(
        [hits[[VISITOR_ID_COL, VISIT_NUM_COL, CHANNEL_COL]],
         flag_events(events, hits.index, event_markers)],
        axis=1,
    )
    per_hit['revenue'] = extract_revenue(events, revenue_event).reindex(hits.index, fill_value=0.0)

    aggregations = {
        'visits': (VISIT_NUM_COL, 'nunique'),
        'hits': (VISIT_NUM_COL, 'size'),
        **{name: (name, 'sum') for name in event_markers},
        'channels': (CHANNEL_COL, 'nunique'),
        'revenue': ('revenue', 'sum'),
    }
    visitor_df = per_hit.groupby(VISITOR_ID_COL, sort=True).agg(**aggregations).reset_index()
    visitor_df['revenue'] = visitor_df['revenue'].astype(float)
    visitor_df = visitor_df[visitor_feature_columns(event_markers)]

    print(f"  ✓ Parsed {len(events):,} event tokens from {len(hits):,} hits")
    print(f"  ✓ Created features for {len(visitor_df):,} visitors")
    if len(visitor_df):
        print(f"    Hits: mean={visitor_df['hits'].mean():.2f} per visitor")
        print(f"    Revenue: total=${visitor_df['revenue'].sum():,.2f}")

    return visitor_df
