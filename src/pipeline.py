#!/usr/bin/env python3
"""
Visitor clustering pipeline.

Runs the four stages on hit-level clickstream data:
aggregate per visitor -> clean -> t-SNE embed -> cluster, then joins the
labels back onto the feature table. Nothing is written to disk.

Usage (exported hits):
    python src/pipeline.py --input=data/raw/hits.csv --strategy=gmm

Usage (raw data feed):
    python src/pipeline.py \
        --input=data/raw/hit_data.tsv \
        --column-headers=data/raw/column_headers.tsv \
        --config=configs/config.yaml \
        --strategy=dbscan
"""
import argparse
import warnings
from typing import Optional

import pandas as pd

from clustering import (
    CLUSTER_COL,
    ClusteringStrategy,
    assign_labels,
    evaluate_clustering,
    join_clusters,
    profile_clusters,
)
from config import gmm_component_range, load_config
from data_loader import get_data_summary, load_data_feed, load_hit_data, select_event_columns
from data_quality import (
    EmptyFeatureTableError,
    clean_visitor_features,
    ensure_not_empty,
    validate_hit_data,
    validate_visitor_features,
)
from embedding import EMBEDDING_COLUMNS, embed_tsne
from feature_engineering import create_visitor_features

# Suppress sklearn convergence chatter on small embeddings
warnings.filterwarnings('ignore', category=UserWarning, module='sklearn')


def _banner(title: str) -> None:
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


# =============================================================================
# MAIN PIPELINE
# =============================================================================

def run_pipeline(
    hits_df: pd.DataFrame,
    config: Optional[dict] = None,
    strategy=None,
) -> dict:
    """
    Run the complete visitor clustering pipeline.

    Args:
        hits_df: Event records (visitor_id or post_visid_high/low, visit_num,
            post_event_list, channel column)
        config: Configuration dict from load_config (default: built-in defaults)
        strategy: Override for config['clustering']['strategy']

    Returns:
        Dictionary with status ('ok' or 'empty') and every intermediate result.
        When status is 'empty' the embedding and clustering entries are None
        and clustered_view is an empty DataFrame.
    """
    if config is None:
        config = load_config()
    strategy = ClusteringStrategy.from_name(strategy or config['clustering']['strategy'])

    markers = config['features']['event_markers']

    _banner("VISITOR CLUSTERING PIPELINE")
    print(f"Hits: {len(hits_df):,}")
    print(f"Strategy: {strategy.value}")

    # =========================================================================
    # STEP 1: Aggregate
    # =========================================================================
    _banner("AGGREGATION")
    events = select_event_columns(hits_df, config['data'].get('channel_column'))
    events = validate_hit_data(events)
    data_summary = get_data_summary(events)
    print(f"  Visitors: {data_summary['visitors']:,} ({data_summary['memory_mb']:.1f} MB in memory)")
    visitor_df = create_visitor_features(
        events,
        event_markers=markers,
        revenue_event=config['features']['revenue_event'],
    )
    visitor_df = validate_visitor_features(visitor_df, markers)

    # =========================================================================
    # STEP 2: Clean
    # =========================================================================
    _banner("CLEANING")
    features = clean_visitor_features(visitor_df, min_hits=config['cleaning']['min_hits'])

    results = {
        'status': 'ok',
        'strategy': strategy,
        'visitor_df': visitor_df,
        'features': features,
        'embedding': None,
        'clustering': None,
        'metrics': None,
        'profiles': None,
        'summary': None,
        'clustered_view': pd.DataFrame(columns=[*features.columns, *EMBEDDING_COLUMNS, CLUSTER_COL]),
    }

    try:
        ensure_not_empty(features, "Cleaning")
    except EmptyFeatureTableError as e:
        _banner("PIPELINE STOPPED: EMPTY RESULT")
        print(f"  {e}")
        results['status'] = 'empty'
        return results

    # =========================================================================
    # STEP 3: Embed
    # =========================================================================
    _banner("T-SNE EMBEDDING")
    tsne = config['tsne']
    embedding = embed_tsne(
        features,
        random_state=tsne['random_state'],
        perplexity=tsne['perplexity'],
        max_iter=tsne['max_iter'],
        scale=tsne['scale'],
        log_features=tsne.get('log_features') or None,
    )

    # =========================================================================
    # STEP 4: Cluster
    # =========================================================================
    _banner("CLUSTERING")
    gmm = config['clustering']['gmm']
    dbscan = config['clustering']['dbscan']
    clustering = assign_labels(
        embedding,
        strategy,
        n_range=gmm_component_range(config),
        criterion=gmm['criterion'],
        random_state=gmm['random_state'],
        eps=dbscan['eps'],
        min_samples=dbscan['min_samples'],
    )

    view = join_clusters(features, embedding, clustering.labels)
    metrics = evaluate_clustering(embedding, clustering.labels, strategy.value)

    # =========================================================================
    # STEP 5: Profile
    # =========================================================================
    _banner("CLUSTER PROFILING")
    profiles, summary = profile_clusters(view, list(features.columns))

    _banner("PIPELINE COMPLETE")
    print(f"Visitors: {len(visitor_df):,}")
    print(f"Feature rows clustered: {len(view):,}")
    print(f"Clusters: {clustering.summary['n_clusters']} "
          f"(noise points: {clustering.summary['n_noise']:,})")
    if clustering.summary['is_degenerate']:
        print("⚠ Degenerate outcome, consider other clustering parameters")

    results.update({
        'embedding': embedding,
        'clustering': clustering,
        'metrics': metrics,
        'profiles': profiles,
        'summary': summary,
        'clustered_view': view,
    })

    return results


def main(argv=None):
    """Command line entry point."""
    parser = argparse.ArgumentParser(description="Cluster web-analytics visitors with t-SNE + GMM/DBSCAN")
    parser.add_argument(
        "--input",
        type=str,
        required=True,
        help="Hit data file (.csv, .tsv, .parquet) or data-feed hit_data.tsv",
    )
    parser.add_argument(
        "--column-headers",
        type=str,
        default=None,
        help="column_headers.tsv for a headerless data-feed export",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="YAML config file (default: built-in defaults)",
    )
    parser.add_argument(
        "--strategy",
        type=str,
        choices=[s.value for s in ClusteringStrategy],
        default=None,
        help="Clustering strategy (default: from config)",
    )

    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.column_headers:
        hits_df = load_data_feed(args.input, args.column_headers)
    else:
        hits_df = load_hit_data(args.input)

    results = run_pipeline(hits_df, config=config, strategy=args.strategy)

    if results['status'] == 'empty':
        return 1

    print("\nClustered visitor view (first rows):")
    print(results['clustered_view'].head(10).to_string(index=False))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
