"""
Pytest fixtures shared across all test modules.

Provides:
- The three-visitor scenario (one bounce, two identical visitors)
- A synthetic hit table with buyers and browsers
- A fast pipeline configuration
"""
import numpy as np
import pandas as pd
import pytest

from config import load_config


def make_hits(n_visitors: int = 60, seed: int = 0) -> pd.DataFrame:
    """Synthetic hits: even visitors buy, odd visitors only browse."""
    rng = np.random.default_rng(seed)
    channels = ['email', 'search', 'social', 'display']
    rows = []

    for i in range(n_visitors):
        buyer = i % 2 == 0
        n_hits = int(rng.integers(2, 12))
        n_visits = int(rng.integers(1, min(n_hits, 4) + 1))

        for h in range(n_hits):
            if buyer:
                if h == n_hits - 1:
                    events = f",12,1,200={rng.uniform(20, 500):.2f},"
                else:
                    events = ",2,12,"
            else:
                events = ",2," if h % 3 else ",2,14,"

            rows.append({
                'visitor_id': f"v{i:03d}",
                'visit_num': 1 + h % n_visits,
                'post_event_list': events,
                'channel': channels[int(rng.integers(0, len(channels)))],
            })

    return pd.DataFrame(rows)


@pytest.fixture()
def scenario_hits():
    """Visitor a: 1 hit with a purchase, visitors b and c: 2 identical browse hits."""
    return pd.DataFrame({
        'visitor_id': ['a', 'b', 'b', 'c', 'c'],
        'visit_num': [1, 1, 1, 1, 1],
        'post_event_list': [',1,200=50,', ',2,', ',2,', ',2,', ',2,'],
        'channel': ['email', 'search', 'search', 'search', 'search'],
    })


@pytest.fixture()
def synthetic_hits():
    return make_hits()


@pytest.fixture()
def fast_config():
    """Default config with a short t-SNE run and a small GMM search."""
    config = load_config()
    config['tsne']['max_iter'] = 250
    config['tsne']['perplexity'] = 10.0
    config['clustering']['gmm']['max_components'] = 4
    config['clustering']['dbscan']['min_samples'] = 3
    return config
