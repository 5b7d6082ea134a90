"""Configuration loading for the visitor clustering pipeline."""
import copy
from pathlib import Path
from typing import Optional

import yaml


# =============================================================================
# DEFAULTS
# =============================================================================

# Mirrors configs/config.yaml so a partial user file only overrides what it sets
DEFAULT_CONFIG = {
    'data': {
        'channel_column': 'va_closer_id',
    },
    'features': {
        'event_markers': {
            'purchases': '1',
            'product_views': '2',
            'cart_opens': '10',
            'checkouts': '11',
            'cart_adds': '12',
            'cart_removals': '13',
            'cart_views': '14',
        },
        'revenue_event': '200',
    },
    'cleaning': {
        'min_hits': 2,
    },
    'tsne': {
        'random_state': 42,
        'perplexity': 30.0,
        'max_iter': 1000,
        'scale': True,
        'log_features': [],
    },
    'clustering': {
        'strategy': 'gmm',
        'gmm': {
            'min_components': 1,
            'max_components': 9,
            'criterion': 'bic',
            'random_state': 42,
        },
        'dbscan': {
            'eps': 3.0,
            'min_samples': 10,
        },
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = None) -> dict:
    """
    Load configuration from a YAML file layered over DEFAULT_CONFIG.

    Args:
        config_path: Path to a YAML file (None returns the defaults)

    Returns:
        Configuration dictionary
    """
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Missing config file: {config_path}")

    with open(config_path) as f:
        user_config = yaml.safe_load(f) or {}

    if not isinstance(user_config, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")

    return _deep_merge(DEFAULT_CONFIG, user_config)


def gmm_component_range(config: dict) -> range:
    """Candidate component counts for the mixture model, inclusive of max."""
    gmm = config['clustering']['gmm']
    low, high = int(gmm['min_components']), int(gmm['max_components'])
    if low < 1 or high < low:
        raise ValueError(f"Invalid GMM component range: {low}..{high}")
    return range(low, high + 1)
