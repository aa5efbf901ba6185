"""Configuration loading for clustering runs."""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from src.analysis.features import ALL_FEATURE_COLUMNS, DEFAULT_FEATURE_COLUMNS
from src.analysis.voronoi import VORONOI_METHODS
from src.clustering.kmeans import INIT_METHODS, MAX_ITERATIONS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "data": {
        "outlines": None,
        "image": None,
    },
    "features": {
        "columns": list(DEFAULT_FEATURE_COLUMNS),
        "voronoi_method": "brute",
        "strict_intensity": False,
    },
    "clustering": {
        "k": 10,
        "init": "sample",
        "max_iterations": MAX_ITERATIONS,
        "tol": 0.0,
        "seed": 42,
    },
    "output": {
        "output_dir": "outputs",
        "image_name": "clustered.png",
        "plots": True,
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def validate_config(config: Dict[str, Any]) -> None:
    """
    Check config values before any work starts.

    Raises:
        ValueError: On a missing section or an invalid value
    """
    for field in ["data", "features", "clustering", "output"]:
        if field not in config:
            raise ValueError(f"Missing required config field: {field}")

    clustering = config["clustering"]
    if int(clustering["k"]) <= 0:
        raise ValueError(f"clustering.k must be positive, got {clustering['k']}")
    if int(clustering["max_iterations"]) < 1:
        raise ValueError("clustering.max_iterations must be at least 1")
    if clustering["init"] not in INIT_METHODS:
        raise ValueError(f"Unknown init method: {clustering['init']}")
    if float(clustering["tol"]) < 0:
        raise ValueError("clustering.tol must be non-negative")

    features = config["features"]
    if features["voronoi_method"] not in VORONOI_METHODS:
        raise ValueError(f"Unknown Voronoi method: {features['voronoi_method']}")
    unknown = [c for c in features["columns"] if c not in ALL_FEATURE_COLUMNS]
    if unknown:
        raise ValueError(f"Unknown feature columns: {unknown}")
    if not features["columns"]:
        raise ValueError("At least one feature column is required")


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load a YAML config and fill in defaults for anything it leaves out.

    Args:
        config_path: Path to YAML config file, or None for defaults only

    Returns:
        Config dictionary
    """
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        loaded = yaml.safe_load(f) or {}

    config = _deep_merge(DEFAULT_CONFIG, loaded)
    validate_config(config)

    logger.info(f"Loaded config from {config_path}")
    return config


def apply_overrides(config: Dict[str, Any], args) -> Dict[str, Any]:
    """Apply command-line overrides (attributes left as None are ignored)."""
    config = copy.deepcopy(config)

    overrides = {
        ("data", "outlines"): getattr(args, "outlines", None),
        ("data", "image"): getattr(args, "image", None),
        ("clustering", "k"): getattr(args, "k", None),
        ("clustering", "seed"): getattr(args, "seed", None),
        ("clustering", "max_iterations"): getattr(args, "max_iterations", None),
        ("clustering", "init"): getattr(args, "init", None),
        ("features", "voronoi_method"): getattr(args, "voronoi_method", None),
        ("output", "output_dir"): getattr(args, "output_dir", None),
    }
    for (section, key), value in overrides.items():
        if value is not None:
            config[section][key] = value

    validate_config(config)
    return config


def save_config(config: Dict[str, Any], output_path: Path) -> None:
    """
    Save config snapshot to output directory.

    Args:
        config: Config dictionary
        output_path: Path to save config
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)

    logger.info(f"Saved config snapshot to {output_path}")
