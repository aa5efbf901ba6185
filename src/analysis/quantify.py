"""
Cell quantification and clustering for one outline/image pair.

This module ties the pieces together: read outlines and image, compute the
per-cell feature table, normalize it, cluster the cells, and write tables,
the rendered cluster image and summary plots.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from src.analysis.features import (
    DEFAULT_FEATURE_COLUMNS,
    build_feature_table,
    compute_cell_geometry,
    feature_matrix,
    normalize_features,
)
from src.clustering.kmeans import MAX_ITERATIONS, KMeansResult, run_kmeans
from src.data.images import load_rgb_image, save_rgb_image
from src.data.outlines import read_outlines
from src.visualization.render import render_cell_clusters

logger = logging.getLogger(__name__)


def cluster_cells(
    table: pd.DataFrame,
    k: int,
    columns: Optional[Sequence[str]] = None,
    init: str = "sample",
    max_iterations: int = MAX_ITERATIONS,
    tol: float = 0.0,
    seed: Optional[int] = None,
) -> Tuple[np.ndarray, KMeansResult]:
    """
    Normalize the selected feature columns and cluster the cells.

    Args:
        table: Feature table from build_feature_table
        k: Number of clusters
        columns: Feature columns to use (default: DEFAULT_FEATURE_COLUMNS)
        init: Centroid initialization policy
        max_iterations: Iteration cap
        tol: Convergence tolerance on centroid movement
        seed: Random seed for initialization

    Returns:
        normalized: Normalized feature matrix (M, D)
        result: KMeansResult in normalized feature space
    """
    columns = list(columns) if columns is not None else DEFAULT_FEATURE_COLUMNS
    normalized = normalize_features(feature_matrix(table, columns))

    result = run_kmeans(
        normalized,
        k,
        init=init,
        max_iterations=max_iterations,
        tol=tol,
        random_state=seed,
    )

    logger.info(
        f"Clustered {len(table)} cells on {len(columns)} features: "
        f"sizes {result.cluster_sizes().tolist()}"
    )

    return normalized, result


def process_sample(
    outline_path: Path,
    image_path: Path,
    k: int,
    columns: Optional[Sequence[str]] = None,
    voronoi_method: str = "brute",
    strict_intensity: bool = False,
    init: str = "sample",
    max_iterations: int = MAX_ITERATIONS,
    tol: float = 0.0,
    seed: Optional[int] = None,
) -> Tuple[pd.DataFrame, pd.DataFrame, KMeansResult, List[np.ndarray], np.ndarray]:
    """
    Run feature extraction and clustering for one outline/image pair.

    Args:
        outline_path: Path to the outline text file
        image_path: Path to the image the outlines belong to
        k: Number of clusters
        columns: Feature columns to cluster on
        voronoi_method: "brute" or "kdtree"
        strict_intensity: Fail on cells without pixels
        init, max_iterations, tol, seed: Passed to the k-means engine

    Returns:
        features: Raw feature table with a 'cluster' column
        normalized: Normalized features used for clustering, as a DataFrame
        result: KMeansResult
        hulls: Convex hull per cell
        image: The loaded RGB image
    """
    columns = list(columns) if columns is not None else DEFAULT_FEATURE_COLUMNS

    outlines, line_numbers = read_outlines(outline_path, with_line_numbers=True)
    if len(outlines) == 0:
        raise ValueError(f"No outlines found in {outline_path}")

    image = load_rgb_image(image_path)

    geometry = compute_cell_geometry(outlines, line_numbers)
    hulls = [metrics['hull'] for metrics in geometry]

    features = build_feature_table(
        outlines,
        image,
        voronoi_method=voronoi_method,
        strict_intensity=strict_intensity,
        line_numbers=line_numbers,
        geometry=geometry,
    )

    normalized, result = cluster_cells(
        features,
        k,
        columns=columns,
        init=init,
        max_iterations=max_iterations,
        tol=tol,
        seed=seed,
    )

    features = features.copy()
    features['cluster'] = result.labels

    normalized_df = pd.DataFrame(normalized, columns=columns)
    normalized_df.insert(0, 'cell_id', features['cell_id'].to_numpy())
    normalized_df['cluster'] = result.labels

    return features, normalized_df, result, hulls, image


def summarize_clusters(features: pd.DataFrame, columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    Per-cluster cell count and mean raw features.

    Args:
        features: Feature table with a 'cluster' column
        columns: Feature columns to average

    Returns:
        DataFrame with one row per non-empty cluster: cluster, n_cells and
        the mean of each feature column
    """
    columns = list(columns) if columns is not None else DEFAULT_FEATURE_COLUMNS

    if len(features) == 0:
        return pd.DataFrame(columns=['cluster', 'n_cells'] + columns)

    grouped = features.groupby('cluster')
    summary = grouped[columns].mean()
    summary.insert(0, 'n_cells', grouped.size())

    return summary.reset_index()


def save_results(
    features: pd.DataFrame,
    normalized: pd.DataFrame,
    result: KMeansResult,
    hulls: List[np.ndarray],
    image_shape: Tuple[int, ...],
    output_dir: Path,
    image_name: str = "clustered.png",
    columns: Optional[Sequence[str]] = None,
    plots: bool = True,
    seed: Optional[int] = None,
) -> Dict[str, Path]:
    """
    Write tables, the cluster image and (optionally) summary plots.

    Returns:
        Mapping of output name to path
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = {
        'features': output_dir / "features.csv",
        'normalized': output_dir / "normalized_features.csv",
        'clusters': output_dir / "clusters.csv",
        'image': output_dir / image_name,
    }

    features.to_csv(paths['features'], index=False)
    normalized.to_csv(paths['normalized'], index=False)
    summarize_clusters(features, columns).to_csv(paths['clusters'], index=False)

    height, width = image_shape[:2]
    rendered = render_cell_clusters(hulls, result.labels, width, height, rng=seed)
    save_rgb_image(rendered, paths['image'])

    if plots:
        paths['plots'] = create_summary_plots(features, output_dir)

    logger.info(f"Saved results for {len(features)} cells to {output_dir}")

    return paths


def create_summary_plots(features: pd.DataFrame, output_dir: Path) -> Optional[Path]:
    """
    Create summary visualization plots.

    Args:
        features: Feature table, optionally with a 'cluster' column
        output_dir: Directory to save plots

    Returns:
        Path of the saved figure, or None if there was nothing to plot
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    if len(features) == 0:
        logger.warning("No cells found for plotting")
        return None

    fig, axes = plt.subplots(2, 2, figsize=(12, 10))

    # 1. Hull areas
    ax = axes[0, 0]
    ax.hist(features['area'], bins=30, edgecolor='black', alpha=0.7)
    ax.set_xlabel('Hull Area (px²)')
    ax.set_ylabel('Frequency')
    ax.set_title('Distribution of Cell Areas')
    ax.grid(True, alpha=0.3)

    # 2. Hull perimeters
    ax = axes[0, 1]
    ax.hist(features['perimeter'], bins=30, edgecolor='black', alpha=0.7, color='orange')
    ax.set_xlabel('Hull Perimeter (px)')
    ax.set_ylabel('Frequency')
    ax.set_title('Distribution of Cell Perimeters')
    ax.grid(True, alpha=0.3)

    # 3. Voronoi areas
    ax = axes[1, 0]
    ax.hist(features['voronoi_area'], bins=30, edgecolor='black', alpha=0.7, color='green')
    ax.set_xlabel('Voronoi Area (px)')
    ax.set_ylabel('Frequency')
    ax.set_title('Distribution of Voronoi Areas')
    ax.grid(True, alpha=0.3)

    # 4. Cell centroids coloured by cluster
    ax = axes[1, 1]
    colour = features['cluster'] if 'cluster' in features.columns else None
    scatter = ax.scatter(
        features['centroid_x'], features['centroid_y'], c=colour, cmap='tab20', s=20, alpha=0.8
    )
    if colour is not None:
        fig.colorbar(scatter, ax=ax, label='Cluster')
    ax.invert_yaxis()
    ax.set_xlabel('Centroid X (px)')
    ax.set_ylabel('Centroid Y (px)')
    ax.set_title('Cell Centroids by Cluster')
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    output_path = output_dir / 'summary_plots.png'
    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close(fig)

    logger.info(f"Saved summary plots to {output_path}")

    return output_path
