"""
Per-cell feature table construction and normalization.

Combines hull shape metrics, channel intensities and Voronoi areas into one
row per cell, then min-max normalizes each feature column so cells can be
compared on a common [0, 1] scale.
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from src.analysis.geometry import InsufficientPointsError, compute_shape_metrics
from src.analysis.intensity import channel_means
from src.analysis.voronoi import voronoi_areas

logger = logging.getLogger(__name__)

# Columns used for clustering unless configured otherwise
DEFAULT_FEATURE_COLUMNS = [
    'centroid_x',
    'centroid_y',
    'area',
    'perimeter',
    'mean_red',
    'mean_green',
    'mean_blue',
    'voronoi_area',
]

ALL_FEATURE_COLUMNS = DEFAULT_FEATURE_COLUMNS + [
    'outline_area',
    'solidity',
    'circularity',
    'n_points',
]

# Identifier columns leading every feature table
TABLE_ID_COLUMNS = ['cell_id', 'line_number']


def normalize_features(matrix: np.ndarray) -> np.ndarray:
    """
    Min-max normalize each feature column to [0, 1].

    Min and max are taken across all cells for each column, so a value is
    comparable between cells. A constant column normalizes to 0.0.

    Args:
        matrix: Raw features (M, D), one row per cell

    Returns:
        Normalized features (M, D)
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.ndim != 2:
        raise ValueError(f"Expected a 2D feature matrix, got shape {matrix.shape}")
    if not np.all(np.isfinite(matrix)):
        raise ValueError("Feature matrix contains NaN or infinite values")

    if matrix.shape[0] == 0:
        return matrix.copy()

    col_min = matrix.min(axis=0)
    col_max = matrix.max(axis=0)
    span = col_max - col_min

    constant = span == 0
    safe_span = np.where(constant, 1.0, span)

    normalized = (matrix - col_min) / safe_span
    normalized[:, constant] = 0.0

    if np.any(constant):
        logger.debug(f"{int(constant.sum())} constant feature column(s) set to 0.0")

    return normalized


def compute_cell_geometry(
    outlines: List[np.ndarray],
    line_numbers: Optional[Sequence[int]] = None,
) -> List[Dict]:
    """
    Shape metrics (including the hull) for every cell outline.

    Args:
        outlines: Per-cell outline points (P, 2) as (x, y)
        line_numbers: 1-based source line of each outline, used in error
            messages; defaults to consecutive lines starting at 1

    Returns:
        One compute_shape_metrics dict per cell, in input order

    Raises:
        InsufficientPointsError: Naming the cell and its source line
    """
    line_numbers = _resolve_line_numbers(outlines, line_numbers)

    geometry = []
    for i, (outline, line_number) in enumerate(zip(outlines, line_numbers)):
        try:
            geometry.append(compute_shape_metrics(outline))
        except InsufficientPointsError as e:
            raise InsufficientPointsError(f"Cell {i} (line {line_number}): {e}") from e

    return geometry


def _resolve_line_numbers(outlines, line_numbers):
    if line_numbers is None:
        return list(range(1, len(outlines) + 1))
    if len(line_numbers) != len(outlines):
        raise ValueError(
            f"Got {len(line_numbers)} line numbers for {len(outlines)} outlines"
        )
    return [int(n) for n in line_numbers]


def build_feature_table(
    outlines: List[np.ndarray],
    image: np.ndarray,
    domain_size: Optional[Sequence[int]] = None,
    voronoi_method: str = "brute",
    strict_intensity: bool = False,
    line_numbers: Optional[Sequence[int]] = None,
    geometry: Optional[List[Dict]] = None,
) -> pd.DataFrame:
    """
    Compute raw features for every cell.

    Args:
        outlines: Per-cell outline points (P, 2) as (x, y)
        image: RGB image (H, W, 3) the outlines were segmented from
        domain_size: (width, height) of the Voronoi domain; defaults to the
            image size
        voronoi_method: "brute" or "kdtree"
        strict_intensity: Raise on cells without pixels instead of using zeros
        line_numbers: 1-based source line of each outline, as returned by
            read_outlines(..., with_line_numbers=True)
        geometry: Precomputed compute_cell_geometry output, to avoid
            rebuilding the hulls

    Returns:
        DataFrame with one row per cell containing:
            - cell_id: position of the outline in the input (0-based)
            - line_number: source line of the outline (1-based)
            - centroid_x, centroid_y: area-weighted hull centroid (px)
            - area, perimeter: convex hull area (px²) and perimeter (px)
            - mean_red, mean_green, mean_blue: channel means over outline pixels
            - voronoi_area: pixels nearer this centroid than any other
            - outline_area, solidity, circularity, n_points
    """
    if len(outlines) == 0:
        return pd.DataFrame(columns=TABLE_ID_COLUMNS + ALL_FEATURE_COLUMNS)

    line_numbers = _resolve_line_numbers(outlines, line_numbers)
    if geometry is None:
        geometry = compute_cell_geometry(outlines, line_numbers)
    elif len(geometry) != len(outlines):
        raise ValueError(f"Got geometry for {len(geometry)} of {len(outlines)} cells")

    records = []
    for i, (outline, metrics) in enumerate(zip(outlines, geometry)):
        records.append({
            'cell_id': i,
            'line_number': line_numbers[i],
            'centroid_x': metrics['centroid_x'],
            'centroid_y': metrics['centroid_y'],
            'area': metrics['area'],
            'perimeter': metrics['perimeter'],
            'outline_area': metrics['outline_area'],
            'solidity': metrics['solidity'],
            'circularity': metrics['circularity'],
            'n_points': len(outline),
        })

    df = pd.DataFrame(records)

    means = channel_means(outlines, image, strict=strict_intensity)
    df['mean_red'] = means[:, 0]
    df['mean_green'] = means[:, 1 % means.shape[1]]
    df['mean_blue'] = means[:, 2 % means.shape[1]]

    if domain_size is None:
        height, width = image.shape[:2]
    else:
        width, height = domain_size

    centroids = df[['centroid_x', 'centroid_y']].to_numpy()
    df['voronoi_area'] = voronoi_areas(centroids, width, height, method=voronoi_method)

    logger.info(f"Built feature table for {len(df)} cells")

    return df[TABLE_ID_COLUMNS + ALL_FEATURE_COLUMNS]


def feature_matrix(table: pd.DataFrame, columns: Optional[Sequence[str]] = None) -> np.ndarray:
    """
    Select the numeric feature matrix (M, D) from a feature table.

    Raises:
        KeyError: If a requested column is missing
    """
    columns = list(columns) if columns is not None else DEFAULT_FEATURE_COLUMNS
    missing = [c for c in columns if c not in table.columns]
    if missing:
        raise KeyError(f"Feature columns not in table: {missing}")

    return table[columns].to_numpy(dtype=np.float64)
