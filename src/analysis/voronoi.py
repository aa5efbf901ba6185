"""
Discrete Voronoi areas of cell centroids.

Every integer pixel of a W x H domain is assigned to its nearest centroid
(Euclidean distance, ties to the lowest centroid index); a centroid's area is
the number of pixels it owns.
"""

import logging
from typing import Optional

import numpy as np
from scipy.spatial import cKDTree
from tqdm import tqdm

logger = logging.getLogger(__name__)

VORONOI_METHODS = ("brute", "kdtree")

# Upper bound on pixel-centroid pairs held in memory per block
MAX_BLOCK_PAIRS = 4_000_000


def _nearest_brute(pixels: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Index of the nearest centroid for each pixel; argmin keeps the lowest index on ties."""
    dx = pixels[:, 0, None] - centroids[None, :, 0]
    dy = pixels[:, 1, None] - centroids[None, :, 1]
    dist_sq = dx * dx + dy * dy
    return np.argmin(dist_sq, axis=1)


def _nearest_kdtree(pixels: np.ndarray, centroids: np.ndarray, tree: cKDTree) -> np.ndarray:
    """Nearest centroid via the spatial index, re-resolving ties by brute force."""
    if len(centroids) == 1:
        return np.zeros(len(pixels), dtype=np.int64)

    dist, idx = tree.query(pixels, k=2)
    nearest = idx[:, 0].astype(np.int64)

    # cKDTree does not promise lowest-index tie breaking
    tied = np.isclose(dist[:, 0], dist[:, 1], rtol=1e-9, atol=1e-9)
    if np.any(tied):
        nearest[tied] = _nearest_brute(pixels[tied], centroids)

    return nearest


def voronoi_labels(
    centroids: np.ndarray,
    width: int,
    height: int,
    method: str = "brute",
    block_pixels: Optional[int] = None,
    progress: bool = False,
) -> np.ndarray:
    """
    Label every pixel of the domain with its nearest centroid.

    Args:
        centroids: Generating points (N, 2) as (x, y)
        width: Domain width W (pixels)
        height: Domain height H (pixels)
        method: "brute" for the dense O(W*H*N) scan, "kdtree" for a
            scipy cKDTree lookup with identical tie semantics
        block_pixels: Pixels processed per vectorised block, in row-major
            order; by default chosen so a block holds at most MAX_BLOCK_PAIRS
            pixel-centroid pairs (one pixel per block at minimum)
        progress: Show a tqdm progress bar over blocks

    Returns:
        Integer array (H, W) of centroid indices
    """
    centroids = np.asarray(centroids, dtype=np.float64).reshape(-1, 2)

    if len(centroids) == 0:
        raise ValueError("At least one centroid is required")
    if width <= 0 or height <= 0:
        raise ValueError(f"Domain must be non-empty, got {width}x{height}")
    if method not in VORONOI_METHODS:
        raise ValueError(f"Unknown Voronoi method {method!r}, expected one of {VORONOI_METHODS}")

    if block_pixels is None:
        block_pixels = max(1, MAX_BLOCK_PAIRS // len(centroids))
    if block_pixels < 1:
        raise ValueError(f"block_pixels must be at least 1, got {block_pixels}")

    tree = cKDTree(centroids) if method == "kdtree" else None
    n_pixels = width * height
    labels = np.empty(n_pixels, dtype=np.int64)

    starts = range(0, n_pixels, block_pixels)
    for start in tqdm(starts, desc="Voronoi", disable=not progress):
        stop = min(start + block_pixels, n_pixels)
        ys, xs = np.divmod(np.arange(start, stop), width)
        pixels = np.column_stack([xs, ys]).astype(np.float64)

        if tree is None:
            labels[start:stop] = _nearest_brute(pixels, centroids)
        else:
            labels[start:stop] = _nearest_kdtree(pixels, centroids, tree)

    return labels.reshape(height, width)


def voronoi_areas(
    centroids: np.ndarray,
    width: int,
    height: int,
    method: str = "brute",
    progress: bool = False,
) -> np.ndarray:
    """
    Pixel-count Voronoi area of each centroid within a W x H domain.

    Returns:
        Integer array (N,) whose entries sum to width * height
    """
    centroids = np.asarray(centroids, dtype=np.float64).reshape(-1, 2)
    labels = voronoi_labels(centroids, width, height, method=method, progress=progress)
    areas = np.bincount(labels.ravel(), minlength=len(centroids)).astype(np.int64)

    logger.debug(
        f"Voronoi areas for {len(centroids)} centroids over {width}x{height} ({method})"
    )

    return areas
