"""
Per-cell intensity aggregation.

Maps outline pixels onto an RGB image and averages each channel per cell.
"""

import logging
from typing import List

import numpy as np

logger = logging.getLogger(__name__)


class EmptyRegionError(ValueError):
    """Raised when a cell has no pixels to aggregate over."""


def gather_cell_pixels(outline: np.ndarray, image: np.ndarray, cell_id: int = 0) -> np.ndarray:
    """
    Collect the RGB values of a cell's outline pixels.

    Args:
        outline: Points (P, 2) as (x, y)
        image: RGB image (H, W, 3) indexed by (row, column)
        cell_id: Cell index, used in error messages

    Returns:
        Array (P, 3) of pixel values, one row per outline point

    Raises:
        ValueError: If any point lies outside the image
    """
    points = np.asarray(outline, dtype=np.int64).reshape(-1, 2)
    if len(points) == 0:
        return np.zeros((0,) + image.shape[2:], dtype=image.dtype)

    xs, ys = points[:, 0], points[:, 1]
    height, width = image.shape[:2]

    outside = (xs < 0) | (xs >= width) | (ys < 0) | (ys >= height)
    if np.any(outside):
        bad = points[np.argmax(outside)]
        raise ValueError(
            f"Cell {cell_id}: pixel ({bad[0]}, {bad[1]}) is outside image "
            f"of size {width}x{height}"
        )

    return image[ys, xs]


def channel_means(
    outlines: List[np.ndarray],
    image: np.ndarray,
    strict: bool = False,
) -> np.ndarray:
    """
    Mean of each colour channel over every cell's pixels.

    Args:
        outlines: Per-cell point arrays (P, 2) as (x, y)
        image: RGB image (H, W, 3)
        strict: Raise EmptyRegionError for a cell without pixels instead of
            returning a zero vector for it

    Returns:
        Array (N, 3) of per-cell channel means
    """
    n_channels = image.shape[2] if image.ndim == 3 else 1
    means = np.zeros((len(outlines), n_channels), dtype=np.float64)

    for i, outline in enumerate(outlines):
        pixels = gather_cell_pixels(outline, image, cell_id=i).reshape(-1, n_channels)

        if len(pixels) == 0:
            if strict:
                raise EmptyRegionError(f"Cell {i} has no pixels")
            logger.warning(f"Cell {i} has no pixels, using zero intensity")

        count = len(pixels) if len(pixels) > 0 else 1
        means[i] = pixels.astype(np.float64).sum(axis=0) / count

    logger.debug(f"Computed channel means for {len(outlines)} cells")

    return means
