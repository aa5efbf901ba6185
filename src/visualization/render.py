"""
Rendering of cluster assignments as colour images.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np
from skimage.draw import polygon, polygon_perimeter

logger = logging.getLogger(__name__)

# Named colours for the first clusters, in order
PALETTE = np.array([
    [255, 0, 0],      # red
    [0, 255, 0],      # green
    [0, 0, 255],      # blue
    [255, 255, 0],    # yellow
    [0, 255, 255],    # cyan
    [255, 0, 255],    # magenta
    [192, 192, 192],  # silver
    [128, 0, 0],      # maroon
    [128, 128, 0],    # olive
    [0, 128, 0],      # dark green
    [128, 0, 128],    # purple
    [0, 128, 128],    # teal
    [255, 165, 0],    # orange
    [255, 192, 203],  # pink
    [75, 0, 130],     # indigo
], dtype=np.uint8)

FALLBACK_COLOR = (30, 30, 30)
OUT_OF_BOUNDS_COLOR = (0, 0, 0)


def label_colors(num_colors: int, rng=None) -> np.ndarray:
    """
    Colour table for num_colors clusters.

    The first 15 entries come from PALETTE; the rest are random RGB bytes
    drawn from rng (a seed or numpy Generator).

    Returns:
        Array (num_colors, 3) uint8
    """
    if num_colors < 0:
        raise ValueError(f"num_colors must be non-negative, got {num_colors}")

    colors = np.zeros((num_colors, 3), dtype=np.uint8)
    n_fixed = min(num_colors, len(PALETTE))
    colors[:n_fixed] = PALETTE[:n_fixed]

    if num_colors > len(PALETTE):
        rng = np.random.default_rng(rng)
        extra = num_colors - len(PALETTE)
        colors[len(PALETTE):] = rng.integers(0, 256, size=(extra, 3), dtype=np.uint8)

    return colors


def render_label_image(
    labels: np.ndarray,
    colors: np.ndarray,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> np.ndarray:
    """
    Paint each pixel with the colour of its cluster.

    Labels outside the colour table (including negative labels) are painted
    FALLBACK_COLOR. When the output is larger than the label matrix, pixels
    with no label are painted black.

    Args:
        labels: Integer label matrix (H, W)
        colors: Colour table (K, 3) uint8
        width: Output width, defaults to the label matrix width
        height: Output height, defaults to the label matrix height

    Returns:
        RGB image (height, width, 3) uint8
    """
    labels = np.asarray(labels)
    colors = np.asarray(colors, dtype=np.uint8).reshape(-1, 3)
    label_h, label_w = labels.shape
    width = label_w if width is None else width
    height = label_h if height is None else height

    output = np.empty((height, width, 3), dtype=np.uint8)
    output[:] = OUT_OF_BOUNDS_COLOR

    h = min(height, label_h)
    w = min(width, label_w)
    if (h, w) != (height, width):
        logger.warning(
            f"Output {width}x{height} exceeds label matrix {label_w}x{label_h}; "
            "uncovered pixels rendered black"
        )

    region = labels[:h, :w]
    valid = (region >= 0) & (region < len(colors))

    painted = np.empty((h, w, 3), dtype=np.uint8)
    painted[:] = FALLBACK_COLOR
    painted[valid] = colors[region[valid]]

    # Negative labels mark unassigned pixels and are not worth a warning
    n_invalid = int(np.count_nonzero(region >= len(colors)))
    if n_invalid and len(colors) > 0:
        logger.warning(
            f"{n_invalid} pixels have labels outside the colour table "
            f"(len {len(colors)}); using fallback colour"
        )

    output[:h, :w] = painted

    return output


def cell_label_matrix(
    hulls: Sequence[np.ndarray],
    labels: Sequence[int],
    width: int,
    height: int,
) -> np.ndarray:
    """
    Rasterise cell hulls into a label matrix.

    Args:
        hulls: Per-cell hull vertices (V, 2) as (x, y)
        labels: Cluster id per cell
        width: Matrix width
        height: Matrix height

    Returns:
        Integer array (height, width): the cell's cluster id inside each hull,
        -1 elsewhere. Later cells overwrite earlier ones where hulls overlap.
    """
    if len(hulls) != len(labels):
        raise ValueError(f"Got {len(hulls)} hulls but {len(labels)} labels")

    matrix = np.full((height, width), -1, dtype=np.int64)
    for hull, label in zip(hulls, labels):
        hull = np.asarray(hull)
        rr, cc = polygon(hull[:, 1], hull[:, 0], shape=(height, width))
        matrix[rr, cc] = label
        # Boundary pixels are not always covered by polygon()
        rr, cc = polygon_perimeter(hull[:, 1], hull[:, 0], shape=(height, width))
        matrix[rr, cc] = label

    return matrix


def render_cell_clusters(
    hulls: List[np.ndarray],
    labels: Sequence[int],
    width: int,
    height: int,
    rng=None,
) -> np.ndarray:
    """Render cell hulls coloured by cluster; background uses the fallback colour."""
    n_colors = int(max(labels)) + 1 if len(labels) else 0
    colors = label_colors(n_colors, rng=rng)
    matrix = cell_label_matrix(hulls, labels, width, height)
    return render_label_image(matrix, colors)
