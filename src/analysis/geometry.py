"""
Polygon geometry for cell outlines.

Provides the convex hull (Andrew's monotone chain) of an outline and the
shape metrics computed from it: area, perimeter and centroid.
"""

import logging
from typing import Dict, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

PointArray = Union[np.ndarray, Sequence[Tuple[int, int]]]


class InsufficientPointsError(ValueError):
    """Raised when a point set cannot form a polygon with non-zero area."""


def cross(o: Sequence[int], a: Sequence[int], b: Sequence[int]) -> int:
    """
    2D cross product of vectors OA and OB.

    Positive for a counter-clockwise (left) turn, negative for clockwise,
    zero when the three points are collinear.
    """
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def convex_hull(points: PointArray) -> np.ndarray:
    """
    Compute the convex hull of a set of 2D integer points.

    Args:
        points: Array-like of shape (P, 2) with (x, y) points. Duplicates are
            allowed and need not be in any order.

    Returns:
        Hull vertices (V, 2) in counter-clockwise order, starting from the
        lexicographically smallest point. Collinear boundary points are
        dropped.

    Raises:
        InsufficientPointsError: If there are fewer than 3 distinct points or
            all points are collinear
    """
    pts = np.asarray(points, dtype=np.int64).reshape(-1, 2)
    unique = sorted({(int(x), int(y)) for x, y in pts})

    if len(unique) < 3:
        raise InsufficientPointsError(
            f"Convex hull needs at least 3 distinct points, got {len(unique)}"
        )

    lower = []
    for p in unique:
        while len(lower) >= 2 and cross(lower[-2], lower[-1], p) <= 0:
            lower.pop()
        lower.append(p)

    upper = []
    for p in reversed(unique):
        while len(upper) >= 2 and cross(upper[-2], upper[-1], p) <= 0:
            upper.pop()
        upper.append(p)

    # Last point of each chain is the first point of the other
    hull = lower[:-1] + upper[:-1]

    if len(hull) < 3:
        raise InsufficientPointsError(
            f"All {len(unique)} distinct points are collinear"
        )

    return np.asarray(hull, dtype=np.int64)


def polygon_area(vertices: PointArray) -> float:
    """
    Polygon area by the shoelace formula.

    Independent of winding direction and of the starting vertex.
    """
    v = np.asarray(vertices, dtype=np.float64).reshape(-1, 2)
    if len(v) < 3:
        return 0.0

    x, y = v[:, 0], v[:, 1]
    x_next, y_next = np.roll(x, -1), np.roll(y, -1)

    return float(0.5 * abs(np.sum(x * y_next - x_next * y)))


def polygon_perimeter(vertices: PointArray) -> float:
    """Sum of Euclidean edge lengths around the closed polygon."""
    v = np.asarray(vertices, dtype=np.float64).reshape(-1, 2)
    if len(v) < 2:
        return 0.0

    edges = np.roll(v, -1, axis=0) - v

    return float(np.sum(np.hypot(edges[:, 0], edges[:, 1])))


def polygon_centroid(vertices: PointArray) -> Tuple[float, float]:
    """
    Area-weighted centroid of a polygon (Green's theorem).

    Falls back to the arithmetic mean of the vertices when the polygon has
    zero signed area.

    Returns:
        (cx, cy)
    """
    v = np.asarray(vertices, dtype=np.float64).reshape(-1, 2)
    if len(v) == 0:
        raise InsufficientPointsError("Cannot compute centroid of an empty polygon")

    x, y = v[:, 0], v[:, 1]
    x_next, y_next = np.roll(x, -1), np.roll(y, -1)

    a = x * y_next - x_next * y
    signed_area = np.sum(a) / 2.0

    if np.isclose(signed_area, 0.0):
        return float(np.mean(x)), float(np.mean(y))

    cx = np.sum((x + x_next) * a) / (6.0 * signed_area)
    cy = np.sum((y + y_next) * a) / (6.0 * signed_area)

    return float(cx), float(cy)


def compute_shape_metrics(outline: PointArray) -> Dict[str, object]:
    """
    Compute hull-based shape metrics for one cell outline.

    Args:
        outline: Outline points (P, 2)

    Returns:
        Dictionary containing:
            - hull: convex hull vertices (V, 2)
            - area: hull area (px²)
            - perimeter: hull perimeter (px)
            - centroid_x, centroid_y: area-weighted hull centroid (px)
            - outline_area: shoelace area of the outline points in input order
            - solidity: outline_area / area
            - circularity: 4πA/P² of the hull (1 = perfect circle)
    """
    hull = convex_hull(outline)

    area = polygon_area(hull)
    perimeter = polygon_perimeter(hull)
    cx, cy = polygon_centroid(hull)
    outline_area = polygon_area(outline)

    circularity = (4 * np.pi * area) / (perimeter ** 2) if perimeter > 0 else 0.0
    solidity = outline_area / area if area > 0 else 0.0

    return {
        'hull': hull,
        'area': area,
        'perimeter': perimeter,
        'centroid_x': cx,
        'centroid_y': cy,
        'outline_area': outline_area,
        'solidity': solidity,
        'circularity': circularity,
    }
