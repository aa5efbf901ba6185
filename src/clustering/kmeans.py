"""
K-means clustering (Lloyd's algorithm) over n-dimensional vectors.

The engine alternates an assignment step (nearest centroid, ties to the
lowest index) with an update step (component-wise mean of members) until the
centroids stop moving or the iteration cap is reached. It is used both for
cell feature vectors and for raw pixel coordinates.
"""

import logging
from enum import Enum
from typing import List, Optional, Tuple, Union

import numpy as np

from src.clustering.vectors import ArrayLike, VectorSet

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 1000
INIT_METHODS = ("sample", "uniform")

RandomState = Union[None, int, np.random.Generator]


class KMeansState(Enum):
    """Lifecycle of a clustering run."""

    UNINITIALIZED = "uninitialized"
    ASSIGNING = "assigning"
    UPDATING = "updating"
    CONVERGED = "converged"
    MAX_ITER_REACHED = "max_iter_reached"


class KMeansResult:
    """
    Outcome of a clustering run.

    Attributes:
        labels: Cluster id per item (N,)
        centroids: Final centroids (K, D)
        members: Item indices per cluster, K arrays
        n_iter: Number of update steps performed
        state: KMeansState.CONVERGED or KMeansState.MAX_ITER_REACHED
        inertia: Sum of squared distances from items to their centroid
    """

    def __init__(
        self,
        labels: np.ndarray,
        centroids: np.ndarray,
        members: List[np.ndarray],
        n_iter: int,
        state: KMeansState,
        inertia: float,
    ):
        self.labels = labels
        self.centroids = centroids
        self.members = members
        self.n_iter = n_iter
        self.state = state
        self.inertia = inertia

    @property
    def n_clusters(self) -> int:
        return len(self.centroids)

    @property
    def converged(self) -> bool:
        return self.state is KMeansState.CONVERGED

    def cluster_sizes(self) -> np.ndarray:
        return np.array([len(m) for m in self.members], dtype=np.int64)

    def __repr__(self) -> str:
        return (
            f"KMeansResult(k={self.n_clusters}, n_iter={self.n_iter}, "
            f"state={self.state.value}, inertia={self.inertia:.4f})"
        )


def initialize_centroids(
    points: VectorSet,
    k: int,
    init: str = "sample",
    rng: RandomState = None,
) -> VectorSet:
    """
    Choose k starting centroids.

    Args:
        points: Items to cluster
        k: Number of clusters
        init: "sample" draws k distinct items (with replacement only when
            k exceeds the number of items); "uniform" draws k points uniformly
            within the per-dimension bounds of the items, which may leave
            clusters empty on the first pass
        rng: Seed or numpy Generator

    Returns:
        Centroids (k, D)
    """
    if init not in INIT_METHODS:
        raise ValueError(f"Unknown init method {init!r}, expected one of {INIT_METHODS}")

    rng = np.random.default_rng(rng)
    n = len(points)

    if init == "sample":
        indices = rng.choice(n, size=k, replace=k > n)
        return VectorSet(points.data[indices])

    low, high = points.bounds()
    return VectorSet(rng.uniform(low, high, size=(k, points.dim)))


def assign_labels(
    points: VectorSet,
    centroids: VectorSet,
    chunk_size: int = 65536,
) -> Tuple[np.ndarray, List[np.ndarray]]:
    """
    Assign every item to its nearest centroid.

    Returns:
        labels: Cluster id per item (N,)
        members: For each centroid, the sorted indices of its items
    """
    labels = points.nearest(centroids, chunk_size=chunk_size)
    members = [np.flatnonzero(labels == c) for c in range(len(centroids))]
    return labels, members


def update_centroids(
    points: VectorSet,
    members: List[np.ndarray],
    previous: VectorSet,
) -> VectorSet:
    """
    Move each centroid to the mean of its members.

    A cluster without members keeps its previous centroid.
    """
    updated = previous.data.copy()
    for c, idx in enumerate(members):
        if len(idx) > 0:
            updated[c] = points.mean(idx)
    return VectorSet(updated)


def _inertia(points: VectorSet, centroids: VectorSet, labels: np.ndarray) -> float:
    diff = points.data - centroids.data[labels]
    return float(np.einsum("ij,ij->", diff, diff))


def run_kmeans(
    data: Union[VectorSet, ArrayLike],
    k: int,
    init: str = "sample",
    initial_centroids: Optional[ArrayLike] = None,
    max_iterations: int = MAX_ITERATIONS,
    tol: float = 0.0,
    random_state: RandomState = None,
    chunk_size: int = 65536,
) -> KMeansResult:
    """
    Cluster items with Lloyd's algorithm.

    The run is converged when a further update would leave the centroids
    unchanged: either the assignment did not change after an update, or no
    centroid moved by more than tol (0.0 means exact equality). Otherwise it
    stops after max_iterations updates.

    Args:
        data: Items (N, D)
        k: Number of clusters (must be positive; may exceed N)
        init: Initialization policy, see initialize_centroids
        initial_centroids: Explicit starting centroids (k, D); overrides init
        max_iterations: Iteration cap
        tol: Centroid shift below which the run counts as converged
        random_state: Seed or numpy Generator for initialization
        chunk_size: Items per block in the assignment step

    Returns:
        KMeansResult
    """
    points = data if isinstance(data, VectorSet) else VectorSet(data)

    if k <= 0:
        raise ValueError(f"Number of clusters must be positive, got k={k}")
    if len(points) == 0:
        raise ValueError("Cannot cluster an empty dataset")
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")
    if tol < 0:
        raise ValueError(f"tol must be non-negative, got {tol}")

    if k > len(points):
        logger.warning(
            f"k={k} exceeds the number of items ({len(points)}); "
            "some clusters will be empty"
        )

    state = KMeansState.UNINITIALIZED
    if initial_centroids is not None:
        centroids = VectorSet(initial_centroids)
        if len(centroids) != k or centroids.dim != points.dim:
            raise ValueError(
                f"initial_centroids must have shape ({k}, {points.dim}), "
                f"got ({len(centroids)}, {centroids.dim})"
            )
    else:
        centroids = initialize_centroids(points, k, init=init, rng=random_state)

    state = KMeansState.ASSIGNING
    labels, members = assign_labels(points, centroids, chunk_size=chunk_size)

    n_iter = 0
    while True:
        if n_iter >= max_iterations:
            state = KMeansState.MAX_ITER_REACHED
            break

        n_iter += 1
        state = KMeansState.UPDATING
        new_centroids = update_centroids(points, members, centroids)

        state = KMeansState.ASSIGNING
        new_labels, new_members = assign_labels(points, new_centroids, chunk_size=chunk_size)

        stable = np.array_equal(new_labels, labels) or new_centroids.equals(centroids, tol=tol)

        centroids, labels, members = new_centroids, new_labels, new_members

        if stable:
            state = KMeansState.CONVERGED
            break

    empty = sum(1 for m in members if len(m) == 0)
    if empty:
        logger.debug(f"{empty} of {k} clusters are empty")

    if state is KMeansState.CONVERGED:
        logger.info(f"K-means converged after {n_iter} iterations (k={k}, n={len(points)})")
    else:
        logger.warning(f"K-means stopped at the iteration cap ({max_iterations}) without converging")

    return KMeansResult(
        labels=labels,
        centroids=centroids.data,
        members=members,
        n_iter=n_iter,
        state=state,
        inertia=_inertia(points, centroids, labels),
    )


def cluster_image_pixels(
    image: np.ndarray,
    k: int,
    threshold: int = 80,
    **kwargs,
) -> Tuple[np.ndarray, KMeansResult]:
    """
    Cluster the (x, y) coordinates of an image's pixels.

    Pixels whose channel sum is below threshold are left out of the
    clustering and labeled -1. This differs from filter_dark_pixels, which
    only blackens dark pixels: there every coordinate would still be
    clustered. Pass threshold=0 to cluster every pixel coordinate.

    Args:
        image: RGB image (H, W, 3) or grayscale (H, W)
        k: Number of clusters
        threshold: Minimum channel sum for a pixel to take part (0 keeps all)
        **kwargs: Passed to run_kmeans

    Returns:
        label_matrix: Integer array (H, W) of cluster ids, -1 for filtered pixels
        result: KMeansResult over the kept pixels
    """
    intensity = image.astype(np.int64)
    if intensity.ndim == 3:
        intensity = intensity.sum(axis=2)

    keep = intensity >= threshold
    rows, cols = np.nonzero(keep)
    if len(rows) == 0:
        raise ValueError(f"No pixels with channel sum >= {threshold} to cluster")

    logger.info(f"Clustering {len(rows)} of {keep.size} pixels into {k} clusters")

    coords = np.column_stack([cols, rows])
    result = run_kmeans(coords, k, **kwargs)

    label_matrix = np.full(keep.shape, -1, dtype=np.int64)
    label_matrix[rows, cols] = result.labels

    return label_matrix, result
