"""
Points in an n-dimensional Euclidean space.

The same representation serves both pixel-coordinate clustering (D = 2) and
cell feature clustering (D = number of features).
"""

from typing import Optional, Sequence, Tuple, Union

import numpy as np

ArrayLike = Union[np.ndarray, Sequence[Sequence[float]]]


class VectorSet:
    """
    Ordered set of N vectors of dimension D, stored as an (N, D) float array.

    Args:
        data: Array-like of shape (N, D). A 1D input is taken as N vectors of
            dimension 1.
    """

    def __init__(self, data: ArrayLike):
        arr = np.array(data, dtype=np.float64)
        if arr.ndim == 1:
            arr = arr.reshape(-1, 1)
        if arr.ndim != 2:
            raise ValueError(f"Expected (N, D) data, got shape {arr.shape}")
        self._data = arr

    @property
    def data(self) -> np.ndarray:
        return self._data

    @property
    def dim(self) -> int:
        return self._data.shape[1]

    def __len__(self) -> int:
        return self._data.shape[0]

    def __getitem__(self, index) -> np.ndarray:
        return self._data[index]

    def __repr__(self) -> str:
        return f"VectorSet(n={len(self)}, dim={self.dim})"

    def _check_dim(self, other: "VectorSet") -> None:
        if other.dim != self.dim:
            raise ValueError(f"Dimension mismatch: {self.dim} vs {other.dim}")

    def distances(self, other: "VectorSet") -> np.ndarray:
        """Euclidean distance matrix (N, K) from every vector here to every vector in other."""
        self._check_dim(other)
        diff = self._data[:, None, :] - other.data[None, :, :]
        return np.sqrt(np.einsum("ijk,ijk->ij", diff, diff))

    def nearest(self, other: "VectorSet", chunk_size: int = 65536) -> np.ndarray:
        """
        Index of the nearest vector in other for each vector here.

        Ties go to the lowest index in other. Rows are processed in chunks to
        bound the size of the intermediate distance matrix.
        """
        self._check_dim(other)
        if len(other) == 0:
            raise ValueError("Cannot find nearest vector in an empty set")

        labels = np.empty(len(self), dtype=np.int64)
        targets = other.data
        for start in range(0, len(self), chunk_size):
            block = self._data[start:start + chunk_size]
            diff = block[:, None, :] - targets[None, :, :]
            dist_sq = np.einsum("ijk,ijk->ij", diff, diff)
            labels[start:start + chunk_size] = np.argmin(dist_sq, axis=1)

        return labels

    def mean(self, indices: Optional[np.ndarray] = None) -> np.ndarray:
        """Component-wise mean of all vectors, or of the selected rows."""
        rows = self._data if indices is None else self._data[indices]
        if len(rows) == 0:
            raise ValueError("Mean of an empty selection is undefined")
        return rows.mean(axis=0)

    def max_shift(self, other: "VectorSet") -> float:
        """Largest Euclidean distance between corresponding vectors."""
        self._check_dim(other)
        if len(other) != len(self):
            raise ValueError(f"Size mismatch: {len(self)} vs {len(other)}")
        if len(self) == 0:
            return 0.0
        return float(np.max(np.linalg.norm(self._data - other.data, axis=1)))

    def equals(self, other: "VectorSet", tol: float = 0.0) -> bool:
        """True if both sets have the same shape and every vector moved at most tol."""
        if other.dim != self.dim or len(other) != len(self):
            return False
        if tol == 0.0:
            return bool(np.array_equal(self._data, other.data))
        return self.max_shift(other) <= tol

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Per-dimension (min, max) of the vectors."""
        if len(self) == 0:
            raise ValueError("Bounds of an empty set are undefined")
        return self._data.min(axis=0), self._data.max(axis=0)

    def copy(self) -> "VectorSet":
        return VectorSet(self._data.copy())
