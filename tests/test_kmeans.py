"""
Unit tests for src/clustering/kmeans.py

Tests initialization, the assignment and update steps, termination and the
pixel-coordinate clustering helper.
"""

import numpy as np
import pytest

from src.clustering.kmeans import (
    KMeansState,
    assign_labels,
    cluster_image_pixels,
    initialize_centroids,
    run_kmeans,
    update_centroids,
)
from src.clustering.vectors import VectorSet


@pytest.fixture
def two_blobs():
    """Two well-separated 2D blobs of 20 points each."""
    rng = np.random.default_rng(7)
    a = rng.normal(loc=(0, 0), scale=0.5, size=(20, 2))
    b = rng.normal(loc=(20, 20), scale=0.5, size=(20, 2))
    return np.vstack([a, b])


class TestInitializeCentroids:
    """Test centroid initialization policies."""

    def test_sample_uses_distinct_items(self):
        points = VectorSet(np.arange(20).reshape(10, 2))

        centroids = initialize_centroids(points, 10, init="sample", rng=0)

        rows = {tuple(r) for r in centroids.data.tolist()}
        assert len(rows) == 10
        assert rows == {tuple(r) for r in points.data.tolist()}

    def test_sample_more_clusters_than_items(self):
        points = VectorSet([[0.0], [1.0]])

        centroids = initialize_centroids(points, 5, init="sample", rng=0)

        assert len(centroids) == 5
        assert set(centroids.data.ravel().tolist()) <= {0.0, 1.0}

    def test_uniform_within_bounds(self):
        points = VectorSet([[0, 10, -5], [4, 20, 5]])

        centroids = initialize_centroids(points, 50, init="uniform", rng=1)

        assert centroids.data.shape == (50, 3)
        assert np.all(centroids.data >= [0, 10, -5])
        assert np.all(centroids.data <= [4, 20, 5])

    def test_seed_reproducible(self):
        points = VectorSet(np.random.default_rng(0).normal(size=(30, 2)))

        a = initialize_centroids(points, 4, rng=123)
        b = initialize_centroids(points, 4, rng=123)

        np.testing.assert_array_equal(a.data, b.data)

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            initialize_centroids(VectorSet([[0.0]]), 1, init="kmeans++")


class TestAssignAndUpdate:
    """Test single Lloyd steps."""

    def test_assign_labels_and_members(self):
        points = VectorSet([[0.0], [1.0], [9.0], [10.0]])
        centroids = VectorSet([[0.0], [10.0]])

        labels, members = assign_labels(points, centroids)

        assert labels.tolist() == [0, 0, 1, 1]
        assert [m.tolist() for m in members] == [[0, 1], [2, 3]]

    def test_assign_tie_lowest_index(self):
        labels, _ = assign_labels(VectorSet([[1.0]]), VectorSet([[0.0], [2.0]]))

        assert labels.tolist() == [0]

    def test_update_means(self):
        points = VectorSet([[0.0, 0.0], [2.0, 2.0], [10.0, 0.0]])
        members = [np.array([0, 1]), np.array([2])]

        updated = update_centroids(points, members, VectorSet([[5.0, 5.0], [5.0, 5.0]]))

        np.testing.assert_allclose(updated.data, [[1.0, 1.0], [10.0, 0.0]])

    def test_update_empty_cluster_keeps_previous(self):
        points = VectorSet([[0.0], [2.0]])
        members = [np.array([0, 1]), np.array([], dtype=np.int64)]

        updated = update_centroids(points, members, VectorSet([[7.0], [42.0]]))

        np.testing.assert_allclose(updated.data, [[1.0], [42.0]])


class TestRunKMeans:
    """Test the full clustering loop."""

    def test_single_cluster(self):
        """K=1: every item in one cluster at the mean, after one iteration."""
        data = np.array([[0.0, 0.0], [2.0, 0.0], [4.0, 6.0], [2.0, 2.0]])

        result = run_kmeans(data, 1, random_state=0)

        assert result.labels.tolist() == [0, 0, 0, 0]
        np.testing.assert_allclose(result.centroids[0], data.mean(axis=0))
        assert result.n_iter == 1
        assert result.state is KMeansState.CONVERGED
        assert result.members[0].tolist() == [0, 1, 2, 3]

    def test_single_cluster_uniform_init(self):
        data = np.random.default_rng(4).normal(size=(25, 5))

        result = run_kmeans(data, 1, init="uniform", random_state=4)

        np.testing.assert_allclose(result.centroids[0], data.mean(axis=0))
        assert result.n_iter == 1

    def test_separates_blobs(self, two_blobs):
        result = run_kmeans(two_blobs, 2, initial_centroids=[[0.0, 0.0], [1.0, 1.0]])

        assert result.converged
        assert len(set(result.labels[:20])) == 1
        assert len(set(result.labels[20:])) == 1
        assert result.labels[0] != result.labels[20]
        assert sorted(result.cluster_sizes().tolist()) == [20, 20]

    def test_separates_blobs_with_seed(self, two_blobs):
        result = run_kmeans(two_blobs, 2, random_state=11)

        assert len(set(result.labels.tolist())) == 2
        assert result.labels[0] != result.labels[20]

    def test_reproducible_with_seed(self, two_blobs):
        a = run_kmeans(two_blobs, 3, random_state=5)
        b = run_kmeans(two_blobs, 3, random_state=5)

        np.testing.assert_array_equal(a.labels, b.labels)
        np.testing.assert_array_equal(a.centroids, b.centroids)
        assert a.n_iter == b.n_iter

    def test_accepts_generator(self, two_blobs):
        result = run_kmeans(two_blobs, 2, random_state=np.random.default_rng(0))

        assert result.n_clusters == 2

    def test_known_iterations(self):
        """Hand-traced run: centroids (0, 2) -> (0, 5) -> (1, 6.5) -> (5/3, 10)."""
        data = np.array([[0.0], [2.0], [3.0], [10.0]])

        result = run_kmeans(data, 2, initial_centroids=[[0.0], [2.0]])

        assert result.n_iter == 3
        assert result.labels.tolist() == [0, 0, 0, 1]
        np.testing.assert_allclose(result.centroids, [[5.0 / 3.0], [10.0]])

    def test_iteration_cap(self):
        data = np.array([[0.0], [2.0], [3.0], [10.0]])

        result = run_kmeans(data, 2, initial_centroids=[[0.0], [2.0]], max_iterations=1)

        assert result.n_iter == 1
        assert result.state is KMeansState.MAX_ITER_REACHED
        np.testing.assert_allclose(result.centroids, [[0.0], [5.0]])
        # Labels match the returned centroids
        assert result.labels.tolist() == [0, 0, 1, 1]

    @pytest.mark.parametrize("seed", range(5))
    def test_always_terminates_within_cap(self, seed):
        data = np.random.default_rng(seed).uniform(size=(200, 4))

        result = run_kmeans(data, 8, random_state=seed, max_iterations=5)

        assert 1 <= result.n_iter <= 5
        assert result.state in (KMeansState.CONVERGED, KMeansState.MAX_ITER_REACHED)

    def test_empty_cluster_keeps_centroid(self):
        """A centroid no item is near should stay where it was."""
        data = np.array([[0.0], [1.0]])

        result = run_kmeans(data, 2, initial_centroids=[[0.5], [100.0]])

        np.testing.assert_allclose(result.centroids, [[0.5], [100.0]])
        assert result.members[1].size == 0
        assert result.converged

    def test_more_clusters_than_items(self):
        result = run_kmeans([[0.0], [5.0]], 5, random_state=0)

        assert result.n_clusters == 5
        assert result.cluster_sizes().sum() == 2

    def test_inertia(self):
        result = run_kmeans([[0.0], [2.0]], 1, random_state=0)

        assert result.inertia == pytest.approx(2.0)

    def test_high_dimensional(self):
        data = np.vstack([np.zeros((5, 7)), np.ones((5, 7))])

        result = run_kmeans(data, 2, initial_centroids=[np.zeros(7), np.full(7, 0.9)])

        assert result.labels.tolist() == [0] * 5 + [1] * 5
        np.testing.assert_allclose(result.centroids[1], np.ones(7))

    def test_tolerance_stops_early(self, two_blobs):
        exact = run_kmeans(two_blobs, 4, random_state=2)
        loose = run_kmeans(two_blobs, 4, random_state=2, tol=1e6)

        assert loose.n_iter == 1
        assert loose.n_iter <= exact.n_iter

    @pytest.mark.parametrize("k", [0, -3])
    def test_invalid_k(self, k):
        with pytest.raises(ValueError):
            run_kmeans([[0.0]], k)

    def test_empty_data(self):
        with pytest.raises(ValueError):
            run_kmeans(np.zeros((0, 2)), 2)

    def test_invalid_max_iterations(self):
        with pytest.raises(ValueError):
            run_kmeans([[0.0]], 1, max_iterations=0)

    def test_initial_centroids_shape(self):
        with pytest.raises(ValueError):
            run_kmeans([[0.0, 0.0]], 2, initial_centroids=[[0.0, 0.0]])


class TestClusterImagePixels:
    """Test clustering of raw pixel coordinates."""

    def test_two_bright_squares(self):
        image = np.zeros((20, 20, 3), dtype=np.uint8)
        image[2:6, 2:6] = 200
        image[12:18, 12:18] = 200

        label_matrix, result = cluster_image_pixels(
            image, 2, initial_centroids=[[3.0, 3.0], [14.0, 14.0]]
        )

        assert label_matrix.shape == (20, 20)
        assert np.all(label_matrix[2:6, 2:6] == 0)
        assert np.all(label_matrix[12:18, 12:18] == 1)
        assert np.all(label_matrix[0, :] == -1)
        assert result.cluster_sizes().tolist() == [16, 36]
        # Centroids are (x, y) means of each square
        np.testing.assert_allclose(result.centroids, [[3.5, 3.5], [14.5, 14.5]])

    def test_threshold_zero_keeps_all(self):
        image = np.zeros((4, 5, 3), dtype=np.uint8)

        label_matrix, result = cluster_image_pixels(image, 1, threshold=0, random_state=0)

        assert np.all(label_matrix == 0)
        np.testing.assert_allclose(result.centroids[0], [2.0, 1.5])

    def test_all_dark(self):
        with pytest.raises(ValueError):
            cluster_image_pixels(np.zeros((4, 4, 3), dtype=np.uint8), 2)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
