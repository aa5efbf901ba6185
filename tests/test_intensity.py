"""
Unit tests for src/analysis/intensity.py
"""

import numpy as np
import pytest

from src.analysis.intensity import EmptyRegionError, channel_means, gather_cell_pixels


@pytest.fixture
def uniform_image():
    """10x10 image with a single colour."""
    image = np.zeros((10, 10, 3), dtype=np.uint8)
    image[:, :] = (10, 20, 30)
    return image


class TestGatherCellPixels:
    """Test pixel lookup from outline points."""

    def test_xy_maps_to_row_column(self):
        """Point (x, y) should read image[y, x]."""
        image = np.zeros((5, 5, 3), dtype=np.uint8)
        image[1, 3] = (255, 0, 0)

        pixels = gather_cell_pixels(np.array([[3, 1]]), image)

        assert pixels.tolist() == [[255, 0, 0]]

    def test_out_of_bounds(self, uniform_image):
        """Points outside the image should fail with the offending pixel."""
        with pytest.raises(ValueError, match=r"Cell 4: pixel \(10, 0\)"):
            gather_cell_pixels(np.array([[0, 0], [10, 0]]), uniform_image, cell_id=4)

    def test_negative_coordinates(self, uniform_image):
        with pytest.raises(ValueError):
            gather_cell_pixels(np.array([[-1, 2]]), uniform_image)


class TestChannelMeans:
    """Test per-cell channel averaging."""

    def test_uniform_image(self, uniform_image):
        """Every cell of a uniform image should get the image colour."""
        outlines = [
            np.array([[0, 0], [4, 0], [4, 4], [0, 4]]),
            np.array([[6, 6], [8, 6], [8, 8]]),
        ]

        means = channel_means(outlines, uniform_image)

        assert means.shape == (2, 3)
        np.testing.assert_array_equal(means[0], [10, 20, 30])
        np.testing.assert_array_equal(means[0], means[1])

    def test_mean_over_pixels(self):
        """Means should average over all of a cell's pixels."""
        image = np.zeros((4, 4, 3), dtype=np.uint8)
        image[0, 0] = (100, 0, 50)
        image[2, 1] = (200, 10, 0)

        means = channel_means([np.array([[0, 0], [1, 2]])], image)

        np.testing.assert_allclose(means[0], [150.0, 5.0, 25.0])

    def test_repeated_points_weighted(self):
        """Duplicate outline points count once per occurrence."""
        image = np.zeros((2, 2, 3), dtype=np.uint8)
        image[0, 0] = (90, 90, 90)

        means = channel_means([np.array([[0, 0], [0, 0], [1, 1]])], image)

        np.testing.assert_allclose(means[0], [60.0, 60.0, 60.0])

    def test_empty_region_zero_fallback(self, uniform_image):
        """A cell without pixels should get a zero vector by default."""
        outlines = [np.zeros((0, 2), dtype=np.int64), np.array([[1, 1]])]

        means = channel_means(outlines, uniform_image)

        np.testing.assert_array_equal(means[0], [0, 0, 0])
        np.testing.assert_array_equal(means[1], [10, 20, 30])

    def test_empty_region_strict(self, uniform_image):
        """Strict mode should raise for a cell without pixels."""
        with pytest.raises(EmptyRegionError):
            channel_means([np.zeros((0, 2), dtype=np.int64)], uniform_image, strict=True)

    def test_no_uint8_overflow(self):
        """Summing many bright pixels should not wrap around."""
        image = np.full((20, 20, 3), 255, dtype=np.uint8)
        outline = np.array([[x, y] for x in range(20) for y in range(20)])

        means = channel_means([outline], image)

        np.testing.assert_array_equal(means[0], [255, 255, 255])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
