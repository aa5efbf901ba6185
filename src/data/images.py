"""
Raster image loading and saving.

Images are handled as (H, W, 3) uint8 RGB arrays indexed by (row, column).
TIFF files go through tifffile; everything else through scikit-image.
"""

import logging
from pathlib import Path
from typing import Union

import numpy as np
import tifffile
from skimage import io as skio
from skimage.exposure import rescale_intensity
from skimage.util import img_as_ubyte

logger = logging.getLogger(__name__)

TIFF_SUFFIXES = {".tif", ".tiff"}


def _float_to_unit_range(image: np.ndarray) -> np.ndarray:
    """
    Map a float image onto [0, 1] without saturating it.

    Values already in [0, 1] are kept. Values in [0, 255] are taken to be on
    an 8-bit scale. Anything else is stretched from its own min and max.
    """
    if not np.all(np.isfinite(image)):
        raise ValueError("Image contains NaN or infinite values")

    low, high = float(image.min()), float(image.max())
    if low >= 0.0 and high <= 1.0:
        return image
    if low >= 0.0 and high <= 255.0:
        logger.info(f"Float image with max {high:.3g}, treating it as 8-bit scale")
        return rescale_intensity(image, in_range=(0.0, 255.0), out_range=(0.0, 1.0))

    logger.warning(
        f"Float image spans [{low:.3g}, {high:.3g}], rescaling its range to [0, 1]"
    )
    return rescale_intensity(image, in_range="image", out_range=(0.0, 1.0))


def _to_rgb_uint8(image: np.ndarray) -> np.ndarray:
    """Coerce a decoded array to (H, W, 3) uint8."""
    if image.ndim == 2:
        image = np.stack([image] * 3, axis=-1)
    elif image.ndim == 3 and image.shape[2] == 1:
        image = np.concatenate([image] * 3, axis=-1)
    elif image.ndim == 3 and image.shape[2] == 4:
        # Drop alpha
        image = image[:, :, :3]
    elif image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"Unsupported image shape {image.shape}")

    if image.dtype != np.uint8:
        if np.issubdtype(image.dtype, np.floating):
            image = _float_to_unit_range(image)
        image = img_as_ubyte(image)

    return np.ascontiguousarray(image)


def load_rgb_image(path: Union[str, Path]) -> np.ndarray:
    """
    Load an image as RGB.

    Args:
        path: Path to a raster image (TIFF, PNG, JPEG, ...)

    Returns:
        Array (H, W, 3) uint8

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file cannot be decoded
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Image not found: {path}")

    try:
        if path.suffix.lower() in TIFF_SUFFIXES:
            image = tifffile.imread(path)
        else:
            image = skio.imread(path)
        image = _to_rgb_uint8(np.asarray(image))
    except Exception as e:
        logger.error(f"Failed to load image: {e}")
        raise ValueError(f"Could not decode image {path}") from e

    logger.debug(f"Loaded image {path.name} with shape {image.shape}")

    return image


def save_rgb_image(image: np.ndarray, path: Union[str, Path]) -> Path:
    """
    Save an (H, W, 3) uint8 image, creating parent directories.

    Returns:
        The path written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.suffix.lower() in TIFF_SUFFIXES:
        tifffile.imwrite(path, image, photometric="rgb")
    else:
        skio.imsave(path, image, check_contrast=False)

    logger.info(f"Saved image to {path}")

    return path


def filter_dark_pixels(image: np.ndarray, threshold: int = 80) -> np.ndarray:
    """
    Black out pixels whose channel sum is below a threshold.

    Args:
        image: RGB image (H, W, 3)
        threshold: Minimum R+G+B sum for a pixel to be kept

    Returns:
        Filtered copy of the image
    """
    filtered = image.copy()
    dark = image.astype(np.int32).sum(axis=2) < threshold
    filtered[dark] = 0

    logger.debug(f"Filtered {int(dark.sum())} dark pixels (threshold={threshold})")

    return filtered
