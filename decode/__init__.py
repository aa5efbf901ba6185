"""
DECODE - Deep Cell Observation & Discovery Engine

Turns per-cell outlines from a segmentation step and the matching microscopy
image into per-cell shape, intensity and spatial descriptors, then groups the
cells with k-means clustering and renders the result.
"""

__version__ = "0.1.0"
