"""
microtrack top-level package.

Rule-based segmentation of filament-like structures in 3-D image stacks:
adaptive thresholding, binary morphology and Z-axis consistency filters.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
