"""Raster transforms applied to captured viewports."""

from .crop import CropBox, compute_crop_box, crop_capture

__all__ = [
    "CropBox",
    "compute_crop_box",
    "crop_capture",
]
