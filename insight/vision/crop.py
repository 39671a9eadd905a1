"""Map a viewport selection onto a captured raster and crop it with Pillow."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from io import BytesIO
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from insight.core.errors import InvalidRegionError
from insight.core.models import CroppedImage, SelectionRect, ViewportMetadata

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(slots=True, frozen=True)
class CropBox:
    """Crop rectangle in raster pixels, possibly fractional."""

    x: float
    y: float
    width: float
    height: float

    @property
    def output_size(self) -> Tuple[int, int]:
        return _round_half_up(self.width), _round_half_up(self.height)

    def as_box(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    def is_pixel_aligned(self) -> bool:
        return all(float(value).is_integer() for value in (self.x, self.y, self.width, self.height))


def compute_crop_box(
    raster_size: Tuple[int, int],
    viewport: ViewportMetadata,
    rect: SelectionRect,
) -> CropBox:
    """Scale ``rect`` from CSS pixels into raster pixels.

    The scale factors are derived from the raster and viewport sizes, so the
    device pixel ratio (and browser zoom) is already folded in and must not be
    applied a second time. The box is clamped to the raster and rejected when
    it rounds to less than one pixel in either direction.
    """

    viewport.validate()
    raster_width, raster_height = raster_size
    scale_x = raster_width / viewport.viewport_width
    scale_y = raster_height / viewport.viewport_height

    left = min(max(rect.left * scale_x, 0.0), float(raster_width))
    top = min(max(rect.top * scale_y, 0.0), float(raster_height))
    right = min(max((rect.left + rect.width) * scale_x, 0.0), float(raster_width))
    bottom = min(max((rect.top + rect.height) * scale_y, 0.0), float(raster_height))

    box = CropBox(x=left, y=top, width=right - left, height=bottom - top)
    out_width, out_height = box.output_size
    if out_width < 1 or out_height < 1:
        raise InvalidRegionError(
            f"crop region degenerates to {out_width}x{out_height} pixels "
            f"(selection {rect.width}x{rect.height} at scale {scale_x:.3f}x{scale_y:.3f})"
        )
    return box


def crop_capture(raster: bytes, viewport: ViewportMetadata, rect: SelectionRect) -> CroppedImage:
    """Crop a full-viewport PNG to the selected region.

    Pure function of its inputs: the same raster, viewport and rectangle
    always produce the same pixels and dimensions.
    """

    try:
        image = Image.open(BytesIO(raster))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidRegionError(f"capture raster is not a readable image: {exc}") from exc

    with image:
        box = compute_crop_box(image.size, viewport, rect)
        size = box.output_size
        if box.is_pixel_aligned() and (int(box.width), int(box.height)) == size:
            cropped = image.crop(tuple(int(v) for v in box.as_box()))
        else:
            cropped = image.resize(size, resample=Image.Resampling.BICUBIC, box=box.as_box())

        logger.debug(
            "Cropped capture",
            extra={"raster": image.size, "box": box.as_box(), "output": cropped.size},
        )
        output = BytesIO()
        cropped.save(output, format="PNG")

    return CroppedImage(data=output.getvalue(), width=cropped.width, height=cropped.height)
