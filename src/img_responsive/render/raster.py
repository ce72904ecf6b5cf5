"""Raster and EXIF collaborators backed by Pillow."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, Tuple

from PIL import Image, UnidentifiedImageError

from src.img_responsive.render.encoders import (
    TRANSPARENT_FORMATS,
    estimate_quality_from_tables,
    map_pillow_save_options,
)
from src.img_responsive.render.errors import OrientationUnsupportedError, RasterResourceError
from src.img_responsive.render.models import FillColor, ImageDescriptor, SamplingPlan
from src.img_responsive.render.orientation import FlipAxis

logger = logging.getLogger(__name__)

__all__ = [
    "EXIF_ORIENTATION_TAG",
    "ExifReaderProtocol",
    "PillowExifReader",
    "PillowRaster",
    "RasterBackendProtocol",
    "estimate_jpeg_quality",
    "image_size",
    "probe_image",
]

EXIF_ORIENTATION_TAG = 0x0112

_ROTATIONS = {
    90: Image.Transpose.ROTATE_90,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_270,
}
_FLIPS = {
    FlipAxis.HORIZONTAL: Image.Transpose.FLIP_LEFT_RIGHT,
    FlipAxis.VERTICAL: Image.Transpose.FLIP_TOP_BOTTOM,
}


class RasterBackendProtocol(Protocol):
    """Pixel operations the resize pipeline delegates to."""

    def probe(self, path: Path) -> ImageDescriptor: ...

    def decode(self, path: Path) -> Any: ...

    def rotate(self, buffer: Any, angle: int) -> Any: ...

    def flip(self, buffer: Any, axis: FlipAxis) -> Any: ...

    def allocate_canvas(self, width: int, height: int, *, transparent: bool) -> Any: ...

    def fill(self, buffer: Any, color: FillColor) -> None: ...

    def resample(self, dest: Any, source: Any, plan: SamplingPlan) -> Any: ...

    def encode(self, buffer: Any, fmt: str, params: Mapping[str, int], path: Path) -> None: ...

    def release(self, buffer: Any) -> None: ...


class ExifReaderProtocol(Protocol):
    def read_orientation_code(self, path: Path) -> int: ...


def probe_image(path: Path) -> ImageDescriptor:
    """
    Read width, height and format without decoding pixel data.

    Raises:
        RasterResourceError: If the file cannot be identified as an image.
    """

    try:
        with Image.open(path) as image:
            width, height = image.size
            fmt = (image.format or "").lower()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise RasterResourceError(f"Cannot read image size from {path}: {exc}") from exc
    return ImageDescriptor(path=Path(path), width=int(width), height=int(height), format=fmt)


def image_size(path: Path) -> Tuple[int, int]:
    """Return ``(width, height)`` for *path*, or ``(0, 0)`` when it cannot be probed."""

    try:
        descriptor = probe_image(path)
    except RasterResourceError:
        logger.debug("Unable to probe image size for %s", path, exc_info=True)
        return (0, 0)
    return (descriptor.width, descriptor.height)


def estimate_jpeg_quality(path: Path) -> Optional[int]:
    """Estimate the JPEG quality of *path*; ``None`` for non-JPEG or unreadable files."""

    if not Path(path).is_file():
        return None
    try:
        with Image.open(path) as image:
            if image.format != "JPEG":
                return None
            tables = getattr(image, "quantization", None) or {}
    except (UnidentifiedImageError, OSError):
        return None
    return estimate_quality_from_tables(tables)


class PillowExifReader:
    """Read the EXIF orientation tag through ``Image.getexif``."""

    def __init__(self) -> None:
        if not hasattr(Image.Image, "getexif"):
            raise OrientationUnsupportedError("Installed Pillow build cannot read EXIF data")

    def read_orientation_code(self, path: Path) -> int:
        try:
            with Image.open(path) as image:
                exif = image.getexif()
                raw = exif.get(EXIF_ORIENTATION_TAG, 0)
        except (UnidentifiedImageError, OSError):
            logger.debug("No EXIF orientation readable from %s", path, exc_info=True)
            return 0
        try:
            return int(raw)
        except (TypeError, ValueError):
            return 0


class PillowRaster:
    """Pillow implementation of the raster backend."""

    def __init__(self, resample_filter: Image.Resampling = Image.Resampling.LANCZOS) -> None:
        self.resample_filter = resample_filter

    def probe(self, path: Path) -> ImageDescriptor:
        return probe_image(path)

    def decode(self, path: Path) -> Image.Image:
        try:
            with Image.open(path) as opened:
                if getattr(opened, "n_frames", 1) > 1:
                    opened.seek(0)
                opened.load()
                has_alpha = "A" in opened.getbands() or "transparency" in opened.info
                image = opened.convert("RGBA" if has_alpha else "RGB")
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
            raise RasterResourceError(f"Cannot create input image resource from {path}: {exc}") from exc
        return image

    def rotate(self, buffer: Image.Image, angle: int) -> Image.Image:
        transpose = _ROTATIONS.get(int(angle) % 360)
        if transpose is None:
            return buffer
        return buffer.transpose(transpose)

    def flip(self, buffer: Image.Image, axis: FlipAxis) -> Image.Image:
        transpose = _FLIPS.get(axis)
        if transpose is None:
            return buffer
        return buffer.transpose(transpose)

    def allocate_canvas(self, width: int, height: int, *, transparent: bool) -> Image.Image:
        if width <= 0 or height <= 0:
            raise RasterResourceError(f"Cannot allocate a {width}x{height} canvas")
        if transparent:
            return Image.new("RGBA", (width, height), (0, 0, 0, 0))
        return Image.new("RGBA", (width, height), (0, 0, 0, 255))

    def fill(self, buffer: Image.Image, color: FillColor) -> None:
        buffer.paste(color.as_rgba(), (0, 0, buffer.width, buffer.height))

    def resample(self, dest: Image.Image, source: Image.Image, plan: SamplingPlan) -> Image.Image:
        size = (plan.dest_width, plan.dest_height)
        left, top, right, bottom = plan.source_box
        try:
            if left >= 0 and top >= 0 and right <= source.width and bottom <= source.height:
                region = source.resize(size, self.resample_filter, box=(left, top, right, bottom))
            else:
                # Out-of-bounds rectangles are padded with transparent pixels.
                box = (int(round(left)), int(round(top)), int(round(right)), int(round(bottom)))
                region = source.convert("RGBA").crop(box).resize(size, self.resample_filter)
            dest.alpha_composite(region.convert("RGBA"))
        except (ValueError, OSError) as exc:
            raise RasterResourceError(f"Resampling failed: {exc}") from exc
        return dest

    def encode(self, buffer: Image.Image, fmt: str, params: Mapping[str, int], path: Path) -> None:
        options = map_pillow_save_options(fmt, params)
        image = buffer
        if fmt not in TRANSPARENT_FORMATS and fmt != "webp" and image.mode != "RGB":
            image = image.convert("RGB")
        try:
            image.save(path, **options)
        except (OSError, ValueError, KeyError) as exc:
            raise RasterResourceError(f"Cannot encode {fmt} output to {path}: {exc}") from exc

    def release(self, buffer: Image.Image) -> None:
        buffer.close()
