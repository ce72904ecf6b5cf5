from __future__ import annotations

from pathlib import Path
from typing import Dict, Mapping, Optional

from src.img_responsive.render.errors import ResizeValidationError

__all__ = [
    "DEFAULT_JPG_QUALITY",
    "DEFAULT_PNG_COMPRESSION",
    "DEFAULT_WEBP_QUALITY",
    "SUPPORTED_EXTENSIONS",
    "TRANSPARENT_FORMATS",
    "build_quality_params",
    "estimate_quality_from_tables",
    "map_pillow_save_options",
    "normalise_extension",
    "normalise_jpg_quality",
    "normalise_png_compression",
    "normalise_webp_quality",
]

DEFAULT_JPG_QUALITY = 60
DEFAULT_PNG_COMPRESSION = 0
DEFAULT_WEBP_QUALITY = 80

SUPPORTED_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp")
TRANSPARENT_FORMATS = frozenset({"png", "gif"})

_PILLOW_FORMATS = {"jpg": "JPEG", "png": "PNG", "gif": "GIF", "webp": "WEBP"}

# IJG (libjpeg) standard luminance quantization table, natural order.
_STD_LUMINANCE_TABLE = (
    16, 11, 10, 16, 24, 40, 51, 61,
    12, 12, 14, 19, 26, 58, 60, 55,
    14, 13, 16, 24, 40, 57, 69, 56,
    14, 17, 22, 29, 51, 87, 80, 62,
    18, 22, 37, 56, 68, 109, 103, 77,
    24, 35, 55, 64, 81, 104, 113, 92,
    49, 64, 78, 87, 103, 121, 120, 101,
    72, 92, 95, 98, 112, 100, 103, 99,
)


def normalise_extension(path: Path | str) -> str:
    """
    Return the lower-cased image extension of *path*, mapping ``jpeg`` to ``jpg``.

    Raises:
        ResizeValidationError: If the extension is missing or not a supported format.
    """

    suffix = Path(path).suffix.lower().lstrip(".")
    if suffix not in SUPPORTED_EXTENSIONS:
        raise ResizeValidationError(f"The extension '{suffix}' of the image is not recognized")
    if suffix == "jpeg":
        return "jpg"
    return suffix


def _clamp(value: Optional[int], default: int, low: int, high: int) -> int:
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, number))


def normalise_jpg_quality(value: Optional[int]) -> int:
    """Clamp JPEG quality to 1–100, defaulting to 60."""

    return _clamp(value, DEFAULT_JPG_QUALITY, 1, 100)


def normalise_png_compression(value: Optional[int]) -> int:
    """Clamp PNG compression to 0–9, defaulting to 0."""

    return _clamp(value, DEFAULT_PNG_COMPRESSION, 0, 9)


def normalise_webp_quality(value: Optional[int]) -> int:
    """Clamp WEBP quality to 1–100, defaulting to 80."""

    return _clamp(value, DEFAULT_WEBP_QUALITY, 1, 100)


def build_quality_params(
    fmt: str,
    *,
    jpg_quality: Optional[int] = None,
    png_compression: Optional[int] = None,
    webp_quality: Optional[int] = None,
) -> Dict[str, int]:
    """Return the encoder parameters relevant to *fmt*."""

    if fmt == "jpg":
        return {"quality": normalise_jpg_quality(jpg_quality)}
    if fmt == "png":
        return {"compress_level": normalise_png_compression(png_compression)}
    if fmt == "webp":
        return {"quality": normalise_webp_quality(webp_quality)}
    return {}


def map_pillow_save_options(fmt: str, params: Mapping[str, int]) -> Dict[str, object]:
    """Translate normalised parameters into ``Image.save`` keyword arguments."""

    try:
        options: Dict[str, object] = {"format": _PILLOW_FORMATS[fmt]}
    except KeyError as exc:
        raise ResizeValidationError(f"The output format '{fmt}' is not supported") from exc
    options.update(params)
    if fmt == "jpg":
        options.setdefault("quality", DEFAULT_JPG_QUALITY)
    elif fmt == "png":
        options.setdefault("compress_level", DEFAULT_PNG_COMPRESSION)
    elif fmt == "webp":
        options.setdefault("quality", DEFAULT_WEBP_QUALITY)
    return options


def estimate_quality_from_tables(tables: Mapping[int, object]) -> Optional[int]:
    """
    Estimate the IJG quality setting that produced a JPEG's luminance table.

    ``tables`` is Pillow's ``Image.quantization`` mapping; table ``0`` is luminance.
    """

    luminance = tables.get(0)
    if luminance is None:
        return None
    values = list(luminance)  # type: ignore[call-overload]
    if len(values) != len(_STD_LUMINANCE_TABLE):
        return None

    # Scaling is monotonic, so sorted pairing works for zigzag or natural order.
    scale = sum(100.0 * q / std for q, std in zip(sorted(values), sorted(_STD_LUMINANCE_TABLE))) / len(values)
    if scale <= 0:
        return 100
    if scale <= 100:
        quality = (200 - scale) / 2
    else:
        quality = 5000 / scale
    return max(1, min(100, int(round(quality))))
