"""Decode EXIF orientation codes into the rotation and flip needed to display upright."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

__all__ = [
    "FlipAxis",
    "OrientationInfo",
    "ORIENTATION_NORMAL",
    "resolve_orientation",
]

# https://exiftool.org/TagNames/EXIF.html (0x0112 Orientation)
ORIENTATION_NOT_SPECIFIED = 0
ORIENTATION_NORMAL = 1
ORIENTATION_MIRROR_HORIZONTAL = 2
ORIENTATION_UPSIDE_DOWN = 3
ORIENTATION_MIRROR_VERTICAL = 4
ORIENTATION_MIRROR_HORIZONTAL_ROTATE_RIGHT = 5
ORIENTATION_ROTATE_LEFT = 6
ORIENTATION_MIRROR_HORIZONTAL_ROTATE_LEFT = 7
ORIENTATION_ROTATE_RIGHT = 8


class FlipAxis(str, Enum):
    """Mirror axis applied before rotation."""

    NONE = "none"
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


@dataclass(frozen=True)
class OrientationInfo:
    """
    Correction derived from a raw EXIF orientation code.

    Attributes:
        raw_code (int): Code read from metadata, normalised to ``0`` when out of range.
        angle (int): Counter-clockwise rotation in degrees (0, 90, 180 or 270).
        flip (FlipAxis): Mirror axis to apply before rotating.
    """

    raw_code: int
    angle: int
    flip: FlipAxis

    @property
    def is_identity(self) -> bool:
        return self.angle == 0 and self.flip is FlipAxis.NONE


_ORIENTATION_TABLE: Dict[int, Tuple[int, FlipAxis]] = {
    ORIENTATION_NOT_SPECIFIED: (0, FlipAxis.NONE),
    ORIENTATION_NORMAL: (0, FlipAxis.NONE),
    ORIENTATION_MIRROR_HORIZONTAL: (0, FlipAxis.HORIZONTAL),
    ORIENTATION_UPSIDE_DOWN: (180, FlipAxis.NONE),
    ORIENTATION_MIRROR_VERTICAL: (0, FlipAxis.VERTICAL),
    ORIENTATION_MIRROR_HORIZONTAL_ROTATE_RIGHT: (90, FlipAxis.HORIZONTAL),
    ORIENTATION_ROTATE_LEFT: (270, FlipAxis.NONE),
    ORIENTATION_MIRROR_HORIZONTAL_ROTATE_LEFT: (270, FlipAxis.HORIZONTAL),
    ORIENTATION_ROTATE_RIGHT: (90, FlipAxis.NONE),
}


def resolve_orientation(raw_code: object) -> OrientationInfo:
    """Return the rotation/flip pair for *raw_code*; unknown codes are a no-op."""

    try:
        code = int(raw_code)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        code = ORIENTATION_NOT_SPECIFIED
    if code not in _ORIENTATION_TABLE:
        code = ORIENTATION_NOT_SPECIFIED
    angle, flip = _ORIENTATION_TABLE[code]
    return OrientationInfo(raw_code=code, angle=angle, flip=flip)
