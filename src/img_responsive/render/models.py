"""Value types consumed and produced by the geometry and resize layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Union

__all__ = [
    "Anchor",
    "AnchorX",
    "AnchorY",
    "BoundMax",
    "Cover",
    "Crop",
    "FillColor",
    "FitAxis",
    "Identity",
    "ImageDescriptor",
    "OutputTarget",
    "ResizePolicy",
    "SamplingPlan",
]


class AnchorX(str, Enum):
    """Symbolic horizontal anchors for the sampling rectangle."""

    LEFT = "LEFT"
    CENTER = "CENTER"
    RIGHT = "RIGHT"


class AnchorY(str, Enum):
    """Symbolic vertical anchors for the sampling rectangle."""

    TOP = "TOP"
    MIDDLE = "MIDDLE"
    BOTTOM = "BOTTOM"


AnchorXValue = Union[AnchorX, float]
AnchorYValue = Union[AnchorY, float]


@dataclass(frozen=True)
class Anchor:
    """Top-left point of the source rectangle, numeric or symbolic per axis."""

    x: AnchorXValue = AnchorX.CENTER
    y: AnchorYValue = 0.0


@dataclass(frozen=True)
class ImageDescriptor:
    """Dimensions and format probed from an image file."""

    path: Path
    width: int
    height: int
    format: str

    @property
    def is_landscape(self) -> bool:
        return self.width > self.height


@dataclass(frozen=True)
class Cover:
    """Scale and crop so the whole output is covered by the source."""

    enlarge: bool = False


@dataclass(frozen=True)
class Crop:
    """Scale to the smaller fitting ratio, then crop to the exact output size."""

    enlarge: bool = False


@dataclass(frozen=True)
class FitAxis:
    """Scale to a single target axis; the other axis keeps the input aspect ratio."""

    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class BoundMax:
    """Bound the dominant axis (width for landscape, height for portrait); never upscales."""

    max_width: Optional[int] = None
    max_height: Optional[int] = None


@dataclass(frozen=True)
class Identity:
    """Re-encode at the original size."""


ResizePolicy = Union[Cover, Crop, FitAxis, BoundMax, Identity]


@dataclass(frozen=True)
class SamplingPlan:
    """
    Source rectangle and destination size for a single resample.

    Attributes:
        ratio (float): Output/input scale factor.
        source_width (float): Width of the sampled source rectangle.
        source_height (float): Height of the sampled source rectangle.
        anchor_x (float): Left edge of the source rectangle.
        anchor_y (float): Top edge of the source rectangle.
        dest_width (int): Destination canvas width.
        dest_height (int): Destination canvas height.
    """

    ratio: float
    source_width: float
    source_height: float
    anchor_x: float
    anchor_y: float
    dest_width: int
    dest_height: int

    @property
    def source_box(self) -> tuple[float, float, float, float]:
        """Return the source rectangle as ``(left, top, right, bottom)``."""

        return (
            self.anchor_x,
            self.anchor_y,
            self.anchor_x + self.source_width,
            self.anchor_y + self.source_height,
        )


@dataclass(frozen=True)
class FillColor:
    """Background colour painted before resampling; ``alpha`` is opacity 0-255."""

    red: int
    green: int
    blue: int
    alpha: Optional[int] = None

    def as_rgba(self) -> tuple[int, int, int, int]:
        alpha = 255 if self.alpha is None else self.alpha
        return (self.red, self.green, self.blue, alpha)


def _empty_params() -> dict[str, int]:
    return {}


@dataclass(frozen=True)
class OutputTarget:
    """Destination file, normalised format and encoder parameters."""

    path: Path
    format: str
    quality_params: Mapping[str, int] = field(default_factory=_empty_params)
