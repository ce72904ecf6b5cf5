"""Exception taxonomy shared by the resize and responsive layers."""

from __future__ import annotations

__all__ = [
    "ConfigurationError",
    "GeometryError",
    "ImgResponsiveError",
    "OrientationUnsupportedError",
    "OutputWriteError",
    "PassCancelledError",
    "RasterResourceError",
    "ResizeValidationError",
]


class ImgResponsiveError(RuntimeError):
    """Base class for errors raised by img_responsive."""


class ConfigurationError(ImgResponsiveError, ValueError):
    """Raised when a document pass is configured incorrectly; aborts the whole pass."""


class ResizeValidationError(ImgResponsiveError):
    """Raised when resize inputs (paths, extensions, axis arguments) are invalid."""


class GeometryError(ImgResponsiveError):
    """Raised when a sampling plan cannot be computed for the requested policy."""


class RasterResourceError(ImgResponsiveError):
    """Raised when the raster backend fails to decode, resample or encode an image."""


class OutputWriteError(ImgResponsiveError):
    """Raised when output directories or files cannot be created or renamed."""


class OrientationUnsupportedError(ImgResponsiveError):
    """Raised when the EXIF reader capability is unavailable in this environment."""


class PassCancelledError(ImgResponsiveError):
    """Raised when a document pass is cancelled between image references."""
