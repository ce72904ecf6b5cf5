"""Public shim exposing the img_responsive CLI and library surface."""

from __future__ import annotations

import src.img_responsive.cli_entry as _cli_entry
from src.config_loader import ConfigError, load_config
from src.img_responsive.render.errors import (
    ConfigurationError,
    GeometryError,
    ImgResponsiveError,
    OrientationUnsupportedError,
    OutputWriteError,
    PassCancelledError,
    RasterResourceError,
    ResizeValidationError,
)
from src.img_responsive.render.models import (
    Anchor,
    AnchorX,
    AnchorY,
    BoundMax,
    Cover,
    Crop,
    FillColor,
    FitAxis,
    Identity,
    SamplingPlan,
)
from src.img_responsive.render.raster import estimate_jpeg_quality, image_size, probe_image
from src.img_responsive.render.resize import ResizeOperation, ResizeRequest, ResizeResult, resize_image
from src.img_responsive.responsive.builder import (
    ResponsiveMarkupBuilder,
    ResponsiveMode,
    ResponsiveOptions,
    ResponsiveResult,
    SizeSpec,
)
from src.img_responsive.responsive.resolvers import (
    CallableResolver,
    DocumentRootResolver,
    FilesystemResolver,
)

main = _cli_entry.main
cli = _cli_entry.cli

__all__ = (
    "Anchor",
    "AnchorX",
    "AnchorY",
    "BoundMax",
    "CallableResolver",
    "ConfigError",
    "ConfigurationError",
    "Cover",
    "Crop",
    "DocumentRootResolver",
    "FillColor",
    "FilesystemResolver",
    "FitAxis",
    "GeometryError",
    "Identity",
    "ImgResponsiveError",
    "OrientationUnsupportedError",
    "OutputWriteError",
    "PassCancelledError",
    "RasterResourceError",
    "ResizeOperation",
    "ResizeRequest",
    "ResizeResult",
    "ResizeValidationError",
    "ResponsiveMarkupBuilder",
    "ResponsiveMode",
    "ResponsiveOptions",
    "ResponsiveResult",
    "SamplingPlan",
    "SizeSpec",
    "cli",
    "estimate_jpeg_quality",
    "image_size",
    "load_config",
    "main",
    "probe_image",
    "resize_image",
)


if __name__ == "__main__":
    main()
