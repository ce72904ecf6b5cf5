"""Single-image resize operation with a sticky, ordered issue list."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

from src.img_responsive.render import geometry
from src.img_responsive.render.encoders import (
    DEFAULT_JPG_QUALITY,
    DEFAULT_PNG_COMPRESSION,
    DEFAULT_WEBP_QUALITY,
    TRANSPARENT_FORMATS,
    build_quality_params,
    normalise_extension,
)
from src.img_responsive.render.errors import (
    GeometryError,
    ImgResponsiveError,
    OutputWriteError,
    RasterResourceError,
    ResizeValidationError,
)
from src.img_responsive.render.models import (
    Anchor,
    FillColor,
    Identity,
    ImageDescriptor,
    OutputTarget,
    ResizePolicy,
    SamplingPlan,
)
from src.img_responsive.render.orientation import OrientationInfo, resolve_orientation
from src.img_responsive.render.raster import (
    ExifReaderProtocol,
    PillowExifReader,
    PillowRaster,
    RasterBackendProtocol,
)

logger = logging.getLogger(__name__)

# Outputs get the umask-derived mode rather than mkstemp's 0600.
_PROCESS_UMASK = os.umask(0)
os.umask(_PROCESS_UMASK)
OUTPUT_FILE_MODE = 0o666 & ~_PROCESS_UMASK

__all__ = [
    "ErrorKind",
    "ResizeIssue",
    "ResizeOperation",
    "ResizeRequest",
    "ResizeResult",
    "ResizeState",
    "resize_image",
]


class ResizeState(str, Enum):
    """Linear lifecycle of a resize operation; ``FAILED`` absorbs any error."""

    IDLE = "idle"
    INPUT_VALIDATED = "input_validated"
    RESOURCE_DECODED = "resource_decoded"
    GEOMETRY_COMPUTED = "geometry_computed"
    RESAMPLED = "resampled"
    SAVED = "saved"
    CLEANED = "cleaned"
    FAILED = "failed"


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    GEOMETRY = "geometry"
    RESOURCE = "resource"
    IO = "io"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class ResizeIssue:
    """One entry of the ordered failure list."""

    kind: ErrorKind
    step: ResizeState
    message: str

    def __str__(self) -> str:
        return f"[{self.step.value}] {self.message}"


@dataclass(frozen=True)
class ResizeRequest:
    """
    Immutable description of one resize.

    ``output_width``/``output_height`` are only read by the cover and crop policies;
    the other policies derive the output size from the input.
    """

    source: Path
    destination: Path
    policy: ResizePolicy = field(default_factory=Identity)
    output_width: Optional[int] = None
    output_height: Optional[int] = None
    anchor: Anchor = field(default_factory=Anchor)
    fill: Optional[FillColor] = None
    overwrite: bool = False
    exif_rotate: bool = False
    jpg_quality: int = DEFAULT_JPG_QUALITY
    png_compression: int = DEFAULT_PNG_COMPRESSION
    webp_quality: int = DEFAULT_WEBP_QUALITY


@dataclass(frozen=True)
class ResizeResult:
    """Outcome of a resize; ``issues`` is empty exactly when ``ok`` is true."""

    ok: bool
    state: ResizeState
    issues: Tuple[ResizeIssue, ...] = ()
    plan: Optional[SamplingPlan] = None
    output: Optional[Path] = None
    input: Optional[ImageDescriptor] = None
    orientation: Optional[OrientationInfo] = None

    @property
    def messages(self) -> List[str]:
        return [str(issue) for issue in self.issues]


def _kind_for(exc: ImgResponsiveError) -> ErrorKind:
    if isinstance(exc, ResizeValidationError):
        return ErrorKind.VALIDATION
    if isinstance(exc, GeometryError):
        return ErrorKind.GEOMETRY
    if isinstance(exc, OutputWriteError):
        return ErrorKind.IO
    return ErrorKind.RESOURCE


class ResizeOperation:
    """
    Run a :class:`ResizeRequest` through validate → decode → plan → resample → save.

    Each instance owns its issue list and buffers and runs at most once. Once an
    issue is recorded every later step is skipped and records a shutdown marker.
    """

    def __init__(
        self,
        request: ResizeRequest,
        *,
        raster: RasterBackendProtocol | None = None,
        exif_reader: ExifReaderProtocol | None = None,
    ) -> None:
        self.request = request
        self.raster: RasterBackendProtocol = raster or PillowRaster()
        if request.exif_rotate and exif_reader is None:
            exif_reader = PillowExifReader()
        self.exif_reader = exif_reader
        self.state = ResizeState.IDLE
        self._issues: List[ResizeIssue] = []
        self._descriptor: Optional[ImageDescriptor] = None
        self._target: Optional[OutputTarget] = None
        self._orientation: Optional[OrientationInfo] = None
        self._input_size: Tuple[int, int] = (0, 0)
        self._source_buffer: Any = None
        self._canvas: Any = None
        self._plan: Optional[SamplingPlan] = None

    @property
    def issues(self) -> Tuple[ResizeIssue, ...]:
        return tuple(self._issues)

    def _steps(self) -> Sequence[Tuple[ResizeState, Callable[[], None]]]:
        return (
            (ResizeState.INPUT_VALIDATED, self._validate),
            (ResizeState.RESOURCE_DECODED, self._decode),
            (ResizeState.GEOMETRY_COMPUTED, self._compute_geometry),
            (ResizeState.RESAMPLED, self._resample),
            (ResizeState.SAVED, self._save),
            (ResizeState.CLEANED, self._release),
        )

    def run(self) -> ResizeResult:
        """Execute every step and return the result; raises if called twice."""

        if self.state is not ResizeState.IDLE:
            raise RuntimeError("ResizeOperation instances run only once")

        try:
            for target, step in self._steps():
                if self._issues:
                    self._issues.append(
                        ResizeIssue(
                            ErrorKind.SHUTDOWN,
                            target,
                            "Shutdown due to an error in an upstream step",
                        )
                    )
                    continue
                try:
                    step()
                except ImgResponsiveError as exc:
                    self._issues.append(ResizeIssue(_kind_for(exc), target, str(exc)))
                    self.state = ResizeState.FAILED
                else:
                    self.state = target
        finally:
            self._release()

        ok = not self._issues
        if ok:
            logger.debug(
                "Resized %s -> %s (%s)",
                self.request.source,
                self.request.destination,
                geometry.format_dimensions(self._plan.dest_width, self._plan.dest_height)
                if self._plan
                else "?",
            )
        else:
            logger.warning(
                "Resize of %s failed: %s",
                self.request.source,
                "; ".join(str(issue) for issue in self._issues),
            )
        return ResizeResult(
            ok=ok,
            state=self.state,
            issues=tuple(self._issues),
            plan=self._plan,
            output=self.request.destination if ok else None,
            input=self._descriptor,
            orientation=self._orientation,
        )

    def _validate(self) -> None:
        request = self.request
        source = Path(request.source) if request.source else None
        if source is None or not str(source):
            raise ResizeValidationError("Input path is needed")
        if not source.is_file():
            raise ResizeValidationError(f"Input path {source} is not a valid file")
        if not os.access(source, os.R_OK):
            raise ResizeValidationError(f"Input path {source} is not readable")
        normalise_extension(source)

        destination = Path(request.destination) if request.destination else None
        if destination is None or not str(destination):
            raise ResizeValidationError("Output path is needed")
        if destination.exists() and not request.overwrite:
            raise ResizeValidationError(f"Output path {destination} already exists")
        output_format = normalise_extension(destination)

        descriptor = self.raster.probe(source)
        if descriptor.width <= 0 or descriptor.height <= 0:
            raise ResizeValidationError(f"Input {source} has an empty width or height")
        self._descriptor = descriptor
        self._input_size = (descriptor.width, descriptor.height)
        self._target = OutputTarget(
            path=destination,
            format=output_format,
            quality_params=build_quality_params(
                output_format,
                jpg_quality=request.jpg_quality,
                png_compression=request.png_compression,
                webp_quality=request.webp_quality,
            ),
        )

    def _decode(self) -> None:
        buffer = self.raster.decode(self.request.source)
        self._source_buffer = buffer
        if not self.request.exif_rotate or self.exif_reader is None:
            return

        info = resolve_orientation(self.exif_reader.read_orientation_code(self.request.source))
        self._orientation = info
        if info.is_identity:
            return
        logger.debug(
            "Applying EXIF orientation %d to %s (flip=%s angle=%d)",
            info.raw_code,
            self.request.source,
            info.flip.value,
            info.angle,
        )
        # Mirror first, then rotate counter-clockwise.
        buffer = self.raster.flip(buffer, info.flip)
        buffer = self.raster.rotate(buffer, info.angle)
        self._source_buffer = buffer
        if info.angle in (90, 270):
            width, height = self._input_size
            self._input_size = (height, width)

    def _compute_geometry(self) -> None:
        width, height = self._input_size
        self._plan = geometry.compute_sampling_plan(
            self.request.policy,
            width,
            height,
            output_width=self.request.output_width,
            output_height=self.request.output_height,
            anchor=self.request.anchor,
        )

    def _resample(self) -> None:
        plan = self._plan
        target = self._target
        if plan is None or target is None:
            raise GeometryError("No sampling plan available for resampling")

        fill = self.request.fill
        transparent = target.format in TRANSPARENT_FORMATS and fill is None
        canvas = self.raster.allocate_canvas(plan.dest_width, plan.dest_height, transparent=transparent)
        self._canvas = canvas
        if fill is not None:
            self.raster.fill(canvas, fill)
        self._canvas = self.raster.resample(canvas, self._source_buffer, plan)

    def _save(self) -> None:
        target = self._target
        if target is None or self._canvas is None:
            raise RasterResourceError("No output resource to save")

        directory = target.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(f"Cannot create output directory {directory}: {exc}") from exc

        try:
            handle, temp_name = tempfile.mkstemp(
                prefix=".imgresponsive-",
                suffix=f".{target.format}",
                dir=str(directory),
            )
        except OSError as exc:
            raise OutputWriteError(f"Cannot create temporary file in {directory}: {exc}") from exc
        os.close(handle)
        temp_path = Path(temp_name)
        try:
            self.raster.encode(self._canvas, target.format, target.quality_params, temp_path)
            try:
                os.chmod(temp_path, OUTPUT_FILE_MODE)
                os.replace(temp_path, target.path)
            except OSError as exc:
                raise OutputWriteError(f"Cannot move output into place at {target.path}: {exc}") from exc
        finally:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    logger.debug("Unable to remove temporary file %s", temp_path, exc_info=True)

    def _release(self) -> None:
        for buffer in (self._source_buffer, self._canvas):
            if buffer is not None:
                self.raster.release(buffer)
        self._source_buffer = None
        self._canvas = None


def resize_image(
    request: ResizeRequest,
    *,
    raster: RasterBackendProtocol | None = None,
    exif_reader: ExifReaderProtocol | None = None,
) -> ResizeResult:
    """Run a single resize and return its result."""

    return ResizeOperation(request, raster=raster, exif_reader=exif_reader).run()
