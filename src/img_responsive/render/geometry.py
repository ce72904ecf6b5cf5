"""Pure geometry helpers turning a resize policy into a sampling plan."""

from __future__ import annotations

from typing import Optional, Tuple

from src.img_responsive.render.errors import GeometryError, ResizeValidationError
from src.img_responsive.render.models import (
    Anchor,
    AnchorX,
    AnchorXValue,
    AnchorY,
    AnchorYValue,
    BoundMax,
    Cover,
    Crop,
    FitAxis,
    Identity,
    ResizePolicy,
    SamplingPlan,
)

__all__ = [
    "compute_sampling_plan",
    "format_dimensions",
    "normalise_anchor",
    "normalise_anchor_x",
    "normalise_anchor_y",
    "plan_bound_max",
    "plan_cover",
    "plan_crop",
    "plan_fit_axis",
    "plan_identity",
    "resolve_anchor",
    "to_pixels",
]


def format_dimensions(width: float, height: float) -> str:
    """Return width × height using integer values."""

    return f"{int(width)} × {int(height)}"


def to_pixels(value: float) -> int:
    """Round a derived dimension to a whole, non-zero pixel count."""

    return max(1, int(round(value)))


def _require_input(input_width: int, input_height: int) -> None:
    if input_width <= 0 or input_height <= 0:
        raise GeometryError(
            f"Input dimensions must be positive (got {format_dimensions(input_width, input_height)})"
        )


def _require_output(output_width: Optional[int], output_height: Optional[int]) -> Tuple[int, int]:
    if not output_width or not output_height or output_width <= 0 or output_height <= 0:
        raise ResizeValidationError("Output width and height are both required and must be positive")
    return int(output_width), int(output_height)


def normalise_anchor_x(value: object) -> AnchorXValue:
    """Return a validated horizontal anchor (``LEFT|CENTER|RIGHT`` or a number)."""

    if isinstance(value, AnchorX):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = str(value).strip()
    try:
        return AnchorX(text.upper())
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError as exc:
        raise ResizeValidationError(
            f"Horizontal anchor must be a number or one of LEFT, CENTER, RIGHT (got {value!r})"
        ) from exc


def normalise_anchor_y(value: object) -> AnchorYValue:
    """Return a validated vertical anchor (``TOP|MIDDLE|BOTTOM`` or a number)."""

    if isinstance(value, AnchorY):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = str(value).strip()
    try:
        return AnchorY(text.upper())
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError as exc:
        raise ResizeValidationError(
            f"Vertical anchor must be a number or one of TOP, MIDDLE, BOTTOM (got {value!r})"
        ) from exc


def normalise_anchor(x: object, y: object) -> Anchor:
    return Anchor(x=normalise_anchor_x(x), y=normalise_anchor_y(y))


def _resolve_axis(token: object, *, input_dim: float, output_dim: float, ratio: float) -> float:
    if token in (AnchorX.LEFT, AnchorY.TOP):
        return 0.0
    if token in (AnchorX.CENTER, AnchorY.MIDDLE):
        return (input_dim - output_dim / ratio) / 2
    if token in (AnchorX.RIGHT, AnchorY.BOTTOM):
        return input_dim - output_dim / ratio
    return float(token)  # type: ignore[arg-type]


def resolve_anchor(
    anchor: Anchor,
    *,
    input_width: float,
    input_height: float,
    output_width: float,
    output_height: float,
    ratio: float,
) -> Tuple[float, float]:
    """
    Resolve symbolic anchors into numeric source offsets.

    Raises:
        GeometryError: If any dimension or the ratio is zero or unset.
    """

    missing = [
        name
        for name, value in (
            ("input width", input_width),
            ("input height", input_height),
            ("output width", output_width),
            ("output height", output_height),
            ("ratio", ratio),
        )
        if not value
    ]
    if missing:
        raise GeometryError(f"Cannot resolve anchor without {', '.join(missing)}")

    x = _resolve_axis(anchor.x, input_dim=input_width, output_dim=output_width, ratio=ratio)
    y = _resolve_axis(anchor.y, input_dim=input_height, output_dim=output_height, ratio=ratio)
    return x, y


def plan_cover(
    input_width: int,
    input_height: int,
    output_width: int,
    output_height: int,
    *,
    enlarge: bool = False,
    anchor: Anchor | None = None,
) -> SamplingPlan:
    """Scale so the output is fully covered, discarding the excess on one axis."""

    _require_input(input_width, input_height)
    output_width, output_height = _require_output(output_width, output_height)
    if not enlarge and (input_width < output_width or input_height < output_height):
        raise GeometryError(
            "Input image is too small to cover "
            f"{format_dimensions(output_width, output_height)} without enlarging"
        )

    ratio = max(output_width / input_width, output_height / input_height)
    source_width = output_width / ratio
    source_height = output_height / ratio
    x, y = resolve_anchor(
        anchor or Anchor(),
        input_width=input_width,
        input_height=input_height,
        output_width=output_width,
        output_height=output_height,
        ratio=ratio,
    )
    return SamplingPlan(
        ratio=ratio,
        source_width=source_width,
        source_height=source_height,
        anchor_x=x,
        anchor_y=y,
        dest_width=output_width,
        dest_height=output_height,
    )


def plan_crop(
    input_width: int,
    input_height: int,
    output_width: int,
    output_height: int,
    *,
    enlarge: bool = False,
    anchor: Anchor | None = None,
) -> SamplingPlan:
    """Scale to the smaller fitting ratio and crop; small inputs are cropped unscaled."""

    _require_input(input_width, input_height)
    output_width, output_height = _require_output(output_width, output_height)
    if not enlarge and (input_width < output_width or input_height < output_height):
        ratio = 1.0
        source_width = float(output_width)
        source_height = float(output_height)
    else:
        ratio = min(output_width / input_width, output_height / input_height)
        source_width = output_width / ratio
        source_height = output_height / ratio

    x, y = resolve_anchor(
        anchor or Anchor(),
        input_width=input_width,
        input_height=input_height,
        output_width=output_width,
        output_height=output_height,
        ratio=ratio,
    )
    return SamplingPlan(
        ratio=ratio,
        source_width=source_width,
        source_height=source_height,
        anchor_x=x,
        anchor_y=y,
        dest_width=output_width,
        dest_height=output_height,
    )


def _whole_input_plan(input_width: int, input_height: int, dest_width: float, dest_height: float, ratio: float) -> SamplingPlan:
    return SamplingPlan(
        ratio=ratio,
        source_width=float(input_width),
        source_height=float(input_height),
        anchor_x=0.0,
        anchor_y=0.0,
        dest_width=to_pixels(dest_width),
        dest_height=to_pixels(dest_height),
    )


def plan_fit_axis(
    input_width: int,
    input_height: int,
    *,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> SamplingPlan:
    """Scale the whole input to one target axis, keeping its aspect ratio."""

    if width is None and height is None:
        raise ResizeValidationError("Single-axis fit needs a width or a height")
    if width and height:
        raise ResizeValidationError("Single-axis fit takes only one of width or height; the other keeps ratio")
    if (width is not None and width <= 0) or (height is not None and height <= 0):
        raise ResizeValidationError("Single-axis fit target must be positive")
    _require_input(input_width, input_height)

    if width:
        output_height = input_height / input_width * width
        ratio = width / input_width
        return _whole_input_plan(input_width, input_height, width, output_height, ratio)
    assert height is not None
    output_width = input_width / input_height * height
    ratio = height / input_height
    return _whole_input_plan(input_width, input_height, output_width, height, ratio)


def plan_identity(input_width: int, input_height: int) -> SamplingPlan:
    """Return a pass-through plan at the original size."""

    _require_input(input_width, input_height)
    return _whole_input_plan(input_width, input_height, input_width, input_height, 1.0)


def plan_bound_max(
    input_width: int,
    input_height: int,
    *,
    max_width: Optional[int] = None,
    max_height: Optional[int] = None,
) -> SamplingPlan:
    """
    Bound the dominant axis of the input without ever upscaling.

    Landscape inputs (width > height) are bound on ``max_width``, everything else on
    ``max_height``. An unset bound, or one at least as large as the input, yields an
    identity plan.
    """

    if not max_width and not max_height:
        raise ResizeValidationError("Bounded resize needs a max width or a max height")
    _require_input(input_width, input_height)

    if input_width > input_height:
        if not max_width or max_width >= input_width:
            return plan_identity(input_width, input_height)
        output_height = input_height / input_width * max_width
        ratio = max_width / input_width
        return _whole_input_plan(input_width, input_height, max_width, output_height, ratio)

    if not max_height or max_height >= input_height:
        return plan_identity(input_width, input_height)
    output_width = input_width / input_height * max_height
    ratio = max_height / input_height
    return _whole_input_plan(input_width, input_height, output_width, max_height, ratio)


def compute_sampling_plan(
    policy: ResizePolicy,
    input_width: int,
    input_height: int,
    *,
    output_width: Optional[int] = None,
    output_height: Optional[int] = None,
    anchor: Anchor | None = None,
) -> SamplingPlan:
    """Dispatch *policy* to the matching planner."""

    if isinstance(policy, Cover):
        return plan_cover(
            input_width,
            input_height,
            output_width or 0,
            output_height or 0,
            enlarge=policy.enlarge,
            anchor=anchor,
        )
    if isinstance(policy, Crop):
        return plan_crop(
            input_width,
            input_height,
            output_width or 0,
            output_height or 0,
            enlarge=policy.enlarge,
            anchor=anchor,
        )
    if isinstance(policy, FitAxis):
        return plan_fit_axis(input_width, input_height, width=policy.width, height=policy.height)
    if isinstance(policy, BoundMax):
        return plan_bound_max(
            input_width,
            input_height,
            max_width=policy.max_width,
            max_height=policy.max_height,
        )
    if isinstance(policy, Identity):
        return plan_identity(input_width, input_height)
    raise ResizeValidationError(f"Unsupported resize policy: {policy!r}")
