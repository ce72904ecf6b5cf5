from __future__ import annotations

import pytest

from src.img_responsive.render import geometry
from src.img_responsive.render.errors import GeometryError, ResizeValidationError
from src.img_responsive.render.models import (
    Anchor,
    AnchorX,
    AnchorY,
    BoundMax,
    Cover,
    Crop,
    FitAxis,
    Identity,
)


def test_cover_rejects_small_input_without_enlarge() -> None:
    with pytest.raises(GeometryError):
        geometry.plan_cover(100, 100, 200, 200, enlarge=False)


def test_cover_rejects_single_axis_shortfall() -> None:
    with pytest.raises(GeometryError):
        geometry.plan_cover(1000, 500, 2000, 500, enlarge=False)


def test_cover_uses_larger_ratio() -> None:
    plan = geometry.plan_cover(1000, 500, 200, 200)
    assert plan.ratio == pytest.approx(0.4)
    assert plan.source_width == pytest.approx(500)
    assert plan.source_height == pytest.approx(500)
    assert plan.anchor_x == pytest.approx(250)
    assert plan.anchor_y == 0
    assert (plan.dest_width, plan.dest_height) == (200, 200)


def test_cover_enlarges_when_allowed() -> None:
    plan = geometry.plan_cover(100, 100, 200, 300, enlarge=True)
    assert plan.ratio == pytest.approx(3.0)
    assert plan.source_width == pytest.approx(200 / 3)
    assert plan.source_height == pytest.approx(100)


def test_crop_small_input_is_cropped_without_scaling() -> None:
    plan = geometry.plan_crop(300, 200, 400, 300, anchor=Anchor(x=AnchorX.CENTER, y=AnchorY.TOP))
    assert plan.ratio == 1.0
    assert (plan.source_width, plan.source_height) == (400, 300)
    assert plan.anchor_x == pytest.approx(-50)
    assert plan.anchor_y == 0


def test_crop_scales_to_smaller_ratio() -> None:
    plan = geometry.plan_crop(800, 600, 400, 150)
    assert plan.ratio == pytest.approx(0.25)
    assert plan.source_width == pytest.approx(1600)
    assert plan.source_height == pytest.approx(600)
    assert plan.anchor_x == pytest.approx(-400)


def test_crop_same_aspect_uses_whole_input() -> None:
    plan = geometry.plan_crop(800, 600, 400, 300)
    assert plan.ratio == pytest.approx(0.5)
    assert (plan.source_width, plan.source_height) == (pytest.approx(800), pytest.approx(600))
    assert plan.anchor_x == pytest.approx(0)


def test_bound_max_scales_landscape_on_width() -> None:
    plan = geometry.plan_bound_max(1200, 800, max_width=600)
    assert (plan.dest_width, plan.dest_height) == (600, 400)
    assert plan.ratio == pytest.approx(0.5)
    assert (plan.source_width, plan.source_height) == (1200, 800)


@pytest.mark.parametrize("bound", [1200, 5000])
def test_bound_max_never_upscales(bound: int) -> None:
    plan = geometry.plan_bound_max(1200, 800, max_width=bound)
    assert (plan.dest_width, plan.dest_height) == (1200, 800)
    assert plan.ratio == 1.0


def test_bound_max_portrait_binds_on_height() -> None:
    plan = geometry.plan_bound_max(600, 900, max_width=300, max_height=450)
    assert (plan.dest_width, plan.dest_height) == (300, 450)


def test_bound_max_portrait_without_height_is_identity() -> None:
    plan = geometry.plan_bound_max(600, 900, max_width=300)
    assert (plan.dest_width, plan.dest_height) == (600, 900)


def test_bound_max_requires_a_bound() -> None:
    with pytest.raises(ResizeValidationError):
        geometry.plan_bound_max(600, 900)


def test_fit_axis_width_derives_height() -> None:
    plan = geometry.plan_fit_axis(1200, 800, width=300)
    assert (plan.dest_width, plan.dest_height) == (300, 200)
    assert plan.ratio == pytest.approx(0.25)


def test_fit_axis_height_derives_width() -> None:
    plan = geometry.plan_fit_axis(1200, 800, height=100)
    assert (plan.dest_width, plan.dest_height) == (150, 100)


@pytest.mark.parametrize("kwargs", [{}, {"width": 100, "height": 100}, {"width": -5}])
def test_fit_axis_rejects_invalid_targets(kwargs: dict[str, int]) -> None:
    with pytest.raises(ResizeValidationError):
        geometry.plan_fit_axis(1200, 800, **kwargs)


@pytest.mark.parametrize("size", [(1, 1), (640, 480), (333, 1999)])
def test_identity_keeps_input_dimensions(size: tuple[int, int]) -> None:
    plan = geometry.compute_sampling_plan(Identity(), *size)
    assert (plan.dest_width, plan.dest_height) == size
    assert plan.ratio == 1.0


def test_anchor_resolution_symbolic_and_numeric() -> None:
    assert geometry.resolve_anchor(
        Anchor(x=AnchorX.RIGHT, y=AnchorY.BOTTOM),
        input_width=1000,
        input_height=500,
        output_width=200,
        output_height=200,
        ratio=0.4,
    ) == (pytest.approx(500), pytest.approx(0))
    assert geometry.resolve_anchor(
        Anchor(x=12.5, y=7),
        input_width=1000,
        input_height=500,
        output_width=200,
        output_height=200,
        ratio=0.4,
    ) == (12.5, 7)


def test_anchor_resolution_fails_on_zero_ratio() -> None:
    with pytest.raises(GeometryError):
        geometry.resolve_anchor(
            Anchor(),
            input_width=100,
            input_height=100,
            output_width=10,
            output_height=10,
            ratio=0,
        )


def test_normalise_anchor_accepts_tokens_and_numbers() -> None:
    anchor = geometry.normalise_anchor("left", "Bottom")
    assert anchor == Anchor(x=AnchorX.LEFT, y=AnchorY.BOTTOM)
    assert geometry.normalise_anchor("15", 3).x == 15.0


def test_normalise_anchor_rejects_unknown_token() -> None:
    with pytest.raises(ResizeValidationError):
        geometry.normalise_anchor_x("middle")


def test_compute_sampling_plan_dispatches_policies() -> None:
    cover = geometry.compute_sampling_plan(Cover(), 1000, 500, output_width=200, output_height=200)
    crop = geometry.compute_sampling_plan(Crop(enlarge=True), 100, 100, output_width=200, output_height=100)
    fit = geometry.compute_sampling_plan(FitAxis(width=300), 1200, 800)
    bound = geometry.compute_sampling_plan(BoundMax(max_width=600), 1200, 800)
    assert cover.ratio == pytest.approx(0.4)
    assert crop.ratio == pytest.approx(1.0)
    assert fit.dest_height == 200
    assert bound.dest_width == 600


def test_cover_requires_output_size() -> None:
    with pytest.raises(ResizeValidationError):
        geometry.compute_sampling_plan(Cover(), 1000, 500)
