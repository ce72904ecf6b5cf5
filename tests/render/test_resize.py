from __future__ import annotations

from collections.abc import Callable
import os
import stat
from pathlib import Path

import pytest
from PIL import Image

from src.img_responsive.render.models import BoundMax, Cover, FillColor, Identity
from src.img_responsive.render.orientation import FlipAxis
from src.img_responsive.render.resize import (
    ErrorKind,
    ResizeOperation,
    ResizeRequest,
    ResizeState,
    resize_image,
)
from tests.helpers.fakes import FakeExifReader, FakeRaster


def _source(tmp_path: Path, name: str = "in.jpg") -> Path:
    path = tmp_path / name
    path.write_bytes(b"not really an image")
    return path


def _leftovers(directory: Path) -> list[Path]:
    return [path for path in directory.iterdir() if path.name.startswith(".imgresponsive-")]


def test_successful_resize_writes_only_destination(tmp_path: Path) -> None:
    source = _source(tmp_path)
    raster = FakeRaster({str(source): (1200, 800)})
    destination = tmp_path / "out" / "small.jpg"

    result = resize_image(
        ResizeRequest(source=source, destination=destination, policy=BoundMax(max_width=600)),
        raster=raster,
    )

    assert result.ok
    assert result.issues == ()
    assert result.state is ResizeState.CLEANED
    assert result.output == destination
    assert result.plan is not None
    assert (result.plan.dest_width, result.plan.dest_height) == (600, 400)
    assert destination.read_bytes() == b"jpg:600x400"
    assert _leftovers(destination.parent) == []
    assert {buffer.label for buffer in raster.released} == {"source", "canvas"}


def test_encode_failure_leaves_no_visible_output(tmp_path: Path) -> None:
    source = _source(tmp_path)
    raster = FakeRaster({str(source): (400, 300)}, fail_encode=True)
    destination = tmp_path / "out.jpg"

    result = resize_image(ResizeRequest(source=source, destination=destination), raster=raster)

    assert not result.ok
    assert result.state is ResizeState.FAILED
    assert not destination.exists()
    assert _leftovers(tmp_path) == []
    assert [issue.kind for issue in result.issues] == [ErrorKind.RESOURCE, ErrorKind.SHUTDOWN]
    assert result.issues[0].step is ResizeState.SAVED
    assert raster.released


def test_errors_are_sticky_after_validation_failure(tmp_path: Path) -> None:
    raster = FakeRaster()
    result = resize_image(
        ResizeRequest(source=tmp_path / "missing.jpg", destination=tmp_path / "out.jpg"),
        raster=raster,
    )

    assert not result.ok
    assert result.issues[0].kind is ErrorKind.VALIDATION
    assert [issue.kind for issue in result.issues[1:]] == [ErrorKind.SHUTDOWN] * 5
    assert [issue.step for issue in result.issues[1:]] == [
        ResizeState.RESOURCE_DECODED,
        ResizeState.GEOMETRY_COMPUTED,
        ResizeState.RESAMPLED,
        ResizeState.SAVED,
        ResizeState.CLEANED,
    ]
    assert "decode" not in raster.names()
    assert result.messages[0].startswith("[input_validated]")


def test_existing_destination_requires_overwrite(tmp_path: Path) -> None:
    source = _source(tmp_path)
    destination = tmp_path / "out.png"
    destination.write_bytes(b"old")
    raster = FakeRaster({str(source): (10, 10)})

    refused = resize_image(ResizeRequest(source=source, destination=destination), raster=raster)
    assert not refused.ok
    assert refused.issues[0].kind is ErrorKind.VALIDATION
    assert destination.read_bytes() == b"old"

    allowed = resize_image(
        ResizeRequest(source=source, destination=destination, overwrite=True),
        raster=FakeRaster({str(source): (10, 10)}),
    )
    assert allowed.ok
    assert destination.read_bytes() == b"png:10x10"


def test_unsupported_extension_is_rejected(tmp_path: Path) -> None:
    source = _source(tmp_path, "in.bmp")
    result = resize_image(
        ResizeRequest(source=source, destination=tmp_path / "out.jpg"),
        raster=FakeRaster({str(source): (10, 10)}),
    )
    assert not result.ok
    assert result.issues[0].kind is ErrorKind.VALIDATION


def test_geometry_failure_is_reported(tmp_path: Path) -> None:
    source = _source(tmp_path)
    result = resize_image(
        ResizeRequest(
            source=source,
            destination=tmp_path / "out.jpg",
            policy=Cover(enlarge=False),
            output_width=200,
            output_height=200,
        ),
        raster=FakeRaster({str(source): (100, 100)}),
    )
    assert not result.ok
    assert result.issues[0].kind is ErrorKind.GEOMETRY
    assert result.issues[0].step is ResizeState.GEOMETRY_COMPUTED


def test_exif_orientation_flips_then_rotates_and_swaps_dimensions(tmp_path: Path) -> None:
    source = _source(tmp_path)
    raster = FakeRaster({str(source): (400, 300)})
    exif = FakeExifReader({str(source): 7})

    result = resize_image(
        ResizeRequest(source=source, destination=tmp_path / "out.jpg", policy=Identity(), exif_rotate=True),
        raster=raster,
        exif_reader=exif,
    )

    assert result.ok
    names = raster.names()
    assert names.index("flip") < names.index("rotate")
    assert ("flip", FlipAxis.HORIZONTAL) in raster.calls
    assert ("rotate", 270) in raster.calls
    assert result.plan is not None
    assert (result.plan.dest_width, result.plan.dest_height) == (300, 400)
    assert result.orientation is not None and result.orientation.raw_code == 7


def test_exif_orientation_ignored_when_disabled(tmp_path: Path) -> None:
    source = _source(tmp_path)
    raster = FakeRaster({str(source): (400, 300)})
    exif = FakeExifReader({str(source): 6})

    result = resize_image(
        ResizeRequest(source=source, destination=tmp_path / "out.jpg"),
        raster=raster,
        exif_reader=exif,
    )

    assert result.ok
    assert exif.requests == []
    assert "rotate" not in raster.names()


@pytest.mark.parametrize(
    ("name", "fill", "transparent"),
    [
        ("out.png", None, True),
        ("out.gif", None, True),
        ("out.jpg", None, False),
        ("out.png", FillColor(255, 255, 255), False),
    ],
)
def test_canvas_background(tmp_path: Path, name: str, fill: FillColor | None, transparent: bool) -> None:
    source = _source(tmp_path, "in.png")
    raster = FakeRaster({str(source): (20, 10)})

    result = resize_image(
        ResizeRequest(source=source, destination=tmp_path / name, fill=fill),
        raster=raster,
    )

    assert result.ok
    assert ("allocate_canvas", (20, 10, transparent)) in raster.calls
    assert ("fill" in raster.names()) is (fill is not None)


def test_operation_runs_only_once(tmp_path: Path) -> None:
    source = _source(tmp_path)
    operation = ResizeOperation(
        ResizeRequest(source=source, destination=tmp_path / "out.jpg"),
        raster=FakeRaster({str(source): (10, 10)}),
    )
    operation.run()
    with pytest.raises(RuntimeError):
        operation.run()


def test_quality_params_reach_encoder(tmp_path: Path) -> None:
    source = _source(tmp_path)
    raster = FakeRaster({str(source): (10, 10)})
    resize_image(
        ResizeRequest(source=source, destination=tmp_path / "out.webp", webp_quality=55),
        raster=raster,
    )
    encode_calls = [payload for name, payload in raster.calls if name == "encode"]
    assert encode_calls[0][0] == "webp"
    assert encode_calls[0][1] == {"quality": 55}


def test_pillow_cover_resize(make_image: Callable[..., Path], tmp_path: Path) -> None:
    source = make_image("photo.jpg", (80, 60))
    destination = tmp_path / "thumb.jpg"

    result = resize_image(
        ResizeRequest(
            source=source,
            destination=destination,
            policy=Cover(),
            output_width=40,
            output_height=40,
        )
    )

    assert result.ok, result.messages
    with Image.open(destination) as image:
        assert image.size == (40, 40)
        assert image.format == "JPEG"


def test_pillow_applies_exif_rotation(make_image: Callable[..., Path], tmp_path: Path) -> None:
    source = make_image("rotated.jpg", (80, 60), orientation=6)
    destination = tmp_path / "upright.png"

    result = resize_image(
        ResizeRequest(source=source, destination=destination, exif_rotate=True),
    )

    assert result.ok, result.messages
    with Image.open(destination) as image:
        assert image.size == (60, 80)


def test_pillow_png_keeps_transparency(make_image: Callable[..., Path], tmp_path: Path) -> None:
    source = make_image("alpha.png", (40, 20), color=(0, 0, 255, 0), mode="RGBA")
    destination = tmp_path / "alpha-small.png"

    result = resize_image(
        ResizeRequest(source=source, destination=destination, policy=BoundMax(max_width=20)),
    )

    assert result.ok, result.messages
    with Image.open(destination) as image:
        assert image.size == (20, 10)
        assert image.mode == "RGBA"
        assert image.getpixel((5, 5))[3] == 0


def test_output_gets_umask_mode_not_temp_file_mode(tmp_path: Path) -> None:
    source = _source(tmp_path)
    destination = tmp_path / "shared.jpg"
    umask = os.umask(0)
    os.umask(umask)

    result = resize_image(
        ResizeRequest(source=source, destination=destination),
        raster=FakeRaster({str(source): (10, 10)}),
    )

    assert result.ok
    assert stat.S_IMODE(destination.stat().st_mode) == 0o666 & ~umask


def test_oversized_input_is_a_resource_issue(
    make_image: Callable[..., Path], tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    source = make_image("huge.png", (80, 60))
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 10)

    result = resize_image(ResizeRequest(source=source, destination=tmp_path / "out.png"))

    assert not result.ok
    assert result.issues[0].kind is ErrorKind.RESOURCE
    assert not (tmp_path / "out.png").exists()
