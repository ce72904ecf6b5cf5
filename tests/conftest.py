from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from click.testing import CliRunner
from PIL import Image

from tests.helpers.fakes import FakeExifReader, FakeRaster


@pytest.fixture
def runner() -> CliRunner:
    """Provide a Click runner configured for CLI smoke tests."""

    return CliRunner()


@pytest.fixture
def fake_raster() -> FakeRaster:
    return FakeRaster()


@pytest.fixture
def fake_exif() -> FakeExifReader:
    return FakeExifReader()


@pytest.fixture
def make_image(tmp_path: Path) -> Callable[..., Path]:
    """Write a real image to ``tmp_path`` and return its path."""

    def _make(
        name: str,
        size: tuple[int, int] = (80, 60),
        *,
        color: tuple[int, ...] = (200, 30, 30),
        mode: str = "RGB",
        orientation: int | None = None,
        quality: int | None = None,
    ) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        image = Image.new(mode, size, color)
        save_kwargs: dict[str, object] = {}
        if orientation is not None:
            exif = Image.Exif()
            exif[0x0112] = orientation
            save_kwargs["exif"] = exif.tobytes()
        if quality is not None:
            save_kwargs["quality"] = quality
        image.save(path, **save_kwargs)
        return path

    return _make
