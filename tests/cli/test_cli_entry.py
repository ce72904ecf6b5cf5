"""CLI smoke tests for the resize, html and probe commands."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from bs4 import BeautifulSoup
from click.testing import CliRunner
from PIL import Image

from src.img_responsive.cli_entry import main


def _flat(text: str) -> str:
    return " ".join(text.split())


def test_no_subcommand_prints_help(runner: CliRunner) -> None:
    result = runner.invoke(main, [])
    assert result.exit_code == 0
    assert "resize" in result.output
    assert "html" in result.output
    assert "probe" in result.output


def test_quiet_and_verbose_conflict(runner: CliRunner) -> None:
    result = runner.invoke(main, ["--quiet", "--verbose", "probe", "x.jpg"])
    assert result.exit_code != 0
    assert "Cannot combine --quiet with --verbose" in result.output


def test_config_errors_are_reported(runner: CliRunner, tmp_path: Path) -> None:
    config = tmp_path / "config.toml"
    config.write_text("[runtime]\nworkers = 0\n", encoding="utf-8")
    result = runner.invoke(main, ["--config", str(config), "probe", "x.jpg"])
    assert result.exit_code == 1
    assert "Config error: runtime.workers must be >= 1" in result.output


def test_resize_command_writes_cover_output(
    runner: CliRunner, make_image: Callable[..., Path], tmp_path: Path
) -> None:
    source = make_image("photo.jpg", (80, 60))
    destination = tmp_path / "thumb.jpg"

    result = runner.invoke(
        main,
        ["--no-color", "resize", str(source), str(destination), "--policy", "cover", "--width", "40", "--height", "40"],
    )

    assert result.exit_code == 0, result.output
    assert "40 × 40" in _flat(result.output)
    with Image.open(destination) as image:
        assert image.size == (40, 40)


def test_resize_command_refuses_existing_destination(
    runner: CliRunner, make_image: Callable[..., Path], tmp_path: Path
) -> None:
    source = make_image("photo.jpg", (80, 60))
    destination = tmp_path / "taken.jpg"
    destination.write_bytes(b"keep")

    result = runner.invoke(main, ["--no-color", "resize", str(source), str(destination)])

    assert result.exit_code == 1
    assert "[input_validated]" in _flat(result.output)
    assert destination.read_bytes() == b"keep"


def test_resize_command_rejects_bad_fill(
    runner: CliRunner, make_image: Callable[..., Path], tmp_path: Path
) -> None:
    source = make_image("photo.png", (10, 10))
    result = runner.invoke(main, ["resize", str(source), str(tmp_path / "out.png"), "--fill", "1,2"])
    assert result.exit_code == 2
    assert "--fill" in result.output


def test_html_command_writes_picture_markup(
    runner: CliRunner, make_image: Callable[..., Path], tmp_path: Path
) -> None:
    make_image("site/big.jpg", (1200, 800))
    page = tmp_path / "site" / "index.html"
    page.write_text('<main><img src="big.jpg" alt="Big"></main>', encoding="utf-8")
    output = tmp_path / "dist" / "index.html"
    variants = tmp_path / "dist" / "media"

    result = runner.invoke(
        main,
        [
            "html",
            str(page),
            "--root",
            str(variants),
            "--rel",
            "/media",
            "--size",
            "480:(max-width: 480px)",
            "--size",
            ":default",
            "--attr",
            "loading=lazy",
            "--output",
            str(output),
        ],
    )

    assert result.exit_code == 0, result.output
    soup = BeautifulSoup(output.read_text(encoding="utf-8"), "html.parser")
    picture = soup.find("picture")
    assert picture is not None
    source = picture.find("source")
    assert source["media"] == "(max-width: 480px)"
    assert source["srcset"].startswith("/media/")
    img = picture.find("img")
    assert img["src"] == "big.jpg"
    assert img["loading"] == "lazy"
    assert img["data-compressed"] == "true"
    assert [path.suffix for path in variants.iterdir()] == [".jpg"]
    with Image.open(next(variants.iterdir())) as image:
        assert image.size == (480, 320)


def test_html_command_echoes_unresolved_images_unchanged(runner: CliRunner, tmp_path: Path) -> None:
    page = tmp_path / "index.html"
    page.write_text('<img src="missing.jpg">', encoding="utf-8")

    result = runner.invoke(
        main,
        ["html", str(page), "--root", str(tmp_path / "out"), "--rel", "/m", "--size", "640:default"],
    )

    assert result.exit_code == 0, result.output
    assert '<img src="missing.jpg"/>' in result.output


def test_html_command_requires_sizes(runner: CliRunner, tmp_path: Path) -> None:
    page = tmp_path / "index.html"
    page.write_text("<img src='a.jpg'>", encoding="utf-8")
    result = runner.invoke(main, ["html", str(page), "--root", str(tmp_path / "out"), "--rel", "/m"])
    assert result.exit_code == 1
    assert "Error:" in result.output


def test_probe_command_reports_orientation_and_quality(
    runner: CliRunner, make_image: Callable[..., Path]
) -> None:
    image = make_image("rotated.jpg", (80, 60), orientation=6, quality=90)

    result = runner.invoke(main, ["--no-color", "probe", str(image)])

    assert result.exit_code == 0, result.output
    output = _flat(result.output)
    assert "size: 80 × 60" in output
    assert "format: jpeg" in output
    assert "orientation: 6 (rotate 270" in output
    assert "jpeg quality: ~" in output


def test_probe_command_missing_file(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(main, ["probe", str(tmp_path / "nope.jpg")])
    assert result.exit_code == 1
