"""Click CLI wiring and entry points for img_responsive."""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, cast

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from src.config_loader import ConfigError, load_config
from src.datatypes import AppConfig, ResizePolicyName, ResponsiveMode
from src.img_responsive.render.errors import ImgResponsiveError, RasterResourceError
from src.img_responsive.render.geometry import format_dimensions, normalise_anchor
from src.img_responsive.render.models import (
    BoundMax,
    Cover,
    Crop,
    FillColor,
    FitAxis,
    Identity,
    ResizePolicy,
)
from src.img_responsive.render.orientation import resolve_orientation
from src.img_responsive.render.raster import PillowExifReader, estimate_jpeg_quality, probe_image
from src.img_responsive.render.resize import ResizeRequest, resize_image
from src.img_responsive.responsive.builder import (
    ResponsiveMarkupBuilder,
    SizeSpec,
    options_from_config,
)
from src.img_responsive.responsive.resolvers import DocumentRootResolver, FilesystemResolver

logger = logging.getLogger(__name__)

_POLICY_CHOICES = [member.value for member in ResizePolicyName]
_MODE_CHOICES = [member.value for member in ResponsiveMode]


def _configure_logging(*, quiet: bool, verbose: bool, no_color: bool) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    handler = RichHandler(
        console=Console(stderr=True, no_color=no_color),
        show_path=False,
        markup=False,
    )
    logging.basicConfig(level=level, format="%(message)s", handlers=[handler], force=True)


def _load_app_config(config_path: str | None) -> AppConfig:
    if not config_path:
        return AppConfig()
    try:
        return load_config(config_path)
    except ConfigError as exc:
        raise click.ClickException(f"Config error: {exc}") from exc


def _parse_fill(value: str) -> Optional[FillColor]:
    """Parse ``R,G,B`` or ``R,G,B,A`` into a :class:`FillColor`."""

    text = value.strip()
    if not text:
        return None
    parts = [part.strip() for part in text.split(",")]
    if len(parts) not in (3, 4):
        raise click.BadParameter("fill must be R,G,B or R,G,B,A", param_hint="--fill")
    try:
        channels = [int(part) for part in parts]
    except ValueError as exc:
        raise click.BadParameter("fill channels must be integers", param_hint="--fill") from exc
    if any(channel < 0 or channel > 255 for channel in channels):
        raise click.BadParameter("fill channels must be between 0 and 255", param_hint="--fill")
    alpha = channels[3] if len(channels) == 4 else None
    return FillColor(red=channels[0], green=channels[1], blue=channels[2], alpha=alpha)


def _parse_size(value: str) -> SizeSpec:
    """Parse ``WIDTH[:MEDIA][:default]`` into a :class:`SizeSpec`."""

    parts = value.split(":")
    default = False
    if len(parts) > 1 and parts[-1].strip().lower() == "default":
        default = True
        parts = parts[:-1]
    width_text = parts[0].strip()
    try:
        width = int(width_text) if width_text else 0
    except ValueError as exc:
        raise click.BadParameter(f"invalid width in size {value!r}", param_hint="--size") from exc
    media = ":".join(parts[1:]).strip()
    return SizeSpec(width=width, media=media, default=default)


def _parse_assignment(value: str, option: str) -> Tuple[str, str]:
    name, sep, attr_value = value.partition("=")
    if not sep or not name.strip():
        raise click.BadParameter("expected NAME=VALUE", param_hint=option)
    return name.strip(), attr_value


def _build_policy(name: ResizePolicyName, *, width: int, height: int, enlarge: bool) -> ResizePolicy:
    if name is ResizePolicyName.COVER:
        return Cover(enlarge=enlarge)
    if name is ResizePolicyName.CROP:
        return Crop(enlarge=enlarge)
    if name is ResizePolicyName.FIT:
        return FitAxis(width=width or None, height=height or None)
    if name is ResizePolicyName.MAX:
        return BoundMax(max_width=width or None, max_height=height or None)
    return Identity()


def _write_text_atomic(path: Path, text: str) -> None:
    """Write *text* to *path* via a sibling temp file and ``os.replace``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def _console(ctx: click.Context) -> Console:
    params = cast(Dict[str, Any], ctx.ensure_object(dict))
    return Console(no_color=bool(params.get("no_color", False)), highlight=False, soft_wrap=True)


def _run_guarded(func, *args: Any, **kwargs: Any) -> None:
    try:
        func(*args, **kwargs)
    except (SystemExit, click.ClickException, click.exceptions.Exit):
        raise
    except Exception:  # noqa: BLE001
        Console(stderr=True).print_exception()
        sys.exit(1)


@click.group(invoke_without_command=True)
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Path to a TOML config file; command-line options override it.",
)
@click.option("--quiet", is_flag=True, help="Only log errors.")
@click.option("--verbose", is_flag=True, help="Show debug logging.")
@click.option("--no-color", is_flag=True, help="Disable ANSI colour output.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, quiet: bool, verbose: bool, no_color: bool) -> None:
    """Resize images and rewrite HTML image references into responsive markup."""

    if quiet and verbose:
        raise click.ClickException("Cannot combine --quiet with --verbose.")
    _configure_logging(quiet=quiet, verbose=verbose, no_color=no_color)
    params = cast(Dict[str, Any], ctx.ensure_object(dict))
    params.update({"config_path": config_path, "quiet": quiet, "verbose": verbose, "no_color": no_color})
    params["config"] = _load_app_config(config_path)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@main.command("resize")
@click.argument("source", type=click.Path(dir_okay=False))
@click.argument("destination", type=click.Path(dir_okay=False))
@click.option("--policy", type=click.Choice(_POLICY_CHOICES), default=None, help="Override [resize].policy.")
@click.option("--width", type=int, default=None, help="Output or bounding width.")
@click.option("--height", type=int, default=None, help="Output or bounding height.")
@click.option("--enlarge/--no-enlarge", default=None, help="Allow upscaling for cover/crop.")
@click.option("--anchor-x", default=None, help="LEFT, CENTER, RIGHT or a pixel offset.")
@click.option("--anchor-y", default=None, help="TOP, MIDDLE, BOTTOM or a pixel offset.")
@click.option("--fill", default=None, help="Background colour as R,G,B[,A].")
@click.option("--overwrite/--no-overwrite", default=None, help="Replace an existing destination.")
@click.option("--no-exif-rotate", is_flag=True, help="Ignore the EXIF orientation tag.")
@click.option("--jpg-quality", type=click.IntRange(1, 100), default=None)
@click.option("--png-compression", type=click.IntRange(0, 9), default=None)
@click.option("--webp-quality", type=click.IntRange(1, 100), default=None)
@click.pass_context
def resize_command(
    ctx: click.Context,
    source: str,
    destination: str,
    *,
    policy: str | None,
    width: int | None,
    height: int | None,
    enlarge: bool | None,
    anchor_x: str | None,
    anchor_y: str | None,
    fill: str | None,
    overwrite: bool | None,
    no_exif_rotate: bool,
    jpg_quality: int | None,
    png_compression: int | None,
    webp_quality: int | None,
) -> None:
    """Resize SOURCE into DESTINATION under one geometric policy."""

    params = cast(Dict[str, Any], ctx.ensure_object(dict))
    cfg = cast(AppConfig, params["config"])
    console = _console(ctx)

    def _execute() -> None:
        resize_cfg = cfg.resize
        policy_name = ResizePolicyName(policy) if policy else resize_cfg.policy
        out_width = width if width is not None else resize_cfg.width
        out_height = height if height is not None else resize_cfg.height
        try:
            anchor = normalise_anchor(
                anchor_x if anchor_x is not None else resize_cfg.anchor_x,
                anchor_y if anchor_y is not None else resize_cfg.anchor_y,
            )
        except ImgResponsiveError as exc:
            raise click.BadParameter(str(exc), param_hint="--anchor-x/--anchor-y") from exc
        request = ResizeRequest(
            source=Path(source),
            destination=Path(destination),
            policy=_build_policy(
                policy_name,
                width=out_width,
                height=out_height,
                enlarge=resize_cfg.enlarge if enlarge is None else enlarge,
            ),
            output_width=out_width or None,
            output_height=out_height or None,
            anchor=anchor,
            fill=_parse_fill(fill if fill is not None else resize_cfg.fill),
            overwrite=resize_cfg.overwrite if overwrite is None else overwrite,
            exif_rotate=resize_cfg.exif_rotate and not no_exif_rotate,
            jpg_quality=jpg_quality if jpg_quality is not None else cfg.quality.jpg_quality,
            png_compression=png_compression if png_compression is not None else cfg.quality.png_compression,
            webp_quality=webp_quality if webp_quality is not None else cfg.quality.webp_quality,
        )
        result = resize_image(request)
        if not result.ok:
            for message in result.messages:
                console.print(f"[red]✗[/] {escape(message)}", markup=True)
            raise click.exceptions.Exit(1)
        plan = result.plan
        assert plan is not None
        console.print(
            f"[green]✓[/] {escape(destination)} "
            f"{format_dimensions(plan.dest_width, plan.dest_height)} "
            f"(source box {format_dimensions(plan.source_width, plan.source_height)} "
            f"at {plan.anchor_x:g},{plan.anchor_y:g}, ratio {plan.ratio:.4g})",
            markup=True,
        )

    _run_guarded(_execute)


@main.command("html")
@click.argument("input_path", metavar="INPUT", type=click.Path(dir_okay=False))
@click.option("--output", "output_path", default=None, type=click.Path(dir_okay=False), help="Write HTML here instead of stdout.")
@click.option("--root", "output_root", default=None, help="Directory receiving generated variants.")
@click.option("--rel", "relative_path", default=None, help="URL prefix pointing at --root in the markup.")
@click.option("--size", "sizes", multiple=True, help="WIDTH[:MEDIA][:default]; repeatable, order is kept.")
@click.option("--mode", type=click.Choice(_MODE_CHOICES), default=None, help="Override [responsive].mode.")
@click.option("--multiplier/--no-multiplier", default=None, help="Use density tokens (2x) in srcset mode.")
@click.option("--overwrite/--no-overwrite", default=None, help="Regenerate variants and reprocess tagged images.")
@click.option("--document-root", default=None, help="Resolve image URLs under this web root.")
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Override [runtime].workers.")
@click.option("--attr", "attrs", multiple=True, help="NAME=VALUE set when absent.")
@click.option("--override-attr", "override_attrs", multiple=True, help="NAME=VALUE always set.")
@click.option("--remove-attr", "remove_attrs", multiple=True, help="NAME to remove.")
@click.pass_context
def html_command(
    ctx: click.Context,
    input_path: str,
    *,
    output_path: str | None,
    output_root: str | None,
    relative_path: str | None,
    sizes: Tuple[str, ...],
    mode: str | None,
    multiplier: bool | None,
    overwrite: bool | None,
    document_root: str | None,
    workers: int | None,
    attrs: Tuple[str, ...],
    override_attrs: Tuple[str, ...],
    remove_attrs: Tuple[str, ...],
) -> None:
    """Rewrite every resolvable <img> in INPUT into responsive markup."""

    params = cast(Dict[str, Any], ctx.ensure_object(dict))
    cfg = cast(AppConfig, params["config"])

    responsive_cfg = cfg.responsive
    overrides: Dict[str, Any] = {}
    if output_root is not None:
        overrides["output_root"] = output_root
    if relative_path is not None:
        overrides["relative_path"] = relative_path
    if mode is not None:
        overrides["mode"] = ResponsiveMode(mode)
    if multiplier is not None:
        overrides["multiplier"] = multiplier
    if overwrite is not None:
        overrides["overwrite"] = overwrite
    if document_root is not None:
        overrides["document_root"] = document_root
    if sizes:
        overrides["sizes"] = []
    responsive_cfg = replace(responsive_cfg, **overrides)
    runtime_cfg = cfg.runtime if workers is None else replace(cfg.runtime, workers=workers)

    options = options_from_config(responsive_cfg, runtime_cfg)
    for raw_size in sizes:
        spec = _parse_size(raw_size)
        options = options.with_size(spec.width, spec.media, spec.default)
    for raw in attrs:
        name, value = _parse_assignment(raw, "--attr")
        options = options.with_attribute(name, value)
    for raw in override_attrs:
        name, value = _parse_assignment(raw, "--override-attr")
        options = options.with_attribute(name, value, override=True)
    for name in remove_attrs:
        options = options.without_attribute(name.strip())

    source_file = Path(input_path)
    if responsive_cfg.document_root:
        resolver: Any = DocumentRootResolver(Path(responsive_cfg.document_root), url_prefix="")
    else:
        resolver = FilesystemResolver(base_dir=source_file.parent)

    def _execute() -> None:
        try:
            html_text = source_file.read_text(encoding="utf-8")
        except OSError as exc:
            raise click.ClickException(f"Unable to read {source_file}: {exc}") from exc
        builder = ResponsiveMarkupBuilder(options, resolver=resolver)
        try:
            result = builder.build(html_text)
        except ImgResponsiveError as exc:
            raise click.ClickException(str(exc)) from exc
        if output_path:
            _write_text_atomic(Path(output_path), result.html + "\n")
        else:
            click.echo(result.html)
        for warning in result.warnings:
            click.echo(f"warning: {warning}", err=True)
        logger.info("%d image(s) rewritten, %d left untouched", result.rewritten, result.untouched)

    _run_guarded(_execute)


@main.command("probe")
@click.argument("path", type=click.Path(dir_okay=False))
@click.pass_context
def probe_command(ctx: click.Context, path: str) -> None:
    """Print size, format, orientation and estimated JPEG quality of PATH."""

    console = _console(ctx)

    def _execute() -> None:
        image_path = Path(path)
        try:
            descriptor = probe_image(image_path)
        except RasterResourceError as exc:
            raise click.ClickException(str(exc)) from exc
        info = resolve_orientation(PillowExifReader().read_orientation_code(image_path))
        console.print(f"path: {descriptor.path}")
        console.print(f"size: {format_dimensions(descriptor.width, descriptor.height)}")
        console.print(f"format: {descriptor.format or 'unknown'}")
        console.print(f"orientation: {info.raw_code} (rotate {info.angle}, flip {info.flip.value})")
        quality = estimate_jpeg_quality(image_path)
        if quality is not None:
            console.print(f"jpeg quality: ~{quality}")

    _run_guarded(_execute)


cli = main

__all__ = ["cli", "main"]
