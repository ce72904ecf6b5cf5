"""Rewrite ``<img>`` references in HTML into responsive ``<picture>``/``srcset`` markup."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, Tag

from src.datatypes import ResponsiveConfig, ResponsiveMode, RuntimeConfig
from src.img_responsive.render.errors import (
    ConfigurationError,
    OutputWriteError,
    PassCancelledError,
    RasterResourceError,
)
from src.img_responsive.render.models import BoundMax
from src.img_responsive.render.orientation import resolve_orientation
from src.img_responsive.render.raster import (
    ExifReaderProtocol,
    PillowExifReader,
    PillowRaster,
    RasterBackendProtocol,
)
from src.img_responsive.render.resize import ResizeRequest, resize_image
from src.img_responsive.responsive.attrs import (
    SRCSET_MANAGED_ATTRIBUTES,
    AttributeRule,
    apply_attribute_rules,
    drop_rules,
    with_rule,
)
from src.img_responsive.responsive.cache import VariantCache, VariantRecord
from src.img_responsive.responsive.markup import (
    DEFAULT_VOID_TAGS,
    CleanOptions,
    MarkupSanitizerProtocol,
    SoupSanitizer,
)
from src.img_responsive.responsive.resolvers import FilesystemResolver, PathResolverProtocol
from src.img_responsive.responsive.tags import (
    ImageTag,
    PictureTag,
    SourceTag,
    TagKind,
    TagNode,
    build_element,
)

logger = logging.getLogger(__name__)

__all__ = [
    "PROVENANCE_COMPRESSED_ATTR",
    "PROVENANCE_SOURCE_ATTR",
    "ResponsiveMarkupBuilder",
    "ResponsiveMode",
    "ResponsiveOptions",
    "ResponsiveResult",
    "SizeSpec",
    "options_from_config",
    "validate_options",
]

PROVENANCE_SOURCE_ATTR = "data-source"
PROVENANCE_COMPRESSED_ATTR = "data-compressed"

RESPONSIVE_JPG_QUALITY = 70
RESPONSIVE_PNG_COMPRESSION = 9
RESPONSIVE_WEBP_QUALITY = 70


@dataclass(frozen=True)
class SizeSpec:
    """
    One target width.

    ``media`` is a media condition / ``sizes`` entry (``(max-width: 600px) 100vw``),
    or a density token such as ``2x`` in multiplier mode.
    """

    width: int
    media: str = ""
    default: bool = False


def _picture_mode_rules() -> Tuple[AttributeRule, ...]:
    return tuple(AttributeRule.removal(name) for name in SRCSET_MANAGED_ATTRIBUTES)


@dataclass(frozen=True)
class ResponsiveOptions:
    """Immutable configuration of a document pass; ``with_*`` helpers return copies."""

    sizes: Tuple[SizeSpec, ...] = ()
    output_root: Optional[Path] = None
    relative_path: str = ""
    mode: ResponsiveMode = ResponsiveMode.PICTURE
    multiplier: bool = False
    overwrite: bool = False
    attribute_rules: Tuple[AttributeRule, ...] = field(default_factory=_picture_mode_rules)
    void_tags: Tuple[str, ...] = DEFAULT_VOID_TAGS
    jpg_quality: int = RESPONSIVE_JPG_QUALITY
    png_compression: int = RESPONSIVE_PNG_COMPRESSION
    webp_quality: int = RESPONSIVE_WEBP_QUALITY
    exif_rotate: bool = True
    file_mode: Optional[int] = 0o644
    workers: int = 1

    def with_size(self, width: int, media: str = "", default: bool = False) -> "ResponsiveOptions":
        return replace(self, sizes=self.sizes + (SizeSpec(width=width, media=media, default=default),))

    def with_paths(self, output_root: Path, relative_path: str) -> "ResponsiveOptions":
        return replace(self, output_root=Path(output_root), relative_path=relative_path)

    def with_mode_picture(self) -> "ResponsiveOptions":
        rules = self.attribute_rules
        for name in SRCSET_MANAGED_ATTRIBUTES:
            rules = with_rule(rules, AttributeRule.removal(name))
        return replace(self, mode=ResponsiveMode.PICTURE, multiplier=False, attribute_rules=rules)

    def with_mode_srcset(self, multiplier: bool = False) -> "ResponsiveOptions":
        rules = drop_rules(self.attribute_rules, *SRCSET_MANAGED_ATTRIBUTES)
        return replace(self, mode=ResponsiveMode.SRCSET, multiplier=multiplier, attribute_rules=rules)

    def with_attribute(self, name: str, value: str, override: bool = False) -> "ResponsiveOptions":
        rule = AttributeRule(name=name, value=value, override=override)
        return replace(self, attribute_rules=with_rule(self.attribute_rules, rule))

    def without_attribute(self, name: str) -> "ResponsiveOptions":
        return replace(self, attribute_rules=with_rule(self.attribute_rules, AttributeRule.removal(name)))

    def reset_attribute(self, name: str) -> "ResponsiveOptions":
        return replace(self, attribute_rules=drop_rules(self.attribute_rules, name))

    def add_void_tag(self, tag: str) -> "ResponsiveOptions":
        if tag in self.void_tags:
            return self
        return replace(self, void_tags=self.void_tags + (tag,))

    @property
    def clean_options(self) -> CleanOptions:
        return CleanOptions(void_tags=self.void_tags)


@dataclass(frozen=True)
class ResponsiveResult:
    """Rewritten document plus diagnostics gathered during the pass."""

    html: str
    warnings: Tuple[str, ...] = ()
    variants: Tuple[VariantRecord, ...] = ()
    rewritten: int = 0
    untouched: int = 0


def validate_options(options: ResponsiveOptions) -> None:
    """
    Check a pass configuration before any content is touched.

    Raises:
        ConfigurationError: On missing paths, no sizes, not exactly one default
            size, or a non-default size without a positive width.
    """

    if options.output_root is None or not str(options.output_root):
        raise ConfigurationError("Root filepath must be provided.")
    if not options.relative_path:
        raise ConfigurationError("Relative path must be provided.")
    if not options.sizes:
        raise ConfigurationError("You must add some sizes options.")
    defaults = [spec for spec in options.sizes if spec.default]
    if len(defaults) != 1:
        raise ConfigurationError(
            f"Exactly one of sizes options must be the default size (found {len(defaults)})."
        )
    for spec in options.sizes:
        if not spec.default and spec.width <= 0:
            raise ConfigurationError("Parameter width cannot be empty in sizes options.")
    if options.workers < 1:
        raise ConfigurationError("workers must be >= 1")


def options_from_config(cfg: ResponsiveConfig, runtime: RuntimeConfig | None = None) -> ResponsiveOptions:
    """Translate the ``[responsive]`` config section into pass options."""

    options = ResponsiveOptions(
        sizes=tuple(SizeSpec(width=size.width, media=size.media, default=size.default) for size in cfg.sizes),
        output_root=Path(cfg.output_root) if cfg.output_root else None,
        relative_path=cfg.relative_path,
        overwrite=cfg.overwrite,
        jpg_quality=cfg.quality.jpg_quality,
        png_compression=cfg.quality.png_compression,
        webp_quality=cfg.quality.webp_quality,
        exif_rotate=cfg.exif_rotate,
        file_mode=cfg.file_mode or None,
        workers=runtime.workers if runtime is not None else 1,
    )
    if cfg.mode is ResponsiveMode.SRCSET:
        options = options.with_mode_srcset(cfg.multiplier)
    else:
        options = options.with_mode_picture()
    for tag in cfg.void_tags:
        options = options.add_void_tag(tag)
    for rule in cfg.attributes:
        if rule.remove:
            options = options.without_attribute(rule.name)
        else:
            options = options.with_attribute(rule.name, rule.value, override=rule.override)
    return options


def _is_truthy(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() not in {"", "0", "false", "no", "off"}


@dataclass(frozen=True)
class _SizeStep:
    spec: SizeSpec
    width: int
    resize: bool


@dataclass
class _ReferencePlan:
    element: Tag
    attrs: Dict[str, str]
    src: str
    filepath: Path
    width: int
    height: int
    steps: List[_SizeStep]


class _PassState:
    def __init__(self, cache: VariantCache) -> None:
        self.cache = cache
        self.warnings: List[str] = []
        self._lock = threading.Lock()

    def warn(self, message: str) -> None:
        with self._lock:
            self.warnings.append(message)


class ResponsiveMarkupBuilder:
    """
    Resize every resolvable image in a document and emit responsive markup.

    Configuration errors abort the pass; a failed resize only leaves that one
    reference untouched and is reported in :attr:`ResponsiveResult.warnings`.
    """

    def __init__(
        self,
        options: ResponsiveOptions,
        *,
        resolver: PathResolverProtocol | None = None,
        raster: RasterBackendProtocol | None = None,
        exif_reader: ExifReaderProtocol | None = None,
        sanitizer: MarkupSanitizerProtocol | None = None,
    ) -> None:
        self.options = options
        self.resolver: PathResolverProtocol = resolver or FilesystemResolver()
        self.raster: RasterBackendProtocol = raster or PillowRaster()
        if options.exif_rotate and exif_reader is None:
            exif_reader = PillowExifReader()
        self.exif_reader = exif_reader
        self.sanitizer: MarkupSanitizerProtocol = sanitizer or SoupSanitizer()

    def build(self, html: str, *, cancel: threading.Event | None = None) -> ResponsiveResult:
        """
        Run one document pass over *html*.

        Raises:
            ConfigurationError: When content or options are invalid.
            OutputWriteError: When the output root cannot be created.
            PassCancelledError: When *cancel* is set between two references.
        """

        if not html or not html.strip():
            raise ConfigurationError("Html content must be provided.")
        options = self.options
        validate_options(options)
        assert options.output_root is not None
        try:
            options.output_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(f"Can't make dir: {options.output_root}") from exc

        clean_options = options.clean_options
        tree = self.sanitizer.parse(html, clean_options)
        state = _PassState(VariantCache(options.output_root, options.relative_path, overwrite=options.overwrite))

        self._rewrite_containers(tree)

        plans: List[_ReferencePlan] = []
        untouched = 0
        for element in tree.find_all(TagKind.IMAGE.value):
            self._check_cancel(cancel)
            plan = self._plan_reference(element)
            if plan is None:
                untouched += 1
            else:
                plans.append(plan)

        variants = self._produce_variants(plans, state, cancel)

        rewritten = 0
        for plan in plans:
            self._check_cancel(cancel)
            node = self._assemble(plan, variants, state)
            if node is None:
                plan.element.attrs = plan.attrs
                untouched += 1
                continue
            plan.element.replace_with(build_element(tree, node))
            rewritten += 1

        logger.info(
            "Responsive pass finished: %d rewritten, %d untouched, %d warning(s)",
            rewritten,
            untouched,
            len(state.warnings),
        )
        return ResponsiveResult(
            html=self.sanitizer.render(tree, clean_options),
            warnings=tuple(state.warnings),
            variants=tuple(state.cache.records()),
            rewritten=rewritten,
            untouched=untouched,
        )

    @staticmethod
    def _check_cancel(cancel: threading.Event | None) -> None:
        if cancel is not None and cancel.is_set():
            raise PassCancelledError("Responsive pass cancelled")

    def _rewrite_containers(self, tree: BeautifulSoup) -> None:
        """Unwrap earlier ``<picture>`` output when regenerating; keep it otherwise."""

        if not self.options.overwrite:
            return
        for element in tree.find_all(TagKind.PICTURE.value):
            for child in element.find_all(TagKind.SOURCE.value, recursive=False):
                child.decompose()
        for element in tree.find_all(TagKind.PICTURE.value):
            element.unwrap()

    def _natural_size(self, filepath: Path) -> Tuple[int, int]:
        try:
            descriptor = self.raster.probe(filepath)
        except RasterResourceError:
            logger.debug("Unable to probe %s", filepath, exc_info=True)
            return (0, 0)
        width, height = descriptor.width, descriptor.height
        if self.options.exif_rotate and self.exif_reader is not None:
            info = resolve_orientation(self.exif_reader.read_orientation_code(filepath))
            if info.angle in (90, 270):
                width, height = height, width
        return (width, height)

    def _plan_reference(self, element: Tag) -> Optional[_ReferencePlan]:
        original_attrs = {str(key): str(value) for key, value in element.attrs.items()}
        src = original_attrs.get("src", "")
        data_source = original_attrs.get(PROVENANCE_SOURCE_ATTR, "")
        compressed = _is_truthy(original_attrs.get(PROVENANCE_COMPRESSED_ATTR))

        attrs = apply_attribute_rules(original_attrs, self.options.attribute_rules)
        element.attrs = dict(attrs)

        if not self.options.overwrite and data_source and compressed:
            logger.debug("Skipping already processed image %s", data_source)
            return None
        if data_source:
            src = data_source

        filepath = self.resolver.resolve(src) if src else None
        if filepath is None or not filepath.is_file():
            logger.debug("Unresolved image reference %r", src)
            return None

        width, height = self._natural_size(filepath)
        if not width or not height:
            return None

        steps: List[_SizeStep] = []
        for spec in self.options.sizes:
            if width <= spec.width and not spec.default:
                continue
            if 0 < spec.width < width:
                steps.append(_SizeStep(spec=spec, width=spec.width, resize=True))
            else:
                steps.append(_SizeStep(spec=spec, width=width, resize=False))
        return _ReferencePlan(
            element=element,
            attrs=attrs,
            src=src,
            filepath=filepath,
            width=width,
            height=height,
            steps=steps,
        )

    def _produce_variants(
        self,
        plans: Sequence[_ReferencePlan],
        state: _PassState,
        cancel: threading.Event | None,
    ) -> Dict[Tuple[Path, int], Optional[VariantRecord]]:
        jobs: Dict[Tuple[Path, int], _ReferencePlan] = {}
        for plan in plans:
            for step in plan.steps:
                if step.resize:
                    jobs.setdefault((plan.filepath, step.width), plan)

        results: Dict[Tuple[Path, int], Optional[VariantRecord]] = {}
        if not jobs:
            return results

        worker_count = min(self.options.workers, len(jobs))
        if worker_count == 1:
            for (filepath, width), plan in jobs.items():
                self._check_cancel(cancel)
                results[(filepath, width)] = self._ensure_variant(plan, width, state)
            return results

        with ThreadPoolExecutor(max_workers=worker_count, thread_name_prefix="ImgResponsive") as executor:
            futures = {}
            for (filepath, width), plan in jobs.items():
                if cancel is not None and cancel.is_set():
                    break
                futures[executor.submit(self._ensure_variant, plan, width, state)] = (filepath, width)
            try:
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
            except Exception:  # noqa: BLE001
                for future in futures:
                    future.cancel()
                raise
        self._check_cancel(cancel)
        return results

    def _ensure_variant(self, plan: _ReferencePlan, width: int, state: _PassState) -> Optional[VariantRecord]:
        def _create(output_path: Path) -> bool:
            return self._resize_variant(plan, width, output_path, state)

        return state.cache.get_or_create(plan.filepath, width, _create)

    def _resize_variant(self, plan: _ReferencePlan, width: int, output_path: Path, state: _PassState) -> bool:
        options = self.options
        # Bound both axes so portrait sources also come out at the target width.
        max_height = max(1, int(round(plan.height * width / plan.width)))
        request = ResizeRequest(
            source=plan.filepath,
            destination=output_path,
            policy=BoundMax(max_width=width, max_height=max_height),
            overwrite=True,
            exif_rotate=options.exif_rotate,
            jpg_quality=options.jpg_quality,
            png_compression=options.png_compression,
            webp_quality=options.webp_quality,
        )
        result = resize_image(request, raster=self.raster, exif_reader=self.exif_reader)
        if not result.ok:
            state.warn(f"{plan.src} @ {width}w: " + ", ".join(result.messages))
            return False
        if options.file_mode is not None:
            try:
                os.chmod(output_path, options.file_mode)
            except OSError as exc:
                logger.warning("Unable to set permissions on %s: %s", output_path, exc)
        logger.info("Created variant %s (%dw) for %s", output_path.name, width, plan.src)
        return True

    def _assemble(
        self,
        plan: _ReferencePlan,
        variants: Dict[Tuple[Path, int], Optional[VariantRecord]],
        state: _PassState,
    ) -> Optional[TagNode]:
        entries: List[Tuple[str, _SizeStep]] = []
        default_entry: Optional[Tuple[str, _SizeStep]] = None
        for step in plan.steps:
            if step.resize:
                record = variants.get((plan.filepath, step.width))
                if record is None:
                    logger.warning("Keeping original tag for %s: variant %dw unavailable", plan.src, step.width)
                    return None
                url = record.url
            else:
                url = plan.src
            entries.append((url, step))
            if step.spec.default:
                default_entry = (url, step)

        if default_entry is None:
            state.warn(f"{plan.src}: no default size produced")
            return None

        image_attrs = dict(plan.attrs)
        image_attrs.update(
            {
                "width": str(plan.width),
                "height": str(plan.height),
                PROVENANCE_SOURCE_ATTR: plan.src,
                PROVENANCE_COMPRESSED_ATTR: "true",
                "src": default_entry[0],
            }
        )

        if self.options.mode is ResponsiveMode.SRCSET:
            return self._assemble_srcset(image_attrs, entries)
        return self._assemble_picture(image_attrs, entries)

    def _assemble_srcset(self, image_attrs: Dict[str, str], entries: Sequence[Tuple[str, _SizeStep]]) -> ImageTag:
        srcset: List[str] = []
        sizes: List[str] = []
        default_media = ""
        for url, step in entries:
            media = step.spec.media.strip()
            if self.options.multiplier:
                srcset.append(f"{url} {media}" if media else url)
                continue
            srcset.append(f"{url} {step.width}w")
            if step.spec.default:
                default_media = media
            elif media:
                sizes.append(media)
        # The default media is the unconditional fallback and must come last.
        if default_media:
            sizes.append(default_media)
        image_attrs["srcset"] = ", ".join(srcset)
        if sizes:
            image_attrs["sizes"] = ", ".join(sizes)
        else:
            image_attrs.pop("sizes", None)
        return ImageTag(attrs=image_attrs)

    def _assemble_picture(self, image_attrs: Dict[str, str], entries: Sequence[Tuple[str, _SizeStep]]) -> PictureTag:
        sources: List[SourceTag] = []
        for url, step in entries:
            if step.spec.default:
                continue
            source_attrs: Dict[str, str] = {}
            media = step.spec.media.strip()
            if media:
                source_attrs["media"] = media
            source_attrs["srcset"] = url
            sources.append(SourceTag(attrs=source_attrs))
        return PictureTag(children=tuple(sources) + (ImageTag(attrs=image_attrs),))
