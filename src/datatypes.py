"""Configuration dataclasses for the image resizing and responsive markup tool."""
from dataclasses import dataclass, field
from enum import Enum
from typing import List


class ResizePolicyName(str, Enum):
    """Geometric policies selectable for a single resize."""

    COVER = "cover"
    CROP = "crop"
    FIT = "fit"
    MAX = "max"
    SAME = "same"


class ResponsiveMode(str, Enum):
    """Markup shape emitted for rewritten images."""

    PICTURE = "picture"
    SRCSET = "srcset"


@dataclass
class QualityConfig:
    """Encoder quality defaults for single resizes."""

    jpg_quality: int = 60
    png_compression: int = 0
    webp_quality: int = 80


@dataclass
class ResizeConfig:
    """Defaults for the ``resize`` command."""

    policy: ResizePolicyName = ResizePolicyName.SAME
    width: int = 0
    height: int = 0
    enlarge: bool = False
    anchor_x: str = "center"
    anchor_y: str = "0"
    fill: str = ""
    exif_rotate: bool = True
    overwrite: bool = False


@dataclass
class SizeConfig:
    """One responsive target width; ``media`` may be a density token in multiplier mode."""

    width: int = 0
    media: str = ""
    default: bool = False


@dataclass
class AttributeRuleConfig:
    """Attribute set/remove rule applied to rewritten ``<img>`` tags."""

    name: str = ""
    value: str = ""
    override: bool = False
    remove: bool = False


@dataclass
class ResponsiveQualityConfig:
    """Encoder settings used for generated variants."""

    jpg_quality: int = 70
    png_compression: int = 9
    webp_quality: int = 70


@dataclass
class ResponsiveConfig:
    """Document pass settings for the ``html`` command."""

    mode: ResponsiveMode = ResponsiveMode.PICTURE
    multiplier: bool = False
    overwrite: bool = False
    output_root: str = ""
    relative_path: str = ""
    document_root: str = ""
    sizes: List[SizeConfig] = field(default_factory=list)
    attributes: List[AttributeRuleConfig] = field(default_factory=list)
    void_tags: List[str] = field(default_factory=list)
    file_mode: int = 0o644
    exif_rotate: bool = True
    quality: ResponsiveQualityConfig = field(default_factory=ResponsiveQualityConfig)


@dataclass
class RuntimeConfig:
    """Execution controls shared by all commands."""

    workers: int = 1


@dataclass
class AppConfig:
    """Aggregated configuration loaded from the user-provided TOML file."""

    quality: QualityConfig = field(default_factory=QualityConfig)
    resize: ResizeConfig = field(default_factory=ResizeConfig)
    responsive: ResponsiveConfig = field(default_factory=ResponsiveConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
