"""Configuration loader that parses and validates user-provided TOML."""

from __future__ import annotations

import tomllib
from dataclasses import fields, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List

from .datatypes import (
    AppConfig,
    AttributeRuleConfig,
    QualityConfig,
    ResizeConfig,
    ResponsiveConfig,
    RuntimeConfig,
    SizeConfig,
)


class ConfigError(ValueError):
    """Raised when the configuration file is malformed or fails validation."""


_LIST_TABLE_FIELDS: Dict[str, type] = {
    "sizes": SizeConfig,
    "attributes": AttributeRuleConfig,
}


def _coerce_bool(value: Any, dotted_key: str) -> bool:
    """Return a bool, coercing simple 0/1 representations when necessary."""

    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"0", "1"}:
            return normalized == "1"
        if normalized in {"true", "false"}:
            return normalized == "true"
    raise ConfigError(f"{dotted_key} must be a boolean (use true/false).")


def _coerce_enum(value: Any, dotted_key: str, enum_type: type[Enum]) -> Enum:
    """Return an enum member, coercing string values case-insensitively."""

    if isinstance(value, enum_type):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        for member in enum_type:
            if normalized == str(member.value).lower():
                return member
    raise ConfigError(
        f"{dotted_key} must be one of: {', '.join(str(member.value) for member in enum_type)}"
    )


def _coerce_int(value: Any, dotted_key: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{dotted_key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip(), 0)
        except ValueError:
            pass
    raise ConfigError(f"{dotted_key} must be an integer")


def _sanitize_list(raw: Any, name: str, cls) -> List[Any]:
    """Coerce an array of tables (``[[responsive.sizes]]``) into dataclass instances."""

    if not isinstance(raw, list):
        raise ConfigError(f"{name} must be an array of tables")
    return [_sanitize_section(entry, f"{name}[{index}]", cls) for index, entry in enumerate(raw)]


def _sanitize_section(raw: dict[str, Any], name: str, cls):
    """
    Coerce a raw TOML table into an instance of ``cls``.

    Parameters:
        raw (dict[str, Any]): Raw TOML section data.
        name (str): Section name used when reporting validation errors.
        cls: Dataclass type used to construct the section object.

    Returns:
        Any: Instantiated dataclass populated with values from ``raw``.

    Raises:
        ConfigError: If the section is not a table or contains invalid keys or values.
    """
    if not isinstance(raw, dict):
        raise ConfigError(f"[{name}] must be a table")
    cleaned: Dict[str, Any] = {}
    cls_fields = {field.name: field for field in fields(cls)}
    for key, value in raw.items():
        field = cls_fields.get(key)
        if field is None:
            raise ConfigError(f"Unknown key '{key}' in [{name}]")
        dotted = f"{name}.{key}"
        if field.type is bool:
            cleaned[key] = _coerce_bool(value, dotted)
        elif field.type is int:
            cleaned[key] = _coerce_int(value, dotted)
        elif isinstance(field.type, type) and issubclass(field.type, Enum):
            cleaned[key] = _coerce_enum(value, dotted, field.type)
        elif is_dataclass(field.type):
            cleaned[key] = _sanitize_section(value, dotted, field.type)
        elif key in _LIST_TABLE_FIELDS:
            cleaned[key] = _sanitize_list(value, dotted, _LIST_TABLE_FIELDS[key])
        elif field.type is str:
            if not isinstance(value, (str, int, float)) or isinstance(value, bool):
                raise ConfigError(f"{dotted} must be a string")
            cleaned[key] = str(value)
        else:
            cleaned[key] = value
    try:
        return cls(**cleaned)
    except TypeError as exc:
        raise ConfigError(f"Invalid keys in [{name}]: {exc}") from exc


def _validate_range(value: int, dotted_key: str, low: int, high: int) -> None:
    if value < low or value > high:
        raise ConfigError(f"{dotted_key} must be between {low} and {high}")


def _validate_quality(section: Any, name: str) -> None:
    _validate_range(section.jpg_quality, f"{name}.jpg_quality", 1, 100)
    _validate_range(section.png_compression, f"{name}.png_compression", 0, 9)
    _validate_range(section.webp_quality, f"{name}.webp_quality", 1, 100)


def _validate_resize(resize: ResizeConfig) -> None:
    if resize.width < 0:
        raise ConfigError("resize.width must be >= 0")
    if resize.height < 0:
        raise ConfigError("resize.height must be >= 0")
    resize.anchor_x = resize.anchor_x.strip().lower() or "center"
    resize.anchor_y = resize.anchor_y.strip().lower() or "0"
    resize.fill = resize.fill.strip()


def _validate_responsive(responsive: ResponsiveConfig) -> None:
    _validate_quality(responsive.quality, "responsive.quality")
    for index, size in enumerate(responsive.sizes):
        if size.width < 0:
            raise ConfigError(f"responsive.sizes[{index}].width must be >= 0")
        if not size.default and size.width == 0:
            raise ConfigError(f"responsive.sizes[{index}].width must be > 0 for non-default sizes")
        size.media = size.media.strip()
    if responsive.sizes:
        defaults = sum(1 for size in responsive.sizes if size.default)
        if defaults != 1:
            raise ConfigError("responsive.sizes must mark exactly one entry as default")
    for index, rule in enumerate(responsive.attributes):
        rule.name = rule.name.strip()
        if not rule.name:
            raise ConfigError(f"responsive.attributes[{index}].name must be set")
    if not isinstance(responsive.void_tags, list):
        raise ConfigError("responsive.void_tags must be an array of strings")
    tags: List[str] = []
    for tag in responsive.void_tags:
        if not isinstance(tag, str) or not tag.strip():
            raise ConfigError("responsive.void_tags entries must be non-empty strings")
        tags.append(tag.strip().lower())
    responsive.void_tags = tags
    if responsive.file_mode < 0 or responsive.file_mode > 0o777:
        raise ConfigError("responsive.file_mode must be between 0 and 0o777")
    responsive.relative_path = responsive.relative_path.strip()
    responsive.output_root = responsive.output_root.strip()
    responsive.document_root = responsive.document_root.strip()


def load_config(path: str | Path) -> AppConfig:
    """
    Load and validate a TOML configuration file.

    Missing sections fall back to dataclass defaults.

    Raises:
        ConfigError: If the file cannot be read, parsed, or fails validation.
    """

    try:
        raw_bytes = Path(path).read_bytes()
    except OSError as exc:
        raise ConfigError(f"Unable to read configuration file {path}: {exc}") from exc
    try:
        raw = tomllib.loads(raw_bytes.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise ConfigError("Configuration file must be UTF-8 encoded") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse TOML: {exc}") from exc

    known = {"quality", "resize", "responsive", "runtime"}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration section(s): {', '.join(unknown)}")

    app = AppConfig(
        quality=_sanitize_section(raw.get("quality", {}), "quality", QualityConfig),
        resize=_sanitize_section(raw.get("resize", {}), "resize", ResizeConfig),
        responsive=_sanitize_section(raw.get("responsive", {}), "responsive", ResponsiveConfig),
        runtime=_sanitize_section(raw.get("runtime", {}), "runtime", RuntimeConfig),
    )

    _validate_quality(app.quality, "quality")
    _validate_resize(app.resize)
    _validate_responsive(app.responsive)
    if app.runtime.workers < 1:
        raise ConfigError("runtime.workers must be >= 1")

    return app


__all__ = ["ConfigError", "load_config"]
