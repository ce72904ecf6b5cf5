"""Closed set of tag variants emitted by the responsive builder."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple, Union

from bs4 import BeautifulSoup, Tag

__all__ = [
    "ImageTag",
    "PictureTag",
    "SourceTag",
    "TagKind",
    "TagNode",
    "build_element",
    "kind_of",
]


class TagKind(str, Enum):
    PICTURE = "picture"
    SOURCE = "source"
    IMAGE = "img"


def _empty_attrs() -> Dict[str, str]:
    return {}


@dataclass(frozen=True)
class ImageTag:
    attrs: Mapping[str, str] = field(default_factory=_empty_attrs)
    kind: TagKind = field(default=TagKind.IMAGE, init=False)


@dataclass(frozen=True)
class SourceTag:
    attrs: Mapping[str, str] = field(default_factory=_empty_attrs)
    kind: TagKind = field(default=TagKind.SOURCE, init=False)


@dataclass(frozen=True)
class PictureTag:
    children: Tuple[Union[SourceTag, ImageTag], ...] = ()
    attrs: Mapping[str, str] = field(default_factory=_empty_attrs)
    kind: TagKind = field(default=TagKind.PICTURE, init=False)


TagNode = Union[PictureTag, SourceTag, ImageTag]


def kind_of(element: Tag) -> Optional[TagKind]:
    """Return the variant a parsed element corresponds to, if any."""

    try:
        return TagKind(str(element.name).lower())
    except ValueError:
        return None


def build_element(soup: BeautifulSoup, node: TagNode) -> Tag:
    """Materialise *node* as a BeautifulSoup element owned by *soup*."""

    element = soup.new_tag(node.kind.value, attrs={key: str(value) for key, value in node.attrs.items()})
    if node.kind is TagKind.PICTURE:
        assert isinstance(node, PictureTag)
        for child in node.children:
            element.append(build_element(soup, child))
    return element
