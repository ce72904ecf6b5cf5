"""HTML cleaning, parsing and rendering backed by BeautifulSoup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol, Tuple

from bs4 import BeautifulSoup, Comment, Declaration, Doctype, ProcessingInstruction
from bs4.builder import HTMLParserTreeBuilder
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter

__all__ = [
    "CleanOptions",
    "DEFAULT_VOID_TAGS",
    "MarkupSanitizerProtocol",
    "SoupSanitizer",
]

DEFAULT_VOID_TAGS: Tuple[str, ...] = ("br", "img", "source")

_PARASITIC_TYPES = (Comment, ProcessingInstruction, Declaration)

_HTML_VOID_ELEMENTS = frozenset(
    {
        "area", "base", "br", "col", "embed", "hr", "img", "input",
        "link", "meta", "param", "source", "track", "wbr",
    }
)


class _SourceOrderFormatter(HTMLFormatter):
    """HTML formatter that writes attributes in the order they were parsed or set."""

    def attributes(self, tag):
        if tag.attrs is None:
            return []
        return list(tag.attrs.items())


_DECODED_FORMATTER = _SourceOrderFormatter(entity_substitution=EntitySubstitution.substitute_xml)
_ENCODED_FORMATTER = _SourceOrderFormatter(entity_substitution=EntitySubstitution.substitute_html)


@dataclass(frozen=True)
class CleanOptions:
    """
    Sanitizer switches.

    Attributes:
        decode_entities (bool): Emit decoded characters, escaping only ``&``, ``<`` and ``>``.
        strip_doctype (bool): Drop ``<!DOCTYPE ...>`` declarations.
        strip_parasitic_nodes (bool): Drop comments, processing instructions and declarations.
        void_tags (tuple[str, ...]): Extra tag names treated as self-closing.
        body_only (bool): Render only the ``<body>`` contents of full documents.
    """

    decode_entities: bool = True
    strip_doctype: bool = True
    strip_parasitic_nodes: bool = True
    void_tags: Tuple[str, ...] = DEFAULT_VOID_TAGS
    body_only: bool = True


class MarkupSanitizerProtocol(Protocol):
    def clean(self, raw_html: str, options: CleanOptions) -> str: ...

    def parse(self, html: str, options: CleanOptions) -> BeautifulSoup: ...

    def render(self, tree: BeautifulSoup, options: CleanOptions) -> str: ...


def _make_builder(void_tags: Iterable[str]) -> HTMLParserTreeBuilder:
    builder = HTMLParserTreeBuilder(multi_valued_attributes=None)
    # Known HTML void elements stay void; configured names are added on top.
    builder.empty_element_tags = set(_HTML_VOID_ELEMENTS) | {
        tag.strip().lower() for tag in void_tags if tag.strip()
    }
    return builder


class SoupSanitizer:
    """Sanitizer using BeautifulSoup's ``html.parser`` tree builder."""

    def parse(self, html: str, options: CleanOptions) -> BeautifulSoup:
        soup = BeautifulSoup(html, builder=_make_builder(options.void_tags))
        if options.strip_doctype:
            for node in soup.find_all(string=lambda text: isinstance(text, Doctype)):
                node.extract()
        if options.strip_parasitic_nodes:
            for node in soup.find_all(string=lambda text: isinstance(text, _PARASITIC_TYPES)):
                node.extract()
        return soup

    def render(self, tree: BeautifulSoup, options: CleanOptions) -> str:
        formatter = _DECODED_FORMATTER if options.decode_entities else _ENCODED_FORMATTER
        if options.body_only and tree.body is not None:
            return tree.body.decode_contents(formatter=formatter).strip()
        return tree.decode(formatter=formatter).strip()

    def clean(self, raw_html: str, options: CleanOptions) -> str:
        return self.render(self.parse(raw_html, options), options)
