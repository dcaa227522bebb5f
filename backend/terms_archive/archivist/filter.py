"""Extract the meaningful text of a fetched document."""

from __future__ import annotations

import re
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import Protocol

try:
    import fitz  # type: ignore[attr-defined]
except Exception:  # pragma: no cover - optional dependency
    fitz = None

from terms_archive.core.errors import (
    InaccessibleContentError,
    SelectorNotFoundError,
    UnsupportedMimeTypeError,
)
from terms_archive.models.declarations import SelectionRules
from terms_archive.utils.text import normalize, normalize_lines

VOID_TAGS = frozenset(
    {"area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta", "source", "track", "wbr"}
)
SKIPPED_TAGS = frozenset({"script", "style", "noscript", "template", "head"})
BLOCK_TAGS = frozenset(
    {
        "address", "article", "aside", "blockquote", "br", "dd", "div", "dl", "dt", "figcaption",
        "footer", "form", "h1", "h2", "h3", "h4", "h5", "h6", "header", "hr", "li", "main",
        "nav", "ol", "p", "pre", "section", "table", "td", "th", "tr", "ul",
    }
)
HEADING_RE = re.compile(r"^h([1-6])$")
COMPOUND_RE = re.compile(r"^(?P<tag>[a-zA-Z][\w-]*|\*)?(?P<rest>(?:[#.][\w-]+)*)$")


class Filterer(Protocol):
    def filter(self, content: bytes, mime_type: str, rules: SelectionRules) -> str:
        ...


@dataclass(frozen=True, slots=True)
class _Element:
    tag: str
    id: str | None
    classes: frozenset[str]


@dataclass(frozen=True, slots=True)
class _Compound:
    tag: str | None
    id: str | None
    classes: frozenset[str]

    def matches(self, element: _Element) -> bool:
        if self.tag is not None and self.tag != element.tag:
            return False
        if self.id is not None and self.id != element.id:
            return False
        return self.classes <= element.classes


@dataclass(frozen=True, slots=True)
class Selector:
    """A compound selector chain supporting descendant and ``>`` child combinators."""

    parts: tuple[tuple[str, _Compound], ...]

    @classmethod
    def parse_group(cls, text: str) -> list["Selector"]:
        return [cls.parse(part) for part in text.split(",") if part.strip()]

    @classmethod
    def parse(cls, text: str) -> "Selector":
        tokens = re.sub(r"\s*>\s*", " > ", text.strip()).split()
        parts: list[tuple[str, _Compound]] = []
        combinator = ""
        for token in tokens:
            if token == ">":
                combinator = ">"
                continue
            parts.append((combinator if parts else "", _parse_compound(token, text)))
            combinator = " "
        if not parts:
            raise ValueError(f"Empty selector {text!r}")
        return cls(tuple(parts))

    def matches(self, path: list[_Element]) -> bool:
        """``path`` lists the element's ancestors, the element itself last."""
        return bool(path) and self._matches_at(len(self.parts) - 1, path, len(path) - 1)

    def _matches_at(self, index: int, path: list[_Element], position: int) -> bool:
        combinator, compound = self.parts[index]
        if not compound.matches(path[position]):
            return False
        if index == 0:
            return True
        if combinator == ">":
            return position > 0 and self._matches_at(index - 1, path, position - 1)
        return any(self._matches_at(index - 1, path, ancestor) for ancestor in range(position - 1, -1, -1))


def _parse_compound(token: str, selector: str) -> _Compound:
    match = COMPOUND_RE.match(token)
    if match is None:
        raise ValueError(f"Unsupported selector {selector!r}")
    tag = match.group("tag")
    element_id = None
    classes: set[str] = set()
    for kind, name in re.findall(r"([#.])([\w-]+)", match.group("rest")):
        if kind == "#":
            element_id = name
        else:
            classes.add(name)
    return _Compound(tag=None if tag in (None, "*") else tag.lower(), id=element_id, classes=frozenset(classes))


class _HtmlExtractor(HTMLParser):
    """Collect text blocks inside elements matching the content selectors."""

    def __init__(self, rules: SelectionRules) -> None:
        super().__init__(convert_charrefs=True)
        self.content = [s for group in rules.content_selectors for s in Selector.parse_group(group)]
        self.remove = [s for group in rules.remove_selectors for s in Selector.parse_group(group)]
        self.stack: list[_Element] = []
        self.capture_depth: int | None = 0 if not self.content else None
        self.skip_depth: int | None = None
        self.matched = not self.content
        self.blocks: list[str] = []
        self._current: list[str] = []
        self._prefix = ""

    @property
    def capturing(self) -> bool:
        return self.capture_depth is not None and self.skip_depth is None

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        attributes = dict(attrs)
        element = _Element(
            tag=tag,
            id=attributes.get("id"),
            classes=frozenset((attributes.get("class") or "").split()),
        )
        if tag in VOID_TAGS:
            if self.capturing and tag in BLOCK_TAGS:
                self._flush()
            return
        self.stack.append(element)
        depth = len(self.stack)
        if self.skip_depth is not None:
            return
        if tag in SKIPPED_TAGS or any(selector.matches(self.stack) for selector in self.remove):
            self.skip_depth = depth
            return
        if self.capture_depth is None and any(selector.matches(self.stack) for selector in self.content):
            self.capture_depth = depth
            self.matched = True
        if self.capturing and tag in BLOCK_TAGS:
            self._flush()
            heading = HEADING_RE.match(tag)
            if heading:
                self._prefix = "#" * int(heading.group(1)) + " "
            elif tag == "li":
                self._prefix = "- "

    def handle_endtag(self, tag: str) -> None:
        if tag in VOID_TAGS:
            return
        for index in range(len(self.stack) - 1, -1, -1):
            if self.stack[index].tag == tag:
                break
        else:
            return
        while len(self.stack) > index:
            depth = len(self.stack)
            closed = self.stack.pop()
            if self.capturing and closed.tag in BLOCK_TAGS:
                self._flush()
            if self.skip_depth == depth:
                self.skip_depth = None
            if self.capture_depth == depth:
                self._flush()
                self.capture_depth = None

    def handle_data(self, data: str) -> None:
        if self.capturing:
            self._current.append(data)

    def close(self) -> None:
        super().close()
        self._flush()

    def _flush(self) -> None:
        text = normalize("".join(self._current))
        if text:
            self.blocks.append(self._prefix + text)
        self._current = []
        self._prefix = ""

    @property
    def text(self) -> str:
        return "\n\n".join(self.blocks)


class BaseFilter:
    """Common filter interface."""

    mime_types: tuple[str, ...] = ()

    def can_filter(self, mime_type: str) -> bool:
        return mime_type in self.mime_types

    def filter(self, content: bytes, rules: SelectionRules) -> str:  # pragma: no cover - interface
        raise NotImplementedError


class HtmlFilter(BaseFilter):
    mime_types = ("text/html", "application/xhtml+xml")

    def filter(self, content: bytes, rules: SelectionRules) -> str:
        extractor = _HtmlExtractor(rules)
        extractor.feed(content.decode("utf-8", errors="replace"))
        extractor.close()
        if not extractor.matched:
            raise SelectorNotFoundError(list(rules.content_selectors))
        if not extractor.text:
            raise InaccessibleContentError("Extracted content is empty")
        return extractor.text


class MarkdownFilter(BaseFilter):
    mime_types = ("text/markdown", "text/x-markdown")

    def filter(self, content: bytes, rules: SelectionRules) -> str:
        return normalize_lines(content.decode("utf-8", errors="replace"))


class TextFilter(BaseFilter):
    mime_types = ("text/plain",)

    def filter(self, content: bytes, rules: SelectionRules) -> str:
        return normalize_lines(content.decode("utf-8", errors="replace"))


class PDFFilter(BaseFilter):
    mime_types = ("application/pdf",)

    def filter(self, content: bytes, rules: SelectionRules) -> str:
        if fitz is None:
            raise UnsupportedMimeTypeError("application/pdf")
        with fitz.open(stream=content, filetype="pdf") as doc:
            pages = [normalize_lines(page.get_text("text", sort=True)) for page in doc]
        text = "\n\n".join(page for page in pages if page)
        if not text:
            raise InaccessibleContentError("PDF document has no extractable text")
        return text


class FilterRegistry:
    """Registry that selects an appropriate filter for a media type."""

    def __init__(self) -> None:
        self._filters: list[BaseFilter] = [
            HtmlFilter(),
            MarkdownFilter(),
            TextFilter(),
            PDFFilter(),
        ]

    def register(self, document_filter: BaseFilter) -> None:
        self._filters.insert(0, document_filter)

    def for_mime_type(self, mime_type: str) -> BaseFilter | None:
        essence = mime_type.split(";", 1)[0].strip().lower()
        for document_filter in self._filters:
            if document_filter.can_filter(essence):
                return document_filter
        return None

    def filter(self, content: bytes, mime_type: str, rules: SelectionRules) -> str:
        document_filter = self.for_mime_type(mime_type)
        if document_filter is None:
            raise UnsupportedMimeTypeError(mime_type)
        return document_filter.filter(content, rules)


__all__ = [
    "BaseFilter",
    "FilterRegistry",
    "Filterer",
    "HtmlFilter",
    "MarkdownFilter",
    "PDFFilter",
    "Selector",
    "TextFilter",
]
