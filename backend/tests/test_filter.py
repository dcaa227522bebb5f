"""Tests for document filters."""

from __future__ import annotations

import pytest

import terms_archive.archivist.filter as filter_module
from terms_archive.archivist.filter import BaseFilter, FilterRegistry, HtmlFilter, Selector
from terms_archive.core.errors import (
    InaccessibleContentError,
    SelectorNotFoundError,
    UnsupportedMimeTypeError,
)
from terms_archive.models.declarations import SelectionRules

PAGE = b"""
<html>
  <head><title>Ignored</title><script>var tracking = true;</script></head>
  <body>
    <header id="top">Site header</header>
    <article class="terms legal">
      <h2>Section 1</h2>
      <p>We may <strong>change</strong> these terms.<br>At any time.</p>
      <ul><li>First item</li><li>Second item</li></ul>
      <aside class="cookie-banner"><p>Accept cookies</p></aside>
      <div class="content"><p>Nested paragraph</p></div>
    </article>
    <div><p class="content">Outside paragraph</p></div>
  </body>
</html>
"""


def html(rules: SelectionRules) -> str:
    return HtmlFilter().filter(PAGE, rules)


def test_content_selector_extracts_markdown_blocks() -> None:
    text = html(SelectionRules(content_selectors=("article",), remove_selectors=(".cookie-banner",)))
    assert text == (
        "## Section 1\n\n"
        "We may change these terms.\n\n"
        "At any time.\n\n"
        "- First item\n\n"
        "- Second item\n\n"
        "Nested paragraph"
    )


def test_without_selectors_whole_body_is_kept_but_head_is_ignored() -> None:
    text = html(SelectionRules())
    assert text.startswith("Site header")
    assert "Ignored" not in text
    assert "tracking" not in text
    assert text.endswith("Outside paragraph")


def test_compound_and_combinator_selectors() -> None:
    assert html(SelectionRules(content_selectors=("article.terms.legal h2",))) == "## Section 1"
    assert html(SelectionRules(content_selectors=("#top",))) == "Site header"
    assert html(SelectionRules(content_selectors=("article > div > p",))) == "Nested paragraph"
    assert html(SelectionRules(content_selectors=("body > div .content",))) == "Outside paragraph"
    assert html(SelectionRules(content_selectors=("h2, li",))) == "## Section 1\n\n- First item\n\n- Second item"


def test_selector_matching_on_paths() -> None:
    selector = Selector.parse("article > p")
    assert selector.parts[1][0] == ">"
    with pytest.raises(ValueError):
        Selector.parse("a[href]")
    with pytest.raises(ValueError):
        Selector.parse("   ")


def test_descendant_combinator_looks_past_the_nearest_match() -> None:
    nested = b"<div><section><section><span>Deep</span></section></section></div>"
    assert HtmlFilter().filter(nested, SelectionRules(content_selectors=("div > section span",))) == "Deep"
    assert HtmlFilter().filter(nested, SelectionRules(content_selectors=("div section > section > span",))) == "Deep"
    with pytest.raises(SelectorNotFoundError):
        HtmlFilter().filter(nested, SelectionRules(content_selectors=("div > span",)))


def test_unmatched_selector_raises() -> None:
    with pytest.raises(SelectorNotFoundError) as excinfo:
        html(SelectionRules(content_selectors=("#missing",)))
    assert excinfo.value.selectors == ["#missing"]
    assert isinstance(excinfo.value, InaccessibleContentError)


def test_empty_extraction_is_inaccessible() -> None:
    with pytest.raises(InaccessibleContentError):
        html(SelectionRules(content_selectors=("aside",), remove_selectors=("aside p",)))


def test_registry_dispatches_on_mime_type_essence() -> None:
    registry = FilterRegistry()
    assert registry.filter(b"Line one   \r\n\r\n\r\n\r\nLine two\n", "text/plain; charset=utf-8", SelectionRules()) == (
        "Line one\n\nLine two"
    )
    assert registry.filter(b"# Title\n\nBody\n", "text/markdown", SelectionRules()) == "# Title\n\nBody"


def test_registry_rejects_unsupported_mime_types() -> None:
    with pytest.raises(UnsupportedMimeTypeError):
        FilterRegistry().filter(b"\x00", "application/octet-stream", SelectionRules())


def test_pdf_without_pymupdf_is_unsupported(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(filter_module, "fitz", None)
    with pytest.raises(UnsupportedMimeTypeError) as excinfo:
        FilterRegistry().filter(b"%PDF-1.4", "application/pdf", SelectionRules())
    assert excinfo.value.mime_type == "application/pdf"


def test_registered_filters_take_precedence() -> None:
    class UpperFilter(BaseFilter):
        mime_types = ("text/plain",)

        def filter(self, content: bytes, rules: SelectionRules) -> str:
            return content.decode("utf-8").upper()

    registry = FilterRegistry()
    registry.register(UpperFilter())
    assert registry.filter(b"shout", "text/plain", SelectionRules()) == "SHOUT"
