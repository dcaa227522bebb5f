"""Text processing helpers."""

from __future__ import annotations

import re


WHITESPACE_RE = re.compile(r"\s+")
BLANK_LINES_RE = re.compile(r"\n{3,}")
PATH_ESCAPES = {"%": "%25", "/": "%2F", "\\": "%5C", ".": "%2E", "\0": "%00"}


def normalize(text: str) -> str:
    """Collapse whitespace and strip."""
    return WHITESPACE_RE.sub(" ", text).strip()


def normalize_lines(text: str) -> str:
    """Strip trailing spaces per line and collapse runs of blank lines."""
    lines = [line.rstrip() for line in text.replace("\r\n", "\n").replace("\r", "\n").split("\n")]
    return BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()


def safe_path_segment(value: str) -> str:
    """Percent-encode an identifier into a single path segment without dots.

    Distinct identifiers always give distinct segments.
    """
    if not value:
        raise ValueError("An empty identifier cannot be used as a path segment")
    return "".join(PATH_ESCAPES.get(char, char) for char in value)
