"""Locate and rewrite resource references inside HTML and CSS text."""

from __future__ import annotations

import logging
import re
from typing import Callable

from .core.errors import MalformedReference

logger = logging.getLogger(__name__)

Rewriter = Callable[[str], str]

URL_ATTRIBUTES = ("src", "href", "srcset", "data-src", "data-href")

# Longest names first so "srcset" is not read as "src".
_ATTR_RE = re.compile(
    r"(?<![\w-])(?P<attr>"
    + "|".join(re.escape(name) for name in sorted(URL_ATTRIBUTES, key=len, reverse=True))
    + r")=(?:\"(?P<dq>[^\"]+)\"|'(?P<sq>[^']+)')",
    re.IGNORECASE,
)

_CSS_URL_RE = re.compile(
    r"url\(\s*(?P<quote>[\"']?)(?P<url>[^)\"'\s]*)(?P=quote)\s*\)",
    re.IGNORECASE,
)


def rewrite_html_paths(html: str, rewriter: Rewriter) -> str:
    def repl(match: re.Match[str]) -> str:
        group = "dq" if match.group("dq") is not None else "sq"
        value = match.group(group)
        if match.group("attr").lower() == "srcset":
            new_value = rewrite_srcset(value, rewriter)
        else:
            new_value = _apply(rewriter, value)
        if new_value == value:
            return match.group(0)
        return _splice(match, group, new_value)

    html = _ATTR_RE.sub(repl, html)
    return rewrite_css_paths(html, rewriter)


def rewrite_css_paths(css: str, rewriter: Rewriter) -> str:
    def repl(match: re.Match[str]) -> str:
        value = match.group("url")
        if not value:
            return match.group(0)
        new_value = _apply(rewriter, value)
        if new_value == value:
            return match.group(0)
        return _splice(match, "url", new_value)

    return _CSS_URL_RE.sub(repl, css)


def rewrite_srcset(value: str, rewriter: Rewriter) -> str:
    """Rewrite each URL of a srcset list, keeping its width/density descriptor.

    The list is only re-serialised (``", "`` between candidates, one space
    before a descriptor) when at least one URL changed.
    """
    rewritten: list[str] = []
    changed = False
    for part in value.split(","):
        pieces = part.split()
        if pieces:
            new_url = _apply(rewriter, pieces[0])
            if new_url != pieces[0]:
                pieces[0] = new_url
                changed = True
        rewritten.append(" ".join(pieces))
    if not changed:
        return value
    return ", ".join(rewritten)


def _apply(rewriter: Rewriter, value: str) -> str:
    try:
        return rewriter(value)
    except MalformedReference as exc:
        logger.debug("Leaving reference untouched: %s", exc)
        return value


def _splice(match: re.Match[str], group: str, new_value: str) -> str:
    start, end = match.span(group)
    offset = match.start()
    text = match.group(0)
    return text[: start - offset] + new_value + text[end - offset :]
