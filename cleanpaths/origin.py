"""Classify references as local to the site being generated or external."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlsplit

from .core.errors import MalformedReference

_UNUSABLE_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f<>]")


class OriginResolver(Protocol):
    def base_url(self) -> str: ...

    def host(self) -> str: ...


@dataclass(frozen=True, slots=True)
class SiteOrigin:
    """Base URL and host of the site whose output is being rewritten."""

    site_url: str
    site_host: str = ""

    @classmethod
    def from_url(cls, url: str, host: str | None = None) -> "SiteOrigin":
        site_url = url.strip().rstrip("/")
        if host is None:
            host = urlsplit(site_url).hostname or ""
        return cls(site_url=site_url, site_host=host)

    def base_url(self) -> str:
        return self.site_url

    def host(self) -> str:
        if self.site_host:
            return self.site_host
        return urlsplit(self.site_url).hostname or ""


def is_local(reference: str, site_origin: OriginResolver | None) -> bool:
    """Return True when ``reference`` points at the site itself.

    Absolute URLs are matched by substring containment of the base URL (or of
    the host for protocol-relative URLs), not by comparing URL components, so
    ``https://cdn.example/?u=https://mysite.com`` counts as local.
    """
    if not reference:
        return False
    if reference.startswith("data:") or reference.startswith("#"):
        return False
    if reference.startswith("http://") or reference.startswith("https://"):
        base_url = site_origin.base_url() if site_origin is not None else ""
        return bool(base_url) and base_url in reference
    if reference.startswith("//"):
        host = site_origin.host() if site_origin is not None else ""
        return bool(host) and host in reference
    return True


def check_reference(reference: str) -> None:
    """Raise MalformedReference if ``reference`` cannot be a URL or path."""
    if _UNUSABLE_CHARS_RE.search(reference):
        raise MalformedReference(reference, "contains control or markup characters")
    try:
        urlsplit(reference)
    except ValueError as exc:
        raise MalformedReference(reference, str(exc)) from exc
