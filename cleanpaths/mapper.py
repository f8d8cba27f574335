"""Deterministic mapping of site paths to clean, generic paths."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Dict, Iterable, Optional, Sequence

from .core.errors import MalformedReference, StoreUnavailable
from .core.models import DEFAULT_RULES, RewriteRule
from .core.storage import MappingStore
from .origin import OriginResolver, check_reference, is_local
from .rewriter import rewrite_css_paths, rewrite_html_paths

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StoreDiagnostics:
    failures: int = 0
    last_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failures == 0


class PathMapper:
    """Maps original paths to clean paths and rewrites documents with them.

    Every path is resolved through the mapping store first, so a path keeps
    the clean path it was given the first time it was seen until the store is
    cleared. Store failures never reach the caller: the rule-based result is
    returned and remembered locally for the rest of the run, and the failure
    is counted for :meth:`diagnostics`.
    """

    def __init__(
        self,
        store: MappingStore,
        rules: Iterable[RewriteRule] = DEFAULT_RULES,
        origin: OriginResolver | None = None,
    ) -> None:
        self.store = store
        self.rules: Sequence[RewriteRule] = tuple(rules)
        self.origin = origin
        self._fallback: Dict[str, str] = {}
        self._failures = 0
        self._last_error: Optional[str] = None
        self._lock = threading.Lock()

    def apply_rules(self, path: str) -> str:
        for rule in self.rules:
            if rule.applies_to(path):
                return rule.apply(path)
        return path

    def canonicalize(self, original_path: str) -> str:
        try:
            cached = self.store.find(original_path)
        except StoreUnavailable as exc:
            self._record_failure(exc)
            cached = None
        if cached is None:
            with self._lock:
                cached = self._fallback.get(original_path)
        if cached is not None:
            return cached

        clean_path = self.apply_rules(original_path)
        try:
            stored = self.store.upsert(original_path, clean_path)
        except StoreUnavailable as exc:
            self._record_failure(exc)
            stored = False
        else:
            if not stored:
                self._record_failure(StoreUnavailable(f"Mapping for {original_path!r} was not stored"))
        if not stored:
            with self._lock:
                clean_path = self._fallback.setdefault(original_path, clean_path)
        else:
            logger.debug("Mapped %s -> %s", original_path, clean_path)
        return clean_path

    def rewrite_reference(self, reference: str) -> str:
        check_reference(reference)
        if not is_local(reference, self.origin):
            return reference
        return self.canonicalize(reference)

    def rewrite_html(self, document: str) -> str:
        return rewrite_html_paths(document, self.rewrite_reference)

    def rewrite_css(self, stylesheet: str) -> str:
        return rewrite_css_paths(stylesheet, self.rewrite_reference)

    def file_destination(self, source_path: str | Path, root: str | Path) -> str:
        """Clean site path for a file that lives under ``root`` on disk."""
        try:
            relative = PurePath(source_path).relative_to(PurePath(root))
        except ValueError as exc:
            raise MalformedReference(str(source_path), f"not under {root}") from exc
        return self.canonicalize("/" + relative.as_posix())

    def clear_mapping_cache(self) -> None:
        self.store.clear_all()
        with self._lock:
            self._fallback.clear()
            self._failures = 0
            self._last_error = None
        logger.info("Path mapping cache cleared")

    def flush(self) -> None:
        """Persist pending store writes; a failure only shows up in diagnostics."""
        try:
            self.store.flush()
        except StoreUnavailable as exc:
            self._record_failure(exc)

    def diagnostics(self) -> StoreDiagnostics:
        with self._lock:
            return StoreDiagnostics(failures=self._failures, last_error=self._last_error)

    def _record_failure(self, exc: StoreUnavailable) -> None:
        logger.debug("Mapping store unavailable: %s", exc)
        with self._lock:
            self._failures += 1
            self._last_error = str(exc)
