"""Run the path rewrite engine over an exported static site directory."""

from __future__ import annotations

import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, Literal, Optional

from .core.errors import MalformedReference, StoreUnavailable
from .mapper import PathMapper

logger = logging.getLogger(__name__)

HTML_EXTS_DEFAULT: set[str] = {".html", ".htm"}
CSS_EXTS_DEFAULT: set[str] = {".css"}

FileOutcome = Literal["html", "css", "unchanged", "error"]


@dataclass(slots=True)
class ExportOptions:
    clean_paths: bool = True
    clear_cache: bool = False
    relocate_files: bool = False
    ignore_hidden: bool = True
    workers: int = 1
    html_extensions: set[str] | None = None
    css_extensions: set[str] | None = None


@dataclass(slots=True)
class ExportResult:
    files_scanned: int = 0
    html_rewritten: int = 0
    css_rewritten: int = 0
    files_relocated: int = 0
    store_failures: int = 0
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def process_export(
    export_dir: str | Path,
    mapper: PathMapper,
    options: ExportOptions | None = None,
    progress_callback: Callable[[int, int], None] | None = None,
) -> ExportResult:
    options = options or ExportOptions()
    root = Path(export_dir)
    result = ExportResult()

    if not root.is_dir():
        result.errors.append(f"Export directory not found: {root}")
        return result

    if options.clear_cache:
        try:
            mapper.clear_mapping_cache()
        except StoreUnavailable as exc:
            result.errors.append(f"Failed to clear path mappings: {exc}")
            return result

    html_exts = {ext.lower() for ext in (options.html_extensions or HTML_EXTS_DEFAULT)}
    css_exts = {ext.lower() for ext in (options.css_extensions or CSS_EXTS_DEFAULT)}

    files = [(path, rel) for path, rel in _iter_folder(root, options, result) if path.is_file()]
    result.files_scanned = len(files)
    total = len(files) or 1

    if options.clean_paths:
        def rewrite(item: tuple[Path, str]) -> tuple[str, FileOutcome, Optional[str]]:
            path, rel = item
            ext = path.suffix.lower()
            if ext in html_exts:
                return rel, *_rewrite_file(path, mapper.rewrite_html, "html")
            if ext in css_exts:
                return rel, *_rewrite_file(path, mapper.rewrite_css, "css")
            return rel, "unchanged", None

        with ThreadPoolExecutor(max_workers=max(1, options.workers)) as pool:
            for index, (rel, outcome, error) in enumerate(pool.map(rewrite, files), start=1):
                if outcome == "html":
                    result.html_rewritten += 1
                elif outcome == "css":
                    result.css_rewritten += 1
                elif outcome == "error":
                    result.errors.append(f"Failed to rewrite {rel}: {error}")
                if progress_callback:
                    progress_callback(index, total)

    if options.relocate_files:
        for path, rel in files:
            _relocate(root, path, rel, mapper, result)

    mapper.flush()

    diagnostics = mapper.diagnostics()
    result.store_failures = diagnostics.failures
    if not diagnostics.ok:
        message = (
            f"Mapping store unavailable for {diagnostics.failures} lookups; "
            f"paths were mapped without caching (last error: {diagnostics.last_error})"
        )
        result.warnings.append(message)
        logger.warning(message)

    if progress_callback and not (options.clean_paths and files):
        progress_callback(total, total)

    logger.info(
        "Export processed: %d files, %d HTML and %d CSS rewritten, %d relocated",
        result.files_scanned,
        result.html_rewritten,
        result.css_rewritten,
        result.files_relocated,
    )
    return result


def _iter_folder(base: Path, options: ExportOptions, result: ExportResult) -> Iterator[tuple[Path, str]]:
    for path in sorted(base.rglob("*")):
        relative = path.relative_to(base)
        if options.ignore_hidden and any(part.startswith(".") for part in relative.parts):
            continue
        if path.is_symlink():
            try:
                resolved = path.resolve()
            except OSError:
                result.warnings.append(f"Skipped unreadable symlink: {path}")
                continue
            base_resolved = base.resolve()
            if base_resolved not in resolved.parents and resolved != base_resolved:
                result.warnings.append(f"Skipped symlink outside root: {path}")
                continue
        yield path, relative.as_posix()


def _rewrite_file(
    path: Path,
    rewrite: Callable[[str], str],
    kind: FileOutcome,
) -> tuple[FileOutcome, Optional[str]]:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return "error", str(exc)
    try:
        new_text = rewrite(text)
    except Exception as exc:  # errors stay per file
        logger.warning("Rewriting %s failed: %s", path, exc, exc_info=True)
        return "error", f"{type(exc).__name__}: {exc}"
    if new_text == text:
        return "unchanged", None
    try:
        path.write_text(new_text, encoding="utf-8")
    except OSError as exc:
        return "error", str(exc)
    logger.debug("Rewrote %s", path)
    return kind, None


def _relocate(root: Path, path: Path, rel: str, mapper: PathMapper, result: ExportResult) -> None:
    try:
        destination = mapper.file_destination(path, root)
    except MalformedReference as exc:
        result.warnings.append(f"Skipped relocation of {rel}: {exc}")
        return
    except Exception as exc:  # errors stay per file
        result.errors.append(f"Failed to map {rel}: {type(exc).__name__}: {exc}")
        return
    target = root / destination.lstrip("/")
    if target == path:
        return
    if target.exists():
        result.warnings.append(f"Not overwriting {destination} with {rel}")
        return
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(path), str(target))
    except OSError as exc:
        result.errors.append(f"Failed to move {rel} to {destination}: {exc}")
        return
    result.files_relocated += 1
    logger.debug("Moved %s -> %s", rel, destination)
