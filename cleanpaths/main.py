import argparse
import logging
import sys
from pathlib import Path

from .config import STORE_KINDS, EngineConfig, build_mapper, load_config
from .core.errors import StoreUnavailable
from .export import CSS_EXTS_DEFAULT, ExportOptions, process_export

logger = logging.getLogger("cleanpaths")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cleanpaths",
        description="Rewrite site paths in generated HTML/CSS to clean, stable paths.",
    )
    parser.add_argument("--config", type=Path, help="JSON engine configuration file")
    parser.add_argument("--base-url", help="base URL of the site being processed")
    parser.add_argument("--store", choices=STORE_KINDS, help="mapping store backend")
    parser.add_argument("--store-path", help="database or JSON file for the mapping store")
    parser.add_argument("-v", "--verbose", action="store_true", help="log per-reference details")
    sub = parser.add_subparsers(dest="command", required=True)

    export = sub.add_parser("export", help="rewrite every HTML/CSS file in an export directory")
    export.add_argument("directory", type=Path)
    export.add_argument("--clear", action="store_true", help="clear stored mappings first")
    export.add_argument("--relocate", action="store_true", help="move files to their clean paths")
    export.add_argument("--workers", type=int, default=1)

    mapping = sub.add_parser("map", help="print the clean path for each given path")
    mapping.add_argument("paths", nargs="+")

    rewrite = sub.add_parser("rewrite", help="rewrite a single HTML or CSS file")
    rewrite.add_argument("file", type=Path)
    rewrite.add_argument("-o", "--output", type=Path)

    sub.add_parser("clear", help="delete all stored mappings")

    stats = sub.add_parser("stats", help="show the number of stored mappings")
    stats.add_argument("--list", action="store_true", help="print every stored mapping")
    return parser


def _load(args: argparse.Namespace) -> EngineConfig:
    config = load_config(args.config) if args.config else EngineConfig()
    if args.base_url is not None:
        config.base_url = args.base_url
    if args.store is not None:
        config.store = args.store
    if args.store_path is not None:
        config.store_path = args.store_path
    return config


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        mapper = build_mapper(_load(args))
    except (OSError, ValueError, StoreUnavailable) as exc:
        logger.error("Cannot set up the rewrite engine: %s", exc)
        return 2

    if args.command == "export":
        options = ExportOptions(
            clear_cache=args.clear,
            relocate_files=args.relocate,
            workers=args.workers,
        )
        result = process_export(args.directory, mapper, options)
        for warning in result.warnings:
            print(f"warning: {warning}", file=sys.stderr)
        for error in result.errors:
            print(f"error: {error}", file=sys.stderr)
        print(
            f"{result.files_scanned} files scanned, {result.html_rewritten} HTML and "
            f"{result.css_rewritten} CSS rewritten, {result.files_relocated} relocated"
        )
        return 1 if result.errors else 0

    if args.command == "map":
        for path in args.paths:
            print(f"{path} -> {mapper.canonicalize(path)}")
        mapper.flush()
        return 0

    if args.command == "rewrite":
        try:
            text = args.file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Cannot read %s: %s", args.file, exc)
            return 1
        if args.file.suffix.lower() in CSS_EXTS_DEFAULT:
            text = mapper.rewrite_css(text)
        else:
            text = mapper.rewrite_html(text)
        mapper.flush()
        if args.output:
            args.output.write_text(text, encoding="utf-8")
        else:
            sys.stdout.write(text)
        return 0

    try:
        if args.command == "clear":
            mapper.clear_mapping_cache()
            print("Path mappings cleared")
        elif args.command == "stats":
            if args.list:
                for record in mapper.store.records():
                    print(f"{record.original_path} -> {record.clean_path}")
            print(f"{mapper.store.count()} path mappings stored")
    except StoreUnavailable as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
