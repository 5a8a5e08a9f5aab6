"""Command-line entry point for the programmable downloader."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Sequence

import yaml

from .config import Options, load_crawl_file, merge_options
from .crawler import Downloader
from .fetcher import DEFAULT_RETRIES, DEFAULT_TIMEOUT, PageFetcher

logger = logging.getLogger("programmable_downloader.cli")

EXIT_CONFIG_ERROR = 2


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Crawl pages with selector-based extractors and download the files they reference.",
    )
    parser.add_argument(
        "crawl_file",
        type=Path,
        help="Python module or YAML file defining pages, extractors and options",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Root directory for downloads (overrides the crawl file)",
    )
    parser.add_argument(
        "--overwrite",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Download files even if they already exist (--no-overwrite keeps existing files)",
    )
    parser.add_argument(
        "--min-size",
        type=int,
        default=None,
        help="Discard downloaded files smaller than this many bytes",
    )
    parser.add_argument(
        "--name-level",
        type=int,
        default=None,
        help="Number of trailing URL segments used for filenames (0 keeps all)",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=DEFAULT_RETRIES,
        help="Retries per HTTP request on connection errors and 5xx responses",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help="HTTP request timeout in seconds",
    )
    parser.add_argument(
        "--dryrun",
        action="store_true",
        help="Crawl and write metadata, but do not download files",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args(argv)


def _option_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if args.output is not None:
        overrides.setdefault("save_dir", {})["root"] = str(args.output)
    if args.overwrite is not None:
        overrides.setdefault("file", {})["overwrite"] = args.overwrite
    if args.min_size is not None:
        overrides.setdefault("file", {})["min_size"] = args.min_size
    if args.name_level is not None:
        overrides.setdefault("file", {})["name_level"] = args.name_level
    return overrides


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    try:
        crawl = load_crawl_file(args.crawl_file)
        options = Options.from_mapping(merge_options(crawl.options, _option_overrides(args)))
    except (FileNotFoundError, ValueError, yaml.YAMLError) as exc:
        logger.error("Cannot load %s: %s", args.crawl_file, exc)
        return EXIT_CONFIG_ERROR

    if not crawl.extractors:
        logger.warning("%s defines no extractors; pages will be visited but nothing extracted", args.crawl_file)

    fetcher = PageFetcher(retries=args.retries, timeout=args.timeout)
    downloader = Downloader(crawl.pages, crawl.extractors, options=options, fetcher=fetcher)
    logger.info(
        "Crawling %d seed page(s) with %d extractor(s) into %s%s",
        len(crawl.pages),
        len(downloader.extractors),
        options.save_dir.root,
        " (dry run)" if args.dryrun else "",
    )
    downloader.run(dryrun=args.dryrun)
    return 0


if __name__ == "__main__":
    sys.exit(main())
