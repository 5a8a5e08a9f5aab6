"""Save-directory resolution and file downloading."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Mapping

import requests

from .config import Options
from .fetcher import PageFetcher
from .utils import build_filename, render_template, sanitize_dirname

logger = logging.getLogger("programmable_downloader")

METADATA_FILENAME = "info.json"


@dataclass
class SaveReport:
    """Outcome counters for one batch of file downloads."""

    saved: int = 0
    skipped: int = 0
    failed: int = 0


def build_save_dir(options: Options, metadata: Mapping[str, Any]) -> Path:
    """Create the save directory for a page from the templated sub directories."""
    sub_dirs = [
        sanitize_dirname(render_template(template, metadata))
        for template in options.save_dir.sub_dirs
    ]
    save_dir = Path(options.save_dir.root).joinpath(*sub_dirs)
    save_dir.mkdir(parents=True, exist_ok=True)
    return save_dir


def write_metadata(save_dir: Path, metadata: Mapping[str, Any]) -> Path:
    output_path = save_dir / METADATA_FILENAME
    output_path.write_text(
        json.dumps(metadata, ensure_ascii=False, indent=2, default=str),
        encoding="utf-8",
    )
    return output_path


def save_files(
    file_urls: List[str],
    metadata: Mapping[str, Any],
    options: Options,
    fetcher: PageFetcher,
    dryrun: bool = False,
) -> SaveReport:
    """Write the metadata snapshot and download each file into the save directory.

    Failures for individual files are logged and never stop the batch.
    """
    save_dir = build_save_dir(options, metadata)
    logger.debug("Save directory: %s", save_dir)
    write_metadata(save_dir, metadata)

    report = SaveReport()
    for file_url in file_urls:
        try:
            filename = build_filename(file_url, options.file.name_level)
        except ValueError as exc:
            logger.error("Skipping %s: %s", file_url, exc)
            report.failed += 1
            continue
        destination = save_dir / filename

        if not options.file.overwrite and destination.exists():
            logger.info("Already downloaded, skipping %s", file_url)
            report.skipped += 1
            continue

        if dryrun:
            logger.info("Dry run: would download %s to %s", file_url, destination)
            report.skipped += 1
            continue

        try:
            data = fetcher.fetch_bytes(file_url)
        except requests.RequestException as exc:
            logger.error("Failed to fetch file %s: %s", file_url, exc)
            report.failed += 1
            continue

        if len(data) < options.file.min_size:
            logger.warning(
                "Skipping %s: %d bytes is below the minimum of %d bytes",
                file_url,
                len(data),
                options.file.min_size,
            )
            report.skipped += 1
            continue

        try:
            destination.write_bytes(data)
        except OSError as exc:
            logger.error("Failed to write file %s: %s", destination, exc)
            report.failed += 1
            continue

        logger.info("Saved %s", destination)
        report.saved += 1
    return report
