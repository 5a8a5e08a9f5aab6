"""High-level orchestration for walking pages and applying extractors."""

from __future__ import annotations

import copy
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Iterable, List, Mapping, Optional, Set, Union

from .config import Options, resolve_options
from .content import extract_file_urls, extract_metadata, extract_page_urls
from .document import load
from .fetcher import PageFetcher
from .files import save_files
from .models import Extractor, PageWorkItem

logger = logging.getLogger("programmable_downloader")

ExtractorLike = Union[Extractor, Mapping[str, Any]]


@dataclass
class CrawlStats:
    """Counters collected over a run."""

    pages_visited: int = 0
    pages_failed: int = 0
    pages_unmatched: int = 0
    files_saved: int = 0
    files_skipped: int = 0
    files_failed: int = 0


class Downloader:
    """Breadth-first crawler that saves files and metadata for matched pages."""

    def __init__(
        self,
        pages: Iterable[str],
        extractors: Iterable[ExtractorLike],
        options: Optional[Union[Options, Mapping[str, Any]]] = None,
        fetcher: Optional[PageFetcher] = None,
    ) -> None:
        self._queue: Deque[PageWorkItem] = deque(PageWorkItem(url=url) for url in pages)
        self.visited: Set[str] = set()
        self.extractors: List[Extractor] = [
            item if isinstance(item, Extractor) else Extractor.from_mapping(item)
            for item in extractors
        ]
        if isinstance(options, Options):
            self.options = options
        else:
            self.options = Options.from_mapping(options)
        self.fetcher = fetcher or PageFetcher()
        self.stats = CrawlStats()

    @property
    def pending(self) -> int:
        return len(self._queue)

    def run(self, dryrun: bool = False) -> None:
        """Drain the work queue one page at a time."""
        start = time.perf_counter()
        while self._queue:
            self._process_next(dryrun)
        elapsed = time.perf_counter() - start
        logger.info(
            "Finished in %.2fs (%d pages visited, %d failed, %d unmatched; "
            "files: %d saved, %d skipped, %d failed)",
            elapsed,
            self.stats.pages_visited,
            self.stats.pages_failed,
            self.stats.pages_unmatched,
            self.stats.files_saved,
            self.stats.files_skipped,
            self.stats.files_failed,
        )

    def _process_next(self, dryrun: bool) -> None:
        if not self._queue:
            raise RuntimeError("Work queue is empty")
        item = self._queue.popleft()
        try:
            self._process_page(item, dryrun)
        except Exception:  # pylint: disable=broad-except
            self.stats.pages_failed += 1
            logger.exception("Failed to process %s", item.url)

    def _process_page(self, item: PageWorkItem, dryrun: bool) -> None:
        url = item.url
        metadata = item.metadata
        metadata["url"] = url
        logger.debug("Processing %s with metadata %s", url, metadata)

        if url in self.visited:
            logger.debug("Already processed %s, skipping", url)
            return
        self.visited.add(url)
        self.stats.pages_visited += 1

        logger.info("Loading %s", url)
        doc = load(self.fetcher.fetch(url).text)

        matched = False
        for extractor in self.extractors:
            if not extractor.matches(url, doc):
                continue
            matched = True
            logger.debug("Matched extractor: %s", extractor.label)

            metadata = {**metadata, **extract_metadata(doc, extractor, url)}

            file_urls = extract_file_urls(doc, extractor, url)
            logger.debug("Extracted %d file URL(s): %s", len(file_urls), file_urls)
            report = save_files(
                file_urls,
                metadata,
                resolve_options(self.options, extractor.options),
                self.fetcher,
                dryrun=dryrun,
            )
            self.stats.files_saved += report.saved
            self.stats.files_skipped += report.skipped
            self.stats.files_failed += report.failed

            page_urls = extract_page_urls(doc, extractor, url)
            logger.debug("Extracted %d page URL(s): %s", len(page_urls), page_urls)
            self._queue.extend(
                PageWorkItem(url=page_url, metadata=copy.deepcopy(metadata))
                for page_url in page_urls
            )

        if not matched:
            self.stats.pages_unmatched += 1
            logger.warning("No extractor matched %s", url)


def run_downloader(
    pages: Iterable[str],
    extractors: Iterable[ExtractorLike],
    options: Optional[Union[Options, Mapping[str, Any]]] = None,
    dryrun: bool = False,
    fetcher: Optional[PageFetcher] = None,
) -> CrawlStats:
    """Build a :class:`Downloader`, run it to completion and return its stats."""
    downloader = Downloader(pages, extractors, options=options, fetcher=fetcher)
    downloader.run(dryrun=dryrun)
    return downloader.stats
