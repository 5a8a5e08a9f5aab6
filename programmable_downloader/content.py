"""Metadata and URL extraction driven by an extractor's selectors and hooks."""

from __future__ import annotations

from typing import Dict, List, Optional
from urllib.parse import urljoin

from .document import Document, Element
from .models import EntrySelector, Extractor, Metadata, MetadataValue

FILE_URL_ATTRIBUTES = ("href", "src", "data-src")


def _joined_text(elements: List[Element]) -> str:
    return "".join(element.text() for element in elements).strip()


def _select_texts(doc: Document, selector: str) -> MetadataValue:
    values = [element.text().strip() for element in doc.query(selector)]
    if len(values) == 1:
        return values[0]
    return values


def _select_entries(doc: Document, selector: EntrySelector) -> Dict[str, str]:
    entries: Dict[str, str] = {}
    for entry in doc.query(selector.entry):
        key = _joined_text(entry.query(selector.key))
        value = _joined_text(entry.query(selector.value))
        if not key and not value:
            continue
        entries[key] = value
    return entries


def extract_metadata(doc: Document, extractor: Extractor, page_url: str) -> Metadata:
    """Apply the extractor's metadata selectors and hooks to a document.

    A string selector matching exactly one element yields that element's
    text; zero or several matches yield a list. Entry selectors yield a
    key/value mapping. The result is always a new dict.
    """
    metadata: Metadata = {}
    for field_name, selector in extractor.metadata_selectors.items():
        raw: MetadataValue
        if isinstance(selector, EntrySelector):
            raw = _select_entries(doc, selector)
        else:
            raw = _select_texts(doc, selector)
        metadata[field_name] = extractor.modify_metadata(field_name, raw)

    metadata.update(extractor.extra_metadata(page_url, doc))
    return metadata


def _resolve(page_url: str, value: str) -> str:
    return urljoin(page_url, value.strip())


def _element_file_urls(element: Element) -> List[str]:
    urls = []
    for name in FILE_URL_ATTRIBUTES:
        value: Optional[str] = element.attr(name)
        if value is None or value.strip().startswith("data:"):
            continue
        urls.append(value)
    return urls


def extract_file_urls(doc: Document, extractor: Extractor, page_url: str) -> List[str]:
    """Collect absolute file URLs from ``href``, ``src`` and ``data-src`` attributes."""
    urls: List[str] = []
    for element in doc.query(extractor.file_selector):
        for raw in _element_file_urls(element):
            urls.extend(extractor.modify_file_url(_resolve(page_url, raw), page_url))

    urls.extend(_resolve(page_url, url) for url in extractor.extra_file_urls(page_url, doc))
    return urls


def extract_page_urls(doc: Document, extractor: Extractor, page_url: str) -> List[str]:
    """Collect absolute URLs of pages to crawl next."""
    urls = [
        _resolve(page_url, href)
        for href in (element.attr("href") for element in doc.query(extractor.page_selector))
        if href is not None
    ]
    urls.extend(_resolve(page_url, url) for url in extractor.extra_page_urls(page_url, doc))
    return urls
