"""Data models used throughout the downloader pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .document import Document

MetadataValue = Union[str, List[str], Dict[str, str]]
Metadata = Dict[str, Any]

MatchHook = Callable[[str, Document], bool]
FileUrlModifier = Callable[[str, str], Union[str, List[str]]]
MetadataModifier = Callable[[str, MetadataValue], Any]
UrlHook = Callable[[str, Document], Optional[List[str]]]
MetadataHook = Callable[[str, Document], Optional[Mapping[str, Any]]]


@dataclass
class PageWorkItem:
    """A queued page together with the metadata inherited from its parent."""

    url: str
    metadata: Metadata = field(default_factory=dict)


@dataclass(frozen=True)
class EntrySelector:
    """Selector triple for key/value tables such as ``<dl>`` or spec sheets."""

    entry: str
    key: str
    value: str


MetadataSelector = Union[str, EntrySelector]


@dataclass
class AdditionalExtractor:
    """Custom hooks that run after the selector-based extraction."""

    file: Optional[UrlHook] = None
    page: Optional[UrlHook] = None
    metadata: Optional[MetadataHook] = None


@dataclass
class Extractor:
    """A matching-and-extraction rule bundle applied to every visited page.

    Every field is optional. Unset selectors produce nothing and unset
    hooks behave as identity or no-op. Subclasses may override the hook
    methods instead of passing callables.
    """

    description: Optional[str] = None
    is_matched: Optional[MatchHook] = None
    url_pattern: Optional[str] = None
    page_selector: Optional[str] = None
    file_selector: Optional[str] = None
    file_url_modifier: Optional[FileUrlModifier] = None
    metadata_selectors: Dict[str, MetadataSelector] = field(default_factory=dict)
    metadata_modifier: Optional[MetadataModifier] = None
    additional_extractor: AdditionalExtractor = field(default_factory=AdditionalExtractor)
    options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.metadata_selectors = {
            name: _coerce_selector(name, selector)
            for name, selector in (self.metadata_selectors or {}).items()
        }
        if isinstance(self.additional_extractor, Mapping):
            self.additional_extractor = AdditionalExtractor(**self.additional_extractor)
        elif self.additional_extractor is None:
            self.additional_extractor = AdditionalExtractor()
        self.options = dict(self.options or {})
        try:
            self._url_regex = re.compile(self.url_pattern) if self.url_pattern else None
        except re.error as exc:
            raise ValueError(f"Invalid url_pattern {self.url_pattern!r}: {exc}") from exc

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Extractor":
        if not isinstance(data, Mapping):
            raise ValueError(f"Extractor definition must be a mapping, got {type(data).__name__}")
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown extractor field(s): {', '.join(sorted(unknown))}")
        return cls(**dict(data))

    @property
    def label(self) -> str:
        return self.description or "<unnamed extractor>"

    def matches(self, url: str, doc: Document) -> bool:
        if self._url_regex is not None and not self._url_regex.search(url):
            return False
        if self.is_matched is None:
            return True
        return bool(self.is_matched(url, doc))

    def modify_file_url(self, file_url: str, page_url: str) -> List[str]:
        if self.file_url_modifier is None:
            return [file_url]
        result = self.file_url_modifier(file_url, page_url)
        if result is None:
            return []
        if isinstance(result, str):
            return [result]
        return list(result)

    def modify_metadata(self, key: str, value: MetadataValue) -> Any:
        if self.metadata_modifier is None:
            return value
        return self.metadata_modifier(key, value)

    def extra_file_urls(self, page_url: str, doc: Document) -> List[str]:
        if self.additional_extractor.file is None:
            return []
        return list(self.additional_extractor.file(page_url, doc) or [])

    def extra_page_urls(self, page_url: str, doc: Document) -> List[str]:
        if self.additional_extractor.page is None:
            return []
        return list(self.additional_extractor.page(page_url, doc) or [])

    def extra_metadata(self, page_url: str, doc: Document) -> Metadata:
        if self.additional_extractor.metadata is None:
            return {}
        return dict(self.additional_extractor.metadata(page_url, doc) or {})


def _coerce_selector(name: str, selector: Any) -> MetadataSelector:
    if isinstance(selector, (str, EntrySelector)):
        return selector
    if isinstance(selector, Mapping):
        missing = {"entry", "key", "value"} - set(selector)
        if missing:
            raise ValueError(
                f"Metadata selector '{name}' is missing: {', '.join(sorted(missing))}"
            )
        return EntrySelector(
            entry=selector["entry"], key=selector["key"], value=selector["value"]
        )
    raise ValueError(f"Unsupported metadata selector for '{name}': {selector!r}")
