"""Shared fixtures: an in-memory fetcher standing in for HTTP."""

from typing import Dict, List, Optional

import pytest
import requests

from programmable_downloader.fetcher import FetchResult


class FakeFetcher:
    """Serves canned pages and files, recording every request."""

    def __init__(
        self,
        pages: Optional[Dict[str, str]] = None,
        files: Optional[Dict[str, bytes]] = None,
    ):
        self.pages = dict(pages or {})
        self.files = dict(files or {})
        self.page_requests: List[str] = []
        self.file_requests: List[str] = []

    def fetch(self, url: str) -> FetchResult:
        self.page_requests.append(url)
        if url not in self.pages:
            raise requests.HTTPError(f"404 Client Error: Not Found for url: {url}")
        text = self.pages[url]
        return FetchResult(url=url, text=text, content=text.encode("utf-8"))

    def fetch_bytes(self, url: str) -> bytes:
        self.file_requests.append(url)
        if url not in self.files:
            raise requests.HTTPError(f"404 Client Error: Not Found for url: {url}")
        return self.files[url]


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def download_root(tmp_path):
    return tmp_path / "download"
