"""HTTP fetching with retries and charset detection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import chardet
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger("programmable_downloader")

DEFAULT_USER_AGENT = "programmable-downloader/0.1"
DEFAULT_RETRIES = 10
DEFAULT_BACKOFF_FACTOR = 0.5
DEFAULT_TIMEOUT = 30.0
FALLBACK_ENCODING = "utf-8"
RETRY_STATUS_FORCELIST = (429, 500, 502, 503, 504)


@dataclass
class FetchResult:
    """Decoded page text alongside the raw response body."""

    url: str
    text: str
    content: bytes


def decode_body(data: bytes) -> str:
    """Decode raw bytes using the encoding chardet detects, falling back to UTF-8."""
    detected = chardet.detect(data) if data else None
    encoding = (detected or {}).get("encoding") or FALLBACK_ENCODING
    try:
        return data.decode(encoding, errors="replace")
    except LookupError:
        logger.warning("Encoding '%s' is not supported; falling back to %s", encoding, FALLBACK_ENCODING)
        return data.decode(FALLBACK_ENCODING, errors="replace")


class PageFetcher:
    """Thin wrapper around a retrying ``requests.Session``."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        retries: int = DEFAULT_RETRIES,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = user_agent
        self.session = session

        retry_strategy = Retry(
            total=retries,
            backoff_factor=backoff_factor,
            status_forcelist=RETRY_STATUS_FORCELIST,
            allowed_methods=["HEAD", "GET"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _get(self, url: str) -> requests.Response:
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response

    def fetch(self, url: str) -> FetchResult:
        """Fetch a page and decode its body."""
        logger.debug("Fetching page %s", url)
        response = self._get(url)
        content = response.content
        return FetchResult(url=url, text=decode_body(content), content=content)

    def fetch_bytes(self, url: str) -> bytes:
        """Fetch a file and return the raw body."""
        logger.debug("Fetching file %s", url)
        return self._get(url).content
