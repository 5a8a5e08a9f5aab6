"""CSS-selector queries over parsed HTML documents."""

from __future__ import annotations

from typing import List, Optional, Union

from bs4 import BeautifulSoup, Tag


class Element:
    """A matched element exposing attribute and text access."""

    def __init__(self, tag: Tag) -> None:
        self.tag = tag

    def attr(self, name: str) -> Optional[str]:
        value = self.tag.get(name)
        if value is None:
            return None
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    def text(self) -> str:
        return self.tag.get_text()

    def query(self, selector: str) -> List["Element"]:
        return [Element(tag) for tag in self.tag.select(selector)]

    def __repr__(self) -> str:
        return f"Element(<{self.tag.name}>)"


class Document:
    """Queryable handle for a parsed page, passed to extractor hooks."""

    def __init__(self, soup: BeautifulSoup) -> None:
        self.soup = soup

    def query(self, selector: Optional[str]) -> List[Element]:
        """Return all elements matching ``selector`` in document order."""
        if not selector:
            return []
        return [Element(tag) for tag in self.soup.select(selector)]


def load(html: Union[str, bytes]) -> Document:
    """Parse HTML text into a :class:`Document`."""
    return Document(BeautifulSoup(html, "html.parser"))
