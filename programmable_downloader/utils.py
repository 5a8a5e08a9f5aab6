"""Utility helpers for templating, directory names and filenames."""

from __future__ import annotations

import json
import re
from typing import Any, Mapping
from urllib.parse import unquote

TEMPLATE_PATTERN = re.compile(r"\{\{\s*(.+?)\s*\}\}")
UNSAFE_DIRNAME_PATTERN = re.compile(r'[/%*:|"<>]')
SCHEME_PATTERN = re.compile(r"^https?://")
QUERY_PATTERN = re.compile(r"\?.*$")
# Escapes for ; / ? : @ & = + $ , # stay encoded when a URL is decoded.
RESERVED_ESCAPE_PATTERN = re.compile(r"(%(?:2[346BCFbcf]|3[ABDFabdf]|40))")


def stringify(value: Any) -> str:
    """Render a metadata value for use inside a path."""
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, (list, tuple)):
        return ",".join(stringify(item) for item in value)
    return str(value)


def render_template(template: str, metadata: Mapping[str, Any]) -> str:
    """Substitute ``{{key}}`` placeholders with metadata values."""

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key not in metadata:
            raise KeyError(f"Template '{template}' references unknown metadata field '{key}'")
        return stringify(metadata[key])

    return TEMPLATE_PATTERN.sub(_replace, template)


def sanitize_dirname(value: str) -> str:
    return UNSAFE_DIRNAME_PATTERN.sub("-", value)


def decode_uri(url: str) -> str:
    """Percent-decode a URL, leaving escaped reserved characters untouched."""
    return "".join(
        part if RESERVED_ESCAPE_PATTERN.fullmatch(part) else unquote(part)
        for part in RESERVED_ESCAPE_PATTERN.split(url)
    )


def build_filename(file_url: str, name_level: int) -> str:
    """Derive a filename from the last ``name_level`` segments of a URL.

    ``https://ex.com/a/b/c.jpg?x=1`` becomes ``b_c.jpg`` with a level of 2
    and ``ex.com_a_b_c.jpg`` with a level of 0 (keep every segment).
    """
    domain_and_path = QUERY_PATTERN.sub("", SCHEME_PATTERN.sub("", decode_uri(file_url)))
    segments = domain_and_path.split("/")
    if name_level > 0:
        segments = segments[-name_level:]
    filename = "_".join(segments)
    if not filename:
        raise ValueError(f"Failed to generate a filename for {file_url}")
    return filename
