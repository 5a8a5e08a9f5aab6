"""Configuration objects, option resolution and crawl-file loading."""

from __future__ import annotations

import copy
import importlib.util
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import yaml

from .models import Extractor

DEFAULT_SAVE_ROOT = "./download"
DEFAULT_NAME_LEVEL = 1

DEFAULT_OPTIONS: Dict[str, Dict[str, Any]] = {
    "save_dir": {
        "root": DEFAULT_SAVE_ROOT,
        "sub_dirs": [],
    },
    "file": {
        "name_level": DEFAULT_NAME_LEVEL,
        "overwrite": False,
        "min_size": 0,
    },
}


@dataclass(frozen=True)
class SaveDirOptions:
    """Where downloaded files and metadata snapshots go."""

    root: str = DEFAULT_SAVE_ROOT
    sub_dirs: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FileOptions:
    """Per-file naming and download rules."""

    name_level: int = DEFAULT_NAME_LEVEL
    overwrite: bool = False
    min_size: int = 0


@dataclass(frozen=True)
class Options:
    """Top-level settings that control where and how files are saved."""

    save_dir: SaveDirOptions = field(default_factory=SaveDirOptions)
    file: FileOptions = field(default_factory=FileOptions)

    @classmethod
    def from_mapping(cls, overrides: Optional[Mapping[str, Any]] = None) -> "Options":
        """Merge a partial options mapping over the defaults and build Options."""
        merged = merge_options(DEFAULT_OPTIONS, overrides or {})
        unknown = set(merged) - set(DEFAULT_OPTIONS)
        if unknown:
            raise ValueError(f"Unknown option group(s): {', '.join(sorted(unknown))}")
        for group, defaults in DEFAULT_OPTIONS.items():
            if not isinstance(merged[group], Mapping):
                raise ValueError(f"Option group '{group}' must be a mapping")
            unknown = set(merged[group]) - set(defaults)
            if unknown:
                raise ValueError(
                    f"Unknown option(s) in '{group}': {', '.join(sorted(unknown))}"
                )
        save_dir = merged["save_dir"]
        file_opts = merged["file"]
        return cls(
            save_dir=SaveDirOptions(
                root=str(save_dir["root"]),
                sub_dirs=_as_tuple(save_dir["sub_dirs"]),
            ),
            file=FileOptions(
                name_level=int(file_opts["name_level"]),
                overwrite=_as_bool(file_opts["overwrite"], "file.overwrite"),
                min_size=int(file_opts["min_size"]),
            ),
        )

    def lookup(self, path: Sequence[str]) -> Any:
        value: Any = self
        for key in path:
            value = getattr(value, key)
        return value


def _as_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Option '{name}' must be true or false, got {value!r}")
    return value


def _as_tuple(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    return tuple(str(item) for item in value)


def merge_options(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep-merge ``override`` into a copy of ``base``.

    Nested mappings are merged key by key. Every other value, lists
    included, is replaced wholesale by the override.
    """
    merged: Dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_options(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _dig(source: Optional[Mapping[str, Any]], path: Sequence[str]) -> Any:
    node: Any = source
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def resolve_option(
    options: Options,
    path: Sequence[str],
    overrides: Optional[Mapping[str, Any]] = None,
) -> Any:
    """Look up ``path`` in the extractor overrides, falling back to ``options``."""
    value = _dig(overrides, path)
    if value is None:
        return options.lookup(path)
    return value


def resolve_options(options: Options, overrides: Optional[Mapping[str, Any]] = None) -> Options:
    """Return ``options`` with every leaf shadowed by the extractor overrides."""
    if not overrides:
        return options
    return Options(
        save_dir=replace(
            options.save_dir,
            root=str(resolve_option(options, ("save_dir", "root"), overrides)),
            sub_dirs=_as_tuple(resolve_option(options, ("save_dir", "sub_dirs"), overrides)),
        ),
        file=replace(
            options.file,
            name_level=int(resolve_option(options, ("file", "name_level"), overrides)),
            overwrite=_as_bool(
                resolve_option(options, ("file", "overwrite"), overrides), "file.overwrite"
            ),
            min_size=int(resolve_option(options, ("file", "min_size"), overrides)),
        ),
    )


@dataclass
class CrawlSpec:
    """Seed pages, extractors and options loaded from a crawl file."""

    pages: List[str]
    extractors: List[Extractor]
    options: Dict[str, Any] = field(default_factory=dict)


def _load_python_module(path: Path) -> Dict[str, Any]:
    module_spec = importlib.util.spec_from_file_location(f"_crawl_{path.stem}", path)
    if module_spec is None or module_spec.loader is None:
        raise ValueError(f"Cannot import crawl file: {path}")
    module = importlib.util.module_from_spec(module_spec)
    try:
        module_spec.loader.exec_module(module)
    except Exception as exc:  # pylint: disable=broad-except
        raise ValueError(f"Failed to import crawl file {path}: {exc}") from exc
    return {
        "pages": getattr(module, "PAGES", None),
        "extractors": getattr(module, "EXTRACTORS", None),
        "options": getattr(module, "OPTIONS", None),
    }


def _load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Crawl file must contain a mapping: {path}")
    return dict(data)


def load_crawl_file(path: Path) -> CrawlSpec:
    """Load pages, extractors and options from a Python module or YAML file."""
    path = Path(path).expanduser()
    if not path.is_file():
        raise FileNotFoundError(f"Crawl file does not exist: {path}")

    suffix = path.suffix.lower()
    if suffix == ".py":
        data = _load_python_module(path)
    elif suffix in (".yaml", ".yml"):
        data = _load_yaml(path)
    else:
        raise ValueError(f"Unsupported crawl file format: {path}")

    pages = data.get("pages")
    if not pages:
        raise ValueError(f"Crawl file defines no seed pages: {path}")
    if isinstance(pages, str):
        pages = [pages]

    extractors = [
        item if isinstance(item, Extractor) else Extractor.from_mapping(item)
        for item in data.get("extractors") or []
    ]
    return CrawlSpec(
        pages=[str(page) for page in pages],
        extractors=extractors,
        options=dict(data.get("options") or {}),
    )
