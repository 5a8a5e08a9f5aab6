"""Tests for the crawl engine."""

import json

import pytest

from programmable_downloader.crawler import Downloader, run_downloader
from programmable_downloader.models import AdditionalExtractor, Extractor

from conftest import FakeFetcher

P0 = "https://example.com/"
P1 = "https://example.com/p1.html"
P2 = "https://example.com/p2.html"
IMAGE = "https://example.com/img/cat.jpg"


def _page(body):
    return f"<html><body>{body}</body></html>"


class TestVisitation:
    """Tests for revisit suppression and queue order."""

    def test_url_discovered_many_times_fetched_once(self, download_root):
        fetcher = FakeFetcher(
            pages={
                P0: _page(f'<a href="{P1}">1</a><a href="{P2}">2</a><a href="{P1}">1 again</a>'),
                P1: _page(f'<a href="{P2}">2</a><a href="{P0}">home</a>'),
                P2: _page(f'<a href="{P1}">1</a>'),
            }
        )
        downloader = Downloader(
            [P0, P0],
            [Extractor(page_selector="a")],
            options={"save_dir": {"root": str(download_root)}},
            fetcher=fetcher,
        )
        downloader.run()
        assert fetcher.page_requests == [P0, P1, P2]
        assert downloader.visited == {P0, P1, P2}
        assert downloader.pending == 0

    def test_padded_link_deduplicated_with_clean_link(self, download_root):
        fetcher = FakeFetcher(
            pages={
                P0: _page('<a href="p1.html">1</a><a href=" p1.html ">1 padded</a>'),
                P1: _page(""),
            }
        )
        downloader = Downloader(
            [P0],
            [Extractor(page_selector="a")],
            options={"save_dir": {"root": str(download_root)}},
            fetcher=fetcher,
        )
        downloader.run()
        assert fetcher.page_requests == [P0, P1]
        assert downloader.visited == {P0, P1}

    def test_unmatched_page_is_still_visited(self, download_root):
        fetcher = FakeFetcher(pages={P0: _page("")})
        downloader = Downloader(
            [P0, P0],
            [Extractor(is_matched=lambda url, doc: False)],
            options={"save_dir": {"root": str(download_root)}},
            fetcher=fetcher,
        )
        downloader.run()
        assert fetcher.page_requests == [P0]
        assert downloader.stats.pages_unmatched == 1
        assert not download_root.exists()

    def test_failed_page_does_not_stop_crawl(self, download_root):
        fetcher = FakeFetcher(pages={P0: _page(f'<a href="{P1}">1</a><a href="{P2}">2</a>'), P2: _page("")})
        downloader = Downloader(
            [P0],
            [Extractor(page_selector="a")],
            options={"save_dir": {"root": str(download_root)}},
            fetcher=fetcher,
        )
        downloader.run()
        assert fetcher.page_requests == [P0, P1, P2]
        assert downloader.stats.pages_failed == 1
        assert downloader.visited == {P0, P1, P2}

    def test_hook_exception_abandons_page_only(self, download_root):
        def explode(url, doc):
            if url == P1:
                raise RuntimeError("boom")
            return True

        fetcher = FakeFetcher(pages={P0: _page(f'<a href="{P1}">1</a><a href="{P2}">2</a>'), P1: _page(""), P2: _page("")})
        downloader = Downloader(
            [P0],
            [Extractor(is_matched=explode, page_selector="a")],
            options={"save_dir": {"root": str(download_root)}},
            fetcher=fetcher,
        )
        downloader.run()
        assert downloader.stats.pages_failed == 1
        assert P2 in fetcher.page_requests

    def test_empty_queue_invariant(self, fake_fetcher):
        downloader = Downloader([], [], fetcher=fake_fetcher)
        with pytest.raises(RuntimeError):
            downloader._process_next(dryrun=False)


class TestMetadataAccumulation:
    """Tests for metadata inherited by discovered pages."""

    def test_child_inherits_parent_metadata(self, download_root):
        fetcher = FakeFetcher(
            pages={
                P0: _page(f'<h1>1</h1><a href="{P1}">child</a>'),
                P1: _page("<h2>2</h2>"),
            }
        )
        extractors = [
            Extractor(is_matched=lambda url, doc: url == P0, metadata_selectors={"a": "h1"}, page_selector="a"),
            Extractor(is_matched=lambda url, doc: url == P1, metadata_selectors={"b": "h2"}),
        ]
        run_downloader(
            [P0],
            extractors,
            options={"save_dir": {"root": str(download_root), "sub_dirs": ["{{url}}"]}},
            fetcher=fetcher,
        )
        info = json.loads((download_root / "https---example.com-p1.html" / "info.json").read_text(encoding="utf-8"))
        assert info == {"a": "1", "b": "2", "url": P1}

    def test_siblings_get_independent_copies(self, fake_fetcher, download_root):
        fake_fetcher.pages[P0] = _page(f'<span>x</span><span>y</span><a href="{P1}">1</a><a href="{P2}">2</a>')
        downloader = Downloader(
            [P0],
            [Extractor(metadata_selectors={"tags": "span"}, page_selector="a")],
            options={"save_dir": {"root": str(download_root)}},
            fetcher=fake_fetcher,
        )
        # Only the seed is processed so the discovered items stay queued.
        downloader._process_next(dryrun=False)

        first, second = list(downloader._queue)
        assert first.url == P1
        assert second.url == P2
        assert first.metadata == {"tags": ["x", "y"], "url": P0}
        first.metadata["tags"].append("z")
        first.metadata["new"] = 1
        assert second.metadata == {"tags": ["x", "y"], "url": P0}


class TestOptionPrecedence:
    """Tests for extractor-scoped option overrides."""

    def test_override_applies_only_to_its_extractor(self, download_root):
        (download_root / "a").mkdir(parents=True)
        (download_root / "b").mkdir(parents=True)
        (download_root / "a" / "cat.jpg").write_bytes(b"old")
        (download_root / "b" / "cat.jpg").write_bytes(b"old")

        fetcher = FakeFetcher(
            pages={
                P0: _page(f'<img src="{IMAGE}"><a href="{P1}">1</a>'),
                P1: _page(f'<img src="{IMAGE}">'),
            },
            files={IMAGE: b"new"},
        )
        extractors = [
            Extractor(
                is_matched=lambda url, doc: url == P0,
                file_selector="img",
                page_selector="a",
                options={"save_dir": {"sub_dirs": ["a"]}, "file": {"overwrite": True}},
            ),
            Extractor(
                is_matched=lambda url, doc: url == P1,
                file_selector="img",
                options={"save_dir": {"sub_dirs": ["b"]}},
            ),
        ]
        run_downloader(
            [P0],
            extractors,
            options={"save_dir": {"root": str(download_root)}, "file": {"overwrite": False}},
            fetcher=fetcher,
        )
        assert (download_root / "a" / "cat.jpg").read_bytes() == b"new"
        assert (download_root / "b" / "cat.jpg").read_bytes() == b"old"
        assert fetcher.file_requests == [IMAGE]


class TestEndToEnd:
    """Full crawl over a two-page site."""

    def _fetcher(self, files=None):
        return FakeFetcher(
            pages={
                P0: _page(f'<h1>Home</h1><img src="img/cat.jpg"><a href="p1.html">next</a>'),
                P1: _page('<h1>Child</h1><img src="img/cat.jpg">'),
            },
            files=files if files is not None else {IMAGE: b"meow" * 10},
        )

    def _extractors(self):
        return [
            Extractor(
                description="everything",
                is_matched=lambda url, doc: True,
                page_selector="a",
                file_selector="img",
                metadata_selectors={"title": "h1"},
            )
        ]

    def test_visits_each_page_once_and_downloads(self, download_root):
        fetcher = self._fetcher()
        stats = run_downloader(
            [P0],
            self._extractors(),
            options={"save_dir": {"root": str(download_root), "sub_dirs": ["{{title}}"]}},
            fetcher=fetcher,
        )
        assert fetcher.page_requests == [P0, P1]
        assert stats.pages_visited == 2
        for title in ("Home", "Child"):
            assert (download_root / title / "info.json").exists()
            assert (download_root / title / "cat.jpg").read_bytes() == b"meow" * 10
        info = json.loads((download_root / "Child" / "info.json").read_text(encoding="utf-8"))
        assert info == {"title": "Child", "url": P1}
        assert stats.files_saved == 2

    def test_existing_image_not_downloaded_again(self, download_root):
        fetcher = self._fetcher()
        options = {"save_dir": {"root": str(download_root)}}
        run_downloader([P0], self._extractors(), options=options, fetcher=fetcher)
        assert fetcher.file_requests == [IMAGE]

        second = self._fetcher()
        stats = run_downloader([P0], self._extractors(), options=options, fetcher=second)
        assert second.file_requests == []
        assert stats.files_skipped == 2

    def test_dryrun_writes_no_files(self, download_root):
        fetcher = self._fetcher()
        Downloader(
            [P0],
            self._extractors(),
            options={"save_dir": {"root": str(download_root)}},
            fetcher=fetcher,
        ).run(dryrun=True)
        assert fetcher.file_requests == []
        assert not (download_root / "cat.jpg").exists()
        assert (download_root / "info.json").exists()

    def test_undersized_file_skipped_and_crawl_continues(self, download_root):
        fetcher = self._fetcher(files={IMAGE: b"x" * 10})
        stats = run_downloader(
            [P0],
            self._extractors(),
            options={"save_dir": {"root": str(download_root), "sub_dirs": ["{{title}}"]}, "file": {"min_size": 1000}},
            fetcher=fetcher,
        )
        assert fetcher.page_requests == [P0, P1]
        assert not (download_root / "Home" / "cat.jpg").exists()
        assert stats.files_skipped == 2
        assert stats.pages_failed == 0

    def test_additional_page_hook_extends_crawl(self, download_root):
        fetcher = self._fetcher()
        fetcher.pages[P2] = _page("<h1>Extra</h1>")
        extractor = Extractor(
            is_matched=lambda url, doc: url == P0,
            additional_extractor=AdditionalExtractor(page=lambda url, doc: ["p2.html"]),
        )
        run_downloader([P0], [extractor], options={"save_dir": {"root": str(download_root)}}, fetcher=fetcher)
        assert fetcher.page_requests == [P0, P2]

    def test_extractors_accept_plain_mappings(self, download_root):
        fetcher = self._fetcher()
        stats = run_downloader(
            [P0],
            [{"url_pattern": r"/$", "file_selector": "img"}],
            options={"save_dir": {"root": str(download_root)}},
            fetcher=fetcher,
        )
        assert stats.files_saved == 1
        assert fetcher.page_requests == [P0]
