#!/usr/bin/env python3
"""
Tests for the post_walker module.
"""

import os
import shutil
import tempfile
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from post_archiver.core.post_walker import PostWalker, WalkerState, normalize_year
from post_archiver.sources import patreon
from post_archiver.utils.visited_ledger import VISITED_FILE, VisitedLedger

FEED_URL = "https://www.patreon.com/c/creator/posts"


class PassThroughGuard:
    """Guard that never sees a challenge."""

    async def run(self, page, operation):
        return await operation()


def make_source(pages, accumulates=False, load_more=None):
    """Build a site whose feed lists `pages` one after another."""
    source = MagicMock()
    source.is_feed_url = MagicMock(side_effect=lambda url: url.endswith("/posts"))
    source.validate = MagicMock()
    source.apply_filter = AsyncMock()
    source.collect_post_urls = AsyncMock(side_effect=pages)
    source.load_more = load_more or AsyncMock(return_value=False)
    source.pagination_accumulates = accumulates
    source.pinned_post_tolerance = 2
    return source


@patch("post_archiver.core.post_walker.random_mouse_movements", new_callable=AsyncMock)
@patch("post_archiver.core.post_walker.random_scroll", new_callable=AsyncMock)
@patch("post_archiver.core.post_walker.wait_for_delay", new_callable=AsyncMock)
class TestPostWalker(unittest.IsolatedAsyncioTestCase):
    """Test cases for the PostWalker class."""

    async def asyncSetUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.ledger = VisitedLedger(self.temp_dir)
        self.ledger.load()

        self.page = MagicMock()
        self.page.goto = AsyncMock()
        self.page.url = FEED_URL + "?cursor=2"
        self.post_page = MagicMock()
        self.context = MagicMock()
        self.context.new_page = AsyncMock(return_value=self.post_page)

        self.extractor = MagicMock()
        self.extractor.locked_count = 0
        self.extractor.save_post = AsyncMock(side_effect=lambda url, out_dir, page: page)
        self.operator = AsyncMock()

    async def asyncTearDown(self):
        self.ledger.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_walker(self, source, update_mode=False):
        return PostWalker(
            self.page, self.context, source, self.extractor, PassThroughGuard(), self.ledger,
            self.temp_dir, update_mode=update_mode, wait_for_operator=self.operator
        )

    def ledger_lines(self):
        with open(os.path.join(self.temp_dir, VISITED_FILE), "r", encoding="utf-8") as f:
            return f.read().splitlines()

    async def test_skips_visited_posts(self, *mocks):
        """Only the unvisited post is saved and every post ends up in the ledger."""
        self.ledger.mark_visited("https://www.patreon.com/posts/a-1")
        self.ledger.mark_visited("https://www.patreon.com/posts/b-2")
        source = make_source([[
            "https://www.patreon.com/posts/a-1",
            "https://www.patreon.com/posts/b-2",
            "https://www.patreon.com/posts/c-3",
        ]])
        walker = self.make_walker(source)

        out_dir = await walker.walk(FEED_URL)

        self.assertEqual(out_dir, os.path.abspath(self.temp_dir))
        self.extractor.save_post.assert_awaited_once_with(
            "https://www.patreon.com/posts/c-3", os.path.abspath(self.temp_dir), self.post_page
        )
        self.assertEqual(len(self.ledger_lines()), 3)
        self.assertEqual(walker.opened, 1)
        self.assertEqual(walker.state, WalkerState.EXHAUSTED)
        self.page.goto.assert_awaited_once()

    async def test_relative_hrefs_are_resolved(self, *mocks):
        source = make_source([["/posts/a-1"]])
        walker = self.make_walker(source)

        await walker.walk(FEED_URL)

        self.assertEqual(self.ledger_lines(), ["https://www.patreon.com/posts/a-1"])

    async def test_post_page_is_reused(self, *mocks):
        source = make_source([["/posts/a-1", "/posts/b-2"]])
        walker = self.make_walker(source)

        await walker.walk(FEED_URL)

        self.context.new_page.assert_awaited_once()
        self.assertEqual(self.extractor.save_post.await_count, 2)

    async def test_year_directory(self, *mocks):
        source = make_source([["/posts/a-1"]])
        walker = self.make_walker(source)

        out_dir = await walker.walk(FEED_URL, "2024")

        self.assertEqual(out_dir, os.path.join(os.path.abspath(self.temp_dir), "2024"))
        self.assertTrue(os.path.isdir(out_dir))
        source.apply_filter.assert_awaited_once_with(self.page, "2024")

    async def test_update_mode_stops_after_pinned_tolerance(self, *mocks):
        visited = [f"https://www.patreon.com/posts/p-{i}" for i in range(5)]
        for url in visited:
            self.ledger.mark_visited(url)
        source = make_source([visited + ["https://www.patreon.com/posts/new-9"]])
        walker = self.make_walker(source, update_mode=True)

        await walker.walk(FEED_URL)

        self.extractor.save_post.assert_not_awaited()
        source.load_more.assert_not_awaited()

    async def test_update_mode_tolerates_pinned_posts(self, *mocks):
        pinned = ["https://www.patreon.com/posts/pin-1", "https://www.patreon.com/posts/pin-2"]
        for url in pinned:
            self.ledger.mark_visited(url)
        source = make_source([pinned + ["https://www.patreon.com/posts/new-3"]])
        walker = self.make_walker(source, update_mode=True)

        await walker.walk(FEED_URL)

        self.extractor.save_post.assert_awaited_once()
        source.load_more.assert_awaited_once()

    async def test_update_mode_ignores_posts_saved_this_walk(self, *mocks):
        """Re-listed posts saved earlier in the walk do not end update mode."""
        self.ledger.mark_visited("https://www.patreon.com/posts/old-1")
        first = [f"https://www.patreon.com/posts/new-{i}" for i in range(10, 14)]
        second = first + [
            "https://www.patreon.com/posts/new-14",
            "https://www.patreon.com/posts/new-15",
            "https://www.patreon.com/posts/old-1",
        ]
        source = make_source([first, second], accumulates=True,
                             load_more=AsyncMock(side_effect=[True, False]))
        walker = self.make_walker(source, update_mode=True)

        await walker.walk(FEED_URL)

        saved = [c.args[0] for c in self.extractor.save_post.await_args_list]
        self.assertEqual(saved, first + ["https://www.patreon.com/posts/new-14",
                                         "https://www.patreon.com/posts/new-15"])

    async def test_update_mode_counts_visited_posts_per_page(self, *mocks):
        pinned = ["https://www.patreon.com/posts/pin-1", "https://www.patreon.com/posts/pin-2"]
        for url in pinned:
            self.ledger.mark_visited(url)
        source = make_source(
            [pinned + ["https://www.patreon.com/posts/new-3"],
             pinned + ["https://www.patreon.com/posts/new-4"]],
            load_more=AsyncMock(side_effect=[True, False])
        )
        walker = self.make_walker(source, update_mode=True)

        await walker.walk(FEED_URL)

        self.assertEqual(self.extractor.save_post.await_count, 2)
        self.assertTrue(self.ledger.has("https://www.patreon.com/posts/new-4"))

    async def test_pages_advance_until_exhausted(self, *mocks):
        source = make_source(
            [["/posts/a-1"], ["/posts/b-2"]],
            load_more=AsyncMock(side_effect=[True, False])
        )
        walker = self.make_walker(source)

        await walker.walk(FEED_URL)

        self.assertEqual(self.extractor.save_post.await_count, 2)
        self.assertEqual(walker.page_url, FEED_URL + "?cursor=2")

    async def test_accumulating_feed_stops_without_growth(self, *mocks):
        source = make_source(
            [["/posts/a-1"], ["/posts/a-1"]],
            accumulates=True,
            load_more=AsyncMock(return_value=True)
        )
        walker = self.make_walker(source)

        await walker.walk(FEED_URL)

        source.load_more.assert_awaited_once()
        self.extractor.save_post.assert_awaited_once()

    async def test_single_post_mode(self, *mocks):
        source = make_source([])
        walker = self.make_walker(source)
        post_url = "https://www.patreon.com/posts/a-1"

        await walker.walk(post_url)

        self.extractor.save_post.assert_awaited_once_with(post_url, os.path.abspath(self.temp_dir), self.page)
        self.page.goto.assert_not_awaited()
        self.assertEqual(len(self.ledger), 0)

    async def test_missing_year_is_rejected(self, *mocks):
        walker = self.make_walker(patreon.PATREON)

        with self.assertRaises(ValueError):
            await walker.walk(FEED_URL, "undefined")

        self.page.goto.assert_not_awaited()

    async def test_filter_failure_waits_for_operator_and_raises(self, *mocks):
        source = make_source([])
        source.apply_filter = AsyncMock(side_effect=RuntimeError("filter dialog missing"))
        walker = self.make_walker(source)

        with self.assertRaises(RuntimeError):
            await walker.walk(FEED_URL, "2024")

        self.operator.assert_awaited_once()
        self.extractor.save_post.assert_not_awaited()

    async def test_save_failure_leaves_post_unvisited(self, *mocks):
        source = make_source([["/posts/a-1"]])
        self.extractor.save_post = AsyncMock(side_effect=RuntimeError("navigation failed"))
        walker = self.make_walker(source)

        with self.assertRaises(RuntimeError):
            await walker.walk(FEED_URL)

        self.assertFalse(self.ledger.has("https://www.patreon.com/posts/a-1"))


class TestNormalizeYear(unittest.TestCase):
    """Test cases for year normalization."""

    def test_normalize_year(self):
        self.assertEqual(normalize_year(None), "")
        self.assertEqual(normalize_year("None"), "")
        self.assertEqual(normalize_year("undefined"), "")
        self.assertEqual(normalize_year(2024), "2024")
        self.assertEqual(normalize_year(" 2023 "), "2023")


if __name__ == "__main__":
    unittest.main()
