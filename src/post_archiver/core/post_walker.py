#!/usr/bin/env python3
"""
Post Walker Module

This module walks a creator's feed page by page and archives every post that is
not in the visited ledger yet. A walk moves through these states:

    IDLE -> FILTER_APPLIED -> SCANNING_PAGE -> (POST_OPEN -> POST_SAVED)*
         -> PAGE_ADVANCE -> SCANNING_PAGE ... -> EXHAUSTED

Posts are processed one at a time. Errors while filtering, advancing or saving a
post end the walk; the visited ledger lets the next run pick up where this one
stopped.
"""

import os
import logging
from enum import Enum
from typing import Optional
from urllib.parse import urljoin

from post_archiver.utils.pacing import (
    random_mouse_movements, random_scroll, wait_for_delay, wait_for_operator as prompt_operator
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class WalkerState(Enum):
    IDLE = "idle"
    FILTER_APPLIED = "filter-applied"
    SCANNING_PAGE = "scanning-page"
    POST_OPEN = "post-open"
    POST_SAVED = "post-saved"
    PAGE_ADVANCE = "page-advance"
    EXHAUSTED = "exhausted"


def normalize_year(year) -> str:
    """Treat missing years, including the literal strings "None" and "undefined", as ''."""
    if year is None:
        return ''
    year = str(year).strip()
    return '' if year in ('None', 'undefined') else year


class PostWalker:
    """
    Feed walker for one site.

    Attributes:
        page: Playwright page showing the feed.
        context: Playwright browser context posts are opened in.
        source (PostSource): Active site.
        extractor (PostExtractor): Saves each post.
        guard (ChallengeGuard): Wraps page operations.
        ledger (VisitedLedger): Posts already archived.
        out_dir (str): Root output directory.
        update_mode (bool): Stop at the first run of already archived posts.
        state (WalkerState): Current state.
        page_url (str): Last known feed page URL, used to resume.
        opened (int): Posts archived during this walk.
    """

    def __init__(self, page, context, source, extractor, guard, ledger, out_dir: str,
                 update_mode: bool = False, navigation_timeout_ms: int = 999999,
                 wait_for_operator=None):
        self.page = page
        self.context = context
        self.source = source
        self.extractor = extractor
        self.guard = guard
        self.ledger = ledger
        self.out_dir = os.path.abspath(out_dir)
        self.update_mode = update_mode
        self.navigation_timeout_ms = navigation_timeout_ms
        self.wait_for_operator = wait_for_operator or prompt_operator
        self.state = WalkerState.IDLE
        self.source_url = ''
        self.page_url = ''
        self.opened = 0

    def _enter(self, state: WalkerState) -> None:
        logger.debug(f"Walker state {self.state.value} -> {state.value}")
        self.state = state

    def absolute_url(self, url: str) -> str:
        """Resolve a post href against the feed URL."""
        if url.startswith(('http://', 'https://')):
            return url
        return urljoin(self.source_url, url)

    async def walk(self, url: str, year: Optional[str] = None) -> str:
        """
        Archive a single post, or every new post of a feed.

        Args:
            url (str): Feed or post URL.
            year (Optional[str], optional): Year filter for feeds. Defaults to None.

        Returns:
            str: The directory posts were written to.

        Raises:
            ValueError: If the site needs a year for feeds and none was given.
        """
        logger.info("🎬 Starting extractor")
        year = normalize_year(year)
        self.state = WalkerState.IDLE
        self.source_url = url.split('?')[0]
        self.page_url = url
        self.source.validate(url, year)

        if not self.source.is_feed_url(url):
            logger.info("| Single post mode")
            await self.extractor.save_post(url, self.out_dir, self.page)
            self._enter(WalkerState.EXHAUSTED)
            return self.out_dir

        logger.info(f"| All posts mode. Extracting from year {year}" if year else "| All posts mode")
        await self.page.goto(url, timeout=self.navigation_timeout_ms)
        return await self.walk_feed(year)

    async def walk_feed(self, year: str = '') -> str:
        """
        Walk the feed currently open in `page`.

        Args:
            year (str, optional): Year filter. Defaults to ''.

        Returns:
            str: The directory posts were written to.
        """
        try:
            await self.source.apply_filter(self.page, year)
        except Exception as e:
            logger.error(f"Failed to set filter: {e}")
            await self.wait_for_operator("⌛ Press Enter to continue...\n")
            raise
        self._enter(WalkerState.FILTER_APPLIED)

        dir_path = os.path.join(self.out_dir, year) if year else self.out_dir
        os.makedirs(dir_path, exist_ok=True)

        has_more = True
        url_count = 0
        saved_this_walk = set()
        post_page = None
        while has_more:
            self._enter(WalkerState.SCANNING_PAGE)
            await self.guard.run(self.page, lambda: random_scroll(self.page))
            urls = await self.guard.run(self.page, lambda: self.source.collect_post_urls(self.page))
            if self.source.pagination_accumulates and url_count == len(urls):
                logger.info("No new posts after loading more")
                break
            url_count = len(urls)

            seen_in_update = 0
            for href in urls:
                post_url = self.absolute_url(href)
                if not self.ledger.has(post_url):
                    await wait_for_delay()
                    post_page = post_page or await self.context.new_page()
                    await random_mouse_movements(post_page)
                    self._enter(WalkerState.POST_OPEN)
                    post_page = await self.extractor.save_post(post_url, dir_path, post_page)
                    self._enter(WalkerState.POST_SAVED)
                    self.ledger.mark_visited(post_url)
                    saved_this_walk.add(post_url)
                    self.opened += 1
                elif self.update_mode and post_url not in saved_this_walk:
                    seen_in_update += 1
                    if seen_in_update > self.source.pinned_post_tolerance:
                        logger.info("Reached processed post, exiting update mode.")
                        has_more = False
                        break

            if has_more:
                self._enter(WalkerState.PAGE_ADVANCE)
                has_more = await self.source.load_more(self.page)
                if has_more:
                    self.page_url = self.page.url

        self._enter(WalkerState.EXHAUSTED)
        logger.info(f"Archived {self.opened} posts, skipped {self.extractor.locked_count} locked posts")
        return dir_path
