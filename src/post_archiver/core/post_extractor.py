#!/usr/bin/env python3
"""
Post Extractor Module

This module archives a single post page: it skips locked posts, gathers the
post's tags, date and content, saves its attachments and images, rewrites the
body to point at the saved files and writes the Markdown document plus a JSON
sidecar, both stamped with the post's publish date.

Re-running on a post whose files exist re-downloads nothing: every asset is
looked up in the output directory first, and the Markdown and JSON files are
overwritten in place.
"""

import os
import json
import logging
from typing import Dict, Optional

from post_archiver.models import PostContext, PostRecord
from post_archiver.utils.asset_downloader import FileChecker, set_file_time
from post_archiver.utils.content_rewriter import ContentRewriter
from post_archiver.utils.markdown_converter import MarkdownConverter, render_post
from post_archiver.utils.pacing import random_mouse_movements, random_scroll

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def write_durably(file_path: str, content: str) -> None:
    """Write a text file and flush it to disk before returning."""
    with open(file_path, 'w', encoding='utf-8') as f:
        f.write(content)
        f.flush()
        os.fsync(f.fileno())


class PostExtractor:
    """
    Saves individual posts.

    Attributes:
        source (PostSource): Active site.
        guard (ChallengeGuard): Wraps page operations.
        downloader (AssetDownloader): Saves assets.
        converter (MarkdownConverter): Converts rewritten HTML.
        locked_count (int): Locked posts skipped so far.
    """

    def __init__(self, source, guard, downloader, navigation_timeout_ms: int = 999999,
                 carousel_timeout: float = 120.0):
        """
        Initialize the PostExtractor.

        Args:
            source (PostSource): Active site.
            guard (ChallengeGuard): Wraps page operations.
            downloader (AssetDownloader): Saves assets.
            navigation_timeout_ms (int, optional): Timeout for opening a post. Defaults to 999999.
            carousel_timeout (float, optional): Seconds to wait for carousel images. Defaults to 120.
        """
        self.source = source
        self.guard = guard
        self.downloader = downloader
        self.navigation_timeout_ms = navigation_timeout_ms
        self.carousel_timeout = carousel_timeout
        self.converter = MarkdownConverter(keep_video=source.keep_video_tags)
        self.locked_count = 0
        self._checkers: Dict[str, FileChecker] = {}

    def checker_for(self, out_dir: str) -> FileChecker:
        """Return the file checker for an output directory, creating it on first use."""
        out_dir = os.path.abspath(out_dir)
        if out_dir not in self._checkers:
            self._checkers[out_dir] = FileChecker(out_dir)
        return self._checkers[out_dir]

    async def save_post(self, url: str, out_dir: str, page):
        """
        Open a post in `page` and archive it into `out_dir`.

        Args:
            url (str): Absolute post URL.
            out_dir (str): Output directory.
            page: Playwright page to use.

        Returns:
            The page, for reuse with the next post.
        """
        logger.info(f"Saving post {url} into {out_dir}")
        if page.url != url:
            await page.goto(url, timeout=self.navigation_timeout_ms)
        await self.guard.run(page, lambda: random_scroll(page))
        await random_mouse_movements(page)
        await self.save_full_post(page, out_dir)
        return page

    async def save_full_post(self, page, out_dir: str) -> Optional[PostRecord]:
        """
        Archive the post currently open in `page`.

        Args:
            page: Playwright page showing a post.
            out_dir (str): Output directory.

        Returns:
            Optional[PostRecord]: The saved post, or None if it was locked.
        """
        source = self.source
        selectors = source.selectors

        if selectors.loader:
            await page.wait_for_selector(selectors.loader, state="detached")
        if selectors.locked and await page.locator(selectors.locked).count() > 0:
            logger.info("🔒 Locked post, skipping")
            self.locked_count += 1
            return None

        url = page.url
        name = source.get_page_name(url)
        tags = await self.guard.run(page, lambda: source.get_tags(page))
        date_text = await self.guard.run(page, lambda: source.read_date_text(page))
        timestamp = source.parse_date(date_text)
        logger.info(f"| Post date: {timestamp}")
        content_block = source.get_content_block(page)

        ctx = PostContext(
            page=page,
            source=source,
            out_dir=out_dir,
            name=name,
            post_id=source.get_post_id(url),
            timestamp=timestamp,
            tags=tags,
            downloader=self.downloader,
            checker=self.checker_for(out_dir),
            carousel_timeout=self.carousel_timeout
        )
        attachments = await source.save_attachments(ctx)
        image_map = await self.guard.run(page, lambda: source.save_images(ctx))
        logger.info(f"| Resulting image map: {json.dumps(image_map)}")

        rewriter = ContentRewriter(source.variant, attachments)
        html = rewriter.rewrite(await content_block.inner_html(), image_map)

        record = PostRecord(
            url=url,
            name=name,
            title=await page.locator(selectors.content_title).first.inner_text(),
            subtitle=await self._read_subtitle(page),
            tags=tags,
            timestamp=timestamp,
            attachments=attachments,
            image_map=image_map
        )
        markdown = render_post(record, self.converter.convert(html), gallery=rewriter.unclaimed.values())
        self.write_post(record, markdown, out_dir)
        return record

    async def _read_subtitle(self, page) -> str:
        if not self.source.selectors.subtitle:
            return ''
        subtitle = page.locator(self.source.selectors.subtitle)
        if await subtitle.count() > 0:
            return await subtitle.first.inner_text()
        return ''

    def write_post(self, record: PostRecord, markdown: str, out_dir: str) -> str:
        """
        Write the Markdown document and JSON sidecar of a post.

        Args:
            record (PostRecord): The post.
            markdown (str): Rendered Markdown.
            out_dir (str): Output directory.

        Returns:
            str: Path to the Markdown file.
        """
        md_path = os.path.join(out_dir, record.name + '.md')
        json_path = os.path.join(out_dir, record.name + '.json')
        write_durably(md_path, markdown)
        write_durably(json_path, json.dumps(record.sidecar()))

        for file_path in (md_path, json_path):
            set_file_time(file_path, record.timestamp)

        logger.info(f"✅ Saved {md_path}")
        return md_path
