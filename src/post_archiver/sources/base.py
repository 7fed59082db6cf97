#!/usr/bin/env python3
"""
Post Source Module

This module defines the capability surface every supported site exposes to the
extraction engine. A site is a `PostSource` value: its selectors, its flags and a
`Strategies` table of plain functions. The defaults below describe the common
behaviour; each site module replaces only the strategies that differ.

Every strategy receives the `PostSource` it belongs to as its first argument.
"""

import os
import re
import random
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from playwright.async_api import Error as PlaywrightError
from tqdm import tqdm

from post_archiver.models import Decision, PostContext, SiteVariant
from post_archiver.utils.asset_downloader import IMAGE_EXTENSIONS, detect_extension, set_file_time
from post_archiver.utils.date_parser import parse_date
from post_archiver.utils.pacing import wait_for_delay

logger = logging.getLogger(__name__)

LOAD_MORE_TEXT = re.compile(r'^Load more$')

# Matches responses that carry an image
IMAGE_RESPONSE = re.compile(r'\.(jpg|jpeg|png|gif|webp|jfif|bmp)')

POST_HREFS_SCRIPT = "(elements) => elements.map((el) => el.getAttribute('href'))"
ANCHOR_HREFS_SCRIPT = "(elements) => elements.map((el) => el.href)"
INNER_TEXTS_SCRIPT = "(elements) => elements.map((el) => el.innerText)"
ATTACHMENT_LINKS_SCRIPT = """
(elements) => elements.map((el) => ({
    href: el.href,
    filename: el.innerText.replace(/\\s/g, '-')
}))
"""
WAIT_FOR_IMAGE_SCRIPT = """
(selector) => new Promise((resolve) => {
    const img = document.querySelector(selector);
    if (!img) {
        resolve();
        return;
    }
    if (img.complete && img.naturalWidth > 0) {
        resolve();
    } else {
        img.onload = () => resolve();
        img.onerror = () => resolve();
    }
})
"""


@dataclass(frozen=True)
class SelectorSet:
    """DOM query strings for one site. Empty strings mean the site has no such element."""
    post_urls: str = ''
    loader: str = ''
    content_title: str = ''
    subtitle: str = ''
    tags: str = ''
    date: str = ''
    locked: str = ''
    no_cards: str = ''
    attachments: str = ''
    content_block: str = ''
    rich_content_block: str = ''
    images_clickable: str = ''
    image_anchor: str = ''
    big_image: str = ''
    next_image_button: str = ''
    filter_header: str = ''
    filter_button: str = ''
    only_unlocked_filter: str = ''
    year_filter: str = ''
    apply_button: str = ''
    next_page: str = ''


class ImageCapture:
    """
    Saves images as the page loads them.

    The response handler is the only writer of `saved`, and entries are only ever
    added, so the extraction flow can poll its size while the carousel is stepped.

    Attributes:
        ctx (PostContext): The post being extracted.
        saved (Dict[str, str]): Image id -> saved file name.
    """

    def __init__(self, ctx: PostContext, is_wanted: Callable[[str], bool],
                 image_id_of: Callable[[str], str]):
        self.ctx = ctx
        self.is_wanted = is_wanted
        self.image_id_of = image_id_of
        self.saved: Dict[str, str] = {}

    def attach(self) -> None:
        self.ctx.page.on("response", self.on_response)

    def detach(self) -> None:
        self.ctx.page.remove_listener("response", self.on_response)

    async def on_response(self, response) -> None:
        url = response.url
        if not (self.is_wanted(url) and IMAGE_RESPONSE.search(url.lower())):
            return

        image_id = self.image_id_of(url)
        if image_id in self.saved:
            return

        found = self.ctx.checker.find(image_id)
        if found:
            logger.info(f"Already saved {image_id}, skipping")
            self.saved[image_id] = found
            return

        try:
            body = await response.body()
        except PlaywrightError as e:
            logger.error(f"🚨 Failed to save image from: {url}: {e}")
            return
        if not body:
            logger.warning(f"⚠  Ignoring zero-size buffer for {image_id}")
            return

        file_name = f"{self.ctx.name}-{image_id}.{detect_extension(body)}"
        try:
            self.ctx.downloader.save_buffer(os.path.join(self.ctx.out_dir, file_name), body,
                                            self.ctx.timestamp, self.ctx.tags)
        except OSError as e:
            logger.error(f"🚨 Failed to save image from: {url}: {e}")
            return
        self.ctx.checker.add(file_name)
        self.saved[image_id] = file_name
        logger.info(f"Saved {file_name}")

    async def wait_for_count(self, expected: int, timeout: float = 120.0, poll: float = 0.3) -> bool:
        """
        Wait until at least `expected` images have been saved.

        Args:
            expected (int): Number of images to wait for.
            timeout (float, optional): Seconds before giving up. Defaults to 120.
            poll (float, optional): Seconds between checks. Defaults to 0.3.

        Returns:
            bool: True if the count was reached, False on timeout.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while len(self.saved) < expected:
            if loop.time() >= deadline:
                logger.warning(f"Timed out waiting for images: saved {len(self.saved)} of {expected}")
                return False
            await asyncio.sleep(poll)
        return True


def is_feed_url(source: 'PostSource', url: str) -> bool:
    return urlsplit(url).path.rstrip('/').endswith(source.feed_suffix)


def validate(source: 'PostSource', url: str, year: Optional[str]) -> None:
    """Reject a feed URL without a year on sites that filter feeds by year."""
    if source.requires_year and source.is_feed_url(url) and not year:
        raise ValueError("No year provided")


async def apply_no_filter(source: 'PostSource', page, year: Optional[str]) -> None:
    return None


async def collect_post_urls(source: 'PostSource', page) -> List[str]:
    """
    Collect the post URLs currently listed on a feed page.

    Returns:
        List[str]: Post hrefs as they appear in the page, possibly relative.
    """
    selectors = source.selectors
    if selectors.no_cards and await page.locator(selectors.no_cards).count() == 1:
        logger.info("😥 No posts available")
        return []

    await page.wait_for_selector(selectors.post_urls, state="attached")
    hrefs = await page.locator(selectors.post_urls).evaluate_all(POST_HREFS_SCRIPT)
    urls = [href for href in hrefs if href]
    logger.info(f"| Urls from this page: {', '.join(urls)}")
    return urls


async def read_date_text(source: 'PostSource', page) -> str:
    return await page.locator(source.selectors.date).first.inner_text()


def parse_post_date(source: 'PostSource', text: str):
    return parse_date(text)


async def get_tags(source: 'PostSource', page) -> List[str]:
    if not source.selectors.tags:
        return []
    return await page.locator(source.selectors.tags).evaluate_all(INNER_TEXTS_SCRIPT)


def get_content_block(source: 'PostSource', page):
    return page.locator(source.selectors.content_block).first


def last_path_segment(source: 'PostSource', url: str) -> str:
    return urlsplit(url).path.rstrip('/').split('/')[-1]


def attachment_name(source: 'PostSource', href: str, filename: str) -> str:
    return filename


async def save_attachments(source: 'PostSource', ctx: PostContext) -> List[str]:
    """
    Save a post's attachments, skipping files that already exist.

    Image attachments are fetched through the page; anything else is saved through
    the browser's download flow by clicking its link.

    Returns:
        List[str]: File names of the post's attachments.
    """
    if not source.selectors.attachments:
        return []

    links = ctx.page.locator(source.selectors.attachments)
    items = await links.evaluate_all(ATTACHMENT_LINKS_SCRIPT)
    if not items:
        return []

    logger.info(f"📦 Found {len(items)} attachments...")
    saved = []
    for index, item in enumerate(tqdm(items, desc="Saving attachments")):
        href = item['href']
        file_name = source.attachment_name(href, item['filename'])
        if ctx.checker.has(file_name):
            logger.info(f"File {file_name} already exists, skipping")
            saved.append(file_name)
            continue

        if href.lower().endswith(IMAGE_EXTENSIONS):
            await ctx.downloader.download_file(ctx.page, href, ctx.out_dir, file_name, ctx.timestamp,
                                               tags=ctx.tags)
        else:
            file_path = os.path.join(ctx.out_dir, file_name)
            async with ctx.page.expect_download() as download_info:
                await links.nth(index).click()
            download = await download_info.value
            await download.save_as(file_path)
            set_file_time(file_path, ctx.timestamp)

        ctx.checker.add(file_name)
        saved.append(file_name)
    return saved


async def download_linked_images(ctx: PostContext, id_url_pairs: List[Tuple[str, str]],
                                 image_map: Dict[str, str]) -> Dict[str, str]:
    """
    Download images whose URLs are known up front, skipping ids already on disk.

    Args:
        ctx (PostContext): The post being extracted.
        id_url_pairs (List[Tuple[str, str]]): (image id, URL) pairs.
        image_map (Dict[str, str]): Map to record image id -> file name in.

    Returns:
        Dict[str, str]: The updated image map.
    """
    for image_id, url in id_url_pairs:
        found = ctx.checker.find(image_id)
        if found:
            logger.info(f"Image {url} already exists as {found}")
            image_map[image_id] = found
            continue

        file_name = await ctx.downloader.download_file(
            ctx.page, url, ctx.out_dir, f"{ctx.name}-{image_id}", ctx.timestamp, tags=ctx.tags
        )
        ctx.checker.add(file_name)
        image_map[image_id] = file_name
        logger.info(f"Saved {url} to {file_name}")
    return image_map


async def open_carousel(source: 'PostSource', page, images_to_click) -> None:
    await images_to_click.nth(0).click(force=True)
    await page.wait_for_selector(source.selectors.big_image, state="attached")


async def step_through_carousel(source: 'PostSource', page, image_count: int, next_button) -> None:
    """Click "next" once per remaining image, letting each image load first."""
    big_image = page.locator(source.selectors.big_image).first
    for _ in tqdm(range(1, image_count), desc="Stepping through images"):
        await page.evaluate(WAIT_FOR_IMAGE_SCRIPT, source.selectors.big_image)
        await big_image.hover()
        await next_button.click()
        await wait_for_delay(random.uniform(0.1, 1.1))


def image_stem(url: str) -> str:
    return url.split('?')[0].split('/')[-1].split('.')[0]


async def save_linked_images(source: 'PostSource', ctx: PostContext) -> Dict[str, str]:
    """Download every image linked from the post's image anchors."""
    if not source.selectors.image_anchor:
        return {}
    links = await ctx.page.locator(source.selectors.image_anchor).evaluate_all(ANCHOR_HREFS_SCRIPT)
    pairs = [(image_stem(link), link) for link in links if image_stem(link)]
    return await download_linked_images(ctx, pairs, {})


def get_load_more_control(source: 'PostSource', page):
    return page.locator('button', has_text=LOAD_MORE_TEXT)


async def load_more(source: 'PostSource', page) -> bool:
    """
    Advance the feed by clicking its load-more control.

    Returns:
        bool: False when the feed has no load-more control left.
    """
    logger.info("Loading more pages")
    control = source.get_load_more_control(page)
    if await control.count() == 0:
        logger.info("😲 No next button found")
        return False

    await control.first.scroll_into_view_if_needed()
    await control.first.click()
    await page.wait_for_selector(source.selectors.loader, state="attached")
    await page.wait_for_selector(source.selectors.loader, state="detached")
    logger.info(f"Loaded next page at {page.url}")
    return True


def no_rogue_assets(source: 'PostSource', url: str, top_url: str) -> Optional[Decision]:
    return None


@dataclass(frozen=True)
class Strategies:
    """Per-site behaviour. Each entry takes the owning `PostSource` first."""
    is_feed_url: Callable[..., bool] = is_feed_url
    validate: Callable[..., None] = validate
    apply_filter: Callable[..., Any] = apply_no_filter
    collect_post_urls: Callable[..., Any] = collect_post_urls
    read_date_text: Callable[..., Any] = read_date_text
    parse_date: Callable[..., Any] = parse_post_date
    get_tags: Callable[..., Any] = get_tags
    get_content_block: Callable[..., Any] = get_content_block
    get_page_name: Callable[..., str] = last_path_segment
    get_post_id: Callable[..., str] = last_path_segment
    attachment_name: Callable[..., str] = attachment_name
    save_attachments: Callable[..., Any] = save_attachments
    save_images: Callable[..., Any] = save_linked_images
    get_load_more_control: Callable[..., Any] = get_load_more_control
    load_more: Callable[..., Any] = load_more
    rogue_asset: Callable[..., Optional[Decision]] = no_rogue_assets


@dataclass(frozen=True)
class PostSource:
    """
    One supported site, selected once at startup from the target URL.

    Attributes:
        variant (SiteVariant): Which site this is.
        login_url (str): Page the operator logs in on.
        feed_suffix (str): Path suffix that marks a feed (listing) URL.
        asset_domains (Tuple[str, ...]): Host fragments whose assets are cached.
        selectors (SelectorSet): DOM query strings.
        strategies (Strategies): Site behaviour.
        requires_year (bool): Feed URLs need a year filter.
        pagination_accumulates (bool): Loading more re-lists already seen posts.
        pinned_post_tolerance (int): Visited posts tolerated in update mode before stopping.
        keep_video_tags (bool): Keep <video> markup in the Markdown.
    """
    variant: SiteVariant
    login_url: str
    feed_suffix: str
    asset_domains: Tuple[str, ...]
    selectors: SelectorSet
    strategies: Strategies = field(default_factory=Strategies)
    requires_year: bool = False
    pagination_accumulates: bool = False
    pinned_post_tolerance: int = 2
    keep_video_tags: bool = False

    @property
    def name(self) -> str:
        return self.variant.value

    def owns_asset(self, url: str) -> bool:
        return any(domain in url for domain in self.asset_domains)

    def is_feed_url(self, url: str) -> bool:
        return self.strategies.is_feed_url(self, url)

    def validate(self, url: str, year: Optional[str]) -> None:
        self.strategies.validate(self, url, year)

    async def apply_filter(self, page, year: Optional[str]) -> None:
        await self.strategies.apply_filter(self, page, year)

    async def collect_post_urls(self, page) -> List[str]:
        return await self.strategies.collect_post_urls(self, page)

    async def read_date_text(self, page) -> str:
        return await self.strategies.read_date_text(self, page)

    def parse_date(self, text: str):
        return self.strategies.parse_date(self, text)

    async def get_tags(self, page) -> List[str]:
        return await self.strategies.get_tags(self, page)

    def get_content_block(self, page):
        return self.strategies.get_content_block(self, page)

    def get_page_name(self, url: str) -> str:
        return self.strategies.get_page_name(self, url)

    def get_post_id(self, url: str) -> str:
        return self.strategies.get_post_id(self, url)

    def attachment_name(self, href: str, filename: str) -> str:
        return self.strategies.attachment_name(self, href, filename)

    async def save_attachments(self, ctx: PostContext) -> List[str]:
        return await self.strategies.save_attachments(self, ctx)

    async def save_images(self, ctx: PostContext) -> Dict[str, str]:
        return await self.strategies.save_images(self, ctx)

    def get_load_more_control(self, page):
        return self.strategies.get_load_more_control(self, page)

    async def load_more(self, page) -> bool:
        return await self.strategies.load_more(self, page)

    def rogue_asset(self, url: str, top_url: str) -> Optional[Decision]:
        return self.strategies.rogue_asset(self, url, top_url)
