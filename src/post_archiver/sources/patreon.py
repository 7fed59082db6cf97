#!/usr/bin/env python3
"""
Patreon Source

Feeds live under /posts and are filtered by year, accessibility and post type
through the filter dialog. Image posts show a carousel: full-quality images are
captured from network responses while the carousel is stepped through.
"""

import re
import random
import logging
from dataclasses import replace
from typing import Dict, Optional
from urllib.parse import urlsplit

from post_archiver.models import Decision, PostContext, SiteVariant
from post_archiver.sources.base import (
    ImageCapture, PostSource, SelectorSet, Strategies,
    download_linked_images, open_carousel, step_through_carousel
)
from post_archiver.utils.pacing import wait_for_delay

logger = logging.getLogger(__name__)

# Present in carousel image URLs served at full quality
FULL_QUALITY_MARKER = 'eyJxIjoxMDAsIndlYnAiOjB9'

IMAGE_POST_FILTER = re.compile(r'^Image \(\d+\)$')

_TRAILING_NUMBER = re.compile(r'(\d+)$')

SELECTORS = SelectorSet(
    post_urls='[data-tag="post-title"] > a',
    images_clickable='[data-tag="post-card"] .image-grid > img, [data-tag="post-card"]  .image-carousel > img',
    big_image='[data-tag="lightboxImage"]',
    next_image_button='[data-tag="nextImage"]',
    filter_header='[data-tag="filter-dialog-modal-title"]',
    filter_button='[data-tag="post-feed-consolidated-filters-toggle"]',
    only_unlocked_filter='input[value="UNLOCKED_POSTS_ONLY"]',
    year_filter='fieldset[name="consolidated-date-filter"] p',
    apply_button='[data-tag="dialog-action-primary"]',
    loader='[aria-label="loading more posts"]',
    content_title='[data-tag="post-card"] [data-tag="post-title"]',
    tags='[data-tag="post-tag"]',
    no_cards='[data-tag="stream-empty-card"]',
    attachments='[data-tag="post-attachment-link"]'
)


def image_id(url: str) -> str:
    """Carousel and static image URLs carry the image id third from the end of the path."""
    parts = url.split('?')[0].split('/')
    return parts[-3] if len(parts) >= 3 else ''


def page_name(source: PostSource, url: str) -> str:
    return urlsplit(url).path.replace('/posts/', '').strip('/')


def post_id(source: PostSource, url: str) -> str:
    return page_name(source, url).split('-')[-1]


async def apply_filter(source: PostSource, page, year: Optional[str]) -> None:
    """Filter the feed down to one year's accessible image posts."""
    if not isinstance(year, str) or not year:
        raise ValueError("Invalid argument year")
    selectors = source.selectors
    logger.info(f"Applying filter by year {year}")

    if await page.locator(selectors.filter_header).count() == 0:
        await page.locator(selectors.filter_button).click()
        logger.info("| Opened filter modal")
    else:
        logger.info("| Filter modal already open")

    year_pattern = re.compile(rf'^{re.escape(year)} \(\d+\)$')
    await page.locator(selectors.year_filter, has_text=year_pattern).click()
    logger.info(f"| Selected {year} year")
    await wait_for_delay()

    await page.locator(selectors.only_unlocked_filter).click()
    logger.info("| Selected only accessible")
    await wait_for_delay()

    await page.locator('button', has_text=IMAGE_POST_FILTER).click()
    await wait_for_delay()

    await page.locator(selectors.apply_button).click()
    logger.info("| Applied")


async def read_date_text(source: PostSource, page) -> str:
    text = await (
        page.locator('[data-tag="post-card"] [data-tag="post-details"]')
        .locator('xpath=../../div[1]/div[1]/div[2]')
        .locator('p')
        .inner_text()
    )
    logger.info(f"| Raw date str: {text}")
    return text


def get_content_block(source: PostSource, page):
    return (
        page.locator('[data-tag="post-details"]')
        .locator('xpath=../../div[1]/div[2]')
        .first
    )


async def save_images(source: PostSource, ctx: PostContext) -> Dict[str, str]:
    """
    Save a post's images: static <img> sources belonging to the post are fetched
    directly, carousel images are captured while the carousel is stepped through.
    """
    page = ctx.page
    capture = ImageCapture(
        ctx,
        is_wanted=lambda url: FULL_QUALITY_MARKER in url and ctx.post_id in url,
        image_id_of=image_id
    )
    capture.attach()
    try:
        images_to_click = page.locator(source.selectors.images_clickable)
        sources = await source.get_content_block(page).locator('img').evaluate_all(
            "(elements) => elements.map((el) => el.getAttribute('src'))"
        )
        static_urls = [src for src in sources if src and ctx.post_id in src]
        image_count = await images_to_click.count()
        logger.info(f"Found {image_count} clickable images, {len(static_urls)} static images")

        image_map: Dict[str, str] = {}
        await download_linked_images(ctx, [(image_id(url), url) for url in static_urls], image_map)

        if image_count:
            logger.info(f"↓ Downloading {image_count} multiple images")
            await open_carousel(source, page, images_to_click)
            next_button = page.locator(source.selectors.next_image_button)
            if await next_button.count() > 0:
                await step_through_carousel(source, page, image_count, next_button)
        else:
            logger.info("☠ Found 0 urls")

        await wait_for_delay(random.random())
        await capture.wait_for_count(image_count, timeout=ctx.carousel_timeout)
    finally:
        capture.detach()

    image_map.update(capture.saved)
    return image_map


def rogue_asset(source: PostSource, url: str, top_url: str) -> Optional[Decision]:
    """Blank out GIFs that do not belong to the open post or that load on the feed."""
    stripped = url.split('?')[0].split('#')[0]
    if not stripped.lower().endswith('.gif'):
        return None

    match = _TRAILING_NUMBER.search(top_url)
    page_id = match.group(1) if match else None
    if (page_id and page_id not in stripped) or source.is_feed_url(top_url):
        return Decision.FULFILL_EMPTY
    return Decision.PASS_THROUGH


PATREON = PostSource(
    variant=SiteVariant.PATREON,
    login_url='https://www.patreon.com/login',
    feed_suffix='/posts',
    asset_domains=('patreon',),
    selectors=SELECTORS,
    strategies=replace(
        Strategies(),
        apply_filter=apply_filter,
        read_date_text=read_date_text,
        get_content_block=get_content_block,
        get_page_name=page_name,
        get_post_id=post_id,
        save_images=save_images,
        rogue_asset=rogue_asset
    ),
    requires_year=True,
    pagination_accumulates=True
)
