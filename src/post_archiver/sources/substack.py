#!/usr/bin/env python3
"""
Substack Source

Publications live on <name>.substack.com with the full listing under /archive,
loaded by scrolling. Viewable images open a lightbox whose full-size images are
captured from network responses; other linked images are fetched directly.
"""

import random
import logging
from dataclasses import replace
from typing import Dict, List

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from post_archiver.models import PostContext, SiteVariant
from post_archiver.sources.base import (
    ANCHOR_HREFS_SCRIPT, ImageCapture, PostSource, SelectorSet, Strategies,
    download_linked_images, open_carousel, step_through_carousel
)
from post_archiver.utils.date_parser import parse_header_date
from post_archiver.utils.pacing import human_like_scroll_to_bottom, wait_for_delay

logger = logging.getLogger(__name__)

# CDN transform applied to the full-size lightbox images
FULL_SIZE_MARKER = 'f_auto,q_auto:good,fl_progressive:steep'

SELECTORS = SelectorSet(
    date='.post-header',
    content_title='.post-title',
    post_urls='[data-testid="post-preview-title"]',
    subtitle='.subtitle',
    content_block='.available-content',
    loader='[class^="loadingContainerList"]',
    images_clickable='.image-link.is-viewable-img',
    image_anchor='.image-link:not(.is-viewable-img)',
    big_image='[class^="imgContainer"] img',
    next_image_button='[class*="modalImageSidebar"]'
)


def image_id(url: str) -> str:
    """CDN URLs embed the original upload URL; its file stem is the image id."""
    return url.split('/')[-1].split('%2F')[-1].split('.')[0]


async def get_tags(source: PostSource, page) -> List[str]:
    return []


def parse_date(source: PostSource, text: str):
    return parse_header_date(text)


async def save_attachments(source: PostSource, ctx: PostContext) -> List[str]:
    return []


async def save_images(source: PostSource, ctx: PostContext) -> Dict[str, str]:
    """Capture lightbox images while stepping through them, then fetch the rest directly."""
    page = ctx.page
    capture = ImageCapture(
        ctx,
        is_wanted=lambda url: FULL_SIZE_MARKER in url,
        image_id_of=image_id
    )
    capture.attach()
    try:
        images_to_click = page.locator(source.selectors.images_clickable)
        image_count = await images_to_click.count()
        logger.info(f"Found {image_count} clickable images")

        if image_count:
            logger.info(f"↓ Downloading {image_count} multiple images")
            await open_carousel(source, page, images_to_click)
            await page.locator(source.selectors.big_image).first.hover()
            next_button = page.locator(source.selectors.next_image_button).first.locator('button')
            if await next_button.count() > 0:
                await step_through_carousel(source, page, image_count, next_button)
            else:
                logger.info("Only 1 image")

        links = await page.locator(source.selectors.image_anchor).evaluate_all(ANCHOR_HREFS_SCRIPT)
        image_map: Dict[str, str] = {}
        await download_linked_images(ctx, [(image_id(link), link) for link in links], image_map)

        await wait_for_delay(random.random())
        await capture.wait_for_count(image_count, timeout=ctx.carousel_timeout)
    finally:
        capture.detach()

    image_map.update(capture.saved)
    return image_map


async def load_more(source: PostSource, page) -> bool:
    """Scroll to the bottom and wait out the loader if one appears."""
    logger.info("Loading more pages")
    await human_like_scroll_to_bottom(page)
    try:
        await page.wait_for_selector(source.selectors.loader, state="attached", timeout=1000)
    except PlaywrightTimeoutError:
        logger.info("No loader found.")
        return True

    await page.wait_for_selector(source.selectors.loader, state="detached")
    logger.info("Loaded next page")
    return True


SUBSTACK = PostSource(
    variant=SiteVariant.SUBSTACK,
    login_url='https://substack.com/sign-in',
    feed_suffix='/archive',
    asset_domains=('substack',),
    selectors=SELECTORS,
    strategies=replace(
        Strategies(),
        get_tags=get_tags,
        parse_date=parse_date,
        save_attachments=save_attachments,
        save_images=save_images,
        load_more=load_more
    ),
    pagination_accumulates=True
)
