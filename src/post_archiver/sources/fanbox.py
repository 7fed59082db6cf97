#!/usr/bin/env python3
"""
pixivFANBOX Source

Creator pages live on <creator>.fanbox.cc with feeds under /posts and numbered
pagination. Post images are linked from anchors and fetched directly.
"""

import re
import logging
from dataclasses import replace
from typing import List, Optional

from post_archiver.models import Decision, SiteVariant
from post_archiver.sources.base import PostSource, SelectorSet, Strategies
from post_archiver.utils.date_parser import parse_ordinal_date

logger = logging.getLogger(__name__)

_COVER = re.compile(r'fanbox/public/images/post/\d+/cover')
_ICON = re.compile(r'fanbox/public/images/user/\d+/icon')
_PLAN_COVER = re.compile(r'fanbox/public/images/plan/\d+/cover')

FEED_IMAGE_HOSTS = ('fanbox.cc/images/', 'pximg.net')
FEED_IMAGE_SUFFIXES = ('svg', 'png', 'jpg', 'jpeg', 'gif')

SELECTORS = SelectorSet(
    tags='[class^="TagList__Wrapper"]',
    date='[class^="styled__PostHeadBottom"]',
    content_title='[class^="styled__PostTitle"]',
    content_block='[class^="Body__PostBodyText"]',
    rich_content_block='[class^="styled__EditorWrapper"]',
    image_anchor='[class^="PostImage__Anchor"]',
    post_urls='[class^="CreatorPostItem__Wrapper"], [class^="CardPostItem__Wrapper"]',
    next_page='[class^="Pagination__SelectedItemWrapper"] + a',
    loader='[class^="CreatorPostItem__DummyWrapper"], [class^="ProgressBar__StyledLoadingBar"]',
    locked='[class^="FeeRequiredSign"]',
    attachments='[class^="FileContent__DownloadLink"]'
)


async def get_tags(source: PostSource, page) -> List[str]:
    tags = page.locator(source.selectors.tags)
    if await tags.count() == 0:
        return []
    return (await tags.first.inner_text(timeout=300)).split('\n')


def parse_date(source: PostSource, text: str):
    return parse_ordinal_date(text)


def get_content_block(source: PostSource, page):
    selectors = source.selectors
    return page.locator(f"{selectors.content_block}, {selectors.rich_content_block}").first


def attachment_name(source: PostSource, href: str, filename: str) -> str:
    return href.split('?')[0].split('/')[-1] or filename


def get_load_more_control(source: PostSource, page):
    return page.locator(source.selectors.next_page).first


def rogue_asset(source: PostSource, url: str, top_url: str) -> Optional[Decision]:
    """Blank out images on the feed page, plus covers and icons that posts never need."""
    stripped = url.split('?')[0]
    if (any(host in stripped for host in FEED_IMAGE_HOSTS)
            and stripped.endswith(FEED_IMAGE_SUFFIXES)
            and source.is_feed_url(top_url)):
        return Decision.FULFILL_EMPTY
    if _COVER.search(url) or _ICON.search(url) or _PLAN_COVER.search(url):
        return Decision.FULFILL_EMPTY
    return None


FANBOX = PostSource(
    variant=SiteVariant.FANBOX,
    login_url='https://accounts.pixiv.net/login',
    feed_suffix='/posts',
    asset_domains=('fanbox', 'pximg', 'pixiv'),
    selectors=SELECTORS,
    strategies=replace(
        Strategies(),
        get_tags=get_tags,
        parse_date=parse_date,
        get_content_block=get_content_block,
        attachment_name=attachment_name,
        get_load_more_control=get_load_more_control,
        rogue_asset=rogue_asset
    ),
    keep_video_tags=True
)
