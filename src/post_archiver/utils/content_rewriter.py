#!/usr/bin/env python3
"""
Content Rewriter Module

This module repairs the HTML of a post body before it is converted to Markdown.
It applies the cleanup passes of the active site variant, then points every image
at the file it was saved under. It never touches the filesystem and never mutates
the image map it is given.
"""

import re
import logging
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from post_archiver.models import SiteVariant

logger = logging.getLogger(__name__)

_NUMBERED_TOKEN = re.compile(r'^\d+\.$')

# Prefix that stops "1." at the start of a paragraph from becoming a list item
ZERO_WIDTH_SPACE = '\u200b'

HOISTING_VARIANTS = (SiteVariant.SUBSTACK, SiteVariant.FANBOX)


class ContentRewriter:
    """
    Rewrites post HTML for one site variant.

    Attributes:
        variant (SiteVariant): Active site variant.
        attachments (List[str]): File names of the post's saved attachments.
        unclaimed (Dict[str, str]): Entries of the last image map no <img> claimed.
        substitutions (int): Number of <img> sources replaced by the last rewrite.
    """

    def __init__(self, variant: SiteVariant, attachments: Optional[List[str]] = None):
        """
        Initialize the ContentRewriter.

        Args:
            variant (SiteVariant): Active site variant.
            attachments (Optional[List[str]], optional): Saved attachment file names. Defaults to None.
        """
        self.variant = variant
        self.attachments = list(attachments or [])
        self.unclaimed: Dict[str, str] = {}
        self.substitutions = 0

    def rewrite(self, html: str, image_map: Dict[str, str]) -> str:
        """
        Rewrite post HTML.

        Args:
            html (str): Raw inner HTML of the post's content block.
            image_map (Dict[str, str]): Asset id -> saved file name. Not modified.

        Returns:
            str: The rewritten HTML.
        """
        soup = BeautifulSoup(html or '', 'html.parser')

        if self.variant == SiteVariant.SUBSTACK:
            self._clean_substack(soup)
        if self.variant == SiteVariant.FANBOX:
            # videos come back through the attachments
            for video in soup.find_all('video'):
                video.decompose()
        if self.variant in HOISTING_VARIANTS:
            self._hoist_linked_images(soup)
            self._embed_attachments(soup)

        self.unclaimed = {k: v for k, v in image_map.items() if k}
        self.substitutions = self._substitute_sources(soup, self.unclaimed)
        return str(soup)

    def _clean_substack(self, soup: BeautifulSoup) -> None:
        for widget in soup.select('.subscription-widget-wrap'):
            widget.decompose()

        for heading in soup.select('h2.header-anchor-post'):
            text = heading.get_text()
            heading.clear()
            heading.string = text

        for span in soup.select('p span'):
            text = span.get_text()
            if _NUMBERED_TOKEN.match(text.strip()):
                span.string = ZERO_WIDTH_SPACE + text

    def _hoist_linked_images(self, soup: BeautifulSoup) -> None:
        """Replace <a href><img></a> with a bare <img> whose source is the anchor's href."""
        for img in soup.find_all('img'):
            anchor = img.find_parent('a')
            if anchor is None or anchor.parent is None or not anchor.get('href'):
                continue
            img['src'] = anchor['href']
            anchor.replace_with(img.extract())

    def _embed_attachments(self, soup: BeautifulSoup) -> None:
        """Turn download links to saved attachments into inline media."""
        for anchor in soup.find_all('a'):
            href = anchor.get('href')
            if not href or not anchor.get('download'):
                continue

            replacement = next((name for name in self.attachments if name in href), None)
            if replacement is None:
                continue

            if href.endswith('.mp4'):
                video = soup.new_tag('video', controls='')
                video.append(soup.new_tag('source', type='video/mp4', src=replacement))
                anchor.replace_with(video)
                logger.debug(f"Embedded video {replacement}")
            else:
                anchor.replace_with(soup.new_tag('img', alt='Attachment', src=replacement))
                logger.debug(f"Embedded image {replacement}")

    @staticmethod
    def _substitute_sources(soup: BeautifulSoup, image_map: Dict[str, str]) -> int:
        count = 0
        for img in soup.find_all('img'):
            src = img.get('src')
            if not src:
                continue
            for image_id in list(image_map):
                if image_id in src:
                    img['src'] = image_map.pop(image_id)
                    count += 1
                    break
        return count
