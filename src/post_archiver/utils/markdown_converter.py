#!/usr/bin/env python3
"""
Markdown Converter Module

This module handles the conversion of rewritten post HTML to Markdown using the
markdownify library, and assembles the final post document: title linked to the
source, optional subtitle, publish date, body, gallery, attachments and tags.
"""

import re
import logging
from typing import Iterable, Optional

from markdownify import MarkdownConverter as BaseMarkdownConverter

from post_archiver.models import PostRecord
from post_archiver.utils.date_parser import format_post_date

logger = logging.getLogger(__name__)


class PostMarkdownConverter(BaseMarkdownConverter):
    """markdownify converter that can keep <video> elements as raw HTML."""

    def __init__(self, keep_video: bool = False, **options):
        self.keep_video = keep_video
        super().__init__(**options)

    def convert_video(self, el, text, parent_tags):
        if self.keep_video:
            return "\n\n" + str(el) + "\n\n"
        return super().convert_video(el, text, parent_tags)


class MarkdownConverter:
    """
    Converts post HTML to Markdown.

    Attributes:
        heading_style (str): The style to use for headings ('ATX' or 'SETEXT').
        keep_video (bool): Keep <video> markup in the output.
    """

    def __init__(self, heading_style: str = "ATX", keep_video: bool = False):
        self.heading_style = heading_style
        self.keep_video = keep_video

    def convert(self, html_content: str) -> str:
        """
        Convert HTML content to Markdown.

        Args:
            html_content (str): The HTML content to convert.

        Returns:
            str: The converted Markdown, empty for empty input.
        """
        if not html_content:
            logger.warning("Empty HTML content provided for conversion")
            return ""

        converter = PostMarkdownConverter(
            keep_video=self.keep_video,
            heading_style=self.heading_style
        )
        return self._post_process_markdown(converter.convert(html_content))

    def _post_process_markdown(self, markdown_content: str) -> str:
        """
        Tidy whitespace in converted Markdown.

        Args:
            markdown_content (str): The raw converted Markdown content.

        Returns:
            str: The post-processed Markdown content.
        """
        # Remove trailing whitespace from lines
        markdown_content = re.sub(r'[ \t]+$', '', markdown_content, flags=re.MULTILINE)

        # Fix multiple consecutive blank lines (replace with at most 2)
        markdown_content = re.sub(r'\n{3,}', '\n\n', markdown_content)

        # Fix image links (ensure they're on their own line)
        markdown_content = re.sub(r'([^\n])(\!\[)', r'\1\n\n\2', markdown_content)

        return markdown_content.strip()


def render_post(record: PostRecord, body: str, gallery: Optional[Iterable[str]] = None) -> str:
    """
    Assemble the Markdown document for a post.

    Args:
        record (PostRecord): The collected post.
        body (str): Converted Markdown body.
        gallery (Optional[Iterable[str]], optional): Saved image files to list under
            the gallery section. Defaults to None (no gallery).

    Returns:
        str: The complete Markdown document.
    """
    lines = [f"# [{record.title}]({record.url})", ""]
    if record.subtitle:
        lines += [f"#### *{record.subtitle}*", ""]
    lines += [f"*Date: {format_post_date(record.timestamp)}*", "", body]

    gallery = [name for name in (gallery or []) if name]
    if gallery:
        lines += ["", "## Gallery", ""]
        lines += [f"![{name}]({name})" for name in gallery]

    if record.attachments:
        lines += ["", "## Attachments", ""]
        lines += [f"[{name}]({name})" for name in record.attachments]

    if record.tags:
        lines += ["", "## Tags", ""]
        lines.append(" ".join(f"`{tag}`" for tag in record.tags))

    return "\n".join(lines) + "\n"
