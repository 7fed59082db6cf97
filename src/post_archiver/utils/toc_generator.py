#!/usr/bin/env python3
"""
TOC Generator Module

Builds a TOC.md index for an output directory from the headers of the post
Markdown files in it, newest post first.
"""

import os
import re
import logging
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

TOC_FILE = "TOC.md"

_TITLE = re.compile(r'^# \[(.+?)\]\((http.+?)\)', re.MULTILINE)
_DATE = re.compile(r'\*Date:\s*(.+?)\*', re.MULTILINE)
_TRAILING_ID = re.compile(r'[-/](\d+)/?$')


@dataclass
class TocEntry:
    """One line of the table of contents."""
    id: int
    title: str
    date: str
    file_name: str
    url: str

    def to_markdown(self) -> str:
        return f"*{self.date}* - [{self.title}]({self.file_name}) [🔗]({self.url})"


def extract_id_from_url(url: str) -> int:
    """Return the numeric id suffix of a post URL (".../slug-123" or ".../posts/123"), or 0."""
    match = _TRAILING_ID.search(url.split('?')[0])
    return int(match.group(1)) if match else 0


def parse_markdown_file(file_path: str) -> Optional[TocEntry]:
    """
    Read the title, date and source URL from a post Markdown file.

    Args:
        file_path (str): Path to the Markdown file.

    Returns:
        Optional[TocEntry]: The entry, or None when the file has no post header.
    """
    with open(file_path, 'r', encoding='utf-8') as f:
        content = f.read()

    title_match = _TITLE.search(content)
    date_match = _DATE.search(content)
    if not title_match or not date_match:
        return None

    title, url = title_match.groups()
    return TocEntry(
        id=extract_id_from_url(url),
        title=title,
        date=date_match.group(1).strip(),
        file_name=os.path.basename(file_path),
        url=url
    )


def generate_toc(markdown_dir: str) -> str:
    """
    Write TOC.md for a directory of post Markdown files.

    Args:
        markdown_dir (str): Directory holding the post files.

    Returns:
        str: Path to the written TOC file.

    Raises:
        ValueError: If the directory does not exist.
    """
    markdown_dir = os.path.abspath(markdown_dir)
    if not os.path.isdir(markdown_dir):
        raise ValueError(f"❌ Directory not found: {markdown_dir}")

    files = [f for f in os.listdir(markdown_dir) if f.endswith('.md') and f != TOC_FILE]
    logger.info(f"Found {len(files)} files.")

    entries: List[TocEntry] = []
    for file_name in files:
        entry = parse_markdown_file(os.path.join(markdown_dir, file_name))
        if entry is not None:
            entries.append(entry)
    entries.sort(key=lambda e: e.id, reverse=True)

    toc_file = os.path.join(markdown_dir, TOC_FILE)
    with open(toc_file, 'w', encoding='utf-8') as f:
        f.write("\n".join(entry.to_markdown() for entry in entries) + "\n")

    logger.info(f"✅ TOC generated at: {toc_file}")
    return toc_file
