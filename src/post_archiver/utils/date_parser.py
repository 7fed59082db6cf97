#!/usr/bin/env python3
"""
Date Parser Module

Turns the human-readable publish dates shown on post pages into datetimes.
Every parser here falls back to the current time instead of raising, so a
garbled date never stops a post from being saved.
"""

import re
import logging
from datetime import datetime, timedelta
from typing import Optional

logger = logging.getLogger(__name__)

# Formats tried in order once relative forms have been ruled out
DATE_FORMATS = (
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d, %Y %H:%M",
    "%B %d, %Y %H:%M",
    "%d %B %Y",
    "%d %b %Y",
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y/%m/%d",
    "%Y/%m/%d %H:%M",
    "%Y年%m月%d日",
    "%Y年%m月%d日 %H:%M",
)

# Inputs longer than this are not dates
MAX_DATE_LENGTH = 64

_HOURS_AGO = re.compile(r"^(\d+)\s*hours?\s*ago$")
_DAYS_AGO = re.compile(r"^(\d+)\s*days?\s*ago$")
_MONTH_DAY = re.compile(r"^([a-zA-Z]+)\s+(\d{1,2})$")
_ORDINAL = re.compile(r"(\d+)(st|nd|rd|th)")
_SUBSTACK_DATE_LINE = re.compile(r"\w+\s\d+,\s\d+")


def parse_absolute_date(text: str) -> Optional[datetime]:
    """
    Parse a date written out in full.

    Args:
        text (str): Date text such as "Apr 27, 2018".

    Returns:
        Optional[datetime]: The parsed date, or None if no known format matches.
    """
    if not text:
        return None

    cleaned = " ".join(text.strip().split())
    if len(cleaned) > MAX_DATE_LENGTH:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt)
        except (ValueError, OverflowError):
            continue

    try:
        return datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
    except (ValueError, OverflowError):
        return None


def parse_date(text: str, now: Optional[datetime] = None) -> datetime:
    """
    Parse a feed date that may be relative ("17 hours ago", "5 days ago"),
    month-and-day only ("February 26", current year assumed) or absolute.

    Args:
        text (str): Raw date text from the page.
        now (Optional[datetime], optional): Reference time. Defaults to the current time.

    Returns:
        datetime: The parsed date, or `now` when the text cannot be parsed.
    """
    now = now or datetime.now()
    lowered = (text or "").lower().strip()
    if not lowered or len(lowered) > MAX_DATE_LENGTH:
        return now

    try:
        match = _HOURS_AGO.match(lowered)
        if match:
            logger.debug("| Matched hours ago")
            return now - timedelta(hours=int(match.group(1)))

        match = _DAYS_AGO.match(lowered)
        if match:
            logger.debug("| Matched days ago")
            return now - timedelta(days=int(match.group(1)))

        match = _MONTH_DAY.match(lowered)
        if match:
            logger.debug("| Matched month + day")
            month, day = match.groups()
            parsed = parse_absolute_date(f"{month.capitalize()} {day}, {now.year}")
            if parsed:
                return parsed
    except (ValueError, OverflowError) as e:
        logger.warning(f"Failed to parse date from {text!r}: {e}")
        return now

    return parse_absolute_date(text) or now


def parse_ordinal_date(text: str, now: Optional[datetime] = None) -> datetime:
    """
    Parse a date like "March 13th, 2024 12:00・Fee" by dropping everything after
    the dot separator and the ordinal suffix of the day.
    """
    now = now or datetime.now()
    if not text:
        return now

    head = text.split("・")[0]
    cleaned = _ORDINAL.sub(r"\1", head, count=1)
    parsed = parse_absolute_date(cleaned)
    if parsed is None:
        logger.warning(f"Failed to parse date from {text!r}")
        return now
    return parsed


def parse_header_date(text: str, now: Optional[datetime] = None) -> datetime:
    """Parse the first line of a post header that looks like "Jan 5, 2024"."""
    now = now or datetime.now()
    for line in (text or "").split("\n"):
        if line and _SUBSTACK_DATE_LINE.search(line):
            parsed = parse_absolute_date(line)
            if parsed:
                return parsed
    return now


def format_post_date(timestamp: datetime) -> str:
    """Format a publish date the way the Markdown header shows it, e.g. "05 March 2024"."""
    return timestamp.strftime("%d %B %Y")
