#!/usr/bin/env python3
"""
Session Store Module

Persists browser cookies and the per-site "already logged in" flags between runs.
"""

import json
import logging
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


def read_cookies(path: str) -> List[Dict[str, Any]]:
    """
    Read stored cookies.

    Args:
        path (str): Path to the cookies JSON file.

    Returns:
        List[Dict[str, Any]]: Stored cookies, or an empty list if the file is missing or corrupt.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            cookies = json.load(f)
    except (OSError, ValueError):
        return []
    return cookies if isinstance(cookies, list) else []


async def save_cookies(context, path: str) -> bool:
    """
    Save the browser context's cookies for future runs.

    Args:
        context: Playwright browser context.
        path (str): Path to the cookies JSON file.

    Returns:
        bool: True if cookies were written, False if the context had none.
    """
    cookies = await context.cookies()
    if not cookies:
        logger.warning("⚠️ Empty cookies, not saving")
        return False

    with open(path, "w", encoding="utf-8") as f:
        json.dump(cookies, f)
    logger.info("🌑 Cookies saved for future use")
    return True


def read_flags(path: str) -> Dict[str, bool]:
    """Read the per-site login flags; a missing or corrupt file yields no flags."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            flags = json.load(f)
    except (OSError, ValueError):
        return {}
    return flags if isinstance(flags, dict) else {}


def mark_logged_in(path: str, site: str) -> Dict[str, bool]:
    """
    Record that the operator has logged in to a site.

    Args:
        path (str): Path to the flags JSON file.
        site (str): Site variant name.

    Returns:
        Dict[str, bool]: The updated flags.
    """
    flags = read_flags(path)
    flags[site] = True
    with open(path, "w", encoding="utf-8") as f:
        json.dump(flags, f)
    return flags
