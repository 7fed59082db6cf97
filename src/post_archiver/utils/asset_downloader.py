#!/usr/bin/env python3
"""
Asset Downloader Module

This module saves post assets (images and attachments) to the output directory.
Buffers are fetched from inside the browser page so the session's cookies apply;
when that keeps failing, a direct aiohttp request carrying the same cookies is
tried. Saved files take the post's publish date as their modification time, and
saved images carry the post's tags as Keywords metadata.
"""

import os
import random
import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional

import aiohttp
import exiftool
import filetype
from exiftool.exceptions import ExifToolException
from playwright.async_api import Error as PlaywrightError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ('jpg', 'jpeg', 'png', 'gif', 'webp', 'jfif', 'bmp', 'svg')

FALLBACK_EXTENSION = 'file'

IN_PAGE_FETCH_SCRIPT = """
async (url) => {
    const response = await fetch(url, { credentials: 'include' });
    if (!response.ok) {
        throw new Error(`Failed to fetch file: ${response.status} ${response.statusText}`);
    }
    const blob = await response.blob();
    return Array.from(new Uint8Array(await blob.arrayBuffer()));
}
"""


def has_image_extension(name: str) -> bool:
    """Check whether a file name already ends in a known image extension."""
    parts = name.rsplit('.', 1)
    return len(parts) == 2 and parts[1].lower() in IMAGE_EXTENSIONS


def detect_extension(body: bytes) -> str:
    """Detect a file extension from magic bytes, falling back to 'file'."""
    kind = filetype.guess(body)
    return kind.extension if kind else FALLBACK_EXTENSION


def write_keywords(file_path: str, tags: List[str]) -> bool:
    """
    Write tags into an image's Keywords metadata with exiftool.

    Args:
        file_path (str): Path to the image.
        tags (List[str]): Tags to write.

    Returns:
        bool: True if the metadata was written.
    """
    try:
        with exiftool.ExifToolHelper() as et:
            et.set_tags(file_path, {"Keywords": ", ".join(tags)},
                        params=["-overwrite_original", "-charset", "UTF8"])
        return True
    except (ExifToolException, OSError) as e:
        logger.warning(f"Failed to write tags to {file_path}: {e}")
        return False


def set_file_time(file_path: str, timestamp: Optional[datetime]) -> bool:
    """
    Set a file's access and modification times, logging instead of raising on failure.

    Args:
        file_path (str): Path to the file.
        timestamp (Optional[datetime]): Time to apply. Nothing happens when None.

    Returns:
        bool: True if the times were applied.
    """
    if timestamp is None:
        return False
    try:
        epoch = timestamp.timestamp()
        os.utime(file_path, (epoch, epoch))
        return True
    except (OSError, OverflowError, ValueError) as e:
        logger.warning(f"Failed to set file time for {file_path}: {e}")
        return False


class FileChecker:
    """
    Snapshot of an output directory used to skip assets that were already saved.

    Attributes:
        directory (str): The directory being checked.
        files (List[str]): Known file names.
    """

    def __init__(self, directory: str):
        self.directory = directory
        os.makedirs(directory, exist_ok=True)
        self.files: List[str] = sorted(os.listdir(directory))

    def find(self, asset_id: str) -> Optional[str]:
        """Return the first known file name containing `asset_id`, or None."""
        if not asset_id:
            return None
        return next((name for name in self.files if asset_id in name), None)

    def has(self, file_name: str) -> bool:
        """Return True if exactly `file_name` is known."""
        return bool(file_name) and file_name in self.files

    def add(self, file_name: str) -> None:
        """Register a file saved during this run."""
        if file_name and file_name not in self.files:
            self.files.append(file_name)


class AssetDownloader:
    """
    Downloads post assets through the browser session.

    Attributes:
        max_retries (int): Attempts per fetch path before giving up.
        timeout (int): Timeout for direct HTTP requests in seconds.
        proxy (Optional[Dict[str, str]]): Proxy settings shared with the browser.
        session (aiohttp.ClientSession): HTTP session for direct requests.
    """

    def __init__(self, max_retries: int = 5, timeout: int = 60,
                 proxy: Optional[Dict[str, str]] = None, retry_delay: float = 0.5):
        """
        Initialize the AssetDownloader.

        Args:
            max_retries (int, optional): Attempts per fetch path. Defaults to 5.
            timeout (int, optional): Timeout for direct HTTP requests in seconds. Defaults to 60.
            proxy (Optional[Dict[str, str]], optional): Proxy server, username and password. Defaults to None.
            retry_delay (float, optional): Base delay for exponential backoff in seconds. Defaults to 0.5.
        """
        self.max_retries = max_retries
        self.timeout = timeout
        self.proxy = proxy
        self.retry_delay = retry_delay
        self.session = None

    async def __aenter__(self):
        """Async context manager entry."""
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    async def _backoff(self, attempt: int) -> None:
        await asyncio.sleep(self.retry_delay * (2 ** attempt) + random.random() * self.retry_delay)

    async def fetch(self, page, url: str) -> bytes:
        """
        Fetch an asset buffer.

        Args:
            page: Playwright page whose session cookies apply.
            url (str): Asset URL.

        Returns:
            bytes: The asset body.

        Raises:
            RuntimeError: If both the in-page and the direct fetch are exhausted.
        """
        for attempt in range(self.max_retries):
            try:
                return bytes(await page.evaluate(IN_PAGE_FETCH_SCRIPT, url))
            except PlaywrightError as e:
                logger.warning(f"In-page fetch failed for {url} (attempt {attempt + 1}/{self.max_retries}): {e}")
                if attempt < self.max_retries - 1:
                    await self._backoff(attempt)

        logger.info(f"Falling back to a direct request for {url}")
        return await self.fetch_direct(url, await self._cookie_header(page, url))

    async def _cookie_header(self, page, url: str) -> str:
        try:
            cookies = await page.context.cookies([url])
        except PlaywrightError as e:
            logger.warning(f"Could not read cookies for {url}: {e}")
            return ""
        return "; ".join(f"{c['name']}={c['value']}" for c in cookies)

    async def fetch_direct(self, url: str, cookie_header: str = "") -> bytes:
        """
        Fetch an asset with a direct HTTP request.

        Args:
            url (str): Asset URL.
            cookie_header (str, optional): Cookie header to send. Defaults to "".

        Returns:
            bytes: The asset body.

        Raises:
            RuntimeError: If every attempt fails.
        """
        if not self.session:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )

        headers = {"Cookie": cookie_header} if cookie_header else {}
        proxy = proxy_auth = None
        if self.proxy:
            proxy = self.proxy['server']
            proxy_auth = aiohttp.BasicAuth(self.proxy['username'], self.proxy.get('password', ''))

        for attempt in range(self.max_retries):
            try:
                async with self.session.get(url, headers=headers, proxy=proxy,
                                            proxy_auth=proxy_auth) as response:
                    response.raise_for_status()
                    return await response.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(f"Direct fetch failed for {url} (attempt {attempt + 1}/{self.max_retries}): {e}")
                if attempt < self.max_retries - 1:
                    await self._backoff(attempt)

        raise RuntimeError(f"🚨 Failed to fetch file: {url}")

    async def download_file(self, page, url: str, out_dir: str, name: str,
                            timestamp: Optional[datetime] = None,
                            body: Optional[bytes] = None,
                            tags: Optional[List[str]] = None) -> str:
        """
        Download an asset into the output directory.

        Args:
            page: Playwright page whose session cookies apply.
            url (str): Asset URL.
            out_dir (str): Output directory.
            name (str): File name, or file stem when it has no image extension.
            timestamp (Optional[datetime], optional): Modification time to apply. Defaults to None.
            body (Optional[bytes], optional): Already fetched body. Defaults to None.
            tags (Optional[List[str]], optional): Keywords for saved images. Defaults to None.

        Returns:
            str: The saved file name.
        """
        if body is None:
            body = await self.fetch(page, url)
        file_name = self.file_name_for(name, body)
        self.save_buffer(os.path.join(out_dir, file_name), body, timestamp, tags)
        return file_name

    @staticmethod
    def file_name_for(name: str, body: bytes) -> str:
        """Append the detected extension unless `name` already has an image extension."""
        if has_image_extension(name):
            return name
        return f"{name}.{detect_extension(body)}"

    @staticmethod
    def save_buffer(file_path: str, body: bytes, timestamp: Optional[datetime] = None,
                    tags: Optional[List[str]] = None) -> None:
        """
        Write a buffer to disk, tag it if it is an image and apply the timestamp to it.

        Args:
            file_path (str): Destination path.
            body (bytes): File contents.
            timestamp (Optional[datetime], optional): Modification time to apply. Defaults to None.
            tags (Optional[List[str]], optional): Keywords written into images. Defaults to None.
        """
        with open(file_path, 'wb') as f:
            f.write(body)
        if tags and has_image_extension(file_path):
            write_keywords(file_path, tags)
        set_file_time(file_path, timestamp)
