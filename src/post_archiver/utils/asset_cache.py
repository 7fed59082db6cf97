#!/usr/bin/env python3
"""
Asset Cache Module

This module provides the disk-backed asset cache used by the request interception
layer. Entries are keyed by a SHA-256 hash of the URL's origin and path, so query
strings and fragments never defeat reuse. The in-memory mapping is a cache of the
disk directory: it is warmed from disk at startup and filled lazily on a miss.
"""

import os
import asyncio
import hashlib
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import urlsplit

from tqdm import tqdm

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Responses above this size are streamed through and never cached
MAX_CACHEABLE_BYTES = 10 * 1024 * 1024

MIME_TYPES = {
    '.jpeg': 'image/jpeg',
    '.jpg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
    '.svg': 'image/svg+xml',
    '.css': 'text/css',
    '.js': 'application/javascript',
    '.html': 'text/html',
}

DEFAULT_MIME_TYPE = 'application/octet-stream'

_DEFAULT_PORTS = {'http': 80, 'https': 443}


def strip_url(url: str) -> str:
    """
    Reduce a URL to its origin and path.

    Args:
        url (str): Any absolute URL.

    Returns:
        str: scheme://host[:port]/path with query and fragment removed.
    """
    parts = urlsplit(url)
    host = parts.hostname or ''
    port = parts.port
    if port and _DEFAULT_PORTS.get(parts.scheme) != port:
        host = f"{host}:{port}"
    return f"{parts.scheme}://{host}{parts.path or '/'}"


def cache_key(url: str) -> str:
    """
    Derive the cache key for a URL.

    Args:
        url (str): The requested URL.

    Returns:
        str: Hex SHA-256 digest of the URL's origin and path.
    """
    return hashlib.sha256(strip_url(url).encode()).hexdigest()


def guess_extension(url: str) -> str:
    """Return the extension of the URL path, or '.bin' when it has none."""
    ext = os.path.splitext(urlsplit(url).path)[1]
    return ext or '.bin'


def guess_mime_type(ext: str) -> str:
    """Map a file extension to the content type served for it."""
    return MIME_TYPES.get(ext.lower(), DEFAULT_MIME_TYPE)


@dataclass
class CacheEntry:
    """A cached response body and the content type to serve it with."""
    body: bytes
    content_type: str


class AssetCache:
    """
    Disk-backed, memory-fronted cache of static assets.

    Attributes:
        cache_dir (str): Directory holding one <key><ext> file per entry.
        entries (Dict[str, CacheEntry]): In-memory entries by key.
    """

    def __init__(self, cache_dir: str):
        """
        Initialize the AssetCache.

        Args:
            cache_dir (str): Directory for persisted entries. Created if missing.
        """
        self.cache_dir = os.path.abspath(cache_dir)
        self.entries: Dict[str, CacheEntry] = {}
        self._pending: List[asyncio.Future] = []

        os.makedirs(self.cache_dir, exist_ok=True)

    def __len__(self) -> int:
        return len(self.entries)

    def path_for(self, url: str) -> str:
        """Return the on-disk path an entry for `url` is stored under."""
        return os.path.join(self.cache_dir, cache_key(url) + guess_extension(url))

    def warm(self) -> int:
        """
        Load every persisted entry into memory.

        Returns:
            int: Number of entries loaded.
        """
        files = [f for f in os.listdir(self.cache_dir)
                 if os.path.isfile(os.path.join(self.cache_dir, f))]

        for file_name in tqdm(files, desc="Warming asset cache", disable=not files):
            key, ext = os.path.splitext(file_name)
            try:
                with open(os.path.join(self.cache_dir, file_name), 'rb') as f:
                    body = f.read()
            except OSError as e:
                logger.warning(f"Skipping unreadable cache file {file_name}: {e}")
                continue
            self.entries[key] = CacheEntry(body, guess_mime_type(ext))

        logger.info(f"| Loaded {len(files)} cached files from {self.cache_dir}")
        return len(files)

    def lookup(self, url: str) -> Optional[CacheEntry]:
        """
        Look up a cached entry, checking memory first and disk second.

        Args:
            url (str): The requested URL.

        Returns:
            Optional[CacheEntry]: The cached entry, or None on a miss.
        """
        key = cache_key(url)
        entry = self.entries.get(key)
        if entry is not None:
            return entry

        file_path = self.path_for(url)
        if not os.path.exists(file_path):
            return None

        try:
            with open(file_path, 'rb') as f:
                body = f.read()
        except OSError as e:
            logger.warning(f"Failed to read cache file {file_path}: {e}")
            return None

        entry = CacheEntry(body, guess_mime_type(guess_extension(url)))
        self.entries[key] = entry
        return entry

    def store(self, url: str, body: bytes, content_type: Optional[str] = None) -> None:
        """
        Store a response body. The memory entry is updated immediately; the disk
        write is scheduled on the default executor when an event loop is running.

        Args:
            url (str): The requested URL.
            body (bytes): Response body.
            content_type (Optional[str], optional): Content type. Defaults to a guess from the extension.
        """
        ext = guess_extension(url)
        self.entries[cache_key(url)] = CacheEntry(body, content_type or guess_mime_type(ext))

        file_path = self.path_for(url)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write(file_path, body)
            return

        future = loop.run_in_executor(None, self._write, file_path, body)
        self._pending.append(future)
        future.add_done_callback(self._pending.remove)

    async def flush(self) -> None:
        """Wait for every scheduled disk write to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    @staticmethod
    def _write(file_path: str, body: bytes) -> None:
        try:
            with open(file_path, 'wb') as f:
                f.write(body)
        except OSError as e:
            logger.warning(f"Failed to write {file_path}: {e}")
