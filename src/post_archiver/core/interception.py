#!/usr/bin/env python3
"""
Request Interception Module

This module decides what happens to every static-asset request the browser makes:
tracking requests are aborted, rogue images are answered with an empty body, and
the site's own assets are served from the asset cache or fetched and cached.
Responses above the size ceiling are passed to the page without being cached.
"""

import random
import asyncio
import logging
from typing import Optional

from playwright.async_api import Error as PlaywrightError

from post_archiver.models import Decision
from post_archiver.utils.asset_cache import AssetCache, MAX_CACHEABLE_BYTES
from post_archiver.utils.pacing import wait_for_delay

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

TRACKING_DOMAINS = (
    'doubleclick.net',
    'analytics.google.com',
    'googletagmanager.com',
    'googleoptimize.com',
    'twitter.com',
    'vimeo.com',
    'ads-twitter.com',
)

TRACKING_PATTERNS = (
    '**://*doubleclick.net/**',
    '**://analytics.google.com/**',
    '**://*googletagmanager.com/**',
    '**://*googleoptimize.com/**',
    '**://*twitter.com/**',
    '**://*vimeo.com/**',
    'https://static.ads-twitter.com/uwt.js',
)

ASSET_GLOB = '**/*.{js,css,jpg,jpeg,png,gif,svg}*'

NEVER_CACHED_MARKERS = ('cloudflare', 'challenge')


def top_level_url(request) -> str:
    """Return the URL of the top-most frame that issued a request, or ''."""
    try:
        frame = request.frame
        while frame.parent_frame is not None:
            frame = frame.parent_frame
        return frame.url or ''
    except PlaywrightError:
        # service worker requests have no frame
        return ''


def body_size(headers: dict, body: bytes) -> int:
    """Content length from the response headers, else the length of the body."""
    value = (headers or {}).get('content-length', '')
    return int(value) if value.isdigit() else len(body)


class InterceptionPolicy:
    """
    Per-site request interception.

    Attributes:
        cache (AssetCache): Cache consulted and filled by the policy.
        source (PostSource): Active site.
        hits (int): Requests served from the cache.
        total (int): Requests that reached the cache lookup.
    """

    def __init__(self, cache: AssetCache, source, serve_jitter: float = 0.05):
        """
        Initialize the InterceptionPolicy.

        Args:
            cache (AssetCache): Asset cache.
            source (PostSource): Active site.
            serve_jitter (float, optional): Upper bound of the random delay before a
                cached response is served, in seconds. Defaults to 0.05.
        """
        self.cache = cache
        self.source = source
        self.serve_jitter = serve_jitter
        self.hits = 0
        self.total = 0
        self._reporter: Optional[asyncio.Task] = None

    @property
    def hit_rate(self) -> float:
        return (self.hits * 100 / self.total) if self.total else 0.0

    def decide(self, url: str, top_url: str = '') -> Decision:
        """
        Classify a request. Rules apply in order and the first match wins.

        Args:
            url (str): Requested URL.
            top_url (str, optional): URL of the page that issued the request. Defaults to ''.

        Returns:
            Decision: What to do with the request.
        """
        if any(domain in url for domain in TRACKING_DOMAINS):
            return Decision.ABORT

        if not self.source.owns_asset(url):
            return Decision.PASS_THROUGH

        rogue = self.source.rogue_asset(url, top_url)
        if rogue is not None:
            return rogue

        path = url.split('?')[0].split('#')[0]
        if any(marker in url for marker in NEVER_CACHED_MARKERS):
            return Decision.PASS_THROUGH
        if 'json' in path or 'login' in top_url:
            return Decision.PASS_THROUGH

        self.total += 1
        if self.cache.lookup(url) is not None:
            return Decision.SERVE_FROM_CACHE
        return Decision.FETCH_THEN_CACHE

    async def handle(self, route) -> None:
        """Route handler: apply the decision for an intercepted request."""
        request = route.request
        url = request.url
        try:
            decision = self.decide(url, top_level_url(request))

            if decision == Decision.ABORT:
                await route.abort()
            elif decision == Decision.PASS_THROUGH:
                await route.continue_()
            elif decision == Decision.FULFILL_EMPTY:
                await route.fulfill(status=200, headers={'Content-Type': 'image/gif'}, body=b'')
            elif decision == Decision.SERVE_FROM_CACHE:
                await self._serve_cached(route, url)
            else:
                await self._fetch_then_cache(route, url)
        except Exception as e:
            logger.debug(f"Interception failed for {url}, continuing: {e}")
            try:
                await route.continue_()
            except PlaywrightError as continue_error:
                logger.debug(f"Route for {url} already handled: {continue_error}")

    async def _serve_cached(self, route, url: str) -> None:
        entry = self.cache.lookup(url)
        if entry is None:
            await self._fetch_then_cache(route, url)
            return
        self.hits += 1
        await wait_for_delay(random.random() * self.serve_jitter)
        await route.fulfill(status=200, headers={'Content-Type': entry.content_type}, body=entry.body)

    async def _fetch_then_cache(self, route, url: str) -> None:
        response = await route.fetch()
        headers = response.headers
        body = await response.body()

        if body_size(headers, body) > MAX_CACHEABLE_BYTES:
            logger.debug(f"! Not caching huge request {url}")
        else:
            self.cache.store(url, body, headers.get('content-type'))

        await route.fulfill(status=response.status, headers=headers, body=body)

    def report(self) -> str:
        message = f"Cache hit rate {self.hits}/{self.total}, {self.hit_rate:.2f}%"
        logger.info(message)
        return message

    async def _report_periodically(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.report()

    def start_reporter(self, interval: float = 60) -> asyncio.Task:
        """Log the cache hit rate every `interval` seconds until stopped."""
        self.stop_reporter()
        self._reporter = asyncio.create_task(self._report_periodically(interval))
        return self._reporter

    def stop_reporter(self) -> None:
        if self._reporter is not None:
            self._reporter.cancel()
            self._reporter = None

    async def install(self, context) -> None:
        """
        Register the tracking blocklist and the asset route on a browser context.

        Args:
            context: Playwright browser context.
        """
        for pattern in TRACKING_PATTERNS:
            await context.route(pattern, self._abort)
        await context.route(ASSET_GLOB, self.handle)
        logger.info(f"Request interception installed for {self.source.name}")

    @staticmethod
    async def _abort(route) -> None:
        await route.abort()
