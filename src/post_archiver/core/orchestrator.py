#!/usr/bin/env python3
"""
Orchestrator Module

This module runs one archiving session end to end: it launches a persistent
Chrome profile, picks the site from the target URL, installs request
interception over the asset cache, logs in, walks the feed (or saves the single
post) and writes the table of contents. When a run fails, the last feed page
URL is kept so a restarted run resumes from there.
"""

import os
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from playwright.async_api import async_playwright

from post_archiver.core.challenge_guard import ChallengeGuard
from post_archiver.core.interception import InterceptionPolicy
from post_archiver.core.post_extractor import PostExtractor
from post_archiver.core.post_walker import PostWalker
from post_archiver.sources import resolve_source
from post_archiver.utils import env_loader
from post_archiver.utils.asset_cache import AssetCache
from post_archiver.utils.asset_downloader import AssetDownloader
from post_archiver.utils.pacing import wait_for_operator as prompt_operator
from post_archiver.utils.session_store import mark_logged_in, read_cookies, read_flags, save_cookies
from post_archiver.utils.toc_generator import generate_toc
from post_archiver.utils.visited_ledger import VisitedLedger

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    '--auto-open-devtools-for-tabs',
    '--disable-features=ServiceWorker',
    '--enable-features=WebRTC-H264WithOpenH264FFmpeg',
    '--disable-blink-features=AutomationControlled',
]

EXTENSION_DIR = './extensions/adblock'


@dataclass
class ArchiveOptions:
    """
    Settings for one archiving session.

    Attributes:
        out_dir (str): Output directory.
        url (str): Feed or post URL.
        year (Optional[str]): Year filter for feeds.
        update (bool): Stop at the first run of already archived posts.
        recover (bool): Restart failed runs up to `recover_repeats` times.
        proxy (Optional[Dict[str, str]]): Browser proxy settings.
    """
    out_dir: str
    url: str
    year: Optional[str] = None
    update: bool = False
    recover: bool = False
    proxy: Optional[Dict[str, str]] = None
    cache_dir: str = env_loader.DEFAULT_CACHE_DIR
    browser_profile_dir: str = env_loader.DEFAULT_BROWSER_PROFILE
    cookies_file: str = env_loader.DEFAULT_COOKIES_FILE
    flags_file: str = env_loader.DEFAULT_FLAGS_FILE
    recover_repeats: int = env_loader.DEFAULT_RECOVER_REPEATS
    navigation_timeout_ms: int = env_loader.DEFAULT_NAVIGATION_TIMEOUT_MS
    default_timeout_ms: int = env_loader.DEFAULT_TIMEOUT_MS
    cache_report_interval: int = env_loader.DEFAULT_CACHE_REPORT_INTERVAL

    @classmethod
    def from_config(cls, config: Dict[str, Any], **kwargs) -> 'ArchiveOptions':
        """Build options from `get_general_config()` output plus explicit settings."""
        fields = set(cls.__dataclass_fields__)
        merged = {k: v for k, v in config.items() if k in fields}
        merged.update(kwargs)
        return cls(**merged)

    def validate(self) -> None:
        if not self.url:
            raise ValueError("No url provided")
        if not self.out_dir:
            raise ValueError("No output directory provided")


def prepare_dir(dir_name: str) -> None:
    if not os.path.exists(dir_name):
        os.makedirs(dir_name)
        logger.info(f"Created output directory {dir_name}")
    else:
        logger.info(f"Directory {dir_name} already exists")


class Orchestrator:
    """
    Runs archiving sessions.

    Attributes:
        options (ArchiveOptions): Session settings.
        page_url (str): Feed page to resume from after a failure.
        finished (bool): The last run completed.
    """

    def __init__(self, options: ArchiveOptions, wait_for_operator=None):
        """
        Initialize the Orchestrator.

        Args:
            options (ArchiveOptions): Session settings.
            wait_for_operator (Optional[Callable], optional): Coroutine function that blocks
                until the operator confirms. Defaults to a stdin prompt.
        """
        self.options = options
        self.wait_for_operator = wait_for_operator or prompt_operator
        self.page_url = ''
        self.finished = False

    async def launch(self, playwright):
        """Launch the persistent Chrome profile."""
        args = list(LAUNCH_ARGS)
        extension_path = os.path.abspath(EXTENSION_DIR)
        if os.path.isdir(extension_path) and os.listdir(extension_path):
            args += [
                f'--disable-extensions-except={extension_path}',
                f'--load-extension={extension_path}',
            ]

        logger.info("Launching Chrome browser")
        return await playwright.chromium.launch_persistent_context(
            os.path.abspath(self.options.browser_profile_dir),
            headless=False,
            args=args,
            service_workers="block",
            no_viewport=True,
            channel="chrome",
            proxy=self.options.proxy
        )

    async def login(self, context, page, source) -> None:
        """Log in on first use of a site, then restore the stored session cookies."""
        cookies = read_cookies(self.options.cookies_file)
        if not read_flags(self.options.flags_file).get(source.name):
            await page.goto(source.login_url)
            logger.info("🔑 Please login and press Enter")
            await self.wait_for_operator("⌛ Press Enter to continue...\n")
            mark_logged_in(self.options.flags_file, source.name)
        if cookies:
            await context.add_cookies(cookies)
        await save_cookies(context, self.options.cookies_file)

    async def run(self) -> str:
        """
        Run one archiving session.

        Returns:
            str: The directory posts were written to.
        """
        options = self.options
        options.validate()
        source = resolve_source(options.url)
        prepare_dir(options.out_dir)

        async with async_playwright() as playwright:
            context = await self.launch(playwright)
            context.set_default_timeout(options.default_timeout_ms)

            cache = AssetCache(os.path.join(options.cache_dir, source.name))
            cache.warm()
            policy = InterceptionPolicy(cache, source)
            await policy.install(context)
            policy.start_reporter(options.cache_report_interval)

            walker = None
            try:
                page = await context.new_page()
                await self.login(context, page, source)
                guard = ChallengeGuard(context, options.cookies_file, self.wait_for_operator)

                async with AssetDownloader(proxy=options.proxy) as downloader:
                    extractor = PostExtractor(source, guard, downloader,
                                              navigation_timeout_ms=options.navigation_timeout_ms)
                    with VisitedLedger(options.out_dir) as ledger:
                        walker = PostWalker(page, context, source, extractor, guard, ledger,
                                            options.out_dir, update_mode=options.update,
                                            navigation_timeout_ms=options.navigation_timeout_ms,
                                            wait_for_operator=self.wait_for_operator)
                        if self.page_url:
                            logger.info(f"⏯  Continuing from {self.page_url}")
                        final_dir = await walker.walk(self.page_url or options.url, options.year)

                if source.is_feed_url(options.url):
                    generate_toc(final_dir)

                await save_cookies(context, options.cookies_file)
                self.finished = True
                logger.info("💯 Extractor finished. Press Enter to close the browser.")
                await self.wait_for_operator("⌛ Press Enter to continue...\n")
                return final_dir
            except Exception:
                if walker is not None and walker.page_url:
                    self.page_url = walker.page_url
                raise
            finally:
                policy.stop_reporter()
                policy.report()
                await cache.flush()
                await context.close()


async def run_with_recovery(orchestrator: Orchestrator, repeats: int, delay: float = 1.0) -> str:
    """
    Run a session, restarting it after failures.

    Args:
        orchestrator (Orchestrator): The orchestrator to run.
        repeats (int): Maximum number of runs.
        delay (float, optional): Seconds between runs. Defaults to 1.0.

    Returns:
        str: The directory posts were written to.

    Raises:
        Exception: The last failure once every attempt has failed.
    """
    logger.info("Running in auto-recover mode. Press Ctrl+C at any time to close")
    remaining = repeats
    while True:
        try:
            return await orchestrator.run()
        except ValueError:
            raise
        except Exception as e:
            remaining -= 1
            if remaining <= 0:
                logger.error(f"Recovery attempts exhausted: {e}")
                raise
            logger.warning(f"🔃  Failure, restarting ({remaining} left): {e}")
            await asyncio.sleep(delay)


async def run_archive(options: ArchiveOptions, wait_for_operator=None) -> str:
    """
    Archive a feed or post with the given options.

    Args:
        options (ArchiveOptions): Session settings.
        wait_for_operator (Optional[Callable], optional): Operator prompt. Defaults to stdin.

    Returns:
        str: The directory posts were written to.
    """
    orchestrator = Orchestrator(options, wait_for_operator)
    if options.recover:
        return await run_with_recovery(orchestrator, options.recover_repeats)
    return await orchestrator.run()
