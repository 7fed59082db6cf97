#!/usr/bin/env python3
"""
Challenge Guard Module

Wraps operations that touch a live page. Before each attempt it lets the page
settle and looks for an anti-automation challenge; when one is showing, the
operator solves it by hand, the session cookies are saved and the operation is
attempted again from the start.

Retries are unbounded: a challenge that never clears keeps the run waiting on
the operator.
"""

import random
import logging
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError

from post_archiver.utils.pacing import wait_for_delay, wait_for_operator as prompt_operator
from post_archiver.utils.session_store import save_cookies

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

CHALLENGE_SELECTOR = '.ray-id, ._challenge_basic_security'


class ChallengeGuard:
    """
    Pause-and-retry wrapper for page operations.

    Attributes:
        context: Playwright browser context whose cookies are saved after a challenge.
        cookies_file (str): Where cookies are saved.
        challenges (int): Number of challenges resolved so far.
    """

    def __init__(self, context, cookies_file: str,
                 wait_for_operator: Optional[Callable[[str], Awaitable[None]]] = None):
        """
        Initialize the ChallengeGuard.

        Args:
            context: Playwright browser context.
            cookies_file (str): Path cookies are saved to after a challenge.
            wait_for_operator (Optional[Callable], optional): Coroutine function that blocks
                until the operator confirms. Defaults to a stdin prompt.
        """
        self.context = context
        self.cookies_file = cookies_file
        self.wait_for_operator = wait_for_operator or prompt_operator
        self.challenges = 0

    async def is_challenged(self, page) -> bool:
        """Check whether the page currently shows a challenge."""
        await page.wait_for_load_state("domcontentloaded")
        return await page.locator(CHALLENGE_SELECTOR).count() > 0

    async def run(self, page, operation: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run an operation once the page is free of challenges.

        Args:
            page: Playwright page the operation works on.
            operation (Callable[[], Awaitable[Any]]): Zero-argument coroutine function.

        Returns:
            Any: Whatever the operation returns.
        """
        while True:
            try:
                challenged = await self.is_challenged(page)
            except PlaywrightError as e:
                logger.warning(f"! Failed guard, waiting: {e}")
                await wait_for_delay(random.random())
                continue

            if not challenged:
                return await operation()

            self.challenges += 1
            logger.warning("! Please solve captcha")
            await self.wait_for_operator("⌛ Solve the challenge, then press Enter to continue...\n")
            await save_cookies(self.context, self.cookies_file)
