#!/usr/bin/env python3
"""
Pacing Module

Human-speed pauses and interactions used between browser operations, plus the
blocking operator prompt used for logins, challenges and the final shutdown.
"""

import random
import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)

OPERATOR_PROMPT = "⌛ Press Enter to continue...\n"

HUMAN_SCROLL_SCRIPT = """
async () => {
    const delay = (ms) => new Promise((res) => setTimeout(res, ms));
    let totalHeight = 0;
    const distance = 100 + Math.random() * 50;
    while (totalHeight < document.body.scrollHeight) {
        window.scrollBy(0, distance);
        totalHeight += distance;
        await delay(100 + Math.random() * 200);
    }
}
"""


async def wait_for_delay(delay: Optional[float] = None) -> None:
    """
    Pause cooperatively.

    Args:
        delay (Optional[float], optional): Seconds to wait. Defaults to a random 0-1 s.
    """
    await asyncio.sleep(random.random() if delay is None else delay)


async def wait_for_operator(message: str = OPERATOR_PROMPT) -> None:
    """Block until the operator presses Enter, without stalling the event loop."""
    await asyncio.to_thread(input, message)


async def random_scroll(page) -> None:
    """Scroll the page down by a random 200-1200 px."""
    offset = random.randint(200, 1200)
    await page.evaluate("(y) => window.scrollBy(0, y)", offset)


async def random_mouse_movements(page, move_count: int = 5) -> None:
    """
    Move the mouse around randomly within the current viewport.

    Args:
        page: Playwright page.
        move_count (int, optional): Number of random moves. Defaults to 5.
    """
    viewport = await page.evaluate(
        "() => ({ width: window.innerWidth, height: window.innerHeight })"
    )
    if not viewport or not viewport.get("width") or not viewport.get("height"):
        logger.warning("No valid viewport size found. Skipping random mouse movements.")
        return

    for _ in range(move_count):
        x = random.randint(0, viewport["width"] - 1)
        y = random.randint(0, viewport["height"] - 1)
        await page.mouse.move(x, y, steps=random.randint(15, 25))
        await page.wait_for_timeout(random.randint(200, 500))


async def human_like_scroll_to_bottom(page) -> None:
    """Scroll to the bottom of the page in small, irregular steps."""
    await page.evaluate(HUMAN_SCROLL_SCRIPT)
