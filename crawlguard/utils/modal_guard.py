"""Modal dismissal after an interaction opened one.

Tries explicit close controls first, then generic close/dismiss
buttons. Returns whether anything was clicked; never raises.
"""

from __future__ import annotations

import logging

from crawlguard.core.driver import PageDriver

logger = logging.getLogger(__name__)

CLOSE_SELECTORS = (
    '[aria-label="Close"]',
    'button[aria-label*="close" i]',
    'button[aria-label*="dismiss" i]',
    '[role="dialog"] button[class*="close"]',
    '[class*="modal"] button[class*="close"]',
    ".close",
    '[class*="close"]',
)


async def dismiss_modal(driver: PageDriver) -> bool:
    for selector in CLOSE_SELECTORS:
        try:
            candidates = await driver.query_all(selector)
            for el in candidates:
                if await el.is_visible():
                    await el.click(timeout_ms=2000)
                    await driver.wait(300)
                    return True
        except Exception:
            logger.debug("Close control %s not usable", selector, exc_info=True)
            continue
    return False
