"""Safe interaction engine: click buttons that are safe to click, report the effect.

Every click is gated by the dangerous-button rules. After a click the
engine looks for an observable effect (navigation, modal, toast) and
the page-level sweep restores a clean page before the next click.
"""

from __future__ import annotations

import logging

from crawlguard.core.driver import Clickable, PageDriver
from crawlguard.models.types import InteractionResult
from crawlguard.utils.modal_guard import dismiss_modal
from crawlguard.utils.safety import DEFAULT_RULES, SafetyRules, is_dangerous_button

logger = logging.getLogger(__name__)

URL_CHANGED = "URL changed"
MODAL_OPENED = "Modal opened"
TOAST_APPEARED = "Toast appeared"
NO_VISIBLE_EFFECT = "No visible effect"

MODAL_SELECTORS = ('[role="dialog"]', ".modal", '[class*="modal"]', '[class*="Modal"]')
TOAST_SELECTORS = (
    '[role="alert"]',
    ".toast",
    ".snackbar",
    '[class*="toast"]',
    '[class*="Toast"]',
    '[class*="notification"]',
)
BUTTON_SELECTORS = ("button", 'a[role="button"]', '[role="button"]', "a.btn", "a.button")
NAV_LINK_SELECTOR = 'nav a, [role="navigation"] a'

CLICK_TIMEOUT_MS = 2000
SETTLE_MS = 500


async def click_safely(
    driver: PageDriver,
    element: Clickable,
    rules: SafetyRules = DEFAULT_RULES,
) -> InteractionResult:
    """Click ``element`` unless it looks destructive, then classify the effect."""
    text = ""
    try:
        text = ((await element.text()) or "").strip()
        href = await element.get_attribute("href")

        if is_dangerous_button(text, href, rules):
            return InteractionResult(
                success=False, action="skipped", validation="dangerous",
                error=f'Button appears dangerous: "{text}"', target=text,
            )

        if not await element.is_visible() or not await element.is_enabled():
            return InteractionResult(
                success=False, action="skipped", validation="not clickable",
                error="Button not visible or enabled", target=text,
            )

        original_url = driver.current_url()
        try:
            await element.click(timeout_ms=CLICK_TIMEOUT_MS)
        except Exception:
            logger.info('Standard click failed for "%s", trying force click', text[:60])
            await element.click(timeout_ms=CLICK_TIMEOUT_MS, force=True)

        validation = await observe_effect(driver, original_url)
        return InteractionResult(success=True, action="clicked", validation=validation, target=text)

    except Exception as e:
        return InteractionResult(
            success=False, action="failed", validation="error",
            error=f'Button "{text or "unknown"}" failed: {str(e)[:300]}', target=text,
        )


async def observe_effect(driver: PageDriver, original_url: str) -> str:
    await driver.wait(SETTLE_MS)
    if driver.current_url() != original_url:
        return URL_CHANGED
    if await _any_present(driver, MODAL_SELECTORS):
        return MODAL_OPENED
    if await _any_present(driver, TOAST_SELECTORS):
        return TOAST_APPEARED
    return NO_VISIBLE_EFFECT


async def _any_present(driver: PageDriver, selectors: tuple[str, ...]) -> bool:
    for selector in selectors:
        if await driver.count(selector) > 0:
            return True
    return False


async def test_page_buttons(
    driver: PageDriver,
    per_selector_limit: int = 3,
    rules: SafetyRules = DEFAULT_RULES,
) -> list[InteractionResult]:
    """Click up to ``per_selector_limit`` visible buttons per selector, restoring state after each."""
    results: list[InteractionResult] = []

    for selector in BUTTON_SELECTORS:
        visible = []
        for el in await driver.query_all(selector):
            try:
                if await el.is_visible():
                    visible.append(el)
            except Exception:
                continue
            if len(visible) >= per_selector_limit:
                break

        for button in visible:
            page_url = driver.current_url()
            result = await click_safely(driver, button, rules)
            results.append(result)

            if result.validation == URL_CHANGED:
                await _restore_url(driver, page_url)
            elif result.validation == MODAL_OPENED:
                if not await dismiss_modal(driver):
                    logger.info("Could not dismiss modal opened by %r on %s", result.target[:60], page_url)

    return results


async def _restore_url(driver: PageDriver, page_url: str):
    try:
        await driver.go_back(timeout_ms=5000)
    except Exception as e:
        logger.warning("Could not go back (%s), navigating to %s", str(e)[:120], page_url)
        try:
            await driver.navigate(page_url, wait_until="domcontentloaded", timeout_ms=10000)
        except Exception:
            logger.warning("Could not restore %s", page_url)


async def test_navigation_links(driver: PageDriver, rules: SafetyRules = DEFAULT_RULES) -> list[InteractionResult]:
    """Check nav links have a safe target without clicking them."""
    results: list[InteractionResult] = []
    for link in await driver.query_all(NAV_LINK_SELECTOR):
        try:
            href = await link.get_attribute("href")
            text = ((await link.text()) or "").strip()
            if not href or is_dangerous_button(text, href, rules):
                results.append(InteractionResult(
                    success=False, action="skipped", validation="dangerous or no href", target=text,
                ))
                continue
            results.append(InteractionResult(success=True, action="validated", validation="link exists", target=text))
        except Exception as e:
            results.append(InteractionResult(success=False, action="failed", validation="error", error=str(e)[:300]))
    return results
