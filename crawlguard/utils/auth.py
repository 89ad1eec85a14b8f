"""Login bootstrap for authenticated runs.

Logs in once through the site's login form with the configured test
account, then saves the browser storage state so every validation
worker starts from an authenticated context. When no login form can be
found the guest state is saved instead and the run continues
unauthenticated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from playwright.async_api import Browser, Page

from crawlguard.models.errors import AuthenticationError
from crawlguard.models.frontier import ProgressCallback
from crawlguard.utils.config import Settings

logger = logging.getLogger(__name__)

USER_STATE_FILE = "user.json"
GUEST_STATE_FILE = "guest.json"

EMAIL_SELECTOR = 'input[type="email"], input[name="email"], input[placeholder*="email" i]'
PASSWORD_SELECTOR = 'input[type="password"], input[name="password"]'
SUBMIT_SELECTOR = 'button[type="submit"], button:has-text("Login"), button:has-text("Sign in")'
EMAIL_CHOICE_SELECTOR = 'text="Continue with your email"'

FORM_TIMEOUT_MS = 5000
LOGIN_REDIRECT_TIMEOUT_MS = 15000


@dataclass
class AuthResult:
    """Result of an authentication attempt."""
    success: bool
    method: str  # "form", "guest", "cached_state"
    message: str = ""
    url_after: str = ""
    state_file: str | None = None


def user_state_path(settings: Settings) -> Path:
    return Path(settings.AUTH_STATE_DIR) / USER_STATE_FILE


def guest_state_path(settings: Settings) -> Path:
    return Path(settings.AUTH_STATE_DIR) / GUEST_STATE_FILE


def has_auth_state(settings: Settings) -> bool:
    return user_state_path(settings).exists() and guest_state_path(settings).exists()


async def bootstrap_session(
    browser: Browser,
    settings: Settings,
    on_progress: ProgressCallback | None = None,
) -> AuthResult:
    """Log in with the configured credentials and persist the storage state.

    Raises AuthenticationError when the form was submitted but the site
    never left the login page.
    """
    settings.require_credentials()
    progress = on_progress or (lambda *_: None)
    state_dir = Path(settings.AUTH_STATE_DIR)
    state_dir.mkdir(parents=True, exist_ok=True)

    login_url = settings.BASE_URL.rstrip("/") + settings.LOGIN_PATH
    logger.info("Setting up authenticated session via %s", login_url)

    context = await browser.new_context()
    page = await context.new_page()
    try:
        await page.goto(login_url, wait_until="networkidle", timeout=30000)

        if await _is_visible(page, EMAIL_CHOICE_SELECTOR):
            logger.info('Choosing "Continue with your email"')
            await page.locator(EMAIL_CHOICE_SELECTOR).first.click()

        email_input = page.locator(EMAIL_SELECTOR).first
        if not await _is_visible(page, EMAIL_SELECTOR):
            logger.warning(
                "Login form not found on %s (CAPTCHA, changed markup, or already logged in). "
                "Saving guest state instead.", login_url,
            )
            guest = guest_state_path(settings)
            await context.storage_state(path=str(guest))
            result = AuthResult(
                success=False, method="guest",
                message="Login form not found; continuing as guest",
                url_after=page.url, state_file=None,
            )
            progress("auth_attempted", {"success": False, "method": "guest", "message": result.message})
            return result

        await email_input.fill(settings.AUTH_EMAIL)
        await page.locator(PASSWORD_SELECTOR).first.fill(settings.AUTH_PASSWORD)
        await page.locator(SUBMIT_SELECTOR).first.click()

        try:
            await page.wait_for_url(lambda url: "/login" not in url, timeout=LOGIN_REDIRECT_TIMEOUT_MS)
        except Exception as e:
            raise AuthenticationError(
                f"Login failed: still on the login page after {LOGIN_REDIRECT_TIMEOUT_MS}ms ({page.url})"
            ) from e

        user_state = user_state_path(settings)
        await context.storage_state(path=str(user_state))
        logger.info("Saved authenticated state to %s", user_state)

        guest_ctx = await browser.new_context()
        try:
            await guest_ctx.storage_state(path=str(guest_state_path(settings)))
        finally:
            await guest_ctx.close()

        result = AuthResult(
            success=True, method="form",
            message=f"Logged in, redirected to {_short_url(page.url)}",
            url_after=page.url, state_file=str(user_state),
        )
        progress("auth_attempted", {"success": True, "method": "form", "message": result.message})
        return result

    except AuthenticationError:
        raise
    except Exception as e:
        raise AuthenticationError(f"Authentication setup failed: {str(e)[:300]}") from e
    finally:
        await context.close()


async def _is_visible(page: Page, selector: str) -> bool:
    try:
        await page.locator(selector).first.wait_for(state="visible", timeout=FORM_TIMEOUT_MS)
        return True
    except Exception:
        return False


def _short_url(url: str, max_len: int = 80) -> str:
    if len(url) <= max_len:
        return url
    return url[:max_len - 3] + "..."
