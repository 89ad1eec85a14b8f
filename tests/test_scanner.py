"""Tests for run orchestration in CrawlGuardScanner."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace

import pytest

from crawlguard.core import scanner as scanner_module
from crawlguard.core.scanner import CrawlGuardScanner
from crawlguard.models.errors import AuthenticationError, ConfigurationError
from crawlguard.utils.auth import AuthResult
from crawlguard.utils.config import get_settings


class FakeBrowser:
    def __init__(self):
        self.closed = False

    async def close(self):
        self.closed = True


@pytest.fixture
def browser(monkeypatch):
    """Replace Playwright with a browser that only records being closed."""
    fake = FakeBrowser()

    async def launch(headless=True):
        return fake

    @asynccontextmanager
    async def fake_playwright():
        yield SimpleNamespace(chromium=SimpleNamespace(launch=launch))

    monkeypatch.setattr(scanner_module, "async_playwright", fake_playwright)
    return fake


@pytest.fixture
def steps(monkeypatch):
    """Record the order of the scanner's pipeline stages."""
    recorded = []

    async def discover(self, browser):
        recorded.append("discover")
        self.result.discovery = SimpleNamespace(urls=["https://x.com/"])

    async def validate(self, browser, urls, storage_state):
        recorded.append(("validate", tuple(urls), storage_state))

    async def sweep(self, browser, urls, storage_state):
        recorded.append(("buttons", tuple(urls), storage_state))

    monkeypatch.setattr(CrawlGuardScanner, "_discover", discover)
    monkeypatch.setattr(CrawlGuardScanner, "_validate", validate)
    monkeypatch.setattr(CrawlGuardScanner, "_sweep_buttons", sweep)
    return recorded


def auth_settings(**overrides):
    return get_settings(
        BASE_URL="https://x.com", REQUIRE_AUTH=True,
        AUTH_EMAIL="qa@x.com", AUTH_PASSWORD="hunter2", **overrides,
    )


class TestScanOrdering:

    async def test_rejected_login_stops_before_discovery(self, monkeypatch, browser, steps):
        async def rejected(browser, settings, on_progress=None):
            steps.append("login")
            raise AuthenticationError("Login failed: still on https://x.com/login")

        monkeypatch.setattr(scanner_module, "bootstrap_session", rejected)

        with pytest.raises(AuthenticationError):
            await CrawlGuardScanner(auth_settings()).scan()

        assert steps == ["login"]
        assert browser.closed

    async def test_login_runs_before_discovery(self, monkeypatch, browser, steps):
        async def accepted(browser, settings, on_progress=None):
            steps.append("login")
            return AuthResult(success=True, method="form", state_file=".auth/user.json")

        monkeypatch.setattr(scanner_module, "bootstrap_session", accepted)

        result = await CrawlGuardScanner(auth_settings()).scan()

        assert steps == ["login", "discover", ("validate", ("https://x.com/",), ".auth/user.json")]
        assert result.auth.method == "form"
        assert browser.closed


class TestAuthenticate:

    def write_state(self, *names):
        state_dir = Path(".auth")
        state_dir.mkdir()
        for name in names:
            (state_dir / name).write_text('{"cookies": [], "origins": []}')

    async def test_reuses_complete_saved_state(self):
        self.write_state("user.json", "guest.json")
        scanner = CrawlGuardScanner(get_settings())

        state = await scanner._authenticate(browser=None)

        assert state == str(Path(".auth") / "user.json")
        assert scanner.result.auth.method == "cached_state"

    async def test_partial_saved_state_is_ignored(self):
        self.write_state("user.json")
        scanner = CrawlGuardScanner(get_settings())

        assert await scanner._authenticate(browser=None) is None
        assert scanner.result.auth is None


class TestButtonSweepTargets:

    def test_key_page_urls_dedupe_and_skip_medium(self):
        settings = get_settings(BASE_URL="https://x.com", REGRESSION_PAGES=[
            {"path": "/", "name": "Home again", "priority": "high"},
            {"path": "/pricing/", "name": "Pricing", "priority": "high"},
            {"path": "/blog", "name": "Blog", "priority": "medium"},
        ])
        urls = CrawlGuardScanner(settings)._key_page_urls()
        assert urls == ["https://x.com/", "https://x.com/login", "https://x.com/pricing"]

    async def test_buttons_default_to_key_pages(self, browser, steps):
        await CrawlGuardScanner(get_settings(BASE_URL="https://x.com")).test_buttons()
        assert steps == [("buttons", ("https://x.com/", "https://x.com/login"), None)]

    async def test_buttons_from_discovery_needs_an_artifact(self, browser, steps):
        with pytest.raises(ConfigurationError, match="run discovery first"):
            await CrawlGuardScanner(get_settings()).test_buttons(from_discovery=True)
        assert steps == []


class TestSettingsLogging:

    def test_settings_logged_with_secrets_redacted(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="crawlguard.core.scanner"):
            CrawlGuardScanner(auth_settings())

        assert "Run settings" in caplog.text
        assert "hunter2" not in caplog.text
        assert "[REDACTED]" in caplog.text
        assert "qa@x.com" in caplog.text
