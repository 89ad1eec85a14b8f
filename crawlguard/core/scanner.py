"""Main scanner: orchestrates auth, discovery, validation, smoke and the button sweep.

Owns the Playwright lifecycle. Login runs first so a rejected account
stops the run before any crawling. Discovery runs on one page in one
context; validation gets a PlaywrightSession that hands every worker
its own isolated context, loaded with the saved login state when one
exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from playwright.async_api import Browser, async_playwright

from crawlguard.core.discovery import DiscoveryEngine, DiscoveryRun, load_discovery_output
from crawlguard.core import interactions
from crawlguard.core.driver import PlaywrightDriver, PlaywrightSession
from crawlguard.core.smoke import SmokeCheck, SmokeRun
from crawlguard.core.validation import ValidationEngine, ValidationRun
from crawlguard.detectors.api_monitor import ApiMonitor
from crawlguard.detectors.quality_gates import CONSOLE_IGNORE_PATTERNS, PageMonitor
from crawlguard.models.accumulator import ReportAccumulator
from crawlguard.models.errors import ConfigurationError
from crawlguard.models.frontier import ProgressCallback
from crawlguard.models.types import InteractionResult, ValidationStatus
from crawlguard.utils.auth import AuthResult, bootstrap_session, has_auth_state, user_state_path
from crawlguard.utils.config import (
    DISCOVERY_OUTPUT_FILE, DISCOVERY_SUMMARY_FILE, SMOKE_OUTPUT_FILE,
    VALIDATION_OUTPUT_FILE, VALIDATION_SUMMARY_FILE, Settings,
)
from crawlguard.utils.logging import redact_dict

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1920, "height": 1080}
REPORT_FILE = "crawl-report.json"


@dataclass
class ScanResult:
    discovery: DiscoveryRun | None = None
    validation: ValidationRun | None = None
    smoke: SmokeRun | None = None
    auth: AuthResult | None = None
    interactions: dict[str, list[InteractionResult]] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def has_criticals(self) -> bool:
        if self.validation is not None and not self.validation.acceptable:
            return True
        return self.smoke is not None and not self.smoke.acceptable


class CrawlGuardScanner:
    """End-to-end crawler: discover URLs, validate each, optionally sweep buttons."""

    def __init__(
        self,
        settings: Settings,
        on_progress: ProgressCallback | None = None,
        accumulator: ReportAccumulator | None = None,
    ):
        self.settings = settings
        self._on_progress = on_progress or (lambda *_: None)
        self.accumulator = accumulator or ReportAccumulator()
        self.result = ScanResult()
        logger.debug("Run settings: %s", redact_dict(settings.model_dump()))

    async def scan(self, test_buttons: bool = False) -> ScanResult:
        """Login, discovery, validation, then (optionally) the button sweep."""
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(headless=self.settings.HEADLESS)
            try:
                storage_state = await self._authenticate(browser)
                await self._discover(browser)
                await self._validate(browser, self.result.discovery.urls, storage_state)
                if test_buttons:
                    passed = [r.url for r in self.result.validation.results if r.status == ValidationStatus.PASS]
                    await self._sweep_buttons(browser, passed, storage_state)
            finally:
                await browser.close()
        self._finish()
        return self.result

    async def discover(self) -> ScanResult:
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(headless=self.settings.HEADLESS)
            try:
                await self._discover(browser)
            finally:
                await browser.close()
        self._finish()
        return self.result

    async def validate(self, urls: list[str] | None = None) -> ScanResult:
        """Validate ``urls``, or the URLs of the saved discovery artifact."""
        urls = urls if urls is not None else self._load_discovered_urls()
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(headless=self.settings.HEADLESS)
            try:
                storage_state = await self._authenticate(browser)
                await self._validate(browser, urls, storage_state)
            finally:
                await browser.close()
        self._finish()
        return self.result

    async def smoke(self) -> ScanResult:
        """Load every critical key page with the right session."""
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(headless=self.settings.HEADLESS)
            try:
                storage_state = await self._authenticate(browser)
                await self._smoke(browser, storage_state)
            finally:
                await browser.close()
        self._finish()
        return self.result

    async def test_buttons(self, urls: list[str] | None = None, from_discovery: bool = False) -> ScanResult:
        """Sweep ``urls``; by default the critical and high priority key pages."""
        if urls is None:
            urls = self._load_discovered_urls() if from_discovery else self._key_page_urls()
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(headless=self.settings.HEADLESS)
            try:
                storage_state = await self._authenticate(browser)
                await self._sweep_buttons(browser, urls, storage_state)
            finally:
                await browser.close()
        self._finish()
        return self.result

    async def _discover(self, browser: Browser):
        s = self.settings
        ctx = await browser.new_context(viewport=VIEWPORT)
        driver = PlaywrightDriver(await ctx.new_page(), context=ctx)
        try:
            engine = DiscoveryEngine(
                s.BASE_URL,
                limits=s.discovery_limits(),
                rules=s.safety_rules(),
                on_progress=self._on_progress,
            )
            run = await engine.discover(driver)
        finally:
            await driver.close()

        run.write_artifacts(s.output_path(DISCOVERY_OUTPUT_FILE), s.output_path(DISCOVERY_SUMMARY_FILE))
        self.result.discovery = run

    async def _authenticate(self, browser: Browser) -> str | None:
        """Return the storage-state file validation contexts should load, if any."""
        s = self.settings
        if s.REQUIRE_AUTH:
            auth = await bootstrap_session(browser, s, on_progress=self._on_progress)
            self.result.auth = auth
            if not auth.success:
                self.result.errors.append(auth.message)
            return auth.state_file

        if has_auth_state(s):
            saved = user_state_path(s)
            logger.info("Reusing saved login state from %s", saved)
            self.result.auth = AuthResult(
                success=True, method="cached_state",
                message=f"Reused {saved}", state_file=str(saved),
            )
            return str(saved)
        return None

    async def _validate(self, browser: Browser, urls: list[str], storage_state: str | None):
        s = self.settings
        ignored = s.ignored_domains()
        engine = ValidationEngine(
            concurrency=s.CRAWLER_WORKERS,
            page_timeout_ms=s.PAGE_TIMEOUT_MS,
            monitor_factory=lambda: PageMonitor(CONSOLE_IGNORE_PATTERNS, ignored),
            on_progress=self._on_progress,
            accumulator=self.accumulator,
            api_monitor_factory=self._api_monitor_factory(),
        )
        session = PlaywrightSession(browser, storage_state=storage_state, viewport=VIEWPORT)
        run = await engine.run(session, urls)
        run.write_artifacts(s.output_path(VALIDATION_OUTPUT_FILE), s.output_path(VALIDATION_SUMMARY_FILE))
        self.result.validation = run

    async def _smoke(self, browser: Browser, storage_state: str | None):
        s = self.settings
        ignored = s.ignored_domains()
        check = SmokeCheck(
            s.BASE_URL,
            s.CRITICAL_PAGES,
            page_timeout_ms=s.PAGE_TIMEOUT_MS,
            monitor_factory=lambda: PageMonitor(CONSOLE_IGNORE_PATTERNS, ignored),
            api_monitor_factory=self._api_monitor_factory(),
            on_progress=self._on_progress,
            accumulator=self.accumulator,
        )
        guest = PlaywrightSession(browser, viewport=VIEWPORT)
        user = PlaywrightSession(browser, storage_state=storage_state, viewport=VIEWPORT) if storage_state else None
        run = await check.run(guest, user)
        run.write_artifacts(s.output_path(SMOKE_OUTPUT_FILE))
        self.result.smoke = run

    async def _sweep_buttons(self, browser: Browser, urls: list[str], storage_state: str | None):
        s = self.settings
        rules = s.safety_rules()
        session = PlaywrightSession(browser, storage_state=storage_state, viewport=VIEWPORT)
        driver = await session.new_driver()
        try:
            for url in urls:
                try:
                    await driver.navigate(url, wait_until="domcontentloaded", timeout_ms=s.PAGE_TIMEOUT_MS)
                except Exception as e:
                    msg = f"Could not open {url} for button testing: {str(e)[:200]}"
                    logger.warning(msg)
                    self.result.errors.append(msg)
                    continue

                results = await interactions.test_page_buttons(driver, rules=rules)
                results += await interactions.test_navigation_links(driver, rules=rules)
                self.result.interactions[url] = results
                self.accumulator.record_interactions(url, results)
                self._on_progress("buttons_tested", {
                    "url": url,
                    "clicked": sum(1 for r in results if r.action == "clicked"),
                    "skipped": sum(1 for r in results if r.action == "skipped"),
                    "failed": sum(1 for r in results if r.action == "failed"),
                })
        finally:
            await driver.close()

    def _api_monitor_factory(self):
        if not self.settings.MONITOR_API_CALLS:
            return None
        ignored = self.settings.ignored_domains()
        return lambda: ApiMonitor(ignored)

    def _key_page_urls(self) -> list[str]:
        s = self.settings
        return list(dict.fromkeys(s.key_page_url(p) for p in s.button_sweep_pages()))

    def _load_discovered_urls(self) -> list[str]:
        path = self.settings.output_path(DISCOVERY_OUTPUT_FILE)
        try:
            output = load_discovery_output(path)
        except FileNotFoundError as e:
            raise ConfigurationError(f"No discovery artifact at {path}; run discovery first") from e
        logger.info("Loaded %d URLs from %s", len(output.urls), path)
        return output.urls

    def _finish(self):
        for error in self.result.errors:
            self.accumulator.note(error)
        report = self.accumulator.flush(self.settings.output_path(REPORT_FILE))
        logger.info("Saved run report to %s", report)
        self._on_progress("scan_complete", {
            "urls": len(self.result.discovery.urls) if self.result.discovery else 0,
            "critical": self.result.validation.summary.critical if self.result.validation else 0,
            "errors": len(self.result.errors),
        })
