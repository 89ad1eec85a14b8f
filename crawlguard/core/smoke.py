"""Smoke check: load every critical key page and make sure it stays there.

Each page goes through the same classification as validation. On top of
that a key page must exist (404 is critical) and must not bounce to a
different path, which usually means a login wall or a broken route.
Pages that need a login use the authenticated session; the rest use a
guest session.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from crawlguard.core.driver import BrowserSession, PageDriver
from crawlguard.core.validation import is_auth_redirect, validate_page
from crawlguard.detectors.api_monitor import ApiMonitor
from crawlguard.detectors.quality_gates import PageMonitor
from crawlguard.models.accumulator import ReportAccumulator
from crawlguard.models.frontier import ProgressCallback
from crawlguard.models.types import FailureReason, ValidationResult, ValidationStatus
from crawlguard.utils.config import KeyPage
from crawlguard.utils.urls import normalize_url

logger = logging.getLogger(__name__)

# Failures that already say everything about the page; no path check after these.
TERMINAL_REASONS = (
    FailureReason.TIMEOUT,
    FailureReason.CRASH,
    FailureReason.SERVER_ERROR,
    FailureReason.BLANK_PAGE,
)


@dataclass
class KeyPageResult:
    page: KeyPage
    validation: ValidationResult
    landed_on: str = ""

    @property
    def passed(self) -> bool:
        return self.validation.status != ValidationStatus.CRITICAL

    def to_dict(self) -> dict:
        return {
            "name": self.page.name,
            "path": self.page.path,
            "priority": self.page.priority,
            "requiresAuth": self.page.requires_auth,
            "passed": self.passed,
            "landedOn": self.landed_on,
            "result": self.validation.to_dict(),
        }


@dataclass
class SmokeRun:
    results: list[KeyPageResult] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def failed(self) -> list[KeyPageResult]:
        return [r for r in self.results if not r.passed]

    @property
    def acceptable(self) -> bool:
        return not self.failed

    def write_artifacts(self, output_file: str | Path):
        path = Path(output_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "durationMs": self.duration_ms,
            "passed": len(self.results) - len(self.failed),
            "failed": len(self.failed),
            "pages": [r.to_dict() for r in self.results],
        }
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.info("Saved smoke results to %s", path)


async def check_key_page(
    driver: PageDriver,
    url: str,
    page: KeyPage,
    timeout_ms: int = 30000,
    monitor: PageMonitor | None = None,
    api_monitor: ApiMonitor | None = None,
) -> KeyPageResult:
    """Validate one key page, then require that it exists and kept its path."""
    result = await validate_page(driver, url, timeout_ms, monitor=monitor, api_monitor=api_monitor)
    if result.failure_reason in TERMINAL_REASONS:
        return KeyPageResult(page=page, validation=result)

    landed = driver.current_url()
    if result.failure_reason == FailureReason.NOT_FOUND:
        result.mark(ValidationStatus.CRITICAL, FailureReason.NOT_FOUND)
    elif page.path not in landed:
        result.redirected_to = landed
        reason = FailureReason.AUTH_REDIRECT if is_auth_redirect(landed) else FailureReason.UNEXPECTED_REDIRECT
        result.mark(ValidationStatus.CRITICAL, reason)
    return KeyPageResult(page=page, validation=result, landed_on=landed)


class SmokeCheck:
    """Runs the key pages in order, one driver per session kind."""

    def __init__(
        self,
        base_url: str,
        pages: list[KeyPage],
        page_timeout_ms: int = 30000,
        monitor_factory: Callable[[], PageMonitor] = PageMonitor,
        api_monitor_factory: Callable[[], ApiMonitor] | None = None,
        on_progress: ProgressCallback | None = None,
        accumulator: ReportAccumulator | None = None,
    ):
        self.base_url = base_url
        self.pages = list(pages)
        self.page_timeout_ms = page_timeout_ms
        self._monitor_factory = monitor_factory
        self._api_monitor_factory = api_monitor_factory
        self._progress = on_progress or (lambda *_: None)
        self._accumulator = accumulator

    async def run(self, guest: BrowserSession, user: BrowserSession | None = None) -> SmokeRun:
        started = time.monotonic()
        run = SmokeRun()
        drivers: dict[bool, PageDriver] = {}
        monitor = self._monitor_factory()
        api_monitor = self._api_monitor_factory() if self._api_monitor_factory else None

        if user is None and any(p.requires_auth for p in self.pages):
            logger.warning("No saved login; pages that require auth are checked as guest")

        try:
            for page in self.pages:
                authed = page.requires_auth and user is not None
                if authed not in drivers:
                    drivers[authed] = await (user if authed else guest).new_driver()

                url = normalize_url(self.base_url.rstrip("/") + page.path, self.base_url)
                outcome = await check_key_page(
                    drivers[authed], url, page, self.page_timeout_ms,
                    monitor=monitor, api_monitor=api_monitor,
                )
                run.results.append(outcome)
                if self._accumulator is not None:
                    self._accumulator.record_validation(outcome.validation)
                self._report(outcome)
        finally:
            for driver in drivers.values():
                try:
                    await driver.close()
                except Exception:
                    logger.debug("Smoke driver close failed", exc_info=True)

        run.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info("Smoke check complete: %d/%d key pages passed", len(run.results) - len(run.failed), len(run.results))
        return run

    def _report(self, outcome: KeyPageResult):
        r = outcome.validation
        reason = r.failure_reason.value if r.failure_reason else "OK"
        level = logging.INFO if outcome.passed else logging.WARNING
        logger.log(level, "%s %s (%s) - %dms", outcome.page.name, r.url, reason, r.duration)
        self._progress("key_page_checked", {
            "name": outcome.page.name,
            "url": r.url,
            "passed": outcome.passed,
            "status": r.status.value,
            "reason": r.failure_reason.value if r.failure_reason else None,
            "api_calls": r.api.stats.total_calls if r.api else 0,
        })
