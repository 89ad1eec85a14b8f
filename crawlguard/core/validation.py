"""Page validation. Stage two of the pipeline: visit every discovered URL once.

A fixed pool of asyncio workers drains a shared deque. Each worker owns
an isolated browser context, so cookies and storage never leak between
workers. A failing page is classified and the worker moves on; nothing
raised while visiting a single URL escapes this module.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import weakref
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from crawlguard.core.driver import BrowserSession, PageDriver
from crawlguard.detectors.api_monitor import ApiMonitor
from crawlguard.detectors.quality_gates import PageMonitor
from crawlguard.models.accumulator import ReportAccumulator
from crawlguard.models.frontier import ProgressCallback
from crawlguard.models.types import (
    ConsoleMessage, FailureReason, ValidationResult, ValidationStatus, ValidationSummary,
)

logger = logging.getLogger(__name__)

MIN_BODY_TEXT_LENGTH = 50
AUTH_REDIRECT_MARKERS = ("/login", "signin")

FalsePositivePredicate = Callable[[str, str], bool]

# Monitor used when a caller passes none; listeners are attached once per driver.
_default_monitors: "weakref.WeakKeyDictionary[PageDriver, PageMonitor]" = weakref.WeakKeyDictionary()


def is_auth_redirect(final_url: str, body_text: str = "") -> bool:
    """Default 404 false-positive heuristic: the 404 landed on a login page."""
    return any(marker in final_url for marker in AUTH_REDIRECT_MARKERS)


def is_timeout_error(error: Exception) -> bool:
    return type(error).__name__ == "TimeoutError" or "Timeout" in str(error)


async def validate_page(
    driver: PageDriver,
    url: str,
    timeout_ms: int = 30000,
    monitor: PageMonitor | None = None,
    false_positive: FalsePositivePredicate = is_auth_redirect,
    api_monitor: ApiMonitor | None = None,
) -> ValidationResult:
    """Visit one URL and classify it. Never raises."""
    if monitor is None:
        monitor = _default_monitor(driver)
    monitor.attach_listeners(driver)
    monitor.reset_for_page()
    if api_monitor is not None:
        api_monitor.attach_listeners(driver)
        api_monitor.reset_for_page()

    started = time.monotonic()
    result = ValidationResult(url=url)

    try:
        response = await driver.navigate(url, wait_until="domcontentloaded", timeout_ms=timeout_ms)
        final_url = driver.current_url()
        result.duration = _elapsed_ms(started)
        status = response.status if response else None

        if status == 404:
            body = await driver.body_text()
            if "404" in body or "Page Not Found" in body:
                logger.debug("Soft 404 content on %s", url)
            if false_positive(final_url, body):
                result.redirected_to = final_url
                result.is_404_false_positive = True
                result.mark(ValidationStatus.WARNING, FailureReason.AUTH_REDIRECT)
            else:
                result.mark(ValidationStatus.WARNING, FailureReason.NOT_FOUND)
            return _seal(result, monitor, api_monitor)

        if status is not None and status >= 500:
            result.mark(ValidationStatus.CRITICAL, FailureReason.SERVER_ERROR)
            return _seal(result, monitor, api_monitor)

        body = await driver.body_text()
        if len(body.strip()) < MIN_BODY_TEXT_LENGTH:
            result.mark(ValidationStatus.CRITICAL, FailureReason.BLANK_PAGE)
            return _seal(result, monitor, api_monitor)

        if monitor.significant_console_errors():
            result.mark(ValidationStatus.WARNING, FailureReason.CONSOLE_ERROR)

        if monitor.internal_client_failures(url) and result.status != ValidationStatus.CRITICAL:
            result.mark(ValidationStatus.WARNING, FailureReason.NETWORK_FAILURE)

        return _seal(result, monitor, api_monitor)

    except Exception as e:
        result.duration = _elapsed_ms(started)
        sealed = _seal(result, monitor, api_monitor)
        if is_timeout_error(e):
            sealed.mark(ValidationStatus.WARNING, FailureReason.TIMEOUT)
        else:
            sealed.mark(ValidationStatus.CRITICAL, FailureReason.CRASH)
            sealed.console_errors.append(ConsoleMessage(type="error", text=str(e)[:500]))
        return sealed


def _seal(result: ValidationResult, monitor: PageMonitor, api_monitor: ApiMonitor | None = None) -> ValidationResult:
    """Snapshot the monitors into the result so late events can't touch it."""
    result.console_errors = list(monitor.console_errors)
    result.failed_requests = list(monitor.failed_requests)
    if api_monitor is not None:
        result.api = api_monitor.report(result.url)
    return result


def _default_monitor(driver: PageDriver) -> PageMonitor:
    monitor = _default_monitors.get(driver)
    if monitor is None:
        monitor = _default_monitors[driver] = PageMonitor()
    return monitor


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


@dataclass
class ValidationRun:
    results: list[ValidationResult]
    summary: ValidationSummary
    failures: list[ValidationResult] = field(default_factory=list)

    @property
    def acceptable(self) -> bool:
        """A run passes when nothing was classified critical."""
        return self.summary.critical == 0

    def by_url(self) -> dict[str, ValidationResult]:
        return {r.url: r for r in self.results}

    def write_artifacts(self, output_file: str | Path | None = None, summary_file: str | Path | None = None):
        if output_file:
            _write_json(output_file, [r.to_dict() for r in self.results])
            logger.info("Saved validation results to %s", output_file)
        if summary_file:
            _write_json(summary_file, self.summary.to_dict())
            logger.info("Saved validation summary to %s", summary_file)


class ValidationEngine:
    """Bounded-concurrency validator over a BrowserSession."""

    def __init__(
        self,
        concurrency: int = 5,
        page_timeout_ms: int = 30000,
        false_positive: FalsePositivePredicate = is_auth_redirect,
        monitor_factory: Callable[[], PageMonitor] = PageMonitor,
        on_progress: ProgressCallback | None = None,
        accumulator: ReportAccumulator | None = None,
        api_monitor_factory: Callable[[], ApiMonitor] | None = None,
    ):
        self.concurrency = max(1, concurrency)
        self.page_timeout_ms = page_timeout_ms
        self._false_positive = false_positive
        self._monitor_factory = monitor_factory
        self._progress = on_progress or (lambda *_: None)
        self._accumulator = accumulator
        self._api_monitor_factory = api_monitor_factory

    async def run(self, session: BrowserSession, urls: list[str]) -> ValidationRun:
        """Validate every URL exactly once and summarize."""
        started = time.monotonic()
        queue: deque[str] = deque(urls)
        results: list[ValidationResult] = []
        total = len(urls)

        logger.info(
            "Starting validation for %d URLs (concurrency=%d, timeout=%dms)",
            total, self.concurrency, self.page_timeout_ms,
        )
        self._emit("validation_start", {"total": total, "concurrency": self.concurrency})

        def collect(result: ValidationResult, worker_id: int):
            results.append(result)
            if self._accumulator is not None:
                self._accumulator.record_validation(result)
            self._log_result(result)
            self._emit("page_validated", {
                "url": result.url,
                "status": result.status.value,
                "reason": result.failure_reason.value if result.failure_reason else None,
                "duration_ms": result.duration,
                "completed": len(results),
                "total": total,
                "worker": worker_id,
            })

        async def worker(worker_id: int):
            try:
                driver = await session.new_driver()
            except Exception as e:
                logger.error("[worker %d] could not open a browser context: %s", worker_id, str(e)[:300])
                return
            monitor = self._monitor_factory()
            api_monitor = self._api_monitor_factory() if self._api_monitor_factory else None
            try:
                # No await between the emptiness check and popleft.
                while queue:
                    url = queue.popleft()
                    logger.debug("[worker %d] validating (%d/%d) %s", worker_id, len(results) + 1, total, url)
                    result = await validate_page(
                        driver, url, self.page_timeout_ms,
                        monitor=monitor, false_positive=self._false_positive, api_monitor=api_monitor,
                    )
                    collect(result, worker_id)
            finally:
                try:
                    await driver.close()
                except Exception:
                    logger.debug("[worker %d] context close failed", worker_id, exc_info=True)

        worker_count = min(self.concurrency, total)
        if worker_count:
            await asyncio.gather(*(worker(i + 1) for i in range(worker_count)))

        # Only non-empty if every worker failed to get a browser context.
        while queue:
            url = queue.popleft()
            result = ValidationResult(url=url)
            result.mark(ValidationStatus.CRITICAL, FailureReason.CRASH)
            result.console_errors.append(ConsoleMessage(type="error", text="No browser context available"))
            collect(result, 0)

        duration_ms = int((time.monotonic() - started) * 1000)
        summary = summarize(results, duration_ms)
        logger.info(
            "Validation complete in %dms. Pass: %d | Critical: %d | Warning: %d",
            duration_ms, summary.passed, summary.critical, summary.warning,
        )
        self._emit("validation_complete", summary.to_dict())

        failures = [r for r in results if r.status != ValidationStatus.PASS]
        return ValidationRun(results=results, summary=summary, failures=failures)

    def _log_result(self, result: ValidationResult):
        reason = result.failure_reason.value if result.failure_reason else "OK"
        level = logging.INFO if result.status == ValidationStatus.PASS else logging.WARNING
        logger.log(level, "%s %s (%s) - %dms", result.status.value.upper(), result.url, reason, result.duration)

    def _emit(self, event_type: str, data: dict):
        try:
            self._progress(event_type, data)
        except Exception:
            logger.debug("Progress callback failed for %s", event_type, exc_info=True)


async def validate_many(
    session: BrowserSession,
    urls: list[str],
    concurrency: int = 5,
    page_timeout_ms: int = 30000,
    on_progress: ProgressCallback | None = None,
) -> list[ValidationResult]:
    engine = ValidationEngine(concurrency=concurrency, page_timeout_ms=page_timeout_ms, on_progress=on_progress)
    run = await engine.run(session, urls)
    return run.results


def summarize(results: list[ValidationResult], duration_ms: int) -> ValidationSummary:
    summary = ValidationSummary(total_pages=len(results), duration_ms=duration_ms)

    for r in results:
        if r.status == ValidationStatus.PASS:
            summary.passed += 1
        elif r.status == ValidationStatus.CRITICAL:
            summary.critical += 1
        else:
            summary.warning += 1

        if r.is_404_false_positive:
            summary.false_positives_404 += 1
        if r.failure_reason is not None:
            key = r.failure_reason.value
            summary.failures_by_category[key] = summary.failures_by_category.get(key, 0) + 1
        if r.duration > summary.slowest_page_duration:
            summary.slowest_page_url = r.url
            summary.slowest_page_duration = r.duration

    if results:
        summary.average_duration = round(sum(r.duration for r in results) / len(results))
    return summary


def _write_json(path: str | Path, data):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
