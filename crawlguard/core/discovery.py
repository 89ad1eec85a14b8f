"""Site discovery. Stage one of the pipeline: enumerate URLs, judge nothing.

- Sitemap seeding first, then BFS link-following from the base URL
- Page, depth and per-route-pattern sampling budgets
- One-shot fallback that shrinks the budgets when the wall-clock
  timeout is exceeded, recorded in the output metadata
- Exclusion filter checked before every enqueue
"""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from crawlguard.core.driver import PageDriver
from crawlguard.core.sitemap import iter_sitemap_pages
from crawlguard.models.frontier import CrawlFrontier, ProgressCallback
from crawlguard.models.types import (
    CrawlSource, DiscoveryLimits, DiscoveryOutput, DiscoverySummary,
)
from crawlguard.utils.routes import is_parameterized, pattern_of
from crawlguard.utils.safety import DEFAULT_RULES, SafetyRules, should_exclude_from_crawl
from crawlguard.utils.urls import is_internal_url, normalize_url

logger = logging.getLogger(__name__)

CRAWL_NAV_TIMEOUT_MS = 15000
FALLBACK_PAGE_FACTOR = 0.75


@dataclass
class DiscoveryRun:
    output: DiscoveryOutput
    summary: DiscoverySummary
    frontier: CrawlFrontier = field(default_factory=CrawlFrontier)

    @property
    def urls(self) -> list[str]:
        return self.output.urls

    def write_artifacts(self, output_file: str | Path | None = None, summary_file: str | Path | None = None):
        if output_file:
            _write_json(output_file, self.output.to_dict())
            logger.info("Saved URLs to %s", output_file)
        if summary_file:
            _write_json(summary_file, self.summary.to_dict())
            logger.info("Saved discovery summary to %s", summary_file)


class DiscoveryEngine:
    """Sitemap + BFS discovery over a single page driver."""

    def __init__(
        self,
        base_url: str,
        limits: DiscoveryLimits | None = None,
        rules: SafetyRules = DEFAULT_RULES,
        on_progress: ProgressCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip("/")
        self.limits = limits or DiscoveryLimits()
        self.rules = rules
        self._progress = on_progress or (lambda *_: None)
        self._clock = clock

        self.max_pages = self.limits.max_pages
        self.max_depth = self.limits.max_depth
        self.frontier = CrawlFrontier()
        self.fallback_triggered = False
        self.fallback_reason = ""
        self._started = 0.0

    async def discover(self, driver: PageDriver) -> DiscoveryRun:
        """Run both phases and return the output artifact plus summary."""
        self._started = self._clock()
        logger.info(
            "Starting URL discovery for %s (max_pages=%d, max_depth=%d, timeout=%dms)",
            self.base_url, self.max_pages, self.max_depth, self.limits.timeout_ms,
        )
        self._emit("discovery_start", {"url": self.base_url, "max_pages": self.max_pages})

        # Base URL goes first so crawling still works without a sitemap.
        if self._in_scope(self.base_url):
            self.frontier.enqueue(self.base_url, 0)

        await self._seed_from_sitemaps(driver)
        await self._crawl(driver)

        return self._finish()

    async def _seed_from_sitemaps(self, driver: PageDriver):
        async for sitemap_url, pages in iter_sitemap_pages(driver, self.base_url):
            for url in pages:
                if self._is_full():
                    break
                normalized = normalize_url(url, self.base_url)
                if not self._in_scope(normalized):
                    continue
                pattern = pattern_of(normalized)
                if self._sample_quota_spent(normalized, pattern):
                    continue
                if self.frontier.discover(normalized, 0, CrawlSource.SITEMAP, pattern):
                    if self.max_depth > 0:
                        self.frontier.enqueue(normalized, 0)
                    self._emit("page_discovered", {"url": normalized, "depth": 0, "via": "sitemap"})

            self._emit("sitemap_loaded", {"sitemap": sitemap_url, "urls": len(pages)})
            if self._is_full():
                break

        logger.info(
            "Sitemap processing complete. Found %d initial pages.",
            self.frontier.count_by_source(CrawlSource.SITEMAP),
        )

    async def _crawl(self, driver: PageDriver):
        frontier = self.frontier

        while frontier.queue and not self._is_full():
            if self._check_timeout():
                # Budget already spent under the reduced limits.
                if self._is_full():
                    break

            current = frontier.dequeue()
            url = normalize_url(current.url, self.base_url)
            if frontier.is_visited(url):
                continue

            pattern = pattern_of(url)
            if self._sample_quota_spent(url, pattern):
                continue

            frontier.mark_visited(url)
            if frontier.discover(url, current.depth, CrawlSource.CRAWL, pattern):
                self._emit("page_discovered", {"url": url, "depth": current.depth, "via": "crawl"})

            if current.depth >= self.max_depth:
                continue

            for link in await self._extract_links(driver, url):
                normalized = normalize_url(link, self.base_url)
                if self._in_scope(normalized) and not frontier.is_visited(normalized):
                    frontier.enqueue(normalized, current.depth + 1)

    async def _extract_links(self, driver: PageDriver, url: str) -> list[str]:
        try:
            await driver.navigate(url, wait_until="domcontentloaded", timeout_ms=CRAWL_NAV_TIMEOUT_MS)
            return await driver.extract_anchor_hrefs()
        except Exception as e:
            logger.debug("Navigation failed during discovery for %s: %s", url, str(e)[:200])
            return []

    def _check_timeout(self) -> bool:
        """Apply the fallback policy once. Returns True on the call that fires it."""
        if self.fallback_triggered:
            return False
        elapsed = self._elapsed_ms()
        if elapsed <= self.limits.timeout_ms:
            return False

        original_pages = self.max_pages
        self.max_pages = math.floor(self.max_pages * FALLBACK_PAGE_FACTOR)
        self.max_depth = max(1, self.max_depth - 1)
        self.fallback_triggered = True
        self.fallback_reason = (
            f"Timeout exceeded. Limits reduced: Pages {original_pages}->{self.max_pages}, "
            f"Depth -> {self.max_depth}"
        )
        logger.warning(
            "Discovery timeout exceeded (%dms > %dms). Applying fallback policy: %s",
            elapsed, self.limits.timeout_ms, self.fallback_reason,
        )
        self._emit("fallback_triggered", {"reason": self.fallback_reason, "elapsed_ms": elapsed})
        return True

    def _sample_quota_spent(self, url: str, pattern: str) -> bool:
        """A new URL of a parameterized route beyond the sample budget."""
        if not is_parameterized(pattern) or self.frontier.is_discovered(url):
            return False
        return self.frontier.samples_of(pattern) >= self.limits.sample_dynamic_routes

    def _in_scope(self, url: str) -> bool:
        return is_internal_url(url, self.base_url) and not should_exclude_from_crawl(url, self.rules)

    def _is_full(self) -> bool:
        return self.frontier.size >= self.max_pages

    def _elapsed_ms(self) -> int:
        return int((self._clock() - self._started) * 1000)

    def _finish(self) -> DiscoveryRun:
        duration_ms = self._elapsed_ms()
        urls = self.frontier.urls()
        sitemap_count = self.frontier.count_by_source(CrawlSource.SITEMAP)
        crawl_count = self.frontier.count_by_source(CrawlSource.CRAWL)

        output = DiscoveryOutput(
            base_url=self.base_url,
            limits=self.limits,
            urls=urls,
        )
        if self.fallback_triggered:
            output.adjusted_max_pages = self.max_pages
            output.adjusted_reason = self.fallback_reason

        # Exclusions and sampling are applied while crawling, so the
        # three totals coincide.
        summary = DiscoverySummary(
            total_found=len(urls),
            total_after_exclusions=len(urls),
            total_after_sampling=len(urls),
            duration_ms=duration_ms,
            sitemap_count=sitemap_count,
            crawl_count=crawl_count,
            patterns_detected=dict(self.frontier.pattern_counts),
            fallback_triggered=self.fallback_triggered,
        )

        logger.info("Discovery complete: %d URLs found in %dms", len(urls), duration_ms)
        self._emit("discovery_complete", {
            "urls": len(urls),
            "sitemap": sitemap_count,
            "crawl": crawl_count,
            "duration_ms": duration_ms,
            "fallback": self.fallback_triggered,
        })
        return DiscoveryRun(output=output, summary=summary, frontier=self.frontier)

    def _emit(self, event_type: str, data: dict):
        try:
            self._progress(event_type, data)
        except Exception:
            logger.debug("Progress callback failed for %s", event_type, exc_info=True)


async def discover_urls(
    driver: PageDriver,
    base_url: str,
    limits: DiscoveryLimits | None = None,
    rules: SafetyRules = DEFAULT_RULES,
    on_progress: ProgressCallback | None = None,
) -> DiscoveryRun:
    engine = DiscoveryEngine(base_url, limits=limits, rules=rules, on_progress=on_progress)
    return await engine.discover(driver)


def load_discovery_output(path: str | Path) -> DiscoveryOutput:
    return DiscoveryOutput.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))


def _write_json(path: str | Path, data):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
