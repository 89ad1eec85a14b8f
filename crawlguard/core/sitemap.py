"""Sitemap fetching. Resolves sitemap indexes breadth-first into page URLs.

A missing or broken sitemap is normal; every failure here degrades to
"no URLs from this document" and discovery carries on with crawling.
"""

from __future__ import annotations

import html
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from typing import AsyncIterator

from crawlguard.core.driver import PageDriver

logger = logging.getLogger(__name__)

_LOC_RE = re.compile(r"<loc>(.*?)</loc>", re.IGNORECASE | re.DOTALL)

SITEMAP_TIMEOUT_MS = 10000


@dataclass
class SitemapTree:
    page_urls: list[str] = field(default_factory=list)
    sitemaps_fetched: list[str] = field(default_factory=list)


def is_nested_sitemap(url: str) -> bool:
    return "sitemap" in url and url.endswith(".xml")


def extract_locs(content: str) -> list[str]:
    return [html.unescape(m.strip()) for m in _LOC_RE.findall(content) if m.strip()]


async def fetch_sitemap(driver: PageDriver, url: str) -> list[str]:
    """All <loc> entries of one sitemap document, or [] if it can't be loaded."""
    try:
        response = await driver.navigate(url, wait_until="networkidle", timeout_ms=SITEMAP_TIMEOUT_MS)
        if response is None or response.status != 200:
            logger.info("Sitemap not found at %s", url)
            return []
        content = await driver.content()
    except Exception as e:
        logger.info("Could not fetch sitemap at %s: %s", url, str(e)[:200])
        return []

    urls = extract_locs(content)
    logger.info("Found %d URLs in %s", len(urls), url)
    return urls


async def iter_sitemap_pages(driver: PageDriver, base_url: str) -> AsyncIterator[tuple[str, list[str]]]:
    """Yield (sitemap_url, page_urls) for each sitemap document, breadth-first.

    Nested sitemaps are queued instead of yielded; each sitemap URL is
    fetched at most once.
    """
    queue = deque([f"{base_url.rstrip('/')}/sitemap.xml"])
    seen: set[str] = set()

    while queue:
        current = queue.popleft()
        if current in seen:
            continue
        seen.add(current)

        pages = []
        for loc in await fetch_sitemap(driver, current):
            if is_nested_sitemap(loc):
                if loc not in seen:
                    queue.append(loc)
                continue
            pages.append(loc)

        yield current, pages


async def fetch_sitemap_tree(driver: PageDriver, base_url: str) -> SitemapTree:
    tree = SitemapTree()
    async for sitemap_url, pages in iter_sitemap_pages(driver, base_url):
        tree.sitemaps_fetched.append(sitemap_url)
        tree.page_urls.extend(pages)
    return tree
