"""Mutable traversal state owned by a single discovery run.

The frontier holds the crawl queue plus the three bookkeeping maps the
discovery engine consults on every dequeue: discovered URLs (in
first-seen order), visited URLs, and discovered-URL counts per route pattern.
Only one task mutates it, between awaits.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from crawlguard.models.types import CrawlCandidate, CrawlSource


@dataclass
class CrawlFrontier:
    """Queue, discovered set, visited set, and pattern counts for one run."""

    queue: deque[CrawlCandidate] = field(default_factory=deque)
    discovered: dict[str, CrawlCandidate] = field(default_factory=dict)
    visited: set[str] = field(default_factory=set)
    pattern_counts: dict[str, int] = field(default_factory=dict)

    def enqueue(self, url: str, depth: int):
        self.queue.append(CrawlCandidate(url=url, depth=depth, source=CrawlSource.CRAWL))

    def dequeue(self) -> CrawlCandidate:
        return self.queue.popleft()

    def discover(self, url: str, depth: int, source: CrawlSource, pattern: str) -> bool:
        """Record a URL as discovered. Returns False if it was already known."""
        if url in self.discovered:
            return False
        self.discovered[url] = CrawlCandidate(url=url, depth=depth, source=source)
        self.pattern_counts[pattern] = self.pattern_counts.get(pattern, 0) + 1
        return True

    def is_discovered(self, url: str) -> bool:
        return url in self.discovered

    def is_visited(self, url: str) -> bool:
        return url in self.visited

    def mark_visited(self, url: str):
        self.visited.add(url)

    def samples_of(self, pattern: str) -> int:
        return self.pattern_counts.get(pattern, 0)

    @property
    def size(self) -> int:
        return len(self.discovered)

    def urls(self) -> list[str]:
        return [c.url for c in self.discovered.values()]

    def count_by_source(self, source: CrawlSource) -> int:
        return sum(1 for c in self.discovered.values() if c.source == source)


ProgressCallback = Callable[[str, dict], None]
