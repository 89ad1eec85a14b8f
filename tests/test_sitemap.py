"""Tests for sitemap fetching."""

from crawlguard.core.sitemap import (
    extract_locs, fetch_sitemap, fetch_sitemap_tree, is_nested_sitemap,
)
from fakes import FakePage, sitemap_xml


class TestExtractLocs:
    """Tests for extract_locs."""

    def test_trims_and_unescapes(self):
        xml = "<urlset><url><loc>\n  https://x.com/search?a=1&amp;b=2 \n</loc></url></urlset>"
        assert extract_locs(xml) == ["https://x.com/search?a=1&b=2"]

    def test_no_locs(self):
        assert extract_locs("<html><body>nope</body></html>") == []


class TestIsNestedSitemap:
    def test_nested(self):
        assert is_nested_sitemap("https://x.com/sitemap-posts.xml")
        assert not is_nested_sitemap("https://x.com/sitemap")
        assert not is_nested_sitemap("https://x.com/feed.xml")


class TestFetchSitemap:
    """Tests for fetch_sitemap."""

    async def test_missing_sitemap_is_empty(self, driver):
        assert await fetch_sitemap(driver, "https://x.com/sitemap.xml") == []

    async def test_navigation_error_is_empty(self, site, driver):
        site.pages["https://x.com/sitemap.xml"] = FakePage(error=RuntimeError("net::ERR_ABORTED"))
        assert await fetch_sitemap(driver, "https://x.com/sitemap.xml") == []

    async def test_returns_locs_in_order(self, site, driver):
        site.sitemaps["https://x.com/sitemap.xml"] = sitemap_xml("https://x.com/b", "https://x.com/a")
        assert await fetch_sitemap(driver, "https://x.com/sitemap.xml") == ["https://x.com/b", "https://x.com/a"]


class TestFetchSitemapTree:
    """Tests for fetch_sitemap_tree."""

    async def test_resolves_index_breadth_first(self, site, driver):
        site.sitemaps.update({
            "https://x.com/sitemap.xml": sitemap_xml(
                "https://x.com/sitemap-posts.xml", "https://x.com/about",
            ),
            "https://x.com/sitemap-posts.xml": sitemap_xml(
                "https://x.com/posts/hello",
                "https://x.com/sitemap.xml",  # cycles back to the index
            ),
        })

        tree = await fetch_sitemap_tree(driver, "https://x.com/")

        assert tree.page_urls == ["https://x.com/about", "https://x.com/posts/hello"]
        assert tree.sitemaps_fetched == ["https://x.com/sitemap.xml", "https://x.com/sitemap-posts.xml"]
        assert driver.navigations.count("https://x.com/sitemap.xml") == 1

    async def test_broken_nested_sitemap_is_not_fatal(self, site, driver):
        site.sitemaps["https://x.com/sitemap.xml"] = sitemap_xml(
            "https://x.com/sitemap-gone.xml", "https://x.com/about",
        )
        tree = await fetch_sitemap_tree(driver, "https://x.com")
        assert tree.page_urls == ["https://x.com/about"]
