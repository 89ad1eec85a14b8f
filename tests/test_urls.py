"""Tests for URL normalization and origin checks."""

import pytest

from crawlguard.utils.urls import is_internal_url, normalize_url

BASE = "https://x.com"


class TestNormalizeUrl:
    """Tests for normalize_url."""

    @pytest.mark.parametrize("raw", [
        "https://x.com/about",
        "https://x.com/about/",
        "https://x.com/about#team",
        "https://x.com/about?utm_source=news&utm_medium=email",
        "/about",
        "about",
        "https://X.COM/about",
        "https://x.com:443/about",
    ])
    def test_equivalent_forms_collapse(self, raw):
        """Fragments, trailing slashes, tracking params and default ports don't create new URLs."""
        assert normalize_url(raw, BASE) == "https://x.com/about"

    def test_root_keeps_single_slash(self):
        assert normalize_url("https://x.com", BASE) == "https://x.com/"
        assert normalize_url("https://x.com/", BASE) == "https://x.com/"

    def test_keeps_non_tracking_params_in_order(self):
        url = "https://x.com/search?q=shoes&ref=home&page=2&source=ad"
        assert normalize_url(url, BASE) == "https://x.com/search?q=shoes&page=2"

    @pytest.mark.parametrize("raw", [
        "/a/b/?utm_campaign=x&id=3#frag",
        "https://x.com/a//",
        "/a///?utm_source=x",
        "https://x.com//",
        "https://x.com:443/a/b//#top",
    ])
    def test_is_idempotent(self, raw):
        once = normalize_url(raw, BASE)
        assert normalize_url(once, BASE) == once

    def test_repeated_trailing_slashes_collapse(self):
        assert normalize_url("https://x.com/a//", BASE) == "https://x.com/a"
        assert normalize_url("/a///?utm_source=x", BASE) == "https://x.com/a"

    def test_non_default_port_is_kept(self):
        assert normalize_url("http://x.com:8080/a/", "http://x.com:8080") == "http://x.com:8080/a"

    def test_unparseable_url_comes_back_unchanged(self):
        bad = "http://[::1"
        assert normalize_url(bad, BASE) == bad


class TestIsInternalUrl:
    """Tests for is_internal_url."""

    def test_same_origin(self):
        assert is_internal_url("https://x.com/pricing", BASE)
        assert is_internal_url("/pricing", BASE)

    def test_other_host_scheme_or_port(self):
        assert not is_internal_url("https://other.com/pricing", BASE)
        assert not is_internal_url("http://x.com/pricing", BASE)
        assert not is_internal_url("https://x.com:8443/pricing", BASE)

    def test_subdomain_is_external(self):
        assert not is_internal_url("https://blog.x.com/post", BASE)

    def test_parse_failure_is_external(self):
        assert not is_internal_url("http://[::1", BASE)
