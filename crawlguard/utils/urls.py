"""URL canonicalization used for every equality check in discovery and validation."""

from __future__ import annotations

from urllib.parse import unquote_plus, urljoin, urlsplit, urlunsplit

TRACKING_PARAMS = frozenset({"utm_source", "utm_medium", "utm_campaign", "ref", "source"})

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(url: str, base_url: str) -> str:
    """Canonical form of ``url`` resolved against ``base_url``.

    Drops the fragment, trailing slashes on non-root paths and the
    tracking query parameters. Anything that fails to parse comes back
    unchanged.
    """
    try:
        parsed = urlsplit(urljoin(base_url, url.strip()))
        netloc = _canonical_netloc(parsed.scheme, parsed.netloc, parsed.port)
    except ValueError:
        return url

    path = parsed.path
    if parsed.scheme in _DEFAULT_PORTS and not path:
        path = "/"
    if path.endswith("/"):
        path = path.rstrip("/") or "/"

    return urlunsplit((parsed.scheme, netloc, path, _strip_tracking(parsed.query), ""))


def is_internal_url(url: str, base_url: str) -> bool:
    """True when ``url`` has the same origin (scheme, host, port) as ``base_url``."""
    try:
        target = urlsplit(urljoin(base_url, url))
        base = urlsplit(base_url)
        return _origin(target) == _origin(base) and bool(base.netloc)
    except ValueError:
        return False


def _origin(parsed) -> tuple[str, str, int | None]:
    port = parsed.port or _DEFAULT_PORTS.get(parsed.scheme)
    return parsed.scheme, (parsed.hostname or ""), port


def _canonical_netloc(scheme: str, netloc: str, port: int | None) -> str:
    netloc = netloc.lower()
    if port is not None and _DEFAULT_PORTS.get(scheme) == port:
        netloc = netloc.rsplit(":", 1)[0]
    return netloc


def _strip_tracking(query: str) -> str:
    if not query:
        return ""
    kept = [
        pair for pair in query.split("&")
        if pair and unquote_plus(pair.split("=", 1)[0]) not in TRACKING_PARAMS
    ]
    return "&".join(kept)


def is_same_site(url: str, site_url: str) -> bool:
    """True when ``url``'s host is the site's host or one of its subdomains (api.x.com for x.com)."""
    try:
        host = urlsplit(url).hostname or ""
        site = urlsplit(site_url).hostname or ""
    except ValueError:
        return False
    if site.startswith("www."):
        site = site[4:]
    return bool(site) and (host == site or host.endswith("." + site))
