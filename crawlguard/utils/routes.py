"""Route-pattern classification for sampling dynamic routes.

``/item/123`` and ``/item/456`` both collapse to ``item/:id`` so the
discovery engine can cap how many of them it visits. The pattern is a
sampling key only; it never affects exclusion or normalization.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

_NUMERIC = re.compile(r"[0-9]+")
_HEX_TOKEN = re.compile(r"[a-f0-9-]{20,}", re.IGNORECASE)
_ALL_CAPS = re.compile(r"[A-Z]+")
_CAMEL_CASE = re.compile(r"[a-z]+[A-Z]")


def pattern_of(url: str) -> str:
    try:
        parsed = urlsplit(url)
    except ValueError:
        return url
    if not parsed.scheme or not parsed.netloc:
        return url

    segments = [s for s in parsed.path.split("/") if s]
    return "/".join(_classify(s) for s in segments)


def is_parameterized(pattern: str) -> bool:
    return ":" in pattern


def _classify(segment: str) -> str:
    if _NUMERIC.fullmatch(segment) or _HEX_TOKEN.fullmatch(segment):
        return ":id"
    if _ALL_CAPS.fullmatch(segment) or _CAMEL_CASE.match(segment):
        return ":slug"
    return segment
