"""Page driver interface and its Playwright backend.

The engines never touch Playwright directly. They talk to a PageDriver,
which exposes exactly the capabilities they need: navigation, link
extraction, body text, console/network events, and a few element
queries for the interaction engine. BrowserSession hands out isolated
drivers, one per validation worker.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Protocol

from playwright.async_api import Browser, BrowserContext, Page, Locator, Response

from crawlguard.models.types import ConsoleMessage, NetworkRequest


ConsoleHandler = Callable[[ConsoleMessage], None]
ResponseHandler = Callable[[NetworkRequest], None]

logger = logging.getLogger(__name__)


@dataclass
class NavigationResponse:
    status: int
    url: str


class Clickable(Protocol):
    async def text(self) -> str: ...
    async def get_attribute(self, name: str) -> str | None: ...
    async def is_visible(self) -> bool: ...
    async def is_enabled(self) -> bool: ...
    async def click(self, timeout_ms: int = 2000, force: bool = False) -> None: ...


class PageDriver(Protocol):
    async def navigate(
        self, url: str, wait_until: str = "domcontentloaded", timeout_ms: int = 30000,
    ) -> NavigationResponse | None: ...
    def current_url(self) -> str: ...
    async def extract_anchor_hrefs(self) -> list[str]: ...
    async def body_text(self) -> str: ...
    async def content(self) -> str: ...
    def on_console(self, handler: ConsoleHandler) -> None: ...
    def on_page_error(self, handler: ConsoleHandler) -> None: ...
    def on_response(self, handler: ResponseHandler, include_body: bool = False) -> None: ...
    async def query_all(self, selector: str) -> list[Clickable]: ...
    async def count(self, selector: str) -> int: ...
    async def go_back(self, timeout_ms: int = 5000) -> None: ...
    async def wait(self, ms: int) -> None: ...
    async def close(self) -> None: ...


class BrowserSession(Protocol):
    async def new_driver(self) -> PageDriver: ...


class PlaywrightElement:
    """Clickable backed by a Playwright Locator."""

    def __init__(self, locator: Locator):
        self._locator = locator

    async def text(self) -> str:
        return (await self._locator.text_content()) or ""

    async def get_attribute(self, name: str) -> str | None:
        return await self._locator.get_attribute(name)

    async def is_visible(self) -> bool:
        return await self._locator.is_visible()

    async def is_enabled(self) -> bool:
        return await self._locator.is_enabled()

    async def click(self, timeout_ms: int = 2000, force: bool = False) -> None:
        await self._locator.click(timeout=timeout_ms, force=force)


class PlaywrightDriver:
    """PageDriver over a single Playwright Page."""

    def __init__(self, page: Page, context: BrowserContext | None = None):
        self._page = page
        # Only set when this driver owns the context and must close it.
        self._context = context

    @property
    def page(self) -> Page:
        return self._page

    async def navigate(
        self, url: str, wait_until: str = "domcontentloaded", timeout_ms: int = 30000,
    ) -> NavigationResponse | None:
        response = await self._page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        if response is None:
            return None
        return NavigationResponse(status=response.status, url=self._page.url)

    def current_url(self) -> str:
        return self._page.url

    async def extract_anchor_hrefs(self) -> list[str]:
        return await self._page.locator("a[href]").evaluate_all(
            "anchors => anchors.map(a => a.href)"
        )

    async def body_text(self) -> str:
        return (await self._page.text_content("body")) or ""

    async def content(self) -> str:
        return await self._page.content()

    def on_console(self, handler: ConsoleHandler) -> None:
        def _on_console(msg):
            handler(ConsoleMessage(type=msg.type, text=msg.text))

        self._page.on("console", _on_console)

    def on_page_error(self, handler: ConsoleHandler) -> None:
        def _on_page_error(error):
            handler(ConsoleMessage(type="exception", text=str(error)))

        self._page.on("pageerror", _on_page_error)

    def on_response(self, handler: ResponseHandler, include_body: bool = False) -> None:
        """Forward every response. With ``include_body``, JSON bodies are parsed first."""
        if not include_body:
            def _on_response(response):
                handler(_network_request(response))

            self._page.on("response", _on_response)
            return

        async def _on_response_with_body(response):
            req = _network_request(response)
            if "json" in req.content_type:
                try:
                    req.body = await response.json()
                except Exception:
                    logger.debug("Could not read JSON body of %s", req.url, exc_info=True)
            handler(req)

        self._page.on("response", _on_response_with_body)

    async def query_all(self, selector: str) -> list[PlaywrightElement]:
        locators = await self._page.locator(selector).all()
        return [PlaywrightElement(loc) for loc in locators]

    async def count(self, selector: str) -> int:
        return await self._page.locator(selector).count()

    async def go_back(self, timeout_ms: int = 5000) -> None:
        await self._page.go_back(wait_until="domcontentloaded", timeout=timeout_ms)

    async def wait(self, ms: int) -> None:
        await self._page.wait_for_timeout(ms)

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
        else:
            await self._page.close()


class PlaywrightSession:
    """Hands out drivers that each own a fresh, isolated BrowserContext."""

    def __init__(self, browser: Browser, storage_state: str | None = None, viewport: dict | None = None):
        self._browser = browser
        self._storage_state = storage_state
        self._viewport = viewport or {"width": 1920, "height": 1080}

    async def new_driver(self) -> PlaywrightDriver:
        ctx = await self._browser.new_context(
            viewport=self._viewport,
            storage_state=self._storage_state,
        )
        try:
            page = await ctx.new_page()
        except Exception:
            await ctx.close()
            raise
        return PlaywrightDriver(page, context=ctx)


def _network_request(response: Response) -> NetworkRequest:
    return NetworkRequest(
        url=response.url,
        status=response.status,
        method=response.request.method,
        resource_type=response.request.resource_type,
        content_type=response.headers.get("content-type", ""),
    )
