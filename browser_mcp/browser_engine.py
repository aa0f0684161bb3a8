"""
Single shared Playwright browser session.

One driver, one Chromium browser, one context, one active page per process.
The page is replaced on every initialization; the browser is relaunched only
when it reports itself disconnected. Initialization is retried with
exponential backoff up to Config.SESSION_INIT_RETRIES times.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from .config import Config
from .errors import SessionInitError
from .monitors import ConsoleMonitor, HttpAuthenticator, NetworkMonitor

log = logging.getLogger(__name__)

PlaywrightStarter = Callable[[], Awaitable[Any]]


async def _start_playwright() -> Any:
    from playwright.async_api import async_playwright

    return await async_playwright().start()


class BrowserSession:
    """Lazily launched browser + page, plus the monitors bound to that page."""

    def __init__(self, start_playwright: PlaywrightStarter | None = None):
        self._start_playwright = start_playwright or _start_playwright
        self.pw: Any = None
        self.browser: Any = None
        self.context: Any = None
        self.page: Any = None
        self.console = ConsoleMonitor()
        self.network = NetworkMonitor()
        self.authenticator = HttpAuthenticator()
        self._init_lock = asyncio.Lock()

    # -----------------------------------------------------------------------
    # Liveness
    # -----------------------------------------------------------------------

    def is_ready(self) -> bool:
        """True when browser and page exist, the browser is connected and the page is open.

        May raise if the underlying connection is broken.
        """
        if self.browser is None or self.page is None:
            return False
        if not self.browser.is_connected():
            return False
        return not self.page.is_closed()

    async def ensure(self) -> Any:
        """Return a live page, (re)initializing the session if needed.

        Raises SessionInitError once the retry budget is spent.
        """
        async with self._init_lock:
            attempts = Config.SESSION_INIT_RETRIES + 1
            last_exc: Exception | None = None
            for attempt in range(attempts):
                try:
                    if not self.is_ready():
                        await self._initialize()
                    return self.page
                except Exception as exc:
                    last_exc = exc
                    log.warning(
                        "Browser session initialization failed (attempt %d/%d): %s",
                        attempt + 1, attempts, exc,
                    )
                    await self._discard()
                    if attempt + 1 < attempts:
                        await asyncio.sleep(Config.SESSION_RETRY_BACKOFF * (2 ** attempt))
            raise SessionInitError(f"Browser session unavailable: {last_exc}") from last_exc

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def _launch(self) -> None:
        if self.pw is None:
            self.pw = await self._start_playwright()
        log.info("Launching browser (headless=%s)...", Config.HEADLESS)
        self.browser = await self.pw.chromium.launch(
            headless=Config.HEADLESS,
            args=list(Config.LAUNCH_ARGS),
        )
        self.context = await self.browser.new_context(viewport=dict(Config.VIEWPORT))
        log.info("Browser launched successfully")

    async def _initialize(self) -> None:
        if self.browser is not None and not self.browser.is_connected():
            log.warning("Browser disconnected, relaunching")
            await self._discard()
        if self.browser is None:
            await self._launch()

        if self.page is not None:
            try:
                await self.page.close()
            except Exception as exc:
                log.info("Error closing existing page: %s", exc)
        self._detach_listeners()

        self.page = await self.context.new_page()
        await self.page.set_viewport_size(dict(Config.VIEWPORT))
        log.info("Page created successfully")

    def _detach_listeners(self) -> None:
        self.console.detach()
        self.network.detach()
        self.authenticator.detach()

    async def _discard(self) -> None:
        """Drop every handle, closing what can still be closed."""
        self._detach_listeners()
        browser, pw = self.browser, self.pw
        self.pw = self.browser = self.context = self.page = None
        if browser is not None:
            try:
                await browser.close()
            except Exception as exc:
                log.debug("Error closing browser: %s", exc)
        if pw is not None:
            try:
                await pw.stop()
            except Exception as exc:
                log.debug("Error stopping playwright: %s", exc)

    async def close(self) -> None:
        """Shut down the browser and the Playwright driver."""
        if self.browser is not None:
            log.info("Closing browser...")
        await self._discard()

    def info(self) -> dict:
        page = self.page
        return {
            "browser_launched": self.browser is not None,
            "url": page.url if page is not None else None,
            "console_monitoring": self.console.active,
            "network_monitoring": self.network.active,
        }
