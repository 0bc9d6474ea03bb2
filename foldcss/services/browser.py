"""Lifecycle of the headless Chromium instance used for extraction."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from foldcss.core.config import Settings, settings as default_settings
from foldcss.core.logging import get_logger
from foldcss.css.media import Viewport

logger = get_logger(__name__)

Launcher = Callable[[Settings], Awaitable[Tuple[Optional[Playwright], Browser]]]


async def launch_chromium(config: Settings) -> Tuple[Playwright, Browser]:
    """Start the Playwright driver and a Chromium instance."""

    playwright = await async_playwright().start()
    try:
        browser = await playwright.chromium.launch(
            headless=config.browser_headless,
            args=list(config.browser_launch_args),
        )
    except Exception:
        await playwright.stop()
        raise
    return playwright, browser


class BrowserSessionManager:
    """Owns one browser and hands out exclusively owned pages.

    Every page lives in its own browser context, so concurrent extraction
    runs never share a page. The number of open pages is bounded by
    ``browser_max_open_pages``.
    """

    def __init__(self, config: Optional[Settings] = None, launcher: Optional[Launcher] = None) -> None:
        self._settings = config or default_settings
        self._launcher = launcher or launch_chromium
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()
        self._page_slots = asyncio.Semaphore(max(self._settings.browser_max_open_pages, 1))
        self._open_pages: set = set()
        self.viewport: Optional[Viewport] = None

    @property
    def open_pages(self) -> int:
        return len(self._open_pages)

    async def launch_if_needed(self, viewport: Viewport) -> None:
        """Start the browser unless one is already running."""

        async with self._lock:
            self.viewport = viewport
            if self._browser is not None and self._browser.is_connected():
                return
            logger.info("browser_launching", width=viewport.width, height=viewport.height)
            self._playwright, self._browser = await self._launcher(self._settings)

    async def acquire_page(
        self,
        viewport: Optional[Viewport] = None,
        user_agent: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Page:
        """Open a fresh page configured for one extraction run."""

        viewport = viewport or self.viewport or Viewport(
            self._settings.default_viewport_width, self._settings.default_viewport_height
        )
        await self.launch_if_needed(viewport)

        await self._page_slots.acquire()
        try:
            extra_headers = {**self._settings.browser_default_headers, **(headers or {})}
            context = await self._browser.new_context(
                viewport={"width": viewport.width, "height": viewport.height},
                user_agent=user_agent or self._settings.user_agent,
                extra_http_headers=extra_headers or None,
            )
            page = await context.new_page()
        except BaseException:
            self._page_slots.release()
            raise

        self._open_pages.add(page)
        logger.debug("browser_page_acquired", open_pages=self.open_pages)
        return page

    async def release_page(self, page: Optional[Page], error: Optional[BaseException] = None) -> None:
        """Close ``page`` and its context. Safe to call after a crash."""

        if page is None or page not in self._open_pages:
            return
        self._open_pages.discard(page)
        self._page_slots.release()

        if error is not None:
            logger.warning("browser_page_released_after_error", error=str(error))
        try:
            await page.context.close()
        except PlaywrightError as exc:
            # the browser is already gone
            logger.debug("browser_page_close_failed", error=str(exc))
        logger.debug("browser_page_released", open_pages=self.open_pages)

    def is_alive(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def restart(self, viewport: Optional[Viewport] = None) -> None:
        """Tear down whatever is left of the browser and launch a new one."""

        logger.warning("browser_restarting")
        await self.shutdown(force_close=True)
        await self.launch_if_needed(viewport or self.viewport or Viewport(
            self._settings.default_viewport_width, self._settings.default_viewport_height
        ))

    async def shutdown(self, force_close: bool = False) -> None:
        """Close the browser and the Playwright driver.

        Without ``force_close`` nothing happens when ``browser_keep_alive`` is
        set, so the browser can serve later runs.
        """

        if self._settings.browser_keep_alive and not force_close:
            logger.debug("browser_kept_alive")
            return

        async with self._lock:
            for page in list(self._open_pages):
                self._open_pages.discard(page)
                self._page_slots.release()

            browser, playwright = self._browser, self._playwright
            self._browser, self._playwright = None, None

            if browser is not None:
                try:
                    await browser.close()
                except PlaywrightError as exc:
                    logger.debug("browser_close_failed", error=str(exc))
            if playwright is not None:
                await playwright.stop()
            if browser is not None:
                logger.info("browser_closed")

    @asynccontextmanager
    async def session(self, viewport: Viewport) -> AsyncIterator["BrowserSessionManager"]:
        """Launch the browser for the duration of the block; always shut it down."""

        try:
            await self.launch_if_needed(viewport)
            yield self
        finally:
            await self.shutdown(force_close=True)
