"""Service wrapper for critical CSS extraction."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Callable, Optional, Tuple

from playwright.async_api import Page

from foldcss.core.config import Settings, settings as default_settings
from foldcss.core.errors import EngineCrashError, InputError, PipelineTimeoutError, SerializationError
from foldcss.core.logging import bind_run_context, get_logger
from foldcss.css.matchers import ForceIncludeMatcher, InteractiveStateExcluder
from foldcss.css.media import Viewport
from foldcss.css.postformat import post_format
from foldcss.css.selection import SelectionOptions, VisibilityProbe, select_critical
from foldcss.css.stylesheet import parse_stylesheet, serialize
from foldcss.models.critical_css import CriticalCSSRequest, CriticalCSSResult
from foldcss.services.browser import BrowserSessionManager
from foldcss.services.probe import PlaywrightVisibilityProbe, prepare_page

logger = get_logger(__name__)

ProbeFactory = Callable[[Page, Viewport, Optional[int]], VisibilityProbe]


class CriticalCSSExtractor:
    """Renders a page in Chromium and reduces a stylesheet to its critical part."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        browser_factory: Callable[[Settings], BrowserSessionManager] = BrowserSessionManager,
        probe_factory: ProbeFactory = PlaywrightVisibilityProbe,
        page_loader=prepare_page,
    ) -> None:
        self._settings = config or default_settings
        self._browser_factory = browser_factory
        self._probe_factory = probe_factory
        self._page_loader = page_loader

    async def extract(
        self,
        request: CriticalCSSRequest,
        browser: Optional[BrowserSessionManager] = None,
    ) -> CriticalCSSResult:
        """Return the critical CSS for ``request``.

        A caller that keeps a browser around passes it as ``browser``;
        otherwise a browser is launched for this call and always shut down.
        """

        css = self._resolve_css(request)
        viewport = Viewport(request.width, request.height)
        started = time.monotonic()

        with bind_run_context(url=request.url, width=viewport.width, height=viewport.height):
            if browser is not None:
                await browser.launch_if_needed(viewport)
                critical_css, attempts = await self._generate_with_retry(browser, request, css, viewport)
            else:
                manager = self._browser_factory(self._settings)
                async with manager.session(viewport):
                    critical_css, attempts = await self._generate_with_retry(manager, request, css, viewport)

            if not critical_css.strip():
                logger.info("critical_css_empty")
                critical_css = ""

            duration_ms = int((time.monotonic() - started) * 1000)
            logger.info("critical_css_generated", bytes=len(critical_css), duration_ms=duration_ms)

        return CriticalCSSResult(
            critical_css=critical_css,
            viewport={"width": viewport.width, "height": viewport.height},
            duration_ms=duration_ms,
            attempts=attempts,
        )

    async def _generate_with_retry(
        self,
        browser: BrowserSessionManager,
        request: CriticalCSSRequest,
        css: str,
        viewport: Viewport,
    ) -> Tuple[str, int]:
        """Run the pipeline, restarting the browser and retrying once if it died.

        ``request.timeout`` bounds every attempt together, restarts included.
        """

        loop = asyncio.get_running_loop()
        deadline = loop.time() + request.timeout / 1000
        already_retried = False
        while True:
            try:
                critical_css = await self._run_once(browser, request, css, viewport, deadline - loop.time())
                return critical_css, 2 if already_retried else 1
            except (InputError, PipelineTimeoutError, SerializationError):
                raise
            except Exception as exc:
                if browser.is_alive():
                    raise
                if already_retried:
                    logger.error("browser_crashed_after_restart", error=str(exc))
                    raise EngineCrashError(f"browser crashed twice while processing {request.url}") from exc
                logger.warning("browser_crashed", error=str(exc), css_length=len(css))
                await browser.restart(viewport)
                already_retried = True

    async def _run_once(
        self,
        browser: BrowserSessionManager,
        request: CriticalCSSRequest,
        css: str,
        viewport: Viewport,
        remaining: float,
    ) -> str:
        try:
            if remaining <= 0:
                raise asyncio.TimeoutError()
            return await asyncio.wait_for(self._generate_on_page(browser, request, css, viewport), timeout=remaining)
        except asyncio.TimeoutError as exc:
            logger.warning("critical_css_timeout", timeout_ms=request.timeout)
            raise PipelineTimeoutError(f"critical css generation exceeded {request.timeout}ms") from exc

    async def _generate_on_page(
        self,
        browser: BrowserSessionManager,
        request: CriticalCSSRequest,
        css: str,
        viewport: Viewport,
    ) -> str:
        page = await browser.acquire_page(viewport, request.user_agent, request.custom_page_headers)
        try:
            critical_css = await self._generate(page, request, css, viewport)
        except BaseException as exc:
            await browser.release_page(page, error=exc)
            raise
        await browser.release_page(page)
        return critical_css

    async def _generate(self, page: Page, request: CriticalCSSRequest, css: str, viewport: Viewport) -> str:
        await self._page_loader(
            page,
            request.url,
            block_js_requests=request.block_js_requests,
            page_load_skip_timeout=request.page_load_skip_timeout,
            render_wait_time=request.render_wait_time,
            navigation_timeout=request.timeout,
        )

        document = parse_stylesheet(css)
        probe = self._probe_factory(page, viewport, request.max_elements_to_check_per_selector)
        options = SelectionOptions(
            strict=request.strict,
            keep_larger_media_queries=request.keep_larger_media_queries,
            clearing_properties=list(self._settings.clearing_properties),
            query_concurrency=self._settings.query_concurrency,
        )
        await select_critical(
            document,
            probe,
            viewport,
            ForceIncludeMatcher(request.force_include_entries()),
            InteractiveStateExcluder(),
            options,
        )
        post_format(document, request.properties_to_remove, request.max_embedded_base64_length)
        return serialize(document)

    def _resolve_css(self, request: CriticalCSSRequest) -> str:
        """Return the stylesheet text from the request or from disk."""

        if request.css_string and request.css_string.strip():
            return request.css_string

        if request.css_file_path:
            path = Path(request.css_file_path)
            try:
                css = path.read_text(encoding="utf-8")
            except OSError as exc:
                logger.warning("stylesheet_read_failed", path=str(path), error=str(exc))
                raise InputError(f"Unable to read stylesheet {path}: {exc}") from exc
            if css.strip():
                return css

        logger.warning("stylesheet_empty", url=request.url)
        raise InputError("css should not be empty")


critical_css_extractor = CriticalCSSExtractor()


async def extract_critical_css(request: CriticalCSSRequest, browser: Optional[BrowserSessionManager] = None) -> str:
    """Convenience wrapper returning only the CSS text."""

    result = await critical_css_extractor.extract(request, browser=browser)
    return result.critical_css
