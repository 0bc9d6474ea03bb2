"""Playwright-backed visibility probe and page preparation."""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Route
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from foldcss.core.errors import EngineCrashError, QueryError
from foldcss.core.logging import get_logger
from foldcss.css.media import Viewport

logger = get_logger(__name__)

# Both scripts measure against the requested viewport, not
# window.innerWidth/innerHeight.
IS_ABOVE_FOLD_SCRIPT = """
({ selector, width, height, maxElements }) => {
  const elements = document.querySelectorAll(selector);
  const limit = maxElements > 0 ? Math.min(maxElements, elements.length) : elements.length;
  for (let i = 0; i < limit; i++) {
    const rect = elements[i].getBoundingClientRect();
    if (rect.top < height && rect.left < width && rect.bottom >= 0 && rect.right >= 0) {
      return true;
    }
  }
  return false;
}
"""

CLEARING_SHIFT_SCRIPT = """
({ selector, properties, criticalSelectors, width, height, maxElements }) => {
  const collect = (sel) => {
    try {
      const found = Array.from(document.querySelectorAll(sel));
      return maxElements > 0 ? found.slice(0, maxElements) : found;
    } catch (e) {
      return [];
    }
  };
  const inViewport = (el) => {
    const rect = el.getBoundingClientRect();
    return rect.top < height && rect.left < width && rect.bottom >= 0 && rect.right >= 0;
  };

  const candidates = Array.from(document.querySelectorAll(selector));
  if (!candidates.length) {
    return false;
  }
  const tracked = new Set(maxElements > 0 ? candidates.slice(0, maxElements) : candidates);
  for (const sel of criticalSelectors) {
    collect(sel).forEach((el) => tracked.add(el));
  }
  const trackedList = Array.from(tracked);
  const before = trackedList.map(inViewport);

  const saved = candidates.map((el) =>
    properties.map((prop) => [prop, el.style.getPropertyValue(prop), el.style.getPropertyPriority(prop)])
  );
  candidates.forEach((el) => properties.forEach((prop) => el.style.setProperty(prop, 'initial', 'important')));
  const after = trackedList.map(inViewport);
  candidates.forEach((el, i) =>
    saved[i].forEach(([prop, value, priority]) => {
      if (value) {
        el.style.setProperty(prop, value, priority);
      } else {
        el.style.removeProperty(prop);
      }
    })
  );

  return after.some((verdict, i) => verdict !== before[i]);
}
"""


class PlaywrightVisibilityProbe:
    """Answers visibility questions by evaluating scripts in a loaded page."""

    def __init__(self, page: Page, viewport: Viewport, max_elements_per_selector: Optional[int] = None) -> None:
        self._page = page
        self._viewport = viewport
        self._max_elements = max_elements_per_selector or 0

    async def is_above_fold(self, selector: str) -> bool:
        return bool(await self._evaluate(selector, IS_ABOVE_FOLD_SCRIPT, {"selector": selector}))

    async def clearing_shifts_layout(
        self,
        selector: str,
        properties: Sequence[str],
        critical_selectors: Sequence[str],
    ) -> bool:
        arg = {
            "selector": selector,
            "properties": list(properties),
            "criticalSelectors": list(critical_selectors),
        }
        return bool(await self._evaluate(selector, CLEARING_SHIFT_SCRIPT, arg))

    async def _evaluate(self, selector: str, script: str, arg: Dict[str, Any]) -> Any:
        payload = {
            **arg,
            "width": self._viewport.width,
            "height": self._viewport.height,
            "maxElements": self._max_elements,
        }
        try:
            return await self._page.evaluate(script, payload)
        except PlaywrightError as exc:
            if self._page.is_closed() or not _browser_connected(self._page):
                raise EngineCrashError(f"page closed while querying {selector!r}") from exc
            raise QueryError(selector, str(exc)) from exc


async def prepare_page(
    page: Page,
    url: str,
    *,
    block_js_requests: bool = True,
    page_load_skip_timeout: Optional[int] = None,
    render_wait_time: int = 100,
    navigation_timeout: Optional[int] = None,
) -> None:
    """Load ``url`` into ``page`` and wait for layout to settle.

    With ``page_load_skip_timeout`` (ms) the load wait is capped: when it
    expires loading is stopped and extraction continues with what rendered.
    """

    if block_js_requests:
        await page.route("**/*", _block_scripts)

    load_timeout = page_load_skip_timeout or navigation_timeout
    try:
        await page.goto(url, wait_until="load", timeout=load_timeout)
    except PlaywrightTimeoutError:
        if not page_load_skip_timeout:
            raise
        logger.info("page_load_skipped", url=url, timeout_ms=page_load_skip_timeout)
        await page.evaluate("window.stop()")

    if render_wait_time:
        await page.wait_for_timeout(render_wait_time)


async def _block_scripts(route: Route) -> None:
    if route.request.resource_type == "script":
        await route.abort()
    else:
        await route.continue_()


def _browser_connected(page: Page) -> bool:
    browser = page.context.browser
    return browser is None or browser.is_connected()
