"""Shared fakes for the selection engine and the browser layer."""

from __future__ import annotations

import asyncio

import pytest

from foldcss.core.config import Settings
from foldcss.core.errors import QueryError
from foldcss.css.matchers import ForceIncludeMatcher, InteractiveStateExcluder
from foldcss.css.media import Viewport
from foldcss.css.selection import SelectionOptions, select_critical
from foldcss.css.stylesheet import parse_stylesheet


class FakeProbe:
    """Visibility probe answering from fixed sets of query selectors."""

    def __init__(self, visible=(), failing=(), shifting=()):
        self.visible = set(visible)
        self.failing = set(failing)
        self.shifting = set(shifting)
        self.queries = []
        self.clearing_calls = []

    async def is_above_fold(self, selector):
        self.queries.append(selector)
        if selector in self.failing:
            raise QueryError(selector, "SyntaxError: not a valid selector")
        return selector in self.visible

    async def clearing_shifts_layout(self, selector, properties, critical_selectors):
        self.clearing_calls.append((selector, tuple(properties), tuple(critical_selectors)))
        return selector in self.shifting


class FakePage:
    def __init__(self, context):
        self.context = context


class FakeContext:
    def __init__(self, browser, options):
        self.browser = browser
        self.options = options
        self.closed = False

    async def new_page(self):
        return FakePage(self)

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self):
        self.connected = True
        self.closed = False
        self.contexts = []

    def is_connected(self):
        return self.connected

    async def new_context(self, **options):
        context = FakeContext(self, options)
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True
        self.connected = False


class FakePlaywright:
    def __init__(self):
        self.stopped = False

    async def stop(self):
        self.stopped = True


class FakeLauncher:
    """Launcher handing out a new FakeBrowser on every launch."""

    def __init__(self):
        self.browsers = []
        self.drivers = []

    async def __call__(self, config):
        driver, browser = FakePlaywright(), FakeBrowser()
        self.drivers.append(driver)
        self.browsers.append(browser)
        return driver, browser

    @property
    def current(self):
        return self.browsers[-1]


@pytest.fixture
def fake_probe():
    return FakeProbe


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def test_settings():
    return Settings(
        browser_max_open_pages=2,
        browser_keep_alive=False,
        user_agent="foldcss-tests",
        query_concurrency=4,
    )


@pytest.fixture
def select():
    """Parse ``css`` and run critical selection against a probe."""

    def run(css, probe, viewport=Viewport(1300, 900), force_include=(), **options):
        document = parse_stylesheet(css)
        asyncio.run(
            select_critical(
                document,
                probe,
                viewport,
                ForceIncludeMatcher(force_include),
                InteractiveStateExcluder(),
                SelectionOptions(**options),
            )
        )
        return document

    return run
