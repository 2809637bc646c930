"""In-memory stand-ins for the Playwright objects the pool and orchestrator touch."""

from __future__ import annotations

import asyncio
from io import BytesIO

import pytest
from PIL import Image
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

DESKTOP_UA = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.6099.28 Safari/537.36"

DEVICES = {
    "Desktop Chrome": {
        "user_agent": DESKTOP_UA,
        "viewport": {"width": 1280, "height": 720},
        "device_scale_factor": 1,
        "is_mobile": False,
        "has_touch": False,
        "default_browser_type": "chromium",
    },
    "iPhone 13": {
        "user_agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 15_0 like Mac OS X) Version/15.0 Mobile/15A372 Safari/604.1",
        "viewport": {"width": 390, "height": 664},
        "device_scale_factor": 3,
        "is_mobile": True,
        "has_touch": True,
        "default_browser_type": "webkit",
    },
}


def make_png(width: int = 100, height: int = 100, color=(255, 255, 255)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


class FakePage:
    def __init__(self, context: "FakeContext", launcher: "FakeLauncher") -> None:
        self.context = context
        self.calls: list[tuple] = []
        self.closed = False
        self._launcher = launcher

    async def goto(self, url, **kw):
        self.calls.append(("goto", url))
        if self._launcher.goto_error:
            raise PlaywrightError(self._launcher.goto_error)

    async def set_content(self, html, **kw):
        self.calls.append(("set_content", html))

    async def wait_for_load_state(self, state, timeout=None):
        self.calls.append(("wait_for_load_state", state, timeout))
        if self._launcher.load_state_times_out:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")

    async def wait_for_timeout(self, ms):
        self.calls.append(("wait_for_timeout", ms))
        if self._launcher.sleep_on_delay:
            await asyncio.sleep(ms / 1000)

    async def evaluate(self, script):
        self.calls.append(("evaluate", script))
        if self._launcher.evaluate_error:
            raise PlaywrightError(self._launcher.evaluate_error)

    async def screenshot(self, full_page=False):
        self.calls.append(("screenshot", full_page))
        return self._launcher.screenshot_png

    async def close(self):
        if self._launcher.page_close_fails or self.context.closed:
            raise PlaywrightError("Target page, context or browser has been closed")
        self.closed = True
        self.context.pages.remove(self)


class FakeContext:
    def __init__(self, options: dict, launcher: "FakeLauncher") -> None:
        self.options = options
        self.pages: list[FakePage] = []
        self.cookies: list[dict] = []
        self.closed = False
        self.close_fails = False
        self._launcher = launcher

    async def new_page(self):
        await asyncio.sleep(0)
        page = FakePage(self, self._launcher)
        self.pages.append(page)
        self._launcher.pages.append(page)
        return page

    async def add_cookies(self, cookies):
        self.cookies.extend(cookies)

    async def close(self):
        if self.close_fails:
            raise PlaywrightError("context already closed")
        self.closed = True


class FakeBrowser:
    def __init__(self, launcher: "FakeLauncher") -> None:
        self.contexts: list[FakeContext] = []
        self.closed = False
        self._launcher = launcher

    async def new_context(self, **options):
        await asyncio.sleep(0)
        context = FakeContext(options, self._launcher)
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True


class FakeLauncher:
    def __init__(self) -> None:
        self.devices = DEVICES
        self.launches = 0
        self.shutdowns = 0
        self.browsers: list[FakeBrowser] = []
        self.pages: list[FakePage] = []
        self.launch_error: str | None = None
        self.launch_delay = 0.01
        self.screenshot_png = make_png()
        self.goto_error: str | None = None
        self.evaluate_error: str | None = None
        self.load_state_times_out = False
        self.page_close_fails = False
        self.sleep_on_delay = False

    async def launch(self):
        self.launches += 1
        await asyncio.sleep(self.launch_delay)
        if self.launch_error:
            raise RuntimeError(self.launch_error)
        browser = FakeBrowser(self)
        self.browsers.append(browser)
        return browser

    async def shutdown(self):
        self.shutdowns += 1

    @property
    def recorded_calls(self) -> list[tuple]:
        return [call for page in self.pages for call in page.calls]

    def detached_page(self) -> FakePage:
        return FakePage(FakeContext({}, self), self)


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()
