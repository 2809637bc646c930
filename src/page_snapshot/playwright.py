"""Playwright helpers shared by the pool and the capture orchestrator."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

from playwright.async_api import Browser, Page, Playwright, async_playwright

from .logging import jlog

CHROMIUM_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-setuid-sandbox",
    "--disable-gpu",
]

ASSET_SETTLE_TIMEOUT_S = 5.0


class ChromiumLauncher:
    """Starts the Playwright driver and launches one headless Chromium."""

    def __init__(self, *, headless: bool = True, args: list[str] | None = None) -> None:
        self.headless = headless
        self.args = list(CHROMIUM_LAUNCH_ARGS if args is None else args)
        self._playwright: Playwright | None = None

    @property
    def devices(self) -> Mapping[str, Any]:
        if self._playwright is None:
            raise RuntimeError("Playwright driver is not running")
        return self._playwright.devices

    async def launch(self) -> Browser:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return await self._playwright.chromium.launch(headless=self.headless, args=self.args)

    async def shutdown(self) -> None:
        pw, self._playwright = self._playwright, None
        if pw is not None:
            await pw.stop()


async def close_quietly(resource: Any, *, event: str, **fields: Any) -> bool:
    """Close a page, context or browser; log and swallow failures."""

    if resource is None:
        return True
    try:
        await resource.close()
        return True
    except Exception as exc:
        jlog("warning", event=event, error=str(exc), **fields)
        return False


async def wait_assets_ready(page: Page, *, timeout_s: float = ASSET_SETTLE_TIMEOUT_S) -> None:
    """Wait (bounded) for fonts and images to settle before taking screenshots."""

    try:
        await asyncio.wait_for(
            page.evaluate(
                """
                () => Promise.all([
                    (document.fonts && document.fonts.ready) ? document.fonts.ready : Promise.resolve(),
                    Promise.all(
                        Array.from(document.images || []).map(img => {
                            if (img.complete) return Promise.resolve();
                            return new Promise(res => {
                                img.addEventListener('load', () => res(), { once: true });
                                img.addEventListener('error', () => res(), { once: true });
                            });
                        })
                    )
                ])
                """
            ),
            timeout=timeout_s,
        )
    except Exception:
        pass


__all__ = [
    "CHROMIUM_LAUNCH_ARGS",
    "ChromiumLauncher",
    "close_quietly",
    "wait_assets_ready",
]
